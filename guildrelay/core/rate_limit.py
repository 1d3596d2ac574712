"""Rate limiting configuration for the internal administration API.

Provider callback routes are not limited.
"""

import os

from slowapi import Limiter
from slowapi.util import get_remote_address

from guildrelay.core.config import settings

# Single-process relay: in-memory storage is enough.
IS_TESTING = os.getenv("TESTING", "").lower() in ("1", "true", "yes")

limiter = Limiter(
    key_func=get_remote_address,
    storage_uri="memory://",
    enabled=not IS_TESTING,
)

# Each submission registers webhooks with the provider
CREDENTIALS_RATE_LIMIT = (
    f"{settings.RATE_LIMIT_CREDENTIALS}/minute" if settings.RATE_LIMIT_CREDENTIALS > 0 else "1000000/minute"
)
