"""Webhook handler interface."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

from fastapi import HTTPException, Request
from sqlalchemy.orm import Session

from guildrelay.core.config import settings
from guildrelay.db.enums import OutcomeKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Verification:
    """Result of checking an inbound callback's authenticity."""

    authentic: bool
    reason: str = ""
    status_code: int = 403

    @classmethod
    def ok(cls) -> "Verification":
        return cls(True)

    @classmethod
    def rejected(cls, reason: str, status_code: int = 403) -> "Verification":
        return cls(False, reason, status_code)


@dataclass(frozen=True)
class RelayOutcome:
    """How one inbound delivery ended; endpoints turn this into a response."""

    kind: OutcomeKind
    reason: str = ""
    status_code: int = 200
    codename: str | None = None

    @classmethod
    def ok(cls, codename: str | None = None, reason: str = "delivered") -> "RelayOutcome":
        return cls(OutcomeKind.OK, reason, 200, codename)

    @classmethod
    def recoverable(cls, reason: str, codename: str | None = None) -> "RelayOutcome":
        return cls(OutcomeKind.RECOVERABLE, reason, 200, codename)

    @classmethod
    def fatal(cls, reason: str, codename: str | None = None) -> "RelayOutcome":
        return cls(OutcomeKind.FATAL, reason, 200, codename)

    @classmethod
    def rejected(cls, reason: str, status_code: int = 403) -> "RelayOutcome":
        return cls(OutcomeKind.REJECTED, reason, status_code)

    def to_body(self) -> dict[str, Any]:
        body: dict[str, Any] = {"status": self.kind.value}
        if self.reason:
            body["reason"] = self.reason
        if self.codename:
            body["codename"] = self.codename
        return body


@dataclass
class NotificationRecord:
    """Provider-neutral message ready for the Discord sink."""

    title: str
    description: str
    fields: list[tuple[str, str]] = field(default_factory=list)
    color: int = 0x5865F2
    url: str | None = None
    thumbnail: str | None = None
    inline_fields: bool = False
    inline_labels: frozenset[str] = frozenset()


class WebhookHandler(Protocol):
    provider: str
    codenames: frozenset[str]

    async def handle(self, request: Request, db: Session, **kwargs) -> RelayOutcome:
        """Handle a webhook request."""

    async def register_webhook(self, guild_id: str, credentials: dict[str, str], db: Session) -> Any:
        """Create (or reuse) the provider-side subscription for a guild."""

    async def teardown_webhook(self, guild_id: str, credentials: dict[str, str] | None, db: Session) -> None:
        """Remove the provider-side subscription; already-gone is not an error."""


async def read_body_safe(request: Request) -> bytes:
    max_bytes = settings.WEBHOOK_MAX_PAYLOAD_BYTES
    content_length = request.headers.get("content-length")
    if content_length:
        try:
            if int(content_length) > max_bytes:
                raise HTTPException(413, "Payload too large")
        except ValueError:
            pass

    chunks: list[bytes] = []
    total = 0
    async for chunk in request.stream():
        if not chunk:
            continue
        total += len(chunk)
        if total > max_bytes:
            raise HTTPException(413, "Payload too large")
        chunks.append(chunk)
    return b"".join(chunks)


def parse_json(body: bytes) -> dict | None:
    """Decode a JSON object body; anything else is None."""
    try:
        data = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None
    return data if isinstance(data, dict) else None
