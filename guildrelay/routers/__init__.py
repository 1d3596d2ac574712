"""API routers."""

from guildrelay.routers.guilds import router as guilds_router
from guildrelay.routers.webhooks import router as webhooks_router
