"""Structured logging helpers (secret-free)."""

import logging
from typing import Any

from guildrelay.core.config import settings


def configure_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def build_log_context(
    *,
    guild_id: str | None = None,
    provider: str | None = None,
    codename: str | None = None,
    route: str | None = None,
) -> dict[str, Any]:
    """Return a log context dict. Never include credentials here."""
    context: dict[str, Any] = {}
    if guild_id:
        context["guild_id"] = guild_id
    if provider:
        context["provider"] = provider
    if codename:
        context["codename"] = codename
    if route:
        context["route"] = route
    return context
