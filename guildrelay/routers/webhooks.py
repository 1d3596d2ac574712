"""Webhooks router - inbound provider callbacks.

Not rate limited: only a verification failure may change the status code
seen by a provider.
"""

import logging

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from guildrelay.core.deps import get_db, get_discord_client
from guildrelay.db.enums import OutcomeKind, Provider
from guildrelay.services.discord_service import DiscordRestClient
from guildrelay.services.webhooks.base import RelayOutcome
from guildrelay.services.webhooks.registry import get_handler

router = APIRouter(tags=["webhooks"])
logger = logging.getLogger(__name__)


def _to_response(outcome: RelayOutcome) -> JSONResponse:
    """Only rejected deliveries change the status code seen by the provider."""
    if outcome.kind == OutcomeKind.FATAL:
        logger.error("Webhook relay failed: %s", outcome.reason)
    status_code = outcome.status_code if outcome.kind == OutcomeKind.REJECTED else 200
    return JSONResponse(outcome.to_body(), status_code=status_code)


@router.post("/github-webhook")
async def github_webhook(
    request: Request,
    db: Session = Depends(get_db),
    sink: DiscordRestClient = Depends(get_discord_client),
):
    """GitHub organization webhook (X-Hub-Signature, X-GitHub-Event)."""
    outcome = await get_handler(Provider.GITHUB).handle(request, db, sink=sink)
    return _to_response(outcome)


@router.post("/google-webhook")
async def google_webhook(
    request: Request,
    db: Session = Depends(get_db),
    sink: DiscordRestClient = Depends(get_discord_client),
):
    """Google Calendar push: a signal to pull changes, not a payload."""
    outcome = await get_handler(Provider.GOOGLE_CALENDAR).handle(request, db, sink=sink)
    return _to_response(outcome)


@router.api_route(
    "/trello-webhook",
    methods=["HEAD", "GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
)
async def trello_webhook(
    request: Request,
    db: Session = Depends(get_db),
    sink: DiscordRestClient = Depends(get_discord_client),
):
    """
    Trello board webhook.

    Trello checks the callback with HEAD when the webhook is created and
    stops delivering once we answer 410.
    """
    outcome = await get_handler(Provider.TRELLO).handle(request, db, sink=sink)
    if request.method == "HEAD" and outcome.kind != OutcomeKind.REJECTED:
        return Response(status_code=200)
    return _to_response(outcome)
