"""GitHub webhook handler."""

from __future__ import annotations

import hashlib
import hmac
import logging
from typing import Any, Callable

from fastapi import Request
from sqlalchemy.orm import Session

from guildrelay.core.config import settings
from guildrelay.core.structured_logging import build_log_context
from guildrelay.db.enums import Provider
from guildrelay.services import github_service, relay_service
from guildrelay.services.webhooks.base import (
    NotificationRecord,
    RelayOutcome,
    Verification,
    parse_json,
    read_body_safe,
)

logger = logging.getLogger(__name__)

TITLE = "Github Notification"
COLOR = 0x0079BF
THUMBNAIL = "https://github.githubassets.com/assets/GitHub-Mark-ea2971cee799.png"

EVENT_CODENAMES: dict[str, str] = {
    "push": "github-push",
    "pull_request": "github-pull-request",
    "release": "github-release",
    "discussion": "github-discussions",
    "create": "github-branch",
    "commit_comment": "github-commit",
    "deployment": "github-deployment",
    "deployment_status": "github-deployment-status",
    "member": "github-member",
    "pull_request_review": "github-pull-request-review",
    "pull_request_review_comment": "github-pull-request-review-comment",
}


def _path(dotted: str) -> Callable[[dict], Any]:
    keys = dotted.split(".")

    def _get(payload: dict) -> Any:
        value: Any = payload
        for key in keys:
            if not isinstance(value, dict):
                return None
            value = value.get(key)
        return value

    return _get


def _count(key: str) -> Callable[[dict], Any]:
    return lambda payload: len(payload.get(key) or [])


_REPOSITORY = ("Repository", _path("repository.full_name"))

FIELD_TEMPLATES: dict[str, tuple[tuple[str, Callable[[dict], Any]], ...]] = {
    "deployment": (
        _REPOSITORY,
        ("Deployment", _path("deployment.environment")),
        ("Action", _path("action")),
    ),
    "deployment_status": (
        _REPOSITORY,
        ("Deployment", _path("deployment.environment")),
        ("Status", _path("deployment_status.state")),
    ),
    "member": (
        _REPOSITORY,
        ("Member", _path("member.login")),
        ("Action", _path("action")),
    ),
    "pull_request_review": (
        _REPOSITORY,
        ("Pull Request", _path("pull_request.title")),
        ("Action", _path("action")),
    ),
    "pull_request_review_comment": (
        _REPOSITORY,
        ("Pull Request", _path("pull_request.title")),
        ("Comment", _path("comment.body")),
    ),
    "push": (
        _REPOSITORY,
        ("Pusher", _path("pusher.name")),
        ("Commits", _count("commits")),
    ),
    "pull_request": (
        _REPOSITORY,
        ("Pull Request", _path("pull_request.title")),
        ("Action", _path("action")),
    ),
    "release": (
        _REPOSITORY,
        ("Release", _path("release.tag_name")),
        ("Action", _path("action")),
    ),
    "discussion": (
        _REPOSITORY,
        ("Discussion", _path("discussion.title")),
        ("Action", _path("action")),
    ),
    "create": (
        _REPOSITORY,
        ("Ref", _path("ref")),
        ("Ref Type", _path("ref_type")),
    ),
    "commit_comment": (
        _REPOSITORY,
        ("Commit", _path("comment.commit_id")),
        ("Comment", _path("comment.body")),
    ),
}

_CODENAME_EVENTS = {codename: event for event, codename in EVENT_CODENAMES.items()}


def _verify_github_signature(body: bytes, signature: str, secret: str) -> bool:
    """
    Verify GitHub's X-Hub-Signature header.

    GitHub sends ``sha1=<hex>``: HMAC-SHA1 of the raw body keyed by the
    webhook secret.
    """
    expected = hmac.new(secret.encode("utf-8"), body, hashlib.sha1).hexdigest()
    # Headers arrive latin-1 decoded; compare bytes so non-ASCII input is a mismatch
    return hmac.compare_digest(
        f"sha1={expected}".encode("ascii"), signature.encode("utf-8", "surrogateescape")
    )


class GitHubWebhookHandler:
    provider = Provider.GITHUB
    codenames = frozenset(EVENT_CODENAMES.values())

    def verify(self, body: bytes, signature: str | None) -> Verification:
        if not settings.WEBHOOK_SECRET:
            logger.error("WEBHOOK_SECRET not configured")
            return Verification.rejected("webhook not configured")
        if not signature:
            return Verification.rejected("missing signature")
        if not _verify_github_signature(body, signature, settings.WEBHOOK_SECRET):
            return Verification.rejected("invalid signature")
        return Verification.ok()

    def classify(self, event_type: str | None) -> str | None:
        if not event_type:
            return None
        return EVENT_CODENAMES.get(event_type)

    def render_fields(self, payload: dict, codename: str) -> list[tuple[str, str]]:
        template = FIELD_TEMPLATES[_CODENAME_EVENTS[codename]]
        fields = []
        for label, getter in template:
            value = getter(payload)
            fields.append((label, "" if value is None else str(value)))
        return fields

    def build_record(self, payload: dict, codename: str) -> NotificationRecord:
        return NotificationRecord(
            title=TITLE,
            description=f"A new Github event has occurred: {codename}",
            fields=self.render_fields(payload, codename),
            color=COLOR,
            thumbnail=THUMBNAIL,
            inline_fields=True,
        )

    async def handle(self, request: Request, db: Session, **kwargs) -> RelayOutcome:
        """
        Receive a GitHub organization webhook delivery.

        Security:
        - X-Hub-Signature is checked against the raw body before anything
          else looks at the payload
        """
        sink = kwargs["sink"]
        guild_id = request.query_params.get("guildId")
        event_type = request.headers.get("x-github-event")
        log_context = build_log_context(guild_id=guild_id, provider=self.provider.value, route="github")

        body = await read_body_safe(request)
        verification = self.verify(body, request.headers.get("x-hub-signature"))
        if not verification.authentic:
            logger.warning("GitHub webhook rejected: %s", verification.reason, extra=log_context)
            return RelayOutcome.rejected(verification.reason, verification.status_code)

        payload = parse_json(body)
        if payload is None:
            logger.info("GitHub webhook with non-JSON body", extra=log_context)
            return RelayOutcome.recoverable("invalid json")
        if not guild_id:
            return RelayOutcome.recoverable("missing guildId")

        codename = self.classify(event_type)
        if codename is None:
            logger.info("GitHub event not relayed: %s", event_type, extra=log_context)
            return RelayOutcome.ok(reason="ignored")

        record = self.build_record(payload, codename)
        return await relay_service.relay_notification(
            db, sink, guild_id, self.provider, codename, record
        )

    async def register_webhook(self, guild_id: str, credentials: dict[str, str], db: Session) -> dict:
        return await github_service.create_org_hook(
            guild_id, credentials["Organization"], credentials["Token"]
        )

    async def teardown_webhook(
        self, guild_id: str, credentials: dict[str, str] | None, db: Session
    ) -> None:
        if credentials is None:
            return
        await github_service.delete_org_hook(guild_id, credentials["Organization"], credentials["Token"])
