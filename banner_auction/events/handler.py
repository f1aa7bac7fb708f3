"""GitHub webhook ingestion."""

from __future__ import annotations

import logging
from typing import Any

import orjson

from .. import messages
from ..auction.admission import BidAdmissionService
from ..config import GitHubConfig
from ..periods.store import PeriodStore
from ..transport.signatures import verify_signature
from ..validation.validator import SchemaRegistry
from .anti_replay import DeliveryReplayGuard
from .validators import validate_delivery

logger = logging.getLogger(__name__)


class WebhookService:
    def __init__(
        self,
        github: GitHubConfig,
        schemas: SchemaRegistry,
        periods: PeriodStore,
        admission: BidAdmissionService,
        replay_guard: DeliveryReplayGuard,
    ) -> None:
        self._github = github
        self._schemas = schemas
        self._periods = periods
        self._admission = admission
        self._guard = replay_guard

    async def handle(
        self,
        *,
        event_name: str,
        delivery_id: str,
        signature: str,
        body: bytes,
    ) -> dict[str, Any]:
        """Verify and dispatch one delivery.

        Raises ``SignatureError`` for an unauthenticated request,
        ``DeliveryReplayError`` for a repeated delivery id, and ``ValueError``
        (including ``jsonschema.ValidationError``) for a malformed payload.
        """
        verify_signature(body, signature, self._github.webhook_secret)
        await self._guard.assert_unique(delivery_id)

        if event_name == "ping":
            return {"status": "pong"}
        try:
            payload = orjson.loads(body)
        except orjson.JSONDecodeError as exc:
            raise ValueError(f"payload is not valid JSON: {exc}") from exc
        if validate_delivery(self._schemas, event_name, payload) is None:
            return {"status": "ignored", "reason": f"unsupported event {event_name}"}

        if payload["action"] != "created":
            return {"status": "ignored", "reason": f"action {payload['action']} not handled"}
        comment = payload["comment"]
        if comment["user"].get("type") == "Bot":
            return {"status": "ignored", "reason": "comment posted by a bot"}
        if messages.is_service_comment(comment.get("body")):
            return {"status": "ignored", "reason": "comment posted by this service"}

        snapshot = await self._periods.load()
        period = snapshot.period
        if period is None or not period.is_open:
            return {"status": "ignored", "reason": "no open bidding period"}
        if payload["issue"]["number"] != period.issue_number:
            return {"status": "ignored", "reason": "comment is not on the bidding issue"}

        logger.info("webhook: delivery %s admits comment %s", delivery_id, comment["id"])
        result = await self._admission.admit(comment["id"], period.period_id)
        return {"status": "processed", "result": result.to_dict()}
