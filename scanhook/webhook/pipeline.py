"""Webhook pipeline: verify -> parse -> record -> route -> finish record."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from scanhook.errors import MalformedPayloadError
from scanhook.log_context import set_log_context
from scanhook.models import EventType, HandlerOutcome, InboundEvent
from scanhook.projects import ProjectResolver
from scanhook.scans import ScanJobEnqueuer
from scanhook.webhook.auth import check_delivery_signature
from scanhook.webhook.payloads import envelope_fields
from scanhook.webhook.recorder import EventRecorder, RecordedDelivery
from scanhook.webhook.router import EventRouter

if TYPE_CHECKING:
    from scanhook.store.base import Store

logger = logging.getLogger(__name__)

# Time allowed to mark the audit row failed after the request deadline hit.
FINISH_GRACE_SECONDS = 1.0


@dataclass(frozen=True)
class Delivery:
    """Raw request data the pipeline needs. ``body`` is never re-serialised."""

    body: bytes
    event_name: str | None = None
    delivery_id: str | None = None
    signature: str | None = None


def parse_body(body: bytes) -> dict[str, Any]:
    try:
        payload: Any = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        msg = "body is not valid JSON"
        raise MalformedPayloadError(msg) from exc
    if not isinstance(payload, dict):
        msg = "body must be a JSON object"
        raise MalformedPayloadError(msg)
    return payload


class WebhookPipeline:
    """Runs one delivery through every stage and returns the response outcome.

    Raises `AuthenticationError` and `MalformedPayloadError` for requests it
    refuses, and lets `StorageError` from critical writes propagate.

    ``request_timeout`` is the deadline the caller enforces around `process`.
    Once it and the finish grace period have passed, an unfinished delivery
    can be taken over by a redelivery.
    """

    def __init__(
        self,
        store: Store,
        *,
        secret: str = "",
        require_signature: bool = False,
        request_timeout: float = 10.0,
    ) -> None:
        self._secret = secret
        self._require_signature = require_signature
        claim_ttl = timedelta(seconds=request_timeout + FINISH_GRACE_SECONDS)
        self._recorder = EventRecorder(store, claim_ttl=claim_ttl)
        self._router = EventRouter(ProjectResolver(store), ScanJobEnqueuer(store))

    async def process(self, delivery: Delivery) -> HandlerOutcome:
        verdict = check_delivery_signature(
            delivery.body,
            delivery.signature,
            self._secret,
            require_signature=self._require_signature,
        )
        logger.debug("Signature check: %s", verdict)

        payload = parse_body(delivery.body)
        repository, sender = envelope_fields(payload)
        event = InboundEvent(
            event_type=EventType.from_header(delivery.event_name),
            event_name=delivery.event_name or "",
            delivery_id=delivery.delivery_id or None,
            payload=payload,
            repository=repository,
            sender=sender,
        )
        set_log_context(event=event.event_type.value)

        recorded = await self._recorder.record(event)
        if recorded.replay is not None:
            replay = recorded.replay
            return HandlerOutcome(
                replay.message, replay.processed, {**replay.fields, "duplicate": True}
            )

        try:
            outcome = await self._router.route(event)
        except asyncio.CancelledError:
            await self._finish_after_cancel(recorded)
            raise
        except Exception as exc:
            await self._recorder.finish(recorded, error=_describe(exc))
            raise
        await self._recorder.finish(recorded, outcome)
        return outcome

    async def _finish_after_cancel(self, recorded: RecordedDelivery) -> None:
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(
                self._recorder.finish(recorded, error="request timed out"),
                FINISH_GRACE_SECONDS,
            )


def _describe(exc: Exception) -> str:
    text = str(exc)
    return f"{exc.__class__.__name__}: {text}" if text else exc.__class__.__name__
