"""Webhook audit log and delivery deduplication."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING

from scanhook.errors import StorageError
from scanhook.models import EventRecord, HandlerOutcome, ProcessingStatus, utcnow

if TYPE_CHECKING:
    from scanhook.models import InboundEvent
    from scanhook.store.base import Store

logger = logging.getLogger(__name__)

IN_PROGRESS = HandlerOutcome("Delivery already in progress", processed=False)

# Default request deadline plus the grace period for the final audit write.
DEFAULT_CLAIM_TTL = timedelta(seconds=11)


@dataclass(frozen=True)
class RecordedDelivery:
    """Outcome of recording one delivery.

    ``record`` is None when the audit write failed. ``replay`` carries the
    response to return instead of routing the event again.
    """

    record: EventRecord | None
    replay: HandlerOutcome | None = None


class EventRecorder:
    """Writes the audit row for each delivery and detects replays.

    The audit log is a non-critical side effect: storage failures here are
    logged and the request carries on without deduplication.

    A ``received`` row whose claim is older than ``claim_ttl`` belongs to an
    attempt that can no longer finish, so a redelivery takes it over just as
    it takes over a ``failed`` row.
    """

    def __init__(self, store: Store, *, claim_ttl: timedelta = DEFAULT_CLAIM_TTL) -> None:
        self._store = store
        self._claim_ttl = claim_ttl

    async def record(self, event: InboundEvent) -> RecordedDelivery:
        try:
            record, inserted = await self._store.record_event(event)
        except StorageError:
            logger.exception("Audit log write failed, continuing without dedup")
            return RecordedDelivery(record=None)

        if inserted:
            logger.debug("Delivery recorded id=%s", record.id)
            return RecordedDelivery(record=record)

        if record.status.finished:
            logger.info("Duplicate delivery, returning stored result (status=%s)", record.status)
            cached = HandlerOutcome.from_dict(record.result or {"message": "Webhook received"})
            return RecordedDelivery(record=record, replay=cached)

        try:
            claimed = await self._store.claim_event(
                record.id, stale_before=utcnow() - self._claim_ttl
            )
        except StorageError:
            logger.exception("Could not claim delivery for retry")
            claimed = False
        if claimed:
            logger.info("Reprocessing delivery left %s", record.status)
            return RecordedDelivery(record=record)

        logger.info("Duplicate delivery still in progress, skipping")
        return RecordedDelivery(record=record, replay=IN_PROGRESS)

    async def finish(
        self,
        delivery: RecordedDelivery,
        outcome: HandlerOutcome | None = None,
        *,
        error: str | None = None,
    ) -> None:
        """Store the final status and the response returned for the delivery."""
        if delivery.record is None:
            return
        if error is not None:
            status = ProcessingStatus.FAILED
        elif outcome is not None and outcome.processed:
            status = ProcessingStatus.PROCESSED
        else:
            status = ProcessingStatus.IGNORED
        try:
            await self._store.update_event(
                delivery.record.id,
                status,
                result=outcome.to_dict() if outcome is not None else None,
                error_message=error,
            )
        except StorageError:
            logger.exception("Audit log update failed (status=%s)", status)
