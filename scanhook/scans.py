"""Scan job creation and queue reconciliation."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from scanhook.models import Priority, QueueEntry, ScanJob, ScanType

if TYPE_CHECKING:
    from scanhook.store.base import Store

logger = logging.getLogger(__name__)


class ScanJobEnqueuer:
    """Creates ``queued`` scan jobs and their queue entries.

    Job and queue entry are written as one unit by the store. `reconcile`
    repairs jobs left without a queue entry by anything that wrote them
    outside that unit.
    """

    def __init__(self, store: Store) -> None:
        self._store = store

    async def enqueue(
        self,
        project_id: str,
        scan_type: ScanType,
        metadata: dict[str, Any],
        *,
        priority: Priority = Priority.NORMAL,
    ) -> tuple[ScanJob, QueueEntry]:
        job, entry = await self._store.create_scan_job(project_id, scan_type, metadata, priority)
        logger.info(
            "Scan queued id=%s project=%s type=%s priority=%s",
            job.id,
            project_id,
            scan_type.value,
            priority.value,
        )
        return job, entry

    async def reconcile(self, *, priority: Priority = Priority.NORMAL) -> list[QueueEntry]:
        """Enqueue every ``queued`` job that has no queue entry."""
        orphans = await self._store.find_orphaned_scan_jobs()
        if not orphans:
            logger.debug("Reconcile: no orphaned scan jobs")
            return []
        entries: list[QueueEntry] = []
        for job in orphans:
            entry = await self._store.enqueue_scan(job.id, priority)
            if entry is None:
                logger.debug("Reconcile: scan %s was enqueued concurrently", job.id)
                continue
            entries.append(entry)
        logger.info("Reconcile: enqueued %d of %d orphaned scan jobs", len(entries), len(orphans))
        return entries
