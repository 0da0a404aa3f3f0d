"""Storage contract consumed by the webhook pipeline."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol

from scanhook.models import (
    EventRecord,
    InboundEvent,
    Priority,
    ProcessingStatus,
    Project,
    ProjectDraft,
    QueueEntry,
    ScanJob,
    ScanType,
)


class Store(Protocol):
    """Insert and find-by-field operations against the relational store.

    Every method raises `scanhook.errors.StorageError` when the backend call
    fails. Implementations must make ``record_event``,
    ``claim_event``, ``find_or_create_project`` and ``create_scan_job`` atomic.
    """

    async def record_event(self, event: InboundEvent) -> tuple[EventRecord, bool]:
        """Insert an audit row; on a delivery-id conflict return the existing row.

        The flag is True when a new row was written.
        """
        ...

    async def claim_event(self, record_id: str, *, stale_before: datetime) -> bool:
        """Take a row for reprocessing and restamp ``claimed_at``.

        Claims a ``failed`` row, or a ``received`` row whose ``claimed_at`` is
        older than ``stale_before``. False if the row is not claimable or
        another caller won.
        """
        ...

    async def update_event(
        self,
        record_id: str,
        status: ProcessingStatus,
        *,
        result: dict[str, Any] | None = None,
        error_message: str | None = None,
    ) -> None: ...

    async def find_or_create_project(self, draft: ProjectDraft) -> tuple[Project, bool]:
        """Return the project named ``draft.name``, inserting it if absent.

        The flag is True when this call created the row.
        """
        ...

    async def get_project_by_name(self, name: str) -> Project | None: ...

    async def create_scan_job(
        self,
        project_id: str,
        scan_type: ScanType,
        metadata: dict[str, Any],
        priority: Priority,
    ) -> tuple[ScanJob, QueueEntry]:
        """Insert a ``queued`` scan job and its queue entry as one unit."""
        ...

    async def find_orphaned_scan_jobs(self) -> list[ScanJob]:
        """Return ``queued`` scan jobs that have no queue entry."""
        ...

    async def enqueue_scan(self, scan_id: str, priority: Priority) -> QueueEntry | None:
        """Add a queue entry for an existing job. None if one already exists."""
        ...

    async def close(self) -> None: ...
