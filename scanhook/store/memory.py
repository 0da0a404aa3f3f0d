"""In-process store for local development and tests.

State lives in plain dicts guarded by one ``asyncio.Lock``, so every
operation is atomic with respect to other coroutines on the same loop.
Nothing survives a restart.
"""

from __future__ import annotations

import asyncio
import copy
import logging
import uuid
from datetime import datetime
from typing import Any

from scanhook.models import (
    EventRecord,
    InboundEvent,
    Priority,
    ProcessingStatus,
    Project,
    ProjectDraft,
    QueueEntry,
    ScanJob,
    ScanStatus,
    ScanType,
    utcnow,
)

logger = logging.getLogger(__name__)


def _new_id() -> str:
    return str(uuid.uuid4())


class MemoryStore:
    """Dict-backed implementation of `scanhook.store.base.Store`."""

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self.events: dict[str, EventRecord] = {}
        self.event_payloads: dict[str, dict[str, Any]] = {}
        self.projects: dict[str, Project] = {}
        self.scans: dict[str, ScanJob] = {}
        self.queue: dict[str, QueueEntry] = {}

    # -- Audit log --

    async def record_event(self, event: InboundEvent) -> tuple[EventRecord, bool]:
        async with self._lock:
            if event.delivery_id is not None:
                existing = next(
                    (r for r in self.events.values() if r.delivery_id == event.delivery_id),
                    None,
                )
                if existing is not None:
                    return copy.deepcopy(existing), False
            record = EventRecord(
                id=_new_id(),
                delivery_id=event.delivery_id,
                event_type=event.event_name,
            )
            self.events[record.id] = record
            self.event_payloads[record.id] = event.payload
            return copy.deepcopy(record), True

    async def claim_event(self, record_id: str, *, stale_before: datetime) -> bool:
        async with self._lock:
            record = self.events.get(record_id)
            if record is None:
                return False
            stale = record.status is ProcessingStatus.RECEIVED and record.claimed_at < stale_before
            if record.status is not ProcessingStatus.FAILED and not stale:
                return False
            record.status = ProcessingStatus.RECEIVED
            record.error_message = None
            record.claimed_at = utcnow()
            return True

    async def update_event(
        self,
        record_id: str,
        status: ProcessingStatus,
        *,
        result: dict[str, Any] | None = None,
        error_message: str | None = None,
    ) -> None:
        async with self._lock:
            record = self.events.get(record_id)
            if record is None:
                logger.warning("Audit row %s vanished before update", record_id)
                return
            record.status = status
            record.result = copy.deepcopy(result)
            record.error_message = error_message

    # -- Projects --

    async def find_or_create_project(self, draft: ProjectDraft) -> tuple[Project, bool]:
        async with self._lock:
            existing = self._project_named(draft.name)
            if existing is not None:
                return copy.deepcopy(existing), False
            project = Project(
                id=_new_id(),
                name=draft.name,
                description=draft.description,
                path=draft.path,
                framework=draft.framework,
                metadata=dict(draft.metadata),
            )
            self.projects[project.id] = project
            return copy.deepcopy(project), True

    async def get_project_by_name(self, name: str) -> Project | None:
        async with self._lock:
            return copy.deepcopy(self._project_named(name))

    def _project_named(self, name: str) -> Project | None:
        return next((p for p in self.projects.values() if p.name == name), None)

    # -- Scans and queue --

    async def create_scan_job(
        self,
        project_id: str,
        scan_type: ScanType,
        metadata: dict[str, Any],
        priority: Priority,
    ) -> tuple[ScanJob, QueueEntry]:
        async with self._lock:
            job = ScanJob(
                id=_new_id(),
                project_id=project_id,
                scan_type=scan_type,
                status=ScanStatus.QUEUED,
                metadata=copy.deepcopy(metadata),
            )
            entry = QueueEntry(scan_id=job.id, priority=priority)
            self.scans[job.id] = job
            self.queue[job.id] = entry
            return copy.deepcopy(job), entry

    async def find_orphaned_scan_jobs(self) -> list[ScanJob]:
        async with self._lock:
            return [
                copy.deepcopy(job)
                for job in sorted(self.scans.values(), key=lambda j: j.created_at)
                if job.status is ScanStatus.QUEUED and job.id not in self.queue
            ]

    async def enqueue_scan(self, scan_id: str, priority: Priority) -> QueueEntry | None:
        async with self._lock:
            if scan_id in self.queue or scan_id not in self.scans:
                return None
            entry = QueueEntry(scan_id=scan_id, priority=priority, queued_at=utcnow())
            self.queue[scan_id] = entry
            return entry

    async def close(self) -> None:
        return None
