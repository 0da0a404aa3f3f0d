"""PostgreSQL store (psycopg 3, async).

Each operation opens a short-lived autocommit connection. Operations that
write more than one row run inside an explicit transaction.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any

import psycopg
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from scanhook.errors import StorageError
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

Connector = Callable[[str], Awaitable[Any]]

# Attempts for insert-then-fetch when the row disappears in between.
_UPSERT_ATTEMPTS = 3

# Tables are normally created by the wider system's migrations. These
# statements are idempotent and only add what the webhook pipeline relies on.
SCHEMA_STATEMENTS: tuple[str, ...] = (
    """
    CREATE TABLE IF NOT EXISTS projects (
      id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
      name TEXT NOT NULL,
      description TEXT,
      path TEXT,
      framework TEXT,
      created_at TIMESTAMPTZ DEFAULT NOW(),
      updated_at TIMESTAMPTZ DEFAULT NOW()
    )
    """,
    "ALTER TABLE projects ADD COLUMN IF NOT EXISTS metadata JSONB DEFAULT '{}'",
    "CREATE UNIQUE INDEX IF NOT EXISTS projects_name_key ON projects (name)",
    """
    CREATE TABLE IF NOT EXISTS scans (
      id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
      project_id UUID REFERENCES projects(id) ON DELETE CASCADE,
      status TEXT DEFAULT 'queued',
      metadata JSONB DEFAULT '{}',
      scan_type TEXT DEFAULT 'full',
      created_at TIMESTAMPTZ DEFAULT NOW(),
      completed_at TIMESTAMPTZ
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS scan_queue (
      id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
      scan_id UUID REFERENCES scans(id) ON DELETE CASCADE,
      priority TEXT DEFAULT 'normal',
      status TEXT DEFAULT 'queued',
      queued_at TIMESTAMPTZ DEFAULT NOW()
    )
    """,
    "CREATE UNIQUE INDEX IF NOT EXISTS scan_queue_scan_id_key ON scan_queue (scan_id)",
    """
    CREATE TABLE IF NOT EXISTS webhook_events (
      id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
      event_type TEXT NOT NULL,
      delivery_id TEXT,
      repository TEXT,
      sender TEXT,
      payload JSONB NOT NULL,
      processed_at TIMESTAMPTZ DEFAULT NOW(),
      processing_status TEXT DEFAULT 'received',
      error_message TEXT,
      created_at TIMESTAMPTZ DEFAULT NOW()
    )
    """,
    "ALTER TABLE webhook_events ADD COLUMN IF NOT EXISTS result JSONB",
    "ALTER TABLE webhook_events ADD COLUMN IF NOT EXISTS claimed_at TIMESTAMPTZ DEFAULT NOW()",
    """
    CREATE UNIQUE INDEX IF NOT EXISTS webhook_events_delivery_id_key
      ON webhook_events (delivery_id)
    """,
)

_EVENT_COLUMNS = (
    "id, delivery_id, event_type, processing_status, result, error_message, claimed_at"
)
_PROJECT_COLUMNS = "id, name, description, path, framework, metadata, created_at, updated_at"
_SCAN_COLUMNS = "id, project_id, scan_type, status, metadata, created_at"


async def _default_connect(dsn: str) -> psycopg.AsyncConnection[dict[str, Any]]:
    return await psycopg.AsyncConnection.connect(dsn, autocommit=True, row_factory=dict_row)


class PostgresStore:
    """`scanhook.store.base.Store` backed by PostgreSQL."""

    def __init__(self, dsn: str, *, connect: Connector | None = None) -> None:
        self._dsn = dsn
        self._connect = connect or _default_connect

    @asynccontextmanager
    async def _connection(self) -> AsyncIterator[Any]:
        try:
            conn = await self._connect(self._dsn)
        except psycopg.Error as exc:
            msg = f"database unavailable: {exc.__class__.__name__}"
            raise StorageError(msg) from exc
        try:
            async with conn:
                yield conn
        except psycopg.Error as exc:
            msg = f"database error: {exc.__class__.__name__}"
            raise StorageError(msg) from exc

    async def ensure_schema(self) -> None:
        """Apply the idempotent bootstrap DDL."""
        async with self._connection() as conn, conn.transaction():
            for statement in SCHEMA_STATEMENTS:
                await conn.execute(statement)
        logger.info("Schema bootstrap applied (%d statements)", len(SCHEMA_STATEMENTS))

    # -- Audit log --

    async def record_event(self, event: InboundEvent) -> tuple[EventRecord, bool]:
        async with self._connection() as conn:
            for _ in range(_UPSERT_ATTEMPTS):
                cur = await conn.execute(
                    "INSERT INTO webhook_events"
                    " (event_type, delivery_id, repository, sender, payload,"
                    " processed_at, processing_status, claimed_at)"
                    " VALUES (%s, %s, %s, %s, %s, %s, %s, %s)"
                    f" ON CONFLICT (delivery_id) DO NOTHING RETURNING {_EVENT_COLUMNS}",
                    (
                        event.event_name,
                        event.delivery_id,
                        event.repository,
                        event.sender,
                        Jsonb(event.payload),
                        event.received_at,
                        ProcessingStatus.RECEIVED.value,
                        event.received_at,
                    ),
                )
                row = await cur.fetchone()
                if row is not None:
                    return _event_from_row(row), True
                cur = await conn.execute(
                    f"SELECT {_EVENT_COLUMNS} FROM webhook_events WHERE delivery_id = %s",
                    (event.delivery_id,),
                )
                row = await cur.fetchone()
                if row is not None:
                    return _event_from_row(row), False
        msg = f"could not record delivery {event.delivery_id}"
        raise StorageError(msg)

    async def claim_event(self, record_id: str, *, stale_before: datetime) -> bool:
        async with self._connection() as conn:
            cur = await conn.execute(
                "UPDATE webhook_events"
                " SET processing_status = %s, error_message = NULL, claimed_at = %s"
                " WHERE id = %s AND (processing_status = %s OR (processing_status = %s"
                " AND (claimed_at IS NULL OR claimed_at < %s)))"
                " RETURNING id",
                (
                    ProcessingStatus.RECEIVED.value,
                    utcnow(),
                    record_id,
                    ProcessingStatus.FAILED.value,
                    ProcessingStatus.RECEIVED.value,
                    stale_before,
                ),
            )
            return await cur.fetchone() is not None

    async def update_event(
        self,
        record_id: str,
        status: ProcessingStatus,
        *,
        result: dict[str, Any] | None = None,
        error_message: str | None = None,
    ) -> None:
        async with self._connection() as conn:
            await conn.execute(
                "UPDATE webhook_events"
                " SET processing_status = %s, result = %s, error_message = %s"
                " WHERE id = %s",
                (
                    status.value,
                    Jsonb(result) if result is not None else None,
                    error_message,
                    record_id,
                ),
            )

    # -- Projects --

    async def find_or_create_project(self, draft: ProjectDraft) -> tuple[Project, bool]:
        async with self._connection() as conn:
            for _ in range(_UPSERT_ATTEMPTS):
                cur = await conn.execute(
                    "INSERT INTO projects (name, description, path, framework, metadata)"
                    " VALUES (%s, %s, %s, %s, %s)"
                    f" ON CONFLICT (name) DO NOTHING RETURNING {_PROJECT_COLUMNS}",
                    (
                        draft.name,
                        draft.description,
                        draft.path,
                        draft.framework,
                        Jsonb(draft.metadata),
                    ),
                )
                row = await cur.fetchone()
                if row is not None:
                    return _project_from_row(row), True
                cur = await conn.execute(
                    f"SELECT {_PROJECT_COLUMNS} FROM projects WHERE name = %s",
                    (draft.name,),
                )
                row = await cur.fetchone()
                if row is not None:
                    return _project_from_row(row), False
                logger.debug("Project %s vanished between insert and fetch, retrying", draft.name)
        msg = f"could not resolve project {draft.name}"
        raise StorageError(msg)

    async def get_project_by_name(self, name: str) -> Project | None:
        async with self._connection() as conn:
            cur = await conn.execute(
                f"SELECT {_PROJECT_COLUMNS} FROM projects WHERE name = %s", (name,)
            )
            row = await cur.fetchone()
        return _project_from_row(row) if row is not None else None

    # -- Scans and queue --

    async def create_scan_job(
        self,
        project_id: str,
        scan_type: ScanType,
        metadata: dict[str, Any],
        priority: Priority,
    ) -> tuple[ScanJob, QueueEntry]:
        async with self._connection() as conn, conn.transaction():
            cur = await conn.execute(
                "INSERT INTO scans (project_id, scan_type, status, metadata)"
                f" VALUES (%s, %s, %s, %s) RETURNING {_SCAN_COLUMNS}",
                (project_id, scan_type.value, ScanStatus.QUEUED.value, Jsonb(metadata)),
            )
            job = _scan_from_row(await cur.fetchone())
            if job is None:
                msg = "scan insert returned an unreadable row"
                raise StorageError(msg)
            cur = await conn.execute(
                "INSERT INTO scan_queue (scan_id, priority, queued_at)"
                " VALUES (%s, %s, NOW()) RETURNING scan_id, priority, queued_at",
                (job.id, priority.value),
            )
            entry = _queue_from_row(await cur.fetchone())
        return job, entry

    async def find_orphaned_scan_jobs(self) -> list[ScanJob]:
        async with self._connection() as conn:
            cur = await conn.execute(
                f"SELECT {_SCAN_COLUMNS} FROM scans s WHERE s.status = %s"
                " AND NOT EXISTS (SELECT 1 FROM scan_queue q WHERE q.scan_id = s.id)"
                " ORDER BY s.created_at",
                (ScanStatus.QUEUED.value,),
            )
            rows = await cur.fetchall()
        jobs = (_scan_from_row(row) for row in rows)
        return [job for job in jobs if job is not None]

    async def enqueue_scan(self, scan_id: str, priority: Priority) -> QueueEntry | None:
        async with self._connection() as conn:
            cur = await conn.execute(
                "INSERT INTO scan_queue (scan_id, priority, queued_at)"
                " VALUES (%s, %s, NOW()) ON CONFLICT (scan_id) DO NOTHING"
                " RETURNING scan_id, priority, queued_at",
                (scan_id, priority.value),
            )
            row = await cur.fetchone()
        return _queue_from_row(row) if row is not None else None

    async def close(self) -> None:
        return None


# -- Row mapping --


def _event_from_row(row: dict[str, Any]) -> EventRecord:
    try:
        status = ProcessingStatus(row["processing_status"])
    except ValueError:
        status = ProcessingStatus.RECEIVED
    return EventRecord(
        id=str(row["id"]),
        delivery_id=row["delivery_id"],
        event_type=row["event_type"],
        status=status,
        result=row.get("result"),
        error_message=row.get("error_message"),
        claimed_at=row.get("claimed_at") or utcnow(),
    )


def _project_from_row(row: dict[str, Any]) -> Project:
    return Project(
        id=str(row["id"]),
        name=row["name"],
        description=row["description"],
        path=row["path"],
        framework=row["framework"],
        metadata=row.get("metadata") or {},
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _scan_from_row(row: dict[str, Any]) -> ScanJob | None:
    try:
        scan_type = ScanType(row["scan_type"])
        status = ScanStatus(row["status"])
    except ValueError:
        logger.warning(
            "Skipping scan %s with unknown type=%r status=%r",
            row["id"],
            row["scan_type"],
            row["status"],
        )
        return None
    return ScanJob(
        id=str(row["id"]),
        project_id=str(row["project_id"]),
        scan_type=scan_type,
        status=status,
        metadata=row.get("metadata") or {},
        created_at=row["created_at"],
    )


def _queue_from_row(row: dict[str, Any]) -> QueueEntry:
    return QueueEntry(
        scan_id=str(row["scan_id"]),
        priority=Priority(row["priority"]),
        queued_at=row["queued_at"],
    )
