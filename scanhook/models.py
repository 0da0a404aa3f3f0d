"""Domain records shared by the pipeline and the storage backends."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any


def utcnow() -> datetime:
    return datetime.now(UTC)


class EventType(StrEnum):
    """Closed set of event types the router knows how to handle.

    Anything else arriving in the event header maps to ``OTHER``.
    """

    PUSH = "push"
    PULL_REQUEST = "pull_request"
    REPOSITORY = "repository"
    PING = "ping"
    OTHER = "other"

    @classmethod
    def from_header(cls, value: str | None) -> EventType:
        if not value:
            return cls.OTHER
        try:
            event = cls(value.strip().lower())
        except ValueError:
            return cls.OTHER
        return event


class ScanType(StrEnum):
    WEBHOOK_TRIGGERED = "webhook_triggered"
    PULL_REQUEST = "pull_request"
    MANUAL = "manual"
    FULL = "full"


class ScanStatus(StrEnum):
    QUEUED = "queued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class Priority(StrEnum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"


class ProcessingStatus(StrEnum):
    """Lifecycle of one audit-log row."""

    RECEIVED = "received"
    PROCESSED = "processed"
    IGNORED = "ignored"
    FAILED = "failed"

    @property
    def finished(self) -> bool:
        return self in (ProcessingStatus.PROCESSED, ProcessingStatus.IGNORED)


@dataclass(frozen=True)
class InboundEvent:
    """One webhook delivery as received. Never mutated after parsing."""

    event_type: EventType
    event_name: str  # raw header value, kept for unknown types
    delivery_id: str | None
    payload: dict[str, Any]
    repository: str | None
    sender: str | None
    received_at: datetime = field(default_factory=utcnow)


@dataclass
class EventRecord:
    """Stored audit-log row for one delivery."""

    id: str
    delivery_id: str | None
    event_type: str
    status: ProcessingStatus = ProcessingStatus.RECEIVED
    result: dict[str, Any] | None = None
    error_message: str | None = None
    # When the current processing attempt took the row.
    claimed_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class ProjectDraft:
    """Field values used when a project has to be created."""

    name: str
    description: str
    path: str
    framework: str
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class Project:
    id: str
    name: str
    description: str | None
    path: str | None
    framework: str | None
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass
class ScanJob:
    id: str
    project_id: str
    scan_type: ScanType
    status: ScanStatus
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class QueueEntry:
    scan_id: str
    priority: Priority
    queued_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class HandlerOutcome:
    """Result of routing one event; serialised as the HTTP response body."""

    message: str
    processed: bool
    fields: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"message": self.message, "processed": self.processed, **self.fields}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HandlerOutcome:
        extra = {k: v for k, v in data.items() if k not in ("message", "processed")}
        return cls(
            message=str(data.get("message", "")),
            processed=bool(data.get("processed", False)),
            fields=extra,
        )
