"""Logging context: ContextVar-based log enrichment for async operations.

Every log record is automatically enriched with a ``[op:event:delivery]`` prefix
via a `ContextFilter` attached to the root logger handlers.

Operation codes: ``wh`` (webhook request), ``rc`` (reconcile sweep).
"""

from __future__ import annotations

import logging
from contextvars import ContextVar

# Cross-cutting context propagated through asyncio tasks.
ctx_operation: ContextVar[str | None] = ContextVar("ctx_operation", default=None)
ctx_event: ContextVar[str | None] = ContextVar("ctx_event", default=None)
ctx_delivery_id: ContextVar[str | None] = ContextVar("ctx_delivery_id", default=None)


class ContextFilter(logging.Filter):
    """Inject ContextVar values into every LogRecord as ``record.ctx``."""

    def filter(self, record: logging.LogRecord) -> bool:
        op = ctx_operation.get(None)
        event = ctx_event.get(None)
        delivery = ctx_delivery_id.get(None)
        parts: list[str] = []
        if op:
            parts.append(op)
        if event:
            parts.append(event)
        if delivery:
            parts.append(delivery[:8])
        record.ctx = f"[{':'.join(parts)}] " if parts else ""
        return True


def set_log_context(
    *,
    operation: str | None = None,
    event: str | None = None,
    delivery_id: str | None = None,
) -> None:
    """Set logging context for the current asyncio task.

    aiohttp runs every request handler in its own task, so values set here
    never leak into a concurrent request.
    """
    if operation is not None:
        ctx_operation.set(operation)
    if event is not None:
        ctx_event.set(event)
    if delivery_id is not None:
        ctx_delivery_id.set(delivery_id)
