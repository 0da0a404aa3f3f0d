"""Event routing: one handler per `EventType`, with an explicit fallback."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

from scanhook.errors import MalformedPayloadError
from scanhook.models import EventType, HandlerOutcome, ScanType
from scanhook.webhook.payloads import (
    PingPayload,
    PullRequestPayload,
    PushPayload,
    RepositoryEventPayload,
    parse_payload,
)

if TYPE_CHECKING:
    from scanhook.models import InboundEvent
    from scanhook.projects import ProjectResolver
    from scanhook.scans import ScanJobEnqueuer

logger = logging.getLogger(__name__)

EventHandler = Callable[["InboundEvent"], Awaitable[HandlerOutcome]]

PR_SCAN_ACTIONS: frozenset[str] = frozenset({"opened", "synchronize", "reopened"})


class EventRouter:
    """Dispatches a verified event to the handler for its type.

    Unknown types land on `handle_unhandled` and never raise, so the sender
    is not pushed into retrying events this service does not understand.
    """

    def __init__(self, projects: ProjectResolver, scans: ScanJobEnqueuer) -> None:
        self._projects = projects
        self._scans = scans
        self._handlers: dict[EventType, EventHandler] = {
            EventType.PUSH: self.handle_push,
            EventType.PULL_REQUEST: self.handle_pull_request,
            EventType.REPOSITORY: self.handle_repository,
            EventType.PING: self.handle_ping,
            EventType.OTHER: self.handle_unhandled,
        }

    async def route(self, event: InboundEvent) -> HandlerOutcome:
        handler = self._handlers.get(event.event_type, self.handle_unhandled)
        outcome = await handler(event)
        logger.info(
            "Event routed type=%s processed=%s: %s",
            event.event_name,
            outcome.processed,
            outcome.message,
        )
        return outcome

    # -- Handlers --

    async def handle_push(self, event: InboundEvent) -> HandlerOutcome:
        push = parse_payload(PushPayload, event.payload)
        commits = push.all_commits()
        if not commits:
            return HandlerOutcome("Push event received, no action needed", processed=False)

        project = await self._projects.resolve(push.repository)
        metadata = {
            "trigger": "github_push",
            "ref": push.ref,
            "after": push.after,
            "commits": [
                {"id": c.id, "message": c.message, "author": c.author.name} for c in commits
            ],
        }
        job, _ = await self._scans.enqueue(project.id, ScanType.WEBHOOK_TRIGGERED, metadata)
        return HandlerOutcome(
            "Push event processed, scan queued",
            processed=True,
            fields={"scanId": job.id, "commits": len(commits)},
        )

    async def handle_pull_request(self, event: InboundEvent) -> HandlerOutcome:
        payload = parse_payload(PullRequestPayload, event.payload)
        if payload.action not in PR_SCAN_ACTIONS:
            return HandlerOutcome(
                "Pull request event received, no action needed", processed=False
            )
        pr = payload.pull_request
        if pr is None:
            msg = f"pull_request event with action {payload.action!r} has no pull_request"
            raise MalformedPayloadError(msg)

        project = await self._projects.resolve(payload.repository)
        metadata = {
            "trigger": "github_pr",
            "action": payload.action,
            "pr_number": pr.number,
            "pr_title": pr.title,
            "pr_url": pr.html_url,
            "head_sha": pr.head.sha,
            "head_ref": pr.head.ref,
        }
        job, _ = await self._scans.enqueue(project.id, ScanType.PULL_REQUEST, metadata)
        return HandlerOutcome(
            "Pull request scan queued",
            processed=True,
            fields={"scanId": job.id, "prNumber": pr.number},
        )

    async def handle_repository(self, event: InboundEvent) -> HandlerOutcome:
        payload = parse_payload(RepositoryEventPayload, event.payload)
        if payload.action != "created":
            return HandlerOutcome("Repository event received, no action needed", processed=False)

        _, created = await self._projects.register(payload.repository)
        fields = {"repository": payload.repository.full_name}
        if not created:
            return HandlerOutcome("Repository already registered", processed=False, fields=fields)
        return HandlerOutcome("Repository registered", processed=True, fields=fields)

    async def handle_ping(self, event: InboundEvent) -> HandlerOutcome:
        ping = parse_payload(PingPayload, event.payload)
        return HandlerOutcome("pong", processed=False, fields={"zen": ping.zen})

    async def handle_unhandled(self, event: InboundEvent) -> HandlerOutcome:
        logger.info("Unhandled webhook event: %s", event.event_name or "<missing>")
        return HandlerOutcome("Webhook received", processed=False)
