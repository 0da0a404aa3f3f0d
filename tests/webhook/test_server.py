"""Tests for webhook HTTP server (aiohttp)."""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator
from datetime import datetime
from typing import Any

import pytest
from aiohttp.test_utils import TestClient, TestServer

from scanhook.config import AppConfig, ServerConfig, WebhookConfig
from scanhook.errors import StorageError
from scanhook.models import ProcessingStatus
from scanhook.store.memory import MemoryStore
from scanhook.webhook.auth import compute_signature
from scanhook.webhook.server import WebhookServer

_SECRET = "server-test-secret"
_PATH = "/webhooks/github"


def _make_config(**webhook: Any) -> AppConfig:
    return AppConfig(
        server=ServerConfig(port=0, request_timeout_seconds=5.0, max_body_bytes=64 * 1024),
        webhook=WebhookConfig(**webhook),
    )


def _headers(event: str, delivery: str = "d-1", **extra: str) -> dict[str, str]:
    return {
        "Content-Type": "application/json",
        "X-GitHub-Event": event,
        "X-GitHub-Delivery": delivery,
        **extra,
    }


def _push(repository: dict[str, Any], n_commits: int = 2) -> bytes:
    commits = [
        {"id": f"sha{i}", "message": f"msg {i}", "author": {"name": "ann", "email": "a@b.c"}}
        for i in range(n_commits)
    ]
    return json.dumps(
        {"ref": "refs/heads/main", "repository": repository, "commits": commits}
    ).encode()


async def _client(config: AppConfig, store: MemoryStore) -> TestClient[Any, Any]:
    server = WebhookServer(config, store)
    client = TestClient(TestServer(server.build_app()))
    await client.start_server()
    return client


@pytest.fixture
async def client(store: MemoryStore) -> AsyncIterator[TestClient[Any, Any]]:
    """Client for a server without a configured secret."""
    client = await _client(_make_config(), store)
    yield client
    await client.close()


@pytest.fixture
async def signed_client(store: MemoryStore) -> AsyncIterator[TestClient[Any, Any]]:
    """Client for a server that verifies signatures."""
    client = await _client(_make_config(secret=_SECRET), store)
    yield client
    await client.close()


# ---------------------------------------------------------------------------
# Health and preflight
# ---------------------------------------------------------------------------


class TestAuxiliaryRoutes:
    async def test_health(self, client: TestClient[Any, Any]) -> None:
        resp = await client.get("/health")
        assert resp.status == 200
        assert await resp.json() == {"status": "ok"}

    async def test_options_preflight(self, client: TestClient[Any, Any]) -> None:
        resp = await client.options(_PATH)
        assert resp.status == 200
        assert await resp.text() == "ok"
        assert resp.headers["Access-Control-Allow-Origin"] == "*"
        assert "x-hub-signature-256" in resp.headers["Access-Control-Allow-Headers"]

    async def test_root_path_also_accepts_deliveries(
        self, client: TestClient[Any, Any]
    ) -> None:
        resp = await client.post("/", data=b"{}", headers=_headers("star"))
        assert resp.status == 200


# ---------------------------------------------------------------------------
# Signatures
# ---------------------------------------------------------------------------


class TestSignatures:
    async def test_bad_signature_returns_401_text(
        self, signed_client: TestClient[Any, Any], store: MemoryStore, repository: dict[str, Any]
    ) -> None:
        resp = await signed_client.post(
            _PATH,
            data=_push(repository),
            headers=_headers("push", **{"X-Hub-Signature-256": "sha256=" + "a" * 64}),
        )
        assert resp.status == 401
        assert await resp.text() == "Invalid signature"
        assert resp.headers["Access-Control-Allow-Origin"] == "*"
        assert store.events == {}

    async def test_valid_signature_accepted(
        self, signed_client: TestClient[Any, Any], repository: dict[str, Any]
    ) -> None:
        body = _push(repository)
        resp = await signed_client.post(
            _PATH,
            data=body,
            headers=_headers(
                "push", **{"X-Hub-Signature-256": compute_signature(body, _SECRET)}
            ),
        )
        assert resp.status == 200
        assert (await resp.json())["processed"] is True

    async def test_missing_signature_accepted_by_default(
        self, signed_client: TestClient[Any, Any], repository: dict[str, Any]
    ) -> None:
        resp = await signed_client.post(_PATH, data=_push(repository), headers=_headers("push"))
        assert resp.status == 200

    async def test_missing_signature_rejected_when_required(
        self, store: MemoryStore, repository: dict[str, Any]
    ) -> None:
        client = await _client(_make_config(secret=_SECRET, require_signature=True), store)
        try:
            resp = await client.post(_PATH, data=_push(repository), headers=_headers("push"))
            assert resp.status == 401
        finally:
            await client.close()


# ---------------------------------------------------------------------------
# Event handling
# ---------------------------------------------------------------------------


class TestEvents:
    async def test_push_queues_scan(
        self, client: TestClient[Any, Any], store: MemoryStore, repository: dict[str, Any]
    ) -> None:
        resp = await client.post(_PATH, data=_push(repository, 3), headers=_headers("push"))
        assert resp.status == 200
        assert resp.headers["Access-Control-Allow-Origin"] == "*"
        data = await resp.json()
        assert data["message"] == "Push event processed, scan queued"
        assert data["processed"] is True
        assert data["commits"] == 3
        assert data["scanId"] in store.scans
        assert data["scanId"] in store.queue

    async def test_audit_row_captures_envelope(
        self, client: TestClient[Any, Any], store: MemoryStore, repository: dict[str, Any]
    ) -> None:
        body = json.dumps({"repository": repository, "sender": {"login": "octocat"}}).encode()
        await client.post(_PATH, data=body, headers=_headers("watch", delivery="abc-123"))
        record_id, record = next(iter(store.events.items()))
        assert record.delivery_id == "abc-123"
        assert record.event_type == "watch"
        assert store.event_payloads[record_id]["sender"] == {"login": "octocat"}

    async def test_unknown_event_returns_200_noop(
        self, client: TestClient[Any, Any], store: MemoryStore
    ) -> None:
        resp = await client.post(_PATH, data=b'{"action": "started"}', headers=_headers("star"))
        assert resp.status == 200
        assert await resp.json() == {"message": "Webhook received", "processed": False}
        assert len(store.events) == 1
        assert store.projects == {}
        assert store.scans == {}

    async def test_missing_event_header_is_noop(
        self, client: TestClient[Any, Any], store: MemoryStore
    ) -> None:
        resp = await client.post(
            _PATH, data=b"{}", headers={"Content-Type": "application/json"}
        )
        assert resp.status == 200
        assert (await resp.json())["processed"] is False

    async def test_duplicate_delivery_replays(
        self, client: TestClient[Any, Any], store: MemoryStore, repository: dict[str, Any]
    ) -> None:
        body = _push(repository)
        first = await (await client.post(_PATH, data=body, headers=_headers("push"))).json()
        second = await (await client.post(_PATH, data=body, headers=_headers("push"))).json()
        assert second["duplicate"] is True
        assert second["scanId"] == first["scanId"]
        assert len(store.scans) == 1


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class _FailingScanStore(MemoryStore):
    async def create_scan_job(self, *args: Any, **kwargs: Any) -> Any:
        raise StorageError("scans table unavailable")


class _HangingScanStore(MemoryStore):
    async def create_scan_job(self, *args: Any, **kwargs: Any) -> Any:
        await asyncio.sleep(30)
        raise AssertionError("unreachable")


class _ExplodingStore(MemoryStore):
    async def find_or_create_project(self, *args: Any, **kwargs: Any) -> Any:
        raise RuntimeError("unexpected")


class TestErrors:
    async def test_invalid_json_returns_400(self, client: TestClient[Any, Any]) -> None:
        resp = await client.post(_PATH, data=b"not json", headers=_headers("push"))
        assert resp.status == 400
        data = await resp.json()
        assert data["error"] == "body is not valid JSON"
        assert datetime.fromisoformat(data["timestamp"]).tzinfo is not None

    async def test_missing_repository_returns_400(
        self, client: TestClient[Any, Any], store: MemoryStore
    ) -> None:
        body = json.dumps({"commits": [{"id": "x"}]}).encode()
        resp = await client.post(_PATH, data=body, headers=_headers("push"))
        assert resp.status == 400
        assert "repository" in (await resp.json())["error"]
        assert store.scans == {}

    async def test_body_too_large_returns_413(self, client: TestClient[Any, Any]) -> None:
        body = b'{"pad": "' + b"x" * (128 * 1024) + b'"}'
        resp = await client.post(_PATH, data=body, headers=_headers("push"))
        assert resp.status == 413

    async def test_storage_failure_returns_500(self, repository: dict[str, Any]) -> None:
        store = _FailingScanStore()
        client = await _client(_make_config(), store)
        try:
            resp = await client.post(_PATH, data=_push(repository), headers=_headers("push"))
            assert resp.status == 500
            data = await resp.json()
            assert data["error"] == "Webhook processing failed"
            assert "timestamp" in data
            assert next(iter(store.events.values())).status is ProcessingStatus.FAILED
        finally:
            await client.close()

    async def test_unexpected_error_returns_500(self, repository: dict[str, Any]) -> None:
        client = await _client(_make_config(), _ExplodingStore())
        try:
            resp = await client.post(_PATH, data=_push(repository), headers=_headers("push"))
            assert resp.status == 500
            assert (await resp.json())["error"] == "Webhook processing failed"
        finally:
            await client.close()

    async def test_deadline_fails_closed(self, repository: dict[str, Any]) -> None:
        store = _HangingScanStore()
        config = _make_config()
        config.server.request_timeout_seconds = 0.1
        client = await _client(config, store)
        try:
            resp = await client.post(_PATH, data=_push(repository), headers=_headers("push"))
            assert resp.status == 500
            assert (await resp.json())["error"] == "Webhook processing timed out"
            record = next(iter(store.events.values()))
            assert record.status is ProcessingStatus.FAILED
            assert record.error_message == "request timed out"
        finally:
            await client.close()
