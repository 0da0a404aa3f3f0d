"""Tests for the project resolver."""

from __future__ import annotations

import asyncio
from typing import Any

from scanhook.projects import ProjectResolver, draft_for
from scanhook.store.memory import MemoryStore
from scanhook.webhook.payloads import RepositoryInfo


class TestDraftFor:
    def test_plain_draft(self, repository: dict[str, Any]) -> None:
        draft = draft_for(RepositoryInfo(**repository))
        assert draft.name == "widget"
        assert draft.description == "GitHub repository: acme/widget"
        assert draft.path == "https://github.com/acme/widget"
        assert draft.framework == "github"
        assert draft.metadata == {}

    def test_auto_registered_metadata(self, repository: dict[str, Any]) -> None:
        draft = draft_for(RepositoryInfo(**repository), auto_registered=True)
        assert draft.metadata == {"auto_registered": True, "github_full_name": "acme/widget"}


class TestProjectResolver:
    async def test_resolve_creates_then_reuses(
        self, store: MemoryStore, repository: dict[str, Any]
    ) -> None:
        resolver = ProjectResolver(store)
        first = await resolver.resolve(RepositoryInfo(**repository))
        second = await resolver.resolve(RepositoryInfo(**repository))
        assert first.id == second.id
        assert len(store.projects) == 1

    async def test_concurrent_resolve_single_project(
        self, store: MemoryStore, repository: dict[str, Any]
    ) -> None:
        resolver = ProjectResolver(store)
        projects = await asyncio.gather(
            *(resolver.resolve(RepositoryInfo(**repository)) for _ in range(5))
        )
        assert len({p.id for p in projects}) == 1
        assert len(store.projects) == 1

    async def test_register_reports_creation(
        self, store: MemoryStore, repository: dict[str, Any]
    ) -> None:
        resolver = ProjectResolver(store)
        project, created = await resolver.register(RepositoryInfo(**repository))
        assert created is True
        assert project.metadata["auto_registered"] is True
        _, created_again = await resolver.register(RepositoryInfo(**repository))
        assert created_again is False

    async def test_register_after_resolve_keeps_existing(
        self, store: MemoryStore, repository: dict[str, Any]
    ) -> None:
        resolver = ProjectResolver(store)
        existing = await resolver.resolve(RepositoryInfo(**repository))
        project, created = await resolver.register(RepositoryInfo(**repository))
        assert created is False
        assert project.id == existing.id
        assert project.metadata == {}

    async def test_same_name_other_owner_is_same_project(self, store: MemoryStore) -> None:
        resolver = ProjectResolver(store)
        a = await resolver.resolve(
            RepositoryInfo(name="widget", full_name="acme/widget", html_url="https://a")
        )
        b = await resolver.resolve(
            RepositoryInfo(name="widget", full_name="other/widget", html_url="https://b")
        )
        assert a.id == b.id
        assert a.path == "https://a"
