"""Project registry: maps a repository to its internal project record."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from scanhook.models import Project, ProjectDraft

if TYPE_CHECKING:
    from scanhook.store.base import Store
    from scanhook.webhook.payloads import RepositoryInfo

logger = logging.getLogger(__name__)

FRAMEWORK_TAG = "github"


def draft_for(repository: RepositoryInfo, *, auto_registered: bool = False) -> ProjectDraft:
    """Field values for a project created from *repository*."""
    metadata: dict[str, object] = {}
    if auto_registered:
        metadata = {"auto_registered": True, "github_full_name": repository.full_name}
    return ProjectDraft(
        name=repository.name,
        description=f"GitHub repository: {repository.full_name}",
        path=repository.html_url,
        framework=FRAMEWORK_TAG,
        metadata=metadata,
    )


class ProjectResolver:
    """Find-or-create projects by repository name.

    Name is the join key. Creation goes through the store's atomic
    insert-if-absent, so concurrent first deliveries for one repository
    end up with a single project.
    """

    def __init__(self, store: Store) -> None:
        self._store = store

    async def resolve(self, repository: RepositoryInfo) -> Project:
        """Return the project for *repository*, creating it on first sight."""
        project, created = await self._store.find_or_create_project(draft_for(repository))
        if created:
            logger.info("Project created: %s (id=%s)", project.name, project.id)
        else:
            logger.debug("Project resolved: %s (id=%s)", project.name, project.id)
        return project

    async def register(self, repository: RepositoryInfo) -> tuple[Project, bool]:
        """Register a newly created repository. Returns ``(project, created)``."""
        project, created = await self._store.find_or_create_project(
            draft_for(repository, auto_registered=True)
        )
        if created:
            logger.info("Repository registered: %s (id=%s)", repository.full_name, project.id)
        else:
            logger.info("Repository already registered: %s", repository.full_name)
        return project, created
