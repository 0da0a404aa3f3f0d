"""Typed views over GitHub webhook payloads.

Only the fields the handlers read are modelled; everything else in the
payload is ignored and stays available in the raw audit copy.
"""

from __future__ import annotations

from typing import Any, TypeVar

from pydantic import BaseModel, Field, ValidationError

from scanhook.errors import MalformedPayloadError

_M = TypeVar("_M", bound=BaseModel)


class RepositoryInfo(BaseModel):
    name: str
    full_name: str
    html_url: str = ""


class CommitAuthor(BaseModel):
    name: str = ""
    email: str = ""


class Commit(BaseModel):
    id: str
    message: str = ""
    author: CommitAuthor = Field(default_factory=CommitAuthor)


class _LegacyPush(BaseModel):
    commits: list[Commit] = Field(default_factory=list)


class PushPayload(BaseModel):
    repository: RepositoryInfo
    ref: str = ""
    after: str = ""
    commits: list[Commit] = Field(default_factory=list)
    push: _LegacyPush | None = None

    def all_commits(self) -> list[Commit]:
        """Commits in delivery order, accepting the nested ``push.commits`` shape too."""
        if self.commits:
            return self.commits
        return self.push.commits if self.push is not None else []


class PullRequestHead(BaseModel):
    sha: str
    ref: str


class PullRequestInfo(BaseModel):
    number: int
    title: str = ""
    html_url: str = ""
    head: PullRequestHead


class PullRequestPayload(BaseModel):
    action: str
    repository: RepositoryInfo
    pull_request: PullRequestInfo | None = None


class RepositoryEventPayload(BaseModel):
    action: str
    repository: RepositoryInfo


class PingPayload(BaseModel):
    zen: str = ""
    hook_id: int | None = None


def parse_payload(model: type[_M], payload: dict[str, Any]) -> _M:
    """Validate *payload* as *model*, raising `MalformedPayloadError` on failure.

    The error message names the offending fields but never echoes their values.
    """
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        fields = sorted({".".join(str(p) for p in err["loc"]) or "body" for err in exc.errors()})
        msg = f"malformed {model.__name__}: invalid or missing {', '.join(fields)}"
        raise MalformedPayloadError(msg) from exc


def envelope_fields(payload: dict[str, Any]) -> tuple[str | None, str | None]:
    """Best-effort ``(repository full name, sender login)`` for the audit row."""
    repository = payload.get("repository")
    sender = payload.get("sender")
    full_name = repository.get("full_name") if isinstance(repository, dict) else None
    login = sender.get("login") if isinstance(sender, dict) else None
    return (
        full_name if isinstance(full_name, str) else None,
        login if isinstance(login, str) else None,
    )
