"""Tests for domain records and enumerations."""

from __future__ import annotations

import pytest

from scanhook.models import EventType, HandlerOutcome, ProcessingStatus


class TestEventType:
    @pytest.mark.parametrize(
        ("header", "expected"),
        [
            ("push", EventType.PUSH),
            ("pull_request", EventType.PULL_REQUEST),
            ("repository", EventType.REPOSITORY),
            ("ping", EventType.PING),
            ("Push", EventType.PUSH),
        ],
    )
    def test_known_headers(self, header: str, expected: EventType) -> None:
        assert EventType.from_header(header) is expected

    @pytest.mark.parametrize("header", ["star", "issues", "", None, "other-thing"])
    def test_unknown_headers_map_to_other(self, header: str | None) -> None:
        assert EventType.from_header(header) is EventType.OTHER


class TestHandlerOutcome:
    def test_to_dict_flattens_fields(self) -> None:
        outcome = HandlerOutcome("ok", processed=True, fields={"scanId": "s1", "commits": 2})
        assert outcome.to_dict() == {
            "message": "ok",
            "processed": True,
            "scanId": "s1",
            "commits": 2,
        }

    def test_from_dict_inverts_to_dict(self) -> None:
        data = {"message": "Pull request scan queued", "processed": True, "prNumber": 7}
        assert HandlerOutcome.from_dict(data).to_dict() == data

    def test_from_dict_defaults(self) -> None:
        outcome = HandlerOutcome.from_dict({})
        assert outcome.message == ""
        assert outcome.processed is False
        assert outcome.fields == {}


class TestProcessingStatus:
    def test_finished_states(self) -> None:
        assert ProcessingStatus.PROCESSED.finished
        assert ProcessingStatus.IGNORED.finished
        assert not ProcessingStatus.RECEIVED.finished
        assert not ProcessingStatus.FAILED.finished
