"""Tests for the exception hierarchy."""

from scanhook.errors import (
    AuthenticationError,
    ConfigError,
    MalformedPayloadError,
    ScanhookError,
    StorageError,
    WebhookError,
)


def test_base_error_is_exception() -> None:
    assert issubclass(ScanhookError, Exception)


def test_authentication_error_is_webhook_error() -> None:
    err = AuthenticationError("invalid signature")
    assert isinstance(err, WebhookError)
    assert isinstance(err, ScanhookError)
    assert str(err) == "invalid signature"


def test_malformed_payload_is_webhook_error() -> None:
    assert isinstance(MalformedPayloadError("bad"), WebhookError)


def test_storage_error_is_not_webhook_error() -> None:
    assert not isinstance(StorageError("down"), WebhookError)


def test_catch_all_with_base() -> None:
    """All subclasses catchable via ScanhookError."""
    for cls in (ConfigError, StorageError, AuthenticationError, MalformedPayloadError):
        try:
            raise cls("test")
        except ScanhookError:
            pass
