"""Project-level exception hierarchy."""


class ScanhookError(Exception):
    """Base for all scanhook exceptions."""


class ConfigError(ScanhookError):
    """Environment configuration is missing or invalid."""


class StorageError(ScanhookError):
    """A call against the backing store failed."""


class WebhookError(ScanhookError):
    """Webhook request could not be accepted."""


class AuthenticationError(WebhookError):
    """Delivery signature did not match the configured secret."""


class MalformedPayloadError(WebhookError):
    """Request body is not the structure the event type requires."""
