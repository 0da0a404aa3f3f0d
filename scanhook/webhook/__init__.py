"""Webhook system: HTTP ingress for GitHub repository events."""

from scanhook.webhook.pipeline import Delivery, WebhookPipeline
from scanhook.webhook.router import EventRouter
from scanhook.webhook.server import WebhookServer

__all__ = ["Delivery", "EventRouter", "WebhookPipeline", "WebhookServer"]
