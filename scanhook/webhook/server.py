"""Webhook HTTP server: aiohttp-based ingress for GitHub deliveries."""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from aiohttp import web

from scanhook.errors import AuthenticationError, MalformedPayloadError, StorageError
from scanhook.log_context import set_log_context
from scanhook.webhook.pipeline import Delivery, WebhookPipeline

if TYPE_CHECKING:
    from scanhook.config import AppConfig
    from scanhook.store.base import Store

logger = logging.getLogger(__name__)

EVENT_HEADER = "X-GitHub-Event"
DELIVERY_HEADER = "X-GitHub-Delivery"
SIGNATURE_HEADER = "X-Hub-Signature-256"

CORS_HEADERS: dict[str, str] = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": (
        "authorization, x-client-info, apikey, content-type, "
        "x-github-delivery, x-github-event, x-hub-signature-256"
    ),
}


def error_response(message: str, status: int) -> web.Response:
    body = {"error": message, "timestamp": datetime.now(UTC).isoformat()}
    return web.json_response(body, status=status, headers=CORS_HEADERS)


class WebhookServer:
    """HTTP server accepting GitHub webhook deliveries.

    Routes:
    - ``GET     /health``        -- Health check for proxy monitoring.
    - ``POST    <webhook path>`` -- Delivery endpoint (also ``POST /``).
    - ``OPTIONS <webhook path>`` -- CORS preflight.
    """

    def __init__(self, config: AppConfig, store: Store) -> None:
        self._config = config
        self._store = store
        self._pipeline = WebhookPipeline(
            store,
            secret=config.webhook.secret,
            require_signature=config.webhook.require_signature,
            request_timeout=config.server.request_timeout_seconds,
        )
        self._runner: web.AppRunner | None = None

    def build_app(self) -> web.Application:
        """Create the aiohttp application with all routes registered."""
        server = self._config.server
        app = web.Application(client_max_size=server.max_body_bytes)
        app.router.add_get("/health", self._handle_health)
        paths = [server.path] if server.path == "/" else [server.path, "/"]
        for path in paths:
            app.router.add_post(path, self._handle_webhook)
            app.router.add_route("OPTIONS", path, self._handle_options)
        return app

    async def start(self) -> None:
        """Start listening on the configured host and port."""
        if not self._config.webhook.secret:
            logger.warning(
                "GITHUB_WEBHOOK_SECRET is not set: deliveries are accepted without "
                "signature verification"
            )
        elif not self._config.webhook.require_signature:
            logger.info("Unsigned deliveries are accepted (SCANHOOK_REQUIRE_SIGNATURE=false)")

        server = self._config.server
        self._runner = web.AppRunner(self.build_app(), access_log=None)
        await self._runner.setup()
        site = web.TCPSite(self._runner, server.host, server.port)
        await site.start()
        logger.info("Webhook server listening on %s:%d%s", server.host, server.port, server.path)

    async def stop(self) -> None:
        """Shut down the server and release the store."""
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
        await self._store.close()
        logger.info("Webhook server stopped")

    # -- Handlers --

    async def _handle_health(self, _request: web.Request) -> web.Response:
        return web.json_response({"status": "ok"})

    async def _handle_options(self, _request: web.Request) -> web.Response:
        return web.Response(text="ok", headers=CORS_HEADERS)

    async def _handle_webhook(self, request: web.Request) -> web.Response:
        event_name = request.headers.get(EVENT_HEADER)
        delivery_id = request.headers.get(DELIVERY_HEADER)
        set_log_context(operation="wh", delivery_id=delivery_id)
        logger.info("Webhook request received event=%s", event_name)

        try:
            async with asyncio.timeout(self._config.server.request_timeout_seconds):
                body = await request.read()
                outcome = await self._pipeline.process(
                    Delivery(
                        body=body,
                        event_name=event_name,
                        delivery_id=delivery_id,
                        signature=request.headers.get(SIGNATURE_HEADER),
                    )
                )
        except AuthenticationError:
            return web.Response(text="Invalid signature", status=401, headers=CORS_HEADERS)
        except MalformedPayloadError as exc:
            logger.warning("Webhook rejected: %s", exc)
            return error_response(str(exc), 400)
        except web.HTTPRequestEntityTooLarge:
            logger.warning("Webhook rejected: body too large")
            return error_response("Request body too large", 413)
        except TimeoutError:
            logger.error(
                "Webhook processing exceeded %.1fs", self._config.server.request_timeout_seconds
            )
            return error_response("Webhook processing timed out", 500)
        except StorageError as exc:
            logger.error("Webhook storage failure: %s", exc)
            return error_response("Webhook processing failed", 500)
        except Exception:
            logger.exception("Webhook error")
            return error_response("Webhook processing failed", 500)

        return web.json_response(outcome.to_dict(), headers=CORS_HEADERS)

    def describe(self) -> dict[str, Any]:
        """Summary of the effective settings, used by the CLI banner."""
        server = self._config.server
        return {
            "listen": f"{server.host}:{server.port}",
            "path": server.path,
            "storage": self._config.storage.backend,
            "signatures": "verified" if self._config.webhook.secret else "not verified",
        }
