"""HTTP ingress using aiohttp: event publication and summary triggers."""

from __future__ import annotations

from typing import Any

from aiohttp import web

from jellyhook.config import ServerConfig
from jellyhook.core.bus import Event, EventBus
from jellyhook.utils.logging import get_logger
from jellyhook.webhooks.summary import MonthlySummary

log = get_logger(__name__)


class IngressServer:
    """Accepts events from the media-server side and publishes them to the bus."""

    def __init__(
        self,
        config: ServerConfig,
        bus: EventBus,
        summary: MonthlySummary,
    ) -> None:
        self._config = config
        self._bus = bus
        self._summary = summary
        self._runner: web.AppRunner | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        app = self.build_app()
        self._runner = web.AppRunner(app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self._config.bind, self._config.port)
        await site.start()
        log.info("ingress_server_started", bind=self._config.bind, port=self._config.port)

    async def stop(self) -> None:
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
        log.info("ingress_server_stopped")

    # ------------------------------------------------------------------
    # App construction
    # ------------------------------------------------------------------

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/health", self._handle_health)
        app.router.add_post("/events/{name}", self._handle_event)
        app.router.add_post("/webhooks/{webhook_id}/summary", self._handle_summary)
        return app

    # ------------------------------------------------------------------
    # Request handling
    # ------------------------------------------------------------------

    async def _handle_health(self, request: web.Request) -> web.Response:
        return web.json_response({"status": "ok"})

    async def _handle_event(self, request: web.Request) -> web.Response:
        name = request.match_info["name"]

        if request.can_read_body:
            try:
                data: Any = await request.json()
            except ValueError:
                return web.Response(status=400, text="Invalid JSON")
        else:
            data = {}

        if not isinstance(data, dict):
            return web.Response(status=400, text="Event data must be a JSON object")

        event = Event(name=name, data=data)
        await self._bus.publish(event)
        log.info("event_accepted", event_name=name, event_id=event.id)

        return web.json_response({"accepted": True, "id": event.id}, status=202)

    async def _handle_summary(self, request: web.Request) -> web.Response:
        try:
            webhook_id = int(request.match_info["webhook_id"])
        except ValueError:
            return web.Response(status=400, text="Invalid webhook id")

        success = await self._summary.trigger_summary_webhook(webhook_id)
        return web.json_response({"success": success}, status=200 if success else 502)
