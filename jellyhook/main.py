"""jellyhook entry point: wires the stores, bus and dispatcher together."""

from __future__ import annotations

import asyncio
import json
import signal
import sys
from typing import Any

import click

from jellyhook import __version__
from jellyhook.config import Settings, load_settings
from jellyhook.core.bus import EventBus
from jellyhook.models import TriggerType
from jellyhook.server import IngressServer
from jellyhook.store.analytics import PlaybackAnalytics, PlaybackRecorder
from jellyhook.store.webhooks import WebhookRegistry, WebhookStore
from jellyhook.utils.logging import get_logger, setup_logging
from jellyhook.webhooks.delivery import HttpSender
from jellyhook.webhooks.dispatcher import WebhookDispatcher
from jellyhook.webhooks.summary import MonthlySummary

log = get_logger(__name__)


class App:
    """Main application orchestrator.

    Owns the single event bus for the process; producers and the dispatcher
    receive it from here.
    """

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        db_path = settings.get_database_path()

        self.bus = EventBus(
            max_queue_size=settings.bus.max_queue_size,
            workers=settings.bus.workers,
        )
        self.store = WebhookStore(db_path)
        self.analytics = PlaybackAnalytics(db_path)
        self.recorder = PlaybackRecorder(self.analytics)
        self.registry = WebhookRegistry(self.store)
        self.sender = HttpSender(settings.delivery)
        self.dispatcher = WebhookDispatcher(self.registry, self.sender, settings.delivery)
        self.summary = MonthlySummary(
            self.registry, self.analytics, self.dispatcher, settings.summary
        )
        self.server = IngressServer(settings.server, self.bus, self.summary)

    async def open(self) -> None:
        await self.store.start()
        await self.analytics.start()

    async def close(self) -> None:
        await self.sender.close()
        await self.analytics.stop()
        await self.store.stop()

    async def start(self) -> None:
        log.info("jellyhook_starting", version=__version__)
        await self.open()
        self.dispatcher.subscribe(self.bus)
        self.recorder.subscribe(self.bus)
        await self.bus.start()
        if self.settings.server.enabled:
            await self.server.start()
        log.info("jellyhook_ready")

    async def stop(self) -> None:
        log.info("jellyhook_stopping")
        await self.server.stop()
        await self.bus.stop()
        await self.close()
        log.info("jellyhook_stopped")


async def run(settings: Settings) -> None:
    app = App(settings)

    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()

    def _signal_handler() -> None:
        log.info("shutdown_signal")
        stop_event.set()

    if sys.platform != "win32":
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, _signal_handler)

    try:
        await app.start()
        if sys.platform == "win32":
            while not stop_event.is_set():
                await asyncio.sleep(1)
        else:
            await stop_event.wait()
    except KeyboardInterrupt:
        pass
    finally:
        await app.stop()


async def run_summary(settings: Settings, webhook_id: int | None) -> bool:
    app = App(settings)
    await app.open()
    try:
        if webhook_id is not None:
            return await app.summary.trigger_summary_webhook(webhook_id)
        results = await app.summary.trigger_scheduled_webhooks()
        return all(results.values())
    finally:
        await app.close()


async def add_webhook(settings: Settings, **fields: Any) -> dict[str, Any]:
    store = WebhookStore(settings.get_database_path())
    await store.start()
    try:
        webhook = await store.add(**fields)
        return {"id": webhook.id, "name": webhook.name}
    finally:
        await store.stop()


async def list_webhooks(settings: Settings) -> list[dict[str, Any]]:
    store = WebhookStore(settings.get_database_path())
    await store.start()
    try:
        return [
            {
                "id": w.id,
                "name": w.name,
                "trigger": w.trigger_type.value,
                "event": w.event_type,
                "enabled": w.enabled,
                "last_triggered": w.last_triggered.isoformat() if w.last_triggered else None,
            }
            for w in await store.list_all()
        ]
    finally:
        await store.stop()


def _json_option(value: str | None, name: str) -> Any:
    if value is None:
        return None
    try:
        return json.loads(value)
    except ValueError as e:
        raise click.BadParameter(f"invalid JSON: {e}", param_hint=name) from e


@click.group()
@click.option("--config", "config_path", default=None, help="Path to config YAML file")
@click.option("--log-level", default=None, help="Log level (DEBUG, INFO, WARNING, ERROR)")
@click.pass_context
def cli(ctx: click.Context, config_path: str | None, log_level: str | None) -> None:
    """jellyhook: webhook notifications for media-server activity."""
    settings = load_settings(config_path)
    if log_level:
        settings.log_level = log_level
    setup_logging(level=settings.log_level, json_output=settings.log_json)
    ctx.obj = settings


@cli.command()
@click.pass_obj
def serve(settings: Settings) -> None:
    """Run the event bus, dispatcher and HTTP ingress until interrupted."""
    asyncio.run(run(settings))


@cli.command()
@click.option("--webhook-id", type=int, default=None, help="Send the digest to one webhook")
@click.option("--all", "send_all", is_flag=True, help="Send to every scheduled webhook")
@click.pass_obj
def summary(settings: Settings, webhook_id: int | None, send_all: bool) -> None:
    """Send last month's activity digest (run from cron)."""
    if (webhook_id is None) == (not send_all):
        raise click.UsageError("Pass exactly one of --webhook-id or --all")
    ok = asyncio.run(run_summary(settings, webhook_id))
    if not ok:
        sys.exit(1)


@cli.command("add-webhook")
@click.option("--name", required=True)
@click.option("--url", required=True)
@click.option(
    "--trigger",
    "trigger_type",
    type=click.Choice([t.value for t in TriggerType]),
    default=TriggerType.EVENT.value,
)
@click.option("--event-type", default=None, help="Event name for event-triggered webhooks")
@click.option("--method", default="POST")
@click.option("--headers", default=None, help="JSON object of request headers")
@click.option("--payload", default=None, help="JSON payload template")
@click.option("--disabled", is_flag=True)
@click.pass_obj
def add_webhook_cmd(
    settings: Settings,
    name: str,
    url: str,
    trigger_type: str,
    event_type: str | None,
    method: str,
    headers: str | None,
    payload: str | None,
    disabled: bool,
) -> None:
    """Register a webhook."""
    try:
        result = asyncio.run(add_webhook(
            settings,
            name=name,
            url=url,
            trigger_type=trigger_type,
            event_type=event_type,
            method=method,
            headers=_json_option(headers, "--headers"),
            payload=_json_option(payload, "--payload"),
            enabled=not disabled,
        ))
    except ValueError as e:
        raise click.UsageError(str(e)) from e
    click.echo(json.dumps(result))


@cli.command("list-webhooks")
@click.pass_obj
def list_webhooks_cmd(settings: Settings) -> None:
    """List registered webhooks."""
    for row in asyncio.run(list_webhooks(settings)):
        click.echo(json.dumps(row))


if __name__ == "__main__":
    cli()
