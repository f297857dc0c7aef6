"""Event-driven webhook dispatch.

Resolves the webhooks registered for an event, renders each payload and
delivers them concurrently. Every webhook is delivered in isolation: a bad
template, a timeout or a dead endpoint only fails that one webhook.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any

import httpx

from jellyhook.config import DeliveryConfig
from jellyhook.core.bus import Event, EventBus, EventType
from jellyhook.models import Webhook
from jellyhook.store.webhooks import WebhookRegistry
from jellyhook.utils.logging import get_logger
from jellyhook.webhooks.delivery import JSON_HEADERS, HttpSender, is_chat_webhook, is_success
from jellyhook.webhooks.template import compile_template

log = get_logger(__name__)

_BODY_LOG_LIMIT = 500


def enrich_event_data(event_type: str, data: dict[str, Any] | None) -> dict[str, Any]:
    """Add ``event`` and ``triggeredAt`` and expose the raw data under ``data``."""
    data = dict(data or {})
    enriched: dict[str, Any] = {**data}
    enriched.setdefault("data", data)
    enriched["event"] = event_type
    enriched["triggeredAt"] = datetime.now(timezone.utc).isoformat()
    return enriched


class WebhookDispatcher:
    def __init__(
        self,
        registry: WebhookRegistry,
        sender: HttpSender,
        config: DeliveryConfig,
    ) -> None:
        self._registry = registry
        self._sender = sender
        self._config = config

    # ------------------------------------------------------------------
    # Bus wiring
    # ------------------------------------------------------------------

    def subscribe(self, bus: EventBus) -> None:
        for event_type in EventType:
            bus.subscribe(event_type, self.handle_event)

    async def handle_event(self, event: Event) -> None:
        await self.trigger_event_webhooks(event.name, event.data)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def trigger_event_webhooks(
        self, event_type: str, data: dict[str, Any] | None = None
    ) -> bool:
        """Deliver every webhook registered for ``event_type``.

        Returns False only when the webhooks could not be resolved;
        individual delivery failures are logged, not reported.
        """
        try:
            webhooks = await self._registry.webhooks_for_event(event_type)
            if not webhooks:
                log.info("no_webhooks_registered", event_type=event_type)
                return True

            log.info("triggering_webhooks", event_type=event_type, count=len(webhooks))
            enriched = enrich_event_data(event_type, data)
        except Exception:
            log.exception("webhook_resolution_failed", event_type=event_type)
            return False

        # Launch everything before awaiting anything
        tasks = [
            asyncio.create_task(
                self.execute_webhook(webhook, enriched),
                name=f"webhook-{webhook.id}",
            )
            for webhook in webhooks
        ]
        results = await asyncio.gather(*tasks, return_exceptions=True)

        delivered = 0
        for webhook, result in zip(webhooks, results):
            if isinstance(result, BaseException):
                log.error(
                    "webhook_delivery_crashed",
                    webhook=webhook.name,
                    error=repr(result),
                )
            elif result:
                delivered += 1
        log.info(
            "webhooks_dispatched",
            event_type=event_type,
            delivered=delivered,
            failed=len(webhooks) - delivered,
        )
        return True

    async def execute_webhook(self, webhook: Webhook, data: dict[str, Any]) -> bool:
        """Deliver one webhook. Chat endpoints get the stored payload untouched."""
        if webhook.config_error:
            log.error(
                "webhook_config_invalid",
                webhook=webhook.name,
                webhook_id=webhook.id,
                error=webhook.config_error,
            )
            return False

        try:
            if is_chat_webhook(webhook.url, self._config.chat_marker):
                log.debug("chat_webhook_detected", webhook=webhook.name)
                headers = dict(JSON_HEADERS)
                body = webhook.payload
            else:
                headers = dict(webhook.headers)
                body = compile_template(webhook.payload, data)
        except Exception:
            log.exception("webhook_render_failed", webhook=webhook.name)
            return False

        return await self.deliver(webhook, headers, body)

    async def deliver(self, webhook: Webhook, headers: dict[str, str], body: Any) -> bool:
        """Send one request and record the delivery if the call came back."""
        try:
            response = await self._sender.send(webhook.http_method, webhook.url, headers, body)
        except httpx.HTTPError as e:
            log.error(
                "webhook_delivery_failed",
                webhook=webhook.name,
                url=webhook.url,
                error_type=type(e).__name__,
                error=str(e),
            )
            return False
        except Exception:
            log.exception("webhook_delivery_error", webhook=webhook.name)
            return False

        if not is_success(response):
            log.warning(
                "webhook_non_success_status",
                webhook=webhook.name,
                status=response.status_code,
                body=response.text[:_BODY_LOG_LIMIT],
            )
            if self._config.non_2xx_is_failure:
                return False
        else:
            log.info("webhook_delivered", webhook=webhook.name, status=response.status_code)

        await self._registry.record_delivery(webhook.id)
        return True
