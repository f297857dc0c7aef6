"""Outbound webhook rendering, delivery and digests."""

from jellyhook.webhooks.dispatcher import WebhookDispatcher
from jellyhook.webhooks.summary import MonthlySummary
from jellyhook.webhooks.template import compile_template

__all__ = ["MonthlySummary", "WebhookDispatcher", "compile_template"]
