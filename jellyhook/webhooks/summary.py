"""Monthly activity digest delivered to scheduled webhooks."""

from __future__ import annotations

import asyncio
import math
from datetime import date, timedelta
from typing import Any

from jellyhook.config import SummaryConfig
from jellyhook.models import ContentKind, ContentStat, Period, SummaryDigest, UsageStats
from jellyhook.store.analytics import PlaybackAnalytics
from jellyhook.store.webhooks import WebhookRegistry
from jellyhook.utils.logging import get_logger
from jellyhook.webhooks.delivery import JSON_HEADERS
from jellyhook.webhooks.dispatcher import WebhookDispatcher

log = get_logger(__name__)

MOVIES_COLOR = 15844367
SERIES_COLOR = 5793266
STATS_COLOR = 5763719


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def previous_month(today: date) -> tuple[Period, date]:
    """Return the previous calendar month and the first day of ``today``'s month.

    The analytics window is ``[period.start, window_end)``.
    """
    window_end = today.replace(day=1)
    end = window_end - timedelta(days=1)
    start = end.replace(day=1)
    return Period(start=start, end=end, label=start.strftime("%B %Y")), window_end


def _us_date(value: date) -> str:
    return f"{value.month}/{value.day}/{value.year}"


def _content_fields(items: list[ContentStat], empty_text: str) -> list[dict[str, Any]]:
    if not items:
        return [{"name": "No data", "value": empty_text}]
    return [
        {
            "name": f"{rank}. {item.title}",
            "value": f"{round_half_up(item.total_minutes)} minutes • {item.unique_viewers} viewers",
            "inline": False,
        }
        for rank, item in enumerate(items, start=1)
    ]


def render_payload(digest: SummaryDigest) -> dict[str, Any]:
    """Render a digest as a chat message with one embed per section."""
    stats = digest.stats
    return {
        "content": f"📊 **Monthly Report - {digest.period.label}**",
        "embeds": [
            {
                "title": "🎬 Most Watched Movies",
                "color": MOVIES_COLOR,
                "fields": _content_fields(digest.top_movies, "No movies watched this month"),
            },
            {
                "title": "📺 Most Watched Series",
                "color": SERIES_COLOR,
                "fields": _content_fields(digest.top_series, "No series watched this month"),
            },
            {
                "title": "📈 General Statistics",
                "color": STATS_COLOR,
                "fields": [
                    {"name": "Active Users", "value": str(stats.active_users), "inline": True},
                    {"name": "Total Plays", "value": str(stats.total_plays), "inline": True},
                    {
                        "name": "Total Hours Watched",
                        "value": str(round_half_up(stats.total_hours)),
                        "inline": True,
                    },
                ],
                "footer": {
                    "text": (
                        f"Period: from {_us_date(digest.period.start)} "
                        f"to {_us_date(digest.period.end)}"
                    ),
                },
            },
        ],
    }


class MonthlySummary:
    def __init__(
        self,
        registry: WebhookRegistry,
        analytics: PlaybackAnalytics,
        dispatcher: WebhookDispatcher,
        config: SummaryConfig,
    ) -> None:
        self._registry = registry
        self._analytics = analytics
        self._dispatcher = dispatcher
        self._config = config

    async def build_digest(self, today: date | None = None) -> SummaryDigest:
        period, window_end = previous_month(today or date.today())
        limit = self._config.top_limit

        top_movies = await self._analytics.top_content(
            ContentKind.MOVIE, period.start, window_end, limit
        )
        top_series = await self._analytics.top_content(
            ContentKind.SERIES, period.start, window_end, limit
        )
        stats = await self._analytics.aggregate_stats(period.start, window_end)

        return SummaryDigest(
            period=period,
            top_movies=top_movies,
            top_series=top_series,
            stats=stats or UsageStats(),
        )

    async def trigger_summary_webhook(self, webhook_id: int, today: date | None = None) -> bool:
        try:
            webhook = await self._registry.webhook_by_id(webhook_id)
        except Exception:
            log.exception("summary_webhook_lookup_failed", webhook_id=webhook_id)
            return False

        if webhook is None:
            log.error("summary_webhook_not_found", webhook_id=webhook_id)
            return False

        try:
            digest = await self.build_digest(today)
            payload = render_payload(digest)
        except Exception:
            log.exception("summary_build_failed", webhook=webhook.name)
            return False

        sent = await self._dispatcher.deliver(webhook, dict(JSON_HEADERS), payload)
        if sent:
            log.info("summary_sent", webhook=webhook.name, period=digest.period.label)
        return sent

    async def trigger_scheduled_webhooks(self, today: date | None = None) -> dict[int, bool]:
        """Send the digest to every enabled scheduled webhook."""
        webhooks = await self._registry.scheduled_webhooks()
        if not webhooks:
            log.info("no_scheduled_webhooks")
            return {}
        results = await asyncio.gather(
            *(self.trigger_summary_webhook(w.id, today) for w in webhooks)
        )
        return {w.id: ok for w, ok in zip(webhooks, results)}
