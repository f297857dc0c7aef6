"""Playback analytics backed by SQLite, and the bus recorder that feeds it."""

from __future__ import annotations

from datetime import date, datetime, time, timezone
from pathlib import Path

import aiosqlite

from jellyhook.core.bus import Event, EventBus, EventType
from jellyhook.models import ContentKind, ContentStat, UsageStats
from jellyhook.utils.logging import get_logger

log = get_logger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS playback_activity (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    item_id TEXT NOT NULL,
    item_name TEXT,
    series_name TEXT,
    playback_duration INTEGER NOT NULL DEFAULT 0,
    activity_date TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_playback_activity_date
    ON playback_activity (activity_date);
"""

# Rows with a series name are episodes; everything else with a title is a movie
_TOP_QUERIES = {
    ContentKind.MOVIE: (
        "SELECT item_name AS title, "
        "COUNT(DISTINCT user_id) AS unique_viewers, "
        "SUM(playback_duration) / 60.0 AS total_minutes "
        "FROM playback_activity "
        "WHERE activity_date >= ? AND activity_date < ? "
        "AND item_name IS NOT NULL AND series_name IS NULL "
        "GROUP BY item_name, item_id "
        "ORDER BY total_minutes DESC "
        "LIMIT ?"
    ),
    ContentKind.SERIES: (
        "SELECT series_name AS title, "
        "COUNT(DISTINCT user_id) AS unique_viewers, "
        "SUM(playback_duration) / 60.0 AS total_minutes "
        "FROM playback_activity "
        "WHERE activity_date >= ? AND activity_date < ? "
        "AND series_name IS NOT NULL "
        "GROUP BY series_name "
        "ORDER BY total_minutes DESC "
        "LIMIT ?"
    ),
}


def _as_timestamp(value: date | datetime) -> str:
    if not isinstance(value, datetime):
        value = datetime.combine(value, time.min)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


class PlaybackAnalytics:
    """Aggregates over the playback activity log.

    Windows are half-open: ``start`` inclusive, ``end`` exclusive.
    """

    def __init__(self, db_path: Path) -> None:
        self._db_path = db_path
        self._db: aiosqlite.Connection | None = None

    async def start(self) -> None:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._db = await aiosqlite.connect(str(self._db_path))
        await self._db.executescript(_SCHEMA)
        await self._db.commit()

    async def stop(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None

    async def record_playback(
        self,
        activity_id: str,
        user_id: str,
        item_id: str,
        item_name: str | None,
        playback_duration: int,
        activity_date: datetime,
        series_name: str | None = None,
    ) -> None:
        """Upsert one playback row; duration is in seconds."""
        assert self._db is not None
        await self._db.execute(
            "INSERT INTO playback_activity "
            "(id, user_id, item_id, item_name, series_name, playback_duration, activity_date) "
            "VALUES (?, ?, ?, ?, ?, ?, ?) "
            "ON CONFLICT(id) DO UPDATE SET "
            "playback_duration = excluded.playback_duration, "
            "activity_date = excluded.activity_date",
            (
                activity_id,
                user_id,
                item_id,
                item_name,
                series_name,
                playback_duration,
                _as_timestamp(activity_date),
            ),
        )
        await self._db.commit()

    async def top_content(
        self,
        kind: ContentKind | str,
        start: date | datetime,
        end: date | datetime,
        limit: int = 5,
    ) -> list[ContentStat]:
        assert self._db is not None
        query = _TOP_QUERIES[ContentKind(kind)]
        cursor = await self._db.execute(
            query, (_as_timestamp(start), _as_timestamp(end), limit)
        )
        rows = await cursor.fetchall()
        return [
            ContentStat(
                title=row[0],
                unique_viewers=int(row[1] or 0),
                total_minutes=float(row[2] or 0.0),
            )
            for row in rows
        ]

    async def aggregate_stats(
        self, start: date | datetime, end: date | datetime
    ) -> UsageStats:
        assert self._db is not None
        cursor = await self._db.execute(
            "SELECT COUNT(DISTINCT user_id), COUNT(*), "
            "COALESCE(SUM(playback_duration), 0) / 3600.0 "
            "FROM playback_activity "
            "WHERE activity_date >= ? AND activity_date < ?",
            (_as_timestamp(start), _as_timestamp(end)),
        )
        row = await cursor.fetchone()
        if row is None:
            return UsageStats()
        return UsageStats(
            active_users=int(row[0] or 0),
            total_plays=int(row[1] or 0),
            total_hours=float(row[2] or 0.0),
        )


class PlaybackRecorder:
    """Bus subscriber that writes finished playbacks into the activity log.

    Expected ``playback_ended`` data: ``userId``, ``itemId``, ``itemName``,
    optional ``seriesName``, ``playbackDuration`` in seconds, and optional
    ``id`` and ``activityDate`` (ISO-8601). The event id and timestamp fill
    in for a missing ``id`` or ``activityDate``.
    """

    def __init__(self, analytics: PlaybackAnalytics) -> None:
        self._analytics = analytics

    def subscribe(self, bus: EventBus) -> None:
        bus.subscribe(EventType.PLAYBACK_ENDED, self.handle_event)

    async def handle_event(self, event: Event) -> None:
        data = event.data
        user_id = data.get("userId")
        item_id = data.get("itemId")
        if not user_id or not item_id:
            log.warning("playback_event_incomplete", event_id=event.id, keys=sorted(data))
            return

        try:
            duration = int(data.get("playbackDuration") or 0)
            raw_date = data.get("activityDate")
            activity_date = datetime.fromisoformat(raw_date) if raw_date else event.timestamp
        except (TypeError, ValueError) as e:
            log.warning("playback_event_invalid", event_id=event.id, error=str(e))
            return

        await self._analytics.record_playback(
            activity_id=str(data.get("id") or event.id),
            user_id=str(user_id),
            item_id=str(item_id),
            item_name=data.get("itemName"),
            series_name=data.get("seriesName"),
            playback_duration=duration,
            activity_date=activity_date,
        )
        log.debug("playback_recorded", item=data.get("itemName"), user_id=user_id)
