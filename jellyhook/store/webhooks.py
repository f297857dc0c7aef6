"""Webhook configuration store (SQLite) and the registry gateway over it."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import aiosqlite

from jellyhook.models import TriggerType, Webhook
from jellyhook.utils.logging import get_logger

log = get_logger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS webhooks (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    url TEXT NOT NULL,
    method TEXT NOT NULL DEFAULT 'POST',
    headers TEXT NOT NULL DEFAULT '{}',
    payload TEXT NOT NULL DEFAULT '{}',
    trigger_type TEXT NOT NULL,
    event_type TEXT,
    enabled INTEGER NOT NULL DEFAULT 1,
    last_triggered TEXT,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_webhooks_trigger
    ON webhooks (trigger_type, event_type, enabled);
"""

_COLUMNS = (
    "id, name, url, method, headers, payload, trigger_type, event_type, "
    "enabled, last_triggered, created_at"
)


def _parse_json_field(raw: Any) -> Any:
    """Decode a JSON text column; empty or NULL means an empty object."""
    if raw is None or raw == "":
        return {}
    if not isinstance(raw, str):
        return raw
    value = json.loads(raw)
    return {} if value is None else value


def _encode_json_field(value: Any) -> str:
    # Strings are stored verbatim so callers can persist pre-encoded templates
    if value is None:
        return "{}"
    if isinstance(value, str):
        return value
    return json.dumps(value)


def _row_to_webhook(row: aiosqlite.Row | tuple[Any, ...]) -> Webhook:
    (
        id_, name, url, method, raw_headers, raw_payload,
        trigger_type, event_type, enabled, last_triggered, created_at,
    ) = row

    headers: dict[str, str] = {}
    payload: Any = {}
    config_error: str | None = None
    try:
        parsed_headers = _parse_json_field(raw_headers)
        if not isinstance(parsed_headers, dict):
            raise ValueError("headers must be a JSON object")
        headers = {str(k): str(v) for k, v in parsed_headers.items()}
        payload = _parse_json_field(raw_payload)
    except ValueError as e:
        headers, payload = {}, {}
        config_error = str(e)

    return Webhook(
        id=id_,
        name=name,
        url=url,
        method=method or "POST",
        headers=headers,
        payload=payload,
        trigger_type=TriggerType(trigger_type),
        event_type=event_type,
        enabled=bool(enabled),
        last_triggered=datetime.fromisoformat(last_triggered) if last_triggered else None,
        created_at=datetime.fromisoformat(created_at) if created_at else None,
        config_error=config_error,
    )


class WebhookStore:
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

    async def add(
        self,
        name: str,
        url: str,
        trigger_type: TriggerType | str,
        event_type: str | None = None,
        method: str = "POST",
        headers: dict[str, str] | str | None = None,
        payload: Any = None,
        enabled: bool = True,
    ) -> Webhook:
        """Insert a webhook row and return it as loaded from the database."""
        assert self._db is not None
        trigger = TriggerType(trigger_type)
        if trigger is TriggerType.EVENT and not event_type:
            raise ValueError("Event webhooks require an event_type")
        if trigger is TriggerType.SCHEDULED:
            event_type = None

        now = datetime.now(timezone.utc).isoformat()
        cursor = await self._db.execute(
            "INSERT INTO webhooks "
            "(name, url, method, headers, payload, trigger_type, event_type, enabled, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                name,
                url,
                (method or "POST").upper(),
                _encode_json_field(headers),
                _encode_json_field(payload),
                trigger.value,
                event_type,
                int(enabled),
                now,
            ),
        )
        await self._db.commit()
        webhook = await self.get(cursor.lastrowid or 0)
        assert webhook is not None
        return webhook

    async def get(self, webhook_id: int) -> Webhook | None:
        """Fetch a webhook regardless of its enabled flag."""
        assert self._db is not None
        cursor = await self._db.execute(
            f"SELECT {_COLUMNS} FROM webhooks WHERE id = ?",
            (webhook_id,),
        )
        row = await cursor.fetchone()
        return _row_to_webhook(row) if row else None

    async def get_enabled(self, webhook_id: int) -> Webhook | None:
        assert self._db is not None
        cursor = await self._db.execute(
            f"SELECT {_COLUMNS} FROM webhooks WHERE id = ? AND enabled = 1",
            (webhook_id,),
        )
        row = await cursor.fetchone()
        return _row_to_webhook(row) if row else None

    async def list_enabled(
        self, trigger_type: TriggerType | str, event_type: str | None = None
    ) -> list[Webhook]:
        """List enabled webhooks of a trigger type, narrowed by event name for event triggers."""
        assert self._db is not None
        trigger = TriggerType(trigger_type)
        if trigger is TriggerType.EVENT:
            cursor = await self._db.execute(
                f"SELECT {_COLUMNS} FROM webhooks "
                "WHERE trigger_type = ? AND event_type = ? AND enabled = 1 ORDER BY id",
                (trigger.value, event_type),
            )
        else:
            cursor = await self._db.execute(
                f"SELECT {_COLUMNS} FROM webhooks "
                "WHERE trigger_type = ? AND enabled = 1 ORDER BY id",
                (trigger.value,),
            )
        rows = await cursor.fetchall()
        return [_row_to_webhook(row) for row in rows]

    async def list_all(self) -> list[Webhook]:
        assert self._db is not None
        cursor = await self._db.execute(f"SELECT {_COLUMNS} FROM webhooks ORDER BY id")
        rows = await cursor.fetchall()
        return [_row_to_webhook(row) for row in rows]

    async def set_enabled(self, webhook_id: int, enabled: bool) -> bool:
        assert self._db is not None
        cursor = await self._db.execute(
            "UPDATE webhooks SET enabled = ? WHERE id = ?",
            (int(enabled), webhook_id),
        )
        await self._db.commit()
        return cursor.rowcount > 0

    async def touch_last_triggered(self, webhook_id: int) -> None:
        assert self._db is not None
        await self._db.execute(
            "UPDATE webhooks SET last_triggered = ? WHERE id = ?",
            (datetime.now(timezone.utc).isoformat(), webhook_id),
        )
        await self._db.commit()


class WebhookRegistry:
    """Query adapter the dispatch engine uses to resolve webhooks."""

    def __init__(self, store: WebhookStore) -> None:
        self._store = store

    async def webhooks_for_event(self, event_type: str) -> list[Webhook]:
        return await self._store.list_enabled(TriggerType.EVENT, event_type)

    async def scheduled_webhooks(self) -> list[Webhook]:
        return await self._store.list_enabled(TriggerType.SCHEDULED)

    async def webhook_by_id(self, webhook_id: int) -> Webhook | None:
        return await self._store.get_enabled(webhook_id)

    async def record_delivery(self, webhook_id: int) -> None:
        try:
            await self._store.touch_last_triggered(webhook_id)
        except Exception:
            log.exception("record_delivery_failed", webhook_id=webhook_id)
