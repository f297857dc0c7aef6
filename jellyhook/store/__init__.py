"""SQLite-backed stores for webhook configuration and playback analytics."""

from jellyhook.store.analytics import PlaybackAnalytics, PlaybackRecorder
from jellyhook.store.webhooks import WebhookRegistry, WebhookStore

__all__ = ["PlaybackAnalytics", "PlaybackRecorder", "WebhookRegistry", "WebhookStore"]
