"""Tests for log redaction."""

from jellyhook.utils.logging import _filter_sensitive, redact


class TestRedaction:
    def test_chat_webhook_token_is_masked(self):
        url = "https://discord.com/api/webhooks/1234567890/AbC-def_123"
        assert redact(url) == "https://discord.com/api/webhooks/1234567890/***REDACTED***"

    def test_key_value_secrets_are_masked(self):
        assert "s3cr3t" not in redact("token=s3cr3t")
        assert "hunter2" not in redact("password: hunter2")

    def test_plain_text_untouched(self):
        assert redact("webhook_delivered") == "webhook_delivered"

    def test_processor_only_touches_strings(self):
        event_dict = {
            "event": "webhook_delivery_failed",
            "url": "https://discord.com/api/webhooks/1/abc",
            "status": 500,
        }
        result = _filter_sensitive(None, "error", event_dict)
        assert result["url"].endswith("/***REDACTED***")
        assert result["status"] == 500
