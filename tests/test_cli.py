"""Tests for the command-line entry point."""

import json
from datetime import date

import pytest
import yaml
from click.testing import CliRunner

from jellyhook.core.bus import Event, EventType
from jellyhook.main import App, cli, run
from jellyhook.server import IngressServer
from jellyhook.config import Settings


@pytest.fixture(autouse=True)
def quiet_logging(monkeypatch):
    monkeypatch.setattr("jellyhook.main.setup_logging", lambda **kwargs: None)


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump({"database": str(tmp_path / "cli.db")}))
    return str(path)


class TestCli:
    def test_add_and_list_webhooks(self, config_file):
        runner = CliRunner()
        result = runner.invoke(cli, [
            "--config", config_file, "add-webhook",
            "--name", "notify",
            "--url", "https://hooks.example.com/a",
            "--event-type", "playback_started",
            "--payload", '{"user": "{{userName}}"}',
        ])
        assert result.exit_code == 0, result.output
        created = [json.loads(line) for line in result.output.splitlines() if line.startswith("{")][-1]
        assert created["name"] == "notify"

        result = runner.invoke(cli, ["--config", config_file, "list-webhooks"])
        assert result.exit_code == 0, result.output
        rows = [json.loads(line) for line in result.output.strip().splitlines() if line.startswith("{")]
        assert rows[0]["name"] == "notify"
        assert rows[0]["trigger"] == "event"
        assert rows[0]["event"] == "playback_started"

    def test_add_event_webhook_without_event_type(self, config_file):
        result = CliRunner().invoke(cli, [
            "--config", config_file, "add-webhook",
            "--name", "bad", "--url", "https://x",
        ])
        assert result.exit_code != 0

    def test_add_webhook_invalid_json(self, config_file):
        result = CliRunner().invoke(cli, [
            "--config", config_file, "add-webhook",
            "--name", "bad", "--url", "https://x",
            "--trigger", "scheduled", "--headers", "{nope",
        ])
        assert result.exit_code != 0

    def test_summary_requires_one_target(self, config_file):
        result = CliRunner().invoke(cli, ["--config", config_file, "summary"])
        assert result.exit_code != 0

    def test_summary_unknown_webhook_exits_nonzero(self, config_file):
        result = CliRunner().invoke(cli, ["--config", config_file, "summary", "--webhook-id", "7"])
        assert result.exit_code == 1


class TestApp:
    async def test_start_wires_dispatcher_to_bus(self, tmp_path):
        settings = Settings(database=str(tmp_path / "app.db"))
        settings.server.enabled = False
        app = App(settings)
        await app.start()
        try:
            assert app.bus.running
            assert app.bus.subscriptions("playback_started") == 1
            assert app.bus.subscriptions("media_recently_added") == 1
            assert app.bus.subscriptions("playback_ended") == 2
        finally:
            await app.stop()

    async def test_published_playback_reaches_digest(self, tmp_path):
        settings = Settings(database=str(tmp_path / "app.db"))
        settings.server.enabled = False
        app = App(settings)
        await app.start()
        try:
            await app.bus.publish(Event(name=EventType.PLAYBACK_ENDED, data={
                "userId": "u1",
                "itemId": "m1",
                "itemName": "Alien",
                "playbackDuration": 6000,
                "activityDate": "2026-09-03T20:00:00+00:00",
            }))
            await app.bus.drain()
            digest = await app.summary.build_digest(today=date(2026, 10, 17))
        finally:
            await app.stop()

        assert [m.title for m in digest.top_movies] == ["Alien"]
        assert digest.stats.total_plays == 1
        assert digest.stats.active_users == 1

    async def test_run_closes_resources_when_startup_fails(self, tmp_path, monkeypatch):
        settings = Settings(database=str(tmp_path / "app.db"))
        closed = []
        original_close = App.close

        async def failing_start(self):
            raise OSError("address already in use")

        async def tracking_close(self):
            closed.append(self)
            await original_close(self)

        monkeypatch.setattr(IngressServer, "start", failing_start)
        monkeypatch.setattr(App, "close", tracking_close)

        with pytest.raises(OSError):
            await run(settings)

        [app] = closed
        assert app.sender._client.is_closed
