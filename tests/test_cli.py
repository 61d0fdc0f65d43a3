"""Tests for the command line entry point."""

import json

import pytest

from newsdesk.cli.run import build_parser, main, scheduled_job
from newsdesk.core.entities import RunStatus, ScrapeRun, Trigger

from conftest import hours_ago, run, seed_profile


@pytest.fixture
def config_path(tmp_path, monkeypatch):
    for name in ("SERVICE_AUTH_TOKEN", "USER_TOKENS", "EMAIL_PASSWORD", "SCRAPER_API_KEY"):
        monkeypatch.delenv(name, raising=False)
    # Leave pytest's log capture in charge of the root logger
    monkeypatch.setattr("newsdesk.cli.run.setup_logging", lambda level: None)
    path = tmp_path / "config.yml"
    path.write_text(
        f'DATABASE_PATH: "{tmp_path / "cli.db"}"\n'
        f'MAILER_BACKEND: "file"\n'
        f'MAILER_OUTBOX_DIR: "{tmp_path / "outbox"}"\n'
    )
    return str(path)


class TestMain:
    """Tests for the one-shot commands."""

    def test_parser_requires_a_command(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_profile_then_dry_run(self, config_path, capsys):
        assert main(["--config", config_path, "init-db"]) == 0
        assert main(["--config", config_path, "add-profile", "alice", "alice@example.com", "Tech, sports"]) == 0
        capsys.readouterr()

        assert main(["--config", config_path, "test"]) == 0

        payload = json.loads(capsys.readouterr().out)
        assert payload["success"] is True
        assert payload["summary"]["users_count"] == 1
        assert payload["summary"]["would_send"] == 0

    def test_register_source_rejects_bad_url(self, config_path, capsys):
        code = main(["--config", config_path, "add-source", "Bad", "not-a-url"])

        assert code == 1
        assert json.loads(capsys.readouterr().out)["success"] is False


class TestScheduledJob:
    """Tests for the daily scrape + send job."""

    def test_runs_scrape_then_send(self, newsroom, store):
        run(scheduled_job(newsroom))

        assert run(store.count_scrape_runs()) == 1
        actions = [log["action"] for log in run(store.recent_logs())]
        assert actions == ["newsletter_send", "scrape_run"]

    def test_send_still_happens_when_scrape_is_busy(self, newsroom, store):
        run(seed_profile(store, "alice", {"tech"}))
        run(store.start_scrape_run(ScrapeRun(
            id="busy", trigger=Trigger.MANUAL, status=RunStatus.RUNNING, started_at=hours_ago(0),
        )))

        run(scheduled_job(newsroom))

        logs = run(store.recent_logs())
        assert logs[0]["action"] == "newsletter_send"
        assert logs[0]["details"]["trigger"] == Trigger.SCHEDULED.value
        assert logs[0]["status"] == RunStatus.COMPLETED_OK.value
        assert run(store.count_scrape_runs()) == 1
