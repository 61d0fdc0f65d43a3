"""Tests for the diagnostic harness."""

import os

from newsdesk.services.database import Database
from newsdesk.workflows.diagnostics import DiagnosticHarness

from conftest import hours_ago, run, seed_article, seed_profile, seed_source


class TestProbe:
    """Tests for the read-only probe."""

    def test_probe_reports_counts_without_writing(self, store, config):
        source = run(seed_source(store, "Feed"))
        run(seed_article(store, source, "Fresh", {"tech": 0.5, "science": 0.3}))
        run(seed_article(store, source, "Stale", {"tech": 0.5}, created_at=hours_ago(72)))
        run(seed_profile(store, "alice", {"tech"}))
        run(seed_profile(store, "bob", {"tech"}, subscribed=False))

        report = run(DiagnosticHarness(store, config).probe())

        assert report.store_reachable is True
        assert report.config_ok is True
        assert report.counts.users == 1
        assert report.counts.recent_content == 1
        assert report.counts.topic_mappings == 2
        assert run(store.recent_logs()) == []

    def test_counts_are_capped(self, store, config):
        for i in range(4):
            run(seed_profile(store, f"user{i}", {"tech"}))
        harness = DiagnosticHarness(store, config.model_copy(update={"PROBE_LIMIT": 2}))

        assert run(harness.probe()).counts.users == 2

    def test_key_presence_is_reported_without_values(self, store, config):
        report = run(DiagnosticHarness(store, config).probe())

        dumped = report.model_dump(mode="json")
        assert dumped["api_key_presence"] == {"mailer": True, "scraper": False}
        assert "smtp-password" not in str(dumped)

    def test_missing_base_url_fails_config_check(self, store, config):
        harness = DiagnosticHarness(store, config.model_copy(update={"API_BASE_URL": None}))

        assert run(harness.probe()).config_ok is False

    def test_malformed_base_url_fails_config_check(self, store, config):
        harness = DiagnosticHarness(store, config.model_copy(update={"API_BASE_URL": "not a url"}))

        assert run(harness.probe()).config_ok is False

    def test_unreachable_store(self, tmp_path, config):
        missing = Database(str(tmp_path / "nowhere" / "newsdesk.db"))

        report = run(DiagnosticHarness(missing, config).probe())

        assert report.store_reachable is False
        assert report.counts.users == 0
        assert not os.path.exists(missing.path)


class TestSelfTest:
    """Tests for RunSelfTest."""

    def test_self_test_writes_one_audit_entry(self, store, config):
        report = run(DiagnosticHarness(store, config).run_self_test())

        logs = run(store.recent_logs())
        assert len(logs) == 1
        assert logs[0]["action"] == "self_test"
        assert logs[0]["status"] == "ok"
        assert report.to_response()["success"] is True

    def test_self_test_on_unreachable_store_does_not_raise(self, tmp_path, config):
        missing = Database(str(tmp_path / "nowhere" / "newsdesk.db"))

        report = run(DiagnosticHarness(missing, config).run_self_test())

        assert report.to_response()["success"] is False
