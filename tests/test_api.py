"""Tests for the HTTP trigger surface."""

from unittest.mock import AsyncMock, patch

import pytest

from newsdesk.api import create_app
from newsdesk.core.entities import OwnerScope
from newsdesk.core.errors import Conflict, SystemUnavailable

from conftest import SERVICE_TOKEN, USER_TOKEN, candidate, run, seed_source

OPERATOR = {"Authorization": f"Bearer {SERVICE_TOKEN}"}
ALICE = {"Authorization": f"Bearer {USER_TOKEN}"}


@pytest.fixture
def app(newsroom):
    return create_app(newsroom)


def call(app, method, path, headers=None, json=None):
    """Issue one request and return (status, body)."""
    async def _call():
        client = app.test_client()
        kwargs = {"json": json} if json is not None else {}
        response = await client.open(path, method=method, headers=headers or {}, **kwargs)
        return response.status_code, await response.get_json()
    return run(_call())


class TestAuthentication:
    """Tests for bearer token handling."""

    def test_missing_token_is_rejected(self, app, store):
        status, body = call(app, "POST", "/scrape/manual")

        assert status == 401
        assert body == {"success": False, "message": "missing bearer token"}
        assert run(store.count_scrape_runs()) == 0

    def test_wrong_token_is_rejected(self, app):
        status, body = call(app, "POST", "/newsletter/send", {"Authorization": "Bearer nope"})

        assert status == 401
        assert body["success"] is False

    def test_user_token_cannot_trigger_operator_routes(self, app, store):
        status, _ = call(app, "POST", "/scrape/manual", ALICE)

        assert status == 403
        assert run(store.count_scrape_runs()) == 0


class TestScrapeRoutes:
    """Tests for the scrape trigger endpoints."""

    def test_manual_scrape_returns_summary(self, app, store, scraper):
        run(seed_source(store, "Feed"))
        scraper.results = {"Feed": [candidate("One", "https://feed.example.com/1")]}

        status, body = call(app, "POST", "/scrape/manual", OPERATOR)

        assert status == 200
        assert body["success"] is True
        assert body["status"] == "completed_ok"
        assert body["total_articles"] == 1
        assert body["sources_processed"] == 1
        assert body["errors"] == []

    def test_scheduled_scrape(self, app):
        status, body = call(app, "POST", "/scrape/scheduled", OPERATOR)

        assert status == 200
        assert body["success"] is True

    def test_collect_runs_a_scrape(self, app, store):
        status, body = call(app, "POST", "/newsletter/collect", OPERATOR)

        assert status == 200
        assert run(store.get_scrape_run(body["run_id"])) is not None

    def test_conflict_while_running(self, app, newsroom):
        with patch.object(newsroom.orchestrator, "trigger_scrape", AsyncMock(side_effect=Conflict("a scrape run is already active"))):
            status, body = call(app, "POST", "/scrape/manual", OPERATOR)

        assert status == 409
        assert body == {"success": False, "message": "a scrape run is already active"}

    def test_store_outage_maps_to_503(self, app, newsroom):
        with patch.object(newsroom.orchestrator, "trigger_scrape", AsyncMock(side_effect=SystemUnavailable("store down"))):
            status, body = call(app, "POST", "/scrape/manual", OPERATOR)

        assert status == 503
        assert body["success"] is False

    def test_cancel_with_nothing_running(self, app):
        status, body = call(app, "POST", "/scrape/cancel", OPERATOR)

        assert status == 404
        assert body["success"] is False


class TestNewsletterRoutes:
    """Tests for the newsletter endpoints."""

    def test_send_returns_counts(self, app):
        status, body = call(app, "POST", "/newsletter/send", OPERATOR)

        assert status == 200
        assert body["success"] is True
        assert body["recipient_count"] == 0

    def test_test_mode_returns_diagnostics(self, app, mailer):
        status, body = call(app, "POST", "/newsletter/test", OPERATOR)

        assert status == 200
        assert body["success"] is True
        assert set(body["summary"]) >= {"users_count", "content_count", "content_topics_count", "api_keys"}
        assert mailer.attempts == []

    def test_self_test(self, app, store):
        status, body = call(app, "POST", "/diagnostics/self-test", OPERATOR)

        assert status == 200
        assert body["success"] is True
        assert run(store.recent_logs())[0]["action"] == "self_test"


class TestSourceRoutes:
    """Tests for source registry endpoints."""

    def test_user_registers_own_source(self, app, store):
        payload = {"name": "My Feed", "url": "https://mine.example.com/rss", "kind": "rss"}

        status, body = call(app, "POST", "/sources", ALICE, json=payload)

        assert status == 201
        assert body["source"]["owner"] == "alice"
        assert body["source"]["url"] == "https://mine.example.com/rss"

    def test_duplicate_registration_is_a_bad_request(self, app):
        payload = {"name": "Feed", "url": "https://dup.example.com/rss", "kind": "rss"}
        call(app, "POST", "/sources", OPERATOR, json=payload)

        status, body = call(app, "POST", "/sources", OPERATOR, json=payload)

        assert status == 400
        assert body["message"] == "source already exists"

    def test_invalid_body_is_a_bad_request(self, app):
        status, _ = call(app, "POST", "/sources", OPERATOR, json={"name": "X", "url": "nope", "kind": "rss"})

        assert status == 400

    def test_user_sees_global_and_own_sources(self, app, store):
        run(seed_source(store, "Global"))
        run(seed_source(store, "Mine", owner=OwnerScope.for_user("alice")))
        run(seed_source(store, "Theirs", owner=OwnerScope.for_user("bob")))

        status, body = call(app, "GET", "/sources", ALICE)

        assert status == 200
        assert [s["name"] for s in body["sources"]] == ["Global", "Mine"]

    def test_user_cannot_delete_global_source(self, app, store):
        source = run(seed_source(store, "Global"))

        status, _ = call(app, "DELETE", f"/sources/{source.id}", ALICE)

        assert status == 403
        assert run(store.get_source(source.id)) is not None

    def test_operator_deactivates_global_source(self, app, store):
        source = run(seed_source(store, "Global"))

        status, body = call(app, "POST", f"/sources/{source.id}/deactivate", OPERATOR)

        assert status == 200
        assert run(store.get_source(source.id)).active is False

    def test_unknown_route_returns_json(self, app):
        status, body = call(app, "GET", "/nope", OPERATOR)

        assert status == 404
        assert body["success"] is False
