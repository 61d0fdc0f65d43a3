"""Tests for the daily scheduler."""

from datetime import datetime, timezone

from newsdesk.services.scheduler import next_run_time, run_daily

from conftest import run


class TestNextRunTime:
    """Tests for next_run_time."""

    def test_later_today(self):
        now = datetime(2024, 6, 1, 5, 30, tzinfo=timezone.utc)

        target = next_run_time(8, "UTC", now)

        assert target == datetime(2024, 6, 1, 8, 0, tzinfo=timezone.utc)

    def test_rolls_over_to_tomorrow(self):
        now = datetime(2024, 6, 1, 8, 0, tzinfo=timezone.utc)

        target = next_run_time(8, "UTC", now)

        assert target == datetime(2024, 6, 2, 8, 0, tzinfo=timezone.utc)

    def test_respects_timezone(self):
        # 05:00 UTC is 07:00 in Rome during summer time
        now = datetime(2024, 6, 1, 5, 0, tzinfo=timezone.utc)

        target = next_run_time(8, "Europe/Rome", now)

        assert target.hour == 8
        assert target.astimezone(timezone.utc) == datetime(2024, 6, 1, 6, 0, tzinfo=timezone.utc)


class TestRunDaily:
    """Tests for run_daily."""

    def test_runs_job_and_survives_failures(self):
        calls = []
        sleeps = []

        async def fake_sleep(seconds):
            sleeps.append(seconds)

        async def job():
            calls.append(len(calls))
            if len(calls) == 1:
                raise RuntimeError("first run fails")

        run(run_daily(job, 8, "UTC", sleep=fake_sleep, max_runs=3))

        assert calls == [0, 1, 2]
        assert len(sleeps) == 3
        assert all(0 <= s <= 86400 for s in sleeps)
