"""Tests for the dashboard's formatting helpers and status badges.

Most tests cover the pure pieces that decide what each cell shows; the
Textual app gets one headless run against an in-memory client.
"""

import asyncio
from datetime import datetime, timedelta, timezone

from textual.widgets import DataTable

from pipewatch.dashboard.app import PipewatchApp, job_duration
from pipewatch.dashboard.utils import format_age, format_duration
from pipewatch.dashboard.widgets.status_badge import FLASH_STYLES, SPINNER_FRAMES, status_badge
from pipewatch.effects import EffectHandle, EffectKind, EffectRequest
from pipewatch.models import Status

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class TestFormatAge:
    def test_none_returns_empty(self):
        assert format_age(None) == ""

    def test_seconds(self):
        assert format_age(NOW - timedelta(seconds=30), NOW) == "30s"

    def test_minutes(self):
        assert format_age(NOW - timedelta(minutes=5), NOW) == "5m"

    def test_hours(self):
        assert format_age(NOW - timedelta(hours=3), NOW) == "3h"

    def test_days(self):
        assert format_age(NOW - timedelta(days=2), NOW) == "2d"

    def test_future_returns_now(self):
        assert format_age(NOW + timedelta(hours=1), NOW) == "now"

    def test_naive_timestamps_are_utc(self):
        naive = (NOW - timedelta(hours=1)).replace(tzinfo=None)
        assert format_age(naive, NOW) == "1h"


class TestFormatDuration:
    def test_none_returns_empty(self):
        assert format_duration(None) == ""

    def test_seconds(self):
        assert format_duration(42.7) == "42s"

    def test_minutes(self):
        assert format_duration(185) == "3m 05s"

    def test_hours(self):
        assert format_duration(3720) == "1h 02m"


class TestStatusBadge:
    def test_success(self):
        badge = status_badge(Status.SUCCESS)
        assert badge.plain.strip() == "OK"
        assert str(badge.style) == "green"

    def test_failed(self):
        assert status_badge(Status.FAILED).plain.strip() == "FAIL"

    def test_waiting_statuses(self):
        for status in (Status.CREATED, Status.PENDING, Status.PREPARING):
            assert status_badge(status).plain.strip() == "WAIT"

    def test_running_spins(self):
        first = status_badge(Status.RUNNING, frame=0).plain
        second = status_badge(Status.RUNNING, frame=1).plain
        assert first.strip().startswith(SPINNER_FRAMES[0])
        assert second.strip().startswith(SPINNER_FRAMES[1])

    def test_no_status(self):
        assert status_badge(None).plain.strip() == "-"

    def test_flash_blinks(self):
        request = EffectRequest(EffectKind.SUCCESS_FLASH, "pipeline:42", 1.5)
        handle = EffectHandle(id=1, request=request, started_at=0.0)

        on = status_badge(Status.SUCCESS, effect=handle, now=0.0)
        off = status_badge(Status.SUCCESS, effect=handle, now=0.3)

        assert str(on.style) == FLASH_STYLES[EffectKind.SUCCESS_FLASH]
        assert str(off.style) == "green"


class TestJobDuration:
    def test_not_started(self, make_job):
        assert job_duration(make_job(1)) is None

    def test_finished(self, make_job):
        job = make_job(1, started_at=NOW, finished_at=NOW + timedelta(seconds=75))
        assert job_duration(job) == 75.0


class TestPipewatchApp:
    def test_renders_rows_link_and_search(self, config, fake_client, make_project, make_pipeline):
        fake_client.projects = [make_project(7, path="group/app", web_url="https://gitlab.example.com/group/app")]
        fake_client.pipelines = {7: [make_pipeline(42, 7, Status.SUCCESS)]}

        async def scenario():
            app = PipewatchApp(config, client_factory=lambda _config: fake_client)
            async with app.run_test() as pilot:
                for _ in range(100):
                    await pilot.pause(0.05)
                    if app.dispatcher.store.get_pipeline(42) is not None:
                        break
                await pilot.pause(0.2)
                project_rows = app.query_one("#projects", DataTable).row_count
                pipeline_rows = app.query_one("#pipelines", DataTable).row_count
                subtitle = app.sub_title

                await pilot.press("/")
                await pilot.pause(0.1)
                await pilot.press("a")
                await pilot.pause(0.1)
                return project_rows, pipeline_rows, subtitle, app.dispatcher.state.query, app.query_one("#search").display

        project_rows, pipeline_rows, subtitle, query, search_shown = asyncio.run(scenario())

        assert project_rows == 1
        assert pipeline_rows == 1
        assert subtitle == "https://gitlab.example.com/group/app"
        assert query == "a"
        assert search_shown
