"""Tests for DomainStore snapshot diffing."""

from datetime import timedelta

import pytest

from pipewatch.models import (
    JobStatusChanged,
    PipelineStatusChanged,
    ProjectListChanged,
    ResourceKind,
    Status,
)
from pipewatch.store import UnknownScopeError

PROJECTS = ResourceKind.PROJECTS
PIPELINES = ResourceKind.PIPELINES
JOBS = ResourceKind.JOBS


@pytest.fixture
def seeded(store, make_project):
    store.apply_snapshot(PROJECTS, [make_project(7), make_project(8)])
    return store


class TestProjectSnapshots:
    def test_first_snapshot_reports_every_project(self, store, make_project):
        events = store.apply_snapshot(PROJECTS, [make_project(8), make_project(7)])
        assert events == [ProjectListChanged((7, 8))]

    def test_identical_snapshot_is_silent(self, store, make_project):
        projects = [make_project(7), make_project(8)]
        store.apply_snapshot(PROJECTS, projects)
        assert store.apply_snapshot(PROJECTS, projects) == []

    def test_renamed_project_is_reported(self, seeded, make_project):
        events = seeded.apply_snapshot(PROJECTS, [make_project(7, path="group/renamed"), seeded.get_project(8)])
        assert events == [ProjectListChanged((7,))]
        assert seeded.get_project(7).path == "group/renamed"

    def test_removed_project_takes_pipelines_and_jobs(self, seeded, make_pipeline, make_job):
        seeded.apply_snapshot(PIPELINES, [make_pipeline(42, 7)], scope=7)
        seeded.apply_snapshot(JOBS, [make_job(1), make_job(2)], scope=42)

        events = seeded.apply_snapshot(PROJECTS, [seeded.get_project(8)])

        assert events == [ProjectListChanged((7,))]
        assert seeded.get_project(7) is None
        assert seeded.get_pipeline(42) is None
        assert seeded.get_job(1) is None
        assert seeded.get_job(2) is None

    def test_favorites_sort_first(self, store, make_project):
        store.apply_snapshot(PROJECTS, [
            make_project(1, activity_age=timedelta(minutes=1)),
            make_project(2, activity_age=timedelta(days=3), favorite=True),
            make_project(3, activity_age=timedelta(hours=2)),
        ])
        assert [p.id for p in store.projects()] == [2, 1, 3]

    def test_refetched_project_keeps_last_pipeline_status(self, seeded, make_project, make_pipeline):
        seeded.apply_snapshot(PIPELINES, [make_pipeline(42, 7, Status.FAILED)], scope=7)
        seeded.apply_snapshot(PROJECTS, [make_project(7), make_project(8)])
        assert seeded.get_project(7).last_pipeline_status is Status.FAILED


class TestPipelineSnapshots:
    def test_status_change_emits_exactly_one_event(self, seeded, make_pipeline):
        seeded.apply_snapshot(PIPELINES, [make_pipeline(42, 7, Status.RUNNING)], scope=7)

        events = seeded.apply_snapshot(PIPELINES, [make_pipeline(42, 7, Status.SUCCESS)], scope=7)

        assert events == [PipelineStatusChanged(7, 42, Status.RUNNING, Status.SUCCESS)]

    def test_identical_snapshot_is_silent(self, seeded, make_pipeline):
        pipelines = [make_pipeline(42, 7), make_pipeline(41, 7, Status.SUCCESS)]
        seeded.apply_snapshot(PIPELINES, pipelines, scope=7)
        assert seeded.apply_snapshot(PIPELINES, pipelines, scope=7) == []

    def test_events_in_id_order_with_list_change_last(self, seeded, make_pipeline):
        seeded.apply_snapshot(PIPELINES, [
            make_pipeline(50, 7, Status.RUNNING),
            make_pipeline(40, 7, Status.PENDING),
        ], scope=7)

        events = seeded.apply_snapshot(PIPELINES, [
            make_pipeline(60, 7, Status.CREATED),
            make_pipeline(50, 7, Status.FAILED),
            make_pipeline(40, 7, Status.RUNNING),
        ], scope=7)

        assert events == [
            PipelineStatusChanged(7, 40, Status.PENDING, Status.RUNNING),
            PipelineStatusChanged(7, 50, Status.RUNNING, Status.FAILED),
            ProjectListChanged((7,)),
        ]

    def test_status_and_field_change_emit_both(self, seeded, make_pipeline):
        seeded.apply_snapshot(PIPELINES, [make_pipeline(42, 7, Status.RUNNING)], scope=7)

        events = seeded.apply_snapshot(
            PIPELINES, [make_pipeline(42, 7, Status.SUCCESS, duration=93.0)], scope=7,
        )

        assert events == [
            PipelineStatusChanged(7, 42, Status.RUNNING, Status.SUCCESS),
            ProjectListChanged((7,)),
        ]

    def test_newest_pipeline_sets_project_status(self, seeded, make_pipeline):
        seeded.apply_snapshot(PIPELINES, [
            make_pipeline(41, 7, Status.FAILED),
            make_pipeline(42, 7, Status.SUCCESS),
        ], scope=7)
        assert seeded.get_project(7).last_pipeline_status is Status.SUCCESS
        assert [p.id for p in seeded.pipelines_for(7)] == [42, 41]

    def test_unknown_project_raises(self, seeded, make_pipeline):
        with pytest.raises(UnknownScopeError) as excinfo:
            seeded.apply_snapshot(PIPELINES, [make_pipeline(42, 99)], scope=99)
        assert excinfo.value.scope == 99
        assert seeded.get_pipeline(42) is None

    def test_out_of_scope_records_are_ignored(self, seeded, make_pipeline):
        seeded.apply_snapshot(PIPELINES, [make_pipeline(42, 7), make_pipeline(43, 8)], scope=7)
        assert seeded.get_pipeline(42) is not None
        assert seeded.get_pipeline(43) is None

    def test_refetch_keeps_job_ids(self, seeded, make_pipeline, make_job):
        seeded.apply_snapshot(PIPELINES, [make_pipeline(42, 7)], scope=7)
        seeded.apply_snapshot(JOBS, [make_job(1), make_job(2)], scope=42)

        assert seeded.apply_snapshot(PIPELINES, [make_pipeline(42, 7)], scope=7) == []
        assert seeded.get_pipeline(42).job_ids == (1, 2)


class TestJobSnapshots:
    @pytest.fixture
    def with_pipeline(self, seeded, make_pipeline):
        seeded.apply_snapshot(PIPELINES, [make_pipeline(42, 7)], scope=7)
        return seeded

    def test_job_ids_follow_received_order(self, with_pipeline, make_job):
        events = with_pipeline.apply_snapshot(JOBS, [make_job(3), make_job(1), make_job(2)], scope=42)

        assert events == [ProjectListChanged((7,))]
        assert with_pipeline.get_pipeline(42).job_ids == (3, 1, 2)
        assert [j.id for j in with_pipeline.jobs_for(42)] == [3, 1, 2]

    def test_job_status_change(self, with_pipeline, make_job):
        with_pipeline.apply_snapshot(JOBS, [make_job(1, status=Status.RUNNING)], scope=42)

        events = with_pipeline.apply_snapshot(JOBS, [make_job(1, status=Status.FAILED)], scope=42)

        assert events == [JobStatusChanged(42, 1, Status.RUNNING, Status.FAILED)]

    def test_removed_job_is_dropped(self, with_pipeline, make_job):
        with_pipeline.apply_snapshot(JOBS, [make_job(1), make_job(2)], scope=42)

        events = with_pipeline.apply_snapshot(JOBS, [make_job(2)], scope=42)

        assert events == [ProjectListChanged((7,))]
        assert with_pipeline.get_job(1) is None
        assert with_pipeline.get_pipeline(42).job_ids == (2,)

    def test_unknown_pipeline_raises(self, with_pipeline, make_job):
        with pytest.raises(UnknownScopeError):
            with_pipeline.apply_snapshot(JOBS, [make_job(1, pipeline_id=99)], scope=99)

    def test_has_entity(self, with_pipeline, make_job):
        with_pipeline.apply_snapshot(JOBS, [make_job(1)], scope=42)
        assert with_pipeline.has_entity(JobStatusChanged(42, 1, Status.PENDING, Status.RUNNING))
        assert not with_pipeline.has_entity(JobStatusChanged(42, 5, Status.PENDING, Status.RUNNING))
        assert not with_pipeline.has_entity(PipelineStatusChanged(7, 99, Status.PENDING, Status.RUNNING))


class TestClear:
    def test_clear_empties_everything(self, seeded, make_pipeline):
        seeded.apply_snapshot(PIPELINES, [make_pipeline(42, 7)], scope=7)
        seeded.clear()
        assert seeded.projects() == []
        assert seeded.get_pipeline(42) is None
