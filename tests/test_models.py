"""Tests for domain records parsed from API payloads."""

from datetime import datetime, timezone

import pytest

from pipewatch.models import (
    PROJECTS,
    Job,
    Pipeline,
    Project,
    Resource,
    ResourceKind,
    Status,
    changed_fields,
    parse_timestamp,
)


class TestStatus:
    @pytest.mark.parametrize("value,expected", [
        ("running", Status.RUNNING),
        ("SUCCESS", Status.SUCCESS),
        ("waiting_for_resource", Status.WAITING_FOR_RESOURCE),
        ("bogus", Status.UNKNOWN),
        (None, Status.UNKNOWN),
    ])
    def test_parse(self, value, expected):
        assert Status.parse(value) is expected

    def test_is_active(self):
        assert Status.RUNNING.is_active
        assert Status.PENDING.is_active
        assert not Status.SUCCESS.is_active
        assert not Status.MANUAL.is_active
        assert not Status.UNKNOWN.is_active


class TestResource:
    def test_str(self):
        assert str(PROJECTS) == "projects"
        assert str(Resource(ResourceKind.JOBS, 42)) == "jobs[42]"

    def test_hashable_key(self):
        assert {Resource(ResourceKind.PIPELINES, 7): 1}[Resource(ResourceKind.PIPELINES, 7)] == 1


class TestParsing:
    def test_parse_timestamp(self):
        assert parse_timestamp("2024-05-01T12:00:00Z") == datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
        assert parse_timestamp(None) is None

    def test_project_favorite_by_id(self):
        project = Project.from_api({"id": 12, "path_with_namespace": "g/p"}, favorites=[12])
        assert project.favorite
        assert project.name == "g/p"

    def test_pipeline_keeps_reported_duration(self):
        pipeline = Pipeline.from_api({"id": 1, "project_id": 2, "status": "failed", "duration": 12})
        assert pipeline.duration == 12.0
        assert pipeline.job_ids == ()

    def test_running_pipeline_has_no_derived_duration(self):
        pipeline = Pipeline.from_api({
            "id": 1, "project_id": 2, "status": "running",
            "created_at": "2024-05-01T12:00:00Z", "updated_at": "2024-05-01T12:05:00Z",
        })
        assert pipeline.duration is None

    def test_job_takes_pipeline_from_payload(self):
        job = Job.from_api({"id": 5, "name": "lint", "stage": "test", "status": "manual", "pipeline": {"id": 42}})
        assert job.pipeline_id == 42
        assert job.status is Status.MANUAL


class TestChangedFields:
    def test_reports_differences(self):
        old = Pipeline(id=1, project_id=2, ref="main", status=Status.RUNNING)
        new = Pipeline(id=1, project_id=2, ref="dev", status=Status.SUCCESS)
        assert changed_fields(old, new) == ["ref", "status"]
        assert changed_fields(old, new, ignore=("status",)) == ["ref"]
