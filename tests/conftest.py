"""Shared test fixtures for pipewatch tests."""

import threading
from datetime import datetime, timedelta, timezone

import pytest

from pipewatch.config import DashboardConfig
from pipewatch.models import Job, Pipeline, Project, Status
from pipewatch.store import DomainStore


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


class FakeClient:
    """In-memory RemoteClient.

    Responses are plain lists keyed the same way the real client is called.
    Setting `errors[name]` makes that call raise instead.
    """

    def __init__(self, projects=None, pipelines=None, jobs=None):
        self.projects = list(projects or [])
        self.pipelines = dict(pipelines or {})
        self.jobs = dict(jobs or {})
        self.errors: dict = {}
        self.calls: list = []
        self.closed = False
        self._lock = threading.Lock()

    def _record(self, name, *args):
        with self._lock:
            self.calls.append((name,) + args)
        error = self.errors.get(name)
        if error is not None:
            raise error

    def fetch_projects(self):
        self._record("fetch_projects")
        return list(self.projects)

    def fetch_pipelines(self, project_id):
        self._record("fetch_pipelines", project_id)
        return list(self.pipelines.get(project_id, []))

    def fetch_jobs(self, project_id, pipeline_id):
        self._record("fetch_jobs", project_id, pipeline_id)
        return list(self.jobs.get(pipeline_id, []))

    def close(self):
        self.closed = True


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_client():
    return FakeClient()


@pytest.fixture
def config():
    return DashboardConfig(
        server_url="https://gitlab.example.com",
        token="glpat-test-token",
        refresh_interval=30.0,
        max_backoff=300.0,
    )


@pytest.fixture
def store():
    return DomainStore()


@pytest.fixture
def make_project():
    """Factory for Project records; recently active unless told otherwise."""

    def _make(project_id=7, path=None, activity_age=timedelta(hours=1), favorite=False, **kwargs):
        path = path or f"group/project-{project_id}"
        return Project(
            id=project_id,
            name=path.rsplit("/", 1)[-1],
            path=path,
            last_activity=datetime.now(timezone.utc) - activity_age,
            favorite=favorite,
            **kwargs,
        )

    return _make


@pytest.fixture
def make_pipeline():
    """Factory for Pipeline records."""

    def _make(pipeline_id=42, project_id=7, status=Status.RUNNING, ref="main", **kwargs):
        return Pipeline(
            id=pipeline_id,
            project_id=project_id,
            ref=ref,
            status=status,
            created_at=datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc),
            **kwargs,
        )

    return _make


@pytest.fixture
def make_job():
    """Factory for Job records."""

    def _make(job_id, pipeline_id=42, status=Status.PENDING, name=None, stage="build", **kwargs):
        return Job(
            id=job_id,
            pipeline_id=pipeline_id,
            name=name or f"job-{job_id}",
            stage=stage,
            status=status,
            **kwargs,
        )

    return _make
