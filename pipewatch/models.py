"""Domain model: projects, pipelines, jobs and the events derived from them.

Records are immutable dataclasses. The store replaces a record wholesale when
a newer snapshot differs, so comparing two records field by field is enough
to decide whether anything observable changed.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import datetime
from enum import Enum
from typing import Any, Iterable, NamedTuple, Optional


# ---------------------------------------------------------------------------
# Status vocabulary, mirroring the GitLab pipeline/job status strings
# ---------------------------------------------------------------------------


class Status(str, Enum):
    CREATED = "created"
    WAITING_FOR_RESOURCE = "waiting_for_resource"
    PREPARING = "preparing"
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"
    CANCELING = "canceling"
    CANCELED = "canceled"
    SKIPPED = "skipped"
    MANUAL = "manual"
    SCHEDULED = "scheduled"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: Any) -> "Status":
        """Map a remote status string onto the enum; unrecognized values become UNKNOWN."""
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.UNKNOWN

    @property
    def is_active(self) -> bool:
        """True while the pipeline/job has not reached a final state."""
        return self in ACTIVE_STATUSES


# Statuses ordered before SUCCESS: work is queued or in progress
ACTIVE_STATUSES = frozenset({
    Status.CREATED,
    Status.WAITING_FOR_RESOURCE,
    Status.PREPARING,
    Status.PENDING,
    Status.RUNNING,
})


class ResourceKind(str, Enum):
    PROJECTS = "projects"
    PIPELINES = "pipelines"
    JOBS = "jobs"


class Resource(NamedTuple):
    """A pollable resource: a kind plus the id of the entity that scopes it.

    Projects are global (scope None). Pipelines are scoped by project id and
    jobs by pipeline id.
    """

    kind: ResourceKind
    scope: Optional[int] = None

    def __str__(self) -> str:
        if self.scope is None:
            return self.kind.value
        return f"{self.kind.value}[{self.scope}]"


PROJECTS = Resource(ResourceKind.PROJECTS)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp as returned by the API ('Z' suffix allowed)."""
    if not value:
        return None
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Project:
    id: int
    name: str
    path: str
    last_activity: Optional[datetime] = None
    last_pipeline_status: Optional[Status] = None
    favorite: bool = False
    web_url: str = ""

    @classmethod
    def from_api(cls, data: dict, favorites: Iterable = ()) -> "Project":
        """Build a project from a `/projects` entry.

        A project is a favorite when its id or its namespaced path appears
        in `favorites`.
        """
        project_id = int(data["id"])
        path = str(data.get("path_with_namespace") or data.get("path") or "")
        marks = {str(f) for f in favorites}
        return cls(
            id=project_id,
            name=str(data.get("name") or path),
            path=path,
            last_activity=parse_timestamp(data.get("last_activity_at")),
            favorite=str(project_id) in marks or path in marks,
            web_url=str(data.get("web_url") or ""),
        )


@dataclass(frozen=True)
class Pipeline:
    id: int
    project_id: int
    ref: str
    status: Status
    created_at: Optional[datetime] = None
    duration: Optional[float] = None
    job_ids: tuple[int, ...] = ()
    web_url: str = ""

    @classmethod
    def from_api(cls, data: dict) -> "Pipeline":
        created_at = parse_timestamp(data.get("created_at"))
        duration = data.get("duration")
        if duration is None:
            # The list endpoint omits duration; derive it for finished pipelines
            updated_at = parse_timestamp(data.get("updated_at"))
            status = Status.parse(data.get("status"))
            if created_at and updated_at and not status.is_active:
                duration = (updated_at - created_at).total_seconds()
        return cls(
            id=int(data["id"]),
            project_id=int(data["project_id"]),
            ref=str(data.get("ref") or ""),
            status=Status.parse(data.get("status")),
            created_at=created_at,
            duration=float(duration) if duration is not None else None,
            web_url=str(data.get("web_url") or ""),
        )


@dataclass(frozen=True)
class Job:
    id: int
    pipeline_id: int
    name: str
    stage: str
    status: Status
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    has_log: bool = False

    @classmethod
    def from_api(cls, data: dict, pipeline_id: Optional[int] = None) -> "Job":
        pipeline = data.get("pipeline") or {}
        if pipeline_id is None:
            pipeline_id = int(pipeline["id"])
        artifacts = data.get("artifacts") or []
        return cls(
            id=int(data["id"]),
            pipeline_id=pipeline_id,
            name=str(data.get("name") or ""),
            stage=str(data.get("stage") or ""),
            status=Status.parse(data.get("status")),
            started_at=parse_timestamp(data.get("started_at")),
            finished_at=parse_timestamp(data.get("finished_at")),
            has_log=any(a.get("file_type") == "trace" for a in artifacts),
        )


def changed_fields(old: Any, new: Any, ignore: Iterable[str] = ()) -> list[str]:
    """Names of dataclass fields whose values differ between two records."""
    skipped = set(ignore)
    return [
        f.name for f in fields(old)
        if f.name not in skipped and getattr(old, f.name) != getattr(new, f.name)
    ]


# ---------------------------------------------------------------------------
# Domain events
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ProjectListChanged:
    """Rows appeared, disappeared or changed content (other than status)."""

    project_ids: tuple[int, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class PipelineStatusChanged:
    project_id: int
    pipeline_id: int
    old: Status
    new: Status


@dataclass(frozen=True)
class JobStatusChanged:
    pipeline_id: int
    job_id: int
    old: Status
    new: Status


@dataclass(frozen=True)
class FetchFailed:
    resource: Resource
    error: Exception


DomainEvent = ProjectListChanged | PipelineStatusChanged | JobStatusChanged | FetchFailed
