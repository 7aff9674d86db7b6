"""Authoritative in-memory snapshot of projects, pipelines and jobs.

`DomainStore.apply_snapshot()` is the only way records change. Each call
diffs one fetched collection against what is held and returns the domain
events describing the difference.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Iterable, Optional

from .models import (
    DomainEvent,
    Job,
    JobStatusChanged,
    Pipeline,
    PipelineStatusChanged,
    Project,
    ProjectListChanged,
    ResourceKind,
    changed_fields,
)

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """Base exception for store errors"""


class UnknownScopeError(StoreError):
    """Raised when a snapshot is scoped to an entity the store does not hold"""

    def __init__(self, kind: ResourceKind, scope: Optional[int]):
        super().__init__(f"{kind.value} snapshot for unknown scope {scope}")
        self.kind = kind
        self.scope = scope


def _index(items: Iterable) -> dict:
    """Key records by id; a repeated id keeps the last occurrence."""
    return {item.id: item for item in items}


class DomainStore:
    """Projects, pipelines and jobs keyed by id."""

    def __init__(self) -> None:
        self._projects: dict[int, Project] = {}
        self._pipelines: dict[int, Pipeline] = {}
        self._jobs: dict[int, Job] = {}

    # -- mutation -----------------------------------------------------------

    def apply_snapshot(
        self,
        kind: ResourceKind,
        items: Iterable,
        scope: Optional[int] = None,
    ) -> list[DomainEvent]:
        """Replace the held collection for `kind`/`scope` with `items`.

        Args:
            kind: Which resource the snapshot holds
            items: Parsed Project/Pipeline/Job records
            scope: Owning project id (pipelines) or pipeline id (jobs)

        Returns:
            Status-change events in ascending entity id order, followed by a
            single ProjectListChanged when rows were added, removed or edited.

        Raises:
            UnknownScopeError: If the owning project/pipeline is not held
        """
        if kind is ResourceKind.PROJECTS:
            return self._apply_projects(items)
        if kind is ResourceKind.PIPELINES:
            return self._apply_pipelines(scope, items)
        if kind is ResourceKind.JOBS:
            return self._apply_jobs(scope, items)
        raise ValueError(f"Unsupported resource kind: {kind!r}")

    def clear(self) -> None:
        """Drop everything (server or token changed)."""
        self._projects.clear()
        self._pipelines.clear()
        self._jobs.clear()

    def _apply_projects(self, items: Iterable[Project]) -> list[DomainEvent]:
        incoming = _index(items)
        touched: set[int] = set()

        for project_id in sorted(set(self._projects) - set(incoming)):
            self._remove_project(project_id)
            touched.add(project_id)

        for project_id, project in sorted(incoming.items()):
            existing = self._projects.get(project_id)
            if existing is not None:
                # last_pipeline_status comes from the pipelines snapshot
                project = replace(project, last_pipeline_status=existing.last_pipeline_status)
                if project == existing:
                    continue
            self._projects[project_id] = project
            touched.add(project_id)

        if not touched:
            return []
        return [ProjectListChanged(tuple(sorted(touched)))]

    def _apply_pipelines(self, project_id: Optional[int], items: Iterable[Pipeline]) -> list[DomainEvent]:
        if project_id not in self._projects:
            raise UnknownScopeError(ResourceKind.PIPELINES, project_id)

        incoming = _index(self._in_scope(items, "project_id", project_id))
        held = {p.id: p for p in self._pipelines.values() if p.project_id == project_id}
        events: list[DomainEvent] = []
        rows_changed = False

        for pipeline_id in sorted(set(held) - set(incoming)):
            self._remove_pipeline(pipeline_id)
            rows_changed = True

        for pipeline_id, pipeline in sorted(incoming.items()):
            existing = held.get(pipeline_id)
            if existing is None:
                rows_changed = True
            else:
                # job_ids are owned by the jobs snapshot
                pipeline = replace(pipeline, job_ids=existing.job_ids)
                if pipeline == existing:
                    continue
                if pipeline.status != existing.status:
                    events.append(PipelineStatusChanged(
                        project_id=project_id,
                        pipeline_id=pipeline_id,
                        old=existing.status,
                        new=pipeline.status,
                    ))
                if changed_fields(existing, pipeline, ignore=("status",)):
                    rows_changed = True
            self._pipelines[pipeline_id] = pipeline

        self._refresh_last_status(project_id)
        if rows_changed:
            events.append(ProjectListChanged((project_id,)))
        return events

    def _apply_jobs(self, pipeline_id: Optional[int], items: Iterable[Job]) -> list[DomainEvent]:
        pipeline = self._pipelines.get(pipeline_id)
        if pipeline is None:
            raise UnknownScopeError(ResourceKind.JOBS, pipeline_id)

        ordered = list(self._in_scope(items, "pipeline_id", pipeline_id))
        incoming = _index(ordered)
        held = {j.id: j for j in self._jobs.values() if j.pipeline_id == pipeline_id}
        events: list[DomainEvent] = []
        rows_changed = False

        for job_id in sorted(set(held) - set(incoming)):
            del self._jobs[job_id]
            rows_changed = True

        for job_id, job in sorted(incoming.items()):
            existing = held.get(job_id)
            if existing is None:
                rows_changed = True
            else:
                if job == existing:
                    continue
                if job.status != existing.status:
                    events.append(JobStatusChanged(
                        pipeline_id=pipeline_id,
                        job_id=job_id,
                        old=existing.status,
                        new=job.status,
                    ))
                if changed_fields(existing, job, ignore=("status",)):
                    rows_changed = True
            self._jobs[job_id] = job

        job_ids = tuple(dict.fromkeys(job.id for job in ordered))
        if job_ids != pipeline.job_ids:
            self._pipelines[pipeline_id] = replace(pipeline, job_ids=job_ids)
            rows_changed = True

        if rows_changed:
            events.append(ProjectListChanged((pipeline.project_id,)))
        return events

    def _in_scope(self, items: Iterable, attr: str, scope: int) -> Iterable:
        for item in items:
            if getattr(item, attr) != scope:
                logger.warning(
                    "Ignoring %s %s outside snapshot scope %s=%s",
                    type(item).__name__, item.id, attr, scope,
                )
                continue
            yield item

    def _refresh_last_status(self, project_id: int) -> None:
        pipelines = self.pipelines_for(project_id)
        status = pipelines[0].status if pipelines else None
        project = self._projects[project_id]
        if project.last_pipeline_status != status:
            self._projects[project_id] = replace(project, last_pipeline_status=status)

    def _remove_project(self, project_id: int) -> None:
        del self._projects[project_id]
        for pipeline_id in [p.id for p in self._pipelines.values() if p.project_id == project_id]:
            self._remove_pipeline(pipeline_id)

    def _remove_pipeline(self, pipeline_id: int) -> None:
        del self._pipelines[pipeline_id]
        for job_id in [j.id for j in self._jobs.values() if j.pipeline_id == pipeline_id]:
            del self._jobs[job_id]

    # -- read-only accessors ------------------------------------------------

    def get_project(self, project_id: int) -> Optional[Project]:
        return self._projects.get(project_id)

    def get_pipeline(self, pipeline_id: int) -> Optional[Pipeline]:
        return self._pipelines.get(pipeline_id)

    def get_job(self, job_id: int) -> Optional[Job]:
        return self._jobs.get(job_id)

    def projects(self) -> list[Project]:
        """Favorites first, then most recently active, then by id."""
        def sort_key(project: Project):
            activity = project.last_activity.timestamp() if project.last_activity else 0.0
            return (not project.favorite, -activity, project.id)

        return sorted(self._projects.values(), key=sort_key)

    def pipelines_for(self, project_id: int) -> list[Pipeline]:
        """Pipelines of a project, newest first."""
        return sorted(
            (p for p in self._pipelines.values() if p.project_id == project_id),
            key=lambda p: p.id,
            reverse=True,
        )

    def jobs_for(self, pipeline_id: int) -> list[Job]:
        """Jobs of a pipeline in remote stage order."""
        pipeline = self._pipelines.get(pipeline_id)
        if pipeline is None:
            return []
        return [self._jobs[job_id] for job_id in pipeline.job_ids if job_id in self._jobs]

    def has_entity(self, event: DomainEvent) -> bool:
        """Whether the entity a status event refers to is still held."""
        if isinstance(event, PipelineStatusChanged):
            return event.pipeline_id in self._pipelines
        if isinstance(event, JobStatusChanged):
            return event.job_id in self._jobs
        return True
