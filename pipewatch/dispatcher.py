"""The dispatch loop: the only code that mutates the store and the UI state.

Four bounded queues feed one consumer:

    control  Quit / Reconfigure            (never dropped)
    input    UserInput from the terminal   (never dropped)
    fetch    FetchCompleted from fetchers  (never dropped)
    tick     Tick from the timer           (coalesced when one is pending)

When several are ready the consumer takes from them in that order. Each
event is handled by dispatch() without awaiting anything, so no two events
are ever interleaved mid-mutation.

Fetches run as asyncio tasks that call the blocking client in a worker
thread and hand their result back through the fetch queue. A generation
counter tags every fetch; completions from before a reconfiguration are
dropped on arrival.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

from .client import ClientError, GitLabClient, NetworkError, RemoteClient, Unauthorized
from .config import ConfigError, DashboardConfig
from .effects import EffectOrchestrator, EffectsBackend
from .models import (
    PROJECTS,
    DomainEvent,
    FetchFailed,
    PipelineStatusChanged,
    Resource,
    ResourceKind,
)
from .notices import NoticeLevel
from .scheduler import Scheduler
from .state import AppState, InputKind, Mode, PendingAction, UserInput
from .store import DomainStore, UnknownScopeError

logger = logging.getLogger(__name__)

TICK_INTERVAL = 0.25
QUEUE_SIZE = 64
SHUTDOWN_GRACE = 2.0


@dataclass(frozen=True)
class Quit:
    pass


@dataclass(frozen=True)
class Reconfigure:
    config: DashboardConfig


@dataclass(frozen=True)
class Tick:
    pass


@dataclass(frozen=True)
class FetchCompleted:
    resource: Resource
    generation: int
    items: Optional[list] = None
    error: Optional[ClientError] = None


def build_client(config: DashboardConfig) -> GitLabClient:
    return GitLabClient(
        config.server_url,
        config.token,
        timeout=config.request_timeout,
        per_page=config.per_page,
        pipelines_per_project=config.pipelines_per_project,
        favorites=config.favorites,
    )


def is_recently_active(last_activity: Optional[datetime], days: int) -> bool:
    if last_activity is None:
        return False
    if last_activity.tzinfo is None:
        last_activity = last_activity.replace(tzinfo=timezone.utc)
    return datetime.now(timezone.utc) - last_activity <= timedelta(days=days)


class Dispatcher:
    """Owns the store, the UI state, the scheduler and the effect orchestrator.

    Args:
        config: Server, token and polling settings
        client_factory: Builds the remote client for a config
        config_loader: Re-reads the configuration for the reload action
        effects_backend: Renders effect handles (the UI passes its own)
        clock: Monotonic time source shared by scheduler, effects and notices
    """

    def __init__(
        self,
        config: DashboardConfig,
        client_factory: Callable[[DashboardConfig], RemoteClient] = build_client,
        *,
        config_loader: Optional[Callable[[], DashboardConfig]] = None,
        effects_backend: Optional[EffectsBackend] = None,
        scheduler: Optional[Scheduler] = None,
        clock: Callable[[], float] = time.monotonic,
        tick_interval: float = TICK_INTERVAL,
        queue_size: int = QUEUE_SIZE,
        shutdown_grace: float = SHUTDOWN_GRACE,
    ) -> None:
        self.config = config
        self.store = DomainStore()
        self.state = AppState()
        self.scheduler = scheduler or Scheduler(max_interval=config.max_backoff)
        self.effects = EffectOrchestrator(
            self.state.active_effects,
            effects_backend,
            enabled=config.animations_enabled,
        )
        self.client = client_factory(config)
        self.generation = 0
        self.tick_interval = tick_interval
        self.shutdown_grace = shutdown_grace
        self._client_factory = client_factory
        self._config_loader = config_loader
        self.clock = clock
        self._control: asyncio.Queue = asyncio.Queue(maxsize=8)
        self._input: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self._fetched: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self._ticks: asyncio.Queue = asyncio.Queue(maxsize=1)
        self._wakeup = asyncio.Event()
        self._fetch_slots = asyncio.Semaphore(config.max_concurrent_fetches)
        self._tasks: set[asyncio.Task] = set()
        self._stopping = False

        self.scheduler.track(PROJECTS, config.refresh_interval, due=clock())

    # -- producers ----------------------------------------------------------

    async def send_input(self, user_input: UserInput) -> None:
        await self._put(self._input, user_input)

    async def reconfigure(self, config: DashboardConfig) -> None:
        await self._put(self._control, Reconfigure(config))

    def request_quit(self) -> None:
        try:
            self._control.put_nowait(Quit())
        except asyncio.QueueFull:
            logger.debug("Control queue full; quit request merged")
        self._wakeup.set()

    def post_tick(self) -> None:
        try:
            self._ticks.put_nowait(Tick())
        except asyncio.QueueFull:
            pass  # a tick is already pending
        self._wakeup.set()

    async def _put(self, queue: asyncio.Queue, item: Any) -> None:
        await queue.put(item)
        self._wakeup.set()

    # -- consumer -----------------------------------------------------------

    @property
    def running(self) -> bool:
        return not self._stopping

    async def run(self) -> None:
        """Consume events until a Quit is dispatched, then drain fetches."""
        ticker = asyncio.create_task(self._tick_loop())
        self.post_tick()
        logger.info("Dispatcher started for %s", self.config.server_url)
        try:
            while not self._stopping:
                event = self._next_event()
                if event is None:
                    self._wakeup.clear()
                    await self._wakeup.wait()
                    continue
                self.dispatch(event)
        finally:
            ticker.cancel()
            await self._drain()
            self._close_client(self.client)
            logger.info("Dispatcher stopped")

    def step(self) -> bool:
        """Dispatch the highest-priority ready event. Returns False if none was ready."""
        event = self._next_event()
        if event is None:
            return False
        self.dispatch(event)
        return True

    def _next_event(self) -> Any:
        for queue in (self._control, self._input, self._fetched, self._ticks):
            if not queue.empty():
                return queue.get_nowait()
        return None

    async def _tick_loop(self) -> None:
        while True:
            await asyncio.sleep(self.tick_interval)
            self.post_tick()

    async def _drain(self) -> None:
        if not self._tasks:
            return
        logger.info("Waiting for %d in-flight fetch(es)", len(self._tasks))
        _done, pending = await asyncio.wait(set(self._tasks), timeout=self.shutdown_grace)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    def dispatch(self, event: Any) -> list[DomainEvent]:
        """Apply one event. Returns the domain events routed to UI and effects.

        A failing handler discards its event; the loop keeps running.
        """
        logger.debug("dispatch %r", event)
        try:
            if isinstance(event, Quit):
                self._stopping = True
            elif isinstance(event, Reconfigure):
                self._reconfigure(event.config)
            elif isinstance(event, UserInput):
                self._on_input(event)
            elif isinstance(event, FetchCompleted):
                return self._on_fetch_completed(event)
            elif isinstance(event, Tick):
                self._on_tick()
            else:
                logger.error("Discarding unknown event %r", event)
        except Exception:
            logger.exception("Discarding event after handler failure: %r", event)
        return []

    # -- handlers -----------------------------------------------------------

    def _on_input(self, user_input: UserInput) -> None:
        now = self.clock()
        if user_input.kind is InputKind.REFRESH:
            if self.state.mode is Mode.NORMAL:
                logger.info("Manual refresh requested")
                self.scheduler.expedite(now)
            return

        previous_pipeline = self.state.selected_pipeline_id
        transition = self.state.handle_input(user_input, self.store)
        if self.state.selected_pipeline_id != previous_pipeline:
            self._ensure_jobs_loaded(now)
        if transition is None:
            return
        logger.info("mode %s -> %s", transition.source.value, transition.target.value)
        self.effects.on_transition(transition, now)
        if transition.executed is PendingAction.RELOAD:
            self._reload()

    def _on_tick(self) -> None:
        now = self.clock()
        self.effects.expire(now)
        self.state.notices.tick(now)
        if self._stopping:
            return
        for resource in sorted(self.scheduler.poll_due(now), key=str):
            self._start_fetch(resource)

    def _on_fetch_completed(self, event: FetchCompleted) -> list[DomainEvent]:
        resource = event.resource
        if event.generation != self.generation:
            logger.debug("Dropping stale completion for %s (generation %d)", resource, event.generation)
            return []
        if not self.scheduler.is_tracked(resource):
            logger.debug("Dropping completion for untracked %s", resource)
            return []

        now = self.clock()
        superseded = self.scheduler.refetch_pending(resource)
        if event.error is not None:
            self.scheduler.record_failure(resource, now, event.error)
            self._on_fetch_failed(FetchFailed(resource, event.error))
            return []

        try:
            events = self.store.apply_snapshot(resource.kind, event.items or [], resource.scope)
        except UnknownScopeError as e:
            logger.error("Discarding snapshot for %s: %s", resource, e)
            self.scheduler.untrack(resource)
            return []

        self.scheduler.record_success(resource, now)
        logger.info("received %d %s, %d change(s)", len(event.items or []), resource, len(events))
        self._update_tracking(resource, events, now, superseded)

        previous_pipeline = self.state.selected_pipeline_id
        self.state.reclamp(self.store)
        if self.state.selected_pipeline_id != previous_pipeline:
            self._ensure_jobs_loaded(now)

        routed = [e for e in events if self._is_consistent(e)]
        self.effects.on_domain_events(routed, now)
        return routed

    def _on_fetch_failed(self, failed: FetchFailed) -> None:
        error = failed.error
        if isinstance(error, Unauthorized):
            logger.error("Authentication failed for %s: %s", failed.resource, error)
            self.state.notices.set_auth_error(
                f"Authentication failed: {error}. Fix the token, then reload (ctrl+r)."
            )
            return
        logger.warning("Fetching %s failed: %s", failed.resource, error)
        self.state.notices.push(NoticeLevel.ERROR, f"Fetching {failed.resource} failed: {error}")

    def _is_consistent(self, event: DomainEvent) -> bool:
        if self.store.has_entity(event):
            return True
        logger.error("Discarding %r: entity is not in the store", event)
        return False

    # -- fetching -----------------------------------------------------------

    def _start_fetch(self, resource: Resource) -> None:
        call = self._fetch_call(resource)
        if call is None:
            logger.debug("Untracking %s: its owner is gone", resource)
            self.scheduler.untrack(resource)
            return
        task = asyncio.get_running_loop().create_task(self._fetch(resource, self.generation, call))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _fetch_call(self, resource: Resource) -> Optional[Callable[[], list]]:
        """Bind the client call for a resource; reads the store, so runs on the loop."""
        client = self.client
        if resource.kind is ResourceKind.PROJECTS:
            return client.fetch_projects
        if resource.kind is ResourceKind.PIPELINES:
            if self.store.get_project(resource.scope) is None:
                return None
            return functools.partial(client.fetch_pipelines, resource.scope)
        pipeline = self.store.get_pipeline(resource.scope)
        if pipeline is None:
            return None
        return functools.partial(client.fetch_jobs, pipeline.project_id, pipeline.id)

    async def _fetch(self, resource: Resource, generation: int, call: Callable[[], list]) -> None:
        items: Optional[list] = None
        error: Optional[ClientError] = None
        # jobs take two requests; each is bounded by the client's own timeout
        timeout = self.config.request_timeout * 2
        async with self._fetch_slots:
            try:
                items = await asyncio.wait_for(asyncio.to_thread(call), timeout=timeout)
            except asyncio.TimeoutError:
                error = NetworkError(f"Fetching {resource} timed out after {timeout:g}s")
            except ClientError as e:
                error = e
            except Exception as e:
                logger.exception("Unexpected error fetching %s", resource)
                error = ClientError(f"Unexpected error: {e}")
        await self._put(self._fetched, FetchCompleted(resource, generation, items, error))

    def _close_client(self, client: RemoteClient) -> None:
        try:
            client.close()
        except Exception:
            logger.exception("Closing the client failed")

    def _update_tracking(
        self, resource: Resource, events: list[DomainEvent], now: float, superseded: bool = False,
    ) -> None:
        """Start or stop polling child resources after a successful fetch.

        `superseded` marks a result whose fetch started before a refresh was
        requested for it; such a result never ends job polling.
        """
        config = self.config
        if resource.kind is ResourceKind.PROJECTS:
            for project in self.store.projects():
                if is_recently_active(project.last_activity, config.active_window_days):
                    self.scheduler.track(
                        Resource(ResourceKind.PIPELINES, project.id), config.refresh_interval, due=now,
                    )
        elif resource.kind is ResourceKind.PIPELINES:
            for pipeline in self.store.pipelines_for(resource.scope):
                if pipeline.status.is_active:
                    self.scheduler.track(Resource(ResourceKind.JOBS, pipeline.id), config.jobs_interval, due=now)
            for event in events:
                if isinstance(event, PipelineStatusChanged) and not event.new.is_active:
                    # one last jobs fetch to pick up final job states
                    jobs = Resource(ResourceKind.JOBS, event.pipeline_id)
                    self.scheduler.track(jobs, config.jobs_interval, due=now)
                    self.scheduler.refresh(jobs, now)
        elif resource.kind is ResourceKind.JOBS:
            pipeline = self.store.get_pipeline(resource.scope)
            if pipeline is None or (not pipeline.status.is_active and not superseded):
                self.scheduler.untrack(resource)

        self._prune_tracking()

    def _prune_tracking(self) -> None:
        for resource in self.scheduler.tracked():
            if resource.kind is ResourceKind.PIPELINES and self.store.get_project(resource.scope) is None:
                self.scheduler.untrack(resource)
            elif resource.kind is ResourceKind.JOBS and self.store.get_pipeline(resource.scope) is None:
                self.scheduler.untrack(resource)

    def _ensure_jobs_loaded(self, now: float) -> None:
        """Fetch jobs once for a newly selected pipeline that has none loaded."""
        pipeline = self.state.selected_pipeline(self.store)
        if pipeline is None or pipeline.job_ids:
            return
        self.scheduler.track(Resource(ResourceKind.JOBS, pipeline.id), self.config.jobs_interval, due=now)

    # -- configuration ------------------------------------------------------

    def _reload(self) -> None:
        if self._config_loader is None:
            self._reconfigure(self.config)
            return
        try:
            config = self._config_loader()
        except ConfigError as e:
            logger.error("Reload failed: %s", e)
            self.state.notices.push(NoticeLevel.ERROR, f"Reload failed: {e}")
            return
        self._reconfigure(config)

    def _reconfigure(self, config: DashboardConfig) -> None:
        """Start over against a (possibly different) server or token."""
        self.generation += 1
        for task in list(self._tasks):
            task.cancel()
        self.config = config
        self._close_client(self.client)
        self.client = self._client_factory(config)
        self.store.clear()
        self.scheduler.reset()
        self.scheduler.max_interval = config.max_backoff
        self.effects.clear()
        self.effects.enabled = config.animations_enabled
        self.state.reset()
        self.scheduler.track(PROJECTS, config.refresh_interval, due=self.clock())
        logger.info("Reconfigured for %s (generation %d)", config.server_url, self.generation)
