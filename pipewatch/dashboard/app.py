"""Pipewatch dashboard: Textual TUI app.

The app owns no state of its own. Keys are translated and queued on the
dispatcher, and a frame timer redraws whatever the dispatcher's store and UI
state currently hold.

Launch with: python -m pipewatch
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from rich.table import Table
from rich.text import Text
from textual import events, work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.css.query import NoMatches
from textual.widgets import DataTable, Header, Static

from ..client import RemoteClient
from ..config import DashboardConfig
from ..dispatcher import Dispatcher, build_client
from ..effects import MODAL_TARGET, SEARCH_TARGET, EffectHandle, job_row, pipeline_row
from ..logs import get_ring_handler
from ..models import Job, Status
from ..notices import NoticeLevel
from ..state import ACTION_PROMPTS, Mode
from .keys import HELP_TEXT, is_quit, translate_key
from .utils import format_age, format_duration
from .widgets.status_badge import status_badge

logger = logging.getLogger(__name__)

FRAME_INTERVAL = 1 / 15
LOG_LINES = 12

# Effect target -> widget id animated for it
ANIMATED_WIDGETS = {
    SEARCH_TARGET: "#search",
    MODAL_TARGET: "#overlay",
}


class TextualEffects:
    """Effects backend that fades widgets in with Textual's animator.

    Row flashes need no animation of their own: the status badge reads the
    active handle on every frame.
    """

    def __init__(self, app: App) -> None:
        self.app = app

    def start(self, handle: EffectHandle) -> None:
        selector = ANIMATED_WIDGETS.get(handle.request.target)
        if selector is None:
            return
        try:
            widget = self.app.query_one(selector)
        except NoMatches:
            return
        widget.styles.opacity = 0.2
        widget.styles.animate("opacity", value=1.0, duration=handle.request.duration)

    def cancel(self, handle: EffectHandle) -> None:
        # the next start on the same widget replaces the running animation
        pass


class PipewatchApp(App):
    """Projects on the left, pipelines and jobs of the selection on the right.

    Keys are routed through the dispatcher rather than Textual bindings so
    that every mode sees the same input path.
    """

    TITLE = "Pipewatch"

    CSS = """
    #banner { height: 1; padding: 0 1; }
    #banner.error { background: $error; color: $text; }
    #main { height: 1fr; }
    #projects { width: 2fr; }
    #detail { width: 3fr; }
    #pipelines { height: 1fr; }
    #jobs { height: 1fr; padding: 0 1; border-top: solid $primary; }
    #search { height: 1; padding: 0 1; background: $boost; }
    #overlay {
        layer: overlay;
        dock: top;
        margin: 4 8;
        padding: 1 2;
        border: thick $accent;
        background: $panel;
        display: none;
    }
    #logs { height: 14; border-top: solid $secondary; display: none; }
    #hints { height: 1; padding: 0 1; color: $text-muted; }
    Screen { layers: base overlay; }
    """

    BINDINGS = [
        Binding("ctrl+c", "quit_dashboard", "Quit", show=False, priority=True),
    ]

    def __init__(
        self,
        config: DashboardConfig,
        config_loader: Optional[Callable[[], DashboardConfig]] = None,
        client_factory: Callable[[DashboardConfig], RemoteClient] = build_client,
        **kwargs: object,
    ) -> None:
        super().__init__(**kwargs)
        self._config = config
        self._config_loader = config_loader
        self._client_factory = client_factory
        self._dispatcher: Optional[Dispatcher] = None
        self._frame = 0
        self._signatures: dict[str, tuple] = {}

    @property
    def dispatcher(self) -> Dispatcher:
        assert self._dispatcher is not None, "dispatcher starts on mount"
        return self._dispatcher

    def compose(self) -> ComposeResult:
        yield Header()
        yield Static("", id="banner")
        with Horizontal(id="main"):
            yield DataTable(id="projects", cursor_type="row", zebra_stripes=True)
            with Vertical(id="detail"):
                yield DataTable(id="pipelines", cursor_type="row")
                yield Static("", id="jobs")
        yield Static("", id="search")
        yield Static("", id="logs")
        yield Static("", id="hints")
        yield Static("", id="overlay")

    def on_mount(self) -> None:
        projects = self.query_one("#projects", DataTable)
        projects.add_columns("", "Project", "Status", "Activity")
        pipelines = self.query_one("#pipelines", DataTable)
        pipelines.add_columns("Pipeline", "Ref", "Status", "Age", "Duration")
        # Keys must reach on_key, never the tables' own cursor bindings
        projects.can_focus = False
        pipelines.can_focus = False

        self._dispatcher = Dispatcher(
            self._config,
            self._client_factory,
            config_loader=self._config_loader,
            effects_backend=TextualEffects(self),
        )
        self.sub_title = self._config.server_url
        self._run_dispatcher()
        self.set_interval(FRAME_INTERVAL, self._render_frame)

    @work(exclusive=True, group="dispatcher")
    async def _run_dispatcher(self) -> None:
        await self.dispatcher.run()
        logger.info("Dispatcher finished; closing the dashboard")
        self.exit()

    async def on_key(self, event: events.Key) -> None:
        if self._dispatcher is None:
            return
        mode = self.dispatcher.state.mode
        if is_quit(event.key, mode):
            event.stop()
            self.dispatcher.request_quit()
            return
        user_input = translate_key(event.key, event.character, mode)
        if user_input is None:
            return
        event.stop()
        await self.dispatcher.send_input(user_input)

    def action_quit_dashboard(self) -> None:
        if self._dispatcher is None:
            self.exit()
            return
        self.dispatcher.request_quit()

    # -- rendering ----------------------------------------------------------

    def _render_frame(self) -> None:
        if self._dispatcher is None:
            return
        self._frame += 1
        now = self.dispatcher.clock()
        try:
            self._render_banner()
            self._render_subtitle()
            self._render_projects()
            self._render_pipelines(now)
            self._render_jobs(now)
            self._render_search()
            self._render_overlay()
            self._render_logs()
            self._render_hints()
        except NoMatches:
            # the app is shutting down and widgets are gone
            pass

    def _changed(self, name: str, signature: tuple) -> bool:
        if self._signatures.get(name) == signature:
            return False
        self._signatures[name] = signature
        return True

    def _render_banner(self) -> None:
        notice = self.dispatcher.state.notices.banner
        banner = self.query_one("#banner", Static)
        if notice is None:
            banner.update("")
            banner.remove_class("error")
            return
        banner.set_class(notice.level is NoticeLevel.ERROR, "error")
        banner.update(Text(notice.message))

    def _render_subtitle(self) -> None:
        project = self.dispatcher.state.selected_project(self.dispatcher.store)
        subtitle = (project.web_url or project.path) if project else ""
        if self.sub_title != subtitle:
            self.sub_title = subtitle

    def _render_projects(self) -> None:
        state, store = self.dispatcher.state, self.dispatcher.store
        projects = state.visible_projects(store)
        rows = [
            (
                "★" if p.favorite else "",
                p.path,
                status_badge(p.last_pipeline_status),
                format_age(p.last_activity),
            )
            for p in projects
        ]
        signature = tuple((p.id, r[0], r[1], p.last_pipeline_status, r[3]) for p, r in zip(projects, rows))
        table = self.query_one("#projects", DataTable)
        if self._changed("projects", signature):
            table.clear()
            for project, row in zip(projects, rows):
                table.add_row(*row, key=str(project.id))
        if state.selected_project_index is not None and table.row_count:
            table.move_cursor(row=state.selected_project_index)

    def _render_pipelines(self, now: float) -> None:
        state, store = self.dispatcher.state, self.dispatcher.store
        pipelines = state.visible_pipelines(store)
        frame = self._frame if any(p.status is Status.RUNNING for p in pipelines) else 0
        effects = state.active_effects
        signature = (frame,) + tuple(
            (
                p.id,
                p.status,
                p.duration,
                format_age(p.created_at),
                effects.get(pipeline_row(p.id)) is not None,
            )
            for p in pipelines
        )
        table = self.query_one("#pipelines", DataTable)
        flashing = any(pipeline_row(p.id) in effects for p in pipelines)
        if self._changed("pipelines", signature) or flashing:
            table.clear()
            for pipeline in pipelines:
                table.add_row(
                    f"#{pipeline.id}",
                    pipeline.ref,
                    status_badge(pipeline.status, self._frame, effects.get(pipeline_row(pipeline.id)), now),
                    format_age(pipeline.created_at),
                    format_duration(pipeline.duration),
                    key=str(pipeline.id),
                )
        if state.selected_pipeline_index is not None and table.row_count:
            table.move_cursor(row=state.selected_pipeline_index)

    def _render_jobs(self, now: float) -> None:
        state, store = self.dispatcher.state, self.dispatcher.store
        jobs_widget = self.query_one("#jobs", Static)
        pipeline = state.selected_pipeline(store)
        if pipeline is None:
            jobs_widget.update(Text("No pipeline selected", style="dim"))
            return
        jobs = store.jobs_for(pipeline.id)
        if not jobs:
            message = "Loading jobs…" if pipeline.status.is_active or not pipeline.job_ids else "No jobs"
            jobs_widget.update(Text(message, style="dim"))
            return
        table = Table(
            box=None, expand=True, show_edge=False, pad_edge=False,
            caption=pipeline.web_url or None, caption_style="dim",
        )
        table.add_column("Stage", style="cyan", no_wrap=True)
        table.add_column("Job")
        table.add_column("Status", no_wrap=True)
        table.add_column("Duration", justify="right", no_wrap=True)
        for job in jobs:
            table.add_row(
                job.stage,
                job.name,
                status_badge(job.status, self._frame, state.active_effects.get(job_row(job.id)), now),
                format_duration(job_duration(job)),
            )
        jobs_widget.update(table)

    def _render_search(self) -> None:
        state = self.dispatcher.state
        search = self.query_one("#search", Static)
        if state.searching:
            search.display = True
            search.update(Text(f"/{state.query}▏", style="bold"))
        elif state.filter:
            search.display = True
            search.update(Text(f"filter: {state.filter}  (x to clear)", style="italic"))
        else:
            search.display = False

    def _render_overlay(self) -> None:
        state = self.dispatcher.state
        overlay = self.query_one("#overlay", Static)
        if state.mode is Mode.HELP:
            overlay.display = True
            if self._changed("overlay", ("help",)):
                overlay.update(Text(HELP_TEXT))
        elif state.mode is Mode.CONFIRM_ACTION and state.pending_action is not None:
            overlay.display = True
            if self._changed("overlay", ("confirm", state.pending_action)):
                overlay.update(Text(f"{ACTION_PROMPTS[state.pending_action]}  [y/n]", style="bold"))
        else:
            overlay.display = False
            self._signatures.pop("overlay", None)

    def _render_logs(self) -> None:
        logs = self.query_one("#logs", Static)
        logs.display = self.dispatcher.state.show_logs
        if not logs.display:
            return
        lines = get_ring_handler().lines()[-LOG_LINES:]
        if self._changed("logs", tuple(lines)):
            logs.update(Text("\n".join(lines)))

    def _render_hints(self) -> None:
        mode = self.dispatcher.state.mode
        hints = {
            Mode.NORMAL: "j/k projects  h/l pipelines  / search  r refresh  ? help  q quit",
            Mode.SEARCH: "type to filter  enter keep  esc cancel",
            Mode.CONFIRM_ACTION: "y confirm  n cancel",
            Mode.HELP: "? or esc to close",
        }[mode]
        if self._changed("hints", (hints,)):
            self.query_one("#hints", Static).update(Text(hints))


def job_duration(job: Job) -> Optional[float]:
    """Elapsed time of a job; running jobs count up to now."""
    if job.started_at is None:
        return None
    end = job.finished_at or datetime.now(timezone.utc)
    if job.started_at.tzinfo is None and end.tzinfo is not None:
        end = end.replace(tzinfo=None)
    return max(0.0, (end - job.started_at).total_seconds())
