"""UI state machine: interaction mode, search filter and row selection.

Modes form a closed set and every input is routed through TRANSITIONS,
keyed by (mode, input kind). Inputs without an entry for the current mode
are ignored.

Selection is kept both as an index into the visible list and as the id it
points at, so that a row keeps its selection when the list is re-sorted and
a vanished row hands the selection to its nearest neighbour.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from .models import Pipeline, Project
from .notices import NoticeBoard
from .store import DomainStore


class Mode(str, Enum):
    NORMAL = "normal"
    SEARCH = "search"
    CONFIRM_ACTION = "confirm_action"
    HELP = "help"


class PendingAction(str, Enum):
    """Actions that need confirmation before they run."""

    RELOAD = "reload"
    CLEAR_FILTER = "clear_filter"


ACTION_PROMPTS = {
    PendingAction.RELOAD: "Reload configuration and refetch everything?",
    PendingAction.CLEAR_FILTER: "Clear the project filter?",
}


class InputKind(str, Enum):
    NEXT_PROJECT = "next_project"
    PREVIOUS_PROJECT = "previous_project"
    NEXT_PIPELINE = "next_pipeline"
    PREVIOUS_PIPELINE = "previous_pipeline"
    START_SEARCH = "start_search"
    CHAR = "char"
    BACKSPACE = "backspace"
    ACCEPT = "accept"
    CANCEL = "cancel"
    TOGGLE_HELP = "toggle_help"
    REQUEST_ACTION = "request_action"
    CONFIRM = "confirm"
    REFRESH = "refresh"
    TOGGLE_LOGS = "toggle_logs"
    SHOW_LAST_NOTICE = "show_last_notice"


@dataclass(frozen=True)
class UserInput:
    kind: InputKind
    text: str = ""
    action: Optional[PendingAction] = None


@dataclass(frozen=True)
class Transition:
    """A mode change, or an action that ran on confirmation."""

    source: Mode
    target: Mode
    executed: Optional[PendingAction] = None


TRANSITIONS: dict[tuple[Mode, InputKind], str] = {
    (Mode.NORMAL, InputKind.NEXT_PROJECT): "_next_project",
    (Mode.NORMAL, InputKind.PREVIOUS_PROJECT): "_previous_project",
    (Mode.NORMAL, InputKind.NEXT_PIPELINE): "_next_pipeline",
    (Mode.NORMAL, InputKind.PREVIOUS_PIPELINE): "_previous_pipeline",
    (Mode.NORMAL, InputKind.START_SEARCH): "_start_search",
    (Mode.NORMAL, InputKind.REQUEST_ACTION): "_request_action",
    (Mode.NORMAL, InputKind.TOGGLE_LOGS): "_toggle_logs",
    (Mode.NORMAL, InputKind.SHOW_LAST_NOTICE): "_show_last_notice",
    (Mode.NORMAL, InputKind.TOGGLE_HELP): "_enter_help",
    (Mode.SEARCH, InputKind.CHAR): "_type_char",
    (Mode.SEARCH, InputKind.BACKSPACE): "_backspace",
    (Mode.SEARCH, InputKind.ACCEPT): "_accept_search",
    (Mode.SEARCH, InputKind.CANCEL): "_cancel_search",
    (Mode.SEARCH, InputKind.TOGGLE_HELP): "_enter_help",
    (Mode.CONFIRM_ACTION, InputKind.CONFIRM): "_confirm",
    (Mode.CONFIRM_ACTION, InputKind.CANCEL): "_cancel_confirm",
    (Mode.CONFIRM_ACTION, InputKind.TOGGLE_HELP): "_enter_help",
    (Mode.HELP, InputKind.TOGGLE_HELP): "_leave_help",
    (Mode.HELP, InputKind.CANCEL): "_leave_help",
}


def _reselect(ids: list[int], index: Optional[int], selected_id: Optional[int]) -> tuple[Optional[int], Optional[int]]:
    if not ids:
        return None, None
    if selected_id in ids:
        position = ids.index(selected_id)
    elif index is None:
        position = 0
    else:
        position = min(index, len(ids) - 1)
    return position, ids[position]


@dataclass
class AppState:
    mode: Mode = Mode.NORMAL
    query: str = ""
    pending_action: Optional[PendingAction] = None
    filter: str = ""
    selected_project_index: Optional[int] = None
    selected_project_id: Optional[int] = None
    selected_pipeline_index: Optional[int] = None
    selected_pipeline_id: Optional[int] = None
    show_logs: bool = False
    active_effects: dict[str, Any] = field(default_factory=dict)
    notices: NoticeBoard = field(default_factory=NoticeBoard)
    _help_return: Optional[Mode] = field(default=None, repr=False)
    # project whose pipelines the pipeline selection refers to
    _pipelines_of: Optional[int] = field(default=None, repr=False)

    # -- input --------------------------------------------------------------

    def handle_input(self, user_input: UserInput, store: DomainStore) -> Optional[Transition]:
        """Apply one input. Returns the transition it caused, if any."""
        handler = TRANSITIONS.get((self.mode, user_input.kind))
        if handler is None:
            return None
        source = self.mode
        executed = getattr(self, handler)(user_input)
        self.reclamp(store)
        if self.mode is source and executed is None:
            return None
        return Transition(source, self.mode, executed)

    def _next_project(self, _input: UserInput) -> None:
        self._move_project(+1)

    def _previous_project(self, _input: UserInput) -> None:
        self._move_project(-1)

    def _next_pipeline(self, _input: UserInput) -> None:
        self._move_pipeline(+1)

    def _previous_pipeline(self, _input: UserInput) -> None:
        self._move_pipeline(-1)

    def _start_search(self, _input: UserInput) -> None:
        self.query = ""
        self.mode = Mode.SEARCH

    def _type_char(self, user_input: UserInput) -> None:
        self.query += user_input.text

    def _backspace(self, _input: UserInput) -> None:
        self.query = self.query[:-1]

    def _accept_search(self, _input: UserInput) -> None:
        self.filter = self.query.strip()
        self.query = ""
        self.mode = Mode.NORMAL

    def _cancel_search(self, _input: UserInput) -> None:
        self.query = ""
        self.mode = Mode.NORMAL

    def _request_action(self, user_input: UserInput) -> None:
        if user_input.action is None:
            return
        self.pending_action = user_input.action
        self.mode = Mode.CONFIRM_ACTION

    def _confirm(self, _input: UserInput) -> Optional[PendingAction]:
        action = self.pending_action
        self.pending_action = None
        self.mode = Mode.NORMAL
        if action is PendingAction.CLEAR_FILTER:
            self.filter = ""
        return action

    def _cancel_confirm(self, _input: UserInput) -> None:
        self.pending_action = None
        self.mode = Mode.NORMAL

    def _toggle_logs(self, _input: UserInput) -> None:
        self.show_logs = not self.show_logs

    def _show_last_notice(self, _input: UserInput) -> None:
        self.notices.replay_last()

    def _enter_help(self, _input: UserInput) -> None:
        self._help_return = self.mode
        self.mode = Mode.HELP

    def _leave_help(self, _input: UserInput) -> None:
        self.mode = self._help_return or Mode.NORMAL
        self._help_return = None

    # -- selection ----------------------------------------------------------

    def _move_project(self, delta: int) -> None:
        if self.selected_project_index is None:
            return
        self.selected_project_index = max(0, self.selected_project_index + delta)
        self.selected_project_id = None

    def _move_pipeline(self, delta: int) -> None:
        if self.selected_pipeline_index is None:
            return
        self.selected_pipeline_index = max(0, self.selected_pipeline_index + delta)
        self.selected_pipeline_id = None

    def reclamp(self, store: DomainStore) -> None:
        """Bring both selections back in range of the current lists."""
        project_ids = [p.id for p in self.visible_projects(store)]
        self.selected_project_index, self.selected_project_id = _reselect(
            project_ids, self.selected_project_index, self.selected_project_id,
        )
        if self.selected_project_id != self._pipelines_of:
            self._pipelines_of = self.selected_project_id
            self.selected_pipeline_index = None
            self.selected_pipeline_id = None

        pipeline_ids = [p.id for p in self.visible_pipelines(store)]
        self.selected_pipeline_index, self.selected_pipeline_id = _reselect(
            pipeline_ids, self.selected_pipeline_index, self.selected_pipeline_id,
        )

    def reset(self) -> None:
        """Forget selection, prompts and notices (server or token changed)."""
        self.mode = Mode.NORMAL
        self.query = ""
        self.pending_action = None
        self._help_return = None
        self._pipelines_of = None
        self.selected_project_index = None
        self.selected_project_id = None
        self.selected_pipeline_index = None
        self.selected_pipeline_id = None
        self.notices.clear()

    # -- views --------------------------------------------------------------

    @property
    def searching(self) -> bool:
        """True while a search is being typed, including help opened from it."""
        return self.mode is Mode.SEARCH or (
            self.mode is Mode.HELP and self._help_return is Mode.SEARCH
        )

    @property
    def active_filter(self) -> str:
        """The live query while searching, otherwise the committed filter."""
        return self.query if self.searching else self.filter

    def visible_projects(self, store: DomainStore) -> list[Project]:
        needle = self.active_filter.strip().lower()
        projects = store.projects()
        if not needle:
            return projects
        return [p for p in projects if needle in p.path.lower() or needle in p.name.lower()]

    def visible_pipelines(self, store: DomainStore) -> list[Pipeline]:
        if self.selected_project_id is None:
            return []
        return store.pipelines_for(self.selected_project_id)

    def selected_project(self, store: DomainStore) -> Optional[Project]:
        if self.selected_project_id is None:
            return None
        return store.get_project(self.selected_project_id)

    def selected_pipeline(self, store: DomainStore) -> Optional[Pipeline]:
        if self.selected_pipeline_id is None:
            return None
        return store.get_pipeline(self.selected_pipeline_id)
