"""Decides which visual effects to start for domain events and mode changes.

Rendering the effects is the backend's job. This module only owns the
mapping from what happened to (kind, target, duration) requests and the
lifecycle of the resulting handles: one handle per row, newest wins.
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional, Protocol

from .models import DomainEvent, JobStatusChanged, PipelineStatusChanged, Status
from .state import Mode, Transition

logger = logging.getLogger(__name__)


class EffectKind(str, Enum):
    SUCCESS_FLASH = "success"
    FAILURE_FLASH = "failure"
    SEARCH_PULSE = "search_pulse"
    MODAL_APPEAR = "modal_appear"


SEARCH_TARGET = "search"
MODAL_TARGET = "modal"

# Status a row transitions into -> (effect, seconds)
STATUS_EFFECTS: dict[Status, tuple[EffectKind, float]] = {
    Status.SUCCESS: (EffectKind.SUCCESS_FLASH, 1.5),
    Status.FAILED: (EffectKind.FAILURE_FLASH, 2.5),
}

# Mode being entered -> (effect, target, seconds)
MODE_EFFECTS: dict[Mode, tuple[EffectKind, str, float]] = {
    Mode.SEARCH: (EffectKind.SEARCH_PULSE, SEARCH_TARGET, 0.8),
    Mode.CONFIRM_ACTION: (EffectKind.MODAL_APPEAR, MODAL_TARGET, 0.3),
    Mode.HELP: (EffectKind.MODAL_APPEAR, MODAL_TARGET, 0.3),
}


def pipeline_row(pipeline_id: int) -> str:
    return f"pipeline:{pipeline_id}"


def job_row(job_id: int) -> str:
    return f"job:{job_id}"


@dataclass(frozen=True)
class EffectRequest:
    kind: EffectKind
    target: str
    duration: float


@dataclass
class EffectHandle:
    id: int
    request: EffectRequest
    started_at: float
    cancelled: bool = False

    @property
    def expires_at(self) -> float:
        return self.started_at + self.request.duration

    def progress(self, now: float) -> float:
        """Fraction of the effect that has elapsed, in [0, 1]."""
        if self.request.duration <= 0:
            return 1.0
        return min(1.0, max(0.0, (now - self.started_at) / self.request.duration))


class EffectsBackend(Protocol):
    def start(self, handle: EffectHandle) -> None:
        ...

    def cancel(self, handle: EffectHandle) -> None:
        ...


class NullBackend:
    """Backend for headless use: effects exist only as handles."""

    def start(self, handle: EffectHandle) -> None:
        logger.debug("effect %s on %s", handle.request.kind.value, handle.request.target)

    def cancel(self, handle: EffectHandle) -> None:
        pass


class EffectOrchestrator:
    """Turns events into effect requests and tracks the active handles.

    Args:
        handles: Row id -> active handle; normally AppState.active_effects
        backend: Receives started and cancelled handles
        enabled: False turns every trigger into a no-op
    """

    def __init__(
        self,
        handles: dict,
        backend: Optional[EffectsBackend] = None,
        enabled: bool = True,
    ) -> None:
        self.handles = handles
        self.backend = backend or NullBackend()
        self.enabled = enabled
        self._ids = itertools.count(1)

    def on_domain_events(self, events: Iterable[DomainEvent], now: float) -> None:
        for event in events:
            if isinstance(event, PipelineStatusChanged):
                self._status_effect(pipeline_row(event.pipeline_id), event.new, now)
            elif isinstance(event, JobStatusChanged):
                self._status_effect(job_row(event.job_id), event.new, now)

    def on_transition(self, transition: Optional[Transition], now: float) -> None:
        if transition is None or transition.target is transition.source:
            return
        rule = MODE_EFFECTS.get(transition.target)
        if rule is not None:
            kind, target, duration = rule
            self.trigger(EffectRequest(kind, target, duration), now)

    def _status_effect(self, row: str, status: Status, now: float) -> None:
        rule = STATUS_EFFECTS.get(status)
        if rule is not None:
            kind, duration = rule
            self.trigger(EffectRequest(kind, row, duration), now)

    def trigger(self, request: EffectRequest, now: float) -> Optional[EffectHandle]:
        """Start an effect, superseding whatever is running on the same target."""
        if not self.enabled:
            return None
        previous = self.handles.pop(request.target, None)
        if previous is not None:
            self._cancel(previous)
        handle = EffectHandle(id=next(self._ids), request=request, started_at=now)
        self.handles[request.target] = handle
        self.backend.start(handle)
        return handle

    def expire(self, now: float) -> None:
        """Drop handles whose duration has elapsed."""
        for target in [t for t, h in self.handles.items() if now >= h.expires_at]:
            del self.handles[target]

    def clear(self) -> None:
        for handle in list(self.handles.values()):
            self._cancel(handle)
        self.handles.clear()

    def _cancel(self, handle: EffectHandle) -> None:
        handle.cancelled = True
        self.backend.cancel(handle)
