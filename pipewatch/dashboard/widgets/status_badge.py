"""Status badges for pipeline and job rows."""

from __future__ import annotations

from typing import Optional

from rich.text import Text

from ...effects import EffectHandle, EffectKind
from ...models import Status

SPINNER_FRAMES = "⠋⠙⠹⠸⠼⠴⠦⠧⠇⠏"

FLASH_STYLES = {
    EffectKind.SUCCESS_FLASH: "bold black on green",
    EffectKind.FAILURE_FLASH: "bold white on red",
}


def _badge_for(status: Optional[Status]) -> tuple[str, str]:
    """Return (badge_text, style) for a status.

    - running            → "RUN"   (blue, spinner prefix)
    - created/pending... → "WAIT"  (yellow)
    - success            → "OK"    (green)
    - failed             → "FAIL"  (red)
    - canceled/canceling → "CANC"  (magenta)
    - skipped/manual/... → "SKIP" / "MAN" / "SCHED" (dim)
    """
    if status is None:
        return "-", "dim"
    if status is Status.RUNNING:
        return "RUN", "bold blue"
    if status.is_active:
        return "WAIT", "yellow"
    if status is Status.SUCCESS:
        return "OK", "green"
    if status is Status.FAILED:
        return "FAIL", "bold red"
    if status in (Status.CANCELED, Status.CANCELING):
        return "CANC", "magenta"
    if status is Status.MANUAL:
        return "MAN", "dim"
    if status is Status.SCHEDULED:
        return "SCHED", "dim"
    if status is Status.SKIPPED:
        return "SKIP", "dim"
    return "?", "dim"


def status_badge(
    status: Optional[Status],
    frame: int = 0,
    effect: Optional[EffectHandle] = None,
    now: float = 0.0,
) -> Text:
    """Badge text for a table cell.

    While a flash effect is active the badge blinks between the flash style
    and its normal style.
    """
    text, style = _badge_for(status)
    if status is Status.RUNNING:
        text = f"{SPINNER_FRAMES[frame % len(SPINNER_FRAMES)]} {text}"
    if effect is not None and effect.request.kind in FLASH_STYLES:
        if int(effect.progress(now) * 6) % 2 == 0:
            style = FLASH_STYLES[effect.request.kind]
    return Text(f" {text} ", style=style)
