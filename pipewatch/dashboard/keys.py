"""Key handling: translate Textual key events into dispatcher inputs.

Printable keys are matched on the character so that shifted letters work
regardless of how the terminal names them; everything else on the key name.
"""

from __future__ import annotations

from typing import Optional

from ..state import InputKind, Mode, PendingAction, UserInput

QUIT_KEYS = {"q", "ctrl+c"}

NORMAL_CHARS = {
    "j": UserInput(InputKind.NEXT_PROJECT),
    "k": UserInput(InputKind.PREVIOUS_PROJECT),
    "l": UserInput(InputKind.NEXT_PIPELINE),
    "h": UserInput(InputKind.PREVIOUS_PIPELINE),
    "/": UserInput(InputKind.START_SEARCH),
    "?": UserInput(InputKind.TOGGLE_HELP),
    "r": UserInput(InputKind.REFRESH),
    "x": UserInput(InputKind.REQUEST_ACTION, action=PendingAction.CLEAR_FILTER),
    "L": UserInput(InputKind.TOGGLE_LOGS),
    "a": UserInput(InputKind.SHOW_LAST_NOTICE),
}

NORMAL_KEYS = {
    "down": UserInput(InputKind.NEXT_PROJECT),
    "up": UserInput(InputKind.PREVIOUS_PROJECT),
    "right": UserInput(InputKind.NEXT_PIPELINE),
    "left": UserInput(InputKind.PREVIOUS_PIPELINE),
    "f1": UserInput(InputKind.TOGGLE_HELP),
    "f5": UserInput(InputKind.REFRESH),
    "ctrl+r": UserInput(InputKind.REQUEST_ACTION, action=PendingAction.RELOAD),
}

SEARCH_KEYS = {
    "enter": UserInput(InputKind.ACCEPT),
    "escape": UserInput(InputKind.CANCEL),
    "backspace": UserInput(InputKind.BACKSPACE),
    "f1": UserInput(InputKind.TOGGLE_HELP),
}

CONFIRM_KEYS = {
    "y": UserInput(InputKind.CONFIRM),
    "enter": UserInput(InputKind.CONFIRM),
    "n": UserInput(InputKind.CANCEL),
    "escape": UserInput(InputKind.CANCEL),
    "?": UserInput(InputKind.TOGGLE_HELP),
    "f1": UserInput(InputKind.TOGGLE_HELP),
}

HELP_KEYS = {
    "?": UserInput(InputKind.TOGGLE_HELP),
    "f1": UserInput(InputKind.TOGGLE_HELP),
    "escape": UserInput(InputKind.CANCEL),
}

HELP_TEXT = """\
 Navigation
   j / ↓      next project          k / ↑      previous project
   l / →      next pipeline         h / ←      previous pipeline

 Search
   /          filter projects       enter      keep filter
   esc        cancel search         x          clear filter

 Other
   r / F5     refresh now           ctrl+r     reload configuration
   L          toggle log panel      a          show last notice
   ? / F1     toggle this help      q          quit
"""


def is_quit(key: str, mode: Mode) -> bool:
    """Quit keys work everywhere except while typing a search."""
    if key == "ctrl+c":
        return True
    return key in QUIT_KEYS and mode is not Mode.SEARCH


def translate_key(key: str, character: Optional[str], mode: Mode) -> Optional[UserInput]:
    """Map a key press to an input for the current mode, or None to ignore it."""
    if mode is Mode.SEARCH:
        if key in SEARCH_KEYS:
            return SEARCH_KEYS[key]
        if character and character.isprintable():
            return UserInput(InputKind.CHAR, text=character)
        return None
    if mode is Mode.CONFIRM_ACTION:
        return CONFIRM_KEYS.get(key) or CONFIRM_KEYS.get(character or "")
    if mode is Mode.HELP:
        return HELP_KEYS.get(key) or HELP_KEYS.get(character or "")
    if key in NORMAL_KEYS:
        return NORMAL_KEYS[key]
    if character:
        return NORMAL_CHARS.get(character)
    return None
