from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from .models import BrowsingMode, Mode, UploadPathEntry


class Action(str, Enum):
    SELECT_DOWN = "select_down"
    SELECT_UP = "select_up"
    PAGE_DOWN = "page_down"
    PAGE_UP = "page_up"
    FIRST = "first"
    LAST = "last"
    ENTER = "enter"
    BACK = "back"
    DOWNLOAD = "download"
    UPLOAD = "upload"
    REFRESH = "refresh"
    QUIT = "quit"
    INPUT_BACKSPACE = "input_backspace"
    INPUT_SUBMIT = "input_submit"
    INPUT_CANCEL = "input_cancel"


@dataclass(frozen=True)
class TypeChar:
    char: str


type Command = Action | TypeChar

BROWSING_KEYS: dict[str, Action] = {
    "j": Action.SELECT_DOWN,
    "down": Action.SELECT_DOWN,
    "k": Action.SELECT_UP,
    "up": Action.SELECT_UP,
    "pagedown": Action.PAGE_DOWN,
    "pageup": Action.PAGE_UP,
    "home": Action.FIRST,
    "g": Action.FIRST,
    "end": Action.LAST,
    "G": Action.LAST,
    "l": Action.ENTER,
    "enter": Action.ENTER,
    "right": Action.ENTER,
    "h": Action.BACK,
    "backspace": Action.BACK,
    "left": Action.BACK,
    "d": Action.DOWNLOAD,
    "u": Action.UPLOAD,
    "r": Action.REFRESH,
    "q": Action.QUIT,
    "ctrl+c": Action.QUIT,
}

UPLOAD_ENTRY_KEYS: dict[str, Action] = {
    "enter": Action.INPUT_SUBMIT,
    "escape": Action.INPUT_CANCEL,
    "backspace": Action.INPUT_BACKSPACE,
    "ctrl+h": Action.INPUT_BACKSPACE,
}

# (key, description) pairs shown in the help line.
BROWSING_HELP: list[tuple[str, str]] = [
    ("j/k", "move"),
    ("l/enter", "open"),
    ("h", "back"),
    ("d", "download"),
    ("u", "upload"),
    ("r", "refresh"),
    ("q", "quit"),
]

UPLOAD_ENTRY_HELP: list[tuple[str, str]] = [
    ("enter", "upload"),
    ("esc", "cancel"),
]


def _browsing_command(key: str, character: str | None) -> Command | None:
    action = BROWSING_KEYS.get(key)
    if action is None and character:
        action = BROWSING_KEYS.get(character)
    return action


def _upload_entry_command(key: str, character: str | None) -> Command | None:
    action = UPLOAD_ENTRY_KEYS.get(key)
    if action is not None:
        return action
    if character and len(character) == 1 and character.isprintable():
        return TypeChar(character)
    return None


_RESOLVERS: dict[type, Callable[[str, str | None], Command | None]] = {
    BrowsingMode: _browsing_command,
    UploadPathEntry: _upload_entry_command,
}


def resolve(mode: Mode, key: str, character: str | None = None) -> Command | None:
    """Translate a terminal key into a command for the active mode."""
    return _RESOLVERS[type(mode)](key, character)


def help_for(mode: Mode) -> list[tuple[str, str]]:
    if isinstance(mode, UploadPathEntry):
        return UPLOAD_ENTRY_HELP
    return BROWSING_HELP
