from __future__ import annotations

import re
import unicodedata
from collections.abc import Iterable
from pathlib import PurePath

from .models import Entry

MAX_NAME_BYTES = 255
REPLACEMENT = "_"
FALLBACK_NAME = "_"

_ILLEGAL_RE = re.compile(r'[<>:"/\\|?*\x00-\x1f\x7f]')
_RESERVED_NAMES = frozenset(
    {"CON", "PRN", "AUX", "NUL"}
    | {f"COM{idx}" for idx in range(1, 10)}
    | {f"LPT{idx}" for idx in range(1, 10)}
)


def _normalize_text(value: str) -> str:
    # Lone surrogates (undecodable bytes, or bad \uXXXX escapes in JSON) become U+FFFD.
    safe = value.encode("utf-8", "surrogatepass").decode("utf-8", "replace")
    return unicodedata.normalize("NFC", safe)


def _truncate_utf8(value: str, limit: int) -> str:
    encoded = value.encode("utf-8")
    if len(encoded) <= limit:
        return value
    return encoded[:limit].decode("utf-8", "ignore")


def _trim(value: str) -> str:
    return value.lstrip(" ").rstrip(". ")


def _is_reserved(name: str) -> bool:
    stem = name.split(".", 1)[0].rstrip(" ")
    return stem.upper() in _RESERVED_NAMES


def sanitize(remote_name: str) -> str:
    """Map a remote document name to a name safe on common local filesystems.

    Path separators, characters Windows rejects and control characters become
    ``_``; trailing dots and spaces are dropped; reserved device names get a
    ``_`` prefix. Applying it to its own output returns the same string.
    """
    name = _normalize_text(remote_name)
    name = _ILLEGAL_RE.sub(REPLACEMENT, name)
    name = _trim(_truncate_utf8(name, MAX_NAME_BYTES))
    if not name:
        return FALLBACK_NAME
    if _is_reserved(name):
        name = _trim(_truncate_utf8(f"{REPLACEMENT}{name}", MAX_NAME_BYTES))
    return name


def local_filename(remote_name: str, suffix: str = "") -> str:
    name = sanitize(remote_name)
    if suffix and not name.lower().endswith(suffix.lower()):
        name = sanitize(f"{name}{suffix}")
    return name


def _split_suffix(name: str) -> tuple[str, str]:
    suffix = PurePath(name).suffix
    if not suffix or suffix == name:
        return name, ""
    return name[: -len(suffix)], suffix


def disambiguate(names: Iterable[str]) -> list[str]:
    """Make names unique, in order, by inserting ``-1``, ``-2``... before the suffix.

    Comparison is case-insensitive so the result is safe on macOS and Windows.
    The first occurrence of a name always keeps it.
    """
    ordered = list(names)
    taken = {name.casefold() for name in ordered}
    used: set[str] = set()
    result: list[str] = []
    for name in ordered:
        key = name.casefold()
        if key not in used:
            used.add(key)
            result.append(name)
            continue
        stem, suffix = _split_suffix(name)
        counter = 1
        while True:
            candidate = f"{stem}-{counter}{suffix}"
            candidate_key = candidate.casefold()
            if candidate_key not in used and candidate_key not in taken:
                break
            counter += 1
        used.add(candidate_key)
        result.append(candidate)
    return result


def local_names_for(entries: Iterable[Entry], suffix: str = "") -> dict[str, str]:
    files = [entry for entry in entries if not entry.is_folder]
    names = disambiguate(local_filename(entry.name, suffix) for entry in files)
    return {entry.id: name for entry, name in zip(files, names, strict=True)}
