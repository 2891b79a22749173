from __future__ import annotations

from rich.text import Text

from .keymap import help_for
from .models import Entry, JobKind, TransferProgress, UploadPathEntry
from .navigation import BrowserState

FOLDER_ICON = "📁"
FILE_ICON = "📄"
SELECTION_MARK = "> "


def format_bytes(num: int) -> str:
    step = 1024.0
    size = float(num)
    for unit in ("B", "KB", "MB", "GB"):
        if size < step:
            return f"{size:.0f}{unit}" if unit == "B" else f"{size:.1f}{unit}"
        size /= step
    return f"{size:.1f}TB"


def breadcrumb(state: BrowserState) -> Text:
    text = Text()
    for idx, crumb in enumerate(state.crumbs):
        if idx:
            text.append(" / ", style="dim")
        style = "bold" if idx == len(state.crumbs) - 1 else ""
        text.append(crumb.name, style=style)
    if state.loading:
        text.append("  (loading...)", style="italic yellow")
    return text


def visible_window(count: int, cursor: int, height: int) -> tuple[int, int]:
    """Return the ``[start, end)`` slice of rows that keeps ``cursor`` on screen."""
    if height <= 0 or count <= 0:
        return 0, 0
    if count <= height:
        return 0, count
    start = min(max(cursor - height // 2, 0), count - height)
    return start, start + height


def _row_label(entry: Entry, selected: bool) -> Text:
    icon = FOLDER_ICON if entry.is_folder else FILE_ICON
    label = Text.assemble(
        SELECTION_MARK if selected else "  ",
        f"{icon} ",
        (entry.name, "bold" if entry.is_folder else ""),
    )
    if selected:
        label.stylize("reverse")
    return label


def rows(state: BrowserState, height: int) -> Text:
    entries = state.snapshot.entries
    if not entries:
        if state.loading:
            return Text("Loading...", style="dim")
        return Text("(empty folder)", style="dim")
    start, end = visible_window(len(entries), state.cursor, height)
    lines = [
        _row_label(entries[idx], idx == state.cursor) for idx in range(start, end)
    ]
    return Text("\n").join(lines)


def _transfer_summary(transfers: dict[str, TransferProgress]) -> Text | None:
    if not transfers:
        return None
    parts: list[str] = []
    for progress in transfers.values():
        arrow = "↓" if progress.kind == JobKind.DOWNLOAD else "↑"
        detail = ""
        if progress.bytes_done:
            detail = f" {format_bytes(progress.bytes_done)}"
            if progress.bytes_total:
                pct = 100.0 * progress.bytes_done / progress.bytes_total
                detail += f" ({pct:.0f}%)"
        parts.append(f"{arrow} {progress.label}{detail}")
    count = len(transfers)
    head = f"{count} transfer{'' if count == 1 else 's'} running: "
    return Text(head + ", ".join(parts), style="cyan")


def status_bar(state: BrowserState) -> Text:
    text = Text()
    if state.status is not None:
        style = "bold red" if state.status.is_error else ""
        text.append(state.status.text, style=style)
    transfers = _transfer_summary(state.transfers)
    if transfers is not None:
        if text.plain:
            text.append("  |  ", style="dim")
        text.append_text(transfers)
    if not text.plain:
        text.append("Ready.")
    return text


def help_line(state: BrowserState) -> Text:
    text = Text()
    for idx, (key, description) in enumerate(help_for(state.mode)):
        if idx:
            text.append("  ")
        text.append(key, style="bold")
        text.append(f" {description}", style="dim")
    return text


def upload_modal(state: BrowserState) -> Text | None:
    if not isinstance(state.mode, UploadPathEntry):
        return None
    return Text.assemble(
        ("Upload File", "bold"),
        "\n\n",
        ("Path: ", "dim"),
        state.mode.buffer,
        ("█", "blink"),
        "\n\n",
        ("Enter to upload into ", "dim"),
        (state.crumbs[-1].name, "bold"),
        (", Esc to cancel", "dim"),
    )
