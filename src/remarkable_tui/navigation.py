from __future__ import annotations

import time
from collections.abc import Callable, Iterable
from dataclasses import replace
from pathlib import Path
from typing import Protocol

from .config import DEFAULT_DOWNLOAD_SUFFIX, DEFAULT_STATUS_SECONDS
from .errors import AlreadyInProgress, LocalIOError, NotFound, RemarkableError
from .keymap import Action, Command, TypeChar
from .logs import get_logger
from .models import (
    ROOT_CRUMB,
    ROOT_FOLDER_ID,
    BrowsingMode,
    Crumb,
    DirectorySnapshot,
    Entry,
    JobEvent,
    JobKind,
    JobState,
    ListingEvent,
    Mode,
    Severity,
    StatusMessage,
    TransferJob,
    TransferProgress,
    UploadPathEntry,
)
from .sanitize import local_names_for

PAGE_SIZE = 10


class Coordinator(Protocol):
    def request_listing(self, folder_id: str, path: tuple[Crumb, ...] = ...) -> int: ...

    def submit_download(self, entry: Entry, local_name: str) -> TransferJob: ...

    def submit_upload(
        self, folder_id: str, local_path: Path | str, crumbs: tuple[Crumb, ...] = ...
    ) -> TransferJob: ...

    def shutdown(self) -> None: ...


class BrowserState:
    """Single owner of everything the UI shows.

    Mutated only from the UI thread, through ``dispatch`` for key commands and
    ``apply_event`` for coordinator results.
    """

    def __init__(
        self,
        coordinator: Coordinator,
        *,
        download_suffix: str = DEFAULT_DOWNLOAD_SUFFIX,
        status_seconds: float = DEFAULT_STATUS_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.coordinator = coordinator
        self.download_suffix = download_suffix
        self.status_seconds = status_seconds
        self.clock = clock
        self.logger = get_logger("navigation")

        self.snapshot = DirectorySnapshot(ROOT_FOLDER_ID)
        self.stack: tuple[str, ...] = ()
        self.crumbs: tuple[Crumb, ...] = (ROOT_CRUMB,)
        self.cursor = 0
        self.mode: Mode = BrowsingMode()
        self.status: StatusMessage | None = None
        self.loading = False
        self.transfers: dict[str, TransferProgress] = {}
        self.terminated = False
        self._listing_request: int | None = None
        self._reselect_id: str | None = None

        self._handlers: dict[type, Callable[[Command], None]] = {
            BrowsingMode: self._handle_browsing,
            UploadPathEntry: self._handle_upload_entry,
        }

    # Read helpers

    @property
    def current_folder_id(self) -> str:
        return self.stack[-1] if self.stack else ROOT_FOLDER_ID

    @property
    def at_root(self) -> bool:
        return not self.stack

    @property
    def selected_entry(self) -> Entry | None:
        if not self.snapshot.entries:
            return None
        return self.snapshot.entries[self.cursor]

    # Status

    def _set_status(self, text: str, severity: Severity = Severity.INFO) -> None:
        self.status = StatusMessage(text=text, severity=severity, created_at=self.clock())

    def _info(self, text: str) -> None:
        self._set_status(text, Severity.INFO)

    def _error(self, text: str) -> None:
        self._set_status(text, Severity.ERROR)

    def expire_status(self, now: float | None = None) -> None:
        if self.status is None or self.status.is_error:
            return
        now = self.clock() if now is None else now
        if now - self.status.created_at >= self.status_seconds:
            self.status = None

    # Listing

    def start(self) -> None:
        self._request_listing()

    def _request_listing(self) -> None:
        self.loading = True
        self._listing_request = self.coordinator.request_listing(
            self.current_folder_id, self.crumbs
        )

    def _show_snapshot(self, snapshot: DirectorySnapshot) -> None:
        self.snapshot = replace(snapshot, path=self.crumbs)
        if self._reselect_id is not None:
            for idx, entry in enumerate(self.snapshot.entries):
                if entry.id == self._reselect_id:
                    self.cursor = idx
                    break
            self._reselect_id = None
        self._clamp_cursor()

    def _clamp_cursor(self) -> None:
        if not self.snapshot.entries:
            self.cursor = 0
            return
        self.cursor = min(max(self.cursor, 0), len(self.snapshot.entries) - 1)

    # Commands

    def dispatch(self, command: Command | None) -> None:
        if command is None or self.terminated:
            return
        self._handlers[type(self.mode)](command)

    def _handle_browsing(self, command: Command) -> None:
        match command:
            case Action.SELECT_DOWN:
                self._move(1)
            case Action.SELECT_UP:
                self._move(-1)
            case Action.PAGE_DOWN:
                self._move(PAGE_SIZE)
            case Action.PAGE_UP:
                self._move(-PAGE_SIZE)
            case Action.FIRST:
                self.cursor = 0
            case Action.LAST:
                self.cursor = max(len(self.snapshot.entries) - 1, 0)
            case Action.ENTER:
                self.enter()
            case Action.BACK:
                self.back()
            case Action.DOWNLOAD:
                self.download()
            case Action.UPLOAD:
                self.mode = UploadPathEntry("")
                self._info("Enter file path to upload")
            case Action.REFRESH:
                self._request_listing()
                self._info("Loading...")
            case Action.QUIT:
                self.quit()

    def _handle_upload_entry(self, command: Command) -> None:
        assert isinstance(self.mode, UploadPathEntry)
        buffer = self.mode.buffer
        match command:
            case TypeChar(char=char):
                self.mode = UploadPathEntry(buffer + char)
            case Action.INPUT_BACKSPACE:
                self.mode = UploadPathEntry(buffer[:-1])
            case Action.INPUT_CANCEL:
                self.mode = BrowsingMode()
                self._info("Upload cancelled.")
            case Action.INPUT_SUBMIT:
                self.submit_upload(buffer)

    def _move(self, delta: int) -> None:
        self.cursor += delta
        self._clamp_cursor()

    def enter(self) -> None:
        entry = self.selected_entry
        if entry is None:
            return
        if not entry.is_folder:
            self._info(f"{entry.name}: press d to download")
            return
        self.stack = (*self.stack, entry.id)
        self.crumbs = (*self.crumbs, Crumb(entry.id, entry.name))
        self.snapshot = DirectorySnapshot(entry.id, (), self.crumbs)
        self.cursor = 0
        self._reselect_id = None
        self._request_listing()

    def back(self) -> None:
        if self.at_root:
            self._info("Already at root.")
            return
        left = self.stack[-1]
        self.stack = self.stack[:-1]
        self.crumbs = self.crumbs[:-1]
        self.snapshot = DirectorySnapshot(self.current_folder_id, (), self.crumbs)
        self.cursor = 0
        self._reselect_id = left
        self._request_listing()

    def download(self) -> None:
        entry = self.selected_entry
        if entry is None:
            return
        if entry.is_folder:
            self._error("Cannot download a folder.")
            return
        local_name = local_names_for(self.snapshot.entries, self.download_suffix)[
            entry.id
        ]
        try:
            self.coordinator.submit_download(entry, local_name)
        except AlreadyInProgress:
            self._error(f"Already downloading {entry.name}.")
            return
        except RemarkableError as exc:
            self._error(f"Download failed: {exc}")
            return
        self._info(f"Downloading {entry.name}...")

    def submit_upload(self, buffer: str) -> None:
        path_text = buffer.strip()
        if not path_text:
            self._error("Path cannot be empty.")
            return
        try:
            self.coordinator.submit_upload(
                self.current_folder_id, path_text, self.crumbs
            )
        except LocalIOError as exc:
            self._error(str(exc))
            return
        except RemarkableError as exc:
            self.mode = BrowsingMode()
            self._error(f"Upload failed: {exc}")
            return
        self.mode = BrowsingMode()
        self._info(f"Uploading {path_text}...")

    def quit(self) -> None:
        self.coordinator.shutdown()
        self.terminated = True
        self.mode = BrowsingMode()

    # Coordinator events

    def apply_events(self, events: Iterable[ListingEvent | JobEvent]) -> None:
        for event in events:
            self.apply_event(event)

    def apply_event(self, event: ListingEvent | JobEvent) -> None:
        if self.terminated:
            return
        if isinstance(event, ListingEvent):
            self._apply_listing(event)
        else:
            self._apply_job(event)

    def _apply_listing(self, event: ListingEvent) -> None:
        if event.request_id != self._listing_request:
            self.logger.debug("Dropping stale listing %s", event.request_id)
            return
        self._listing_request = None
        self.loading = False
        if not event.ok:
            self._error(f"Error: {event.error}")
            return
        self._show_snapshot(event.snapshot)
        self._info(f"Loaded {len(self.snapshot)} items.")

    def _apply_job(self, event: JobEvent) -> None:
        if not event.state.is_terminal:
            self.transfers[event.job_id] = TransferProgress(
                label=event.label,
                kind=event.kind,
                bytes_done=event.bytes_done,
                bytes_total=event.bytes_total,
            )
            return

        self.transfers.pop(event.job_id, None)
        verb = "Download" if event.kind == JobKind.DOWNLOAD else "Upload"
        if event.state == JobState.FAILED:
            self._error(f"{verb} failed: {event.error}")
            if event.error_kind == NotFound.kind:
                self._request_listing()
            return

        if event.kind == JobKind.DOWNLOAD:
            self._info(f"Downloaded {event.label} to {event.local_path}.")
            return

        self._info(f"Uploaded {event.label}.")
        if event.folder_id != self.current_folder_id:
            return
        if event.snapshot is not None and self._listing_request is None:
            self._show_snapshot(event.snapshot)
        else:
            self._request_listing()
