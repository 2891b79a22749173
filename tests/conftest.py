from __future__ import annotations

import itertools
import threading
import time
from collections.abc import Callable, Iterator
from pathlib import Path

from remarkable_tui.errors import AlreadyInProgress, LocalIOError
from remarkable_tui.models import (
    ROOT_CRUMB,
    Crumb,
    DirectorySnapshot,
    Entry,
    EntryKind,
    JobEvent,
    JobKind,
    JobState,
    ListingEvent,
    TransferJob,
)


def mk_entry(
    entry_id: str,
    name: str | None = None,
    *,
    folder: bool = False,
    parent_id: str = "",
) -> Entry:
    return Entry(
        id=entry_id,
        name=name if name is not None else entry_id,
        kind=EntryKind.FOLDER if folder else EntryKind.FILE,
        parent_id=parent_id,
    )


def mk_snapshot(
    folder_id: str,
    *entries: Entry,
    path: tuple[Crumb, ...] = (ROOT_CRUMB,),
) -> DirectorySnapshot:
    return DirectorySnapshot(folder_id=folder_id, entries=tuple(entries), path=path)


def mk_row(entry_id: str, name: str, *, folder: bool = False, parent: str = "") -> dict:
    return {
        "ID": entry_id,
        "VissibleName": name,
        "Type": "CollectionType" if folder else "DocumentType",
        "Parent": parent,
    }


class FakeDeviceClient:
    """In-memory stand-in for ``DeviceClient`` that records every call."""

    def __init__(self) -> None:
        self.folders: dict[str, list[Entry]] = {"": []}
        self.documents: dict[str, bytes] = {}
        self.failures: dict[str, Exception] = {}
        self.refresh_failures: list[Exception] = []
        self.download_gate: threading.Event | None = None
        self.download_reached = threading.Event()
        self.refresh_gate: threading.Event | None = None
        self.refresh_reached = threading.Event()
        self.calls: list[tuple] = []
        self._lock = threading.Lock()

    def _record(self, *call: object) -> None:
        with self._lock:
            self.calls.append(call)

    def _check_failure(self, method: str) -> None:
        err = self.failures.get(method)
        if err is not None:
            raise err

    def list(
        self, folder_id: str, path: tuple[Crumb, ...] = (ROOT_CRUMB,)
    ) -> DirectorySnapshot:
        self._record("list", folder_id)
        self._check_failure("list")
        return DirectorySnapshot(
            folder_id=folder_id,
            entries=tuple(self.folders.get(folder_id, [])),
            path=path,
        )

    def refresh(
        self, folder_id: str, path: tuple[Crumb, ...] = (ROOT_CRUMB,)
    ) -> DirectorySnapshot:
        self._record("refresh", folder_id)
        if self.refresh_gate is not None:
            self.refresh_reached.set()
            self.refresh_gate.wait(5.0)
        if self.refresh_failures:
            raise self.refresh_failures.pop(0)
        self._check_failure("refresh")
        return DirectorySnapshot(
            folder_id=folder_id,
            entries=tuple(self.folders.get(folder_id, [])),
            path=path,
        )

    def download(self, entry_id: str) -> Iterator[bytes]:
        self._record("download", entry_id)
        return self._chunks(entry_id)

    def _chunks(self, entry_id: str) -> Iterator[bytes]:
        self._check_failure("download")
        data = self.documents[entry_id]
        for idx in range(0, len(data), 4):
            if idx and self.download_gate is not None:
                self.download_reached.set()
                self.download_gate.wait(5.0)
            yield data[idx : idx + 4]

    def upload(self, folder_id: str, local_path: Path) -> Entry:
        self._record("upload", folder_id, Path(local_path))
        self._check_failure("upload")
        entry = Entry(
            id=f"up-{len(self.calls)}",
            name=Path(local_path).stem,
            kind=EntryKind.FILE,
            parent_id=folder_id,
        )
        self.folders.setdefault(folder_id, []).append(entry)
        return entry


class FakeCoordinator:
    """Records requests from ``BrowserState`` without doing any I/O."""

    def __init__(self) -> None:
        self.calls: list[tuple] = []
        self.download_error: Exception | None = None
        self.upload_error: Exception | None = None
        self.shut_down = False
        self._request_ids = itertools.count(1)
        self.last_request_id = 0

    def request_listing(
        self, folder_id: str, path: tuple[Crumb, ...] = (ROOT_CRUMB,)
    ) -> int:
        self.last_request_id = next(self._request_ids)
        self.calls.append(("list", folder_id))
        return self.last_request_id

    def submit_download(self, entry: Entry, local_name: str) -> TransferJob:
        self.calls.append(("download", entry.id, local_name))
        if self.download_error is not None:
            raise self.download_error
        return TransferJob(
            id=f"job-{len(self.calls)}",
            kind=JobKind.DOWNLOAD,
            folder_id=entry.parent_id,
            local_path=Path(local_name),
            label=entry.name,
            entry=entry,
        )

    def submit_upload(
        self,
        folder_id: str,
        local_path: Path | str,
        crumbs: tuple[Crumb, ...] = (ROOT_CRUMB,),
    ) -> TransferJob:
        self.calls.append(("upload", folder_id, str(local_path)))
        if self.upload_error is not None:
            raise self.upload_error
        return TransferJob(
            id=f"job-{len(self.calls)}",
            kind=JobKind.UPLOAD,
            folder_id=folder_id,
            local_path=Path(local_path),
            label=Path(local_path).name,
            crumbs=crumbs,
        )

    def shutdown(self) -> None:
        self.calls.append(("shutdown",))
        self.shut_down = True

    def listing_calls(self) -> list[tuple]:
        return [call for call in self.calls if call[0] == "list"]


def already_in_progress(path: str = "/tmp/x.pdf") -> AlreadyInProgress:
    return AlreadyInProgress("", path)


def missing_file(path: str) -> LocalIOError:
    return LocalIOError(f"File does not exist: {path}")


def listing_ok(request_id: int, snapshot: DirectorySnapshot) -> ListingEvent:
    return ListingEvent(
        request_id=request_id, folder_id=snapshot.folder_id, snapshot=snapshot
    )


def job_event(
    job_id: str,
    state: JobState,
    *,
    kind: JobKind = JobKind.DOWNLOAD,
    folder_id: str = "",
    label: str = "Report",
    local_path: Path = Path("/tmp/Report.pdf"),
    **kwargs,
) -> JobEvent:
    return JobEvent(
        job_id=job_id,
        kind=kind,
        state=state,
        folder_id=folder_id,
        label=label,
        local_path=local_path,
        **kwargs,
    )


def wait_for_events(
    coordinator,
    predicate: Callable[[list], bool],
    *,
    timeout: float = 5.0,
) -> list:
    events: list = []
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        events.extend(coordinator.poll_events())
        if predicate(events):
            return events
        time.sleep(0.01)
    raise AssertionError(f"timed out waiting for events, got {events!r}")


def job_finished(events: list) -> bool:
    return any(isinstance(e, JobEvent) and e.state.is_terminal for e in events)


def wait_until(condition: Callable[[], bool], *, timeout: float = 5.0) -> None:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if condition():
            return
        time.sleep(0.01)
    raise AssertionError("condition not met in time")
