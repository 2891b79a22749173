from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path

ROOT_FOLDER_ID = ""
ROOT_LABEL = "Documents"


class EntryKind(str, Enum):
    FILE = "file"
    FOLDER = "folder"


class Severity(str, Enum):
    INFO = "info"
    ERROR = "error"


class JobKind(str, Enum):
    DOWNLOAD = "download"
    UPLOAD = "upload"


class JobState(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    DONE = "done"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in {JobState.DONE, JobState.FAILED}


@dataclass(frozen=True)
class Entry:
    id: str
    name: str
    kind: EntryKind
    parent_id: str = ROOT_FOLDER_ID

    @property
    def is_folder(self) -> bool:
        return self.kind == EntryKind.FOLDER


@dataclass(frozen=True)
class Crumb:
    id: str
    name: str


ROOT_CRUMB = Crumb(ROOT_FOLDER_ID, ROOT_LABEL)


@dataclass(frozen=True)
class DirectorySnapshot:
    folder_id: str
    entries: tuple[Entry, ...] = ()
    path: tuple[Crumb, ...] = (ROOT_CRUMB,)

    def __len__(self) -> int:
        return len(self.entries)


@dataclass(frozen=True)
class StatusMessage:
    text: str
    severity: Severity
    created_at: float

    @property
    def is_error(self) -> bool:
        return self.severity == Severity.ERROR


@dataclass
class TransferJob:
    id: str
    kind: JobKind
    folder_id: str
    local_path: Path
    label: str
    entry: Entry | None = None
    crumbs: tuple[Crumb, ...] = (ROOT_CRUMB,)
    state: JobState = JobState.PENDING
    reason: str | None = None

    @property
    def key(self) -> tuple[str, str]:
        # A download targets the local file alone, whatever folder it came from.
        if self.kind == JobKind.DOWNLOAD:
            return "", str(self.local_path)
        return self.folder_id, str(self.local_path)


@dataclass(frozen=True)
class JobEvent:
    job_id: str
    kind: JobKind
    state: JobState
    folder_id: str
    label: str
    local_path: Path
    bytes_done: int = 0
    bytes_total: int | None = None
    error: str | None = None
    error_kind: str | None = None
    snapshot: DirectorySnapshot | None = None


@dataclass(frozen=True)
class ListingEvent:
    request_id: int
    folder_id: str
    snapshot: DirectorySnapshot | None = None
    error: str | None = None
    error_kind: str | None = None

    @property
    def ok(self) -> bool:
        return self.snapshot is not None


@dataclass(frozen=True)
class BrowsingMode:
    pass


@dataclass(frozen=True)
class UploadPathEntry:
    buffer: str = ""


type Mode = BrowsingMode | UploadPathEntry


@dataclass(frozen=True)
class TransferProgress:
    label: str
    kind: JobKind
    bytes_done: int = 0
    bytes_total: int | None = None
