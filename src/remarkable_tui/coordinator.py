from __future__ import annotations

import concurrent.futures
import itertools
import queue
import threading
import time
import uuid
from collections.abc import Iterable
from pathlib import Path
from typing import Protocol

from .config import TransferSettings
from .errors import AlreadyInProgress, LocalIOError, RemarkableError, error_kind
from .logs import get_logger
from .models import (
    ROOT_CRUMB,
    Crumb,
    DirectorySnapshot,
    Entry,
    JobEvent,
    JobKind,
    JobState,
    ListingEvent,
    TransferJob,
)

type Event = JobEvent | ListingEvent


class RemoteFilesystem(Protocol):
    def list(
        self, folder_id: str, path: tuple[Crumb, ...] = ...
    ) -> DirectorySnapshot: ...

    def refresh(
        self, folder_id: str, path: tuple[Crumb, ...] = ...
    ) -> DirectorySnapshot: ...

    def download(self, entry_id: str) -> Iterable[bytes]: ...

    def upload(self, folder_id: str, local_path: Path) -> Entry: ...


class _Cancelled(Exception):
    pass


class TransferCoordinator:
    """Runs device I/O off the UI thread and reports back through a queue.

    The UI thread calls ``poll_events`` once per tick; nothing here touches UI
    state directly.
    """

    def __init__(
        self,
        client: RemoteFilesystem,
        settings: TransferSettings | None = None,
    ) -> None:
        self.client = client
        self.settings = settings or TransferSettings()
        self.logger = get_logger("coordinator")
        self._events: queue.Queue[Event] = queue.Queue()
        self._pool = concurrent.futures.ThreadPoolExecutor(
            max_workers=max(1, self.settings.max_workers),
            thread_name_prefix="remarkable-io",
        )
        self._lock = threading.Lock()
        self._jobs: dict[str, TransferJob] = {}
        self._active_keys: set[tuple[str, str]] = set()
        self._request_ids = itertools.count(1)
        self._cancel = threading.Event()
        # The device files uploads under the folder it listed last, so every
        # listing and every refresh+upload pair runs under this lock.
        self._device_lock = threading.Lock()

    @property
    def is_shut_down(self) -> bool:
        return self._cancel.is_set()

    def outstanding_jobs(self) -> list[TransferJob]:
        with self._lock:
            return list(self._jobs.values())

    def _emit(self, event: Event) -> None:
        if self._cancel.is_set():
            return
        self._events.put(event)

    def poll_events(self, limit: int | None = None) -> list[Event]:
        events: list[Event] = []
        while limit is None or len(events) < limit:
            try:
                events.append(self._events.get_nowait())
            except queue.Empty:
                break
        return events

    # Listings

    def request_listing(
        self, folder_id: str, path: tuple[Crumb, ...] = (ROOT_CRUMB,)
    ) -> int:
        request_id = next(self._request_ids)
        if self._cancel.is_set():
            return request_id
        self._pool.submit(self._run_listing, request_id, folder_id, path)
        return request_id

    def _run_listing(
        self, request_id: int, folder_id: str, path: tuple[Crumb, ...]
    ) -> None:
        try:
            with self._device_lock:
                snapshot = self.client.list(folder_id, path)
        except Exception as exc:  # noqa: BLE001
            self._log_failure(f"listing {folder_id or '<root>'}", exc)
            self._emit(
                ListingEvent(
                    request_id=request_id,
                    folder_id=folder_id,
                    error=str(exc),
                    error_kind=error_kind(exc),
                )
            )
            return
        self._emit(
            ListingEvent(request_id=request_id, folder_id=folder_id, snapshot=snapshot)
        )

    # Jobs

    def _register(self, job: TransferJob) -> None:
        if self._cancel.is_set():
            raise RemarkableError("coordinator is shut down")
        with self._lock:
            if job.key in self._active_keys:
                raise AlreadyInProgress(job.folder_id, str(job.local_path))
            self._active_keys.add(job.key)
            self._jobs[job.id] = job
        self.logger.info("Queued %s job %s: %s", job.kind.value, job.id, job.label)
        self._emit(self._event(job))

    def _release(self, job: TransferJob) -> None:
        with self._lock:
            self._active_keys.discard(job.key)
            self._jobs.pop(job.id, None)

    def _event(self, job: TransferJob, **kwargs) -> JobEvent:
        return JobEvent(
            job_id=job.id,
            kind=job.kind,
            state=job.state,
            folder_id=job.folder_id,
            label=job.label,
            local_path=job.local_path,
            **kwargs,
        )

    def submit_download(
        self, entry: Entry, local_name: str, destination_dir: Path | None = None
    ) -> TransferJob:
        target_dir = Path(destination_dir or self.settings.download_dir).expanduser()
        job = TransferJob(
            id=uuid.uuid4().hex[:12],
            kind=JobKind.DOWNLOAD,
            folder_id=entry.parent_id,
            local_path=(target_dir / local_name).absolute(),
            label=entry.name,
            entry=entry,
        )
        self._register(job)
        self._pool.submit(self._run_job, job)
        return job

    def submit_upload(
        self,
        folder_id: str,
        local_path: Path | str,
        crumbs: tuple[Crumb, ...] = (ROOT_CRUMB,),
    ) -> TransferJob:
        path = Path(local_path).expanduser()
        if not path.is_file():
            raise LocalIOError(f"File does not exist: {path}")
        job = TransferJob(
            id=uuid.uuid4().hex[:12],
            kind=JobKind.UPLOAD,
            folder_id=folder_id,
            local_path=path,
            label=path.name,
            crumbs=crumbs,
        )
        self._register(job)
        self._pool.submit(self._run_job, job)
        return job

    def _run_job(self, job: TransferJob) -> None:
        try:
            if self._cancel.is_set():
                raise _Cancelled()
            job.state = JobState.IN_PROGRESS
            self._emit(self._event(job))
            if job.kind == JobKind.DOWNLOAD:
                details = self._download(job)
            else:
                details = self._upload(job)
            job.state = JobState.DONE
            self.logger.info("Finished %s job %s", job.kind.value, job.id)
            self._emit(self._event(job, **details))
        except _Cancelled:
            self.logger.info(
                "Abandoned %s job %s; partial output left at %s",
                job.kind.value,
                job.id,
                job.local_path,
            )
        except Exception as exc:  # noqa: BLE001
            job.state = JobState.FAILED
            job.reason = str(exc)
            self._log_failure(f"{job.kind.value} job {job.id}", exc)
            self._emit(self._event(job, error=str(exc), error_kind=error_kind(exc)))
        finally:
            self._release(job)

    def _download(self, job: TransferJob) -> dict[str, object]:
        assert job.entry is not None
        stream = self.client.download(job.entry.id)
        chunks = iter(stream)
        # Pull the first chunk before touching the disk so a vanished entry
        # leaves no empty file behind.
        first = next(chunks, b"")
        try:
            job.local_path.parent.mkdir(parents=True, exist_ok=True)
            handle = job.local_path.open("wb")
        except OSError as exc:
            raise LocalIOError(
                f"Cannot write {job.local_path}: {exc.strerror or exc}"
            ) from exc

        done = 0
        last_emit = time.monotonic()
        with handle:
            for chunk in itertools.chain((first,), chunks):
                if self._cancel.is_set():
                    raise _Cancelled()
                try:
                    handle.write(chunk)
                except OSError as exc:
                    raise LocalIOError(
                        f"Cannot write {job.local_path}: {exc.strerror or exc}"
                    ) from exc
                done += len(chunk)
                now = time.monotonic()
                if (now - last_emit) * 1000.0 >= self.settings.progress_emit_every_ms:
                    last_emit = now
                    self._emit(
                        self._event(
                            job,
                            bytes_done=done,
                            bytes_total=getattr(stream, "total", None),
                        )
                    )
        return {"bytes_done": done, "bytes_total": getattr(stream, "total", None)}

    def _refresh_before_upload(self, job: TransferJob) -> None:
        policy = self.settings.upload_retry
        folder_id = job.folder_id
        for attempt in range(1, policy.attempts + 1):
            if self._cancel.is_set():
                raise _Cancelled()
            try:
                self.client.refresh(folder_id, job.crumbs)
                return
            except RemarkableError as exc:
                if attempt >= policy.attempts:
                    raise
                self.logger.warning(
                    "Pre-upload refresh of %r failed (attempt %d/%d): %s",
                    folder_id,
                    attempt,
                    policy.attempts,
                    exc,
                )
                time.sleep(policy.backoff_seconds * attempt)

    def _upload(self, job: TransferJob) -> dict[str, object]:
        with self._device_lock:
            self._refresh_before_upload(job)
            if self._cancel.is_set():
                raise _Cancelled()
            self.client.upload(job.folder_id, job.local_path)
        snapshot: DirectorySnapshot | None = None
        try:
            with self._device_lock:
                snapshot = self.client.list(job.folder_id, job.crumbs)
        except RemarkableError as exc:
            self.logger.warning("Re-list after upload failed: %s", exc)
        return {"snapshot": snapshot}

    def _log_failure(self, what: str, exc: Exception) -> None:
        if isinstance(exc, RemarkableError):
            self.logger.warning("%s failed: %s", what, exc)
        else:
            self.logger.exception("%s failed unexpectedly", what)

    def shutdown(self) -> None:
        """Abandon outstanding work without waiting for in-flight requests."""
        if self._cancel.is_set():
            return
        self._cancel.set()
        pending = self.outstanding_jobs()
        if pending:
            self.logger.info("Abandoning %d outstanding job(s)", len(pending))
        self._pool.shutdown(wait=False, cancel_futures=True)
        self.poll_events()
