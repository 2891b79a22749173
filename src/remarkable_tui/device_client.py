from __future__ import annotations

from collections.abc import Iterator
from contextlib import ExitStack
from pathlib import Path
from typing import Any

import httpx

from .config import DEFAULT_CHUNK_SIZE, DeviceConfig
from .errors import LocalIOError, NetworkError, NotFound, ProtocolError
from .logs import get_logger
from .models import ROOT_CRUMB, Crumb, DirectorySnapshot, Entry, EntryKind

FOLDER_TYPE = "CollectionType"

_UPLOAD_CONTENT_TYPES = {
    ".pdf": "application/pdf",
    ".epub": "application/epub+zip",
}


def _listing_path(folder_id: str) -> str:
    return f"/documents/{folder_id}" if folder_id else "/documents/"


def _content_type(path: Path) -> str:
    return _UPLOAD_CONTENT_TYPES.get(path.suffix.lower(), "application/octet-stream")


def _entry_from_row(row: Any, folder_id: str) -> Entry:
    if not isinstance(row, dict):
        raise ProtocolError(f"Unexpected listing row: {row!r}")
    try:
        entry_id = str(row["ID"])
        name = str(row["VissibleName"])
        item_type = str(row["Type"])
    except KeyError as exc:
        raise ProtocolError(f"Listing row missing field {exc.args[0]!r}") from exc
    kind = EntryKind.FOLDER if item_type == FOLDER_TYPE else EntryKind.FILE
    parent = row.get("Parent")
    return Entry(
        id=entry_id,
        name=name,
        kind=kind,
        parent_id=str(parent) if parent is not None else folder_id,
    )


def _sort_key(entry: Entry) -> tuple[int, str, str]:
    return (0 if entry.is_folder else 1, entry.name.casefold(), entry.id)


def parse_listing(
    payload: Any, folder_id: str, path: tuple[Crumb, ...] = (ROOT_CRUMB,)
) -> DirectorySnapshot:
    if not isinstance(payload, list):
        raise ProtocolError(f"Unexpected listing payload: {type(payload).__name__}")
    entries = [_entry_from_row(row, folder_id) for row in payload]
    seen: set[str] = set()
    for entry in entries:
        if entry.id in seen:
            raise ProtocolError(f"Duplicate entry id in listing: {entry.id}")
        seen.add(entry.id)
    return DirectorySnapshot(
        folder_id=folder_id,
        entries=tuple(sorted(entries, key=_sort_key)),
        path=path,
    )


class DownloadStream:
    """Lazy byte stream over one download response.

    The request is issued on first iteration and the response is closed once
    the stream is exhausted or closed; it cannot be iterated twice.
    """

    def __init__(
        self, client: DeviceClient, entry_id: str, chunk_size: int
    ) -> None:
        self._client = client
        self.entry_id = entry_id
        self.chunk_size = chunk_size
        self.total: int | None = None
        self._started = False

    def __iter__(self) -> Iterator[bytes]:
        if self._started:
            raise RuntimeError("download stream already consumed")
        self._started = True
        return self._chunks()

    def _chunks(self) -> Iterator[bytes]:
        path = f"/download/{self.entry_id}/pdf"
        with ExitStack() as stack:
            response = self._client.send_stream("GET", path, stack)
            length = response.headers.get("Content-Length")
            if length is not None and length.isdigit():
                self.total = int(length)
            try:
                yield from response.iter_bytes(self.chunk_size)
            except httpx.TransportError as exc:
                raise NetworkError(f"Download interrupted: {exc}") from exc


class DeviceClient:
    def __init__(
        self,
        config: DeviceConfig | None = None,
        *,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.config = config or DeviceConfig()
        self.base_url = self.config.normalized_url
        self.chunk_size = chunk_size
        self.logger = get_logger("device")
        self._client = httpx.Client(
            base_url=self.base_url,
            timeout=self.config.http_timeout,
            transport=transport,
        )

    def __enter__(self) -> DeviceClient:
        return self

    def __exit__(self, *_exc: object) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def _check_status(self, method: str, path: str, resp: httpx.Response) -> None:
        self.logger.debug("HTTP %s %s status=%s", method, path, resp.status_code)
        if resp.status_code == 404:
            raise NotFound(f"Not found on device: {path}")
        if resp.is_error:
            raise ProtocolError(f"{method} {path} failed with status {resp.status_code}")

    def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        self.logger.debug("HTTP %s %s", method, path)
        try:
            resp = self._client.request(method, path, **kwargs)
        except httpx.TransportError as exc:
            raise NetworkError(f"Cannot reach device at {self.base_url}: {exc}") from exc
        self._check_status(method, path, resp)
        return resp

    def send_stream(self, method: str, path: str, stack: ExitStack) -> httpx.Response:
        """Open a streamed response whose lifetime is bound to ``stack``."""
        self.logger.debug("HTTP %s %s (stream)", method, path)
        try:
            resp = stack.enter_context(self._client.stream(method, path))
        except httpx.TransportError as exc:
            raise NetworkError(f"Cannot reach device at {self.base_url}: {exc}") from exc
        self._check_status(method, path, resp)
        return resp

    def list(
        self, folder_id: str, path: tuple[Crumb, ...] = (ROOT_CRUMB,)
    ) -> DirectorySnapshot:
        resp = self._request("GET", _listing_path(folder_id))
        try:
            payload = resp.json()
        except ValueError as exc:
            raise ProtocolError(f"Non-JSON listing: {resp.text[:200]}") from exc
        return parse_listing(payload, folder_id, path)

    def refresh(
        self, folder_id: str, path: tuple[Crumb, ...] = (ROOT_CRUMB,)
    ) -> DirectorySnapshot:
        return self.list(folder_id, path)

    def download(self, entry_id: str) -> DownloadStream:
        return DownloadStream(self, entry_id, self.chunk_size)

    def upload(self, folder_id: str, local_path: Path) -> Entry:
        """Push ``local_path`` into the folder the device last listed.

        The device ignores any folder argument and files uploads under the
        most recently listed folder, so callers list ``folder_id`` first.
        """
        path = Path(local_path)
        try:
            payload = path.read_bytes()
        except OSError as exc:
            raise LocalIOError(f"Cannot read {path}: {exc.strerror or exc}") from exc
        files = {"file": (path.name, payload, _content_type(path))}
        resp = self._request("POST", "/upload", files=files)
        uploaded_id = ""
        try:
            body = resp.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and body.get("ID") is not None:
            uploaded_id = str(body["ID"])
        self.logger.info("Uploaded %s into folder %r", path.name, folder_id)
        return Entry(
            id=uploaded_id,
            name=path.stem,
            kind=EntryKind.FILE,
            parent_id=folder_id,
        )
