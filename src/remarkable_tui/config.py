from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

import httpx

DEFAULT_BASE_URL = "http://10.11.99.1"
DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_CONNECT_TIMEOUT_SECONDS = 5.0
DEFAULT_CHUNK_SIZE = 64 * 1024
DEFAULT_MAX_WORKERS = 4
DEFAULT_TICK_SECONDS = 0.1
DEFAULT_STATUS_SECONDS = 6.0
DEFAULT_PROGRESS_EMIT_EVERY_MS = 200
DEFAULT_DOWNLOAD_SUFFIX = ".pdf"
DEFAULT_LOG_PATH = Path("~/.remarkable-tui/remarkable-tui.log")

ENV_BASE_URL = "REMARKABLE_URL"
ENV_DEBUG = "REMARKABLE_DEBUG"


def _env_base_url() -> str:
    return os.getenv(ENV_BASE_URL, DEFAULT_BASE_URL)


def debug_from_env() -> bool:
    return os.getenv(ENV_DEBUG, "0") in ("1", "true", "TRUE")


@dataclass(frozen=True)
class DeviceConfig:
    base_url: str = field(default_factory=_env_base_url)
    timeout: float = DEFAULT_TIMEOUT_SECONDS
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT_SECONDS

    @property
    def http_timeout(self) -> httpx.Timeout:
        return httpx.Timeout(self.timeout, connect=min(self.connect_timeout, self.timeout))

    @property
    def normalized_url(self) -> str:
        url = self.base_url.strip().rstrip("/")
        if "://" not in url:
            url = f"http://{url}"
        return url


@dataclass(frozen=True)
class UploadRetryPolicy:
    """How often the mandatory pre-upload listing is attempted before giving up."""

    attempts: int = 1
    backoff_seconds: float = 0.5

    def __post_init__(self) -> None:
        if self.attempts < 1:
            raise ValueError("attempts must be at least 1")
        if self.backoff_seconds < 0:
            raise ValueError("backoff_seconds must not be negative")


@dataclass(frozen=True)
class TransferSettings:
    download_dir: Path = field(default_factory=Path.cwd)
    chunk_size: int = DEFAULT_CHUNK_SIZE
    max_workers: int = DEFAULT_MAX_WORKERS
    progress_emit_every_ms: int = DEFAULT_PROGRESS_EMIT_EVERY_MS
    download_suffix: str = DEFAULT_DOWNLOAD_SUFFIX
    upload_retry: UploadRetryPolicy = field(default_factory=UploadRetryPolicy)


@dataclass(frozen=True)
class UiSettings:
    tick_seconds: float = DEFAULT_TICK_SECONDS
    status_seconds: float = DEFAULT_STATUS_SECONDS
