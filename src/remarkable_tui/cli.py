from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape

from .browser_tui import run_browser_tui
from .config import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_LOG_PATH,
    DEFAULT_MAX_WORKERS,
    DEFAULT_STATUS_SECONDS,
    DEFAULT_TICK_SECONDS,
    DEFAULT_TIMEOUT_SECONDS,
    DeviceConfig,
    TransferSettings,
    UiSettings,
    UploadRetryPolicy,
    debug_from_env,
)
from .device_client import DeviceClient
from .errors import RemarkableError
from .logs import configure_file_logging, get_logger
from .models import ROOT_FOLDER_ID

app = typer.Typer(
    help="Browse, download and upload documents on a reMarkable tablet over USB",
    invoke_without_command=True,
)
console = Console()


def _device_config(url: str | None, timeout: float) -> DeviceConfig:
    if url is None:
        return DeviceConfig(timeout=timeout)
    return DeviceConfig(base_url=url, timeout=timeout)


def _resolve_download_dir(download_dir: Path | None) -> Path:
    target = (download_dir or Path.cwd()).expanduser().resolve()
    if target.exists() and not target.is_dir():
        console.print(f"[red]Download path is not a directory:[/red] {target}")
        raise typer.Exit(1)
    return target


@app.callback()
def _default_command(
    ctx: typer.Context,
    url: str | None = typer.Option(
        None,
        help="Device web interface address (default: $REMARKABLE_URL or http://10.11.99.1)",
    ),
    download_dir: Path | None = typer.Option(
        None,
        help="Folder where downloaded documents are written (default: current directory)",
    ),
    timeout: float = typer.Option(
        DEFAULT_TIMEOUT_SECONDS,
        help="HTTP timeout in seconds for each device request.",
    ),
    workers: int = typer.Option(
        DEFAULT_MAX_WORKERS,
        min=1,
        help="Number of background transfer threads.",
    ),
    chunk_size: int = typer.Option(
        DEFAULT_CHUNK_SIZE,
        min=1024,
        help="Download chunk size in bytes.",
    ),
    upload_refresh_attempts: int = typer.Option(
        1,
        min=1,
        help="Attempts for the folder listing that must precede every upload.",
    ),
    upload_refresh_backoff: float = typer.Option(
        0.5,
        min=0.0,
        help="Seconds to wait between pre-upload listing attempts (multiplied per attempt).",
    ),
    status_seconds: float = typer.Option(
        DEFAULT_STATUS_SECONDS,
        help="How long informational status messages stay visible.",
    ),
    log_file: Path = typer.Option(
        DEFAULT_LOG_PATH,
        help="Log file path.",
    ),
    debug: bool = typer.Option(
        False,
        "--debug/--no-debug",
        help="Log every HTTP request (also enabled by REMARKABLE_DEBUG=1).",
    ),
) -> None:
    """Open the document browser."""
    if ctx.invoked_subcommand is not None:
        return

    log_path = configure_file_logging(log_file, debug=debug or debug_from_env())
    logger = get_logger()

    device_config = _device_config(url, timeout)
    transfer_settings = TransferSettings(
        download_dir=_resolve_download_dir(download_dir),
        chunk_size=chunk_size,
        max_workers=workers,
        upload_retry=UploadRetryPolicy(
            attempts=upload_refresh_attempts,
            backoff_seconds=upload_refresh_backoff,
        ),
    )
    logger.info(
        "Starting browser for %s, downloads to %s",
        device_config.normalized_url,
        transfer_settings.download_dir,
    )

    with DeviceClient(device_config, chunk_size=chunk_size) as client:
        run_browser_tui(
            client,
            transfer_settings,
            UiSettings(tick_seconds=DEFAULT_TICK_SECONDS, status_seconds=status_seconds),
        )
    console.print(f"Log: {log_path}")


@app.command("ls")
def list_folder(
    folder_id: str = typer.Argument(
        ROOT_FOLDER_ID,
        help="Folder ID to list (default: the root Documents folder)",
    ),
    url: str | None = typer.Option(
        None,
        help="Device web interface address (default: $REMARKABLE_URL or http://10.11.99.1)",
    ),
    timeout: float = typer.Option(
        DEFAULT_TIMEOUT_SECONDS,
        help="HTTP timeout in seconds.",
    ),
) -> None:
    """Print one folder listing without opening the browser."""
    device_config = _device_config(url, timeout)
    with DeviceClient(device_config) as client:
        try:
            snapshot = client.list(folder_id)
        except RemarkableError as exc:
            console.print(f"[red]Listing failed:[/red] {exc}")
            raise typer.Exit(1) from exc

    for entry in snapshot.entries:
        marker = "[bold]folder[/bold]" if entry.is_folder else "file  "
        console.print(f"{marker}  {escape(entry.name)}  [dim]{entry.id}[/dim]")
    console.print(f"Items: {len(snapshot)}")


if __name__ == "__main__":
    app()
