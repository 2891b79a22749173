from __future__ import annotations

from textual import events
from textual.app import App, ComposeResult
from textual.containers import Container
from textual.widgets import Header, Static

from . import render
from .config import TransferSettings, UiSettings
from .coordinator import TransferCoordinator
from .device_client import DeviceClient
from .keymap import resolve
from .logs import get_logger
from .navigation import BrowserState

MAX_EVENTS_PER_TICK = 200


class BrowserApp(App[None]):
    TITLE = "reMarkable"
    CSS = """
    Screen {
        layout: vertical;
        layers: base overlay;
    }
    #crumbs {
        height: 1;
        padding: 0 1;
    }
    #rows {
        height: 1fr;
        border: round #666666;
        padding: 0 1;
    }
    #status {
        height: 1;
        padding: 0 1;
        background: $boost;
    }
    #help {
        height: 1;
        padding: 0 1;
        color: #999999;
    }
    #modal-root {
        layer: overlay;
        width: 100%;
        height: 100%;
        align: center middle;
        display: none;
    }
    #modal {
        width: 70%;
        height: auto;
        border: round #4477aa;
        background: $panel;
        padding: 1 2;
    }
    """

    def __init__(
        self,
        coordinator: TransferCoordinator,
        *,
        transfer_settings: TransferSettings | None = None,
        ui_settings: UiSettings | None = None,
    ) -> None:
        super().__init__()
        self.ui_settings = ui_settings or UiSettings()
        settings = transfer_settings or coordinator.settings
        self.coordinator = coordinator
        self.state = BrowserState(
            coordinator,
            download_suffix=settings.download_suffix,
            status_seconds=self.ui_settings.status_seconds,
        )
        self.logger = get_logger("tui")

    def compose(self) -> ComposeResult:
        yield Header()
        yield Static(id="crumbs")
        yield Static(id="rows")
        yield Static(id="status")
        yield Static(id="help")
        with Container(id="modal-root"):
            yield Static(id="modal")

    def on_mount(self) -> None:
        self.state.start()
        self.set_interval(self.ui_settings.tick_seconds, self._tick)
        self._render_frame()

    def on_unmount(self) -> None:
        if not self.state.terminated:
            self.state.quit()

    def _tick(self) -> None:
        self.state.apply_events(self.coordinator.poll_events(MAX_EVENTS_PER_TICK))
        self.state.expire_status()
        self._render_frame()

    def _render_frame(self) -> None:
        if self.state.terminated:
            return
        rows_widget = self.query_one("#rows", Static)
        height = rows_widget.content_size.height or 1
        self.query_one("#crumbs", Static).update(render.breadcrumb(self.state))
        rows_widget.update(render.rows(self.state, height))
        self.query_one("#status", Static).update(render.status_bar(self.state))
        self.query_one("#help", Static).update(render.help_line(self.state))

        modal_root = self.query_one("#modal-root", Container)
        modal_text = render.upload_modal(self.state)
        if modal_text is None:
            modal_root.display = False
        else:
            self.query_one("#modal", Static).update(modal_text)
            modal_root.display = True

    def on_key(self, event: events.Key) -> None:
        command = resolve(self.state.mode, event.key, event.character)
        if command is None:
            return
        event.stop()
        event.prevent_default()
        self.state.dispatch(command)
        if self.state.terminated:
            self.logger.info("Quit requested")
            self.exit()
            return
        self._render_frame()


def run_browser_tui(
    client: DeviceClient,
    transfer_settings: TransferSettings,
    ui_settings: UiSettings | None = None,
) -> None:
    coordinator = TransferCoordinator(client, transfer_settings)
    app = BrowserApp(
        coordinator,
        transfer_settings=transfer_settings,
        ui_settings=ui_settings,
    )
    try:
        app.run()
    finally:
        coordinator.shutdown()
