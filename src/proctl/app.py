"""proctl - Textual process control client."""

import locale
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import TypeVar

from rich.text import Text
from textual import work
from textual.app import App, ComposeResult
from textual.containers import Container, Horizontal, Vertical
from textual.screen import ModalScreen
from textual.widget import Widget
from textual.widgets import Button, DataTable, Footer, Input, Label, Static

from proctl.client import ProcessControlClient
from proctl.errors import ProcessControlError
from proctl.greeting import Clock, greeting_text, system_clock
from proctl.logging_setup import get_logger
from proctl.models import Process

logger = get_logger("app")

LOAD_ERROR = "Error loading processes"

WidgetType = TypeVar("WidgetType", bound=Widget)

# Widgets disabled while an action's request is in flight
_CONTROLS = {
    "start": ("#start-input", "#start-button"),
    "stop": ("#stop-input", "#stop-button"),
    "row": ("#process-table",),
}


def format_memory(size: int) -> str:
    """Format bytes as megabytes with two decimals."""
    return f"{size / 1024**2:.2f} MB"


def sort_processes(processes: Iterable[Process]) -> list[Process]:
    """Sort by name with locale-aware, case-folded collation."""
    return sorted(processes, key=lambda p: (locale.strxfrm(p.name.casefold()), p.name, p.id))


@dataclass
class AppState:
    """Everything the UI renders from."""

    greeting: str = ""
    processes: list[Process] = field(default_factory=list)
    load_error: str | None = None
    in_flight: set[str] = field(default_factory=set)


class NoticeScreen(ModalScreen[None]):
    """Blocking message the user has to dismiss."""

    DEFAULT_CSS = """
    NoticeScreen {
        align: center middle;
    }

    #notice-dialog {
        width: 60;
        height: auto;
        padding: 1 2;
        border: thick $primary;
        background: $surface;
    }

    #notice-ok {
        margin-top: 1;
    }
    """

    BINDINGS = [("escape", "close", "Close")]

    def __init__(self, message: str) -> None:
        super().__init__()
        self.message = message

    def compose(self) -> ComposeResult:
        yield Vertical(
            Label(Text(self.message), id="notice-message"),
            Button("OK", id="notice-ok", variant="primary"),
            id="notice-dialog",
        )

    def on_mount(self) -> None:
        self.query_one("#notice-ok", Button).focus()

    def on_button_pressed(self, event: Button.Pressed) -> None:
        event.stop()
        self.dismiss()

    def action_close(self) -> None:
        self.dismiss()


class ProcessTable(Container):
    """Container for the process data table and its error placeholder."""

    DEFAULT_CSS = """
    ProcessTable {
        height: 1fr;
        border: solid $primary;
    }

    #process-error {
        color: $error;
        padding: 1;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize ProcessTable."""
        super().__init__(*args, **kwargs)
        self._rows: list[Process] = []

    @property
    def rows(self) -> list[Process]:
        """Processes in the order they are displayed."""
        return list(self._rows)

    def compose(self) -> ComposeResult:
        """Compose the process table."""
        yield DataTable(id="process-table")
        yield Static(Text(LOAD_ERROR), id="process-error")

    def on_mount(self) -> None:
        """Initialize the data table when mounted."""
        table = self.query_one("#process-table", DataTable)
        table.cursor_type = "row"

        table.add_column("Name", key="name")
        table.add_column("PID", key="pid", width=8)
        table.add_column("Memory", key="memory", width=12)

        self.query_one("#process-error", Static).display = False

    def render_state(self, state: AppState) -> None:
        """
        Re-render from application state.

        A load error replaces the rows with the placeholder.
        """
        table = self.query_one("#process-table", DataTable)
        placeholder = self.query_one("#process-error", Static)
        cursor_row = table.cursor_row

        table.clear()
        if state.load_error:
            self._rows = []
            placeholder.update(Text(state.load_error))
            placeholder.display = True
            return

        placeholder.display = False
        self._rows = list(state.processes)
        for proc in self._rows:
            table.add_row(Text(proc.name), str(proc.id), format_memory(proc.memory))

        if self._rows:
            table.move_cursor(row=min(cursor_row, len(self._rows) - 1))

    def process_at(self, row: int) -> Process | None:
        """The process displayed at a row index, if any."""
        if 0 <= row < len(self._rows):
            return self._rows[row]
        return None


class ProctlApp(App):
    """Terminal client for a proctl service."""

    TITLE = "proctl"
    SUB_TITLE = "Process Control"

    CSS = """
    Screen {
        layout: vertical;
    }

    #greeting {
        height: auto;
        padding: 1;
        color: $warning;
        text-style: bold;
    }

    .form {
        height: auto;
    }

    .form Input {
        width: 1fr;
    }

    .form Button {
        width: 10;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("r", "reload", "Refresh"),
        ("x", "stop_selected", "Stop selected"),
    ]

    def __init__(
        self,
        client: ProcessControlClient | None = None,
        clock: Clock = system_clock,
        api_url: str = "http://localhost:2000",
        timeout: float = 5.0,
    ) -> None:
        """
        Initialize the ProctlApp.

        Args:
            client: API client to use; one is built from api_url and timeout if omitted.
            clock: Time source for the greeting.
        """
        super().__init__()
        self._owns_client = client is None
        self._client = client or ProcessControlClient(api_url, timeout=timeout)
        self._clock = clock
        self._loaded_at: datetime | None = None
        self.app_state = AppState()

    def compose(self) -> ComposeResult:
        """Compose the application layout."""
        yield Static(id="greeting")
        yield Horizontal(
            Input(placeholder="Command to start", id="start-input"),
            Button("Start", id="start-button", variant="success"),
            classes="form",
        )
        yield Horizontal(
            Input(placeholder="Process name to stop", id="stop-input"),
            Button("Stop", id="stop-button", variant="error"),
            classes="form",
        )
        yield ProcessTable()
        yield Footer()

    def on_mount(self) -> None:
        """Fetch the greeting and the process list."""
        self._loaded_at = self._clock()
        self.load()

    def show_notice(self, message: str) -> None:
        """Show a blocking notice."""
        self.push_screen(NoticeScreen(message))

    def _main(self, selector: str, expect_type: type[WidgetType]) -> WidgetType:
        # Notices sit on top of the main screen; always render into the main one
        return self.screen_stack[0].query_one(selector, expect_type)

    def _begin(self, action: str) -> bool:
        """Mark an action in flight, refusing a second concurrent submission."""
        if action in self.app_state.in_flight:
            return False
        self.app_state.in_flight.add(action)
        for selector in _CONTROLS[action]:
            self._main(selector, Widget).disabled = True
        return True

    def _finish(self, action: str) -> None:
        self.app_state.in_flight.discard(action)
        for selector in _CONTROLS[action]:
            self._main(selector, Widget).disabled = False

    @work(exclusive=True, group="load")
    async def load(self) -> None:
        """Initial load: greeting first, then the process list."""
        await self._load_greeting()
        self.refresh_processes()

    @work(exclusive=True, group="refresh")
    async def refresh_processes(self) -> None:
        """
        Re-fetch and re-render the process list.

        Every listing runs in this exclusive group; a newer refresh cancels
        an older one still waiting on the service.
        """
        await self._refresh()

    async def _load_greeting(self) -> None:
        try:
            name = await self._client.get_name()
        except ProcessControlError as e:
            logger.error(f"Error fetching user name: {e}")
            return
        self.app_state.greeting = greeting_text(name, self._loaded_at or self._clock())
        self._main("#greeting", Static).update(Text(self.app_state.greeting))

    async def _refresh(self) -> None:
        try:
            processes = await self._client.list_processes()
        except ProcessControlError as e:
            logger.error(f"Error getting processes: {e}")
            self.app_state.load_error = LOAD_ERROR
        else:
            self.app_state.processes = sort_processes(processes)
            self.app_state.load_error = None
        self._main("ProcessTable", ProcessTable).render_state(self.app_state)

    def on_input_submitted(self, event: Input.Submitted) -> None:
        if event.input.id == "start-input":
            self.submit_start()
        elif event.input.id == "stop-input":
            self.submit_stop()

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "start-button":
            self.submit_start()
        elif event.button.id == "stop-button":
            self.submit_stop()

    def submit_start(self) -> None:
        """Start the command typed in the start form."""
        name = self._main("#start-input", Input).value.strip()
        if not name:
            self.show_notice("Please enter a process to start")
            return
        if self._begin("start"):
            self._start_process(name)

    def submit_stop(self) -> None:
        """Stop the processes named in the stop form."""
        name = self._main("#stop-input", Input).value.strip()
        if not name:
            self.show_notice("Please enter a process to stop")
            return
        if self._begin("stop"):
            self._stop_by_name(name)

    def stop_row(self, row: int) -> None:
        """Stop the process displayed at a row."""
        process = self._main("ProcessTable", ProcessTable).process_at(row)
        if process is not None and self._begin("row"):
            self._stop_process(process)

    @work(group="start")
    async def _start_process(self, name: str) -> None:
        try:
            process = await self._client.start(name)
        except ProcessControlError as e:
            logger.error(f"Error starting process {name!r}: {e}")
            self.show_notice(f"Error: {e}")
        else:
            logger.info(f"Started {process.name!r} (PID {process.id})")
            self._main("#start-input", Input).value = ""
            self.refresh_processes()
        finally:
            self._finish("start")

    @work(group="stop")
    async def _stop_by_name(self, name: str) -> None:
        try:
            stopped = await self._client.stop_by_name(name)
        except ProcessControlError as e:
            logger.error(f"Error stopping process {name!r}: {e}")
            self.show_notice(f"Error: {e}")
        else:
            logger.info(f"Stopped {len(stopped)} process(es) named {name!r}")
            self._main("#stop-input", Input).value = ""
            self.refresh_processes()
        finally:
            self._finish("stop")

    @work(group="row")
    async def _stop_process(self, process: Process) -> None:
        try:
            await self._client.stop(process.id)
        except ProcessControlError as e:
            logger.error(f"Error stopping process {process.id}: {e}")
            self.show_notice(f"Error: {e}")
        else:
            self.show_notice(f"Successfully stopped {process.name}")
            self.refresh_processes()
        finally:
            self._finish("row")

    def action_reload(self) -> None:
        """Handle refresh action."""
        self.refresh_processes()

    def action_stop_selected(self) -> None:
        """Handle stop action on the highlighted row."""
        table = self._main("#process-table", DataTable)
        self.stop_row(table.cursor_row)

    async def action_quit(self) -> None:
        """Handle quit action with graceful cleanup."""
        if self._owns_client:
            await self._client.aclose()
        self.exit()
