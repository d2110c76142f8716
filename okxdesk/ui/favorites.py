"""Markets screen: searchable instrument list with a favorites watchlist."""

from __future__ import annotations

import asyncio
import contextlib

from rich.text import Text
from textual.app import ComposeResult
from textual.screen import Screen
from textual.widgets import DataTable, Footer, Header, Input, Static

from ..client import ExchangeService
from ..errors import ExchangeServiceError
from ..models import Instrument
from .store import MARKET_LIMIT, MARKET_TABS, FavoritesStore, filter_instruments, unique_instruments


class MarketsScreen(Screen):
    BINDINGS = [
        ("escape", "back", "Back"),
        ("q", "app.pop_screen", "Back"),
        ("r", "reload", "Reload"),
        ("slash", "focus_search", "Search"),
        ("t", "next_tab", "Tab"),
        ("f", "toggle_favorite", "Favorite"),
        ("j", "cursor_down", "Down"),
        ("k", "cursor_up", "Up"),
    ]

    CSS = """
    #markets-search {
        height: 3;
    }

    #markets-tabs {
        height: 1;
        padding: 0 1;
    }

    #markets-table {
        height: 1fr;
        border: solid #1b3650;
    }

    #markets-table:focus {
        border: solid #2c82c9;
    }

    #markets-status {
        height: 1;
        padding: 0 1;
    }
    """

    def __init__(
        self,
        client: ExchangeService,
        favorites: FavoritesStore,
        market_kind: str = "SPOT",
    ) -> None:
        super().__init__()
        self._client = client
        self._favorites = favorites
        self._market_kind = market_kind
        self._instruments: list[Instrument] = []
        self._tab = MARKET_TABS[0]
        self._query = ""
        self._row_keys: list[str] = []
        self._reload_task: asyncio.Task | None = None
        self._reload_token = 0
        self._is_loading = False
        self._error: str | None = None
        self._notice: str | None = None

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)
        yield Input(placeholder="Search instruments (/ to focus, esc to leave)", id="markets-search")
        yield Static("", id="markets-tabs")
        yield DataTable(id="markets-table", zebra_stripes=True)
        yield Static("Loading instruments...", id="markets-status")
        yield Footer()

    async def on_mount(self) -> None:
        self._search = self.query_one("#markets-search", Input)
        self._tabs = self.query_one("#markets-tabs", Static)
        self._table = self.query_one("#markets-table", DataTable)
        self._status = self.query_one("#markets-status", Static)
        self._table.add_columns("", "Instrument", "Base", "Quote", "Type")
        self._table.cursor_type = "row"
        self._table.focus()
        self._schedule_reload()

    async def on_unmount(self) -> None:
        if self._reload_task is not None and not self._reload_task.done():
            self._reload_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._reload_task

    def on_input_changed(self, event: Input.Changed) -> None:
        if event.input is not self._search:
            return
        self._query = event.value
        self._render_table()

    def on_input_submitted(self, event: Input.Submitted) -> None:
        if event.input is self._search:
            self._table.focus()

    # region Actions
    def action_back(self) -> None:
        if self._search.has_focus:
            self._table.focus()
            return
        self.app.pop_screen()

    def action_reload(self) -> None:
        self._schedule_reload()

    def action_focus_search(self) -> None:
        self._search.focus()

    def action_next_tab(self) -> None:
        idx = MARKET_TABS.index(self._tab) if self._tab in MARKET_TABS else -1
        self._tab = MARKET_TABS[(idx + 1) % len(MARKET_TABS)]
        self._render_table()

    def action_toggle_favorite(self) -> None:
        row_index = self._table.cursor_coordinate.row
        if row_index < 0 or row_index >= len(self._row_keys):
            return
        inst_id = self._row_keys[row_index]
        try:
            added = self._favorites.toggle(inst_id)
        except OSError as exc:
            self._notice = f"favorites not saved: {exc}"
        else:
            self._notice = f"{inst_id} {'added to' if added else 'removed from'} favorites"
        self._render_table()

    def action_cursor_down(self) -> None:
        self._table.action_cursor_down()

    def action_cursor_up(self) -> None:
        self._table.action_cursor_up()
    # endregion

    def _schedule_reload(self) -> None:
        self._reload_token += 1
        token = self._reload_token
        if self._reload_task is not None and not self._reload_task.done():
            self._reload_task.cancel()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._reload_task = loop.create_task(self._reload(token))

    async def _reload(self, token: int) -> None:
        self._is_loading = True
        self._status.update(f"Loading {self._market_kind} instruments...")
        try:
            instruments = await self._client.list_instruments(self._market_kind)
        except ExchangeServiceError as exc:
            if token == self._reload_token:
                self._is_loading = False
                self._error = str(exc) or "Failed to load instruments"
                self._render_table()
            return
        if token != self._reload_token:
            return
        self._is_loading = False
        self._error = None
        self._instruments = unique_instruments(instruments)
        self._render_table()

    def _render_table(self) -> None:
        self._render_tabs()
        prev_row = self._table.cursor_coordinate.row
        prev_key = self._row_keys[prev_row] if 0 <= prev_row < len(self._row_keys) else None
        self._table.clear()
        self._row_keys = []
        rows = filter_instruments(self._instruments, self._query, self._tab, self._favorites)
        for inst in rows:
            star = Text("★", style="bold #ffcc84") if inst.inst_id in self._favorites else Text(" ")
            self._table.add_row(
                star,
                Text(inst.inst_id, style="bold"),
                inst.base_ccy,
                inst.quote_ccy,
                Text(inst.inst_type, style="dim"),
                key=inst.inst_id,
            )
            self._row_keys.append(inst.inst_id)
        if prev_key in self._row_keys:
            self._table.move_cursor(row=self._row_keys.index(prev_key))
        self._status.update(self._status_text(len(rows)))

    def _render_tabs(self) -> None:
        line = Text()
        for tab in MARKET_TABS:
            label = f"{tab} ({len(self._favorites)})" if tab == "Favorites" else tab
            style = "bold reverse" if tab == self._tab else "dim"
            line.append(f" {label} ", style=style)
            line.append(" ")
        line.append("  t: next tab  f: toggle favorite", style="dim")
        self._tabs.update(line)

    def _status_text(self, shown: int) -> str:
        if self._is_loading:
            return f"Loading {self._market_kind} instruments..."
        base = f"{self._market_kind} | showing {shown} of {len(self._instruments)} (max {MARKET_LIMIT})"
        if self._error:
            return f"{base} | error: {self._error}"
        if self._notice:
            return f"{base} | {self._notice}"
        return base
