"""Account dashboard TUI (balances, equity trend, positions) entrypoint."""

from __future__ import annotations

import asyncio

from rich.text import Text
from structlog import get_logger
from textual.app import App, ComposeResult
from textual.widgets import DataTable, Footer, Header, Static

from ..client import DISPLAY_UNITS, OKXClient
from ..config import DeskConfig, load_config
from ..controller import PositionOrdersController
from ..equity import (
    EquityChange,
    EquityRecorder,
    allocation,
    display_series,
    next_period,
    to_display,
    total_equity_usd,
    window_change,
)
from ..errors import ExchangeServiceError
from ..models import EquitySnapshot, Position
from .common import (
    _fmt_amount,
    _fmt_balance,
    _pct_text,
    _pnl_text,
    _position_row,
    _rate_hint,
    _sparkline,
    _tone_style,
)
from .favorites import MarketsScreen
from .history import HistoryScreen
from .positions import PositionDetailScreen
from .store import AccountSnapshot, FavoritesStore

logger = get_logger("okxdesk.ui.app")


# region Dashboard UI
class DeskApp(App):
    BINDINGS = [
        ("q", "quit", "Quit"),
        ("r", "refresh", "Refresh"),
        ("j", "cursor_down", "Down"),
        ("k", "cursor_up", "Up"),
        ("l", "open_details", "Details"),
        ("u", "cycle_unit", "Unit"),
        ("p", "cycle_period", "Period"),
        ("v", "toggle_hidden", "Hide"),
        ("t", "open_history", "History"),
        ("m", "open_markets", "Markets"),
    ]

    CSS = """
    Screen {
        layout: vertical;
    }

    #summary {
        height: 4;
        padding: 0 1;
    }

    #trend {
        height: 2;
        padding: 0 1;
    }

    #positions {
        height: 1fr;
    }

    #positions:focus {
        border: solid #26567a;
    }

    #positions > .datatable--cursor {
        background: #181b20;
    }

    #balances {
        height: 12;
    }

    #status {
        height: 1;
        padding: 0 1;
    }

    #detail-body {
        height: 1fr;
        layout: horizontal;
    }

    #detail-left {
        width: 1fr;
        height: 1fr;
        padding: 0 1;
    }

    #detail-right {
        width: 2fr;
        height: 1fr;
        padding: 0 1;
    }
    """

    def __init__(
        self,
        config: DeskConfig | None = None,
        client: OKXClient | None = None,
    ) -> None:
        super().__init__()
        self._config = config or load_config()
        self._client = client or OKXClient(
            self._config, recorder=EquityRecorder(self._config.equity_path)
        )
        self._controller = PositionOrdersController(self._client, self._config.orders_poll_sec)
        self._favorites = FavoritesStore(self._config.favorites_path)
        self._snapshot = AccountSnapshot()
        self._history: list[EquitySnapshot] = []
        self._refresh_lock = asyncio.Lock()
        self._refresh_timer = None
        self._row_keys: list[str] = []
        self._position_by_key: dict[str, Position] = {}
        self._unit = "USD"
        self._period = "1M"
        self._hidden = False

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)
        yield Static("", id="summary")
        yield Static("", id="trend")
        yield DataTable(id="positions", zebra_stripes=True)
        yield DataTable(id="balances", zebra_stripes=True)
        yield Static("Starting...", id="status")
        yield Footer()

    async def on_mount(self) -> None:
        self._table = self.query_one("#positions", DataTable)
        self._balances_table = self.query_one("#balances", DataTable)
        self._summary = self.query_one("#summary", Static)
        self._trend = self.query_one("#trend", Static)
        self._status = self.query_one("#status", Static)
        self._setup_columns()
        self._table.cursor_type = "row"
        self._table.focus()
        self._favorites.load()
        self._client.recorder.load()
        await self.refresh_account()
        self._refresh_timer = self.set_interval(self._config.refresh_sec, self._schedule_refresh)

    async def on_unmount(self) -> None:
        if self._refresh_timer is not None:
            self._refresh_timer.stop()
        await self._controller.close()
        await self._client.close()

    def _setup_columns(self) -> None:
        self._table.add_columns("Symbol", "Side", "Size", "Entry", "uPnL")
        self._balances_table.add_columns("Asset", "Available", "Value (USD)", "Alloc")

    @property
    def color_mode(self) -> str:
        return self._config.color_mode

    # region Actions
    async def action_refresh(self) -> None:
        await self.refresh_account()

    def action_cursor_down(self) -> None:
        self._table.action_cursor_down()

    def action_cursor_up(self) -> None:
        self._table.action_cursor_up()

    def action_open_details(self) -> None:
        row_index = self._table.cursor_coordinate.row
        if row_index < 0 or row_index >= len(self._row_keys):
            return
        pos = self._position_by_key.get(self._row_keys[row_index])
        if pos is not None:
            self._open_position(pos)

    def on_data_table_row_selected(self, event: DataTable.RowSelected) -> None:
        if event.control is not self._table:
            return
        pos = self._position_by_key.get(event.row_key.value)
        if pos is not None:
            self._open_position(pos)

    def _open_position(self, pos: Position) -> None:
        self.push_screen(PositionDetailScreen(self._controller, pos, color_mode=self.color_mode))

    def action_cycle_unit(self) -> None:
        idx = DISPLAY_UNITS.index(self._unit) if self._unit in DISPLAY_UNITS else -1
        self._unit = DISPLAY_UNITS[(idx + 1) % len(DISPLAY_UNITS)]
        self._render_summary()

    async def action_cycle_period(self) -> None:
        self._period = next_period(self._period)
        self._history = await self._client.get_asset_history(self._period)
        self._render_summary()

    def action_toggle_hidden(self) -> None:
        self._hidden = not self._hidden
        self._render()

    def action_open_history(self) -> None:
        self.push_screen(HistoryScreen(self._client, color_mode=self.color_mode))

    def action_open_markets(self) -> None:
        self.push_screen(MarketsScreen(self._client, self._favorites, self._config.market_kind))
    # endregion

    def _schedule_refresh(self) -> None:
        if self._refresh_lock.locked():
            return
        self.run_worker(self.refresh_account(), exclusive=True, group="account")

    async def refresh_account(self) -> None:
        if self._refresh_lock.locked():
            return
        async with self._refresh_lock:
            try:
                balances = await self._client.get_balances()
                positions = await self._client.get_positions()
                self._history = await self._client.get_asset_history(self._period)
            except ExchangeServiceError as exc:
                self._snapshot.fail(str(exc))
            else:
                self._snapshot.update(balances, positions)
                self._controller.set_positions(positions)
            try:
                await self._client.refresh_rates()
            except ExchangeServiceError as exc:
                logger.info("display rates unchanged", error=str(exc))
            self._render()

    def _rate(self) -> float:
        rate = float(self._client.exchange_rates.get(self._unit, 0.0) or 0.0)
        return rate if rate > 0 else 1.0

    def _render(self) -> None:
        self._render_summary()
        self._render_positions()
        self._render_balances()
        self._status.update(self._status_text())

    def _render_summary(self) -> None:
        rate = self._rate()
        total_usd = total_equity_usd(self._snapshot.balances)
        change = window_change(self._history)
        headline = Text("Total assets  ", style="dim")
        headline.append(
            _fmt_balance(to_display(total_usd, rate), self._unit, hidden=self._hidden),
            style="bold",
        )
        hint = _rate_hint(self._unit, rate)
        if hint:
            headline.append(f"   {hint}", style="dim")
        self._summary.update(Text("\n").join([headline, self._period_line(change, rate)]))
        self._render_trend(change)

    def _period_line(self, change: EquityChange, rate: float) -> Text:
        line = Text(f"{self._period} PnL  ", style="dim")
        if not change.has_data:
            line.append("not enough history yet", style="grey58")
            return line
        if self._hidden:
            line.append("****")
        else:
            suffix = "" if self._unit == "BTC" else f" {self._unit}"
            line.append_text(
                _pnl_text(to_display(change.abs_change, rate), color_mode=self.color_mode, suffix=suffix)
            )
        line.append("  ")
        line.append_text(_pct_text(change.pct_change, color_mode=self.color_mode))
        return line

    def _render_trend(self, change: EquityChange) -> None:
        if not change.has_data:
            self._trend.update(
                Text("Not enough history data collected yet. Keep the app open to record asset trends.", style="dim")
            )
            return
        points = display_series(self._history, self._period)
        width = max(int(getattr(self._trend.size, "width", 0) or 0) - 2, 20)
        tone = "gain" if change.pct_change >= 0 else "loss"
        spark = Text(_sparkline([value for _, value in points], width), style=_tone_style(tone, self.color_mode))
        labels = Text(f"{points[0][0]} … {points[-1][0]}", style="dim")
        self._trend.update(Text("\n").join([spark, labels]))

    def _render_positions(self) -> None:
        prev_row = self._table.cursor_coordinate.row
        prev_key = self._row_keys[prev_row] if 0 <= prev_row < len(self._row_keys) else None
        self._table.clear()
        self._row_keys = []
        self._position_by_key = {}
        for pos in self._snapshot.positions:
            key = f"{pos.inst_id}:{pos.pos_side}"
            self._table.add_row(
                *_position_row(pos, hidden=self._hidden, color_mode=self.color_mode),
                key=key,
            )
            self._row_keys.append(key)
            self._position_by_key[key] = pos
        if not self._row_keys:
            self._table.add_row(Text("No open positions", style="dim"), "", "", "", "")
            return
        if prev_key in self._row_keys:
            self._table.move_cursor(row=self._row_keys.index(prev_key))

    def _render_balances(self) -> None:
        self._balances_table.clear()
        shares = dict(allocation(self._snapshot.balances))
        total = sum(shares.values())
        for balance in self._snapshot.balances:
            share = shares.get(balance.ccy)
            alloc = f"{share / total * 100:.1f}%" if share and total > 0 else ""
            if self._hidden:
                avail, value = "****", "****"
            else:
                avail, value = _fmt_amount(balance.avail_bal), f"${_fmt_amount(balance.eq_usd)}"
            self._balances_table.add_row(Text(balance.ccy, style="bold"), avail, value, alloc)

    def _status_text(self) -> str:
        updated = self._snapshot.updated_at
        ts = updated.astimezone().strftime("%Y-%m-%d %H:%M:%S") if updated else "n/a"
        base = (
            f"OKX {'sandbox' if self._config.sandbox else 'live'} | last update: {ts}"
            f" | positions: {len(self._snapshot.positions)} | unit: {self._unit}"
            f" | period: {self._period}"
        )
        if self._snapshot.error:
            return f"{base} | error: {self._snapshot.error}"
        return base
# endregion
