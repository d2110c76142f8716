"""Trade history screen: PnL summary, daily calendar and recent fills."""

from __future__ import annotations

import asyncio
import contextlib
from datetime import date, datetime

from rich.text import Text
from textual.app import ComposeResult
from textual.containers import Horizontal
from textual.screen import Screen
from textual.widgets import DataTable, Footer, Header, Static

from ..analytics import (
    FillLedger,
    calendar_grid,
    calendar_weeks,
    pnl_bar_series,
    safe_parse_pnl,
    shift_month,
)
from ..client import ExchangeService
from ..errors import ExchangeServiceError
from .common import _calendar_cell_text, _fmt_amount, _fmt_price, _pnl_bars, _pnl_text

_WEEKDAYS = ("Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat")
_CELL_WIDTH = 9
_START_MONTHS_BACK = 2


class HistoryScreen(Screen):
    BINDINGS = [
        ("escape", "app.pop_screen", "Back"),
        ("b", "app.pop_screen", "Back"),
        ("q", "app.pop_screen", "Back"),
        ("r", "reload", "Reload"),
        ("left_square_bracket", "prev_month", "Prev Month"),
        ("right_square_bracket", "next_month", "Next Month"),
        ("j", "cursor_down", "Down"),
        ("k", "cursor_up", "Up"),
    ]

    CSS = """
    #history-summary {
        height: 1;
        padding: 0 1;
    }

    #history-body {
        height: 10;
    }

    #history-calendar {
        width: 2fr;
        padding: 0 1;
    }

    #history-bars {
        width: 1fr;
        padding: 0 1;
    }

    #history-fills {
        height: 1fr;
    }

    #history-status {
        height: 1;
        padding: 0 1;
    }
    """

    def __init__(self, client: ExchangeService, *, color_mode: str = "standard") -> None:
        super().__init__()
        self._client = client
        self._color_mode = color_mode
        self._ledger = FillLedger()
        today = date.today()
        self._year, self._month = shift_month(today.year, today.month, -_START_MONTHS_BACK)
        self._reload_task: asyncio.Task | None = None
        self._reload_token = 0
        self._error: str | None = None
        self._loaded_at: datetime | None = None

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)
        yield Static("", id="history-summary")
        yield Horizontal(
            Static("", id="history-calendar"),
            Static("", id="history-bars"),
            id="history-body",
        )
        yield DataTable(id="history-fills", zebra_stripes=True)
        yield Static("Loading fills...", id="history-status")
        yield Footer()

    async def on_mount(self) -> None:
        self._summary = self.query_one("#history-summary", Static)
        self._calendar = self.query_one("#history-calendar", Static)
        self._bars = self.query_one("#history-bars", Static)
        self._table = self.query_one("#history-fills", DataTable)
        self._status = self.query_one("#history-status", Static)
        self._table.add_columns("Time", "Symbol", "Side", "Price", "Size", "Fee", "PnL")
        self._table.cursor_type = "row"
        self._table.focus()
        self._schedule_reload()

    async def on_unmount(self) -> None:
        if self._reload_task is not None and not self._reload_task.done():
            self._reload_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._reload_task

    def action_reload(self) -> None:
        self._schedule_reload()

    def action_prev_month(self) -> None:
        self._year, self._month = shift_month(self._year, self._month, -1)
        self._render_calendar()

    def action_next_month(self) -> None:
        self._year, self._month = shift_month(self._year, self._month, 1)
        self._render_calendar()

    def action_cursor_down(self) -> None:
        self._table.action_cursor_down()

    def action_cursor_up(self) -> None:
        self._table.action_cursor_up()

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
        self._status.update("Loading fills...")
        try:
            fills = await self._client.get_trade_history()
        except ExchangeServiceError as exc:
            if token != self._reload_token:
                return
            self._error = str(exc) or "Failed to load fills"
            self._render()
            return
        if token != self._reload_token:
            return
        self._ledger.ingest(fills)
        self._error = None
        self._loaded_at = datetime.now()
        self._render()

    def _render(self) -> None:
        self._render_summary()
        self._render_calendar()
        self._render_bars()
        self._render_fills()
        self._status.update(self._status_text())

    def _render_summary(self) -> None:
        summary = self._ledger.summary()
        line = Text("Cumulative PnL  ", style="dim")
        line.append_text(_pnl_text(summary.cumulative_pnl, color_mode=self._color_mode))
        line.append("   Win rate  ", style="dim")
        line.append(f"{summary.win_rate:.1f}%")
        line.append("   Trades  ", style="dim")
        line.append(str(summary.trade_count))
        self._summary.update(line)

    def _render_calendar(self) -> None:
        weeks = calendar_weeks(calendar_grid(self._year, self._month, self._ledger.buckets()))
        title = Text(f"{self._year}-{self._month:02d}", style="bold")
        title.append("   [ prev   ] next", style="dim")
        header = Text("".join(f"{name:<{_CELL_WIDTH}}" for name in _WEEKDAYS), style="dim")
        rows = [title, header]
        for week in weeks:
            rows.append(
                Text("").join(
                    _calendar_cell_text(cell, color_mode=self._color_mode, width=_CELL_WIDTH)
                    for cell in week
                )
            )
        self._calendar.update(Text("\n").join(rows))

    def _render_bars(self) -> None:
        series = pnl_bar_series(self._ledger.fills)
        width = max(int(getattr(self._bars.size, "width", 0) or 0) - 2, 12)
        if not series:
            self._bars.update(Text("No fills", style="dim"))
            return
        shown = series[-width:]
        lines = [
            Text("PnL per fill", style="bold"),
            _pnl_bars([value for _, value in shown], width=width, color_mode=self._color_mode),
            Text(f"{shown[0][0]} … {shown[-1][0]}", style="dim"),
        ]
        self._bars.update(Text("\n").join(lines))

    def _render_fills(self) -> None:
        self._table.clear()
        for fill in self._ledger.fills:
            stamp = datetime.fromtimestamp(fill.ts / 1000.0).strftime("%m-%d %H:%M:%S")
            side_style = "green" if fill.side == "buy" else "red"
            self._table.add_row(
                stamp,
                Text(fill.inst_id, style="bold"),
                Text(fill.side.upper(), style=side_style),
                _fmt_price(fill.fill_px),
                _fmt_amount(fill.fill_sz),
                _fmt_amount(fill.fee),
                _pnl_text(safe_parse_pnl(fill.pnl), color_mode=self._color_mode),
            )

    def _status_text(self) -> str:
        loaded = self._loaded_at.strftime("%H:%M:%S") if self._loaded_at else "n/a"
        base = f"fills: {len(self._ledger)} | loaded: {loaded}"
        if self._error:
            return f"{base} | error: {self._error}"
        return base
