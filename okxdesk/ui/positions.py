"""Position detail screen (open orders + order control)."""

from __future__ import annotations

import asyncio

from rich.text import Text
from textual import events
from textual.app import ComposeResult
from textual.containers import Horizontal
from textual.screen import Screen
from textual.widgets import Footer, Header, Static

from ..controller import ActionResult, PositionOrdersController
from ..models import Order, Position
from ..orders import amend_field
from .common import (
    _append_digit,
    _fmt_price,
    _order_line,
    _pnl_text,
    _position_size,
    _safe_float,
)

_PROMPTS = {
    "edit": "New price",
    "sl": "Stop-loss trigger",
    "tp": "Take-profit trigger",
}
_AMEND_LABELS = {
    "new_px": "px",
    "new_trigger_px": "triggerPx",
    "new_sl_trigger_px": "slTriggerPx",
    "new_tp_trigger_px": "tpTriggerPx",
}


class PositionDetailScreen(Screen):
    BINDINGS = [
        ("escape", "back", "Back"),
        ("b", "back", "Back"),
        ("q", "back", "Back"),
        ("r", "refresh_orders", "Refresh"),
        ("up", "orders_up", "Up"),
        ("down", "orders_down", "Down"),
        ("j", "orders_down", "Down"),
        ("k", "orders_up", "Up"),
        ("c", "cancel_order", "Cancel"),
        ("e", "edit_order", "Edit"),
        ("s", "attach('sl')", "Add SL"),
        ("t", "attach('tp')", "Add TP"),
        ("enter", "submit", "Submit"),
    ]

    def __init__(
        self,
        controller: PositionOrdersController,
        position: Position,
        *,
        color_mode: str = "standard",
    ) -> None:
        super().__init__()
        self._controller = controller
        self._position = position
        self._color_mode = color_mode
        self._orders_selected = 0
        self._input_mode: str | None = None
        self._input_target: Order | None = None
        self._price_input = ""
        self._status: str | None = None
        self._pending: set[asyncio.Task] = set()
        self._ready = False

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)
        yield Horizontal(
            Static("", id="detail-left"),
            Static("", id="detail-right"),
            id="detail-body",
        )
        yield Static("", id="status")
        yield Footer()

    async def on_mount(self) -> None:
        self._detail_left = self.query_one("#detail-left", Static)
        self._detail_right = self.query_one("#detail-right", Static)
        self._status_line = self.query_one("#status", Static)
        self._ready = True
        self._controller.set_on_change(self._render_details)
        self._controller.expand(self._position.inst_id)
        self._render_details()

    async def on_unmount(self) -> None:
        self._ready = False
        self._controller.set_on_change(None)
        self._controller.collapse()
        for task in list(self._pending):
            task.cancel()

    def on_key(self, event: events.Key) -> None:
        if self._input_mode is None:
            return
        if event.key == "backspace":
            self._price_input = self._price_input[:-1]
            self._render_details()
            event.stop()
            return
        if event.character and event.character in "0123456789.":
            self._price_input = _append_digit(self._price_input, event.character)
            self._render_details()
            event.stop()

    # region Actions
    def action_back(self) -> None:
        if self._input_mode is not None:
            self._clear_input()
            self._status = None
            self._render_details()
            return
        self.app.pop_screen()

    def action_refresh_orders(self) -> None:
        self._run(self._refresh())

    def action_orders_up(self) -> None:
        self._orders_selected = max(self._orders_selected - 1, 0)
        self._render_details()

    def action_orders_down(self) -> None:
        orders = self._controller.orders
        if orders:
            self._orders_selected = min(self._orders_selected + 1, len(orders) - 1)
        self._render_details()

    def action_cancel_order(self) -> None:
        if self._input_mode is not None:
            return
        order = self._selected_order()
        if order is None:
            self._set_status("Cancel: no order")
            return
        self._set_status(f"Canceling {order.algo_id or order.ord_id}")
        self._run(self._perform(self._controller.cancel(order)))

    def action_edit_order(self) -> None:
        if self._input_mode is not None:
            return
        order = self._selected_order()
        if order is None:
            self._set_status("Edit: no order")
            return
        self._input_mode = "edit"
        self._input_target = order
        self._price_input = ""
        self._status = None
        self._render_details()

    def action_attach(self, kind: str) -> None:
        if self._input_mode is not None:
            return
        self._input_mode = kind
        self._input_target = None
        self._price_input = ""
        self._status = None
        self._render_details()

    def action_submit(self) -> None:
        mode = self._input_mode
        if mode is None:
            return
        price = self._price_input
        target = self._input_target
        self._clear_input()
        if mode == "edit":
            if target is None:
                self._set_status("Edit: no order")
                return
            self._set_status("Modifying...")
            self._run(self._perform(self._controller.modify(target, price)))
            return
        self._set_status(f"Placing {mode.upper()}...")
        self._run(
            self._perform(self._controller.attach(mode, price, self._position.inst_id))
        )
    # endregion

    def _run(self, coro) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            self._set_status("No event loop")
            return
        task = loop.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _perform(self, action) -> None:
        result: ActionResult = await action
        self._status = result.message
        if result.ok and result.submitted:
            await self._controller.refresh()
        self._render_details()

    async def _refresh(self) -> None:
        await self._controller.refresh()
        self._set_status("Orders refreshed")

    def _clear_input(self) -> None:
        self._input_mode = None
        self._input_target = None
        self._price_input = ""

    def _set_status(self, message: str) -> None:
        self._status = message
        self._render_details()

    def _selected_order(self) -> Order | None:
        orders = self._controller.orders
        if not orders:
            return None
        self._orders_selected = min(self._orders_selected, len(orders) - 1)
        return orders[self._orders_selected]

    def _render_details(self) -> None:
        if not self._ready:
            return
        self._detail_left.update(self._position_panel())
        self._detail_right.update(self._orders_panel())
        self._status_line.update(self._status_text())

    def _position_panel(self) -> Text:
        pos = self._controller.position(self._position.inst_id) or self._position
        size, unit = _position_size(pos)
        lines = [
            Text(pos.inst_id, style="bold"),
            Text(f"{'SWAP' if pos.is_swap else 'SPOT'}  {pos.pos_side.upper()}  {pos.mgn_mode or '-'}", style="dim"),
            Text(f"Size   {size} {unit}".rstrip()),
            Text(f"Entry  {_fmt_price(pos.avg_px)}"),
        ]
        upl = Text("uPnL   ")
        upl.append_text(_pnl_text(_safe_float(pos.upl), color_mode=self._color_mode))
        lines.append(upl)
        return Text("\n").join(lines)

    def _orders_panel(self) -> Text:
        width = max(int(getattr(self._detail_right.size, "width", 0) or 0) - 2, 32)
        orders = self._controller.orders
        lines = [Text(f"Open orders ({len(orders)})", style="bold")]
        if self._controller.error:
            lines.append(Text(self._controller.error, style="red"))
        if not orders:
            lines.append(Text("No open orders", style="dim"))
        self._orders_selected = min(self._orders_selected, max(len(orders) - 1, 0))
        for idx, order in enumerate(orders):
            line = _order_line(order, width=width - 2)
            prefix = Text("> " if idx == self._orders_selected else "  ")
            if idx == self._orders_selected:
                line.stylize("reverse")
            lines.append(Text.assemble(prefix, line))
        if self._input_mode is not None:
            lines.append(Text(""))
            lines.append(self._input_line())
        return Text("\n").join(lines)

    def _input_line(self) -> Text:
        label = _PROMPTS.get(self._input_mode or "", "Price")
        if self._input_mode == "edit" and self._input_target is not None:
            field = amend_field(self._input_target)
            label = f"{label} ({_AMEND_LABELS.get(field, field)})"
        line = Text(f"{label}: ", style="bold")
        line.append(self._price_input or "_", style="#ffcc84")
        line.append("  enter=submit esc=cancel", style="dim")
        return line

    def _status_text(self) -> str:
        polling = "polling" if self._controller.is_polling else "idle"
        base = f"{self._position.inst_id} | orders: {polling}"
        if self._status:
            return f"{base} | {self._status}"
        return base
