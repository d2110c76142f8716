"""Open-orders session for the expanded position.

One position at a time is expanded. Expanding fetches its open orders right
away and re-fetches on a fixed interval until the view collapses or moves to
another position. Every fetch is tagged with the session generation and a
sequence number; a result is applied only while its session is current and
only if nothing newer has been applied, so late or out-of-order completions
never overwrite what is on screen.
"""

from __future__ import annotations

import asyncio
import contextlib
from dataclasses import dataclass
from typing import Callable, Iterable

from structlog import get_logger

from .client import ExchangeService
from .errors import ExchangeServiceError, InvalidPriceError, OrderIntentError
from .models import Order, Position
from .orders import resolve_algo_attach, resolve_amendment, resolve_cancel, same_order

logger = get_logger("okxdesk.controller")

DEFAULT_POLL_SEC = 5.0


@dataclass(frozen=True)
class ActionResult:
    ok: bool
    message: str
    submitted: bool = False


def _remote_message(exc: ExchangeServiceError, fallback: str) -> str:
    return str(exc) or fallback


class PositionOrdersController:
    def __init__(
        self,
        service: ExchangeService,
        poll_sec: float = DEFAULT_POLL_SEC,
        on_change: Callable[[], None] | None = None,
    ) -> None:
        self._service = service
        self._poll_sec = max(float(poll_sec), 0.01)
        self._on_change = on_change
        self._positions: list[Position] = []
        self._expanded: str | None = None
        self._orders: list[Order] = []
        self._error: str | None = None
        self._generation = 0
        self._fetch_seq = 0
        self._applied_seq = 0
        self._poll_task: asyncio.Task | None = None
        self._fetch_tasks: set[asyncio.Task] = set()

    @property
    def expanded(self) -> str | None:
        return self._expanded

    @property
    def orders(self) -> list[Order]:
        return list(self._orders)

    @property
    def error(self) -> str | None:
        return self._error

    @property
    def is_polling(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    def set_on_change(self, callback: Callable[[], None] | None) -> None:
        self._on_change = callback

    def set_positions(self, positions: Iterable[Position]) -> None:
        self._positions = list(positions)

    def position(self, inst_id: str | None = None) -> Position | None:
        target = inst_id or self._expanded
        if not target:
            return None
        for pos in self._positions:
            if pos.inst_id == target:
                return pos
        return None

    # region Session lifecycle
    def expand(self, inst_id: str) -> None:
        if inst_id == self._expanded and self.is_polling:
            return
        self._teardown()
        self._expanded = inst_id
        self._orders = []
        self._error = None
        generation = self._generation
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._poll_task = loop.create_task(self._poll_loop(generation, inst_id))
        logger.debug("orders session started", inst_id=inst_id, generation=generation)
        self._notify()

    def toggle(self, inst_id: str) -> None:
        if self._expanded == inst_id:
            self.collapse()
        else:
            self.expand(inst_id)

    def collapse(self) -> None:
        if self._expanded is None and not self.is_polling:
            return
        self._teardown()
        self._expanded = None
        self._orders = []
        self._error = None
        self._notify()

    async def close(self) -> None:
        tasks = [task for task in (self._poll_task, *self._fetch_tasks) if task is not None]
        self._teardown()
        self._expanded = None
        self._orders = []
        self._error = None
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task

    def _teardown(self) -> None:
        self._generation += 1
        self._applied_seq = self._fetch_seq
        if self._poll_task is not None and not self._poll_task.done():
            self._poll_task.cancel()
        self._poll_task = None
        for task in list(self._fetch_tasks):
            if not task.done():
                task.cancel()
        self._fetch_tasks.clear()
    # endregion

    # region Fetching
    async def refresh(self) -> None:
        """Fetch the expanded position's orders now and wait for the result."""
        inst_id = self._expanded
        if inst_id is None:
            return
        self._fetch_seq += 1
        await self._fetch(self._generation, self._fetch_seq, inst_id)

    async def _poll_loop(self, generation: int, inst_id: str) -> None:
        while generation == self._generation:
            self._spawn_fetch(generation, inst_id)
            await asyncio.sleep(self._poll_sec)

    def _spawn_fetch(self, generation: int, inst_id: str) -> None:
        self._fetch_seq += 1
        task = asyncio.get_running_loop().create_task(
            self._fetch(generation, self._fetch_seq, inst_id)
        )
        self._fetch_tasks.add(task)
        task.add_done_callback(self._fetch_tasks.discard)

    def _is_live(self, generation: int, seq: int) -> bool:
        return generation == self._generation and seq > self._applied_seq

    async def _fetch(self, generation: int, seq: int, inst_id: str) -> None:
        try:
            orders = await self._service.get_open_orders(inst_id)
        except ExchangeServiceError as exc:
            if not self._is_live(generation, seq):
                return
            logger.warning("open orders fetch failed", inst_id=inst_id, error=str(exc))
            self._error = str(exc) or "Failed to fetch orders"
            self._notify()
            return
        if not self._is_live(generation, seq):
            logger.debug("discarding stale orders", inst_id=inst_id, seq=seq, generation=generation)
            return
        self._applied_seq = seq
        self._orders = list(orders)
        self._error = None
        self._notify()
    # endregion

    # region Order control
    async def cancel(self, order: Order) -> ActionResult:
        try:
            request = resolve_cancel(order)
        except OrderIntentError as exc:
            return ActionResult(False, str(exc))
        generation = self._generation
        try:
            await self._service.cancel_order(request.inst_id, request.ord_id, request.algo_id)
        except ExchangeServiceError as exc:
            return ActionResult(False, _remote_message(exc, "Cancel failed"), submitted=True)
        if generation == self._generation:
            # Fetches issued before the cancel may still list the order.
            self._applied_seq = self._fetch_seq
            self._orders = [entry for entry in self._orders if not same_order(entry, order)]
            self._notify()
        return ActionResult(True, "Order cancelled", submitted=True)

    async def modify(self, order: Order, new_price: str) -> ActionResult:
        try:
            request = resolve_amendment(order, new_price)
        except InvalidPriceError:
            return ActionResult(False, "Invalid price")
        if request is None:
            return ActionResult(True, "Nothing to modify")
        try:
            await self._service.amend_order(request)
        except ExchangeServiceError as exc:
            return ActionResult(False, _remote_message(exc, "Modify failed"), submitted=True)
        return ActionResult(True, f"Order modified {new_price.strip()}", submitted=True)

    async def attach(self, kind: str, trigger_price: str, inst_id: str | None = None) -> ActionResult:
        position = self.position(inst_id)
        if position is None:
            return ActionResult(False, "No position selected")
        try:
            request = resolve_algo_attach(position, kind, trigger_price)
        except InvalidPriceError:
            return ActionResult(False, "Invalid price")
        except OrderIntentError as exc:
            return ActionResult(False, str(exc))
        try:
            await self._service.place_algo_order(request)
        except ExchangeServiceError as exc:
            return ActionResult(False, _remote_message(exc, "Order failed"), submitted=True)
        return ActionResult(
            True, f"Added {request.kind.upper()} @ {request.trigger_px}", submitted=True
        )
    # endregion

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change()
