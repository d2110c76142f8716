"""Thin async wrapper over ccxt's OKX v5 endpoints for snapshot-style pulls."""
from __future__ import annotations

import time
from dataclasses import replace
from typing import Any, Mapping, Protocol, Sequence

import ccxt
import ccxt.async_support as ccxt_async
from structlog import get_logger

from .config import DeskConfig
from .equity import EquityRecorder, total_equity_usd
from .errors import ExchangeServiceError
from .models import (
    AlgoOrderRequest,
    AmendRequest,
    AssetBalance,
    CancelRequest,
    EquitySnapshot,
    Instrument,
    Order,
    OrderAck,
    Position,
    TradeFill,
)

logger = get_logger("okxdesk.client")

DISPLAY_UNITS = ("USD", "CNY", "BTC")
_BTC_RATE_INST = "BTC-USDT"
_ALGO_ORDER_TYPES = ("conditional,oco", "trigger")


class ExchangeService(Protocol):
    """What the controller and screens need from the exchange."""

    exchange_rates: Mapping[str, float]

    async def list_instruments(self, kind: str) -> list[Instrument]: ...

    async def get_trade_history(self) -> list[TradeFill]: ...

    async def get_positions(self) -> list[Position]: ...

    async def get_balances(self) -> list[AssetBalance]: ...

    async def get_open_orders(self, inst_id: str) -> list[Order]: ...

    async def get_asset_history(self, period: str) -> list[EquitySnapshot]: ...

    async def place_algo_order(self, request: AlgoOrderRequest) -> OrderAck: ...

    async def amend_order(self, request: AmendRequest) -> OrderAck: ...

    async def cancel_order(
        self, inst_id: str, ord_id: str | None = None, algo_id: str | None = None
    ) -> OrderAck: ...


class OKXClient:
    def __init__(
        self,
        config: DeskConfig,
        *,
        exchange: Any | None = None,
        recorder: EquityRecorder | None = None,
    ) -> None:
        self._config = config
        if exchange is None:
            exchange = ccxt_async.okx(
                {
                    "apiKey": config.api_key,
                    "secret": config.api_secret,
                    "password": config.api_passphrase,
                    "enableRateLimit": True,
                }
            )
            if config.sandbox:
                exchange.set_sandbox_mode(True)
        self._exchange = exchange
        self._recorder = recorder or EquityRecorder()
        self._ct_val_by_inst: dict[str, str] = {}
        self.exchange_rates: dict[str, float] = {
            "USD": 1.0,
            "CNY": float(config.rate_cny),
            "BTC": float(config.rate_btc),
        }

    @property
    def recorder(self) -> EquityRecorder:
        return self._recorder

    async def close(self) -> None:
        try:
            await self._exchange.close()
        except ccxt.BaseError as exc:
            logger.warning("exchange close failed", error=str(exc))

    async def list_instruments(self, kind: str) -> list[Instrument]:
        rows = await self._call("public_get_public_instruments", {"instType": kind.upper()})
        instruments = [Instrument.from_okx(row) for row in rows]
        for inst in instruments:
            if inst.ct_val:
                self._ct_val_by_inst[inst.inst_id] = inst.ct_val
        return instruments

    async def get_trade_history(self) -> list[TradeFill]:
        fills: list[TradeFill] = []
        for inst_type in self._config.fill_inst_types:
            rows = await self._call("private_get_trade_fills_history", {"instType": inst_type})
            fills.extend(TradeFill.from_okx(row) for row in rows)
        fills.sort(key=lambda fill: fill.ts, reverse=True)
        return fills

    async def get_positions(self) -> list[Position]:
        rows = await self._call("private_get_account_positions", {})
        positions = [Position.from_okx(row) for row in rows]
        if any(pos.is_swap and not pos.ct_val for pos in positions) and not self._ct_val_by_inst:
            try:
                await self.list_instruments("SWAP")
            except ExchangeServiceError as exc:
                logger.warning("swap contract values unavailable", error=str(exc))
        return [
            replace(pos, ct_val=self._ct_val_by_inst.get(pos.inst_id))
            if pos.is_swap and not pos.ct_val
            else pos
            for pos in positions
        ]

    async def get_balances(self) -> list[AssetBalance]:
        rows = await self._call("private_get_account_balance", {})
        balances: list[AssetBalance] = []
        for account in rows:
            details = account.get("details") if isinstance(account, Mapping) else None
            for detail in details or []:
                balances.append(AssetBalance.from_okx(detail))
        self._recorder.record(_now_ms(), total_equity_usd(balances))
        try:
            self._recorder.save()
        except OSError as exc:
            logger.warning("equity history not saved", error=str(exc))
        return balances

    async def get_asset_history(self, period: str) -> list[EquitySnapshot]:
        return self._recorder.history(period, _now_ms())

    async def get_open_orders(self, inst_id: str) -> list[Order]:
        rows = await self._call("private_get_trade_orders_pending", {"instId": inst_id})
        orders = [Order.from_okx(row) for row in rows]
        for ord_type in _ALGO_ORDER_TYPES:
            algo_rows = await self._call(
                "private_get_trade_orders_algo_pending",
                {"instId": inst_id, "ordType": ord_type},
            )
            orders.extend(Order.from_okx_algo(row) for row in algo_rows)
        return orders

    async def refresh_rates(self) -> dict[str, float]:
        """Derive the BTC display rate from BTC-USDT unless one is configured."""
        if self._config.rate_btc > 0:
            return dict(self.exchange_rates)
        rows = await self._call("public_get_market_ticker", {"instId": _BTC_RATE_INST})
        last = _first_float(rows, "last")
        if last:
            self.exchange_rates["BTC"] = 1.0 / last
        return dict(self.exchange_rates)

    async def place_algo_order(self, request: AlgoOrderRequest) -> OrderAck:
        payload = request.to_payload()
        logger.info("placing algo order", payload=payload)
        rows = await self._call("private_post_trade_order_algo", payload)
        return _ack(rows)

    async def amend_order(self, request: AmendRequest) -> OrderAck:
        payload = request.to_payload()
        method = "private_post_trade_amend_algos" if request.is_algo else "private_post_trade_amend_order"
        logger.info("amending order", method=method, payload=payload)
        rows = await self._call(method, payload)
        return _ack(rows)

    async def cancel_order(
        self, inst_id: str, ord_id: str | None = None, algo_id: str | None = None
    ) -> OrderAck:
        request = CancelRequest(inst_id=inst_id, ord_id=ord_id, algo_id=algo_id)
        payload = request.to_payload()
        logger.info("canceling order", payload=payload)
        if algo_id:
            rows = await self._call("private_post_trade_cancel_algos", [payload])
        else:
            rows = await self._call("private_post_trade_cancel_order", payload)
        return _ack(rows)

    async def _call(self, method_name: str, params: Any) -> list[Mapping[str, Any]]:
        method = getattr(self._exchange, method_name)
        try:
            response = await method(params)
        except ccxt.BaseError as exc:
            logger.warning("exchange call failed", method=method_name, error=str(exc))
            raise ExchangeServiceError(str(exc)) from exc
        return _rows(response)


def _rows(response: Any) -> list[Mapping[str, Any]]:
    if not isinstance(response, Mapping):
        raise ExchangeServiceError(f"unexpected OKX response: {response!r}")
    code = str(response.get("code", "0") or "0")
    if code != "0":
        message = str(response.get("msg") or "") or f"OKX error {code}"
        raise ExchangeServiceError(message, code=code)
    data = response.get("data") or []
    return [row for row in data if isinstance(row, Mapping)]


def _ack(rows: Sequence[Mapping[str, Any]]) -> OrderAck:
    acks = [OrderAck.from_okx(row) for row in rows]
    for ack in acks:
        if ack.s_code != "0":
            raise ExchangeServiceError(ack.s_msg or f"OKX error {ack.s_code}", code=ack.s_code)
    return acks[0] if acks else OrderAck()


def _first_float(rows: Sequence[Mapping[str, Any]], key: str) -> float | None:
    for row in rows:
        try:
            value = float(row.get(key))
        except (TypeError, ValueError):
            continue
        if value > 0:
            return value
    return None


def _now_ms() -> int:
    return int(time.time() * 1000)
