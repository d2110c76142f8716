"""Dataclass definitions for account data and outgoing order requests.

These are intentionally dumb containers: no IO, no ccxt, no analytics.
Numeric exchange fields stay as the raw strings OKX sends; parsing happens in
the analytics/equity layers where a neutral default can be chosen.

Canonical import path: `okxdesk.models`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping

ORD_LIMIT = "limit"
ORD_CONDITIONAL = "conditional"
ORD_TRIGGER = "trigger"
ORD_SL = "sl"
ORD_TP = "tp"


def _str(row: Mapping[str, object], key: str, default: str = "") -> str:
    value = row.get(key)
    if value is None:
        return default
    return str(value)


def _opt(row: Mapping[str, object], key: str) -> str | None:
    value = row.get(key)
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _int(row: Mapping[str, object], key: str) -> int:
    try:
        return int(str(row.get(key) or 0))
    except ValueError:
        return 0


@dataclass(frozen=True)
class TradeFill:
    fill_id: str
    inst_id: str
    side: str
    ts: int
    fill_px: str
    fill_sz: str
    fee: str
    pnl: str | None

    @classmethod
    def from_okx(cls, row: Mapping[str, object]) -> "TradeFill":
        pnl = row.get("fillPnl")
        if pnl is None:
            pnl = row.get("pnl")
        return cls(
            fill_id=_str(row, "fillId") or _str(row, "tradeId"),
            inst_id=_str(row, "instId"),
            side=_str(row, "side"),
            ts=_int(row, "ts"),
            fill_px=_str(row, "fillPx"),
            fill_sz=_str(row, "fillSz"),
            fee=_str(row, "fee"),
            pnl=None if pnl is None else str(pnl),
        )


@dataclass(frozen=True)
class EquitySnapshot:
    ts: int
    total_eq: float


@dataclass(frozen=True)
class AssetBalance:
    ccy: str
    avail_bal: str
    eq_usd: str

    @classmethod
    def from_okx(cls, row: Mapping[str, object]) -> "AssetBalance":
        return cls(
            ccy=_str(row, "ccy"),
            avail_bal=_str(row, "availBal"),
            eq_usd=_str(row, "eqUsd"),
        )


@dataclass(frozen=True)
class Instrument:
    inst_id: str
    inst_type: str
    base_ccy: str
    quote_ccy: str
    ct_val: str | None = None

    @classmethod
    def from_okx(cls, row: Mapping[str, object]) -> "Instrument":
        inst_id = _str(row, "instId")
        base = _str(row, "baseCcy")
        quote = _str(row, "quoteCcy")
        if not base or not quote:
            # Swaps report settle/ctValCcy instead of base/quote.
            parts = inst_id.split("-")
            if len(parts) >= 2:
                base = base or parts[0]
                quote = quote or parts[1]
        return cls(
            inst_id=inst_id,
            inst_type=_str(row, "instType"),
            base_ccy=base,
            quote_ccy=quote,
            ct_val=_opt(row, "ctVal"),
        )


@dataclass(frozen=True)
class Position:
    inst_id: str
    pos_side: str
    pos: str
    avg_px: str
    upl: str
    mgn_mode: str
    ccy: str = ""
    ct_val: str | None = None
    inst_type: str = ""

    @property
    def is_swap(self) -> bool:
        return self.inst_type.upper() == "SWAP" or "SWAP" in self.inst_id.upper()

    @classmethod
    def from_okx(cls, row: Mapping[str, object]) -> "Position":
        return cls(
            inst_id=_str(row, "instId"),
            pos_side=_str(row, "posSide", "net") or "net",
            pos=_str(row, "pos", "0") or "0",
            avg_px=_str(row, "avgPx"),
            upl=_str(row, "upl"),
            mgn_mode=_str(row, "mgnMode"),
            ccy=_str(row, "ccy"),
            ct_val=_opt(row, "ctVal"),
            inst_type=_str(row, "instType"),
        )


@dataclass(frozen=True)
class Order:
    inst_id: str
    ord_id: str | None
    ord_type: str
    side: str = ""
    px: str = ""
    sz: str = ""
    algo_id: str | None = None
    trigger_px: str | None = None
    sl_trigger_px: str | None = None
    tp_trigger_px: str | None = None
    state: str = ""
    pos_side: str | None = None

    @property
    def is_algo(self) -> bool:
        return bool(self.algo_id)

    @property
    def display_price(self) -> str:
        for value in (self.trigger_px, self.sl_trigger_px, self.tp_trigger_px, self.px):
            if value:
                return value
        return ""

    @classmethod
    def from_okx(cls, row: Mapping[str, object]) -> "Order":
        """Build from an `orders-pending` row (plain order)."""
        return cls(
            inst_id=_str(row, "instId"),
            ord_id=_opt(row, "ordId"),
            ord_type=_str(row, "ordType"),
            side=_str(row, "side"),
            px=_str(row, "px"),
            sz=_str(row, "sz"),
            algo_id=_opt(row, "algoId"),
            trigger_px=_opt(row, "triggerPx"),
            state=_str(row, "state"),
            pos_side=_opt(row, "posSide"),
        )

    @classmethod
    def from_okx_algo(cls, row: Mapping[str, object]) -> "Order":
        """Build from an `orders-algo-pending` row.

        A `conditional` algo carrying only one of the stop-loss / take-profit
        legs is reported as `sl` / `tp` so that amendments address the right leg.
        """
        ord_type = _str(row, "ordType")
        sl = _opt(row, "slTriggerPx")
        tp = _opt(row, "tpTriggerPx")
        if ord_type == ORD_CONDITIONAL:
            if sl and not tp:
                ord_type = ORD_SL
            elif tp and not sl:
                ord_type = ORD_TP
        return cls(
            inst_id=_str(row, "instId"),
            ord_id=_opt(row, "ordId"),
            ord_type=ord_type,
            side=_str(row, "side"),
            px=_str(row, "ordPx"),
            sz=_str(row, "sz"),
            algo_id=_opt(row, "algoId"),
            trigger_px=_opt(row, "triggerPx"),
            sl_trigger_px=sl,
            tp_trigger_px=tp,
            state=_str(row, "state"),
            pos_side=_opt(row, "posSide"),
        )


@dataclass(frozen=True)
class AmendRequest:
    inst_id: str
    ord_id: str | None = None
    algo_id: str | None = None
    new_px: str | None = None
    new_trigger_px: str | None = None
    new_sl_trigger_px: str | None = None
    new_tp_trigger_px: str | None = None

    @property
    def is_algo(self) -> bool:
        return bool(self.algo_id)

    def new_fields(self) -> dict[str, str]:
        fields = {
            "newPx": self.new_px,
            "newTriggerPx": self.new_trigger_px,
            "newSlTriggerPx": self.new_sl_trigger_px,
            "newTpTriggerPx": self.new_tp_trigger_px,
        }
        return {key: value for key, value in fields.items() if value}

    def to_payload(self) -> dict[str, str]:
        # OKX disambiguates by key presence: only one id key may be sent.
        payload = {"instId": self.inst_id}
        if self.algo_id:
            payload["algoId"] = self.algo_id
        elif self.ord_id:
            payload["ordId"] = self.ord_id
        payload.update(self.new_fields())
        return payload


@dataclass(frozen=True)
class AlgoOrderRequest:
    inst_id: str
    kind: str
    td_mode: str
    side: str
    sz: str
    trigger_px: str
    ord_type: str = ORD_CONDITIONAL
    px: str = "-1"
    pos_side: str | None = None

    def to_payload(self) -> dict[str, str]:
        payload = {
            "instId": self.inst_id,
            "tdMode": self.td_mode,
            "side": self.side,
            "ordType": self.ord_type,
            "sz": self.sz,
            f"{self.kind}TriggerPx": self.trigger_px,
            f"{self.kind}OrdPx": self.px,
        }
        if self.pos_side:
            payload["posSide"] = self.pos_side
        return payload


@dataclass(frozen=True)
class CancelRequest:
    inst_id: str
    ord_id: str | None = None
    algo_id: str | None = None

    def to_payload(self) -> dict[str, str]:
        payload = {"instId": self.inst_id}
        if self.algo_id:
            payload["algoId"] = self.algo_id
        elif self.ord_id:
            payload["ordId"] = self.ord_id
        return payload


@dataclass(frozen=True)
class OrderAck:
    ord_id: str | None = None
    algo_id: str | None = None
    s_code: str = "0"
    s_msg: str = ""

    @classmethod
    def from_okx(cls, row: Mapping[str, object]) -> "OrderAck":
        return cls(
            ord_id=_opt(row, "ordId"),
            algo_id=_opt(row, "algoId"),
            s_code=_str(row, "sCode", "0") or "0",
            s_msg=_str(row, "sMsg"),
        )
