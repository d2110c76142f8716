"""Turn order-control intents into OKX request shapes.

Plain orders are addressed by `ordId`; algo orders (stop-loss, take-profit,
conditional, trigger) by `algoId`. The exchange tells them apart by which key
is present, so a request never carries both.
"""

from __future__ import annotations

import math

from .errors import InvalidPriceError, OrderIntentError
from .models import (
    ORD_CONDITIONAL,
    ORD_LIMIT,
    ORD_SL,
    ORD_TP,
    ORD_TRIGGER,
    AlgoOrderRequest,
    AmendRequest,
    CancelRequest,
    Order,
    Position,
)

ATTACH_KINDS = (ORD_SL, ORD_TP)
SPOT_TD_MODE = "cash"
MARKET_PX = "-1"


def validate_price(value: object) -> str:
    """Return the trimmed price string or raise InvalidPriceError."""
    text = "" if value is None else str(value).strip()
    if not text:
        raise InvalidPriceError(value)
    try:
        parsed = float(text)
    except ValueError:
        raise InvalidPriceError(value) from None
    if math.isnan(parsed) or not math.isfinite(parsed):
        raise InvalidPriceError(value)
    return text


def amend_field(order: Order) -> str:
    """Name of the AmendRequest attribute that carries the new price."""
    ord_type = (order.ord_type or "").strip().lower()
    if order.algo_id:
        if ord_type == ORD_SL:
            return "new_sl_trigger_px"
        if ord_type == ORD_TP:
            return "new_tp_trigger_px"
        if ord_type in (ORD_CONDITIONAL, ORD_TRIGGER):
            return "new_trigger_px"
    elif ord_type == ORD_LIMIT:
        return "new_px"
    if order.trigger_px:
        return "new_trigger_px"
    return "new_px"


def resolve_amendment(order: Order, new_price: object) -> AmendRequest | None:
    """Build the amendment for `order`, or None when there is nothing to send.

    Raises InvalidPriceError before anything else when the price is unusable.
    """
    price = validate_price(new_price)
    fields = {amend_field(order): price}
    if order.algo_id:
        request = AmendRequest(inst_id=order.inst_id, algo_id=order.algo_id, **fields)
    else:
        request = AmendRequest(inst_id=order.inst_id, ord_id=order.ord_id, **fields)
    if not request.new_fields():
        return None
    return request


def close_side(position: Position) -> str:
    pos_side = (position.pos_side or "").strip().lower()
    if pos_side == "long":
        return "sell"
    if pos_side == "short":
        return "buy"
    # One-way mode: the sign of the size says which way the position leans.
    try:
        size = float(position.pos)
    except (TypeError, ValueError):
        size = 0.0
    return "sell" if size > 0 else "buy"


def resolve_algo_attach(position: Position, kind: str, trigger_price: object) -> AlgoOrderRequest:
    """Protective stop-loss / take-profit that closes `position` at market on trigger."""
    kind = (kind or "").strip().lower()
    if kind not in ATTACH_KINDS:
        raise OrderIntentError(f"unsupported protective order kind {kind!r}")
    trigger = validate_price(trigger_price)
    swap = position.is_swap
    return AlgoOrderRequest(
        inst_id=position.inst_id,
        kind=kind,
        td_mode=position.mgn_mode if swap else SPOT_TD_MODE,
        side=close_side(position),
        sz=str(position.pos).strip().lstrip("-"),
        trigger_px=trigger,
        ord_type=ORD_CONDITIONAL,
        px=MARKET_PX,
        pos_side=position.pos_side if swap else None,
    )


def resolve_cancel(order: Order) -> CancelRequest:
    if order.algo_id:
        return CancelRequest(inst_id=order.inst_id, algo_id=order.algo_id)
    if not order.ord_id:
        raise OrderIntentError(f"order on {order.inst_id} has no id to cancel")
    return CancelRequest(inst_id=order.inst_id, ord_id=order.ord_id)


def order_key(order: Order) -> tuple[str, str]:
    if order.algo_id:
        return ("algo", order.algo_id)
    return ("ord", order.ord_id or "")


def same_order(left: Order, right: Order) -> bool:
    return left.inst_id == right.inst_id and order_key(left) == order_key(right)
