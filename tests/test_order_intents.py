from __future__ import annotations

import pytest

from okxdesk.errors import InvalidPriceError, OrderIntentError
from okxdesk.models import Order, Position
from okxdesk.orders import (
    amend_field,
    close_side,
    resolve_algo_attach,
    resolve_amendment,
    resolve_cancel,
    same_order,
    validate_price,
)


def _order(ord_type: str, *, algo_id: str | None = None, ord_id: str | None = None, trigger_px: str | None = None) -> Order:
    return Order(
        inst_id="BTC-USDT-SWAP",
        ord_id=ord_id,
        ord_type=ord_type,
        algo_id=algo_id,
        trigger_px=trigger_px,
    )


def _position(*, inst_id: str = "BTC-USDT-SWAP", pos_side: str = "long", pos: str = "2", mgn_mode: str = "cross", inst_type: str = "SWAP") -> Position:
    return Position(
        inst_id=inst_id,
        pos_side=pos_side,
        pos=pos,
        avg_px="60000",
        upl="12",
        mgn_mode=mgn_mode,
        inst_type=inst_type,
    )


def test_stop_loss_algo_amends_sl_trigger_by_algo_id() -> None:
    request = resolve_amendment(_order("sl", algo_id="A1"), "100")

    assert request is not None
    assert request.to_payload() == {
        "instId": "BTC-USDT-SWAP",
        "algoId": "A1",
        "newSlTriggerPx": "100",
    }


@pytest.mark.parametrize(
    ("order", "field", "payload_key"),
    [
        (_order("sl", algo_id="A1"), "new_sl_trigger_px", "newSlTriggerPx"),
        (_order("tp", algo_id="A1"), "new_tp_trigger_px", "newTpTriggerPx"),
        (_order("conditional", algo_id="A1"), "new_trigger_px", "newTriggerPx"),
        (_order("trigger", algo_id="A1"), "new_trigger_px", "newTriggerPx"),
        (_order("limit", ord_id="O1"), "new_px", "newPx"),
        (_order("post_only", ord_id="O1", trigger_px="5"), "new_trigger_px", "newTriggerPx"),
        (_order("post_only", ord_id="O1"), "new_px", "newPx"),
        (_order("oco", algo_id="A1"), "new_px", "newPx"),
    ],
)
def test_amend_field_table(order: Order, field: str, payload_key: str) -> None:
    assert amend_field(order) == field
    request = resolve_amendment(order, " 123.5 ")
    assert request is not None
    payload = request.to_payload()
    assert payload[payload_key] == "123.5"
    assert ("algoId" in payload) != ("ordId" in payload)


@pytest.mark.parametrize("ord_type", ["sl", "tp", "conditional", "trigger", "limit", "market"])
@pytest.mark.parametrize("price", ["", "   ", "abc", "nan", "inf", None])
def test_unusable_price_raises_for_every_order_type(ord_type: str, price: str | None) -> None:
    with pytest.raises(InvalidPriceError) as excinfo:
        resolve_amendment(_order(ord_type, algo_id="A1"), price)
    assert excinfo.value.code == "invalid-price"


def test_validate_price_returns_trimmed_text() -> None:
    assert validate_price(" 0.0015 ") == "0.0015"


@pytest.mark.parametrize(
    ("pos_side", "pos", "expected"),
    [
        ("long", "2", "sell"),
        ("short", "2", "buy"),
        ("net", "3", "sell"),
        ("net", "-3", "buy"),
        ("net", "junk", "buy"),
    ],
)
def test_close_side(pos_side: str, pos: str, expected: str) -> None:
    assert close_side(_position(pos_side=pos_side, pos=pos)) == expected


def test_swap_attach_uses_margin_mode_and_pos_side() -> None:
    request = resolve_algo_attach(_position(pos_side="short", pos="-4", mgn_mode="isolated"), "sl", "65000")

    assert request.to_payload() == {
        "instId": "BTC-USDT-SWAP",
        "tdMode": "isolated",
        "side": "buy",
        "ordType": "conditional",
        "sz": "4",
        "slTriggerPx": "65000",
        "slOrdPx": "-1",
        "posSide": "short",
    }


def test_spot_attach_uses_cash_and_no_pos_side() -> None:
    spot = _position(inst_id="ETH-USDT", pos_side="net", pos="1.5", mgn_mode="", inst_type="SPOT")

    request = resolve_algo_attach(spot, "TP", "4000")

    payload = request.to_payload()
    assert payload["tdMode"] == "cash"
    assert payload["side"] == "sell"
    assert payload["tpTriggerPx"] == "4000"
    assert payload["tpOrdPx"] == "-1"
    assert "posSide" not in payload


def test_attach_rejects_unknown_kind_and_bad_price() -> None:
    with pytest.raises(OrderIntentError):
        resolve_algo_attach(_position(), "trailing", "100")
    with pytest.raises(InvalidPriceError):
        resolve_algo_attach(_position(), "sl", "")


def test_cancel_addresses_algo_or_plain_order() -> None:
    assert resolve_cancel(_order("sl", algo_id="A9")).to_payload() == {
        "instId": "BTC-USDT-SWAP",
        "algoId": "A9",
    }
    assert resolve_cancel(_order("limit", ord_id="O9")).to_payload() == {
        "instId": "BTC-USDT-SWAP",
        "ordId": "O9",
    }
    with pytest.raises(OrderIntentError):
        resolve_cancel(_order("limit"))


def test_same_order_compares_by_identity_key() -> None:
    assert same_order(_order("sl", algo_id="A1"), _order("tp", algo_id="A1"))
    assert not same_order(_order("limit", ord_id="A1"), _order("sl", algo_id="A1"))
