from __future__ import annotations

import asyncio
from pathlib import Path

import ccxt
import pytest

from okxdesk.client import OKXClient
from okxdesk.config import DeskConfig
from okxdesk.equity import EquityRecorder
from okxdesk.errors import ExchangeServiceError
from okxdesk.models import AlgoOrderRequest, AmendRequest


def _config(**overrides) -> DeskConfig:
    values = dict(
        api_key="k",
        api_secret="s",
        api_passphrase="p",
        sandbox=True,
        refresh_sec=10.0,
        orders_poll_sec=5.0,
        fill_inst_types=("SPOT", "SWAP"),
        market_kind="SPOT",
        rate_cny=7.2,
        rate_btc=0.0,
        color_mode="standard",
        state_dir=Path("/tmp/okxdesk-test"),
        log_file=Path("/tmp/okxdesk-test/okxdesk.log"),
        log_level="INFO",
    )
    values.update(overrides)
    return DeskConfig(**values)


class _FakeExchange:
    """Records implicit-endpoint calls and answers from a per-method table."""

    def __init__(self, responses: dict[str, object]) -> None:
        self.responses = responses
        self.calls: list[tuple[str, object]] = []
        self.closed = False

    def __getattr__(self, name: str):
        if not name.startswith(("public_", "private_")):
            raise AttributeError(name)

        async def endpoint(params):
            self.calls.append((name, params))
            response = self.responses.get(name, {"code": "0", "data": []})
            if callable(response):
                response = response(params)
            if isinstance(response, Exception):
                raise response
            return response

        return endpoint

    async def close(self) -> None:
        self.closed = True


def _ok(*rows) -> dict:
    return {"code": "0", "msg": "", "data": list(rows)}


def test_trade_history_queries_each_inst_type_newest_first() -> None:
    exchange = _FakeExchange(
        {
            "private_get_trade_fills_history": lambda params: _ok(
                {"fillId": params["instType"], "instId": "X", "ts": "1" if params["instType"] == "SPOT" else "5", "fillPnl": "2"}
            )
        }
    )
    client = OKXClient(_config(), exchange=exchange)

    fills = asyncio.run(client.get_trade_history())

    assert [call[1] for call in exchange.calls] == [{"instType": "SPOT"}, {"instType": "SWAP"}]
    assert [fill.fill_id for fill in fills] == ["SWAP", "SPOT"]
    assert fills[0].pnl == "2"


def test_open_orders_merge_plain_and_algo_orders() -> None:
    exchange = _FakeExchange(
        {
            "private_get_trade_orders_pending": _ok(
                {"instId": "BTC-USDT", "ordId": "O1", "ordType": "limit", "px": "50000", "sz": "1"}
            ),
            "private_get_trade_orders_algo_pending": lambda params: _ok(
                {"instId": "BTC-USDT", "algoId": "A1", "ordType": "conditional", "slTriggerPx": "45000"}
            )
            if params["ordType"] == "conditional,oco"
            else _ok(),
        }
    )
    client = OKXClient(_config(), exchange=exchange)

    orders = asyncio.run(client.get_open_orders("BTC-USDT"))

    assert [(order.ord_id, order.algo_id, order.ord_type) for order in orders] == [
        ("O1", None, "limit"),
        (None, "A1", "sl"),
    ]
    algo_params = [params for name, params in exchange.calls if name == "private_get_trade_orders_algo_pending"]
    assert algo_params == [
        {"instId": "BTC-USDT", "ordType": "conditional,oco"},
        {"instId": "BTC-USDT", "ordType": "trigger"},
    ]


def test_amend_routes_by_id_kind() -> None:
    exchange = _FakeExchange({})
    client = OKXClient(_config(), exchange=exchange)

    asyncio.run(client.amend_order(AmendRequest(inst_id="BTC-USDT", algo_id="A1", new_sl_trigger_px="1")))
    asyncio.run(client.amend_order(AmendRequest(inst_id="BTC-USDT", ord_id="O1", new_px="2")))

    assert exchange.calls == [
        ("private_post_trade_amend_algos", {"instId": "BTC-USDT", "algoId": "A1", "newSlTriggerPx": "1"}),
        ("private_post_trade_amend_order", {"instId": "BTC-USDT", "ordId": "O1", "newPx": "2"}),
    ]


def test_cancel_algo_sends_a_list() -> None:
    exchange = _FakeExchange({})
    client = OKXClient(_config(), exchange=exchange)

    asyncio.run(client.cancel_order("BTC-USDT", algo_id="A1"))
    asyncio.run(client.cancel_order("BTC-USDT", ord_id="O1"))

    assert exchange.calls == [
        ("private_post_trade_cancel_algos", [{"instId": "BTC-USDT", "algoId": "A1"}]),
        ("private_post_trade_cancel_order", {"instId": "BTC-USDT", "ordId": "O1"}),
    ]


def test_place_algo_order_posts_payload() -> None:
    exchange = _FakeExchange({"private_post_trade_order_algo": _ok({"algoId": "A7", "sCode": "0"})})
    client = OKXClient(_config(), exchange=exchange)
    request = AlgoOrderRequest(
        inst_id="ETH-USDT", kind="tp", td_mode="cash", side="sell", sz="1", trigger_px="4000"
    )

    ack = asyncio.run(client.place_algo_order(request))

    assert ack.algo_id == "A7"
    assert exchange.calls == [("private_post_trade_order_algo", request.to_payload())]


def test_exchange_errors_become_service_errors() -> None:
    exchange = _FakeExchange(
        {
            "private_get_account_positions": ccxt.NetworkError("okx GET timed out"),
            "private_get_trade_orders_pending": {"code": "50011", "msg": "Too Many Requests", "data": []},
            "private_post_trade_cancel_order": _ok({"ordId": "O1", "sCode": "51400", "sMsg": "Order does not exist"}),
        }
    )
    client = OKXClient(_config(), exchange=exchange)

    with pytest.raises(ExchangeServiceError, match="timed out"):
        asyncio.run(client.get_positions())
    with pytest.raises(ExchangeServiceError) as excinfo:
        asyncio.run(client.get_open_orders("BTC-USDT"))
    assert str(excinfo.value) == "Too Many Requests"
    assert excinfo.value.code == "50011"
    with pytest.raises(ExchangeServiceError, match="Order does not exist"):
        asyncio.run(client.cancel_order("BTC-USDT", ord_id="O1"))


def test_balances_feed_equity_recorder() -> None:
    exchange = _FakeExchange(
        {
            "private_get_account_balance": _ok(
                {
                    "details": [
                        {"ccy": "USDT", "availBal": "100", "eqUsd": "100"},
                        {"ccy": "BTC", "availBal": "0.01", "eqUsd": "600.5"},
                    ]
                }
            )
        }
    )
    recorder = EquityRecorder()
    client = OKXClient(_config(), exchange=exchange, recorder=recorder)

    balances = asyncio.run(client.get_balances())
    history = asyncio.run(client.get_asset_history("1D"))

    assert [balance.ccy for balance in balances] == ["USDT", "BTC"]
    assert len(recorder.points) == 1
    assert recorder.points[0].total_eq == pytest.approx(700.5)
    assert history == recorder.points


def test_swap_positions_pick_up_contract_value() -> None:
    exchange = _FakeExchange(
        {
            "private_get_account_positions": _ok(
                {"instId": "BTC-USDT-SWAP", "instType": "SWAP", "posSide": "long", "pos": "3", "mgnMode": "cross"}
            ),
            "public_get_public_instruments": _ok(
                {"instId": "BTC-USDT-SWAP", "instType": "SWAP", "ctVal": "0.01", "settleCcy": "USDT"}
            ),
        }
    )
    client = OKXClient(_config(), exchange=exchange)

    positions = asyncio.run(client.get_positions())

    assert positions[0].ct_val == "0.01"
    assert ("public_get_public_instruments", {"instType": "SWAP"}) in exchange.calls


def test_btc_rate_derived_from_ticker_unless_configured() -> None:
    exchange = _FakeExchange({"public_get_market_ticker": _ok({"instId": "BTC-USDT", "last": "50000"})})
    client = OKXClient(_config(), exchange=exchange)

    rates = asyncio.run(client.refresh_rates())

    assert rates["BTC"] == pytest.approx(1 / 50000)
    assert rates["CNY"] == 7.2
    assert rates["USD"] == 1.0

    fixed = OKXClient(_config(rate_btc=0.00002), exchange=_FakeExchange({}))
    assert asyncio.run(fixed.refresh_rates())["BTC"] == 0.00002


def test_close_closes_exchange() -> None:
    exchange = _FakeExchange({})
    client = OKXClient(_config(), exchange=exchange)

    asyncio.run(client.close())

    assert exchange.closed
