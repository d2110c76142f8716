from __future__ import annotations

from datetime import timezone

import pytest

from okxdesk.analytics import FillLedger
from okxdesk.models import TradeFill


def _fill(fill_id: str, ts: int, pnl: str | None = "1") -> TradeFill:
    return TradeFill(fill_id, "BTC-USDT-SWAP", "buy", ts, "60000", "1", "-0.2", pnl)


def test_overlapping_fetches_do_not_double_count() -> None:
    ledger = FillLedger()

    assert ledger.ingest([_fill("a", 1_000, "5"), _fill("b", 2_000, "-2")]) == 2
    assert ledger.ingest([_fill("b", 2_000, "-2"), _fill("c", 3_000, "4")]) == 1

    assert len(ledger) == 3
    summary = ledger.summary()
    assert summary.cumulative_pnl == pytest.approx(7.0)
    assert summary.trade_count == 3


def test_fills_are_newest_first() -> None:
    ledger = FillLedger()
    ledger.ingest([_fill("a", 1_000), _fill("c", 3_000), _fill("b", 2_000)])

    assert [fill.fill_id for fill in ledger.fills] == ["c", "b", "a"]


def test_fills_without_id_use_composite_key() -> None:
    ledger = FillLedger()
    first = _fill("", 1_000)
    other = _fill("", 1_001)

    ledger.ingest([first, first, other])

    assert len(ledger) == 2


def test_clear_empties_ledger_and_buckets() -> None:
    ledger = FillLedger()
    ledger.ingest([_fill("a", 86_400_000)])
    assert ledger.buckets(timezone.utc) == {(1970, 1, 2): 1.0}

    ledger.clear()

    assert len(ledger) == 0
    assert ledger.buckets(timezone.utc) == {}
