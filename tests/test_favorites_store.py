from __future__ import annotations

import json

from okxdesk.models import Instrument
from okxdesk.ui.store import AccountSnapshot, FavoritesStore, filter_instruments, unique_instruments


def _inst(inst_id: str, quote: str | None = None) -> Instrument:
    base, _, rest = inst_id.partition("-")
    return Instrument(inst_id=inst_id, inst_type="SPOT", base_ccy=base, quote_ccy=quote or rest)


def test_toggle_persists_and_reloads(tmp_path) -> None:
    path = tmp_path / "favorites.json"
    store = FavoritesStore(path)

    assert store.toggle("BTC-USDT") is True
    assert store.toggle("ETH-USDT") is True
    assert store.toggle("BTC-USDT") is False

    assert json.loads(path.read_text()) == ["ETH-USDT"]
    reloaded = FavoritesStore(path)
    reloaded.load()
    assert reloaded.ids == ["ETH-USDT"]
    assert "ETH-USDT" in reloaded
    assert len(reloaded) == 1


def test_load_tolerates_missing_or_corrupt_file(tmp_path) -> None:
    missing = FavoritesStore(tmp_path / "nope.json")
    missing.load()
    assert missing.ids == []

    path = tmp_path / "favorites.json"
    path.write_text('["BTC-USDT", 3, "BTC-USDT", ""]')
    store = FavoritesStore(path)
    store.load()
    assert store.ids == ["BTC-USDT"]

    path.write_text("not json")
    store.load()
    assert store.ids == []


def test_unique_instruments_keeps_first_entry() -> None:
    first = _inst("BTC-USDT")
    dup = Instrument("BTC-USDT", "SPOT", "BTC", "USDT", ct_val="1")

    assert unique_instruments([first, dup, _inst("ETH-USDT")]) == [first, _inst("ETH-USDT")]


def test_filter_by_tab_query_and_favorites() -> None:
    instruments = [
        _inst("BTC-USDT"),
        _inst("ETH-USDT"),
        _inst("BTC-USDC"),
        _inst("BTC-USDT"),
        _inst("SOL-USDC"),
    ]

    assert [i.inst_id for i in filter_instruments(instruments, "", "USDT", [])] == ["BTC-USDT", "ETH-USDT"]
    assert [i.inst_id for i in filter_instruments(instruments, "btc", "USDC", [])] == ["BTC-USDC"]
    assert [i.inst_id for i in filter_instruments(instruments, "", "Favorites", ["SOL-USDC"])] == ["SOL-USDC"]


def test_filter_caps_results() -> None:
    instruments = [_inst(f"C{idx}-USDT") for idx in range(80)]

    assert len(filter_instruments(instruments, "", "USDT", [])) == 50
    assert len(filter_instruments(instruments, "c1", "USDT", [], limit=5)) == 5


def test_account_snapshot_failure_keeps_last_data() -> None:
    snapshot = AccountSnapshot()
    snapshot.update([], [], None)
    first_update = snapshot.updated_at

    snapshot.fail("timeout")

    assert snapshot.error == "timeout"
    assert snapshot.balances == []
    assert snapshot.updated_at is not None and snapshot.updated_at >= first_update
