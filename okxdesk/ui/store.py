"""In-memory account snapshot and the favorites watchlist.

Kept under `okxdesk.ui` because it is UI-only state, not shared analytics.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable

from structlog import get_logger

from ..models import AssetBalance, Instrument, Position

logger = get_logger("okxdesk.ui.store")

MARKET_TABS = ("USDT", "USDC", "Favorites")
MARKET_LIMIT = 50


@dataclass
class AccountSnapshot:
    balances: list[AssetBalance] = field(default_factory=list)
    positions: list[Position] = field(default_factory=list)
    updated_at: datetime | None = None
    error: str | None = None

    def update(
        self,
        balances: list[AssetBalance],
        positions: list[Position],
        error: str | None = None,
    ) -> None:
        self.balances = balances
        self.positions = positions
        self.error = error
        self.updated_at = datetime.now(timezone.utc)

    def fail(self, error: str) -> None:
        # Keep the last good data on screen; only the error changes.
        self.error = error
        self.updated_at = datetime.now(timezone.utc)


class FavoritesStore:
    """Set of favorite inst ids with explicit load/save at the file boundary."""

    def __init__(self, path: Path | None = None) -> None:
        self._path = path
        self._ids: list[str] = []

    def __contains__(self, inst_id: object) -> bool:
        return inst_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    @property
    def ids(self) -> list[str]:
        return list(self._ids)

    def load(self) -> None:
        if self._path is None or not self._path.exists():
            self._ids = []
            return
        try:
            raw = json.loads(self._path.read_text())
        except (OSError, ValueError) as exc:
            logger.warning("favorites unreadable", path=str(self._path), error=str(exc))
            self._ids = []
            return
        ids: list[str] = []
        for entry in raw if isinstance(raw, list) else []:
            if isinstance(entry, str) and entry and entry not in ids:
                ids.append(entry)
        self._ids = ids

    def save(self) -> None:
        if self._path is None:
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(self._ids))

    def toggle(self, inst_id: str) -> bool:
        """Flip membership, persist, and return whether it is now a favorite."""
        if inst_id in self._ids:
            self._ids = [entry for entry in self._ids if entry != inst_id]
            added = False
        else:
            self._ids = [*self._ids, inst_id]
            added = True
        self.save()
        return added


def unique_instruments(instruments: Iterable[Instrument]) -> list[Instrument]:
    seen: set[str] = set()
    out: list[Instrument] = []
    for inst in instruments:
        if inst.inst_id in seen:
            continue
        seen.add(inst.inst_id)
        out.append(inst)
    return out


def filter_instruments(
    instruments: Iterable[Instrument],
    query: str,
    tab: str,
    favorites: FavoritesStore | Iterable[str],
    limit: int = MARKET_LIMIT,
) -> list[Instrument]:
    needle = (query or "").strip().lower()
    fav_ids = set(favorites.ids if isinstance(favorites, FavoritesStore) else favorites)
    out: list[Instrument] = []
    for inst in unique_instruments(instruments):
        if needle and needle not in inst.inst_id.lower():
            continue
        if tab == "Favorites":
            if inst.inst_id not in fav_ids:
                continue
        elif inst.quote_ccy != tab:
            continue
        out.append(inst)
        if len(out) >= limit:
            break
    return out
