"""Trade-fill aggregation: PnL summary, daily buckets and the month calendar.

Everything here is pure and keeps no references to its inputs, so screens can
call it on every refresh. Malformed PnL strings count as zero; they never turn
into NaN and never raise.
"""

from __future__ import annotations

import calendar
import math
from dataclasses import dataclass
from datetime import datetime, tzinfo
from typing import Iterable, Mapping, Sequence

from .models import TradeFill

DayKey = tuple[int, int, int]


@dataclass(frozen=True)
class PnlSummary:
    cumulative_pnl: float
    win_rate: float
    trade_count: int


@dataclass(frozen=True)
class CalendarCell:
    day: int | None
    pnl: float | None = None

    @property
    def is_blank(self) -> bool:
        return self.day is None


def parse_pnl(value: object) -> float | None:
    """Return the PnL as a finite float, or None when it is not a usable number."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        parsed = float(value)
    else:
        text = str(value).strip()
        if not text:
            return None
        try:
            parsed = float(text)
        except ValueError:
            return None
    if math.isnan(parsed) or not math.isfinite(parsed):
        return None
    return parsed


def safe_parse_pnl(value: object) -> float:
    parsed = parse_pnl(value)
    return 0.0 if parsed is None else parsed


def summarize(fills: Iterable[TradeFill]) -> PnlSummary:
    total = 0.0
    count = 0
    valid = 0
    wins = 0
    for fill in fills:
        count += 1
        parsed = parse_pnl(fill.pnl)
        if parsed is None:
            continue
        total += parsed
        valid += 1
        if parsed > 0:
            wins += 1
    win_rate = (wins / valid) * 100.0 if valid else 0.0
    return PnlSummary(cumulative_pnl=total, win_rate=win_rate, trade_count=count)


def fill_day(fill: TradeFill, tz: tzinfo | None = None) -> DayKey:
    stamp = datetime.fromtimestamp(fill.ts / 1000.0, tz=tz)
    return (stamp.year, stamp.month, stamp.day)


def daily_buckets(fills: Iterable[TradeFill], tz: tzinfo | None = None) -> dict[DayKey, float]:
    """Sum parsed PnL per calendar day of `ts` (system local time when tz is None).

    Days without fills have no key; a day whose fills net to zero maps to 0.0.
    """
    buckets: dict[DayKey, float] = {}
    for fill in fills:
        key = fill_day(fill, tz)
        buckets[key] = buckets.get(key, 0.0) + safe_parse_pnl(fill.pnl)
    return buckets


def leading_blanks(year: int, month: int) -> int:
    # monthrange weekday is Monday=0; the grid starts on Sunday.
    first_weekday, _ = calendar.monthrange(year, month)
    return (first_weekday + 1) % 7


def calendar_grid(
    year: int, month: int, buckets: Mapping[DayKey, float]
) -> list[CalendarCell]:
    cells = [CalendarCell(day=None) for _ in range(leading_blanks(year, month))]
    _, days_in_month = calendar.monthrange(year, month)
    for day in range(1, days_in_month + 1):
        cells.append(CalendarCell(day=day, pnl=buckets.get((year, month, day))))
    return cells


def calendar_weeks(cells: Sequence[CalendarCell]) -> list[list[CalendarCell]]:
    """Split a grid into Sunday-first rows of seven, padding the last row."""
    rows: list[list[CalendarCell]] = []
    for start in range(0, len(cells), 7):
        row = list(cells[start : start + 7])
        row.extend(CalendarCell(day=None) for _ in range(7 - len(row)))
        rows.append(row)
    return rows


def shift_month(year: int, month: int, delta: int) -> tuple[int, int]:
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def pnl_tone(value: float | None) -> str:
    if value is None:
        return "none"
    if value > 0:
        return "gain"
    if value < 0:
        return "loss"
    return "flat"


def pnl_bar_series(
    fills: Iterable[TradeFill], tz: tzinfo | None = None
) -> list[tuple[str, float]]:
    """Per-fill (HH:MM, pnl) pairs, oldest first."""
    ordered = sorted(fills, key=lambda fill: fill.ts)
    return [
        (datetime.fromtimestamp(fill.ts / 1000.0, tz=tz).strftime("%H:%M"), safe_parse_pnl(fill.pnl))
        for fill in ordered
    ]


class FillLedger:
    """De-duplicating store of fetched fills, keyed by fill id.

    Repeated history fetches overlap; feeding the same fill twice must not
    double-count its PnL.
    """

    def __init__(self) -> None:
        self._by_id: dict[str, TradeFill] = {}

    def __len__(self) -> int:
        return len(self._by_id)

    def ingest(self, fills: Iterable[TradeFill]) -> int:
        added = 0
        for fill in fills:
            key = _ledger_key(fill)
            if key in self._by_id:
                continue
            self._by_id[key] = fill
            added += 1
        return added

    def clear(self) -> None:
        self._by_id.clear()

    @property
    def fills(self) -> list[TradeFill]:
        """Newest first, the order the history table shows them."""
        return sorted(self._by_id.values(), key=lambda fill: (fill.ts, fill.fill_id), reverse=True)

    def summary(self) -> PnlSummary:
        return summarize(self._by_id.values())

    def buckets(self, tz: tzinfo | None = None) -> dict[DayKey, float]:
        return daily_buckets(self._by_id.values(), tz)


def _ledger_key(fill: TradeFill) -> str:
    if fill.fill_id:
        return fill.fill_id
    return f"{fill.inst_id}:{fill.ts}:{fill.side}:{fill.fill_px}:{fill.fill_sz}"
