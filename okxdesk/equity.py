"""Equity snapshots: period windows, window change and the local recorder.

OKX has no endpoint for historical account equity, so the dashboard records a
snapshot every time balances refresh and builds its trend from those.
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass
from datetime import datetime, tzinfo
from pathlib import Path
from typing import Iterable, Sequence

from structlog import get_logger

from .models import AssetBalance, EquitySnapshot

logger = get_logger("okxdesk.equity")

PERIODS = ("1D", "1W", "1M", "3M")
_DAY_MS = 24 * 60 * 60 * 1000
_PERIOD_MS = {
    "1D": _DAY_MS,
    "1W": 7 * _DAY_MS,
    "1M": 30 * _DAY_MS,
    "3M": 90 * _DAY_MS,
}
_RETENTION_MS = _PERIOD_MS["3M"]


@dataclass(frozen=True)
class EquityChange:
    pct_change: float
    abs_change: float
    has_data: bool


def window_change(series: Sequence[EquitySnapshot]) -> EquityChange:
    """Change between the first and last snapshot of an ascending series.

    With fewer than two points both figures are 0 and `has_data` is False, so
    the caller can show "not enough data" instead of a misleading 0%.
    """
    if len(series) < 2:
        return EquityChange(0.0, 0.0, False)
    first = float(series[0].total_eq)
    last = float(series[-1].total_eq)
    abs_change = last - first
    pct_change = (abs_change / first) * 100.0 if first != 0 else 0.0
    return EquityChange(pct_change, abs_change, True)


def to_display(value: float, rate: float) -> float:
    return value * rate


def period_window_ms(period: str) -> int:
    try:
        return _PERIOD_MS[period]
    except KeyError:
        raise ValueError(f"unknown period {period!r}; expected one of {PERIODS}") from None


def next_period(period: str) -> str:
    idx = PERIODS.index(period) if period in PERIODS else -1
    return PERIODS[(idx + 1) % len(PERIODS)]


def series_in_period(
    series: Iterable[EquitySnapshot], period: str, now_ms: int
) -> list[EquitySnapshot]:
    start = now_ms - period_window_ms(period)
    return sorted((snap for snap in series if start <= snap.ts <= now_ms), key=lambda snap: snap.ts)


def display_series(
    series: Iterable[EquitySnapshot], period: str, tz: tzinfo | None = None
) -> list[tuple[str, float]]:
    out: list[tuple[str, float]] = []
    for snap in series:
        stamp = datetime.fromtimestamp(snap.ts / 1000.0, tz=tz)
        if period == "1D":
            label = stamp.strftime("%H:%M")
        else:
            label = f"{stamp.month}/{stamp.day}"
        out.append((label, float(snap.total_eq)))
    return out


def _usd(value: str) -> float:
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(parsed) or not math.isfinite(parsed):
        return 0.0
    return parsed


def total_equity_usd(balances: Iterable[AssetBalance]) -> float:
    return sum(_usd(balance.eq_usd) for balance in balances)


def allocation(
    balances: Iterable[AssetBalance], floor: float = 10.0
) -> list[tuple[str, float]]:
    """(ccy, usd) pairs above the dust floor, largest first."""
    rows = [(balance.ccy, _usd(balance.eq_usd)) for balance in balances]
    rows = [row for row in rows if row[1] > floor]
    rows.sort(key=lambda row: row[1], reverse=True)
    return rows


class EquityRecorder:
    """Collects total-equity snapshots and serves them per period.

    When `path` is set, snapshots are loaded from and saved to a JSON file so
    the trend survives restarts. Points older than the longest period are
    dropped on every record.
    """

    def __init__(self, path: Path | None = None) -> None:
        self._path = path
        self._points: list[EquitySnapshot] = []

    @property
    def points(self) -> list[EquitySnapshot]:
        return list(self._points)

    def load(self) -> None:
        if self._path is None or not self._path.exists():
            return
        try:
            raw = json.loads(self._path.read_text())
        except (OSError, ValueError) as exc:
            logger.warning("equity history unreadable", path=str(self._path), error=str(exc))
            return
        points: list[EquitySnapshot] = []
        for entry in raw if isinstance(raw, list) else []:
            try:
                points.append(EquitySnapshot(ts=int(entry["ts"]), total_eq=float(entry["totalEq"])))
            except (KeyError, TypeError, ValueError):
                continue
        points.sort(key=lambda snap: snap.ts)
        self._points = points

    def save(self) -> None:
        if self._path is None:
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        payload = [{"ts": snap.ts, "totalEq": snap.total_eq} for snap in self._points]
        self._path.write_text(json.dumps(payload))

    def record(self, ts: int, total_eq: float) -> None:
        if self._points and ts < self._points[-1].ts:
            return
        if self._points and ts == self._points[-1].ts:
            self._points[-1] = EquitySnapshot(ts=ts, total_eq=total_eq)
        else:
            self._points.append(EquitySnapshot(ts=ts, total_eq=total_eq))
        cutoff = ts - _RETENTION_MS
        if self._points[0].ts < cutoff:
            self._points = [snap for snap in self._points if snap.ts >= cutoff]

    def history(self, period: str, now_ms: int) -> list[EquitySnapshot]:
        return series_in_period(self._points, period, now_ms)
