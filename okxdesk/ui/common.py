"""Shared UI helpers.

This module contains pure formatting helpers used by multiple UI screens.
Keep it dependency-light and free of exchange side effects.
"""

from __future__ import annotations

import math
from typing import Iterable, Sequence

from rich.text import Text

from ..analytics import CalendarCell, pnl_tone
from ..models import Order, Position

_CURRENCY_SYMBOLS = {"USD": "$", "CNY": "¥", "BTC": "₿"}
_HIDDEN = "******"
_SPARK_LEVELS = " ▁▂▃▄▅▆▇█"

# region Formatting Helpers
def _fmt_money(value: float, decimals: int = 2) -> str:
    return f"{value:,.{decimals}f}"


def _safe_float(value: object, *, abs_cap: float = 1e307) -> float | None:
    if value is None:
        return None
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(parsed) or not math.isfinite(parsed):
        return None
    if abs(parsed) >= float(abs_cap):
        return None
    return float(parsed)


def _fmt_amount(raw: object) -> str:
    value = _safe_float(raw)
    if value is None:
        return str(raw or "")
    if value.is_integer():
        return f"{int(value):,}"
    if abs(value) >= 1:
        return f"{value:,.4f}".rstrip("0").rstrip(".")
    return f"{value:.8f}".rstrip("0").rstrip(".")


def _fmt_price(raw: object) -> str:
    value = _safe_float(raw)
    if value is None:
        return str(raw or "")
    if abs(value) >= 1000:
        return f"{value:,.2f}"
    if abs(value) >= 1:
        return f"{value:,.4f}".rstrip("0").rstrip(".")
    return f"{value:.8f}".rstrip("0").rstrip(".")
# endregion


def _tone_style(tone: str, color_mode: str = "standard") -> str:
    reverse = color_mode == "reverse"
    if tone == "gain":
        return "red" if reverse else "green"
    if tone == "loss":
        return "green" if reverse else "red"
    return "grey58"


def _pnl_text(
    value: float | None,
    *,
    color_mode: str = "standard",
    decimals: int = 2,
    suffix: str = "",
) -> Text:
    if value is None:
        return Text("")
    sign = "+" if value > 0 else ""
    text = f"{sign}{_fmt_money(value, decimals)}{suffix}"
    return Text(text, style=_tone_style(pnl_tone(value), color_mode))


def _pct_text(pct: float, *, color_mode: str = "standard") -> Text:
    arrow = "▲" if pct >= 0 else "▼"
    sign = "+" if pct > 0 else ""
    tone = "gain" if pct >= 0 else "loss"
    return Text(f"{arrow} {sign}{pct:.2f}%", style=_tone_style(tone, color_mode))


def _fmt_balance(value: float, unit: str, *, hidden: bool = False) -> str:
    if hidden:
        return _HIDDEN
    decimals = 6 if unit == "BTC" else 2
    return f"{_CURRENCY_SYMBOLS.get(unit, '')}{_fmt_money(value, decimals)}"


def _rate_hint(unit: str, rate: float) -> str:
    if unit == "USD" or rate <= 0:
        return ""
    return f"1 USD ≈ {rate:g} {unit}"


def _position_size(pos: Position) -> tuple[str, str]:
    """Size in coin terms: swaps convert contracts through ctVal when known."""
    if pos.is_swap and pos.ct_val:
        contracts = _safe_float(pos.pos)
        ct_val = _safe_float(pos.ct_val)
        if contracts is not None and ct_val is not None:
            return f"{contracts * ct_val:.4f}", pos.inst_id.split("-")[0]
    return _fmt_amount(pos.pos), pos.ccy


def _position_row(pos: Position, *, hidden: bool, color_mode: str) -> list[Text | str]:
    kind = Text("SWAP", style="bold #ffcc84") if pos.is_swap else Text("SPOT", style="bold #93d1ff")
    symbol = Text.assemble(kind, " ", Text(pos.inst_id, style="bold"))
    side_style = "bold red" if pos.pos_side == "short" else "bold green"
    side = Text(pos.pos_side.upper(), style=side_style)
    size, suffix = _position_size(pos)
    size_text = Text(size)
    if suffix:
        size_text.append(f" {suffix}", style="dim")
    upl = _safe_float(pos.upl)
    if hidden:
        upl_text = Text("****")
    else:
        upl_text = _pnl_text(upl, color_mode=color_mode) if upl is not None else Text(pos.upl)
    return [symbol, side, size_text, _fmt_price(pos.avg_px), upl_text]


def _order_kind_label(order: Order) -> str:
    labels = {
        "sl": "SL",
        "tp": "TP",
        "conditional": "COND",
        "trigger": "TRIG",
        "limit": "LMT",
        "market": "MKT",
        "oco": "OCO",
    }
    return labels.get(order.ord_type, (order.ord_type or "?").upper()[:5])


def _order_line(order: Order, *, width: int = 64) -> Text:
    side_style = "green" if order.side == "buy" else "red" if order.side == "sell" else ""
    line = Text(f"{_order_kind_label(order):<5} ")
    line.append(f"{(order.side or '?').upper():<4}", style=side_style)
    line.append(f" {_fmt_amount(order.sz):>10} @ {_fmt_price(order.display_price):<12}")
    ident = f"algo {order.algo_id}" if order.algo_id else f"#{order.ord_id or '?'}"
    line.append(f" {ident}", style="dim")
    line.truncate(width, overflow="ellipsis")
    return line


def _calendar_cell_text(cell: CalendarCell, *, color_mode: str = "standard", width: int = 9) -> Text:
    if cell.day is None:
        return Text(" " * width)
    text = Text(f"{cell.day:>2}", style="grey58")
    if cell.pnl is not None:
        sign = "+" if cell.pnl > 0 else ""
        text.append(f" {sign}{cell.pnl:.1f}", style=_tone_style(pnl_tone(cell.pnl), color_mode))
    text.truncate(width, overflow="ellipsis", pad=True)
    return text


def _sparkline(values: Sequence[float], width: int) -> str:
    if not values or width <= 0:
        return ""
    points = list(values)[-width:]
    low = min(points)
    high = max(points)
    span = high - low
    levels = len(_SPARK_LEVELS) - 1
    out = []
    for value in points:
        if span <= 0:
            out.append(_SPARK_LEVELS[levels // 2])
            continue
        idx = int(round((value - low) / span * (levels - 1))) + 1
        out.append(_SPARK_LEVELS[idx])
    return "".join(out)


def _pnl_bars(values: Iterable[float], *, width: int, color_mode: str = "standard") -> Text:
    """One glyph per fill: height by magnitude, color by sign."""
    points = list(values)[-width:]
    if not points:
        return Text("")
    peak = max(abs(value) for value in points) or 1.0
    levels = len(_SPARK_LEVELS) - 1
    out = Text()
    for value in points:
        idx = max(1, int(round(abs(value) / peak * levels)))
        tone = "gain" if value >= 0 else "loss"
        out.append(_SPARK_LEVELS[idx], style=_tone_style(tone, color_mode))
    return out


def _append_digit(value: str, char: str) -> str:
    if char == "." and "." in value:
        return value
    if char == "." and not value:
        return "0."
    return value + char
