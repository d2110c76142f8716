"""Runtime configuration loaded from environment variables."""
from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path

DEFAULT_REFRESH_SEC = 10.0
DEFAULT_ORDERS_POLL_SEC = 5.0
DEFAULT_RATE_CNY = 7.2
DEFAULT_FILL_INST_TYPES = ("SPOT", "SWAP")
COLOR_MODES = ("standard", "reverse")


@dataclass(frozen=True)
class DeskConfig:
    api_key: str
    api_secret: str
    api_passphrase: str
    sandbox: bool
    refresh_sec: float
    orders_poll_sec: float
    fill_inst_types: tuple[str, ...]
    market_kind: str
    rate_cny: float
    rate_btc: float
    color_mode: str
    state_dir: Path
    log_file: Path
    log_level: str

    @property
    def favorites_path(self) -> Path:
        return self.state_dir / "favorites.json"

    @property
    def equity_path(self) -> Path:
        return self.state_dir / "equity_history.json"


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    raw = os.getenv(name)
    if not raw:
        return default
    items = tuple(part.strip().upper() for part in raw.split(",") if part.strip())
    return items or default


def load_config() -> DeskConfig:
    """Load config from environment with safe defaults for a read-mostly desk."""
    state_dir = Path(os.getenv("DESK_STATE_DIR") or Path.home() / ".okxdesk").expanduser()
    color_mode = (os.getenv("DESK_COLOR_MODE") or "standard").strip().lower()
    if color_mode not in COLOR_MODES:
        color_mode = "standard"
    return DeskConfig(
        api_key=os.getenv("OKX_API_KEY", ""),
        api_secret=os.getenv("OKX_API_SECRET", ""),
        api_passphrase=os.getenv("OKX_API_PASSPHRASE", ""),
        sandbox=_env_bool("OKX_SANDBOX"),
        refresh_sec=float(os.getenv("DESK_REFRESH_SEC", DEFAULT_REFRESH_SEC)),
        orders_poll_sec=float(os.getenv("DESK_ORDERS_POLL_SEC", DEFAULT_ORDERS_POLL_SEC)),
        fill_inst_types=_env_list("DESK_FILL_INST_TYPES", DEFAULT_FILL_INST_TYPES),
        market_kind=(os.getenv("DESK_MARKET_KIND") or "SPOT").strip().upper(),
        rate_cny=float(os.getenv("DESK_RATE_CNY", DEFAULT_RATE_CNY)),
        rate_btc=float(os.getenv("DESK_RATE_BTC", "0")),
        color_mode=color_mode,
        state_dir=state_dir,
        log_file=Path(os.getenv("DESK_LOG_FILE") or state_dir / "okxdesk.log").expanduser(),
        log_level=(os.getenv("DESK_LOG_LEVEL") or "INFO").strip().upper(),
    )
