"""Entrypoint for the OKX account desk TUI."""
from __future__ import annotations

from .config import load_config
from .ui import DeskApp
from .utils.logging import configure_logging


def main() -> None:
    config = load_config()
    configure_logging(config.log_level, config.log_file)
    DeskApp(config).run()


if __name__ == "__main__":
    main()
