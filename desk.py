#!/usr/bin/env python3
"""Launch the okxdesk TUI with sane defaults."""
from __future__ import annotations

import os

from okxdesk.main import main


if __name__ == "__main__":
    os.environ.setdefault("DESK_COLOR_MODE", "standard")
    main()
