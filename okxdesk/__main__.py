"""Module entrypoint for the OKX account desk.

Run:
  python -m okxdesk
"""

from __future__ import annotations

from .main import main


if __name__ == "__main__":
    main()
