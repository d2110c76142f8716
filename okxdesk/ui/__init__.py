"""UI package (dashboard, position detail, history and markets screens)."""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .app import DeskApp as DeskApp

__all__ = ["DeskApp"]


def __getattr__(name: str):
    if name == "DeskApp":
        from .app import DeskApp

        return DeskApp
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
