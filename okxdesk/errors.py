"""Error taxonomy shared by the resolver, the controller and the exchange client."""
from __future__ import annotations


class DeskError(Exception):
    """Base class for recoverable okxdesk failures."""


class ExchangeServiceError(DeskError):
    """The exchange rejected a request or could not be reached.

    `str(exc)` is the exchange-provided message, shown to the user verbatim.
    """

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        self.code = code


class OrderIntentError(DeskError):
    """A user intent could not be turned into an exchange request."""

    code = "invalid-intent"


class InvalidPriceError(OrderIntentError):
    code = "invalid-price"

    def __init__(self, value: object = None) -> None:
        super().__init__(f"invalid-price: {value!r}")
        self.value = value
