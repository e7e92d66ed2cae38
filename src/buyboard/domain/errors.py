# buyboard/domain/errors.py
from __future__ import annotations

from typing import Any

from .models import BlockRange


class BuyboardError(Exception):
    """Base class for every error raised by buyboard."""


class ConfigError(BuyboardError, ValueError):
    """Invalid or missing configuration value."""


class ProviderError(BuyboardError):
    """Transport or JSON-RPC failure unrelated to result capacity."""

    def __init__(self, message: str, *, code: int | None = None, data: Any = None) -> None:
        super().__init__(message)
        self.code = code
        self.data = data

    def __str__(self) -> str:
        msg = super().__str__()
        return f"{msg} (code={self.code})" if self.code is not None else msg


class CapacityExceededError(ProviderError):
    """
    The provider refused to return a result set because it matched too many logs.
    `hint` is the safe sub-range the provider suggested, if it suggested one.
    Recovered inside the fetcher by splitting; never surfaced past it.
    """

    def __init__(
        self,
        message: str,
        *,
        code: int | None = None,
        data: Any = None,
        hint: BlockRange | None = None,
    ) -> None:
        super().__init__(message, code=code, data=data)
        self.hint = hint


class ReadError(BuyboardError):
    """A single account's contract read failed."""


class RefreshError(BuyboardError):
    """The scan pipeline failed and there is no earlier snapshot to fall back to."""
