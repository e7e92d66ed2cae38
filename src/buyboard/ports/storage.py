# buyboard/ports/storage.py
from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, Sequence

if TYPE_CHECKING:
    from ..application.exporting import ExportRow


class RowSink(Protocol):
    """Port for writing rendered export rows to a flat file (CSV, Parquet)."""

    def write(self, rows: Sequence["ExportRow"], *, scaled: bool, enriched: bool) -> str:
        """Persist `rows` atomically and return the written path."""
