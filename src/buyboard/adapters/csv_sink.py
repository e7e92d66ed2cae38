from __future__ import annotations
import os
from typing import Sequence

from ..application.exporting import ExportRow, to_csv
from ..ports.storage import RowSink


class CsvRowSink(RowSink):
    def __init__(self, path: str, delimiter: str = ",") -> None:
        self.path = path
        self.delimiter = delimiter

    def write(self, rows: Sequence[ExportRow], *, scaled: bool, enriched: bool) -> str:
        os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
        tmp = self.path + ".tmp"
        with open(tmp, "w", encoding="utf-8", newline="") as f:
            f.write(to_csv(rows, scaled=scaled, enriched=enriched, delimiter=self.delimiter))
        os.replace(tmp, self.path)
        return self.path


def sink_for(path: str) -> RowSink:
    """Pick a sink from the file extension: .parquet -> Parquet, anything else -> delimited text."""
    if path.lower().endswith(".parquet"):
        from .parquet_sink import ParquetRowSink
        return ParquetRowSink(path)
    return CsvRowSink(path, delimiter="\t" if path.lower().endswith(".tsv") else ",")
