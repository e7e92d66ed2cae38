from __future__ import annotations
import os, pyarrow as pa, pyarrow.parquet as pq
from typing import Sequence

from ..application.exporting import ExportRow, columns_for
from ..ports.storage import RowSink

# big ints stay strings; counters fit int64
_TYPES: dict[str, pa.DataType] = {
    "address":              pa.string(),
    "buy_count":            pa.int64(),
    "claim_tx_count":       pa.int64(),
    "units_claimed_total":  pa.string(),
    "amount_claimed_raw":   pa.string(),
    "amount_claimed":       pa.string(),
    "total_buys_onchain":   pa.uint64(),
    "claimable_buys":       pa.string(),
    "claimed_buys_onchain": pa.uint64(),
    "claimable_tokens_raw": pa.string(),
    "read_error":           pa.string(),
}

def _as_str(v: object) -> str | None:
    return None if v is None else str(v)

def rows_to_table(rows: Sequence[ExportRow], *, scaled: bool, enriched: bool) -> pa.Table:
    cols = columns_for(scaled=scaled, enriched=enriched)
    schema = pa.schema([pa.field(c, _TYPES[c]) for c in cols])
    arrays = []
    for c in cols:
        vals = [getattr(r, c) for r in rows]
        if pa.types.is_string(_TYPES[c]):
            vals = [_as_str(v) for v in vals]
        arrays.append(pa.array(vals, type=_TYPES[c]))
    return pa.Table.from_arrays(arrays, schema=schema)


class ParquetRowSink(RowSink):
    def __init__(self, path: str, codec: str = "zstd") -> None:
        self.path = path
        self.codec = codec

    def write(self, rows: Sequence[ExportRow], *, scaled: bool, enriched: bool) -> str:
        os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
        tmp = self.path + ".tmp"
        pq.write_table(rows_to_table(rows, scaled=scaled, enriched=enriched), tmp, compression=self.codec)
        os.replace(tmp, self.path)
        return self.path
