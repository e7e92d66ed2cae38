from __future__ import annotations
import asyncio, itertools, logging, re
from typing import Any, Sequence

import httpx

from ..domain.errors import CapacityExceededError, ProviderError
from ..domain.models import BlockRange, LogRecord
from ..domain.value_types import Topic0
from ..ports.rpc import RPCClient

log = logging.getLogger(__name__)

# Linea / Infura / geth: "query returned more than 10000 results"
CAPACITY_ERROR_CODE = -32005
CAPACITY_MESSAGES = (
    "query returned more than",
    "response size exceeded",
    "log response size exceeded",
    "exceeds max results",
    "too many results",
)
_NOT_CAPACITY = ("rate limit", "request count", "rate-limit")
_HINT_RE = re.compile(r"\[\s*(0x[0-9a-fA-F]+)\s*,\s*(0x[0-9a-fA-F]+)\s*\]")

def _to_hex_block(n: int) -> str: return hex(int(n))
def _is_topic_hash(x: str) -> bool: return isinstance(x, str) and x.startswith("0x") and len(x)==66
def _normalize_topic0_list(t0s: Sequence[Topic0]) -> list[str]:
    return [str(t).strip().lower() for t in t0s]

def _build_topics_param(topic0s: Sequence[Topic0]) -> list[list[str]]:
    t0s = _normalize_topic0_list(topic0s)
    if not all(_is_topic_hash(x) for x in t0s):
        raise ValueError(f"Invalid topic0(s): {t0s}")
    return [t0s]


def _parse_int(v: Any) -> int | None:
    if isinstance(v, int):
        return v
    if isinstance(v, str):
        try:
            return int(v, 16) if v.lower().startswith("0x") else int(v)
        except ValueError:
            return None
    return None

def parse_range_hint(message: str, data: Any) -> BlockRange | None:
    """
    Extract the provider-suggested safe range, if any.
    Infura puts it in error.data as {"from": "0x..", "to": "0x.."};
    Alchemy embeds "[0x.., 0x..]" in the message text.
    """
    if isinstance(data, dict):
        fb, tb = _parse_int(data.get("from")), _parse_int(data.get("to"))
        if fb is not None and tb is not None and fb <= tb:
            return BlockRange(fb, tb)
    m = _HINT_RE.search(message or "")
    if m:
        fb, tb = int(m.group(1), 16), int(m.group(2), 16)
        if fb <= tb:
            return BlockRange(fb, tb)
    return None

def is_capacity_error(code: int | None, message: str) -> bool:
    msg = (message or "").lower()
    if any(p in msg for p in _NOT_CAPACITY):
        return False
    return code == CAPACITY_ERROR_CODE or any(p in msg for p in CAPACITY_MESSAGES)

def rpc_error_to_exception(method: str, err: Any) -> ProviderError:
    if not isinstance(err, dict):
        return ProviderError(f"{method} RPC error: {err}")
    code = err.get("code")
    msg = str(err.get("message") or "")
    data = err.get("data")
    if method == "eth_getLogs" and is_capacity_error(code, msg):
        return CapacityExceededError(msg, code=code, data=data, hint=parse_range_hint(msg, data))
    return ProviderError(f"{method} RPC error: {msg}", code=code, data=data)


def _log_from_json(rl: dict[str, Any]) -> LogRecord:
    topics = tuple((t if isinstance(t, str) else t.decode()).lower() for t in rl.get("topics", []))
    return LogRecord(
        address=str(rl.get("address") or "").lower(),
        topics=topics,
        data_hex=str(rl.get("data") or "0x"),
        block_number=int(rl["blockNumber"], 16),
        tx_hash=str(rl.get("transactionHash") or "").lower(),
        log_index=int(rl.get("logIndex") or "0x0", 16),
    )


class HttpxRPC(RPCClient):
    def __init__(
        self,
        rpc_url: str,
        timeout_s: float = 20,
        max_conn: int = 64,
        *,
        max_retries: int = 3,
        backoff_s: float = 1.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.rpc_url = rpc_url
        self.max_retries = max_retries
        self.backoff_s = backoff_s
        self._ids = itertools.count(1)
        self.client = httpx.AsyncClient(
            http2=True,
            timeout=httpx.Timeout(timeout_s),
            limits=httpx.Limits(max_connections=max_conn, max_keepalive_connections=max(1, max_conn//2)),
            transport=transport,
        )

    async def _request(self, method: str, params: list[Any]) -> Any:
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        # retry on 429 with simple backoff; everything else is the caller's call
        for attempt in range(self.max_retries):
            try:
                r = await self.client.post(self.rpc_url, json=payload)
            except httpx.TimeoutException as e:
                raise ProviderError(f"{method} timed out: {e!r}") from e
            except httpx.TransportError as e:
                raise ProviderError(f"{method} transport error: {e!r}") from e
            if r.status_code == 429:
                ra = r.headers.get("Retry-After")
                delay = max(self.backoff_s, float(ra)) if ra and ra.isdigit() else (self.backoff_s * (2**attempt))
                log.debug("%s throttled (429), retrying in %.1fs", method, delay)
                await asyncio.sleep(delay)
                continue
            try:
                data = r.json()
            except ValueError:
                data = None
            if isinstance(data, dict) and "error" in data:
                raise rpc_error_to_exception(method, data["error"])
            if r.is_error:
                raise ProviderError(f"{method} HTTP {r.status_code}: {r.text[:200]}", code=r.status_code)
            if not isinstance(data, dict) or "result" not in data:
                raise ProviderError(f"{method} returned a malformed response")
            return data["result"]
        raise ProviderError(f"Retries exhausted for {method}", code=429)

    async def latest_block(self) -> int:
        return int(await self._request("eth_blockNumber", []), 16)

    async def get_logs(self, address: str, topic0s: Sequence[Topic0], from_block: int, to_block: int) -> list[LogRecord]:
        res = await self._request("eth_getLogs", [{
            "address": str(address).lower(),
            "fromBlock": _to_hex_block(from_block),
            "toBlock": _to_hex_block(to_block),
            "topics": _build_topics_param(topic0s),
        }])
        return [_log_from_json(rl) for rl in res or []]

    async def call(self, to: str, data: str, block: str = "latest") -> str:
        res = await self._request("eth_call", [{"to": to, "data": data}, block])
        return str(res or "0x")

    async def aclose(self) -> None:
        await self.client.aclose()
