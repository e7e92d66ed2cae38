# buyboard/config.py
from __future__ import annotations

import dataclasses
import os
from dataclasses import dataclass
from typing import Any, Mapping

from dotenv import dotenv_values, find_dotenv
from eth_utils import is_address, to_checksum_address

from .domain.errors import ConfigError

ENV_PREFIX = "BUYBOARD_"

DEFAULT_RPC_URL = "https://rpc.linea.build"
DEFAULT_CONTRACT = "0xca2538de53e21128b298a80d92f67b33605feecc"  # TbagDailyFreeBuys on Linea
DEFAULT_START_BLOCK = 26_505_044                                  # ~ deploy block


@dataclass(slots=True, frozen=True)
class Settings:
    rpc_url: str = DEFAULT_RPC_URL
    contract: str = DEFAULT_CONTRACT
    start_block: int = DEFAULT_START_BLOCK
    end_block: int | None = None              # None -> latest
    window: int = 30_000                      # blocks per eth_getLogs request
    cache_ttl: float = 30.0                   # seconds
    workers: int = 10                         # read-pool size K
    fetch_concurrency: int = 8
    timeout: float = 20.0                     # per network call, seconds
    export_limit: int | None = None
    leaderboard_limit: int = 500
    decimals: int | None = 18                 # token scale for exported amounts

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None, *, dotenv_path: str | None = None) -> "Settings":
        """
        Read `BUYBOARD_*` settings. Without an explicit `environ`, a `.env` file
        (`dotenv_path`, or the nearest one above the working directory) fills in
        whatever the process environment leaves unset.
        """
        if environ is None:
            path = dotenv_path or find_dotenv(usecwd=True)
            env: Mapping[str, str | None] = {**dotenv_values(path), **os.environ}
        else:
            env = environ
        kwargs: dict[str, Any] = {}
        for f in dataclasses.fields(cls):
            raw = env.get(ENV_PREFIX + f.name.upper())
            if raw is None or raw.strip() == "":
                continue
            kwargs[f.name] = _coerce(f.name, raw.strip(), f.default)
        return cls(**kwargs).validate()

    def with_overrides(self, **overrides: Any) -> "Settings":
        """Apply non-None overrides (e.g. CLI flags) and re-validate."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return dataclasses.replace(self, **changes).validate() if changes else self

    def validate(self) -> "Settings":
        if not self.rpc_url:
            raise ConfigError("rpc_url is required")
        if not is_address(self.contract):
            raise ConfigError(f"contract is not a valid address: {self.contract!r}")
        if self.start_block < 0:
            raise ConfigError(f"start_block must be >= 0, got {self.start_block}")
        if self.end_block is not None and self.end_block < self.start_block:
            raise ConfigError(f"end_block ({self.end_block}) must be >= start_block ({self.start_block})")
        for name in ("window", "workers", "fetch_concurrency", "leaderboard_limit"):
            if getattr(self, name) < 1:
                raise ConfigError(f"{name} must be >= 1, got {getattr(self, name)}")
        if self.cache_ttl < 0:
            raise ConfigError(f"cache_ttl must be >= 0, got {self.cache_ttl}")
        if self.timeout <= 0:
            raise ConfigError(f"timeout must be > 0, got {self.timeout}")
        if self.export_limit is not None and self.export_limit < 0:
            raise ConfigError(f"export_limit must be >= 0, got {self.export_limit}")
        if self.decimals is not None and self.decimals < 0:
            raise ConfigError(f"decimals must be >= 0, got {self.decimals}")
        return self

    @property
    def contract_checksum(self) -> str:
        return to_checksum_address(self.contract)


_FLOATS = {"cache_ttl", "timeout"}
_OPTIONAL_INTS = {"end_block", "export_limit", "decimals"}

def _coerce(name: str, raw: str, default: Any) -> Any:
    try:
        if name in _FLOATS:
            return float(raw)
        if name in _OPTIONAL_INTS:
            return None if raw.lower() in ("none", "latest", "off") else int(raw.replace("_", ""))
        if isinstance(default, int):
            return int(raw.replace("_", ""))
    except ValueError as e:
        raise ConfigError(f"{ENV_PREFIX}{name.upper()}={raw!r}: {e}") from e
    return raw
