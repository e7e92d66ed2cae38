import pytest

from buyboard.config import DEFAULT_CONTRACT, Settings
from buyboard.domain.errors import ConfigError


def test_defaults():
    s = Settings.from_env({})
    assert s.contract == DEFAULT_CONTRACT
    assert s.start_block == 26_505_044
    assert s.end_block is None
    assert (s.window, s.workers, s.cache_ttl, s.decimals) == (30_000, 10, 30.0, 18)


def test_from_env_coerces_types():
    s = Settings.from_env({
        "BUYBOARD_RPC_URL": "http://localhost:8545",
        "BUYBOARD_START_BLOCK": "100",
        "BUYBOARD_END_BLOCK": "200",
        "BUYBOARD_WINDOW": "5_000",
        "BUYBOARD_CACHE_TTL": "2.5",
        "BUYBOARD_WORKERS": "3",
        "BUYBOARD_EXPORT_LIMIT": "50",
        "BUYBOARD_DECIMALS": "none",
        "BUYBOARD_TIMEOUT": "",
    })
    assert s.rpc_url == "http://localhost:8545"
    assert (s.start_block, s.end_block, s.window) == (100, 200, 5000)
    assert s.cache_ttl == 2.5 and s.workers == 3 and s.export_limit == 50
    assert s.decimals is None
    assert s.timeout == 20.0


@pytest.mark.parametrize("env", [
    {"BUYBOARD_WORKERS": "0"},
    {"BUYBOARD_WINDOW": "abc"},
    {"BUYBOARD_CONTRACT": "0x1234"},
    {"BUYBOARD_START_BLOCK": "10", "BUYBOARD_END_BLOCK": "5"},
    {"BUYBOARD_CACHE_TTL": "-1"},
])
def test_invalid_env_rejected(env):
    with pytest.raises(ConfigError):
        Settings.from_env(env)


def test_overrides_skip_none():
    base = Settings.from_env({})
    assert base.with_overrides(window=None) is base
    s = base.with_overrides(window=10, workers=None)
    assert s.window == 10 and s.workers == base.workers
    with pytest.raises(ConfigError):
        base.with_overrides(workers=0)


def test_contract_checksum():
    s = Settings.from_env({"BUYBOARD_CONTRACT": DEFAULT_CONTRACT.lower()})
    assert s.contract_checksum.lower() == DEFAULT_CONTRACT
    assert s.contract_checksum != DEFAULT_CONTRACT


def test_dotenv_fills_unset_values(tmp_path, monkeypatch):
    env_file = tmp_path / ".env"
    env_file.write_text("BUYBOARD_WINDOW=1234\nBUYBOARD_WORKERS=3\n")
    monkeypatch.delenv("BUYBOARD_WINDOW", raising=False)
    monkeypatch.setenv("BUYBOARD_WORKERS", "7")

    s = Settings.from_env(dotenv_path=str(env_file))
    assert s.window == 1234
    assert s.workers == 7


def test_dotenv_found_from_working_directory(tmp_path, monkeypatch):
    (tmp_path / ".env").write_text("BUYBOARD_START_BLOCK=42\n")
    nested = tmp_path / "a" / "b"
    nested.mkdir(parents=True)
    monkeypatch.chdir(nested)
    for var in ("BUYBOARD_START_BLOCK", "BUYBOARD_END_BLOCK"):
        monkeypatch.delenv(var, raising=False)

    assert Settings.from_env().start_block == 42


def test_explicit_environ_ignores_dotenv(tmp_path, monkeypatch):
    (tmp_path / ".env").write_text("BUYBOARD_WINDOW=1234\n")
    monkeypatch.chdir(tmp_path)
    assert Settings.from_env({}).window == 30_000
