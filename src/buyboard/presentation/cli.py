import asyncio, logging, time
from datetime import datetime, timezone
from typing import NoReturn, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from ..adapters.csv_sink import sink_for
from ..adapters.rpc_httpx import HttpxRPC
from ..application.cache import FreshnessCache
from ..application.exporting import render
from ..application.use_cases import Leaderboard, LeaderboardService, pipeline_from_settings
from ..config import Settings
from ..domain.errors import BuyboardError, ConfigError
from ..domain.value_types import SORT_KEYS

app = typer.Typer(help="Per-wallet buy/claim statistics rebuilt from contract event logs.")
console = Console()
err_console = Console(stderr=True)


@app.callback()
def main(log_level: str = typer.Option("INFO", "--log-level", help="DEBUG, INFO, WARNING, ERROR")):
    logging.basicConfig(
        level=log_level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _settings(**overrides) -> Settings:
    try:
        return Settings.from_env().with_overrides(**overrides)
    except ConfigError as e:
        raise typer.BadParameter(str(e))

def _rpc(settings: Settings) -> HttpxRPC:
    return HttpxRPC(settings.rpc_url, timeout_s=settings.timeout,
                    max_conn=max(32, 2 * max(settings.workers, settings.fetch_concurrency)))

def _fail(e: BuyboardError) -> NoReturn:
    err_console.print(f"[bold red]error[/]: {e}")
    raise typer.Exit(code=1)


@app.command()
def export(
    out: str = typer.Option("wallet-buys-claims.csv", "--out", "-o", help=".csv, .tsv or .parquet"),
    rpc_url: Optional[str] = typer.Option(None, "--rpc", help="RPC endpoint URL"),
    contract: Optional[str] = typer.Option(None, "--contract", help="Emitter contract address"),
    start_block: Optional[int] = typer.Option(None, "--from-block"),
    end_block: Optional[int] = typer.Option(None, "--to-block", help="Defaults to latest"),
    window: Optional[int] = typer.Option(None, "--window", help="Blocks per request"),
    workers: Optional[int] = typer.Option(None, "--workers", help="Parallel contract reads"),
    concurrency: Optional[int] = typer.Option(None, "--concurrency", help="Max parallel getLogs requests"),
    limit: Optional[int] = typer.Option(None, "--limit", help="Keep only the top N rows"),
    decimals: Optional[int] = typer.Option(None, "--decimals", help="Token decimals for the scaled amount column"),
    sort_key: str = typer.Option("buy_count", "--sort", help=", ".join(SORT_KEYS)),
    enrich: bool = typer.Option(True, "--enrich/--no-enrich", help="Read live claimable balances per wallet"),
):
    """Scan the contract's Buy/ClaimAll logs and write one row per wallet."""
    if sort_key not in SORT_KEYS:
        raise typer.BadParameter(f"--sort must be one of {', '.join(SORT_KEYS)}")
    settings = _settings(
        rpc_url=rpc_url, contract=contract, start_block=start_block, end_block=end_block,
        window=window, workers=workers, fetch_concurrency=concurrency,
        export_limit=limit, decimals=decimals,
    )

    async def run():
        rpc = _rpc(settings)
        try:
            with console.status("[bold]collecting data[/]"):
                return await pipeline_from_settings(settings, rpc, enrich=enrich).run()
        finally:
            await rpc.aclose()

    t0 = time.time()
    try:
        snap = asyncio.run(run())
    except BuyboardError as e:
        _fail(e)

    rows = render(snap.as_mapping(), sort_key, settings.export_limit, settings.decimals)
    path = sink_for(out).write(rows, scaled=settings.decimals is not None, enriched=enrich)
    s = snap.stats
    console.print(Panel.fit(
        f"[bold]wallets[/]={s.accounts}  [bold]rows[/]={len(rows)}  [bold]logs[/]={s.logs}\n"
        f"[green]decoded[/]={s.decoded}  [yellow]skipped[/]={s.skipped}  "
        f"[yellow]splits[/]={s.splits}  [red]read_failures[/]={s.read_failures}\n"
        f"blocks {s.from_block:,}-{s.to_block:,} • {time.time() - t0:.2f}s → {path}",
        title="export",
    ))


def _leaderboard_table(board: Leaderboard) -> Table:
    produced = datetime.fromtimestamp(board.produced_at, tz=timezone.utc).strftime("%H:%M:%S UTC")
    status = "[yellow]stale[/]" if board.stale else "[green]fresh[/]"
    table = Table(title=f"Leaderboard • {status} • {produced}", caption=board.error)
    table.add_column("#", justify="right")
    table.add_column("wallet")
    table.add_column("buys", justify="right")
    for i, row in enumerate(board.rows, 1):
        table.add_row(str(i), row.wallet, str(row.total_buys))
    return table


@app.command()
def leaderboard(
    rpc_url: Optional[str] = typer.Option(None, "--rpc", help="RPC endpoint URL"),
    contract: Optional[str] = typer.Option(None, "--contract", help="Emitter contract address"),
    start_block: Optional[int] = typer.Option(None, "--from-block"),
    top: Optional[int] = typer.Option(None, "--top", min=0, help="Rows to show (capped by the leaderboard limit)"),
    ttl: Optional[float] = typer.Option(None, "--ttl", help="Cache TTL in seconds"),
    watch: float = typer.Option(0, "--watch", help="Re-query every N seconds (0 = once)"),
):
    """Print the top wallets by buy count, served through the TTL cache."""
    settings = _settings(rpc_url=rpc_url, contract=contract, start_block=start_block, cache_ttl=ttl)

    async def run():
        rpc = _rpc(settings)
        try:
            pipeline = pipeline_from_settings(settings, rpc, enrich=False)
            service = LeaderboardService(FreshnessCache(pipeline.run, settings.cache_ttl), settings.leaderboard_limit)
            while True:
                console.print(_leaderboard_table(await service.leaderboard(top)))
                if watch <= 0:
                    return
                await asyncio.sleep(watch)
        finally:
            await rpc.aclose()

    try:
        asyncio.run(run())
    except BuyboardError as e:
        _fail(e)
    except KeyboardInterrupt:
        raise typer.Exit(code=130)


if __name__ == "__main__":
    app()
