"""CLI for the portfolio valuator."""

import asyncio
import json
import logging
from enum import StrEnum
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table
from rich.traceback import install

from portfolio_valuator.cli.render import (
    format_brokerage_markdown,
    format_funding_markdown,
    format_portfolio_markdown,
    print_brokerage_table,
    print_funding_table,
    print_portfolio_table,
    to_json,
)
from portfolio_valuator.core.brokerage import BrokerageAggregator
from portfolio_valuator.core.config import AppConfig, ConfigurationError, load_config
from portfolio_valuator.core.valuation import PortfolioValuator

install(show_locals=False)

app = typer.Typer(
    name="portfolio-valuator",
    help="Value a Bybit funding account, earn ledger and Trading212 accounts in USD and GBP",
    add_completion=False,
)

console = Console()


class OutputFormat(StrEnum):
    """Output format options."""

    TABLE = "table"
    JSON = "json"
    MARKDOWN = "markdown"


class Venue(StrEnum):
    """Venues with a connection test."""

    BYBIT = "bybit"
    TRADING212 = "trading212"


class RecordKind(StrEnum):
    """Bybit asset record kinds."""

    DEPOSITS = "deposits"
    WITHDRAWALS = "withdrawals"
    EXCHANGES = "exchanges"


class State:
    """Options shared by every command."""

    coins: Path | None = None
    earn: Path | None = None
    settings: Path | None = None
    env_file: Path | None = None
    debug: bool = False


state = State()


def _configure_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True, show_path=debug)],
        force=True,
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if debug else logging.WARNING)


def _load() -> AppConfig:
    try:
        return load_config(state.coins, state.earn, state.settings, state.env_file)
    except ConfigurationError as e:
        console.print(f"[bold red]Configuration error:[/bold red] {e}")
        raise typer.Exit(code=2) from e


def _spinner(description: str) -> Progress:
    return Progress(SpinnerColumn(), TextColumn("[progress.description]{task.description}"), console=console, transient=True)


@app.callback()
def main(
    coins: Path | None = typer.Option(None, "--coins", help="Coins table (YAML)", exists=True, dir_okay=False),
    earn: Path | None = typer.Option(None, "--earn", help="Earn holdings (YAML)", exists=True, dir_okay=False),
    settings: Path | None = typer.Option(None, "--settings", help="Venue settings (YAML)", exists=True, dir_okay=False),
    env_file: Path | None = typer.Option(None, "--env-file", help=".env file with API credentials", exists=True, dir_okay=False),
    debug: bool = typer.Option(False, "--debug", "-d", help="Enable debug output"),
) -> None:
    """Value crypto and brokerage holdings."""
    state.coins = coins
    state.earn = earn
    state.settings = settings
    state.env_file = env_file
    state.debug = debug
    _configure_logging(debug)


@app.command()
def value(
    format: OutputFormat = typer.Option(OutputFormat.TABLE, "--format", "-f", help="Output format"),
) -> None:
    """
    Value the Bybit funding account plus the earn ledger.

    Examples:

        portfolio-valuator value

        portfolio-valuator value --format json
    """
    config = _load()

    async def run():
        async with PortfolioValuator(config) as valuator:
            return await valuator.get_account_value()

    with _spinner("Valuing crypto portfolio...") as progress:
        progress.add_task("Valuing crypto portfolio...", total=None)
        valuation = asyncio.run(run())

    if format == OutputFormat.JSON:
        console.print_json(to_json(valuation))
    elif format == OutputFormat.MARKDOWN:
        console.print(format_portfolio_markdown(valuation), markup=False, highlight=False)
    else:
        print_portfolio_table(console, valuation)

    if not valuation.success:
        raise typer.Exit(1)


@app.command()
def funding(
    format: OutputFormat = typer.Option(OutputFormat.TABLE, "--format", "-f", help="Output format"),
) -> None:
    """Value every coin held in the Bybit funding account."""
    config = _load()

    async def run():
        async with PortfolioValuator(config) as valuator:
            return await valuator.get_funding_account_balance()

    with _spinner("Fetching funding account...") as progress:
        progress.add_task("Fetching funding account...", total=None)
        balance = asyncio.run(run())

    if format == OutputFormat.JSON:
        console.print_json(to_json(balance))
    elif format == OutputFormat.MARKDOWN:
        console.print(format_funding_markdown(balance), markup=False, highlight=False)
    else:
        print_funding_table(console, balance)

    if not balance.success:
        raise typer.Exit(1)


@app.command()
def brokerage(
    account_id: int | None = typer.Option(None, "--account-id", "-a", help="Single account to value"),
    format: OutputFormat = typer.Option(OutputFormat.TABLE, "--format", "-f", help="Output format"),
) -> None:
    """
    Value Trading212 accounts in GBP.

    Examples:

        # All enabled accounts
        portfolio-valuator brokerage

        # One account as markdown
        portfolio-valuator brokerage --account-id 2 --format markdown
    """
    config = _load()
    aggregator = BrokerageAggregator(config.trading212, timeout=config.request_timeout)

    with _spinner("Valuing brokerage accounts...") as progress:
        progress.add_task("Valuing brokerage accounts...", total=None)
        if account_id is not None:
            data = asyncio.run(aggregator.get_account_value(account_id))
        else:
            data = asyncio.run(aggregator.get_all_accounts_value())

    if format == OutputFormat.JSON:
        console.print_json(to_json(data))
    elif format == OutputFormat.MARKDOWN:
        console.print(format_brokerage_markdown(data), markup=False, highlight=False)
    else:
        print_brokerage_table(console, data)

    if not data.success:
        raise typer.Exit(1)


@app.command()
def accounts() -> None:
    """List enabled Trading212 accounts."""
    config = _load()
    enabled = BrokerageAggregator(config.trading212).list_accounts()

    if not enabled:
        console.print("[yellow]No Trading212 accounts enabled; set the API key variables in settings[/yellow]")
        return

    table = Table(title="Trading212 Accounts", show_header=True, header_style="bold magenta")
    table.add_column("ID", style="cyan")
    table.add_column("Name", style="green")
    for account in enabled:
        table.add_row(str(account.id), account.name)
    console.print(table)


@app.command("test-connection")
def test_connection(
    venue: Venue = typer.Option(Venue.BYBIT, "--venue", "-v", help="Venue to test"),
    account_id: int = typer.Option(1, "--account-id", "-a", help="Trading212 account"),
) -> None:
    """Check API connectivity and credentials."""
    config = _load()

    async def run():
        if venue == Venue.TRADING212:
            return await BrokerageAggregator(config.trading212, timeout=config.request_timeout).check_connection(account_id)
        async with PortfolioValuator(config) as valuator:
            return await valuator.check_connection()

    result = asyncio.run(run())
    if result["success"]:
        console.print(f"[bold green]✓ Connected to {venue.value}[/bold green]")
        console.print_json(json.dumps(result["data"], default=str))
    else:
        console.print(f"[bold red]Connection to {venue.value} failed:[/bold red] {result['error']}")
        raise typer.Exit(1)


@app.command()
def records(
    kind: RecordKind = typer.Argument(..., help="Record kind"),
    limit: int = typer.Option(50, "--limit", "-n", help="Records to fetch"),
) -> None:
    """Show Bybit deposit, withdrawal or exchange order records."""
    config = _load()

    async def run():
        async with PortfolioValuator(config) as valuator:
            return await valuator.get_records(kind.value, limit=limit)

    result = asyncio.run(run())
    if not result["success"]:
        console.print(f"[bold red]Error:[/bold red] {result['error']}")
        raise typer.Exit(1)
    console.print_json(json.dumps(result["records"], default=str))


if __name__ == "__main__":
    app()
