"""Rich table, JSON and markdown rendering of valuation reports."""

import json
from decimal import Decimal

from pydantic import BaseModel
from rich.console import Console
from rich.table import Table

from portfolio_valuator.core.models import (
    AccountValuation,
    AllAccountsValuation,
    FundingAccountBalance,
    PortfolioValuation,
)


def _money(value: Decimal | None, symbol: str = "$") -> str:
    if value is None:
        return "-"
    return f"{symbol}{value:,.2f}"


def _amount(value: Decimal) -> str:
    return f"{value:,.8f}".rstrip("0").rstrip(".")


def to_json(report: BaseModel) -> str:
    """Serialise a report with its camelCase wire names."""
    return json.dumps(report.model_dump(mode="json", by_alias=True), indent=2)


def format_portfolio_markdown(valuation: PortfolioValuation) -> str:
    """
    Render the crypto valuation as a markdown report.

    Parameters
    ----------
    valuation : PortfolioValuation
        Valuation to render

    Returns
    -------
    str
        Markdown text

    """
    if not valuation.success:
        return f"Error retrieving account value: {valuation.error}\n"

    rate = valuation.conversion_rate.usd_to_gbp if valuation.conversion_rate else Decimal("0")
    lines = [
        "# Bybit Portfolio",
        "",
        f"## Total Value: {_money(valuation.total_value_usd)} (£{valuation.total_value_gbp:,.2f})",
        "",
        f"- Funding account: {_money(valuation.crypto_value_usd)}",
        f"- Earn products: {_money(valuation.earn_value_usd)}",
        f"- USD to GBP: {rate}",
        "",
    ]

    if valuation.coin_balances:
        lines += [
            "## Funding Account",
            "",
            "| Coin | Balance | Price (USD) | Value (USD) |",
            "|------|---------|-------------|-------------|",
        ]
        lines += [
            f"| {entry.coin} | {_amount(entry.wallet_balance)} | {_money(entry.price_usd)} | {_money(entry.usd_value)} |"
            for entry in valuation.coin_balances
        ]
        lines.append("")

    if valuation.earn_products:
        lines += [
            "## Earn Products",
            "",
            "| Coin | Product | Amount | APY | Type | Value (USD) |",
            "|------|---------|--------|-----|------|-------------|",
        ]
        lines += [
            f"| {product.coin} | {product.name} | {_amount(product.amount)} | {product.apy or '-'} | {product.type} | {_money(product.value_usd)} |"
            for product in valuation.earn_products
        ]
        lines.append("")

    return "\n".join(lines)


def format_funding_markdown(balance: FundingAccountBalance) -> str:
    """Render the funding account balance as a markdown report."""
    if not balance.success:
        return f"Error retrieving funding account: {balance.error}\n"

    lines = [
        "# Funding Account",
        "",
        f"## Total Value: {_money(balance.total_usd_value)}",
        "",
        "| Coin | Balance | Transferable | Price (USD) | Value (USD) |",
        "|------|---------|--------------|-------------|-------------|",
    ]
    lines += [
        f"| {asset.coin} | {_amount(asset.wallet_balance)} | {_amount(asset.transfer_balance)} | {_money(asset.price_usd)} | {_money(asset.usd_value)} |"
        for asset in balance.assets
    ]
    lines.append("")
    return "\n".join(lines)


def format_brokerage_markdown(data: AccountValuation | AllAccountsValuation) -> str:
    """
    Render one or all brokerage accounts as a markdown report.

    Parameters
    ----------
    data : AccountValuation | AllAccountsValuation
        Valuation to render

    Returns
    -------
    str
        Markdown text

    """
    if not data.success:
        return "No positions data available or error retrieving data.\n"

    accounts = data.accounts if isinstance(data, AllAccountsValuation) else [data]
    lines = ["# Trading212 Portfolio", "", f"## Total Portfolio Value: £{data.total_value_gbp:,.2f}", ""]

    if isinstance(data, AllAccountsValuation) and accounts:
        lines += [
            "## Accounts Summary",
            "",
            "| Account | Value (GBP) | # of Positions | Reconciled |",
            "|---------|-------------|----------------|------------|",
        ]
        for account in accounts:
            reconciled = "no" if account.diverged else ("yes" if account.computed_total_gbp is not None else "-")
            lines.append(f"| {account.account_name} | £{account.total_value_gbp:,.2f} | {len(account.positions)} | {reconciled} |")
        lines.append("")

    lines += [
        "## Positions",
        "",
        "| Symbol | Name | Quantity | Current Price | Value (GBP) | P&L (GBP) | P&L % |",
        "|--------|------|----------|---------------|-------------|-----------|-------|",
    ]
    for account in accounts:
        for position in account.positions:
            lines.append(
                f"| {position.symbol} | {position.name or '-'} | {_amount(position.quantity)} "
                f"| £{position.current_price:,.2f} | £{position.value_gbp:,.2f} "
                f"| £{position.pnl_gbp:,.2f} | {position.pnl_percentage:.2f}% |"
            )
    lines.append("")
    return "\n".join(lines)


def print_portfolio_table(console: Console, valuation: PortfolioValuation) -> None:
    """Print the crypto valuation as rich tables."""
    if not valuation.success:
        console.print(f"[bold red]Error:[/bold red] {valuation.error}")
        return

    if valuation.coin_balances:
        table = Table(title="Funding Account", show_header=True, header_style="bold magenta")
        table.add_column("Coin", style="cyan")
        table.add_column("Balance", style="white", justify="right")
        table.add_column("Price", style="yellow", justify="right")
        table.add_column("Source", style="blue")
        table.add_column("USD Value", style="bold green", justify="right")
        for entry in valuation.coin_balances:
            price = valuation.coin_prices.get(entry.coin)
            table.add_row(
                entry.coin,
                _amount(entry.wallet_balance),
                _money(entry.price_usd),
                price.source.value if price else "-",
                _money(entry.usd_value),
            )
        console.print(table)
    else:
        console.print("\n[yellow]No funding account balances found[/yellow]")

    if valuation.earn_products:
        table = Table(title="Earn Products", show_header=True, header_style="bold magenta")
        table.add_column("Coin", style="cyan")
        table.add_column("Amount", style="white", justify="right")
        table.add_column("APY", style="yellow")
        table.add_column("Type", style="blue")
        table.add_column("USD Value", style="bold green", justify="right")
        for product in valuation.earn_products:
            table.add_row(product.coin, _amount(product.amount), product.apy or "-", product.type, _money(product.value_usd))
        console.print(table)

    summary = Table(show_header=False, box=None)
    summary.add_column("Label", style="bold")
    summary.add_column("Value", style="bold green")
    summary.add_row("Funding Account:", _money(valuation.crypto_value_usd))
    summary.add_row("Earn Products:", _money(valuation.earn_value_usd))
    summary.add_row("Total Value:", _money(valuation.total_value_usd))
    summary.add_row("Total Value (GBP):", _money(valuation.total_value_gbp, "£"))
    console.print(summary)


def print_funding_table(console: Console, balance: FundingAccountBalance) -> None:
    """Print the funding account balance as a rich table."""
    if not balance.success:
        console.print(f"[bold red]Error:[/bold red] {balance.error}")
        return
    if not balance.assets:
        console.print("\n[yellow]No funding account balances found[/yellow]")
        return

    table = Table(title="Funding Account", show_header=True, header_style="bold magenta")
    table.add_column("Coin", style="cyan")
    table.add_column("Balance", style="white", justify="right")
    table.add_column("Transferable", style="white", justify="right")
    table.add_column("USD Value", style="bold green", justify="right")
    for asset in balance.assets:
        table.add_row(asset.coin, _amount(asset.wallet_balance), _amount(asset.transfer_balance), _money(asset.usd_value))
    console.print(table)
    console.print(f"[bold]Total Value:[/bold] [bold green]{_money(balance.total_usd_value)}[/bold green]")


def print_brokerage_table(console: Console, data: AccountValuation | AllAccountsValuation) -> None:
    """Print brokerage valuations as rich tables."""
    if not data.success:
        console.print(f"[bold red]Error:[/bold red] {data.error}")
        return

    accounts = data.accounts if isinstance(data, AllAccountsValuation) else [data]
    for account in accounts:
        table = Table(title=f"{account.account_name} (£{account.total_value_gbp:,.2f})", show_header=True, header_style="bold magenta")
        table.add_column("Symbol", style="cyan")
        table.add_column("Quantity", style="white", justify="right")
        table.add_column("Price", style="yellow", justify="right")
        table.add_column("Value", style="bold green", justify="right")
        table.add_column("P&L", justify="right")
        table.add_column("P&L %", justify="right")
        for position in account.positions:
            colour = "green" if position.pnl_gbp >= 0 else "red"
            table.add_row(
                position.symbol,
                _amount(position.quantity),
                _money(position.current_price, "£"),
                _money(position.value_gbp, "£"),
                f"[{colour}]{_money(position.pnl_gbp, '£')}[/{colour}]",
                f"[{colour}]{position.pnl_percentage:.2f}%[/{colour}]",
            )
        console.print(table)
        if not account.cash_available:
            console.print("[yellow]Cash summary unavailable; totals reported as zero[/yellow]")
        if not account.positions_available:
            console.print("[yellow]Positions unavailable; totals from cash summary only[/yellow]")
        if account.diverged:
            console.print(
                f"[yellow]Cash total differs from free cash + positions ({_money(account.computed_total_gbp, '£')}) "
                f"by {_money(account.divergence_gbp, '£')}[/yellow]"
            )

    if isinstance(data, AllAccountsValuation):
        console.print(f"[bold]Total Value:[/bold] [bold green]{_money(data.total_value_gbp, '£')}[/bold green]")
