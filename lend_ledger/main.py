"""Command-line interface for the lending ledger.

This module uses the ``click`` library to implement a multi-command interface
over the computation core. Users can preview an installment schedule, quote
what is owed on a contract, preview how a payment would be allocated, inspect
a payment timeline with running balances and aggregate dashboard totals.
Contracts and cash entries are read from JSON files in the backend's record
format; results can be printed or exported to JSON.
"""

from __future__ import annotations

import json
import logging
from dataclasses import replace
from datetime import date
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import click

from .config import LedgerConfig
from .data_models import DateRange, PaymentKind, Periodicity
from .engine import allocate, contract_state, generate_schedule, pay_installments, quote
from .exceptions import LendLedgerError
from .formatter import (
    print_allocation,
    print_cash_flow,
    print_history,
    print_quote,
    print_schedule,
    print_summary,
)
from .history import history_totals, payment_timeline
from .logging_config import setup_logging
from .records import (
    allocation_to_dict,
    balance_row_to_dict,
    cash_entry_from_dict,
    cash_flow_to_dict,
    contract_from_dict,
    contracts_from_list,
    installment_to_dict,
    summary_to_dict,
)
from .summary import cash_flow_summary, summarize
from .utils import parse_currency, parse_date

logger = logging.getLogger(__name__)


def load_json(path: str) -> Any:
    """Read a JSON document, turning I/O and syntax problems into CLI errors."""
    try:
        with Path(path).open("r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as exc:
        logger.error("Could not read %s: %s", path, exc)
        raise click.ClickException(f"Could not read {path}: {exc}")


def load_contract(path: str):
    try:
        return contract_from_dict(load_json(path))
    except (ValueError, KeyError, TypeError) as exc:
        raise click.ClickException(f"Invalid contract record in {path}: {exc}")


def parse_amount(value: str):
    """Parse a money option such as ``150``, ``1.234,56`` or ``R$ 100,00``."""
    try:
        return parse_currency(value)
    except ValueError as exc:
        raise click.BadParameter(str(exc))


def parse_date_option(value: Optional[str], default: date) -> date:
    if not value:
        return default
    try:
        return parse_date(value)
    except ValueError as exc:
        raise click.BadParameter(str(exc))


def export_to_json(path: Path, data: Dict[str, Any]) -> None:
    with path.open("w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)


@click.group()
@click.option("--log-level", default=None, help="Log level (DEBUG, INFO, WARNING, ERROR)")
@click.option("--currency", default=None, help="Currency used for display (BRL, USD, EUR, GBP)")
@click.pass_context
def cli(ctx: click.Context, log_level: Optional[str], currency: Optional[str]) -> None:
    """Loan accounting for a small lending business."""
    config = LedgerConfig.from_env()
    if log_level:
        config.log_level = log_level
    if currency:
        try:
            config = replace(config, currency=currency)
        except ValueError as exc:
            raise click.BadParameter(str(exc), param_hint="--currency")
    setup_logging(config.log_level, config.log_format)
    ctx.obj = config


@cli.command()
@click.option("--principal", "-p", "principal", required=True, help="Amount lent")
@click.option(
    "--periodicity",
    type=click.Choice([p.value for p in Periodicity], case_sensitive=False),
    default=Periodicity.DAILY.value,
    help="Repayment periodicity",
)
@click.option("--start-date", "-s", "start_date", help="Contract start date (YYYY-MM-DD), default today")
@click.option("--output", "output", type=str, help="Output file path (.json)")
@click.pass_obj
def schedule(config: LedgerConfig, principal: str, periodicity: str, start_date: Optional[str], output: Optional[str]) -> None:
    """Preview the installment schedule of a new contract."""
    start = parse_date_option(start_date, date.today())
    try:
        installments = generate_schedule(parse_amount(principal), Periodicity(periodicity.upper()), start)
    except LendLedgerError as exc:
        raise click.BadParameter(str(exc), param_hint="--principal")
    if output:
        path = Path(output)
        if path.suffix.lower() != ".json":
            raise click.BadParameter("Schedule export must use .json extension")
        export_to_json(path, {"installments": [installment_to_dict(i) for i in installments]})
        click.echo(f"Schedule exported to {path}")
    else:
        print_schedule(installments, config.currency)


@cli.command(name="quote")
@click.argument("contract_file", type=click.Path(exists=True, dir_okay=False))
@click.pass_obj
def quote_command(config: LedgerConfig, contract_file: str) -> None:
    """Show cycle interest, fees and the payoff amount of a contract."""
    contract = load_contract(contract_file)
    print_quote(contract, quote(contract), config.currency)


@cli.command(name="allocate")
@click.argument("contract_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--amount", "-a", "amount", required=True, help="Amount to be paid")
@click.option("--output", "output", type=str, help="Output file path (.json)")
@click.pass_obj
def allocate_command(config: LedgerConfig, contract_file: str, amount: str, output: Optional[str]) -> None:
    """Preview how a payment would be split across fee, interest and principal."""
    contract = load_contract(contract_file)
    try:
        allocation = allocate(parse_amount(amount), contract_state(contract))
    except LendLedgerError as exc:
        raise click.BadParameter(str(exc), param_hint="--amount")
    logger.info("Allocated %s against contract %s", allocation.amount_paid, contract.id)
    if output:
        export_to_json(Path(output), allocation_to_dict(allocation))
        click.echo(f"Allocation exported to {output}")
    else:
        print_allocation(allocation, config.currency)


@cli.command(name="pay-installments")
@click.argument("contract_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--installment", "-i", "installment", type=int, multiple=True, required=True, help="Installment number (repeatable)")
@click.pass_obj
def pay_installments_command(config: LedgerConfig, contract_file: str, installment: Tuple[int, ...]) -> None:
    """Preview paying a selection of pending installments."""
    contract = load_contract(contract_file)
    try:
        result = pay_installments(contract, installment)
    except LendLedgerError as exc:
        raise click.BadParameter(str(exc), param_hint="--installment")
    click.echo(f"Installments paid  : {', '.join(str(n) for n in result.paid_sequence_numbers)}")
    print_allocation(result.allocation, config.currency)


@cli.command()
@click.argument("contract_file", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--kind",
    type=click.Choice([k.value for k in PaymentKind], case_sensitive=False),
    help="Only show payments of this kind",
)
@click.option("--search", help="Only show payments whose note contains this text")
@click.option("--output", "output", type=str, help="Output file path (.json)")
@click.pass_obj
def history(config: LedgerConfig, contract_file: str, kind: Optional[str], search: Optional[str], output: Optional[str]) -> None:
    """Show the payment timeline with the balance before and after each payment."""
    contract = load_contract(contract_file)
    rows = payment_timeline(
        contract.open_principal,
        contract.payments,
        PaymentKind(kind.upper()) if kind else None,
        search,
    )
    totals = history_totals(r.payment for r in rows)
    if output:
        export_to_json(
            Path(output),
            {
                "totals": {k: str(v) for k, v in totals.items()},
                "payments": [balance_row_to_dict(r) for r in rows],
            },
        )
        click.echo(f"History exported to {output}")
    else:
        print_history(rows, totals, config.currency)


@cli.command()
@click.argument("contracts_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--start", "start", required=True, help="Range start (YYYY-MM-DD)")
@click.option("--end", "end", required=True, help="Range end (YYYY-MM-DD)")
@click.option("--entries", "entries_file", type=click.Path(exists=True, dir_okay=False), help="Manual cash entries (JSON list)")
@click.option("--output", "output", type=str, help="Output file path (.json)")
@click.pass_obj
def summary(
    config: LedgerConfig,
    contracts_file: str,
    start: str,
    end: str,
    entries_file: Optional[str],
    output: Optional[str],
) -> None:
    """Aggregate dashboard totals over a date range."""
    try:
        date_range = DateRange(parse_date(start), parse_date(end))
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint="--start/--end")
    data = load_json(contracts_file)
    try:
        items: List[Dict[str, Any]] = data["contracts"] if isinstance(data, dict) else data
        contracts = contracts_from_list(items)
        entries = [cash_entry_from_dict(e) for e in load_json(entries_file)] if entries_file else []
    except (ValueError, KeyError, TypeError) as exc:
        raise click.ClickException(f"Invalid record: {exc}")

    payments = [p for c in contracts for p in c.payments]
    dashboard = summarize(contracts, payments, date_range)
    cash_flow = cash_flow_summary(entries, payments, date_range, contracts) if entries_file else None
    logger.info("Summarized %d contracts and %d payments", len(contracts), len(payments))

    if output:
        path = Path(output)
        if path.suffix.lower() != ".json":
            raise click.BadParameter("Summary export must use .json extension")
        payload: Dict[str, Any] = {"summary": summary_to_dict(dashboard)}
        if cash_flow is not None:
            payload["cash_flow"] = cash_flow_to_dict(cash_flow)
        export_to_json(path, payload)
        click.echo(f"Summary exported to {path}")
    else:
        print_summary(dashboard, config.currency)
        if cash_flow is not None:
            print_cash_flow(cash_flow, config.currency)


if __name__ == "__main__":
    cli()
