"""Command line interface for the matching engine.

Runs the engine over a JSON snapshot exported from the bookkeeping store and
prints the results as rich tables, or exports them as JSON.
"""

import json
from datetime import date
from pathlib import Path
from typing import Any, NoReturn, Optional

import typer
from rich.console import Console
from rich.table import Table

from .. import __version__
from ..config import MatchingConfig, get_matching_config
from ..domain.enums import AnomalySeverity, MatchClassification
from ..domain.value_objects import (
    AnomalyDetectionResult,
    BankReconciliationResult,
    InvoiceMatchingResult,
)
from ..engine import detect_anomalies, match_invoices, reconcile_bank, run_matching
from ..exceptions import RapprochementError
from ..metrics import record_cli_command, start_metrics_server
from ..utils.coercion import parse_date
from ..utils.logging import configure_logging, get_logger, set_correlation_id
from .snapshot import Snapshot, load_config_file, load_snapshot, write_json

app = typer.Typer(
    name="rapprochement",
    help="🔗 Bank reconciliation, invoice matching & anomaly detection",
    rich_markup_mode="rich",
    no_args_is_help=True,
)
console = Console()
logger = get_logger(__name__)

OUTPUT_FORMATS = ("table", "json")

_SEVERITY_STYLE = {
    AnomalySeverity.CRITICAL: "bold red",
    AnomalySeverity.WARNING: "yellow",
    AnomalySeverity.INFO: "cyan",
}


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        console.print(f"[bold blue]rapprochement[/bold blue] version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show the version and exit.",
    ),
    log_level: str = typer.Option("WARNING", "--log-level", help="DEBUG, INFO, WARNING, ERROR"),
    json_logs: bool = typer.Option(False, "--json-logs", help="Emit logs as JSON on stderr"),
) -> None:
    """Reconciliation & matching engine."""
    set_correlation_id()
    configure_logging(log_level=log_level, json_logs=json_logs, dev_mode=not json_logs)
    start_metrics_server()


# ============================================================================
# Shared helpers
# ============================================================================


def _fail(command: str, message: str) -> NoReturn:
    console.print(f"[red]✗ {message}[/]")
    record_cli_command(command, "failure")
    raise typer.Exit(1)


def _prepare(
    command: str,
    output_format: str,
    snapshot_path: Path,
    config_path: Optional[Path],
    as_of: Optional[str] = None,
) -> tuple[Snapshot, MatchingConfig, Optional[date]]:
    """Validate options and load inputs; exits with code 1 on any problem."""
    if output_format not in OUTPUT_FORMATS:
        _fail(command, f"Unknown format '{output_format}' (expected: {', '.join(OUTPUT_FORMATS)})")

    reference_date = None
    if as_of is not None:
        reference_date = parse_date(as_of)
        if reference_date is None:
            _fail(command, f"Invalid --as-of date: {as_of}")

    try:
        config = load_config_file(config_path) if config_path else get_matching_config()
        snapshot = load_snapshot(snapshot_path)
    except RapprochementError as e:
        logger.error("cli_input_error", command=command, error=str(e), context=e.context)
        _fail(command, e.message)

    return snapshot, config, reference_date


def _emit(command: str, payload: dict[str, Any], output: Optional[Path], as_json: bool) -> None:
    if output is not None:
        try:
            write_json(output, payload)
        except RapprochementError as e:
            _fail(command, e.message)
        if not as_json:
            console.print(f"[green]✓ Results written to {output}[/]")
    if as_json:
        typer.echo(json.dumps(payload, indent=2, ensure_ascii=False, default=str))
    record_cli_command(command, "success")


def _pct(value: float) -> str:
    color = "green" if value >= 0.8 else "yellow" if value >= 0.6 else "red"
    return f"[{color}]{value:.0%}[/]"


def _amount(value: Any) -> str:
    return f"€{value:,.2f}" if value is not None else "-"


# ============================================================================
# Renderers
# ============================================================================


def _print_reconciliation(result: BankReconciliationResult) -> None:
    table = Table(title="🏦 Bank Reconciliation", show_header=True)
    table.add_column("Manual", style="cyan")
    table.add_column("Bank", style="cyan")
    table.add_column("Date", width=10)
    table.add_column("Amount", justify="right")
    table.add_column("Confidence", justify="right")
    table.add_column("Type", width=10)

    for match in result.auto_matches + result.suggested_matches:
        manual = match.manual_transaction
        table.add_row(
            manual.id,
            match.bank_transaction.id,
            manual.date.isoformat() if manual.date else "-",
            _amount(manual.amount),
            _pct(match.confidence),
            "✅ auto" if match.classification == MatchClassification.AUTO else "🔍 review",
        )
    console.print(table)

    stats = result.stats()
    summary = Table(title="📊 Summary", show_header=True)
    summary.add_column("Metric", style="cyan")
    summary.add_column("Count", justify="right", style="bold")
    for key, value in stats.items():
        label = key.replace("_", " ").capitalize()
        summary.add_row(label, f"{value}%" if key == "auto_match_rate" else str(value))
    console.print(summary)


def _print_invoice_matches(result: InvoiceMatchingResult) -> None:
    table = Table(title="🧾 Invoice Matching", show_header=True)
    table.add_column("Invoice", style="cyan")
    table.add_column("Supplier")
    table.add_column("Transaction", style="cyan")
    table.add_column("Amount", justify="right")
    table.add_column("Confidence", justify="right")
    table.add_column("Type", width=10)
    table.add_column("Reason", style="dim")

    for match in result.auto_matched + result.suggestions:
        table.add_row(
            match.invoice.id,
            match.invoice.supplier_name or "-",
            match.transaction.id,
            _amount(match.invoice.total_amount),
            _pct(match.confidence),
            "✅ auto" if match.classification == MatchClassification.AUTO else "🔍 review",
            match.match_reason,
        )
    console.print(table)
    console.print(
        f"Unmatched invoices: [yellow]{len(result.unmatched_invoices)}[/]  "
        f"Unmatched transactions: [yellow]{len(result.unmatched_transactions)}[/]"
    )


def _print_anomalies(result: AnomalyDetectionResult) -> None:
    if not result.anomalies:
        console.print("[green]✓ No anomalies detected[/]")
        return

    table = Table(title="⚠️  Anomalies", show_header=True)
    table.add_column("Severity", width=9)
    table.add_column("Type")
    table.add_column("Transaction", style="cyan")
    table.add_column("Invoice", style="cyan")
    table.add_column("Description")

    for anomaly in result.anomalies:
        style = _SEVERITY_STYLE[anomaly.severity]
        table.add_row(
            f"[{style}]{anomaly.severity.value}[/]",
            anomaly.type.value,
            anomaly.transaction_id or "-",
            anomaly.invoice_id or "-",
            anomaly.description,
        )
    console.print(table)

    stats = result.stats
    console.print(
        f"Total: [bold]{stats['total']}[/]  "
        f"[bold red]critical {stats['critical']}[/]  "
        f"[yellow]warning {stats['warning']}[/]  "
        f"[cyan]info {stats['info']}[/]"
    )


# ============================================================================
# Commands
# ============================================================================


@app.command()
def reconcile(
    snapshot_path: Path = typer.Argument(..., help="JSON snapshot file"),
    output_format: str = typer.Option(
        "table", "--format", "-f", help="Output format: table, json"
    ),
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", help="Write JSON results to this file"
    ),
    config_path: Optional[Path] = typer.Option(
        None, "--config", "-c", help="JSON file of MatchingConfig overrides"
    ),
):
    """🏦 Reconcile manual transactions with bank imports.

    Examples:
        rapprochement reconcile snapshot.json
        rapprochement reconcile snapshot.json --format json -o results.json
    """
    snapshot, config, _ = _prepare("reconcile", output_format, snapshot_path, config_path)
    result = reconcile_bank(snapshot.manual_transactions, snapshot.bank_transactions, config)

    if output_format == "table":
        _print_reconciliation(result)
    _emit("reconcile", result.to_dict(), output, output_format == "json")


@app.command()
def match(
    snapshot_path: Path = typer.Argument(..., help="JSON snapshot file"),
    output_format: str = typer.Option(
        "table", "--format", "-f", help="Output format: table, json"
    ),
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", help="Write JSON results to this file"
    ),
    config_path: Optional[Path] = typer.Option(
        None, "--config", "-c", help="JSON file of MatchingConfig overrides"
    ),
):
    """🧾 Match outstanding supplier invoices with payments.

    Examples:
        rapprochement match snapshot.json
        rapprochement match snapshot.json --config strict.json
    """
    snapshot, config, _ = _prepare("match", output_format, snapshot_path, config_path)
    result = match_invoices(
        snapshot.invoices, snapshot.transactions, config, snapshot.supplier_histories
    )

    if output_format == "table":
        _print_invoice_matches(result)
    _emit("match", result.to_dict(), output, output_format == "json")


@app.command()
def anomalies(
    snapshot_path: Path = typer.Argument(..., help="JSON snapshot file"),
    output_format: str = typer.Option(
        "table", "--format", "-f", help="Output format: table, json"
    ),
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", help="Write JSON results to this file"
    ),
    config_path: Optional[Path] = typer.Option(
        None, "--config", "-c", help="JSON file of MatchingConfig overrides"
    ),
    as_of: Optional[str] = typer.Option(None, "--as-of", help="Reference date (YYYY-MM-DD)"),
):
    """⚠️  Detect anomalies.

    Uses the snapshot's "matched_pairs" when present, otherwise matches the
    invoices first.

    Examples:
        rapprochement anomalies snapshot.json --as-of 2026-04-30
    """
    snapshot, config, reference_date = _prepare(
        "anomalies", output_format, snapshot_path, config_path, as_of
    )

    pairs = snapshot.matched_pairs
    if pairs is None:
        matching = match_invoices(
            snapshot.invoices, snapshot.transactions, config, snapshot.supplier_histories
        )
        pairs = tuple(matching.matched_pairs())

    result = detect_anomalies(
        snapshot.transactions, snapshot.invoices, pairs, config, as_of=reference_date
    )

    if output_format == "table":
        _print_anomalies(result)
    _emit("anomalies", result.to_dict(), output, output_format == "json")


@app.command()
def run(
    snapshot_path: Path = typer.Argument(..., help="JSON snapshot file"),
    output_format: str = typer.Option(
        "table", "--format", "-f", help="Output format: table, json"
    ),
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", help="Write JSON results to this file"
    ),
    config_path: Optional[Path] = typer.Option(
        None, "--config", "-c", help="JSON file of MatchingConfig overrides"
    ),
    as_of: Optional[str] = typer.Option(None, "--as-of", help="Reference date (YYYY-MM-DD)"),
):
    """🔄 Full run: match invoices, detect anomalies, update supplier histories.

    Examples:
        rapprochement run snapshot.json -o run.json
    """
    snapshot, config, reference_date = _prepare(
        "run", output_format, snapshot_path, config_path, as_of
    )
    result = run_matching(
        snapshot.transactions,
        snapshot.invoices,
        snapshot.supplier_histories,
        config,
        as_of=reference_date,
    )

    if output_format == "table":
        _print_invoice_matches(result.matching)
        _print_anomalies(result.anomalies)
        console.print(f"Supplier histories: [bold]{len(result.histories)}[/]")
    _emit("run", result.to_dict(), output, output_format == "json")
