"""Command line interface for the ledger."""

from __future__ import annotations

import argparse
import logging
import shutil
import sqlite3
import sys
from datetime import UTC, datetime
from pathlib import Path
from typing import Callable, List, Optional

import uvicorn

from nexus_ledger.config import AppConfig, load_config
from nexus_ledger.ledger.exceptions import (
    InsufficientBalanceError,
    LedgerError,
    LedgerSchemaError,
)
from nexus_ledger.ledger.export import write_csv
from nexus_ledger.ledger.models import LedgerEntry, ScenarioResult, parse_timestamp
from nexus_ledger.ledger.service import LedgerService
from nexus_ledger.ledger.store import (
    CURRENT_SCHEMA_VERSION,
    SchemaStatus,
    SQLiteLedgerStore,
    dump_json,
    ensure_ledger_schema,
    load_json,
)
from nexus_ledger.logging_config import configure_logging, structured_log_extra
from nexus_ledger.ui.api import create_api
from nexus_ledger.ui.context import build_app_context

logger = logging.getLogger(__name__)


def _add_db_path_argument(subparser: argparse.ArgumentParser) -> None:
    """Attach the standard --db-path and --config arguments to a subparser."""

    subparser.add_argument(
        "--db-path",
        default=None,
        help="Path to the SQLite ledger (defaults to ledger.db_path from config)",
    )
    subparser.add_argument(
        "--config",
        default=None,
        help="Path to config.yaml (defaults to the per-user config directory)",
    )


def _add_view_argument(subparser: argparse.ArgumentParser) -> None:
    subparser.add_argument(
        "--view",
        choices=["main", "trading", "all"],
        default=None,
        help="Ledger view to use (defaults to the persisted active view)",
    )


def _db_path_exists(db_path: str) -> bool:
    return Path(db_path).expanduser().resolve().exists()


def _print_error(message: str) -> int:
    """Print an error message and return a non-zero exit code."""

    print(message)
    return 1


def _load_app_config(args: argparse.Namespace) -> AppConfig:
    config = load_config(Path(args.config) if args.config else None)
    if args.db_path:
        config.ledger.db_path = args.db_path
    return config


def _open_service(args: argparse.Namespace) -> LedgerService:
    config = _load_app_config(args)
    store = SQLiteLedgerStore(db_path=config.ledger.db_path)
    return LedgerService(store, config.ledger)


def _format_entry(entry: LedgerEntry) -> str:
    tx = entry.transaction
    line = (
        f"{tx.id}  {tx.date:%Y-%m-%d %H:%M}  {tx.portfolio_id.value:<7}  {tx.kind.value:<10}  "
        f"qty={tx.quantity:.4f}  price={tx.unit_price:.4f}  amount={tx.amount:.2f}"
    )
    if entry.realized_profit is not None:
        line += f"  profit={entry.realized_profit:.2f} ({entry.realized_profit_pct:.2f}%)"
    if tx.note:
        line += f"  # {tx.note}"
    return line


def _format_scenario(result: ScenarioResult) -> str:
    label = result.label or "-"
    return (
        f"{label:<12} price={result.candidate_price:.4f}  proceeds={result.proceeds:.2f}  "
        f"profit={result.profit:.2f} ({result.profit_pct:.2f}%)"
    )


def _add_command(args: argparse.Namespace) -> int:
    """Record a purchase or sale."""

    try:
        service = _open_service(args)
        date = parse_timestamp(args.date) if args.date else datetime.now(UTC)
        if args.amount is not None:
            stored = service.record_trade(
                args.kind, args.amount, args.price, date, portfolio=args.portfolio, note=args.note
            )
        else:
            stored = service.record_trade_quantity(
                args.kind, args.quantity, args.price, date, portfolio=args.portfolio, note=args.note
            )
    except InsufficientBalanceError as exc:
        return _print_error(f"Rejected: {exc}")
    except LedgerError as exc:
        return _print_error(f"Failed to record transaction: {exc}")

    print(f"Recorded {stored.kind.value} {stored.id} ({stored.quantity:.4f} @ {stored.unit_price:.4f})")
    return 0


def _remove_command(args: argparse.Namespace) -> int:
    try:
        removed = _open_service(args).remove_transaction(args.transaction_id)
    except LedgerError as exc:
        return _print_error(f"Failed to remove transaction: {exc}")

    if not removed:
        return _print_error(f"Transaction not found: {args.transaction_id}")
    print(f"Removed {args.transaction_id}")
    return 0


def _history_command(args: argparse.Namespace) -> int:
    try:
        entries = _open_service(args).history(args.view)
    except LedgerError as exc:
        return _print_error(f"Failed to read history: {exc}")

    if args.limit is not None:
        entries = entries[: args.limit]
    if not entries:
        print("No transactions recorded.")
        return 0
    for entry in entries:
        print(_format_entry(entry))
    return 0


def _stats_command(args: argparse.Namespace) -> int:
    try:
        service = _open_service(args)
        stats = service.stats(args.view)
    except LedgerError as exc:
        return _print_error(f"Failed to compute stats: {exc}")

    currency = service.config.local_currency
    asset = service.config.asset_symbol
    print(f"View: {stats.view.value}")
    print(f"Balance: {stats.current_balance:.4f} {asset}")
    print(f"Average cost: {stats.average_cost:.4f} {currency}")
    print(f"Invested: {stats.total_invested_local:.2f} {currency}")
    print(f"Realized profit: {stats.total_realized_profit:.2f} {currency}")
    print(f"Reference price: {stats.reference_price:.4f} {currency}")
    print(f"Estimated value: {stats.estimated_value:.2f} {currency}")
    print(f"Unrealized profit: {stats.unrealized_profit:.2f} {currency}")
    return 0


def _monthly_command(args: argparse.Namespace) -> int:
    try:
        spend = _open_service(args).monthly_spend()
    except LedgerError as exc:
        return _print_error(f"Failed to compute monthly spend: {exc}")

    print(f"Month: {spend.year:04d}-{spend.month:02d}")
    print(f"Spent: {spend.spent:.2f} of {spend.ceiling:.2f} ({spend.consumed_pct:.1f}%)")
    print(f"Remaining: {spend.remaining:.2f}")
    print(f"Status: {spend.status.value}")
    print(f"Purchases: {len(spend.amounts)} (largest {spend.max_amount:.2f})")
    return 0


def _scenarios_command(args: argparse.Namespace) -> int:
    try:
        results = _open_service(args).scenarios(args.view, target_price=args.target_price)
    except LedgerError as exc:
        return _print_error(f"Failed to compute scenarios: {exc}")

    for result in results:
        print(_format_scenario(result))
    return 0


def _simulate_command(args: argparse.Namespace) -> int:
    try:
        result = _open_service(args).simulate(args.quantity, args.price, args.view)
    except LedgerError as exc:
        return _print_error(f"Failed to simulate sale: {exc}")

    print(_format_scenario(result))
    return 0


def _adjust_command(args: argparse.Namespace) -> int:
    try:
        adjustment = _open_service(args).reconcile_balance(
            args.true_balance, portfolio=args.portfolio, note=args.note
        )
    except LedgerError as exc:
        return _print_error(f"Failed to adjust balance: {exc}")

    if adjustment is None:
        print("Balance already matches; no adjustment recorded.")
        return 0
    print(f"Recorded adjustment {adjustment.id} ({adjustment.quantity:+.4f})")
    return 0


def _view_command(args: argparse.Namespace) -> int:
    try:
        service = _open_service(args)
        view = service.set_active_view(args.view) if args.view else service.get_active_view()
    except LedgerError as exc:
        return _print_error(f"Failed to update view: {exc}")

    print(f"Active view: {view.value}")
    return 0


def _export_command(args: argparse.Namespace) -> int:
    """Write the annotated ledger as CSV to --output or stdout."""

    try:
        rows = _open_service(args).export_rows(args.view)
    except LedgerError as exc:
        return _print_error(f"Failed to export ledger: {exc}")

    if args.output:
        with open(args.output, "w", newline="", encoding="utf-8") as stream:
            count = write_csv(rows, stream)
        print(f"Exported {count} rows to {args.output}")
    else:
        write_csv(rows, sys.stdout)
    return 0


def _import_json_command(args: argparse.Namespace) -> int:
    """Replace the ledger with the contents of a JSON snapshot."""

    source = Path(args.path).expanduser()
    if not source.exists():
        return _print_error(f"Snapshot not found: {source}")

    try:
        with open(source, "r", encoding="utf-8") as stream:
            transactions, view = load_json(stream)
        service = _open_service(args)
        if not transactions and service.transactions():
            return _print_error(
                f"Snapshot {source} holds no valid transactions; ledger left unchanged."
            )
        service.replace_all(transactions, view)
    except (LedgerError, sqlite3.Error) as exc:
        return _print_error(f"Failed to import snapshot: {exc}")

    print(f"Imported {len(transactions)} transactions (active view: {view.value})")
    return 0


def _dump_json_command(args: argparse.Namespace) -> int:
    try:
        service = _open_service(args)
        transactions = service.transactions()
        view = service.get_active_view()
    except LedgerError as exc:
        return _print_error(f"Failed to dump ledger: {exc}")

    if args.output:
        with open(args.output, "w", encoding="utf-8") as stream:
            dump_json(transactions, view, stream)
        print(f"Wrote {len(transactions)} transactions to {args.output}")
    else:
        dump_json(transactions, view, sys.stdout)
        print()
    return 0


def print_schema_version(db_path: str) -> SchemaStatus:
    """Ensure metadata exists and return the stored ledger schema version."""

    with sqlite3.connect(db_path) as conn:
        status = ensure_ledger_schema(conn, CURRENT_SCHEMA_VERSION)
        conn.commit()

    return status


def _schema_version_command(args: argparse.Namespace) -> int:
    """Display the ledger schema version stored at --db-path."""

    db_path = _load_app_config(args).ledger.db_path
    resolved_path = Path(db_path).expanduser().resolve()

    try:
        status = print_schema_version(resolved_path.as_posix())
    except LedgerSchemaError as exc:
        return _print_error(
            "Failed to read schema version: "
            f"stored value {exc.found} is incompatible with expected {exc.expected}."
        )
    except sqlite3.Error as exc:
        return _print_error(f"Failed to read schema version: {exc}")

    if status.initialized:
        print(f"Schema version was not set; initialized to {status.version}.")
        return 0

    print(f"Schema version: {status.version}")
    return 0


def _db_backup_command(args: argparse.Namespace) -> int:
    """Create a timestamped backup of the ledger database."""

    db_path = Path(_load_app_config(args).ledger.db_path).expanduser().resolve()

    if not _db_path_exists(db_path.as_posix()):
        return _print_error(f"DB file not found: {db_path}")

    timestamp = datetime.now().strftime("%Y%m%d%H%M")
    backup_path = db_path.with_name(f"{db_path.name}.{timestamp}.bak")

    try:
        shutil.copy2(db_path, backup_path)
    except OSError as exc:
        return _print_error(f"Failed to create backup: {exc}")

    print(f"Backup created at {backup_path}")

    if args.keep is None or args.keep <= 0:
        return 0

    prefix = f"{db_path.name}."
    backups = []
    for candidate in db_path.parent.glob(f"{db_path.name}.*.bak"):
        timestamp_part = candidate.name[len(prefix) : -4]
        if len(timestamp_part) == 12 and timestamp_part.isdigit():
            backups.append((timestamp_part, candidate))

    backups.sort(key=lambda item: item[0], reverse=True)
    removals = backups[args.keep :]
    if not removals:
        print("No old backups removed.")
        return 0

    print("Removed old backups:")
    for _, backup in removals:
        try:
            backup.unlink()
        except OSError as exc:
            return _print_error(f"Failed to remove old backup {backup}: {exc}")
        print(f"- {backup}")
    return 0


def _serve_command(args: argparse.Namespace) -> int:
    """Serve the HTTP API with uvicorn until interrupted."""

    configure_logging(level=getattr(logging, args.log_level))
    try:
        config = _load_app_config(args)
        if args.host:
            config.ui.host = args.host
        if args.port:
            config.ui.port = args.port
        context = build_app_context(config)
    except LedgerSchemaError as exc:
        return _print_error(
            f"Ledger DB schema version {exc.found} is incompatible with expected {exc.expected}."
        )

    app = create_api(context)
    logger.info(
        "Starting ledger API",
        extra=structured_log_extra(
            event="api_starting", host=config.ui.host, port=config.ui.port
        ),
    )
    server = uvicorn.Server(
        uvicorn.Config(app, host=config.ui.host, port=config.ui.port, log_level="info", log_config=None)
    )
    server.run()
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="nexus-ledger", description="Weighted-average cost ledger utilities"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    add_parser = subparsers.add_parser("add", help="Record a purchase or sale")
    _add_db_path_argument(add_parser)
    add_parser.add_argument("kind", choices=["buy", "sell"], type=str.lower)
    size = add_parser.add_mutually_exclusive_group(required=True)
    size.add_argument("--amount", type=float, help="Local-currency amount paid or received")
    size.add_argument("--quantity", type=float, help="Asset units bought or sold")
    add_parser.add_argument("--price", type=float, required=True, help="Unit price")
    add_parser.add_argument("--date", help="ISO-8601 timestamp (defaults to now, UTC)")
    add_parser.add_argument("--portfolio", choices=["main", "trading"], default=None)
    add_parser.add_argument("--note", default=None)
    add_parser.set_defaults(func=_add_command)

    remove_parser = subparsers.add_parser("remove", help="Delete a transaction by id")
    _add_db_path_argument(remove_parser)
    remove_parser.add_argument("transaction_id")
    remove_parser.set_defaults(func=_remove_command)

    history_parser = subparsers.add_parser("history", help="List annotated transactions")
    _add_db_path_argument(history_parser)
    _add_view_argument(history_parser)
    history_parser.add_argument("--limit", type=int, default=None)
    history_parser.set_defaults(func=_history_command)

    stats_parser = subparsers.add_parser("stats", help="Show balance, cost and profit")
    _add_db_path_argument(stats_parser)
    _add_view_argument(stats_parser)
    stats_parser.set_defaults(func=_stats_command)

    monthly_parser = subparsers.add_parser(
        "monthly", help="Show purchases against the monthly ceiling"
    )
    _add_db_path_argument(monthly_parser)
    monthly_parser.set_defaults(func=_monthly_command)

    scenarios_parser = subparsers.add_parser(
        "scenarios", help="Project profit at preset markups over average cost"
    )
    _add_db_path_argument(scenarios_parser)
    _add_view_argument(scenarios_parser)
    scenarios_parser.add_argument("--target-price", type=float, default=None)
    scenarios_parser.set_defaults(func=_scenarios_command)

    simulate_parser = subparsers.add_parser("simulate", help="Project a hypothetical sale")
    _add_db_path_argument(simulate_parser)
    _add_view_argument(simulate_parser)
    simulate_parser.add_argument("--quantity", type=float, required=True)
    simulate_parser.add_argument("--price", type=float, required=True)
    simulate_parser.set_defaults(func=_simulate_command)

    adjust_parser = subparsers.add_parser(
        "adjust", help="Reconcile a portfolio balance with an observed figure"
    )
    _add_db_path_argument(adjust_parser)
    adjust_parser.add_argument("true_balance", type=float)
    adjust_parser.add_argument("--portfolio", choices=["main", "trading"], default=None)
    adjust_parser.add_argument("--note", default=None)
    adjust_parser.set_defaults(func=_adjust_command)

    view_parser = subparsers.add_parser("view", help="Show or change the active view")
    _add_db_path_argument(view_parser)
    view_parser.add_argument("view", nargs="?", choices=["main", "trading", "all"])
    view_parser.set_defaults(func=_view_command)

    export_parser = subparsers.add_parser("export", help="Export the ledger as CSV")
    _add_db_path_argument(export_parser)
    _add_view_argument(export_parser)
    export_parser.add_argument("--output", default=None)
    export_parser.set_defaults(func=_export_command)

    import_parser = subparsers.add_parser(
        "import-json", help="Replace the ledger with a JSON snapshot"
    )
    _add_db_path_argument(import_parser)
    import_parser.add_argument("path")
    import_parser.set_defaults(func=_import_json_command)

    dump_parser = subparsers.add_parser("dump-json", help="Write the ledger as a JSON snapshot")
    _add_db_path_argument(dump_parser)
    dump_parser.add_argument("--output", default=None)
    dump_parser.set_defaults(func=_dump_json_command)

    version_parser = subparsers.add_parser(
        "schema-version", help="Show the stored schema version for the ledger DB"
    )
    _add_db_path_argument(version_parser)
    version_parser.set_defaults(func=_schema_version_command)

    backup_parser = subparsers.add_parser(
        "db-backup", help="Create a timestamped backup of the ledger DB"
    )
    _add_db_path_argument(backup_parser)
    backup_parser.add_argument(
        "--keep",
        type=int,
        help="Retain only the N most recent backups (older backups will be deleted)",
    )
    backup_parser.set_defaults(func=_db_backup_command)

    serve_parser = subparsers.add_parser("serve", help="Serve the HTTP API")
    _add_db_path_argument(serve_parser)
    serve_parser.add_argument("--host", default=None)
    serve_parser.add_argument("--port", type=int, default=None)
    serve_parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Minimum level for JSON logs written to stderr",
    )
    serve_parser.set_defaults(func=_serve_command)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point for the `nexus-ledger` console script."""

    parser = _build_parser()
    args = parser.parse_args(argv)
    command: Callable[[argparse.Namespace], int] = getattr(args, "func")
    return command(args)


if __name__ == "__main__":
    sys.exit(main())
