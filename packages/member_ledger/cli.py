"""CLI for the ``member_ledger`` package.

This module exposes callable command handlers (``cmd_*``, returning an exit
code) and a Typer-based console interface. Environment variables (notably
``DATABASE_URL``) are loaded from a local ``.env`` using ``python-dotenv``
before delegating to command logic. Business logic lives in
``member_ledger.api`` and the modules it orchestrates.

Exit codes: 0 on success, 1 on configuration or storage errors, 2 when
``verify --strict`` finds problems.
"""

from __future__ import annotations

import sys
from enum import Enum
from pathlib import Path
from typing import Any

import typer
from dotenv import load_dotenv
from pydantic import TypeAdapter
from sqlalchemy.exc import SQLAlchemyError

from .logging_setup import configure_logging
from .models import AccountSummary

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_DISCREPANCIES = 2


class TableName(str, Enum):
    MEMBER = "member"
    MEMBER_SUB = "member-sub"
    LOAN = "loan"


class StrategyName(str, Enum):
    PREFIX_SUM = "prefix-sum"
    INCREMENTAL = "incremental"


def _print_error(msg: str) -> None:
    print(f"Error: {msg}", file=sys.stderr)


def _emit(report: Any, text: str, *, as_json: bool) -> None:
    if as_json:
        print(report.model_dump_json(indent=2))
    else:
        print(text)


def _parse_account(raw: str) -> tuple[str | None, ...]:
    # An empty part names a null column: "M002/" is (M002, NULL).
    return tuple(part.strip() or None for part in raw.split("/"))


# ---- Command handlers ---------------------------------------------------------


def cmd_mark_opening(
    table: str,
    *,
    database_url: str | None = None,
    clear_stale: bool = False,
    as_json: bool = False,
) -> int:
    from .api import mark_table
    from .reports import format_opening_report

    try:
        report = mark_table(table, database_url=database_url, clear_stale=clear_stale)
    except (SQLAlchemyError, RuntimeError) as e:
        _print_error(f"marking opening balances failed: {e}")
        return EXIT_ERROR
    _emit(report, format_opening_report(report), as_json=as_json)
    return EXIT_OK


def cmd_recompute(
    table: str,
    *,
    database_url: str | None = None,
    strategy: str | None = None,
    workers: int | None = None,
    batch_size: int | None = None,
    as_json: bool = False,
) -> int:
    from .api import recompute_table
    from .reports import format_recompute_report

    try:
        report = recompute_table(
            table,
            database_url=database_url,
            strategy=strategy,
            workers=workers,
            batch_size=batch_size,
        )
    except ValueError as e:
        _print_error(str(e))
        return EXIT_ERROR
    except (SQLAlchemyError, RuntimeError) as e:
        _print_error(f"recomputation failed: {e}")
        return EXIT_ERROR
    _emit(report, format_recompute_report(report), as_json=as_json)
    return EXIT_OK


def cmd_verify(
    table: str,
    *,
    database_url: str | None = None,
    tolerance: str | None = None,
    strict: bool = False,
    limit: int | None = 20,
    as_json: bool = False,
) -> int:
    from .api import verify_table
    from .reports import format_verification_report

    try:
        report = verify_table(table, database_url=database_url, tolerance=tolerance)
    except ValueError as e:
        _print_error(str(e))
        return EXIT_ERROR
    except (SQLAlchemyError, RuntimeError) as e:
        _print_error(f"verification failed: {e}")
        return EXIT_ERROR
    _emit(report, format_verification_report(report, limit=limit), as_json=as_json)
    if strict and not report.is_clean:
        return EXIT_DISCREPANCIES
    return EXIT_OK


def cmd_summary(
    table: str,
    *,
    database_url: str | None = None,
    accounts: list[str] | None = None,
    as_json: bool = False,
) -> int:
    from .api import summarize_table
    from .reports import format_account_summaries

    keys = [_parse_account(a) for a in accounts] if accounts else None
    try:
        summaries = summarize_table(table, database_url=database_url, account_keys=keys)
    except ValueError as e:
        _print_error(str(e))
        return EXIT_ERROR
    except (SQLAlchemyError, RuntimeError) as e:
        _print_error(f"summary failed: {e}")
        return EXIT_ERROR
    if as_json:
        adapter = TypeAdapter(list[AccountSummary])
        print(adapter.dump_json(summaries, indent=2).decode("utf-8"))
    else:
        print(format_account_summaries(summaries))
    return EXIT_OK


def cmd_run(
    table: str,
    *,
    database_url: str | None = None,
    clear_stale: bool = False,
    strategy: str | None = None,
    workers: int | None = None,
    batch_size: int | None = None,
    tolerance: str | None = None,
    strict: bool = False,
    as_json: bool = False,
) -> int:
    from .api import run_pipeline
    from .reports import format_pipeline_report

    try:
        report = run_pipeline(
            table,
            database_url=database_url,
            clear_stale=clear_stale,
            strategy=strategy,
            workers=workers,
            batch_size=batch_size,
            tolerance=tolerance,
        )
    except ValueError as e:
        _print_error(str(e))
        return EXIT_ERROR
    except (SQLAlchemyError, RuntimeError) as e:
        _print_error(f"pipeline failed: {e}")
        return EXIT_ERROR
    _emit(report, format_pipeline_report(report), as_json=as_json)
    if strict and not report.verification.is_clean:
        return EXIT_DISCREPANCIES
    return EXIT_OK


# ---- Typer-based console interface -------------------------------------------


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Recompute and verify running balances of member savings and loan ledgers. "
        "Loads DATABASE_URL from a local .env before running."
    ),
)

# Module-level option objects to satisfy ruff B008 (no calls in parameter
# defaults).
TABLE_OPTION = typer.Option(
    TableName.MEMBER, "--table", "-t", help="Ledger layout to operate on."
)
JSON_OPTION = typer.Option(False, "--json", help="Print the report as JSON.")
STRATEGY_OPTION = typer.Option(
    None,
    "--strategy",
    help="Balance strategy (falls back to MEMBER_LEDGER_STRATEGY, then prefix-sum).",
)
WORKERS_OPTION = typer.Option(
    None,
    "--workers",
    min=1,
    help="Accounts computed in parallel (falls back to MEMBER_LEDGER_MAX_WORKERS, then 1).",
)
BATCH_SIZE_OPTION = typer.Option(
    None,
    "--batch-size",
    min=1,
    help="Accounts per commit (falls back to MEMBER_LEDGER_BATCH_SIZE, then 500).",
)
TOLERANCE_OPTION = typer.Option(
    None,
    "--tolerance",
    help="Allowed absolute difference (falls back to MEMBER_LEDGER_TOLERANCE, then 0.01).",
)
STRICT_OPTION = typer.Option(
    False, "--strict", help="Exit with status 2 when verification is not clean."
)
CLEAR_STALE_OPTION = typer.Option(
    False, "--clear-stale", help="Also reset CWO flags on rows that are not the first."
)


def _database_url(ctx: typer.Context) -> str | None:
    obj = ctx.obj or {}
    return obj.get("database_url")


def _finish(code: int) -> None:
    if code != EXIT_OK:
        raise typer.Exit(code)


@app.command("mark-opening")
def mark_opening_cmd(
    ctx: typer.Context,
    table: TableName = TABLE_OPTION,
    clear_stale: bool = CLEAR_STALE_OPTION,
    as_json: bool = JSON_OPTION,
) -> None:
    """Flag the first transaction of every account as the opening entry (CWO)."""

    _finish(
        cmd_mark_opening(
            table.value,
            database_url=_database_url(ctx),
            clear_stale=clear_stale,
            as_json=as_json,
        )
    )


@app.command("recompute")
def recompute_cmd(
    ctx: typer.Context,
    table: TableName = TABLE_OPTION,
    strategy: StrategyName | None = STRATEGY_OPTION,
    workers: int | None = WORKERS_OPTION,
    batch_size: int | None = BATCH_SIZE_OPTION,
    as_json: bool = JSON_OPTION,
) -> None:
    """Recompute running balances (and loan totals) for every account."""

    _finish(
        cmd_recompute(
            table.value,
            database_url=_database_url(ctx),
            strategy=strategy.value if strategy else None,
            workers=workers,
            batch_size=batch_size,
            as_json=as_json,
        )
    )


@app.command("verify")
def verify_cmd(
    ctx: typer.Context,
    table: TableName = TABLE_OPTION,
    tolerance: str | None = TOLERANCE_OPTION,
    strict: bool = STRICT_OPTION,
    limit: int = typer.Option(20, "--limit", min=0, help="Discrepancies to list (0 = all)."),
    as_json: bool = JSON_OPTION,
) -> None:
    """Check stored balances against the recomputed progression (read-only)."""

    _finish(
        cmd_verify(
            table.value,
            database_url=_database_url(ctx),
            tolerance=tolerance,
            strict=strict,
            limit=limit or None,
            as_json=as_json,
        )
    )


@app.command("summary")
def summary_cmd(
    ctx: typer.Context,
    table: TableName = TABLE_OPTION,
    account: list[str] | None = typer.Option(
        None,
        "--account",
        "-a",
        help="Account key to include, e.g. M001/L01; an empty part is NULL (repeatable).",
    ),
    as_json: bool = JSON_OPTION,
) -> None:
    """Per-account transaction count, date range and balances."""

    _finish(
        cmd_summary(
            table.value,
            database_url=_database_url(ctx),
            accounts=account,
            as_json=as_json,
        )
    )


@app.command("run")
def run_cmd(
    ctx: typer.Context,
    table: TableName = TABLE_OPTION,
    clear_stale: bool = CLEAR_STALE_OPTION,
    strategy: StrategyName | None = STRATEGY_OPTION,
    workers: int | None = WORKERS_OPTION,
    batch_size: int | None = BATCH_SIZE_OPTION,
    tolerance: str | None = TOLERANCE_OPTION,
    strict: bool = STRICT_OPTION,
    as_json: bool = JSON_OPTION,
) -> None:
    """Mark openings, recompute balances, then verify."""

    _finish(
        cmd_run(
            table.value,
            database_url=_database_url(ctx),
            clear_stale=clear_stale,
            strategy=strategy.value if strategy else None,
            workers=workers,
            batch_size=batch_size,
            tolerance=tolerance,
            strict=strict,
            as_json=as_json,
        )
    )


@app.callback(invoke_without_command=True)
def _root(
    ctx: typer.Context,
    *,
    database_url: str | None = typer.Option(
        None, "--database-url", help="Override DATABASE_URL (falls back to env var)."
    ),
) -> None:
    """Root command.

    Loads ``.env`` from the current working directory (without overriding any
    already-set environment variables) and configures package logging.
    """

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)

    # Central logging setup so child loggers inherit configuration
    configure_logging()

    ctx.obj = {"database_url": database_url}

    if ctx.invoked_subcommand is None:
        typer.echo("No subcommand provided. Use --help to see available commands.")
        raise typer.Exit(1)


if __name__ == "__main__":  # pragma: no cover
    app()
