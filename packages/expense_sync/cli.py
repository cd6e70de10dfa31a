# ruff: noqa: I001
"""CLI for the ``expense_sync`` package.

A Typer console interface over :class:`~expense_sync.api.ExpenseSyncApp`.
The root callback loads a local ``.env`` with ``python-dotenv`` (without
overriding variables already set) and configures logging before any command
runs. Business logic lives in ``expense_sync.api`` and the modules it wires.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Annotated

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from .api import ExpenseSyncApp, build_app
from .config import load_settings
from .errors import ClassifierError
from .logging_setup import configure_logging
from .models import ExpenseRecord, RawMessage

console = Console()

app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Extract expenses from bank SMS text, reconcile missed messages, and "
        "retry AI enrichment. Loads GEMINI_API_KEY and DATABASE_URL from a local .env."
    ),
)

def _app(database_url: str | None) -> ExpenseSyncApp:
    return build_app(load_settings(database_url=database_url))


def _fail(message: str) -> typer.Exit:
    console.print(f"[red]Error:[/red] {message}")
    return typer.Exit(1)


def _records_table(records: list[ExpenseRecord], *, title: str) -> Table:
    table = Table(title=title)
    table.add_column("ID", overflow="fold")
    table.add_column("Date")
    table.add_column("Title")
    table.add_column("Amount", justify="right")
    table.add_column("Category")
    table.add_column("Source")
    table.add_column("Status")
    for r in records:
        status = r.settlement or ("needs AI" if r.requires_enhancement else "")
        table.add_row(
            r.id,
            f"{r.date} {r.time}".strip(),
            r.title,
            f"{r.amount:.2f}",
            r.category,
            r.source,
            status,
        )
    return table


# ---- Sync commands ------------------------------------------------------------


@app.command("reconcile")
def reconcile_cmd(
    messages: Annotated[
        Path,
        typer.Option(
            "--messages",
            help="JSON export of the inbox: a list of {body, address, timestamp}.",
            dir_okay=False,
        ),
    ],
    database_url: str | None = typer.Option(
        None, "--database-url", help="Override DATABASE_URL (falls back to env var)."
    ),
) -> None:
    """List messages newer than the watermark and capture the debits."""

    from .sources import JsonExportSource

    summary = asyncio.run(_app(database_url).reconcile(JsonExportSource(messages)))
    if not summary.ok:
        raise _fail(f"reconciliation failed: {summary.error}")
    console.print(
        f"[green]Reconciled[/green] listed={summary.listed} found={len(summary.found)}"
    )


@app.command("enhance")
def enhance_cmd(
    database_url: str | None = typer.Option(
        None, "--database-url", help="Override DATABASE_URL (falls back to env var)."
    ),
) -> None:
    """Retry AI enrichment for records captured while the AI tier was down."""

    summary = asyncio.run(_app(database_url).enhance())
    console.print(
        f"attempted={summary.attempted} enhanced={summary.enhanced} "
        f"failed={summary.failed} dropped={summary.dropped}"
    )


@app.command("rewind")
def rewind_cmd(
    minutes: Annotated[int, typer.Option("--minutes", min=0, help="Minutes to look back.")] = 60,
    database_url: str | None = typer.Option(
        None, "--database-url", help="Override DATABASE_URL (falls back to env var)."
    ),
) -> None:
    """Force the watermark to now minus N minutes."""

    value = _app(database_url).rewind(minutes)
    console.print(f"watermark={value}")


@app.command("watermark")
def watermark_cmd(
    database_url: str | None = typer.Option(
        None, "--database-url", help="Override DATABASE_URL (falls back to env var)."
    ),
) -> None:
    """Print the effective watermark (epoch milliseconds)."""

    console.print(str(_app(database_url).watermark.get()))


@app.command("capture")
def capture_cmd(
    body: Annotated[str, typer.Option("--body", help="SMS text.")],
    sender: Annotated[str, typer.Option("--sender", help="Originating address.")],
    timestamp: Annotated[
        int | None, typer.Option("--timestamp", help="Epoch milliseconds (default: now).")
    ] = None,
    database_url: str | None = typer.Option(
        None, "--database-url", help="Override DATABASE_URL (falls back to env var)."
    ),
) -> None:
    """Feed one message through the live-capture path."""

    sync = _app(database_url)
    msg = RawMessage(body=body, originating_address=sender, timestamp=timestamp or sync.clock())
    record = asyncio.run(sync.capture(msg))
    if record is None:
        console.print("[yellow]No expense captured.[/yellow]")
        return
    console.print(_records_table([record], title="Captured"))


@app.command("analyze")
def analyze_cmd(
    text: Annotated[str, typer.Argument(help="SMS text to classify.")],
    save: Annotated[
        bool, typer.Option("--save", help="Store the result as a Debug record.")
    ] = False,
    database_url: str | None = typer.Option(
        None, "--database-url", help="Override DATABASE_URL (falls back to env var)."
    ),
) -> None:
    """Classify text with the AI tier and show the raw result or failure."""

    try:
        candidate = asyncio.run(_app(database_url).analyze(text, save=save))
    except ClassifierError as e:
        raise _fail(f"{e.kind}: {e}") from e
    except ValueError as e:
        raise _fail(str(e)) from e
    console.print_json(candidate.model_dump_json())


# ---- Ledger commands ----------------------------------------------------------


@app.command("list")
def list_cmd(
    processed: Annotated[bool, typer.Option("--processed", help="Show settled records.")] = False,
    database_url: str | None = typer.Option(
        None, "--database-url", help="Override DATABASE_URL (falls back to env var)."
    ),
) -> None:
    """Show pending (default) or processed records."""

    ledger = _app(database_url).ledger
    records = ledger.processed() if processed else ledger.pending()
    if not records:
        console.print("[yellow]No records.[/yellow]")
        return
    console.print(_records_table(records, title="Processed" if processed else "Pending"))


@app.command("add")
def add_cmd(
    title: Annotated[str, typer.Option("--title")],
    amount: Annotated[str, typer.Option("--amount")],
    source: Annotated[str, typer.Option("--source")],
    category: Annotated[str | None, typer.Option("--category")] = None,
    database_url: str | None = typer.Option(
        None, "--database-url", help="Override DATABASE_URL (falls back to env var)."
    ),
) -> None:
    """Add a manual pending expense."""

    try:
        record = _app(database_url).ledger.add_manual(title, amount, source, category=category)
    except ValueError as e:
        raise _fail(str(e)) from e
    console.print(f"[green]Added[/green] {record.id}")


@app.command("settle")
def settle_cmd(
    record_id: Annotated[str, typer.Argument(help="Pending record id.")],
    split: Annotated[
        int | None, typer.Option("--split", min=1, help="Split between N people.")
    ] = None,
    database_url: str | None = typer.Option(
        None, "--database-url", help="Override DATABASE_URL (falls back to env var)."
    ),
) -> None:
    """Move a pending record to processed, fully yours or split."""

    try:
        record = _app(database_url).ledger.settle(record_id, split_with=split)
    except KeyError as e:
        raise _fail(f"no pending record with id {record_id!r}") from e
    except ValueError as e:
        raise _fail(str(e)) from e
    console.print(f"[green]{record.settlement}[/green] {record.amount:.2f}")


@app.command("delete")
def delete_cmd(
    record_id: Annotated[str, typer.Argument(help="Pending record id.")],
    database_url: str | None = typer.Option(
        None, "--database-url", help="Override DATABASE_URL (falls back to env var)."
    ),
) -> None:
    """Delete a pending record."""

    if not _app(database_url).ledger.delete(record_id):
        raise _fail(f"no pending record with id {record_id!r}")
    console.print(f"Deleted {record_id}")


@app.command("set-category")
def set_category_cmd(
    record_id: Annotated[str, typer.Argument(help="Record id.")],
    category: Annotated[str, typer.Argument(help="New category name.")],
    database_url: str | None = typer.Option(
        None, "--database-url", help="Override DATABASE_URL (falls back to env var)."
    ),
) -> None:
    """Change a record's category (future captures from the merchant follow it)."""

    try:
        record = _app(database_url).ledger.update_category(record_id, category)
    except KeyError as e:
        raise _fail(f"no record with id {record_id!r}") from e
    except ValueError as e:
        raise _fail(str(e)) from e
    console.print(f"{record.id} → {record.category}")


@app.callback()
def _root() -> None:
    """Root command.

    Loads ``.env`` from the current working directory (without overriding any
    already-set environment variables) and configures logging.
    """

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging()


if __name__ == "__main__":  # pragma: no cover
    app()
