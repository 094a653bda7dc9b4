"""CLI for the ``budget_import`` package.

Commands
--------
- ``init-db``: create any missing tables on ``DATABASE_URL``.
- ``preview FILE``: run the import preview for a statement and print it.
- ``serve``: run the HTTP API with uvicorn.

Environment variables are loaded from a local ``.env`` (without overriding
values already set) before any command runs.
"""

from __future__ import annotations

import json
from dataclasses import replace
from pathlib import Path
from typing import Annotated

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from typer.models import ArgumentInfo

from .config import Settings
from .logging_setup import configure_logging

app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Import bank and credit-card statements into the household budget. "
        "Loads OPENAI_API_KEY and DATABASE_URL from a local .env before running."
    ),
)

console = Console()

# Module-level argument object to satisfy ruff B008 (no calls in defaults).
STATEMENT_ARG: ArgumentInfo = typer.Argument(
    ...,
    help="Statement file (.xlsx, .xls, .csv, .pdf, .png, .jpg, .jpeg)",
    dir_okay=False,
    file_okay=True,
    exists=True,
    readable=True,
)


@app.callback()
def _root() -> None:
    """Load ``.env`` and configure logging for every command."""

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging()


@app.command("init-db")
def init_db_cmd(
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
) -> None:
    """Create the budget tables if they do not exist."""

    from budget_db import create_schema

    create_schema(database_url=database_url or Settings.from_env().database_url)
    typer.echo("Database schema is up to date.")


@app.command("preview")
def preview_cmd(
    path: Annotated[Path, STATEMENT_ARG],
    *,
    source_label: str = typer.Option(..., help="Account or card the statement belongs to."),
    household_id: str = typer.Option(..., help="Household the import is previewed for."),
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
    as_json: bool = typer.Option(False, "--json", help="Print the preview as JSON."),
) -> None:
    """Parse, categorize and dedup a statement without writing anything."""

    # Deferred imports to keep CLI startup fast
    from budget_db.client import session_scope

    from .errors import ImportValidationError
    from .llm import create_llm_client
    from .pipeline import build_preview

    settings = Settings.from_env()
    if database_url:
        settings = replace(settings, database_url=database_url)

    client = create_llm_client(settings)
    if client is None:
        typer.echo("Warning: OPENAI_API_KEY is not set; rows will be left uncategorized.", err=True)

    try:
        with session_scope(database_url=settings.database_url) as session:
            preview = build_preview(
                session,
                household_id=household_id,
                filename=path.name,
                data=path.read_bytes(),
                source_label=source_label,
                client=client,
                settings=settings,
            )
    except ImportValidationError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from e

    if as_json:
        typer.echo(json.dumps(preview.model_dump(mode="json", by_alias=True), ensure_ascii=False))
        return

    table = Table(title=f"{path.name} ({source_label})")
    for header in ("", "#", "Date", "Type", "Amount", "Status", "Category", "Description"):
        table.add_column(header)
    for row in preview.rows:
        table.add_row(
            "x" if row.is_selected else "",
            str(row.index),
            row.date.isoformat(),
            str(row.type),
            f"{row.amount:.2f}",
            str(row.status),
            row.sub_category_name or row.category_name or "-",
            escape(row.source_description),
        )
    console.print(table)

    s = preview.summary
    console.print(
        f"found={s.total_found} new={s.new_count} duplicate={s.duplicate_count} "
        f"suspect={s.suspect_count} transfer={s.transfer_count} "
        f"recurring={s.recurring_match_count} "
        f"range={s.date_range.from_}..{s.date_range.to}"
    )
    if preview.ai_error:
        console.print(f"[yellow]Warning:[/yellow] {escape(preview.ai_error)}")


@app.command("serve")
def serve_cmd(
    host: str = typer.Option("127.0.0.1", help="Interface to bind."),
    port: int = typer.Option(8000, help="Port to listen on."),
) -> None:
    """Run the import HTTP API."""

    import uvicorn

    from .web import create_app

    uvicorn.run(create_app(Settings.from_env()), host=host, port=port)


if __name__ == "__main__":  # pragma: no cover
    app()
