# ruff: noqa: I001
"""CLI for the ``statement_import`` package.

Command handlers (``cmd_*``) return process exit codes and print errors to
stderr; the Typer commands at the bottom are thin wrappers around them. The
root callback loads a local ``.env`` with ``python-dotenv`` and configures
logging before any command runs. Business logic lives in
``statement_import.api`` and the modules it re-exports.

Exit codes: ``0`` success, ``1`` database/infrastructure failure or missing
record, ``2`` rejected input (unreadable file, ``FormatError``,
``CapacityError``).
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Annotated

import typer
from dotenv import load_dotenv

from .config import ImportSettings
from .errors import CapacityError, FormatError, InfrastructureError
from .logging_setup import configure_logging

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_BAD_INPUT = 2


# ---- Command handlers ---------------------------------------------------------


def _settings_or_none() -> ImportSettings | None:
    try:
        return ImportSettings.from_env()
    except ValueError as e:
        print(f"Error: invalid configuration: {e}", file=sys.stderr)
        return None


def cmd_import_file(
    owner_id: str,
    path: Path,
    *,
    declared_type: str | None = None,
    database_url: str | None = None,
    as_json: bool = False,
) -> int:
    """Import one CSV/OFX statement file for ``owner_id``."""

    from .api import import_statement

    settings = _settings_or_none()
    if settings is None:
        return EXIT_BAD_INPUT
    try:
        content = path.read_bytes()
    except FileNotFoundError:
        print(f"Error: File not found: {path}", file=sys.stderr)
        return EXIT_BAD_INPUT
    except PermissionError:
        print(f"Error: Permission denied: {path}", file=sys.stderr)
        return EXIT_BAD_INPUT

    try:
        summary = import_statement(
            owner_id,
            content,
            filename=path.name,
            declared_type=declared_type,
            settings=settings,
            database_url=database_url,
        )
    except (FormatError, CapacityError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_BAD_INPUT
    except (InfrastructureError, RuntimeError) as e:
        print(f"Error: import failed: {e}", file=sys.stderr)
        return EXIT_FAILURE

    if as_json:
        print(json.dumps(summary.to_dict(), ensure_ascii=False, indent=2))
        return EXIT_OK
    print(
        f"{summary.inserted} inserted, {summary.duplicates} duplicates, "
        f"{summary.failed_rows} failed ({summary.total_rows} rows)"
    )
    print(f"{summary.categorized} categorized, {summary.unclassified} to review")
    for message in summary.errors:
        print(f"  - {message}")
    return EXIT_OK


def cmd_recategorize(
    owner_id: str,
    transaction_ids: list[int] | None = None,
    *,
    database_url: str | None = None,
) -> int:
    from .api import recategorize

    settings = _settings_or_none()
    if settings is None:
        return EXIT_BAD_INPUT
    try:
        summary = recategorize(
            owner_id, transaction_ids or None, settings=settings, database_url=database_url
        )
    except (InfrastructureError, RuntimeError) as e:
        print(f"Error: recategorization failed: {e}", file=sys.stderr)
        return EXIT_FAILURE

    print(
        f"{summary.categorized} categorized, {summary.unclassified} unclassified, "
        f"{summary.skipped} skipped"
    )
    if summary.needs_review_ids:
        print("Needs review: " + ", ".join(str(i) for i in summary.needs_review_ids))
    return EXIT_OK


def cmd_map_merchant(
    owner_id: str,
    merchant: str,
    category: str,
    subcategory: str | None = None,
    *,
    database_url: str | None = None,
) -> int:
    from .api import map_merchant

    try:
        saved = map_merchant(owner_id, merchant, category, subcategory, database_url=database_url)
    except (InfrastructureError, RuntimeError) as e:
        print(f"Error: failed to save mapping: {e}", file=sys.stderr)
        return EXIT_FAILURE
    if not saved:
        print("Error: merchant and category must be non-empty.", file=sys.stderr)
        return EXIT_BAD_INPUT
    label = f"{category}/{subcategory}" if subcategory else category
    print(f"{merchant} -> {label}")
    return EXIT_OK


def cmd_list_mappings(owner_id: str, *, database_url: str | None = None) -> int:
    from .api import merchant_mappings

    try:
        mappings = merchant_mappings(owner_id, database_url=database_url)
    except (InfrastructureError, RuntimeError) as e:
        print(f"Error: failed to list mappings: {e}", file=sys.stderr)
        return EXIT_FAILURE
    if not mappings:
        print("No merchant mappings.")
        return EXIT_OK
    for m in mappings:
        print(f"{m.merchant_name}\t{m.category}\t{m.subcategory or ''}")
    return EXIT_OK


def cmd_unmap_merchant(owner_id: str, merchant: str, *, database_url: str | None = None) -> int:
    from .api import unmap_merchant

    try:
        deleted = unmap_merchant(owner_id, merchant, database_url=database_url)
    except (InfrastructureError, RuntimeError) as e:
        print(f"Error: failed to delete mapping: {e}", file=sys.stderr)
        return EXIT_FAILURE
    if not deleted:
        print(f"Error: no mapping for merchant {merchant!r}", file=sys.stderr)
        return EXIT_FAILURE
    print(f"Deleted mapping for {merchant}")
    return EXIT_OK


# ---- Typer-based console interface -------------------------------------------


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Import CSV/OFX bank statements, categorize transactions and manage "
        "merchant mappings. Loads DATABASE_URL and SI_* settings from a local .env."
    ),
)

OWNER_OPTION = typer.Option(..., "--owner", "-o", help="Owner (profile) id.")
DATABASE_URL_OPTION = typer.Option(None, help="Override DATABASE_URL (falls back to env var).")


@app.command("import-file")
def import_file_cmd(
    path: Annotated[Path, typer.Argument(help="Statement file (.csv, .ofx or .qfx).")],
    owner: Annotated[str, OWNER_OPTION],
    *,
    declared_type: str | None = typer.Option(
        None, "--type", help="Declared file type when the extension is missing (csv/ofx)."
    ),
    database_url: str | None = DATABASE_URL_OPTION,
    as_json: bool = typer.Option(False, "--json", help="Print the summary as JSON."),
) -> None:
    """Import a statement file and print the summary."""

    code = cmd_import_file(
        owner, path, declared_type=declared_type, database_url=database_url, as_json=as_json
    )
    raise typer.Exit(code)


@app.command("recategorize")
def recategorize_cmd(
    owner: Annotated[str, OWNER_OPTION],
    *,
    transaction_id: list[int] | None = typer.Option(
        None, "--id", help="Transaction id to revisit (repeatable); default: all uncategorized."
    ),
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """Re-run categorization (with recurrence detection) on stored transactions."""

    raise typer.Exit(cmd_recategorize(owner, transaction_id, database_url=database_url))


@app.command("map-merchant")
def map_merchant_cmd(
    merchant: Annotated[str, typer.Argument(help="Merchant name as it appears on statements.")],
    category: Annotated[str, typer.Argument(help="Category to assign.")],
    owner: Annotated[str, OWNER_OPTION],
    *,
    subcategory: str | None = typer.Option(None, help="Optional subcategory."),
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """Remember a category for a merchant; later imports use it before any rule."""

    raise typer.Exit(
        cmd_map_merchant(owner, merchant, category, subcategory, database_url=database_url)
    )


@app.command("list-mappings")
def list_mappings_cmd(
    owner: Annotated[str, OWNER_OPTION],
    *,
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """List learned merchant mappings."""

    raise typer.Exit(cmd_list_mappings(owner, database_url=database_url))


@app.command("unmap-merchant")
def unmap_merchant_cmd(
    merchant: Annotated[str, typer.Argument(help="Merchant whose mapping should be removed.")],
    owner: Annotated[str, OWNER_OPTION],
    *,
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """Delete a learned merchant mapping."""

    raise typer.Exit(cmd_unmap_merchant(owner, merchant, database_url=database_url))


@app.callback()
def _root() -> None:
    """Load ``.env`` from the working directory and configure logging."""

    # override=False keeps variables already set in the environment
    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging()


if __name__ == "__main__":  # pragma: no cover - exercised via the console script
    app()
