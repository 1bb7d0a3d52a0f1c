"""CLI for the ``statement_recon`` package.

This module exposes callable command handlers (``cmd_*``, each returning a
process exit code) and a Typer-based console interface on top of them.
Environment variables (``DATABASE_URL``, ``SR_BLOB_DIR``,
``STATEMENT_RECON_LOG_LEVEL``, ``SR_AMOUNT_INDEX``) are loaded from a local
``.env`` using ``python-dotenv`` before any command runs. Business logic lives
in ``statement_recon.api`` and the modules it re-exports.

Handlers report failures as ``Error: ...`` on stderr and return ``1``.
"""

from __future__ import annotations

import asyncio
import sys
from collections.abc import Coroutine, Sequence
from pathlib import Path
from typing import Annotated, Any, TypeVar

import typer
from dotenv import load_dotenv
from prompt_toolkit import PromptSession
from sqlalchemy.exc import SQLAlchemyError
from typer.models import OptionInfo

from .categories import DELETE_POLICIES, CategoryMapper, summarize
from .errors import ReconError
from .logging_setup import configure_logging
from .matcher import (
    TokenSetMatcher,
    auto_identify_all,
    confidence_of,
    identify,
    load_transactions,
    suggest_all,
)
from .merge import MERGED_NAME
from .models import IdentificationHistoryEntry, Registry, StoredTransaction
from .normalizers import format_br_amount
from .registry import load_history, load_registry, parse_entity, save_entity
from .statements import (
    delete_statements,
    list_statements,
    merge_statements,
    read_statement,
    save_statements,
    view_statement,
)
from .stores import LocalBlobStore, SqlRecordStore
from .term_ui import CreateCategoryRequest, prompt_new_category_name, select_category_or_create

T = TypeVar("T")


def _run(coro: Coroutine[Any, Any, T]) -> T:
    return asyncio.run(coro)


def _fail(msg: str) -> int:
    print(f"Error: {msg}", file=sys.stderr)
    return 1


def _blob_store(blob_dir: Path | None) -> LocalBlobStore:
    return LocalBlobStore(blob_dir)


# ---- Statement commands ----------------------------------------------------


def cmd_upload(paths: Sequence[Path], *, blob_dir: Path | None = None) -> int:
    """Save raw statement files under their ``DD_MM_YYYY.txt`` names."""

    texts: list[tuple[str, str]] = []
    for p in paths:
        try:
            texts.append((str(p), p.read_text(encoding="utf-8")))
        except FileNotFoundError:
            return _fail(f"File not found: {p}")
        except UnicodeDecodeError:
            texts.append((str(p), p.read_text(encoding="latin-1")))
        except OSError as e:
            return _fail(f"Cannot read '{p}': {e}")

    result = _run(save_statements(_blob_store(blob_dir), texts))
    for name in result.succeeded:
        print(f"saved\t{name}")
    for label, reason in result.failed:
        print(f"Error: {label}: {reason}", file=sys.stderr)
    return 1 if result.failed else 0


def cmd_list(*, blob_dir: Path | None = None) -> int:
    try:
        infos = _run(list_statements(_blob_store(blob_dir)))
    except ReconError as e:
        return _fail(str(e))
    for info in infos:
        created = info.created_at.strftime("%Y-%m-%d %H:%M") if info.created_at else ""
        print(f"{info.name}\t{created}")
    return 0


def cmd_view(name: str, *, blob_dir: Path | None = None, raw: bool = False) -> int:
    store = _blob_store(blob_dir)
    try:
        if raw:
            print(_run(read_statement(store, name)))
            return 0
        records = _run(view_statement(store, name))
    except ReconError as e:
        return _fail(str(e))
    for r in records:
        print(
            "\t".join(
                [
                    r.movement_date,
                    r.narration,
                    r.document_ref,
                    f"{r.amount} {r.direction}",
                    r.tax_id or "",
                    r.counterparty_name_guess or "",
                ]
            )
        )
    print(f"{len(records)} record(s)", file=sys.stderr)
    return 0


def cmd_delete(names: Sequence[str], *, blob_dir: Path | None = None) -> int:
    try:
        _run(delete_statements(_blob_store(blob_dir), list(names)))
    except ReconError as e:
        return _fail(str(e))
    return 0


def cmd_merge(
    *, blob_dir: Path | None = None, database_url: str | None = None, sync: bool = False
) -> int:
    record_store = SqlRecordStore(database_url) if sync else None
    try:
        result = _run(merge_statements(_blob_store(blob_dir), record_store=record_store))
    except ReconError as e:
        return _fail(f"merge failed: {e}")
    print(
        f"Merged {len(result.source_names)} statement(s) into {MERGED_NAME}: "
        f"{len(result.records)} unique record(s)"
    )
    return 0


# ---- Identification commands -------------------------------------------------


def cmd_init_db(*, database_url: str | None = None) -> int:
    try:
        SqlRecordStore(database_url).create_schema()
    except (ReconError, SQLAlchemyError) as e:
        return _fail(f"schema creation failed: {e}")
    return 0


def cmd_register(
    kind: str,
    name: str,
    *,
    tax_id: str | None = None,
    label: str | None = None,
    database_url: str | None = None,
) -> int:
    data = {"variant": kind, "name": name, "tax_id": tax_id, "kind": label}
    if kind == "associate":
        data.pop("tax_id")
    try:
        entity = _run(save_entity(SqlRecordStore(database_url), parse_entity(data)))
    except ReconError as e:
        return _fail(str(e))
    print(f"{entity.variant}\t{entity.id}\t{entity.name}")
    return 0


async def _load_for_suggest(
    database_url: str | None, statement_name: str
) -> tuple[list[StoredTransaction], Registry, list[IdentificationHistoryEntry]]:
    store = SqlRecordStore(database_url)
    rows, registry, history = await asyncio.gather(
        load_transactions(store, statement_name=statement_name),
        load_registry(store),
        load_history(store),
    )
    return rows, registry, history


def cmd_suggest(
    *,
    database_url: str | None = None,
    statement_name: str = MERGED_NAME,
    token_similarity: float | None = None,
) -> int:
    """Print a suggestion (and its confidence) for every unidentified row."""

    try:
        rows, registry, history = _run(_load_for_suggest(database_url, statement_name))
    except ReconError as e:
        return _fail(str(e))
    matcher = TokenSetMatcher(token_similarity) if token_similarity is not None else None
    pending = [r for r in rows if not r.is_identified]
    for row, s in suggest_all(pending, registry, history, narration_matcher=matcher):
        who = f"{s.kind}:{s.id}\t{s.name}" if s else "\t"
        print(f"{row.id}\t{row.record.movement_date}\t{row.record.narration}\t{who}\t{confidence_of(s)}")
    return 0


def cmd_identify(
    row_id: str,
    *,
    kind: str,
    entity_id: str,
    database_url: str | None = None,
    statement_name: str = MERGED_NAME,
) -> int:
    store = SqlRecordStore(database_url)
    try:
        rows, registry, _history = _run(_load_for_suggest(database_url, statement_name))
        row = next((r for r in rows if r.id == row_id), None)
        if row is None:
            return _fail(f"no transaction row with id {row_id}")
        entity = registry.find(kind, entity_id)
        if entity is None:
            return _fail(f"no {kind} with id {entity_id}")
        _run(identify(store, row, kind, entity_id, entity.name))
    except ReconError as e:
        return _fail(str(e))
    print(f"{row_id}\t{kind}:{entity_id}\t{entity.name}")
    return 0


def cmd_auto_identify(
    *, database_url: str | None = None, statement_name: str = MERGED_NAME
) -> int:
    try:
        report = _run(
            auto_identify_all(SqlRecordStore(database_url), statement_name=statement_name)
        )
    except ReconError as e:
        return _fail(f"auto-identify failed: {e}")
    print(
        f"Identified {len(report.identified)} row(s); "
        f"{len(report.skipped)} left for review; {len(report.failures)} failed"
    )
    for row_id, reason in report.failures:
        print(f"Error: {row_id}: {reason}", file=sys.stderr)
    return 1 if report.failures else 0


# ---- Category commands -----------------------------------------------------


def cmd_categorize(
    *,
    blob_dir: Path | None = None,
    session: PromptSession | None = None,
    include_mapped: bool = False,
) -> int:
    """Interactively assign categories to the merged statement's narrations.

    Each distinct narration is offered once. Enter on an empty prompt skips it;
    typing an unknown label opens the creation prompt.
    """

    store = _blob_store(blob_dir)
    mapper = CategoryMapper(store)
    try:
        records = _run(view_statement(store, MERGED_NAME))
        _run(mapper.load())
    except ReconError as e:
        return _fail(str(e))

    seen: set[str] = set()
    assigned = 0
    for r in records:
        key = r.narration.strip()
        if not key or key in seen:
            continue
        seen.add(key)
        current = mapper.metadata.mappings.get(key, "")
        if current and not include_mapped:
            continue
        print(f"{r.movement_date}  {format_br_amount(r.signed_amount)}  {key}")
        choice = select_category_or_create(mapper.metadata.options, default=current, session=session)
        if isinstance(choice, CreateCategoryRequest):
            choice = prompt_new_category_name(initial=choice.name, session=session) or ""
        if not choice or choice == current:
            continue
        try:
            _run(mapper.assign(key, choice))
        except ReconError as e:
            return _fail(str(e))
        assigned += 1
    print(f"Assigned {assigned} categor{'y' if assigned == 1 else 'ies'}")
    return 0


def cmd_delete_category(
    label: str, *, policy: str = "orphan", blob_dir: Path | None = None
) -> int:
    mapper = CategoryMapper(_blob_store(blob_dir))
    try:
        _run(mapper.load())
        _run(mapper.delete(label, policy=policy))  # type: ignore[arg-type]
    except ReconError as e:
        return _fail(str(e))
    return 0


def cmd_summary(*, blob_dir: Path | None = None) -> int:
    store = _blob_store(blob_dir)
    mapper = CategoryMapper(store)
    try:
        records = _run(view_statement(store, MERGED_NAME))
        metadata = _run(mapper.load())
    except ReconError as e:
        return _fail(str(e))
    summary = summarize(records, metadata)
    print("Category\tCredits\tDebits\tNet")
    for g in summary.groups:
        print(
            f"{g.category}\t{format_br_amount(g.total_credits)}\t"
            f"{format_br_amount(g.total_debits)}\t{format_br_amount(g.net)}"
        )
    print(
        f"TOTAL\t{format_br_amount(summary.total_credits)}\t"
        f"{format_br_amount(summary.total_debits)}\t{format_br_amount(summary.net)}"
    )
    return 0


# ---- Typer-based console interface -------------------------------------------


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Parse, merge and reconcile bank statement exports. "
        "Loads DATABASE_URL / SR_BLOB_DIR from a local .env before running."
    ),
)

# Module-level option objects to satisfy ruff B008 (no calls in parameter
# defaults).
BLOB_DIR_OPTION: OptionInfo = typer.Option(
    None,
    "--blob-dir",
    help="Statement store directory (falls back to SR_BLOB_DIR, then ./.statements).",
    file_okay=False,
    dir_okay=True,
)
DATABASE_URL_OPTION: OptionInfo = typer.Option(
    None, "--database-url", help="Override DATABASE_URL (falls back to env var)."
)
STATEMENT_NAME_OPTION: OptionInfo = typer.Option(
    MERGED_NAME, "--statement", help="Statement name the transaction rows were synced from."
)


@app.command("upload")
def upload_cmd(
    paths: list[Path],
    blob_dir: Annotated[Path | None, BLOB_DIR_OPTION] = None,
) -> None:
    """Save raw statement exports (named by their first movement date)."""

    raise typer.Exit(cmd_upload(paths, blob_dir=blob_dir))


@app.command("list")
def list_cmd(blob_dir: Annotated[Path | None, BLOB_DIR_OPTION] = None) -> None:
    """List stored statements, newest first."""

    raise typer.Exit(cmd_list(blob_dir=blob_dir))


@app.command("view")
def view_cmd(
    name: str,
    blob_dir: Annotated[Path | None, BLOB_DIR_OPTION] = None,
    raw: bool = typer.Option(False, help="Print the stored text instead of parsed records."),
) -> None:
    """Show the parsed records of a stored statement."""

    raise typer.Exit(cmd_view(name, blob_dir=blob_dir, raw=raw))


@app.command("delete")
def delete_cmd(
    names: list[str],
    blob_dir: Annotated[Path | None, BLOB_DIR_OPTION] = None,
) -> None:
    """Delete stored statements."""

    raise typer.Exit(cmd_delete(names, blob_dir=blob_dir))


@app.command("merge")
def merge_cmd(
    blob_dir: Annotated[Path | None, BLOB_DIR_OPTION] = None,
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
    sync: bool = typer.Option(True, "--sync/--no-sync", help="Sync new rows into the database."),
) -> None:
    """Merge every stored statement into a deduplicated Extratos.txt."""

    raise typer.Exit(cmd_merge(blob_dir=blob_dir, database_url=database_url, sync=sync))


@app.command("init-db")
def init_db_cmd(database_url: Annotated[str | None, DATABASE_URL_OPTION] = None) -> None:
    """Create the statement reconciliation tables if they are missing."""

    raise typer.Exit(cmd_init_db(database_url=database_url))


@app.command("register")
def register_cmd(
    kind: str = typer.Argument(..., help="student, associate or other"),
    name: str = typer.Argument(...),
    tax_id: str | None = typer.Option(None, help="CPF/CNPJ (students and others)."),
    label: str | None = typer.Option(None, help="Category of an 'other' counterparty."),
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
) -> None:
    """Add a counterparty to the registry."""

    raise typer.Exit(
        cmd_register(kind, name, tax_id=tax_id, label=label, database_url=database_url)
    )


@app.command("suggest")
def suggest_cmd(
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
    statement_name: Annotated[str, STATEMENT_NAME_OPTION] = MERGED_NAME,
    token_similarity: float | None = typer.Option(
        None, help="Use token-set narration matching with this Jaccard threshold."
    ),
) -> None:
    """Suggest a counterparty for each unidentified transaction."""

    raise typer.Exit(
        cmd_suggest(
            database_url=database_url,
            statement_name=statement_name,
            token_similarity=token_similarity,
        )
    )


@app.command("identify")
def identify_cmd(
    row_id: str,
    kind: str = typer.Option(..., "--kind", help="student, associate or other"),
    entity_id: str = typer.Option(..., "--entity-id"),
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
    statement_name: Annotated[str, STATEMENT_NAME_OPTION] = MERGED_NAME,
) -> None:
    """Confirm a transaction's counterparty and remember the decision."""

    raise typer.Exit(
        cmd_identify(
            row_id,
            kind=kind,
            entity_id=entity_id,
            database_url=database_url,
            statement_name=statement_name,
        )
    )


@app.command("auto-identify")
def auto_identify_cmd(
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
    statement_name: Annotated[str, STATEMENT_NAME_OPTION] = MERGED_NAME,
) -> None:
    """Confirm every high-confidence suggestion."""

    raise typer.Exit(cmd_auto_identify(database_url=database_url, statement_name=statement_name))


@app.command("categorize")
def categorize_cmd(
    blob_dir: Annotated[Path | None, BLOB_DIR_OPTION] = None,
    include_mapped: bool = typer.Option(False, help="Also revisit narrations already mapped."),
) -> None:
    """Interactively map merged-statement narrations to categories."""

    raise typer.Exit(cmd_categorize(blob_dir=blob_dir, include_mapped=include_mapped))


@app.command("delete-category")
def delete_category_cmd(
    label: str,
    policy: str = typer.Option(
        "orphan", help=f"What happens to narrations using it: {', '.join(DELETE_POLICIES)}."
    ),
    blob_dir: Annotated[Path | None, BLOB_DIR_OPTION] = None,
) -> None:
    """Remove a category label."""

    raise typer.Exit(cmd_delete_category(label, policy=policy, blob_dir=blob_dir))


@app.command("summary")
def summary_cmd(blob_dir: Annotated[Path | None, BLOB_DIR_OPTION] = None) -> None:
    """Per-category credits, debits and net of the merged statement."""

    raise typer.Exit(cmd_summary(blob_dir=blob_dir))


@app.callback()
def _root() -> None:
    """Root command.

    Loads ``.env`` from the current working directory (without overriding any
    already-set environment variables) and configures package logging.
    """

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging()


def main() -> None:  # pragma: no cover - console script entry
    app()


if __name__ == "__main__":  # pragma: no cover
    main()
