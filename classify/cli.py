"""
CLI interface for classify.

Usage:
    classify add "some text to tag"
    classify add https://example.com/article
    classify find -t web -t api
    classify delete <id>
"""

import json
import os
import sys
from pathlib import Path
from typing import Any, Optional

import typer
from typing_extensions import Annotated

from .api import Tagger
from .errors import ClassifyError, DuplicateContentError, PartialWriteError
from .logging_config import configure_quiet_mode, enable_debug_mode
from .types import ContentRecord


# Set CLASSIFY_VERBOSE=1 to enable debug mode via environment
if os.environ.get("CLASSIFY_VERBOSE") == "1":
    enable_debug_mode()
else:
    configure_quiet_mode(quiet=True)


def _version_callback(value: bool):
    if value:
        from . import __version__
        print(f"classify {__version__}")
        raise typer.Exit()


def _verbose_callback(value: bool):
    if value:
        enable_debug_mode()


# Global state for CLI options
_json_output = False
_store_override: Optional[Path] = None


def _json_callback(value: bool):
    global _json_output
    _json_output = value


def _get_json_output() -> bool:
    return _json_output


def _store_callback(value: Optional[Path]):
    global _store_override
    _store_override = value


def _get_store_override() -> Optional[Path]:
    return _store_override


app = typer.Typer(
    name="classify",
    help="Tag text and links with an AI classifier, then query by tag.",
    no_args_is_help=True,
    rich_markup_mode=None,
)


@app.callback()
def main_callback(
    verbose: Annotated[bool, typer.Option(
        "--verbose", "-v",
        help="Enable debug-level logging to stderr",
        callback=_verbose_callback,
        is_eager=True,
    )] = False,
    output_json: Annotated[bool, typer.Option(
        "--json", "-j",
        help="Output as JSON",
        callback=_json_callback,
        is_eager=True,
    )] = False,
    version: Annotated[Optional[bool], typer.Option(
        "--version",
        help="Show version and exit",
        callback=_version_callback,
        is_eager=True,
    )] = None,
    store: Annotated[Optional[Path], typer.Option(
        "--store", "-s",
        envvar="CLASSIFY_STORE_PATH",
        help="Path to the store directory (default: ~/.classify/)",
        callback=_store_callback,
        is_eager=True,
    )] = None,
):
    """Tag text and links with an AI classifier, then query by tag."""


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------

def _get_tagger() -> Tagger:
    """Open the store, exiting cleanly on configuration problems."""
    import atexit

    try:
        tg = Tagger(_get_store_override())
    except ClassifyError as e:
        _fail(e)
    atexit.register(tg.close)
    return tg


def _fail(e: ClassifyError, code: int = 1):
    """Report a typed failure and exit."""
    if _get_json_output():
        typer.echo(json.dumps({"error": e.to_dict()}), err=True)
    else:
        typer.echo(f"Error ({e.kind}): {e.message}", err=True)
    raise typer.Exit(code)


def _emit(data: Any, text: str) -> None:
    if _get_json_output():
        typer.echo(json.dumps(data, indent=2, ensure_ascii=False))
    elif text:
        typer.echo(text)


def _record_line(record: ContentRecord) -> str:
    tags = ", ".join(record.tags) or "-"
    preview = record.source_url or next(iter(record.body.strip().splitlines()), "")
    if len(preview) > 60:
        preview = preview[:57] + "..."
    return f"{record.id}  [{tags}]  {preview}"


# -----------------------------------------------------------------------------
# Commands
# -----------------------------------------------------------------------------

@app.command()
def add(
    content: Annotated[Optional[str], typer.Argument(
        help="Text to classify, an http(s) link, or '-' to read stdin"
    )] = None,
):
    """
    Classify text or a link and store it.

    \b
    Examples:
        classify add "Rust web servers with async handlers"
        classify add https://example.com/post
        cat notes.txt | classify add -
    """
    if content is None or content == "-":
        if sys.stdin.isatty() and content is None:
            typer.echo("Error: provide content or pipe it on stdin", err=True)
            raise typer.Exit(1)
        content = sys.stdin.read()

    tg = _get_tagger()
    try:
        record = tg.classify(content)
    except DuplicateContentError as e:
        existing = e.record
        if _get_json_output():
            _emit({"duplicate": True, "content": existing.to_dict()}, "")
        else:
            typer.echo(f"Already classified: {_record_line(existing)}", err=True)
        raise typer.Exit(0)
    except PartialWriteError as e:
        typer.echo(f"Warning: {e.message}", err=True)
        typer.echo(f"Run: classify reindex {e.record.id}", err=True)
        _emit({"content": e.record.to_dict(), "partial": True}, _record_line(e.record))
        raise typer.Exit(2)
    except ClassifyError as e:
        _fail(e)
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    _emit({"content": record.to_dict()}, _record_line(record))


@app.command()
def tags(
    counts: Annotated[bool, typer.Option(
        "--counts", "-c",
        help="Show how many records carry each tag"
    )] = False,
):
    """List every tag in use."""
    tg = _get_tagger()
    try:
        if counts:
            data = tg.tag_counts()
            _emit(data, "\n".join(f"{n:6d}  {tag}" for tag, n in data.items()))
        else:
            names = tg.list_tags()
            _emit(names, "\n".join(names))
    except ClassifyError as e:
        _fail(e)


@app.command()
def find(
    tag: Annotated[list[str], typer.Option(
        "--tag", "-t",
        help="Tag to match (repeatable; records matching any tag are returned)"
    )],
):
    """Find records carrying any of the given tags."""
    tg = _get_tagger()
    try:
        records = tg.find(tag)
    except ClassifyError as e:
        _fail(e)
    _emit([r.to_dict() for r in records], "\n".join(_record_line(r) for r in records))


@app.command("list")
def list_cmd():
    """List every stored record."""
    tg = _get_tagger()
    try:
        records = tg.list_content()
    except ClassifyError as e:
        _fail(e)
    _emit([r.to_dict() for r in records], "\n".join(_record_line(r) for r in records))


@app.command()
def get(
    id: Annotated[str, typer.Argument(help="Content ID")],
    text: Annotated[bool, typer.Option(
        "--text",
        help="Print only the body text"
    )] = False,
):
    """Show one record."""
    tg = _get_tagger()
    try:
        if text:
            body = tg.get_text(id)
            if body is None:
                typer.echo(f"Not found: {id}", err=True)
                raise typer.Exit(1)
            typer.echo(body)
            return
        record = tg.get(id)
    except ClassifyError as e:
        _fail(e)
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    if record is None:
        typer.echo(f"Not found: {id}", err=True)
        raise typer.Exit(1)

    lines = [
        f"id: {record.id}",
        f"tags: {', '.join(record.tags) or '-'}",
        f"created: {record.created_at}",
    ]
    if record.source_url:
        lines.append(f"source: {record.source_url}")
    lines.extend(["", record.body])
    _emit(record.to_dict(), "\n".join(lines))


@app.command()
def delete(
    ids: Annotated[list[str], typer.Argument(help="Content IDs to delete")],
):
    """
    Delete records and prune tags left without content.

    Deleting an ID that does not exist is not an error.
    """
    tg = _get_tagger()
    results = []
    incomplete = False
    for id in ids:
        try:
            result = tg.delete(id)
        except ClassifyError as e:
            _fail(e)
        except ValueError as e:
            typer.echo(f"Error: {e}", err=True)
            raise typer.Exit(1)
        results.append(result)
        if not result.complete:
            incomplete = True
            typer.echo(
                f"Warning: {id} deleted but tag cleanup failed: {result.tag_cleanup_error}",
                err=True,
            )
            typer.echo("Run: classify repair", err=True)

    lines = []
    for r in results:
        if not r.found:
            lines.append(f"{r.id}: not found")
        elif r.removed_tags:
            lines.append(f"{r.id}: deleted (removed tags: {', '.join(r.removed_tags)})")
        else:
            lines.append(f"{r.id}: deleted")
    _emit([r.to_dict() for r in results], "\n".join(lines))
    if incomplete:
        raise typer.Exit(2)


@app.command()
def reindex(
    id: Annotated[str, typer.Argument(help="Content ID")],
):
    """Re-add a record's tags to the tag index (after a partial write)."""
    tg = _get_tagger()
    try:
        record = tg.reindex(id)
    except ClassifyError as e:
        _fail(e)
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    if record is None:
        typer.echo(f"Not found: {id}", err=True)
        raise typer.Exit(1)
    _emit({"content": record.to_dict()}, _record_line(record))


@app.command()
def repair():
    """Reconcile the tag index with the stored content."""
    tg = _get_tagger()
    try:
        report = tg.repair()
    except ClassifyError as e:
        _fail(e)
    _emit(report.to_dict(), "\n".join([
        f"Scanned {report.records_scanned} records",
        f"Reindexed {len(report.reindexed)}",
        f"Removed {len(report.dangling_removed)} dangling references",
        f"Removed orphaned tags: {', '.join(report.orphaned_tags) or '-'}",
    ]))


@app.command()
def config():
    """Show the store configuration (secrets are never shown)."""
    from .config import SECRET_PARAMS, get_default_store_path, load_or_create_config

    store_path = _get_store_override()
    store_path = Path(store_path).resolve() if store_path is not None else get_default_store_path()
    try:
        cfg = load_or_create_config(store_path)
    except ClassifyError as e:
        _fail(e)

    def provider(p) -> dict:
        return {"name": p.name, **{k: v for k, v in p.params.items() if k not in SECRET_PARAMS}}

    data = {
        "file": str(cfg.config_path),
        "store": str(cfg.path),
        "max_prompt_length": cfg.max_prompt_length,
        "dedupe": cfg.dedupe,
        "content": provider(cfg.content),
        "tags": provider(cfg.tags),
        "classifier": provider(cfg.classifier),
        "document": provider(cfg.document),
    }
    lines = [
        f"file: {data['file']}",
        f"store: {data['store']}",
        f"max_prompt_length: {cfg.max_prompt_length}",
        f"dedupe: {str(cfg.dedupe).lower()}",
    ]
    for section in ("content", "tags", "classifier", "document"):
        params = ", ".join(f"{k}={v}" for k, v in data[section].items() if k != "name")
        lines.append(f"{section}: {data[section]['name']}" + (f" ({params})" if params else ""))
    _emit(data, "\n".join(lines))


# -----------------------------------------------------------------------------

def main():
    try:
        app()
    except SystemExit:
        raise  # Let typer handle exit codes
    except KeyboardInterrupt:
        raise SystemExit(130)  # Standard exit code for Ctrl+C
    except Exception as e:
        # Log full traceback to file, show clean message to user
        from .errors import log_exception
        log_path = log_exception(e, context="classify CLI", store_path=_get_store_override())
        typer.echo(f"Error: {e}", err=True)
        typer.echo(f"Details logged to {log_path}", err=True)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
