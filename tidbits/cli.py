"""
CLI interface for tidbits.

Usage:
    tidbits add go-docs https://go.dev/doc -c bookmark -n go -t docs -t golang
    tidbits search --keyword golang
    tidbits get --key go-docs
    tidbits sync
"""

import json
import logging
import os
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Optional

import typer
from typing_extensions import Annotated

from . import __version__
from .backend import create_backends
from .config import (
    MODES,
    Settings,
    get_default_home,
    load_or_create_settings,
    save_settings,
)
from .errors import (
    ConfigurationError,
    DataError,
    MediaError,
    NotAMediaFileError,
    NotFoundError,
    ServerError,
    StorageError,
    SyncQueueError,
)
from .logging_config import configure_ops_log, configure_quiet_mode, enable_debug_mode
from .service import EntryService
from .sync_queue import dump_documents, parse_documents
from .types import (
    DEFAULT_LIMIT,
    MAX_LIMIT,
    MEDIA_CATEGORY,
    BatchResult,
    Entry,
    EntryState,
    NewEntry,
    QueryFilter,
    SearchResult,
)

# Configure quiet mode by default (suppress verbose library output)
# Set TIDBITS_VERBOSE=1 to enable debug mode via environment
if os.environ.get("TIDBITS_VERBOSE") == "1":
    enable_debug_mode()
else:
    configure_quiet_mode(quiet=True)


def _version_callback(value: bool):
    if value:
        print(f"tidbits {__version__}")
        raise typer.Exit()


def _verbose_callback(value: bool):
    if value:
        enable_debug_mode()


# Global state for CLI options
_json_output = False
_home_override: Optional[Path] = None


def _json_callback(value: bool):
    global _json_output
    _json_output = value


def _get_json_output() -> bool:
    return _json_output


def _home_callback(value: Optional[Path]):
    global _home_override
    _home_override = value


def _get_home() -> Path:
    return _home_override if _home_override is not None else get_default_home()


app = typer.Typer(
    name="tidbits",
    help="Personal knowledge entries with tag search and offline sync.",
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
    home: Annotated[Optional[Path], typer.Option(
        "--home",
        envvar="TIDBITS_HOME",
        help="Path to the tidbits home directory",
        callback=_home_callback,
        is_eager=True,
    )] = None,
):
    """Personal knowledge entries with tag search and offline sync."""


# -----------------------------------------------------------------------------
# Common Options
# -----------------------------------------------------------------------------

CategoryOption = Annotated[
    Optional[str],
    typer.Option("--category", "-c", help="Entry category (e.g. bookmark, quote, media)"),
]

NamespaceOption = Annotated[
    Optional[str],
    typer.Option("--namespace", "-n", help="Entry namespace"),
]

TagOption = Annotated[
    Optional[list[str]],
    typer.Option("--tag", "-t", help="Tag (letters, digits, hyphens; repeatable)"),
]

LimitOption = Annotated[
    int,
    typer.Option("--limit", "-l", help=f"Results per page (1-{MAX_LIMIT})"),
]

OffsetOption = Annotated[
    int,
    typer.Option("--offset", "-o", help="Number of results to skip"),
]


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------

def _fail(message: str) -> None:
    typer.echo(f"Error: {message}", err=True)
    raise typer.Exit(1)


def _fail_data(e: DataError) -> None:
    typer.echo(f"Error: {e}", err=True)
    for violation in e.violations:
        typer.echo(f"  - {violation}", err=True)
    raise typer.Exit(1)


def _load_settings() -> Settings:
    try:
        return load_or_create_settings(_get_home())
    except (ValueError, OSError) as e:
        _fail(f"unable to load configuration: {e}")


@contextmanager
def _open_service() -> Iterator[EntryService]:
    """Build the service for one command and tear it down afterwards."""
    settings = _load_settings()
    handler = configure_ops_log(settings.home)
    try:
        try:
            bundle = create_backends(settings)
        except (ConfigurationError, StorageError) as e:
            _fail(str(e))
        service = EntryService(
            settings, bundle.backend, client=bundle.client, queue=bundle.queue,
        )
        try:
            yield service
        finally:
            service.close()
    finally:
        logging.getLogger("tidbits").removeHandler(handler)
        handler.close()


def _echo_json(data) -> None:
    typer.echo(json.dumps(data, indent=2, ensure_ascii=False))


def _echo_entry(entry: Entry) -> None:
    if _get_json_output():
        _echo_json(entry.to_dict())
    else:
        typer.echo(str(entry))


def _echo_search(result: SearchResult) -> None:
    if _get_json_output():
        _echo_json(result.to_dict())
        return
    if not result.items:
        typer.echo("No entries found.")
        return
    for item in result.items:
        typer.echo(f"{item.key}  [{item.category}/{item.namespace}]  {' '.join(item.tags)}")
    page = result.offset // result.limit + 1 if result.limit else 1
    typer.echo(f"\npage {page} of {result.total_pages()} ({result.total} entries)")


def _echo_batch(result: BatchResult, verb: str) -> None:
    if _get_json_output():
        _echo_json(result.to_dict())
        return
    for key, id in result.new_ids.items():
        typer.echo(f"{verb}: {key} ({id})")
    for key, message in result.failed_keys.items():
        typer.echo(f"failed: {key}: {message}", err=True)
    typer.echo(f"{len(result.new_ids)} {verb}, {len(result.failed_keys)} failed")


def _echo_state(key: str, state: EntryState) -> None:
    if _get_json_output():
        _echo_json({"key": key, "state": state.value})


# -----------------------------------------------------------------------------
# Commands
# -----------------------------------------------------------------------------

@app.command()
def configure(
    mode: Annotated[Optional[str], typer.Option(
        "--mode", "-m",
        help=f"Where entries are stored: {' or '.join(MODES)}",
    )] = None,
    server_url: Annotated[Optional[str], typer.Option(
        "--server-url", "-u",
        help="Base URL of the remote entry service",
    )] = None,
    timeout: Annotated[Optional[float], typer.Option(
        "--timeout",
        help="Remote request timeout in seconds",
    )] = None,
):
    """Create or change the tidbits configuration."""
    settings = _load_settings()
    if mode is not None:
        settings.mode = mode.lower()
    if server_url is not None:
        settings.server_url = server_url
    if timeout is not None:
        settings.request_timeout = timeout

    try:
        settings.validate()
    except ConfigurationError as e:
        _fail(str(e))

    save_settings(settings)

    if _get_json_output():
        _echo_json({
            "config": str(settings.config_path),
            "mode": settings.mode,
            "server_url": settings.server_url,
            "request_timeout": settings.request_timeout,
        })
        return
    typer.echo(f"Configuration saved to {settings.config_path}")
    typer.echo(f"  mode: {settings.mode}")
    typer.echo(f"  server url: {settings.server_url or '(none)'}")
    typer.echo(f"  request timeout: {settings.request_timeout}s")


@app.command()
def add(
    key: Annotated[str, typer.Argument(help="Unique key for the entry")],
    value: Annotated[str, typer.Argument(help="Entry value (text, URL or file path)")],
    category: CategoryOption = None,
    namespace: NamespaceOption = None,
    tag: TagOption = None,
    notes: Annotated[str, typer.Option("--notes", help="Free-form notes")] = "",
    reference: Annotated[str, typer.Option("--reference", "-r", help="Source reference")] = "",
    media_type: Annotated[str, typer.Option(
        "--media-type", help="Media file extension, e.g. png or pdf",
    )] = "",
    queue: Annotated[bool, typer.Option(
        "--queue", "-q",
        help="Buffer for later sync without asking if the server fails",
    )] = False,
    save_media: Annotated[Optional[bool], typer.Option(
        "--save-media/--skip-media",
        help="Download media entries to the media folder (asks if not given)",
    )] = None,
):
    """Add a new entry."""
    new_entry = NewEntry(
        key=key,
        value=value,
        category=category or "",
        namespace=namespace or "",
        tags=list(tag or []),
        notes=notes,
        reference=reference,
        media_type=media_type,
    )

    with _open_service() as service:
        try:
            entry = service.add(new_entry)
        except DataError as e:
            _echo_state(new_entry.key, EntryState.REJECTED)
            _fail_data(e)
        except ServerError as e:
            typer.echo(f"Error: unable to add entry: {e}", err=True)
            if not (queue or typer.confirm("Save the entry to sync later?")):
                raise typer.Exit(1)
            try:
                service.save_for_sync(new_entry)
            except SyncQueueError as sync_error:
                _fail(f"unable to save entry for sync: {sync_error}")
            _echo_state(new_entry.key, EntryState.BUFFERED)
            if not _get_json_output():
                typer.echo(f"Entry {new_entry.key} saved for later sync.")
            return

        if _get_json_output():
            _echo_json({"state": EntryState.COMMITTED.value, "entry": entry.to_dict()})
        else:
            typer.echo("Entry added.")
            typer.echo(str(entry))

        if new_entry.category.lower() != MEDIA_CATEGORY:
            return
        if save_media is None:
            save_media = typer.confirm("Save this media locally?")
        if not save_media:
            return
        try:
            path = service.save_media(new_entry)
        except (NotAMediaFileError, MediaError) as e:
            _fail(f"unable to save media locally: {e}")
        if path is not None:
            typer.echo(f"Media saved to {path}", err=_get_json_output())


@app.command()
def get(
    id: Annotated[Optional[str], typer.Option("--id", help="Entry id")] = None,
    key: Annotated[Optional[str], typer.Option("--key", "-k", help="Entry key")] = None,
):
    """Show one entry by id or key."""
    if (id is None) == (key is None):
        _fail("Specify either --id or --key")

    with _open_service() as service:
        try:
            entry = service.get_by_id(id) if id is not None else service.get_by_key(key)
        except DataError as e:
            _fail_data(e)

    if entry is None:
        _fail(f"entry {id or key!r} not found")
    _echo_entry(entry)


@app.command()
def search(
    key: Annotated[str, typer.Option("--key", "-k", help="Substring of the key")] = "",
    keyword: Annotated[str, typer.Option(
        "--keyword", "-w", help="Words to find in tags",
    )] = "",
    category: Annotated[str, typer.Option("--category", "-c", help="Exact category")] = "",
    namespace: Annotated[str, typer.Option("--namespace", "-n", help="Exact namespace")] = "",
    limit: LimitOption = DEFAULT_LIMIT,
    offset: OffsetOption = 0,
):
    """Search entries by key, tag keywords, category or namespace."""
    query = QueryFilter(
        key=key, keyword=keyword, category=category,
        namespace=namespace, limit=limit, offset=offset,
    )
    with _open_service() as service:
        try:
            result = service.search(query)
        except DataError as e:
            _fail_data(e)

    if result is None:
        _fail("Specify at least one of --key, --keyword, --category or --namespace")
    _echo_search(result)


@app.command()
def update(
    id: Annotated[str, typer.Argument(help="Id of the entry to change")],
    key: Annotated[Optional[str], typer.Option("--key", "-k", help="New key")] = None,
    value: Annotated[Optional[str], typer.Option("--value", help="New value")] = None,
    category: CategoryOption = None,
    namespace: NamespaceOption = None,
    tag: Annotated[Optional[list[str]], typer.Option(
        "--tag", "-t", help="Replacement tags (repeatable)",
    )] = None,
    notes: Annotated[Optional[str], typer.Option("--notes", help="New notes")] = None,
    reference: Annotated[Optional[str], typer.Option(
        "--reference", "-r", help="New reference",
    )] = None,
    media_type: Annotated[Optional[str], typer.Option(
        "--media-type", help="New media type",
    )] = None,
):
    """Change fields of an existing entry."""
    changes = {
        "key": key,
        "value": value,
        "category": category,
        "namespace": namespace,
        "tags": list(tag) if tag else None,
        "notes": notes,
        "reference": reference,
        "media_type": media_type,
    }
    changes = {k: v for k, v in changes.items() if v is not None}
    if not changes:
        _fail("Nothing to update; give at least one field option")

    with _open_service() as service:
        try:
            entry = service.get_by_id(id)
            if entry is None:
                _fail(f"entry {id!r} not found")
            for field_name, field_value in changes.items():
                setattr(entry, field_name, field_value)
            service.update(entry)
            entry = service.get_by_id(id)
        except DataError as e:
            _fail_data(e)
        except NotFoundError as e:
            _fail(str(e))

    if not _get_json_output():
        typer.echo("Entry updated.")
    _echo_entry(entry)


@app.command()
def export(
    file: Annotated[Path, typer.Argument(help="YAML file to write")],
    category: Annotated[str, typer.Option("--category", "-c", help="Only this category")] = "",
    namespace: Annotated[str, typer.Option("--namespace", "-n", help="Only this namespace")] = "",
):
    """Write entries to a multi-document YAML file (importable again)."""
    entries: list[NewEntry] = []
    with _open_service() as service:
        offset = 0
        while True:
            page = service.list_all(QueryFilter(
                category=category, namespace=namespace,
                limit=MAX_LIMIT, offset=offset,
            ))
            entries.extend(e.to_new_entry() for e in page.items)
            offset += MAX_LIMIT
            if not page.items or offset >= page.total:
                break

    file.parent.mkdir(parents=True, exist_ok=True)
    file.write_text(dump_documents(entries), encoding="utf-8")

    if _get_json_output():
        _echo_json({"file": str(file), "exported": len(entries)})
    else:
        typer.echo(f"Exported {len(entries)} entries to {file}")


@app.command("import")
def import_entries(
    file: Annotated[Path, typer.Argument(help="YAML file to read")],
):
    """Add every entry of a multi-document YAML file."""
    if not file.exists():
        _fail(f"file not found: {file}")

    try:
        new_entries = parse_documents(file.read_text(encoding="utf-8"), source=str(file))
    except SyncQueueError as e:
        _fail(str(e))

    if not new_entries:
        typer.echo(f"No entries in {file}")
        return

    with _open_service() as service:
        try:
            result = service.import_batch(new_entries)
        except DataError as e:
            _fail_data(e)

    _echo_batch(result, "imported")
    if result.any_error():
        raise typer.Exit(1)


@app.command()
def sync():
    """Send entries saved for later to the remote service."""
    with _open_service() as service:
        try:
            result = service.sync()
        except ConfigurationError as e:
            _fail(str(e))
        except DataError as e:
            _fail_data(e)
        except SyncQueueError as e:
            _fail(str(e))

    if result is None:
        if _get_json_output():
            _echo_json({"ids": {}, "failed_keys": {}})
        else:
            typer.echo("Nothing to sync.")
        return

    _echo_batch(result, "synced")
    if result.any_error():
        raise typer.Exit(1)


@app.command()
def version():
    """Show the tidbits version."""
    typer.echo(f"tidbits {__version__}")


# -----------------------------------------------------------------------------
# Entry point
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
        log_path = log_exception(e, context="tidbits CLI")
        typer.echo(f"Error: {e}", err=True)
        typer.echo(f"Details logged to {log_path}", err=True)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
