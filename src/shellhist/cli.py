"""
CLI entry point for shellhist.

This module provides the Typer-based command-line interface for inspecting
and maintaining a history database outside of a line editor.

Commands:
    add          Record a command with optional metadata
    search       Search the history with filters, bounds and direction
    show         Show one history item
    delete       Delete one history item
    count        Count matching history items
    new-session  Allocate a new session id

Architecture Note:
    The CLI is intentionally thin - it parses arguments and delegates to
    SqliteBackedHistory. The database path is taken from --db, then
    SHELLHIST_DB, then the --config file, then the default location.
"""

import json
import logging
import traceback
from datetime import datetime, timedelta
from pathlib import Path
from typing import Annotated, Any, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from shellhist import __version__
from shellhist.errors import ShellHistError
from shellhist.schema import (
    INT64_MAX,
    INT64_MIN,
    CommandLineSearch,
    HistoryItem,
    SearchDirection,
    SearchFilter,
    SearchQuery,
    StoreConfig,
    load_config,
)
from shellhist.store import SqliteBackedHistory

DEFAULT_DB_PATH = Path("~/.local/share/shellhist/history.sqlite3")

# Initialize Typer app with metadata
app = typer.Typer(
    name="shellhist",
    help="Inspect and maintain a persistent shell history.",
    add_completion=False,
    no_args_is_help=True,
)

# Rich console for formatted output
console = Console()

DbOption = Annotated[
    Optional[Path],
    typer.Option(
        "--db",
        help="Path to the history database.",
        envvar="SHELLHIST_DB",
    ),
]
ConfigOption = Annotated[
    Optional[Path],
    typer.Option(
        "--config",
        "-c",
        help="Path to a store configuration YAML file.",
        exists=True,
        readable=True,
        resolve_path=True,
    ),
]
JsonOption = Annotated[
    bool,
    typer.Option(
        "--json",
        help="Output results in JSON format.",
    ),
]
DebugOption = Annotated[
    bool,
    typer.Option(
        "--debug",
        help="Log SQL statements and show full error tracebacks.",
    ),
]


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold]shellhist[/bold] version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        Optional[bool],
        typer.Option(
            "--version",
            "-v",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """
    shellhist - Persistent shell command history.
    """
    pass


# =============================================================================
# Helpers
# =============================================================================


def _setup_logging(debug: bool) -> None:
    if debug:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        )


def _open_history(db: Optional[Path], config_path: Optional[Path]) -> SqliteBackedHistory:
    """Open the history database selected by the CLI options."""
    config = load_config(config_path) if config_path else StoreConfig()
    if db is not None:
        path = db.expanduser()
    elif config.path is not None:
        path = config.path.expanduser() if not config.in_memory else config.path
    else:
        path = DEFAULT_DB_PATH.expanduser()
    return SqliteBackedHistory(path, config=config)


def _fail(error: Exception, json_output: bool, debug: bool) -> None:
    """Report an error and exit with code 1."""
    if json_output:
        if isinstance(error, ShellHistError):
            payload = error.to_dict()
        else:
            payload = {"error_type": type(error).__name__, "message": str(error)}
        if debug:
            payload["traceback"] = traceback.format_exc()
        print(json.dumps({"success": False, "error": payload}, indent=2))
    else:
        console.print(f"[red]Error: {escape(str(error))}[/red]")
        if debug:
            console.print(f"[dim]{traceback.format_exc()}[/dim]")
    raise typer.Exit(code=1)


def _item_to_dict(item: HistoryItem) -> dict[str, Any]:
    return {
        "id": int(item.id) if item.id is not None else None,
        "command_line": item.command_line,
        "start_timestamp": item.start_timestamp.isoformat() if item.start_timestamp else None,
        "session_id": int(item.session_id) if item.session_id is not None else None,
        "hostname": item.hostname,
        "cwd": item.cwd,
        "duration_ms": (
            item.duration // timedelta(milliseconds=1) if item.duration is not None else None
        ),
        "exit_status": item.exit_status,
        "more_info": item.more_info.to_json() if item.more_info is not None else None,
    }


def _build_filter(
    exact: Optional[str],
    prefix: Optional[str],
    contains: Optional[str],
    exclude: Optional[str] = None,
    hostname: Optional[str] = None,
    cwd: Optional[str] = None,
    cwd_prefix: Optional[str] = None,
    success: Optional[bool] = None,
) -> SearchFilter:
    given = [v for v in (exact, prefix, contains) if v is not None]
    if len(given) > 1:
        raise typer.BadParameter("Use only one of --exact, --prefix and --contains.")

    command_line = None
    if exact is not None:
        command_line = CommandLineSearch.exact(exact)
    elif prefix is not None:
        command_line = CommandLineSearch.prefix(prefix)
    elif contains is not None:
        command_line = CommandLineSearch.substring(contains)

    return SearchFilter(
        command_line=command_line,
        not_command_line=exclude,
        hostname=hostname,
        cwd_exact=cwd,
        cwd_prefix=cwd_prefix,
        exit_successful=success,
    )


# =============================================================================
# Commands
# =============================================================================


@app.command()
def add(
    command_line: Annotated[str, typer.Argument(help="The command line to record.")],
    cwd: Annotated[
        Optional[str],
        typer.Option("--cwd", help="Working directory the command ran in."),
    ] = None,
    hostname: Annotated[
        Optional[str],
        typer.Option("--hostname", help="Host the command ran on."),
    ] = None,
    session: Annotated[
        Optional[int],
        typer.Option("--session", help="Session id from new-session."),
    ] = None,
    exit_status: Annotated[
        Optional[int],
        typer.Option(
            "--exit-status",
            help="Exit code of the command.",
            min=INT64_MIN,
            max=INT64_MAX,
        ),
    ] = None,
    duration_ms: Annotated[
        Optional[int],
        typer.Option("--duration-ms", help="How long the command took.", min=0),
    ] = None,
    started: Annotated[
        Optional[datetime],
        typer.Option("--started", help="When the command started (ISO 8601)."),
    ] = None,
    db: DbOption = None,
    config: ConfigOption = None,
    json_output: JsonOption = False,
    debug: DebugOption = False,
) -> None:
    """
    Record a command.

    Example:
        $ shellhist add "make test" --cwd ~/src/app --exit-status 0
    """
    _setup_logging(debug)
    try:
        with _open_history(db, config) as history:
            item = history.save(
                HistoryItem(
                    command_line=command_line,
                    start_timestamp=started,
                    session_id=history.session_id(session) if session is not None else None,
                    hostname=hostname,
                    cwd=cwd,
                    duration=(
                        timedelta(milliseconds=duration_ms) if duration_ms is not None else None
                    ),
                    exit_status=exit_status,
                )
            )
    except ShellHistError as e:
        _fail(e, json_output, debug)

    if json_output:
        print(json.dumps({"success": True, "item": _item_to_dict(item)}, indent=2))
    else:
        console.print(f"[green]Recorded[/green] #{item.id}: {escape(item.command_line)}")


@app.command()
def search(
    exact: Annotated[
        Optional[str],
        typer.Option("--exact", help="Command line equals this text."),
    ] = None,
    prefix: Annotated[
        Optional[str],
        typer.Option("--prefix", "-p", help="Command line starts with this text."),
    ] = None,
    contains: Annotated[
        Optional[str],
        typer.Option("--contains", "-s", help="Command line contains this text."),
    ] = None,
    exclude: Annotated[
        Optional[str],
        typer.Option("--not", help="Skip commands equal to this text."),
    ] = None,
    hostname: Annotated[
        Optional[str],
        typer.Option("--hostname", help="Only commands run on this host."),
    ] = None,
    cwd: Annotated[
        Optional[str],
        typer.Option("--cwd", help="Only commands run in this directory."),
    ] = None,
    cwd_prefix: Annotated[
        Optional[str],
        typer.Option("--cwd-prefix", help="Only commands run below this directory."),
    ] = None,
    success: Annotated[
        Optional[bool],
        typer.Option(
            "--success/--failure",
            help="Only commands that exited with zero / non-zero status.",
            show_default=False,
        ),
    ] = None,
    session: Annotated[
        Optional[int],
        typer.Option("--session", help="Only commands from this session."),
    ] = None,
    backward: Annotated[
        bool,
        typer.Option("--backward", "-b", help="Newest first."),
    ] = False,
    start_id: Annotated[
        Optional[int],
        typer.Option("--start-id", help="Begin after this id (exclusive)."),
    ] = None,
    end_id: Annotated[
        Optional[int],
        typer.Option("--end-id", help="Stop at this id (inclusive)."),
    ] = None,
    start_time: Annotated[
        Optional[datetime],
        typer.Option("--start-time", help="Begin after this time (exclusive)."),
    ] = None,
    end_time: Annotated[
        Optional[datetime],
        typer.Option("--end-time", help="Stop at this time (inclusive)."),
    ] = None,
    limit: Annotated[
        Optional[int],
        typer.Option(
            "--limit",
            "-n",
            help="Maximum number of items to show.",
            min=0,
            max=INT64_MAX,
        ),
    ] = None,
    db: DbOption = None,
    config: ConfigOption = None,
    json_output: JsonOption = False,
    debug: DebugOption = False,
) -> None:
    """
    Search the history.

    Bounds are read in the scan direction: with --backward, --start-id is
    the newest id and the scan moves towards --end-id.

    Example:
        $ shellhist search --prefix git --cwd-prefix ~/src --backward -n 20
    """
    _setup_logging(debug)
    flt = _build_filter(exact, prefix, contains, exclude, hostname, cwd, cwd_prefix, success)
    try:
        with _open_history(db, config) as history:
            if session is not None:
                flt = flt.model_copy(update={"session_id": history.session_id(session)})
            query = SearchQuery(
                direction=SearchDirection.BACKWARD if backward else SearchDirection.FORWARD,
                start_time=start_time,
                end_time=end_time,
                start_id=history.item_id(start_id) if start_id is not None else None,
                end_id=history.item_id(end_id) if end_id is not None else None,
                limit=limit,
                filter=flt,
            )
            items = history.search(query)
    except ShellHistError as e:
        _fail(e, json_output, debug)

    if json_output:
        print(json.dumps({"items": [_item_to_dict(i) for i in items]}, indent=2))
        return

    if not items:
        console.print("[dim]No matching history items.[/dim]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("ID", style="cyan", justify="right")
    table.add_column("Started")
    table.add_column("Exit", justify="right")
    table.add_column("Cwd")
    table.add_column("Command")

    for item in items:
        if item.exit_status is None:
            exit_display = "[dim]-[/dim]"
        elif item.exit_status == 0:
            exit_display = "[green]0[/green]"
        else:
            exit_display = f"[red]{item.exit_status}[/red]"

        table.add_row(
            str(item.id),
            item.start_timestamp.isoformat()[:19] if item.start_timestamp else "",
            exit_display,
            escape(item.cwd or ""),
            escape(item.command_line),
        )

    console.print(table)


@app.command()
def show(
    item_id: Annotated[int, typer.Argument(help="Id of the history item.")],
    db: DbOption = None,
    config: ConfigOption = None,
    json_output: JsonOption = False,
    debug: DebugOption = False,
) -> None:
    """
    Show one history item.

    Example:
        $ shellhist show 42
    """
    _setup_logging(debug)
    try:
        with _open_history(db, config) as history:
            item = history.load(history.item_id(item_id))
    except ShellHistError as e:
        _fail(e, json_output, debug)

    data = _item_to_dict(item)
    if json_output:
        print(json.dumps(data, indent=2))
        return

    for key, value in data.items():
        shown = escape(str(value)) if value is not None else "[dim]-[/dim]"
        console.print(f"[bold]{key}:[/bold] {shown}")


@app.command()
def delete(
    item_id: Annotated[int, typer.Argument(help="Id of the history item.")],
    db: DbOption = None,
    config: ConfigOption = None,
    json_output: JsonOption = False,
    debug: DebugOption = False,
) -> None:
    """
    Delete one history item.

    Example:
        $ shellhist delete 42
    """
    _setup_logging(debug)
    try:
        with _open_history(db, config) as history:
            history.delete(history.item_id(item_id))
    except ShellHistError as e:
        _fail(e, json_output, debug)

    if json_output:
        print(json.dumps({"success": True, "deleted": item_id}))
    else:
        console.print(f"[green]Deleted[/green] #{item_id}")


@app.command()
def count(
    exact: Annotated[
        Optional[str],
        typer.Option("--exact", help="Command line equals this text."),
    ] = None,
    prefix: Annotated[
        Optional[str],
        typer.Option("--prefix", "-p", help="Command line starts with this text."),
    ] = None,
    contains: Annotated[
        Optional[str],
        typer.Option("--contains", "-s", help="Command line contains this text."),
    ] = None,
    hostname: Annotated[
        Optional[str],
        typer.Option("--hostname", help="Only commands run on this host."),
    ] = None,
    cwd_prefix: Annotated[
        Optional[str],
        typer.Option("--cwd-prefix", help="Only commands run below this directory."),
    ] = None,
    success: Annotated[
        Optional[bool],
        typer.Option(
            "--success/--failure",
            help="Only commands that exited with zero / non-zero status.",
            show_default=False,
        ),
    ] = None,
    db: DbOption = None,
    config: ConfigOption = None,
    json_output: JsonOption = False,
    debug: DebugOption = False,
) -> None:
    """
    Count matching history items.

    Example:
        $ shellhist count --prefix docker --failure
    """
    _setup_logging(debug)
    flt = _build_filter(
        exact, prefix, contains, hostname=hostname, cwd_prefix=cwd_prefix, success=success
    )
    try:
        with _open_history(db, config) as history:
            total = history.count(SearchQuery(filter=flt))
    except ShellHistError as e:
        _fail(e, json_output, debug)

    if json_output:
        print(json.dumps({"count": total}))
    else:
        console.print(str(total))


@app.command("new-session")
def new_session(
    db: DbOption = None,
    config: ConfigOption = None,
    json_output: JsonOption = False,
    debug: DebugOption = False,
) -> None:
    """
    Allocate a session id for a new shell.

    Example:
        $ export SHELLHIST_SESSION=$(shellhist new-session)
    """
    _setup_logging(debug)
    try:
        with _open_history(db, config) as history:
            session_id = history.new_session_id()
    except ShellHistError as e:
        _fail(e, json_output, debug)

    if json_output:
        print(json.dumps({"session_id": int(session_id)}))
    else:
        console.print(str(session_id))


if __name__ == "__main__":
    app()
