# src/worldlog/cli.py
"""worldlog Command Line Interface.

Entry point for the worldlog CLI tool.
"""

from __future__ import annotations

import threading
from pathlib import Path

import typer
from pydantic import ValidationError

from worldlog import __version__
from worldlog.core.config import PurgeSettings, WorldlogSettings, load_settings

__all__ = ["app"]

app = typer.Typer(
    name="worldlog",
    help="worldlog: activity audit log storage control.",
    no_args_is_help=True,
)

# Seconds between completion checks while a purge runs in the background
_PURGE_POLL_SECONDS = 0.2


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"worldlog version {__version__}")
        raise typer.Exit()


def _load_dotenv(env_file: Path | None = None) -> bool:
    """Load WORLDLOG_* overrides from a .env file.

    Args:
        env_file: Explicit path to .env file. If None, searches for .env
                 in current directory and parent directories.

    Returns:
        True if .env was found and loaded, False otherwise.

    Raises:
        typer.Exit: If explicit env_file path doesn't exist.
    """
    from dotenv import load_dotenv

    if env_file is not None:
        if not env_file.exists():
            typer.secho(
                f"Error: .env file not found: {env_file}",
                fg=typer.colors.RED,
                err=True,
            )
            raise typer.Exit(1)
        return load_dotenv(env_file, override=False)

    return load_dotenv(override=False)  # Don't override existing env vars


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    no_dotenv: bool = typer.Option(
        False,
        "--no-dotenv",
        help="Skip loading .env file.",
    ),
    env_file: Path | None = typer.Option(
        None,
        "--env-file",
        help="Path to .env file (skips automatic search).",
        exists=False,  # Existence checked in _load_dotenv for a clearer message
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose/debug logging.",
    ),
    json_logs: bool = typer.Option(
        False,
        "--json-logs",
        help="Output structured JSON logs (for machine processing).",
    ),
) -> None:
    """worldlog: activity audit log storage control."""
    from worldlog.core.logging import configure_logging

    configure_logging(json_output=json_logs, level="DEBUG" if verbose else "INFO")

    if not no_dotenv:
        _load_dotenv(env_file=env_file)
    elif env_file is not None:
        typer.secho(
            "Warning: --env-file ignored because --no-dotenv is set.",
            fg=typer.colors.YELLOW,
            err=True,
        )


def _load_optional_settings(config_path: Path | None) -> WorldlogSettings | None:
    """Load settings from an explicit path, or settings.yaml when present.

    Raises:
        typer.Exit: If an explicit path is missing or any settings file is invalid.
    """
    explicit = config_path is not None
    path = config_path if config_path is not None else Path("settings.yaml")
    if not path.exists():
        if explicit:
            typer.echo(f"Error: Config file not found: {path}", err=True)
            raise typer.Exit(1)
        return None

    try:
        return load_settings(path)
    except ValidationError as e:
        typer.echo(f"Error: Invalid configuration in {path}:", err=True)
        for error in e.errors():
            location = ".".join(str(part) for part in error["loc"])
            typer.echo(f"  - {location}: {error['msg']}", err=True)
        raise typer.Exit(1) from None


def _missing_sqlite_file(db_url: str) -> Path | None:
    """Return the database path when db_url names a SQLite file that does not exist."""
    from sqlalchemy.engine import make_url

    url = make_url(db_url)
    if url.get_backend_name() != "sqlite" or not url.database or url.database == ":memory:":
        return None
    path = Path(url.database)
    return None if path.exists() else path


@app.command()
def purge(
    config_path: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to settings YAML file (default: ./settings.yaml when present).",
    ),
    database: str | None = typer.Option(
        None,
        "--database",
        "-d",
        help="Path to activity database file (SQLite). Overrides storage.url.",
    ),
    retention_days: int | None = typer.Option(
        None,
        "--retention-days",
        "-r",
        min=0,
        help="Delete activities older than this many days (default: from config or 90).",
    ),
    world: str | None = typer.Option(
        None,
        "--world",
        "-w",
        help="Only purge activities in this world.",
    ),
    actions: list[str] | None = typer.Option(
        None,
        "--action",
        "-a",
        help="Only purge these actions (repeatable).",
    ),
    limit: int | None = typer.Option(
        None,
        "--limit",
        min=1,
        help="Primary keys covered by one delete batch (default: from config).",
    ),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        help="Show what would be deleted without deleting.",
    ),
    yes: bool = typer.Option(
        False,
        "--yes",
        "-y",
        help="Skip confirmation prompt.",
    ),
) -> None:
    """Purge old activity records in bounded batches.

    Deletes matching activities one primary key window at a time, pausing
    between windows (purges.cycle_delay) so the store is never held for long.

    Examples:

        # See what would be deleted
        worldlog purge --dry-run --database ./worldlog.db

        # Delete activities older than 30 days in world "survival"
        worldlog purge -r 30 -w survival --yes --database ./worldlog.db
    """
    from sqlalchemy.exc import SQLAlchemyError

    from worldlog.contracts import PurgeCycleResult, PurgeResult
    from worldlog.core.scheduling import ThreadPoolScheduler
    from worldlog.purge import PurgeQueue
    from worldlog.storage import ActivityDB, ActivityQuery, ActivityStore

    config = _load_optional_settings(config_path)

    if database:
        db_path = Path(database).expanduser().resolve()
        # Fail fast on typoed paths instead of silently creating an empty DB
        if not db_path.exists():
            typer.echo(f"Error: Database file not found: {db_path}", err=True)
            raise typer.Exit(1)
        db_url = f"sqlite:///{db_path}"
    elif config is not None:
        db_url = config.storage.url
        missing = _missing_sqlite_file(db_url)
        if missing is not None:
            typer.echo(f"Error: Database file not found (settings): {missing}", err=True)
            raise typer.Exit(1)
        typer.echo(f"Using database from settings: {db_url}")
    else:
        typer.echo("Error: No settings.yaml found and --database not provided.", err=True)
        raise typer.Exit(1)

    purge_settings = config.purges if config is not None else PurgeSettings()
    if limit is not None:
        purge_settings = purge_settings.model_copy(update={"limit": limit})
    effective_retention_days = retention_days if retention_days is not None else purge_settings.retention_days

    query = ActivityQuery.older_than(effective_retention_days, world=world, actions=tuple(actions or ()))

    try:
        db = ActivityDB.from_url(db_url, create_tables=False)
    except Exception as e:
        typer.echo(f"Error connecting to database: {e}", err=True)
        raise typer.Exit(1) from None

    try:
        store = ActivityStore(db)
        try:
            matching = store.count_activities(query)
        except SQLAlchemyError as e:
            typer.echo(f"Error reading activities from {db_url}: {e}", err=True)
            raise typer.Exit(1) from None
        if matching == 0:
            typer.echo(f"No activities older than {effective_retention_days} days found.")
            return

        if dry_run:
            bounds = store.get_activities_pk_bounds(query)
            typer.echo(f"Would delete {matching} activit{'y' if matching == 1 else 'ies'} older than {effective_retention_days} days.")
            if bounds is not None:
                typer.echo(f"  Primary keys {bounds[0]} - {bounds[1]}, batches of {purge_settings.limit}")
            return

        if not yes:
            confirm = typer.confirm(f"Delete {matching} activities older than {effective_retention_days} days?")
            if not confirm:
                typer.echo("Aborted.")
                raise typer.Exit(1)

        finished = threading.Event()
        outcome: list[PurgeResult] = []

        def on_cycle(result: PurgeCycleResult) -> None:
            typer.echo(f"Purged {result.deleted} activities (keys {result.min_primary_key} - {result.max_primary_key})")

        def on_end(result: PurgeResult) -> None:
            outcome.append(result)
            finished.set()

        scheduler = ThreadPoolScheduler(name="worldlog-purge")
        purge_queue = PurgeQueue(store, purge_settings, scheduler, on_cycle=on_cycle, on_end=on_end)
        purge_queue.add(query)
        purge_queue.start()

        try:
            while not finished.wait(timeout=_PURGE_POLL_SECONDS):
                if not purge_queue.is_running:
                    break
        except KeyboardInterrupt:
            purge_queue.stop()
            typer.echo(f"\nPurge stopped after deleting {purge_queue.deleted} activities.", err=True)
            raise typer.Exit(130) from None
        finally:
            # Waits for an in-flight cycle, so a just-finished run has reported
            scheduler.shutdown(wait=True)

        if not outcome:
            typer.echo(
                f"Error: Purge stopped before completion after deleting {purge_queue.deleted} activities. See log for details.",
                err=True,
            )
            raise typer.Exit(1)

        typer.echo(f"Purge completed: {outcome[0].deleted} activities deleted.")
    finally:
        db.close()


if __name__ == "__main__":
    app()
