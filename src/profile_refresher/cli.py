"""Typer CLI for profile-refresher workflows."""

from __future__ import annotations

from datetime import datetime, timezone
import json

import typer

from . import __version__
from .config import (
    config_to_dict,
    init_default_config,
    load_runtime_config,
    load_runtime_config_or_default,
    resolve_config_path,
    resolve_db_path,
)
from .contacts import contact_to_dict, load_contact_snapshot
from .diagnostics.events import STATUS_COMPLETED, STATUS_SKIPPED, read_refresh_events
from .errors import ConfigError, DiagnosticsError, SchedulerError, SelectionError, SnapshotError, StoreError
from .logging import configure_logging
from .scheduler.selection import CandidateSelector
from .scheduler.throttle import ThrottleGate
from .store.sqlite import SQLiteKeyValueStore

app = typer.Typer(help="Routine contact profile refresh scheduler.")

config_app = typer.Typer(help="Config commands.")

app.add_typer(config_app, name="config")

_PATH_HELP = "Optional config TOML path (defaults to platform config dir)."
_DB_HELP = "Optional state database path (overrides storage.db_path)."


@config_app.command("init")
def config_init(
    path: str | None = typer.Option(None, "--path", help=_PATH_HELP),
    force: bool = typer.Option(False, "--force", help="Overwrite existing config file."),
) -> None:
    try:
        written_path = init_default_config(path, force=force)
    except ConfigError as exc:
        typer.secho(f"Config init failed: {exc}", err=True, fg=typer.colors.RED)
        raise typer.Exit(2) from exc

    typer.echo(f"Wrote default config to {written_path}")


@config_app.command("show")
def config_show(
    path: str | None = typer.Option(None, "--path", help=_PATH_HELP),
    as_json: bool = typer.Option(False, "--json", help="Render resolved config as JSON."),
) -> None:
    resolved_path = resolve_config_path(path)
    try:
        config = load_runtime_config(path)
    except ConfigError as exc:
        typer.secho(f"Config show failed: {exc}", err=True, fg=typer.colors.RED)
        raise typer.Exit(2) from exc

    payload = {
        "path": str(resolved_path),
        "config": config_to_dict(config),
    }
    if as_json:
        typer.echo(json.dumps(payload, indent=2, sort_keys=True))
        return

    typer.echo(f"Resolved config path: {payload['path']}")
    typer.echo(f"Cooldown: {config.refresh.cooldown_hours}h")
    typer.echo(f"Max contacts per pass: {config.refresh.max_contacts_per_pass}")
    typer.echo(f"Concurrency: {config.refresh.concurrency}")


@app.command("status")
def status(
    path: str | None = typer.Option(None, "--path", help=_PATH_HELP),
    db: str | None = typer.Option(None, "--db", help=_DB_HELP),
    as_json: bool = typer.Option(False, "--json", help="Render throttle status as JSON."),
) -> None:
    """Show when the last pass was triggered and how long until the next may start."""
    try:
        config = load_runtime_config_or_default(path)
        with SQLiteKeyValueStore(resolve_db_path(config, db)) as store:
            gate = ThrottleGate(store, min_interval=config.refresh.cooldown)
            last_triggered = gate.last_triggered_at()
            remaining = gate.time_remaining()
    except (ConfigError, StoreError) as exc:
        typer.secho(f"Status failed: {exc}", err=True, fg=typer.colors.RED)
        raise typer.Exit(2) from exc

    payload = {
        "last_triggered_at": last_triggered.isoformat() if last_triggered else None,
        "seconds_remaining": round(remaining.total_seconds(), 3),
        "eligible": remaining.total_seconds() <= 0,
    }
    if as_json:
        typer.echo(json.dumps(payload, indent=2, sort_keys=True))
        return

    typer.echo(f"Last triggered: {payload['last_triggered_at'] or 'never'}")
    if payload["eligible"]:
        typer.echo("Next pass: eligible now")
    else:
        typer.echo(f"Next pass in: {payload['seconds_remaining']}s")


@app.command("plan")
def plan(
    snapshot: str = typer.Argument(..., help="Contact snapshot JSON file."),
    path: str | None = typer.Option(None, "--path", help=_PATH_HELP),
    as_json: bool = typer.Option(False, "--json", help="Render selected contacts as JSON."),
) -> None:
    """Dry-run candidate selection for a snapshot without fetching or touching state."""
    try:
        config = load_runtime_config_or_default(path)
        loaded = load_contact_snapshot(snapshot)
        if not loaded.local_identity_id:
            raise SnapshotError("Snapshot has no local_identity_id; selection needs the local identity.")
        selector = CandidateSelector(config.refresh)
        selected = list(
            selector.select(
                loaded.contacts,
                loaded.local_identity_id,
                now=datetime.now(timezone.utc),
            )
        )
    except (ConfigError, SnapshotError, SelectionError, SchedulerError) as exc:
        typer.secho(f"Plan failed: {exc}", err=True, fg=typer.colors.RED)
        raise typer.Exit(2) from exc

    if as_json:
        payload = {
            "limit": selector.limit,
            "selected": [contact_to_dict(contact) for contact in selected],
        }
        typer.echo(json.dumps(payload, indent=2, sort_keys=True))
        return

    typer.echo(f"Selected {len(selected)} of at most {selector.limit} contact(s)")
    for contact in selected:
        typer.echo(f"- {contact.id}")


@app.command("reset")
def reset(
    path: str | None = typer.Option(None, "--path", help=_PATH_HELP),
    db: str | None = typer.Option(None, "--db", help=_DB_HELP),
) -> None:
    """Forget the last triggered time so the next pass may start immediately."""
    try:
        config = load_runtime_config_or_default(path)
        with SQLiteKeyValueStore(resolve_db_path(config, db)) as store:
            ThrottleGate(store, min_interval=config.refresh.cooldown).reset()
    except (ConfigError, StoreError) as exc:
        typer.secho(f"Reset failed: {exc}", err=True, fg=typer.colors.RED)
        raise typer.Exit(2) from exc

    typer.echo("Cleared last triggered time")


@app.command("history")
def history(
    events: str = typer.Argument(..., help="Refresh event JSONL file."),
    limit: int = typer.Option(20, "--limit", min=1, help="Show at most this many recent passes."),
    as_json: bool = typer.Option(False, "--json", help="Render events as JSON."),
) -> None:
    """Show recent refresh passes recorded in an event log."""
    try:
        recorded = read_refresh_events(events, limit=limit)
    except DiagnosticsError as exc:
        typer.secho(f"History failed: {exc}", err=True, fg=typer.colors.RED)
        raise typer.Exit(2) from exc

    if as_json:
        typer.echo(json.dumps([event.to_dict() for event in recorded], indent=2, sort_keys=True))
        return

    if not recorded:
        typer.echo("No refresh passes recorded")
        return
    for event in recorded:
        if event.status == STATUS_COMPLETED:
            detail = f"refreshed {event.succeeded} of {event.attempted}"
            if event.timed_out:
                detail += f" ({event.timed_out} timed out)"
        elif event.status == STATUS_SKIPPED:
            detail = event.skipped_reason
        else:
            detail = event.error
        typer.echo(f"{event.occurred_at.isoformat()} {event.status}: {detail}")


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: bool = typer.Option(False, "--version", help="Show profile-refresher version and exit."),
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging."),
) -> None:
    configure_logging(debug=debug)
    if version:
        typer.echo(__version__)
        raise typer.Exit()
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())

