"""CLI entry point: avatarwatch serve / sync / stop / purge / stats / reset."""

import logging

import click

from avatarwatch import config


@click.group()
@click.option("--verbose", "-v", is_flag=True, default=False, help="Enable debug logging.")
def cli(verbose: bool):
    """avatarwatch: monitor streaming-avatar sessions."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@cli.command()
@click.option("--host", default="127.0.0.1", show_default=True, help="Interface to bind.")
@click.option("--port", default=config.SERVER_PORT, show_default=True, type=int, help="Port to listen on.")
@click.option("--no-sync", is_flag=True, default=False, help="Don't start the background reconciliation worker.")
def serve(host: str, port: int, no_sync: bool):
    """Start the dashboard server."""
    from avatarwatch.app import launch

    click.echo(f"Starting server on http://{host}:{port} (db: {config.DB_PATH})")
    launch(host=host, port=port, sync=not no_sync)


@cli.command()
def sync():
    """Run one reconciliation pass against the provider."""
    from avatarwatch.heygen import HeyGenClient
    from avatarwatch.sync import reconcile

    stats = reconcile(HeyGenClient())
    if stats["skipped"]:
        click.echo(f"Skipped: {stats['reason']}")
        return
    click.echo(
        f"Done. {stats['checked']} running sessions checked, "
        f"{stats['completed']} completed, {stats['synced']} synced, "
        f"{stats['messages']} new messages ({stats['errors']} errors)."
    )


@cli.command()
@click.argument("session_id")
def stop(session_id: str):
    """Stop a live session at the provider and mark it completed."""
    from avatarwatch.heygen import HeyGenClient
    from avatarwatch.sessions import SessionNotFound, stop_session

    try:
        result = stop_session(session_id, HeyGenClient())
    except SessionNotFound as exc:
        raise click.ClickException(str(exc)) from exc
    if result.get("status") == "error":
        click.echo(f"Provider error: {result.get('message')}")
    click.echo(f"Session {session_id} marked completed.")


@cli.command()
def purge():
    """Hard delete sessions past the trash retention window."""
    from avatarwatch.sessions import purge_trash

    n = purge_trash()
    click.echo(f"Purged {n} sessions older than {config.TRASH_RETENTION_DAYS} days from the trash.")


@cli.command()
@click.option(
    "--range",
    "range_",
    default="7days",
    show_default=True,
    type=click.Choice(["yesterday", "7days", "14days", "30days"]),
    help="Date range preset.",
)
def stats(range_: str):
    """Print dashboard totals for a date range."""
    from avatarwatch.stats import date_range, summary

    start, end = date_range(range_)
    s = summary(start, end)
    click.echo(f"{s['start'][:10]} .. {s['end'][:10]}")
    click.echo(f"  Sessions:          {s['total_sessions']}")
    click.echo(f"  Messages:          {s['total_messages']}")
    click.echo(f"  Avg messages:      {s['avg_messages_per_session']}")
    click.echo(f"  Avg duration (m):  {s['avg_duration_minutes']}")
    click.echo(f"  Relevant:          {s['relevant_sessions']}")
    click.echo(f"  Running:           {s['running_sessions']}")


@cli.command()
@click.confirmation_option(prompt="Delete the local database?")
def reset():
    """Delete the local database."""
    from avatarwatch.db import reset_connections

    reset_connections()
    db_path = config.DB_PATH
    if db_path.exists():
        db_path.unlink()
        for suffix in ("-wal", "-shm"):
            sidecar = db_path.with_name(db_path.name + suffix)
            if sidecar.exists():
                sidecar.unlink()
        click.echo(f"Deleted {db_path}")
    else:
        click.echo("No database to reset.")


if __name__ == "__main__":
    cli()
