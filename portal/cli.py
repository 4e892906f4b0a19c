"""CLI tools for portal administration."""

import asyncio
import shelve
from uuid import UUID

import click

from portal.core.config import settings
from portal.core.security import create_session_token
from portal.db.models import Board, User
from portal.db.session import SessionLocal


@click.group()
def cli():
    """Support portal CLI tools."""
    pass


@cli.command()
@click.option("--email", required=True, help="Email of an existing user")
def issue_token(email: str):
    """
    Print a session token for an existing user.

    Example:
        python -m portal.cli issue-token --email admin@example.com
    """
    db = SessionLocal()
    try:
        user = db.query(User).filter(User.email == email.lower().strip()).first()
        if not user:
            click.echo(f"❌ No user with email {email}")
            raise SystemExit(1)
        if not user.is_active:
            click.echo(f"❌ User {email} is disabled")
            raise SystemExit(1)
        token = create_session_token(user.id, user.role, user.account_id, user.token_version)
        click.echo(token)
    finally:
        db.close()


@cli.command()
def check_linear():
    """Verify LINEAR_API_KEY by fetching the Linear viewer."""
    from portal.core.errors import PortalError
    from portal.services.linear_gateway import build_gateway

    try:
        viewer = asyncio.run(build_gateway().viewer())
    except PortalError as e:
        click.echo(f"❌ Linear connection failed: {e.message}")
        raise SystemExit(1)
    click.echo(f"✓ Connected to Linear as {viewer.get('name')} <{viewer.get('email')}>")


@cli.command()
@click.option("--board-id", required=True, help="Board to watch")
@click.option("--state-file", default=".portal-activity", help="Seen-state file (shelve)")
@click.option("--limit", default=20, show_default=True, help="Feed size")
@click.option("--once", is_flag=True, help="Poll once, print and exit")
@click.option("--read-all", "read_all", is_flag=True, help="Mark the printed feed as read")
def watch_activity(board_id: str, state_file: str, limit: int, once: bool, read_all: bool):
    """
    Follow a board's activity feed in the terminal.

    Seen ids and the read watermark persist in STATE_FILE between runs.
    """
    from portal.services.activity_service import ActivityAggregator, ActivityPoller
    from portal.services.linear_gateway import build_gateway
    from portal.services.seen_state_service import KeyValueSeenStateStore
    from portal.services.ticket_cache import BoardScope

    db = SessionLocal()
    try:
        board = db.get(Board, UUID(board_id))
        if not board:
            click.echo(f"❌ Board {board_id} not found")
            raise SystemExit(1)
        scope = BoardScope(
            board_id=str(board.id), team_id=board.team_id, project_id=board.project_id
        )
    finally:
        db.close()

    with shelve.open(state_file) as storage:
        store = KeyValueSeenStateStore(storage)
        aggregator = ActivityAggregator(
            build_gateway(), store, scope.board_id, scope.issue_filter, limit=limit
        )

        def print_feed(items):
            unread = aggregator.unread_ids()
            click.echo(f"--- {len(items)} items, {len(unread)} unread ---")
            for item in items:
                marker = "*" if item.id in unread else " "
                line = f"{marker} {item.created_at} {item.issue_identifier} [{item.type.value}]"
                if item.body:
                    line += f" {item.body[:80]}"
                click.echo(line)
            if read_all:
                aggregator.read_all()

        poller = ActivityPoller(
            aggregator,
            interval=settings.ACTIVITY_POLL_INTERVAL_SECONDS,
            on_update=print_feed,
        )

        if once:
            ok = asyncio.run(poller.poll_once())
            if not ok:
                click.echo("❌ Poll failed")
                raise SystemExit(1)
            return

        try:
            asyncio.run(poller.run())
        except KeyboardInterrupt:
            click.echo("Stopped.")


if __name__ == "__main__":
    cli()
