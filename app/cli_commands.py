"""
Flask CLI commands for store operations.

Commands:
- flask init-db: Create database tables
- flask cleanup-expired-carts: Delete cart rows past their expiry
- flask reconciliation-gaps: List payments that have no local order
"""

import click
from datetime import datetime, timedelta
from app.database import get_session, create_all
from app.models import WebhookEvent, WebhookEventStatus
from app.services.cart_repository import CartRepository


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create every table that does not exist yet."""
        create_all()
        click.echo(click.style('Database tables created.', fg='green'))

    @app.cli.command('cleanup-expired-carts')
    @click.option('--older-than-hours', type=int, default=0,
                  help='Only delete rows that expired at least this many hours ago')
    def cleanup_expired_carts(older_than_hours):
        """Garbage-collect abandoned cart rows."""
        cutoff = datetime.now() - timedelta(hours=older_than_hours)
        deleted = CartRepository.delete_expired(get_session(), cutoff)
        click.echo(f'Deleted {deleted} expired cart item(s).')

    @app.cli.command('reconciliation-gaps')
    @click.option('--limit', type=int, default=50, help='Maximum number of events to show')
    def reconciliation_gaps(limit):
        """Payments taken by the provider that could not be turned into orders."""
        events = (
            get_session().query(WebhookEvent)
            .filter(WebhookEvent.status.in_([
                WebhookEventStatus.UNRESOLVED.value,
                WebhookEventStatus.FAILED.value,
            ]))
            .order_by(WebhookEvent.received_at.desc())
            .limit(limit)
            .all()
        )

        if not events:
            click.echo(click.style('No reconciliation gaps.', fg='green'))
            return

        click.echo(click.style(f'{len(events)} payment(s) need attention:', fg='red', bold=True))
        for event in events:
            received = event.received_at.isoformat() if event.received_at else '-'
            click.echo(f'  [{event.status}] payment {event.resource_id} received {received}: {event.error or ""}')
