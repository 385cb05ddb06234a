"""
Flask CLI commands for database setup and invoice repair.

Commands:
- flask init-db: Create all tables
- flask resync-invoices: Rebuild invoice items from the current order lines
"""

import click
from app.database import create_schema, get_session
from app.services.invoice_sync_service import resync_invoices


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create the database schema (idempotent)."""
        create_schema()
        click.echo(click.style('✅ Database schema created', fg='green'))

    @app.cli.command('resync-invoices')
    @click.option('--restaurant-id', type=int, default=None, help='Only invoices of this restaurant')
    @click.option('--order-id', 'order_ids', multiple=True, help='Only these orders (repeatable)')
    def resync_invoices_command(restaurant_id, order_ids):
        """Rebuild invoices of edited orders, one order at a time."""
        results = resync_invoices(get_session(), restaurant_id=restaurant_id, order_ids=order_ids)

        click.echo(click.style(f"✅ Rebuilt: {len(results['success'])}", fg='green'))
        for entry in results['skipped']:
            click.echo(click.style(f"⏭  Skipped {entry['order_id']}: {entry['reason']}", fg='yellow'))
        for entry in results['failed']:
            click.echo(click.style(f"❌ Failed {entry['order_id']}: {entry['error']}", fg='red'))

        if results['failed']:
            raise SystemExit(1)
