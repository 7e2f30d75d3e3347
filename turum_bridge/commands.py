# turum_bridge/commands.py
# Entry points for cron: `flask --app turum_bridge check-reservations` every 30 minutes,
# `flask --app turum_bridge sync-products` every 2 hours.
import click

from .config import TURUM
from .deps import get_db, get_shopify, get_turum
from .services.catalog import CatalogSynchronizer
from .services.stale import StaleProductDrafter
from .services.tracking import TrackingPoller


def register_commands(app):
    @app.cli.command("sync-products")
    def sync_products():
        """Sync products from Turum to Shopify and draft delisted ones."""
        report = CatalogSynchronizer(get_shopify(), get_turum()).run()
        click.echo(f"Created {report.created}, updated {report.updated}, skipped {report.skipped}, "
                   f"failed {report.failed}, failed batches {report.failed_batches}, drafted {report.drafted}.")
        if not report.feed_ok:
            raise click.ClickException("Failed to fetch products from Turum.")

    @app.cli.command("check-reservations")
    def check_reservations():
        """Poll Turum reservations and push tracking to Shopify."""
        db = get_db()
        try:
            report = TrackingPoller(db, get_shopify(), get_turum()).run()
        finally:
            db.close()
        click.echo(f"Checked {report.checked}, updated {report.updated}, "
                   f"fulfilled {report.fulfilled}, errors {report.errors}.")

    @app.cli.command("draft-stale-product")
    @click.argument("sku")
    def draft_stale_product(sku):
        """Draft one SKU on Shopify if Turum no longer lists it."""
        drafted = StaleProductDrafter(get_shopify(), TURUM["vendor"]).draft_if_missing(sku, get_turum())
        click.echo(f"SKU {sku}: {'drafted' if drafted else 'left as is'}.")
