# stocklink/cli/run_sync.py
import asyncio
import logging
import sys
from datetime import datetime

import click

from stocklink.core.config import get_settings
from stocklink.core.logging_config import configure_logging
from stocklink.database import create_engine, create_session_factory
from stocklink.scheduler import create_scheduler
from stocklink.services.sync_service import run_sync_once

logger = logging.getLogger(__name__)


@click.group()
def cli():
    """Keep Shopify and Etsy stock levels in step."""
    pass


@cli.command()
@click.option('--shop', default=None, help='Shopify shop domain (defaults to SHOPIFY_SHOP_URL)')
@click.option('--debug', is_flag=True, help='Enable debug logging')
def run(shop, debug):
    """Run a single sync pass."""
    settings = get_settings()
    configure_logging("DEBUG" if debug else settings.LOG_LEVEL)
    shop_domain = shop or settings.SHOPIFY_SHOP_URL
    if not shop_domain:
        raise click.UsageError("--shop is required when SHOPIFY_SHOP_URL is not set")

    start_time = datetime.now()
    logger.info(f"Starting sync for {shop_domain} at {start_time}")
    result = asyncio.run(run_sync_once(shop_domain, settings=settings))

    click.echo(f"\nSync {'completed' if result.success else 'FAILED'} in {datetime.now() - start_time}")
    for stage, counts in result.stages.items():
        click.echo(f"  {stage}: {counts}")
    if result.failed_stage:
        click.echo(f"Stopped at {result.failed_stage}: {result.error}", err=True)
    for applied in result.applied:
        if applied["attempted"] and not applied["succeeded"]:
            click.echo(f"Every write to {applied['platform']} failed", err=True)

    if not result.success:
        sys.exit(1)


@cli.command()
@click.option('--shop', default=None, help='Shopify shop domain (defaults to SHOPIFY_SHOP_URL)')
@click.option('--every', 'every', type=int, default=None, help='Minutes between runs (defaults to SYNC_INTERVAL_MINUTES)')
@click.option('--debug', is_flag=True, help='Enable debug logging')
def schedule(shop, every, debug):
    """Run sync passes on an interval until interrupted."""
    settings = get_settings()
    configure_logging("DEBUG" if debug else settings.LOG_LEVEL)
    shop_domain = shop or settings.SHOPIFY_SHOP_URL
    if not shop_domain:
        raise click.UsageError("--shop is required when SHOPIFY_SHOP_URL is not set")

    try:
        asyncio.run(_run_scheduler(shop_domain, settings, every))
    except KeyboardInterrupt:
        click.echo("Scheduler stopped")


async def _run_scheduler(shop_domain, settings, every):
    engine = create_engine(settings.DATABASE_URL)
    scheduler = create_scheduler(
        shop_domain,
        settings=settings,
        interval_minutes=every,
        session_factory=create_session_factory(engine),
    )
    scheduler.start()
    try:
        await asyncio.Event().wait()
    finally:
        scheduler.shutdown(wait=False)
        await engine.dispose()


if __name__ == '__main__':
    cli()
