# repricer/cli/run_jobs.py
"""
Run the scheduled jobs once from the command line, e.g. from an external cron:

    python -m repricer.cli.run_jobs keepalive
    python -m repricer.cli.run_jobs price-update --manual --date 2025-11-04
"""
import asyncio
import json
import sys

import click

from repricer.core.enums import ExecutionReason
from repricer.core.logging_config import configure_logging
from repricer.scheduler import keepalive_task, price_update_task


@click.group()
def cli():
    """Metal repricer jobs"""
    configure_logging()


@cli.command()
def keepalive():
    """Exercise the ERP token so it does not expire"""
    result = asyncio.run(keepalive_task())
    click.echo(json.dumps(result, indent=2, ensure_ascii=False))
    if not result["success"]:
        sys.exit(1)


@cli.command("price-update")
@click.option('--manual', is_flag=True, help='Record the run as manual instead of scheduled')
@click.option('--date', 'run_date', type=click.DateTime(formats=["%Y-%m-%d"]), default=None,
              help='Run for this day instead of today (YYYY-MM-DD)')
def price_update(manual, run_date):
    """Run the daily precious-metal price update"""
    reason = ExecutionReason.MANUAL if manual else ExecutionReason.SCHEDULED
    day = run_date.date() if run_date else None

    result = asyncio.run(price_update_task(reason=reason, day=day))
    click.echo(result.model_dump_json(indent=2))
    if not result.success:
        sys.exit(1)


if __name__ == "__main__":
    cli()
