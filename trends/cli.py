"""
Command-line entry points: manual refresh, feed preview, maintenance, serving.
"""
from __future__ import annotations

import json
import os

import click
from dotenv import load_dotenv

from trends import configure_logging, get_context
from trends.errors import InvalidRequest
from trends.feed import API_CATEGORIES, VALID_TIME_RANGES, parse_feed_category


@click.group()
@click.option("--log-level", default=None, help="Override TRENDS_LOG_LEVEL.")
@click.pass_context
def cli(ctx, log_level):
    load_dotenv(os.getenv("TRENDS_DOTENV", ".env"))
    ctx.ensure_object(dict)
    context = get_context()
    configure_logging(log_level or context.settings.log_level, context.settings.log_file)
    ctx.obj["context"] = context
    ctx.call_on_close(context.close)


@cli.command()
@click.option("--category", "categories", multiple=True, help="Limit to one or more categories.")
@click.option("--force", is_flag=True, help="Fetch even if the sources are still fresh.")
@click.pass_context
def refresh(ctx, categories, force):
    """Fetch stale sources into the store."""
    from trends.jobs import refresh_sources

    context = ctx.obj["context"]
    try:
        wanted = [parse_feed_category(name) for name in categories]
    except InvalidRequest as exc:
        raise click.BadParameter(exc.message, param_hint="--category") from None
    result = refresh_sources(context, wanted or None, force=force)
    context.tasks.drain(timeout=60)
    click.echo(f"stale={result.stale_count} fresh={result.fresh_count} failures={len(result.failures)}")
    for failure in result.failures:
        click.echo(f"  {failure.source}: {failure.error}", err=True)


@cli.command()
@click.option("--category", "categories", multiple=True, type=click.Choice(list(API_CATEGORIES)), required=True)
@click.option("--time-range", default="24h", type=click.Choice(VALID_TIME_RANGES))
@click.option("--limit", default=10, type=int)
@click.pass_context
def feed(ctx, categories, time_range, limit):
    """Print the ranked discovery feed as JSON lines."""
    context = ctx.obj["context"]
    payload = context.feed.discover(list(categories), time_range, limit=limit)
    for item in payload["items"]:
        click.echo(json.dumps(item, ensure_ascii=False))
    click.echo(json.dumps(payload["meta"]), err=True)


@cli.command()
@click.option("--days", default=None, type=int, help="Retention window; defaults to TRENDS_RETENTION_DAYS.")
@click.pass_context
def sweep(ctx, days):
    """Delete items and snapshots past the retention window."""
    from trends.jobs import run_sweep

    removed = run_sweep(ctx.obj["context"], retention_days=days)
    click.echo(f"removed items={removed['items']} snapshots={removed['snapshots']}")


@cli.command()
@click.option("--host", default="127.0.0.1")
@click.option("--port", default=5000, type=int)
@click.pass_context
def serve(ctx, host, port):
    """Run the JSON API with Flask's server."""
    from app import create_app

    create_app(ctx.obj["context"]).run(host=host, port=port, threaded=True)


@cli.command()
@click.pass_context
def schedule(ctx):
    """Run the periodic refresh and sweep worker."""
    from trends.jobs import run_scheduler

    run_scheduler(ctx.obj["context"])


@cli.command()
@click.pass_context
def sources(ctx):
    """List resolved sources with their effective state."""
    for source in ctx.obj["context"].resolver.get_effective_sources().all:
        state = "on " if source.is_enabled else "off"
        click.echo(f"{state} p{source.effective_priority} {source.category.value:<14} {source.id:<24} {source.name}")


if __name__ == "__main__":  # pragma: no cover
    cli()
