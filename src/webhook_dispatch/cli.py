"""Webhook Dispatch CLI.

Usage:
    webhook-dispatch send update_location --data '{"gps": [52.3, 4.9]}'
    webhook-dispatch send update_location --background --identifier location
    webhook-dispatch pending              # List persisted background transfers
    webhook-dispatch wake --timeout 30    # Resume transfers, wait for them

Configuration is read from WEBHOOK_DISPATCH_* environment variables.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from typing import Any

import click
import httpx

from .config import DispatchConfig
from .errors import WebhookError
from .handlers import LOCATION, WebhookResponseLocation
from .manager import WebhookManager
from .models import UNHANDLED, WebhookRequest
from .transport.store import create_store

# Output format options
FORMAT_TABLE = "table"
FORMAT_JSON = "json"


def _configure_logging(verbose: bool) -> None:
    """Send all logging to stderr so stdout stays parseable."""
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setFormatter(
        logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    )
    root_logger.addHandler(stderr_handler)
    root_logger.setLevel(logging.DEBUG if verbose else logging.INFO)


def create_manager(config: DispatchConfig) -> WebhookManager:
    """Manager with the built-in handlers registered."""
    manager = WebhookManager(config)
    manager.register(WebhookResponseLocation, LOCATION)
    return manager


def _parse_data(data: str | None) -> Any:
    if data is None:
        return None
    try:
        return json.loads(data)
    except json.JSONDecodeError as e:
        raise click.BadParameter(f"not valid JSON: {e}", param_hint="--data") from e


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def main(ctx: click.Context, verbose: bool) -> None:
    """Webhook Dispatch - send webhooks and drain background transfers."""
    _configure_logging(verbose)
    ctx.obj = DispatchConfig.from_env()


@main.command()
@click.argument("request_type")
@click.option("--data", "-d", help="JSON payload for the request")
@click.option("--background", is_flag=True, help="Send as a durable background transfer")
@click.option("--identifier", default=UNHANDLED, help="Response handler (background only)")
@click.pass_obj
def send(
    config: DispatchConfig,
    request_type: str,
    data: str | None,
    background: bool,
    identifier: str,
) -> None:
    """Send a webhook request.

    Examples:

        webhook-dispatch send get_config

        webhook-dispatch send update_location --background --identifier location
    """
    request = WebhookRequest(type=request_type, data=_parse_data(data))

    async def run() -> None:
        manager = create_manager(config)
        try:
            if background:
                await manager.start()
                await manager.send(request, identifier)
                await manager.flush()
                click.echo("Delivered")
            else:
                value = await manager.send_ephemeral_value(request)
                click.echo(json.dumps(value, indent=2))
        finally:
            await manager.close()

    try:
        asyncio.run(run())
    except (WebhookError, httpx.HTTPError, OSError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@main.command()
@click.option(
    "--format",
    "-f",
    "output_format",
    type=click.Choice([FORMAT_TABLE, FORMAT_JSON]),
    default=FORMAT_TABLE,
    help="Output format",
)
@click.pass_obj
def pending(config: DispatchConfig, output_format: str) -> None:
    """List background transfers waiting to be delivered."""
    records = create_store(config).list_records()

    if output_format == FORMAT_JSON:
        click.echo(json.dumps([r.model_dump() for r in records], indent=2))
        return

    if not records:
        click.echo("No pending transfers")
        return

    click.echo(f"{'ID':<6} {'Created':<34} {'URL'}")
    click.echo("-" * 72)
    for record in records:
        click.echo(f"{record.task_identifier:<6} {record.created:<34} {record.url}")


@main.command()
@click.option("--timeout", default=30.0, help="Length of the wake window in seconds")
@click.pass_obj
def wake(config: DispatchConfig, timeout: float) -> None:
    """Resume persisted transfers and wait until they are handled."""

    async def run() -> bool:
        manager = create_manager(config)
        done = asyncio.Event()
        try:
            manager.handle_background(done.set)
            await asyncio.wait_for(done.wait(), timeout=timeout)
            return True
        except TimeoutError:
            return False
        finally:
            await manager.close()

    if asyncio.run(run()):
        click.echo("Background work complete")
    else:
        click.echo(f"Wake window of {timeout}s expired", err=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
