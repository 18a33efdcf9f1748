#!/usr/bin/env python3
"""
disco CLI

Command-line interface for multicast service discovery.

Usage:
    disco subscribe              # Print datagrams received on the group
    disco broadcast TEXT         # Send one datagram to the group
    disco announce NAME -s ADDR  # Announce a service and answer queries
    disco listen NAME...         # Wait for services to announce themselves
    disco query NAME             # Ask who serves a name
    disco demo                   # Subscribe, broadcast, print what arrives
"""

import asyncio
import logging
import socket
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from .config import EXAMPLE_CONFIG, load_config
from .discovery import announce as announce_service
from .discovery import listen_for, query as query_service
from .errors import DiscoError
from .transport import broadcast as broadcast_text
from .transport import subscribe as subscribe_group

console = Console()


def setup_logging(level: str = 'INFO', verbose: bool = False):
    """Configure logging with rich output."""
    if verbose:
        level = 'DEBUG'
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        handlers=[RichHandler(console=console, show_time=False, show_path=False)]
    )


def run_async(coro):
    """Run a coroutine, turning disco errors into a clean CLI failure."""
    try:
        return asyncio.run(coro)
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
    except (DiscoError, TimeoutError) as e:
        console.print(f"[red]✗ {e}[/red]")
        raise SystemExit(1)


@click.group()
@click.option('-v', '--verbose', is_flag=True, help='Enable verbose output')
@click.option('--config', 'config_path', type=click.Path(dir_okay=False),
              help='JSON config file')
@click.option('--group', help='Multicast group (host:port)')
@click.option('--interface', help='Local IPv4 address of the multicast interface')
@click.pass_context
def cli(ctx, verbose, config_path, group, interface):
    """disco - service discovery over IP multicast."""
    config = load_config(Path(config_path) if config_path else None)
    if group:
        config.group_address = group
    if interface:
        config.interface = interface

    setup_logging(config.log_level, verbose)
    ctx.ensure_object(dict)
    ctx.obj['config'] = config


@cli.command()
@click.option('--count', '-n', default=0, help='Stop after N datagrams (0 = forever)')
@click.pass_context
def subscribe(ctx, count):
    """Print datagrams received on the group."""
    config = ctx.obj['config']

    async def run():
        async with await subscribe_group(
            config.group_address,
            interface=config.interface,
            max_datagram_size=config.max_datagram_size,
        ) as subscription:
            console.print(f"[dim]Subscribed to {config.group_address}, Ctrl+C to stop[/dim]")
            received = 0
            async for datagram in subscription:
                if datagram.ok:
                    console.print(f"[yellow]{datagram.source}[/yellow] {datagram.message}")
                else:
                    console.print(f"[red]{datagram.source or config.group_address}: "
                                  f"{datagram.error}[/red]")
                received += 1
                if count and received >= count:
                    break

    run_async(run())


@cli.command()
@click.argument('text')
@click.pass_context
def broadcast(ctx, text):
    """Send TEXT as one datagram to the group."""
    config = ctx.obj['config']

    try:
        broadcast_text(
            config.group_address, text,
            interface=config.interface,
            ttl=config.ttl,
            max_datagram_size=config.max_datagram_size,
        )
    except DiscoError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise SystemExit(1)

    console.print(f"[green]✓ Sent to {config.group_address}[/green]")


@cli.command()
@click.argument('name')
@click.option('--source', '-s', help='Address peers should use to reach the service')
@click.pass_context
def announce(ctx, name, source):
    """Announce service NAME and answer queries until interrupted."""
    config = ctx.obj['config']
    source = source or config.source_address
    if not source:
        console.print("[red]A source address is required (--source or DISCO_SOURCE)[/red]")
        raise SystemExit(2)

    async def run():
        announcer = await announce_service(
            config.group_address, source, name,
            interface=config.interface,
            ttl=config.ttl,
            max_datagram_size=config.max_datagram_size,
        )
        console.print(Panel.fit(
            f"[bold green]Announced[/bold green]\n\n"
            f"Name: [cyan]{name}[/cyan]\n"
            f"Address: [yellow]{source}[/yellow]\n"
            f"Group: [blue]{config.group_address}[/blue]",
            title="Service"
        ))
        console.print("\n[dim]Answering queries, press Ctrl+C to stop[/dim]\n")

        try:
            while announcer.running:
                await asyncio.sleep(1)
        finally:
            await announcer.stop()

    run_async(run())


@cli.command()
@click.argument('names', nargs=-1, required=True)
@click.option('--timeout', '-t', default=0.0, help='Give up after S seconds (0 = never)')
@click.pass_context
def listen(ctx, names, timeout):
    """Wait until every one of NAMES has announced itself."""
    config = ctx.obj['config']

    async def run():
        table = Table(title="Discovered Services")
        table.add_column("Name", style="cyan")

        async with await listen_for(
            config.group_address, *names,
            interface=config.interface,
            max_datagram_size=config.max_datagram_size,
        ) as listener:

            async def collect():
                async for name in listener:
                    console.print(f"[green]✓ {name}[/green]")
                    table.add_row(name)

            try:
                await asyncio.wait_for(collect(), timeout or None)
            except asyncio.TimeoutError:
                console.print(f"[yellow]Still waiting for: "
                              f"{', '.join(sorted(listener.pending))}[/yellow]")

        if table.row_count:
            console.print(table)

    run_async(run())


@cli.command()
@click.argument('name')
@click.option('--timeout', '-t', type=float, help='Seconds to wait for a response')
@click.option('--source', '-s', help='Our own address, carried in the query')
@click.pass_context
def query(ctx, name, timeout, source):
    """Ask the group which address serves NAME."""
    config = ctx.obj['config']
    source = source or config.source_address or socket.gethostname()
    if timeout is None:
        timeout = config.query_timeout

    async def run():
        address = await query_service(
            config.group_address, name, source,
            timeout=timeout,
            interface=config.interface,
            ttl=config.ttl,
            max_datagram_size=config.max_datagram_size,
        )

        console.print(f"[cyan]{name}[/cyan] is at [green]{address}[/green]")

    run_async(run())


@cli.command()
@click.option('--message', '-m', default='hello', help='Text to broadcast')
@click.pass_context
def demo(ctx, message):
    """Subscribe, broadcast MESSAGE and print what arrives."""
    config = ctx.obj['config']

    async def run():
        async with await subscribe_group(
            config.group_address,
            interface=config.interface,
            max_datagram_size=config.max_datagram_size,
        ) as subscription:
            await asyncio.sleep(0.5)
            broadcast_text(
                config.group_address, message,
                interface=config.interface, ttl=config.ttl,
            )
            datagram = await subscription.receive()

        console.print(datagram)

    run_async(run())


@cli.command('config')
@click.option('--example', is_flag=True, help='Print an example config file')
@click.pass_context
def show_config(ctx, example):
    """Show the effective configuration."""
    if example:
        console.print("Example configuration file (disco.json):")
        console.print(EXAMPLE_CONFIG)
        return

    table = Table(title="Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="yellow")
    for key, value in ctx.obj['config'].to_dict().items():
        table.add_row(key, str(value))
    console.print(table)


if __name__ == '__main__':
    cli()
