"""
Command-line interface for DoH Rank.

Runs a ranking session against a relay, lists the built-in resolvers,
and serves the relay itself.
"""

import asyncio
import logging
import signal
import sys
from typing import Optional

import click
from rich import box
from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn
from rich.table import Table

from . import __version__
from .errors import DohRankError
from .logging_config import LEVEL_NAMES, init_logging
from .models import EventType, SessionStatus, TestEvent, TestOptions
from .output import JSONOutput, RichConsoleOutput
from .resolvers import (
    ALLOWED_DOH_URLS,
    DEFAULT_RESOLVERS,
    RESOLVERS,
    get_resolver,
    list_resolvers,
    load_resolvers,
)
from .runner import TestSession
from .transports import DEFAULT_RELAY_URL, RelayClient


def create_progress_callback(console: Console):
    """Create a rich progress bar driven by session events."""
    progress = Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TextColumn("{task.completed}/{task.total}"),
        console=console,
        transient=True,
    )
    task_id = None

    def callback(event: TestEvent):
        nonlocal task_id
        if event.type == EventType.TEST_STARTED:
            task_id = progress.add_task("Starting...", total=event.total_rounds)
        elif event.type == EventType.ROUND_STARTED:
            progress.update(
                task_id,
                description=f"Round {event.round}/{event.total_rounds}",
            )
        elif event.type == EventType.ROUND_COMPLETED:
            progress.update(task_id, completed=event.round)

    return progress, callback


@click.group()
@click.version_option(__version__)
@click.option(
    "--log-level",
    type=click.Choice(LEVEL_NAMES, case_sensitive=False),
    default="warning",
    envvar="DOHRANK_LOG_LEVEL",
    show_default=True,
    help="Logging verbosity",
)
@click.option(
    "--log-file",
    type=click.Path(dir_okay=False),
    help="Also write logs to this file",
)
def main(log_level: str, log_file: Optional[str]):
    """
    DoH Rank - DNS-over-HTTPS resolver ranking.

    Probes public resolvers through an allow-listed relay and ranks
    them by latency, reliability and throughput.
    """
    init_logging(log_level, log_file)


@main.command()
@click.option(
    "--resolver", "-r",
    multiple=True,
    help="Resolver to test (can specify multiple). Options: " + ", ".join(list_resolvers()),
)
@click.option(
    "--resolvers-file",
    type=click.Path(exists=True, dir_okay=False),
    help="JSON file with a custom resolver list",
)
@click.option(
    "--domain", "-d",
    default=TestOptions.domain,
    show_default=True,
    help="Domain name to query",
)
@click.option(
    "--rounds", "-n",
    type=int,
    default=TestOptions.rounds,
    show_default=True,
    help="Number of test rounds",
)
@click.option(
    "--retry",
    type=int,
    default=TestOptions.retry,
    show_default=True,
    help="Attempts per resolver per round",
)
@click.option(
    "--interval",
    type=float,
    default=TestOptions.interval_ms,
    show_default=True,
    help="Pause between rounds in milliseconds",
)
@click.option(
    "--timeout",
    type=float,
    default=TestOptions.timeout_ms,
    show_default=True,
    help="Per-probe timeout in milliseconds",
)
@click.option(
    "--relay-url",
    default=DEFAULT_RELAY_URL,
    envvar="DOHRANK_RELAY_URL",
    show_default=True,
    help="URL of the relay's /doh-proxy endpoint",
)
@click.option(
    "--quiet", "-q",
    is_flag=True,
    help="Suppress progress output",
)
@click.option(
    "--json",
    is_flag=True,
    help="Output results as JSON to stdout",
)
def run(
    resolver: tuple,
    resolvers_file: Optional[str],
    domain: str,
    rounds: int,
    retry: int,
    interval: float,
    timeout: float,
    relay_url: str,
    quiet: bool,
    json: bool,
):
    """
    Run a resolver ranking session.

    Examples:

    \b
      # Rank the default resolvers
      dohrank run

    \b
      # Compare specific resolvers over 5 rounds
      dohrank run -r alidns -r dnspod -n 5

    \b
      # Use a relay on another host and print JSON
      dohrank run --relay-url http://relay.local:3000/doh-proxy --json
    """
    try:
        if resolvers_file:
            resolvers_list = load_resolvers(resolvers_file)
        elif resolver:
            resolvers_list = [get_resolver(name) for name in resolver]
        else:
            resolvers_list = [get_resolver(name) for name in DEFAULT_RESOLVERS]

        options = TestOptions(
            domain=domain,
            rounds=rounds,
            retry=retry,
            interval_ms=interval,
            timeout_ms=timeout,
        )
        options.validate()
    except DohRankError as e:
        raise click.ClickException(str(e))

    for res in resolvers_list:
        if res.endpoint not in ALLOWED_DOH_URLS:
            click.echo(
                f"Warning: {res.name} ({res.endpoint}) is not in the default relay allow-list",
                err=True,
            )

    console = Console(stderr=True)
    progress, callback = None, None
    if not quiet:
        progress, callback = create_progress_callback(console)

    async def run_session():
        async with RelayClient(relay_url, timeout_ms=timeout) as client:
            session = TestSession(client, on_event=callback)

            # Ctrl+C finishes the current round and stops
            loop = asyncio.get_running_loop()
            try:
                loop.add_signal_handler(signal.SIGINT, session.cancel)
            except (NotImplementedError, RuntimeError):
                pass

            try:
                results = await session.start(options, resolvers_list)
            finally:
                try:
                    loop.remove_signal_handler(signal.SIGINT)
                except (NotImplementedError, RuntimeError):
                    pass
            return session, results

    try:
        if progress:
            with progress:
                session, results = asyncio.run(run_session())
        else:
            session, results = asyncio.run(run_session())
    except DohRankError as e:
        raise click.ClickException(str(e))

    if session.status == SessionStatus.CANCELLED:
        click.echo("Test cancelled; partial results are not scored.", err=True)

    if json:
        click.echo(JSONOutput.format(results, session.duration_ms))
    elif not quiet:
        RichConsoleOutput.print(results, session.duration_ms)

    if session.status == SessionStatus.CANCELLED:
        sys.exit(130)


@main.command()
def list_available():
    """List all built-in DoH resolvers."""
    console = Console()
    table = Table(
        title="Available DoH Resolvers",
        box=box.ROUNDED,
        header_style="bold cyan",
    )

    table.add_column("Name", style="green")
    table.add_column("IP", style="cyan")
    table.add_column("Endpoint", style="magenta")
    table.add_column("Relay", justify="center")
    table.add_column("Description")

    for name, resolver in RESOLVERS.items():
        table.add_row(
            name,
            resolver.ip or "",
            resolver.endpoint,
            "✓" if resolver.endpoint in ALLOWED_DOH_URLS else "✗",
            resolver.description or "",
        )

    console.print(table)
    console.print()
    console.print("[dim]Default resolvers:[/dim]", ", ".join(DEFAULT_RESOLVERS))


@main.command()
@click.option(
    "--port", "-p",
    type=int,
    default=3000,
    envvar="PORT",
    show_default=True,
    help="Port to run the relay on",
)
@click.option(
    "--host",
    default="127.0.0.1",
    show_default=True,
    help="Host to bind the relay to",
)
def relay(port: int, host: str):
    """
    Serve the DoH relay.

    Exposes POST /doh-proxy for allow-listed DoH endpoints and
    GET /health.
    """
    from .relay import run_relay

    click.echo(f"DoH relay running on http://{host}:{port}")
    click.echo("Press Ctrl+C to stop the server")
    run_relay(host=host, port=port, log_level=logging.getLevelName(
        logging.getLogger().getEffectiveLevel()
    ).lower())


if __name__ == "__main__":
    main()
