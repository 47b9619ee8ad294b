"""
Output formatting for DoH test results.

Provides two formats:
- JSON: Machine-readable ranked results
- Human-readable: Rich terminal table and winner panel
"""

import json
from typing import Optional

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .models import ResolverAggregate
from .statistics import SENTINEL_LATENCY, summarize


def _format_latency(value: float) -> str:
    if value >= SENTINEL_LATENCY:
        return "-"
    return f"{value:.1f}"


class JSONOutput:
    """JSON output formatter."""

    @staticmethod
    def to_dict(aggregates: list[ResolverAggregate], duration_ms: float) -> dict:
        """Build plain structured records for export collaborators."""
        data = {
            "metadata": {
                "duration_ms": round(duration_ms, 1),
                "resolver_count": len(aggregates),
            },
            "resolvers": [],
        }

        for rank, aggregate in enumerate(aggregates, start=1):
            summary = summarize(aggregate)
            data["resolvers"].append({
                "rank": rank,
                "identifier": aggregate.resolver.identifier,
                "name": aggregate.resolver.name,
                "endpoint": aggregate.resolver.endpoint,
                "ip": aggregate.resolver.ip,
                "score": round(aggregate.score, 2),
                "queries": {
                    "total": aggregate.total_count,
                    "successful": aggregate.success_count,
                    "failed": aggregate.failure_count,
                    "success_rate_pct": round(aggregate.success_rate, 2),
                    "qps": round(aggregate.qps, 3),
                },
                "latency_ms": {
                    "avg": round(aggregate.average_latency, 3),
                    "min": round(summary.min_latency, 3),
                    "max": round(summary.max_latency, 3),
                    "median": round(summary.median_latency, 3),
                    "p95": round(summary.p95_latency, 3),
                    "stddev": round(summary.stddev_latency, 3),
                    "jitter": round(summary.jitter_ms, 3),
                    "samples": [round(v, 3) for v in aggregate.latencies],
                },
                "failures": dict(aggregate.failure_reasons),
                "completed": aggregate.is_completed,
            })

        return data

    @staticmethod
    def format(aggregates: list[ResolverAggregate], duration_ms: float, indent: int = 2) -> str:
        """
        Format ranked aggregates as JSON.

        Args:
            aggregates: Aggregates in rank order
            duration_ms: Session duration
            indent: JSON indentation level

        Returns:
            JSON string
        """
        return json.dumps(
            JSONOutput.to_dict(aggregates, duration_ms),
            indent=indent,
            ensure_ascii=False,
        )


class RichConsoleOutput:
    """Rich library console output with colors and tables."""

    @staticmethod
    def print(
        aggregates: list[ResolverAggregate],
        duration_ms: float,
        console: Optional[Console] = None,
    ) -> None:
        """Print ranked aggregates as a table followed by the winner."""
        console = console or Console()

        console.print()
        console.print(Panel.fit(
            "[bold blue]DoH RESOLVER RANKING[/bold blue]",
            border_style="blue",
        ))
        console.print(f"  [dim]Duration:[/dim] {duration_ms / 1000:.1f}s")
        console.print()

        table = Table(
            title="Resolver Performance",
            box=box.ROUNDED,
            header_style="bold magenta",
        )

        table.add_column("#", justify="right", style="dim")
        table.add_column("Resolver", style="cyan")
        table.add_column("Score", justify="right", style="bold")
        table.add_column("Success", justify="right")
        table.add_column("Avg (ms)", justify="right", style="green")
        table.add_column("p95 (ms)", justify="right", style="yellow")
        table.add_column("QPS", justify="right")
        table.add_column("Failures", style="red")

        for rank, aggregate in enumerate(aggregates, start=1):
            summary = summarize(aggregate)
            failures = ", ".join(
                f"{reason}={count}" for reason, count in sorted(aggregate.failure_reasons.items())
            )
            table.add_row(
                str(rank),
                aggregate.resolver.name,
                f"{aggregate.score:.1f}",
                f"{aggregate.success_count}/{aggregate.total_count}",
                _format_latency(aggregate.average_latency),
                _format_latency(summary.p95_latency) if aggregate.success_count else "-",
                f"{aggregate.qps:.2f}",
                failures,
            )

        console.print(table)
        console.print()

        winner = aggregates[0] if aggregates else None
        if winner and winner.success_count > 0:
            console.print(Panel(
                f"[bold green]WINNER: {winner.resolver.name}[/bold green]\n"
                f"Score: {winner.score:.1f} | "
                f"Average Latency: {winner.average_latency:.1f}ms | "
                f"Success Rate: {winner.success_rate:.1f}%",
                border_style="green",
            ))
        else:
            console.print(Panel(
                "[bold yellow]No successful queries - cannot determine winner[/bold yellow]",
                border_style="yellow",
            ))

        console.print()
