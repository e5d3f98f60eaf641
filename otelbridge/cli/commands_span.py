"""``otelbridge span``: replay span documents through a span processor."""

from __future__ import annotations

import json
import logging
from typing import Any

import click
from rich.console import Console
from rich.table import Table

from otelbridge.agent import Agent
from otelbridge.cli.validation import validate_json_file
from otelbridge.config import BridgeConfig, ConfigError
from otelbridge.rules.spec import RuleLoadError
from otelbridge.synthesis.processor import SpanProcessor
from otelbridge.trace.span import kind_name, span_from_dict

logger = logging.getLogger("otelbridge.cli")

console = Console()


def explain_spans(documents: list[dict[str, Any]], agent: Agent) -> dict[str, Any]:
    """Start every span in document order, end them in reverse order.

    Documents must list parents before children.
    """
    processor = SpanProcessor(agent)
    spans = [span_from_dict(doc) for doc in documents]

    rows: list[dict[str, Any]] = []
    results = []
    for span in spans:
        processor.on_start(span)
        results.append(processor.get_result(span))

    for span in reversed(spans):
        processor.on_end(span)

    for span, result in zip(spans, results):
        rows.append({
            "span": span.name,
            "kind": kind_name(span),
            "rule": result.rule.name if result else None,
            "segment": result.segment.name if result else None,
            "starts_transaction": bool(result and result.owns_transaction),
        })

    transactions = [tx.to_dict() for tx in agent.drain()]
    return {"spans": rows, "transactions": transactions}


@click.group("span")
def span_group() -> None:
    """Span replay commands."""


@span_group.command("explain")
@click.argument("span_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--rules", "rules_file", type=click.Path(exists=True, dir_okay=False), default=None,
              help="Rule table (defaults to the bundled table).")
@click.option("--config", "config_file", type=click.Path(exists=True, dir_okay=False), default=None,
              help="Bridge configuration JSON.")
@click.option("--high-security", is_flag=True, default=False,
              help="Drop attributes flagged highSecurity.")
@click.option("--format", "fmt", type=click.Choice(["table", "json"]), default="table",
              help="Output format.")
def span_explain(
    span_file: str,
    rules_file: str | None,
    config_file: str | None,
    high_security: bool,
    fmt: str,
) -> None:
    """Show which rule each span in SPAN_FILE matches and what it turns into.

    SPAN_FILE holds one span document or a list of them, parents first.
    """
    data = validate_json_file(span_file, "span")
    documents = data if isinstance(data, list) else [data]

    try:
        config = BridgeConfig.from_file(config_file) if config_file else BridgeConfig()
        if rules_file:
            config.rules_path = rules_file
        if high_security:
            config.high_security = True
        agent = Agent(config)
    except (ConfigError, RuleLoadError) as exc:
        raise click.ClickException(str(exc)) from exc

    try:
        report = explain_spans(documents, agent)
    except (KeyError, ValueError) as exc:
        raise click.ClickException(f"Cannot replay {span_file}: {exc}") from exc

    if fmt == "json":
        click.echo(json.dumps(report, indent=2, default=str))
        return

    table = Table(title="Spans")
    table.add_column("Span", style="cyan")
    table.add_column("Kind")
    table.add_column("Rule", style="magenta")
    table.add_column("Segment")
    for row in report["spans"]:
        rule = row["rule"] or "[dim]no match[/dim]"
        segment = row["segment"] or ""
        if row["starts_transaction"]:
            segment = f"[bold]{segment}[/bold]"
        table.add_row(row["span"], row["kind"], rule, segment)
    console.print(table)

    for tx in report["transactions"]:
        console.print(f"[green]Transaction[/green] {tx['name']} ({tx['type']}, {len(tx['errors'])} error(s))")
