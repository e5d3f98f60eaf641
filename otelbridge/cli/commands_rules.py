"""``otelbridge rules``: check and inspect rule tables."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import click
from rich.console import Console
from rich.table import Table

from otelbridge.rules.engine import DEFAULT_RULES_PATH, RulesEngine, load_rules, parse_rules
from otelbridge.rules.spec import SPAN_KINDS, RuleLoadError
from otelbridge.core.schemas import validate_file
from otelbridge.cli.validation import load_json_file

logger = logging.getLogger("otelbridge.cli")

console = Console()


@click.group("rules")
def rules_group() -> None:
    """Rule table commands."""


@rules_group.command("validate")
@click.argument("rules_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--format", "fmt", type=click.Choice(["table", "json"]), default="table",
              help="Output format.")
def rules_validate(rules_file: str, fmt: str) -> None:
    """Validate RULES_FILE against the rule schema and build every rule.

    Exit code 0 = valid, 1 = invalid.
    """
    data = load_json_file(rules_file)
    errors = validate_file("rules", data)
    count = 0
    if not errors:
        try:
            count = len(parse_rules(data))
        except RuleLoadError as exc:
            errors = [str(exc)]

    if fmt == "json":
        click.echo(json.dumps({"file": rules_file, "valid": not errors, "rules": count, "errors": errors}, indent=2))
    else:
        err_console = Console(stderr=True)
        table = Table(title=f"Rule Table Validation: {Path(rules_file).name}")
        table.add_column("Status")
        table.add_column("Rules", justify="right")
        table.add_column("Errors", style="red")
        err_text = "\n".join(errors[:5])
        if len(errors) > 5:
            err_text += f"\n... +{len(errors) - 5} more"
        status = "[red]INVALID[/red]" if errors else "[green]valid[/green]"
        table.add_row(status, str(count), err_text)
        err_console.print(table)

    if errors:
        raise SystemExit(1)


@rules_group.command("list")
@click.option("--rules", "rules_file", type=click.Path(exists=True, dir_okay=False), default=None,
              help="Rule table to list (defaults to the bundled table).")
@click.option("--format", "fmt", type=click.Choice(["table", "json"]), default="table",
              help="Output format.")
def rules_list(rules_file: str | None, fmt: str) -> None:
    """List rules by span kind in match order."""
    try:
        engine = RulesEngine(load_rules(rules_file))
    except RuleLoadError as exc:
        raise click.ClickException(str(exc)) from exc

    rows: list[dict[str, Any]] = []
    for kind in SPAN_KINDS:
        bucket = engine.bucket(kind)
        for group, rules in (("primary", bucket.primary), ("fallback", bucket.fallback)):
            for rule in rules:
                rows.append({"kind": kind, "bucket": group, "name": rule.name, "type": rule.type.value})

    if fmt == "json":
        click.echo(json.dumps(rows, indent=2))
        return

    table = Table(title=f"Rules: {Path(rules_file).name if rules_file else DEFAULT_RULES_PATH.name}")
    table.add_column("Kind", style="cyan")
    table.add_column("Bucket", style="magenta")
    table.add_column("Rule")
    table.add_column("Type")
    for row in rows:
        table.add_row(row["kind"], row["bucket"], row["name"], row["type"])
    console.print(table)
