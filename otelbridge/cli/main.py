"""otelbridge CLI entry point.

Usage::

    otelbridge rules validate my_rules.json
    otelbridge rules list --rules my_rules.json
    otelbridge span explain spans.json --high-security
"""

from __future__ import annotations

import logging

import click

from otelbridge.cli.commands_rules import rules_group
from otelbridge.cli.commands_span import span_group


@click.group()
@click.version_option(package_name="otelbridge")
@click.option("-v", "--verbose", is_flag=True, default=False, help="Enable debug logging.")
def cli(verbose: bool) -> None:
    """otelbridge: OpenTelemetry spans to APM segments and transactions."""
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")


cli.add_command(rules_group)
cli.add_command(span_group)

if __name__ == "__main__":
    cli()
