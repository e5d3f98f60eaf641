"""CLI input JSON validation against otelbridge schemas."""

from __future__ import annotations

import json
import logging
from typing import Any

import click

from otelbridge.core.schemas import validate_file

logger = logging.getLogger("otelbridge.cli")


def load_json_file(filepath: str) -> Any:
    try:
        with open(filepath, encoding="utf-8") as f:
            return json.load(f)
    except json.JSONDecodeError as exc:
        raise click.ClickException(f"Invalid JSON in {filepath}: {exc}") from exc


def validate_json_file(
    filepath: str,
    schema_name: str,
    *,
    strict: bool = True,
) -> Any:
    """Load a JSON file and validate it against an otelbridge schema.

    Parameters:
        filepath: Path to the JSON file.
        schema_name: Schema name (``"rules"``, ``"config"`` or ``"span"``).
        strict: If ``True`` (default), abort on validation errors.
                If ``False``, warn but return data anyway.

    Returns:
        The parsed JSON data.

    Raises:
        click.ClickException: On parse or validation errors (when *strict*).
    """
    data = load_json_file(filepath)
    documents = data if schema_name == "span" and isinstance(data, list) else [data]

    msgs: list[str] = []
    for idx, doc in enumerate(documents):
        for err in validate_file(schema_name, doc):
            msgs.append(f"  {err}" if len(documents) == 1 else f"  #{idx} {err}")

    if msgs:
        summary = "\n".join(msgs[:5])
        full = f"Validation errors for {filepath} (schema: {schema_name}):\n{summary}"
        if strict:
            raise click.ClickException(full)
        logger.warning(full)

    return data
