"""Bridge configuration."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from otelbridge.core.schemas import validate_file
from otelbridge.trace.attributes import DEFAULT_VALUE_LIMIT


class ConfigError(ValueError):
    """Raised for unreadable or invalid configuration."""


@dataclass
class BridgeConfig:
    """Runtime settings.

    Attributes:
        high_security: Drop rule directives flagged ``highSecurity``.
        rules_path: Rule table to load instead of the bundled one.
        hostname: Display hostname substituted for loopback addresses.
        url_obfuscation: ``{regex, flags, replacement}`` applied to URL paths.
        naming_rules: ``[{pattern, name, ignore}]`` user transaction naming rules.
        attribute_value_limit: Maximum length of string attribute values.
        max_finished_transactions: Size of the agent's finished-transaction buffer.
        cloud_aws_account_id: Account id used for AWS resource ARNs.
    """

    high_security: bool = False
    rules_path: str | None = None
    hostname: str | None = None
    url_obfuscation: dict[str, Any] | None = None
    naming_rules: list[dict[str, Any]] = field(default_factory=list)
    attribute_value_limit: int = DEFAULT_VALUE_LIMIT
    max_finished_transactions: int = 100
    cloud_aws_account_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "high_security": self.high_security,
            "rules_path": self.rules_path,
            "hostname": self.hostname,
            "url_obfuscation": self.url_obfuscation,
            "naming_rules": list(self.naming_rules),
            "attribute_value_limit": self.attribute_value_limit,
            "max_finished_transactions": self.max_finished_transactions,
            "cloud_aws_account_id": self.cloud_aws_account_id,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any] | None) -> BridgeConfig:
        """Build a config from a mapping.

        Raises:
            ConfigError: If *d* does not match the configuration schema.
        """
        d = d or {}
        errors = validate_file("config", d)
        if errors:
            raise ConfigError("Invalid configuration:\n  " + "\n  ".join(errors[:5]))
        return cls(
            high_security=bool(d.get("high_security", False)),
            rules_path=d.get("rules_path"),
            hostname=d.get("hostname"),
            url_obfuscation=d.get("url_obfuscation"),
            naming_rules=list(d.get("naming_rules") or []),
            attribute_value_limit=d.get("attribute_value_limit", DEFAULT_VALUE_LIMIT),
            max_finished_transactions=d.get("max_finished_transactions", 100),
            cloud_aws_account_id=d.get("cloud_aws_account_id"),
        )

    @classmethod
    def from_file(cls, path: str | Path) -> BridgeConfig:
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except OSError as exc:
            raise ConfigError(f"Cannot read configuration {path}: {exc}") from exc
        except json.JSONDecodeError as exc:
            raise ConfigError(f"Invalid JSON in {path}: {exc}") from exc
        return cls.from_dict(data)
