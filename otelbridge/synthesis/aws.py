"""Cloud linking attributes for spans that call AWS services."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Mapping

from otelbridge.constants import (
    ATTR_AWS_DYNAMODB_TABLE_NAMES,
    ATTR_AWS_REGION,
    ATTR_DB_SYSTEM,
    ATTR_FAAS_INVOKED_NAME,
    ATTR_FAAS_INVOKED_PROVIDER,
    ATTR_FAAS_INVOKED_REGION,
    ATTR_MESSAGING_DESTINATION,
    ATTR_MESSAGING_DESTINATION_NAME,
    ATTR_RPC_SERVICE,
    DB_SYSTEM_DYNAMODB,
)

if TYPE_CHECKING:
    from otelbridge.trace.segment import Segment


def _lower(value: Any) -> str:
    return value.lower() if isinstance(value, str) else ""


def add_aws_linking_attributes(segment: Segment, attributes: Mapping[str, Any], account_id: str | None) -> None:
    """Add ARN/account attributes linking *segment* to the AWS resource it called.

    ``faas.invoked_region`` takes precedence over ``aws.region``.
    """
    region = attributes.get(ATTR_FAAS_INVOKED_REGION) or attributes.get(ATTR_AWS_REGION)
    rpc_service = _lower(attributes.get(ATTR_RPC_SERVICE))

    if attributes.get(ATTR_DB_SYSTEM) == DB_SYSTEM_DYNAMODB or rpc_service == "dynamodb":
        tables = attributes.get(ATTR_AWS_DYNAMODB_TABLE_NAMES)
        if isinstance(tables, (list, tuple)):
            table = tables[0] if tables else None
        else:
            table = tables
        if region and account_id and table:
            segment.add_span_attribute("cloud.resource_id", f"arn:aws:dynamodb:{region}:{account_id}:table/{table}")

    if attributes.get(ATTR_FAAS_INVOKED_PROVIDER) == "aws":
        function_name = attributes.get(ATTR_FAAS_INVOKED_NAME)
        if region and account_id and function_name:
            segment.add_span_attribute("cloud.platform", "aws_lambda")
            segment.add_span_attribute(
                "cloud.resource_id", f"arn:aws:lambda:{region}:{account_id}:function:{function_name}"
            )

    if rpc_service == "sqs":
        if account_id:
            segment.add_span_attribute("cloud.account.id", account_id)
        if region:
            segment.add_span_attribute("cloud.region", region)
        destination = attributes.get(ATTR_MESSAGING_DESTINATION_NAME) or attributes.get(ATTR_MESSAGING_DESTINATION)
        segment.add_span_attribute(ATTR_MESSAGING_DESTINATION_NAME, destination)
        segment.add_span_attribute("messaging.system", "aws_sqs")
