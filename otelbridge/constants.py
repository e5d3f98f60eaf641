"""OpenTelemetry semantic-convention attribute keys read directly by the bridge.

Most keys only appear in the rule table; the ones here drive code paths.
Keys are copied from the semantic conventions registry rather than imported
from ``opentelemetry-semantic-conventions``, whose constant names still move
between releases:
https://opentelemetry.io/docs/specs/semconv/attributes-registry/
"""

from __future__ import annotations

# -- Database / HTTP / network -----------------------------------------------

ATTR_DB_SYSTEM = "db.system"
ATTR_HTTP_HOST = "http.host"
ATTR_NET_HOST_NAME = "net.host.name"
ATTR_NET_PEER_NAME = "net.peer.name"
ATTR_SERVER_ADDRESS = "server.address"

# -- Messaging ---------------------------------------------------------------

#: Deprecated in favour of ``messaging.destination.name``.
ATTR_MESSAGING_DESTINATION = "messaging.destination"
ATTR_MESSAGING_DESTINATION_NAME = "messaging.destination.name"
ATTR_MESSAGING_SYSTEM = "messaging.system"

# -- Cloud / FaaS / RPC ------------------------------------------------------

ATTR_AWS_DYNAMODB_TABLE_NAMES = "aws.dynamodb.table_names"
ATTR_AWS_REGION = "aws.region"
ATTR_FAAS_INVOKED_NAME = "faas.invoked_name"
ATTR_FAAS_INVOKED_PROVIDER = "faas.invoked_provider"
ATTR_FAAS_INVOKED_REGION = "faas.invoked_region"
ATTR_RPC_SERVICE = "rpc.service"

DB_SYSTEM_DYNAMODB = "dynamodb"

# -- Exceptions --------------------------------------------------------------

EXCEPTION_MESSAGE = "exception.message"
EXCEPTION_STACKTRACE = "exception.stacktrace"
EXCEPTION_TYPE = "exception.type"

#: ``StatusCode`` value -> attribute text.
SPAN_STATUS_CODE: dict[int, str] = {
    0: "unset",
    1: "ok",
    2: "error",
}

#: Sentinel used when a naming input is missing.
UNKNOWN = "Unknown"
