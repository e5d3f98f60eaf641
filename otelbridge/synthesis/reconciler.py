"""Copy leftover span attributes onto segments."""

from __future__ import annotations

import logging
import socket
from typing import TYPE_CHECKING, Any, Mapping

from otelbridge.constants import (
    ATTR_HTTP_HOST,
    ATTR_NET_HOST_NAME,
    ATTR_NET_PEER_NAME,
    ATTR_SERVER_ADDRESS,
)

if TYPE_CHECKING:
    from otelbridge.trace.segment import Segment


#: Attribute keys holding a host name.
HOST_KEYS = frozenset({ATTR_SERVER_ADDRESS, ATTR_NET_HOST_NAME, ATTR_NET_PEER_NAME, ATTR_HTTP_HOST, "host"})

#: Loopback/unspecified addresses reported under the local display hostname.
LOCALHOST_NAMES = frozenset(
    {
        "localhost",
        "127.0.0.1",
        "0.0.0.0",
        "::1",
        "::",
        "0:0:0:0:0:0:0:1",
        "0:0:0:0:0:0:0:0",
    }
)


class AttributeReconciler:
    """Writes span attributes not consumed by rule directives to a segment.

    Host-valued keys pointing at the local machine are rewritten to
    *hostname* (``socket.gethostname()`` when not configured).
    """

    def __init__(self, hostname: str | None = None, logger: logging.Logger | None = None) -> None:
        self._hostname = hostname
        self.logger = logger or logging.getLogger("otelbridge.synthesis")

    @property
    def hostname(self) -> str:
        if not self._hostname:
            self._hostname = socket.gethostname()
        return self._hostname

    def resolve_host(self, value: Any) -> Any:
        if isinstance(value, str) and value.lower() in LOCALHOST_NAMES:
            return self.hostname
        return value

    def resolve(self, key: str, value: Any) -> Any:
        return self.resolve_host(value) if key in HOST_KEYS else value

    def reconcile(
        self,
        segment: Segment,
        attributes: Mapping[str, Any],
        exclude_attributes: set[str] | frozenset[str] = frozenset(),
    ) -> int:
        """Add every attribute not in *exclude_attributes*. Returns the count added."""
        added = 0
        for key, value in attributes.items():
            if key in exclude_attributes:
                continue
            segment.add_attribute(key, self.resolve(key, value))
            added += 1
        self.logger.debug("Reconciled %d attributes onto segment %s", added, segment.id)
        return added
