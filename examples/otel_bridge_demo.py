"""otelbridge end-to-end example: instrumented request handling.

Registers the bridge on an OpenTelemetry tracer provider, emits a web
request with a database query, an outbound HTTP call and a queue
publish, then a message consumer that fails, and prints the resulting
transactions.
"""

from __future__ import annotations

import logging

from opentelemetry.trace import SpanKind

import otelbridge


def handle_request(tracer) -> None:
    server_attrs = {
        "http.request.method": "GET",
        "http.route": "/orders/:id",
        "url.scheme": "https",
        "server.address": "localhost",
        "server.port": 8443,
        "url.path": "/orders/1001",
        "url.query": "expand=items",
        "http.response.status_code": 200,
    }
    with tracer.start_as_current_span("GET /orders/:id", kind=SpanKind.SERVER, attributes=server_attrs):
        with tracer.start_as_current_span(
            "SELECT orders",
            kind=SpanKind.CLIENT,
            attributes={"db.system": "postgresql", "db.statement": "SELECT * FROM orders WHERE id = $1"},
        ):
            pass
        with tracer.start_as_current_span(
            "GET",
            kind=SpanKind.CLIENT,
            attributes={
                "http.request.method": "GET",
                "server.address": "inventory.internal",
                "url.full": "http://inventory.internal/stock/1001?fresh=1",
                "http.response.status_code": 200,
            },
        ):
            pass
        with tracer.start_as_current_span(
            "orders publish",
            kind=SpanKind.PRODUCER,
            attributes={
                "messaging.system": "kafka",
                "messaging.operation": "publish",
                "messaging.destination.name": "order-events",
            },
        ):
            pass


def consume_message(tracer) -> None:
    attrs = {
        "messaging.system": "kafka",
        "messaging.operation": "process",
        "messaging.destination.name": "order-events",
    }
    try:
        with tracer.start_as_current_span("order-events process", kind=SpanKind.CONSUMER, attributes=attrs):
            raise KeyError("order 1001 not found")
    except KeyError:
        pass


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    processor = otelbridge.install(config={"hostname": "demo-host"})
    tracer = processor.tracer_provider.get_tracer("otelbridge-demo", "0.1.0")

    handle_request(tracer)
    consume_message(tracer)

    print("=== otelbridge demo ===")
    for tx in processor.agent.drain():
        print(f"Transaction: {tx.name}")
        print(f"  type={tx.type.value} url={tx.url} status={tx.status_code}")
        for segment in tx.base_segment.walk():
            print(f"  segment {segment.name} ({segment.duration_ms:.2f} ms)")
        params = tx.trace.attributes.to_dict().get("common", {})
        if params:
            print(f"  request parameters: {params}")
        for error in tx.exceptions:
            print(f"  error {error.type}: {error.message}")
        print(f"  metrics: {sorted(tx.metrics.unscoped)}")
        print()

    processor.tracer_provider.shutdown()


if __name__ == "__main__":
    main()
