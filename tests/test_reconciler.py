"""Leftover attribute copying and attribute storage."""

from __future__ import annotations

from otelbridge.synthesis.reconciler import AttributeReconciler
from otelbridge.trace.attributes import Destination, TraceAttributes
from otelbridge.trace.segment import Segment


def test_reconcile_copies_unconsumed_attributes() -> None:
    seg = Segment("s")
    reconciler = AttributeReconciler(hostname="test-host")
    added = reconciler.reconcile(seg, {"a": 1, "b": 2, "c": None}, {"b"})
    assert added == 2
    assert seg.get_attributes() == {"a": 1}


def test_loopback_hosts_resolve_to_hostname() -> None:
    seg = Segment("s")
    reconciler = AttributeReconciler(hostname="test-host")
    reconciler.reconcile(
        seg,
        {"server.address": "localhost", "net.peer.name": "::1", "net.host.name": "db.internal", "note": "localhost"},
    )
    assert seg.get_attributes() == {
        "server.address": "test-host",
        "net.peer.name": "test-host",
        "net.host.name": "db.internal",
        "note": "localhost",
    }


def test_hostname_defaults_to_machine_name(monkeypatch) -> None:
    monkeypatch.setattr("otelbridge.synthesis.reconciler.socket.gethostname", lambda: "box-1")
    reconciler = AttributeReconciler()
    assert reconciler.resolve_host("127.0.0.1") == "box-1"
    assert reconciler.resolve_host(8080) == 8080


def test_string_values_truncated() -> None:
    attrs = TraceAttributes(value_limit=5)
    attrs.add_attribute(Destination.SEGMENT, "long", "abcdefgh")
    attrs.add_attribute("segment", "num", 123456789)
    attrs.add_attribute("span", "none", None)
    assert attrs.get("segment") == {"long": "abcde", "num": 123456789}
    assert not attrs.has("span", "none")
    assert attrs.to_dict() == {"segment": {"long": "abcde", "num": 123456789}}


def test_get_returns_copy() -> None:
    seg = Segment("s")
    seg.add_attribute("k", "v")
    seg.get_attributes()["k"] = "changed"
    assert seg.get_attributes() == {"k": "v"}
