"""Template substitution, value extraction, target assignment and regex extraction."""

from __future__ import annotations

from otelbridge.rules.spec import AttributeMapping, RegexSpec, Target
from otelbridge.rules.templates import (
    assign_to_target,
    build_rule_mappings,
    extract_attribute_value,
    process_regex,
    transform_template,
)
from otelbridge.trace.attributes import Destination
from otelbridge.trace.segment import Segment
from otelbridge.trace.transaction import Transaction


def _segment_and_transaction() -> tuple[Segment, Transaction]:
    tx = Transaction()
    seg = Segment("seg", parent=tx.trace.root)
    return seg, tx


# ----------------------------------------------------------------------
# transform_template
# ----------------------------------------------------------------------


def test_missing_key_renders_unknown() -> None:
    assert transform_template("prefix-${x}", {}, {}) == "prefix-unknown"


def test_present_key_renders_value() -> None:
    assert transform_template("${x}", {"x": "a"}, {}) == "a"


def test_falsy_value_renders_unknown_without_rule() -> None:
    assert transform_template("n=${x}", {"x": 0}) == "n=unknown"
    assert transform_template("s=${x}", {"x": ""}) == "s=unknown"


def test_rule_result_used_verbatim_for_present_values() -> None:
    rules = build_rule_mappings([{"key": "x", "arguments": "v", "body": "'zero' if v == 0 else str(v)"}])
    assert transform_template("n=${x}", {"x": 0}, rules) == "n=zero"
    assert transform_template("n=${x}", {"x": 3}, rules) == "n=3"


def test_rule_not_consulted_for_absent_key() -> None:
    rules = {"x": lambda value: "never"}
    assert transform_template("${x}", {}, rules) == "unknown"


def test_rule_returning_none_renders_empty() -> None:
    rules = {"q": lambda value: None}
    assert transform_template("/path${q}", {"q": "a=1"}, rules) == "/path"


def test_multiple_placeholders_with_dotted_keys() -> None:
    data = {"url.scheme": "https", "server.address": "example.com", "url.path": "/a"}
    assert transform_template("${url.scheme}://${server.address}${url.path}", data) == "https://example.com/a"


# ----------------------------------------------------------------------
# extract_attribute_value
# ----------------------------------------------------------------------


def test_key_source_marks_key_consumed() -> None:
    mapping = AttributeMapping.from_dict({"key": "http.method", "name": "request.method"})
    exclude: set[str] = set()
    assert extract_attribute_value(mapping, {"http.method": "GET"}, exclude) == "GET"
    assert exclude == {"http.method"}


def test_missing_key_returns_none_and_consumes_nothing() -> None:
    mapping = AttributeMapping.from_dict({"key": "http.method", "name": "request.method"})
    exclude: set[str] = set()
    assert extract_attribute_value(mapping, {}, exclude) is None
    assert exclude == set()


def test_key_source_applies_mapping_function() -> None:
    mapping = AttributeMapping.from_dict(
        {
            "key": "http.method",
            "name": "request.method",
            "mappings": [{"key": "http.method", "arguments": "value", "body": "value.lower()"}],
        }
    )
    assert extract_attribute_value(mapping, {"http.method": "GET"}, set()) == "get"


def test_literal_value_marks_name_consumed() -> None:
    mapping = AttributeMapping.from_dict({"value": "fixed", "name": "component"})
    exclude: set[str] = set()
    assert extract_attribute_value(mapping, {"component": "raw"}, exclude) == "fixed"
    assert exclude == {"component"}


def test_template_consumes_nothing() -> None:
    mapping = AttributeMapping.from_dict({"template": "${rpc.service}/${rpc.method}", "name": "request.uri"})
    exclude: set[str] = set()
    value = extract_attribute_value(mapping, {"rpc.service": "svc", "rpc.method": "Get"}, exclude)
    assert value == "svc/Get"
    assert exclude == set()


def test_key_wins_over_template() -> None:
    mapping = AttributeMapping.from_dict({"key": "a", "template": "${b}", "name": "out"})
    assert extract_attribute_value(mapping, {"a": "from-key", "b": "from-template"}, set()) == "from-key"


# ----------------------------------------------------------------------
# assign_to_target
# ----------------------------------------------------------------------


def test_assign_to_segment() -> None:
    seg, tx = _segment_and_transaction()
    assert assign_to_target(target=Target.SEGMENT, name="k", value="v", segment=seg, transaction=tx)
    assert seg.get_attributes() == {"k": "v"}


def test_assign_to_trace_uses_common_destination() -> None:
    seg, tx = _segment_and_transaction()
    assign_to_target(target="trace", name="k", value="v", segment=seg, transaction=tx)
    assert tx.trace.attributes.get(Destination.COMMON) == {"k": "v"}
    assert seg.get_attributes() == {}


def test_assign_to_transaction_sets_whitelisted_field() -> None:
    seg, tx = _segment_and_transaction()
    assert assign_to_target(target=Target.TRANSACTION, name="statusCode", value="404", segment=seg, transaction=tx)
    assert tx.status_code == 404


def test_assign_to_transaction_refuses_other_fields() -> None:
    seg, tx = _segment_and_transaction()
    assert not assign_to_target(target=Target.TRANSACTION, name="name", value="x", segment=seg, transaction=tx)
    assert tx.name is None


def test_assign_without_transaction_is_noop() -> None:
    assert not assign_to_target(target=Target.TRACE, name="k", value="v", segment=None, transaction=None)


# ----------------------------------------------------------------------
# process_regex
# ----------------------------------------------------------------------


def test_global_regex_assigns_every_match() -> None:
    seg, tx = _segment_and_transaction()
    regex = RegexSpec.from_dict(
        {
            "statement": "(?<key>[^&=]+)=(?<value>[^&]*)",
            "flags": "g",
            "name": "key",
            "value": "value",
            "prefix": "request.parameters.",
        }
    )
    count = process_regex(regex, "a=1&b=2", target=Target.TRACE, segment=seg, transaction=tx)
    assert count == 2
    assert tx.trace.attributes.get(Destination.COMMON) == {
        "request.parameters.a": "1",
        "request.parameters.b": "2",
    }


def test_non_global_regex_only_uses_first_match() -> None:
    seg, tx = _segment_and_transaction()
    regex = RegexSpec.from_dict({"statement": r"(?P<word>\w+)", "groups": ["word"], "prefix": "w."})
    count = process_regex(regex, "one two", target=Target.SEGMENT, segment=seg, transaction=tx)
    assert count == 1
    assert seg.get_attributes() == {"w.word": "one"}


def test_nested_group_regex() -> None:
    seg, tx = _segment_and_transaction()
    regex = RegexSpec.from_dict(
        {
            "statement": r"(?P<host>[^:]+):(?P<port>\d+)",
            "groups": [
                "port",
                {"group": "host", "regex": {"statement": r"(?P<tld>\w+)$", "groups": ["tld"], "prefix": "host."}},
            ],
            "prefix": "peer.",
        }
    )
    process_regex(regex, "db.example.com:5432", target=Target.SEGMENT, segment=seg, transaction=tx)
    assert seg.get_attributes() == {"peer.port": "5432", "host.tld": "com"}


def test_regex_target_override() -> None:
    seg, tx = _segment_and_transaction()
    regex = RegexSpec.from_dict({"statement": r"(?P<id>\d+)", "groups": ["id"], "target": "trace"})
    process_regex(regex, "user 42", target=Target.SEGMENT, segment=seg, transaction=tx)
    assert seg.get_attributes() == {}
    assert tx.trace.attributes.get(Destination.COMMON) == {"id": "42"}


def test_regex_on_none_value_does_nothing() -> None:
    seg, tx = _segment_and_transaction()
    regex = RegexSpec.from_dict({"statement": r"(?P<id>\d+)", "groups": ["id"]})
    assert process_regex(regex, None, target=Target.SEGMENT, segment=seg, transaction=tx) == 0
