"""Rule loading and first-match lookup."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from otelbridge.rules.engine import RulesEngine, load_rule_dicts, load_rules, parse_rules
from otelbridge.rules.spec import Rule, RuleLoadError, RuleType, Target


def _rule(name: str, kind: str = "client", type: str = "external", **matcher: object) -> dict:
    return {"name": name, "type": type, "matcher": {"required_span_kinds": [kind], **matcher}}


def test_bundled_table_loads() -> None:
    rules = load_rules()
    names = [r.name for r in rules]
    assert "OtelHttpServer1_23" in names
    assert "FallbackInternal" in names
    assert len(set(names)) == len(names)


def test_fallback_detected_by_name() -> None:
    engine = RulesEngine.from_file()
    assert engine.get("FallbackServer").is_fallback
    assert not engine.get("OtelHttpServer1_23").is_fallback


def test_buckets_keep_declaration_order() -> None:
    engine = RulesEngine.from_file()
    server = engine.bucket("server")
    assert [r.name for r in server.primary] == ["OtelHttpServer1_23", "OtelHttpServer1_20", "OtelRpcServer1_20"]
    assert [r.name for r in server.fallback] == ["FallbackServer"]
    producer = engine.bucket("PRODUCER")
    assert producer.primary == []
    assert [r.name for r in producer.fallback] == ["FallbackProducer"]


def test_primary_rule_preferred_over_fallback(make_span) -> None:
    engine = RulesEngine.from_file()
    span = make_span("server", {"http.request.method": "GET", "http.route": "/a"})
    assert engine.test(span).name == "OtelHttpServer1_23"


def test_fallback_used_when_no_primary_matches(make_span) -> None:
    engine = RulesEngine.from_file()
    assert engine.test(make_span("server", {"foo": "bar"})).name == "FallbackServer"
    assert engine.test(make_span("internal")).name == "FallbackInternal"


def test_attribute_conditions_route_db_systems(make_span) -> None:
    engine = RulesEngine.from_file()
    assert engine.test(make_span("client", {"db.system": "redis"})).name == "OtelDbClientRedis1_24"
    assert engine.test(make_span("client", {"db.system": "postgresql"})).name == "OtelDbClient1_24"


def test_matching_is_deterministic(make_span) -> None:
    engine = RulesEngine.from_file()
    span = make_span("client", {"http.method": "GET", "net.peer.name": "example.com"})
    assert {engine.test(span).name for _ in range(10)} == {"OtelHttpClient1_20"}


def test_no_rule_for_kind_returns_none(make_span) -> None:
    engine = RulesEngine(parse_rules([_rule("OnlyClient")]))
    assert engine.test(make_span("server")) is None
    assert engine.test(make_span("internal")) is None


def test_set_condition_means_membership() -> None:
    rule = Rule.from_dict(_rule("Rpc", attribute_conditions={"rpc.system": ["grpc", "connect_rpc"]}))
    assert rule.matches({"rpc.system": "grpc"})
    assert not rule.matches({"rpc.system": "thrift"})
    assert not rule.matches({})


def test_scalar_condition_means_equality() -> None:
    rule = Rule.from_dict(_rule("Db", attribute_conditions={"db.system": "redis"}))
    assert rule.matches({"db.system": "redis"})
    assert not rule.matches({"db.system": "redis-cluster"})


def test_required_keys_all_present() -> None:
    rule = Rule.from_dict(_rule("Http", required_attribute_keys=["a", "b"]))
    assert rule.matches({"a": 1, "b": None})
    assert not rule.matches({"a": 1})


def test_rule_matching_several_kinds_is_registered_for_each(make_span) -> None:
    record = {"name": "Both", "type": "internal", "matcher": {"required_span_kinds": ["client", "Internal"]}}
    engine = RulesEngine(parse_rules([record]))
    assert engine.test(make_span("client")).name == "Both"
    assert engine.test(make_span("internal")).name == "Both"


def test_unknown_type_rejected_at_load() -> None:
    with pytest.raises(RuleLoadError, match="unknown type"):
        parse_rules([_rule("Bad", type="queue")])


def test_unknown_target_rejected_at_load() -> None:
    record = _rule("Bad")
    record["attributes"] = [{"key": "a", "target": "nowhere"}]
    with pytest.raises(RuleLoadError, match="Unknown attribute target"):
        parse_rules([record])


def test_unknown_span_kind_rejected() -> None:
    with pytest.raises(RuleLoadError, match="unknown span kinds"):
        parse_rules([_rule("Bad", kind="sideways")])


def test_duplicate_names_rejected() -> None:
    with pytest.raises(RuleLoadError, match="Duplicate"):
        parse_rules([_rule("Same"), _rule("Same")])


def test_invalid_mapping_expression_rejected() -> None:
    record = _rule("Bad")
    record["attributes"] = [
        {"key": "a", "name": "b", "mappings": [{"key": "a", "arguments": "v", "body": "__import__('os')"}]}
    ]
    with pytest.raises(RuleLoadError):
        parse_rules([record])


def test_regex_group_must_exist() -> None:
    record = _rule("Bad")
    record["attributes"] = [{"key": "a", "regex": {"statement": "(?<x>.*)", "groups": ["y"]}}]
    with pytest.raises(RuleLoadError, match="no group named"):
        parse_rules([record])


def test_parsed_rule_fields() -> None:
    rule = RulesEngine.from_file().get("OtelHttpServer1_23")
    assert rule.type is RuleType.SERVER
    assert rule.span_kinds == frozenset({"server"})
    query = [a for a in rule.attributes if a.key == "url.query"][0]
    assert query.high_security
    assert query.target is Target.TRACE
    assert query.regex.is_global
    assert rule.transaction_transform.name.verb == "http.request.method"
    assert rule.transaction_transform.url.template.startswith("${url.scheme}")


def test_segment_transform_candidate_keys() -> None:
    rule = RulesEngine.from_file().get("OtelDbClient1_24")
    assert rule.segment_transform.statement == ("db.query.text", "db.statement")
    assert rule.segment_transform.system == ("db.system",)


def test_load_rule_dicts_reports_schema_errors(tmp_path: Path) -> None:
    path = tmp_path / "rules.json"
    path.write_text(json.dumps([{"name": "NoType", "matcher": {"required_span_kinds": ["client"]}}]), encoding="utf-8")
    with pytest.raises(RuleLoadError, match="invalid"):
        load_rule_dicts(path)


def test_load_rule_dicts_reports_bad_json(tmp_path: Path) -> None:
    path = tmp_path / "rules.json"
    path.write_text("[{", encoding="utf-8")
    with pytest.raises(RuleLoadError, match="Invalid JSON"):
        load_rule_dicts(path)


def test_missing_file(tmp_path: Path) -> None:
    with pytest.raises(RuleLoadError, match="Cannot read"):
        load_rules(tmp_path / "missing.json")


def test_custom_table_from_file(tmp_path: Path, make_span) -> None:
    path = tmp_path / "rules.json"
    path.write_text(json.dumps([_rule("FallbackEverything", kind="server", type="server")]), encoding="utf-8")
    engine = RulesEngine.from_file(path)
    assert len(engine) == 1
    assert engine.test(make_span("server")).name == "FallbackEverything"
