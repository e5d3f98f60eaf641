"""CLI: rule table checks and span replay."""

from __future__ import annotations

import json
from pathlib import Path

from click.testing import CliRunner

from otelbridge.cli.main import cli
from otelbridge.rules.engine import DEFAULT_RULES_PATH, load_rules

TRACE_ID = "4bf92f3577b34da6a3ce929d0e0e4736"


def _write(path: Path, data: object) -> Path:
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


def _request_spans(query: str | None = None) -> list[dict]:
    server_attrs = {
        "http.request.method": "GET",
        "http.route": "/users/:id",
        "url.scheme": "https",
        "server.address": "shop.example.com",
        "url.path": "/users/42",
        "http.response.status_code": 200,
    }
    if query:
        server_attrs["url.query"] = query
    return [
        {
            "name": "GET /users/:id",
            "kind": "server",
            "trace_id": TRACE_ID,
            "span_id": "00000000000000a1",
            "attributes": server_attrs,
            "start_time": 0,
            "end_time": 5_000_000,
        },
        {
            "name": "SELECT users",
            "kind": "client",
            "trace_id": TRACE_ID,
            "span_id": "00000000000000a2",
            "parent_span_id": "00000000000000a1",
            "attributes": {"db.system": "postgresql", "db.statement": "select * from users where id = 42"},
            "start_time": 1_000_000,
            "duration_ms": 2,
        },
    ]


# ----------------------------------------------------------------------
# rules
# ----------------------------------------------------------------------


def test_rules_validate_bundled_table() -> None:
    runner = CliRunner()
    result = runner.invoke(cli, ["rules", "validate", str(DEFAULT_RULES_PATH), "--format", "json"])
    assert result.exit_code == 0
    report = json.loads(result.stdout)
    assert report["valid"] is True
    assert report["rules"] == len(load_rules())
    assert report["errors"] == []


def test_rules_validate_schema_error(tmp_path: Path) -> None:
    path = _write(tmp_path / "rules.json", [{"name": "X", "type": "queue", "matcher": {"required_span_kinds": ["client"]}}])
    runner = CliRunner()
    result = runner.invoke(cli, ["rules", "validate", str(path), "--format", "json"])
    assert result.exit_code == 1
    report = json.loads(result.stdout)
    assert report["valid"] is False
    assert report["errors"][0].startswith("[0.type]")


def test_rules_validate_build_error(tmp_path: Path) -> None:
    rule = {"name": "Same", "type": "internal", "matcher": {"required_span_kinds": ["internal"]}}
    path = _write(tmp_path / "rules.json", [rule, rule])
    runner = CliRunner()
    result = runner.invoke(cli, ["rules", "validate", str(path), "--format", "json"])
    assert result.exit_code == 1
    assert "Duplicate" in json.loads(result.stdout)["errors"][0]


def test_rules_validate_table_output() -> None:
    runner = CliRunner()
    result = runner.invoke(cli, ["rules", "validate", str(DEFAULT_RULES_PATH)])
    assert result.exit_code == 0


def test_rules_list_json() -> None:
    runner = CliRunner()
    result = runner.invoke(cli, ["rules", "list", "--format", "json"])
    assert result.exit_code == 0
    rows = json.loads(result.stdout)
    assert rows[0] == {"kind": "server", "bucket": "primary", "name": "OtelHttpServer1_23", "type": "server"}
    assert {"kind": "internal", "bucket": "fallback", "name": "FallbackInternal", "type": "internal"} in rows


def test_rules_list_bad_file(tmp_path: Path) -> None:
    path = tmp_path / "rules.json"
    path.write_text("[{", encoding="utf-8")
    runner = CliRunner()
    result = runner.invoke(cli, ["rules", "list", "--rules", str(path)])
    assert result.exit_code == 1
    assert "Invalid JSON" in result.output


# ----------------------------------------------------------------------
# span explain
# ----------------------------------------------------------------------


def test_span_explain_json(tmp_path: Path) -> None:
    path = _write(tmp_path / "spans.json", _request_spans())
    runner = CliRunner()
    result = runner.invoke(cli, ["span", "explain", str(path), "--format", "json"])
    assert result.exit_code == 0, result.output
    report = json.loads(result.stdout)

    server, query = report["spans"]
    assert server["rule"] == "OtelHttpServer1_23"
    assert server["starts_transaction"] is True
    assert server["segment"] == "WebTransaction/WebFrameworkUri//GET/users/:id"
    assert query["rule"] == "OtelDbClient1_24"
    assert query["segment"] == "Datastore/statement/postgresql/users/select"
    assert query["starts_transaction"] is False

    [tx] = report["transactions"]
    assert tx["name"] == "WebTransaction/WebFrameworkUri//GET/users/:id"
    assert tx["url"] == "/users/42"
    assert tx["status_code"] == 200
    assert tx["trace_id"] == TRACE_ID


def test_span_explain_single_document(tmp_path: Path) -> None:
    path = _write(tmp_path / "span.json", _request_spans()[0])
    runner = CliRunner()
    result = runner.invoke(cli, ["span", "explain", str(path), "--format", "json"])
    assert result.exit_code == 0, result.output
    assert len(json.loads(result.stdout)["spans"]) == 1


def test_span_explain_high_security(tmp_path: Path) -> None:
    path = _write(tmp_path / "spans.json", _request_spans(query="token=abc"))
    runner = CliRunner()

    result = runner.invoke(cli, ["span", "explain", str(path), "--format", "json"])
    attributes = json.loads(result.stdout)["transactions"][0]["attributes"]
    assert attributes == {"common": {"request.parameters.token": "abc"}}

    result = runner.invoke(cli, ["span", "explain", str(path), "--high-security", "--format", "json"])
    assert json.loads(result.stdout)["transactions"][0]["attributes"] == {}


def test_span_explain_with_config(tmp_path: Path) -> None:
    spans = _write(tmp_path / "spans.json", _request_spans(query="token=abc"))
    config = _write(tmp_path / "config.json", {"high_security": True})
    runner = CliRunner()
    result = runner.invoke(cli, ["span", "explain", str(spans), "--config", str(config), "--format", "json"])
    assert result.exit_code == 0
    assert json.loads(result.stdout)["transactions"][0]["attributes"] == {}


def test_span_explain_unmatched_span(tmp_path: Path) -> None:
    rules = _write(
        tmp_path / "rules.json",
        [{"name": "ServersOnly", "type": "server", "matcher": {"required_span_kinds": ["server"]}}],
    )
    doc = {"name": "orphan", "kind": "internal", "trace_id": TRACE_ID, "span_id": "00000000000000b1"}
    spans = _write(tmp_path / "spans.json", [doc])
    runner = CliRunner()
    result = runner.invoke(cli, ["span", "explain", str(spans), "--rules", str(rules), "--format", "json"])
    assert result.exit_code == 0
    report = json.loads(result.stdout)
    assert report["spans"] == [
        {"span": "orphan", "kind": "internal", "rule": None, "segment": None, "starts_transaction": False}
    ]
    assert report["transactions"] == []


def test_span_explain_invalid_document(tmp_path: Path) -> None:
    path = _write(tmp_path / "spans.json", [{"name": "no-ids"}])
    runner = CliRunner()
    result = runner.invoke(cli, ["span", "explain", str(path)])
    assert result.exit_code == 1
    assert "Validation errors" in result.output


def test_span_explain_table_output(tmp_path: Path) -> None:
    path = _write(tmp_path / "spans.json", _request_spans())
    runner = CliRunner()
    result = runner.invoke(cli, ["span", "explain", str(path)])
    assert result.exit_code == 0
    assert "WebTransaction/WebFrameworkUri//GET/users/:id" in result.output


def test_example_span_file_replays() -> None:
    path = Path(__file__).resolve().parent.parent / "examples" / "spans" / "checkout.json"
    runner = CliRunner()
    result = runner.invoke(cli, ["span", "explain", str(path), "--format", "json"])
    assert result.exit_code == 0, result.output
    [tx] = json.loads(result.stdout)["transactions"]
    assert tx["name"] == "WebTransaction/WebFrameworkUri//POST/checkout"
    assert tx["status_code"] == 201
    assert [e["message"] for e in tx["errors"]] == ["card declined"]
