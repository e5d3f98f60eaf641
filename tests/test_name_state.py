"""NameState: path stack, naming and the freeze latch."""

from __future__ import annotations

import re

from otelbridge.trace.name_state import NameState, NameStateStatus


def test_constructor_and_append_builds_name() -> None:
    state = NameState("Api", "GET", "/", "users")
    state.append_path("1")
    assert state.get_name() == "Api/GET//users/1"
    assert state.get_full_name() == "WebFrameworkUri/Api/GET//users/1"


def test_get_path_is_none_until_something_is_recorded() -> None:
    state = NameState()
    assert state.get_path() is None
    assert state.get_name() is None
    assert state.is_empty()


def test_get_path_deduplicates_slashes() -> None:
    state = NameState()
    state.append_path("/users/")
    state.append_path("/1")
    state.append_path("edit")
    assert state.get_path() == "/users/1/edit"


def test_root_path_renders_as_slash() -> None:
    state = NameState()
    state.append_path("/")
    assert state.get_path() == "/"


def test_set_prefix_strips_one_trailing_slash() -> None:
    state = NameState()
    state.set_prefix("Expressjs//")
    assert state.prefix == "Expressjs/"


def test_set_verb_uppercases() -> None:
    state = NameState()
    state.set_verb("post")
    assert state.verb == "POST"


def test_append_path_stores_pattern_source() -> None:
    state = NameState()
    state.append_path(re.compile(r"/users/\d+"))
    assert state.path_stack[0].path == r"/users/\d+"


def test_pop_path_to_named_frame() -> None:
    state = NameState()
    for part in ("users", "1", "edit"):
        state.append_path(part)
    state.pop_path("users")
    assert state.path_stack == []


def test_pop_path_without_match_is_noop() -> None:
    state = NameState()
    state.append_path("users")
    state.pop_path("missing")
    assert [f.path for f in state.path_stack] == ["users"]


def test_pop_path_without_argument_pops_one() -> None:
    state = NameState()
    state.append_path("a")
    state.append_path("b")
    state.pop_path()
    assert [f.path for f in state.path_stack] == ["a"]


def test_marked_path_used_when_live_stack_is_empty() -> None:
    state = NameState()
    state.append_path("/users")
    state.mark_path()
    state.pop_path()
    assert state.get_path() == "/users"

    state.append_path("/live")
    assert state.get_path() == "/live"


def test_append_path_if_empty() -> None:
    state = NameState()
    state.append_path_if_empty("/first")
    state.append_path_if_empty("/second")
    assert state.get_path() == "/first"


def test_set_name_resets_everything() -> None:
    state = NameState("Api", "GET", "/", "users")
    state.mark_path()
    state.set_name(None, "put", None, "items")
    assert state.prefix is None
    assert state.verb == "PUT"
    assert state.get_path() == "/items"
    assert state.marked_path == []


def test_frozen_state_ignores_mutators() -> None:
    state = NameState(None, "GET", None, "/users")
    state.freeze()
    assert state.status is NameStateStatus.FROZEN
    assert state.is_frozen

    state.set_name("X", "POST", "/", "other")
    state.set_prefix("Y")
    state.set_verb("delete")
    state.append_path("more")
    state.pop_path()
    state.mark_path()
    assert state.get_name() == "/GET/users"


def test_status_names() -> None:
    state = NameState(None, "GET", None, None)
    assert state.get_status_name(404) == "WebFrameworkUri//GET(not found)"
    assert state.get_status_name(405) == "WebFrameworkUri//GET(method not allowed)"
    assert state.get_status_name(501) == "WebFrameworkUri//GET(not implemented)"
    assert state.get_status_name(200) is None
    assert state.get_status_name(None) is None


def test_for_each_params_visits_frames_with_params() -> None:
    state = NameState()
    state.append_path("/users/:id", {"id": "1"})
    state.append_path("/edit")
    seen = []
    state.for_each_params(seen.append)
    assert seen == [{"id": "1"}]


def test_delimiter_sits_between_verb_and_path() -> None:
    state = NameState("Expressjs", "get")
    state.set_delimiter(" ")
    state.append_path("/users")
    assert state.get_name() == "Expressjs/GET /users"
    assert state.get_full_name() == "WebFrameworkUri/Expressjs/GET /users"
