"""
Tests for utils/nav_client.py — lazy expansion over HTTP

Network calls are replaced by a stub session (unittest.mock) or, for the
end-to-end cases, by a FastAPI TestClient bound to the sample database.
"""
import sys
from pathlib import Path
from unittest.mock import MagicMock

import pytest
import requests

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from utils.nav_client import NavigationClient, NavigationFetchError
from utils.nav_state import NavigationState, NodeStatus
from utils.tree import NavNode


def _node_dict(node_id, number, type_="chapter", has_children=False, children=()):
    return {"id": node_id, "type": type_, "number": number, "name": node_id,
            "path": f"/browse/{node_id}", "expanded": False,
            "has_children": has_children, "children": list(children)}


def _response(status_code=200, payload=None):
    resp = MagicMock()
    resp.status_code = status_code
    resp.json.return_value = payload
    return resp


def _stub_sessions(routes):
    """Session manager whose GETs are answered from {parent: response}."""
    sessions = MagicMock()

    def get(url, params=None, timeout=None):
        outcome = routes[(params or {}).get("parent")]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    sessions.session.get.side_effect = get
    return sessions


def _state_with_unloaded(*node_ids):
    return NavigationState([
        NavNode(id=nid, type="title", number=str(i + 1), name=nid,
                path=f"/browse/{nid}", has_children=True)
        for i, nid in enumerate(node_ids)
    ])


class TestFetch:
    def test_fetch_tree_roots(self):
        sessions = _stub_sessions({None: _response(200, [_node_dict("t4", "4", "title")])})
        client = NavigationClient("http://api.test/", session_manager=sessions)
        nodes = client.fetch_tree(levels=2)
        assert [n.id for n in nodes] == ["t4"]
        url = sessions.session.get.call_args.args[0]
        assert url == "http://api.test/api/v1/navigation"
        assert sessions.session.get.call_args.kwargs["params"] == {"levels": 2}

    def test_fetch_children_sends_parent(self):
        sessions = _stub_sessions({"t4": _response(200, [])})
        client = NavigationClient("http://api.test", session_manager=sessions)
        assert client.fetch_children("t4") == []
        assert sessions.session.get.call_args.kwargs["params"] == {"levels": 1, "parent": "t4"}

    def test_error_body_message(self):
        sessions = _stub_sessions({"x": _response(404, {"error": "Node 'x' not found",
                                                        "status_code": 404})})
        client = NavigationClient("http://api.test", session_manager=sessions)
        with pytest.raises(NavigationFetchError, match="Node 'x' not found"):
            client.fetch_children("x")

    def test_error_without_json_body(self):
        resp = _response(502)
        resp.json.side_effect = ValueError("no json")
        client = NavigationClient("http://api.test", session_manager=_stub_sessions({"x": resp}))
        with pytest.raises(NavigationFetchError, match="HTTP error! status: 502"):
            client.fetch_children("x")

    def test_transport_error_wrapped(self):
        sessions = _stub_sessions({"x": requests.ConnectionError("refused")})
        client = NavigationClient("http://api.test", session_manager=sessions)
        with pytest.raises(NavigationFetchError, match="refused"):
            client.fetch_children("x")

    def test_context_manager_closes_sessions(self):
        sessions = MagicMock()
        with NavigationClient("http://api.test", session_manager=sessions):
            pass
        sessions.close.assert_called_once()


class TestExpand:
    def test_expand_fetches_and_merges(self):
        sessions = _stub_sessions({"a": _response(200, [_node_dict("a2", "2"),
                                                        _node_dict("a1", "1")])})
        client = NavigationClient("http://api.test", session_manager=sessions)
        state = _state_with_unloaded("a")
        assert client.expand(state, "a") is NodeStatus.EXPANDED
        assert [c.id for c in state.node("a").children] == ["a1", "a2"]

    def test_cached_expand_skips_fetch(self):
        sessions = _stub_sessions({})
        client = NavigationClient("http://api.test", session_manager=sessions)
        state = NavigationState([NavNode(id="leaf", type="title", number="1",
                                         name="Leaf", path="/browse/leaf")])
        assert client.expand(state, "leaf") is NodeStatus.EXPANDED
        sessions.session.get.assert_not_called()

    def test_failed_fetch_sets_error(self):
        sessions = _stub_sessions({"a": _response(500, {"error": "database is locked",
                                                        "status_code": 500})})
        client = NavigationClient("http://api.test", session_manager=sessions)
        state = _state_with_unloaded("a")
        assert client.expand(state, "a") is NodeStatus.COLLAPSED
        assert state.error("a") == "database is locked"
        # No retry
        assert sessions.session.get.call_count == 1

    @pytest.mark.parametrize("shape", ["not_json", "missing_id", "not_a_list"])
    def test_malformed_success_body_returns_to_collapsed(self, shape):
        resp = _response(200, {"not_json": None, "missing_id": [{"name": "no id"}],
                               "not_a_list": {"id": "a1"}}[shape])
        if shape == "not_json":
            resp.json.side_effect = ValueError("Expecting value")
        client = NavigationClient("http://api.test", session_manager=_stub_sessions({"a": resp}))
        state = _state_with_unloaded("a")
        assert client.expand(state, "a") is NodeStatus.COLLAPSED
        assert state.error("a")
        # Not stuck in flight: a later expand may start again
        assert state.begin_expand("a") is True

    def test_error_body_not_a_dict(self):
        client = NavigationClient("http://api.test",
                                  session_manager=_stub_sessions({"a": _response(503, ["down"])}))
        state = _state_with_unloaded("a")
        assert client.expand(state, "a") is NodeStatus.COLLAPSED
        assert state.error("a") == "HTTP error! status: 503"

    def test_expand_many(self):
        sessions = _stub_sessions({
            "a": _response(200, [_node_dict("a1", "1")]),
            "b": _response(200, [_node_dict("b1", "1"), _node_dict("b2", "2")]),
            "c": requests.Timeout("timed out"),
        })
        client = NavigationClient("http://api.test", session_manager=sessions)
        state = _state_with_unloaded("a", "b", "c")
        results = client.expand_many(state, ["a", "b", "c", "a"])
        assert results == {"a": NodeStatus.EXPANDED, "b": NodeStatus.EXPANDED,
                           "c": NodeStatus.COLLAPSED}
        assert [c.id for c in state.node("a").children] == ["a1"]
        assert [c.id for c in state.node("b").children] == ["b1", "b2"]
        assert "timed out" in state.error("c")

    def test_expand_many_malformed_body_does_not_abort_batch(self):
        bad = _response(200, None)
        bad.json.side_effect = ValueError("Expecting value")
        sessions = _stub_sessions({"a": _response(200, [_node_dict("a1", "1")]), "b": bad})
        client = NavigationClient("http://api.test", session_manager=sessions)
        state = _state_with_unloaded("a", "b")
        results = client.expand_many(state, ["a", "b"])
        assert results == {"a": NodeStatus.EXPANDED, "b": NodeStatus.COLLAPSED}
        assert "Invalid JSON" in state.error("b")

    def test_expand_many_empty(self):
        client = NavigationClient("http://api.test", session_manager=_stub_sessions({}))
        assert client.expand_many(NavigationState(), []) == {}


class _TestClientSessions:
    """Adapts a FastAPI TestClient to the SessionManager interface."""

    def __init__(self, test_client):
        self.session = test_client

    def close(self):
        pass


class TestAgainstApi:
    def test_load_and_expand(self, client):
        nav = NavigationClient("http://testserver", session_manager=_TestClientSessions(client))
        state = nav.load(levels=1)
        assert [n.id for n in state.forest] == ["title-4", "title-5", "title-10"]

        assert nav.expand(state, "title-4") is NodeStatus.EXPANDED
        assert [c.id for c in state.node("title-4").children] == ["chapter-I"]

        assert nav.expand(state, "chapter-I") is NodeStatus.EXPANDED
        assert [c.id for c in state.node("chapter-I").children] == ["subchapter-A", "subchapter-B"]
        # title-5 untouched
        assert state.node("title-5").children == ()
        assert state.status("title-5") is NodeStatus.COLLAPSED

    def test_two_level_load_is_cached(self, client):
        nav = NavigationClient("http://testserver", session_manager=_TestClientSessions(client))
        state = nav.load(levels=2)
        assert [c.id for c in state.node("title-5").children] == ["chapter-5-I"]
        assert state.begin_expand("title-5") is False
