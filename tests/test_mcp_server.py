"""Tests for the stdio MCP server and its memory tools."""

from __future__ import annotations

import asyncio
import io
import json

import pytest

from gmem.mcp_server import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    METHOD_NOT_FOUND,
    PARSE_ERROR,
    PROTOCOL_VERSION,
    SERVER_NAME,
    handle_line,
    handle_request,
    serve,
)
from gmem.memory.lock import LockKind
from gmem.memory.store import MemoryStore
from gmem.tools.memory_tools import get_memory_tools


@pytest.fixture
def mcp_store(tmp_path) -> MemoryStore:
    return MemoryStore(tmp_path / "store.json", LockKind.MCP)


@pytest.fixture
def tools(mcp_store):
    return get_memory_tools(mcp_store)


def _call(tools, name, **arguments):
    resp = handle_request(
        {"jsonrpc": "2.0", "id": 7, "method": "tools/call",
         "params": {"name": name, "arguments": arguments}},
        tools,
    )
    return resp


def _payload(resp):
    return json.loads(resp["result"]["content"][0]["text"])


class TestMemoryTools:
    def test_add_and_search(self, tools, mcp_store):
        added = tools["add_memory"](text="rust memory store design", tags="Rust, design")
        assert added["success"] is True
        assert mcp_store.load()[0].tags == ["rust", "design"]

        found = tools["search_memory"](query="rust")
        assert found["count"] == 1
        assert found["memories"][0]["id"] == added["id"]
        assert found["memories"][0]["score"] >= 19

    def test_tags_as_list(self, tools, mcp_store):
        tools["add_memory"](text="note", tags=["A", "b"])
        assert mcp_store.load()[0].tags == ["a", "b"]

    def test_compress(self, tools):
        tools["add_memory"](text="docker compose tips", tags="docker")
        result = tools["compress_memory"](query="docker", budget=500)
        assert result["compressed"].startswith("# Copilot Context (auto)")
        assert result["length"] == len(result["compressed"].encode("utf-8"))
        assert result["budget"] == 500
        assert len(result["included"]) == 1

    def test_delete(self, tools):
        added = tools["add_memory"](text="temporary")
        assert tools["delete_memory"](id=added["id"])["success"] is True
        assert tools["delete_memory"](id=added["id"])["success"] is False

    def test_stats(self, tools):
        tools["add_memory"](text="one", tags="x")
        assert tools["get_stats"]() == {"total": 1, "active": 1, "deleted": 0, "tags": {"x": 1}}

    def test_non_finite_limits_fall_back_to_defaults(self, tools):
        tools["add_memory"](text="rust notes")
        assert tools["search_memory"](query="rust", limit=float("inf"))["count"] == 1
        assert tools["search_memory"](query="rust", limit=float("nan"))["count"] == 1
        assert tools["compress_memory"](query="rust", budget=float("nan"))["budget"] == 1000


class TestHandleRequest:
    def test_initialize(self, tools):
        resp = handle_request({"jsonrpc": "2.0", "id": 1, "method": "initialize", "params": {}}, tools)
        assert resp["id"] == 1
        assert resp["result"]["protocolVersion"] == PROTOCOL_VERSION
        assert resp["result"]["serverInfo"]["name"] == SERVER_NAME

    def test_tools_list(self, tools):
        resp = handle_request({"jsonrpc": "2.0", "id": 2, "method": "tools/list"}, tools)
        names = [t["name"] for t in resp["result"]["tools"]]
        assert names == ["add_memory", "search_memory", "compress_memory", "delete_memory", "get_stats"]
        assert set(names) == set(tools)

    def test_notification_gets_no_reply(self, tools):
        assert handle_request({"jsonrpc": "2.0", "method": "notifications/initialized"}, tools) is None

    def test_unknown_method(self, tools):
        resp = handle_request({"jsonrpc": "2.0", "id": 3, "method": "resources/list"}, tools)
        assert resp["error"]["code"] == METHOD_NOT_FOUND

    def test_shutdown(self, tools):
        resp = handle_request({"jsonrpc": "2.0", "id": 4, "method": "shutdown"}, tools)
        assert resp["result"] == {}

    def test_tools_call(self, tools):
        resp = _call(tools, "add_memory", text="hello from mcp")
        assert resp["id"] == 7
        assert _payload(resp)["success"] is True

        resp = _call(tools, "search_memory", query="hello", limit=5)
        assert _payload(resp)["count"] == 1

    def test_empty_text_is_invalid_params(self, tools):
        resp = _call(tools, "add_memory", text="   ")
        assert resp["error"]["code"] == INVALID_PARAMS
        assert "empty" in resp["error"]["message"]

    def test_missing_argument_is_invalid_params(self, tools):
        assert _call(tools, "search_memory")["error"]["code"] == INVALID_PARAMS

    def test_unexpected_argument_is_invalid_params(self, tools):
        assert _call(tools, "get_stats", verbose=True)["error"]["code"] == INVALID_PARAMS

    def test_unknown_tool(self, tools):
        assert _call(tools, "drop_tables")["error"]["code"] == METHOD_NOT_FOUND

    def test_parse_error(self, tools):
        resp = handle_line("{oops", tools)
        assert resp["id"] is None
        assert resp["error"]["code"] == PARSE_ERROR

    def test_handler_crash_becomes_internal_error(self, tools):
        def explode(**kwargs):
            raise RuntimeError("boom")

        tools["get_stats"] = explode
        resp = handle_line(json.dumps({"jsonrpc": "2.0", "id": 9, "method": "tools/call",
                                       "params": {"name": "get_stats", "arguments": {}}}), tools)
        assert resp["id"] == 9
        assert resp["error"]["code"] == INTERNAL_ERROR
        assert "boom" in resp["error"]["message"]


class TestServe:
    @pytest.mark.asyncio
    async def test_stdio_roundtrip(self, mcp_store):
        reader = asyncio.StreamReader()
        frames = [
            {"jsonrpc": "2.0", "id": 1, "method": "initialize", "params": {}},
            {"jsonrpc": "2.0", "method": "notifications/initialized"},
            {"jsonrpc": "2.0", "id": 2, "method": "tools/call",
             "params": {"name": "add_memory", "arguments": {"text": "served note", "tags": "srv"}}},
            {"jsonrpc": "2.0", "id": 3, "method": "tools/call",
             "params": {"name": "get_stats", "arguments": {}}},
        ]
        for frame in frames:
            reader.feed_data((json.dumps(frame) + "\n").encode("utf-8"))
        reader.feed_data(b"\n")
        reader.feed_eof()

        out = io.StringIO()
        await serve(mcp_store, reader=reader, out=out)

        responses = [json.loads(line) for line in out.getvalue().splitlines()]
        assert [r["id"] for r in responses] == [1, 2, 3]
        assert _payload(responses[2])["total"] == 1
        assert mcp_store.load()[0].text == "served note"

    @pytest.mark.asyncio
    async def test_bad_frames_do_not_stop_the_loop(self, mcp_store):
        reader = asyncio.StreamReader()
        reader.feed_data(b'{"jsonrpc": "2.0", "id": 1, "method": "tools/call", '
                         b'"params": {"name": "search_memory", "arguments": {"query": "x", "limit": 1e400}}}\n')
        reader.feed_data(b"\xff\xfe\n")
        reader.feed_data(b'{"jsonrpc": "2.0", "id": 2, "method": "tools/list"}\n')
        reader.feed_eof()

        out = io.StringIO()
        await serve(mcp_store, reader=reader, out=out)

        responses = [json.loads(line) for line in out.getvalue().splitlines()]
        assert [r["id"] for r in responses] == [1, None, 2]
        assert _payload(responses[0])["count"] == 0
        assert responses[1]["error"]["code"] == PARSE_ERROR
        assert "tools" in responses[2]["result"]
