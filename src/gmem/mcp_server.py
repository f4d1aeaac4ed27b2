"""
MCP Server: gmem-store: memory store tools over stdio.

Exposes add_memory / search_memory / compress_memory / delete_memory /
get_stats as MCP tools backed by one store file.

Protocol: JSON-RPC 2.0 over stdio (NDJSON). stdout carries only protocol
frames; all logging goes to stderr.

Usage:
  python -m gmem serve [--memory-file PATH]
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from typing import Any, TextIO

from gmem import __version__
from gmem.errors import GmemError, InvalidInputError
from gmem.memory.store import MemoryStore
from gmem.tools.memory_tools import get_memory_tools

logger = logging.getLogger(__name__)

# ── Constants ────────────────────────────────────────────────

SERVER_NAME = "gmem-store"
PROTOCOL_VERSION = "2024-11-05"

PARSE_ERROR = -32700
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603

# ── Tool definitions ─────────────────────────────────────────

TOOLS = [
    {
        "name": "add_memory",
        "description": "Add a new memory to the store",
        "inputSchema": {
            "type": "object",
            "properties": {
                "text": {"type": "string", "description": "The memory text to store"},
                "tags": {"type": "string", "description": "Comma-separated tags (optional)"},
            },
            "required": ["text"],
        },
    },
    {
        "name": "search_memory",
        "description": "Search for memories in the store",
        "inputSchema": {
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "Search query"},
                "limit": {"type": "number", "description": "Maximum number of results (optional)"},
            },
            "required": ["query"],
        },
    },
    {
        "name": "compress_memory",
        "description": "Compress related memories into a markdown block",
        "inputSchema": {
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "Query to find related memories"},
                "budget": {"type": "number", "description": "Maximum character budget"},
                "limit": {"type": "number", "description": "Maximum number of memories to compress"},
            },
            "required": ["query", "budget"],
        },
    },
    {
        "name": "delete_memory",
        "description": "Soft delete a memory by ID",
        "inputSchema": {
            "type": "object",
            "properties": {
                "id": {"type": "string", "description": "Memory ID to delete"},
            },
            "required": ["id"],
        },
    },
    {
        "name": "get_stats",
        "description": "Get memory store statistics",
        "inputSchema": {"type": "object", "properties": {}},
    },
]

# ── JSON-RPC 2.0 helpers ─────────────────────────────────────


def jsonrpc_result(req_id, result):
    return {"jsonrpc": "2.0", "id": req_id, "result": result}


def jsonrpc_error(req_id, code, message):
    return {"jsonrpc": "2.0", "id": req_id, "error": {"code": code, "message": message}}


def tool_content(payload: dict[str, Any]) -> dict[str, Any]:
    return {"content": [{"type": "text", "text": json.dumps(payload, ensure_ascii=False)}]}


# ── Request handler ──────────────────────────────────────────


def call_tool(tools: dict, req_id, params: Any) -> dict:
    if not isinstance(params, dict):
        return jsonrpc_error(req_id, INVALID_PARAMS, "Invalid params")
    tool_name = params.get("name")
    if not isinstance(tool_name, str):
        return jsonrpc_error(req_id, INVALID_PARAMS, "Missing tool name")
    tool = tools.get(tool_name)
    if tool is None:
        return jsonrpc_error(req_id, METHOD_NOT_FOUND, f"Tool not found: {tool_name}")

    args = params.get("arguments") or {}
    if not isinstance(args, dict):
        return jsonrpc_error(req_id, INVALID_PARAMS, "Invalid arguments")
    try:
        payload = tool(**args)
    except (InvalidInputError, TypeError) as e:
        return jsonrpc_error(req_id, INVALID_PARAMS, str(e))
    except (GmemError, OSError) as e:
        logger.error("Tool %s failed: %s", tool_name, e)
        return jsonrpc_error(req_id, INTERNAL_ERROR, f"{tool_name} failed: {e}")
    return jsonrpc_result(req_id, tool_content(payload))


def handle_request(req: dict, tools: dict) -> dict | None:
    req_id = req.get("id")
    method = req.get("method", "")

    # Notifications (no id) get no response
    if req_id is None:
        if method == "notifications/initialized":
            logger.info("Client initialized")
        return None

    if method == "initialize":
        return jsonrpc_result(req_id, {
            "protocolVersion": PROTOCOL_VERSION,
            "capabilities": {"tools": {}},
            "serverInfo": {"name": SERVER_NAME, "version": __version__},
        })

    if method == "tools/list":
        return jsonrpc_result(req_id, {"tools": TOOLS})

    if method == "tools/call":
        return call_tool(tools, req_id, req.get("params"))

    if method == "shutdown":
        return jsonrpc_result(req_id, {})

    return jsonrpc_error(req_id, METHOD_NOT_FOUND, f"Method not found: {method}")


def handle_line(line: str, tools: dict) -> dict | None:
    """Decode one NDJSON frame and dispatch it."""
    try:
        req = json.loads(line)
    except json.JSONDecodeError as e:
        logger.warning("Parse error: %s", e)
        return jsonrpc_error(None, PARSE_ERROR, f"Parse error: {e}")
    if not isinstance(req, dict):
        return jsonrpc_error(None, PARSE_ERROR, "Parse error: expected a JSON object")
    logger.debug("<- %s", req.get("method", "?"))
    try:
        return handle_request(req, tools)
    except Exception as e:
        logger.exception("Handler error: %s", e)
        if req.get("id") is None:
            return None
        return jsonrpc_error(req.get("id"), INTERNAL_ERROR, f"Internal error: {e}")


# ── Stdio transport (NDJSON) ─────────────────────────────────


async def serve(
    store: MemoryStore,
    reader: asyncio.StreamReader | None = None,
    out: TextIO | None = None,
) -> None:
    """Answer requests until stdin (or ``reader``) hits EOF."""
    out = out or sys.stdout
    tools = get_memory_tools(store)
    logger.info("Starting %s (store=%s)", SERVER_NAME, store.path)

    if reader is None:
        reader = asyncio.StreamReader()
        protocol = asyncio.StreamReaderProtocol(reader)
        await asyncio.get_running_loop().connect_read_pipe(lambda: protocol, sys.stdin)

    while True:
        raw = await reader.readline()
        if not raw:
            break
        try:
            line = raw.decode("utf-8").strip()
        except UnicodeDecodeError as e:
            logger.warning("Parse error: %s", e)
            response = jsonrpc_error(None, PARSE_ERROR, f"Parse error: {e}")
        else:
            if not line:
                continue
            response = handle_line(line, tools)
        if response:
            out.write(json.dumps(response, ensure_ascii=False) + "\n")
            out.flush()

    logger.info("%s stopped", SERVER_NAME)
