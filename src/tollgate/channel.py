"""MCP stdio server over the invocation dispatcher.

``tools/list`` advertises the catalog (plus the ``reconcile_audit_log``
maintenance tool); ``tools/call`` runs ``InvocationDispatcher.invoke`` and
returns the envelope as one JSON text block. Payment failures are ordinary
results: the envelope carries ``success: false`` and the reason.

Argument validation is left to the dispatcher so that a bad argument comes
back as a ``ValidationError`` envelope like any other rejection.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import mcp.types as types
from mcp.server.lowlevel import Server
from mcp.server.stdio import stdio_server

from tollgate.dispatcher import InvocationDispatcher
from tollgate.reconcile import reconcile_audit_log

logger = logging.getLogger(__name__)

SERVER_NAME = "tollgate"

RECONCILE_TOOL = "reconcile_audit_log"
# Optional payer override taken out of the arguments before dispatch
PRINCIPAL_ARGUMENT = "_principal"


def _text(payload: dict[str, Any]) -> list[types.TextContent]:
    return [types.TextContent(type="text", text=json.dumps(payload, default=str))]


def list_tools(dispatcher: InvocationDispatcher) -> list[types.Tool]:
    tools = [
        types.Tool(name=t["name"], description=t["description"], inputSchema=t["inputSchema"])
        for t in dispatcher.list_tools()
    ]
    tools.append(
        types.Tool(
            name=RECONCILE_TOOL,
            description=(
                "Summarize the payment audit log: incomplete attempts, unverified "
                "settlement references and charged calls whose tool then failed | FREE"
            ),
            inputSchema={"type": "object", "properties": {}},
        )
    )
    return tools


async def call_tool(
    dispatcher: InvocationDispatcher,
    name: str,
    arguments: dict[str, Any] | None,
) -> list[types.TextContent]:
    """Run one tool call. Never raises."""
    if name == RECONCILE_TOOL:
        try:
            report = await reconcile_audit_log(dispatcher.sink)
        except Exception:
            logger.exception("Reconciliation failed")
            return _text({"success": False, "error": "InternalError", "message": "see server log"})
        return _text(report.to_dict())

    args = dict(arguments or {})
    principal = args.pop(PRINCIPAL_ARGUMENT, None)
    if principal is not None and not isinstance(principal, str):
        principal = repr(principal)

    try:
        envelope = await dispatcher.invoke(name, args, principal)
    except Exception:
        logger.exception("Unhandled error invoking %s", name)
        return _text({"success": False, "tool": name, "error": "InternalError", "message": "see server log"})
    return _text(envelope.to_dict())


def build_server(dispatcher: InvocationDispatcher) -> Server:
    """Low-level MCP server with list/call handlers bound to ``dispatcher``."""
    server = Server(SERVER_NAME)

    @server.list_tools()
    async def handle_list_tools() -> list[types.Tool]:
        return list_tools(dispatcher)

    @server.call_tool(validate_input=False)
    async def handle_call_tool(name: str, arguments: dict[str, Any] | None) -> list[types.TextContent]:
        return await call_tool(dispatcher, name, arguments)

    return server


async def serve(dispatcher: InvocationDispatcher) -> None:
    """Serve MCP on stdin/stdout until the client disconnects."""
    server = build_server(dispatcher)
    async with stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, server.create_initialization_options())
