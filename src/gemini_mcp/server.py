"""MCP stdio server exposing the Gemini tools.

Architecture:
    MCP client -> stdio JSON-RPC -> mcp.server.Server -> ToolDispatcher -> GeminiClient -> Gemini API

The low-level ``mcp`` server handles framing; this module only lists the
tools and turns the dispatcher's envelopes into ``CallToolResult`` so that
``isError`` and ``_meta`` reach the client intact.
"""

import logging
from typing import Any

from claude_agent_sdk import SdkMcpTool
from mcp import types
from mcp.server import Server
from mcp.server.stdio import stdio_server

from gemini_mcp import __version__
from gemini_mcp.config import GeminiConfig
from gemini_mcp.gemini_client import GeminiClient
from gemini_mcp.sessions import SessionStore
from gemini_mcp.tools import ServerContext, ToolDispatcher

logger = logging.getLogger(__name__)

SERVER_NAME = "gemini-mcp"


def tool_definition(sdk_tool: SdkMcpTool) -> types.Tool:
    """Convert an SDK tool declaration into an MCP ``Tool`` listing."""
    return types.Tool(
        name=sdk_tool.name,
        description=sdk_tool.description,
        inputSchema=sdk_tool.input_schema,
    )


def _content_block(item: dict) -> types.TextContent | types.ImageContent | types.EmbeddedResource | None:
    kind = item.get("type")
    if kind == "text":
        return types.TextContent(type="text", text=item["text"])
    if kind == "image":
        return types.ImageContent(type="image", data=item["data"], mimeType=item["mimeType"])
    if kind == "resource":
        return types.EmbeddedResource(
            type="resource",
            resource=types.BlobResourceContents(
                uri=item["uri"],
                mimeType=item.get("mimeType"),
                blob=item["blob"],
            ),
        )
    logger.warning(f"Dropping unsupported content block type: {kind}")
    return None


def to_call_tool_result(envelope: dict[str, Any]) -> types.CallToolResult:
    """Render a dispatcher envelope as an MCP ``CallToolResult``."""
    content = []
    for item in envelope.get("content", []):
        block = _content_block(item)
        if block is not None:
            content.append(block)
    return types.CallToolResult(
        content=content,
        isError=bool(envelope.get("is_error", False)),
        _meta=envelope.get("_meta"),
    )


def create_context(config: GeminiConfig) -> ServerContext:
    """Wire the process-wide state. Raises MissingCredentialError without an API key."""
    client = GeminiClient(
        api_key=config.require_api_key(),
        default_model=config.models.chat,
        base_url=config.api_base_url,
        timeout=config.request_timeout,
    )
    sessions = SessionStore(retention_seconds=config.sessions.retention_seconds)
    return ServerContext(config=config, client=client, sessions=sessions)


def create_server(dispatcher: ToolDispatcher) -> Server:
    """Create the MCP server bound to a dispatcher."""
    server = Server(SERVER_NAME, version=__version__)
    tool_list = [tool_definition(t) for t in dispatcher.tools]

    @server.list_tools()
    async def list_tools() -> list[types.Tool]:
        return tool_list

    @server.call_tool()
    async def call_tool(name: str, arguments: dict[str, Any]) -> types.CallToolResult:
        logger.info(f"Tool call: {name}")
        envelope = await dispatcher.dispatch(name, arguments)
        if envelope.get("is_error"):
            logger.info(f"Tool {name} returned an error")
        return to_call_tool_result(envelope)

    return server


async def run_stdio(config: GeminiConfig) -> None:
    """Serve MCP over stdin/stdout until the client disconnects."""
    context = create_context(config)
    dispatcher = ToolDispatcher(context)
    server = create_server(dispatcher)

    logger.info(f"Gemini MCP server running on stdio (model: {config.models.chat})")
    try:
        async with stdio_server() as (read_stream, write_stream):
            await server.run(
                read_stream,
                write_stream,
                server.create_initialization_options(),
            )
    finally:
        await context.client.aclose()
        logger.info(f"Gemini MCP server stopped: {dispatcher.get_stats()}")
