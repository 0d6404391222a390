"""
PagePilot - MCP Server

The integration point for MCP hosts (Claude Desktop, Cursor, VS Code, ...).

Exposes every tool of the enabled capabilities. Tool schemas are data, so
this uses the SDK's low-level Server rather than FastMCP: list_tools
returns the active descriptors, call_tool hands the raw arguments to the
Dispatcher, which owns validation.

Transports:
    - stdio (default): for local MCP hosts
    - streamable-http: for remote/multi-client hosts, served at /mcp

Usage:
    pagepilot                  # stdio transport
    pagepilot --http           # HTTP transport on 127.0.0.1:8931/mcp

All clients of one process share one SessionContext (one browser).
"""

from __future__ import annotations

import contextlib
from typing import Any

import mcp.types as types
from mcp.server.lowlevel import Server

from pagepilot import __version__
from pagepilot.config import Config
from pagepilot.logging_config import get_logger
from pagepilot.session import SessionContext
from pagepilot.tools import Dispatcher, ToolDescriptor, ToolRegistry, create_tool_registry

logger = get_logger("mcp")


class ToolCallFailed(Exception):
    """Raised into the SDK so it answers with an isError result."""


def to_mcp_tool(descriptor: ToolDescriptor) -> types.Tool:
    return types.Tool(
        name=descriptor.name,
        title=descriptor.title,
        description=descriptor.description,
        inputSchema=descriptor.input_schema,
        annotations=types.ToolAnnotations(
            title=descriptor.title,
            readOnlyHint=descriptor.read_only,
            destructiveHint=not descriptor.read_only,
            openWorldHint=True,
        ),
    )


class PagePilotServer:
    """Session, registry and dispatcher of one process, minus the transport."""

    def __init__(
        self,
        config: Config,
        registry: ToolRegistry | None = None,
        session: SessionContext | None = None,
    ):
        self.config = config
        self.registry = registry or create_tool_registry()
        self.session = session or SessionContext(config)
        self.dispatcher = Dispatcher(self.registry, self.session)

    def list_tools(self) -> list[types.Tool]:
        return [to_mcp_tool(d) for d in self.dispatcher.list_tools()]

    async def call_tool(self, name: str, arguments: dict[str, Any] | None) -> list[types.TextContent]:
        """Dispatch one call.

        Raises:
            ToolCallFailed: the call failed; the message is the failure text.
        """
        response = await self.dispatcher.dispatch(name, arguments)
        if response.is_error:
            raise ToolCallFailed(response.text)
        return [types.TextContent(type="text", text=item["text"]) for item in response.content]

    async def shutdown(self):
        await self.session.close()


def create_mcp_server(app: PagePilotServer) -> Server:
    """Create the MCP server with handlers bound to ``app``."""
    server = Server(
        "pagepilot",
        version=__version__,
        instructions=(
            "Browser automation. Navigate with browser_navigate; tool results "
            "include the Playwright code that ran and, for page-changing tools, "
            "an accessibility snapshot of the page."
        ),
    )

    @server.list_tools()
    async def list_tools() -> list[types.Tool]:
        return app.list_tools()

    @server.call_tool(validate_input=False)
    async def call_tool(name: str, arguments: dict[str, Any]) -> list[types.TextContent]:
        return await app.call_tool(name, arguments)

    return server


# ═══════════════════════════════════════════════════════════════════════════
# Server Runner
# ═══════════════════════════════════════════════════════════════════════════


async def run_stdio(app: PagePilotServer):
    """Serve one host over stdin/stdout until it disconnects."""
    from mcp.server.stdio import stdio_server

    server = create_mcp_server(app)
    logger.info("PagePilot MCP server starting (transport=stdio)")
    try:
        async with stdio_server() as (read_stream, write_stream):
            await server.run(read_stream, write_stream, server.create_initialization_options())
    finally:
        await app.session.handle_disconnect()


def create_http_app(app: PagePilotServer):
    """Starlette app serving streamable HTTP at /mcp."""
    from mcp.server.streamable_http_manager import StreamableHTTPSessionManager
    from starlette.applications import Starlette
    from starlette.routing import Mount

    server = create_mcp_server(app)
    session_manager = StreamableHTTPSessionManager(app=server)

    async def handle_mcp(scope, receive, send):
        await session_manager.handle_request(scope, receive, send)

    @contextlib.asynccontextmanager
    async def lifespan(_starlette):
        async with session_manager.run():
            yield

    return Starlette(routes=[Mount("/mcp", app=handle_mcp)], lifespan=lifespan)


async def run_http(app: PagePilotServer, host: str | None = None, port: int | None = None):
    """Serve any number of hosts over streamable HTTP."""
    import uvicorn

    host = host or app.config.host
    port = port or app.config.port
    logger.info(f"PagePilot MCP server starting (transport=http, {host}:{port})")
    uvicorn_config = uvicorn.Config(create_http_app(app), host=host, port=port, log_level="warning")
    await uvicorn.Server(uvicorn_config).serve()
