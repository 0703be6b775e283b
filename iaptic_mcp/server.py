"""
MCP server for the Iaptic receipt validation API, built on FastMCP v2.

The server exposes the Iaptic REST API as MCP tools (customers, purchases,
transactions, statistics, Stripe, events) plus three tools to inspect and
change the active Iaptic app.

Architecture:

    MCP client
        -> FastMCP (stdio or streamable HTTP)
        -> AuthMiddleware         (HTTP only: bearer JWT + required scope)
        -> CatalogMiddleware      (tools/list: schemas for the live auth mode)
        -> DispatchedTool.run()   (one per tool, delegates to the Dispatcher)
        -> Dispatcher             (family lookup, per-call tenant override)
        -> ToolHandlers           (argument mapping, pagination ceilings)
        -> BackendGateway         (HTTP call authenticated as the given Identity)

Tool schemas depend on whether a master key is active: with one, every
backend tool requires a `tenant` argument. Tools are registered once with
the startup schema and CatalogMiddleware re-renders them on each listing,
so clients see the change after iaptic_switch_app / iaptic_reset_app.

Running the server:
    iaptic-mcp --app-name my-app --api-key <key>
    iaptic-mcp --app-name my-app --master-key <key>
    IAPTIC_TRANSPORT=streamable-http iaptic-mcp ...

Dispatch runs tools one at a time per session, but nothing in the
dispatcher depends on that: a per-call tenant override is passed down as a
value and never written to the shared credential context.
"""

import argparse
import json
import logging
import sys
import uuid
from typing import Any, Sequence

from fastmcp import FastMCP
from fastmcp.exceptions import ToolError
from fastmcp.server.dependencies import get_http_request
from fastmcp.server.middleware import CallNext, Middleware, MiddlewareContext
from fastmcp.tools.tool import Tool, ToolResult
from mcp.types import CallToolRequestParams, ListToolsRequest
from pydantic import PrivateAttr
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from iaptic_mcp.auth import AuthError, TokenInfo, validate_token
from iaptic_mcp.config import Settings, build_default_identity, settings
from iaptic_mcp.dispatcher import Dispatcher
from iaptic_mcp.errors import ConfigurationError
from iaptic_mcp.gateway import BackendGateway
from iaptic_mcp.handlers import ToolHandlers
from iaptic_mcp.identity import CredentialContext

logger = logging.getLogger("iaptic-mcp")


# ---------------------------------------------------------------------------
# Structured JSON Logging
# ---------------------------------------------------------------------------
# One JSON object per line on stderr. stdout is the MCP channel under the
# stdio transport and must only carry protocol messages.


class JSONLogFormatter(logging.Formatter):
    """
    Formats log records as single-line JSON objects.

    Structured fields passed as extra={"event_data": {...}} are merged into
    the top-level object:

        {"timestamp": "...", "level": "INFO", "logger": "iaptic-mcp.dispatcher",
         "message": "Dispatching tool", "tool": "purchase_list", "tenant": "beta"}
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if hasattr(record, "event_data"):
            log_entry.update(record.event_data)
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, default=str)


def setup_logging(log_level: str) -> None:
    """Send all logs to stderr as JSON. Call once at startup."""
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONLogFormatter())
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        handlers=[handler],
        force=True,
    )


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------


class DispatchedTool(Tool):
    """
    A FastMCP tool whose execution is delegated to the Dispatcher.

    Arguments arrive as the raw JSON object from the client; the handlers
    do their own validation. Error results from the dispatcher are raised
    as ToolError, which FastMCP reports as an isError result carrying the
    message unchanged.
    """

    _dispatcher: Dispatcher | None = PrivateAttr(default=None)

    @classmethod
    def bind(cls, dispatcher: Dispatcher, name: str, description: str, parameters: dict) -> "DispatchedTool":
        tool = cls(name=name, description=description, parameters=parameters)
        tool._dispatcher = dispatcher
        return tool

    async def run(self, arguments: dict[str, Any]) -> ToolResult:
        result = await self._dispatcher.call_tool(self.name, arguments)
        if result.is_error:
            raise ToolError(result.content)
        return ToolResult(content=result.content)


# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------


class CatalogMiddleware(Middleware):
    """
    Re-renders every tool schema from the live authentication mode.

    Registered tools carry the schema of the mode active at startup. On
    each tools/list the dispatcher's descriptors replace those schemas, so
    the `tenant` parameter appears (required) exactly while a master key is
    active.
    """

    def __init__(self, dispatcher: Dispatcher):
        self._dispatcher = dispatcher

    async def on_list_tools(
        self,
        context: MiddlewareContext[ListToolsRequest],
        call_next: CallNext[ListToolsRequest, Sequence[Tool]],
    ) -> Sequence[Tool]:
        tools = await call_next(context)
        descriptors = {d.name: d for d in self._dispatcher.list_tools()}

        rendered = []
        for tool in tools:
            descriptor = descriptors.get(tool.name)
            if descriptor is None:
                rendered.append(tool)
                continue
            rendered.append(
                tool.model_copy(
                    update={
                        "description": descriptor.description,
                        "parameters": descriptor.input_schema(),
                    }
                )
            )
        return rendered


class AuthMiddleware(Middleware):
    """
    Bearer JWT authentication for the streamable HTTP transport.

    Both tools/list and tools/call require a valid token carrying
    `required_scope`. Only installed when serving over HTTP.
    """

    def __init__(self, required_scope: str):
        self._required_scope = required_scope

    def _get_auth_header(self) -> str | None:
        try:
            request = get_http_request()
            return request.headers.get("authorization")
        except RuntimeError:
            return None

    def _authenticate(self, request_id: str, method: str) -> TokenInfo:
        try:
            token_info = validate_token(self._get_auth_header())
            token_info.require_scope(self._required_scope)
        except AuthError as e:
            logger.warning(
                "Request rejected",
                extra={
                    "event_data": {
                        "request_id": request_id,
                        "method": method,
                        "decision": "rejected",
                        "reason": e.message,
                    }
                },
            )
            raise

        logger.info(
            "Request authenticated",
            extra={
                "event_data": {
                    "request_id": request_id,
                    "method": method,
                    "subject": token_info.subject,
                    "decision": "allowed",
                }
            },
        )
        return token_info

    async def on_list_tools(
        self,
        context: MiddlewareContext[ListToolsRequest],
        call_next: CallNext[ListToolsRequest, Sequence[Tool]],
    ) -> Sequence[Tool]:
        self._authenticate(str(uuid.uuid4())[:8], "tools/list")
        return await call_next(context)

    async def on_call_tool(
        self,
        context: MiddlewareContext[CallToolRequestParams],
        call_next: CallNext[CallToolRequestParams, ToolResult],
    ) -> ToolResult:
        self._authenticate(str(uuid.uuid4())[:8], f"tools/call:{context.message.name}")
        return await call_next(context)


# ---------------------------------------------------------------------------
# Server factory
# ---------------------------------------------------------------------------


def create_server(config: Settings, gateway: BackendGateway | None = None) -> FastMCP:
    """
    Build the FastMCP server for the given configuration.

    Args:
        config: Settings with at least an app name and one credential
        gateway: Backend client to use (tests inject one with a mock transport)

    Raises:
        ConfigurationError: If the startup credentials are incomplete
    """
    credentials = CredentialContext(build_default_identity(config))
    if gateway is None:
        gateway = BackendGateway(config.base_url, timeout=config.request_timeout)

    handlers = ToolHandlers(
        gateway,
        credentials,
        default_limit=config.default_limit,
        max_limit=config.max_limit,
        event_summary_limit=config.event_summary_limit,
    )
    dispatcher = Dispatcher(credentials, handlers)

    middleware: list[Middleware] = []
    if config.transport != "stdio":
        middleware.append(AuthMiddleware(config.required_scope))
    middleware.append(CatalogMiddleware(dispatcher))

    mcp = FastMCP(
        name="iaptic-mcp-server",
        instructions=(
            "Query the Iaptic receipt validation service: customers, purchases, "
            "transactions, statistics, Stripe products and events. When a master "
            "key is active, pass `tenant` to run a call against another app."
        ),
        middleware=middleware,
    )

    for descriptor in dispatcher.list_tools():
        mcp.add_tool(
            DispatchedTool.bind(
                dispatcher,
                name=descriptor.name,
                description=descriptor.description,
                parameters=descriptor.input_schema(),
            )
        )

    @mcp.custom_route("/health", methods=["GET"])
    async def health_check(request: Request) -> Response:
        """Liveness probe. Reports the active app, never credentials."""
        info = credentials.inspect()
        return JSONResponse(
            {
                "status": "healthy",
                "app": info.tenant,
                "default_app": info.is_default,
                "master_key": info.using_master_key,
            }
        )

    current = credentials.inspect()
    logger.info(
        "Server configured",
        extra={
            "event_data": {
                "tenant": current.tenant,
                "using_master_key": current.using_master_key,
                "transport": config.transport,
                "tools": len(dispatcher.list_tools()),
            }
        },
    )
    return mcp


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="MCP server for the Iaptic receipt validation API.",
    )
    parser.add_argument("--app-name", help="Default Iaptic app (IAPTIC_APP_NAME)")
    parser.add_argument("--api-key", help="API key of the default app (IAPTIC_API_KEY)")
    parser.add_argument(
        "--master-key",
        help="Account master key, lets calls target any app (IAPTIC_MASTER_KEY)",
    )
    parser.add_argument(
        "--transport",
        choices=["stdio", "streamable-http"],
        help="MCP transport (IAPTIC_TRANSPORT, default: stdio)",
    )
    return parser.parse_args(argv)


def load_config(args: argparse.Namespace, base: Settings = settings) -> Settings:
    """Command-line flags override the environment."""
    overrides = {
        "app_name": args.app_name,
        "api_key": args.api_key,
        "master_key": args.master_key,
        "transport": args.transport,
    }
    return base.model_copy(update={k: v for k, v in overrides.items() if v})


def main(argv: Sequence[str] | None = None) -> None:
    config = load_config(parse_args(argv))
    setup_logging(config.log_level)

    try:
        server = create_server(config)
    except ConfigurationError as e:
        logger.error("Invalid startup configuration", extra={"event_data": {"reason": e.message}})
        raise SystemExit(f"Error: {e.message}")

    if config.transport == "stdio":
        server.run(transport="stdio")
    else:
        logger.info(
            "Starting MCP server on %s:%d (transport=%s, auth=enabled)",
            config.host,
            config.port,
            config.transport,
        )
        server.run(
            transport=config.transport,
            host=config.host,
            port=config.port,
            log_level=config.log_level,
        )


if __name__ == "__main__":
    main()
