"""
Dispatcher: the single entry point for listing and calling tools.

Call flow for one tool invocation:

    1. Resolve the tool family from the name prefix (UnknownToolError if none)
    2. Pull the optional `tenant` argument (a string) out of the arguments
    3. Enter CredentialContext.impersonate(tenant) to get the Identity the
       call runs as (the master key re-targeted at `tenant`, or the current
       identity unchanged)
    4. Run the handler with that Identity
    5. Convert the outcome into a ToolCallResult; every error becomes
       is_error=True with "Error: <message>" content

Step 3 hands the handler an identity value instead of switching the shared
context and switching it back, so the context reads the same after a call
as before it, whether the handler returned, raised, or was cancelled.
"""

import logging
from dataclasses import dataclass
from typing import Any

from iaptic_mcp.catalog import TENANT_PARAMETER, ToolDescriptor, describe_tools, find_family
from iaptic_mcp.errors import IapticMCPError, UnknownToolError, ValidationError
from iaptic_mcp.handlers import ToolHandlers
from iaptic_mcp.identity import CredentialContext

logger = logging.getLogger("iaptic-mcp.dispatcher")


@dataclass(frozen=True)
class ToolCallResult:
    """Outcome of one tool call, always textual."""

    is_error: bool
    content: str


class Dispatcher:
    """Routes tool calls to their family handlers under the right identity."""

    def __init__(self, context: CredentialContext, handlers: ToolHandlers):
        self._context = context
        self._handlers = handlers

    @property
    def context(self) -> CredentialContext:
        return self._context

    def list_tools(self) -> list[ToolDescriptor]:
        """Descriptors for the authentication mode active right now."""
        return describe_tools(self._context.using_master_key)

    async def call_tool(self, name: str, arguments: dict[str, Any] | None = None) -> ToolCallResult:
        """
        Run one tool and return its result.

        Never raises for tool-level failures: validation, unknown tools,
        backend and transport errors all come back as is_error results.
        """
        try:
            content = await self.handle(name, arguments or {})
        except IapticMCPError as e:
            logger.warning(
                "Tool call failed",
                extra={"event_data": {"tool": name, "error": type(e).__name__, "reason": e.message}},
            )
            return ToolCallResult(is_error=True, content=f"Error: {e.message}")
        except Exception as e:
            logger.exception("Unexpected error handling tool", extra={"event_data": {"tool": name}})
            return ToolCallResult(is_error=True, content=f"Error: {str(e) or 'Unknown error occurred'}")

        return ToolCallResult(is_error=False, content=content)

    async def handle(self, name: str, arguments: dict[str, Any]) -> str:
        """
        Run one tool, raising on failure.

        Raises:
            UnknownToolError: No family or handler matches `name`
            ValidationError: `tenant` is not a string
            IapticMCPError: Whatever the handler raised
        """
        family = find_family(name)
        handler = self._handlers.get(name)
        if family is None or family.get(name) is None or handler is None:
            raise UnknownToolError(name)

        args = dict(arguments)
        requested = args.get(TENANT_PARAMETER)
        if requested is not None and not isinstance(requested, str):
            raise ValidationError(f"tenant must be a string, got {type(requested).__name__}")

        # iaptic_* tools interpret `tenant` themselves and never impersonate.
        tenant = args.pop(TENANT_PARAMETER, None) if family.tenant_scoped else None

        if tenant and not self._context.using_master_key:
            # The app-specific key already fixes the app.
            logger.warning(
                "Ignoring tenant argument without a master key",
                extra={
                    "event_data": {
                        "tool": name,
                        "requested_tenant": tenant,
                        "tenant": self._context.current.tenant,
                    }
                },
            )
            tenant = None

        with self._context.impersonate(tenant) as identity:
            logger.info(
                "Dispatching tool",
                extra={
                    "event_data": {
                        "tool": name,
                        "tenant": identity.tenant,
                        "impersonated": identity is not self._context.current,
                    }
                },
            )
            return await handler(identity, args)
