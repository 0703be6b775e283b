"""
Error taxonomy for the Iaptic MCP server.

Every failure a tool call can hit is one of these types. The dispatcher
catches them at its boundary and turns them into a tool-call error result
("Error: <message>"), so none of them crash the process. The one exception
is ConfigurationError, raised only while building the startup identity.
"""


class IapticMCPError(Exception):
    """
    Base class for all errors raised by this package.

    Attributes:
        message: Human-readable description, surfaced verbatim to the caller
    """

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ConfigurationError(IapticMCPError):
    """Startup configuration is unusable (missing app name or credentials)."""


class ValidationError(IapticMCPError):
    """Tool arguments are missing or malformed."""


class UnknownToolError(IapticMCPError):
    """No tool family or tool matches the requested name."""

    def __init__(self, tool_name: str):
        self.tool_name = tool_name
        super().__init__(f"Unknown tool: {tool_name}")


class UpstreamError(IapticMCPError):
    """
    The Iaptic API answered with a non-success response.

    Attributes:
        status: HTTP status reported by the API body, or the response status
        code: Iaptic error code, when the body carries one
    """

    def __init__(self, message: str, status: int | None = None, code: str | None = None):
        self.status = status
        self.code = code
        super().__init__(f"Iaptic API Error ({status or code}): {message or 'Unknown error'}")


class TransportError(IapticMCPError):
    """The Iaptic API could not be reached (timeout, connection failure)."""
