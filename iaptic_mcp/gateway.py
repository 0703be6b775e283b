"""
HTTP client for the Iaptic validator API.

Every backend call names an operation from OPERATIONS and passes the
Identity it must be authenticated as. The gateway keeps no notion of a
"current" app: the Authorization header is derived from the identity on
each request, so two calls made as different apps can share one
connection pool.

Authentication:
    Authorization: Bearer base64("<app name>:<api key or master key>")

Failures:
- Non-2xx responses raise UpstreamError with the status, code and message
  from the Iaptic error body ({"ok": false, "status", "code", "message"})
- Timeouts and connection failures raise TransportError
"""

import base64
import logging
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

import httpx

from iaptic_mcp.errors import TransportError, UpstreamError, ValidationError
from iaptic_mcp.identity import Identity

logger = logging.getLogger("iaptic-mcp.gateway")


@dataclass(frozen=True)
class Operation:
    """HTTP verb and path template of one backend operation."""

    method: str
    path: str


# Path placeholders are filled from the call's params ({id}) or from the
# identity ({tenant}). GET params become the query string, POST params the
# JSON body.
OPERATIONS: dict[str, Operation] = {
    "customers.list": Operation("GET", "/customers"),
    "customers.get": Operation("GET", "/customers/{id}"),
    "purchases.list": Operation("GET", "/purchases"),
    "purchases.get": Operation("GET", "/purchases/{id}"),
    "transactions.list": Operation("GET", "/transactions"),
    "transactions.get": Operation("GET", "/transactions/{id}"),
    "stats.global": Operation("GET", "/stats"),
    "stats.app": Operation("GET", "/apps/{tenant}/stats"),
    "events.list": Operation("GET", "/events"),
    "stripe.prices": Operation("GET", "/stripe/prices"),
    "stripe.checkout": Operation("POST", "/stripe/checkout"),
    "stripe.portal": Operation("POST", "/stripe/portal"),
    "stripe.purchases": Operation("GET", "/stripe/purchases"),
}


def authorization_header(identity: Identity) -> str:
    """Bearer token for an identity: base64 of "<tenant>:<secret>"."""
    raw = f"{identity.tenant}:{identity.credential.value}".encode("utf-8")
    return f"Bearer {base64.b64encode(raw).decode('ascii')}"


class BackendGateway:
    """
    Thin async adapter over the Iaptic REST API.

    Args:
        base_url: API root, e.g. https://validator.iaptic.com/v3
        timeout: Seconds before a request fails with TransportError
        transport: Optional httpx transport (tests pass an httpx.MockTransport)
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            transport=transport,
            headers={"Content-Type": "application/json"},
        )

    async def call(
        self,
        identity: Identity,
        operation: str,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """
        Run one backend operation as `identity` and return the decoded JSON.

        Params whose value is None are dropped.

        Raises:
            ValidationError: Unknown operation or missing path identifier
            UpstreamError: The API answered with a non-success status or a
                           body that is not JSON
            TransportError: The API could not be reached
        """
        op = OPERATIONS.get(operation)
        if op is None:
            raise ValidationError(f"Unknown backend operation: {operation}")

        params = {k: v for k, v in (params or {}).items() if v is not None}
        path = self._render_path(op, identity, params)
        request_kwargs: dict[str, Any] = {"headers": {"Authorization": authorization_header(identity)}}
        if op.method == "GET":
            request_kwargs["params"] = params
        else:
            request_kwargs["json"] = params

        logger.debug(
            "Backend call",
            extra={
                "event_data": {
                    "operation": operation,
                    "method": op.method,
                    "path": path,
                    "tenant": identity.tenant,
                }
            },
        )

        try:
            response = await self._client.request(op.method, path, **request_kwargs)
        except httpx.TimeoutException as e:
            raise TransportError(f"Timed out calling Iaptic API ({operation}): {e}") from e
        except httpx.TransportError as e:
            raise TransportError(f"Could not reach Iaptic API ({operation}): {e}") from e

        if not response.is_success:
            raise self._upstream_error(response)

        try:
            return response.json()
        except ValueError:
            raise UpstreamError(
                message=f"Response to {operation} is not valid JSON",
                status=response.status_code,
            )

    @staticmethod
    def _render_path(op: Operation, identity: Identity, params: dict[str, Any]) -> str:
        if "{id}" in op.path:
            resource_id = params.pop("id", None)
            if not resource_id:
                raise ValidationError(f"An identifier is required for {op.method} {op.path}")
            return op.path.replace("{id}", quote(str(resource_id), safe=""))
        if "{tenant}" in op.path:
            return op.path.replace("{tenant}", quote(identity.tenant, safe=""))
        return op.path

    @staticmethod
    def _upstream_error(response: httpx.Response) -> UpstreamError:
        try:
            body = response.json()
        except ValueError:
            body = None

        if isinstance(body, dict):
            error = UpstreamError(
                message=body.get("message") or "",
                status=body.get("status") or response.status_code,
                code=body.get("code"),
            )
        else:
            error = UpstreamError(message=response.reason_phrase, status=response.status_code)

        logger.warning(
            "Iaptic API returned an error",
            extra={
                "event_data": {
                    "status": error.status,
                    "code": error.code,
                    "path": response.request.url.path,
                }
            },
        )
        return error
