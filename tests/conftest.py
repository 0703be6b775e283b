"""
Shared test fixtures for the Iaptic MCP server test suite.

Key fixtures:
- make_token / make_auth_header: JWT factories for the HTTP gate tests
- master_identity / tenant_identity: startup identities for both auth modes
- fake_gateway: records every backend call (and the identity it ran as)
  instead of talking to Iaptic
- make_dispatcher: builds a Dispatcher over a CredentialContext and the
  fake gateway
- make_mock_transport: httpx.MockTransport that records requests, for
  testing the real BackendGateway without a network

Testing approach:
- test_identity.py / test_catalog.py / test_handlers.py: pure unit tests
- test_gateway.py: BackendGateway against httpx.MockTransport
- test_dispatcher.py: dispatch and per-call tenant override end to end,
  with the fake gateway
- test_server.py: the FastMCP wiring through the in-memory fastmcp.Client
- test_auth.py: bearer token validation for the HTTP transport
"""

import datetime
from typing import Any, Callable

import httpx
import jwt
import pytest

from iaptic_mcp.config import settings
from iaptic_mcp.dispatcher import Dispatcher
from iaptic_mcp.handlers import ToolHandlers
from iaptic_mcp.identity import CredentialContext, Identity, MasterKey, TenantKey

TEST_SECRET = settings.jwt_secret_key
TEST_ALGORITHM = settings.jwt_algorithm


# ---------------------------------------------------------------------------
# Token factories
# ---------------------------------------------------------------------------
@pytest.fixture
def make_token():
    """
    Factory fixture returning signed JWTs with configurable claims.

        token = make_token(sub="alice", scopes=["iaptic:tools"])
    """

    def _make_token(
        sub: str = "test-user",
        scopes: list[str] | None = None,
        secret: str = TEST_SECRET,
        algorithm: str = TEST_ALGORITHM,
        exp_hours: float = 1.0,
        extra_claims: dict | None = None,
        include_exp: bool = True,
        include_sub: bool = True,
    ) -> str:
        now = datetime.datetime.now(datetime.timezone.utc)
        payload: dict = {"iat": now}

        if include_sub:
            payload["sub"] = sub
        if scopes is not None:
            payload["scope"] = scopes
        if include_exp:
            payload["exp"] = now + datetime.timedelta(hours=exp_hours)
        if extra_claims:
            payload.update(extra_claims)

        return jwt.encode(payload, secret, algorithm=algorithm)

    return _make_token


@pytest.fixture
def make_auth_header(make_token):
    """Same as make_token, but returns the full "Bearer <token>" string."""

    def _make_auth_header(**kwargs) -> str:
        return f"Bearer {make_token(**kwargs)}"

    return _make_auth_header


# ---------------------------------------------------------------------------
# Identities
# ---------------------------------------------------------------------------
@pytest.fixture
def master_identity() -> Identity:
    return Identity(tenant="alpha", credential=MasterKey("master-secret"))


@pytest.fixture
def tenant_identity() -> Identity:
    return Identity(tenant="alpha", credential=TenantKey("alpha-key"))


# ---------------------------------------------------------------------------
# Fake backend
# ---------------------------------------------------------------------------
class FakeGateway:
    """
    Stands in for BackendGateway.

    Records (identity, operation, params) for every call. Returns
    `responses[operation]` (default: {"rows": []}) or raises `error` when set.
    """

    def __init__(self):
        self.calls: list[tuple[Identity, str, dict[str, Any]]] = []
        self.responses: dict[str, Any] = {}
        self.error: Exception | None = None

    async def call(self, identity: Identity, operation: str, params: dict[str, Any] | None = None) -> Any:
        self.calls.append((identity, operation, dict(params or {})))
        if self.error is not None:
            raise self.error
        return self.responses.get(operation, {"rows": []})


@pytest.fixture
def fake_gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def make_dispatcher(fake_gateway):
    """
    Factory fixture: make_dispatcher(identity) -> Dispatcher.

    The dispatcher's CredentialContext starts with `identity` as its
    default; it is reachable as dispatcher.context.
    """

    def _make_dispatcher(identity: Identity, **handler_options) -> Dispatcher:
        context = CredentialContext(identity)
        handlers = ToolHandlers(fake_gateway, context, **handler_options)
        return Dispatcher(context, handlers)

    return _make_dispatcher


@pytest.fixture
def make_mock_transport():
    """
    Factory fixture for httpx.MockTransport.

        transport, requests = make_mock_transport(lambda request: httpx.Response(200, json={}))

    `requests` collects every httpx.Request the transport receives.
    """

    def _make_mock_transport(
        handler: Callable[[httpx.Request], httpx.Response],
    ) -> tuple[httpx.MockTransport, list[httpx.Request]]:
        requests: list[httpx.Request] = []

        def _record(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return handler(request)

        return httpx.MockTransport(_record), requests

    return _make_mock_transport
