"""
Bearer token validation for the HTTP transport.

Over stdio the server is spawned by its MCP client and trusts it. Over
streamable HTTP anyone who can reach the port could drive the Iaptic
credentials, so every MCP request must carry a JWT:

    Authorization: Bearer <jwt>

    {
        "sub": "ops-dashboard",        # who is calling (logged)
        "scope": ["iaptic:tools"],     # must contain settings.required_scope
        "exp": 1738800000              # mandatory expiry
    }

Tokens are HS256-signed with IAPTIC_JWT_SECRET_KEY; scripts/generate_token.py
mints them.
"""

from dataclasses import dataclass

import jwt

from iaptic_mcp.config import settings


class AuthError(Exception):
    """
    Raised when a bearer token is missing, malformed, expired or lacks scope.

    Attributes:
        message: Reason, logged server-side
        status_code: HTTP status the rejection maps to
    """

    def __init__(self, message: str, status_code: int = 401):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


@dataclass(frozen=True)
class TokenInfo:
    """Validated claims of a caller's token."""

    subject: str
    scopes: list[str]

    def require_scope(self, scope: str) -> None:
        if scope not in self.scopes:
            raise AuthError(f"Token lacks required scope '{scope}'", status_code=403)


def validate_token(authorization_header: str | None) -> TokenInfo:
    """
    Validate the Authorization header of an HTTP request.

    Raises:
        AuthError: If the header is absent or malformed, the signature or
                   expiry is invalid, or the claims have the wrong shape
    """
    if not authorization_header:
        raise AuthError("Missing Authorization header")

    parts = authorization_header.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise AuthError("Invalid Authorization header format, expected 'Bearer <token>'")

    try:
        payload = jwt.decode(
            parts[1],
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["exp", "sub"]},
        )
    except jwt.ExpiredSignatureError:
        raise AuthError("Token has expired")
    except jwt.InvalidTokenError as e:
        raise AuthError(f"Invalid token: {e}")

    scopes = payload.get("scope", [])
    if not isinstance(scopes, list) or not all(isinstance(s, str) for s in scopes):
        raise AuthError("Invalid scope claim: must be a list of strings")

    return TokenInfo(subject=payload.get("sub", ""), scopes=scopes)
