"""
Mint bearer tokens for the Iaptic MCP server's HTTP transport.

Only needed with IAPTIC_TRANSPORT=streamable-http; the stdio transport is
not authenticated. The secret must match IAPTIC_JWT_SECRET_KEY on the
server and the scopes must include IAPTIC_REQUIRED_SCOPE (default
"iaptic:tools").

Usage examples:

    python -m scripts.generate_token --sub ops-dashboard
    python -m scripts.generate_token --sub ci-agent --exp-hours 2 --secret my-prod-secret
    python -m scripts.generate_token --sub alice --scope other:read   # rejected by the server
"""

import argparse
import datetime

import jwt


def generate_token(
    subject: str,
    scopes: list[str],
    secret: str,
    algorithm: str = "HS256",
    exp_hours: float = 8.0,
) -> str:
    """Return an encoded JWT with sub, scope, iat and exp claims."""
    now = datetime.datetime.now(datetime.timezone.utc)
    payload = {
        "sub": subject,
        "scope": scopes,
        "iat": now,
        "exp": now + datetime.timedelta(hours=exp_hours),
    }
    return jwt.encode(payload, secret, algorithm=algorithm)


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Generate bearer tokens for the Iaptic MCP server (HTTP transport).",
    )
    parser.add_argument("--sub", required=True, help="Who the token identifies (logged by the server)")
    parser.add_argument(
        "--scope",
        nargs="+",
        default=["iaptic:tools"],
        help="Scopes to grant (default: iaptic:tools)",
    )
    parser.add_argument(
        "--secret",
        default="dev-secret-change-me",
        help="Signing secret (must match the server's IAPTIC_JWT_SECRET_KEY)",
    )
    parser.add_argument("--algorithm", default="HS256", help="JWT signing algorithm (default: HS256)")
    parser.add_argument(
        "--exp-hours",
        type=float,
        default=8.0,
        help="Hours until the token expires (negative = already expired, default: 8)",
    )
    args = parser.parse_args()

    token = generate_token(
        subject=args.sub,
        scopes=args.scope,
        secret=args.secret,
        algorithm=args.algorithm,
        exp_hours=args.exp_hours,
    )

    print(f"Subject:    {args.sub}")
    print(f"Scopes:     {args.scope}")
    print(f"Expires in: {args.exp_hours}h")
    print()
    print(f"Token: {token}")
    print()
    print("Add it to your MCP client configuration as:")
    print(f"  Authorization: Bearer {token}")


if __name__ == "__main__":
    main()
