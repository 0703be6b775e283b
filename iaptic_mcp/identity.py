"""
Authentication identity and the process-wide credential context.

An Identity is the pair "which Iaptic app" + "which secret". The secret is
either a TenantKey (only valid for the app it was issued for) or a
MasterKey (valid for any app, so changing the app name is enough to act on
behalf of another app).

CredentialContext holds two identities:
- default: built once at startup from configuration, never replaced
- current: what the iaptic_* tools switch and reset

Backend calls never read `current` implicitly. The dispatcher asks the
context for the identity a call should run as (see `impersonate`) and passes
that value down to the gateway. A per-call tenant override therefore never
touches shared state, which keeps two overlapping calls from running under
each other's tenant.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator

from iaptic_mcp.errors import ValidationError

logger = logging.getLogger("iaptic-mcp.identity")


@dataclass(frozen=True)
class TenantKey:
    """API key issued for a single app."""

    value: str = field(repr=False)


@dataclass(frozen=True)
class MasterKey:
    """Key valid for every app of the account."""

    value: str = field(repr=False)


Credential = TenantKey | MasterKey


@dataclass(frozen=True)
class Identity:
    """
    Who the server acts as when calling the Iaptic API.

    Frozen: an identity is replaced, never edited, so a value handed to an
    in-flight call can't change underneath it.
    """

    tenant: str
    credential: Credential

    @property
    def using_master_key(self) -> bool:
        return isinstance(self.credential, MasterKey)

    def with_tenant(self, tenant: str) -> "Identity":
        """Same master key, different app. Tenant keys can't be re-targeted."""
        if not self.using_master_key:
            raise ValidationError(
                f"Cannot act as app '{tenant}': the active credential is an app-specific API key"
            )
        return Identity(tenant=tenant, credential=self.credential)


@dataclass(frozen=True)
class ContextInfo:
    """Read-only snapshot returned by CredentialContext.inspect()."""

    tenant: str
    is_default: bool
    using_master_key: bool


class CredentialContext:
    """
    Owns the current and default identities.

    Not locked: switch() and reset() are plain assignments of immutable
    values, and nothing else writes `current`.
    """

    def __init__(self, default: Identity):
        self._default = default
        self._current = default

    @property
    def default(self) -> Identity:
        return self._default

    @property
    def current(self) -> Identity:
        return self._current

    @property
    def using_master_key(self) -> bool:
        return self._current.using_master_key

    @property
    def is_default(self) -> bool:
        return self._current == self._default

    def switch(self, tenant: str, api_key: str | None = None) -> Identity:
        """
        Replace the current identity.

        With an api_key the new identity uses that app-specific key. Without
        one, the current master key is reused for the new app name; under an
        app-specific key that is a ValidationError. On any error the current
        identity is left as it was.
        """
        if not tenant:
            raise ValidationError("appName parameter is required")

        if api_key:
            new_identity = Identity(tenant=tenant, credential=TenantKey(api_key))
        elif self._current.using_master_key:
            new_identity = self._current.with_tenant(tenant)
        else:
            raise ValidationError("apiKey parameter is required when not using a master key")

        self._current = new_identity
        logger.info(
            "Switched app",
            extra={
                "event_data": {
                    "tenant": tenant,
                    "using_master_key": new_identity.using_master_key,
                }
            },
        )
        return new_identity

    def reset(self) -> Identity:
        """Go back to the startup identity."""
        self._current = self._default
        logger.info("Reset to default app", extra={"event_data": {"tenant": self._default.tenant}})
        return self._current

    def inspect(self) -> ContextInfo:
        return ContextInfo(
            tenant=self._current.tenant,
            is_default=self.is_default,
            using_master_key=self._current.using_master_key,
        )

    @contextmanager
    def impersonate(self, tenant: str | None) -> Iterator[Identity]:
        """
        Scope one call to another app.

        Yields the identity the call must run as: the current identity with
        its app name replaced when a master key is active and a tenant is
        given, the current identity unchanged otherwise. `current` itself
        is never written, so leaving the block (normally, by exception or
        by cancellation) always finds it as it was on entry.
        """
        previous = self._current
        if tenant and previous.using_master_key and tenant != previous.tenant:
            scoped = previous.with_tenant(tenant)
        else:
            scoped = previous

        if scoped is not previous:
            logger.debug(
                "Impersonation acquired",
                extra={"event_data": {"tenant": tenant, "previous_tenant": previous.tenant}},
            )
        try:
            yield scoped
        finally:
            if scoped is not previous:
                logger.debug(
                    "Impersonation released",
                    extra={"event_data": {"tenant": tenant, "previous_tenant": previous.tenant}},
                )
