"""
Unit tests for Identity and CredentialContext (iaptic_mcp/identity.py).

Covers switch/reset/inspect semantics in both authentication modes, the
atomicity of a rejected switch, and the impersonate() guard.
"""

import pytest

from iaptic_mcp.errors import ValidationError
from iaptic_mcp.identity import ContextInfo, CredentialContext, Identity, MasterKey, TenantKey


class TestIdentity:
    def test_master_key_identity_can_be_retargeted(self, master_identity):
        beta = master_identity.with_tenant("beta")

        assert beta.tenant == "beta"
        assert beta.credential == master_identity.credential
        assert beta.using_master_key is True

    def test_tenant_key_identity_cannot_be_retargeted(self, tenant_identity):
        with pytest.raises(ValidationError, match="app-specific API key"):
            tenant_identity.with_tenant("beta")

    def test_secrets_are_not_in_repr(self, master_identity, tenant_identity):
        assert "master-secret" not in repr(master_identity)
        assert "alpha-key" not in repr(tenant_identity)

    def test_identities_compare_by_value(self):
        assert Identity("alpha", TenantKey("k")) == Identity("alpha", TenantKey("k"))
        assert Identity("alpha", TenantKey("k")) != Identity("alpha", MasterKey("k"))


class TestInspect:
    def test_fresh_context_is_default(self, master_identity):
        context = CredentialContext(master_identity)

        assert context.inspect() == ContextInfo(tenant="alpha", is_default=True, using_master_key=True)

    def test_tenant_key_mode_reported(self, tenant_identity):
        context = CredentialContext(tenant_identity)

        assert context.inspect().using_master_key is False
        assert context.using_master_key is False


class TestSwitch:
    def test_master_key_switch_by_name_alone(self, master_identity):
        context = CredentialContext(master_identity)

        context.switch("beta")

        info = context.inspect()
        assert info.tenant == "beta"
        assert info.using_master_key is True
        assert info.is_default is False
        assert context.current.credential == MasterKey("master-secret")

    def test_switch_with_key_uses_tenant_key(self, master_identity):
        context = CredentialContext(master_identity)

        context.switch("beta", "beta-key")

        assert context.current == Identity("beta", TenantKey("beta-key"))
        assert context.using_master_key is False

    def test_tenant_key_switch_without_key_is_rejected(self, tenant_identity):
        context = CredentialContext(tenant_identity)
        before = context.inspect()

        with pytest.raises(ValidationError, match="apiKey parameter is required"):
            context.switch("beta")

        assert context.inspect() == before
        assert context.current is tenant_identity

    def test_tenant_key_switch_with_key(self, tenant_identity):
        context = CredentialContext(tenant_identity)

        context.switch("beta", "beta-key")

        assert context.inspect().tenant == "beta"

    def test_empty_app_name_is_rejected(self, master_identity):
        context = CredentialContext(master_identity)

        with pytest.raises(ValidationError, match="appName"):
            context.switch("")

        assert context.current is master_identity

    def test_last_successful_switch_wins(self, tenant_identity):
        context = CredentialContext(tenant_identity)

        context.switch("beta", "beta-key")
        with pytest.raises(ValidationError):
            context.switch("gamma")
        context.switch("delta", "delta-key")

        assert context.inspect().tenant == "delta"

    def test_switching_back_to_default_values_is_default(self, master_identity):
        context = CredentialContext(master_identity)

        context.switch("beta")
        context.switch("alpha")

        assert context.is_default is True


class TestReset:
    def test_reset_restores_default(self, master_identity):
        context = CredentialContext(master_identity)
        context.switch("beta", "beta-key")

        context.reset()

        assert context.current is master_identity
        assert context.inspect().is_default is True

    def test_reset_is_idempotent(self, master_identity):
        context = CredentialContext(master_identity)
        context.switch("beta")

        context.reset()
        once = context.inspect()
        context.reset()

        assert context.inspect() == once


class TestImpersonate:
    def test_master_key_yields_retargeted_identity(self, master_identity):
        context = CredentialContext(master_identity)

        with context.impersonate("beta") as identity:
            assert identity.tenant == "beta"
            assert identity.using_master_key is True
            assert context.inspect().tenant == "alpha"

        assert context.inspect().tenant == "alpha"

    def test_no_tenant_yields_current(self, master_identity):
        context = CredentialContext(master_identity)

        with context.impersonate(None) as identity:
            assert identity is master_identity

    def test_tenant_key_ignores_override(self, tenant_identity):
        context = CredentialContext(tenant_identity)

        with context.impersonate("beta") as identity:
            assert identity is tenant_identity

    def test_context_unchanged_after_exception(self, master_identity):
        context = CredentialContext(master_identity)
        before = context.inspect()

        with pytest.raises(RuntimeError):
            with context.impersonate("beta"):
                raise RuntimeError("backend exploded")

        assert context.inspect() == before
        assert context.current is master_identity

    def test_overlapping_scopes_do_not_leak(self, master_identity):
        context = CredentialContext(master_identity)

        with context.impersonate("beta") as beta:
            with context.impersonate("gamma") as gamma:
                assert gamma.tenant == "gamma"
            assert beta.tenant == "beta"

        assert context.inspect().tenant == "alpha"
