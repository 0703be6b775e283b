"""
Unit tests for tool descriptor generation (iaptic_mcp/catalog.py).

The key property: under a master key every tool requires `tenant`;
under an app-specific key no tool mentions it.
"""

import pytest

from iaptic_mcp.catalog import (
    TENANT_PARAMETER,
    TOOL_FAMILIES,
    describe_tools,
    find_family,
)

EXPECTED_TOOLS = {
    "customer_list",
    "customer_get",
    "purchase_list",
    "purchase_get",
    "transaction_list",
    "transaction_get",
    "stats_get",
    "stats_app",
    "stripe_prices",
    "stripe_checkout",
    "stripe_portal",
    "stripe_purchases",
    "event_list",
    "iaptic_switch_app",
    "iaptic_reset_app",
    "iaptic_current_app",
}


def _by_name(descriptors):
    return {d.name: d for d in descriptors}


class TestDescribeTools:
    @pytest.mark.parametrize("using_master_key", [True, False])
    def test_every_tool_is_described(self, using_master_key):
        names = [d.name for d in describe_tools(using_master_key)]

        assert set(names) == EXPECTED_TOOLS
        assert len(names) == len(set(names))

    def test_master_key_requires_tenant_on_every_tool(self):
        for descriptor in describe_tools(using_master_key=True):
            assert TENANT_PARAMETER in descriptor.required, descriptor.name
            assert TENANT_PARAMETER in descriptor.parameters, descriptor.name

    def test_tenant_key_never_mentions_tenant(self):
        for descriptor in describe_tools(using_master_key=False):
            assert TENANT_PARAMETER not in descriptor.required, descriptor.name
            assert TENANT_PARAMETER not in descriptor.parameters, descriptor.name

    def test_app_tools_describe_their_own_tenant_meaning(self):
        descriptors = _by_name(describe_tools(using_master_key=True))

        assert "appName" in descriptors["iaptic_switch_app"].parameters[TENANT_PARAMETER]["description"]
        assert "appName" not in descriptors["purchase_list"].parameters[TENANT_PARAMETER]["description"]

    def test_switch_app_required_fields_follow_mode(self):
        with_master = _by_name(describe_tools(using_master_key=True))["iaptic_switch_app"]
        without_master = _by_name(describe_tools(using_master_key=False))["iaptic_switch_app"]

        assert with_master.required == frozenset({TENANT_PARAMETER})
        assert without_master.required == frozenset({"appName", "apiKey"})

    def test_base_required_fields_are_kept(self):
        descriptors = _by_name(describe_tools(using_master_key=True))

        assert descriptors["purchase_get"].required == frozenset({"purchaseId", TENANT_PARAMETER})
        assert descriptors["stripe_portal"].required == frozenset(
            {"customerId", "returnUrl", TENANT_PARAMETER}
        )

    def test_descriptors_are_rebuilt_on_each_call(self):
        first = _by_name(describe_tools(using_master_key=True))
        first["purchase_list"].parameters["injected"] = {"type": "string"}
        first["customer_get"].parameters["customerId"]["description"] = "changed"
        first["purchase_list"].parameters["startdate"]["type"] = "integer"

        second = _by_name(describe_tools(using_master_key=True))

        assert "injected" not in second["purchase_list"].parameters
        assert second["customer_get"].parameters["customerId"]["description"] == "ID of the customer"
        assert second["purchase_list"].parameters["startdate"]["type"] == "string"
        assert second["transaction_list"].parameters["startdate"]["type"] == "string"


class TestInputSchema:
    def test_schema_shape(self):
        descriptor = _by_name(describe_tools(using_master_key=True))["customer_get"]

        schema = descriptor.input_schema()

        assert schema["type"] == "object"
        assert set(schema["properties"]) == {"customerId", TENANT_PARAMETER}
        assert schema["required"] == ["customerId", TENANT_PARAMETER]

    def test_schema_without_required_fields_omits_key(self):
        descriptor = _by_name(describe_tools(using_master_key=False))["stats_get"]

        assert descriptor.input_schema() == {"type": "object", "properties": {}}


class TestFindFamily:
    @pytest.mark.parametrize(
        "tool_name,prefix",
        [
            ("customer_list", "customer_"),
            ("purchase_get", "purchase_"),
            ("transaction_list", "transaction_"),
            ("stats_app", "stats_"),
            ("stripe_prices", "stripe_"),
            ("event_list", "event_"),
            ("iaptic_current_app", "iaptic_"),
        ],
    )
    def test_resolves_by_prefix(self, tool_name, prefix):
        assert find_family(tool_name).prefix == prefix

    def test_unknown_prefix(self):
        assert find_family("receipt_validate") is None

    def test_families_have_distinct_prefixes(self):
        prefixes = [family.prefix for family in TOOL_FAMILIES]
        assert len(prefixes) == len(set(prefixes))
