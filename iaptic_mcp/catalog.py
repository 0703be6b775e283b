"""
Tool catalog: what each tool is called, what it does, and what it accepts.

Tools are grouped into families that share a name prefix:

    customer_   purchase_   transaction_   stats_   stripe_   event_
    iaptic_ (app context: switch / reset / inspect the active app)

The base schemas below are static. The schema a caller actually sees is
not: describe_tools() renders it from the active authentication mode.

- Master key active: the key works for any app, so every tool gets a
  required `tenant` parameter naming the app to run against.
- App-specific key active: the key already determines the app, so `tenant`
  is not offered at all.

The iaptic_ family changes the active app instead of running a call as one,
so `tenant` means something else there: on iaptic_switch_app it is the app
to switch to (when appName is omitted), on reset/current it is accepted and
ignored. Without a master key, iaptic_switch_app needs appName and apiKey.

describe_tools() is a pure function of the mode. Callers pass the mode in
explicitly and get freshly built descriptors back on every call.
"""

import copy
from dataclasses import dataclass, field
from typing import Any

TENANT_PARAMETER = "tenant"

_TENANT_SCHEMA = {
    "type": "string",
    "description": "Name of the Iaptic app to run this call against",
}

_APP_TENANT_SCHEMA = {
    "type": "string",
    "description": (
        "Name of the Iaptic app. iaptic_switch_app switches to it when appName "
        "is omitted; the other iaptic_ tools ignore it"
    ),
}

_DATE_RANGE = {
    "startdate": {
        "type": "string",
        "description": "Only include entries after this date (ISO format, e.g. 2024-01-01)",
    },
    "enddate": {
        "type": "string",
        "description": "Only include entries before this date (ISO format, e.g. 2024-12-31)",
    },
}


def _pagination(noun: str) -> dict[str, dict[str, Any]]:
    return {
        "limit": {
            "type": "number",
            "description": f"Maximum number of {noun} to return (default: 100, max: 1000)",
        },
        "offset": {
            "type": "number",
            "description": f"Number of {noun} to skip for pagination",
        },
    }


@dataclass(frozen=True)
class ToolSpec:
    """Static, mode-independent definition of one tool."""

    name: str
    description: str
    properties: dict[str, dict[str, Any]] = field(default_factory=dict)
    required: tuple[str, ...] = ()


@dataclass(frozen=True)
class ToolFamily:
    """
    A group of tools sharing a name prefix.

    Attributes:
        prefix: Name prefix, including the trailing underscore
        tools: The family's tool specs
        tenant_scoped: Whether `tenant` runs the call as another app; families
                       that manage the context read it themselves
    """

    prefix: str
    tools: tuple[ToolSpec, ...]
    tenant_scoped: bool = True

    def owns(self, tool_name: str) -> bool:
        return tool_name.startswith(self.prefix)

    def get(self, tool_name: str) -> ToolSpec | None:
        for spec in self.tools:
            if spec.name == tool_name:
                return spec
        return None


@dataclass(frozen=True)
class ToolDescriptor:
    """A tool as advertised to callers under one authentication mode."""

    name: str
    description: str
    parameters: dict[str, dict[str, Any]]
    required: frozenset[str]

    def input_schema(self) -> dict[str, Any]:
        """JSON schema object for the tool's arguments."""
        schema: dict[str, Any] = {"type": "object", "properties": self.parameters}
        if self.required:
            schema["required"] = sorted(self.required)
        return schema


CUSTOMER_TOOLS = ToolFamily(
    prefix="customer_",
    tools=(
        ToolSpec(
            name="customer_list",
            description="List all customers with pagination support",
            properties=_pagination("customers"),
        ),
        ToolSpec(
            name="customer_get",
            description="Get detailed information about a specific customer",
            properties={"customerId": {"type": "string", "description": "ID of the customer"}},
            required=("customerId",),
        ),
    ),
)

PURCHASE_TOOLS = ToolFamily(
    prefix="purchase_",
    tools=(
        ToolSpec(
            name="purchase_list",
            description="List purchases with pagination and date filtering",
            properties={
                **_pagination("purchases"),
                **_DATE_RANGE,
                "customerId": {"type": "string", "description": "Filter by customer ID"},
            },
        ),
        ToolSpec(
            name="purchase_get",
            description="Get detailed information about a specific purchase",
            properties={"purchaseId": {"type": "string", "description": "ID of the purchase"}},
            required=("purchaseId",),
        ),
    ),
)

TRANSACTION_TOOLS = ToolFamily(
    prefix="transaction_",
    tools=(
        ToolSpec(
            name="transaction_list",
            description="List transactions with pagination and date filtering",
            properties={
                **_pagination("transactions"),
                **_DATE_RANGE,
                "purchaseId": {"type": "string", "description": "Filter by purchase ID"},
            },
        ),
        ToolSpec(
            name="transaction_get",
            description="Get detailed information about a specific transaction",
            properties={
                "transactionId": {"type": "string", "description": "ID of the transaction"}
            },
            required=("transactionId",),
        ),
    ),
)

STATISTICS_TOOLS = ToolFamily(
    prefix="stats_",
    tools=(
        ToolSpec(name="stats_get", description="Get statistics about transactions and revenue"),
        ToolSpec(name="stats_app", description="Get app-specific statistics"),
    ),
)

_ACCESS_KEY = {
    "accessKey": {
        "type": "string",
        "description": "Customer access key, when the app requires one",
    }
}

STRIPE_TOOLS = ToolFamily(
    prefix="stripe_",
    tools=(
        ToolSpec(
            name="stripe_prices",
            description=(
                "Get available Stripe products and prices.\n"
                "- Returns products with their associated prices\n"
                "- Each product includes its ID, display name, description, metadata,\n"
                "  pricing offers and subscription terms if applicable"
            ),
        ),
        ToolSpec(
            name="stripe_checkout",
            description="Create a Stripe checkout session for an offer",
            properties={
                "offerId": {"type": "string", "description": "ID of the Stripe offer to buy"},
                "applicationUsername": {
                    "type": "string",
                    "description": "Username of the customer in your application",
                },
                "successUrl": {
                    "type": "string",
                    "description": "URL to redirect to after a successful payment",
                },
                "cancelUrl": {
                    "type": "string",
                    "description": "URL to redirect to when the customer cancels",
                },
                **_ACCESS_KEY,
            },
            required=("offerId", "applicationUsername", "successUrl", "cancelUrl"),
        ),
        ToolSpec(
            name="stripe_portal",
            description="Create a Stripe customer portal session",
            properties={
                "customerId": {"type": "string", "description": "Stripe customer ID"},
                "returnUrl": {
                    "type": "string",
                    "description": "URL to return to when leaving the portal",
                },
                **_ACCESS_KEY,
            },
            required=("customerId", "returnUrl"),
        ),
        ToolSpec(
            name="stripe_purchases",
            description="List Stripe purchases of a customer",
            properties={
                "customerId": {"type": "string", "description": "Stripe customer ID"},
                **_ACCESS_KEY,
            },
            required=("customerId",),
        ),
    ),
)

EVENT_TOOLS = ToolFamily(
    prefix="event_",
    tools=(
        ToolSpec(
            name="event_list",
            description=(
                "List recent events from your Iaptic account.\n"
                "- Events include receipt validations, platform notifications,\n"
                "  webhook deliveries, purchase status changes and renewals\n"
                "- Use limit and offset for pagination\n"
                "- Results ordered by date (newest first)"
            ),
            properties={**_pagination("events"), **_DATE_RANGE},
        ),
    ),
)

APP_TOOLS = ToolFamily(
    prefix="iaptic_",
    tenant_scoped=False,
    tools=(
        ToolSpec(
            name="iaptic_switch_app",
            description=(
                "Switch to a different Iaptic app.\n"
                "- All subsequent API calls will use the new app name and API key\n"
                "- apiKey is only required when no master key is active"
            ),
            properties={
                "appName": {"type": "string", "description": "Name of the app to switch to"},
                "apiKey": {
                    "type": "string",
                    "description": "API key for the app (not required if using master key)",
                },
            },
        ),
        ToolSpec(
            name="iaptic_reset_app",
            description=(
                "Reset to the default Iaptic app.\n"
                "- Reverts to the credentials provided at server start"
            ),
        ),
        ToolSpec(
            name="iaptic_current_app",
            description=(
                "Get information about the currently active Iaptic app.\n"
                "- Returns the app name and whether default or custom credentials are in use"
            ),
        ),
    ),
)

TOOL_FAMILIES: tuple[ToolFamily, ...] = (
    CUSTOMER_TOOLS,
    PURCHASE_TOOLS,
    TRANSACTION_TOOLS,
    STATISTICS_TOOLS,
    STRIPE_TOOLS,
    EVENT_TOOLS,
    APP_TOOLS,
)


def find_family(tool_name: str) -> ToolFamily | None:
    for family in TOOL_FAMILIES:
        if family.owns(tool_name):
            return family
    return None


def describe_tool(family: ToolFamily, spec: ToolSpec, using_master_key: bool) -> ToolDescriptor:
    """Render one tool's descriptor for the given authentication mode."""
    parameters = copy.deepcopy(spec.properties)
    required = set(spec.required)

    if using_master_key:
        tenant_schema = _TENANT_SCHEMA if family.tenant_scoped else _APP_TENANT_SCHEMA
        parameters[TENANT_PARAMETER] = dict(tenant_schema)
        required.add(TENANT_PARAMETER)
    elif spec.name == "iaptic_switch_app":
        required.update(("appName", "apiKey"))

    return ToolDescriptor(
        name=spec.name,
        description=spec.description,
        parameters=parameters,
        required=frozenset(required),
    )


def describe_tools(
    using_master_key: bool,
    families: tuple[ToolFamily, ...] = TOOL_FAMILIES,
) -> list[ToolDescriptor]:
    """Descriptors for every tool of every family under the given mode."""
    return [
        describe_tool(family, spec, using_master_key)
        for family in families
        for spec in family.tools
    ]
