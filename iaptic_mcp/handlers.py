"""
Tool handlers: one coroutine per tool, grouped by family.

Backend handlers receive the Identity the call runs as and pass it to the
gateway untouched. App-context handlers (iaptic_*) work on the
CredentialContext instead and never call the backend.

Every handler returns the text payload of the tool result: pretty-printed
JSON for backend data, a readable summary for event_list, a short sentence
for the app-context tools.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

from iaptic_mcp.errors import ValidationError
from iaptic_mcp.gateway import BackendGateway
from iaptic_mcp.identity import CredentialContext, Identity

logger = logging.getLogger("iaptic-mcp.handlers")

Handler = Callable[[Identity, dict[str, Any]], Awaitable[str]]


def clamp_limit(limit: Any, default: int, ceiling: int) -> int:
    """
    Apply the page size rules for list tools.

    Missing or non-positive limits fall back to `default`; anything above
    `ceiling` is cut down to it, whatever the backend would accept.
    """
    if limit is None:
        return default
    try:
        value = int(limit)
    except (TypeError, ValueError, OverflowError):
        raise ValidationError(f"limit must be a number, got {limit!r}")
    if value <= 0:
        return default
    return min(value, ceiling)


def clamp_offset(offset: Any) -> int | None:
    """Negative offsets start from the first row; None leaves it to the backend."""
    if offset is None:
        return None
    try:
        value = int(offset)
    except (TypeError, ValueError, OverflowError):
        raise ValidationError(f"offset must be a number, got {offset!r}")
    return max(value, 0)


def _require(args: dict[str, Any], name: str) -> Any:
    value = args.get(name)
    if value is None or value == "":
        raise ValidationError(f"{name} parameter is required")
    return value


def _to_json(data: Any) -> str:
    return json.dumps(data, indent=2)


def _format_date(value: Any) -> str:
    # Iaptic sends ISO strings; older payloads carry epoch milliseconds.
    try:
        if isinstance(value, (int, float)):
            moment = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        else:
            moment = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except (TypeError, ValueError, OverflowError):
        return str(value)
    return moment.strftime("%Y-%m-%d %H:%M:%S")


def _format_price(micros: Any, currency: Any) -> str:
    return f"{micros / 1_000_000:.2f} {currency}"


def format_event(event: dict[str, Any]) -> str:
    """Render one Iaptic event as a Markdown-ish block."""
    context = event.get("context") or {}
    content = event.get("content") or {}

    output = (
        f"### {_format_date(context.get('eventDate'))}: {context.get('eventType')} "
        f"by {context.get('applicationUsername') or 'system'}"
    )

    refresh_failures = content.get("refreshFailures") or []
    if refresh_failures:
        output += "\nRefresh Failures:"
        output += "".join(f"\n  {f.get('platform')}: {f.get('reason')}" for f in refresh_failures)

    transactions = content.get("transactions") or []
    if transactions:
        output += "\nTransactions:"
        for t in transactions:
            line = f"\n  {t.get('transactionId')}: {t.get('productId')}"
            if t.get("amountMicros"):
                line += f" ({_format_price(t['amountMicros'], t.get('currency'))})"
            if t.get("sandbox"):
                line += " [SANDBOX]"
            if t.get("isConsumed"):
                line += " [CONSUMED]"
            if t.get("isAcknowledged"):
                line += " [ACKNOWLEDGED]"
            output += line

    products = content.get("products") or []
    if products:
        output += "\nProducts:"
        for p in products:
            line = f"\n  {p.get('id')} ({p.get('type')})"
            offers = p.get("offers") or [{}]
            phases = offers[0].get("pricingPhases") or [{}]
            price_micros = phases[0].get("priceMicros")
            if price_micros:
                line += f" - {_format_price(price_micros, p.get('currency'))}"
            output += line

    return output


class ToolHandlers:
    """
    Maps tool names to handler coroutines.

    Args:
        gateway: Backend client used by every backend family
        context: Credential context the iaptic_* tools operate on
        default_limit: Page size when a list tool gets no limit
        max_limit: Ceiling applied to every caller-supplied limit
        event_summary_limit: Number of events rendered by event_list
    """

    def __init__(
        self,
        gateway: BackendGateway,
        context: CredentialContext,
        default_limit: int = 100,
        max_limit: int = 1000,
        event_summary_limit: int = 20,
    ):
        self._gateway = gateway
        self._context = context
        self._default_limit = default_limit
        self._max_limit = max_limit
        self._event_summary_limit = event_summary_limit

        self._routes: dict[str, Handler] = {
            "customer_list": self.customer_list,
            "customer_get": self.customer_get,
            "purchase_list": self.purchase_list,
            "purchase_get": self.purchase_get,
            "transaction_list": self.transaction_list,
            "transaction_get": self.transaction_get,
            "stats_get": self.stats_get,
            "stats_app": self.stats_app,
            "stripe_prices": self.stripe_prices,
            "stripe_checkout": self.stripe_checkout,
            "stripe_portal": self.stripe_portal,
            "stripe_purchases": self.stripe_purchases,
            "event_list": self.event_list,
            "iaptic_switch_app": self.switch_app,
            "iaptic_reset_app": self.reset_app,
            "iaptic_current_app": self.current_app,
        }

    def get(self, tool_name: str) -> Handler | None:
        return self._routes.get(tool_name)

    def _limit(self, args: dict[str, Any]) -> int:
        return clamp_limit(args.get("limit"), self._default_limit, self._max_limit)

    def _offset(self, args: dict[str, Any]) -> int | None:
        return clamp_offset(args.get("offset"))

    # --- customers ---

    async def customer_list(self, identity: Identity, args: dict[str, Any]) -> str:
        customers = await self._gateway.call(
            identity,
            "customers.list",
            {"limit": self._limit(args), "offset": self._offset(args)},
        )
        return _to_json(customers)

    async def customer_get(self, identity: Identity, args: dict[str, Any]) -> str:
        customer = await self._gateway.call(
            identity, "customers.get", {"id": _require(args, "customerId")}
        )
        return _to_json(customer)

    # --- purchases ---

    async def purchase_list(self, identity: Identity, args: dict[str, Any]) -> str:
        purchases = await self._gateway.call(
            identity,
            "purchases.list",
            {
                "limit": self._limit(args),
                "offset": self._offset(args),
                "startdate": args.get("startdate"),
                "enddate": args.get("enddate"),
                "customerId": args.get("customerId"),
            },
        )
        logger.info(
            "Retrieved purchases",
            extra={"event_data": {"tenant": identity.tenant, "rows": _row_count(purchases)}},
        )
        return _to_json(purchases)

    async def purchase_get(self, identity: Identity, args: dict[str, Any]) -> str:
        purchase = await self._gateway.call(
            identity, "purchases.get", {"id": _require(args, "purchaseId")}
        )
        return _to_json(purchase)

    # --- transactions ---

    async def transaction_list(self, identity: Identity, args: dict[str, Any]) -> str:
        transactions = await self._gateway.call(
            identity,
            "transactions.list",
            {
                "limit": self._limit(args),
                "offset": self._offset(args),
                "startdate": args.get("startdate"),
                "enddate": args.get("enddate"),
                "purchaseId": args.get("purchaseId"),
            },
        )
        logger.info(
            "Retrieved transactions",
            extra={"event_data": {"tenant": identity.tenant, "rows": _row_count(transactions)}},
        )
        return _to_json(transactions)

    async def transaction_get(self, identity: Identity, args: dict[str, Any]) -> str:
        transaction = await self._gateway.call(
            identity, "transactions.get", {"id": _require(args, "transactionId")}
        )
        return _to_json(transaction)

    # --- statistics ---

    async def stats_get(self, identity: Identity, args: dict[str, Any]) -> str:
        return _to_json(await self._gateway.call(identity, "stats.global"))

    async def stats_app(self, identity: Identity, args: dict[str, Any]) -> str:
        return _to_json(await self._gateway.call(identity, "stats.app"))

    # --- stripe ---

    async def stripe_prices(self, identity: Identity, args: dict[str, Any]) -> str:
        return _to_json(await self._gateway.call(identity, "stripe.prices"))

    async def stripe_checkout(self, identity: Identity, args: dict[str, Any]) -> str:
        checkout = await self._gateway.call(
            identity,
            "stripe.checkout",
            {
                "offerId": _require(args, "offerId"),
                "applicationUsername": _require(args, "applicationUsername"),
                "successUrl": _require(args, "successUrl"),
                "cancelUrl": _require(args, "cancelUrl"),
                "accessKey": args.get("accessKey"),
            },
        )
        return _to_json(checkout)

    async def stripe_portal(self, identity: Identity, args: dict[str, Any]) -> str:
        portal = await self._gateway.call(
            identity,
            "stripe.portal",
            {
                "id": _require(args, "customerId"),
                "returnUrl": _require(args, "returnUrl"),
                "accessKey": args.get("accessKey"),
            },
        )
        return _to_json(portal)

    async def stripe_purchases(self, identity: Identity, args: dict[str, Any]) -> str:
        purchases = await self._gateway.call(
            identity,
            "stripe.purchases",
            {"customerId": _require(args, "customerId"), "accessKey": args.get("accessKey")},
        )
        return _to_json(purchases)

    # --- events ---

    async def event_list(self, identity: Identity, args: dict[str, Any]) -> str:
        events = await self._gateway.call(
            identity,
            "events.list",
            {
                "limit": self._limit(args),
                "offset": self._offset(args),
                "startdate": args.get("startdate"),
                "enddate": args.get("enddate"),
            },
        )
        rows = (events or {}).get("rows") or []
        logger.info(
            "Retrieved events",
            extra={"event_data": {"tenant": identity.tenant, "rows": len(rows)}},
        )
        return "\n".join(format_event(row) for row in rows[: self._event_summary_limit])

    # --- app context ---

    async def switch_app(self, identity: Identity, args: dict[str, Any]) -> str:
        # With a master key the target may come as `tenant` instead.
        app_name = args.get("appName") or args.get("tenant")
        self._context.switch(app_name, args.get("apiKey"))
        return f"Successfully switched to app: {app_name}"

    async def reset_app(self, identity: Identity, args: dict[str, Any]) -> str:
        self._context.reset()
        return "Successfully reset to default app"

    async def current_app(self, identity: Identity, args: dict[str, Any]) -> str:
        info = self._context.inspect()
        credentials = "default" if info.is_default else "custom"
        key_kind = "using master key" if info.using_master_key else "using app-specific API key"
        return f"Current app: {info.tenant} ({credentials} credentials, {key_kind})"


def _row_count(payload: Any) -> int:
    if isinstance(payload, dict):
        return len(payload.get("rows") or [])
    return 0
