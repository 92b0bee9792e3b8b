"""
PayPal Payment Provider (paypal.com)

Supports:
- PayPal wallet, Venmo, Pay Later and cards through Orders v2
- Recurring donations through Billing Plans / Subscriptions

Documentation: https://developer.paypal.com/api/rest/
"""
import logging
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional

import httpx

from giving_gateways.config import settings
from giving_gateways.core.exceptions import ProviderOperationError
from giving_gateways.models.gateway import GatewayConfig
from giving_gateways.services.gateways.base import (
    BaseGatewayProvider, ChargeResult, DonationStatus, GivingRepos, OptionalOperation,
    SubscriptionResult, WebhookEndpoint, WebhookResult, body_json, header_value, percent_fee,
    response_json,
)

logger = logging.getLogger(__name__)

PAYPAL_FEE_PERCENT = Decimal("2.89")
PAYPAL_FEE_FIXED = Decimal("0.49")

SANDBOX_ENVIRONMENTS = {"sandbox", "test"}

PAYPAL_WEBHOOK_EVENTS = [
    "PAYMENT.CAPTURE.COMPLETED",
    "PAYMENT.CAPTURE.DENIED",
    "PAYMENT.SALE.COMPLETED",
    "BILLING.SUBSCRIPTION.ACTIVATED",
    "BILLING.SUBSCRIPTION.CANCELLED",
]

PAYPAL_PROCESSED_EVENTS = {
    "PAYMENT.CAPTURE.COMPLETED",
    "PAYMENT.CAPTURE.DENIED",
    "PAYMENT.SALE.COMPLETED",
    "BILLING.SUBSCRIPTION.CANCELLED",
}

# Headers PayPal signs a webhook delivery with
VERIFICATION_HEADERS = {
    "auth_algo": "paypal-auth-algo",
    "cert_url": "paypal-cert-url",
    "transmission_id": "paypal-transmission-id",
    "transmission_sig": "paypal-transmission-sig",
    "transmission_time": "paypal-transmission-time",
}

APPLICATION_CONTEXT_SETTINGS = {
    "brandName": "brand_name",
    "landingPage": "landing_page",
    "userAction": "user_action",
    "shippingPreference": "shipping_preference",
    "returnUrl": "return_url",
    "cancelUrl": "cancel_url",
}


def format_amount(amount: Any) -> str:
    return str(Decimal(str(amount)).quantize(Decimal("0.01")))


class PayPalGatewayProvider(BaseGatewayProvider):
    """PayPal provider using the REST API with client-credential OAuth"""

    optional_operations = frozenset({
        OptionalOperation.CREATE_PRODUCT,
        OptionalOperation.CREATE_ORDER,
        OptionalOperation.GENERATE_CLIENT_TOKEN,
        OptionalOperation.CREATE_SUBSCRIPTION_PLAN,
        OptionalOperation.CREATE_SUBSCRIPTION_WITH_PLAN,
        OptionalOperation.UPDATE_DONATION_STATUS,
    })

    def __init__(
        self,
        base_url: Optional[str] = None,
        sandbox_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: Optional[float] = None,
    ):
        self.base_url = base_url or settings.paypal_api_base
        self.sandbox_url = sandbox_url or settings.paypal_sandbox_api_base
        self.transport = transport
        self.timeout = timeout or settings.http_timeout

    @property
    def name(self) -> str:
        return "paypal"

    def _base_url_for(self, config: GatewayConfig) -> str:
        if (config.environment or "").lower() in SANDBOX_ENVIRONMENTS:
            return self.sandbox_url
        if (config.settings or {}).get("testMode"):
            return self.sandbox_url
        return self.base_url

    async def _get_access_token(self, client: httpx.AsyncClient, config: GatewayConfig) -> str:
        response = await client.post(
            "/v1/oauth2/token",
            data={"grant_type": "client_credentials"},
            auth=(config.public_key or "", config.private_key),
            headers={"Accept": "application/json"},
        )
        if response.status_code != 200:
            logger.error(f"PayPal OAuth error: {response.status_code}")
            raise ProviderOperationError(
                "PayPal authentication failed",
                provider=self.name,
                details={"status_code": response.status_code}
            )
        token = (response_json(response) or {}).get("access_token")
        if not token:
            logger.error("PayPal OAuth response carried no access token")
            raise ProviderOperationError(
                "PayPal authentication failed",
                provider=self.name,
                details={"status_code": response.status_code, "reason": "missing access_token"}
            )
        return token

    async def _request(
        self,
        config: GatewayConfig,
        method: str,
        path: str,
        json: Optional[Mapping[str, Any]] = None,
        params: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, Any]:
        try:
            async with httpx.AsyncClient(
                base_url=self._base_url_for(config),
                transport=self.transport,
                timeout=self.timeout
            ) as client:
                token = await self._get_access_token(client, config)
                response = await client.request(
                    method,
                    path,
                    json=json,
                    params=params,
                    headers={
                        "Authorization": f"Bearer {token}",
                        "Content-Type": "application/json",
                        "Accept": "application/json",
                    },
                )
        except httpx.HTTPError as e:
            logger.error(f"PayPal request {method} {path} failed: {e.__class__.__name__}")
            raise ProviderOperationError(f"PayPal request failed: {e}", provider=self.name) from e

        response_data = response_json(response)
        if response_data is None:
            logger.error(f"PayPal returned a non-JSON response: {response.status_code} on {method} {path}")
            raise ProviderOperationError(
                f"PayPal returned an unreadable response ({response.status_code})",
                provider=self.name,
                details={"status_code": response.status_code, "path": path}
            )

        if response.status_code >= 400:
            error_msg = response_data.get("message") or response_data.get("error_description") or "Unknown error"
            logger.error(f"PayPal API error: {response.status_code} on {method} {path} - {error_msg}")
            raise ProviderOperationError(
                f"PayPal request failed: {error_msg}",
                provider=self.name,
                details={"status_code": response.status_code, "path": path}
            )

        return response_data

    # Webhooks

    async def create_webhook_endpoint(self, config: GatewayConfig, webhook_url: str) -> WebhookEndpoint:
        webhook = await self._request(config, "POST", "/v1/notifications/webhooks", json={
            "url": webhook_url,
            "event_types": [{"name": name} for name in PAYPAL_WEBHOOK_EVENTS],
        })
        logger.info(f"Created PayPal webhook {webhook['id']}")
        return WebhookEndpoint(id=webhook["id"])

    async def delete_webhooks_by_church_id(self, config: GatewayConfig, church_id: str) -> None:
        result = await self._request(config, "GET", "/v1/notifications/webhooks")
        for webhook in result.get("webhooks", []):
            if church_id in (webhook.get("url") or ""):
                await self._request(config, "DELETE", f"/v1/notifications/webhooks/{webhook['id']}")
                logger.info(f"Deleted PayPal webhook {webhook['id']}")

    async def verify_webhook_signature(self, config: GatewayConfig, headers: Mapping[str, str], body: Any) -> WebhookResult:
        """
        Verify a webhook delivery with PayPal's verify-webhook-signature API.

        `webhook_key` holds the PayPal webhook id the delivery was sent to.
        Docs: https://developer.paypal.com/docs/api/webhooks/v1/#verify-webhook-signature
        """
        if not config.webhook_key:
            logger.warning("PayPal webhook id not configured, rejecting webhook")
            return WebhookResult(success=False, should_process=False)

        verification = {}
        for field, header in VERIFICATION_HEADERS.items():
            value = header_value(headers, header)
            if not value:
                logger.warning(f"Missing PayPal webhook header {header}")
                return WebhookResult(success=False, should_process=False)
            verification[field] = value

        event = body_json(body)
        result = await self._request(config, "POST", "/v1/notifications/verify-webhook-signature", json={
            **verification,
            "webhook_id": config.webhook_key,
            "webhook_event": event,
        })

        if result.get("verification_status") != "SUCCESS":
            logger.warning("PayPal webhook signature verification failed")
            return WebhookResult(success=False, should_process=False)

        event_type = event.get("event_type")
        return WebhookResult(
            success=True,
            should_process=event_type in PAYPAL_PROCESSED_EVENTS,
            event_type=event_type,
            event_data=event.get("resource"),
            event_id=event.get("id"),
        )

    # Payments

    async def create_order(self, config: GatewayConfig, order_data: Dict[str, Any]) -> Any:
        stored = config.settings or {}
        application_context = {
            target: stored[source]
            for source, target in APPLICATION_CONTEXT_SETTINGS.items()
            if stored.get(source)
        }

        payload: Dict[str, Any] = {
            "intent": "CAPTURE",
            "purchase_units": [{
                "amount": {
                    "currency_code": (order_data.get("currency") or "USD").upper(),
                    "value": format_amount(order_data["amount"]),
                },
                "custom_id": config.church_id,
                "description": order_data.get("description") or "Donation",
            }],
        }
        if application_context:
            payload["application_context"] = application_context

        order = await self._request(config, "POST", "/v2/checkout/orders", json=payload)
        logger.info(f"Created PayPal order {order['id']}")
        return order

    async def process_charge(self, config: GatewayConfig, donation_data: Dict[str, Any]) -> ChargeResult:
        """
        Capture an approved order.

        Without an `order_id` a new order is created and captured right away,
        which only succeeds when the payload carries a vaulted payment source.
        """
        order_id = donation_data.get("order_id")
        if not order_id:
            order = await self.create_order(config, donation_data)
            order_id = order["id"]

        capture = await self._request(config, "POST", f"/v2/checkout/orders/{order_id}/capture", json={})

        transaction_id = order_id
        units = capture.get("purchase_units") or []
        if units:
            captures = (units[0].get("payments") or {}).get("captures") or []
            if captures:
                transaction_id = captures[0]["id"]

        return ChargeResult(
            success=capture.get("status") == "COMPLETED",
            transaction_id=transaction_id,
            data=capture,
        )

    async def create_subscription(self, config: GatewayConfig, subscription_data: Dict[str, Any]) -> SubscriptionResult:
        plan_id = subscription_data.get("plan_id")
        if not plan_id:
            raise ProviderOperationError("PayPal subscriptions require a plan_id", provider=self.name)

        payload: Dict[str, Any] = {
            "plan_id": plan_id,
            "custom_id": config.church_id,
        }
        if subscription_data.get("email"):
            payload["subscriber"] = {"email_address": subscription_data["email"]}

        subscription = await self._request(config, "POST", "/v1/billing/subscriptions", json=payload)
        logger.info(f"Created PayPal subscription {subscription['id']}")
        return SubscriptionResult(
            success=subscription.get("status") in {"ACTIVE", "APPROVAL_PENDING", "APPROVED"},
            subscription_id=subscription["id"],
            data=subscription,
        )

    async def update_subscription(self, config: GatewayConfig, subscription_data: Dict[str, Any]) -> SubscriptionResult:
        subscription_id = subscription_data["id"]
        result = await self._request(
            config, "POST", f"/v1/billing/subscriptions/{subscription_id}/revise",
            json={"plan_id": subscription_data["plan_id"]}
        )
        return SubscriptionResult(success=True, subscription_id=subscription_id, data=result)

    async def cancel_subscription(self, config: GatewayConfig, subscription_id: str, reason: Optional[str] = None) -> None:
        await self._request(
            config, "POST", f"/v1/billing/subscriptions/{subscription_id}/cancel",
            json={"reason": reason or "Cancelled by donor"}
        )
        logger.info(f"Cancelled PayPal subscription {subscription_id}")

    async def calculate_fees(self, amount: Decimal, church_id: str, currency: str = "USD") -> Decimal:
        return percent_fee(amount, PAYPAL_FEE_PERCENT, PAYPAL_FEE_FIXED)

    # Logging

    async def log_event(self, church_id: str, event: Dict[str, Any], event_data: Dict[str, Any], repos: GivingRepos) -> None:
        await repos.save_event_log(church_id, {
            "provider": self.name,
            "provider_id": event.get("id"),
            "event_type": event.get("event_type"),
            "status": event_data.get("status") or event_data.get("state"),
            "message": event.get("summary") or "",
            "created": event.get("create_time"),
            "resolved": False,
        })

    async def log_donation(
        self,
        config: GatewayConfig,
        church_id: str,
        event_data: Dict[str, Any],
        repos: GivingRepos,
        status: DonationStatus = DonationStatus.COMPLETE
    ) -> Optional[Dict[str, Any]]:
        amount = event_data.get("amount") or {}
        record = {
            "provider": self.name,
            "gateway_id": config.gateway_id,
            "transaction_id": event_data.get("id"),
            "customer_id": (event_data.get("payer") or {}).get("payer_id"),
            "subscription_id": event_data.get("billing_agreement_id"),
            "amount": Decimal(str(amount.get("value") or amount.get("total") or "0")),
            "currency": (amount.get("currency_code") or amount.get("currency") or "USD").lower(),
            "method": "paypal",
            "status": DonationStatus(status).value,
            "metadata": {"custom_id": event_data.get("custom_id")},
        }
        return await repos.save_donation(church_id, record)

    async def update_donation_status(self, church_id: str, transaction_id: str, status: DonationStatus, repos: GivingRepos) -> None:
        await repos.update_donation_status(church_id, transaction_id, DonationStatus(status).value)

    # Catalog and plans

    async def create_product(self, config: GatewayConfig, church_id: str) -> Optional[str]:
        product = await self._request(config, "POST", "/v1/catalogs/products", json={
            "name": "Donation",
            "type": "SERVICE",
            "description": f"Donations for church {church_id}",
        })
        return product["id"]

    async def generate_client_token(self, config: GatewayConfig) -> str:
        result = await self._request(config, "POST", "/v1/identity/generate-token", json={})
        return result["client_token"]

    async def create_subscription_plan(self, config: GatewayConfig, plan_data: Dict[str, Any]) -> str:
        product_id = plan_data.get("product_id") or config.product_id
        if not product_id:
            raise ProviderOperationError("PayPal billing plans require a product_id", provider=self.name)

        plan = await self._request(config, "POST", "/v1/billing/plans", json={
            "product_id": product_id,
            "name": plan_data.get("name") or "Recurring donation",
            "billing_cycles": [{
                "frequency": {
                    "interval_unit": (plan_data.get("interval") or "month").upper(),
                    "interval_count": plan_data.get("interval_count", 1),
                },
                "tenure_type": "REGULAR",
                "sequence": 1,
                "total_cycles": 0,
                "pricing_scheme": {
                    "fixed_price": {
                        "value": format_amount(plan_data["amount"]),
                        "currency_code": (plan_data.get("currency") or "USD").upper(),
                    },
                },
            }],
            "payment_preferences": {
                "auto_bill_outstanding": True,
                "payment_failure_threshold": 3,
            },
        })
        logger.info(f"Created PayPal billing plan {plan['id']}")
        return plan["id"]

    async def create_subscription_with_plan(self, config: GatewayConfig, subscription_data: Dict[str, Any]) -> SubscriptionResult:
        plan_id = subscription_data.get("plan_id") or await self.create_subscription_plan(config, subscription_data)
        return await self.create_subscription(config, {**subscription_data, "plan_id": plan_id})
