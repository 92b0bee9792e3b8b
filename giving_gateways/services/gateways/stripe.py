"""
Stripe Payment Provider (stripe.com)

Supports:
- Credit/Debit Cards
- ACH Direct Debit (us_bank_account, Financial Connections)
- Recurring donations via Subscriptions

Documentation: https://docs.stripe.com/api
"""
import hashlib
import hmac
import logging
import time
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional

import httpx

from giving_gateways.config import settings
from giving_gateways.core.exceptions import ProviderOperationError
from giving_gateways.models.gateway import GatewayConfig
from giving_gateways.services.gateways.base import (
    BaseGatewayProvider, ChargeResult, DonationStatus, GivingRepos, OptionalOperation,
    SubscriptionResult, WebhookEndpoint, WebhookResult, body_bytes, body_json,
    header_value, percent_fee, response_json, to_minor_units,
)

logger = logging.getLogger(__name__)

STRIPE_FEE_PERCENT = Decimal("2.9")
STRIPE_FEE_FIXED = Decimal("0.30")

STRIPE_WEBHOOK_EVENTS = [
    "charge.succeeded",
    "charge.failed",
    "payment_intent.succeeded",
    "payment_intent.payment_failed",
    "invoice.paid",
    "invoice.payment_failed",
    "customer.subscription.updated",
    "customer.subscription.deleted",
]

# Events that result in a donation being logged or updated
STRIPE_PROCESSED_EVENTS = {
    "charge.succeeded",
    "charge.failed",
    "invoice.paid",
    "invoice.payment_failed",
    "customer.subscription.deleted",
}

SUCCESSFUL_CHARGE_STATUSES = {"succeeded", "processing", "requires_capture"}
ACTIVE_SUBSCRIPTION_STATUSES = {"active", "trialing"}


def encode_form(data: Mapping[str, Any], prefix: str = "") -> Dict[str, str]:
    """
    Flatten nested data into Stripe's bracketed form encoding.

    {"items": [{"price": "p_1"}]} -> {"items[0][price]": "p_1"}
    """
    encoded: Dict[str, str] = {}
    for key, value in data.items():
        name = f"{prefix}[{key}]" if prefix else str(key)
        if value is None:
            continue
        if isinstance(value, Mapping):
            encoded.update(encode_form(value, name))
        elif isinstance(value, (list, tuple)):
            for index, item in enumerate(value):
                item_name = f"{name}[{index}]"
                if isinstance(item, Mapping):
                    encoded.update(encode_form(item, item_name))
                else:
                    encoded[item_name] = _form_value(item)
        else:
            encoded[name] = _form_value(value)
    return encoded


def _form_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class StripeGatewayProvider(BaseGatewayProvider):
    """Stripe provider using the REST API directly"""

    optional_operations = frozenset({
        OptionalOperation.CREATE_PRODUCT,
        OptionalOperation.CREATE_CUSTOMER,
        OptionalOperation.GET_CUSTOMER_SUBSCRIPTIONS,
        OptionalOperation.GET_CUSTOMER_PAYMENT_METHODS,
        OptionalOperation.ATTACH_PAYMENT_METHOD,
        OptionalOperation.DETACH_PAYMENT_METHOD,
        OptionalOperation.UPDATE_CARD,
        OptionalOperation.CREATE_BANK_ACCOUNT,
        OptionalOperation.UPDATE_BANK,
        OptionalOperation.VERIFY_BANK,
        OptionalOperation.DELETE_BANK_ACCOUNT,
        OptionalOperation.CREATE_ACH_SETUP_INTENT,
        OptionalOperation.UPDATE_DONATION_STATUS,
    })

    def __init__(
        self,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: Optional[float] = None,
        webhook_tolerance: Optional[int] = None,
    ):
        self.base_url = base_url or settings.stripe_api_base
        self.transport = transport
        self.timeout = timeout or settings.http_timeout
        self.webhook_tolerance = webhook_tolerance or settings.stripe_webhook_tolerance

    @property
    def name(self) -> str:
        return "stripe"

    def _get_headers(self, config: GatewayConfig) -> Dict[str, str]:
        """Get headers for Stripe API requests"""
        headers = {
            "Authorization": f"Bearer {config.private_key}",
            "Accept": "application/json",
        }
        connect_account = (config.settings or {}).get("connectAccountId")
        if connect_account:
            headers["Stripe-Account"] = connect_account
        return headers

    async def _request(
        self,
        config: GatewayConfig,
        method: str,
        path: str,
        data: Optional[Mapping[str, Any]] = None,
        params: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, Any]:
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                transport=self.transport,
                timeout=self.timeout
            ) as client:
                response = await client.request(
                    method,
                    path,
                    data=encode_form(data) if data else None,
                    params=params,
                    headers=self._get_headers(config),
                )
        except httpx.HTTPError as e:
            logger.error(f"Stripe request {method} {path} failed: {e.__class__.__name__}")
            raise ProviderOperationError(f"Stripe request failed: {e}", provider=self.name) from e

        response_data = response_json(response)
        if response_data is None:
            logger.error(f"Stripe returned a non-JSON response: {response.status_code} on {method} {path}")
            raise ProviderOperationError(
                f"Stripe returned an unreadable response ({response.status_code})",
                provider=self.name,
                details={"status_code": response.status_code, "path": path}
            )

        if response.status_code >= 400:
            error_msg = response_data.get("error", {}).get("message", "Unknown error")
            logger.error(f"Stripe API error: {response.status_code} on {method} {path} - {error_msg}")
            raise ProviderOperationError(
                f"Stripe request failed: {error_msg}",
                provider=self.name,
                details={"status_code": response.status_code, "path": path}
            )

        return response_data

    # Webhooks

    async def create_webhook_endpoint(self, config: GatewayConfig, webhook_url: str) -> WebhookEndpoint:
        endpoint = await self._request(config, "POST", "/webhook_endpoints", data={
            "url": webhook_url,
            "enabled_events": STRIPE_WEBHOOK_EVENTS,
            "metadata": {"church_id": config.church_id},
        })
        logger.info(f"Created Stripe webhook endpoint {endpoint['id']}")
        return WebhookEndpoint(id=endpoint["id"], secret=endpoint.get("secret"))

    async def delete_webhooks_by_church_id(self, config: GatewayConfig, church_id: str) -> None:
        endpoints = await self._request(config, "GET", "/webhook_endpoints", params={"limit": 100})
        for endpoint in endpoints.get("data", []):
            if (endpoint.get("metadata") or {}).get("church_id") == church_id:
                await self._request(config, "DELETE", f"/webhook_endpoints/{endpoint['id']}")
                logger.info(f"Deleted Stripe webhook endpoint {endpoint['id']}")

    async def verify_webhook_signature(self, config: GatewayConfig, headers: Mapping[str, str], body: Any) -> WebhookResult:
        """
        Verify the Stripe-Signature header.

        The header carries `t=<timestamp>` and one or more `v1=<signature>`
        entries; the signature is HMAC-SHA256 of "<timestamp>.<raw body>"
        keyed with the endpoint secret.
        Docs: https://docs.stripe.com/webhooks#verify-manually
        """
        if not config.webhook_key:
            logger.warning("Stripe webhook secret not configured, rejecting webhook")
            return WebhookResult(success=False, should_process=False)

        signature_header = header_value(headers, "stripe-signature")
        if not signature_header:
            logger.warning("No Stripe signature in webhook headers")
            return WebhookResult(success=False, should_process=False)

        timestamp = None
        signatures: List[str] = []
        for part in signature_header.split(","):
            if "=" not in part:
                continue
            key, value = part.split("=", 1)
            key = key.strip()
            if key == "t":
                timestamp = value.strip()
            elif key == "v1":
                signatures.append(value.strip())

        if not timestamp or not signatures:
            logger.warning("Invalid Stripe signature format")
            return WebhookResult(success=False, should_process=False)

        try:
            timestamp_value = int(timestamp)
        except ValueError:
            logger.warning("Invalid Stripe signature timestamp")
            return WebhookResult(success=False, should_process=False)

        if abs(time.time() - timestamp_value) > self.webhook_tolerance:
            logger.warning("Stripe webhook timestamp outside tolerance")
            return WebhookResult(success=False, should_process=False)

        payload = body_bytes(body)
        expected = hmac.new(
            config.webhook_key.encode(),
            f"{timestamp}.".encode() + payload,
            hashlib.sha256
        ).hexdigest()

        if not any(hmac.compare_digest(expected, candidate) for candidate in signatures):
            logger.warning("Stripe webhook signature mismatch")
            return WebhookResult(success=False, should_process=False)

        event = body_json(body)
        event_type = event.get("type")
        return WebhookResult(
            success=True,
            should_process=event_type in STRIPE_PROCESSED_EVENTS,
            event_type=event_type,
            event_data=(event.get("data") or {}).get("object"),
            event_id=event.get("id"),
        )

    # Payments

    async def process_charge(self, config: GatewayConfig, donation_data: Dict[str, Any]) -> ChargeResult:
        stored = config.settings or {}
        currency = (donation_data.get("currency") or "usd").lower()

        payload = {
            "amount": to_minor_units(donation_data["amount"]),
            "currency": currency,
            "customer": donation_data.get("customer_id"),
            "payment_method": donation_data.get("payment_method_id"),
            "confirm": True,
            "off_session": donation_data.get("off_session", True),
            "description": donation_data.get("description"),
            "receipt_email": donation_data.get("email"),
            "capture_method": stored.get("captureMethod"),
            "statement_descriptor_suffix": stored.get("statementDescriptor"),
            "metadata": {"church_id": config.church_id, **(donation_data.get("metadata") or {})},
        }
        if stored.get("paymentMethodTypes"):
            payload["payment_method_types"] = stored["paymentMethodTypes"]

        intent = await self._request(config, "POST", "/payment_intents", data=payload)
        logger.info(f"Stripe payment intent {intent['id']} status {intent.get('status')}")

        return ChargeResult(
            success=intent.get("status") in SUCCESSFUL_CHARGE_STATUSES,
            transaction_id=intent["id"],
            data=intent,
        )

    def _price_data(self, config: GatewayConfig, subscription_data: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "currency": (subscription_data.get("currency") or "usd").lower(),
            "product": subscription_data.get("product_id") or config.product_id,
            "unit_amount": to_minor_units(subscription_data["amount"]),
            "recurring": {
                "interval": subscription_data.get("interval", "month"),
                "interval_count": subscription_data.get("interval_count", 1),
            },
        }

    async def create_subscription(self, config: GatewayConfig, subscription_data: Dict[str, Any]) -> SubscriptionResult:
        subscription = await self._request(config, "POST", "/subscriptions", data={
            "customer": subscription_data["customer_id"],
            "items": [{"price_data": self._price_data(config, subscription_data)}],
            "default_payment_method": subscription_data.get("payment_method_id"),
            "metadata": {"church_id": config.church_id, **(subscription_data.get("metadata") or {})},
        })
        logger.info(f"Created Stripe subscription {subscription['id']}")
        return SubscriptionResult(
            success=subscription.get("status") in ACTIVE_SUBSCRIPTION_STATUSES,
            subscription_id=subscription["id"],
            data=subscription,
        )

    async def update_subscription(self, config: GatewayConfig, subscription_data: Dict[str, Any]) -> SubscriptionResult:
        subscription_id = subscription_data["id"]
        payload: Dict[str, Any] = {
            "default_payment_method": subscription_data.get("payment_method_id"),
            "proration_behavior": "none",
        }

        if subscription_data.get("amount") is not None:
            current = await self._request(config, "GET", f"/subscriptions/{subscription_id}")
            items = (current.get("items") or {}).get("data") or []
            item = {"price_data": self._price_data(config, subscription_data)}
            if items:
                item["id"] = items[0]["id"]
            payload["items"] = [item]

        subscription = await self._request(config, "POST", f"/subscriptions/{subscription_id}", data=payload)
        return SubscriptionResult(
            success=subscription.get("status") in ACTIVE_SUBSCRIPTION_STATUSES,
            subscription_id=subscription["id"],
            data=subscription,
        )

    async def cancel_subscription(self, config: GatewayConfig, subscription_id: str, reason: Optional[str] = None) -> None:
        data = {"cancellation_details": {"comment": reason}} if reason else None
        await self._request(config, "DELETE", f"/subscriptions/{subscription_id}", data=data)
        logger.info(f"Cancelled Stripe subscription {subscription_id}")

    async def calculate_fees(self, amount: Decimal, church_id: str, currency: str = "USD") -> Decimal:
        return percent_fee(amount, STRIPE_FEE_PERCENT, STRIPE_FEE_FIXED)

    # Logging

    async def log_event(self, church_id: str, event: Dict[str, Any], event_data: Dict[str, Any], repos: GivingRepos) -> None:
        await repos.save_event_log(church_id, {
            "provider": self.name,
            "provider_id": event.get("id"),
            "event_type": event.get("type"),
            "status": event_data.get("status"),
            "message": (event_data.get("failure_message") or event_data.get("billing_reason") or ""),
            "created": event.get("created"),
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
        amount_minor = event_data.get("amount_paid") or event_data.get("amount_received") or event_data.get("amount") or 0
        payment_details = event_data.get("payment_method_details") or {}
        record = {
            "provider": self.name,
            "gateway_id": config.gateway_id,
            "transaction_id": event_data.get("id"),
            "customer_id": event_data.get("customer"),
            "subscription_id": event_data.get("subscription"),
            "amount": Decimal(amount_minor) / 100,
            "currency": (event_data.get("currency") or "usd").lower(),
            "method": payment_details.get("type", "card"),
            "status": DonationStatus(status).value,
            "metadata": event_data.get("metadata") or {},
        }
        return await repos.save_donation(church_id, record)

    async def update_donation_status(self, church_id: str, transaction_id: str, status: DonationStatus, repos: GivingRepos) -> None:
        await repos.update_donation_status(church_id, transaction_id, DonationStatus(status).value)

    # Products and customers

    async def create_product(self, config: GatewayConfig, church_id: str) -> Optional[str]:
        product = await self._request(config, "POST", "/products", data={
            "name": "Donation",
            "metadata": {"church_id": church_id},
        })
        return product["id"]

    async def create_customer(self, config: GatewayConfig, email: str, name: str) -> str:
        customer = await self._request(config, "POST", "/customers", data={
            "email": email,
            "name": name,
            "metadata": {"church_id": config.church_id},
        })
        return customer["id"]

    async def get_customer_subscriptions(self, config: GatewayConfig, customer_id: str) -> Any:
        result = await self._request(config, "GET", "/subscriptions", params={"customer": customer_id, "status": "all"})
        return result.get("data", [])

    async def get_customer_payment_methods(self, config: GatewayConfig, customer_id: str) -> Any:
        result = await self._request(config, "GET", f"/customers/{customer_id}/payment_methods")
        return result.get("data", [])

    # Payment methods

    async def attach_payment_method(self, config: GatewayConfig, payment_method_id: str, options: Dict[str, Any]) -> Any:
        return await self._request(config, "POST", f"/payment_methods/{payment_method_id}/attach", data={
            "customer": options["customer_id"],
        })

    async def detach_payment_method(self, config: GatewayConfig, payment_method_id: str) -> Any:
        return await self._request(config, "POST", f"/payment_methods/{payment_method_id}/detach")

    async def update_card(self, config: GatewayConfig, payment_method_id: str, card_data: Dict[str, Any]) -> Any:
        return await self._request(config, "POST", f"/payment_methods/{payment_method_id}", data={
            "card": {
                "exp_month": card_data.get("exp_month"),
                "exp_year": card_data.get("exp_year"),
            },
            "billing_details": card_data.get("billing_details"),
        })

    async def create_bank_account(self, config: GatewayConfig, customer_id: str, options: Dict[str, Any]) -> Any:
        return await self._request(config, "POST", f"/customers/{customer_id}/sources", data={
            "source": options["token"],
        })

    async def update_bank(self, config: GatewayConfig, payment_method_id: str, bank_data: Dict[str, Any], customer_id: str) -> Any:
        return await self._request(config, "POST", f"/customers/{customer_id}/sources/{payment_method_id}", data={
            "account_holder_name": bank_data.get("account_holder_name"),
            "account_holder_type": bank_data.get("account_holder_type"),
        })

    async def verify_bank(self, config: GatewayConfig, payment_method_id: str, amount_data: Any, customer_id: str) -> Any:
        return await self._request(config, "POST", f"/customers/{customer_id}/sources/{payment_method_id}/verify", data={
            "amounts": list(amount_data),
        })

    async def delete_bank_account(self, config: GatewayConfig, customer_id: str, bank_account_id: str) -> Any:
        return await self._request(config, "DELETE", f"/customers/{customer_id}/sources/{bank_account_id}")

    async def create_ach_setup_intent(self, config: GatewayConfig, customer_id: str) -> Any:
        """SetupIntent for collecting a bank account through Financial Connections"""
        intent = await self._request(config, "POST", "/setup_intents", data={
            "customer": customer_id,
            "payment_method_types": ["us_bank_account"],
            "payment_method_options": {
                "us_bank_account": {
                    "verification_method": "automatic",
                    "financial_connections": {"permissions": ["payment_method"]},
                },
            },
        })
        return {"id": intent["id"], "client_secret": intent.get("client_secret")}
