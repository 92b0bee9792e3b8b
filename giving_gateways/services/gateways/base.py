"""
Base Payment Provider Interface

All payment providers must implement this interface so the gateway
service can dispatch donation operations without knowing which
processor sits behind a church's gateway.
"""
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Dict, Any, FrozenSet, Mapping, Protocol
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum

from giving_gateways.core.exceptions import UnsupportedOperationError
from giving_gateways.models.gateway import GatewayConfig


class DonationStatus(str, Enum):
    """Donation lifecycle states"""
    PENDING = "pending"
    COMPLETE = "complete"
    FAILED = "failed"


class OptionalOperation(str, Enum):
    """Operations a provider may offer on top of the mandatory contract"""
    CREATE_PRODUCT = "create_product"
    CREATE_CUSTOMER = "create_customer"
    GET_CUSTOMER_SUBSCRIPTIONS = "get_customer_subscriptions"
    GET_CUSTOMER_PAYMENT_METHODS = "get_customer_payment_methods"
    ATTACH_PAYMENT_METHOD = "attach_payment_method"
    DETACH_PAYMENT_METHOD = "detach_payment_method"
    UPDATE_CARD = "update_card"
    CREATE_BANK_ACCOUNT = "create_bank_account"
    UPDATE_BANK = "update_bank"
    VERIFY_BANK = "verify_bank"
    DELETE_BANK_ACCOUNT = "delete_bank_account"
    CREATE_ACH_SETUP_INTENT = "create_ach_setup_intent"
    GENERATE_CLIENT_TOKEN = "generate_client_token"
    CREATE_ORDER = "create_order"
    CREATE_SUBSCRIPTION_PLAN = "create_subscription_plan"
    CREATE_SUBSCRIPTION_WITH_PLAN = "create_subscription_with_plan"
    UPDATE_DONATION_STATUS = "update_donation_status"


@dataclass
class WebhookEndpoint:
    """Webhook endpoint registered with a provider"""
    id: str
    secret: Optional[str] = None


@dataclass
class WebhookResult:
    """Result of verifying an incoming webhook"""
    success: bool
    should_process: bool
    event_type: Optional[str] = None
    event_data: Optional[Dict[str, Any]] = None
    event_id: Optional[str] = None


@dataclass
class ChargeResult:
    """Result of a one-time charge"""
    success: bool
    transaction_id: str
    data: Optional[Dict[str, Any]] = None


@dataclass
class SubscriptionResult:
    """Result of creating or changing a recurring donation"""
    success: bool
    subscription_id: str
    data: Optional[Dict[str, Any]] = None


class GivingRepos(Protocol):
    """Persistence used by providers to record webhook events and donations"""

    async def save_event_log(self, church_id: str, record: Dict[str, Any]) -> None:
        ...

    async def save_donation(self, church_id: str, record: Dict[str, Any]) -> Dict[str, Any]:
        ...

    async def update_donation_status(self, church_id: str, transaction_id: str, status: str) -> None:
        ...


def percent_fee(amount: Decimal, percent: Decimal, fixed: Decimal) -> Decimal:
    """Fee of `percent`% plus a fixed amount, rounded half-up to cents"""
    fee = Decimal(str(amount)) * percent / Decimal("100") + fixed
    return fee.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def to_minor_units(amount: Any) -> int:
    """12.34 -> 1234"""
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def header_value(headers: Mapping[str, str], name: str) -> Optional[str]:
    """Case-insensitive header lookup that works on plain dicts"""
    if not headers:
        return None
    value = headers.get(name)
    if value is not None:
        return value
    lowered = name.lower()
    for key, candidate in headers.items():
        if key.lower() == lowered:
            return candidate
    return None


def body_bytes(body: Any) -> bytes:
    if body is None:
        return b""
    if isinstance(body, bytes):
        return body
    if isinstance(body, str):
        return body.encode()
    return json.dumps(body, separators=(",", ":")).encode()


def body_json(body: Any) -> Dict[str, Any]:
    if isinstance(body, dict):
        return body
    raw = body_bytes(body)
    return json.loads(raw) if raw else {}


def response_json(response: Any) -> Optional[Dict[str, Any]]:
    """
    Parsed JSON object of a provider response, {} for an empty body.

    None when the body is not a JSON object (an HTML error page from a
    proxy, for example).
    """
    if not response.content:
        return {}
    try:
        data = response.json()
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


class BaseGatewayProvider(ABC):
    """
    Abstract base class for payment providers.

    Mandatory operations are abstract. Optional operations are listed in
    `optional_operations`; the gateway service checks that set before
    calling one, so a provider only overrides what it declares.
    """

    optional_operations: FrozenSet[OptionalOperation] = frozenset()

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider identifier (e.g., 'stripe', 'paypal')"""
        pass

    def supports(self, operation: OptionalOperation) -> bool:
        return OptionalOperation(operation) in self.optional_operations

    # Webhook management

    @abstractmethod
    async def create_webhook_endpoint(self, config: GatewayConfig, webhook_url: str) -> WebhookEndpoint:
        """Register `webhook_url` with the provider for this church's account"""
        pass

    @abstractmethod
    async def delete_webhooks_by_church_id(self, config: GatewayConfig, church_id: str) -> None:
        """Remove every webhook endpoint previously registered for a church"""
        pass

    @abstractmethod
    async def verify_webhook_signature(
        self,
        config: GatewayConfig,
        headers: Mapping[str, str],
        body: Any
    ) -> WebhookResult:
        """
        Verify an incoming webhook.

        Args:
            config: Gateway credentials, `webhook_key` holds the signing secret
            headers: Request headers
            body: Raw request body (bytes or str) or already parsed payload

        Returns:
            WebhookResult telling whether the event is authentic and relevant
        """
        pass

    # Payment processing

    @abstractmethod
    async def process_charge(self, config: GatewayConfig, donation_data: Dict[str, Any]) -> ChargeResult:
        pass

    @abstractmethod
    async def create_subscription(self, config: GatewayConfig, subscription_data: Dict[str, Any]) -> SubscriptionResult:
        pass

    @abstractmethod
    async def update_subscription(self, config: GatewayConfig, subscription_data: Dict[str, Any]) -> SubscriptionResult:
        pass

    @abstractmethod
    async def cancel_subscription(self, config: GatewayConfig, subscription_id: str, reason: Optional[str] = None) -> None:
        pass

    @abstractmethod
    async def calculate_fees(self, amount: Decimal, church_id: str, currency: str = "USD") -> Decimal:
        """Processing fee the provider takes on `amount` (major currency units)"""
        pass

    # Event logging

    @abstractmethod
    async def log_event(self, church_id: str, event: Dict[str, Any], event_data: Dict[str, Any], repos: GivingRepos) -> None:
        pass

    @abstractmethod
    async def log_donation(
        self,
        config: GatewayConfig,
        church_id: str,
        event_data: Dict[str, Any],
        repos: GivingRepos,
        status: DonationStatus = DonationStatus.COMPLETE
    ) -> Optional[Dict[str, Any]]:
        pass

    # Optional operations. Providers override the ones listed in
    # optional_operations; the rest raise UnsupportedOperationError.

    async def create_product(self, config: GatewayConfig, church_id: str) -> Optional[str]:
        raise UnsupportedOperationError(self.name, OptionalOperation.CREATE_PRODUCT.value)

    async def create_customer(self, config: GatewayConfig, email: str, name: str) -> str:
        raise UnsupportedOperationError(self.name, OptionalOperation.CREATE_CUSTOMER.value)

    async def get_customer_subscriptions(self, config: GatewayConfig, customer_id: str) -> Any:
        raise UnsupportedOperationError(self.name, OptionalOperation.GET_CUSTOMER_SUBSCRIPTIONS.value)

    async def get_customer_payment_methods(self, config: GatewayConfig, customer_id: str) -> Any:
        raise UnsupportedOperationError(self.name, OptionalOperation.GET_CUSTOMER_PAYMENT_METHODS.value)

    async def attach_payment_method(self, config: GatewayConfig, payment_method_id: str, options: Dict[str, Any]) -> Any:
        raise UnsupportedOperationError(self.name, OptionalOperation.ATTACH_PAYMENT_METHOD.value)

    async def detach_payment_method(self, config: GatewayConfig, payment_method_id: str) -> Any:
        raise UnsupportedOperationError(self.name, OptionalOperation.DETACH_PAYMENT_METHOD.value)

    async def update_card(self, config: GatewayConfig, payment_method_id: str, card_data: Dict[str, Any]) -> Any:
        raise UnsupportedOperationError(self.name, OptionalOperation.UPDATE_CARD.value)

    async def create_bank_account(self, config: GatewayConfig, customer_id: str, options: Dict[str, Any]) -> Any:
        raise UnsupportedOperationError(self.name, OptionalOperation.CREATE_BANK_ACCOUNT.value)

    async def update_bank(self, config: GatewayConfig, payment_method_id: str, bank_data: Dict[str, Any], customer_id: str) -> Any:
        raise UnsupportedOperationError(self.name, OptionalOperation.UPDATE_BANK.value)

    async def verify_bank(self, config: GatewayConfig, payment_method_id: str, amount_data: Any, customer_id: str) -> Any:
        raise UnsupportedOperationError(self.name, OptionalOperation.VERIFY_BANK.value)

    async def delete_bank_account(self, config: GatewayConfig, customer_id: str, bank_account_id: str) -> Any:
        raise UnsupportedOperationError(self.name, OptionalOperation.DELETE_BANK_ACCOUNT.value)

    async def create_ach_setup_intent(self, config: GatewayConfig, customer_id: str) -> Any:
        raise UnsupportedOperationError(self.name, OptionalOperation.CREATE_ACH_SETUP_INTENT.value)

    async def generate_client_token(self, config: GatewayConfig) -> str:
        raise UnsupportedOperationError(self.name, OptionalOperation.GENERATE_CLIENT_TOKEN.value)

    async def create_order(self, config: GatewayConfig, order_data: Dict[str, Any]) -> Any:
        raise UnsupportedOperationError(self.name, OptionalOperation.CREATE_ORDER.value)

    async def create_subscription_plan(self, config: GatewayConfig, plan_data: Dict[str, Any]) -> str:
        raise UnsupportedOperationError(self.name, OptionalOperation.CREATE_SUBSCRIPTION_PLAN.value)

    async def create_subscription_with_plan(self, config: GatewayConfig, subscription_data: Dict[str, Any]) -> SubscriptionResult:
        raise UnsupportedOperationError(self.name, OptionalOperation.CREATE_SUBSCRIPTION_WITH_PLAN.value)

    async def update_donation_status(self, church_id: str, transaction_id: str, status: DonationStatus, repos: GivingRepos) -> None:
        raise UnsupportedOperationError(self.name, OptionalOperation.UPDATE_DONATION_STATUS.value)
