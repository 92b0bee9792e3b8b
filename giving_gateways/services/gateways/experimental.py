"""
Experimental providers.

Square and ePayMints are registered only behind feature flags. Their
remote integrations are not written yet, so every remote operation raises
ProviderOperationError.
"""
import logging
from decimal import Decimal
from typing import Any, Dict, Mapping, NoReturn, Optional

from giving_gateways.core.exceptions import ProviderOperationError
from giving_gateways.models.gateway import GatewayConfig
from giving_gateways.services.gateways.base import (
    BaseGatewayProvider, ChargeResult, DonationStatus, GivingRepos,
    SubscriptionResult, WebhookEndpoint, WebhookResult,
)

logger = logging.getLogger(__name__)


class ExperimentalGatewayProvider(BaseGatewayProvider):
    """Base for providers whose remote integration is still pending"""

    def _not_implemented(self, operation: str) -> NoReturn:
        logger.warning(f"{self.name} provider called for unimplemented operation {operation}")
        raise ProviderOperationError(
            f"{self.name} provider has not implemented {operation} yet",
            provider=self.name,
            details={"operation": operation}
        )

    async def create_webhook_endpoint(self, config: GatewayConfig, webhook_url: str) -> WebhookEndpoint:
        self._not_implemented("create_webhook_endpoint")

    async def delete_webhooks_by_church_id(self, config: GatewayConfig, church_id: str) -> None:
        self._not_implemented("delete_webhooks_by_church_id")

    async def verify_webhook_signature(self, config: GatewayConfig, headers: Mapping[str, str], body: Any) -> WebhookResult:
        self._not_implemented("verify_webhook_signature")

    async def process_charge(self, config: GatewayConfig, donation_data: Dict[str, Any]) -> ChargeResult:
        self._not_implemented("process_charge")

    async def create_subscription(self, config: GatewayConfig, subscription_data: Dict[str, Any]) -> SubscriptionResult:
        self._not_implemented("create_subscription")

    async def update_subscription(self, config: GatewayConfig, subscription_data: Dict[str, Any]) -> SubscriptionResult:
        self._not_implemented("update_subscription")

    async def cancel_subscription(self, config: GatewayConfig, subscription_id: str, reason: Optional[str] = None) -> None:
        self._not_implemented("cancel_subscription")

    async def calculate_fees(self, amount: Decimal, church_id: str, currency: str = "USD") -> Decimal:
        self._not_implemented("calculate_fees")

    async def log_event(self, church_id: str, event: Dict[str, Any], event_data: Dict[str, Any], repos: GivingRepos) -> None:
        self._not_implemented("log_event")

    async def log_donation(
        self,
        config: GatewayConfig,
        church_id: str,
        event_data: Dict[str, Any],
        repos: GivingRepos,
        status: DonationStatus = DonationStatus.COMPLETE
    ) -> Optional[Dict[str, Any]]:
        self._not_implemented("log_donation")


class SquareGatewayProvider(ExperimentalGatewayProvider):

    @property
    def name(self) -> str:
        return "square"


class EPayMintsGatewayProvider(ExperimentalGatewayProvider):

    @property
    def name(self) -> str:
        return "epaymints"
