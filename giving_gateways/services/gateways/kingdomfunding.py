"""
KingdomFunding placeholder provider.

Lets a church configure a KingdomFunding gateway (webhook setup and
product creation succeed as no-ops) while charges and subscriptions are
still unavailable. Its private key comes from KINGDOMFUNDING_PRIVATE_KEY;
the secret stored on the gateway is the merchant id.
"""
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional

from giving_gateways.models.gateway import GatewayConfig
from giving_gateways.services.gateways.base import (
    GivingRepos, OptionalOperation, WebhookEndpoint, WebhookResult,
)
from giving_gateways.services.gateways.experimental import ExperimentalGatewayProvider


class KingdomFundingGatewayProvider(ExperimentalGatewayProvider):

    optional_operations = frozenset({OptionalOperation.CREATE_PRODUCT})

    @property
    def name(self) -> str:
        return "kingdomfunding"

    async def create_webhook_endpoint(self, config: GatewayConfig, webhook_url: str) -> WebhookEndpoint:
        return WebhookEndpoint(id="kingdomfunding-webhook-placeholder")

    async def delete_webhooks_by_church_id(self, config: GatewayConfig, church_id: str) -> None:
        return None

    async def verify_webhook_signature(self, config: GatewayConfig, headers: Mapping[str, str], body: Any) -> WebhookResult:
        # Nothing is accepted for processing yet
        return WebhookResult(success=True, should_process=False)

    async def calculate_fees(self, amount: Decimal, church_id: str, currency: str = "USD") -> Decimal:
        return Decimal("0.00")

    async def log_event(self, church_id: str, event: Dict[str, Any], event_data: Dict[str, Any], repos: GivingRepos) -> None:
        return None

    async def create_product(self, config: GatewayConfig, church_id: str) -> Optional[str]:
        return None
