"""
Gateway service.

One entry point per donation operation. Each call resolves the provider
for the church's gateway, builds the per-call config and delegates. Errors
raised by providers are not wrapped.
"""
import logging
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from giving_gateways.core.encryption import Decryptor
from giving_gateways.core.exceptions import GatewayResolutionError, UnsupportedOperationError, ValidationError
from giving_gateways.core.logging import log_gateway_context
from giving_gateways.models.capabilities import ProviderCapabilities
from giving_gateways.models.gateway import Gateway, GatewayConfig, ResolutionReason
from giving_gateways.services.gateway_repository import GatewayRepository, GatewayRepositoryProtocol
from giving_gateways.services.gateways.base import (
    BaseGatewayProvider, ChargeResult, DonationStatus, GivingRepos, OptionalOperation,
    SubscriptionResult, WebhookEndpoint, WebhookResult,
)
from giving_gateways.services.gateways.capabilities import get_capabilities
from giving_gateways.services.gateways.config_builder import ConfigBuilder
from giving_gateways.services.gateways.registry import ProviderRegistry
from giving_gateways.services.gateways.resolver import GatewayResolver, OptionsLike, coerce_options, describe_failure
from giving_gateways.services.gateways.settings import BaseGatewaySettings, validate_settings

logger = logging.getLogger(__name__)

GatewayLike = Union[Gateway, Mapping[str, Any]]


def _as_gateway(gateway: GatewayLike) -> Gateway:
    if isinstance(gateway, Gateway):
        return gateway
    return Gateway.model_validate(dict(gateway))


class GatewayService:
    """Dispatches donation operations to the provider behind a gateway"""

    def __init__(
        self,
        registry: ProviderRegistry,
        repository: Optional[GatewayRepositoryProtocol] = None,
        decryptor: Optional[Decryptor] = None,
        resolver: Optional[GatewayResolver] = None,
        config_builder: Optional[ConfigBuilder] = None,
    ):
        self.registry = registry
        self.repository = repository
        self.resolver = resolver or GatewayResolver()
        self.config_builder = config_builder or ConfigBuilder(decryptor)

    # Building blocks

    def get_gateway_config(self, gateway: GatewayLike) -> GatewayConfig:
        return self.config_builder.build_config(_as_gateway(gateway))

    def get_provider_from_gateway(self, gateway: GatewayLike) -> BaseGatewayProvider:
        return self.registry.get_provider(_as_gateway(gateway).provider)

    def _dispatch(self, gateway: GatewayLike) -> Tuple[BaseGatewayProvider, GatewayConfig]:
        gateway = _as_gateway(gateway)
        provider = self.registry.get_provider(gateway.provider)
        return provider, self.config_builder.build_config(gateway)

    def _dispatch_optional(
        self,
        gateway: GatewayLike,
        operation: OptionalOperation
    ) -> Tuple[BaseGatewayProvider, GatewayConfig]:
        gateway = _as_gateway(gateway)
        provider = self._require_operation(gateway, operation)
        return provider, self.config_builder.build_config(gateway)

    def _require_operation(self, gateway: Gateway, operation: OptionalOperation) -> BaseGatewayProvider:
        provider = self.registry.get_provider(gateway.provider)
        if not provider.supports(operation):
            raise UnsupportedOperationError(gateway.provider, operation.value)
        return provider

    def supports(self, gateway: GatewayLike, operation: OptionalOperation) -> bool:
        """True when the gateway's provider is registered and offers `operation`"""
        gateway = _as_gateway(gateway)
        if not self.registry.is_available(gateway.provider):
            return False
        return self.registry.get_provider(gateway.provider).supports(operation)

    # Webhooks

    async def create_webhook(self, gateway: GatewayLike, webhook_url: str) -> WebhookEndpoint:
        provider, config = self._dispatch(gateway)
        return await provider.create_webhook_endpoint(config, webhook_url)

    async def delete_webhooks(self, gateway: GatewayLike, church_id: str) -> None:
        provider, config = self._dispatch(gateway)
        await provider.delete_webhooks_by_church_id(config, church_id)

    async def verify_webhook(self, gateway: GatewayLike, headers: Mapping[str, str], body: Any) -> WebhookResult:
        provider, config = self._dispatch(gateway)
        return await provider.verify_webhook_signature(config, headers, body)

    # Payments

    async def process_charge(self, gateway: GatewayLike, donation_data: Dict[str, Any]) -> ChargeResult:
        provider, config = self._dispatch(gateway)
        return await provider.process_charge(config, donation_data)

    async def create_subscription(self, gateway: GatewayLike, subscription_data: Dict[str, Any]) -> SubscriptionResult:
        provider, config = self._dispatch(gateway)
        return await provider.create_subscription(config, subscription_data)

    async def update_subscription(self, gateway: GatewayLike, subscription_data: Dict[str, Any]) -> SubscriptionResult:
        provider, config = self._dispatch(gateway)
        return await provider.update_subscription(config, subscription_data)

    async def cancel_subscription(self, gateway: GatewayLike, subscription_id: str, reason: Optional[str] = None) -> None:
        provider, config = self._dispatch(gateway)
        await provider.cancel_subscription(config, subscription_id, reason)

    async def calculate_fees(
        self,
        gateway: GatewayLike,
        amount: Decimal,
        church_id: str,
        currency: Optional[str] = None
    ) -> Decimal:
        provider = self.get_provider_from_gateway(gateway)
        return await provider.calculate_fees(amount, church_id, currency or "USD")

    # Logging

    async def log_event(
        self,
        gateway: GatewayLike,
        church_id: str,
        event: Dict[str, Any],
        event_data: Dict[str, Any],
        repos: GivingRepos
    ) -> None:
        provider = self.get_provider_from_gateway(gateway)
        await provider.log_event(church_id, event, event_data, repos)

    async def log_donation(
        self,
        gateway: GatewayLike,
        church_id: str,
        event_data: Dict[str, Any],
        repos: GivingRepos,
        status: DonationStatus = DonationStatus.COMPLETE
    ) -> Optional[Dict[str, Any]]:
        provider, config = self._dispatch(gateway)
        return await provider.log_donation(config, church_id, event_data, repos, DonationStatus(status))

    async def update_donation_status(
        self,
        gateway: GatewayLike,
        church_id: str,
        transaction_id: str,
        status: DonationStatus,
        repos: GivingRepos
    ) -> None:
        provider = self._require_operation(_as_gateway(gateway), OptionalOperation.UPDATE_DONATION_STATUS)
        await provider.update_donation_status(church_id, transaction_id, DonationStatus(status), repos)

    # Products and customers

    async def create_product(self, gateway: GatewayLike, church_id: str) -> Optional[str]:
        provider, config = self._dispatch_optional(gateway, OptionalOperation.CREATE_PRODUCT)
        return await provider.create_product(config, church_id)

    async def create_customer(self, gateway: GatewayLike, email: str, name: str) -> str:
        provider, config = self._dispatch_optional(gateway, OptionalOperation.CREATE_CUSTOMER)
        return await provider.create_customer(config, email, name)

    async def get_customer_subscriptions(self, gateway: GatewayLike, customer_id: str) -> Any:
        provider, config = self._dispatch_optional(gateway, OptionalOperation.GET_CUSTOMER_SUBSCRIPTIONS)
        return await provider.get_customer_subscriptions(config, customer_id)

    async def get_customer_payment_methods(self, gateway: GatewayLike, customer_id: str) -> Any:
        provider, config = self._dispatch_optional(gateway, OptionalOperation.GET_CUSTOMER_PAYMENT_METHODS)
        return await provider.get_customer_payment_methods(config, customer_id)

    # Payment methods

    async def attach_payment_method(self, gateway: GatewayLike, payment_method_id: str, options: Dict[str, Any]) -> Any:
        provider, config = self._dispatch_optional(gateway, OptionalOperation.ATTACH_PAYMENT_METHOD)
        return await provider.attach_payment_method(config, payment_method_id, options)

    async def detach_payment_method(self, gateway: GatewayLike, payment_method_id: str) -> Any:
        provider, config = self._dispatch_optional(gateway, OptionalOperation.DETACH_PAYMENT_METHOD)
        return await provider.detach_payment_method(config, payment_method_id)

    async def update_card(self, gateway: GatewayLike, payment_method_id: str, card_data: Dict[str, Any]) -> Any:
        provider, config = self._dispatch_optional(gateway, OptionalOperation.UPDATE_CARD)
        return await provider.update_card(config, payment_method_id, card_data)

    async def create_bank_account(self, gateway: GatewayLike, customer_id: str, options: Dict[str, Any]) -> Any:
        provider, config = self._dispatch_optional(gateway, OptionalOperation.CREATE_BANK_ACCOUNT)
        return await provider.create_bank_account(config, customer_id, options)

    async def update_bank(self, gateway: GatewayLike, payment_method_id: str, bank_data: Dict[str, Any], customer_id: str) -> Any:
        provider, config = self._dispatch_optional(gateway, OptionalOperation.UPDATE_BANK)
        return await provider.update_bank(config, payment_method_id, bank_data, customer_id)

    async def verify_bank(self, gateway: GatewayLike, payment_method_id: str, amount_data: Any, customer_id: str) -> Any:
        provider, config = self._dispatch_optional(gateway, OptionalOperation.VERIFY_BANK)
        return await provider.verify_bank(config, payment_method_id, amount_data, customer_id)

    async def delete_bank_account(self, gateway: GatewayLike, customer_id: str, bank_account_id: str) -> Any:
        provider, config = self._dispatch_optional(gateway, OptionalOperation.DELETE_BANK_ACCOUNT)
        return await provider.delete_bank_account(config, customer_id, bank_account_id)

    async def create_ach_setup_intent(self, gateway: GatewayLike, customer_id: str) -> Any:
        provider, config = self._dispatch_optional(gateway, OptionalOperation.CREATE_ACH_SETUP_INTENT)
        return await provider.create_ach_setup_intent(config, customer_id)

    # Provider specific

    async def generate_client_token(self, gateway: GatewayLike) -> str:
        provider, config = self._dispatch_optional(gateway, OptionalOperation.GENERATE_CLIENT_TOKEN)
        return await provider.generate_client_token(config)

    async def create_order(self, gateway: GatewayLike, order_data: Dict[str, Any]) -> Any:
        provider, config = self._dispatch_optional(gateway, OptionalOperation.CREATE_ORDER)
        return await provider.create_order(config, order_data)

    async def create_subscription_plan(self, gateway: GatewayLike, plan_data: Dict[str, Any]) -> str:
        provider, config = self._dispatch_optional(gateway, OptionalOperation.CREATE_SUBSCRIPTION_PLAN)
        return await provider.create_subscription_plan(config, plan_data)

    async def create_subscription_with_plan(self, gateway: GatewayLike, subscription_data: Dict[str, Any]) -> SubscriptionResult:
        provider, config = self._dispatch_optional(gateway, OptionalOperation.CREATE_SUBSCRIPTION_WITH_PLAN)
        return await provider.create_subscription_with_plan(config, subscription_data)

    # Resolution

    async def load_gateways(self, church_id: str, repository: Optional[GatewayRepositoryProtocol] = None) -> List[Gateway]:
        repo = repository or self.repository or GatewayRepository()
        raw_gateways = await repo.load_all(church_id)

        convert = getattr(repo, "convert_all_to_model", None)
        if callable(convert):
            gateways = convert(church_id, raw_gateways)
        else:
            gateways = raw_gateways

        return [_as_gateway(g) for g in (gateways or [])]

    async def get_gateway_for_church(
        self,
        church_id: str,
        options: OptionsLike = None,
        repository: Optional[GatewayRepositoryProtocol] = None
    ) -> Gateway:
        """
        Load and resolve the most appropriate gateway for a church.

        Raises:
            ValidationError: if church_id is missing
            GatewayResolutionError: when no gateway, or more than one equally
                ranked gateway, matches
        """
        if not church_id:
            raise ValidationError("church_id is required to resolve a payment gateway")

        options = coerce_options(options)
        gateways = await self.load_gateways(church_id, repository)

        if not gateways:
            raise GatewayResolutionError(
                f"No payment gateway configured for church {church_id}.",
                reason=ResolutionReason.NOT_FOUND,
                church_id=church_id
            )

        resolution = self.resolver.resolve(gateways, options)

        if not resolution.resolved:
            message = describe_failure(church_id, resolution.reason, options)
            context = log_gateway_context(church_id=church_id, provider=options.provider)
            context["reason"] = resolution.reason.value
            logger.warning(f"Gateway resolution failed: {message}", extra={"context": context})
            raise GatewayResolutionError(
                message,
                reason=resolution.reason,
                church_id=church_id,
                details={
                    "provider": options.provider,
                    "gateway_id": options.gateway_id,
                }
            )

        selected = resolution.gateway
        validated = self.validate_settings(selected)
        return selected.model_copy(update={"settings": validated.to_stored() if validated else None})

    # Metadata

    @staticmethod
    def get_capabilities(gateway_or_provider: Any) -> Optional[ProviderCapabilities]:
        return get_capabilities(gateway_or_provider)

    @staticmethod
    def validate_settings(gateway: GatewayLike) -> Optional[BaseGatewaySettings]:
        gateway = _as_gateway(gateway)
        return validate_settings(gateway.provider, gateway.settings)
