# Payment Providers
from giving_gateways.services.gateways.base import (
    BaseGatewayProvider, ChargeResult, DonationStatus, GivingRepos,
    OptionalOperation, SubscriptionResult, WebhookEndpoint, WebhookResult,
)
from giving_gateways.services.gateways.capabilities import (
    PROVIDER_CAPABILITIES, check_amount, check_refund_window, get_capabilities,
)
from giving_gateways.services.gateways.config_builder import ConfigBuilder
from giving_gateways.services.gateways.registry import (
    FEATURE_FLAG_PROVIDERS, MANDATORY_PROVIDERS, GatewayFeatureFlags, ProviderRegistry,
)
from giving_gateways.services.gateways.resolver import GatewayResolver, resolve_gateway
from giving_gateways.services.gateways.settings import BaseGatewaySettings, validate_settings
from giving_gateways.services.gateways.paypal import PayPalGatewayProvider
from giving_gateways.services.gateways.stripe import StripeGatewayProvider
