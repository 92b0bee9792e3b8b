# Giving gateways - multi-tenant payment gateway resolution and dispatch
from giving_gateways.services.gateway_service import GatewayService
from giving_gateways.services.gateways.registry import GatewayFeatureFlags, ProviderRegistry

__version__ = "1.0.0"
