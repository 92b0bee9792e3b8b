# Models module for giving gateways
from giving_gateways.models.gateway import (
    Gateway, GatewayConfig, GetGatewayOptions, GatewayResolution,
    ResolutionReason, ProviderName, KNOWN_PROVIDERS, DEFAULT_ENVIRONMENT_PREFERENCE
)
from giving_gateways.models.capabilities import ProviderCapabilities
