"""
Provider registry.

A name -> provider table built once at startup and handed to the gateway
service. Stripe and PayPal are always registered. Square, ePayMints and
KingdomFunding are added or removed as their feature flags change. Custom
providers can be registered when ENABLE_CUSTOM_GATEWAY_PROVIDERS is on.

All reads and writes go through one lock.
"""
import logging
import threading
from typing import Any, Callable, Dict, List, Mapping, Optional, Set, Tuple, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from giving_gateways.config import Settings, settings as default_settings
from giving_gateways.core.exceptions import ProviderLookupError, ProviderRegistrationError
from giving_gateways.services.gateways.base import BaseGatewayProvider
from giving_gateways.services.gateways.experimental import EPayMintsGatewayProvider, SquareGatewayProvider
from giving_gateways.services.gateways.kingdomfunding import KingdomFundingGatewayProvider
from giving_gateways.services.gateways.paypal import PayPalGatewayProvider
from giving_gateways.services.gateways.stripe import StripeGatewayProvider

logger = logging.getLogger(__name__)

ProviderFactory = Callable[[], BaseGatewayProvider]

MANDATORY_PROVIDERS: Dict[str, ProviderFactory] = {
    "stripe": StripeGatewayProvider,
    "paypal": PayPalGatewayProvider,
}

# provider name -> (feature flag, factory)
FEATURE_FLAG_PROVIDERS: Dict[str, Tuple[str, ProviderFactory]] = {
    "square": ("enable_square", SquareGatewayProvider),
    "epaymints": ("enable_epaymints", EPayMintsGatewayProvider),
    "kingdomfunding": ("enable_kingdomfunding", KingdomFundingGatewayProvider),
}


class GatewayFeatureFlags(BaseModel):
    """Switches for optional providers"""
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    enable_square: bool = Field(default=False, validation_alias=AliasChoices("enable_square", "enableSquare"))
    enable_epaymints: bool = Field(
        default=False, validation_alias=AliasChoices("enable_epaymints", "enableEPayMints")
    )
    enable_kingdomfunding: bool = Field(
        default=False, validation_alias=AliasChoices("enable_kingdomfunding", "enableKingdomFunding")
    )
    enable_custom_providers: bool = Field(
        default=False, validation_alias=AliasChoices("enable_custom_providers", "enableCustomProviders")
    )

    @classmethod
    def from_settings(cls, source: Settings) -> "GatewayFeatureFlags":
        return cls(
            enable_square=source.enable_square,
            enable_epaymints=source.enable_epaymints,
            enable_kingdomfunding=source.enable_kingdomfunding,
            enable_custom_providers=source.enable_custom_providers,
        )


FlagsLike = Union[GatewayFeatureFlags, Mapping[str, Any]]


def _normalize(name: str) -> str:
    return (name or "").strip().lower()


class ProviderRegistry:
    """Thread-safe name -> provider table"""

    def __init__(
        self,
        flags: Optional[FlagsLike] = None,
        mandatory: Optional[Mapping[str, ProviderFactory]] = None,
        feature_providers: Optional[Mapping[str, Tuple[str, ProviderFactory]]] = None,
    ):
        self._lock = threading.Lock()
        self._providers: Dict[str, BaseGatewayProvider] = {}
        self._feature_keys: Set[str] = set()
        self._flags = GatewayFeatureFlags()
        self._mandatory = {_normalize(k): v for k, v in (mandatory or MANDATORY_PROVIDERS).items()}
        self._feature_providers = {
            _normalize(k): v for k, v in (feature_providers or FEATURE_FLAG_PROVIDERS).items()
        }

        for name, factory in self._mandatory.items():
            self._providers[name] = factory()

        with self._lock:
            self._merge_flags(flags)
            self._sync_feature_flag_providers()

    @classmethod
    def from_settings(cls, source: Optional[Settings] = None) -> "ProviderRegistry":
        """Build the registry with flags read from the environment"""
        return cls(flags=GatewayFeatureFlags.from_settings(source or default_settings))

    @property
    def mandatory_providers(self) -> List[str]:
        return list(self._mandatory)

    def set_feature_flags(self, flags: FlagsLike) -> None:
        """Merge the given flags into the current ones and re-sync providers"""
        with self._lock:
            self._merge_flags(flags)
            self._sync_feature_flag_providers()

    def get_feature_flags(self) -> GatewayFeatureFlags:
        with self._lock:
            return self._flags.model_copy()

    def get_provider(self, name: str) -> BaseGatewayProvider:
        """
        Get a provider instance by name (case-insensitive).

        Raises:
            ProviderLookupError: if the provider is not registered
        """
        with self._lock:
            provider = self._providers.get(_normalize(name))
            available = list(self._providers)
        if provider is None:
            raise ProviderLookupError(name, available)
        return provider

    def is_available(self, name: str) -> bool:
        with self._lock:
            return _normalize(name) in self._providers

    def get_supported_providers(self) -> List[str]:
        with self._lock:
            return list(self._providers)

    def register_provider(self, name: str, provider: BaseGatewayProvider) -> None:
        """
        Register a provider under `name`.

        Only the mandatory providers may be replaced unless custom providers
        are enabled.
        """
        key = _normalize(name)
        if not key:
            raise ProviderRegistrationError("Provider name is required")

        with self._lock:
            if not self._flags.enable_custom_providers and key not in self._mandatory:
                raise ProviderRegistrationError(
                    "Custom gateway providers are disabled. "
                    "Enable via ENABLE_CUSTOM_GATEWAY_PROVIDERS environment variable.",
                    {"provider": key}
                )
            self._providers[key] = provider
            self._feature_keys.discard(key)

        logger.info(f"Registered payment provider: {key}")

    def unregister_provider(self, name: str) -> bool:
        """Remove a provider. Mandatory providers are never removed."""
        key = _normalize(name)
        if key in self._mandatory:
            logger.warning(f"Cannot unregister core provider: {name}")
            return False

        with self._lock:
            self._feature_keys.discard(key)
            removed = self._providers.pop(key, None) is not None

        if removed:
            logger.info(f"Unregistered payment provider: {key}")
        return removed

    # Callers must hold self._lock

    def _merge_flags(self, flags: Optional[FlagsLike]) -> None:
        if flags is None:
            return
        if isinstance(flags, GatewayFeatureFlags):
            update = flags.model_dump(exclude_unset=True)
        else:
            update = GatewayFeatureFlags.model_validate(dict(flags)).model_dump(exclude_unset=True)
        self._flags = self._flags.model_copy(update=update)

    def _sync_feature_flag_providers(self) -> None:
        for name, (flag, factory) in self._feature_providers.items():
            self._toggle_provider(name, getattr(self._flags, flag, False), factory)

    def _toggle_provider(self, name: str, enabled: bool, factory: ProviderFactory) -> None:
        registered = name in self._providers

        if enabled:
            if not registered:
                self._providers[name] = factory()
                self._feature_keys.add(name)
                logger.info(f"Enabled payment provider: {name}")
            return

        if registered and name in self._feature_keys:
            del self._providers[name]
            self._feature_keys.discard(name)
            logger.info(f"Disabled payment provider: {name}")
