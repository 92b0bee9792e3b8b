"""
Provider-specific gateway settings.

The settings blob stored on a gateway record is opaque. Each provider has
its own closed field set; validation narrows the blob to that shape and
drops everything else. This is structural only, nothing is checked
against the remote provider.
"""
import logging
from typing import Any, Dict, List, Literal, Mapping, Optional, Type

from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from giving_gateways.models.gateway import KNOWN_PROVIDERS, ProviderName

logger = logging.getLogger(__name__)


class BaseGatewaySettings(BaseModel):
    """Settings shared by every provider"""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )

    webhook_enabled: Optional[bool] = None
    test_mode: Optional[bool] = None
    custom_fees_enabled: Optional[bool] = None
    auto_capture: Optional[bool] = None

    def to_stored(self) -> Dict[str, Any]:
        """Narrowed settings in the stored (camelCase) form"""
        return self.model_dump(by_alias=True, exclude_none=True)


class StripeSettings(BaseGatewaySettings):
    statement_descriptor: Optional[str] = None
    payment_method_types: Optional[List[str]] = None
    connect_account_id: Optional[str] = None
    application_fee_percent: Optional[float] = None
    capture_method: Optional[Literal["automatic", "manual"]] = None
    setup_future_usage: Optional[Literal["on_session", "off_session"]] = None


class PayPalSettings(BaseGatewaySettings):
    brand_name: Optional[str] = None
    landing_page: Optional[Literal["LOGIN", "BILLING", "NO_PREFERENCE"]] = None
    user_action: Optional[Literal["CONTINUE", "PAY_NOW"]] = None
    shipping_preference: Optional[Literal["GET_FROM_FILE", "NO_SHIPPING", "SET_PROVIDED_ADDRESS"]] = None
    return_url: Optional[str] = None
    cancel_url: Optional[str] = None
    experience_profile_id: Optional[str] = None


class SquareSettings(BaseGatewaySettings):
    location_id: Optional[str] = None
    application_id: Optional[str] = None
    customer_id: Optional[str] = None
    reference_id: Optional[str] = None
    note: Optional[str] = None
    tip_money: Optional[float] = None


class EPayMintsSettings(BaseGatewaySettings):
    merchant_id: Optional[str] = None
    terminal_id: Optional[str] = None
    processor_id: Optional[str] = None
    industry_type: Optional[str] = None
    mcc: Optional[str] = None
    pos_entry_mode: Optional[str] = None


class KingdomFundingSettings(BaseGatewaySettings):
    pass


SETTINGS_MODELS: Dict[ProviderName, Type[BaseGatewaySettings]] = {
    ProviderName.STRIPE: StripeSettings,
    ProviderName.PAYPAL: PayPalSettings,
    ProviderName.SQUARE: SquareSettings,
    ProviderName.EPAYMINTS: EPayMintsSettings,
    ProviderName.KINGDOMFUNDING: KingdomFundingSettings,
}

_missing = set(KNOWN_PROVIDERS) - set(SETTINGS_MODELS)
if _missing:
    raise RuntimeError(f"No settings model for providers: {sorted(p.value for p in _missing)}")


def get_settings_model(provider: str) -> Optional[Type[BaseGatewaySettings]]:
    return SETTINGS_MODELS.get(ProviderName.parse(provider))


def validate_settings(provider: str, settings: Optional[Mapping[str, Any]]) -> Optional[BaseGatewaySettings]:
    """
    Narrow a stored settings blob to the provider's settings model.

    Returns:
        The provider's settings model, or None when the blob is absent, the
        provider is unknown, or the blob does not fit the provider's shape
    """
    if not settings:
        return None

    model = get_settings_model(provider)
    if model is None:
        return None

    if not isinstance(settings, Mapping):
        logger.warning(f"Ignoring non-mapping settings for {provider}")
        return None

    try:
        return model.model_validate(dict(settings))
    except PydanticValidationError as e:
        fields = sorted({".".join(str(part) for part in err["loc"]) for err in e.errors()})
        logger.warning(f"Invalid {provider} gateway settings, fields: {', '.join(fields)}")
        return None
