from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import Optional, List, Dict, Any, Tuple
from enum import Enum


class ProviderName(str, Enum):
    """Known payment providers"""
    STRIPE = "stripe"
    PAYPAL = "paypal"
    SQUARE = "square"
    EPAYMINTS = "epaymints"
    KINGDOMFUNDING = "kingdomfunding"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, tag: Optional[str]) -> "ProviderName":
        """Map a free-form provider tag to a member, UNKNOWN when not recognised"""
        if not tag:
            return cls.UNKNOWN
        try:
            return cls(str(tag).strip().lower())
        except ValueError:
            return cls.UNKNOWN


KNOWN_PROVIDERS: Tuple[ProviderName, ...] = tuple(
    p for p in ProviderName if p is not ProviderName.UNKNOWN
)

DEFAULT_ENVIRONMENT_PREFERENCE: Tuple[str, ...] = ("production", "live", "sandbox", "test")


class ResolutionReason(str, Enum):
    """Why a gateway could not be resolved"""
    NOT_FOUND = "not-found"
    AMBIGUOUS = "ambiguous"


class GatewayModel(BaseModel):
    """Accepts both snake_case and the camelCase keys of stored records"""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        coerce_numbers_to_str=True,
    )


class Gateway(GatewayModel):
    """A church's stored configuration for one payment provider account"""
    id: str
    church_id: str
    provider: str
    public_key: Optional[str] = None
    private_key: Optional[str] = Field(default=None, repr=False)
    webhook_key: Optional[str] = Field(default=None, repr=False)
    merchant_id: Optional[str] = None
    product_id: Optional[str] = None
    settings: Optional[Dict[str, Any]] = None
    environment: Optional[str] = None


class GatewayConfig(GatewayModel):
    """
    Runtime credentials for exactly one provider call.

    Built from a Gateway with its secrets decrypted. Never persisted,
    cached or logged.
    """
    gateway_id: str
    church_id: str
    public_key: Optional[str] = None
    private_key: str = Field(default="", repr=False)
    merchant_id: Optional[str] = Field(default=None, repr=False)
    webhook_key: str = Field(default="", repr=False)
    product_id: Optional[str] = None
    settings: Optional[Dict[str, Any]] = None
    environment: Optional[str] = None


class GetGatewayOptions(GatewayModel):
    """Filters used to pick a gateway for a church"""
    gateway_id: Optional[str] = None
    provider: Optional[str] = None
    environment_preference: Optional[List[str]] = None


class GatewayResolution(BaseModel):
    """Either the picked gateway or the reason none was picked"""
    gateway: Optional[Gateway] = None
    reason: Optional[ResolutionReason] = None

    @property
    def resolved(self) -> bool:
        return self.gateway is not None
