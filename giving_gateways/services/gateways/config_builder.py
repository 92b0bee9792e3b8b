import logging
from typing import Callable, Optional

from giving_gateways.config import settings
from giving_gateways.core.encryption import Decryptor, FernetDecryptor
from giving_gateways.core.logging import log_gateway_context
from giving_gateways.models.gateway import Gateway, GatewayConfig, ProviderName
from giving_gateways.services.gateways.settings import validate_settings

logger = logging.getLogger(__name__)


def _kingdomfunding_private_key() -> str:
    return settings.kingdomfunding_private_key or ""


class ConfigBuilder:
    """Turns a stored gateway into the runtime config for a single call"""

    def __init__(
        self,
        decryptor: Optional[Decryptor] = None,
        kingdomfunding_key: Callable[[], str] = _kingdomfunding_private_key,
    ):
        self.decryptor = decryptor or FernetDecryptor()
        self.kingdomfunding_key = kingdomfunding_key

    def _decrypt_if_present(self, gateway: Gateway, value: Optional[str], field: str) -> str:
        if not value:
            return ""
        try:
            return self.decryptor.decrypt(value)
        except Exception as e:
            # Degrades to an empty secret, never propagates
            context = log_gateway_context(gateway)
            context["field"] = field
            logger.error(
                f"Failed to decrypt gateway secret {field} for {gateway.provider} gateway {gateway.id}: "
                f"{e.__class__.__name__}",
                extra={"context": context}
            )
            return ""

    def build_config(self, gateway: Gateway) -> GatewayConfig:
        decrypted_secret = self._decrypt_if_present(gateway, gateway.private_key, "private_key")
        webhook_key = self._decrypt_if_present(gateway, gateway.webhook_key, "webhook_key")

        validated = validate_settings(gateway.provider, gateway.settings)

        if ProviderName.parse(gateway.provider) is ProviderName.KINGDOMFUNDING:
            private_key = self.kingdomfunding_key() or ""
            merchant_id = decrypted_secret or None
        else:
            private_key = decrypted_secret
            merchant_id = None

        return GatewayConfig(
            gateway_id=gateway.id,
            church_id=gateway.church_id,
            public_key=gateway.public_key,
            private_key=private_key,
            merchant_id=merchant_id,
            webhook_key=webhook_key,
            product_id=gateway.product_id,
            settings=validated.to_stored() if validated else None,
            environment=gateway.environment,
        )
