from pydantic_settings import BaseSettings
from pydantic import Field
from typing import Optional

class Settings(BaseSettings):
    # Database - gateway records and donation logs
    database_url: Optional[str] = Field(default=None, alias='DATABASE_URL')
    db_pool_min_size: int = Field(default=1, alias='DB_POOL_MIN_SIZE')
    db_pool_max_size: int = Field(default=10, alias='DB_POOL_MAX_SIZE')
    db_command_timeout: float = Field(default=60.0, alias='DB_COMMAND_TIMEOUT')

    # Secrets stored on gateway records are encrypted with this passphrase
    gateway_encryption_key: str = Field(
        default='giving-gateways-default-key-CHANGE-IN-PRODUCTION',
        alias='GATEWAY_ENCRYPTION_KEY'
    )

    # Feature flags for optional providers
    enable_square: bool = Field(default=False, alias='ENABLE_SQUARE')
    enable_epaymints: bool = Field(default=False, alias='ENABLE_EPAYMINTS')
    enable_kingdomfunding: bool = Field(default=False, alias='ENABLE_KINGDOMFUNDING')
    enable_custom_providers: bool = Field(default=False, alias='ENABLE_CUSTOM_GATEWAY_PROVIDERS')

    # KingdomFunding - placeholder integration, key comes from the environment
    kingdomfunding_private_key: Optional[str] = Field(default=None, alias='KINGDOMFUNDING_PRIVATE_KEY')

    # Stripe
    stripe_api_base: str = Field(default='https://api.stripe.com/v1', alias='STRIPE_API_BASE')
    stripe_webhook_tolerance: int = Field(default=300, alias='STRIPE_WEBHOOK_TOLERANCE')

    # PayPal
    paypal_api_base: str = Field(default='https://api-m.paypal.com', alias='PAYPAL_API_BASE')
    paypal_sandbox_api_base: str = Field(default='https://api-m.sandbox.paypal.com', alias='PAYPAL_SANDBOX_API_BASE')

    # Outbound HTTP
    http_timeout: float = Field(default=30.0, alias='GATEWAY_HTTP_TIMEOUT')

    # App settings
    debug: bool = Field(default=False, alias='DEBUG')

    class Config:
        env_file = ".env"
        extra = "ignore"

    @property
    def db_pool_params(self) -> dict:
        return {
            "dsn": self.database_url,
            "min_size": self.db_pool_min_size,
            "max_size": self.db_pool_max_size,
            "command_timeout": self.db_command_timeout,
        }

settings = Settings()
