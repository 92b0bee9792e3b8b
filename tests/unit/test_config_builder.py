"""
Tests for runtime config building.
"""
import logging

from giving_gateways.services.gateways.config_builder import ConfigBuilder
from tests.utils.factories import GatewayFactory
from tests.utils.mocks import FakeDecryptor


class TestBuildConfig:
    """GatewayConfig from a stored gateway"""

    def test_secrets_decrypted(self, config_builder):
        gateway = GatewayFactory.build(
            id="gw-1",
            church_id="church-1",
            private_key="enc:sk_live_1",
            webhook_key="enc:whsec_1",
            product_id="prod_1",
            environment="production",
        )

        config = config_builder.build_config(gateway)

        assert config.gateway_id == "gw-1"
        assert config.church_id == "church-1"
        assert config.private_key == "sk_live_1"
        assert config.webhook_key == "whsec_1"
        assert config.product_id == "prod_1"
        assert config.environment == "production"
        assert config.merchant_id is None

    def test_undecryptable_secret_becomes_empty(self, config_builder, caplog):
        """A broken secret degrades to an empty string and is never logged."""
        gateway = GatewayFactory.build(private_key="garbage-ciphertext", webhook_key="enc:whsec_ok")

        with caplog.at_level(logging.ERROR):
            config = config_builder.build_config(gateway)

        assert config.private_key == ""
        assert config.webhook_key == "whsec_ok"
        assert "private_key" in caplog.text
        assert "garbage-ciphertext" not in caplog.text

    def test_unexpected_decryptor_error_degrades(self):
        class ExplodingDecryptor:
            def decrypt(self, ciphertext):
                raise RuntimeError("boom")

        config = ConfigBuilder(ExplodingDecryptor()).build_config(GatewayFactory.build())

        assert config.private_key == ""
        assert config.webhook_key == ""

    def test_missing_secrets_skip_decryptor(self):
        decryptor = FakeDecryptor()
        gateway = GatewayFactory.build(private_key=None, webhook_key="")

        config = ConfigBuilder(decryptor).build_config(gateway)

        assert config.private_key == ""
        assert config.webhook_key == ""
        assert decryptor.calls == []

    def test_settings_are_validated(self, config_builder):
        gateway = GatewayFactory.build(settings={"captureMethod": "manual", "junk": 1})

        config = config_builder.build_config(gateway)

        assert config.settings == {"captureMethod": "manual"}

    def test_invalid_settings_dropped(self, config_builder):
        gateway = GatewayFactory.build(settings={"captureMethod": "whenever"})

        assert config_builder.build_config(gateway).settings is None

    def test_secrets_hidden_from_repr(self, config_builder):
        config = config_builder.build_config(GatewayFactory.build(private_key="enc:sk_live_hidden"))

        assert "sk_live_hidden" not in repr(config)


class TestKingdomFundingConfig:
    """KingdomFunding key comes from the environment, stored secret is the merchant id"""

    def test_key_from_environment(self, config_builder):
        gateway = GatewayFactory.build(provider="kingdomfunding", private_key="enc:merchant-42")

        config = config_builder.build_config(gateway)

        assert config.private_key == "kf_env_key"
        assert config.merchant_id == "merchant-42"

    def test_no_stored_secret_means_no_merchant(self, fake_decryptor):
        builder = ConfigBuilder(fake_decryptor, kingdomfunding_key=lambda: None)
        gateway = GatewayFactory.build(provider="KingdomFunding", private_key=None)

        config = builder.build_config(gateway)

        assert config.private_key == ""
        assert config.merchant_id is None
