"""
Tests for the gateway service (resolution + dispatch).
"""
from decimal import Decimal

import pytest

from giving_gateways.core.exceptions import (
    GatewayResolutionError, ProviderLookupError, UnsupportedOperationError, ValidationError,
)
from giving_gateways.models.gateway import GatewayConfig
from giving_gateways.services.gateway_service import GatewayService
from giving_gateways.services.gateways.base import DonationStatus, OptionalOperation
from tests.utils.factories import DonationFactory, GatewayFactory
from tests.utils.mocks import FakeGivingRepos, RecordingProvider


class TestGetGatewayForChurch:
    """Load, resolve and narrow a church's gateway"""

    @pytest.mark.asyncio
    async def test_resolves_by_provider(self, service, make_repository, church_id):
        repository = make_repository([
            GatewayFactory.create(id="a", provider="stripe", environment="production"),
            GatewayFactory.create(id="b", provider="stripe", environment="sandbox"),
        ])

        gateway = await service.get_gateway_for_church(church_id, {"provider": "stripe"}, repository)

        assert gateway.id == "a"
        assert repository.loaded_for == [church_id]

    @pytest.mark.asyncio
    async def test_settings_replaced_by_validated_form(self, service, make_repository, church_id):
        repository = make_repository([
            GatewayFactory.create(id="a", settings={"captureMethod": "manual", "legacyFlag": True}),
        ])

        gateway = await service.get_gateway_for_church(church_id, repository=repository)

        assert gateway.settings == {"captureMethod": "manual"}

    @pytest.mark.asyncio
    async def test_invalid_settings_become_none(self, service, make_repository, church_id):
        repository = make_repository([
            GatewayFactory.create(id="a", settings={"captureMethod": "eventually"}),
        ])

        gateway = await service.get_gateway_for_church(church_id, repository=repository)

        assert gateway.settings is None

    @pytest.mark.asyncio
    async def test_no_gateways(self, service, make_repository, church_id):
        with pytest.raises(GatewayResolutionError) as exc_info:
            await service.get_gateway_for_church(church_id, repository=make_repository([]))

        assert exc_info.value.reason == "not-found"
        assert exc_info.value.message == f"No payment gateway configured for church {church_id}."

    @pytest.mark.asyncio
    async def test_ambiguous_names_provider_and_church(self, service, make_repository, church_id):
        repository = make_repository([
            GatewayFactory.create(id="a", provider="stripe", environment="production"),
            GatewayFactory.create(id="b", provider="stripe", environment="production"),
        ])

        with pytest.raises(GatewayResolutionError) as exc_info:
            await service.get_gateway_for_church(church_id, {"provider": "stripe"}, repository)

        assert exc_info.value.status_code == 409
        assert "Multiple stripe payment gateways" in exc_info.value.message
        assert church_id in exc_info.value.message
        assert exc_info.value.details["provider"] == "stripe"

    @pytest.mark.asyncio
    async def test_unknown_gateway_id(self, service, make_repository, church_id):
        repository = make_repository([GatewayFactory.create(id="a")])

        with pytest.raises(GatewayResolutionError) as exc_info:
            await service.get_gateway_for_church(church_id, {"gatewayId": "zzz"}, repository)

        assert exc_info.value.message == f"Gateway zzz is not configured for church {church_id}."
        assert exc_info.value.details["gateway_id"] == "zzz"

    @pytest.mark.asyncio
    async def test_church_id_required(self, service, make_repository):
        with pytest.raises(ValidationError):
            await service.get_gateway_for_church("", repository=make_repository([]))

    @pytest.mark.asyncio
    async def test_repository_conversion_used_when_present(self, service, church_id):
        class ConvertingRepository:
            async def load_all(self, church_id):
                return [{"raw": True}]

            def convert_all_to_model(self, church_id, rows):
                return [GatewayFactory.build(id="converted", church_id=church_id)]

        gateway = await service.get_gateway_for_church(church_id, repository=ConvertingRepository())

        assert gateway.id == "converted"

    @pytest.mark.asyncio
    async def test_default_repository_from_constructor(self, custom_registry, config_builder, make_repository, church_id):
        repository = make_repository([GatewayFactory.create(id="only", provider="paypal")])
        service = GatewayService(custom_registry, repository=repository, config_builder=config_builder)

        gateway = await service.get_gateway_for_church(church_id)

        assert gateway.id == "only"


class TestDispatch:
    """Mandatory operations go to the gateway's provider with a fresh config"""

    @pytest.mark.asyncio
    async def test_process_charge_receives_decrypted_config(self, service, recording_gateway, recording_provider):
        donation = DonationFactory.create()

        result = await service.process_charge(recording_gateway, donation)

        assert result.success
        assert recording_provider.operations() == ["process_charge"]
        config = recording_provider.last_config()
        assert isinstance(config, GatewayConfig)
        assert config.private_key == "sk_live_abc"
        assert config.webhook_key == "whsec_abc"
        assert config.gateway_id == "gw-recording"

    @pytest.mark.asyncio
    async def test_accepts_stored_mapping(self, service, recording_provider, church_id):
        stored = GatewayFactory.create(provider="recording", church_id=church_id)

        endpoint = await service.create_webhook(stored, "https://example.org/webhooks/stripe")

        assert endpoint.id == "we_1"
        assert recording_provider.calls[0][1][1] == "https://example.org/webhooks/stripe"

    @pytest.mark.asyncio
    async def test_config_built_per_call(self, service, recording_gateway, recording_provider):
        await service.cancel_subscription(recording_gateway, "sub_1", "moved churches")
        await service.cancel_subscription(recording_gateway, "sub_2")

        first, second = recording_provider.calls
        assert first[1][0] is not second[1][0]
        assert first[1][1:] == ("sub_1", "moved churches")
        assert second[1][1:] == ("sub_2", None)

    @pytest.mark.asyncio
    async def test_subscription_operations(self, service, recording_gateway, recording_provider):
        created = await service.create_subscription(recording_gateway, {"amount": "10.00"})
        updated = await service.update_subscription(recording_gateway, {"id": "sub_9"})

        assert created.subscription_id == "sub_1"
        assert updated.subscription_id == "sub_9"
        assert recording_provider.operations() == ["create_subscription", "update_subscription"]

    @pytest.mark.asyncio
    async def test_webhook_operations(self, service, recording_gateway, recording_provider, church_id):
        await service.delete_webhooks(recording_gateway, church_id)
        result = await service.verify_webhook(recording_gateway, {"x": "1"}, b"{}")

        assert result.should_process
        assert recording_provider.operations() == ["delete_webhooks_by_church_id", "verify_webhook_signature"]

    @pytest.mark.asyncio
    async def test_calculate_fees_defaults_currency(self, service, recording_gateway, recording_provider, church_id):
        fee = await service.calculate_fees(recording_gateway, Decimal("100"), church_id)

        assert fee == Decimal("1.00")
        assert recording_provider.calls[0] == ("calculate_fees", (Decimal("100"), church_id, "USD"))

    @pytest.mark.asyncio
    async def test_logging_operations(self, service, recording_gateway, recording_provider, giving_repos, church_id):
        await service.log_event(recording_gateway, church_id, {"id": "evt_1"}, {}, giving_repos)
        result = await service.log_donation(recording_gateway, church_id, {}, giving_repos, "failed")

        assert result == {"status": "failed"}
        assert recording_provider.calls[1][1][-1] is DonationStatus.FAILED

    @pytest.mark.asyncio
    async def test_unregistered_provider(self, service):
        gateway = GatewayFactory.build(provider="square")

        with pytest.raises(ProviderLookupError):
            await service.process_charge(gateway, DonationFactory.create())

    @pytest.mark.asyncio
    async def test_provider_errors_pass_through(self, service, recording_gateway, recording_provider):
        class Declined(Exception):
            pass

        async def decline(config, donation_data):
            raise Declined()

        recording_provider.process_charge = decline

        with pytest.raises(Declined):
            await service.process_charge(recording_gateway, DonationFactory.create())

    @pytest.mark.asyncio
    async def test_broken_secret_does_not_block_dispatch(self, service, recording_provider):
        gateway = GatewayFactory.build(provider="recording", private_key="not-encrypted")

        await service.create_webhook(gateway, "https://example.org/hook")

        assert recording_provider.last_config().private_key == ""


class TestOptionalOperations:
    """Optional operations are checked before dispatch"""

    @pytest.mark.asyncio
    async def test_declared_operation_dispatched(self, service, recording_gateway, recording_provider):
        customer_id = await service.create_customer(recording_gateway, "donor@example.com", "Donor")

        assert customer_id == "cus_1"
        assert recording_provider.last_config().private_key == "sk_live_abc"

    @pytest.mark.asyncio
    async def test_undeclared_operation_raises(self, service, recording_gateway, recording_provider):
        with pytest.raises(UnsupportedOperationError) as exc_info:
            await service.update_card(recording_gateway, "pm_1", {"exp_month": 1})

        assert exc_info.value.message == "recording does not support update_card"
        assert recording_provider.calls == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("call", [
        lambda s, g: s.create_product(g, "church-123"),
        lambda s, g: s.get_customer_subscriptions(g, "cus_1"),
        lambda s, g: s.get_customer_payment_methods(g, "cus_1"),
        lambda s, g: s.attach_payment_method(g, "pm_1", {"customer_id": "cus_1"}),
        lambda s, g: s.detach_payment_method(g, "pm_1"),
        lambda s, g: s.create_bank_account(g, "cus_1", {"token": "btok_1"}),
        lambda s, g: s.update_bank(g, "ba_1", {}, "cus_1"),
        lambda s, g: s.verify_bank(g, "ba_1", [32, 45], "cus_1"),
        lambda s, g: s.delete_bank_account(g, "cus_1", "ba_1"),
        lambda s, g: s.create_ach_setup_intent(g, "cus_1"),
        lambda s, g: s.generate_client_token(g),
        lambda s, g: s.create_order(g, {"amount": "5.00"}),
        lambda s, g: s.create_subscription_plan(g, {"amount": "5.00"}),
        lambda s, g: s.create_subscription_with_plan(g, {"amount": "5.00"}),
    ])
    async def test_every_optional_operation_is_gated(self, service, recording_gateway, call):
        with pytest.raises(UnsupportedOperationError):
            await call(service, recording_gateway)

    @pytest.mark.asyncio
    async def test_update_donation_status_gated(self, service, recording_gateway, giving_repos, church_id):
        with pytest.raises(UnsupportedOperationError):
            await service.update_donation_status(recording_gateway, church_id, "tx_1", "failed", giving_repos)

    @pytest.mark.asyncio
    async def test_paypal_has_no_customer_creation(self, service, church_id):
        gateway = GatewayFactory.build(provider="paypal", church_id=church_id)

        with pytest.raises(UnsupportedOperationError) as exc_info:
            await service.create_customer(gateway, "donor@example.com", "Donor")

        assert exc_info.value.message == "paypal does not support create_customer"

    @pytest.mark.asyncio
    async def test_declared_but_not_implemented(self, custom_registry, config_builder, church_id):
        """A declared operation the provider never overrides still fails as unsupported."""
        class PartialProvider(RecordingProvider):
            optional_operations = frozenset({OptionalOperation.CREATE_PRODUCT, OptionalOperation.UPDATE_DONATION_STATUS})

        custom_registry.register_provider("partial", PartialProvider(name="partial"))
        service = GatewayService(custom_registry, config_builder=config_builder)
        gateway = GatewayFactory.build(provider="partial", church_id=church_id)

        with pytest.raises(UnsupportedOperationError) as exc_info:
            await service.create_product(gateway, church_id)

        assert exc_info.value.status_code == 501
        assert exc_info.value.message == "partial does not support create_product"

        with pytest.raises(UnsupportedOperationError) as exc_info:
            await service.update_donation_status(gateway, church_id, "tx_1", "failed", FakeGivingRepos())

        assert exc_info.value.operation == "update_donation_status"

    def test_supports(self, service, recording_gateway):
        assert service.supports(recording_gateway, OptionalOperation.CREATE_CUSTOMER)
        assert not service.supports(recording_gateway, OptionalOperation.CREATE_ORDER)
        assert not service.supports(GatewayFactory.build(provider="square"), OptionalOperation.CREATE_ORDER)
        assert service.supports(GatewayFactory.build(provider="paypal"), "create_order")


class TestMetadata:
    """Static helpers"""

    def test_capabilities_for_gateway(self):
        assert GatewayService.get_capabilities(GatewayFactory.build(provider="stripe")).supports_ach
        assert GatewayService.get_capabilities("acme") is None

    def test_validate_settings_for_gateway(self):
        validated = GatewayService.validate_settings(
            GatewayFactory.create(provider="paypal", settings={"userAction": "PAY_NOW"})
        )

        assert validated.user_action == "PAY_NOW"
