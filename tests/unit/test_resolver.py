"""
Tests for gateway resolution.
"""
import pytest

from giving_gateways.models.gateway import GetGatewayOptions, ResolutionReason
from giving_gateways.services.gateways.resolver import (
    GatewayResolver, coerce_options, describe_failure, resolve_gateway,
)
from tests.utils.factories import GatewayFactory


@pytest.fixture
def stripe_pair_prod_sandbox():
    return [
        GatewayFactory.build(id="a", provider="stripe", environment="production"),
        GatewayFactory.build(id="b", provider="stripe", environment="sandbox"),
    ]


@pytest.fixture
def stripe_pair_both_prod():
    return [
        GatewayFactory.build(id="a", provider="stripe", environment="production"),
        GatewayFactory.build(id="b", provider="stripe", environment="production"),
    ]


class TestGatewayIdPrecedence:
    """An explicit gateway id short-circuits every other rule"""

    def test_gateway_id_beats_ambiguous_provider(self, stripe_pair_both_prod):
        """gatewayId b wins even though the provider filter alone would tie."""
        result = resolve_gateway(stripe_pair_both_prod, {"gatewayId": "b", "provider": "stripe"})

        assert result.resolved
        assert result.gateway.id == "b"

    def test_gateway_id_ignores_environment_preference(self, stripe_pair_prod_sandbox):
        result = resolve_gateway(
            stripe_pair_prod_sandbox,
            GetGatewayOptions(gateway_id="b", environment_preference=["production"])
        )

        assert result.gateway.id == "b"

    def test_unknown_gateway_id_is_not_found(self, stripe_pair_prod_sandbox):
        result = resolve_gateway(stripe_pair_prod_sandbox, {"gatewayId": "zzz"})

        assert not result.resolved
        assert result.reason == ResolutionReason.NOT_FOUND


class TestProviderFilter:
    """Provider filter followed by the environment tie-break"""

    def test_production_preferred_by_default(self, stripe_pair_prod_sandbox):
        result = resolve_gateway(stripe_pair_prod_sandbox, {"provider": "stripe"})

        assert result.gateway.id == "a"

    def test_provider_match_is_case_insensitive(self, stripe_pair_prod_sandbox):
        result = resolve_gateway(stripe_pair_prod_sandbox, {"provider": "STRIPE"})

        assert result.gateway.id == "a"

    def test_equal_environments_are_ambiguous(self, stripe_pair_both_prod):
        result = resolve_gateway(stripe_pair_both_prod, {"provider": "stripe"})

        assert not result.resolved
        assert result.reason == ResolutionReason.AMBIGUOUS

    def test_missing_provider_is_not_found(self, stripe_pair_prod_sandbox):
        result = resolve_gateway(stripe_pair_prod_sandbox, {"provider": "square"})

        assert result.reason == ResolutionReason.NOT_FOUND

    def test_custom_preference_reverses_choice(self, stripe_pair_prod_sandbox):
        result = resolve_gateway(
            stripe_pair_prod_sandbox,
            {"provider": "stripe", "environmentPreference": ["sandbox", "production"]}
        )

        assert result.gateway.id == "b"

    def test_filter_narrows_before_tie_break(self):
        gateways = [
            GatewayFactory.build(id="s", provider="stripe", environment="sandbox"),
            GatewayFactory.build(id="p", provider="paypal", environment="production"),
        ]

        result = resolve_gateway(gateways, {"provider": "stripe"})

        assert result.gateway.id == "s"


class TestSingleGateway:
    """A tenant with one gateway needs no filters"""

    def test_returned_without_options(self):
        only = GatewayFactory.build(id="only", environment=None)

        result = resolve_gateway([only])

        assert result.gateway.id == "only"

    def test_returned_regardless_of_environment_preference(self):
        only = GatewayFactory.build(id="only", environment="test")

        result = resolve_gateway([only], {"environmentPreference": ["production"]})

        assert result.gateway.id == "only"

    def test_matching_provider_filter_still_returns_it(self):
        only = GatewayFactory.build(id="only", provider="paypal", environment="sandbox")

        result = resolve_gateway([only], {"provider": "paypal"})

        assert result.gateway.id == "only"


class TestEnvironmentTieBreak:
    """Tie-break over the whole set when no filter applies"""

    def test_live_beats_sandbox(self):
        gateways = [
            GatewayFactory.build(id="sbx", provider="stripe", environment="sandbox"),
            GatewayFactory.build(id="live", provider="paypal", environment="live"),
        ]

        assert resolve_gateway(gateways).gateway.id == "live"

    def test_environment_compared_case_insensitively(self):
        gateways = [
            GatewayFactory.build(id="t", environment="TEST"),
            GatewayFactory.build(id="p", environment="Production"),
        ]

        assert resolve_gateway(gateways).gateway.id == "p"

    def test_unlisted_environments_share_worst_weight(self):
        gateways = [
            GatewayFactory.build(id="x", environment="staging"),
            GatewayFactory.build(id="y", environment=None),
        ]

        assert resolve_gateway(gateways).reason == ResolutionReason.AMBIGUOUS

    def test_listed_environment_beats_unlisted(self):
        gateways = [
            GatewayFactory.build(id="x", environment="staging"),
            GatewayFactory.build(id="t", environment="test"),
        ]

        assert resolve_gateway(gateways).gateway.id == "t"

    def test_empty_set_is_not_found(self):
        result = GatewayResolver().pick_by_environment([], ["production"])

        assert result.reason == ResolutionReason.NOT_FOUND

    def test_resolver_default_preference_is_configurable(self, stripe_pair_prod_sandbox):
        resolver = GatewayResolver(default_environment_preference=["sandbox"])

        assert resolver.resolve(stripe_pair_prod_sandbox).gateway.id == "b"

    def test_resolution_is_deterministic(self, stripe_pair_prod_sandbox):
        first = resolve_gateway(stripe_pair_prod_sandbox)
        reordered = resolve_gateway(list(reversed(stripe_pair_prod_sandbox)))

        assert first.gateway.id == reordered.gateway.id == "a"


class TestOptionsAndMessages:
    """Option coercion and failure messages"""

    def test_coerce_accepts_camel_and_snake_keys(self):
        camel = coerce_options({"gatewayId": "g", "environmentPreference": ["live"]})
        snake = coerce_options({"gateway_id": "g", "environment_preference": ["live"]})

        assert camel == snake
        assert coerce_options(None) == GetGatewayOptions()

    def test_gateway_id_message(self):
        message = describe_failure("c-1", ResolutionReason.NOT_FOUND, GetGatewayOptions(gateway_id="g-9"))

        assert message == "Gateway g-9 is not configured for church c-1."

    def test_ambiguous_message_names_provider(self):
        message = describe_failure("c-1", ResolutionReason.AMBIGUOUS, GetGatewayOptions(provider="stripe"))

        assert message.startswith("Multiple stripe payment gateways are configured for church c-1.")
        assert "gatewayId" in message

    def test_provider_not_found_message(self):
        message = describe_failure("c-1", ResolutionReason.NOT_FOUND, GetGatewayOptions(provider="square"))

        assert message == "No square gateway configured for church c-1."

    def test_generic_not_found_message(self):
        message = describe_failure("c-1", ResolutionReason.NOT_FOUND, GetGatewayOptions())

        assert message == "No payment gateway configured for church c-1."
