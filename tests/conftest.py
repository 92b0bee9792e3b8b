"""
Global pytest configuration and shared fixtures.
"""
import pytest
from unittest.mock import patch

from giving_gateways.services.gateway_service import GatewayService
from giving_gateways.services.gateways.config_builder import ConfigBuilder
from giving_gateways.services.gateways.registry import ProviderRegistry
from tests.utils.factories import GatewayFactory
from tests.utils.mocks import (
    FakeDecryptor, FakeGatewayRepository, FakeGivingRepos, MockDBConnection,
    MockDBContextManager, RecordingProvider,
)


# ============================================================================
# Database mock
# ============================================================================

@pytest.fixture
def mock_db_connection():
    """Mock asyncpg connection shared by both repositories."""
    return MockDBConnection()


@pytest.fixture
def mock_db(mock_db_connection):
    """Patch get_db_connection where the repositories imported it."""
    def _context(*args, **kwargs):
        return MockDBContextManager(mock_db_connection)

    with patch('giving_gateways.services.gateway_repository.get_db_connection', side_effect=_context):
        with patch('giving_gateways.services.giving_repository.get_db_connection', side_effect=_context):
            yield mock_db_connection


# ============================================================================
# Registry and service
# ============================================================================

@pytest.fixture
def fake_decryptor():
    return FakeDecryptor()


@pytest.fixture
def registry():
    """Registry with only the mandatory providers."""
    return ProviderRegistry()


@pytest.fixture
def recording_provider():
    return RecordingProvider()


@pytest.fixture
def custom_registry(recording_provider):
    """Registry with custom providers enabled and a recording provider installed."""
    registry = ProviderRegistry(flags={"enable_custom_providers": True})
    registry.register_provider("recording", recording_provider)
    return registry


@pytest.fixture
def config_builder(fake_decryptor):
    return ConfigBuilder(fake_decryptor, kingdomfunding_key=lambda: "kf_env_key")


@pytest.fixture
def service(custom_registry, config_builder):
    """Gateway service wired to the recording provider and the fake decryptor."""
    return GatewayService(custom_registry, config_builder=config_builder)


@pytest.fixture
def giving_repos():
    return FakeGivingRepos()


# ============================================================================
# Test data
# ============================================================================

@pytest.fixture
def church_id():
    return "church-123"


@pytest.fixture
def recording_gateway(church_id):
    """Stored gateway routed to the recording provider."""
    return GatewayFactory.build(
        id="gw-recording",
        church_id=church_id,
        provider="recording",
        private_key="enc:sk_live_abc",
        webhook_key="enc:whsec_abc",
    )


@pytest.fixture
def make_repository():
    """Factory for in-memory gateway repositories."""
    def _make(rows):
        return FakeGatewayRepository(rows)

    return _make
