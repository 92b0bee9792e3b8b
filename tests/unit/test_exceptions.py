"""
Tests for gateway errors and their FastAPI rendering.
"""
import pytest
from fastapi import FastAPI
from httpx import AsyncClient, ASGITransport

from giving_gateways.core.exceptions import (
    DecryptionError, GatewayResolutionError, ProviderLookupError, ProviderOperationError,
    ProviderRegistrationError, UnsupportedOperationError, ValidationError,
    register_exception_handlers,
)
from giving_gateways.models.gateway import ResolutionReason


@pytest.fixture
def app():
    app = FastAPI()
    register_exception_handlers(app)

    @app.get("/ambiguous")
    async def ambiguous():
        raise GatewayResolutionError(
            "Multiple payment gateways are configured for church c-1.",
            reason=ResolutionReason.AMBIGUOUS,
            church_id="c-1"
        )

    @app.get("/unsupported")
    async def unsupported():
        raise UnsupportedOperationError("paypal", "create_customer")

    @app.get("/provider-failure")
    async def provider_failure():
        raise ProviderOperationError("Stripe request failed: card declined", provider="stripe")

    return app


class TestErrorStatusCodes:
    """Status codes per error"""

    def test_resolution_error_reasons(self):
        not_found = GatewayResolutionError("none", church_id="c-1")
        ambiguous = GatewayResolutionError("many", reason=ResolutionReason.AMBIGUOUS)

        assert not_found.status_code == 404
        assert not_found.reason == "not-found"
        assert not_found.details == {"reason": "not-found", "church_id": "c-1"}
        assert ambiguous.status_code == 409
        assert ambiguous.reason == "ambiguous"

    def test_other_errors(self):
        assert ProviderLookupError("x", ["stripe"]).status_code == 404
        assert ProviderRegistrationError().status_code == 403
        assert UnsupportedOperationError("paypal", "update_card").status_code == 501
        assert DecryptionError().status_code == 500
        assert ProviderOperationError().status_code == 502
        assert ValidationError().status_code == 400

    def test_unsupported_operation_message(self):
        error = UnsupportedOperationError("paypal", "update_card")

        assert error.message == "paypal does not support update_card"
        assert error.details == {"provider": "paypal", "operation": "update_card"}


class TestExceptionHandler:
    """JSON rendering inside a host app"""

    @pytest.mark.asyncio
    async def test_ambiguous_rendered_as_409(self, app):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.get("/ambiguous")

        assert response.status_code == 409
        data = response.json()
        assert data["error"] is True
        assert data["details"]["reason"] == "ambiguous"
        assert "church c-1" in data["message"]
        assert "timestamp" in data

    @pytest.mark.asyncio
    async def test_unsupported_rendered_as_501(self, app):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.get("/unsupported")

        assert response.status_code == 501
        assert response.json()["details"]["operation"] == "create_customer"

    @pytest.mark.asyncio
    async def test_provider_failure_rendered_as_502(self, app):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.get("/provider-failure")

        assert response.status_code == 502
        assert response.json()["details"] == {"provider": "stripe"}
