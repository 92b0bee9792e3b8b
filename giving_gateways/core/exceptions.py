from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
import logging
from typing import Dict, Any, List, Optional
from giving_gateways.core.logging import log_gateway_context

logger = logging.getLogger(__name__)

class APIError(Exception):
    """Base API exception"""

    def __init__(self, message: str, status_code: int = 500, details: Dict[str, Any] = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)

class ValidationError(APIError):
    """Validation related errors"""

    def __init__(self, message: str = "Validation failed", details: Dict[str, Any] = None):
        super().__init__(message, 400, details)

class GatewayResolutionError(APIError):
    """No single gateway could be picked for a church"""

    NOT_FOUND = "not-found"
    AMBIGUOUS = "ambiguous"

    def __init__(
        self,
        message: str,
        reason: str = NOT_FOUND,
        church_id: Optional[str] = None,
        details: Dict[str, Any] = None
    ):
        self.reason = str(getattr(reason, 'value', reason))
        self.church_id = church_id
        status_code = 409 if self.reason == self.AMBIGUOUS else 404
        details = dict(details or {})
        details.setdefault("reason", self.reason)
        if church_id:
            details.setdefault("church_id", church_id)
        super().__init__(message, status_code, details)

class ProviderLookupError(APIError):
    """Requested provider is not registered"""

    def __init__(self, provider: str, available: List[str]):
        self.provider = provider
        self.available = list(available)
        message = (
            f"Unsupported payment gateway: {provider}. "
            f"Available providers: {', '.join(self.available)}"
        )
        super().__init__(message, 404, {"provider": provider, "available": self.available})

class ProviderRegistrationError(APIError):
    """Custom provider registration refused"""

    def __init__(self, message: str = "Custom gateway providers are disabled", details: Dict[str, Any] = None):
        super().__init__(message, 403, details)

class UnsupportedOperationError(APIError):
    """Optional operation invoked on a provider that does not offer it"""

    def __init__(self, provider: str, operation: str):
        self.provider = provider
        self.operation = operation
        message = f"{provider} does not support {operation}"
        super().__init__(message, 501, {"provider": provider, "operation": operation})

class DecryptionError(APIError):
    """Stored secret could not be decrypted"""

    def __init__(self, message: str = "Failed to decrypt gateway secret", details: Dict[str, Any] = None):
        super().__init__(message, 500, details)

class ProviderOperationError(APIError):
    """Error raised by a provider during a remote call"""

    def __init__(
        self,
        message: str = "Payment provider operation failed",
        provider: Optional[str] = None,
        details: Dict[str, Any] = None
    ):
        self.provider = provider
        details = dict(details or {})
        if provider:
            details.setdefault("provider", provider)
        super().__init__(message, 502, details)

async def api_exception_handler(request: Request, exc: APIError):
    """Handle gateway exceptions raised inside a host FastAPI app"""

    context = log_gateway_context(
        church_id=getattr(request.state, 'church_id', None),
        provider=exc.details.get("provider")
    )
    context.update({
        "error_type": exc.__class__.__name__,
        "status_code": exc.status_code,
        "path": str(request.url.path),
        "method": request.method
    })

    if exc.status_code >= 500:
        logger.error(f"Gateway error: {exc.message}", extra={"context": context})
    else:
        logger.warning(f"Gateway error: {exc.message}", extra={"context": context})

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": True,
            "message": exc.message,
            "details": exc.details,
            "timestamp": context["timestamp"]
        }
    )

def register_exception_handlers(app: FastAPI) -> FastAPI:
    """Install the gateway exception handler on a FastAPI app"""
    app.add_exception_handler(APIError, api_exception_handler)
    return app
