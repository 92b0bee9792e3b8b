import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional, TextIO

from giving_gateways.config import settings

PACKAGE_LOGGER = "giving_gateways"

# Context keys rendered after the message, in this order
CONTEXT_FIELDS = ("provider", "gateway_id", "church_id", "reason", "field", "status_code")


class GatewayLogFormatter(logging.Formatter):
    """
    Console formatter for gateway logs.

    Appends the identity fields of a record's ``context`` extra
    (``logger.warning(..., extra={"context": log_gateway_context(...)})``)
    and optionally colors the level name.
    """

    COLORS = {
        'DEBUG': '\033[36m',    # Cyan
        'INFO': '\033[32m',     # Green
        'WARNING': '\033[33m',  # Yellow
        'ERROR': '\033[31m',    # Red
        'CRITICAL': '\033[35m', # Magenta
    }
    RESET = '\033[0m'

    def __init__(self, fmt: Optional[str] = None, datefmt: Optional[str] = None, use_colors: bool = True):
        super().__init__(fmt or '%(asctime)s | %(levelname)s | %(name)s | %(message)s', datefmt)
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        levelname = record.levelname
        if self.use_colors and levelname in self.COLORS:
            # Other handlers share the record, restore after formatting
            record.levelname = f"{self.COLORS[levelname]}{levelname}{self.RESET}"
        try:
            line = super().format(record)
        finally:
            record.levelname = levelname

        context = getattr(record, 'context', None)
        if isinstance(context, dict):
            pairs = [f"{key}={context[key]}" for key in CONTEXT_FIELDS if context.get(key) is not None]
            if pairs:
                line = f"{line} | {' '.join(pairs)}"
        return line


def setup_logging(level: Optional[int] = None, stream: Optional[TextIO] = None, use_colors: bool = True) -> logging.Logger:
    """
    Attach a console handler to the ``giving_gateways`` logger.

    The host application's root handlers are left alone. Calling this again
    replaces the handler installed by the previous call.
    """
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    if level is None:
        level = logging.DEBUG if settings.debug else logging.INFO
    package_logger.setLevel(level)

    for handler in list(package_logger.handlers):
        if getattr(handler, '_giving_gateways', False):
            package_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(stream or sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(GatewayLogFormatter(datefmt='%Y-%m-%d %H:%M:%S', use_colors=use_colors))
    console_handler._giving_gateways = True
    package_logger.addHandler(console_handler)
    package_logger.propagate = False

    return package_logger


def log_gateway_context(gateway: Any = None, church_id: str = None, provider: str = None) -> Dict[str, Any]:
    """
    Create gateway context for logging.

    Only identity fields are included; keys and secrets never are.
    """
    if gateway is not None:
        church_id = church_id or getattr(gateway, 'church_id', None)
        provider = provider or getattr(gateway, 'provider', None)

    context = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }

    if provider:
        context["provider"] = str(provider).lower()

    gateway_id = getattr(gateway, 'id', None) or getattr(gateway, 'gateway_id', None)
    if gateway_id:
        context["gateway_id"] = str(gateway_id)

    if church_id:
        context["church_id"] = str(church_id)[:8] + "..."

    return context
