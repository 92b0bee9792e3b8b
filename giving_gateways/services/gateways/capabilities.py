"""
Static capability catalog.

Describes what each provider supports independently of whether it is
registered, so calling code can reject an operation before dispatching it
to a provider that would reject it remotely.
"""
from typing import Any, Dict, Optional

from giving_gateways.core.exceptions import ValidationError
from giving_gateways.models.capabilities import ProviderCapabilities
from giving_gateways.models.gateway import ProviderName

DEFAULT_CURRENCIES = ("usd", "eur", "gbp", "cad", "aud", "jpy", "mxn", "nzd", "sgd")

PROVIDER_CAPABILITIES: Dict[ProviderName, ProviderCapabilities] = {
    ProviderName.STRIPE: ProviderCapabilities(
        supports_one_time_payments=True,
        supports_subscriptions=True,
        supports_vault=True,
        supports_ach=True,
        supports_refunds=True,
        supports_partial_refunds=True,
        supports_webhooks=True,
        supports_orders=False,
        supports_instant_capture=True,
        supports_manual_capture=True,
        supports_sca=True,
        requires_plans_for_subscriptions=False,
        requires_customer_for_subscription=True,
        supported_payment_methods=("card", "ach_debit", "link", "apple_pay", "google_pay"),
        supported_currencies=DEFAULT_CURRENCIES,
        max_refund_window=180,
        min_transaction_amount=50,  # $0.50
        max_transaction_amount=99999999,  # $999,999.99
        notes=("Supports ACH via Plaid or micro-deposits", "Ideal for card + bank payments"),
    ),
    ProviderName.PAYPAL: ProviderCapabilities(
        supports_one_time_payments=True,
        supports_subscriptions=True,
        supports_vault=True,
        supports_ach=False,
        supports_refunds=True,
        supports_partial_refunds=True,
        supports_webhooks=True,
        supports_orders=True,
        supports_instant_capture=True,
        supports_manual_capture=True,
        supports_sca=True,
        requires_plans_for_subscriptions=True,
        requires_customer_for_subscription=False,
        supported_payment_methods=("paypal", "card", "venmo", "pay_later"),
        supported_currencies=DEFAULT_CURRENCIES,
        max_refund_window=180,
        min_transaction_amount=100,  # $1.00
        max_transaction_amount=1000000,  # $10,000.00
        notes=("Subscriptions require Billing Plans", "Order APIs power PayPal smart buttons"),
    ),
    ProviderName.SQUARE: ProviderCapabilities(
        supports_one_time_payments=True,
        supports_subscriptions=True,
        supports_vault=True,
        supports_ach=True,
        supports_refunds=True,
        supports_partial_refunds=True,
        supports_webhooks=True,
        supports_orders=False,
        supports_instant_capture=True,
        supports_manual_capture=True,
        supports_sca=True,
        requires_plans_for_subscriptions=False,
        requires_customer_for_subscription=True,
        supported_payment_methods=("card", "apple_pay", "google_pay", "ach_debit", "gift_card"),
        supported_currencies=("usd", "cad", "gbp", "aud", "jpy", "eur"),
        max_refund_window=120,
        min_transaction_amount=100,  # $1.00
        max_transaction_amount=5000000,  # $50,000.00
        notes=("ACH support requires Square bank on file", "Subscriptions available with catalog plans"),
    ),
    ProviderName.EPAYMINTS: ProviderCapabilities(
        supports_one_time_payments=True,
        supports_subscriptions=False,
        supports_vault=False,
        supports_ach=True,
        supports_refunds=True,
        supports_partial_refunds=False,
        supports_webhooks=False,
        supports_orders=False,
        supports_instant_capture=True,
        supports_manual_capture=False,
        supports_sca=False,
        requires_plans_for_subscriptions=False,
        requires_customer_for_subscription=False,
        supported_payment_methods=("card", "ach"),
        supported_currencies=("usd",),
        max_refund_window=90,
        min_transaction_amount=100,  # $1.00
        max_transaction_amount=10000000,  # $100,000.00
        notes=("Webhooks limited; polling recommended", "ACH available via tokenised transactions"),
    ),
    ProviderName.KINGDOMFUNDING: ProviderCapabilities(
        supports_one_time_payments=True,
        supports_subscriptions=False,
        supports_vault=False,
        supports_ach=False,
        supports_refunds=False,
        supports_partial_refunds=False,
        supports_webhooks=False,
        supports_orders=False,
        supports_instant_capture=False,
        supports_manual_capture=False,
        supports_sca=False,
        requires_plans_for_subscriptions=False,
        requires_customer_for_subscription=False,
        supported_payment_methods=("card",),
        supported_currencies=("usd",),
        notes=("Placeholder provider; implement SDK integrations before production use",),
    ),
}


def _provider_tag(provider_or_gateway: Any) -> Optional[str]:
    if isinstance(provider_or_gateway, str):
        return provider_or_gateway
    if isinstance(provider_or_gateway, dict):
        return provider_or_gateway.get("provider")
    return getattr(provider_or_gateway, "provider", None)


def get_capabilities(provider_or_gateway: Any) -> Optional[ProviderCapabilities]:
    """
    Get the capabilities of a payment provider.

    Args:
        provider_or_gateway: Provider tag (stripe, paypal, ...), a Gateway, or
            a mapping with a `provider` key

    Returns:
        ProviderCapabilities or None if the provider is unknown
    """
    tag = _provider_tag(provider_or_gateway)
    if not tag:
        return None
    return PROVIDER_CAPABILITIES.get(ProviderName.parse(tag))


def _require_capabilities(provider_or_gateway: Any) -> ProviderCapabilities:
    capabilities = get_capabilities(provider_or_gateway)
    if capabilities is None:
        raise ValidationError(
            f"Unknown payment provider: {_provider_tag(provider_or_gateway)}",
            {"provider": _provider_tag(provider_or_gateway)}
        )
    return capabilities


def check_amount(provider_or_gateway: Any, amount_minor: int, currency: str) -> ProviderCapabilities:
    """Reject a charge the provider would refuse for its currency or limits"""
    capabilities = _require_capabilities(provider_or_gateway)
    tag = _provider_tag(provider_or_gateway)

    if not capabilities.supports_currency(currency):
        raise ValidationError(
            f"{tag} does not support currency {currency}",
            {"provider": tag, "currency": currency}
        )

    if not capabilities.allows_amount(amount_minor):
        raise ValidationError(
            f"Amount {amount_minor} is outside the {tag} transaction limits "
            f"({capabilities.min_transaction_amount}-{capabilities.max_transaction_amount})",
            {"provider": tag, "amount": amount_minor}
        )

    return capabilities


def check_refund_window(provider_or_gateway: Any, days_since_charge: int) -> ProviderCapabilities:
    """Reject a refund the provider no longer accepts"""
    capabilities = _require_capabilities(provider_or_gateway)
    tag = _provider_tag(provider_or_gateway)

    if not capabilities.supports_refunds:
        raise ValidationError(f"{tag} does not support refunds", {"provider": tag})

    window = capabilities.max_refund_window
    if window is not None and days_since_charge > window:
        raise ValidationError(
            f"Refund window of {window} days for {tag} has passed",
            {"provider": tag, "days_since_charge": days_since_charge}
        )

    return capabilities
