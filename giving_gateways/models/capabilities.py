from pydantic import BaseModel, ConfigDict
from typing import Optional, Tuple


class ProviderCapabilities(BaseModel):
    """
    Static description of what a payment provider supports.

    Amounts are in minor currency units (cents), the refund window in days.
    Currency codes are lower-case ISO 4217.
    """
    model_config = ConfigDict(frozen=True)

    supports_one_time_payments: bool
    supports_subscriptions: bool
    supports_vault: bool
    supports_ach: bool
    supports_refunds: bool
    supports_partial_refunds: bool
    supports_webhooks: bool
    supports_orders: bool
    supports_instant_capture: bool
    supports_manual_capture: bool
    supports_sca: bool
    requires_plans_for_subscriptions: bool
    requires_customer_for_subscription: bool
    supported_payment_methods: Tuple[str, ...]
    supported_currencies: Tuple[str, ...]
    max_refund_window: Optional[int] = None
    min_transaction_amount: Optional[int] = None
    max_transaction_amount: Optional[int] = None
    notes: Tuple[str, ...] = ()

    def supports_currency(self, currency: str) -> bool:
        return bool(currency) and currency.lower() in self.supported_currencies

    def supports_payment_method(self, method: str) -> bool:
        return bool(method) and method.lower() in self.supported_payment_methods

    def allows_amount(self, amount_minor: int) -> bool:
        """True when the amount is inside the provider's transaction limits"""
        if self.min_transaction_amount is not None and amount_minor < self.min_transaction_amount:
            return False
        if self.max_transaction_amount is not None and amount_minor > self.max_transaction_amount:
            return False
        return True
