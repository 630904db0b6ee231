"""
Payment specific codes and provider status vocabulary.
"""
from __future__ import annotations

from enum import IntEnum


class PaymentCode(IntEnum):
    # Generic success
    SUCCESS = 0

    # Provider/Network errors (6xxxx)
    PROVIDER_ERROR = 60000
    PROVIDER_RECOVERABLE = 60001
    SIGNATURE_ERROR = 60002
    TIMEOUT = 60003
    RATE_LIMITED = 60004


# Stripe PaymentIntent statuses the confirm flow distinguishes
INTENT_SUCCEEDED = "succeeded"
INTENT_REQUIRES_ACTION = "requires_action"

# Stripe Refund statuses treated as accepted by the processor
REFUND_ACCEPTED_STATUSES = frozenset({"succeeded", "pending"})

# Refund reasons Stripe accepts; anything else is sent as requested_by_customer
REFUND_REASONS = frozenset({"duplicate", "fraudulent", "requested_by_customer"})
DEFAULT_REFUND_REASON = "requested_by_customer"

# Currencies without a minor unit (amounts are sent as-is)
ZERO_DECIMAL_CURRENCIES = frozenset({"JPY", "KRW", "VND", "CLP", "ISK", "UGX", "XAF", "XOF"})
