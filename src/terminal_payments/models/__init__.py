"""Domain models for the terminal payments SDK."""

from terminal_payments.models.exceptions import (
    InvalidStateTransition,
    PaymentErrorCode,
    PaymentFailureCode,
    PaymentSDKError,
    ProviderConflict,
    normalize_error_code,
)
from terminal_payments.models.payment import (
    TERMINAL_STATES,
    HealthStatus,
    NetsOptions,
    PaymentInteractionState,
    PaymentProvider,
    PaymentRequest,
    PaymentResult,
    RefundRequest,
    SdkPaymentStatus,
    TerminalConfig,
    TransactionCallbacks,
    TransactionContext,
    TransactionRecord,
    VivaOptions,
)
from terminal_payments.models.provider import PaymentStatusDto, ProviderError, SimplePaymentStatus

__all__ = [
    "TERMINAL_STATES",
    "HealthStatus",
    "InvalidStateTransition",
    "NetsOptions",
    "PaymentErrorCode",
    "PaymentFailureCode",
    "PaymentInteractionState",
    "PaymentProvider",
    "PaymentRequest",
    "PaymentResult",
    "PaymentSDKError",
    "PaymentStatusDto",
    "ProviderConflict",
    "ProviderError",
    "RefundRequest",
    "SdkPaymentStatus",
    "SimplePaymentStatus",
    "TerminalConfig",
    "TransactionCallbacks",
    "TransactionContext",
    "TransactionRecord",
    "VivaOptions",
    "normalize_error_code",
]
