"""
Terminal payments SDK.

Drives card-present payments on cloud-connected terminals (Viva, Nets)
from a self-service kiosk:
- sdk.PaymentSDK: Transaction orchestrator and UI-facing state machine
- strategies: Provider integrations and the completion race they share
- clients.PaymentApiClient: HTTP client for the payment backend
- adapters: Messaging, persistence and health-check boundaries
"""

from terminal_payments._version import __version__
from terminal_payments.adapters import (
    HealthCheckAdapter,
    InMemoryMessaging,
    MessagingAdapter,
    PersistenceAdapter,
)
from terminal_payments.clients import PaymentApiClient
from terminal_payments.logging_config import configure_logging, get_logger
from terminal_payments.models import (
    HealthStatus,
    InvalidStateTransition,
    NetsOptions,
    PaymentErrorCode,
    PaymentFailureCode,
    PaymentInteractionState,
    PaymentProvider,
    PaymentRequest,
    PaymentResult,
    PaymentSDKError,
    RefundRequest,
    SdkPaymentStatus,
    TerminalConfig,
    TransactionCallbacks,
    TransactionContext,
    TransactionRecord,
    VivaOptions,
    normalize_error_code,
)
from terminal_payments.sdk import AutoResetOptions, PaymentSDK, SDKOptions
from terminal_payments.strategies import (
    CompletionTimings,
    MockStrategy,
    NetsStrategy,
    PaymentStrategy,
    StrategyFactory,
    VivaStrategy,
    get_strategy,
)

__all__ = [
    "AutoResetOptions",
    "CompletionTimings",
    "HealthCheckAdapter",
    "HealthStatus",
    "InMemoryMessaging",
    "InvalidStateTransition",
    "MessagingAdapter",
    "MockStrategy",
    "NetsOptions",
    "NetsStrategy",
    "PaymentApiClient",
    "PaymentErrorCode",
    "PaymentFailureCode",
    "PaymentInteractionState",
    "PaymentProvider",
    "PaymentRequest",
    "PaymentResult",
    "PaymentSDK",
    "PaymentSDKError",
    "PaymentStrategy",
    "PersistenceAdapter",
    "RefundRequest",
    "SDKOptions",
    "SdkPaymentStatus",
    "StrategyFactory",
    "TerminalConfig",
    "TransactionCallbacks",
    "TransactionContext",
    "TransactionRecord",
    "VivaOptions",
    "VivaStrategy",
    "__version__",
    "configure_logging",
    "get_logger",
    "get_strategy",
    "normalize_error_code",
]
