"""Error codes and exceptions for the terminal payments SDK."""

from enum import Enum


class PaymentErrorCode(str, Enum):
    """Internal error codes raised by strategies and the HTTP client."""

    MISSING_CONFIG = "MISSING_CONFIG"
    INVALID_AMOUNT = "INVALID_AMOUNT"
    NETWORK_ERROR = "NETWORK_ERROR"
    TERMINAL_OFFLINE = "TERMINAL_OFFLINE"
    TERMINAL_BUSY = "TERMINAL_BUSY"
    TIMEOUT = "TIMEOUT"
    DECLINED = "DECLINED"
    CANCELLED = "CANCELLED"
    STRATEGY_ERROR = "STRATEGY_ERROR"
    UNKNOWN = "UNKNOWN"
    HEALTH_CHECK_FAILED = "HEALTH_CHECK_FAILED"


class PaymentFailureCode(str, Enum):
    """Provider-agnostic failure codes reported to callers."""

    TERMINAL_TIMEOUT = "terminal.timeout"
    TERMINAL_BUSY = "terminal.busy"
    TERMINAL_OFFLINE = "terminal.offline"
    PAYMENT_DECLINED = "payment.declined"
    PAYMENT_CANCELLED_BY_USER = "payment.cancelled_by_user"
    PAYMENT_TIMEOUT = "payment.timeout"
    PAYMENT_UNKNOWN = "payment.unknown"
    SYSTEM_PROVIDER_ERROR = "system.provider_error"
    SYSTEM_UNKNOWN = "system.unknown"


_FAILURE_CODE_TABLE: dict[PaymentErrorCode, PaymentFailureCode] = {
    PaymentErrorCode.MISSING_CONFIG: PaymentFailureCode.SYSTEM_UNKNOWN,
    PaymentErrorCode.INVALID_AMOUNT: PaymentFailureCode.SYSTEM_UNKNOWN,
    PaymentErrorCode.NETWORK_ERROR: PaymentFailureCode.SYSTEM_PROVIDER_ERROR,
    PaymentErrorCode.TERMINAL_OFFLINE: PaymentFailureCode.TERMINAL_OFFLINE,
    PaymentErrorCode.TERMINAL_BUSY: PaymentFailureCode.TERMINAL_BUSY,
    PaymentErrorCode.TIMEOUT: PaymentFailureCode.TERMINAL_TIMEOUT,
    PaymentErrorCode.DECLINED: PaymentFailureCode.PAYMENT_DECLINED,
    PaymentErrorCode.CANCELLED: PaymentFailureCode.PAYMENT_CANCELLED_BY_USER,
    PaymentErrorCode.STRATEGY_ERROR: PaymentFailureCode.SYSTEM_UNKNOWN,
    PaymentErrorCode.UNKNOWN: PaymentFailureCode.SYSTEM_UNKNOWN,
    PaymentErrorCode.HEALTH_CHECK_FAILED: PaymentFailureCode.SYSTEM_PROVIDER_ERROR,
}


def normalize_error_code(code: "str | PaymentErrorCode | PaymentFailureCode | None") -> str:
    """
    Map an internal or provider error code onto the provider-agnostic set.

    Codes that already contain a "." are assumed to be normalized by the
    provider and are returned unchanged. Anything unrecognised becomes
    ``system.unknown``.
    """
    if code is None:
        return PaymentFailureCode.SYSTEM_UNKNOWN.value
    if isinstance(code, PaymentFailureCode):
        return code.value

    raw = code.value if isinstance(code, PaymentErrorCode) else str(code)
    if "." in raw:
        return raw

    try:
        return _FAILURE_CODE_TABLE[PaymentErrorCode(raw)].value
    except ValueError:
        return PaymentFailureCode.SYSTEM_UNKNOWN.value


class PaymentSDKError(Exception):
    """Base exception for every SDK, strategy and provider error."""

    def __init__(
        self,
        code: PaymentErrorCode,
        message: str,
        raw_error: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.raw_error = raw_error


class ProviderConflict(PaymentSDKError):
    """
    Raised when the payment backend answers 409.

    For a cancel call this means the provider already finalized the
    transaction; for an initiate call the terminal is busy with another one.
    """

    def __init__(self, message: str, raw_error: BaseException | None = None) -> None:
        super().__init__(PaymentErrorCode.TERMINAL_BUSY, message, raw_error)


class InvalidStateTransition(PaymentSDKError):
    """
    Raised when something tries to move a resolved transaction out of its
    terminal state. This is a programming/protocol error, not a business one.
    """

    def __init__(self, from_state: str, to_state: str) -> None:
        super().__init__(
            PaymentErrorCode.STRATEGY_ERROR,
            f"Invalid state transition from {from_state} to {to_state}",
        )
        self.from_state = from_state
        self.to_state = to_state
