"""Payment domain models."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable


class PaymentProvider(str, Enum):
    """Terminal providers the SDK can drive."""

    VIVA = "viva"
    NETS = "nets"
    MOCK = "mock"


class SdkPaymentStatus(str, Enum):
    """Outcome status carried by a PaymentResult."""

    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"
    ERROR = "ERROR"


class PaymentInteractionState(str, Enum):
    """The single UI-facing state owned by the orchestrator."""

    IDLE = "IDLE"
    CONNECTING = "CONNECTING"
    REQUIRES_INPUT = "REQUIRES_INPUT"
    PROCESSING = "PROCESSING"
    VERIFYING = "VERIFYING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    INTERNAL_ERROR = "INTERNAL_ERROR"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES

    @property
    def is_resting(self) -> bool:
        return self is PaymentInteractionState.IDLE or self in TERMINAL_STATES


TERMINAL_STATES = frozenset(
    {
        PaymentInteractionState.SUCCESS,
        PaymentInteractionState.FAILED,
        PaymentInteractionState.INTERNAL_ERROR,
    }
)


@dataclass(frozen=True)
class VivaOptions:
    installments: int | None = None
    tip_amount: int | None = None
    source_code: str | None = None


@dataclass(frozen=True)
class NetsOptions:
    vat_amount: int | None = None
    operator_id: str | None = None


@dataclass(frozen=True)
class PaymentRequest:
    """
    A purchase submitted to the terminal.

    Immutable once submitted; ``order_ref`` is the caller's unique reference
    and is used as the correlation key everywhere (logs, persistence,
    provider status queries).
    """

    order_ref: str
    amount_cents: int
    currency: str
    display_id: str
    options: VivaOptions | NetsOptions | None = None


@dataclass(frozen=True)
class RefundRequest:
    """A refund (return/void) of a previously completed transaction."""

    order_ref: str
    amount_cents: int
    currency: str
    display_id: str
    original_transaction_id: str


@dataclass(frozen=True)
class PaymentResult:
    """
    Final outcome of one transaction attempt.

    Produced exactly once per attempt and never mutated afterwards; use
    ``dataclasses.replace`` to derive a new one.
    """

    success: bool
    status: SdkPaymentStatus
    order_id: str
    transaction_id: str | None = None
    error_code: str | None = None
    error_message: str | None = None
    error_reference: str | None = None
    transaction: dict[str, Any] | None = None


@dataclass(frozen=True)
class TerminalConfig:
    """Identifies the terminal this SDK instance drives."""

    provider: PaymentProvider | None
    kiosk_id: str
    store_id: str
    channel: str = "kiosk"


@dataclass(frozen=True)
class TransactionContext:
    """Payload passed to the non-terminal lifecycle callbacks."""

    order_ref: str
    ref_payment_id: str | None = None


@dataclass
class TransactionCallbacks:
    """Optional caller hooks fired as a transaction progresses."""

    on_connecting: Callable[[TransactionContext], None] | None = None
    on_requires_input: Callable[[TransactionContext], None] | None = None
    on_processing: Callable[[TransactionContext], None] | None = None
    on_verifying: Callable[[TransactionContext], None] | None = None
    on_success: Callable[[PaymentResult], None] | None = None
    on_error: Callable[[PaymentResult], None] | None = None
    on_cancelled: Callable[[TransactionContext], None] | None = None


@dataclass
class TransactionRecord:
    """
    Persisted snapshot of an in-flight transaction.

    Written when a transaction is accepted and used by recovery after a
    process restart. Timestamps are epoch milliseconds.
    """

    order_ref: str
    amount_cents: int
    currency: str
    status: PaymentInteractionState
    created_at: int
    updated_at: int
    display_id: str | None = None
    session_id: str | None = None
    provider: str | None = None
    details: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class HealthStatus:
    is_healthy: bool
    details: dict[str, Any] | None = None
