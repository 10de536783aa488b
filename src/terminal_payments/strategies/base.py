"""Base interface for terminal provider strategies."""

from abc import ABC, abstractmethod
from typing import Optional, Protocol

from terminal_payments.models import (
    PaymentInteractionState,
    PaymentProvider,
    PaymentRequest,
    PaymentResult,
    RefundRequest,
)


class StateChangeCallback(Protocol):
    def __call__(
        self,
        state: PaymentInteractionState,
        session_id: Optional[str] = None,
    ) -> None:
        ...


class PaymentStrategy(ABC):
    """
    Abstract base class for terminal provider integrations.

    All providers (Viva, Nets, ...) must implement this interface so the
    orchestrator can drive any terminal the same way. A strategy instance
    holds at most one active session at a time.
    """

    provider: PaymentProvider

    @abstractmethod
    async def process_payment(
        self,
        request: PaymentRequest,
        on_state_change: StateChangeCallback,
    ) -> PaymentResult:
        """
        Start a sale on the terminal and wait for its outcome.

        Reports CONNECTING before calling the provider and REQUIRES_INPUT
        (with the session id) once the terminal acknowledged the request,
        then races a push notification against status polling.

        Args:
            request: The purchase to run
            on_state_change: Receives intermediate interaction states

        Returns:
            PaymentResult with SUCCESS, FAILED or CANCELLED status.

        Raises:
            PaymentSDKError: NETWORK_ERROR/TERMINAL_BUSY if the terminal could
                not be started, CANCELLED if cancel_transaction() aborted the
                wait, TIMEOUT if polling ran out.

        Note:
            Card declines are NOT exceptions - they return a PaymentResult
            with success=False and the provider's error detail.
        """
        pass

    @abstractmethod
    async def cancel_transaction(self, on_state_change: StateChangeCallback) -> bool:
        """
        Ask the provider to cancel the active session.

        Returns True only when the provider confirmed the cancel; only then
        is the pending completion race aborted. Returns False when there is
        no active session or the provider refused (e.g. already finalized).
        """
        pass

    @abstractmethod
    async def refund_transaction(
        self,
        request: RefundRequest,
        on_state_change: StateChangeCallback,
    ) -> PaymentResult:
        """Run a return/void on the terminal, with the same completion race as a sale."""
        pass

    @abstractmethod
    async def verify_final_status(
        self,
        request: PaymentRequest | RefundRequest,
        session_id: str,
    ) -> PaymentResult:
        """
        Query the provider once for the status of ``session_id``.

        Returns SUCCESS, FAILED or PENDING results; raises PaymentSDKError if
        the status endpoint itself fails.
        """
        pass
