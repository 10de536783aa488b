"""
Mock terminal strategy for demos and end-to-end testing.

Simulates a terminal without any backend: after a short latency the
transaction resolves with a configurable outcome. It honours
cancel_transaction() while "waiting for the card", so kiosk flows can be
exercised end to end.
"""

import asyncio
import uuid
from typing import Any

import structlog

from terminal_payments.models import (
    PaymentErrorCode,
    PaymentFailureCode,
    PaymentInteractionState,
    PaymentProvider,
    PaymentRequest,
    PaymentResult,
    PaymentSDKError,
    RefundRequest,
    SdkPaymentStatus,
)
from terminal_payments.strategies.base import PaymentStrategy, StateChangeCallback

logger = structlog.get_logger(__name__)

# Outcomes selectable per instance via config["outcome"]
MOCK_OUTCOMES = {
    "success": {"type": "success"},
    "declined": {
        "type": "decline",
        "code": PaymentFailureCode.PAYMENT_DECLINED.value,
        "reason": "Card was declined",
    },
    "network_error": {"type": "error", "code": PaymentErrorCode.NETWORK_ERROR},
    "terminal_busy": {"type": "error", "code": PaymentErrorCode.TERMINAL_BUSY},
}


class MockStrategy(PaymentStrategy):
    """
    Mock strategy for testing.

    Args:
        config: Configuration dictionary with optional keys:
            - outcome: One of MOCK_OUTCOMES (default "success")
            - latency_ms: Simulated time spent waiting for the card
    """

    provider = PaymentProvider.MOCK

    def __init__(
        self,
        config: dict[str, Any] | None = None,
        outcome: str = "success",
        latency_ms: int = 2000,
    ) -> None:
        self.config = config or {}
        self.outcome = self.config.get("outcome", outcome)
        self.latency_ms = self.config.get("latency_ms", latency_ms)
        if self.outcome not in MOCK_OUTCOMES:
            raise ValueError(f"Unknown mock outcome: {self.outcome}")

        self._session_id: str | None = None
        self._abort: asyncio.Event | None = None

        logger.info(
            "mock_strategy_initialized",
            outcome=self.outcome,
            latency_ms=self.latency_ms,
        )

    async def process_payment(
        self,
        request: PaymentRequest,
        on_state_change: StateChangeCallback,
    ) -> PaymentResult:
        return await self._simulate(request.order_ref, on_state_change)

    async def refund_transaction(
        self,
        request: RefundRequest,
        on_state_change: StateChangeCallback,
    ) -> PaymentResult:
        return await self._simulate(request.order_ref, on_state_change)

    async def cancel_transaction(self, on_state_change: StateChangeCallback) -> bool:
        if not self._session_id or self._abort is None:
            return False
        logger.info("mock_cancel_confirmed", session_id=self._session_id)
        self._session_id = None
        self._abort.set()
        return True

    async def verify_final_status(
        self,
        request: PaymentRequest | RefundRequest,
        session_id: str,
    ) -> PaymentResult:
        return self._result(request.order_ref, session_id)

    async def _simulate(self, order_ref: str, on_state_change: StateChangeCallback) -> PaymentResult:
        on_state_change(PaymentInteractionState.CONNECTING)

        behavior = MOCK_OUTCOMES[self.outcome]
        if behavior["type"] == "error":
            logger.warning("mock_initiate_failed", order_ref=order_ref, code=behavior["code"].value)
            raise PaymentSDKError(behavior["code"], f"Mock terminal error: {self.outcome}")

        session_id = f"mock_sess_{uuid.uuid4().hex[:16]}"
        abort = asyncio.Event()
        self._session_id = session_id
        self._abort = abort

        try:
            on_state_change(PaymentInteractionState.REQUIRES_INPUT, session_id)
            try:
                await asyncio.wait_for(abort.wait(), timeout=self.latency_ms / 1000.0)
            except asyncio.TimeoutError:
                return self._result(order_ref, session_id)

            raise PaymentSDKError(PaymentErrorCode.CANCELLED, "Transaction cancelled")
        finally:
            if self._session_id == session_id:
                self._session_id = None
            if self._abort is abort:
                self._abort = None

    def _result(self, order_ref: str, session_id: str) -> PaymentResult:
        behavior = MOCK_OUTCOMES[self.outcome]
        if behavior["type"] == "success":
            logger.info("mock_payment_success", order_ref=order_ref, session_id=session_id)
            return PaymentResult(
                success=True,
                status=SdkPaymentStatus.SUCCESS,
                order_id=order_ref,
                transaction_id=session_id,
            )

        return PaymentResult(
            success=False,
            status=SdkPaymentStatus.FAILED,
            order_id=order_ref,
            transaction_id=session_id,
            error_code=behavior.get("code", PaymentFailureCode.SYSTEM_UNKNOWN.value),
            error_message=behavior.get("reason", "Mock failure"),
        )
