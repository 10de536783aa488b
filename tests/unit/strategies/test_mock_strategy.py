"""Unit tests for MockStrategy."""

import asyncio
from unittest.mock import MagicMock

import pytest

from terminal_payments.models import (
    PaymentErrorCode,
    PaymentInteractionState,
    PaymentSDKError,
    SdkPaymentStatus,
)
from terminal_payments.strategies import MockStrategy


@pytest.fixture
def on_state_change():
    return MagicMock()


@pytest.mark.asyncio
class TestMockStrategyOutcomes:
    """Test configured outcomes."""

    async def test_success(self, payment_request, on_state_change):
        strategy = MockStrategy(latency_ms=5)

        result = await strategy.process_payment(payment_request, on_state_change)

        assert result.success is True
        assert result.status == SdkPaymentStatus.SUCCESS
        assert result.transaction_id.startswith("mock_sess_")
        on_state_change.assert_any_call(PaymentInteractionState.CONNECTING)
        on_state_change.assert_any_call(PaymentInteractionState.REQUIRES_INPUT, result.transaction_id)

    async def test_declined(self, payment_request, on_state_change):
        strategy = MockStrategy(config={"outcome": "declined", "latency_ms": 5})

        result = await strategy.process_payment(payment_request, on_state_change)

        assert result.success is False
        assert result.status == SdkPaymentStatus.FAILED
        assert result.error_code == "payment.declined"
        assert result.error_message == "Card was declined"

    @pytest.mark.parametrize(
        "outcome,code",
        [
            ("network_error", PaymentErrorCode.NETWORK_ERROR),
            ("terminal_busy", PaymentErrorCode.TERMINAL_BUSY),
        ],
    )
    async def test_error_outcomes_raise(self, payment_request, on_state_change, outcome, code):
        strategy = MockStrategy(outcome=outcome)

        with pytest.raises(PaymentSDKError) as exc_info:
            await strategy.process_payment(payment_request, on_state_change)

        assert exc_info.value.code == code

    async def test_unknown_outcome(self):
        with pytest.raises(ValueError, match="Unknown mock outcome"):
            MockStrategy(outcome="explode")

    async def test_refund(self, refund_request, on_state_change):
        result = await MockStrategy(latency_ms=5).refund_transaction(refund_request, on_state_change)

        assert result.success is True
        assert result.order_id == "refund-123"


@pytest.mark.asyncio
class TestMockStrategyCancel:
    """Test cancellation while waiting for the card."""

    async def test_cancel_during_wait(self, payment_request, on_state_change):
        strategy = MockStrategy(latency_ms=1000)
        task = asyncio.create_task(strategy.process_payment(payment_request, on_state_change))
        await asyncio.sleep(0.01)

        assert await strategy.cancel_transaction(on_state_change) is True

        with pytest.raises(PaymentSDKError) as exc_info:
            await task
        assert exc_info.value.code == PaymentErrorCode.CANCELLED

    async def test_cancel_when_idle(self, on_state_change):
        assert await MockStrategy().cancel_transaction(on_state_change) is False

    async def test_verify_reports_configured_outcome(self, payment_request):
        result = await MockStrategy(outcome="declined").verify_final_status(payment_request, "mock_sess_1")

        assert result.status == SdkPaymentStatus.FAILED
        assert result.transaction_id == "mock_sess_1"
