"""Tests for PaymentSDK health checks, persistence hooks and recovery."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from helpers.sdk import failed_result, success_result
from terminal_payments.adapters import HealthCheckAdapter, PersistenceAdapter
from terminal_payments.models import (
    HealthStatus,
    PaymentErrorCode,
    PaymentInteractionState,
    PaymentRequest,
    PaymentResult,
    PaymentSDKError,
    SdkPaymentStatus,
    TransactionRecord,
)

State = PaymentInteractionState


@pytest.fixture
def persistence():
    return AsyncMock(spec=PersistenceAdapter)


@pytest.fixture
def health_check():
    adapter = AsyncMock(spec=HealthCheckAdapter)
    adapter.check_health.return_value = HealthStatus(is_healthy=True)
    return adapter


@pytest.fixture
def record():
    return TransactionRecord(
        order_ref="order-123",
        amount_cents=1250,
        currency="EUR",
        status=State.REQUIRES_INPUT,
        created_at=1_700_000_000_000,
        updated_at=1_700_000_000_000,
        display_id="A12",
        session_id="sess-1",
        provider="viva",
    )


def scripted_success(mock_strategy):
    async def process(request, on_state_change):
        on_state_change(State.CONNECTING)
        on_state_change(State.REQUIRES_INPUT, "sess-1")
        return success_result()

    mock_strategy.process_payment.side_effect = process


class TestHealthCheck:
    """Tests for the pre-flight health check."""

    @pytest.mark.asyncio
    async def test_unhealthy_system_refuses_transaction(
        self, make_sdk, mock_strategy, persistence, health_check, payment_request
    ):
        health_check.check_health.return_value = HealthStatus(is_healthy=False, details={"terminal": "offline"})
        sdk = make_sdk(persistence=persistence, health_check=health_check)

        result = await sdk.initiate_transaction(payment_request)

        assert result.success is False
        assert result.error_code == "system.provider_error"
        assert result.error_message == "System is offline or unhealthy"
        mock_strategy.process_payment.assert_not_awaited()
        persistence.save_transaction.assert_not_awaited()
        assert sdk.current_state == State.IDLE

    @pytest.mark.asyncio
    async def test_health_check_error_refuses_transaction(
        self, make_sdk, mock_strategy, persistence, health_check, payment_request
    ):
        health_check.check_health.side_effect = ConnectionError("probe unreachable")
        sdk = make_sdk(persistence=persistence, health_check=health_check)

        result = await sdk.initiate_transaction(payment_request)

        assert result.error_code == "system.provider_error"
        assert "Health check error" in result.error_message
        mock_strategy.process_payment.assert_not_awaited()
        persistence.save_transaction.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_healthy_system_proceeds(self, make_sdk, mock_strategy, health_check, payment_request):
        mock_strategy.process_payment.return_value = success_result()
        sdk = make_sdk(health_check=health_check)

        result = await sdk.initiate_transaction(payment_request)

        assert result.success is True
        health_check.check_health.assert_awaited_once()


class TestPersistenceHooks:
    """Tests for the transaction record and status writes."""

    @pytest.mark.asyncio
    async def test_saves_record_when_accepted(self, make_sdk, mock_strategy, persistence, payment_request):
        scripted_success(mock_strategy)
        sdk = make_sdk(persistence=persistence)

        await sdk.initiate_transaction(payment_request)

        persistence.save_transaction.assert_awaited_once()
        saved = persistence.save_transaction.call_args[0][0]
        assert saved.order_ref == "order-123"
        assert saved.amount_cents == 1250
        assert saved.currency == "EUR"
        assert saved.display_id == "A12"
        assert saved.status == State.IDLE
        assert saved.provider == "viva"
        assert saved.created_at == saved.updated_at

    @pytest.mark.asyncio
    async def test_status_transitions_are_written(self, make_sdk, mock_strategy, persistence, payment_request):
        """Test every transition of the transaction is persisted in order."""
        scripted_success(mock_strategy)
        sdk = make_sdk(persistence=persistence)

        await sdk.initiate_transaction(payment_request)

        calls = persistence.update_transaction_status.await_args_list
        assert [call.args[:2] for call in calls] == [
            ("order-123", State.CONNECTING),
            ("order-123", State.REQUIRES_INPUT),
            ("order-123", State.SUCCESS),
        ]
        assert calls[1].args[2] == {"session_id": "sess-1"}
        assert calls[2].args[2]["transaction_id"] == "sess-1"

    @pytest.mark.asyncio
    async def test_slow_writes_land_in_transition_order(self, make_sdk, mock_strategy, persistence, payment_request):
        """Test a slow intermediate write never overwrites the terminal status."""
        stored = []

        async def update(order_ref, state, details=None):
            if state != State.SUCCESS:
                await asyncio.sleep(0.05)
            stored.append(state)

        persistence.update_transaction_status.side_effect = update
        scripted_success(mock_strategy)
        sdk = make_sdk(persistence=persistence)

        await sdk.initiate_transaction(payment_request)

        assert sdk.current_state == State.SUCCESS
        assert stored == [State.CONNECTING, State.REQUIRES_INPUT, State.SUCCESS]

    @pytest.mark.asyncio
    async def test_refund_record_keeps_original_transaction(
        self, make_sdk, mock_strategy, persistence, refund_request
    ):
        mock_strategy.refund_transaction.return_value = success_result(order_id="refund-123")
        sdk = make_sdk(persistence=persistence)

        await sdk.refund(refund_request)

        saved = persistence.save_transaction.call_args[0][0]
        assert saved.details == {"original_transaction_id": "sess-original"}

    @pytest.mark.asyncio
    async def test_invalid_amount_writes_nothing(self, make_sdk, persistence):
        sdk = make_sdk(persistence=persistence)

        await sdk.initiate_transaction(
            PaymentRequest(order_ref="o1", amount_cents=0, currency="EUR", display_id="d1")
        )

        persistence.save_transaction.assert_not_awaited()
        persistence.update_transaction_status.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_persistence_failures_are_not_fatal(self, make_sdk, mock_strategy, persistence, payment_request):
        scripted_success(mock_strategy)
        persistence.save_transaction.side_effect = RuntimeError("disk full")
        persistence.update_transaction_status.side_effect = RuntimeError("disk full")
        sdk = make_sdk(persistence=persistence)

        result = await sdk.initiate_transaction(payment_request)

        assert result.success is True
        assert sdk.current_state == State.SUCCESS


class TestRecovery:
    """Tests for recover_transaction after a restart."""

    @pytest.mark.asyncio
    async def test_recover_without_session(self, make_sdk, mock_strategy, persistence, record):
        record.session_id = None
        sdk = make_sdk(persistence=persistence)

        result = await sdk.recover_transaction(record)

        assert result.success is False
        assert result.status == SdkPaymentStatus.FAILED
        assert result.error_code == "system.unknown"
        assert result.error_message == "Cannot recover transaction without session ID"
        mock_strategy.verify_final_status.assert_not_awaited()
        persistence.update_transaction_status.assert_awaited_once_with(
            "order-123",
            State.FAILED,
            {"reason": "Cannot recover transaction without session ID"},
        )

    @pytest.mark.asyncio
    async def test_recover_success(self, make_sdk, mock_strategy, persistence, record):
        mock_strategy.verify_final_status.return_value = success_result(transaction_id="tx-1")
        sdk = make_sdk(persistence=persistence)

        result = await sdk.recover_transaction(record)

        assert result.success is True
        request, session_id = mock_strategy.verify_final_status.call_args[0]
        assert request.order_ref == "order-123"
        assert request.amount_cents == 1250
        assert session_id == "sess-1"
        persistence.update_transaction_status.assert_awaited_once_with(
            "order-123",
            State.SUCCESS,
            {"transaction_id": "tx-1", "error_code": None},
        )

    @pytest.mark.asyncio
    async def test_recover_failed(self, make_sdk, mock_strategy, persistence, record):
        mock_strategy.verify_final_status.return_value = failed_result(error_code="DECLINED")
        sdk = make_sdk(persistence=persistence)

        result = await sdk.recover_transaction(record)

        assert result.error_code == "payment.declined"
        assert persistence.update_transaction_status.call_args[0][1] == State.FAILED

    @pytest.mark.asyncio
    async def test_recover_still_pending(self, make_sdk, mock_strategy, persistence, record):
        mock_strategy.verify_final_status.return_value = PaymentResult(
            success=False,
            status=SdkPaymentStatus.PENDING,
            order_id="order-123",
            error_code="terminal.timeout",
        )
        sdk = make_sdk(persistence=persistence)

        result = await sdk.recover_transaction(record)

        assert result.status == SdkPaymentStatus.PENDING
        persistence.update_transaction_status.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_recover_verification_error(self, make_sdk, mock_strategy, persistence, record):
        mock_strategy.verify_final_status.side_effect = PaymentSDKError(
            PaymentErrorCode.NETWORK_ERROR, "Backend down"
        )
        sdk = make_sdk(persistence=persistence)

        result = await sdk.recover_transaction(record)

        assert result.success is False
        assert result.status == SdkPaymentStatus.ERROR
        assert result.error_message == "Backend down"
        assert result.error_code == "system.provider_error"
        persistence.update_transaction_status.assert_awaited_once_with(
            "order-123", State.FAILED, {"error": "Backend down"}
        )

    @pytest.mark.asyncio
    async def test_recover_unexpected_error(self, make_sdk, mock_strategy, persistence, record):
        """Test a non-SDK error during verification still yields a result."""
        mock_strategy.verify_final_status.side_effect = ValueError("invalid literal for int()")
        sdk = make_sdk(persistence=persistence)

        result = await sdk.recover_transaction(record)

        assert result.success is False
        assert result.status == SdkPaymentStatus.ERROR
        assert result.error_code == "system.unknown"
        assert result.error_message == "invalid literal for int()"
        assert result.transaction_id == "sess-1"
        persistence.update_transaction_status.assert_awaited_once_with(
            "order-123", State.FAILED, {"error": "invalid literal for int()"}
        )

    @pytest.mark.asyncio
    async def test_recover_does_not_touch_ui_state(self, make_sdk, mock_strategy, record):
        mock_strategy.verify_final_status.return_value = success_result()
        sdk = make_sdk()

        await sdk.recover_transaction(record)

        assert sdk.current_state == State.IDLE
