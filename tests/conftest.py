"""Pytest configuration and shared fixtures for all tests.

This module provides shared test fixtures including:
- Terminal configuration and sample requests
- A mocked payment backend client
- In-memory messaging for push notifications
- Millisecond completion timings so races resolve quickly
"""

from unittest.mock import AsyncMock

import pytest

from terminal_payments.adapters import InMemoryMessaging
from terminal_payments.clients import PaymentApiClient
from terminal_payments.models import (
    PaymentProvider,
    PaymentRequest,
    PaymentResult,
    RefundRequest,
    SdkPaymentStatus,
    TerminalConfig,
)
from terminal_payments.sdk import PaymentSDK, SDKOptions
from terminal_payments.strategies import CompletionTimings, PaymentStrategy


@pytest.fixture
def terminal_config():
    """Viva terminal configuration for a kiosk in store 42."""
    return TerminalConfig(provider=PaymentProvider.VIVA, kiosk_id="kiosk-1", store_id="42")


@pytest.fixture
def nets_config():
    return TerminalConfig(provider=PaymentProvider.NETS, kiosk_id="kiosk-1", store_id="351")


@pytest.fixture
def fast_timings():
    """Notification window and poll cadence in milliseconds."""
    return CompletionTimings(
        notification_wait_seconds=0.05,
        poll_interval_seconds=0.01,
        poll_deadline_seconds=0.3,
    )


@pytest.fixture
def messaging():
    return InMemoryMessaging()


@pytest.fixture
def mock_api():
    """Payment backend client with every endpoint mocked."""
    return AsyncMock(spec=PaymentApiClient)


@pytest.fixture
def payment_request():
    return PaymentRequest(
        order_ref="order-123",
        amount_cents=1250,
        currency="EUR",
        display_id="A12",
    )


@pytest.fixture
def refund_request():
    return RefundRequest(
        order_ref="refund-123",
        amount_cents=1250,
        currency="EUR",
        display_id="A12",
        original_transaction_id="sess-original",
    )


@pytest.fixture
def mock_strategy():
    """Strategy double; tests script process_payment/verify_final_status per case."""
    strategy = AsyncMock(spec=PaymentStrategy)
    strategy.provider = PaymentProvider.VIVA
    strategy.cancel_transaction.return_value = False
    strategy.verify_final_status.return_value = PaymentResult(
        success=False,
        status=SdkPaymentStatus.PENDING,
        order_id="order-123",
    )
    return strategy


@pytest.fixture
def make_sdk(mock_strategy, terminal_config):
    """Build a PaymentSDK with millisecond timeouts; keyword args override SDKOptions."""

    def _make(strategy=None, **overrides):
        options = {
            "timeout_seconds": 1.0,
            "verify_attempts": 3,
            "verify_attempt_timeout_seconds": 0.05,
            "verify_retry_delay_seconds": 0.01,
        }
        options.update(overrides)
        return PaymentSDK(
            api=None,
            messaging=None,
            config=terminal_config,
            options=SDKOptions(**options),
            strategy=strategy or mock_strategy,
        )

    return _make
