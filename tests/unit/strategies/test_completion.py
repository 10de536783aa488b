"""Unit tests for the notification/poll/abort completion race."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from helpers.notifications import make_status, publish_when_subscribed, wait_for_subscriber
from terminal_payments.models import PaymentErrorCode, PaymentSDKError, SimplePaymentStatus
from terminal_payments.strategies.completion import STATUS_CHANGED_EVENT, await_completion, poll_status

CHANNEL = "viva.kiosk.requests.sess-1"


def start_race(messaging, query_status, abort, timings, on_progress=None):
    return asyncio.create_task(
        await_completion(
            messaging=messaging,
            channel=CHANNEL,
            query_status=query_status,
            abort=abort,
            timings=timings,
            on_progress=on_progress,
        )
    )


class TestAwaitCompletion:
    """Test suite for await_completion."""

    @pytest.mark.asyncio
    async def test_notification_resolves_without_polling(self, messaging, fast_timings):
        """Test a final notification inside the window wins and no poll happens."""
        query_status = AsyncMock()
        race = start_race(messaging, query_status, asyncio.Event(), fast_timings)

        await publish_when_subscribed(messaging, CHANNEL, {"orderId": "order-123", "status": "Success"})
        status = await race

        assert status.status == SimplePaymentStatus.SUCCESS
        query_status.assert_not_awaited()
        assert messaging.subscriber_count(CHANNEL, STATUS_CHANGED_EVENT) == 0

        # Let the cancelled window timer run out; polling must stay stopped
        await asyncio.sleep(fast_timings.notification_wait_seconds * 2)
        query_status.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_polls_after_notification_window(self, messaging, fast_timings):
        """Test polling starts after the window and returns the first final status."""
        query_status = AsyncMock(
            side_effect=[make_status("Pending"), make_status("Pending"), make_status("Success")]
        )

        status = await start_race(messaging, query_status, asyncio.Event(), fast_timings)

        assert status.is_success
        assert query_status.await_count == 3
        assert messaging.subscriber_count(CHANNEL, STATUS_CHANGED_EVENT) == 0

    @pytest.mark.asyncio
    async def test_pending_notification_reports_progress(self, messaging, fast_timings):
        """Test pending notifications keep the race open and report progress."""
        on_progress = MagicMock()
        race = start_race(messaging, AsyncMock(), asyncio.Event(), fast_timings, on_progress)

        await publish_when_subscribed(messaging, CHANNEL, {"orderId": "order-123", "status": "Pending"})
        assert not race.done()
        on_progress.assert_called_once()

        await publish_when_subscribed(messaging, CHANNEL, {"orderId": "order-123", "status": "FAILED"})
        status = await race

        assert status.status == SimplePaymentStatus.FAILED

    @pytest.mark.asyncio
    async def test_abort_raises_cancelled(self, messaging, fast_timings):
        """Test a confirmed cancel aborts the race."""
        abort = asyncio.Event()
        query_status = AsyncMock()
        race = start_race(messaging, query_status, abort, fast_timings)
        await wait_for_subscriber(messaging, CHANNEL)

        abort.set()

        with pytest.raises(PaymentSDKError) as exc_info:
            await race

        assert exc_info.value.code == PaymentErrorCode.CANCELLED
        assert messaging.subscriber_count(CHANNEL, STATUS_CHANGED_EVENT) == 0
        query_status.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_notification_beats_simultaneous_abort(self, messaging, fast_timings):
        abort = asyncio.Event()
        race = start_race(messaging, AsyncMock(), abort, fast_timings)
        await wait_for_subscriber(messaging, CHANNEL)

        messaging.publish(CHANNEL, STATUS_CHANGED_EVENT, {"orderId": "order-123", "status": "Success"})
        abort.set()

        status = await race
        assert status.is_success

    @pytest.mark.asyncio
    async def test_invalid_notification_is_ignored(self, messaging, fast_timings):
        query_status = AsyncMock(return_value=make_status("Success"))
        race = start_race(messaging, query_status, asyncio.Event(), fast_timings)

        await publish_when_subscribed(messaging, CHANNEL, {"status": "NotAStatus"})
        status = await race

        assert status.is_success
        query_status.assert_awaited()

    @pytest.mark.asyncio
    async def test_poll_errors_are_retried(self, messaging, fast_timings):
        """Test a failing status query does not fail the payment."""
        query_status = AsyncMock(
            side_effect=[
                PaymentSDKError(PaymentErrorCode.NETWORK_ERROR, "Backend down"),
                make_status("Success"),
            ]
        )

        status = await start_race(messaging, query_status, asyncio.Event(), fast_timings)

        assert status.is_success
        assert query_status.await_count == 2

    @pytest.mark.asyncio
    async def test_poll_deadline_raises_timeout(self, messaging, fast_timings):
        query_status = AsyncMock(return_value=make_status("Pending"))

        with pytest.raises(PaymentSDKError, match="polling failed") as exc_info:
            await start_race(messaging, query_status, asyncio.Event(), fast_timings)

        assert exc_info.value.code == PaymentErrorCode.TIMEOUT
        assert messaging.subscriber_count(CHANNEL, STATUS_CHANGED_EVENT) == 0


class TestPollStatus:
    """Test suite for poll_status."""

    @pytest.mark.asyncio
    async def test_hung_query_stops_at_deadline(self, fast_timings):
        """Test a status query that never answers is bounded by the deadline."""

        async def hang():
            await asyncio.sleep(10)

        with pytest.raises(PaymentSDKError, match="Payment verification timed out") as exc_info:
            await asyncio.wait_for(poll_status(hang, fast_timings), timeout=2)

        assert exc_info.value.code == PaymentErrorCode.TIMEOUT
