"""
Completion race shared by the terminal strategies.

Once a terminal acknowledges a request, its outcome can arrive three ways:

1. A push notification on the provider/session channel (best effort).
2. Status polling, started only after the notification window elapses.
3. An abort, raised when the provider confirmed a cancel.

Whichever resolves first wins. The losers are always stopped: the
subscription is removed and the poll task is cancelled before returning.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

import structlog
from pydantic import ValidationError

from terminal_payments.adapters import MessagingAdapter
from terminal_payments.config import settings
from terminal_payments.models import PaymentErrorCode, PaymentSDKError, PaymentStatusDto

logger = structlog.get_logger(__name__)

STATUS_CHANGED_EVENT = "payment:status-changed"

StatusQuery = Callable[[], Awaitable[PaymentStatusDto]]


@dataclass(frozen=True)
class CompletionTimings:
    notification_wait_seconds: float = 10.0
    poll_interval_seconds: float = 2.0
    poll_deadline_seconds: float = 120.0

    @classmethod
    def from_settings(cls) -> "CompletionTimings":
        return cls(
            notification_wait_seconds=settings.completion.notification_wait_seconds,
            poll_interval_seconds=settings.completion.poll_interval_seconds,
            poll_deadline_seconds=settings.completion.poll_deadline_seconds,
        )


async def await_completion(
    *,
    messaging: MessagingAdapter,
    channel: str,
    query_status: StatusQuery,
    abort: asyncio.Event,
    timings: CompletionTimings,
    on_progress: Optional[Callable[[PaymentStatusDto], None]] = None,
    event: str = STATUS_CHANGED_EVENT,
) -> PaymentStatusDto:
    """
    Wait for the final (non-pending) status of a terminal session.

    Args:
        messaging: Notification subscriber
        channel: Provider/session scoped channel name
        query_status: Coroutine factory calling the provider status endpoint
        abort: Set by cancel_transaction() once the provider confirmed a cancel
        timings: Notification window, poll interval and poll deadline
        on_progress: Called for pending notifications (terminal still busy)
        event: Notification event name

    Returns:
        The first final PaymentStatusDto observed.

    Raises:
        PaymentSDKError: CANCELLED when aborted, TIMEOUT when polling ran out.
    """
    loop = asyncio.get_running_loop()
    notified: asyncio.Future[PaymentStatusDto] = loop.create_future()

    def deliver(data: Any) -> None:
        if notified.done():
            return
        try:
            status = (
                data
                if isinstance(data, PaymentStatusDto)
                else PaymentStatusDto.model_validate(data)
            )
        except ValidationError as e:
            logger.warning("completion_notification_invalid", channel=channel, error=str(e))
            return

        if status.is_pending:
            if on_progress is not None:
                on_progress(status)
            return

        notified.set_result(status)

    def on_message(data: Any) -> None:
        # Transports may call back from their own thread.
        loop.call_soon_threadsafe(deliver, data)

    unsubscribe = messaging.subscribe(channel, event, on_message)
    poll_task = asyncio.create_task(_poll_after_window(query_status, timings, channel))
    abort_task = asyncio.create_task(abort.wait())

    try:
        done, _ = await asyncio.wait(
            {notified, poll_task, abort_task},
            return_when=asyncio.FIRST_COMPLETED,
        )

        # A final notification beats a simultaneous abort.
        if notified in done:
            logger.info("completion_resolved_by_notification", channel=channel)
            return notified.result()

        if poll_task in done:
            status = poll_task.result()
            logger.info("completion_resolved_by_polling", channel=channel, status=status.status.value)
            return status

        logger.info("completion_aborted", channel=channel)
        raise PaymentSDKError(PaymentErrorCode.CANCELLED, "Transaction cancelled")

    finally:
        unsubscribe()
        for task in (poll_task, abort_task):
            if not task.done():
                task.cancel()
            elif not task.cancelled():
                # Mark a losing failure as retrieved.
                task.exception()
        if not notified.done():
            notified.cancel()


async def _poll_after_window(
    query_status: StatusQuery,
    timings: CompletionTimings,
    channel: str,
) -> PaymentStatusDto:
    await asyncio.sleep(timings.notification_wait_seconds)

    logger.info(
        "completion_notification_window_elapsed",
        channel=channel,
        wait_seconds=timings.notification_wait_seconds,
    )

    try:
        return await poll_status(query_status, timings)
    except PaymentSDKError as e:
        raise PaymentSDKError(
            PaymentErrorCode.TIMEOUT,
            "Payment timed out and polling failed",
            e,
        ) from e


async def poll_status(query_status: StatusQuery, timings: CompletionTimings) -> PaymentStatusDto:
    """
    Poll the status endpoint until it reports a final status.

    Query errors and hung queries are logged and retried on the next tick,
    so a flaky backend does not fail a payment that is still in flight.

    Raises:
        PaymentSDKError: TIMEOUT once poll_deadline_seconds have passed.
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timings.poll_deadline_seconds
    attempt = 0

    while True:
        remaining = deadline - loop.time()
        if remaining <= 0:
            break

        attempt += 1
        try:
            status = await asyncio.wait_for(query_status(), timeout=remaining)
        except asyncio.TimeoutError:
            logger.warning("completion_poll_query_timeout", attempt=attempt)
            break
        except PaymentSDKError as e:
            logger.warning(
                "completion_poll_query_failed",
                attempt=attempt,
                error_code=e.code.value,
                error=str(e),
            )
        else:
            if not status.is_pending:
                return status

        await asyncio.sleep(min(timings.poll_interval_seconds, max(deadline - loop.time(), 0)))

    raise PaymentSDKError(PaymentErrorCode.TIMEOUT, "Payment verification timed out")
