"""
Transaction orchestration.

PaymentSDK owns the single UI-facing interaction state for one kiosk and
ties the components together:
- Health check before accepting a transaction
- Persistence of the transaction record and its status transitions
- The provider strategy call, raced against an overall timeout
- Reconciliation with the provider when the outcome is uncertain
- Cancellation intent and ghost-order prevention
- Automatic reset back to IDLE after a terminal outcome

Exactly one transaction can be in flight per instance. Every public call
resolves to a PaymentResult (or a bool for cancel()); only protocol
violations raise.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

import structlog
from structlog.contextvars import bound_contextvars

from terminal_payments._version import __version__
from terminal_payments.adapters import HealthCheckAdapter, MessagingAdapter, PersistenceAdapter
from terminal_payments.clients import PaymentApiClient
from terminal_payments.config import settings
from terminal_payments.models import (
    InvalidStateTransition,
    PaymentErrorCode,
    PaymentFailureCode,
    PaymentInteractionState,
    PaymentRequest,
    PaymentResult,
    PaymentSDKError,
    RefundRequest,
    SdkPaymentStatus,
    TerminalConfig,
    TransactionCallbacks,
    TransactionContext,
    TransactionRecord,
    normalize_error_code,
)
from terminal_payments.strategies import CompletionTimings, PaymentStrategy, get_strategy

StateListener = Callable[[PaymentInteractionState], None]

# States a strategy is allowed to report; the orchestrator owns the rest
_FORWARDED_STATES = frozenset(
    {
        PaymentInteractionState.CONNECTING,
        PaymentInteractionState.REQUIRES_INPUT,
        PaymentInteractionState.PROCESSING,
    }
)


@dataclass
class AutoResetOptions:
    """Delays before a terminal state is reset to IDLE. None means settings default."""

    success_delay_seconds: float | None = None
    failure_delay_seconds: float | None = None


@dataclass
class SDKOptions:
    """
    Optional collaborators and tuning for PaymentSDK.

    Unset numeric values fall back to ``settings.sdk``. Auto-reset is off
    unless ``auto_reset`` is given.
    """

    timeout_seconds: float | None = None
    auto_reset: AutoResetOptions | None = None
    persistence: PersistenceAdapter | None = None
    health_check: HealthCheckAdapter | None = None
    logger: Any = None
    verify_attempts: int | None = None
    verify_attempt_timeout_seconds: float | None = None
    verify_retry_delay_seconds: float | None = None
    timings: CompletionTimings | None = None


@dataclass
class _ActiveTransaction:
    request: PaymentRequest | RefundRequest
    callbacks: TransactionCallbacks
    session_id: str | None = None
    details: dict[str, Any] = field(default_factory=dict)
    verifying_announced: bool = False

    @property
    def order_ref(self) -> str:
        return self.request.order_ref

    def context(self) -> TransactionContext:
        return TransactionContext(order_ref=self.order_ref, ref_payment_id=self.session_id)


class PaymentSDK:
    """
    Transaction orchestrator for a single payment terminal.

    Example:
        sdk = PaymentSDK(api, messaging, TerminalConfig(provider=PaymentProvider.VIVA, kiosk_id="k1", store_id="42"))
        result = await sdk.initiate_transaction(
            PaymentRequest(order_ref="ord-1", amount_cents=1250, currency="EUR", display_id="A12")
        )
    """

    def __init__(
        self,
        api: PaymentApiClient | None,
        messaging: MessagingAdapter | None,
        config: TerminalConfig,
        options: SDKOptions | None = None,
        strategy: PaymentStrategy | None = None,
    ) -> None:
        options = options or SDKOptions()
        sdk_settings = settings.sdk

        self.config = config
        self.logger = options.logger or structlog.get_logger(__name__)
        self.strategy = strategy or get_strategy(config, api, messaging, options.timings)

        self.timeout_seconds = _pick(options.timeout_seconds, sdk_settings.transaction_timeout_seconds)
        self.verify_attempts = max(1, _pick(options.verify_attempts, sdk_settings.verify_attempts))
        self.verify_attempt_timeout_seconds = _pick(
            options.verify_attempt_timeout_seconds, sdk_settings.verify_attempt_timeout_seconds
        )
        self.verify_retry_delay_seconds = _pick(
            options.verify_retry_delay_seconds, sdk_settings.verify_retry_delay_seconds
        )

        self.auto_reset = options.auto_reset
        self.persistence = options.persistence
        self.health_check = options.health_check

        self._state = PaymentInteractionState.IDLE
        self._listeners: list[StateListener] = []
        self._active: _ActiveTransaction | None = None
        self._in_flight = False
        self._reconciling = False
        self._cancellation_requested = False
        self._auto_reset_handle: asyncio.TimerHandle | None = None
        self._next_auto_reset_at: float | None = None
        self._last_write: asyncio.Task[None] | None = None

        self.logger.info(
            "payment_sdk_initialized",
            provider=self.strategy.provider.value,
            kiosk_id=config.kiosk_id,
            store_id=config.store_id,
            version=__version__,
        )

    # ------------------------------------------------------------------
    # Public surface
    # ------------------------------------------------------------------

    @property
    def version(self) -> str:
        return __version__

    @property
    def current_state(self) -> PaymentInteractionState:
        return self._state

    @property
    def next_auto_reset_at(self) -> float | None:
        """Epoch seconds at which the pending auto-reset fires, if one is scheduled."""
        return self._next_auto_reset_at

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register a state listener; returns a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def reset(self) -> None:
        """Return to IDLE from a terminal state. No-op otherwise."""
        if self._state.is_terminal:
            self._transition_to(PaymentInteractionState.IDLE)

    async def initiate_transaction(
        self,
        request: PaymentRequest,
        callbacks: TransactionCallbacks | None = None,
    ) -> PaymentResult:
        """
        Run one purchase on the terminal.

        Returns:
            The final PaymentResult. Never raises for business failures.

        Raises:
            InvalidStateTransition: If a late strategy event tried to leave a
                terminal state.
        """
        return await self._run(request, callbacks, self.strategy.process_payment, "payment")

    async def refund(
        self,
        request: RefundRequest,
        callbacks: TransactionCallbacks | None = None,
    ) -> PaymentResult:
        """Run a refund of ``request.original_transaction_id`` with the same lifecycle as a purchase."""
        return await self._run(request, callbacks, self.strategy.refund_transaction, "refund")

    async def cancel(self) -> bool:
        """
        Request cancellation of the in-flight transaction.

        The intent is recorded before the provider is contacted, so that a
        FAILED outcome is reported as a user cancellation. A SUCCESS still wins.

        Returns:
            True if the provider confirmed the cancel.
        """
        if self._state.is_terminal:
            self.logger.info("cancel_ignored_terminal_state", state=self._state.value)
            return False

        self._cancellation_requested = True
        self.logger.info("cancel_requested", state=self._state.value)

        if self._state != PaymentInteractionState.VERIFYING:
            self._transition_to(PaymentInteractionState.VERIFYING)
            if self._active is not None:
                self._announce_verifying(self._active)

        active = self._active
        try:
            cancelled = await self.strategy.cancel_transaction(
                lambda state, session_id=None: self._on_strategy_state_change(active, state, session_id)
            )
        except Exception as e:
            self.logger.error(
                "cancel_failed",
                error_type=type(e).__name__,
                error=str(e),
                exc_info=True,
            )
            cancelled = False

        if not cancelled and self._state == PaymentInteractionState.VERIFYING and not self._reconciling:
            self._transition_to(PaymentInteractionState.IDLE)

        self.logger.info("cancel_completed", cancelled=cancelled, state=self._state.value)
        return cancelled

    async def recover_transaction(self, record: TransactionRecord) -> PaymentResult:
        """
        Re-verify a persisted transaction after a process restart.

        The outcome is written back through the persistence adapter when it is
        final. A still-pending transaction is returned as PENDING and left
        untouched.
        """
        with bound_contextvars(order_ref=record.order_ref):
            self.logger.info("recovery_started", session_id=record.session_id, status=record.status.value)

            if not record.session_id:
                result = _failure(
                    record.order_ref,
                    SdkPaymentStatus.FAILED,
                    PaymentFailureCode.SYSTEM_UNKNOWN,
                    "Cannot recover transaction without session ID",
                )
                await self._update_status(
                    record.order_ref,
                    PaymentInteractionState.FAILED,
                    {"reason": result.error_message},
                )
                return result

            request = PaymentRequest(
                order_ref=record.order_ref,
                amount_cents=record.amount_cents,
                currency=record.currency,
                display_id=record.display_id or "",
            )

            try:
                verified = await self.strategy.verify_final_status(request, record.session_id)
            except PaymentSDKError as e:
                self.logger.error(
                    "recovery_verification_failed",
                    session_id=record.session_id,
                    error_code=e.code.value,
                    error=e.message,
                )
                result = _failure(record.order_ref, SdkPaymentStatus.ERROR, e.code, e.message, record.session_id)
                await self._update_status(
                    record.order_ref,
                    PaymentInteractionState.FAILED,
                    {"error": e.message},
                )
                return result
            except Exception as e:
                self.logger.error(
                    "recovery_unexpected_error",
                    session_id=record.session_id,
                    error_type=type(e).__name__,
                    error=str(e),
                    exc_info=True,
                )
                result = _failure(
                    record.order_ref,
                    SdkPaymentStatus.ERROR,
                    PaymentErrorCode.UNKNOWN,
                    str(e),
                    record.session_id,
                )
                await self._update_status(
                    record.order_ref,
                    PaymentInteractionState.FAILED,
                    {"error": str(e)},
                )
                return result

            result = _normalized(verified)
            if result.status == SdkPaymentStatus.PENDING:
                self.logger.warning("recovery_still_pending", session_id=record.session_id)
                return result

            final_state = PaymentInteractionState.SUCCESS if result.success else PaymentInteractionState.FAILED
            await self._update_status(
                record.order_ref,
                final_state,
                {"transaction_id": result.transaction_id, "error_code": result.error_code},
            )
            self.logger.info("recovery_completed", final_state=final_state.value, success=result.success)
            return result

    # ------------------------------------------------------------------
    # Transaction lifecycle
    # ------------------------------------------------------------------

    async def _run(
        self,
        request: PaymentRequest | RefundRequest,
        callbacks: TransactionCallbacks | None,
        operation: Callable[..., Awaitable[PaymentResult]],
        kind: str,
    ) -> PaymentResult:
        callbacks = callbacks or TransactionCallbacks()

        if self._in_flight or not self._state.is_resting:
            self.logger.warning(
                "transaction_rejected_in_progress",
                order_ref=request.order_ref,
                state=self._state.value,
            )
            return _failure(
                request.order_ref,
                SdkPaymentStatus.ERROR,
                PaymentFailureCode.SYSTEM_UNKNOWN,
                "A transaction is already in progress",
            )

        self._in_flight = True
        try:
            with bound_contextvars(order_ref=request.order_ref, transaction_kind=kind):
                return await self._execute(request, callbacks, operation)
        finally:
            self._active = None
            self._in_flight = False
            self._reconciling = False
            await self._flush_writes()

    async def _execute(
        self,
        request: PaymentRequest | RefundRequest,
        callbacks: TransactionCallbacks,
        operation: Callable[..., Awaitable[PaymentResult]],
    ) -> PaymentResult:
        self._cancellation_requested = False
        self._transition_to(PaymentInteractionState.IDLE)
        active = _ActiveTransaction(request=request, callbacks=callbacks)

        if request.amount_cents <= 0:
            self.logger.warning("transaction_rejected_invalid_amount", amount_cents=request.amount_cents)
            result = _failure(
                request.order_ref,
                SdkPaymentStatus.ERROR,
                PaymentErrorCode.INVALID_AMOUNT,
                "Amount must be greater than 0",
            )
            self._fire(callbacks.on_error, result)
            return result

        health_error = await self._check_health()
        if health_error is not None:
            result = _failure(
                request.order_ref,
                SdkPaymentStatus.ERROR,
                PaymentErrorCode.HEALTH_CHECK_FAILED,
                health_error,
            )
            self._fire(callbacks.on_error, result)
            return result

        self._active = active
        await self._save_record(request)

        self.logger.info("transaction_started", amount_cents=request.amount_cents, currency=request.currency)

        task = asyncio.ensure_future(
            operation(request, lambda state, session_id=None: self._on_strategy_state_change(active, state, session_id))
        )
        try:
            result = await asyncio.wait_for(task, timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            self.logger.warning("transaction_timed_out", timeout_seconds=self.timeout_seconds)
            return await self._reconcile(
                active,
                PaymentSDKError(PaymentErrorCode.TIMEOUT, "Transaction timed out"),
            )
        except InvalidStateTransition:
            raise
        except PaymentSDKError as e:
            self.logger.warning("transaction_strategy_error", error_code=e.code.value, error=e.message)
            return await self._reconcile(active, e)
        except Exception as e:
            self.logger.error(
                "transaction_unexpected_error",
                error_type=type(e).__name__,
                error=str(e),
                exc_info=True,
            )
            return await self._reconcile(active, PaymentSDKError(PaymentErrorCode.UNKNOWN, str(e), e))

        if result.transaction_id and not active.session_id:
            active.session_id = result.transaction_id

        if result.success:
            return self._finish_success(active, result)

        if self._cancellation_requested:
            return await self._reconcile(active, None, result)

        return self._finish_failure(active, _normalized(result))

    async def _reconcile(
        self,
        active: _ActiveTransaction,
        error: PaymentSDKError | None,
        failed_result: PaymentResult | None = None,
    ) -> PaymentResult:
        """
        Resolve an uncertain outcome by asking the provider.

        Entered when the strategy raised, timed out, or reported a failure
        after a cancel was requested.
        """
        self._reconciling = True
        if self._state != PaymentInteractionState.VERIFYING:
            self._transition_to(PaymentInteractionState.VERIFYING)
            self._announce_verifying(active)

        self.logger.info(
            "reconciliation_started",
            session_id=active.session_id,
            cancellation_requested=self._cancellation_requested,
            error_code=error.code.value if error else None,
        )

        verified: PaymentResult | None = None
        if active.session_id:
            verified = await self.verify_with_retry(active.request, active.session_id)

        if verified is not None and verified.success:
            self.logger.info("reconciliation_found_success", session_id=active.session_id)
            return self._finish_success(active, verified)

        if self._cancellation_requested:
            result = PaymentResult(
                success=False,
                status=SdkPaymentStatus.CANCELLED,
                order_id=active.order_ref,
                transaction_id=active.session_id,
                error_code=PaymentFailureCode.PAYMENT_CANCELLED_BY_USER.value,
                error_message="Transaction cancelled by user",
            )
            return self._finish_failure(active, result)

        if verified is not None:
            result = _normalized(verified)
            if result.status not in (SdkPaymentStatus.FAILED, SdkPaymentStatus.CANCELLED):
                result = PaymentResult(
                    success=False,
                    status=SdkPaymentStatus.ERROR,
                    order_id=result.order_id,
                    transaction_id=result.transaction_id or active.session_id,
                    error_code=result.error_code,
                    error_message=result.error_message,
                    error_reference=result.error_reference,
                    transaction=result.transaction,
                )
        elif error is not None:
            result = _failure(active.order_ref, SdkPaymentStatus.ERROR, error.code, error.message, active.session_id)
        else:
            result = _normalized(failed_result) if failed_result else _failure(
                active.order_ref,
                SdkPaymentStatus.ERROR,
                PaymentFailureCode.SYSTEM_UNKNOWN,
                "Transaction failed",
            )

        return self._finish_failure(active, result)

    async def verify_with_retry(
        self,
        request: PaymentRequest | RefundRequest,
        session_id: str,
    ) -> PaymentResult:
        """
        Query the provider for the final status, retrying on uncertainty.

        Each attempt is bounded by ``verify_attempt_timeout_seconds``. The
        first final (non-pending) status wins. When every attempt timed out
        or stayed pending the result carries ``terminal.timeout``; when any
        attempt failed for another reason it carries ``payment.unknown``.
        """
        timed_out = 0

        for attempt in range(1, self.verify_attempts + 1):
            try:
                result = await asyncio.wait_for(
                    self.strategy.verify_final_status(request, session_id),
                    timeout=self.verify_attempt_timeout_seconds,
                )
            except asyncio.TimeoutError:
                timed_out += 1
                self.logger.warning("verify_attempt_timed_out", attempt=attempt, session_id=session_id)
            except PaymentSDKError as e:
                if e.code == PaymentErrorCode.TIMEOUT:
                    timed_out += 1
                self.logger.warning(
                    "verify_attempt_failed",
                    attempt=attempt,
                    session_id=session_id,
                    error_code=e.code.value,
                    error=e.message,
                )
            except Exception as e:
                self.logger.error(
                    "verify_attempt_unexpected_error",
                    attempt=attempt,
                    session_id=session_id,
                    error_type=type(e).__name__,
                    error=str(e),
                    exc_info=True,
                )
            else:
                if result.status != SdkPaymentStatus.PENDING:
                    self.logger.info(
                        "verify_final_status",
                        attempt=attempt,
                        session_id=session_id,
                        status=result.status.value,
                    )
                    return result
                timed_out += 1
                self.logger.info("verify_attempt_pending", attempt=attempt, session_id=session_id)

            if attempt < self.verify_attempts:
                await asyncio.sleep(self.verify_retry_delay_seconds)

        if timed_out == self.verify_attempts:
            return _failure(
                request.order_ref,
                SdkPaymentStatus.ERROR,
                PaymentFailureCode.TERMINAL_TIMEOUT,
                "Transaction status could not be confirmed in time",
                session_id,
            )

        return _failure(
            request.order_ref,
            SdkPaymentStatus.ERROR,
            PaymentFailureCode.PAYMENT_UNKNOWN,
            "Failed to verify final transaction status",
            session_id,
        )

    def _announce_verifying(self, active: _ActiveTransaction) -> None:
        # on_verifying fires once per transaction, even if a cancel fell back to IDLE
        if active.verifying_announced:
            return
        active.verifying_announced = True
        self._fire(active.callbacks.on_verifying, active.context())

    def _finish_success(self, active: _ActiveTransaction, result: PaymentResult) -> PaymentResult:
        result = _normalized(result)
        if result.transaction_id:
            active.details["transaction_id"] = result.transaction_id
        self._transition_to(PaymentInteractionState.SUCCESS)
        self._fire(active.callbacks.on_success, result)
        self.logger.info("transaction_succeeded", transaction_id=result.transaction_id)
        return result

    def _finish_failure(self, active: _ActiveTransaction, result: PaymentResult) -> PaymentResult:
        active.details["error_code"] = result.error_code
        self._transition_to(PaymentInteractionState.FAILED)
        if result.status == SdkPaymentStatus.CANCELLED:
            self._fire(active.callbacks.on_cancelled, active.context())
        else:
            self._fire(active.callbacks.on_error, result)
        self.logger.info(
            "transaction_failed",
            status=result.status.value,
            error_code=result.error_code,
            error=result.error_message,
        )
        return result

    def _on_strategy_state_change(
        self,
        owner: _ActiveTransaction | None,
        state: PaymentInteractionState,
        session_id: str | None = None,
    ) -> None:
        if self._state.is_terminal:
            # A resolved transaction must never be moved by a late event
            self._transition_to(state)
            return

        if owner is None or owner is not self._active:
            self.logger.warning("stale_strategy_event_ignored", state=state.value)
            return

        if session_id and session_id != owner.session_id:
            owner.session_id = session_id
            owner.details["session_id"] = session_id

        if state not in _FORWARDED_STATES:
            self.logger.debug("strategy_state_ignored", state=state.value)
            return

        if self._cancellation_requested and self._state == PaymentInteractionState.VERIFYING:
            self.logger.debug("strategy_state_suppressed_while_cancelling", state=state.value)
            return

        self._transition_to(state)

        callback = {
            PaymentInteractionState.CONNECTING: owner.callbacks.on_connecting,
            PaymentInteractionState.REQUIRES_INPUT: owner.callbacks.on_requires_input,
            PaymentInteractionState.PROCESSING: owner.callbacks.on_processing,
        }[state]
        self._fire(callback, owner.context())

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    def _transition_to(self, new_state: PaymentInteractionState) -> None:
        current = self._state

        if current.is_terminal and new_state not in (
            PaymentInteractionState.IDLE,
            PaymentInteractionState.INTERNAL_ERROR,
        ):
            self._raise_protocol_violation(current, new_state)

        if new_state == PaymentInteractionState.IDLE:
            self._cancel_auto_reset()

        if new_state == current:
            return

        self._state = new_state
        self.logger.info("state_transition", from_state=current.value, to_state=new_state.value)
        self._notify_listeners(new_state)
        self._schedule_status_write(new_state)

        if new_state.is_terminal:
            self._schedule_auto_reset(new_state)

    def _raise_protocol_violation(
        self,
        current: PaymentInteractionState,
        attempted: PaymentInteractionState,
    ) -> None:
        self.logger.error(
            "invalid_state_transition",
            from_state=current.value,
            to_state=attempted.value,
        )
        if current != PaymentInteractionState.INTERNAL_ERROR:
            self._transition_to(PaymentInteractionState.INTERNAL_ERROR)
        raise InvalidStateTransition(current.value, attempted.value)

    def _notify_listeners(self, state: PaymentInteractionState) -> None:
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception as e:
                self.logger.error(
                    "state_listener_error",
                    state=state.value,
                    error=str(e),
                    exc_info=True,
                )

    def _fire(self, callback: Optional[Callable[[Any], None]], payload: Any) -> None:
        if callback is None:
            return
        try:
            callback(payload)
        except Exception as e:
            self.logger.error(
                "transaction_callback_error",
                callback=getattr(callback, "__name__", repr(callback)),
                error=str(e),
                exc_info=True,
            )

    # ------------------------------------------------------------------
    # Auto-reset
    # ------------------------------------------------------------------

    def _schedule_auto_reset(self, state: PaymentInteractionState) -> None:
        self._cancel_auto_reset()
        if self.auto_reset is None:
            return

        if state == PaymentInteractionState.SUCCESS:
            delay = _pick(self.auto_reset.success_delay_seconds, settings.sdk.auto_reset_success_delay_seconds)
        else:
            delay = _pick(self.auto_reset.failure_delay_seconds, settings.sdk.auto_reset_failure_delay_seconds)

        loop = asyncio.get_running_loop()
        self._auto_reset_handle = loop.call_later(delay, self._fire_auto_reset)
        self._next_auto_reset_at = time.time() + delay
        self.logger.debug("auto_reset_scheduled", state=state.value, delay_seconds=delay)

    def _cancel_auto_reset(self) -> None:
        if self._auto_reset_handle is not None:
            self._auto_reset_handle.cancel()
            self._auto_reset_handle = None
        self._next_auto_reset_at = None

    def _fire_auto_reset(self) -> None:
        self._auto_reset_handle = None
        self._next_auto_reset_at = None
        self.logger.info("auto_reset_fired", state=self._state.value)
        self.reset()

    # ------------------------------------------------------------------
    # Collaborators
    # ------------------------------------------------------------------

    async def _check_health(self) -> str | None:
        """Return an error message when the system is not fit to take payments."""
        if self.health_check is None:
            return None

        try:
            status = await self.health_check.check_health()
        except Exception as e:
            self.logger.error("health_check_error", error=str(e), exc_info=True)
            return f"Health check error: {e}"

        if not status.is_healthy:
            self.logger.warning("health_check_unhealthy", details=status.details)
            return "System is offline or unhealthy"

        return None

    async def _save_record(self, request: PaymentRequest | RefundRequest) -> None:
        if self.persistence is None:
            return

        now_ms = int(time.time() * 1000)
        record = TransactionRecord(
            order_ref=request.order_ref,
            amount_cents=request.amount_cents,
            currency=request.currency,
            status=PaymentInteractionState.IDLE,
            created_at=now_ms,
            updated_at=now_ms,
            display_id=request.display_id,
            provider=self.strategy.provider.value,
        )
        if isinstance(request, RefundRequest):
            record.details["original_transaction_id"] = request.original_transaction_id

        try:
            await self.persistence.save_transaction(record)
        except Exception as e:
            self.logger.error("persistence_save_failed", error=str(e), exc_info=True)

    def _schedule_status_write(self, state: PaymentInteractionState) -> None:
        if self.persistence is None or self._active is None:
            return

        details = dict(self._active.details) or None
        # Each write waits for the previous one so the store ends on the latest state
        self._last_write = asyncio.ensure_future(
            self._chained_update(self._last_write, self._active.order_ref, state, details)
        )

    async def _chained_update(
        self,
        previous: asyncio.Task[None] | None,
        order_ref: str,
        state: PaymentInteractionState,
        details: dict[str, Any] | None,
    ) -> None:
        if previous is not None and not previous.done():
            await asyncio.wait({previous})
        await self._update_status(order_ref, state, details)

    async def _update_status(
        self,
        order_ref: str,
        state: PaymentInteractionState,
        details: dict[str, Any] | None = None,
    ) -> None:
        if self.persistence is None:
            return
        try:
            await self.persistence.update_transaction_status(order_ref, state, details)
        except Exception as e:
            self.logger.error(
                "persistence_update_failed",
                order_ref=order_ref,
                state=state.value,
                error=str(e),
                exc_info=True,
            )

    async def _flush_writes(self) -> None:
        last = self._last_write
        if last is not None:
            await asyncio.wait({last})
            if self._last_write is last:
                self._last_write = None


def _pick(value: Any, default: Any) -> Any:
    return default if value is None else value


def _failure(
    order_ref: str,
    status: SdkPaymentStatus,
    code: PaymentErrorCode | PaymentFailureCode | str | None,
    message: str,
    transaction_id: str | None = None,
) -> PaymentResult:
    return PaymentResult(
        success=False,
        status=status,
        order_id=order_ref,
        transaction_id=transaction_id,
        error_code=normalize_error_code(code),
        error_message=message,
    )


def _normalized(result: PaymentResult) -> PaymentResult:
    """Return ``result`` with its error code mapped onto the public failure codes."""
    if result.success:
        return result
    return PaymentResult(
        success=False,
        status=result.status,
        order_id=result.order_id,
        transaction_id=result.transaction_id,
        error_code=normalize_error_code(result.error_code),
        error_message=result.error_message,
        error_reference=result.error_reference,
        transaction=result.transaction,
    )
