"""
Viva Wallet terminal integration.

Sales and refunds are started through the payment backend, which answers with
a Viva session id. The outcome is then awaited on the
``viva.kiosk.requests.{session_id}`` channel, with status polling as fallback
(see completion.py).
"""

import asyncio

import structlog

from terminal_payments.adapters import MessagingAdapter
from terminal_payments.clients import PaymentApiClient
from terminal_payments.models import (
    PaymentErrorCode,
    PaymentFailureCode,
    PaymentInteractionState,
    PaymentProvider,
    PaymentRequest,
    PaymentResult,
    PaymentSDKError,
    PaymentStatusDto,
    RefundRequest,
    SdkPaymentStatus,
    SimplePaymentStatus,
    TerminalConfig,
    VivaOptions,
)
from terminal_payments.models.provider import VivaCancelPayload, VivaRefundPayload, VivaTransactionPayload
from terminal_payments.strategies.base import PaymentStrategy, StateChangeCallback
from terminal_payments.strategies.completion import CompletionTimings, await_completion

logger = structlog.get_logger(__name__)


class VivaStrategy(PaymentStrategy):
    """Viva Wallet cloud terminal strategy."""

    provider = PaymentProvider.VIVA
    channel_prefix = "viva.kiosk.requests"

    def __init__(
        self,
        api: PaymentApiClient,
        messaging: MessagingAdapter,
        config: TerminalConfig,
        timings: CompletionTimings | None = None,
    ) -> None:
        self.api = api
        self.messaging = messaging
        self.config = config
        self.timings = timings or CompletionTimings.from_settings()
        self._session_id: str | None = None
        self._abort: asyncio.Event | None = None

    @property
    def business_id(self) -> int:
        return int(self.config.store_id)

    async def process_payment(
        self,
        request: PaymentRequest,
        on_state_change: StateChangeCallback,
    ) -> PaymentResult:
        abort = asyncio.Event()
        self._abort = abort
        on_state_change(PaymentInteractionState.CONNECTING)

        options = request.options if isinstance(request.options, VivaOptions) else VivaOptions()
        payload = VivaTransactionPayload(
            amount=request.amount_cents,
            business_id=self.business_id,
            currency=request.currency,
            display_id=request.display_id,
            reference_id=request.order_ref,
            terminal_id=self.config.kiosk_id,
            installments=options.installments,
            tip_amount=options.tip_amount,
            source_code=options.source_code,
        )

        logger.info(
            "viva_transaction_starting",
            order_ref=request.order_ref,
            amount_cents=request.amount_cents,
            currency=request.currency,
        )

        try:
            response = await self.api.initiate_viva_transaction(payload)
        except PaymentSDKError as e:
            self._release(abort)
            logger.error("viva_transaction_initiate_failed", order_ref=request.order_ref, error=str(e))
            raise PaymentSDKError(
                PaymentErrorCode.NETWORK_ERROR,
                "Failed to create Viva transaction",
                e,
            ) from e

        return await self._await_session(response.session_id, request.order_ref, abort, on_state_change)

    async def refund_transaction(
        self,
        request: RefundRequest,
        on_state_change: StateChangeCallback,
    ) -> PaymentResult:
        abort = asyncio.Event()
        self._abort = abort
        on_state_change(PaymentInteractionState.CONNECTING)

        payload = VivaRefundPayload(
            amount=request.amount_cents,
            business_id=self.business_id,
            currency=request.currency,
            reference_id=request.order_ref,
            terminal_id=self.config.kiosk_id,
            parent_session_id=request.original_transaction_id,
        )

        logger.info(
            "viva_refund_starting",
            order_ref=request.order_ref,
            amount_cents=request.amount_cents,
            original_transaction_id=request.original_transaction_id,
        )

        try:
            response = await self.api.refund_viva_transaction(payload)
        except PaymentSDKError as e:
            self._release(abort)
            raise PaymentSDKError(
                PaymentErrorCode.NETWORK_ERROR,
                "Failed to refund Viva transaction",
                e,
            ) from e

        return await self._await_session(response.session_id, request.order_ref, abort, on_state_change)

    async def cancel_transaction(self, on_state_change: StateChangeCallback) -> bool:
        session_id = self._session_id
        if not session_id:
            return False

        abort = self._abort
        # Drop the local session before the remote call so nothing else uses it half-cancelled.
        self._session_id = None

        logger.info("viva_cancel_requested", session_id=session_id)

        try:
            await self.api.cancel_viva_transaction(
                VivaCancelPayload(cash_register_id=self.config.store_id, session_id=session_id)
            )
        except PaymentSDKError as e:
            # Includes 409: Viva already finalized. Keep listening for the real outcome.
            logger.warning(
                "viva_cancel_rejected",
                session_id=session_id,
                error_code=e.code.value,
                error=str(e),
            )
            return False

        if abort is not None:
            abort.set()
        logger.info("viva_cancel_confirmed", session_id=session_id)
        return True

    async def verify_final_status(
        self,
        request: PaymentRequest | RefundRequest,
        session_id: str,
    ) -> PaymentResult:
        status = await self._query_status(request.order_ref, session_id)

        if status.is_pending:
            return PaymentResult(
                success=False,
                status=SdkPaymentStatus.PENDING,
                order_id=status.order_id or request.order_ref,
                transaction_id=status.transaction_id,
                error_code=PaymentFailureCode.TERMINAL_TIMEOUT.value,
                error_message="Payment was not completed within the allowed time",
            )

        return self._to_result(status, request.order_ref)

    async def _await_session(
        self,
        session_id: str,
        order_ref: str,
        abort: asyncio.Event,
        on_state_change: StateChangeCallback,
    ) -> PaymentResult:
        self._session_id = session_id
        try:
            on_state_change(PaymentInteractionState.REQUIRES_INPUT, session_id)

            status = await await_completion(
                messaging=self.messaging,
                channel=f"{self.channel_prefix}.{session_id}",
                query_status=lambda: self._query_status(order_ref, session_id),
                abort=abort,
                timings=self.timings,
                on_progress=lambda _: on_state_change(PaymentInteractionState.PROCESSING, session_id),
            )
            return self._to_result(status, order_ref)
        finally:
            if self._session_id == session_id:
                self._session_id = None
            self._release(abort)

    async def _query_status(self, order_ref: str, session_id: str) -> PaymentStatusDto:
        return await self.api.get_payment_status(
            business_id=self.business_id,
            order_id=order_ref,
            provider=self.provider.value,
            reference_id=session_id,
        )

    def _release(self, abort: asyncio.Event) -> None:
        if self._abort is abort:
            self._abort = None

    def _to_result(self, status: PaymentStatusDto, order_ref: str) -> PaymentResult:
        order_id = status.order_id or order_ref
        error = status.error

        if status.is_success:
            return PaymentResult(
                success=True,
                status=SdkPaymentStatus.SUCCESS,
                order_id=order_id,
                transaction_id=status.transaction_id,
                transaction=status.transaction,
            )

        if status.status == SimplePaymentStatus.CANCELLED:
            return PaymentResult(
                success=False,
                status=SdkPaymentStatus.CANCELLED,
                order_id=order_id,
                transaction_id=status.transaction_id,
                error_code=(error and error.code) or PaymentFailureCode.PAYMENT_CANCELLED_BY_USER.value,
                error_message=(error and error.message) or "Transaction cancelled on the terminal",
                error_reference=error.reference_error if error else None,
            )

        if error is None or not error.code:
            return PaymentResult(
                success=False,
                status=SdkPaymentStatus.FAILED,
                order_id=order_id,
                transaction_id=status.transaction_id,
                error_code=PaymentFailureCode.SYSTEM_UNKNOWN.value,
                error_message="Transaction failed without error details",
            )

        return PaymentResult(
            success=False,
            status=SdkPaymentStatus.FAILED,
            order_id=order_id,
            transaction_id=status.transaction_id,
            error_code=error.code,
            error_message=error.message or "",
            error_reference=error.reference_error,
        )
