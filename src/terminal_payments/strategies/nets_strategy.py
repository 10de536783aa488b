"""
Nets Connect@Cloud terminal integration.

Purchases and refunds (return of goods) share one initiate endpoint; the
backend answers with a Connect@Cloud request id that correlates the
notification channel and the status queries.
"""

import asyncio

import structlog

from terminal_payments.adapters import MessagingAdapter
from terminal_payments.clients import PaymentApiClient
from terminal_payments.models import (
    NetsOptions,
    PaymentErrorCode,
    PaymentFailureCode,
    PaymentInteractionState,
    PaymentProvider,
    PaymentRequest,
    PaymentResult,
    PaymentSDKError,
    PaymentStatusDto,
    ProviderConflict,
    RefundRequest,
    SdkPaymentStatus,
    SimplePaymentStatus,
    TerminalConfig,
)
from terminal_payments.models.provider import (
    NetsCancelPayload,
    NetsTerminalOptions,
    NetsTransactionPayload,
    NetsTransactionType,
)
from terminal_payments.strategies.base import PaymentStrategy, StateChangeCallback
from terminal_payments.strategies.completion import CompletionTimings, await_completion

logger = structlog.get_logger(__name__)


class NetsStrategy(PaymentStrategy):
    """Nets cloud terminal strategy."""

    provider = PaymentProvider.NETS
    channel_prefix = "nets.requests"

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
        self._request_id: str | None = None
        self._abort: asyncio.Event | None = None

    @property
    def business_id(self) -> int:
        return int(self.config.store_id)

    async def process_payment(
        self,
        request: PaymentRequest,
        on_state_change: StateChangeCallback,
    ) -> PaymentResult:
        on_state_change(PaymentInteractionState.CONNECTING)

        options = request.options if isinstance(request.options, NetsOptions) else NetsOptions()
        payload = NetsTransactionPayload(
            amount=request.amount_cents,
            business_id=self.business_id,
            currency=request.currency,
            display_id=request.display_id,
            reference_id=request.order_ref,
            options=NetsTerminalOptions(
                transaction_type=NetsTransactionType.PURCHASE,
                vat_amount=options.vat_amount,
                operator_id=options.operator_id,
            ),
        )

        return await self._run(payload, request.order_ref, on_state_change)

    async def refund_transaction(
        self,
        request: RefundRequest,
        on_state_change: StateChangeCallback,
    ) -> PaymentResult:
        on_state_change(PaymentInteractionState.CONNECTING)

        payload = NetsTransactionPayload(
            amount=request.amount_cents,
            business_id=self.business_id,
            currency=request.currency,
            display_id=request.display_id,
            reference_id=request.order_ref,
            original_transaction_id=request.original_transaction_id,
            options=NetsTerminalOptions(transaction_type=NetsTransactionType.RETURN_OF_GOODS),
        )

        return await self._run(payload, request.order_ref, on_state_change)

    async def cancel_transaction(self, on_state_change: StateChangeCallback) -> bool:
        request_id = self._request_id
        if not request_id:
            return False

        abort = self._abort
        self._request_id = None

        logger.info("nets_cancel_requested", session_id=request_id)

        try:
            await self.api.cancel_nets_transaction(
                NetsCancelPayload(request_id=request_id, business_id=self.business_id)
            )
        except PaymentSDKError as e:
            logger.warning(
                "nets_cancel_rejected",
                session_id=request_id,
                error_code=e.code.value,
                error=str(e),
            )
            return False

        if abort is not None:
            abort.set()
        logger.info("nets_cancel_confirmed", session_id=request_id)
        return True

    async def verify_final_status(
        self,
        request: PaymentRequest | RefundRequest,
        session_id: str,
    ) -> PaymentResult:
        try:
            status = await self._query_status(request.order_ref, session_id)
        except PaymentSDKError as e:
            raise PaymentSDKError(
                e.code,
                "Failed to verify final Nets status",
                e,
            ) from e

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

    async def _run(
        self,
        payload: NetsTransactionPayload,
        order_ref: str,
        on_state_change: StateChangeCallback,
    ) -> PaymentResult:
        abort = asyncio.Event()
        self._abort = abort
        transaction_type = payload.options.transaction_type.value

        logger.info(
            "nets_transaction_starting",
            order_ref=order_ref,
            amount_cents=payload.amount,
            transaction_type=transaction_type,
        )

        try:
            try:
                response = await self.api.initiate_nets_transaction(payload)
            except ProviderConflict as e:
                raise PaymentSDKError(
                    PaymentErrorCode.TERMINAL_BUSY,
                    "Nets terminal is busy with another transaction",
                    e,
                ) from e
            except PaymentSDKError as e:
                raise PaymentSDKError(
                    PaymentErrorCode.NETWORK_ERROR,
                    f"Failed to create Nets {transaction_type} transaction",
                    e,
                ) from e

            request_id = response.connect_cloud_request_id
            if not request_id:
                raise PaymentSDKError(
                    PaymentErrorCode.STRATEGY_ERROR,
                    "connectCloudRequestId is missing from response",
                )

            self._request_id = request_id
            try:
                on_state_change(PaymentInteractionState.REQUIRES_INPUT, request_id)

                status = await await_completion(
                    messaging=self.messaging,
                    channel=f"{self.channel_prefix}.{request_id}",
                    query_status=lambda: self._query_status(order_ref, request_id),
                    abort=abort,
                    timings=self.timings,
                    on_progress=lambda _: on_state_change(PaymentInteractionState.PROCESSING, request_id),
                )
            finally:
                if self._request_id == request_id:
                    self._request_id = None

            return self._to_result(status, order_ref)
        finally:
            if self._abort is abort:
                self._abort = None

    async def _query_status(self, order_ref: str, request_id: str) -> PaymentStatusDto:
        return await self.api.get_payment_status(
            business_id=self.business_id,
            order_id=order_ref,
            provider=self.provider.value,
            reference_id=request_id,
        )

    def _to_result(self, status: PaymentStatusDto, order_ref: str) -> PaymentResult:
        error = status.error
        is_success = status.is_success

        if is_success:
            result_status = SdkPaymentStatus.SUCCESS
        elif status.status == SimplePaymentStatus.CANCELLED:
            result_status = SdkPaymentStatus.CANCELLED
        else:
            result_status = SdkPaymentStatus.FAILED

        error_code = error.code if error else None
        error_message = error.message if error else None
        if not is_success and not error_code:
            if result_status == SdkPaymentStatus.CANCELLED:
                error_code = PaymentFailureCode.PAYMENT_CANCELLED_BY_USER.value
                error_message = error_message or "Transaction cancelled on the terminal"
            else:
                error_code = PaymentFailureCode.SYSTEM_UNKNOWN.value
                error_message = "Transaction failed without error details"

        return PaymentResult(
            success=is_success,
            status=result_status,
            order_id=status.order_id or order_ref,
            transaction_id=status.transaction_id,
            error_code=error_code,
            error_message=error_message,
            error_reference=error.reference_error if error else None,
            transaction=status.transaction,
        )
