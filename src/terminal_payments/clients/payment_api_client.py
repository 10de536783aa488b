"""Payment backend client for driving card terminals."""

import uuid
from typing import Any

import httpx
import structlog
from pydantic import BaseModel, ValidationError

from terminal_payments.models.exceptions import PaymentErrorCode, PaymentSDKError, ProviderConflict
from terminal_payments.models.provider import (
    NetsCancelPayload,
    NetsTransactionPayload,
    NetsTransactionResponse,
    PaymentStatusDto,
    VivaCancelPayload,
    VivaRefundPayload,
    VivaSessionResponse,
    VivaTransactionPayload,
)

logger = structlog.get_logger(__name__)


class PaymentApiClient:
    """
    Client for the payment backend that fronts the terminal providers.

    The backend exposes initiate/cancel/refund endpoints per provider and a
    shared status endpoint. Transport faults are translated into
    PaymentSDKError so strategies never see raw httpx exceptions:

    - timeouts → TIMEOUT
    - connection errors and 5xx → NETWORK_ERROR
    - 409 → ProviderConflict (the provider already finalized, or the terminal is busy)
    - other 4xx → STRATEGY_ERROR
    """

    def __init__(
        self,
        base_url: str,
        auth_token: str,
        timeout_seconds: float = 15.0,
    ):
        """
        Initialize the payment backend client.

        Args:
            base_url: Base URL of the payment backend (e.g., "http://localhost:8000")
            auth_token: Bearer token sent on every request
            timeout_seconds: Request timeout in seconds (default: 15.0)
        """
        self.base_url = base_url.rstrip("/")
        self.auth_token = auth_token
        self.timeout_seconds = timeout_seconds
        self.http_client = httpx.AsyncClient(timeout=timeout_seconds)

        logger.info(
            "payment_api_client_initialized",
            base_url=base_url,
            timeout_seconds=timeout_seconds,
        )

    async def close(self) -> None:
        """Close the HTTP client connection pool."""
        await self.http_client.aclose()

    async def initiate_viva_transaction(self, payload: VivaTransactionPayload) -> VivaSessionResponse:
        data = await self._request("POST", "/v1/payments/viva/transactions", json_body=payload)
        return self._parse(VivaSessionResponse, data)

    async def cancel_viva_transaction(self, payload: VivaCancelPayload) -> None:
        await self._request("POST", "/v1/payments/viva/transactions/cancel", json_body=payload)

    async def refund_viva_transaction(self, payload: VivaRefundPayload) -> VivaSessionResponse:
        data = await self._request("POST", "/v1/payments/viva/refunds", json_body=payload)
        return self._parse(VivaSessionResponse, data)

    async def initiate_nets_transaction(
        self, payload: NetsTransactionPayload
    ) -> NetsTransactionResponse:
        data = await self._request("POST", "/v1/payments/nets/transactions", json_body=payload)
        return self._parse(NetsTransactionResponse, data)

    async def cancel_nets_transaction(self, payload: NetsCancelPayload) -> None:
        await self._request("POST", "/v1/payments/nets/transactions/cancel", json_body=payload)

    async def get_payment_status(
        self,
        business_id: int,
        order_id: str,
        provider: str,
        reference_id: str | None = None,
    ) -> PaymentStatusDto:
        """
        Query the current status of a terminal transaction.

        Args:
            business_id: Provider business (store) id
            order_id: Caller order reference
            provider: Provider name ("viva", "nets")
            reference_id: Provider session/request id, if known

        Returns:
            PaymentStatusDto with Pending/Success/Failed/Cancelled status
        """
        params: dict[str, Any] = {
            "businessId": business_id,
            "orderId": order_id,
            "provider": provider,
        }
        if reference_id:
            params["referenceId"] = reference_id

        data = await self._request("GET", "/v1/payments/status", params=params)
        return self._parse(PaymentStatusDto, data)

    async def _request(
        self,
        method: str,
        path: str,
        json_body: BaseModel | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        correlation_id = str(uuid.uuid4())
        url = f"{self.base_url}{path}"

        logger.debug(
            "payment_api_request",
            method=method,
            url=url,
            correlation_id=correlation_id,
        )

        try:
            response = await self.http_client.request(
                method,
                url,
                headers={
                    "Authorization": f"Bearer {self.auth_token}",
                    "Content-Type": "application/json",
                    "X-Request-ID": correlation_id,
                },
                json=(
                    json_body.model_dump(by_alias=True, exclude_none=True)
                    if json_body is not None
                    else None
                ),
                params=params,
            )
        except httpx.TimeoutException as e:
            logger.error(
                "payment_api_timeout",
                url=url,
                correlation_id=correlation_id,
                error=str(e),
            )
            raise PaymentSDKError(
                PaymentErrorCode.TIMEOUT, f"Payment backend timeout ({path})", e
            ) from e
        except httpx.RequestError as e:
            # Network errors, connection errors, etc.
            logger.error(
                "payment_api_request_error",
                url=url,
                correlation_id=correlation_id,
                error=str(e),
            )
            raise PaymentSDKError(
                PaymentErrorCode.NETWORK_ERROR, f"Payment backend request error: {e}", e
            ) from e

        if response.status_code == 409:
            logger.warning(
                "payment_api_conflict",
                url=url,
                correlation_id=correlation_id,
            )
            raise ProviderConflict(f"Payment backend rejected {path} with 409 Conflict")

        elif response.status_code >= 500:
            logger.error(
                "payment_api_server_error",
                url=url,
                status_code=response.status_code,
                correlation_id=correlation_id,
            )
            raise PaymentSDKError(
                PaymentErrorCode.NETWORK_ERROR,
                f"Payment backend unavailable (status: {response.status_code})",
            )

        elif response.status_code >= 400:
            logger.warning(
                "payment_api_client_error",
                url=url,
                status_code=response.status_code,
                correlation_id=correlation_id,
            )
            raise PaymentSDKError(
                PaymentErrorCode.STRATEGY_ERROR,
                f"Payment backend rejected request (status: {response.status_code})",
            )

        if response.status_code == 204 or not response.content:
            return None

        try:
            return response.json()
        except ValueError as e:
            logger.warning(
                "payment_api_invalid_body",
                url=url,
                status_code=response.status_code,
                correlation_id=correlation_id,
            )
            raise PaymentSDKError(
                PaymentErrorCode.STRATEGY_ERROR,
                f"Payment backend returned a non-JSON body ({path})",
                e,
            ) from e

    def _parse(self, model: type[BaseModel], data: Any) -> Any:
        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise PaymentSDKError(
                PaymentErrorCode.STRATEGY_ERROR,
                f"Unexpected payment backend response for {model.__name__}",
                e,
            ) from e

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()
