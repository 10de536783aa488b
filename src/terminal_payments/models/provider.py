"""Pydantic models for the payment backend JSON API.

The backend speaks camelCase; fields are declared snake_case with camelCase
aliases so both spellings validate.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class SimplePaymentStatus(str, Enum):
    """Status values reported by the status endpoint and by notifications."""

    PENDING = "Pending"
    SUCCESS = "Success"
    FAILED = "Failed"
    CANCELLED = "Cancelled"

    @classmethod
    def _missing_(cls, value: object) -> "SimplePaymentStatus | None":
        # Notifications are not consistent about casing ("FAILED", "success").
        if isinstance(value, str):
            for member in cls:
                if member.value.lower() == value.lower():
                    return member
        return None


class ProviderError(_CamelModel):
    code: Optional[str] = None
    message: Optional[str] = None
    reference_error: Optional[str] = None


class PaymentStatusDto(_CamelModel):
    """Status payload shared by the status endpoint and push notifications."""

    order_id: str = Field(..., description="Caller order reference")
    status: SimplePaymentStatus
    transaction_id: Optional[str] = None
    error: Optional[ProviderError] = None
    transaction: Optional[dict[str, Any]] = None

    @property
    def is_pending(self) -> bool:
        return self.status == SimplePaymentStatus.PENDING

    @property
    def is_success(self) -> bool:
        return self.status == SimplePaymentStatus.SUCCESS


class VivaTransactionPayload(_CamelModel):
    amount: int
    business_id: int
    currency: str
    display_id: str
    reference_id: str
    terminal_id: str
    show_receipt: bool = True
    show_transaction_result: bool = True
    installments: Optional[int] = None
    tip_amount: Optional[int] = None
    source_code: Optional[str] = None


class VivaRefundPayload(_CamelModel):
    amount: int
    business_id: int
    currency: str
    reference_id: str
    terminal_id: str
    parent_session_id: str


class VivaSessionResponse(_CamelModel):
    session_id: str
    order_id: Optional[str] = None


class VivaCancelPayload(_CamelModel):
    cash_register_id: str
    session_id: str


class NetsTransactionType(str, Enum):
    PURCHASE = "Purchase"
    RETURN_OF_GOODS = "ReturnOfGoods"


class NetsTerminalOptions(_CamelModel):
    allow_pin_bypass: bool = True
    transaction_type: NetsTransactionType = NetsTransactionType.PURCHASE
    vat_amount: Optional[int] = None
    operator_id: Optional[str] = None


class NetsTransactionPayload(_CamelModel):
    amount: int
    business_id: int
    currency: str
    display_id: str
    reference_id: str
    options: NetsTerminalOptions = Field(default_factory=NetsTerminalOptions)
    original_transaction_id: Optional[str] = None


class NetsTransactionResponse(_CamelModel):
    connect_cloud_request_id: Optional[str] = None


class NetsCancelPayload(_CamelModel):
    request_id: str
    business_id: int
