"""Pydantic schemas for ledger requests, responses and event payloads."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from src.models.obligation import ObligationStatus
from src.models.payer import PayerStatus, PayerType
from src.models.payment import LineItemType, PaymentKind


class PeriodResponse(BaseModel):
    """Response schema for a billing period."""

    id: int
    year: int
    month: int
    is_active: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class OpenPeriodRequest(BaseModel):
    """Request schema for opening a new billing period."""

    year: int
    month: int
    actor_id: int | None = None


class OpenPeriodResponse(BaseModel):
    """Response schema for a completed rollover."""

    period: PeriodResponse
    message: str
    tuition_obligations: int
    salary_obligations: int
    credits_consumed: int


class ObligationResponse(BaseModel):
    """Response schema for one tuition or salary obligation."""

    id: int
    payer_id: int
    period_id: int
    base_amount: Decimal
    carried_forward_amount: Decimal
    total_due: Decimal
    amount_paid: Decimal
    outstanding: Decimal
    status: ObligationStatus
    advance_periods_remaining: int
    advance_applied_amount: Decimal | None = None
    payer_name: str | None = None

    model_config = ConfigDict(from_attributes=True)


class PayerCreateRequest(BaseModel):
    """Request schema for registering a payer."""

    payer_type: PayerType
    name: str = Field(min_length=1, max_length=255)
    fee_amount: Decimal = Field(gt=0)
    phone_number: str | None = None
    department: str | None = None
    number_of_children: int | None = Field(default=None, ge=0)


class PayerUpdateRequest(BaseModel):
    """Request schema for changing a payer's status or fee."""

    status: PayerStatus | None = None
    fee_amount: Decimal | None = Field(default=None, gt=0)
    actor_id: int | None = None


class PayerResponse(BaseModel):
    """Response schema for a payer."""

    id: int
    payer_type: PayerType
    name: str
    phone_number: str | None
    department: str | None
    number_of_children: int | None
    fee_amount: Decimal
    status: PayerStatus

    model_config = ConfigDict(from_attributes=True)


class ApplyPaymentRequest(BaseModel):
    """Request schema for recording a payment.

    Range checks live in the payment engine so that every caller gets the
    same ledger errors, not only HTTP clients.
    """

    payer_id: int
    period_id: int
    amount: Decimal
    kind: PaymentKind = PaymentKind.NORMAL
    advance_periods: int | None = None
    note: str | None = None
    collected_by: int | None = None


class LineItemResponse(BaseModel):
    """Response schema for a payment line item."""

    item_type: LineItemType
    amount: Decimal
    periods_covered: int | None

    model_config = ConfigDict(from_attributes=True)


class PaymentResponse(BaseModel):
    """Response schema for a payment."""

    id: int
    payer_id: int
    period_id: int
    amount: Decimal
    kind: PaymentKind
    advance_periods: int | None
    collected_by: int | None
    note: str | None
    notice_text: str | None
    created_at: datetime
    line_items: list[LineItemResponse] = []

    model_config = ConfigDict(from_attributes=True)


class ApplyPaymentResponse(BaseModel):
    """Response schema for an applied payment."""

    payment: PaymentResponse
    notice_text: str
    remaining_balance: Decimal


class ReceiptResponse(BaseModel):
    """Response schema for a payment receipt."""

    payment: PaymentResponse
    payer: PayerResponse
    period: PeriodResponse


class AdvanceCreditResponse(BaseModel):
    """Response schema for a payer's advance credit."""

    amount_per_period: Decimal
    periods_paid: int
    periods_remaining: int
    remaining_value: Decimal
    last_payment_id: int | None

    model_config = ConfigDict(from_attributes=True)


class PayerHistoryResponse(BaseModel):
    """Response schema for a payer's obligations and payments."""

    payer: PayerResponse
    obligations: list[ObligationResponse]
    payments: list[PaymentResponse]


class TimelineEntryResponse(BaseModel):
    """One period of a payer profile."""

    period: PeriodResponse
    obligation: ObligationResponse
    carried_forward: bool


class PayerProfileResponse(BaseModel):
    """Response schema for a payer profile."""

    payer: PayerResponse
    timeline: list[TimelineEntryResponse]
    advance_credit: AdvanceCreditResponse | None
    total_outstanding: Decimal


class PeriodSummaryResponse(BaseModel):
    """Response schema for period totals."""

    period_id: int
    payer_type: PayerType
    payer_count: int
    total_due: Decimal
    total_paid: Decimal
    total_outstanding: Decimal
    status_counts: dict[str, int]
    advance_remaining: Decimal


__all__ = [
    "AdvanceCreditResponse",
    "ApplyPaymentRequest",
    "ApplyPaymentResponse",
    "LineItemResponse",
    "ObligationResponse",
    "OpenPeriodRequest",
    "OpenPeriodResponse",
    "PayerCreateRequest",
    "PayerHistoryResponse",
    "PayerProfileResponse",
    "PayerResponse",
    "PayerUpdateRequest",
    "PaymentResponse",
    "PeriodResponse",
    "PeriodSummaryResponse",
    "ReceiptResponse",
    "TimelineEntryResponse",
]
