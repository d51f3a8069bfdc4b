"""Ledger API endpoints: periods, payments and payers."""

import logging
from dataclasses import asdict

from fastapi import APIRouter, Depends, FastAPI, Query, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from src.models.obligation import ObligationStatus
from src.models.payer import PayerStatus, PayerType
from src.schemas.ledger import (
    AdvanceCreditResponse,
    ApplyPaymentRequest,
    ApplyPaymentResponse,
    ObligationResponse,
    OpenPeriodRequest,
    OpenPeriodResponse,
    PayerCreateRequest,
    PayerHistoryResponse,
    PayerProfileResponse,
    PayerResponse,
    PayerUpdateRequest,
    PaymentResponse,
    PeriodResponse,
    PeriodSummaryResponse,
    ReceiptResponse,
    TimelineEntryResponse,
)
from src.services import get_db
from src.services.errors import (
    InternalLedgerError,
    LedgerError,
    NotFoundError,
    ValidationError,
)
from src.services.ledger_store import ObligationFilter, PayerFilter
from src.services.notification_service import NotificationService
from src.services.payer_service import PayerService
from src.services.payment_service import PaymentApplicationService
from src.services.period_service import BillingPeriodService
from src.services.rollover_service import PeriodRolloverService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["ledger"])

# Process-wide sink; subscribers are registered at startup
_notifier = NotificationService()


def get_notifier() -> NotificationService:
    """Notification sink dependency (overridden in tests)."""
    return _notifier


# ---------------------------------------------------------------------------
# Error rendering
# ---------------------------------------------------------------------------


async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
    return JSONResponse(status_code=exc.http_status, content=exc.to_response())


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = "; ".join(
        f"{'.'.join(str(part) for part in err['loc'] if part != 'body')}: {err['msg']}"
        for err in exc.errors()
    )
    error = ValidationError(details or "Invalid request")
    return JSONResponse(status_code=error.http_status, content=error.to_response())


async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    error = InternalLedgerError()
    return JSONResponse(status_code=error.http_status, content=error.to_response())


def register_error_handlers(app: FastAPI) -> None:
    """Render every ledger failure as {"error": {code, message, retryable}}."""
    app.add_exception_handler(LedgerError, ledger_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unexpected_error_handler)


def _obligation_response(obligation) -> ObligationResponse:
    response = ObligationResponse.model_validate(obligation)
    response.payer_name = obligation.payer.name if obligation.payer else None
    return response


# ---------------------------------------------------------------------------
# Periods
# ---------------------------------------------------------------------------


@router.post("/periods", response_model=OpenPeriodResponse, status_code=status.HTTP_201_CREATED)
def open_period(
    request: OpenPeriodRequest,
    db: Session = Depends(get_db),  # noqa: B008
    notifier: NotificationService = Depends(get_notifier),  # noqa: B008
) -> OpenPeriodResponse:
    """Open a new billing month and generate its obligations."""
    result = PeriodRolloverService(db, notifier).open_period(
        request.year, request.month, actor_id=request.actor_id
    )
    return OpenPeriodResponse(
        period=PeriodResponse.model_validate(result.period),
        message=result.message,
        tuition_obligations=result.tuition_obligations,
        salary_obligations=result.salary_obligations,
        credits_consumed=result.credits_consumed,
    )


@router.get("/periods", response_model=list[PeriodResponse])
def list_periods(
    limit: int | None = Query(default=None, ge=1),
    db: Session = Depends(get_db),  # noqa: B008
) -> list[PeriodResponse]:
    periods = BillingPeriodService(db).list_periods(limit)
    return [PeriodResponse.model_validate(period) for period in periods]


@router.get("/periods/active", response_model=PeriodResponse)
def get_active_period(db: Session = Depends(get_db)) -> PeriodResponse:  # noqa: B008
    period = BillingPeriodService(db).get_active_period()
    if period is None:
        raise NotFoundError("No active period")
    return PeriodResponse.model_validate(period)


@router.get("/periods/{period_id}/obligations", response_model=list[ObligationResponse])
def list_obligations(
    period_id: int,
    payer_type: PayerType = PayerType.TUITION,
    status_filter: ObligationStatus | None = Query(default=None, alias="status"),
    search: str | None = None,
    department: str | None = None,
    db: Session = Depends(get_db),  # noqa: B008
) -> list[ObligationResponse]:
    filters = ObligationFilter(
        payer_type=payer_type,
        status=status_filter,
        search=search,
        department=department,
    )
    obligations = BillingPeriodService(db).list_obligations(period_id, filters)
    return [_obligation_response(obligation) for obligation in obligations]


@router.get("/periods/{period_id}/summary", response_model=PeriodSummaryResponse)
def period_summary(
    period_id: int,
    payer_type: PayerType = PayerType.TUITION,
    db: Session = Depends(get_db),  # noqa: B008
) -> PeriodSummaryResponse:
    summary = BillingPeriodService(db).period_summary(period_id, payer_type)
    return PeriodSummaryResponse(**asdict(summary))


@router.delete("/periods/{period_id}")
def delete_period(
    period_id: int,
    force: bool = False,
    actor_id: int | None = None,
    db: Session = Depends(get_db),  # noqa: B008
    notifier: NotificationService = Depends(get_notifier),  # noqa: B008
) -> dict:
    """Delete an inactive period; periods with payments need force=true."""
    message = BillingPeriodService(db, notifier).delete_period(
        period_id, force=force, actor_id=actor_id
    )
    return {"message": message}


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------


@router.post("/payments", response_model=ApplyPaymentResponse, status_code=status.HTTP_201_CREATED)
def apply_payment(
    request: ApplyPaymentRequest,
    db: Session = Depends(get_db),  # noqa: B008
    notifier: NotificationService = Depends(get_notifier),  # noqa: B008
) -> ApplyPaymentResponse:
    """Record a normal, partial or advance payment."""
    result = PaymentApplicationService(db, notifier).apply_payment(
        payer_id=request.payer_id,
        period_id=request.period_id,
        amount=request.amount,
        kind=request.kind,
        advance_periods=request.advance_periods,
        note=request.note,
        collected_by=request.collected_by,
    )
    return ApplyPaymentResponse(
        payment=PaymentResponse.model_validate(result.payment),
        notice_text=result.notice_text,
        remaining_balance=result.remaining_balance,
    )


@router.get("/payments/{payment_id}/receipt", response_model=ReceiptResponse)
def get_receipt(payment_id: int, db: Session = Depends(get_db)) -> ReceiptResponse:  # noqa: B008
    receipt = PaymentApplicationService(db).get_receipt(payment_id)
    return ReceiptResponse(
        payment=PaymentResponse.model_validate(receipt.payment),
        payer=PayerResponse.model_validate(receipt.payer),
        period=PeriodResponse.model_validate(receipt.period),
    )


# ---------------------------------------------------------------------------
# Payers
# ---------------------------------------------------------------------------


@router.post("/payers", response_model=PayerResponse, status_code=status.HTTP_201_CREATED)
def register_payer(
    request: PayerCreateRequest,
    db: Session = Depends(get_db),  # noqa: B008
    notifier: NotificationService = Depends(get_notifier),  # noqa: B008
) -> PayerResponse:
    payer = PayerService(db, notifier).register_payer(**request.model_dump())
    return PayerResponse.model_validate(payer)


@router.get("/payers", response_model=list[PayerResponse])
def list_payers(
    payer_type: PayerType | None = None,
    status_filter: PayerStatus | None = Query(default=None, alias="status"),
    search: str | None = None,
    department: str | None = None,
    limit: int | None = Query(default=None, ge=1),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),  # noqa: B008
) -> list[PayerResponse]:
    filters = PayerFilter(
        payer_type=payer_type,
        status=status_filter,
        search=search,
        department=department,
    )
    payers = PayerService(db).list_payers(filters, limit=limit, offset=offset)
    return [PayerResponse.model_validate(payer) for payer in payers]


@router.get("/payers/{payer_id}", response_model=PayerResponse)
def get_payer(payer_id: int, db: Session = Depends(get_db)) -> PayerResponse:  # noqa: B008
    return PayerResponse.model_validate(PayerService(db).get_payer(payer_id))


@router.get("/payers/{payer_id}/history", response_model=PayerHistoryResponse)
def payer_history(
    payer_id: int,
    limit: int = Query(default=100, ge=1),
    db: Session = Depends(get_db),  # noqa: B008
) -> PayerHistoryResponse:
    """Obligations by period and payments with their line items."""
    history = PayerService(db).history(payer_id, limit)
    return PayerHistoryResponse(
        payer=PayerResponse.model_validate(history.payer),
        obligations=[ObligationResponse.model_validate(o) for o in history.obligations],
        payments=[PaymentResponse.model_validate(p) for p in history.payments],
    )


@router.get("/payers/{payer_id}/profile", response_model=PayerProfileResponse)
def payer_profile(payer_id: int, db: Session = Depends(get_db)) -> PayerProfileResponse:  # noqa: B008
    profile = PayerService(db).profile(payer_id)
    return PayerProfileResponse(
        payer=PayerResponse.model_validate(profile.payer),
        timeline=[
            TimelineEntryResponse(
                period=PeriodResponse.model_validate(entry.obligation.period),
                obligation=ObligationResponse.model_validate(entry.obligation),
                carried_forward=entry.carried_forward,
            )
            for entry in profile.timeline
        ],
        advance_credit=(
            AdvanceCreditResponse.model_validate(profile.credit) if profile.credit else None
        ),
        total_outstanding=profile.total_outstanding,
    )


@router.patch("/payers/{payer_id}", response_model=PayerResponse)
def update_payer(
    payer_id: int,
    request: PayerUpdateRequest,
    db: Session = Depends(get_db),  # noqa: B008
    notifier: NotificationService = Depends(get_notifier),  # noqa: B008
) -> PayerResponse:
    """Suspend or reactivate a payer and/or change their fee in one transaction."""
    payer = PayerService(db, notifier).update_payer(
        payer_id,
        status=request.status,
        fee_amount=request.fee_amount,
        actor_id=request.actor_id,
    )
    return PayerResponse.model_validate(payer)


__all__ = ["get_notifier", "register_error_handlers", "router"]
