"""Unit tests for payment validation, settlement and line item splitting."""

from decimal import Decimal

import pytest

from src.models.obligation import Obligation, ObligationStatus
from src.models.payment import LineItemType, PaymentKind
from src.services.errors import ConflictError, ValidationError
from src.services.payment_service import parse_amount, parse_kind, settle, split_line_items


def _obligation(total_due="50.00", amount_paid="0.00", base="50.00", status=ObligationStatus.UNPAID):
    total_due, amount_paid = Decimal(total_due), Decimal(amount_paid)
    return Obligation(
        payer_id=1,
        period_id=1,
        base_amount=Decimal(base),
        carried_forward_amount=total_due - Decimal(base),
        total_due=total_due,
        amount_paid=amount_paid,
        outstanding=max(Decimal("0"), total_due - amount_paid),
        status=status,
        advance_periods_remaining=0,
    )


@pytest.mark.unit
class TestParseAmount:
    @pytest.mark.parametrize("raw", [0, "-1", "abc", "NaN", "Infinity", None, "10.001"])
    def test_rejects_invalid_amounts(self, raw):
        with pytest.raises(ValidationError):
            parse_amount(raw)

    def test_accepts_numbers_and_strings(self):
        assert parse_amount(40) == Decimal("40.00")
        assert parse_amount("12.5") == Decimal("12.50")
        assert parse_amount(Decimal("0.01")) == Decimal("0.01")


@pytest.mark.unit
def test_parse_kind():
    assert parse_kind("partial") is PaymentKind.PARTIAL
    with pytest.raises(ValidationError, match="normal, partial, advance"):
        parse_kind("refund")


@pytest.mark.unit
class TestSettle:
    def test_partial_payment_must_leave_a_residual(self):
        obligation = _obligation()

        with pytest.raises(ConflictError):
            settle(obligation, Decimal("50.00"), PaymentKind.PARTIAL)
        assert obligation.amount_paid == Decimal("0.00")

    def test_normal_payment_cannot_exceed_outstanding(self):
        obligation = _obligation()

        with pytest.raises(ConflictError, match="exceeds"):
            settle(obligation, Decimal("60.00"), PaymentKind.NORMAL)

    def test_paid_obligation_rejects_payment(self):
        obligation = _obligation(amount_paid="50.00", status=ObligationStatus.PAID)

        with pytest.raises(ConflictError, match="already fully paid"):
            settle(obligation, Decimal("1.00"), PaymentKind.NORMAL)

    def test_partial_then_normal_settles(self):
        obligation = _obligation()

        settle(obligation, Decimal("20.00"), PaymentKind.PARTIAL)
        assert obligation.outstanding == Decimal("30.00")
        assert obligation.status == ObligationStatus.PARTIAL

        settle(obligation, Decimal("30.00"), PaymentKind.NORMAL)
        assert obligation.amount_paid == Decimal("50.00")
        assert obligation.outstanding == Decimal("0")
        assert obligation.status == ObligationStatus.PAID
        assert obligation.invariant_violations() == []

    def test_normal_payment_below_outstanding_is_partial(self):
        obligation = _obligation()

        settle(obligation, Decimal("10.00"), PaymentKind.NORMAL)

        assert obligation.status == ObligationStatus.PARTIAL
        assert obligation.outstanding == Decimal("40.00")


@pytest.mark.unit
class TestSplitLineItems:
    def test_payment_covers_base_then_carried_debt(self):
        items = split_line_items(Decimal("120"), Decimal("100"), paid_before=Decimal("0"))

        assert [(i.item_type, i.amount) for i in items] == [
            (LineItemType.BASE_FEE, Decimal("100")),
            (LineItemType.CARRIED_FORWARD, Decimal("20")),
        ]

    def test_second_payment_only_settles_carried_debt(self):
        items = split_line_items(Decimal("40"), Decimal("100"), paid_before=Decimal("100"))

        assert [(i.item_type, i.amount) for i in items] == [
            (LineItemType.CARRIED_FORWARD, Decimal("40")),
        ]

    def test_advance_applied_reduces_base_portion(self):
        items = split_line_items(
            Decimal("300"), Decimal("500"), paid_before=Decimal("0"), advance_applied=Decimal("300")
        )

        assert [(i.item_type, i.amount) for i in items] == [
            (LineItemType.BASE_FEE, Decimal("200")),
            (LineItemType.CARRIED_FORWARD, Decimal("100")),
        ]
