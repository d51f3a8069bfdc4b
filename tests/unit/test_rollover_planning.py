"""Unit tests for per-payer obligation planning during rollover."""

from decimal import Decimal

import pytest

from src.models.obligation import Obligation, ObligationStatus, SalaryObligation
from src.services.errors import InternalLedgerError
from src.services.rollover_service import (
    check_planned_rows,
    plan_salary_obligation,
    plan_tuition_obligation,
)


@pytest.mark.unit
class TestPlanTuitionObligation:
    def test_first_period_bills_base_fee(self):
        row = plan_tuition_obligation(1, 10, Decimal("100"))

        assert row["base_amount"] == Decimal("100.00")
        assert row["carried_forward_amount"] == Decimal("0")
        assert row["total_due"] == Decimal("100.00")
        assert row["amount_paid"] == Decimal("0")
        assert row["outstanding"] == Decimal("100.00")
        assert row["status"] == ObligationStatus.UNPAID
        assert row["advance_periods_remaining"] == 0

    def test_unpaid_balance_is_carried_forward(self):
        row = plan_tuition_obligation(1, 11, Decimal("100"), prior_outstanding=Decimal("40"))

        assert row["carried_forward_amount"] == Decimal("40.00")
        assert row["total_due"] == Decimal("140.00")
        assert row["outstanding"] == Decimal("140.00")
        assert row["status"] == ObligationStatus.UNPAID

    def test_advance_credit_waives_the_period(self):
        row = plan_tuition_obligation(1, 11, Decimal("100"), credit_periods_remaining=3)

        assert row["total_due"] == Decimal("0")
        assert row["amount_paid"] == Decimal("100.00")
        assert row["outstanding"] == Decimal("0")
        assert row["status"] == ObligationStatus.PAID
        assert row["advance_periods_remaining"] == 2

    def test_advance_coverage_does_not_merge_prior_debt(self):
        row = plan_tuition_obligation(
            1, 11, Decimal("100"), prior_outstanding=Decimal("60"), credit_periods_remaining=1
        )

        assert row["carried_forward_amount"] == Decimal("0")
        assert row["total_due"] == Decimal("0")
        assert row["advance_periods_remaining"] == 0

    def test_planned_rows_satisfy_invariants(self):
        rows = [
            plan_tuition_obligation(1, 5, Decimal("100")),
            plan_tuition_obligation(2, 5, Decimal("80"), prior_outstanding=Decimal("20")),
            plan_tuition_obligation(3, 5, Decimal("120"), credit_periods_remaining=2),
        ]

        check_planned_rows(Obligation, rows)


@pytest.mark.unit
class TestPlanSalaryObligation:
    def test_plain_salary_is_unpaid(self):
        row = plan_salary_obligation(7, 3, Decimal("500"))

        assert row["total_due"] == Decimal("500.00")
        assert row["advance_applied_amount"] == Decimal("0")
        assert row["status"] == ObligationStatus.UNPAID

    def test_unpaid_salary_is_outstanding(self):
        row = plan_salary_obligation(7, 3, Decimal("500"), prior_outstanding=Decimal("200"))

        assert row["carried_forward_amount"] == Decimal("200.00")
        assert row["total_due"] == Decimal("700.00")
        assert row["status"] == ObligationStatus.OUTSTANDING

    def test_partial_advance_reduces_salary(self):
        row = plan_salary_obligation(
            7,
            3,
            Decimal("500"),
            credit_amount_per_period=Decimal("200"),
            credit_periods_remaining=2,
        )

        assert row["advance_applied_amount"] == Decimal("200.00")
        assert row["total_due"] == Decimal("300.00")
        assert row["outstanding"] == Decimal("300.00")
        assert row["status"] == ObligationStatus.ADVANCE_APPLIED
        assert row["advance_periods_remaining"] == 1

    def test_advance_with_carried_balance_is_partial(self):
        row = plan_salary_obligation(
            7,
            3,
            Decimal("500"),
            prior_outstanding=Decimal("100"),
            credit_amount_per_period=Decimal("200"),
            credit_periods_remaining=1,
        )

        assert row["total_due"] == Decimal("400.00")
        assert row["status"] == ObligationStatus.PARTIAL

    def test_full_advance_settles_salary(self):
        row = plan_salary_obligation(
            7,
            3,
            Decimal("500"),
            credit_amount_per_period=Decimal("750"),
            credit_periods_remaining=1,
        )

        assert row["advance_applied_amount"] == Decimal("500.00")
        assert row["total_due"] == Decimal("0")
        assert row["status"] == ObligationStatus.PAID

    def test_exhausted_credit_is_ignored(self):
        row = plan_salary_obligation(
            7,
            3,
            Decimal("500"),
            credit_amount_per_period=Decimal("200"),
            credit_periods_remaining=0,
        )

        assert row["advance_applied_amount"] == Decimal("0")
        assert row["total_due"] == Decimal("500.00")
        assert row["advance_periods_remaining"] == 0


@pytest.mark.unit
def test_check_planned_rows_rejects_broken_row(caplog):
    row = plan_salary_obligation(7, 3, Decimal("500"))
    row["outstanding"] = Decimal("-5.00")

    with pytest.raises(InternalLedgerError):
        check_planned_rows(SalaryObligation, [row])

    assert "invariant violated" in caplog.text
