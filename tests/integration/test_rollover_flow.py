"""Integration tests for opening billing periods."""

from decimal import Decimal

import pytest
from sqlalchemy import func, select

from src.models import (
    AdvanceCredit,
    AuditLog,
    BillingPeriod,
    Obligation,
    ObligationStatus,
    PayerStatus,
    PayerType,
    PaymentKind,
    SalaryObligation,
)
from src.services import rollover_service
from src.services.errors import ConflictError, InternalLedgerError, ValidationError
from src.services.notification_service import PERIOD_CREATED, REPORTS_UPDATED
from src.services.payment_service import PaymentApplicationService
from src.services.rollover_service import PeriodRolloverService


@pytest.fixture
def rollover(db_session, notifier):
    return PeriodRolloverService(db_session, notifier)


@pytest.fixture
def payments(db_session, notifier):
    return PaymentApplicationService(db_session, notifier)


def obligation_of(db_session, payer, period, model=Obligation):
    return db_session.execute(
        select(model).where(model.payer_id == payer.id, model.period_id == period.id)
    ).scalar_one()


def count(db_session, model) -> int:
    return db_session.execute(select(func.count()).select_from(model)).scalar_one()


@pytest.mark.integration
class TestOpenPeriod:
    def test_first_period_seeds_active_payers(self, db_session, rollover, make_payer, recorder):
        amina = make_payer("Amina Yusuf", "100.00")
        make_payer("Bilal Okoro", "80.00", status=PayerStatus.SUSPENDED)
        staff_member = make_payer("Hauwa Bello", "500.00", payer_type=PayerType.STAFF)

        result = rollover.open_period(2025, 1)

        assert result.period.is_active is True
        assert result.message == "Month setup completed successfully"
        assert result.tuition_obligations == 1
        assert result.salary_obligations == 1
        assert result.credits_consumed == 0

        obligation = obligation_of(db_session, amina, result.period)
        assert obligation.total_due == Decimal("100.00")
        assert obligation.status == ObligationStatus.UNPAID
        salary = obligation_of(db_session, staff_member, result.period, SalaryObligation)
        assert salary.total_due == Decimal("500.00")
        assert count(db_session, Obligation) == 1

        assert recorder.names == [PERIOD_CREATED, REPORTS_UPDATED]
        assert recorder.payloads(PERIOD_CREATED)[0]["id"] == result.period.id

    def test_only_newest_period_is_active(self, db_session, rollover, make_payer):
        make_payer("Amina Yusuf")

        january = rollover.open_period(2025, 1).period
        february = rollover.open_period(2025, 2).period

        active = db_session.execute(
            select(BillingPeriod).where(BillingPeriod.is_active.is_(True))
        ).scalars().all()
        assert [p.id for p in active] == [february.id]
        db_session.refresh(january)
        assert january.is_active is False

    def test_duplicate_period_conflicts_without_writes(self, db_session, rollover, make_payer, recorder):
        make_payer("Amina Yusuf")
        rollover.open_period(2025, 1)
        before = (count(db_session, BillingPeriod), count(db_session, Obligation), count(db_session, AuditLog))
        recorder.events.clear()

        with pytest.raises(ConflictError, match="01/2025 already exists"):
            rollover.open_period(2025, 1)

        after = (count(db_session, BillingPeriod), count(db_session, Obligation), count(db_session, AuditLog))
        assert after == before
        assert recorder.events == []

    @pytest.mark.parametrize("year, month", [(2025, 0), (2025, 13), (1999, 5), (2101, 1)])
    def test_invalid_year_or_month(self, db_session, rollover, year, month):
        with pytest.raises(ValidationError):
            rollover.open_period(year, month)
        assert count(db_session, BillingPeriod) == 0

    def test_rollover_is_audited(self, db_session, rollover, make_payer):
        make_payer("Amina Yusuf")

        period = rollover.open_period(2025, 3, actor_id=42).period

        audit = db_session.execute(select(AuditLog)).scalar_one()
        assert (audit.entity_type, audit.entity_id, audit.action) == ("period", period.id, "create")
        assert audit.actor_id == 42
        assert audit.changes["tuition_obligations"] == 1

    def test_chunked_inserts_cover_every_payer(self, db_session, rollover, make_payer):
        for i in range(5):
            make_payer(f"Parent {i}", "90.00")
        rollover.store.batch_size = 2

        result = rollover.open_period(2025, 1)

        assert result.tuition_obligations == 5
        assert count(db_session, Obligation) == 5

    def test_suspended_payer_keeps_history_and_is_skipped(self, db_session, rollover, make_payer):
        amina = make_payer("Amina Yusuf")
        january = rollover.open_period(2025, 1).period
        amina.status = PayerStatus.SUSPENDED
        db_session.commit()

        february = rollover.open_period(2025, 2).period

        assert obligation_of(db_session, amina, january).total_due == Decimal("100.00")
        assert db_session.execute(
            select(Obligation).where(Obligation.period_id == february.id)
        ).first() is None


@pytest.mark.integration
class TestCarryForward:
    def test_unpaid_balance_rolls_into_next_period(self, db_session, rollover, payments, make_payer):
        payer = make_payer("Amina Yusuf", "100.00")
        january = rollover.open_period(2025, 1).period
        payments.apply_payment(payer.id, january.id, "60.00", PaymentKind.PARTIAL)
        assert obligation_of(db_session, payer, january).outstanding == Decimal("40.00")

        february = rollover.open_period(2025, 2).period

        obligation = obligation_of(db_session, payer, february)
        assert obligation.carried_forward_amount == Decimal("40.00")
        assert obligation.total_due == Decimal("140.00")
        assert obligation.outstanding == Decimal("140.00")
        assert obligation.status == ObligationStatus.UNPAID

    def test_carried_balance_is_collected_on_the_new_period(
        self, db_session, rollover, payments, make_payer
    ):
        payer = make_payer("Amina Yusuf", "100.00")
        january = rollover.open_period(2025, 1).period
        payments.apply_payment(payer.id, january.id, "60.00", PaymentKind.PARTIAL)
        february = rollover.open_period(2025, 2).period

        with pytest.raises(ConflictError, match="carried forward to 02/2025"):
            payments.apply_payment(payer.id, january.id, "40.00", PaymentKind.NORMAL)

        assert obligation_of(db_session, payer, january).outstanding == Decimal("40.00")
        result = payments.apply_payment(payer.id, february.id, "140.00", PaymentKind.NORMAL)
        assert result.remaining_balance == Decimal("0.00")
        obligation = obligation_of(db_session, payer, february)
        assert (obligation.total_due, obligation.status) == (Decimal("140.00"), ObligationStatus.PAID)

    def test_carry_forward_skips_missing_months(self, db_session, rollover, make_payer):
        payer = make_payer("Amina Yusuf", "100.00")
        rollover.open_period(2024, 11)

        march = rollover.open_period(2025, 3).period

        assert obligation_of(db_session, payer, march).total_due == Decimal("200.00")


@pytest.mark.integration
class TestAdvanceCoverage:
    def test_three_prepaid_periods_then_normal_billing(self, db_session, rollover, payments, make_payer):
        payer = make_payer("Yusuf Danjuma", "100.00")
        january = rollover.open_period(2025, 1).period
        payments.apply_payment(payer.id, january.id, "100.00", PaymentKind.NORMAL)
        payments.apply_payment(
            payer.id, january.id, "300.00", PaymentKind.ADVANCE, advance_periods=3
        )
        assert obligation_of(db_session, payer, january).advance_periods_remaining == 3

        remaining = []
        for month in (2, 3, 4):
            result = rollover.open_period(2025, month)
            assert result.credits_consumed == 1
            obligation = obligation_of(db_session, payer, result.period)
            assert obligation.status == ObligationStatus.PAID
            assert obligation.total_due == Decimal("0.00")
            assert obligation.outstanding == Decimal("0.00")
            assert obligation.amount_paid == Decimal("100.00")
            remaining.append(obligation.advance_periods_remaining)
        assert remaining == [2, 1, 0]

        may = rollover.open_period(2025, 5)
        obligation = obligation_of(db_session, payer, may.period)
        assert may.credits_consumed == 0
        assert obligation.status == ObligationStatus.UNPAID
        assert obligation.total_due == Decimal("100.00")

        credit = db_session.execute(select(AdvanceCredit)).scalar_one()
        db_session.refresh(credit)
        assert (credit.periods_paid, credit.periods_remaining) == (3, 0)

    def test_prior_debt_stays_on_prior_period_when_covered(self, db_session, rollover, payments, make_payer):
        payer = make_payer("Yusuf Danjuma", "100.00")
        january = rollover.open_period(2025, 1).period
        payments.apply_payment(payer.id, january.id, "200.00", PaymentKind.ADVANCE, advance_periods=2)

        february = rollover.open_period(2025, 2).period

        assert obligation_of(db_session, payer, february).carried_forward_amount == Decimal("0.00")
        old = obligation_of(db_session, payer, january)
        assert old.outstanding == Decimal("100.00")
        assert old.status == ObligationStatus.ADVANCED

    def test_debt_behind_covered_period_stays_payable(self, db_session, rollover, payments, make_payer):
        payer = make_payer("Yusuf Danjuma", "100.00")
        january = rollover.open_period(2025, 1).period
        payments.apply_payment(payer.id, january.id, "200.00", PaymentKind.ADVANCE, advance_periods=2)
        rollover.open_period(2025, 2)

        result = payments.apply_payment(payer.id, january.id, "100.00", PaymentKind.NORMAL)

        assert result.remaining_balance == Decimal("0.00")
        assert obligation_of(db_session, payer, january).status == ObligationStatus.PAID

    def test_staff_advance_reduces_salary(self, db_session, rollover, payments, make_payer):
        staff = make_payer("Hauwa Bello", "500.00", payer_type=PayerType.STAFF)
        january = rollover.open_period(2025, 1).period
        payments.apply_payment(staff.id, january.id, "400.00", PaymentKind.ADVANCE, advance_periods=2)
        payments.apply_payment(staff.id, january.id, "500.00", PaymentKind.NORMAL)

        february = rollover.open_period(2025, 2).period
        salary = obligation_of(db_session, staff, february, SalaryObligation)
        assert salary.advance_applied_amount == Decimal("200.00")
        assert salary.total_due == Decimal("300.00")
        assert salary.status == ObligationStatus.ADVANCE_APPLIED
        assert salary.advance_periods_remaining == 1

        march = rollover.open_period(2025, 3).period
        salary = obligation_of(db_session, staff, march, SalaryObligation)
        assert salary.carried_forward_amount == Decimal("300.00")
        assert salary.total_due == Decimal("600.00")
        assert salary.status == ObligationStatus.PARTIAL

        april = rollover.open_period(2025, 4).period
        salary = obligation_of(db_session, staff, april, SalaryObligation)
        assert salary.advance_applied_amount == Decimal("0.00")
        assert salary.total_due == Decimal("1100.00")
        assert salary.status == ObligationStatus.OUTSTANDING


@pytest.mark.integration
class TestRolloverAtomicity:
    def test_failure_mid_rollover_leaves_no_trace(self, db_session, rollover, make_payer, monkeypatch):
        make_payer("Amina Yusuf")
        make_payer("Hauwa Bello", "500.00", payer_type=PayerType.STAFF)
        january = rollover.open_period(2025, 1).period

        def explode(*args, **kwargs):
            raise RuntimeError("disk full")

        monkeypatch.setattr(rollover.store, "batch_decrement_credits", explode)

        with pytest.raises(RuntimeError):
            rollover.open_period(2025, 2)

        periods = db_session.execute(select(BillingPeriod)).scalars().all()
        assert [(p.id, p.is_active) for p in periods] == [(january.id, True)]
        assert count(db_session, Obligation) == 1

    def test_invariant_breach_is_internal_error(self, db_session, rollover, make_payer, monkeypatch, caplog):
        make_payer("Amina Yusuf")
        original = rollover_service.plan_tuition_obligation

        def corrupt(*args, **kwargs):
            row = original(*args, **kwargs)
            row["outstanding"] = row["total_due"] - Decimal("1.00")
            return row

        monkeypatch.setattr(rollover_service, "plan_tuition_obligation", corrupt)

        with pytest.raises(InternalLedgerError):
            rollover.open_period(2025, 1)

        assert count(db_session, BillingPeriod) == 0
        assert "invariant violated" in caplog.text
