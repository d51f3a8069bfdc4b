"""Concurrency tests against a file-backed SQLite database.

Each worker uses its own session, as request handlers do. Writers are
serialised by the database lock, so read-modify-write cycles on the same
obligation never interleave.
"""

import threading
from decimal import Decimal

import pytest
from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from src.models import Base, BillingPeriod, Obligation, ObligationStatus, Payer, PayerType, PaymentKind
from src.services.db import create_ledger_engine
from src.services.errors import LedgerError
from src.services.payment_service import PaymentApplicationService
from src.services.rollover_service import PeriodRolloverService


@pytest.fixture
def file_sessions(tmp_path):
    engine = create_ledger_engine(f"sqlite:///{tmp_path / 'ledger.db'}", timeout_ms=10000)
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def seeded(file_sessions):
    """One tuition payer owing 50.00 in an open period."""
    session = file_sessions()
    try:
        payer = Payer(name="Amina Yusuf", fee_amount=Decimal("50.00"), payer_type=PayerType.TUITION)
        session.add(payer)
        session.commit()
        period = PeriodRolloverService(session).open_period(2025, 1).period
        return payer.id, period.id
    finally:
        session.close()


def run_concurrently(file_sessions, *calls):
    """Start every call at the same time, each with its own session."""
    barrier = threading.Barrier(len(calls))
    outcomes = []
    lock = threading.Lock()

    def worker(call):
        session = file_sessions()
        try:
            barrier.wait()
            value = call(session)
            outcome = ("ok", value)
        except LedgerError as e:
            outcome = (e.code, None)
        finally:
            session.close()
        with lock:
            outcomes.append(outcome)

    threads = [threading.Thread(target=worker, args=(call,)) for call in calls]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)
    return outcomes


def read_obligation(file_sessions, payer_id, period_id):
    session = file_sessions()
    try:
        return session.execute(
            select(Obligation).where(Obligation.payer_id == payer_id, Obligation.period_id == period_id)
        ).scalar_one()
    finally:
        session.close()


@pytest.mark.integration
class TestConcurrentPayments:
    def test_overlapping_payments_never_lose_updates(self, file_sessions, seeded):
        payer_id, period_id = seeded

        def pay(session):
            result = PaymentApplicationService(session).apply_payment(
                payer_id, period_id, "30.00", PaymentKind.NORMAL
            )
            return result.remaining_balance

        outcomes = run_concurrently(file_sessions, pay, pay)

        assert sorted(code for code, _ in outcomes) == ["conflict", "ok"]
        obligation = read_obligation(file_sessions, payer_id, period_id)
        assert obligation.amount_paid == Decimal("30.00")
        assert obligation.outstanding == Decimal("20.00")
        assert obligation.status == ObligationStatus.PARTIAL

    def test_payments_that_fit_are_both_applied(self, file_sessions, seeded):
        payer_id, period_id = seeded

        def pay(session):
            return PaymentApplicationService(session).apply_payment(
                payer_id, period_id, "25.00", PaymentKind.NORMAL
            ).remaining_balance

        outcomes = run_concurrently(file_sessions, pay, pay)

        assert [code for code, _ in outcomes] == ["ok", "ok"]
        assert sorted(value for _, value in outcomes) == [Decimal("0.00"), Decimal("25.00")]
        obligation = read_obligation(file_sessions, payer_id, period_id)
        assert obligation.amount_paid == Decimal("50.00")
        assert obligation.status == ObligationStatus.PAID


@pytest.mark.integration
class TestConcurrentRollovers:
    def test_same_month_is_opened_once(self, file_sessions, seeded):
        def open_february(session):
            return PeriodRolloverService(session).open_period(2025, 2).tuition_obligations

        outcomes = run_concurrently(file_sessions, open_february, open_february)

        assert sorted(code for code, _ in outcomes) == ["conflict", "ok"]

    def test_at_most_one_active_period(self, file_sessions, seeded):
        outcomes = run_concurrently(
            file_sessions,
            lambda session: PeriodRolloverService(session).open_period(2025, 2).credits_consumed,
            lambda session: PeriodRolloverService(session).open_period(2025, 3).credits_consumed,
        )

        assert [code for code, _ in outcomes] == ["ok", "ok"]
        session = file_sessions()
        try:
            active = session.execute(
                select(BillingPeriod).where(BillingPeriod.is_active.is_(True))
            ).scalars().all()
            assert len(active) == 1
        finally:
            session.close()
