from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from loan import (
    DEFAULT_LOAN_DAYS,
    Loan,
    LoanStatus,
    OPEN_STATUSES,
    can_renew,
    compute_fine,
    days_remaining,
    is_overdue,
    new_loan,
    refreshed,
    renewed,
    returned,
    whole_days_between,
)

NOW = datetime(2024, 3, 1, 10, 0, 0)


def _loan(**overrides):
    data = dict(patron_id=1, book_id=2, loaned_at=NOW, due_at=NOW + timedelta(days=14))
    data.update(overrides)
    return Loan(**data)


def test_open_statuses_exclude_returned():
    assert LoanStatus.RETURNED not in OPEN_STATUSES
    assert set(OPEN_STATUSES) == {LoanStatus.ACTIVE, LoanStatus.OVERDUE, LoanStatus.RENEWED}


def test_new_loan_defaults_to_fourteen_days():
    record = new_loan(1, 2, NOW)
    assert record.status is LoanStatus.ACTIVE
    assert record.loaned_at == NOW
    assert record.due_at == NOW + timedelta(days=14)
    assert record.returned_at is None
    assert record.fine == Decimal("0.00")


def test_new_loan_explicit_due_date_wins():
    due = NOW + timedelta(days=3)
    assert new_loan(1, 2, NOW, due_at=due, period_days=30).due_at == due


@pytest.mark.parametrize("period", [0, -5])
def test_new_loan_non_positive_period_falls_back(period):
    assert new_loan(1, 2, NOW, period_days=period).due_at == NOW + timedelta(days=DEFAULT_LOAN_DAYS)


def test_fine_is_zero_on_or_before_due_date():
    due = NOW
    assert compute_fine(due, due) == Decimal("0.00")
    assert compute_fine(due, due - timedelta(days=2)) == Decimal("0.00")


def test_fine_counts_whole_days_only():
    due = NOW
    assert compute_fine(due, due + timedelta(days=1)) == Decimal("2.00")
    assert compute_fine(due, due + timedelta(days=10)) == Decimal("20.00")
    # 23 hours late is not a full day yet
    assert compute_fine(due, due + timedelta(hours=23)) == Decimal("0.00")
    assert compute_fine(due, due + timedelta(days=2, hours=20)) == Decimal("4.00")


def test_fine_uses_given_rate():
    assert compute_fine(NOW, NOW + timedelta(days=3), Decimal("0.50")) == Decimal("1.50")


def test_whole_days_between():
    assert whole_days_between(NOW, NOW + timedelta(days=5, hours=23)) == 5
    assert whole_days_between(NOW, NOW) == 0


def test_is_overdue_ignores_returned_loans():
    late = NOW + timedelta(days=20)
    assert is_overdue(_loan(), late)
    assert not is_overdue(_loan(status=LoanStatus.RETURNED, returned_at=late), late)
    assert not is_overdue(_loan(), NOW)


def test_can_renew_only_open_on_time_loans():
    assert can_renew(_loan(), NOW)
    assert can_renew(_loan(status=LoanStatus.RENEWED), NOW)
    assert not can_renew(_loan(status=LoanStatus.OVERDUE), NOW)
    assert not can_renew(_loan(status=LoanStatus.RETURNED), NOW)
    # still ACTIVE on record but already past its due date
    assert not can_renew(_loan(), NOW + timedelta(days=15))


def test_days_remaining():
    record = _loan()
    assert days_remaining(record, NOW) == 14
    assert days_remaining(record, NOW + timedelta(days=17)) == -3


def test_renewed_extends_from_current_due_date():
    record = _loan(fine=Decimal("0.00"))
    extended = renewed(record, 7)
    assert extended.due_at == record.due_at + timedelta(days=7)
    assert extended.status is LoanStatus.RENEWED
    assert extended.fine == record.fine
    # the original snapshot is untouched
    assert record.status is LoanStatus.ACTIVE


def test_renewed_non_positive_days_uses_default():
    record = _loan()
    assert renewed(record, 0).due_at == record.due_at + timedelta(days=DEFAULT_LOAN_DAYS)


def test_returned_on_time_has_no_fine():
    closed = returned(_loan(), NOW + timedelta(days=5))
    assert closed.status is LoanStatus.RETURNED
    assert closed.returned_at == NOW + timedelta(days=5)
    assert closed.fine == Decimal("0.00")


def test_returned_late_charges_per_day():
    # borrowed day 0, due day 14, returned day 16
    closed = returned(_loan(), NOW + timedelta(days=16))
    assert closed.fine == Decimal("4.00")


def test_refreshed_leaves_on_time_loans_alone():
    record = _loan()
    assert refreshed(record, NOW + timedelta(days=1)) is record


def test_refreshed_marks_overdue_and_grows_fine():
    record = _loan()
    first = refreshed(record, NOW + timedelta(days=17))
    assert first.status is LoanStatus.OVERDUE
    assert first.fine == Decimal("6.00")

    second = refreshed(first, NOW + timedelta(days=19))
    assert second.status is LoanStatus.OVERDUE
    assert second.fine == Decimal("10.00")


def test_dict_round_trip_parses_text_columns():
    record = Loan.from_dict({
        "id": 7,
        "patron_id": "1",
        "book_id": "2",
        "loaned_at": NOW.isoformat(),
        "due_at": (NOW + timedelta(days=14)).isoformat(),
        "returned_at": None,
        "status": "OVERDUE",
        "fine": "6",
    })
    assert record.status is LoanStatus.OVERDUE
    assert record.fine == Decimal("6.00")
    assert record.to_dict()["status"] == "OVERDUE"
