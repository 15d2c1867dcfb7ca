"""Loan records and the rules of the loan lifecycle.

Every rule here is a pure function: it takes a frozen ``Loan`` snapshot and
an explicit reference instant and returns a value or a new snapshot. Nothing
in this module touches the database; ``library.Library`` persists whatever
these functions produce.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Optional

DEFAULT_LOAN_DAYS = 14
# longest period a loan, renewal or due-date window may span
MAX_LOAN_DAYS = 3650
DAILY_FINE_RATE = Decimal("2.00")
CENTS = Decimal("0.01")


class LoanStatus(str, Enum):
    ACTIVE = "ACTIVE"
    RETURNED = "RETURNED"
    OVERDUE = "OVERDUE"
    RENEWED = "RENEWED"

    @property
    def is_open(self) -> bool:
        return self is not LoanStatus.RETURNED

    @property
    def is_renewable(self) -> bool:
        return self in (LoanStatus.ACTIVE, LoanStatus.RENEWED)


OPEN_STATUSES = tuple(s for s in LoanStatus if s.is_open)


@dataclass(frozen=True)
class Loan:
    """One patron holding one book for a bounded period."""

    patron_id: int
    book_id: int
    loaned_at: datetime
    due_at: datetime
    returned_at: Optional[datetime] = None
    status: LoanStatus = LoanStatus.ACTIVE
    fine: Decimal = Decimal("0.00")
    id: Optional[int] = None

    # Read-only details joined from the patron and book rows
    patron_name: Optional[str] = None
    patron_email: Optional[str] = None
    book_title: Optional[str] = None
    book_author: Optional[str] = None
    book_isbn: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "patron_id": self.patron_id,
            "book_id": self.book_id,
            "loaned_at": self.loaned_at,
            "due_at": self.due_at,
            "returned_at": self.returned_at,
            "status": self.status.value,
            "fine": self.fine,
            "patron_name": self.patron_name,
            "patron_email": self.patron_email,
            "book_title": self.book_title,
            "book_author": self.book_author,
            "book_isbn": self.book_isbn,
        }

    @staticmethod
    def from_dict(data: dict) -> "Loan":
        def _ts(value):
            if value is None or isinstance(value, datetime):
                return value
            return datetime.fromisoformat(value)

        return Loan(
            id=data.get("id"),
            patron_id=int(data["patron_id"]),
            book_id=int(data["book_id"]),
            loaned_at=_ts(data["loaned_at"]),
            due_at=_ts(data["due_at"]),
            returned_at=_ts(data.get("returned_at")),
            status=LoanStatus(data.get("status", LoanStatus.ACTIVE)),
            fine=Decimal(str(data.get("fine") or "0")).quantize(CENTS),
            patron_name=data.get("patron_name"),
            patron_email=data.get("patron_email"),
            book_title=data.get("book_title"),
            book_author=data.get("book_author"),
            book_isbn=data.get("book_isbn"),
        )


def whole_days_between(start: datetime, end: datetime) -> int:
    """Complete 24-hour periods from ``start`` to ``end``; partial days are dropped."""
    return (end - start) // timedelta(days=1)


def compute_fine(due_at: datetime, reference: datetime,
                 daily_rate: Decimal = DAILY_FINE_RATE) -> Decimal:
    """Late fee owed at ``reference`` for a loan due at ``due_at``."""
    if reference <= due_at:
        return Decimal("0.00")
    days = whole_days_between(due_at, reference)
    return max(Decimal("0.00"), (daily_rate * days).quantize(CENTS, rounding=ROUND_HALF_UP))


def is_overdue(loan: Loan, now: datetime) -> bool:
    return loan.status is not LoanStatus.RETURNED and now > loan.due_at


def can_renew(loan: Loan, now: datetime) -> bool:
    return loan.status.is_renewable and not is_overdue(loan, now)


def days_remaining(loan: Loan, now: datetime) -> int:
    """Whole days left before the due date; negative once the loan is late."""
    if now <= loan.due_at:
        return whole_days_between(now, loan.due_at)
    return -whole_days_between(loan.due_at, now)


def new_loan(patron_id: int, book_id: int, now: datetime,
             due_at: Optional[datetime] = None,
             period_days: int = DEFAULT_LOAN_DAYS) -> Loan:
    """Build a fresh ACTIVE loan; an explicit due date wins over the period."""
    if period_days <= 0:
        period_days = DEFAULT_LOAN_DAYS
    return Loan(
        patron_id=patron_id,
        book_id=book_id,
        loaned_at=now,
        due_at=due_at if due_at is not None else now + timedelta(days=period_days),
    )


def renewed(loan: Loan, days: int) -> Loan:
    """Push the due date back by ``days``. The fine is left as it is."""
    if days <= 0:
        days = DEFAULT_LOAN_DAYS
    return replace(loan, due_at=loan.due_at + timedelta(days=days), status=LoanStatus.RENEWED)


def returned(loan: Loan, now: datetime, daily_rate: Decimal = DAILY_FINE_RATE) -> Loan:
    """Close the loan at ``now`` with its final fine."""
    return replace(
        loan,
        returned_at=now,
        status=LoanStatus.RETURNED,
        fine=compute_fine(loan.due_at, now, daily_rate),
    )


def refreshed(loan: Loan, now: datetime, daily_rate: Decimal = DAILY_FINE_RATE) -> Loan:
    """Mark a late loan OVERDUE with an estimated fine; other loans come back unchanged."""
    if not is_overdue(loan, now):
        return loan
    return replace(loan, status=LoanStatus.OVERDUE, fine=compute_fine(loan.due_at, now, daily_rate))
