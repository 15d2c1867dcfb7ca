import logging
import os
import sqlite3
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional

import database
import loan as loan_rules
from book import Book
from config import settings
from database import OPEN_STATUS_VALUES, get_db_connection, initialize_database, transaction
from loan import Loan, LoanStatus
from patron import Patron
from utils.validators import (
    MAX_PUBLICATION_YEAR,
    MIN_PUBLICATION_YEAR,
    EmailValidator,
    ISBNValidator,
    TextValidator,
    is_valid_publication_year,
)

logger = logging.getLogger(__name__)

_OPEN_IN = "(" + ", ".join("?" for _ in OPEN_STATUS_VALUES) + ")"

_LOAN_SELECT = """
    SELECT l.id, l.patron_id, l.book_id, l.loaned_at, l.due_at, l.returned_at,
           l.status, l.fine,
           p.name AS patron_name, p.email AS patron_email,
           b.title AS book_title, b.author AS book_author, b.isbn AS book_isbn
    FROM loans l
    JOIN patrons p ON p.id = l.patron_id
    JOIN books b ON b.id = l.book_id
"""


def _ts(value: datetime) -> str:
    return value.isoformat(timespec="microseconds")


def _naive(value: datetime) -> datetime:
    """Convert an aware timestamp to local naive time; naive values pass through."""
    if value.tzinfo is None:
        return value
    return value.astimezone().replace(tzinfo=None)


class Library:
    """Catalog, patron registry and loan ledger backed by SQLite."""

    def __init__(
        self,
        db_file: Optional[str] = None,
        *,
        clock: Optional[Callable[[], datetime]] = None,
        max_open_loans: Optional[int] = None,
        loan_period_days: Optional[int] = None,
        daily_fine_rate: Optional[Decimal] = None,
    ) -> None:
        db_file = db_file or os.environ.get("LIBRARY_DB_FILE")
        if db_file:
            database.DATABASE_FILE = db_file
        initialize_database()

        self._clock = clock or datetime.now
        self.max_open_loans = max_open_loans if max_open_loans is not None else settings.max_open_loans
        self.loan_period_days = loan_period_days or settings.loan_period_days
        self.daily_fine_rate = daily_fine_rate if daily_fine_rate is not None else settings.daily_fine_rate

    def now(self) -> datetime:
        return self._clock()

    # ------------------------- Books ------------------------- #
    def add_book(self, book: Book) -> Book:
        """Add a new book to the catalog. New books are always available."""
        book.isbn = ISBNValidator.normalize_isbn(book.isbn) if ISBNValidator.is_valid_isbn(book.isbn) else book.isbn
        self._validate_book(book)
        book.available = True
        book.updated_at = self.now()

        try:
            with transaction() as conn:
                if self._isbn_taken(conn, book.isbn):
                    raise DomainValidationError(f"A book with ISBN {book.isbn} already exists.")
                cursor = conn.execute(
                    """
                    INSERT INTO books (title, author, isbn, publication_year, genre, available, updated_at)
                    VALUES (?, ?, ?, ?, ?, 1, ?)
                    """,
                    (book.title, book.author, book.isbn, book.publication_year, book.genre, _ts(book.updated_at)),
                )
                book.id = cursor.lastrowid
        except sqlite3.IntegrityError as e:
            raise DomainValidationError(f"A book with ISBN {book.isbn} already exists.") from e
        logger.info("Book %s added (ISBN %s)", book.id, book.isbn)
        return book

    def list_books(self) -> List[Book]:
        """All books ordered by title."""
        return self._query_books("ORDER BY title")

    def find_book(self, book_id: int) -> Optional[Book]:
        books = self._query_books("WHERE id = ?", (book_id,))
        return books[0] if books else None

    def get_book(self, book_id: int) -> Book:
        book = self.find_book(book_id)
        if book is None:
            raise RecordNotFoundError(f"Book not found with id: {book_id}")
        return book

    def find_book_by_isbn(self, isbn: str) -> Optional[Book]:
        books = self._query_books("WHERE isbn = ?", (ISBNValidator.normalize_isbn(isbn),))
        return books[0] if books else None

    def update_book(
        self,
        book_id: int,
        *,
        title: Optional[str] = None,
        author: Optional[str] = None,
        isbn: Optional[str] = None,
        publication_year: Optional[int] = None,
        genre: Optional[str] = None,
    ) -> Book:
        """Update the descriptive fields of a book. Availability is managed by loans only."""
        if all(v is None for v in (title, author, isbn, publication_year, genre)):
            raise DomainValidationError("Nothing to update. Provide at least one field.")

        with transaction() as conn:
            row = conn.execute("SELECT * FROM books WHERE id = ?", (book_id,)).fetchone()
            if row is None:
                raise RecordNotFoundError(f"Book not found with id: {book_id}")
            book = Book.from_dict(dict(row))

            if title is not None:
                book.title = title.strip()
            if author is not None:
                book.author = author.strip()
            if publication_year is not None:
                book.publication_year = publication_year
            if genre is not None:
                book.genre = genre.strip() or None
            if isbn is not None:
                new_isbn = ISBNValidator.normalize_isbn(isbn) if ISBNValidator.is_valid_isbn(isbn) else isbn
                if new_isbn != book.isbn and self._isbn_taken(conn, new_isbn):
                    raise DomainValidationError(f"A book with ISBN {new_isbn} already exists.")
                book.isbn = new_isbn

            self._validate_book(book)
            book.updated_at = self.now()
            conn.execute(
                """
                UPDATE books SET title = ?, author = ?, isbn = ?, publication_year = ?,
                                 genre = ?, updated_at = ?
                WHERE id = ?
                """,
                (book.title, book.author, book.isbn, book.publication_year, book.genre,
                 _ts(book.updated_at), book_id),
            )
        return book

    def remove_book(self, book_id: int) -> None:
        """Delete a book and its closed loan history. Refused while the book is on loan."""
        with transaction() as conn:
            if conn.execute("SELECT 1 FROM books WHERE id = ?", (book_id,)).fetchone() is None:
                raise RecordNotFoundError(f"Book not found with id: {book_id}")
            open_loans = conn.execute(
                f"SELECT COUNT(*) FROM loans WHERE book_id = ? AND status IN {_OPEN_IN}",
                (book_id, *OPEN_STATUS_VALUES),
            ).fetchone()[0]
            if open_loans:
                logger.warning("Refused to delete book %s: it has an open loan", book_id)
                raise DomainValidationError("Cannot delete the book while it has open loans.")
            conn.execute("DELETE FROM books WHERE id = ?", (book_id,))
        logger.info("Book %s removed", book_id)

    def search_books(self, query: str) -> List[Book]:
        """Case-insensitive search over title, author and ISBN."""
        term = f"%{query.strip().lower()}%"
        return self._query_books(
            "WHERE lower(title) LIKE ? OR lower(author) LIKE ? OR isbn LIKE ? ORDER BY title",
            (term, term, term),
        )

    def list_available_books(self) -> List[Book]:
        return self._query_books("WHERE available = 1 ORDER BY title")

    def books_by_author(self, author: str) -> List[Book]:
        return self._query_books("WHERE lower(author) LIKE ? ORDER BY title", (f"%{author.strip().lower()}%",))

    def books_by_genre(self, genre: str) -> List[Book]:
        return self._query_books("WHERE lower(genre) LIKE ? ORDER BY title", (f"%{genre.strip().lower()}%",))

    def books_by_year(self, year: int) -> List[Book]:
        return self._query_books("WHERE publication_year = ? ORDER BY title", (year,))

    def is_book_available(self, book_id: int) -> bool:
        """False for unknown books as well as books on loan."""
        book = self.find_book(book_id)
        return bool(book and book.available)

    def book_statistics(self) -> Dict[str, int]:
        conn = get_db_connection()
        try:
            total, available = conn.execute(
                "SELECT COUNT(*), COALESCE(SUM(available), 0) FROM books"
            ).fetchone()
            return {"total_books": total, "available_books": available, "loaned_books": total - available}
        finally:
            conn.close()

    # ------------------------- Patrons ------------------------- #
    def add_patron(self, patron: Patron) -> Patron:
        """Register a new patron. New patrons are always active."""
        patron.email = EmailValidator.normalize_email(patron.email)
        self._validate_patron(patron)
        patron.active = True
        patron.registered_at = self.now()

        try:
            with transaction() as conn:
                if self._email_taken(conn, patron.email):
                    raise DomainValidationError(f"A patron with email {patron.email} already exists.")
                cursor = conn.execute(
                    """
                    INSERT INTO patrons (name, email, phone, address, active, registered_at)
                    VALUES (?, ?, ?, ?, 1, ?)
                    """,
                    (patron.name, patron.email, patron.phone, patron.address, _ts(patron.registered_at)),
                )
                patron.id = cursor.lastrowid
        except sqlite3.IntegrityError as e:
            raise DomainValidationError(f"A patron with email {patron.email} already exists.") from e
        logger.info("Patron %s registered", patron.id)
        return patron

    def list_patrons(self) -> List[Patron]:
        return self._query_patrons("ORDER BY name")

    def find_patron(self, patron_id: int) -> Optional[Patron]:
        patrons = self._query_patrons("WHERE id = ?", (patron_id,))
        return patrons[0] if patrons else None

    def get_patron(self, patron_id: int) -> Patron:
        patron = self.find_patron(patron_id)
        if patron is None:
            raise RecordNotFoundError(f"Patron not found with id: {patron_id}")
        return patron

    def find_patron_by_email(self, email: str) -> Optional[Patron]:
        patrons = self._query_patrons("WHERE email = ?", (EmailValidator.normalize_email(email),))
        return patrons[0] if patrons else None

    def update_patron(
        self,
        patron_id: int,
        *,
        name: Optional[str] = None,
        email: Optional[str] = None,
        phone: Optional[str] = None,
        address: Optional[str] = None,
    ) -> Patron:
        """Update contact details. The active flag has its own operations."""
        if all(v is None for v in (name, email, phone, address)):
            raise DomainValidationError("Nothing to update. Provide at least one field.")

        with transaction() as conn:
            row = conn.execute("SELECT * FROM patrons WHERE id = ?", (patron_id,)).fetchone()
            if row is None:
                raise RecordNotFoundError(f"Patron not found with id: {patron_id}")
            patron = Patron.from_dict(dict(row))

            if name is not None:
                patron.name = name.strip()
            if phone is not None:
                patron.phone = phone.strip() or None
            if address is not None:
                patron.address = address.strip() or None
            if email is not None:
                new_email = EmailValidator.normalize_email(email)
                if new_email != patron.email and self._email_taken(conn, new_email):
                    raise DomainValidationError(f"A patron with email {new_email} already exists.")
                patron.email = new_email

            self._validate_patron(patron)
            conn.execute(
                "UPDATE patrons SET name = ?, email = ?, phone = ?, address = ? WHERE id = ?",
                (patron.name, patron.email, patron.phone, patron.address, patron_id),
            )
        return patron

    def activate_patron(self, patron_id: int) -> Patron:
        with transaction() as conn:
            cursor = conn.execute("UPDATE patrons SET active = 1 WHERE id = ?", (patron_id,))
            if cursor.rowcount == 0:
                raise RecordNotFoundError(f"Patron not found with id: {patron_id}")
        logger.info("Patron %s activated", patron_id)
        return self.get_patron(patron_id)

    def deactivate_patron(self, patron_id: int) -> Patron:
        """Deactivate a patron. Refused while the patron holds open loans."""
        with transaction() as conn:
            if conn.execute("SELECT 1 FROM patrons WHERE id = ?", (patron_id,)).fetchone() is None:
                raise RecordNotFoundError(f"Patron not found with id: {patron_id}")
            if self._count_open_loans(conn, patron_id) > 0:
                logger.warning("Refused to deactivate patron %s: open loans", patron_id)
                raise DomainValidationError("Cannot deactivate the patron while they have open loans.")
            conn.execute("UPDATE patrons SET active = 0 WHERE id = ?", (patron_id,))
        logger.info("Patron %s deactivated", patron_id)
        return self.get_patron(patron_id)

    def remove_patron(self, patron_id: int) -> None:
        """Delete a patron and their closed loan history. Refused while loans are open."""
        with transaction() as conn:
            if conn.execute("SELECT 1 FROM patrons WHERE id = ?", (patron_id,)).fetchone() is None:
                raise RecordNotFoundError(f"Patron not found with id: {patron_id}")
            if self._count_open_loans(conn, patron_id) > 0:
                logger.warning("Refused to delete patron %s: open loans", patron_id)
                raise DomainValidationError("Cannot delete the patron while they have open loans.")
            conn.execute("DELETE FROM patrons WHERE id = ?", (patron_id,))
        logger.info("Patron %s removed", patron_id)

    def search_patrons(self, query: str) -> List[Patron]:
        term = f"%{query.strip().lower()}%"
        return self._query_patrons("WHERE lower(name) LIKE ? OR lower(email) LIKE ? ORDER BY name", (term, term))

    def list_active_patrons(self) -> List[Patron]:
        return self._query_patrons("WHERE active = 1 ORDER BY name")

    def list_inactive_patrons(self) -> List[Patron]:
        return self._query_patrons("WHERE active = 0 ORDER BY name")

    def patrons_with_open_loans(self) -> List[Patron]:
        return self._query_patrons(
            f"WHERE id IN (SELECT patron_id FROM loans WHERE status IN {_OPEN_IN}) ORDER BY name",
            OPEN_STATUS_VALUES,
        )

    def patrons_with_overdue_loans(self) -> List[Patron]:
        return self._query_patrons(
            "WHERE id IN (SELECT patron_id FROM loans WHERE status = ?) ORDER BY name",
            (LoanStatus.OVERDUE.value,),
        )

    def count_open_loans(self, patron_id: int) -> int:
        conn = get_db_connection()
        try:
            return self._count_open_loans(conn, patron_id)
        finally:
            conn.close()

    def can_borrow(self, patron_id: int) -> bool:
        """True when the patron exists, is active and is below the loan limit."""
        patron = self.find_patron(patron_id)
        if patron is None or not patron.active:
            return False
        return self.count_open_loans(patron_id) < self.max_open_loans

    def patron_statistics(self) -> Dict[str, int]:
        conn = get_db_connection()
        try:
            total, active = conn.execute(
                "SELECT COUNT(*), COALESCE(SUM(active), 0) FROM patrons"
            ).fetchone()
            return {"total_patrons": total, "active_patrons": active, "inactive_patrons": total - active}
        finally:
            conn.close()

    # ------------------------- Loans ------------------------- #
    def issue_loan(
        self,
        patron_id: int,
        book_id: int,
        *,
        due_at: Optional[datetime] = None,
        period_days: Optional[int] = None,
    ) -> Loan:
        """Lend a book to a patron.

        Checks run in a fixed order and the first failure is reported: the
        patron exists, is active and is under the open-loan limit, then the
        book exists and is available. The loan row and the book's
        availability change commit together or not at all.
        """
        self._check_days(period_days, "Loan period")
        now = self.now()
        with transaction() as conn:
            patron = conn.execute("SELECT id, active FROM patrons WHERE id = ?", (patron_id,)).fetchone()
            if patron is None:
                raise DomainValidationError(f"Patron not found with id: {patron_id}")
            if not patron["active"]:
                raise DomainValidationError("Patron is inactive and cannot borrow books.")
            if self._count_open_loans(conn, patron_id) >= self.max_open_loans:
                logger.warning("Patron %s is at the loan limit", patron_id)
                raise DomainValidationError(
                    f"Patron has reached the limit of {self.max_open_loans} simultaneous loans."
                )

            book = conn.execute("SELECT id, available FROM books WHERE id = ?", (book_id,)).fetchone()
            if book is None:
                raise DomainValidationError(f"Book not found with id: {book_id}")
            if not book["available"]:
                raise DomainValidationError("Book is not available for loan.")

            draft = loan_rules.new_loan(
                patron_id,
                book_id,
                now,
                due_at=_naive(due_at) if due_at is not None else None,
                period_days=period_days or self.loan_period_days,
            )
            cursor = conn.execute(
                """
                INSERT INTO loans (patron_id, book_id, loaned_at, due_at, returned_at, status, fine)
                VALUES (?, ?, ?, ?, NULL, ?, ?)
                """,
                (draft.patron_id, draft.book_id, _ts(draft.loaned_at), _ts(draft.due_at),
                 draft.status.value, str(draft.fine)),
            )
            loan_id = cursor.lastrowid
            conn.execute("UPDATE books SET available = 0, updated_at = ? WHERE id = ?", (_ts(now), book_id))

        logger.info("Loan %s issued: patron %s, book %s, due %s", loan_id, patron_id, book_id, draft.due_at)
        return self.get_loan(loan_id)

    def return_loan(self, loan_id: int) -> Loan:
        """Close a loan, settle its fine and put the book back on the shelf."""
        now = self.now()
        with transaction() as conn:
            current = self._fetch_loan(conn, loan_id)
            if current is None:
                raise DomainValidationError(f"Loan not found with id: {loan_id}")
            if current.status is LoanStatus.RETURNED:
                raise DomainValidationError("Loan has already been returned.")

            closed = loan_rules.returned(current, now, self.daily_fine_rate)
            self._save_loan(conn, closed)
            conn.execute("UPDATE books SET available = 1, updated_at = ? WHERE id = ?", (_ts(now), closed.book_id))

        logger.info("Loan %s returned with fine %s", loan_id, closed.fine)
        return self.get_loan(loan_id)

    def renew_loan(self, loan_id: int, days: Optional[int] = None) -> Loan:
        """Extend the due date of a loan that is ACTIVE or RENEWED and not yet late."""
        now = self.now()
        days = days if days and days > 0 else self.loan_period_days
        self._check_days(days, "Renewal")
        with transaction() as conn:
            current = self._fetch_loan(conn, loan_id)
            if current is None:
                raise DomainValidationError(f"Loan not found with id: {loan_id}")
            current = loan_rules.refreshed(current, now, self.daily_fine_rate)
            if not loan_rules.can_renew(current, now):
                raise DomainValidationError(f"Loan cannot be renewed. Status: {current.status.value}")

            extended = loan_rules.renewed(current, days)
            self._save_loan(conn, extended)

        logger.info("Loan %s renewed until %s", loan_id, extended.due_at)
        return self.get_loan(loan_id)

    def refresh_overdue_loans(self) -> int:
        """Mark every late open loan OVERDUE and refresh its estimated fine.

        Returns the number of loans touched. Safe to run repeatedly.
        """
        now = self.now()
        with transaction() as conn:
            rows = conn.execute(
                _LOAN_SELECT + f" WHERE l.status IN {_OPEN_IN} AND l.due_at < ?",
                (*OPEN_STATUS_VALUES, _ts(now)),
            ).fetchall()
            touched = 0
            for row in rows:
                current = Loan.from_dict(dict(row))
                updated = loan_rules.refreshed(current, now, self.daily_fine_rate)
                if updated is not current:
                    self._save_loan(conn, updated)
                    touched += 1
        logger.info("Overdue refresh touched %d loan(s)", touched)
        return touched

    def list_loans(self) -> List[Loan]:
        return self._query_loans("ORDER BY l.loaned_at DESC, l.id DESC")

    def find_loan(self, loan_id: int) -> Optional[Loan]:
        loans = self._query_loans("WHERE l.id = ?", (loan_id,))
        return loans[0] if loans else None

    def get_loan(self, loan_id: int) -> Loan:
        found = self.find_loan(loan_id)
        if found is None:
            raise RecordNotFoundError(f"Loan not found with id: {loan_id}")
        return found

    def loans_by_status(self, status: LoanStatus) -> List[Loan]:
        return self._query_loans("WHERE l.status = ? ORDER BY l.loaned_at DESC", (LoanStatus(status).value,))

    def list_active_loans(self) -> List[Loan]:
        """Loans that are out and not late: ACTIVE or RENEWED."""
        return self._query_loans(
            "WHERE l.status IN (?, ?) ORDER BY l.due_at",
            (LoanStatus.ACTIVE.value, LoanStatus.RENEWED.value),
        )

    def list_overdue_loans(self) -> List[Loan]:
        return self._query_loans("WHERE l.status = ? ORDER BY l.due_at", (LoanStatus.OVERDUE.value,))

    def loans_by_patron(self, patron_id: int) -> List[Loan]:
        return self._query_loans("WHERE l.patron_id = ? ORDER BY l.loaned_at DESC", (patron_id,))

    def open_loans_by_patron(self, patron_id: int) -> List[Loan]:
        return self._query_loans(
            f"WHERE l.patron_id = ? AND l.status IN {_OPEN_IN} ORDER BY l.due_at",
            (patron_id, *OPEN_STATUS_VALUES),
        )

    def loans_due_today(self) -> List[Loan]:
        today = self.now().date()
        return [l for l in self.list_active_loans() if l.due_at.date() == today]

    def loans_due_within(self, days: int) -> List[Loan]:
        """ACTIVE or RENEWED loans due no later than ``days`` from now."""
        if days < 0:
            raise DomainValidationError("Days must not be negative.")
        self._check_days(days, "Due-date window")
        limit = self.now() + timedelta(days=days)
        return [l for l in self.list_active_loans() if l.due_at <= limit]

    def loan_statistics(self) -> Dict[str, Any]:
        conn = get_db_connection()
        try:
            counts = {row["status"]: row["n"] for row in conn.execute(
                "SELECT status, COUNT(*) AS n FROM loans GROUP BY status"
            )}
            fines = conn.execute(
                "SELECT fine FROM loans WHERE status IN (?, ?)",
                (LoanStatus.OVERDUE.value, LoanStatus.RETURNED.value),
            ).fetchall()
        finally:
            conn.close()

        total_fines = sum((Decimal(r["fine"]) for r in fines), Decimal("0.00"))
        return {
            "total_loans": sum(counts.values()),
            "active_loans": counts.get("ACTIVE", 0) + counts.get("RENEWED", 0),
            "overdue_loans": counts.get("OVERDUE", 0),
            "returned_loans": counts.get("RETURNED", 0),
            "total_fines": total_fines.quantize(loan_rules.CENTS),
        }

    def get_statistics(self) -> Dict[str, Any]:
        """Catalog, patron and loan figures in one mapping."""
        return {**self.book_statistics(), **self.patron_statistics(), **self.loan_statistics()}

    # ------------------------- Persistence helpers ------------------------- #
    def _query_books(self, clause: str = "", params: tuple = ()) -> List[Book]:
        conn = get_db_connection()
        try:
            rows = conn.execute(f"SELECT * FROM books {clause}", params).fetchall()
            return [Book.from_dict(dict(row)) for row in rows]
        finally:
            conn.close()

    def _query_patrons(self, clause: str = "", params: tuple = ()) -> List[Patron]:
        conn = get_db_connection()
        try:
            rows = conn.execute(f"SELECT * FROM patrons {clause}", params).fetchall()
            return [Patron.from_dict(dict(row)) for row in rows]
        finally:
            conn.close()

    def _query_loans(self, clause: str = "", params: tuple = ()) -> List[Loan]:
        conn = get_db_connection()
        try:
            rows = conn.execute(f"{_LOAN_SELECT} {clause}", params).fetchall()
            return [Loan.from_dict(dict(row)) for row in rows]
        finally:
            conn.close()

    @staticmethod
    def _fetch_loan(conn: sqlite3.Connection, loan_id: int) -> Optional[Loan]:
        row = conn.execute(f"{_LOAN_SELECT} WHERE l.id = ?", (loan_id,)).fetchone()
        return Loan.from_dict(dict(row)) if row else None

    @staticmethod
    def _save_loan(conn: sqlite3.Connection, record: Loan) -> None:
        conn.execute(
            "UPDATE loans SET due_at = ?, returned_at = ?, status = ?, fine = ? WHERE id = ?",
            (
                _ts(record.due_at),
                _ts(record.returned_at) if record.returned_at else None,
                record.status.value,
                str(record.fine),
                record.id,
            ),
        )

    @staticmethod
    def _count_open_loans(conn: sqlite3.Connection, patron_id: int) -> int:
        return conn.execute(
            f"SELECT COUNT(*) FROM loans WHERE patron_id = ? AND status IN {_OPEN_IN}",
            (patron_id, *OPEN_STATUS_VALUES),
        ).fetchone()[0]

    @staticmethod
    def _isbn_taken(conn: sqlite3.Connection, isbn: str) -> bool:
        return conn.execute("SELECT 1 FROM books WHERE isbn = ?", (isbn,)).fetchone() is not None

    @staticmethod
    def _email_taken(conn: sqlite3.Connection, email: str) -> bool:
        return conn.execute("SELECT 1 FROM patrons WHERE email = ?", (email,)).fetchone() is not None

    # ------------------------- Validation ------------------------- #
    @staticmethod
    def _check_days(days: Optional[int], label: str) -> None:
        if days is not None and days > loan_rules.MAX_LOAN_DAYS:
            raise DomainValidationError(f"{label} must be at most {loan_rules.MAX_LOAN_DAYS} days.")

    @staticmethod
    def _validate_book(book: Book) -> None:
        if not TextValidator.validate_required(book.title, 200):
            raise DomainValidationError("Title is required and must be at most 200 characters.")
        if not TextValidator.validate_required(book.author, 150):
            raise DomainValidationError("Author is required and must be at most 150 characters.")
        if not ISBNValidator.is_valid_isbn(book.isbn):
            raise DomainValidationError(f"Invalid ISBN: {book.isbn}. It must have 10 or 13 digits.")
        if not is_valid_publication_year(book.publication_year):
            raise DomainValidationError(
                f"Publication year must be between {MIN_PUBLICATION_YEAR} and {MAX_PUBLICATION_YEAR}."
            )
        if not TextValidator.fits(book.genre, 100):
            raise DomainValidationError("Genre must be at most 100 characters.")

    @staticmethod
    def _validate_patron(patron: Patron) -> None:
        if not TextValidator.validate_required(patron.name, 150):
            raise DomainValidationError("Name is required and must be at most 150 characters.")
        if not EmailValidator.is_valid_email(patron.email) or not TextValidator.fits(patron.email, 120):
            raise DomainValidationError(f"Invalid email: {patron.email}")
        if not TextValidator.fits(patron.phone, 20):
            raise DomainValidationError("Phone must be at most 20 characters.")
        if not TextValidator.fits(patron.address, 500):
            raise DomainValidationError("Address must be at most 500 characters.")

    def close(self) -> None:
        """Connections are opened per operation, so there is nothing to release."""
        return None


class DomainValidationError(ValueError):
    """A loan, patron or book operation was refused because a precondition failed."""


class RecordNotFoundError(LookupError):
    """A book, patron or loan addressed by id does not exist."""
