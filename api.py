import logging
from contextlib import asynccontextmanager
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request, Response, Security
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import APIKeyHeader
from pydantic import BaseModel, Field

from book import Book
from config import configure_logging, settings
from library import DomainValidationError, Library, RecordNotFoundError
from loan import Loan, LoanStatus, days_remaining
from patron import Patron

logger = logging.getLogger(__name__)

_library: Optional[Library] = None


def get_library() -> Library:
    """Shared Library instance; tests swap it through ``app.dependency_overrides``."""
    global _library
    if _library is None:
        _library = Library()
    return _library


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    logger.info("%s %s starting (%s)", settings.app_name, settings.app_version, settings.environment)
    yield
    logger.info("%s shutting down", settings.app_name)


app = FastAPI(title=settings.app_name, version=settings.app_version, debug=settings.debug, lifespan=lifespan)

app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    return response


# --- Error mapping ---
@app.exception_handler(DomainValidationError)
async def domain_validation_handler(request: Request, exc: DomainValidationError):
    logger.info("Rejected %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(RecordNotFoundError)
async def not_found_handler(request: Request, exc: RecordNotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


# --- Security ---
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


def get_api_key(api_key: Optional[str] = Security(api_key_header)):
    """Check the API key when one is configured; otherwise let the request through."""
    if settings.api_key is None or api_key == settings.api_key:
        return api_key
    raise HTTPException(status_code=403, detail="Could not validate credentials")


# --- Models ---
class BookModel(BaseModel):
    id: int
    title: str
    author: str
    isbn: str
    publication_year: int
    genre: str | None = None
    available: bool
    updated_at: datetime | None = None


class BookCreateModel(BaseModel):
    title: str
    author: str
    isbn: str
    publication_year: int
    genre: str | None = None


class BookUpdateModel(BaseModel):
    title: str | None = None
    author: str | None = None
    isbn: str | None = None
    publication_year: int | None = None
    genre: str | None = None


class BookStatsModel(BaseModel):
    total_books: int
    available_books: int
    loaned_books: int


class AvailabilityModel(BaseModel):
    book_id: int
    available: bool


class PatronModel(BaseModel):
    id: int
    name: str
    email: str
    phone: str | None = None
    address: str | None = None
    active: bool
    registered_at: datetime | None = None


class PatronCreateModel(BaseModel):
    name: str
    email: str
    phone: str | None = None
    address: str | None = None


class PatronUpdateModel(BaseModel):
    name: str | None = None
    email: str | None = None
    phone: str | None = None
    address: str | None = None


class PatronStatsModel(BaseModel):
    total_patrons: int
    active_patrons: int
    inactive_patrons: int


class CanBorrowModel(BaseModel):
    patron_id: int
    can_borrow: bool


class OpenLoanCountModel(BaseModel):
    patron_id: int
    open_loans: int


class LoanModel(BaseModel):
    id: int
    patron_id: int
    book_id: int
    loaned_at: datetime
    due_at: datetime
    returned_at: datetime | None = None
    status: LoanStatus
    fine: Decimal
    days_remaining: int | None = Field(default=None, description="Whole days until due; negative when late, null once returned")
    patron_name: str | None = None
    patron_email: str | None = None
    book_title: str | None = None
    book_author: str | None = None
    book_isbn: str | None = None


class LoanCreateModel(BaseModel):
    patron_id: int
    book_id: int
    due_at: datetime | None = Field(default=None, description="Explicit due date; overrides period_days")
    period_days: int | None = Field(default=None, description="Loan length in days (default 14)")


class RenewalModel(BaseModel):
    days: int | None = Field(default=None, description="Extra days; non-positive means the default period")


class LoanStatsModel(BaseModel):
    total_loans: int
    active_loans: int
    overdue_loans: int
    returned_loans: int
    total_fines: Decimal


class RefreshResultModel(BaseModel):
    updated: int


class MessageModel(BaseModel):
    message: str


def _book_model(book: Book) -> BookModel:
    return BookModel(**book.to_dict())


def _patron_model(patron: Patron) -> PatronModel:
    return PatronModel(**patron.to_dict())


def _loan_model(record: Loan, now: datetime) -> LoanModel:
    data = record.to_dict()
    if record.status.is_open:
        data["days_remaining"] = days_remaining(record, now)
    return LoanModel(**data)


def _page(items: list, response: Response, offset: int, limit: Optional[int]) -> list:
    """Slice a listing by offset/limit and report the full size in X-Total-Count."""
    response.headers["X-Total-Count"] = str(len(items))
    if limit is None and offset == 0:
        return items
    limit = limit or settings.default_page_size
    return items[offset:offset + limit]


# --- Health ---
@app.get("/health")
def health_check(lib: Library = Depends(get_library)):
    """Health check endpoint."""
    return {
        "status": "healthy",
        "timestamp": datetime.now().isoformat(),
        "total_books": lib.book_statistics()["total_books"],
    }


# --- Books ---
@app.get("/api/books", response_model=List[BookModel])
def list_books(
    response: Response,
    offset: int = Query(0, ge=0, description="Number of results to skip"),
    limit: Optional[int] = Query(None, ge=1, le=settings.max_page_size, description="Maximum number of results"),
    lib: Library = Depends(get_library),
):
    """List books ordered by title, optionally one page at a time."""
    return [_book_model(b) for b in _page(lib.list_books(), response, offset, limit)]


@app.get("/api/books/search", response_model=List[BookModel])
def search_books(q: str = Query(..., min_length=1, description="Term matched against title, author and ISBN"),
                 lib: Library = Depends(get_library)):
    return [_book_model(b) for b in lib.search_books(q)]


@app.get("/api/books/available", response_model=List[BookModel])
def list_available_books(lib: Library = Depends(get_library)):
    return [_book_model(b) for b in lib.list_available_books()]


@app.get("/api/books/author", response_model=List[BookModel])
def books_by_author(name: str = Query(..., min_length=1), lib: Library = Depends(get_library)):
    return [_book_model(b) for b in lib.books_by_author(name)]


@app.get("/api/books/genre", response_model=List[BookModel])
def books_by_genre(name: str = Query(..., min_length=1), lib: Library = Depends(get_library)):
    return [_book_model(b) for b in lib.books_by_genre(name)]


@app.get("/api/books/year/{year}", response_model=List[BookModel])
def books_by_year(year: int, lib: Library = Depends(get_library)):
    return [_book_model(b) for b in lib.books_by_year(year)]


@app.get("/api/books/isbn/{isbn}", response_model=BookModel)
def get_book_by_isbn(isbn: str, lib: Library = Depends(get_library)):
    book = lib.find_book_by_isbn(isbn)
    if not book:
        raise HTTPException(status_code=404, detail=f"Book not found with ISBN: {isbn}")
    return _book_model(book)


@app.get("/api/books/statistics", response_model=BookStatsModel)
def book_statistics(lib: Library = Depends(get_library)):
    return BookStatsModel(**lib.book_statistics())


@app.get("/api/books/{book_id}", response_model=BookModel)
def get_book(book_id: int, lib: Library = Depends(get_library)):
    """Get a single book by id."""
    return _book_model(lib.get_book(book_id))


@app.get("/api/books/{book_id}/available", response_model=AvailabilityModel)
def check_book_availability(book_id: int, lib: Library = Depends(get_library)):
    return AvailabilityModel(book_id=book_id, available=lib.is_book_available(book_id))


@app.post("/api/books", response_model=BookModel, status_code=201, dependencies=[Depends(get_api_key)])
def add_book(payload: BookCreateModel, lib: Library = Depends(get_library)):
    """Add a new book to the catalog."""
    book = Book(
        title=payload.title,
        author=payload.author,
        isbn=payload.isbn,
        publication_year=payload.publication_year,
        genre=payload.genre,
    )
    return _book_model(lib.add_book(book))


@app.put("/api/books/{book_id}", response_model=BookModel, dependencies=[Depends(get_api_key)])
def update_book(book_id: int, update: BookUpdateModel, lib: Library = Depends(get_library)):
    """Update the descriptive fields of a book."""
    return _book_model(lib.update_book(book_id, **update.model_dump(exclude_unset=True)))


@app.delete("/api/books/{book_id}", response_model=MessageModel, dependencies=[Depends(get_api_key)])
def delete_book(book_id: int, lib: Library = Depends(get_library)):
    lib.remove_book(book_id)
    return MessageModel(message="Book removed.")


# --- Patrons ---
@app.get("/api/patrons", response_model=List[PatronModel])
def list_patrons(
    response: Response,
    offset: int = Query(0, ge=0),
    limit: Optional[int] = Query(None, ge=1, le=settings.max_page_size),
    lib: Library = Depends(get_library),
):
    return [_patron_model(p) for p in _page(lib.list_patrons(), response, offset, limit)]


@app.get("/api/patrons/active", response_model=List[PatronModel])
def list_active_patrons(lib: Library = Depends(get_library)):
    return [_patron_model(p) for p in lib.list_active_patrons()]


@app.get("/api/patrons/inactive", response_model=List[PatronModel])
def list_inactive_patrons(lib: Library = Depends(get_library)):
    return [_patron_model(p) for p in lib.list_inactive_patrons()]


@app.get("/api/patrons/search", response_model=List[PatronModel])
def search_patrons(q: str = Query(..., min_length=1), lib: Library = Depends(get_library)):
    return [_patron_model(p) for p in lib.search_patrons(q)]


@app.get("/api/patrons/email", response_model=PatronModel)
def get_patron_by_email(address: str = Query(..., min_length=1), lib: Library = Depends(get_library)):
    patron = lib.find_patron_by_email(address)
    if not patron:
        raise HTTPException(status_code=404, detail=f"Patron not found with email: {address}")
    return _patron_model(patron)


@app.get("/api/patrons/with-open-loans", response_model=List[PatronModel])
def patrons_with_open_loans(lib: Library = Depends(get_library)):
    return [_patron_model(p) for p in lib.patrons_with_open_loans()]


@app.get("/api/patrons/with-overdue-loans", response_model=List[PatronModel])
def patrons_with_overdue_loans(lib: Library = Depends(get_library)):
    return [_patron_model(p) for p in lib.patrons_with_overdue_loans()]


@app.get("/api/patrons/statistics", response_model=PatronStatsModel)
def patron_statistics(lib: Library = Depends(get_library)):
    return PatronStatsModel(**lib.patron_statistics())


@app.get("/api/patrons/{patron_id}", response_model=PatronModel)
def get_patron(patron_id: int, lib: Library = Depends(get_library)):
    return _patron_model(lib.get_patron(patron_id))


@app.get("/api/patrons/{patron_id}/can-borrow", response_model=CanBorrowModel)
def patron_can_borrow(patron_id: int, lib: Library = Depends(get_library)):
    return CanBorrowModel(patron_id=patron_id, can_borrow=lib.can_borrow(patron_id))


@app.get("/api/patrons/{patron_id}/open-loans/count", response_model=OpenLoanCountModel)
def patron_open_loan_count(patron_id: int, lib: Library = Depends(get_library)):
    lib.get_patron(patron_id)
    return OpenLoanCountModel(patron_id=patron_id, open_loans=lib.count_open_loans(patron_id))


@app.post("/api/patrons", response_model=PatronModel, status_code=201, dependencies=[Depends(get_api_key)])
def add_patron(payload: PatronCreateModel, lib: Library = Depends(get_library)):
    """Register a new patron."""
    patron = Patron(name=payload.name, email=payload.email, phone=payload.phone, address=payload.address)
    return _patron_model(lib.add_patron(patron))


@app.put("/api/patrons/{patron_id}", response_model=PatronModel, dependencies=[Depends(get_api_key)])
def update_patron(patron_id: int, update: PatronUpdateModel, lib: Library = Depends(get_library)):
    return _patron_model(lib.update_patron(patron_id, **update.model_dump(exclude_unset=True)))


@app.put("/api/patrons/{patron_id}/activate", response_model=PatronModel, dependencies=[Depends(get_api_key)])
def activate_patron(patron_id: int, lib: Library = Depends(get_library)):
    return _patron_model(lib.activate_patron(patron_id))


@app.put("/api/patrons/{patron_id}/deactivate", response_model=PatronModel, dependencies=[Depends(get_api_key)])
def deactivate_patron(patron_id: int, lib: Library = Depends(get_library)):
    """Deactivate a patron; refused while they hold open loans."""
    return _patron_model(lib.deactivate_patron(patron_id))


@app.delete("/api/patrons/{patron_id}", response_model=MessageModel, dependencies=[Depends(get_api_key)])
def delete_patron(patron_id: int, lib: Library = Depends(get_library)):
    lib.remove_patron(patron_id)
    return MessageModel(message="Patron removed.")


# --- Loans ---
@app.get("/api/loans", response_model=List[LoanModel])
def list_loans(
    response: Response,
    offset: int = Query(0, ge=0),
    limit: Optional[int] = Query(None, ge=1, le=settings.max_page_size),
    lib: Library = Depends(get_library),
):
    """All loans, newest first."""
    return [_loan_model(l, lib.now()) for l in _page(lib.list_loans(), response, offset, limit)]


@app.get("/api/loans/active", response_model=List[LoanModel])
def list_active_loans(lib: Library = Depends(get_library)):
    return [_loan_model(l, lib.now()) for l in lib.list_active_loans()]


@app.get("/api/loans/overdue", response_model=List[LoanModel])
def list_overdue_loans(lib: Library = Depends(get_library)):
    return [_loan_model(l, lib.now()) for l in lib.list_overdue_loans()]


@app.get("/api/loans/due-today", response_model=List[LoanModel])
def loans_due_today(lib: Library = Depends(get_library)):
    return [_loan_model(l, lib.now()) for l in lib.loans_due_today()]


@app.get("/api/loans/due-within/{days}", response_model=List[LoanModel])
def loans_due_within(days: int, lib: Library = Depends(get_library)):
    return [_loan_model(l, lib.now()) for l in lib.loans_due_within(days)]


@app.get("/api/loans/status/{status}", response_model=List[LoanModel])
def loans_by_status(status: LoanStatus, lib: Library = Depends(get_library)):
    return [_loan_model(l, lib.now()) for l in lib.loans_by_status(status)]


@app.get("/api/loans/by-patron/{patron_id}", response_model=List[LoanModel])
def loans_by_patron(patron_id: int, lib: Library = Depends(get_library)):
    return [_loan_model(l, lib.now()) for l in lib.loans_by_patron(patron_id)]


@app.get("/api/loans/by-patron/{patron_id}/open", response_model=List[LoanModel])
def open_loans_by_patron(patron_id: int, lib: Library = Depends(get_library)):
    return [_loan_model(l, lib.now()) for l in lib.open_loans_by_patron(patron_id)]


@app.get("/api/loans/statistics", response_model=LoanStatsModel)
def loan_statistics(lib: Library = Depends(get_library)):
    return LoanStatsModel(**lib.loan_statistics())


@app.get("/api/loans/{loan_id}", response_model=LoanModel)
def get_loan(loan_id: int, lib: Library = Depends(get_library)):
    return _loan_model(lib.get_loan(loan_id), lib.now())


@app.post("/api/loans", response_model=LoanModel, status_code=201, dependencies=[Depends(get_api_key)])
def issue_loan(payload: LoanCreateModel, lib: Library = Depends(get_library)):
    """Lend a book to a patron."""
    return _loan_model(lib.issue_loan(
        payload.patron_id,
        payload.book_id,
        due_at=payload.due_at,
        period_days=payload.period_days,
    ), lib.now())


@app.put("/api/loans/{loan_id}/return", response_model=LoanModel, dependencies=[Depends(get_api_key)])
def return_loan(loan_id: int, lib: Library = Depends(get_library)):
    """Close a loan and settle its fine."""
    return _loan_model(lib.return_loan(loan_id), lib.now())


@app.put("/api/loans/{loan_id}/renew", response_model=LoanModel, dependencies=[Depends(get_api_key)])
def renew_loan(loan_id: int, payload: Optional[RenewalModel] = None, lib: Library = Depends(get_library)):
    """Extend a loan's due date. Late loans cannot be renewed."""
    days = payload.days if payload else None
    return _loan_model(lib.renew_loan(loan_id, days), lib.now())


@app.post("/api/loans/refresh-overdue", response_model=RefreshResultModel, dependencies=[Depends(get_api_key)])
def refresh_overdue_loans(lib: Library = Depends(get_library)):
    """Mark late loans OVERDUE and refresh their estimated fines."""
    return RefreshResultModel(updated=lib.refresh_overdue_loans())
