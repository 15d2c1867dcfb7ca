from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

import api as api_module
from config import settings


def _create_book(client, isbn="9780199535675", title="Ulysses", **extra):
    payload = {"title": title, "author": "James Joyce", "isbn": isbn, "publication_year": 1922}
    payload.update(extra)
    response = client.post("/api/books", json=payload)
    assert response.status_code == 201, response.text
    return response.json()


def _create_patron(client, email="ada@example.com", name="Ada Lovelace"):
    response = client.post("/api/patrons", json={"name": name, "email": email})
    assert response.status_code == 201, response.text
    return response.json()


def _issue(client, patron_id, book_id, **extra):
    return client.post("/api/loans", json={"patron_id": patron_id, "book_id": book_id, **extra})


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.headers["X-Content-Type-Options"] == "nosniff"


def test_get_books_empty(client):
    response = client.get("/api/books")
    assert response.status_code == 200
    assert response.json() == []


def test_book_crud(client):
    book = _create_book(client, genre="Novel")
    assert book["available"] is True
    assert book["isbn"] == "9780199535675"

    assert client.get(f"/api/books/{book['id']}").json()["title"] == "Ulysses"
    assert client.get("/api/books/isbn/9780199535675").json()["id"] == book["id"]

    response = client.put(f"/api/books/{book['id']}", json={"title": "Ulysses (1922 text)"})
    assert response.status_code == 200
    assert response.json()["title"] == "Ulysses (1922 text)"

    response = client.delete(f"/api/books/{book['id']}")
    assert response.status_code == 200
    assert response.json() == {"message": "Book removed."}
    assert client.get(f"/api/books/{book['id']}").status_code == 404


def test_book_listing_pages(client):
    _create_book(client, title="A")
    _create_book(client, isbn="9780099590088", title="B")
    _create_book(client, isbn="9780141439518", title="C")

    response = client.get("/api/books", params={"offset": 1, "limit": 1})
    assert response.status_code == 200
    assert [b["title"] for b in response.json()] == ["B"]
    assert response.headers["X-Total-Count"] == "3"
    assert len(client.get("/api/books").json()) == 3
    assert client.get("/api/books", params={"limit": 0}).status_code == 422


def test_book_validation_error_is_400(client):
    response = client.post(
        "/api/books",
        json={"title": "Bad", "author": "Nobody", "isbn": "123", "publication_year": 2000},
    )
    assert response.status_code == 400
    assert "Invalid ISBN" in response.json()["detail"]


def test_book_wrong_types_is_422(client):
    response = client.post(
        "/api/books",
        json={"title": "Bad", "author": "Nobody", "isbn": "9780199535675", "publication_year": "soon"},
    )
    assert response.status_code == 422


def test_book_lookups(client):
    _create_book(client, genre="Novel")
    _create_book(client, isbn="9780099590088", title="Sapiens", genre="History")

    assert [b["title"] for b in client.get("/api/books/search", params={"q": "sap"}).json()] == ["Sapiens"]
    assert len(client.get("/api/books/author", params={"name": "joyce"}).json()) == 1
    assert len(client.get("/api/books/genre", params={"name": "history"}).json()) == 1
    assert len(client.get("/api/books/year/1922").json()) == 2
    assert client.get("/api/books/statistics").json() == {
        "total_books": 2, "available_books": 2, "loaned_books": 0,
    }
    assert client.get("/api/books/isbn/0000000000").status_code == 404


def test_unknown_ids_are_404(client):
    assert client.get("/api/books/999").status_code == 404
    assert client.get("/api/patrons/999").status_code == 404
    assert client.get("/api/loans/999").status_code == 404
    assert client.get("/api/patrons/999/open-loans/count").status_code == 404
    response = client.get("/api/loans/999")
    assert response.json()["detail"] == "Loan not found with id: 999"


def test_patron_endpoints(client):
    patron = _create_patron(client)
    assert patron["active"] is True

    response = client.get("/api/patrons/email", params={"address": "ADA@example.com"})
    assert response.json()["id"] == patron["id"]

    response = client.put(f"/api/patrons/{patron['id']}/deactivate")
    assert response.json()["active"] is False
    assert [p["id"] for p in client.get("/api/patrons/inactive").json()] == [patron["id"]]
    assert client.get(f"/api/patrons/{patron['id']}/can-borrow").json()["can_borrow"] is False

    response = client.put(f"/api/patrons/{patron['id']}/activate")
    assert response.json()["active"] is True
    assert client.get("/api/patrons/statistics").json()["active_patrons"] == 1

    assert client.delete(f"/api/patrons/{patron['id']}").json() == {"message": "Patron removed."}


def test_duplicate_patron_email_is_400(client):
    _create_patron(client)
    response = client.post("/api/patrons", json={"name": "Other", "email": "ada@example.com"})
    assert response.status_code == 400


def test_loan_lifecycle(client, clock):
    book = _create_book(client)
    patron = _create_patron(client)

    response = _issue(client, patron["id"], book["id"])
    assert response.status_code == 201
    loan = response.json()
    assert loan["status"] == "ACTIVE"
    assert loan["fine"] == "0.00"
    assert loan["days_remaining"] == 14
    assert loan["book_title"] == "Ulysses"
    assert client.get(f"/api/books/{book['id']}/available").json()["available"] is False

    response = client.put(f"/api/loans/{loan['id']}/renew", json={"days": 7})
    assert response.status_code == 200
    assert response.json()["status"] == "RENEWED"

    # due after 21 days, returned after 23
    clock.advance(days=23)
    response = client.put(f"/api/loans/{loan['id']}/return")
    assert response.status_code == 200
    assert response.json()["status"] == "RETURNED"
    assert response.json()["fine"] == "4.00"
    assert response.json()["days_remaining"] is None

    response = client.put(f"/api/loans/{loan['id']}/return")
    assert response.status_code == 400
    assert response.json()["detail"] == "Loan has already been returned."


def test_renew_without_body_uses_default_period(client):
    book = _create_book(client)
    patron = _create_patron(client)
    loan = _issue(client, patron["id"], book["id"]).json()

    response = client.put(f"/api/loans/{loan['id']}/renew")
    assert response.status_code == 200
    assert response.json()["status"] == "RENEWED"


def test_issue_failures_are_400(client):
    book = _create_book(client)
    patron = _create_patron(client)

    response = _issue(client, 999, book["id"])
    assert response.status_code == 400
    assert response.json()["detail"] == "Patron not found with id: 999"

    response = _issue(client, patron["id"], 999)
    assert response.status_code == 400
    assert response.json()["detail"] == "Book not found with id: 999"

    assert _issue(client, patron["id"], book["id"]).status_code == 201
    other = _create_patron(client, email="alan@example.com", name="Alan Turing")
    response = _issue(client, other["id"], book["id"])
    assert response.status_code == 400
    assert response.json()["detail"] == "Book is not available for loan."


def test_loan_limit_over_http(client):
    patron = _create_patron(client)
    isbns = ["9780199535675", "9780099590088", "9780141439518", "9780140449136"]
    books = [_create_book(client, isbn=isbn, title=f"Book {i}") for i, isbn in enumerate(isbns)]
    for book in books[:3]:
        assert _issue(client, patron["id"], book["id"]).status_code == 201

    response = _issue(client, patron["id"], books[3]["id"])
    assert response.status_code == 400
    assert "limit of 3" in response.json()["detail"]
    assert client.get(f"/api/patrons/{patron['id']}/open-loans/count").json()["open_loans"] == 3


def test_refresh_overdue_and_queries(client, clock):
    book = _create_book(client)
    patron = _create_patron(client)
    loan = _issue(client, patron["id"], book["id"]).json()

    clock.advance(days=17)
    response = client.post("/api/loans/refresh-overdue")
    assert response.status_code == 200
    assert response.json() == {"updated": 1}

    overdue = client.get("/api/loans/overdue").json()
    assert [l["id"] for l in overdue] == [loan["id"]]
    assert overdue[0]["fine"] == "6.00"
    assert overdue[0]["days_remaining"] == -3
    assert [l["id"] for l in client.get("/api/loans/status/OVERDUE").json()] == [loan["id"]]
    assert client.get("/api/loans/active").json() == []
    assert [p["id"] for p in client.get("/api/patrons/with-overdue-loans").json()] == [patron["id"]]

    response = client.put(f"/api/loans/{loan['id']}/renew")
    assert response.status_code == 400
    assert response.json()["detail"] == "Loan cannot be renewed. Status: OVERDUE"

    stats = client.get("/api/loans/statistics").json()
    assert stats["overdue_loans"] == 1
    assert stats["total_fines"] == "6.00"


def test_due_queries(client, clock):
    book = _create_book(client)
    patron = _create_patron(client)
    due = (clock() + timedelta(hours=3)).isoformat()
    loan = _issue(client, patron["id"], book["id"], due_at=due).json()

    assert [l["id"] for l in client.get("/api/loans/due-today").json()] == [loan["id"]]
    assert [l["id"] for l in client.get("/api/loans/due-within/1").json()] == [loan["id"]]
    assert [l["id"] for l in client.get(f"/api/loans/by-patron/{patron['id']}/open").json()] == [loan["id"]]
    assert client.get("/api/loans/due-within/-1").status_code == 400


def test_unknown_status_is_422(client):
    assert client.get("/api/loans/status/LOST").status_code == 422


def test_delete_patron_with_open_loan_is_400(client):
    book = _create_book(client)
    patron = _create_patron(client)
    _issue(client, patron["id"], book["id"])

    response = client.delete(f"/api/patrons/{patron['id']}")
    assert response.status_code == 400
    assert client.delete(f"/api/books/{book['id']}").status_code == 400


def test_api_key_required_when_configured(client, monkeypatch):
    monkeypatch.setattr(settings, "api_key", "secret")
    payload = {"name": "Ada", "email": "ada@example.com"}

    assert client.post("/api/patrons", json=payload).status_code == 403
    assert client.post("/api/patrons", json=payload, headers={"X-API-Key": "wrong"}).status_code == 403
    assert client.post("/api/patrons", json=payload, headers={"X-API-Key": "secret"}).status_code == 201
    # reads stay open
    assert client.get("/api/patrons").status_code == 200


def test_unexpected_error_is_500(lib, monkeypatch):
    def boom():
        raise RuntimeError("disk on fire")

    monkeypatch.setattr(lib, "list_books", boom)
    api_module.app.dependency_overrides[api_module.get_library] = lambda: lib
    try:
        with TestClient(api_module.app, raise_server_exceptions=False) as test_client:
            response = test_client.get("/api/books")
    finally:
        api_module.app.dependency_overrides.clear()

    assert response.status_code == 500
    assert response.json() == {"detail": "Internal server error"}


def test_huge_day_counts_are_400(client):
    book = _create_book(client)
    patron = _create_patron(client)

    response = _issue(client, patron["id"], book["id"], period_days=10**7)
    assert response.status_code == 400
    assert "at most 3650 days" in response.json()["detail"]

    loan = _issue(client, patron["id"], book["id"]).json()
    response = client.put(f"/api/loans/{loan['id']}/renew", json={"days": 10**7})
    assert response.status_code == 400
    assert client.get(f"/api/loans/{loan['id']}").json()["status"] == "ACTIVE"

    assert client.get("/api/loans/due-within/100000000").status_code == 400
    assert client.get("/api/loans/due-within/3650").status_code == 200
