from __future__ import annotations

from datetime import datetime


class Book:
    """Represents a single title in the library catalog."""

    def __init__(self, title: str, author: str, isbn: str, publication_year: int,
                 genre: str | None = None, available: bool = True,
                 updated_at: datetime | None = None, id: int | None = None) -> None:
        self.id = id
        self.title = title.strip()
        self.author = author.strip()
        self.isbn = isbn.strip()
        self.publication_year = publication_year
        self.genre = genre.strip() if genre else None
        self.available = available
        self.updated_at = updated_at

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"{self.title} by {self.author} (ISBN: {self.isbn})"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "author": self.author,
            "isbn": self.isbn,
            "publication_year": self.publication_year,
            "genre": self.genre,
            "available": self.available,
            "updated_at": self.updated_at,
        }

    @staticmethod
    def from_dict(data: dict) -> "Book":
        # SQLite hands back 0/1 for booleans and ISO text for timestamps
        updated_at = data.get("updated_at")
        if isinstance(updated_at, str):
            updated_at = datetime.fromisoformat(updated_at)

        return Book(
            id=data.get("id"),
            title=data["title"],
            author=data["author"],
            isbn=data["isbn"],
            publication_year=int(data["publication_year"]),
            genre=data.get("genre"),
            available=bool(data.get("available", True)),
            updated_at=updated_at,
        )
