from __future__ import annotations

from datetime import datetime


class Patron:
    """A registered library patron (borrower)."""

    def __init__(self, name: str, email: str, phone: str | None = None,
                 address: str | None = None, active: bool = True,
                 registered_at: datetime | None = None, id: int | None = None) -> None:
        self.id = id
        self.name = name.strip()
        self.email = email.strip()
        self.phone = phone.strip() if phone else None
        self.address = address.strip() if address else None
        self.active = active
        self.registered_at = registered_at

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"{self.name} <{self.email}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "active": self.active,
            "registered_at": self.registered_at,
        }

    @staticmethod
    def from_dict(data: dict) -> "Patron":
        registered_at = data.get("registered_at")
        if isinstance(registered_at, str):
            registered_at = datetime.fromisoformat(registered_at)

        return Patron(
            id=data.get("id"),
            name=data["name"],
            email=data["email"],
            phone=data.get("phone"),
            address=data.get("address"),
            active=bool(data.get("active", True)),
            registered_at=registered_at,
        )
