import re
from typing import Optional

MIN_PUBLICATION_YEAR = 1000
MAX_PUBLICATION_YEAR = 2030

_EMAIL_RE = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")


class ISBNValidator:
    """ISBN checks for catalog entries.

    An ISBN is accepted when it holds exactly 10 or 13 digits once hyphens
    and spaces are stripped. Checksums are not verified.
    """

    @staticmethod
    def normalize_isbn(raw: Optional[str]) -> str:
        if raw is None:
            return ""
        return re.sub(r"[^0-9]", "", raw)

    @staticmethod
    def is_valid_isbn(isbn: Optional[str]) -> bool:
        if not isbn:
            return False
        # reject letters rather than silently dropping them
        if re.search(r"[^0-9\s-]", isbn):
            return False
        return len(ISBNValidator.normalize_isbn(isbn)) in (10, 13)


class EmailValidator:

    @staticmethod
    def normalize_email(raw: Optional[str]) -> str:
        return (raw or "").strip().lower()

    @staticmethod
    def is_valid_email(email: Optional[str]) -> bool:
        if email is None or not email.strip():
            return False
        return bool(_EMAIL_RE.match(email.strip()))


class TextValidator:
    """Basic required-text and length checks."""

    @staticmethod
    def is_present(text: Optional[str]) -> bool:
        return text is not None and bool(text.strip())

    @staticmethod
    def fits(text: Optional[str], max_length: int) -> bool:
        return text is None or len(text.strip()) <= max_length

    @staticmethod
    def validate_required(text: Optional[str], max_length: int) -> bool:
        return TextValidator.is_present(text) and TextValidator.fits(text, max_length)


def is_valid_publication_year(year: Optional[int]) -> bool:
    return year is not None and MIN_PUBLICATION_YEAR <= year <= MAX_PUBLICATION_YEAR
