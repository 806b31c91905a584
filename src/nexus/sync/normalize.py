"""
Identifier, name and search-term normalization.
"""

import re
from typing import Optional

from nexus.errors import ValidationError

MAX_SEARCH_TERM_LENGTH = 100

_NON_ALNUM = re.compile(r"[^A-Z0-9]")
_WHITESPACE = re.compile(r"\s+")


def normalize_company_number(company_number: str) -> str:
    """
    Normalize a registry company number.

    Uppercases, strips everything but letters and digits, and left-pads purely
    numeric numbers to eight digits ("1234" -> "00001234").

    Raises:
        ValidationError: if the cleaned number is not 2-8 characters long or
            has no digits
    """
    if company_number is None:
        raise ValidationError("Company number is required", field="company_number")

    cleaned = _NON_ALNUM.sub("", str(company_number).upper())
    if not 2 <= len(cleaned) <= 8 or not any(ch.isdigit() for ch in cleaned):
        raise ValidationError(
            f"Invalid company number format: {company_number!r}",
            field="company_number",
        )
    if cleaned.isdigit():
        return cleaned.zfill(8)
    return cleaned


def is_valid_company_number(company_number: str) -> bool:
    try:
        normalize_company_number(company_number)
    except ValidationError:
        return False
    return True


def normalize_person_name(name: str) -> str:
    """Case- and whitespace-fold a person's full name."""
    return _WHITESPACE.sub(" ", name or "").strip().casefold()


def make_person_key(
    full_name: str,
    birth_year: Optional[int] = None,
    birth_month: Optional[int] = None,
    include_birth_date: bool = True,
) -> str:
    """
    Build the natural key for a person.

    The normalized name alone collides for namesakes, so when a birth year is
    known (and include_birth_date is set) it is appended as YYYY or YYYY-MM.
    """
    key = normalize_person_name(full_name)
    if not include_birth_date or birth_year is None:
        return key
    if birth_month is None:
        return f"{key}|{birth_year:04d}"
    return f"{key}|{birth_year:04d}-{birth_month:02d}"


def validate_search_term(term: str) -> str:
    """
    Strip and validate a search term.

    Raises:
        ValidationError: if the term is empty or too long
    """
    cleaned = (term or "").strip()
    if not cleaned:
        raise ValidationError("Search query is required", field="q")
    if len(cleaned) > MAX_SEARCH_TERM_LENGTH:
        raise ValidationError(
            f"Search query too long (max {MAX_SEARCH_TERM_LENGTH} characters)",
            field="q",
        )
    return cleaned


def validate_limit(limit: int) -> int:
    if limit is None or limit < 1:
        raise ValidationError("Limit must be at least 1", field="limit")
    return limit


def validate_page(page: int) -> int:
    if page is None or page < 1:
        raise ValidationError("Page must be at least 1", field="page")
    return page
