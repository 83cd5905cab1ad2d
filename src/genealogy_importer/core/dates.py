"""
GEDCOM date resolution.

Approximation prefixes (ABT, EST, CAL, AFT, BEF, BET) are stripped and the
remainder is treated as an exact date. Supported shapes, in order:

    D MON YYYY   -> that day
    MON YYYY     -> first of the month
    YYYY         -> first of the year

Anything else goes through a generic parse of common numeric and
spelled-out layouts. Unresolvable dates yield None and are logged.
"""

from __future__ import annotations

import logging
import re
from datetime import date, datetime

logger = logging.getLogger("genealogy_importer.core.dates")

MONTHS = {
    "JAN": 1, "FEB": 2, "MAR": 3, "APR": 4, "MAY": 5, "JUN": 6,
    "JUL": 7, "AUG": 8, "SEP": 9, "OCT": 10, "NOV": 11, "DEC": 12,
}

APPROXIMATION_PREFIXES = ("ABT", "EST", "CAL", "AFT", "BEF", "BET")

_PREFIX = re.compile(r"^(?:%s)\.?\s+" % "|".join(APPROXIMATION_PREFIXES), re.IGNORECASE)
_DAY_MONTH_YEAR = re.compile(r"^(\d{1,2})\s+([A-Z]{3})\s+(\d{3,4})$", re.IGNORECASE)
_MONTH_YEAR = re.compile(r"^([A-Z]{3})\s+(\d{3,4})$", re.IGNORECASE)
_YEAR = re.compile(r"^(\d{3,4})$")
_ANY_YEAR = re.compile(r"(?<!\d)(\d{3,4})(?!\d)")

# Layouts tried by the generic fallback
GENERIC_FORMATS = (
    "%Y-%m-%d",
    "%d/%m/%Y",
    "%d.%m.%Y",
    "%d-%m-%Y",
    "%d %B %Y",
    "%B %d, %Y",
    "%B %d %Y",
    "%B %Y",
)


def strip_approximation(value: str) -> str:
    """Remove a leading approximation keyword such as ABT or BEF."""
    return _PREFIX.sub("", value.strip()).strip()


def parse_gedcom_date(value: str | None) -> date | None:
    """
    Resolve a GEDCOM date string to a calendar date.

    Returns None for empty input or when nothing resolves; never raises.
    """
    if not value or not value.strip():
        return None

    text = strip_approximation(value)

    try:
        match = _DAY_MONTH_YEAR.match(text)
        if match:
            day, month, year = match.groups()
            return date(int(year), _month_number(month), int(day))

        match = _MONTH_YEAR.match(text)
        if match:
            month, year = match.groups()
            return date(int(year), _month_number(month), 1)

        match = _YEAR.match(text)
        if match:
            return date(int(match.group(1)), 1, 1)

        return _parse_generic(text)
    except ValueError as e:
        logger.warning(f"Failed to parse GEDCOM date '{value}': {e}")
        return None


def extract_year(value: str | None) -> int | None:
    """First plausible bare year in a date string, e.g. 1850 in 'BET 1850 AND 1860'."""
    if not value:
        return None
    match = _ANY_YEAR.search(strip_approximation(value))
    if not match:
        return None
    year = int(match.group(1))
    return year if year >= 100 else None


def resolve_event_date(value: str | None) -> tuple[date | None, int | None]:
    """
    Resolve an event date into (exact date, bare year).

    The exact date takes precedence; the bare year is only returned
    when no exact date resolves.
    """
    exact = parse_gedcom_date(value)
    if exact is not None:
        return exact, None
    return None, extract_year(value)


def _month_number(abbreviation: str) -> int:
    try:
        return MONTHS[abbreviation.upper()]
    except KeyError:
        raise ValueError(f"Unknown month '{abbreviation}'") from None


def _parse_generic(text: str) -> date:
    for fmt in GENERIC_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    raise ValueError("no known date layout matches")
