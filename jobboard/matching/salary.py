"""Parsing of free-form salary bands.

Salaries are entered as bands in lakhs of rupees (``"₹5-10 LPA"``). Only the
first numeric token is used and it is scaled to absolute rupees, so the band's
lower edge is what criteria compare against.
"""

import re
from typing import Optional

NEGOTIABLE_SALARY = "Negotiable"

LAKH = 100_000

_FIRST_NUMBER = re.compile(r"\d+(?:\.\d+)?")


def is_negotiable(offered_salary: Optional[str]) -> bool:
    """True only for the exact literal ``"Negotiable"``."""
    return offered_salary == NEGOTIABLE_SALARY


def parse_salary(offered_salary: Optional[str]) -> int:
    """Convert a salary band to absolute rupees.

    A value with no numeric token (including None) parses as 0.

    Example:
        >>> parse_salary("₹5-10 LPA")
        500000
        >>> parse_salary("Competitive")
        0
    """
    if not offered_salary:
        return 0
    match = _FIRST_NUMBER.search(offered_salary)
    if match is None:
        return 0
    return int(round(float(match.group(0)) * LAKH))
