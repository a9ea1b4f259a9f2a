import math
from typing import Optional

from ..errors import InvalidInputError
from .rates import FiscalYear, RateBook, load_rate_book


def check_revenue(revenue) -> float:
    try:
        value = float(revenue)
    except (TypeError, ValueError):
        raise InvalidInputError(f"Chiffre d'affaires invalide: {revenue!r}")
    if not math.isfinite(value):
        raise InvalidInputError(f"Chiffre d'affaires invalide: {revenue!r}")
    if value < 0:
        raise InvalidInputError(f"Chiffre d'affaires négatif: {value}")
    return value


class FiscalCalculator:
    """Common plumbing: every calculator reads its figures from a RateBook."""

    def __init__(self, rate_book: Optional[RateBook] = None):
        self.rate_book = rate_book if rate_book is not None else load_rate_book()

    def fiscal_year(self, year: Optional[int] = None) -> FiscalYear:
        return self.rate_book.get(year)
