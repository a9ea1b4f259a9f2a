"""
Declaration periods, due dates and the yearly fiscal calendar.

URSSAF declarations follow the frequency chosen by the business (monthly or
quarterly); income tax and CFE are annual.
"""

import calendar
from dataclasses import dataclass
from datetime import date
from typing import List

from .errors import InvalidInputError
from .models import CalendarEntry, DeclarationType, PeriodKind

MONTH_NAMES = [
    "janvier", "février", "mars", "avril", "mai", "juin",
    "juillet", "août", "septembre", "octobre", "novembre", "décembre",
]

INCOME_TAX_DUE = (5, 31)   # 31 mai de l'année suivante
CFE_DUE = (12, 15)         # 15 décembre de l'année


def last_day_of_month(year: int, month: int) -> date:
    return date(year, month, calendar.monthrange(year, month)[1])


def add_years(d: date, years: int) -> date:
    """Same calendar day ``years`` later; 29 February rolls over to 1 March."""
    try:
        return d.replace(year=d.year + years)
    except ValueError:
        return date(d.year + years, 3, 1)


def check_period(start: date, end: date) -> None:
    if end < start:
        raise InvalidInputError(f"Fin de période {end} antérieure au début {start}")


@dataclass(frozen=True)
class Period:
    kind: PeriodKind
    year: int
    index: int = 1  # month 1-12, quarter 1-4, always 1 for a year

    def __post_init__(self):
        try:
            object.__setattr__(self, "kind", PeriodKind(self.kind))
        except ValueError:
            raise InvalidInputError(f"Type de période inconnu: {self.kind!r}")
        limit = {PeriodKind.MONTHLY: 12, PeriodKind.QUARTERLY: 4, PeriodKind.ANNUAL: 1}[self.kind]
        if not 1 <= self.index <= limit:
            raise InvalidInputError(f"Période {self.kind.value} invalide: {self.index}")

    @classmethod
    def month(cls, year: int, month: int) -> "Period":
        return cls(PeriodKind.MONTHLY, year, month)

    @classmethod
    def quarter(cls, year: int, quarter: int) -> "Period":
        return cls(PeriodKind.QUARTERLY, year, quarter)

    @classmethod
    def annual(cls, year: int) -> "Period":
        return cls(PeriodKind.ANNUAL, year, 1)

    @property
    def start(self) -> date:
        if self.kind is PeriodKind.MONTHLY:
            return date(self.year, self.index, 1)
        if self.kind is PeriodKind.QUARTERLY:
            return date(self.year, (self.index - 1) * 3 + 1, 1)
        return date(self.year, 1, 1)

    @property
    def end(self) -> date:
        if self.kind is PeriodKind.MONTHLY:
            return last_day_of_month(self.year, self.index)
        if self.kind is PeriodKind.QUARTERLY:
            return last_day_of_month(self.year, self.index * 3)
        return date(self.year, 12, 31)

    @property
    def label(self) -> str:
        if self.kind is PeriodKind.MONTHLY:
            return f"{self.year}-{self.index:02d}"
        if self.kind is PeriodKind.QUARTERLY:
            return f"{self.year}-T{self.index}"
        return str(self.year)

    @property
    def period_index(self):
        """Index as stored on a declaration (None for a whole year)."""
        return None if self.kind is PeriodKind.ANNUAL else self.index

    def contains(self, d: date) -> bool:
        return self.start <= d <= self.end


def periods_in_year(kind: PeriodKind, year: int) -> List[Period]:
    kind = PeriodKind(kind)
    count = {PeriodKind.MONTHLY: 12, PeriodKind.QUARTERLY: 4, PeriodKind.ANNUAL: 1}[kind]
    return [Period(kind, year, i) for i in range(1, count + 1)]


def due_date(declaration_type: DeclarationType, period: Period) -> date:
    declaration_type = DeclarationType(declaration_type)

    if declaration_type is DeclarationType.URSSAF:
        if period.kind is PeriodKind.QUARTERLY:
            end = period.end
            if end.month == 12:
                return last_day_of_month(end.year + 1, 1)
            return last_day_of_month(end.year, end.month + 1)
        if period.kind is PeriodKind.MONTHLY:
            return period.end
        raise InvalidInputError("Les déclarations URSSAF sont mensuelles ou trimestrielles")

    if period.kind is not PeriodKind.ANNUAL:
        raise InvalidInputError(f"La déclaration {declaration_type.value} est annuelle")
    if declaration_type is DeclarationType.INCOME_TAX:
        return date(period.year + 1, *INCOME_TAX_DUE)
    return date(period.year, *CFE_DUE)


def _describe(declaration_type: DeclarationType, period: Period) -> str:
    if declaration_type is DeclarationType.INCOME_TAX:
        return f"Déclaration de revenus {period.year}"
    if declaration_type is DeclarationType.CFE:
        return "Cotisation Foncière des Entreprises"
    if period.kind is PeriodKind.MONTHLY:
        return f"Déclaration URSSAF {MONTH_NAMES[period.index - 1]}"
    return f"Déclaration URSSAF T{period.index}"


def fiscal_calendar(year: int, frequency: PeriodKind = PeriodKind.QUARTERLY) -> List[CalendarEntry]:
    frequency = PeriodKind(frequency)
    if frequency is PeriodKind.ANNUAL:
        raise InvalidInputError("Fréquence URSSAF mensuelle ou trimestrielle uniquement")

    entries = []
    schedule = [(DeclarationType.URSSAF, p) for p in periods_in_year(frequency, year)]
    schedule += [
        (DeclarationType.INCOME_TAX, Period.annual(year)),
        (DeclarationType.CFE, Period.annual(year)),
    ]
    for declaration_type, period in schedule:
        entries.append(CalendarEntry(
            declaration_type=declaration_type,
            period=period.label,
            period_start=period.start,
            period_end=period.end,
            due_date=due_date(declaration_type, period),
            description=_describe(declaration_type, period),
        ))
    return sorted(entries, key=lambda e: e.due_date)
