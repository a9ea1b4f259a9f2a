"""
Fiscal data, versioned by calendar year.

Each year lives in its own ``rates_fr_<year>.yaml`` file. A new year is
published by dropping a new file next to the others; older years are never
edited in place. Everything loaded here is immutable and safe to share
between requests.
"""

import logging
import math
import re
from dataclasses import dataclass, fields
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

import yaml

from .. import config
from ..errors import InvalidInputError, RateTableError, UnknownFiscalYearError

logger = logging.getLogger(__name__)

RATE_FILE_PATTERN = re.compile(r"^rates_fr_(\d{4})\.ya?ml$")
TOTAL_TOLERANCE = 1e-6


class ActivityType(str, Enum):
    SERVICES = "services"
    COMMERCE = "commerce"
    LIBERAL = "liberal"

    @classmethod
    def parse(cls, value) -> "ActivityType":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            allowed = ", ".join(a.value for a in cls)
            raise InvalidInputError(f"Type d'activité inconnu: {value!r} (attendu: {allowed})")


@dataclass(frozen=True)
class ContributionRates:
    health: float
    base_pension: float
    complementary_pension: float
    disability_death: float
    csg_crds: float
    vocational_training: float

    @property
    def total(self) -> float:
        return sum(rate for _, rate in self.items())

    def items(self) -> List[Tuple[str, float]]:
        return [(f.name, getattr(self, f.name)) for f in fields(self)]


COMPONENTS = tuple(f.name for f in fields(ContributionRates))


@dataclass(frozen=True)
class RateTable:
    year: int
    activity_type: ActivityType
    contributions: ContributionRates
    franchise_threshold: float
    abatement_rate: float


@dataclass(frozen=True)
class IncomeTaxBracket:
    lower: float
    upper: float  # math.inf for the last bracket
    rate: float

    @property
    def is_unbounded(self) -> bool:
        return math.isinf(self.upper)


@dataclass(frozen=True)
class CFEParameters:
    exemption_revenue: float
    minimum_base: float
    maximum_base: float
    surface_rate: float
    revenue_breakpoint: float
    revenue_rate: float
    tax_rate: float


@dataclass(frozen=True)
class ACRESchedule:
    duration_years: int
    reductions: Mapping[int, float]

    def reduction(self, acre_year: int) -> float:
        try:
            return self.reductions[int(acre_year)]
        except (KeyError, TypeError, ValueError):
            raise InvalidInputError(
                f"Année ACRE invalide: {acre_year!r} (attendu: {sorted(self.reductions)})"
            )


@dataclass(frozen=True)
class FiscalYear:
    year: int
    rate_tables: Mapping[ActivityType, RateTable]
    income_tax_brackets: Tuple[IncomeTaxBracket, ...]
    cfe: CFEParameters
    acre: ACRESchedule

    def rate_table(self, activity_type) -> RateTable:
        return self.rate_tables[ActivityType.parse(activity_type)]


class RateBook:
    """All published fiscal years, keyed by year."""

    def __init__(self, years: Mapping[int, FiscalYear]):
        if not years:
            raise RateTableError("Aucun barème chargé")
        self._years = dict(years)

    @property
    def years(self) -> List[int]:
        return sorted(self._years)

    @property
    def latest_year(self) -> int:
        return max(self._years)

    def get(self, year: Optional[int] = None) -> FiscalYear:
        if year is None:
            year = self.latest_year
        try:
            return self._years[int(year)]
        except (KeyError, TypeError, ValueError):
            raise UnknownFiscalYearError(year, self.years)

    def rate_table(self, year: Optional[int], activity_type) -> RateTable:
        return self.get(year).rate_table(activity_type)

    def __contains__(self, year) -> bool:
        return year in self._years

    @classmethod
    def from_directory(cls, path) -> "RateBook":
        path = Path(path)
        years: Dict[int, FiscalYear] = {}
        for file in sorted(path.iterdir()):
            match = RATE_FILE_PATTERN.match(file.name)
            if not match:
                continue
            fiscal_year = parse_fiscal_year(load_params(file))
            if fiscal_year.year != int(match.group(1)):
                raise RateTableError(
                    f"{file.name}: année {fiscal_year.year} différente du nom de fichier"
                )
            years[fiscal_year.year] = fiscal_year
        logger.info("Loaded fiscal years %s from %s", sorted(years), path)
        return cls(years)


def load_params(path) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f)


def _number(data: Mapping, key: str, where: str) -> float:
    try:
        value = float(data[key])
    except KeyError:
        raise RateTableError(f"{where}: champ '{key}' manquant")
    except (TypeError, ValueError):
        raise RateTableError(f"{where}: '{key}' n'est pas un nombre ({data[key]!r})")
    if value < 0 or math.isnan(value):
        raise RateTableError(f"{where}: '{key}' doit être positif ({value})")
    return value


def parse_rate_table(year: int, activity_type: ActivityType, data: Mapping) -> RateTable:
    where = f"{year}/{activity_type.value}"
    raw = data.get("contributions") or {}
    rates = ContributionRates(
        **{name: _number(raw, name, where) for name in COMPONENTS}
    )
    published_total = _number(raw, "total", where)
    if abs(rates.total - published_total) > TOTAL_TOLERANCE:
        raise RateTableError(
            f"{where}: la somme des taux ({rates.total:.6f}) ne correspond pas "
            f"au taux global publié ({published_total})"
        )
    return RateTable(
        year=year,
        activity_type=activity_type,
        contributions=rates,
        franchise_threshold=_number(data, "franchise_threshold", where),
        abatement_rate=_number(data, "abatement_rate", where),
    )


def parse_brackets(year: int, raw: List[Mapping]) -> Tuple[IncomeTaxBracket, ...]:
    if not raw:
        raise RateTableError(f"{year}: barème IR vide")

    brackets = []
    expected_lower = 0.0
    for i, item in enumerate(raw):
        where = f"{year}/tranche {i + 1}"
        lower = _number(item, "lower", where)
        upper = math.inf if item.get("upper") is None else _number(item, "upper", where)
        if lower != expected_lower:
            raise RateTableError(f"{where}: tranche non contiguë (début {lower}, attendu {expected_lower})")
        if upper <= lower:
            raise RateTableError(f"{where}: borne haute {upper} <= borne basse {lower}")
        brackets.append(IncomeTaxBracket(lower=lower, upper=upper, rate=_number(item, "rate", where)))
        expected_lower = upper

    if not brackets[-1].is_unbounded:
        raise RateTableError(f"{year}: la dernière tranche doit être illimitée")
    return tuple(brackets)


def parse_fiscal_year(params: Mapping) -> FiscalYear:
    try:
        year = int(params["year"])
    except (KeyError, TypeError, ValueError):
        raise RateTableError("Champ 'year' manquant ou invalide")

    activities = params.get("activities") or {}
    tables = {}
    for activity_type in ActivityType:
        if activity_type.value not in activities:
            raise RateTableError(f"{year}: aucun barème pour l'activité {activity_type.value}")
        tables[activity_type] = parse_rate_table(year, activity_type, activities[activity_type.value])

    cfe_raw = params.get("cfe") or {}
    cfe = CFEParameters(
        **{f.name: _number(cfe_raw, f.name, f"{year}/cfe") for f in fields(CFEParameters)}
    )

    acre_raw = params.get("acre") or {}
    reductions = {
        int(k): _number(acre_raw.get("reductions") or {}, k, f"{year}/acre")
        for k in (acre_raw.get("reductions") or {})
    }
    if not reductions:
        raise RateTableError(f"{year}: calendrier ACRE manquant")
    acre = ACRESchedule(
        duration_years=int(_number(acre_raw, "duration_years", f"{year}/acre")),
        reductions=reductions,
    )

    return FiscalYear(
        year=year,
        rate_tables=tables,
        income_tax_brackets=parse_brackets(year, params.get("income_tax_brackets") or []),
        cfe=cfe,
        acre=acre,
    )


@lru_cache(maxsize=None)
def load_rate_book(path: Optional[str] = None) -> RateBook:
    """Load (once per directory) the rate book used by the application."""
    return RateBook.from_directory(path or config.RATES_DIR)
