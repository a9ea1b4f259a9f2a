"""
Declaration period aggregator.

Income records are bucketed into monthly / quarterly / annual periods, each
bucket is fed to the matching calculator and turned into a draft declaration.
Declarations then move forward only through explicit user action:

    draft --submit--> submitted --pay--> paid
"""

import logging
import math
from datetime import date, datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional

import pandas as pd

from . import config
from .errors import DeclarationNotFoundError, InvalidDeclarationStateError, InvalidInputError
from .models import (
    AnnualTaxSummary, BusinessProfile, ContributionResult, Declaration,
    DeclarationStatus, DeclarationType, PeriodKind,
)
from .periods import Period, check_period, due_date, periods_in_year
from .store import RecordStore
from .tax.cfe import CFECalculator
from .tax.income_tax import IncomeTaxCalculator, income_tax_form
from .tax.rates import ActivityType, RateBook, load_rate_book
from .tax.social import SocialContributionCalculator

logger = logging.getLogger(__name__)

TRANSITIONS = {
    DeclarationStatus.DRAFT: DeclarationStatus.SUBMITTED,
    DeclarationStatus.SUBMITTED: DeclarationStatus.PAID,
}


# ----------------------------
# BUCKETING
# ----------------------------
def records_frame(records: Iterable) -> pd.DataFrame:
    """Normalise dict / model records into a (date, amount) frame."""
    rows = []
    for r in records:
        if isinstance(r, dict):
            rows.append({"date": r["date"], "amount": r["amount"]})
        else:
            rows.append({"date": r.date, "amount": r.amount})

    df = pd.DataFrame(rows, columns=["date", "amount"])
    try:
        df["date"] = pd.to_datetime(df["date"]).dt.normalize()
        df["amount"] = pd.to_numeric(df["amount"], errors="raise").astype(float)
    except (TypeError, ValueError) as exc:
        raise InvalidInputError(f"Enregistrement de recette invalide: {exc}")

    # A missing amount or date is an error, not a zero
    invalid = df["amount"].isna() | df["date"].isna() | df["amount"].isin([math.inf, -math.inf])
    if invalid.any():
        bad = df.loc[invalid].iloc[0]
        raise InvalidInputError(
            f"Enregistrement de recette invalide: montant {bad['amount']!r} au {bad['date']!r}"
        )
    return df


def sum_revenue(records: Iterable, period_start: date, period_end: date) -> float:
    """Sum of records dated within [period_start, period_end], both inclusive."""
    check_period(period_start, period_end)
    df = records_frame(records)
    # Dates are normalised to midnight, so the whole last day is included
    mask = (df["date"] >= pd.Timestamp(period_start)) & (df["date"] <= pd.Timestamp(period_end))
    return float(df.loc[mask, "amount"].sum())


def revenue_by_period(records: Iterable, kind: PeriodKind, year: int) -> Dict[Period, float]:
    """Revenue of every period of ``year``; periods without records are at 0."""
    periods = periods_in_year(kind, year)
    df = records_frame(records)
    df = df[df["date"].dt.year == year]

    kind = PeriodKind(kind)
    if kind is PeriodKind.MONTHLY:
        keys = df["date"].dt.month
    elif kind is PeriodKind.QUARTERLY:
        keys = df["date"].dt.quarter
    else:
        keys = pd.Series(1, index=df.index)

    totals = df.groupby(keys)["amount"].sum()
    return {p: float(totals.get(p.index, 0.0)) for p in periods}


# ----------------------------
# AGGREGATOR
# ----------------------------
class DeclarationAggregator:

    def __init__(self, store: RecordStore, rate_book: Optional[RateBook] = None):
        self.store = store
        self.rate_book = rate_book if rate_book is not None else load_rate_book()
        self.social = SocialContributionCalculator(self.rate_book)
        self.income_tax = IncomeTaxCalculator(self.rate_book)
        self.cfe = CFECalculator(self.rate_book)

    # ---------- contributions for a period ----------

    def period_contributions(self, user_id: str, period: Period, activity_type,
                             acre_year: Optional[int] = None) -> ContributionResult:
        records = self.store.list_income_records(user_id, period.start, period.end)
        revenue = sum_revenue(records, period.start, period.end)
        if acre_year is not None:
            return self.social.calculate_with_acre(revenue, activity_type, acre_year, period.year, period.label)
        return self.social.calculate(revenue, activity_type, period.year, period.label)

    def annual_contributions(self, user_id: str, year: int, activity_type) -> ContributionResult:
        return self.period_contributions(user_id, Period.annual(year), activity_type)

    # ---------- generation ----------

    def _save(self, declaration: Declaration) -> Declaration:
        existing = self.store.find_declaration(
            declaration.user_id,
            declaration.declaration_type,
            declaration.period_start,
            declaration.period_end,
        )
        if existing:
            logger.info(
                "Declaration %s %s already exists for user %s (id=%s), skipped",
                declaration.declaration_type.value, declaration.period_start, declaration.user_id, existing.id,
            )
            return existing

        created = self.store.create_declaration(declaration)
        logger.info(
            "Created %s declaration %s for user %s (id=%s, amount=%.2f)",
            created.declaration_type.value, created.period_start, created.user_id, created.id, created.tax_amount,
        )
        return created

    def _draft(self, user_id: str, declaration_type: DeclarationType, period: Period,
               revenue: float, tax_amount: float, form_data: dict) -> Declaration:
        return Declaration(
            user_id=user_id,
            declaration_type=declaration_type,
            period_kind=period.kind,
            year=period.year,
            period_index=period.period_index,
            period_start=period.start,
            period_end=period.end,
            revenue=revenue,
            net_result=revenue,
            tax_amount=tax_amount,
            status=DeclarationStatus.DRAFT,
            due_date=due_date(declaration_type, period),
            form_data=form_data,
        )

    def _year_revenue(self, user_id: str, year: int):
        period = Period.annual(year)
        records = self.store.list_income_records(user_id, period.start, period.end)
        return records, sum_revenue(records, period.start, period.end)

    def generate_social_declarations(self, user_id: str, year: int,
                                     profile: BusinessProfile) -> List[Declaration]:
        frequency = PeriodKind(profile.declaration_frequency)
        if frequency is PeriodKind.ANNUAL:
            raise InvalidInputError("Fréquence URSSAF mensuelle ou trimestrielle uniquement")

        records, annual_revenue = self._year_revenue(user_id, year)
        self.social.check_franchise_threshold(annual_revenue, profile.activity_type, year)

        declarations = []
        for period, revenue in revenue_by_period(records, frequency, year).items():
            acre_year = None
            if profile.acre and profile.creation_date:
                acre_year = self.social.acre_year_for(profile.creation_date, period.end, year)

            if acre_year is not None:
                result = self.social.calculate_with_acre(
                    revenue, profile.activity_type, acre_year, year, period.label
                )
            else:
                result = self.social.calculate(revenue, profile.activity_type, year, period.label)

            declarations.append(self._save(self._draft(
                user_id,
                DeclarationType.URSSAF,
                period,
                revenue,
                result.contributions.total,
                result.model_dump(mode="json"),
            )))
        return declarations

    def generate_income_tax_declaration(self, user_id: str, year: int, activity_type,
                                        parts: float = 1) -> Declaration:
        _, revenue = self._year_revenue(user_id, year)
        result = self.income_tax.calculate(revenue, activity_type, parts, year)
        return self._save(self._draft(
            user_id,
            DeclarationType.INCOME_TAX,
            Period.annual(year),
            revenue,
            result.total_tax,
            {**result.model_dump(mode="json"), "form": income_tax_form(result)},
        ))

    def generate_cfe_declaration(self, user_id: str, year: int, activity_type,
                                 commune: Optional[str] = None,
                                 surface_m2: Optional[float] = None) -> Declaration:
        _, revenue = self._year_revenue(user_id, year)
        result = self.cfe.calculate(revenue, activity_type, commune or config.DEFAULT_COMMUNE, surface_m2, year)
        return self._save(self._draft(
            user_id,
            DeclarationType.CFE,
            Period.annual(year),
            revenue,
            result.total_cfe,
            result.model_dump(mode="json"),
        ))

    def generate_annual_declarations(self, user_id: str, year: int,
                                     profile: Optional[BusinessProfile] = None) -> List[Declaration]:
        profile = profile or BusinessProfile()
        activity_type = ActivityType.parse(profile.activity_type)

        declarations = self.generate_social_declarations(user_id, year, profile)
        declarations.append(self.generate_income_tax_declaration(
            user_id, year, activity_type, profile.household_parts
        ))
        declarations.append(self.generate_cfe_declaration(
            user_id, year, activity_type, profile.commune, profile.surface_m2
        ))
        return declarations

    # ---------- lifecycle ----------

    def _transition(self, declaration_id: int, target: DeclarationStatus) -> Declaration:
        declaration = self.store.get_declaration(declaration_id)
        if declaration is None:
            raise DeclarationNotFoundError(declaration_id)
        if TRANSITIONS.get(declaration.status) is not target:
            raise InvalidDeclarationStateError(declaration_id, declaration.status.value, target.value)

        # Conditional on the status read above; a concurrent change fails instead of reversing it
        updated = self.store.set_status(
            declaration_id, declaration.status, target, datetime.now(timezone.utc)
        )
        logger.info("Declaration %s: %s -> %s", declaration_id, declaration.status.value, target.value)
        return updated

    def submit(self, declaration_id: int) -> Declaration:
        return self._transition(declaration_id, DeclarationStatus.SUBMITTED)

    def pay(self, declaration_id: int) -> Declaration:
        return self._transition(declaration_id, DeclarationStatus.PAID)

    # ---------- queries ----------

    def list_declarations(self, user_id: str, year: Optional[int] = None,
                          declaration_type=None, status=None) -> List[Declaration]:
        return self.store.list_declarations(user_id, year, declaration_type, status)

    def overdue(self, user_id: str, today: Optional[date] = None) -> List[Declaration]:
        today = today or date.today()
        return [
            d for d in self.store.list_declarations(user_id)
            if d.due_date < today and d.status is not DeclarationStatus.PAID
        ]

    def upcoming(self, user_id: str, days: int = 30, today: Optional[date] = None) -> List[Declaration]:
        today = today or date.today()
        horizon = today + timedelta(days=days)
        return [
            d for d in self.store.list_declarations(user_id)
            if today <= d.due_date <= horizon and d.status is not DeclarationStatus.PAID
        ]

    def annual_summary(self, user_id: str, year: int) -> AnnualTaxSummary:
        summary = AnnualTaxSummary(year=year)
        for d in self.store.list_declarations(user_id, year=year):
            summary.declarations_count += 1
            summary.total_tax += d.tax_amount

            if d.status is DeclarationStatus.DRAFT:
                summary.pending_declarations += 1
            elif d.status is DeclarationStatus.SUBMITTED:
                summary.submitted_declarations += 1
            else:
                summary.paid_declarations += 1

            if d.declaration_type is DeclarationType.URSSAF:
                # Declared turnover comes from the URSSAF periods only
                summary.total_revenue += d.revenue
                summary.urssaf_contributions += d.tax_amount
            elif d.declaration_type is DeclarationType.INCOME_TAX:
                summary.income_tax += d.tax_amount
            else:
                summary.cfe_tax += d.tax_amount
        return summary
