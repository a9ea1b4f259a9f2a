"""
URSSAF social contributions under the micro-entreprise regime.

Amounts are kept at full float precision; rounding belongs to presentation.
"""

from datetime import date
from typing import Iterable, List, Optional

from ..errors import FranchiseThresholdExceededError
from ..models import (
    ACREEligibility, ContributionAmounts, ContributionLine, ContributionRatesOut,
    ContributionResult, ContributionSimulation,
)
from ..periods import add_years
from .base import FiscalCalculator, check_revenue
from .rates import COMPONENTS, ActivityType, RateTable

COMPONENT_LABELS = {
    "health": ("Maladie-Maternité", "Assurance maladie et maternité"),
    "base_pension": ("Retraite de base", "Retraite de base du régime général"),
    "complementary_pension": ("Retraite complémentaire", "Retraite complémentaire obligatoire"),
    "disability_death": ("Invalidité-Décès", "Assurance invalidité et décès"),
    "csg_crds": ("CSG-CRDS", "Contribution sociale généralisée et CRDS"),
    "vocational_training": ("Formation professionnelle", "Contribution à la formation professionnelle"),
}


def check_franchise(revenue: float, table: RateTable) -> None:
    if revenue > table.franchise_threshold:
        raise FranchiseThresholdExceededError(
            revenue=revenue,
            threshold=table.franchise_threshold,
            activity_type=table.activity_type.value,
            year=table.year,
        )


def compute_contributions(revenue, table: RateTable, period: Optional[str] = None) -> ContributionResult:
    revenue = check_revenue(revenue)
    check_franchise(revenue, table)

    rates = dict(table.contributions.items())
    amounts = {name: revenue * rates[name] for name in COMPONENTS}
    total = sum(amounts.values())

    return ContributionResult(
        revenue=revenue,
        activity_type=table.activity_type,
        year=table.year,
        period=period or str(table.year),
        rates=ContributionRatesOut(**rates, total=table.contributions.total),
        contributions=ContributionAmounts(**amounts, total=total),
        net_revenue=revenue - total,
    )


def apply_acre(result: ContributionResult, acre_year: int, reduction: float) -> ContributionResult:
    """Scale every component by (1 - reduction); net revenue follows the reduced total."""
    factor = 1.0 - reduction
    amounts = {name: getattr(result.contributions, name) * factor for name in COMPONENTS}
    total = sum(amounts.values())
    return result.model_copy(update={
        "contributions": ContributionAmounts(**amounts, total=total),
        "net_revenue": result.revenue - total,
        "acre_year": acre_year,
        "acre_reduction": reduction,
    })


class SocialContributionCalculator(FiscalCalculator):

    def calculate(self, revenue, activity_type, year: Optional[int] = None,
                  period: Optional[str] = None) -> ContributionResult:
        table = self.rate_book.rate_table(year, ActivityType.parse(activity_type))
        return compute_contributions(revenue, table, period)

    def calculate_with_acre(self, revenue, activity_type, acre_year: int = 1,
                            year: Optional[int] = None, period: Optional[str] = None) -> ContributionResult:
        fiscal_year = self.fiscal_year(year)
        reduction = fiscal_year.acre.reduction(acre_year)
        standard = compute_contributions(revenue, fiscal_year.rate_table(activity_type), period)
        return apply_acre(standard, int(acre_year), reduction)

    def check_franchise_threshold(self, revenue, activity_type, year: Optional[int] = None) -> None:
        check_franchise(check_revenue(revenue), self.rate_book.rate_table(year, activity_type))

    def check_acre_eligibility(self, creation_date: date, already_claimed: bool,
                               today: Optional[date] = None) -> ACREEligibility:
        today = today or date.today()
        duration = self.fiscal_year(None).acre.duration_years
        expiry = add_years(creation_date, duration)
        return ACREEligibility(
            eligible=not already_claimed and today <= expiry,
            expiry_date=expiry,
        )

    def acre_year_for(self, creation_date: date, on_date: date,
                      year: Optional[int] = None) -> Optional[int]:
        """ACRE year (1, 2, 3...) in force on ``on_date``, None outside the window."""
        if on_date < creation_date:
            return None
        duration = self.fiscal_year(year).acre.duration_years
        for acre_year in range(1, duration + 1):
            if on_date < add_years(creation_date, acre_year):
                return acre_year
        return None

    def contribution_breakdown(self, revenue, activity_type,
                               year: Optional[int] = None) -> List[ContributionLine]:
        revenue = check_revenue(revenue)
        table = self.rate_book.rate_table(year, activity_type)
        lines = []
        for component, rate in table.contributions.items():
            name, description = COMPONENT_LABELS[component]
            lines.append(ContributionLine(
                component=component,
                name=name,
                rate_pct=rate * 100,
                amount=revenue * rate,
                description=description,
            ))
        return lines

    def simulate(self, revenues: Iterable, activity_type,
                 year: Optional[int] = None) -> List[ContributionSimulation]:
        out = []
        for revenue in revenues:
            result = self.calculate(revenue, activity_type, year)
            total = result.contributions.total
            out.append(ContributionSimulation(
                revenue=result.revenue,
                contributions=total,
                net=result.net_revenue,
                rate_pct=(total / result.revenue * 100) if result.revenue else 0.0,
            ))
        return out
