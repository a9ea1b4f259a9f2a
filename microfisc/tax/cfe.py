from typing import Optional

from ..errors import InvalidInputError
from ..models import CFEResult
from .base import FiscalCalculator, check_revenue
from .rates import ActivityType, CFEParameters


def compute_cfe(revenue, activity_type: ActivityType, year: int, commune: str,
                params: CFEParameters, surface_m2: Optional[float] = None) -> CFEResult:
    revenue = check_revenue(revenue)
    if surface_m2 is not None and surface_m2 < 0:
        raise InvalidInputError(f"Surface négative: {surface_m2}")

    common = dict(
        revenue=revenue,
        activity_type=activity_type,
        year=year,
        commune=commune,
        surface_m2=surface_m2,
    )

    if revenue < params.exemption_revenue:
        return CFEResult(
            **common,
            is_exempt=True,
            exemption_reason=f"Chiffre d'affaires inférieur à {params.exemption_revenue:,.0f}€".replace(",", " "),
            base_amount=0.0,
            tax_rate=0.0,
            total_cfe=0.0,
        )

    # Surface 0 counts as unknown
    if surface_m2:
        base_method = "surface"
        base = min(surface_m2 * params.surface_rate, params.maximum_base)
    elif revenue > params.revenue_breakpoint:
        base_method = "revenue"
        base = min(revenue * params.revenue_rate, params.maximum_base)
    else:
        base_method = "minimum"
        base = params.minimum_base

    # Flat average rate: no per-commune lookup yet
    tax_rate = params.tax_rate
    return CFEResult(
        **common,
        is_exempt=False,
        base_method=base_method,
        base_amount=base,
        tax_rate=tax_rate,
        total_cfe=base * tax_rate,
    )


class CFECalculator(FiscalCalculator):

    def calculate(self, revenue, activity_type, commune: str,
                  surface_m2: Optional[float] = None, year: Optional[int] = None) -> CFEResult:
        fiscal_year = self.fiscal_year(year)
        return compute_cfe(
            revenue,
            ActivityType.parse(activity_type),
            fiscal_year.year,
            commune,
            fiscal_year.cfe,
            surface_m2,
        )
