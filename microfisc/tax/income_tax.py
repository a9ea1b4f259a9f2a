"""
Micro-entreprise income tax.

The flat abatement of the activity is removed from revenue, the remainder is
divided by the household parts (quotient familial), the progressive brackets
are applied to one part and the resulting tax is multiplied back by the parts.
"""

import math
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Sequence

from ..errors import InvalidInputError
from ..models import BracketContribution, IncomeTaxResult
from .base import FiscalCalculator, check_revenue
from .rates import ActivityType, IncomeTaxBracket, RateTable


def apply_brackets(taxable_income: float, brackets: Sequence[IncomeTaxBracket]):
    items = []
    for bracket in brackets:
        if taxable_income <= bracket.lower:
            break
        taxable_amount = min(taxable_income, bracket.upper) - bracket.lower
        items.append(BracketContribution(
            lower=bracket.lower,
            upper=None if bracket.is_unbounded else bracket.upper,
            rate=bracket.rate,
            taxable_amount=taxable_amount,
            amount=taxable_amount * bracket.rate,
        ))
    return items


def compute_income_tax(revenue, table: RateTable, brackets: Sequence[IncomeTaxBracket],
                       parts: float = 1) -> IncomeTaxResult:
    revenue = check_revenue(revenue)
    try:
        parts = float(parts)
    except (TypeError, ValueError):
        raise InvalidInputError(f"Nombre de parts invalide: {parts!r}")
    if not (math.isfinite(parts) and parts > 0):
        raise InvalidInputError(f"Le nombre de parts doit être positif: {parts}")

    abatement = revenue * table.abatement_rate
    taxable_income = (revenue - abatement) / parts

    items = apply_brackets(taxable_income, brackets)
    total_tax = sum(item.amount for item in items) * parts

    return IncomeTaxResult(
        revenue=revenue,
        activity_type=table.activity_type,
        year=table.year,
        abatement_rate=table.abatement_rate,
        abatement=abatement,
        parts=parts,
        taxable_income=taxable_income,
        brackets=items,
        total_tax=total_tax,
        effective_rate=(total_tax / revenue) if revenue else 0.0,
    )


def income_tax_form(result: IncomeTaxResult) -> Dict[str, Any]:
    """Summary of the 2042-C-PRO form for a micro-entreprise."""
    return {
        "formulaire": "2042-C-PRO",
        "regime": "micro-entreprise",
        "activite": result.activity_type.value,
        "chiffre_affaires": result.revenue,
        "abattement_forfaitaire": result.abatement,
        "revenus_imposables": result.taxable_income,
        "nombre_parts": result.parts,
        "bareme_application": [b.model_dump() for b in result.brackets],
        "impot_calcule": result.total_tax,
        "date_generation": datetime.now(timezone.utc).isoformat(),
    }


class IncomeTaxCalculator(FiscalCalculator):

    def calculate(self, revenue, activity_type, parts: float = 1,
                  year: Optional[int] = None) -> IncomeTaxResult:
        fiscal_year = self.fiscal_year(year)
        table = fiscal_year.rate_table(ActivityType.parse(activity_type))
        return compute_income_tax(revenue, table, fiscal_year.income_tax_brackets, parts)
