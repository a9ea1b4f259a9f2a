from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .. import config
from ..config import get_cors_headers
from ..dependencies import get_rate_book
from ..models import PeriodKind
from ..periods import fiscal_calendar
from ..tax.cfe import CFECalculator
from ..tax.income_tax import IncomeTaxCalculator
from ..tax.rates import ActivityType, RateBook

router = APIRouter(prefix="/taxes", tags=["Taxes"])


class IncomeTaxIn(BaseModel):
    revenue: float
    activity_type: ActivityType = ActivityType.SERVICES
    parts: float = 1
    year: Optional[int] = None


class CFEIn(BaseModel):
    revenue: float
    activity_type: ActivityType = ActivityType.SERVICES
    commune: Optional[str] = None
    surface_m2: Optional[float] = None
    year: Optional[int] = None


@router.post("/income-tax")
def calculate_income_tax(body: IncomeTaxIn, rate_book: RateBook = Depends(get_rate_book)):
    result = IncomeTaxCalculator(rate_book).calculate(body.revenue, body.activity_type, body.parts, body.year)
    return JSONResponse(
        content=result.model_dump(mode="json"),
        headers=get_cors_headers()
    )


@router.post("/cfe")
def calculate_cfe(body: CFEIn, rate_book: RateBook = Depends(get_rate_book)):
    result = CFECalculator(rate_book).calculate(
        body.revenue,
        body.activity_type,
        body.commune or config.DEFAULT_COMMUNE,
        body.surface_m2,
        body.year,
    )
    return JSONResponse(
        content=result.model_dump(mode="json"),
        headers=get_cors_headers()
    )


@router.get("/calendar/{year}")
def get_fiscal_calendar(year: int, frequency: PeriodKind = PeriodKind.QUARTERLY):
    entries = fiscal_calendar(year, frequency)
    return JSONResponse(
        content=[e.model_dump(mode="json") for e in entries],
        headers=get_cors_headers()
    )
