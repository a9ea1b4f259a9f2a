from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..config import get_cors_headers
from ..dependencies import get_rate_book
from ..tax.rates import ActivityType, RateBook
from ..tax.social import SocialContributionCalculator

router = APIRouter(prefix="/contributions", tags=["Contributions"])


# --------------------------
# Request Models
# --------------------------
class ContributionIn(BaseModel):
    revenue: float
    activity_type: ActivityType = ActivityType.SERVICES
    year: Optional[int] = None
    period: Optional[str] = None
    acre_year: Optional[int] = None


class SimulationIn(BaseModel):
    revenues: List[float]
    activity_type: ActivityType = ActivityType.SERVICES
    year: Optional[int] = None


class ACREIn(BaseModel):
    creation_date: date
    already_claimed: bool = False
    today: Optional[date] = None


# --------------------------
# POST /contributions/calculate
# --------------------------
@router.post("/calculate")
def calculate_contributions(body: ContributionIn, rate_book: RateBook = Depends(get_rate_book)):
    calculator = SocialContributionCalculator(rate_book)
    if body.acre_year is not None:
        result = calculator.calculate_with_acre(
            body.revenue, body.activity_type, body.acre_year, body.year, body.period
        )
    else:
        result = calculator.calculate(body.revenue, body.activity_type, body.year, body.period)

    return JSONResponse(
        content=result.model_dump(mode="json"),
        headers=get_cors_headers()
    )


# --------------------------
# GET /contributions/breakdown
# --------------------------
@router.get("/breakdown")
def contribution_breakdown(
    revenue: float,
    activity_type: ActivityType = ActivityType.SERVICES,
    year: Optional[int] = None,
    rate_book: RateBook = Depends(get_rate_book),
):
    lines = SocialContributionCalculator(rate_book).contribution_breakdown(revenue, activity_type, year)
    return JSONResponse(
        content=[line.model_dump(mode="json") for line in lines],
        headers=get_cors_headers()
    )


# --------------------------
# POST /contributions/simulate
# --------------------------
@router.post("/simulate")
def simulate_contributions(body: SimulationIn, rate_book: RateBook = Depends(get_rate_book)):
    rows = SocialContributionCalculator(rate_book).simulate(body.revenues, body.activity_type, body.year)
    return JSONResponse(
        content=[row.model_dump(mode="json") for row in rows],
        headers=get_cors_headers()
    )


# --------------------------
# POST /contributions/acre/eligibility
# --------------------------
@router.post("/acre/eligibility")
def acre_eligibility(body: ACREIn, rate_book: RateBook = Depends(get_rate_book)):
    result = SocialContributionCalculator(rate_book).check_acre_eligibility(
        body.creation_date, body.already_claimed, body.today
    )
    return JSONResponse(
        content=result.model_dump(mode="json"),
        headers=get_cors_headers()
    )
