"""
Declarations Router
"""

from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..config import get_cors_headers
from ..declarations import DeclarationAggregator
from ..dependencies import get_aggregator
from ..models import BusinessProfile, DeclarationStatus, DeclarationType
from ..errors import DeclarationNotFoundError

router = APIRouter(prefix="/declarations", tags=["Declarations"])


# =====================================================
# SCHEMAS
# =====================================================

class GenerateIn(BaseModel):
    user_id: str
    year: int
    profile: BusinessProfile = Field(default_factory=BusinessProfile)


def _dump(items):
    return [d.model_dump(mode="json") for d in items]


# =====================================================
# ROUTES
# =====================================================

@router.post("/generate", status_code=201)
def generate_declarations(body: GenerateIn, aggregator: DeclarationAggregator = Depends(get_aggregator)):
    declarations = aggregator.generate_annual_declarations(body.user_id, body.year, body.profile)
    return JSONResponse(
        status_code=201,
        content=_dump(declarations),
        headers=get_cors_headers()
    )


@router.get("/")
def list_declarations(
    user_id: str,
    year: Optional[int] = None,
    type: Optional[DeclarationType] = None,
    status: Optional[DeclarationStatus] = None,
    aggregator: DeclarationAggregator = Depends(get_aggregator),
):
    items = aggregator.list_declarations(user_id, year, type, status)
    return JSONResponse(content=_dump(items), headers=get_cors_headers())


@router.get("/overdue")
def overdue_declarations(user_id: str, aggregator: DeclarationAggregator = Depends(get_aggregator)):
    return JSONResponse(content=_dump(aggregator.overdue(user_id)), headers=get_cors_headers())


@router.get("/upcoming")
def upcoming_declarations(user_id: str, days: int = 30,
                          aggregator: DeclarationAggregator = Depends(get_aggregator)):
    return JSONResponse(content=_dump(aggregator.upcoming(user_id, days)), headers=get_cors_headers())


@router.get("/summary/{year}")
def annual_summary(year: int, user_id: str, aggregator: DeclarationAggregator = Depends(get_aggregator)):
    summary = aggregator.annual_summary(user_id, year)
    return JSONResponse(content=summary.model_dump(mode="json"), headers=get_cors_headers())


@router.get("/{declaration_id}")
def get_declaration(declaration_id: int, aggregator: DeclarationAggregator = Depends(get_aggregator)):
    declaration = aggregator.store.get_declaration(declaration_id)
    if declaration is None:
        raise DeclarationNotFoundError(declaration_id)
    return JSONResponse(content=declaration.model_dump(mode="json"), headers=get_cors_headers())


@router.post("/{declaration_id}/submit")
def submit_declaration(declaration_id: int, aggregator: DeclarationAggregator = Depends(get_aggregator)):
    declaration = aggregator.submit(declaration_id)
    return JSONResponse(content=declaration.model_dump(mode="json"), headers=get_cors_headers())


@router.post("/{declaration_id}/pay")
def pay_declaration(declaration_id: int, aggregator: DeclarationAggregator = Depends(get_aggregator)):
    declaration = aggregator.pay(declaration_id)
    return JSONResponse(content=declaration.model_dump(mode="json"), headers=get_cors_headers())
