from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .tax.rates import ActivityType


class ContributionRatesOut(BaseModel):
    health: float
    base_pension: float
    complementary_pension: float
    disability_death: float
    csg_crds: float
    vocational_training: float
    total: float


class ContributionAmounts(BaseModel):
    health: float
    base_pension: float
    complementary_pension: float
    disability_death: float
    csg_crds: float
    vocational_training: float
    total: float


class ContributionResult(BaseModel):
    revenue: float
    activity_type: ActivityType
    year: int
    period: str
    rates: ContributionRatesOut
    contributions: ContributionAmounts
    net_revenue: float
    acre_year: Optional[int] = None
    acre_reduction: float = 0.0


class ContributionLine(BaseModel):
    component: str
    name: str
    rate_pct: float
    amount: float
    description: str


class ContributionSimulation(BaseModel):
    revenue: float
    contributions: float
    net: float
    rate_pct: float


class ACREEligibility(BaseModel):
    eligible: bool
    expiry_date: date


class BracketContribution(BaseModel):
    lower: float
    upper: Optional[float] = None  # None = tranche illimitée
    rate: float
    taxable_amount: float
    amount: float


class IncomeTaxResult(BaseModel):
    revenue: float
    activity_type: ActivityType
    year: int
    regime: str = "micro"
    expenses: float = 0.0
    abatement_rate: float
    abatement: float
    parts: float
    taxable_income: float
    brackets: List[BracketContribution] = []
    total_tax: float
    effective_rate: float = 0.0


class CFEResult(BaseModel):
    revenue: float
    activity_type: ActivityType
    year: int
    commune: str
    surface_m2: Optional[float] = None
    is_exempt: bool
    exemption_reason: Optional[str] = None
    base_method: Optional[str] = None  # surface / revenue / minimum
    base_amount: float
    tax_rate: float
    total_cfe: float


class IncomeRecord(BaseModel):
    amount: float
    date: date


class DeclarationType(str, Enum):
    URSSAF = "urssaf"
    INCOME_TAX = "income_tax"
    CFE = "cfe"


class PeriodKind(str, Enum):
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    ANNUAL = "annual"


class DeclarationStatus(str, Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    PAID = "paid"


class Declaration(BaseModel):
    id: Optional[int] = None
    user_id: str
    declaration_type: DeclarationType
    period_kind: PeriodKind
    year: int
    period_index: Optional[int] = None
    period_start: date
    period_end: date
    revenue: float
    expenses: float = 0.0
    net_result: float
    tax_amount: float
    status: DeclarationStatus = DeclarationStatus.DRAFT
    due_date: date
    form_data: Dict[str, Any] = Field(default_factory=dict)
    submitted_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class BusinessProfile(BaseModel):
    activity_type: ActivityType = ActivityType.SERVICES
    declaration_frequency: PeriodKind = PeriodKind.QUARTERLY
    creation_date: Optional[date] = None
    acre: bool = False
    household_parts: float = 1.0
    commune: Optional[str] = None
    surface_m2: Optional[float] = None


class CalendarEntry(BaseModel):
    declaration_type: DeclarationType
    period: str
    period_start: date
    period_end: date
    due_date: date
    description: str


class AnnualTaxSummary(BaseModel):
    year: int
    total_revenue: float = 0.0
    total_tax: float = 0.0
    urssaf_contributions: float = 0.0
    income_tax: float = 0.0
    cfe_tax: float = 0.0
    declarations_count: int = 0
    pending_declarations: int = 0
    submitted_declarations: int = 0
    paid_declarations: int = 0
