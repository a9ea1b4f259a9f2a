from datetime import date, datetime

import pytest

from microfisc.declarations import revenue_by_period, sum_revenue
from microfisc.errors import (
    DeclarationNotFoundError, FranchiseThresholdExceededError,
    InvalidDeclarationStateError, InvalidInputError,
)
from microfisc.models import (
    BusinessProfile, DeclarationStatus, DeclarationType, IncomeRecord, PeriodKind,
)
from microfisc.periods import Period

RECORDS = [
    {"amount": 5000, "date": date(2024, 1, 10)},
    {"amount": 3000, "date": date(2024, 2, 20)},
    {"amount": 4000, "date": date(2024, 5, 5)},
    {"amount": 6000, "date": date(2024, 11, 30)},
]


@pytest.fixture
def user(store):
    for record in RECORDS:
        store.add_transaction("u1", record["amount"], record["date"])
    # Not income, another user, another year
    store.add_transaction("u1", 999, date(2024, 3, 1), type="expense")
    store.add_transaction("u2", 50000, date(2024, 3, 1))
    store.add_transaction("u1", 7000, date(2023, 12, 31))
    return "u1"


# ----------------------------
# bucketing
# ----------------------------
def test_sum_revenue_bounds_are_inclusive():
    assert sum_revenue(RECORDS, date(2024, 1, 10), date(2024, 2, 20)) == 8000
    assert sum_revenue(RECORDS, date(2024, 1, 11), date(2024, 2, 19)) == 0


def test_sum_revenue_accepts_models():
    records = [IncomeRecord(amount=r["amount"], date=r["date"]) for r in RECORDS]
    assert sum_revenue(records, date(2024, 1, 1), date(2024, 12, 31)) == 18000


def test_sum_revenue_empty():
    assert sum_revenue([], date(2024, 1, 1), date(2024, 3, 31)) == 0


def test_sum_revenue_rejects_reversed_period():
    with pytest.raises(InvalidInputError):
        sum_revenue(RECORDS, date(2024, 3, 31), date(2024, 1, 1))


def test_revenue_by_quarter():
    totals = revenue_by_period(RECORDS, PeriodKind.QUARTERLY, 2024)
    assert [totals[Period.quarter(2024, q)] for q in range(1, 5)] == [8000, 4000, 0, 6000]


def test_revenue_by_month_keeps_empty_months():
    totals = revenue_by_period(RECORDS, PeriodKind.MONTHLY, 2024)
    assert len(totals) == 12
    assert totals[Period.month(2024, 2)] == 3000
    assert totals[Period.month(2024, 3)] == 0


def test_revenue_by_period_ignores_other_years():
    records = RECORDS + [{"amount": 100, "date": date(2025, 1, 2)}]
    totals = revenue_by_period(records, PeriodKind.ANNUAL, 2024)
    assert totals == {Period.annual(2024): 18000}


@pytest.mark.parametrize("amount", ["12 000,00", None, "abc", float("nan"), float("inf")])
def test_malformed_amount_is_rejected(amount):
    records = RECORDS + [{"amount": amount, "date": date(2024, 2, 1)}]
    with pytest.raises(InvalidInputError):
        sum_revenue(records, date(2024, 1, 1), date(2024, 3, 31))
    with pytest.raises(InvalidInputError):
        revenue_by_period(records, PeriodKind.QUARTERLY, 2024)


def test_missing_date_is_rejected():
    with pytest.raises(InvalidInputError):
        sum_revenue([{"amount": 100, "date": None}], date(2024, 1, 1), date(2024, 3, 31))


def test_numeric_strings_are_accepted():
    records = [{"amount": "1500.50", "date": "2024-01-05"}]
    assert sum_revenue(records, date(2024, 1, 1), date(2024, 3, 31)) == 1500.50


def test_time_of_day_on_last_day_is_included():
    records = [{"amount": 1000, "date": datetime(2024, 3, 31, 12, 0)}]
    assert sum_revenue(records, date(2024, 1, 1), date(2024, 3, 31)) == 1000
    assert revenue_by_period(records, PeriodKind.QUARTERLY, 2024)[Period.quarter(2024, 1)] == 1000


# ----------------------------
# generation
# ----------------------------
def test_period_contributions(aggregator, user):
    result = aggregator.period_contributions(user, Period.quarter(2024, 1), "services")
    assert result.revenue == 8000
    assert result.contributions.total == pytest.approx(1768)
    assert result.period == "2024-T1"


def test_annual_contributions(aggregator, user):
    result = aggregator.annual_contributions(user, 2024, "services")
    assert result.revenue == 18000
    assert result.contributions.total == pytest.approx(3978)


def test_generate_annual_declarations(aggregator, user):
    declarations = aggregator.generate_annual_declarations(user, 2024, BusinessProfile())
    assert len(declarations) == 6

    urssaf = [d for d in declarations if d.declaration_type is DeclarationType.URSSAF]
    assert [d.period_index for d in urssaf] == [1, 2, 3, 4]
    assert [d.revenue for d in urssaf] == [8000, 4000, 0, 6000]
    assert urssaf[0].tax_amount == pytest.approx(1768)
    assert urssaf[0].due_date == date(2024, 4, 30)
    assert urssaf[2].tax_amount == 0
    assert all(d.status is DeclarationStatus.DRAFT for d in declarations)
    assert all(d.id is not None for d in declarations)

    income_tax = declarations[4]
    assert income_tax.declaration_type is DeclarationType.INCOME_TAX
    assert income_tax.period_kind is PeriodKind.ANNUAL
    assert income_tax.revenue == 18000
    assert income_tax.tax_amount == 0
    assert income_tax.due_date == date(2025, 5, 31)
    assert income_tax.form_data["form"]["formulaire"] == "2042-C-PRO"

    cfe = declarations[5]
    assert cfe.declaration_type is DeclarationType.CFE
    assert cfe.tax_amount == pytest.approx(56.75)
    assert cfe.form_data["commune"] == "Paris"
    assert cfe.due_date == date(2024, 12, 15)


def test_generation_is_idempotent(aggregator, user):
    first = aggregator.generate_annual_declarations(user, 2024)
    second = aggregator.generate_annual_declarations(user, 2024)
    assert [d.id for d in first] == [d.id for d in second]
    assert len(aggregator.list_declarations(user)) == 6


def test_generation_keeps_existing_status(aggregator, user):
    first = aggregator.generate_annual_declarations(user, 2024)
    aggregator.submit(first[0].id)
    again = aggregator.generate_annual_declarations(user, 2024)
    assert again[0].status is DeclarationStatus.SUBMITTED


def test_monthly_frequency(aggregator, user):
    profile = BusinessProfile(declaration_frequency=PeriodKind.MONTHLY)
    declarations = aggregator.generate_social_declarations(user, 2024, profile)
    assert len(declarations) == 12
    assert declarations[1].tax_amount == pytest.approx(3000 * 0.221)
    assert declarations[1].due_date == date(2024, 2, 29)


def test_annual_frequency_is_rejected(aggregator, user):
    profile = BusinessProfile(declaration_frequency=PeriodKind.ANNUAL)
    with pytest.raises(InvalidInputError):
        aggregator.generate_social_declarations(user, 2024, profile)


def test_acre_applies_per_period(aggregator, user):
    profile = BusinessProfile(acre=True, creation_date=date(2024, 2, 1))
    declarations = aggregator.generate_social_declarations(user, 2024, profile)
    assert declarations[0].tax_amount == pytest.approx(442)
    assert declarations[0].form_data["acre_year"] == 1


def test_acre_ignored_without_flag(aggregator, user):
    profile = BusinessProfile(acre=False, creation_date=date(2024, 2, 1))
    declarations = aggregator.generate_social_declarations(user, 2024, profile)
    assert declarations[0].tax_amount == pytest.approx(1768)


def test_acre_expired_for_old_business(aggregator, user):
    profile = BusinessProfile(acre=True, creation_date=date(2019, 1, 1))
    declarations = aggregator.generate_social_declarations(user, 2024, profile)
    assert declarations[0].tax_amount == pytest.approx(1768)


def test_income_tax_declaration_amount(aggregator, store):
    store.add_transaction("u3", 60000, date(2024, 6, 1))
    single = aggregator.generate_income_tax_declaration("u3", 2024, "services", parts=1)
    assert single.tax_amount == pytest.approx(2286.23, abs=0.01)


def test_franchise_exceeded_aborts_generation(aggregator, store, user):
    store.add_transaction(user, 80000, date(2024, 7, 1))
    with pytest.raises(FranchiseThresholdExceededError):
        aggregator.generate_annual_declarations(user, 2024)
    assert aggregator.list_declarations(user) == []


def test_year_without_income(aggregator):
    declarations = aggregator.generate_annual_declarations("nobody", 2024)
    assert len(declarations) == 6
    assert all(d.tax_amount == 0 for d in declarations)
    assert declarations[-1].form_data["is_exempt"] is True


# ----------------------------
# lifecycle
# ----------------------------
def test_submit_then_pay(aggregator, user):
    declaration = aggregator.generate_annual_declarations(user, 2024)[0]

    submitted = aggregator.submit(declaration.id)
    assert submitted.status is DeclarationStatus.SUBMITTED
    assert submitted.submitted_at is not None
    assert submitted.paid_at is None

    paid = aggregator.pay(declaration.id)
    assert paid.status is DeclarationStatus.PAID
    assert paid.paid_at is not None


def test_status_never_goes_backwards(aggregator, user):
    declaration = aggregator.generate_annual_declarations(user, 2024)[0]

    with pytest.raises(InvalidDeclarationStateError):
        aggregator.pay(declaration.id)

    aggregator.submit(declaration.id)
    with pytest.raises(InvalidDeclarationStateError) as exc_info:
        aggregator.submit(declaration.id)
    assert exc_info.value.current == "submitted"

    aggregator.pay(declaration.id)
    with pytest.raises(InvalidDeclarationStateError):
        aggregator.pay(declaration.id)


def test_unknown_declaration(aggregator):
    with pytest.raises(DeclarationNotFoundError):
        aggregator.submit(12345)


# ----------------------------
# queries
# ----------------------------
def test_list_filters(aggregator, user):
    aggregator.generate_annual_declarations(user, 2024)
    assert len(aggregator.list_declarations(user, year=2024, declaration_type="urssaf")) == 4
    assert len(aggregator.list_declarations(user, year=2023)) == 0
    assert len(aggregator.list_declarations(user, status=DeclarationStatus.PAID)) == 0


def test_list_is_ordered_by_due_date(aggregator, user):
    aggregator.generate_annual_declarations(user, 2024)
    due = [d.due_date for d in aggregator.list_declarations(user)]
    assert due == sorted(due)


def test_overdue(aggregator, user):
    declarations = aggregator.generate_annual_declarations(user, 2024)
    aggregator.submit(declarations[0].id)
    aggregator.pay(declarations[0].id)

    overdue = aggregator.overdue(user, today=date(2024, 8, 1))
    assert [d.period_index for d in overdue] == [2]


def test_upcoming(aggregator, user):
    aggregator.generate_annual_declarations(user, 2024)
    upcoming = aggregator.upcoming(user, days=30, today=date(2024, 10, 1))
    assert [d.period_index for d in upcoming] == [3]


def test_annual_summary(aggregator, user):
    declarations = aggregator.generate_annual_declarations(user, 2024)
    aggregator.submit(declarations[0].id)
    aggregator.submit(declarations[1].id)
    aggregator.pay(declarations[1].id)

    summary = aggregator.annual_summary(user, 2024)
    assert summary.declarations_count == 6
    assert summary.total_revenue == pytest.approx(18000)
    assert summary.urssaf_contributions == pytest.approx(3978)
    assert summary.income_tax == 0
    assert summary.cfe_tax == pytest.approx(56.75)
    assert summary.total_tax == pytest.approx(3978 + 56.75)
    assert (summary.pending_declarations, summary.submitted_declarations, summary.paid_declarations) == (4, 1, 1)


def test_acre_year_zero_is_rejected(aggregator, user):
    with pytest.raises(InvalidInputError):
        aggregator.period_contributions(user, Period.quarter(2024, 1), "services", acre_year=0)


def test_stale_status_cannot_reverse_a_payment(aggregator, store, user):
    declaration = aggregator.generate_annual_declarations(user, 2024)[0]
    aggregator.submit(declaration.id)
    aggregator.pay(declaration.id)

    # Another request read the declaration while it was still a draft
    class StaleStore:
        def __getattr__(self, name):
            return getattr(store, name)

        def get_declaration(self, declaration_id):
            return declaration

    aggregator.store = StaleStore()
    with pytest.raises(InvalidDeclarationStateError) as exc_info:
        aggregator.submit(declaration.id)
    assert exc_info.value.current == "paid"
    assert store.get_declaration(declaration.id).status is DeclarationStatus.PAID


def test_set_status_checks_expected_status(store, aggregator, user):
    declaration = aggregator.generate_annual_declarations(user, 2024)[0]
    with pytest.raises(InvalidDeclarationStateError):
        store.set_status(declaration.id, DeclarationStatus.SUBMITTED, DeclarationStatus.PAID, datetime.now())
    assert store.get_declaration(declaration.id).status is DeclarationStatus.DRAFT

    with pytest.raises(DeclarationNotFoundError):
        store.set_status(999, DeclarationStatus.DRAFT, DeclarationStatus.SUBMITTED, datetime.now())
