"""
Record store used by the declaration aggregator.

``RecordStore`` is the whole surface the engine needs from persistence.
``SqlRecordStore`` implements it with SQLAlchemy; any other backend only has
to provide the same methods.
"""

from datetime import date, datetime, timezone
from typing import List, Optional

from sqlalchemy import (
    Column, Integer, String, Numeric, Date, Text, JSON, DateTime,
    UniqueConstraint, func
)

from .database import Base, SessionLocal
from .errors import DeclarationNotFoundError, InvalidDeclarationStateError
from .models import (
    Declaration, DeclarationStatus, DeclarationType, IncomeRecord, PeriodKind,
)


# ----------------------------
# TABLES
# ----------------------------
class Transaction(Base):
    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), index=True, nullable=False)
    type = Column(String(20), nullable=False)  # income / expense
    category = Column(String(255))
    description = Column(Text)
    amount = Column(Numeric(12, 2), nullable=False)
    date = Column(Date, index=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())


class TaxDeclaration(Base):
    __tablename__ = "tax_declarations"
    __table_args__ = (
        UniqueConstraint(
            "user_id", "declaration_type", "period_start", "period_end",
            name="uq_tax_declaration_period",
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), index=True, nullable=False)
    declaration_type = Column(String(20), nullable=False)  # urssaf / income_tax / cfe
    period_kind = Column(String(20), nullable=False)  # monthly / quarterly / annual
    year = Column(Integer, nullable=False)
    period_index = Column(Integer)
    period_start = Column(Date, nullable=False)
    period_end = Column(Date, nullable=False)

    revenue = Column(Numeric(12, 2), nullable=False, default=0)
    expenses = Column(Numeric(12, 2), nullable=False, default=0)
    net_result = Column(Numeric(12, 2), nullable=False, default=0)
    tax_amount = Column(Numeric(12, 2), nullable=False, default=0)

    status = Column(String(20), nullable=False, default="draft")  # draft / submitted / paid
    due_date = Column(Date, nullable=False)
    form_data = Column(JSON)

    submitted_at = Column(DateTime)
    paid_at = Column(DateTime)
    created_at = Column(DateTime)
    updated_at = Column(DateTime)


def _to_model(row: TaxDeclaration) -> Declaration:
    return Declaration(
        id=row.id,
        user_id=row.user_id,
        declaration_type=DeclarationType(row.declaration_type),
        period_kind=PeriodKind(row.period_kind),
        year=row.year,
        period_index=row.period_index,
        period_start=row.period_start,
        period_end=row.period_end,
        revenue=float(row.revenue or 0),
        expenses=float(row.expenses or 0),
        net_result=float(row.net_result or 0),
        tax_amount=float(row.tax_amount or 0),
        status=DeclarationStatus(row.status),
        due_date=row.due_date,
        form_data=row.form_data or {},
        submitted_at=row.submitted_at,
        paid_at=row.paid_at,
        created_at=row.created_at,
    )


# ----------------------------
# INTERFACE
# ----------------------------
class RecordStore:

    def list_income_records(self, user_id: str, period_start: date, period_end: date) -> List[IncomeRecord]:
        raise NotImplementedError

    def find_declaration(self, user_id: str, declaration_type: DeclarationType,
                         period_start: date, period_end: date) -> Optional[Declaration]:
        raise NotImplementedError

    def create_declaration(self, declaration: Declaration) -> Declaration:
        raise NotImplementedError

    def get_declaration(self, declaration_id: int) -> Optional[Declaration]:
        raise NotImplementedError

    def set_status(self, declaration_id: int, expected: DeclarationStatus,
                   status: DeclarationStatus, at: datetime) -> Declaration:
        """Move ``expected`` to ``status``; raise if the stored status is no longer ``expected``."""
        raise NotImplementedError

    def list_declarations(self, user_id: str, year: Optional[int] = None,
                          declaration_type: Optional[DeclarationType] = None,
                          status: Optional[DeclarationStatus] = None) -> List[Declaration]:
        raise NotImplementedError


# ----------------------------
# SQLALCHEMY IMPLEMENTATION
# ----------------------------
class SqlRecordStore(RecordStore):

    def __init__(self, session_factory=SessionLocal):
        self.session_factory = session_factory

    def add_transaction(self, user_id: str, amount: float, on: date, type: str = "income",
                        category: str = "ventes", description: str = "") -> int:
        with self.session_factory() as db:
            tx = Transaction(
                user_id=user_id,
                type=type,
                category=category,
                description=description,
                amount=amount,
                date=on,
            )
            db.add(tx)
            db.commit()
            db.refresh(tx)
            return tx.id

    def list_income_records(self, user_id, period_start, period_end):
        with self.session_factory() as db:
            rows = (
                db.query(Transaction)
                .filter(Transaction.user_id == user_id)
                .filter(Transaction.type == "income")
                .filter(Transaction.date >= period_start)
                .filter(Transaction.date <= period_end)
                .order_by(Transaction.date.asc())
                .all()
            )
            return [IncomeRecord(amount=float(r.amount), date=r.date) for r in rows]

    def find_declaration(self, user_id, declaration_type, period_start, period_end):
        with self.session_factory() as db:
            row = (
                db.query(TaxDeclaration)
                .filter(TaxDeclaration.user_id == user_id)
                .filter(TaxDeclaration.declaration_type == DeclarationType(declaration_type).value)
                .filter(TaxDeclaration.period_start == period_start)
                .filter(TaxDeclaration.period_end == period_end)
                .first()
            )
            return _to_model(row) if row else None

    def create_declaration(self, declaration):
        now = datetime.now(timezone.utc)
        with self.session_factory() as db:
            row = TaxDeclaration(
                user_id=declaration.user_id,
                declaration_type=declaration.declaration_type.value,
                period_kind=declaration.period_kind.value,
                year=declaration.year,
                period_index=declaration.period_index,
                period_start=declaration.period_start,
                period_end=declaration.period_end,
                revenue=round(declaration.revenue, 2),
                expenses=round(declaration.expenses, 2),
                net_result=round(declaration.net_result, 2),
                tax_amount=round(declaration.tax_amount, 2),
                status=declaration.status.value,
                due_date=declaration.due_date,
                form_data=declaration.form_data,
                created_at=now,
                updated_at=now,
            )
            db.add(row)
            db.commit()
            db.refresh(row)
            return _to_model(row)

    def get_declaration(self, declaration_id):
        with self.session_factory() as db:
            row = db.query(TaxDeclaration).filter(TaxDeclaration.id == declaration_id).first()
            return _to_model(row) if row else None

    def set_status(self, declaration_id, expected, status, at):
        expected = DeclarationStatus(expected)
        status = DeclarationStatus(status)

        values = {"status": status.value, "updated_at": at}
        if status is DeclarationStatus.SUBMITTED:
            values["submitted_at"] = at
        elif status is DeclarationStatus.PAID:
            values["paid_at"] = at

        with self.session_factory() as db:
            updated = (
                db.query(TaxDeclaration)
                .filter(TaxDeclaration.id == declaration_id)
                .filter(TaxDeclaration.status == expected.value)
                .update(values, synchronize_session=False)
            )
            db.commit()

            row = db.query(TaxDeclaration).filter(TaxDeclaration.id == declaration_id).first()
            if not row:
                raise DeclarationNotFoundError(declaration_id)
            if not updated:
                raise InvalidDeclarationStateError(declaration_id, row.status, status.value)
            return _to_model(row)

    def list_declarations(self, user_id, year=None, declaration_type=None, status=None):
        with self.session_factory() as db:
            query = db.query(TaxDeclaration).filter(TaxDeclaration.user_id == user_id)

            if year:
                query = query.filter(TaxDeclaration.year == year)
            if declaration_type:
                query = query.filter(TaxDeclaration.declaration_type == DeclarationType(declaration_type).value)
            if status:
                query = query.filter(TaxDeclaration.status == DeclarationStatus(status).value)

            rows = query.order_by(TaxDeclaration.due_date.asc(), TaxDeclaration.id.asc()).all()
            return [_to_model(r) for r in rows]
