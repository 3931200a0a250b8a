"""Persistence layer for registered loans.

This module keeps loan contracts and their recorded extra repayments in an
external database. It defaults to SQLite for local development, but accepts
any SQLAlchemy-compatible URL (e.g. PostgreSQL/MySQL). Schedules are never
stored: they are recomputed from the contract whenever they are needed.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable, List, Optional

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Integer, String, create_engine, select
from sqlalchemy.orm import declarative_base, relationship, sessionmaker

from loan_plan.data_models import (
    AmortizationKind,
    ExtraRepayment,
    InterestKind,
    LoanContract,
    LoanDirection,
    LoanRecord,
    LoanStatus,
)

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LoanModel(Base):
    __tablename__ = "loans"

    id = Column(String(64), primary_key=True)
    direction = Column(String(16), nullable=False)
    counterparty = Column(String(255), nullable=False)
    contract_info = Column(String(255), nullable=True)
    # Amounts are stored as decimal strings to keep them exact on every backend.
    principal = Column(String(32), nullable=False)
    interest_rate = Column(String(32), nullable=False)
    interest_kind = Column(String(16), nullable=False)
    amortization_kind = Column(String(16), nullable=False)
    payment_frequency_months = Column(Integer, nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    status = Column(String(16), nullable=False, default=LoanStatus.ACTIVE.value)
    auto_payment = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=_utcnow, nullable=False)

    repayments = relationship(
        "ExtraRepaymentModel",
        back_populates="loan",
        cascade="all, delete-orphan",
    )


class ExtraRepaymentModel(Base):
    __tablename__ = "extra_repayments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    loan_id = Column(String(64), ForeignKey("loans.id"), index=True, nullable=False)
    paid_on = Column(Date, nullable=False)
    amount = Column(String(32), nullable=False)
    note = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=_utcnow, nullable=False)

    loan = relationship("LoanModel", back_populates="repayments")


class LoanStore:
    """Database-backed loan register."""

    def __init__(self, url: str) -> None:
        self._engine = create_engine(url, future=True)
        Base.metadata.create_all(self._engine)
        self._session_factory = sessionmaker(self._engine, expire_on_commit=False, future=True)

    def list_loans(self) -> List[LoanRecord]:
        with self._session_factory() as session:
            rows: Iterable[LoanModel] = session.execute(
                select(LoanModel).order_by(LoanModel.created_at.asc(), LoanModel.id.asc())
            ).scalars()
            return [self._to_record(row) for row in rows]

    def get_loan(self, loan_id: str) -> Optional[LoanRecord]:
        with self._session_factory() as session:
            row = session.get(LoanModel, loan_id)
            return self._to_record(row) if row else None

    def add_loan(self, record: LoanRecord) -> LoanRecord:
        contract = record.contract
        row = LoanModel(
            id=record.id,
            direction=record.direction.value,
            counterparty=record.counterparty,
            contract_info=record.contract_info,
            principal=str(contract.principal),
            interest_rate=str(contract.interest_rate),
            interest_kind=InterestKind(contract.interest_kind).value,
            amortization_kind=AmortizationKind(contract.amortization_kind).value,
            payment_frequency_months=contract.payment_frequency_months,
            start_date=contract.start_date,
            end_date=contract.end_date,
            status=record.status.value,
            auto_payment=record.auto_payment,
        )
        for extra in contract.extra_repayments:
            row.repayments.append(ExtraRepaymentModel(paid_on=extra.date, amount=str(extra.amount)))
        with self._session_factory() as session:
            session.add(row)
            session.commit()
            return self._to_record(row)

    def add_repayment(self, loan_id: str, repayment: ExtraRepayment, note: Optional[str] = None) -> Optional[LoanRecord]:
        with self._session_factory() as session:
            row = session.get(LoanModel, loan_id)
            if row is None:
                return None
            row.repayments.append(
                ExtraRepaymentModel(paid_on=repayment.date, amount=str(repayment.amount), note=note)
            )
            session.commit()
            return self._to_record(row)

    def update_loan(
        self,
        loan_id: str,
        *,
        status: Optional[LoanStatus] = None,
        auto_payment: Optional[bool] = None,
    ) -> Optional[LoanRecord]:
        with self._session_factory() as session:
            row = session.get(LoanModel, loan_id)
            if row is None:
                return None
            if status is not None:
                row.status = status.value
            if auto_payment is not None:
                row.auto_payment = auto_payment
            session.commit()
            return self._to_record(row)

    def remove_loan(self, loan_id: str) -> bool:
        with self._session_factory() as session:
            row = session.get(LoanModel, loan_id)
            if row is None:
                return False
            session.delete(row)
            session.commit()
            return True

    @staticmethod
    def _to_record(row: LoanModel) -> LoanRecord:
        repayments = sorted(row.repayments, key=lambda r: (r.paid_on, r.id or 0))
        contract = LoanContract(
            principal=Decimal(row.principal),
            interest_rate=Decimal(row.interest_rate),
            interest_kind=InterestKind(row.interest_kind),
            amortization_kind=AmortizationKind(row.amortization_kind),
            payment_frequency_months=row.payment_frequency_months,
            start_date=row.start_date,
            end_date=row.end_date,
            extra_repayments=tuple(
                ExtraRepayment(date=r.paid_on, amount=Decimal(r.amount)) for r in repayments
            ),
        )
        return LoanRecord(
            id=row.id,
            direction=LoanDirection(row.direction),
            counterparty=row.counterparty,
            contract=contract,
            contract_info=row.contract_info,
            status=LoanStatus(row.status),
            auto_payment=bool(row.auto_payment),
        )


def create_store_from_env(url: str | None) -> LoanStore:
    return LoanStore(url or "sqlite:///loan_plan.sqlite3")
