from datetime import date, datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from database import Base


class Frequency(str, Enum):
    monthly = "monthly"
    quarterly = "quarterly"
    semi_annually = "semi_annually"
    annually = "annually"


class ExpenseType(str, Enum):
    family = "family"
    individual = "individual"


class ScheduleType(str, Enum):
    calendar = "calendar"
    custom = "custom"


class InvestmentType(str, Enum):
    stock = "stock"
    etf = "etf"
    bond = "bond"
    fund = "fund"
    savings = "savings"
    pension = "pension"
    crypto = "crypto"
    other = "other"


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class MonthRangeMixin:
    """Inclusive ``[start, end]`` month range; a missing end is open."""

    start_year: Mapped[int] = mapped_column(Integer, nullable=False)
    start_month: Mapped[int] = mapped_column(Integer, nullable=False)
    end_year: Mapped[Optional[int]] = mapped_column(Integer)
    end_month: Mapped[Optional[int]] = mapped_column(Integer)

    @property
    def start_index(self) -> int:
        return self.start_year * 12 + self.start_month

    @property
    def end_index(self) -> Optional[int]:
        if self.end_year is None or self.end_month is None:
            return None
        return self.end_year * 12 + self.end_month

    @property
    def is_open_ended(self) -> bool:
        return self.end_index is None


class ExpenseCategory(Base, TimestampMixin):
    __tablename__ = "expense_categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)

    __table_args__ = (UniqueConstraint("name", name="uq_expense_category_name"),)


class CategoryBudget(Base, TimestampMixin, MonthRangeMixin):
    __tablename__ = "category_budgets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    category_id: Mapped[int] = mapped_column(
        ForeignKey("expense_categories.id", ondelete="CASCADE"), nullable=False
    )
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (
        CheckConstraint("amount_cents >= 0", name="ck_category_budget_amount"),
        CheckConstraint("start_month BETWEEN 1 AND 12", name="ck_budget_start_month"),
        Index(
            "ix_category_budget_category_start",
            "category_id",
            "start_year",
            "start_month",
        ),
    )


class RegularExpense(Base, TimestampMixin):
    __tablename__ = "regular_expenses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    category_id: Mapped[int] = mapped_column(
        ForeignKey("expense_categories.id"), nullable=False
    )
    expense_type: Mapped[ExpenseType] = mapped_column(
        SAEnum(ExpenseType), nullable=False, default=ExpenseType.family
    )
    family_member_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("family_members.id", ondelete="SET NULL")
    )


class ExpenseSchedule(Base, TimestampMixin, MonthRangeMixin):
    __tablename__ = "expense_schedules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    regular_expense_id: Mapped[int] = mapped_column(
        ForeignKey("regular_expenses.id", ondelete="CASCADE"), nullable=False
    )
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    frequency: Mapped[Frequency] = mapped_column(
        SAEnum(Frequency), nullable=False, default=Frequency.monthly
    )
    start_day: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    end_day: Mapped[Optional[int]] = mapped_column(Integer)

    __table_args__ = (
        CheckConstraint("amount_cents > 0", name="ck_expense_schedule_amount"),
        Index(
            "ix_expense_schedule_expense_start",
            "regular_expense_id",
            "start_year",
            "start_month",
        ),
    )


class Investment(Base, TimestampMixin):
    __tablename__ = "investments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    provider: Mapped[Optional[str]] = mapped_column(String(200))
    type: Mapped[InvestmentType] = mapped_column(
        SAEnum(InvestmentType), nullable=False, default=InvestmentType.other
    )


class ContributionSchedule(Base, TimestampMixin, MonthRangeMixin):
    __tablename__ = "contribution_schedules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    investment_id: Mapped[int] = mapped_column(
        ForeignKey("investments.id", ondelete="CASCADE"), nullable=False
    )
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    frequency: Mapped[Frequency] = mapped_column(
        SAEnum(Frequency), nullable=False, default=Frequency.monthly
    )
    start_day: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    end_day: Mapped[Optional[int]] = mapped_column(Integer)

    __table_args__ = (
        CheckConstraint("amount_cents > 0", name="ck_contribution_schedule_amount"),
        Index("ix_contribution_schedule_investment", "investment_id"),
    )


class InvestmentValue(Base, TimestampMixin):
    __tablename__ = "investment_values"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    investment_id: Mapped[int] = mapped_column(
        ForeignKey("investments.id", ondelete="CASCADE"), nullable=False
    )
    as_of: Mapped[date] = mapped_column(Date, nullable=False)
    value_cents: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (
        CheckConstraint("value_cents >= 0", name="ck_investment_value_positive"),
        Index("ix_investment_value_investment_as_of", "investment_id", "as_of"),
    )


class OneTimeContribution(Base, TimestampMixin):
    __tablename__ = "one_time_contributions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    investment_id: Mapped[int] = mapped_column(
        ForeignKey("investments.id", ondelete="CASCADE"), nullable=False
    )
    date: Mapped[date] = mapped_column(Date, nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (
        CheckConstraint("amount_cents > 0", name="ck_one_time_contribution_amount"),
    )


class IncomeSource(Base, TimestampMixin):
    __tablename__ = "income_sources"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    expected_amount_cents: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )

    __table_args__ = (
        CheckConstraint(
            "expected_amount_cents >= 0", name="ck_income_source_expected_amount"
        ),
    )


class MonthlyIncome(Base, TimestampMixin):
    __tablename__ = "monthly_incomes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    income_source_id: Mapped[int] = mapped_column(
        ForeignKey("income_sources.id", ondelete="CASCADE"), nullable=False
    )
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    actual_amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "income_source_id", "year", "month", name="uq_monthly_income_source_month"
        ),
        Index("ix_monthly_income_month", "year", "month"),
    )


class OneTimeIncome(Base, TimestampMixin):
    __tablename__ = "one_time_incomes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    income_source_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("income_sources.id", ondelete="SET NULL")
    )

    __table_args__ = (
        CheckConstraint("amount_cents > 0", name="ck_one_time_income_amount"),
        Index("ix_one_time_income_date", "date"),
    )


class IrregularExpense(Base, TimestampMixin):
    __tablename__ = "irregular_expenses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    category_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("expense_categories.id", ondelete="SET NULL")
    )

    __table_args__ = (
        CheckConstraint("amount_cents > 0", name="ck_irregular_expense_amount"),
        Index("ix_irregular_expense_date", "date"),
    )


class FamilyMember(Base, TimestampMixin):
    __tablename__ = "family_members"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    relationship: Mapped[Optional[str]] = mapped_column(String(50))
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class FinancialScheduleConfig(Base, TimestampMixin):
    """Single-row setting: where a financial month begins."""

    __tablename__ = "financial_schedule_config"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    schedule_type: Mapped[ScheduleType] = mapped_column(
        SAEnum(ScheduleType), nullable=False, default=ScheduleType.calendar
    )
    start_day: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __table_args__ = (
        CheckConstraint("start_day BETWEEN 1 AND 31", name="ck_financial_start_day"),
    )


class FinancialMonthOverride(Base, TimestampMixin):
    __tablename__ = "financial_month_overrides"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)

    __table_args__ = (
        UniqueConstraint("year", "month", name="uq_financial_month_override"),
    )
