from datetime import date
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from models import ExpenseType, Frequency, InvestmentType, ScheduleType


class MonthRangeIn(BaseModel):
    start_year: int = Field(..., ge=1970, le=3000)
    start_month: int = Field(..., ge=1, le=12)
    end_year: Optional[int] = Field(default=None, ge=1970, le=3000)
    end_month: Optional[int] = Field(default=None, ge=1, le=12)

    @model_validator(mode="after")
    def _check_range(self):
        if (self.end_year is None) != (self.end_month is None):
            raise ValueError("end_year and end_month must be given together")
        if self.end_year is not None and (self.end_year, self.end_month) < (
            self.start_year,
            self.start_month,
        ):
            raise ValueError("End month must not be before start month")
        return self


class ExpenseCategoryIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)


class BudgetIn(BaseModel):
    category_id: int
    amount_cents: int = Field(..., gt=0)
    year: int = Field(..., ge=1970, le=3000)
    month: int = Field(..., ge=1, le=12)
    apply_to_future: bool = True


class BudgetRangeIn(MonthRangeIn):
    category_id: int
    amount_cents: int = Field(..., gt=0)


class ScheduleIn(MonthRangeIn):
    amount_cents: int = Field(..., gt=0)
    frequency: Frequency = Frequency.monthly
    start_day: int = Field(default=1, ge=1, le=31)
    end_day: Optional[int] = Field(default=None, ge=1, le=31)


class RegularExpenseIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    description: Optional[str] = Field(default=None, max_length=500)
    category_id: int
    expense_type: ExpenseType = ExpenseType.family
    family_member_id: Optional[int] = None
    schedule: ScheduleIn


class RegularExpenseUpdateIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    description: Optional[str] = Field(default=None, max_length=500)
    category_id: int
    expense_type: ExpenseType = ExpenseType.family
    family_member_id: Optional[int] = None


class IrregularExpenseIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    amount_cents: int = Field(..., gt=0)
    date: date
    category_id: Optional[int] = None


class IncomeSourceIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    expected_amount_cents: int = Field(default=0, ge=0)


class MonthlyIncomeIn(BaseModel):
    income_source_id: int
    year: int = Field(..., ge=1970, le=3000)
    month: int = Field(..., ge=1, le=12)
    actual_amount_cents: int = Field(..., ge=0)


class OneTimeIncomeIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    amount_cents: int = Field(..., gt=0)
    date: date
    income_source_id: Optional[int] = None


class InvestmentIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    provider: Optional[str] = Field(default=None, max_length=200)
    type: InvestmentType = InvestmentType.other


class InvestmentValueIn(BaseModel):
    as_of: date
    value_cents: int = Field(..., ge=0)


class OneTimeContributionIn(BaseModel):
    date: date
    amount_cents: int = Field(..., gt=0, le=10_000_000_000)


class FamilyMemberIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    relationship: Optional[str] = Field(default=None, max_length=50)
    is_active: bool = True


class FinancialScheduleIn(BaseModel):
    schedule_type: ScheduleType = ScheduleType.calendar
    start_day: int = Field(default=1, ge=1, le=31)


class FinancialMonthOverrideIn(BaseModel):
    year: int = Field(..., ge=1970, le=3000)
    month: int = Field(..., ge=1, le=12)
    start_date: date
