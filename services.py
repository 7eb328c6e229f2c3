from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Optional

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from database import atomic
from models import (
    CategoryBudget,
    ContributionSchedule,
    ExpenseCategory,
    ExpenseSchedule,
    ExpenseType,
    FamilyMember,
    FinancialMonthOverride,
    FinancialScheduleConfig,
    Frequency,
    IncomeSource,
    Investment,
    InvestmentType,
    InvestmentValue,
    IrregularExpense,
    MonthlyIncome,
    OneTimeContribution,
    OneTimeIncome,
    RegularExpense,
    ScheduleType,
)
from periods import (
    OPEN_END,
    add_months,
    clamped_day,
    month_end,
    month_index,
    month_start,
    next_month,
    previous_month,
    ranges_overlap,
)
from recurrence import (
    amount_for_month,
    annual_amount_cents,
    interval_for,
    is_active_for_month,
    latest_entry,
    monthly_equivalent_cents,
    next_due_month,
    resolve_active_entry,
    should_fire_in_month,
)
from schemas import (
    BudgetRangeIn,
    ExpenseCategoryIn,
    FamilyMemberIn,
    FinancialMonthOverrideIn,
    FinancialScheduleIn,
    IncomeSourceIn,
    InvestmentIn,
    InvestmentValueIn,
    IrregularExpenseIn,
    MonthlyIncomeIn,
    OneTimeContributionIn,
    OneTimeIncomeIn,
    RegularExpenseIn,
    RegularExpenseUpdateIn,
    ScheduleIn,
)


logger = logging.getLogger(__name__)

CENTS_PER_UNIT = 100
MAX_BUDGET_UNITS = 10_000_000
NEAR_BUDGET_PERCENT = 80

DEFAULT_CATEGORIES = [
    "Groceries",
    "Utilities",
    "Transportation",
    "Entertainment",
    "Healthcare",
    "Dining Out",
    "Shopping",
    "Insurance",
    "Rent/Mortgage",
    "Education",
]


class ValidationFailed(ValueError):
    def __init__(self, message: str, fields: Optional[list[str]] = None) -> None:
        super().__init__(message)
        self.fields = list(fields or [])


class NotFound(ValueError):
    pass


def _validate_month(year: int, month: int) -> None:
    if not 1 <= month <= 12:
        raise ValidationFailed("Month must be between 1 and 12", ["month"])
    if not 1970 <= year <= 3000:
        raise ValidationFailed("Year must be between 1970 and 3000", ["year"])


def _validate_range(
    start_year: int,
    start_month: int,
    end_year: Optional[int],
    end_month: Optional[int],
) -> None:
    _validate_month(start_year, start_month)
    if (end_year is None) != (end_month is None):
        raise ValidationFailed(
            "End year and end month must be given together", ["end_year", "end_month"]
        )
    if end_year is None:
        return
    _validate_month(end_year, end_month)
    if month_index(end_year, end_month) < month_index(start_year, start_month):
        raise ValidationFailed(
            "End month must not be before start month", ["end_year", "end_month"]
        )


def _covers_month(model, target: int):
    """SQL predicate: ``model``'s month range contains month index ``target``."""
    start = model.start_year * 12 + model.start_month
    return (start <= target) & or_(
        model.end_year.is_(None),
        model.end_month.is_(None),
        model.end_year * 12 + model.end_month >= target,
    )


def _range_end(row) -> int:
    return OPEN_END if row.end_index is None else row.end_index


class ExpenseCategoryService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list_all(self) -> list[ExpenseCategory]:
        stmt = select(ExpenseCategory).order_by(ExpenseCategory.name)
        return self.session.scalars(stmt).all()

    def get(self, category_id: int) -> ExpenseCategory:
        category = self.session.get(ExpenseCategory, category_id)
        if not category:
            raise NotFound("Category not found")
        return category

    def _ensure_unique(self, name: str, exclude_id: Optional[int] = None) -> None:
        stmt = select(ExpenseCategory).where(
            func.lower(ExpenseCategory.name) == name.lower()
        )
        existing = self.session.scalar(stmt)
        if existing and existing.id != exclude_id:
            raise ValidationFailed("Category with this name already exists", ["name"])

    def create(self, data: ExpenseCategoryIn) -> ExpenseCategory:
        name = data.name.strip()
        if not name:
            raise ValidationFailed("Category name must not be empty", ["name"])
        self._ensure_unique(name)
        category = ExpenseCategory(name=name)
        self.session.add(category)
        self.session.commit()
        self.session.refresh(category)
        logger.info(f"category_created: id={category.id} name={category.name}")
        return category

    def rename(self, category_id: int, name: str) -> ExpenseCategory:
        category = self.get(category_id)
        clean_name = name.strip()
        if not clean_name:
            raise ValidationFailed("Category name must not be empty", ["name"])
        self._ensure_unique(clean_name, exclude_id=category.id)
        category.name = clean_name
        self.session.commit()
        return category

    def delete(self, category_id: int) -> None:
        category = self.get(category_id)
        in_use = self.session.scalar(
            select(func.count(RegularExpense.id)).where(
                RegularExpense.category_id == category.id
            )
        )
        if in_use:
            raise ValidationFailed(
                "Category is still used by regular expenses", ["category_id"]
            )
        with atomic(self.session):
            for budget in self.session.scalars(
                select(CategoryBudget).where(CategoryBudget.category_id == category.id)
            ):
                self.session.delete(budget)
            for expense in self.session.scalars(
                select(IrregularExpense).where(
                    IrregularExpense.category_id == category.id
                )
            ):
                expense.category_id = None
            self.session.delete(category)
        logger.info(f"category_deleted: id={category_id}")

    def seed_defaults(self) -> int:
        has_any = self.session.scalar(select(func.count(ExpenseCategory.id)))
        if has_any:
            logger.debug("category_seed: skipped, categories already exist")
            return 0
        for name in DEFAULT_CATEGORIES:
            self.session.add(ExpenseCategory(name=name))
        self.session.commit()
        logger.info(f"category_seed: created={len(DEFAULT_CATEGORIES)}")
        return len(DEFAULT_CATEGORIES)


@dataclass(frozen=True)
class BudgetHistoryItem:
    budget_id: int
    category_id: int
    category_name: str
    amount_cents: int
    start_year: int
    start_month: int
    end_year: Optional[int]
    end_month: Optional[int]
    is_active: bool

    @property
    def period_display(self) -> str:
        start = f"{self.start_year}-{self.start_month:02d}"
        if self.end_year is None:
            return f"{start} - Ongoing"
        return f"{start} - {self.end_year}-{self.end_month:02d}"

    @property
    def status_display(self) -> str:
        return "Active" if self.is_active else "Inactive"


class BudgetService:
    """Per-category budget timeline.

    Each category owns a set of non-overlapping ``[start, end]`` month ranges.
    Months that no range covers have no budget. Mutations split, trim or
    extend ranges rather than rewriting history, and every mutation commits
    as a single unit of work.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    @staticmethod
    def validate_amount(amount_cents: int) -> None:
        if amount_cents <= 0:
            raise ValidationFailed("Budget amount must be positive", ["amount_cents"])
        if amount_cents % CENTS_PER_UNIT:
            raise ValidationFailed(
                "Budget amount must be a whole number", ["amount_cents"]
            )
        if amount_cents > MAX_BUDGET_UNITS * CENTS_PER_UNIT:
            raise ValidationFailed(
                f"Budget amount must not exceed {MAX_BUDGET_UNITS:,}", ["amount_cents"]
            )

    def _require_category(self, category_id: int) -> ExpenseCategory:
        category = self.session.get(ExpenseCategory, category_id)
        if not category:
            raise NotFound("Category not found")
        return category

    def list_for_category(self, category_id: int) -> list[CategoryBudget]:
        stmt = (
            select(CategoryBudget)
            .where(CategoryBudget.category_id == category_id)
            .order_by(
                CategoryBudget.start_year,
                CategoryBudget.start_month,
                CategoryBudget.id,
            )
        )
        return self.session.scalars(stmt).all()

    def effective_budgets_for_month(self, year: int, month: int) -> list[CategoryBudget]:
        _validate_month(year, month)
        target = month_index(year, month)
        stmt = (
            select(CategoryBudget)
            .where(_covers_month(CategoryBudget, target))
            .order_by(
                CategoryBudget.category_id,
                CategoryBudget.start_year.desc(),
                CategoryBudget.start_month.desc(),
                CategoryBudget.id.desc(),
            )
        )
        return self.session.scalars(stmt).all()

    @staticmethod
    def latest_by_category(
        budgets: list[CategoryBudget],
    ) -> dict[int, CategoryBudget]:
        latest: dict[int, CategoryBudget] = {}
        for budget in budgets:
            current = latest.get(budget.category_id)
            if current is None or (budget.start_index, budget.id) > (
                current.start_index,
                current.id,
            ):
                latest[budget.category_id] = budget
        return latest

    def budget_for_category(
        self, category_id: int, year: int, month: int
    ) -> Optional[CategoryBudget]:
        _validate_month(year, month)
        target = month_index(year, month)
        stmt = (
            select(CategoryBudget)
            .where(
                CategoryBudget.category_id == category_id,
                _covers_month(CategoryBudget, target),
            )
            .order_by(
                CategoryBudget.start_year.desc(),
                CategoryBudget.start_month.desc(),
                CategoryBudget.id.desc(),
            )
            .limit(1)
        )
        return self.session.scalar(stmt)

    def set_category_budget(
        self,
        category_id: int,
        amount_cents: int,
        year: int,
        month: int,
        apply_to_future: bool,
    ) -> CategoryBudget:
        self.validate_amount(amount_cents)
        _validate_month(year, month)
        self._require_category(category_id)

        target = month_index(year, month)
        prev_year, prev_month = previous_month(year, month)
        logger.info(
            f"budget_set: category_id={category_id} amount_cents={amount_cents} "
            f"month={year}-{month:02d} apply_to_future={apply_to_future}"
        )

        with atomic(self.session):
            rows = self.list_for_category(category_id)
            if apply_to_future:
                for row in rows:
                    if row.start_index >= target:
                        self.session.delete(row)
                        logger.debug(f"budget_set: removed superseded id={row.id}")
                    elif _range_end(row) >= target:
                        row.end_year, row.end_month = prev_year, prev_month
                        logger.debug(f"budget_set: truncated id={row.id}")
                budget = CategoryBudget(
                    category_id=category_id,
                    start_year=year,
                    start_month=month,
                    amount_cents=amount_cents,
                )
            else:
                remaining: list[CategoryBudget] = []
                for row in rows:
                    if row.start_index == target and row.end_index == target:
                        # An earlier single-month value for this month is replaced.
                        self.session.delete(row)
                    else:
                        remaining.append(row)

                covering = [r for r in remaining if r.start_index <= target <= _range_end(r)]
                source = self.latest_by_category(covering).get(category_id)
                # Only an open-ended range continues after the override.
                if source is not None and source.end_index is None:
                    tail_year, tail_month = next_month(year, month)
                    self.session.add(
                        CategoryBudget(
                            category_id=category_id,
                            start_year=tail_year,
                            start_month=tail_month,
                            amount_cents=source.amount_cents,
                        )
                    )
                    logger.debug(
                        f"budget_set: tail from={tail_year}-{tail_month:02d} "
                        f"amount_cents={source.amount_cents}"
                    )
                for row in covering:
                    if row.start_index >= target:
                        self.session.delete(row)
                    else:
                        row.end_year, row.end_month = prev_year, prev_month

                budget = CategoryBudget(
                    category_id=category_id,
                    start_year=year,
                    start_month=month,
                    end_year=year,
                    end_month=month,
                    amount_cents=amount_cents,
                )
            self.session.add(budget)
            self.session.flush()
        return budget

    def delete_category_budget(self, category_id: int, year: int, month: int) -> int:
        _validate_month(year, month)
        self._require_category(category_id)
        target = month_index(year, month)
        prev_year, prev_month = previous_month(year, month)
        changed = 0
        with atomic(self.session):
            for row in self.list_for_category(category_id):
                if row.start_index >= target:
                    self.session.delete(row)
                    changed += 1
                elif _range_end(row) >= target:
                    row.end_year, row.end_month = prev_year, prev_month
                    changed += 1
        logger.info(
            f"budget_deleted: category_id={category_id} from={year}-{month:02d} "
            f"rows_changed={changed}"
        )
        return changed

    def create_budget_range(self, data: BudgetRangeIn) -> CategoryBudget:
        self.validate_amount(data.amount_cents)
        _validate_range(data.start_year, data.start_month, data.end_year, data.end_month)
        self._require_category(data.category_id)
        start = month_index(data.start_year, data.start_month)
        end = (
            None
            if data.end_year is None
            else month_index(data.end_year, data.end_month)
        )
        for row in self.list_for_category(data.category_id):
            if ranges_overlap(start, end, row.start_index, row.end_index):
                raise ValidationFailed(
                    "Budget range overlaps an existing budget",
                    ["start_year", "start_month"],
                )
        budget = CategoryBudget(
            category_id=data.category_id,
            start_year=data.start_year,
            start_month=data.start_month,
            end_year=data.end_year,
            end_month=data.end_month,
            amount_cents=data.amount_cents,
        )
        self.session.add(budget)
        self.session.commit()
        self.session.refresh(budget)
        return budget

    def history(self, category_id: int, today: date) -> list[BudgetHistoryItem]:
        category = self._require_category(category_id)
        rows = sorted(
            self.list_for_category(category_id),
            key=lambda b: (b.start_index, b.id),
            reverse=True,
        )
        return [
            BudgetHistoryItem(
                budget_id=row.id,
                category_id=category.id,
                category_name=category.name,
                amount_cents=row.amount_cents,
                start_year=row.start_year,
                start_month=row.start_month,
                end_year=row.end_year,
                end_month=row.end_month,
                is_active=is_active_for_month(row, today.year, today.month),
            )
            for row in rows
        ]


class RegularExpenseService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list_all(self) -> list[RegularExpense]:
        stmt = select(RegularExpense).order_by(RegularExpense.name, RegularExpense.id)
        return self.session.scalars(stmt).all()

    def get(self, expense_id: int) -> RegularExpense:
        expense = self.session.get(RegularExpense, expense_id)
        if not expense:
            raise NotFound("Regular expense not found")
        return expense

    def _require_category(self, category_id: int) -> None:
        if not self.session.get(ExpenseCategory, category_id):
            raise NotFound("Category not found")

    def _member_for(
        self, expense_type: ExpenseType, family_member_id: Optional[int]
    ) -> Optional[int]:
        if expense_type == ExpenseType.family:
            return None
        if family_member_id is None:
            raise ValidationFailed(
                "Individual expenses need a family member", ["family_member_id"]
            )
        member = self.session.get(FamilyMember, family_member_id)
        if not member:
            raise NotFound("Family member not found")
        if not member.is_active:
            raise ValidationFailed(
                "Family member is inactive", ["family_member_id"]
            )
        return member.id

    def schedules_for(self, expense_id: int) -> list[ExpenseSchedule]:
        stmt = (
            select(ExpenseSchedule)
            .where(ExpenseSchedule.regular_expense_id == expense_id)
            .order_by(
                ExpenseSchedule.start_year,
                ExpenseSchedule.start_month,
                ExpenseSchedule.id,
            )
        )
        return self.session.scalars(stmt).all()

    def create(self, data: RegularExpenseIn) -> RegularExpense:
        self._require_category(data.category_id)
        sched = data.schedule
        _validate_range(sched.start_year, sched.start_month, sched.end_year, sched.end_month)
        member_id = self._member_for(data.expense_type, data.family_member_id)
        with atomic(self.session):
            expense = RegularExpense(
                name=data.name.strip(),
                description=data.description,
                category_id=data.category_id,
                expense_type=data.expense_type,
                family_member_id=member_id,
            )
            self.session.add(expense)
            self.session.flush()
            self.session.add(self._schedule_from(expense.id, sched))
        logger.info(
            f"regular_expense_created: id={expense.id} name={expense.name} "
            f"amount_cents={sched.amount_cents} frequency={sched.frequency.value}"
        )
        return expense

    @staticmethod
    def _schedule_from(expense_id: int, data: ScheduleIn) -> ExpenseSchedule:
        return ExpenseSchedule(
            regular_expense_id=expense_id,
            amount_cents=data.amount_cents,
            frequency=data.frequency,
            start_year=data.start_year,
            start_month=data.start_month,
            start_day=data.start_day,
            end_year=data.end_year,
            end_month=data.end_month,
            end_day=data.end_day,
        )

    def update(self, expense_id: int, data: RegularExpenseUpdateIn) -> RegularExpense:
        expense = self.get(expense_id)
        if data.category_id != expense.category_id:
            self._require_category(data.category_id)
        member_id = self._member_for(data.expense_type, data.family_member_id)
        expense.name = data.name.strip()
        expense.description = data.description
        expense.category_id = data.category_id
        expense.expense_type = data.expense_type
        expense.family_member_id = member_id
        self.session.commit()
        return expense

    def update_schedule(self, expense_id: int, data: ScheduleIn) -> ExpenseSchedule:
        """Record a change of amount or frequency from ``data``'s start month on.

        The schedule log is append-only: the entry in force at the new start
        month is ended the month before and a new entry is added. Re-stating
        the entry already in force only updates its end.
        """
        expense = self.get(expense_id)
        _validate_range(data.start_year, data.start_month, data.end_year, data.end_month)
        new_start = month_index(data.start_year, data.start_month)

        with atomic(self.session):
            schedules = self.schedules_for(expense.id)
            current = resolve_active_entry(schedules, data.start_year, data.start_month)
            if (
                current is not None
                and current.amount_cents == data.amount_cents
                and current.frequency == data.frequency
                and (new_start - current.start_index) % interval_for(current.frequency)
                == 0
            ):
                current.end_year = data.end_year
                current.end_month = data.end_month
                current.end_day = data.end_day
                logger.debug(f"schedule_update: unchanged values id={current.id}")
                return current

            if current is not None:
                if current.start_index >= new_start:
                    self.session.delete(current)
                else:
                    current.end_year, current.end_month = previous_month(
                        data.start_year, data.start_month
                    )
                    current.end_day = None
            schedule = self._schedule_from(expense.id, data)
            self.session.add(schedule)
            self.session.flush()
        logger.info(
            f"schedule_update: expense_id={expense.id} amount_cents={data.amount_cents} "
            f"frequency={data.frequency.value} start={data.start_year}-{data.start_month:02d}"
        )
        return schedule

    def delete(self, expense_id: int) -> None:
        expense = self.get(expense_id)
        with atomic(self.session):
            for schedule in self.schedules_for(expense.id):
                self.session.delete(schedule)
            self.session.delete(expense)
        logger.info(f"regular_expense_deleted: id={expense_id}")

    def resolved_schedule(
        self, expense_id: int, year: int, month: int
    ) -> Optional[ExpenseSchedule]:
        """Schedule charged in ``year``/``month``, or ``None`` when nothing is due."""
        _validate_month(year, month)
        entry = resolve_active_entry(self.schedules_for(expense_id), year, month)
        if entry is None or not should_fire_in_month(entry, year, month):
            return None
        return entry

    def next_due(self, expense_id: int, today: date) -> Optional[tuple[int, int]]:
        entry = latest_entry(self.schedules_for(self.get(expense_id).id))
        if entry is None:
            return None
        return next_due_month(entry, today)

    def statistics(self) -> dict[str, int]:
        total_monthly = 0
        total_annual = 0
        alternative = 0
        expenses = self.list_all()
        for expense in expenses:
            entry = latest_entry(self.schedules_for(expense.id))
            if entry is None:
                continue
            total_monthly += monthly_equivalent_cents(entry.amount_cents, entry.frequency)
            total_annual += annual_amount_cents(entry.amount_cents, entry.frequency)
            if entry.frequency != Frequency.monthly:
                alternative += 1
        return {
            "expense_count": len(expenses),
            "total_monthly_cents": total_monthly,
            "total_annual_cents": total_annual,
            "alternative_schedule_count": alternative,
        }


class IrregularExpenseService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def _require_category(self, category_id: Optional[int]) -> None:
        if category_id is not None and not self.session.get(
            ExpenseCategory, category_id
        ):
            raise NotFound("Category not found")

    def get(self, expense_id: int) -> IrregularExpense:
        expense = self.session.get(IrregularExpense, expense_id)
        if not expense:
            raise NotFound("Irregular expense not found")
        return expense

    def create(self, data: IrregularExpenseIn) -> IrregularExpense:
        self._require_category(data.category_id)
        expense = IrregularExpense(
            name=data.name.strip(),
            amount_cents=data.amount_cents,
            date=data.date,
            category_id=data.category_id,
        )
        self.session.add(expense)
        self.session.commit()
        self.session.refresh(expense)
        logger.info(
            f"irregular_expense_created: id={expense.id} amount_cents={expense.amount_cents} "
            f"date={expense.date.isoformat()}"
        )
        return expense

    def update(self, expense_id: int, data: IrregularExpenseIn) -> IrregularExpense:
        expense = self.get(expense_id)
        self._require_category(data.category_id)
        for field_name, value in data.model_dump().items():
            setattr(expense, field_name, value)
        self.session.commit()
        return expense

    def delete(self, expense_id: int) -> None:
        expense = self.get(expense_id)
        self.session.delete(expense)
        self.session.commit()

    def list_between(self, start: date, end: date) -> list[IrregularExpense]:
        if start > end:
            raise ValidationFailed(
                "Start date must be before or equal to end date", ["start", "end"]
            )
        stmt = (
            select(IrregularExpense)
            .where(IrregularExpense.date.between(start, end))
            .order_by(IrregularExpense.date, IrregularExpense.id)
        )
        return self.session.scalars(stmt).all()

    def list_for_month(self, year: int, month: int) -> list[IrregularExpense]:
        _validate_month(year, month)
        return self.list_between(month_start(year, month), month_end(year, month))


@dataclass(frozen=True)
class IncomeLine:
    income_source_id: int
    name: str
    expected_amount_cents: int
    actual_amount_cents: int
    logged: bool


class IncomeService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list_sources(self) -> list[IncomeSource]:
        stmt = select(IncomeSource).order_by(IncomeSource.name, IncomeSource.id)
        return self.session.scalars(stmt).all()

    def get_source(self, source_id: int) -> IncomeSource:
        source = self.session.get(IncomeSource, source_id)
        if not source:
            raise NotFound("Income source not found")
        return source

    def create_source(self, data: IncomeSourceIn) -> IncomeSource:
        source = IncomeSource(
            name=data.name.strip(), expected_amount_cents=data.expected_amount_cents
        )
        self.session.add(source)
        self.session.commit()
        self.session.refresh(source)
        return source

    def update_source(self, source_id: int, data: IncomeSourceIn) -> IncomeSource:
        source = self.get_source(source_id)
        source.name = data.name.strip()
        source.expected_amount_cents = data.expected_amount_cents
        self.session.commit()
        return source

    def delete_source(self, source_id: int) -> None:
        source = self.get_source(source_id)
        with atomic(self.session):
            for logged in self.session.scalars(
                select(MonthlyIncome).where(MonthlyIncome.income_source_id == source.id)
            ):
                self.session.delete(logged)
            for income in self.session.scalars(
                select(OneTimeIncome).where(OneTimeIncome.income_source_id == source.id)
            ):
                income.income_source_id = None
            self.session.delete(source)

    def log_monthly_income(self, data: MonthlyIncomeIn) -> MonthlyIncome:
        _validate_month(data.year, data.month)
        self.get_source(data.income_source_id)
        existing = self.session.scalar(
            select(MonthlyIncome).where(
                MonthlyIncome.income_source_id == data.income_source_id,
                MonthlyIncome.year == data.year,
                MonthlyIncome.month == data.month,
            )
        )
        if existing:
            existing.actual_amount_cents = data.actual_amount_cents
            self.session.commit()
            return existing
        logged = MonthlyIncome(
            income_source_id=data.income_source_id,
            year=data.year,
            month=data.month,
            actual_amount_cents=data.actual_amount_cents,
        )
        self.session.add(logged)
        self.session.commit()
        self.session.refresh(logged)
        return logged

    def incomes_for_month(self, year: int, month: int) -> list[IncomeLine]:
        _validate_month(year, month)
        logged = {
            row.income_source_id: row
            for row in self.session.scalars(
                select(MonthlyIncome).where(
                    MonthlyIncome.year == year, MonthlyIncome.month == month
                )
            )
        }
        lines: list[IncomeLine] = []
        for source in self.list_sources():
            row = logged.get(source.id)
            lines.append(
                IncomeLine(
                    income_source_id=source.id,
                    name=source.name,
                    expected_amount_cents=source.expected_amount_cents,
                    actual_amount_cents=(
                        row.actual_amount_cents
                        if row is not None
                        else source.expected_amount_cents
                    ),
                    logged=row is not None,
                )
            )
        return lines

    def create_one_time(self, data: OneTimeIncomeIn) -> OneTimeIncome:
        if data.income_source_id is not None:
            self.get_source(data.income_source_id)
        income = OneTimeIncome(
            name=data.name.strip(),
            amount_cents=data.amount_cents,
            date=data.date,
            income_source_id=data.income_source_id,
        )
        self.session.add(income)
        self.session.commit()
        self.session.refresh(income)
        return income

    def delete_one_time(self, income_id: int) -> None:
        income = self.session.get(OneTimeIncome, income_id)
        if not income:
            raise NotFound("One-time income not found")
        self.session.delete(income)
        self.session.commit()

    def one_time_for_month(self, year: int, month: int) -> list[OneTimeIncome]:
        _validate_month(year, month)
        stmt = (
            select(OneTimeIncome)
            .where(
                OneTimeIncome.date.between(
                    month_start(year, month), month_end(year, month)
                )
            )
            .order_by(OneTimeIncome.date, OneTimeIncome.id)
        )
        return self.session.scalars(stmt).all()


class InvestmentService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list_all(self) -> list[Investment]:
        return self.session.scalars(
            select(Investment).order_by(Investment.name, Investment.id)
        ).all()

    def get(self, investment_id: int) -> Investment:
        investment = self.session.get(Investment, investment_id)
        if not investment:
            raise NotFound("Investment not found")
        return investment

    def create(self, data: InvestmentIn) -> Investment:
        investment = Investment(
            name=data.name.strip(), provider=data.provider, type=data.type
        )
        self.session.add(investment)
        self.session.commit()
        self.session.refresh(investment)
        logger.info(f"investment_created: id={investment.id} name={investment.name}")
        return investment

    def update(self, investment_id: int, data: InvestmentIn) -> Investment:
        investment = self.get(investment_id)
        investment.name = data.name.strip()
        investment.provider = data.provider
        investment.type = data.type
        self.session.commit()
        return investment

    def delete(self, investment_id: int) -> None:
        investment = self.get(investment_id)
        with atomic(self.session):
            for model in (InvestmentValue, OneTimeContribution, ContributionSchedule):
                for row in self.session.scalars(
                    select(model).where(model.investment_id == investment.id)
                ):
                    self.session.delete(row)
            self.session.delete(investment)
        logger.info(f"investment_deleted: id={investment_id}")

    def list_values(self, investment_id: int) -> list[InvestmentValue]:
        self.get(investment_id)
        stmt = (
            select(InvestmentValue)
            .where(InvestmentValue.investment_id == investment_id)
            .order_by(InvestmentValue.as_of, InvestmentValue.id)
        )
        return self.session.scalars(stmt).all()

    def add_value(self, investment_id: int, data: InvestmentValueIn) -> InvestmentValue:
        self.get(investment_id)
        value = InvestmentValue(
            investment_id=investment_id, as_of=data.as_of, value_cents=data.value_cents
        )
        self.session.add(value)
        self.session.commit()
        self.session.refresh(value)
        return value

    def delete_value(self, investment_id: int, value_id: int) -> None:
        value = self.session.get(InvestmentValue, value_id)
        if not value or value.investment_id != investment_id:
            raise NotFound("Investment value not found")
        self.session.delete(value)
        self.session.commit()

    def latest_value(self, investment_id: int) -> Optional[InvestmentValue]:
        stmt = (
            select(InvestmentValue)
            .where(InvestmentValue.investment_id == investment_id)
            .order_by(InvestmentValue.as_of.desc(), InvestmentValue.id.desc())
            .limit(1)
        )
        return self.session.scalar(stmt)

    def totals_by_type(self) -> dict[InvestmentType, int]:
        """Portfolio value per investment type from each latest valuation."""
        totals: dict[InvestmentType, int] = {}
        for investment in self.list_all():
            latest = self.latest_value(investment.id)
            if latest is None:
                continue
            kind = InvestmentType(investment.type)
            totals[kind] = totals.get(kind, 0) + latest.value_cents
        return totals

    def list_contributions(self, investment_id: int) -> list[OneTimeContribution]:
        self.get(investment_id)
        stmt = (
            select(OneTimeContribution)
            .where(OneTimeContribution.investment_id == investment_id)
            .order_by(OneTimeContribution.date, OneTimeContribution.id)
        )
        return self.session.scalars(stmt).all()

    def add_contribution(
        self, investment_id: int, data: OneTimeContributionIn
    ) -> OneTimeContribution:
        self.get(investment_id)
        contribution = OneTimeContribution(
            investment_id=investment_id, date=data.date, amount_cents=data.amount_cents
        )
        self.session.add(contribution)
        self.session.commit()
        self.session.refresh(contribution)
        return contribution

    def delete_contribution(self, investment_id: int, contribution_id: int) -> None:
        contribution = self.session.get(OneTimeContribution, contribution_id)
        if not contribution or contribution.investment_id != investment_id:
            raise NotFound("Contribution not found")
        self.session.delete(contribution)
        self.session.commit()

    def list_schedules(self, investment_id: int) -> list[ContributionSchedule]:
        self.get(investment_id)
        stmt = (
            select(ContributionSchedule)
            .where(ContributionSchedule.investment_id == investment_id)
            .order_by(
                ContributionSchedule.start_year,
                ContributionSchedule.start_month,
                ContributionSchedule.id,
            )
        )
        return self.session.scalars(stmt).all()

    def add_schedule(self, investment_id: int, data: ScheduleIn) -> ContributionSchedule:
        _validate_range(data.start_year, data.start_month, data.end_year, data.end_month)
        start = month_index(data.start_year, data.start_month)
        end = None if data.end_year is None else month_index(data.end_year, data.end_month)
        for existing in self.list_schedules(investment_id):
            if ranges_overlap(start, end, existing.start_index, existing.end_index):
                raise ValidationFailed(
                    "Overlaps existing schedule.", ["start_year", "start_month"]
                )
        schedule = ContributionSchedule(
            investment_id=investment_id,
            amount_cents=data.amount_cents,
            frequency=data.frequency,
            start_year=data.start_year,
            start_month=data.start_month,
            start_day=data.start_day,
            end_year=data.end_year,
            end_month=data.end_month,
            end_day=data.end_day,
        )
        self.session.add(schedule)
        self.session.commit()
        self.session.refresh(schedule)
        logger.info(
            f"contribution_schedule_created: investment_id={investment_id} "
            f"amount_cents={schedule.amount_cents} start={schedule.start_year}-"
            f"{schedule.start_month:02d}"
        )
        return schedule

    def delete_schedule(self, investment_id: int, schedule_id: int) -> None:
        schedule = self.session.get(ContributionSchedule, schedule_id)
        if not schedule or schedule.investment_id != investment_id:
            raise NotFound("Schedule not found")
        self.session.delete(schedule)
        self.session.commit()

    def contribution_for_month(self, investment_id: int, year: int, month: int) -> int:
        _validate_month(year, month)
        scheduled = amount_for_month(self.list_schedules(investment_id), year, month)
        one_time = self.session.scalar(
            select(func.coalesce(func.sum(OneTimeContribution.amount_cents), 0)).where(
                OneTimeContribution.investment_id == investment_id,
                OneTimeContribution.date.between(
                    month_start(year, month), month_end(year, month)
                ),
            )
        )
        return scheduled + int(one_time or 0)


class FamilyMemberService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list_all(self, active_only: bool = False) -> list[FamilyMember]:
        stmt = select(FamilyMember).order_by(FamilyMember.name, FamilyMember.id)
        if active_only:
            stmt = stmt.where(FamilyMember.is_active.is_(True))
        return self.session.scalars(stmt).all()

    def get(self, member_id: int) -> FamilyMember:
        member = self.session.get(FamilyMember, member_id)
        if not member:
            raise NotFound("Family member not found")
        return member

    def create(self, data: FamilyMemberIn) -> FamilyMember:
        name = data.name.strip()
        if not name:
            raise ValidationFailed("Family member name must not be empty", ["name"])
        member = FamilyMember(
            name=name, relationship=data.relationship, is_active=data.is_active
        )
        self.session.add(member)
        self.session.commit()
        self.session.refresh(member)
        logger.info(f"family_member_created: id={member.id} name={member.name}")
        return member

    def update(self, member_id: int, data: FamilyMemberIn) -> FamilyMember:
        member = self.get(member_id)
        name = data.name.strip()
        if not name:
            raise ValidationFailed("Family member name must not be empty", ["name"])
        member.name = name
        member.relationship = data.relationship
        member.is_active = data.is_active
        self.session.commit()
        return member

    def delete(self, member_id: int) -> None:
        """Remove a member; their individual expenses become family expenses."""
        member = self.get(member_id)
        with atomic(self.session):
            for expense in self.session.scalars(
                select(RegularExpense).where(RegularExpense.family_member_id == member.id)
            ):
                expense.family_member_id = None
                expense.expense_type = ExpenseType.family
            self.session.delete(member)
        logger.info(f"family_member_deleted: id={member_id}")


class FinancialMonthService:
    """Date bounds of a financial month.

    A calendar schedule maps ``year``/``month`` to the calendar month. A
    custom schedule starts every month on the configured day and ends the day
    before the next month's start. A per-month override replaces the start
    date of one month, which also moves the end of the month before it.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    def get_config(self) -> FinancialScheduleConfig:
        config = self.session.scalar(
            select(FinancialScheduleConfig).order_by(FinancialScheduleConfig.id).limit(1)
        )
        if config is None:
            return FinancialScheduleConfig(
                schedule_type=ScheduleType.calendar, start_day=1
            )
        return config

    def set_config(self, data: FinancialScheduleIn) -> FinancialScheduleConfig:
        config = self.session.scalar(
            select(FinancialScheduleConfig).order_by(FinancialScheduleConfig.id).limit(1)
        )
        if config is None:
            config = FinancialScheduleConfig()
            self.session.add(config)
        config.schedule_type = data.schedule_type
        config.start_day = data.start_day
        self.session.commit()
        logger.info(
            f"financial_schedule_set: type={data.schedule_type.value} "
            f"start_day={data.start_day}"
        )
        return config

    def get_override(self, year: int, month: int) -> Optional[FinancialMonthOverride]:
        return self.session.scalar(
            select(FinancialMonthOverride).where(
                FinancialMonthOverride.year == year,
                FinancialMonthOverride.month == month,
            )
        )

    def _default_start(self, year: int, month: int) -> date:
        config = self.get_config()
        if config.schedule_type == ScheduleType.custom:
            return clamped_day(year, month, config.start_day)
        return month_start(year, month)

    def month_start_date(self, year: int, month: int) -> date:
        override = self.get_override(year, month)
        if override is not None:
            return override.start_date
        return self._default_start(year, month)

    def date_range(self, year: int, month: int) -> tuple[date, date]:
        _validate_month(year, month)
        start = self.month_start_date(year, month)
        end = self.month_start_date(*next_month(year, month)) - timedelta(days=1)
        logger.debug(
            f"financial_month: month={year}-{month:02d} start={start.isoformat()} "
            f"end={end.isoformat()}"
        )
        return start, end

    def set_override(self, data: FinancialMonthOverrideIn) -> FinancialMonthOverride:
        _validate_month(data.year, data.month)
        previous_start = self.month_start_date(*previous_month(data.year, data.month))
        following_start = self.month_start_date(*next_month(data.year, data.month))
        if not previous_start < data.start_date < following_start:
            raise ValidationFailed(
                "Start date must fall between the neighbouring financial months",
                ["start_date"],
            )
        override = self.get_override(data.year, data.month)
        if override is None:
            override = FinancialMonthOverride(year=data.year, month=data.month)
            self.session.add(override)
        override.start_date = data.start_date
        self.session.commit()
        logger.info(
            f"financial_month_override: month={data.year}-{data.month:02d} "
            f"start={data.start_date.isoformat()}"
        )
        return override

    def delete_override(self, year: int, month: int) -> None:
        override = self.get_override(year, month)
        if override is None:
            raise NotFound("Financial month override not found")
        self.session.delete(override)
        self.session.commit()


@dataclass(frozen=True)
class RegularExpenseLine:
    expense_id: int
    name: str
    category_id: int
    category_name: str
    schedule_id: int
    amount_cents: int
    frequency: Frequency
    family_member_id: Optional[int] = None


@dataclass(frozen=True)
class BudgetLine:
    category_id: int
    category_name: str
    budget_cents: Optional[int]
    spent_cents: int

    @property
    def percent(self) -> float:
        if not self.budget_cents:
            return 0.0
        return self.spent_cents / self.budget_cents * 100

    @property
    def status(self) -> str:
        if self.budget_cents is None:
            return "No budget"
        if self.percent >= 100:
            return "Over"
        if self.percent >= NEAR_BUDGET_PERCENT:
            return "Near"
        return "Under"


@dataclass
class MonthlySummary:
    year: int
    month: int
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    incomes: list[IncomeLine] = field(default_factory=list)
    one_time_incomes: list[OneTimeIncome] = field(default_factory=list)
    regular_expenses: list[RegularExpenseLine] = field(default_factory=list)
    irregular_expenses: list[IrregularExpense] = field(default_factory=list)
    expenses_by_category: dict[str, int] = field(default_factory=dict)
    uncategorized_cents: int = 0
    budgets: list[BudgetLine] = field(default_factory=list)

    @property
    def total_income_cents(self) -> int:
        return sum(i.actual_amount_cents for i in self.incomes) + sum(
            i.amount_cents for i in self.one_time_incomes
        )

    @property
    def total_regular_cents(self) -> int:
        return sum(e.amount_cents for e in self.regular_expenses)

    @property
    def total_irregular_cents(self) -> int:
        return sum(e.amount_cents for e in self.irregular_expenses)

    @property
    def total_expenses_cents(self) -> int:
        return self.total_regular_cents + self.total_irregular_cents

    @property
    def net_balance_cents(self) -> int:
        return self.total_income_cents - self.total_expenses_cents


class MonthlySummaryService:
    """Read-only month snapshot composed from schedules, budgets and incomes.

    Nothing is cached: every call re-reads storage for the requested month.
    Missing schedules, budgets or income logs count as zero.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    def applicable_regular_expenses(
        self, year: int, month: int
    ) -> list[RegularExpenseLine]:
        target = month_index(year, month)
        schedules = self.session.scalars(
            select(ExpenseSchedule).where(_covers_month(ExpenseSchedule, target))
        ).all()
        by_expense: dict[int, list[ExpenseSchedule]] = {}
        for schedule in schedules:
            by_expense.setdefault(schedule.regular_expense_id, []).append(schedule)
        if not by_expense:
            return []

        rows = self.session.execute(
            select(RegularExpense, ExpenseCategory.name)
            .join(ExpenseCategory, RegularExpense.category_id == ExpenseCategory.id)
            .where(RegularExpense.id.in_(list(by_expense)))
            .order_by(RegularExpense.name, RegularExpense.id)
        ).all()

        lines: list[RegularExpenseLine] = []
        for expense, category_name in rows:
            entry = resolve_active_entry(by_expense[expense.id], year, month)
            if entry is None or not should_fire_in_month(entry, year, month):
                continue
            lines.append(
                RegularExpenseLine(
                    expense_id=expense.id,
                    name=expense.name,
                    category_id=expense.category_id,
                    category_name=category_name,
                    schedule_id=entry.id,
                    amount_cents=entry.amount_cents,
                    frequency=entry.frequency,
                    family_member_id=expense.family_member_id,
                )
            )
        logger.debug(
            f"monthly_summary: month={year}-{month:02d} active_schedules={len(schedules)} "
            f"applicable_expenses={len(lines)}"
        )
        return lines

    def monthly_summary(self, year: int, month: int) -> MonthlySummary:
        _validate_month(year, month)
        start_date, end_date = FinancialMonthService(self.session).date_range(
            year, month
        )

        income_service = IncomeService(self.session)
        incomes = income_service.incomes_for_month(year, month)
        one_time_incomes = income_service.one_time_for_month(year, month)
        regular = self.applicable_regular_expenses(year, month)
        irregular = IrregularExpenseService(self.session).list_between(
            start_date, end_date
        )
        budgets = BudgetService(self.session).effective_budgets_for_month(year, month)
        categories = ExpenseCategoryService(self.session).list_all()
        names = {c.id: c.name for c in categories}

        by_category: dict[str, int] = {}
        for line in regular:
            by_category[line.category_name] = (
                by_category.get(line.category_name, 0) + line.amount_cents
            )
        uncategorized = 0
        for expense in irregular:
            name = names.get(expense.category_id) if expense.category_id else None
            if name is None:
                uncategorized += expense.amount_cents
                continue
            by_category[name] = by_category.get(name, 0) + expense.amount_cents

        latest = BudgetService.latest_by_category(budgets)
        budget_lines: list[BudgetLine] = []
        for category in categories:
            budget = latest.get(category.id)
            amount = budget.amount_cents if budget is not None else None
            if amount == 0:
                amount = None
            budget_lines.append(
                BudgetLine(
                    category_id=category.id,
                    category_name=category.name,
                    budget_cents=amount,
                    spent_cents=by_category.get(category.name, 0),
                )
            )

        summary = MonthlySummary(
            year=year,
            month=month,
            start_date=start_date,
            end_date=end_date,
            incomes=incomes,
            one_time_incomes=list(one_time_incomes),
            regular_expenses=regular,
            irregular_expenses=list(irregular),
            expenses_by_category=by_category,
            uncategorized_cents=uncategorized,
            budgets=budget_lines,
        )
        logger.info(
            f"monthly_summary: month={year}-{month:02d} "
            f"income_cents={summary.total_income_cents} "
            f"expense_cents={summary.total_expenses_cents}"
        )
        return summary

    def expense_trends(self, months_back: int, today: date) -> list[dict[str, int]]:
        if months_back <= 0 or months_back > 12:
            raise ValidationFailed(
                "Months back must be between 1 and 12", ["months_back"]
            )
        points: list[dict[str, int]] = []
        for offset in range(months_back - 1, -1, -1):
            year, month = add_months(today.year, today.month, -offset)
            summary = self.monthly_summary(year, month)
            points.append(
                {
                    "year": year,
                    "month": month,
                    "regular_cents": summary.total_regular_cents,
                    "irregular_cents": summary.total_irregular_cents,
                    "total_expenses_cents": summary.total_expenses_cents,
                }
            )
        return points
