from datetime import date

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session

from database import Base
from models import CategoryBudget, IrregularExpense, OneTimeIncome
from schemas import (
    ExpenseCategoryIn,
    IncomeSourceIn,
    IrregularExpenseIn,
    MonthlyIncomeIn,
    OneTimeIncomeIn,
    RegularExpenseIn,
    ScheduleIn,
)
from services import (
    DEFAULT_CATEGORIES,
    BudgetService,
    ExpenseCategoryService,
    IncomeService,
    IrregularExpenseService,
    NotFound,
    RegularExpenseService,
    ValidationFailed,
)


def test_log_monthly_income_upserts():
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        incomes = IncomeService(session)
        salary = incomes.create_source(
            IncomeSourceIn(name="Salary", expected_amount_cents=300_000)
        )
        first = incomes.log_monthly_income(
            MonthlyIncomeIn(
                income_source_id=salary.id, year=2024, month=5, actual_amount_cents=290_000
            )
        )
        second = incomes.log_monthly_income(
            MonthlyIncomeIn(
                income_source_id=salary.id, year=2024, month=5, actual_amount_cents=310_000
            )
        )

        assert first.id == second.id
        lines = incomes.incomes_for_month(2024, 5)
        assert [(line.actual_amount_cents, line.logged) for line in lines] == [
            (310_000, True)
        ]

        with pytest.raises(NotFound):
            incomes.log_monthly_income(
                MonthlyIncomeIn(
                    income_source_id=999, year=2024, month=5, actual_amount_cents=1
                )
            )


def test_delete_source_detaches_one_time_income():
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        incomes = IncomeService(session)
        freelance = incomes.create_source(IncomeSourceIn(name="Freelance"))
        source_id = freelance.id
        incomes.create_one_time(
            OneTimeIncomeIn(
                name="Bonus",
                amount_cents=25_000,
                date=date(2024, 4, 2),
                income_source_id=source_id,
            )
        )

        incomes.delete_source(source_id)

        remaining = session.scalars(select(OneTimeIncome)).all()
        assert len(remaining) == 1
        assert remaining[0].income_source_id is None
        assert incomes.list_sources() == []
        assert [i.name for i in incomes.one_time_for_month(2024, 4)] == ["Bonus"]


def test_seed_defaults_only_once():
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        categories = ExpenseCategoryService(session)
        assert categories.seed_defaults() == len(DEFAULT_CATEGORIES)
        assert categories.seed_defaults() == 0
        assert sorted(c.name for c in categories.list_all()) == sorted(DEFAULT_CATEGORIES)


def test_category_names_unique_case_insensitive():
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        categories = ExpenseCategoryService(session)
        travel = categories.create(ExpenseCategoryIn(name="Travel"))
        with pytest.raises(ValidationFailed) as exc_info:
            categories.create(ExpenseCategoryIn(name="travel"))
        assert exc_info.value.fields == ["name"]

        renamed = categories.rename(travel.id, "  Holidays ")
        assert renamed.name == "Holidays"


def test_create_category_rejects_blank_name():
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        categories = ExpenseCategoryService(session)
        with pytest.raises(ValidationFailed) as exc_info:
            categories.create(ExpenseCategoryIn(name="   "))
        assert exc_info.value.fields == ["name"]
        assert categories.list_all() == []


def test_delete_category_guards_and_cleans_up():
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        categories = ExpenseCategoryService(session)
        hobbies = categories.create(ExpenseCategoryIn(name="Hobbies"))
        streaming = categories.create(ExpenseCategoryIn(name="Streaming"))
        hobbies_id = hobbies.id
        BudgetService(session).set_category_budget(hobbies_id, 5_000, 2024, 1, True)
        IrregularExpenseService(session).create(
            IrregularExpenseIn(
                name="Paint", amount_cents=2_500, date=date(2024, 1, 3), category_id=hobbies_id
            )
        )
        RegularExpenseService(session).create(
            RegularExpenseIn(
                name="Video",
                category_id=streaming.id,
                schedule=ScheduleIn(amount_cents=1_300, start_year=2024, start_month=1),
            )
        )

        with pytest.raises(ValidationFailed):
            categories.delete(streaming.id)

        categories.delete(hobbies_id)

        assert session.scalars(select(CategoryBudget)).all() == []
        expense = session.scalars(select(IrregularExpense)).one()
        assert expense.category_id is None
        with pytest.raises(NotFound):
            categories.get(hobbies_id)


def test_irregular_expenses_for_month_and_range_validation():
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        service = IrregularExpenseService(session)
        service.create(
            IrregularExpenseIn(name="Train", amount_cents=4_200, date=date(2024, 2, 29))
        )
        service.create(
            IrregularExpenseIn(name="Taxi", amount_cents=1_800, date=date(2024, 3, 1))
        )

        assert [e.name for e in service.list_for_month(2024, 2)] == ["Train"]
        with pytest.raises(ValidationFailed):
            service.list_between(date(2024, 3, 2), date(2024, 3, 1))
        with pytest.raises(NotFound):
            service.create(
                IrregularExpenseIn(
                    name="Lost", amount_cents=100, date=date(2024, 3, 1), category_id=77
                )
            )
