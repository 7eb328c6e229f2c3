from datetime import date

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from database import Base
from models import ExpenseType, Frequency
from schemas import (
    ExpenseCategoryIn,
    FamilyMemberIn,
    RegularExpenseIn,
    RegularExpenseUpdateIn,
    ScheduleIn,
)
from services import (
    ExpenseCategoryService,
    FamilyMemberService,
    MonthlySummaryService,
    NotFound,
    RegularExpenseService,
    ValidationFailed,
)


def _setup(session: Session):
    category = ExpenseCategoryService(session).create(ExpenseCategoryIn(name="Utilities"))
    service = RegularExpenseService(session)
    expense = service.create(
        RegularExpenseIn(
            name="Electricity",
            category_id=category.id,
            schedule=ScheduleIn(amount_cents=8_000, start_year=2024, start_month=1),
        )
    )
    return category, service, expense


def test_create_records_first_schedule():
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        _, service, expense = _setup(session)
        schedules = service.schedules_for(expense.id)

        assert len(schedules) == 1
        assert schedules[0].amount_cents == 8_000
        assert schedules[0].frequency == Frequency.monthly
        assert schedules[0].is_open_ended


def test_create_requires_existing_category():
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        with pytest.raises(NotFound):
            RegularExpenseService(session).create(
                RegularExpenseIn(
                    name="Gym",
                    category_id=42,
                    schedule=ScheduleIn(amount_cents=3_000, start_year=2024, start_month=1),
                )
            )


def test_update_schedule_appends_and_ends_previous():
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        _, service, expense = _setup(session)
        service.update_schedule(
            expense.id,
            ScheduleIn(
                amount_cents=24_000,
                frequency=Frequency.quarterly,
                start_year=2024,
                start_month=6,
            ),
        )
        schedules = service.schedules_for(expense.id)

        assert [(s.start_month, s.end_year, s.end_month) for s in schedules] == [
            (1, 2024, 5),
            (6, None, None),
        ]
        assert service.resolved_schedule(expense.id, 2024, 5).amount_cents == 8_000
        assert service.resolved_schedule(expense.id, 2024, 6).amount_cents == 24_000
        assert service.resolved_schedule(expense.id, 2024, 7) is None
        assert service.resolved_schedule(expense.id, 2024, 9).amount_cents == 24_000


def test_update_schedule_with_same_values_only_moves_end():
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        _, service, expense = _setup(session)
        original_id = service.schedules_for(expense.id)[0].id
        result = service.update_schedule(
            expense.id,
            ScheduleIn(
                amount_cents=8_000,
                start_year=2024,
                start_month=4,
                end_year=2024,
                end_month=12,
            ),
        )
        schedules = service.schedules_for(expense.id)

        assert result.id == original_id
        assert len(schedules) == 1
        assert (schedules[0].end_year, schedules[0].end_month) == (2024, 12)


def test_update_schedule_in_start_month_replaces_entry():
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        _, service, expense = _setup(session)
        service.update_schedule(
            expense.id,
            ScheduleIn(amount_cents=9_000, start_year=2024, start_month=1),
        )
        schedules = service.schedules_for(expense.id)

        assert len(schedules) == 1
        assert schedules[0].amount_cents == 9_000


def test_update_schedule_unknown_expense():
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        with pytest.raises(NotFound):
            RegularExpenseService(session).update_schedule(
                7, ScheduleIn(amount_cents=1_000, start_year=2024, start_month=1)
            )


def test_update_details_and_delete():
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        category, service, expense = _setup(session)
        expense_id = expense.id
        updated = service.update(
            expense_id,
            RegularExpenseUpdateIn(
                name="Power", description="Green tariff", category_id=category.id
            ),
        )
        assert updated.name == "Power"
        assert updated.description == "Green tariff"

        service.delete(expense_id)
        assert service.list_all() == []
        assert service.schedules_for(expense_id) == []
        with pytest.raises(NotFound):
            service.get(expense_id)


def test_next_due_and_statistics():
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        category, service, electricity = _setup(session)
        insurance = service.create(
            RegularExpenseIn(
                name="Insurance",
                category_id=category.id,
                schedule=ScheduleIn(
                    amount_cents=30_000,
                    frequency=Frequency.quarterly,
                    start_year=2024,
                    start_month=1,
                ),
            )
        )
        today = date(2024, 2, 10)

        assert service.next_due(electricity.id, today) == (2024, 3)
        assert service.next_due(insurance.id, today) == (2024, 4)

        stats = service.statistics()
        assert stats == {
            "expense_count": 2,
            "total_monthly_cents": 8_000 + 10_000,
            "total_annual_cents": 96_000 + 120_000,
            "alternative_schedule_count": 1,
        }


def test_schedule_end_before_start_rejected():
    with pytest.raises(ValueError):
        ScheduleIn(
            amount_cents=1_000,
            start_year=2024,
            start_month=5,
            end_year=2024,
            end_month=4,
        )
    assert issubclass(ValidationFailed, ValueError)


def test_individual_expense_needs_active_member():
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        category, service, _ = _setup(session)
        members = FamilyMemberService(session)
        anna = members.create(FamilyMemberIn(name="Anna", relationship="Daughter"))
        former = members.create(FamilyMemberIn(name="Lodger", is_active=False))
        schedule = ScheduleIn(amount_cents=4_500, start_year=2024, start_month=1)

        with pytest.raises(ValidationFailed) as exc_info:
            service.create(
                RegularExpenseIn(
                    name="Swimming club",
                    category_id=category.id,
                    expense_type=ExpenseType.individual,
                    schedule=schedule,
                )
            )
        assert exc_info.value.fields == ["family_member_id"]
        with pytest.raises(ValidationFailed):
            service.create(
                RegularExpenseIn(
                    name="Swimming club",
                    category_id=category.id,
                    expense_type=ExpenseType.individual,
                    family_member_id=former.id,
                    schedule=schedule,
                )
            )
        with pytest.raises(NotFound):
            service.create(
                RegularExpenseIn(
                    name="Swimming club",
                    category_id=category.id,
                    expense_type=ExpenseType.individual,
                    family_member_id=999,
                    schedule=schedule,
                )
            )

        club = service.create(
            RegularExpenseIn(
                name="Swimming club",
                category_id=category.id,
                expense_type=ExpenseType.individual,
                family_member_id=anna.id,
                schedule=schedule,
            )
        )
        assert club.expense_type == ExpenseType.individual
        assert club.family_member_id == anna.id

        lines = MonthlySummaryService(session).applicable_regular_expenses(2024, 3)
        assert {line.name: line.family_member_id for line in lines} == {
            "Electricity": None,
            "Swimming club": anna.id,
        }

        shared = service.update(
            club.id,
            RegularExpenseUpdateIn(
                name="Swimming club",
                category_id=category.id,
                family_member_id=anna.id,
            ),
        )
        assert shared.expense_type == ExpenseType.family
        assert shared.family_member_id is None


def test_deleting_member_makes_expenses_shared():
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        category, service, _ = _setup(session)
        members = FamilyMemberService(session)
        ben = members.create(FamilyMemberIn(name="Ben"))
        ben_id = ben.id
        phone = service.create(
            RegularExpenseIn(
                name="Phone plan",
                category_id=category.id,
                expense_type=ExpenseType.individual,
                family_member_id=ben_id,
                schedule=ScheduleIn(amount_cents=2_000, start_year=2024, start_month=1),
            )
        )

        members.delete(ben_id)

        refreshed = service.get(phone.id)
        assert refreshed.expense_type == ExpenseType.family
        assert refreshed.family_member_id is None
        assert members.list_all() == []
        with pytest.raises(NotFound):
            members.delete(ben_id)
        with pytest.raises(ValidationFailed):
            members.create(FamilyMemberIn(name="  "))
