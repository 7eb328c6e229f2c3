from datetime import date

import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import Session

from database import Base
from models import FinancialScheduleConfig, ScheduleType
from schemas import FinancialMonthOverrideIn, FinancialScheduleIn
from services import FinancialMonthService, NotFound, ValidationFailed


def _custom(session: Session, start_day: int) -> FinancialMonthService:
    service = FinancialMonthService(session)
    service.set_config(
        FinancialScheduleIn(schedule_type=ScheduleType.custom, start_day=start_day)
    )
    return service


def test_calendar_schedule_by_default():
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        service = FinancialMonthService(session)

        assert service.get_config().schedule_type == ScheduleType.calendar
        assert service.date_range(2024, 2) == (date(2024, 2, 1), date(2024, 2, 29))
        assert service.date_range(2024, 12) == (date(2024, 12, 1), date(2024, 12, 31))
        with pytest.raises(ValidationFailed):
            service.date_range(2024, 13)


def test_custom_start_day_spans_two_calendar_months():
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        service = _custom(session, 25)

        assert service.date_range(2024, 3) == (date(2024, 3, 25), date(2024, 4, 24))
        assert service.date_range(2024, 12) == (date(2024, 12, 25), date(2025, 1, 24))


def test_start_day_clamped_to_short_months():
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        service = _custom(session, 31)

        assert service.date_range(2024, 1) == (date(2024, 1, 31), date(2024, 2, 28))
        assert service.date_range(2024, 2) == (date(2024, 2, 29), date(2024, 3, 30))
        assert service.date_range(2023, 2) == (date(2023, 2, 28), date(2023, 3, 30))


def test_set_config_keeps_a_single_row():
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        service = _custom(session, 15)
        service.set_config(
            FinancialScheduleIn(schedule_type=ScheduleType.calendar, start_day=1)
        )

        rows = session.scalar(select(func.count()).select_from(FinancialScheduleConfig))
        assert rows == 1
        assert service.date_range(2024, 6) == (date(2024, 6, 1), date(2024, 6, 30))


def test_override_moves_start_and_previous_end():
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        service = _custom(session, 25)
        service.set_override(
            FinancialMonthOverrideIn(year=2024, month=4, start_date=date(2024, 4, 22))
        )

        assert service.date_range(2024, 3) == (date(2024, 3, 25), date(2024, 4, 21))
        assert service.date_range(2024, 4) == (date(2024, 4, 22), date(2024, 5, 24))

        moved = service.set_override(
            FinancialMonthOverrideIn(year=2024, month=4, start_date=date(2024, 4, 26))
        )
        assert moved.start_date == date(2024, 4, 26)
        assert service.date_range(2024, 3)[1] == date(2024, 4, 25)

        service.delete_override(2024, 4)
        assert service.date_range(2024, 4) == (date(2024, 4, 25), date(2024, 5, 24))
        with pytest.raises(NotFound):
            service.delete_override(2024, 4)


def test_override_must_stay_between_neighbouring_months():
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        service = _custom(session, 25)

        for start in (date(2024, 2, 25), date(2024, 2, 10), date(2024, 4, 25)):
            with pytest.raises(ValidationFailed) as exc_info:
                service.set_override(
                    FinancialMonthOverrideIn(year=2024, month=3, start_date=start)
                )
            assert exc_info.value.fields == ["start_date"]

        assert service.get_override(2024, 3) is None
        assert service.date_range(2024, 3) == (date(2024, 3, 25), date(2024, 4, 24))
