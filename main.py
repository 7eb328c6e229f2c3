import logging
from datetime import date
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException
from sqlalchemy.orm import Session

from config import get_settings
from database import SessionLocal, session_scope
from models import (
    CategoryBudget,
    ContributionSchedule,
    ExpenseCategory,
    ExpenseSchedule,
    FamilyMember,
    FinancialMonthOverride,
    FinancialScheduleConfig,
    IncomeSource,
    Investment,
    InvestmentValue,
    IrregularExpense,
    MonthlyIncome,
    OneTimeContribution,
    OneTimeIncome,
    RegularExpense,
)
from periods import Period, resolve_period
from recurrence import local_today
from schemas import (
    BudgetIn,
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
from services import (
    BudgetService,
    ExpenseCategoryService,
    FamilyMemberService,
    FinancialMonthService,
    IncomeService,
    InvestmentService,
    IrregularExpenseService,
    MonthlySummary,
    MonthlySummaryService,
    NotFound,
    RegularExpenseService,
    ValidationFailed,
)

settings = get_settings()
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Household Finance")


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@app.on_event("startup")
def startup_event():
    if not settings.seed_categories:
        return
    with session_scope() as session:
        created = ExpenseCategoryService(session).seed_defaults()
    logger.info(f"startup: seeded_categories={created}")


def _http_error(exc: ValueError) -> HTTPException:
    if isinstance(exc, NotFound):
        return HTTPException(status_code=404, detail=str(exc))
    fields = exc.fields if isinstance(exc, ValidationFailed) else []
    return HTTPException(status_code=400, detail={"message": str(exc), "fields": fields})


def period_from_query(year: Optional[int], month: Optional[int]) -> Period:
    try:
        return resolve_period(year, month, today=local_today())
    except ValueError as exc:
        raise HTTPException(
            status_code=400, detail={"message": str(exc), "fields": ["year", "month"]}
        ) from exc


def _month_range(row) -> dict[str, object]:
    return {
        "start_year": row.start_year,
        "start_month": row.start_month,
        "end_year": row.end_year,
        "end_month": row.end_month,
    }


def category_json(category: ExpenseCategory) -> dict[str, object]:
    return {"id": category.id, "name": category.name}


def budget_json(budget: CategoryBudget) -> dict[str, object]:
    return {
        "id": budget.id,
        "category_id": budget.category_id,
        "amount_cents": budget.amount_cents,
        **_month_range(budget),
    }


def schedule_json(schedule: ExpenseSchedule | ContributionSchedule) -> dict[str, object]:
    return {
        "id": schedule.id,
        "amount_cents": schedule.amount_cents,
        "frequency": schedule.frequency.value,
        "start_day": schedule.start_day,
        "end_day": schedule.end_day,
        **_month_range(schedule),
    }


def regular_expense_json(
    expense: RegularExpense, schedules: list[ExpenseSchedule]
) -> dict[str, object]:
    return {
        "id": expense.id,
        "name": expense.name,
        "description": expense.description,
        "category_id": expense.category_id,
        "expense_type": expense.expense_type.value,
        "family_member_id": expense.family_member_id,
        "schedules": [schedule_json(s) for s in schedules],
    }


def irregular_expense_json(expense: IrregularExpense) -> dict[str, object]:
    return {
        "id": expense.id,
        "name": expense.name,
        "amount_cents": expense.amount_cents,
        "date": expense.date.isoformat(),
        "category_id": expense.category_id,
    }


def income_source_json(source: IncomeSource) -> dict[str, object]:
    return {
        "id": source.id,
        "name": source.name,
        "expected_amount_cents": source.expected_amount_cents,
    }


def one_time_income_json(income: OneTimeIncome) -> dict[str, object]:
    return {
        "id": income.id,
        "name": income.name,
        "amount_cents": income.amount_cents,
        "date": income.date.isoformat(),
        "income_source_id": income.income_source_id,
    }


def investment_json(
    investment: Investment, latest: Optional[InvestmentValue]
) -> dict[str, object]:
    return {
        "id": investment.id,
        "name": investment.name,
        "provider": investment.provider,
        "type": investment.type.value,
        "latest_value_cents": latest.value_cents if latest else None,
        "latest_value_date": latest.as_of.isoformat() if latest else None,
    }


def family_member_json(member: FamilyMember) -> dict[str, object]:
    return {
        "id": member.id,
        "name": member.name,
        "relationship": member.relationship,
        "is_active": member.is_active,
    }


def financial_schedule_json(config: FinancialScheduleConfig) -> dict[str, object]:
    return {"schedule_type": config.schedule_type.value, "start_day": config.start_day}


def financial_override_json(override: FinancialMonthOverride) -> dict[str, object]:
    return {
        "year": override.year,
        "month": override.month,
        "start_date": override.start_date.isoformat(),
    }


def summary_json(summary: MonthlySummary) -> dict[str, object]:
    return {
        "year": summary.year,
        "month": summary.month,
        "start_date": summary.start_date.isoformat() if summary.start_date else None,
        "end_date": summary.end_date.isoformat() if summary.end_date else None,
        "incomes": [
            {
                "income_source_id": line.income_source_id,
                "name": line.name,
                "expected_amount_cents": line.expected_amount_cents,
                "actual_amount_cents": line.actual_amount_cents,
                "logged": line.logged,
            }
            for line in summary.incomes
        ],
        "one_time_incomes": [one_time_income_json(i) for i in summary.one_time_incomes],
        "regular_expenses": [
            {
                "id": line.expense_id,
                "name": line.name,
                "category": line.category_name,
                "amount_cents": line.amount_cents,
                "frequency": line.frequency.value,
                "family_member_id": line.family_member_id,
            }
            for line in summary.regular_expenses
        ],
        "irregular_expenses": [
            irregular_expense_json(e) for e in summary.irregular_expenses
        ],
        "expenses_by_category": summary.expenses_by_category,
        "uncategorized_cents": summary.uncategorized_cents,
        "budgets": [
            {
                "category_id": line.category_id,
                "category": line.category_name,
                "budget_cents": line.budget_cents,
                "spent_cents": line.spent_cents,
                "percent": round(line.percent, 1),
                "status": line.status,
            }
            for line in summary.budgets
        ],
        "total_income_cents": summary.total_income_cents,
        "total_expenses_cents": summary.total_expenses_cents,
        "net_balance_cents": summary.net_balance_cents,
    }


@app.get("/api/summary")
def api_summary(
    year: Optional[int] = None,
    month: Optional[int] = None,
    db: Session = Depends(get_db),
):
    period = period_from_query(year, month)
    try:
        summary = MonthlySummaryService(db).monthly_summary(period.year, period.month)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return summary_json(summary)


@app.get("/api/trends")
def api_trends(months_back: int = 6, db: Session = Depends(get_db)):
    try:
        return MonthlySummaryService(db).expense_trends(months_back, local_today())
    except ValueError as exc:
        raise _http_error(exc) from exc


@app.get("/api/financial-schedule")
def api_financial_schedule(db: Session = Depends(get_db)):
    return financial_schedule_json(FinancialMonthService(db).get_config())


@app.put("/api/financial-schedule")
def api_set_financial_schedule(
    payload: FinancialScheduleIn, db: Session = Depends(get_db)
):
    config = FinancialMonthService(db).set_config(payload)
    return financial_schedule_json(config)


@app.get("/api/financial-months/{year}/{month}")
def api_financial_month(year: int, month: int, db: Session = Depends(get_db)):
    service = FinancialMonthService(db)
    try:
        start, end = service.date_range(year, month)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return {
        "year": year,
        "month": month,
        "start_date": start.isoformat(),
        "end_date": end.isoformat(),
        "overridden": service.get_override(year, month) is not None,
    }


@app.put("/api/financial-months/{year}/{month}")
def api_set_financial_month_override(
    year: int, month: int, start_date: date, db: Session = Depends(get_db)
):
    try:
        payload = FinancialMonthOverrideIn(
            year=year, month=month, start_date=start_date
        )
        override = FinancialMonthService(db).set_override(payload)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return financial_override_json(override)


@app.delete("/api/financial-months/{year}/{month}", status_code=204)
def api_delete_financial_month_override(
    year: int, month: int, db: Session = Depends(get_db)
):
    try:
        FinancialMonthService(db).delete_override(year, month)
    except ValueError as exc:
        raise _http_error(exc) from exc


@app.get("/api/categories")
def api_categories(db: Session = Depends(get_db)):
    return [category_json(c) for c in ExpenseCategoryService(db).list_all()]


@app.post("/api/categories", status_code=201)
def api_create_category(payload: ExpenseCategoryIn, db: Session = Depends(get_db)):
    try:
        category = ExpenseCategoryService(db).create(payload)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return category_json(category)


@app.put("/api/categories/{category_id}")
def api_rename_category(
    category_id: int, payload: ExpenseCategoryIn, db: Session = Depends(get_db)
):
    try:
        category = ExpenseCategoryService(db).rename(category_id, payload.name)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return category_json(category)


@app.delete("/api/categories/{category_id}", status_code=204)
def api_delete_category(category_id: int, db: Session = Depends(get_db)):
    try:
        ExpenseCategoryService(db).delete(category_id)
    except ValueError as exc:
        raise _http_error(exc) from exc


@app.get("/api/budgets")
def api_budgets(
    year: Optional[int] = None,
    month: Optional[int] = None,
    db: Session = Depends(get_db),
):
    period = period_from_query(year, month)
    service = BudgetService(db)
    budgets = service.effective_budgets_for_month(period.year, period.month)
    latest = BudgetService.latest_by_category(budgets)
    return {
        "year": period.year,
        "month": period.month,
        "items": [budget_json(b) for b in latest.values()],
    }


@app.post("/api/budgets")
def api_set_budget(payload: BudgetIn, db: Session = Depends(get_db)):
    try:
        budget = BudgetService(db).set_category_budget(
            payload.category_id,
            payload.amount_cents,
            payload.year,
            payload.month,
            payload.apply_to_future,
        )
    except ValueError as exc:
        raise _http_error(exc) from exc
    return budget_json(budget)


@app.post("/api/budgets/ranges", status_code=201)
def api_create_budget_range(payload: BudgetRangeIn, db: Session = Depends(get_db)):
    try:
        budget = BudgetService(db).create_budget_range(payload)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return budget_json(budget)


@app.delete("/api/budgets/{category_id}")
def api_delete_budget(
    category_id: int, year: int, month: int, db: Session = Depends(get_db)
):
    try:
        changed = BudgetService(db).delete_category_budget(category_id, year, month)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return {"rows_changed": changed}


@app.get("/api/budgets/{category_id}/history")
def api_budget_history(category_id: int, db: Session = Depends(get_db)):
    try:
        items = BudgetService(db).history(category_id, local_today())
    except ValueError as exc:
        raise _http_error(exc) from exc
    return [
        {
            "id": item.budget_id,
            "category": item.category_name,
            "amount_cents": item.amount_cents,
            "period": item.period_display,
            "status": item.status_display,
        }
        for item in items
    ]


@app.get("/api/regular-expenses")
def api_regular_expenses(db: Session = Depends(get_db)):
    service = RegularExpenseService(db)
    today = local_today()
    items = []
    for expense in service.list_all():
        body = regular_expense_json(expense, service.schedules_for(expense.id))
        due = service.next_due(expense.id, today)
        body["next_due"] = f"{due[0]}-{due[1]:02d}" if due else None
        items.append(body)
    return {"items": items, "statistics": service.statistics()}


@app.post("/api/regular-expenses", status_code=201)
def api_create_regular_expense(payload: RegularExpenseIn, db: Session = Depends(get_db)):
    service = RegularExpenseService(db)
    try:
        expense = service.create(payload)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return regular_expense_json(expense, service.schedules_for(expense.id))


@app.get("/api/regular-expenses/{expense_id}")
def api_regular_expense_detail(expense_id: int, db: Session = Depends(get_db)):
    service = RegularExpenseService(db)
    try:
        expense = service.get(expense_id)
    except ValueError as exc:
        raise _http_error(exc) from exc
    body = regular_expense_json(expense, service.schedules_for(expense.id))
    due = service.next_due(expense.id, local_today())
    body["next_due"] = f"{due[0]}-{due[1]:02d}" if due else None
    return body


@app.put("/api/regular-expenses/{expense_id}")
def api_update_regular_expense(
    expense_id: int, payload: RegularExpenseUpdateIn, db: Session = Depends(get_db)
):
    service = RegularExpenseService(db)
    try:
        expense = service.update(expense_id, payload)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return regular_expense_json(expense, service.schedules_for(expense.id))


@app.post("/api/regular-expenses/{expense_id}/schedule")
def api_update_regular_schedule(
    expense_id: int, payload: ScheduleIn, db: Session = Depends(get_db)
):
    try:
        schedule = RegularExpenseService(db).update_schedule(expense_id, payload)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return schedule_json(schedule)


@app.delete("/api/regular-expenses/{expense_id}", status_code=204)
def api_delete_regular_expense(expense_id: int, db: Session = Depends(get_db)):
    try:
        RegularExpenseService(db).delete(expense_id)
    except ValueError as exc:
        raise _http_error(exc) from exc


@app.get("/api/family-members")
def api_family_members(active_only: bool = False, db: Session = Depends(get_db)):
    members = FamilyMemberService(db).list_all(active_only=active_only)
    return [family_member_json(m) for m in members]


@app.post("/api/family-members", status_code=201)
def api_create_family_member(payload: FamilyMemberIn, db: Session = Depends(get_db)):
    try:
        member = FamilyMemberService(db).create(payload)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return family_member_json(member)


@app.put("/api/family-members/{member_id}")
def api_update_family_member(
    member_id: int, payload: FamilyMemberIn, db: Session = Depends(get_db)
):
    try:
        member = FamilyMemberService(db).update(member_id, payload)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return family_member_json(member)


@app.delete("/api/family-members/{member_id}", status_code=204)
def api_delete_family_member(member_id: int, db: Session = Depends(get_db)):
    try:
        FamilyMemberService(db).delete(member_id)
    except ValueError as exc:
        raise _http_error(exc) from exc


@app.get("/api/irregular-expenses")
def api_irregular_expenses(
    start: date, end: date, db: Session = Depends(get_db)
):
    try:
        items = IrregularExpenseService(db).list_between(start, end)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return [irregular_expense_json(e) for e in items]


@app.post("/api/irregular-expenses", status_code=201)
def api_create_irregular_expense(
    payload: IrregularExpenseIn, db: Session = Depends(get_db)
):
    try:
        expense = IrregularExpenseService(db).create(payload)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return irregular_expense_json(expense)


@app.put("/api/irregular-expenses/{expense_id}")
def api_update_irregular_expense(
    expense_id: int, payload: IrregularExpenseIn, db: Session = Depends(get_db)
):
    try:
        expense = IrregularExpenseService(db).update(expense_id, payload)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return irregular_expense_json(expense)


@app.delete("/api/irregular-expenses/{expense_id}", status_code=204)
def api_delete_irregular_expense(expense_id: int, db: Session = Depends(get_db)):
    try:
        IrregularExpenseService(db).delete(expense_id)
    except ValueError as exc:
        raise _http_error(exc) from exc


@app.get("/api/income-sources")
def api_income_sources(db: Session = Depends(get_db)):
    return [income_source_json(s) for s in IncomeService(db).list_sources()]


@app.post("/api/income-sources", status_code=201)
def api_create_income_source(payload: IncomeSourceIn, db: Session = Depends(get_db)):
    source = IncomeService(db).create_source(payload)
    return income_source_json(source)


@app.put("/api/income-sources/{source_id}")
def api_update_income_source(
    source_id: int, payload: IncomeSourceIn, db: Session = Depends(get_db)
):
    try:
        source = IncomeService(db).update_source(source_id, payload)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return income_source_json(source)


@app.delete("/api/income-sources/{source_id}", status_code=204)
def api_delete_income_source(source_id: int, db: Session = Depends(get_db)):
    try:
        IncomeService(db).delete_source(source_id)
    except ValueError as exc:
        raise _http_error(exc) from exc


@app.post("/api/monthly-incomes")
def api_log_monthly_income(payload: MonthlyIncomeIn, db: Session = Depends(get_db)):
    try:
        logged: MonthlyIncome = IncomeService(db).log_monthly_income(payload)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return {
        "id": logged.id,
        "income_source_id": logged.income_source_id,
        "year": logged.year,
        "month": logged.month,
        "actual_amount_cents": logged.actual_amount_cents,
    }


@app.post("/api/one-time-incomes", status_code=201)
def api_create_one_time_income(payload: OneTimeIncomeIn, db: Session = Depends(get_db)):
    try:
        income = IncomeService(db).create_one_time(payload)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return one_time_income_json(income)


@app.delete("/api/one-time-incomes/{income_id}", status_code=204)
def api_delete_one_time_income(income_id: int, db: Session = Depends(get_db)):
    try:
        IncomeService(db).delete_one_time(income_id)
    except ValueError as exc:
        raise _http_error(exc) from exc


@app.get("/api/investments")
def api_investments(db: Session = Depends(get_db)):
    service = InvestmentService(db)
    return [investment_json(i, service.latest_value(i.id)) for i in service.list_all()]


@app.post("/api/investments", status_code=201)
def api_create_investment(payload: InvestmentIn, db: Session = Depends(get_db)):
    investment = InvestmentService(db).create(payload)
    return investment_json(investment, None)


@app.get("/api/investments/totals")
def api_investment_totals(db: Session = Depends(get_db)):
    totals = InvestmentService(db).totals_by_type()
    return {
        "by_type": {kind.value: cents for kind, cents in totals.items()},
        "total_cents": sum(totals.values()),
    }


@app.get("/api/investments/{investment_id}")
def api_investment_detail(
    investment_id: int,
    year: Optional[int] = None,
    month: Optional[int] = None,
    db: Session = Depends(get_db),
):
    period = period_from_query(year, month)
    service = InvestmentService(db)
    try:
        investment = service.get(investment_id)
        body = investment_json(investment, service.latest_value(investment_id))
        body["values"] = [
            {"id": v.id, "as_of": v.as_of.isoformat(), "value_cents": v.value_cents}
            for v in service.list_values(investment_id)
        ]
        body["contributions"] = [
            {"id": c.id, "date": c.date.isoformat(), "amount_cents": c.amount_cents}
            for c in service.list_contributions(investment_id)
        ]
        body["schedules"] = [
            schedule_json(s) for s in service.list_schedules(investment_id)
        ]
        body["contribution_for_month_cents"] = service.contribution_for_month(
            investment_id, period.year, period.month
        )
    except ValueError as exc:
        raise _http_error(exc) from exc
    return body


@app.put("/api/investments/{investment_id}")
def api_update_investment(
    investment_id: int, payload: InvestmentIn, db: Session = Depends(get_db)
):
    service = InvestmentService(db)
    try:
        investment = service.update(investment_id, payload)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return investment_json(investment, service.latest_value(investment_id))


@app.delete("/api/investments/{investment_id}", status_code=204)
def api_delete_investment(investment_id: int, db: Session = Depends(get_db)):
    try:
        InvestmentService(db).delete(investment_id)
    except ValueError as exc:
        raise _http_error(exc) from exc


@app.post("/api/investments/{investment_id}/values", status_code=201)
def api_add_investment_value(
    investment_id: int, payload: InvestmentValueIn, db: Session = Depends(get_db)
):
    try:
        value = InvestmentService(db).add_value(investment_id, payload)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return {"id": value.id, "as_of": value.as_of.isoformat(), "value_cents": value.value_cents}


@app.delete("/api/investments/{investment_id}/values/{value_id}", status_code=204)
def api_delete_investment_value(
    investment_id: int, value_id: int, db: Session = Depends(get_db)
):
    try:
        InvestmentService(db).delete_value(investment_id, value_id)
    except ValueError as exc:
        raise _http_error(exc) from exc


@app.post("/api/investments/{investment_id}/contributions", status_code=201)
def api_add_contribution(
    investment_id: int, payload: OneTimeContributionIn, db: Session = Depends(get_db)
):
    try:
        contribution: OneTimeContribution = InvestmentService(db).add_contribution(
            investment_id, payload
        )
    except ValueError as exc:
        raise _http_error(exc) from exc
    return {
        "id": contribution.id,
        "date": contribution.date.isoformat(),
        "amount_cents": contribution.amount_cents,
    }


@app.delete(
    "/api/investments/{investment_id}/contributions/{contribution_id}",
    status_code=204,
)
def api_delete_contribution(
    investment_id: int, contribution_id: int, db: Session = Depends(get_db)
):
    try:
        InvestmentService(db).delete_contribution(investment_id, contribution_id)
    except ValueError as exc:
        raise _http_error(exc) from exc


@app.post("/api/investments/{investment_id}/schedules", status_code=201)
def api_add_contribution_schedule(
    investment_id: int, payload: ScheduleIn, db: Session = Depends(get_db)
):
    try:
        schedule = InvestmentService(db).add_schedule(investment_id, payload)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return schedule_json(schedule)


@app.delete(
    "/api/investments/{investment_id}/schedules/{schedule_id}", status_code=204
)
def api_delete_contribution_schedule(
    investment_id: int, schedule_id: int, db: Session = Depends(get_db)
):
    try:
        InvestmentService(db).delete_schedule(investment_id, schedule_id)
    except ValueError as exc:
        raise _http_error(exc) from exc


def main():
    import uvicorn

    uvicorn.run("main:app", host="127.0.0.1", port=8000, reload=False)


if __name__ == "__main__":
    main()
