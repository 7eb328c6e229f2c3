"""initial schema

Revision ID: 202610190900
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202610190900"
down_revision = None
branch_labels = None
depends_on = None

FREQUENCY = sa.Enum(
    "monthly", "quarterly", "semi_annually", "annually", name="frequency"
)
INVESTMENT_TYPE = sa.Enum(
    "stock",
    "etf",
    "bond",
    "fund",
    "savings",
    "pension",
    "crypto",
    "other",
    name="investmenttype",
)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def _month_range() -> list[sa.Column]:
    return [
        sa.Column("start_year", sa.Integer(), nullable=False),
        sa.Column("start_month", sa.Integer(), nullable=False),
        sa.Column("end_year", sa.Integer()),
        sa.Column("end_month", sa.Integer()),
    ]


def upgrade():
    op.create_table(
        "expense_categories",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=100), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("name", name="uq_expense_category_name"),
    )

    op.create_table(
        "category_budgets",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "category_id",
            sa.Integer(),
            sa.ForeignKey("expense_categories.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        *_month_range(),
        *_timestamps(),
        sa.CheckConstraint("amount_cents >= 0", name="ck_category_budget_amount"),
        sa.CheckConstraint(
            "start_month BETWEEN 1 AND 12", name="ck_budget_start_month"
        ),
    )
    op.create_index(
        "ix_category_budget_category_start",
        "category_budgets",
        ["category_id", "start_year", "start_month"],
    )

    op.create_table(
        "regular_expenses",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column(
            "category_id",
            sa.Integer(),
            sa.ForeignKey("expense_categories.id"),
            nullable=False,
        ),
        *_timestamps(),
    )

    op.create_table(
        "expense_schedules",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "regular_expense_id",
            sa.Integer(),
            sa.ForeignKey("regular_expenses.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("frequency", FREQUENCY, nullable=False),
        sa.Column("start_day", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("end_day", sa.Integer()),
        *_month_range(),
        *_timestamps(),
        sa.CheckConstraint("amount_cents > 0", name="ck_expense_schedule_amount"),
    )
    op.create_index(
        "ix_expense_schedule_expense_start",
        "expense_schedules",
        ["regular_expense_id", "start_year", "start_month"],
    )

    op.create_table(
        "investments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("provider", sa.String(length=200)),
        sa.Column("type", INVESTMENT_TYPE, nullable=False),
        *_timestamps(),
    )

    op.create_table(
        "contribution_schedules",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "investment_id",
            sa.Integer(),
            sa.ForeignKey("investments.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("frequency", FREQUENCY, nullable=False),
        sa.Column("start_day", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("end_day", sa.Integer()),
        *_month_range(),
        *_timestamps(),
        sa.CheckConstraint(
            "amount_cents > 0", name="ck_contribution_schedule_amount"
        ),
    )
    op.create_index(
        "ix_contribution_schedule_investment",
        "contribution_schedules",
        ["investment_id"],
    )

    op.create_table(
        "investment_values",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "investment_id",
            sa.Integer(),
            sa.ForeignKey("investments.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("as_of", sa.Date(), nullable=False),
        sa.Column("value_cents", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint("value_cents >= 0", name="ck_investment_value_positive"),
    )
    op.create_index(
        "ix_investment_value_investment_as_of",
        "investment_values",
        ["investment_id", "as_of"],
    )

    op.create_table(
        "one_time_contributions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "investment_id",
            sa.Integer(),
            sa.ForeignKey("investments.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint(
            "amount_cents > 0", name="ck_one_time_contribution_amount"
        ),
    )

    op.create_table(
        "income_sources",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column(
            "expected_amount_cents", sa.Integer(), nullable=False, server_default="0"
        ),
        *_timestamps(),
        sa.CheckConstraint(
            "expected_amount_cents >= 0", name="ck_income_source_expected_amount"
        ),
    )

    op.create_table(
        "monthly_incomes",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "income_source_id",
            sa.Integer(),
            sa.ForeignKey("income_sources.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("month", sa.Integer(), nullable=False),
        sa.Column("actual_amount_cents", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint(
            "income_source_id", "year", "month", name="uq_monthly_income_source_month"
        ),
    )
    op.create_index("ix_monthly_income_month", "monthly_incomes", ["year", "month"])

    op.create_table(
        "one_time_incomes",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column(
            "income_source_id",
            sa.Integer(),
            sa.ForeignKey("income_sources.id", ondelete="SET NULL"),
        ),
        *_timestamps(),
        sa.CheckConstraint("amount_cents > 0", name="ck_one_time_income_amount"),
    )
    op.create_index("ix_one_time_income_date", "one_time_incomes", ["date"])

    op.create_table(
        "irregular_expenses",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column(
            "category_id",
            sa.Integer(),
            sa.ForeignKey("expense_categories.id", ondelete="SET NULL"),
        ),
        *_timestamps(),
        sa.CheckConstraint("amount_cents > 0", name="ck_irregular_expense_amount"),
    )
    op.create_index("ix_irregular_expense_date", "irregular_expenses", ["date"])


def downgrade():
    op.drop_index("ix_irregular_expense_date", table_name="irregular_expenses")
    op.drop_table("irregular_expenses")
    op.drop_index("ix_one_time_income_date", table_name="one_time_incomes")
    op.drop_table("one_time_incomes")
    op.drop_index("ix_monthly_income_month", table_name="monthly_incomes")
    op.drop_table("monthly_incomes")
    op.drop_table("income_sources")
    op.drop_table("one_time_contributions")
    op.drop_index(
        "ix_investment_value_investment_as_of", table_name="investment_values"
    )
    op.drop_table("investment_values")
    op.drop_index(
        "ix_contribution_schedule_investment", table_name="contribution_schedules"
    )
    op.drop_table("contribution_schedules")
    op.drop_table("investments")
    op.drop_index("ix_expense_schedule_expense_start", table_name="expense_schedules")
    op.drop_table("expense_schedules")
    op.drop_table("regular_expenses")
    op.drop_index("ix_category_budget_category_start", table_name="category_budgets")
    op.drop_table("category_budgets")
    op.drop_table("expense_categories")
