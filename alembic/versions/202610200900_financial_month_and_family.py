"""financial month schedule and family members

Revision ID: 202610200900
Revises: 202610190900
Create Date: 2026-10-20 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202610200900"
down_revision = "202610190900"
branch_labels = None
depends_on = None

EXPENSE_TYPE = sa.Enum("family", "individual", name="expensetype")
SCHEDULE_TYPE = sa.Enum("calendar", "custom", name="scheduletype")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def upgrade():
    op.create_table(
        "family_members",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("relationship", sa.String(length=50)),
        sa.Column(
            "is_active", sa.Boolean(), nullable=False, server_default=sa.true()
        ),
        *_timestamps(),
    )

    with op.batch_alter_table("regular_expenses") as batch_op:
        batch_op.add_column(
            sa.Column(
                "expense_type", EXPENSE_TYPE, nullable=False, server_default="family"
            )
        )
        batch_op.add_column(sa.Column("family_member_id", sa.Integer()))
        batch_op.create_foreign_key(
            "fk_regular_expense_family_member",
            "family_members",
            ["family_member_id"],
            ["id"],
            ondelete="SET NULL",
        )

    op.create_table(
        "financial_schedule_config",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("schedule_type", SCHEDULE_TYPE, nullable=False),
        sa.Column("start_day", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint(
            "start_day BETWEEN 1 AND 31", name="ck_financial_start_day"
        ),
    )

    op.create_table(
        "financial_month_overrides",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("month", sa.Integer(), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("year", "month", name="uq_financial_month_override"),
    )


def downgrade():
    op.drop_table("financial_month_overrides")
    op.drop_table("financial_schedule_config")
    with op.batch_alter_table("regular_expenses") as batch_op:
        batch_op.drop_constraint("fk_regular_expense_family_member", type_="foreignkey")
        batch_op.drop_column("family_member_id")
        batch_op.drop_column("expense_type")
    op.drop_table("family_members")
