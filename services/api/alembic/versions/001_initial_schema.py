"""Initial schema: dishes, steps, cook sessions, cook records, daily stats

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Users table
    op.create_table(
        "users",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("nickname", sa.String(80), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # Dish catalog
    op.create_table(
        "dishes",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "dish_steps",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("dish_id", sa.Integer, sa.ForeignKey("dishes.id", ondelete="CASCADE"), nullable=False),
        sa.Column("step_no", sa.Integer, nullable=False),
        sa.Column("description", sa.Text, nullable=False, server_default=""),
        sa.Column("timer_seconds", sa.Integer, nullable=False, server_default="0"),
        sa.UniqueConstraint("dish_id", "step_no", name="uq_dish_steps_dish_step_no"),
    )

    # Cook sessions
    op.create_table(
        "cook_sessions",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("user_id", sa.Integer, sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("dish_id", sa.Integer, sa.ForeignKey("dishes.id"), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="IN_PROGRESS"),
        sa.Column("current_step_no", sa.Integer, nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("total_elapsed_seconds", sa.Integer, nullable=False, server_default="0"),
    )
    op.create_index("ix_cook_sessions_dish_status", "cook_sessions", ["dish_id", "status"])
    op.create_index("ix_cook_sessions_user_started", "cook_sessions", ["user_id", "started_at"])

    op.create_table(
        "cook_session_steps",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("session_id", sa.Integer, sa.ForeignKey("cook_sessions.id", ondelete="CASCADE"), nullable=False),
        sa.Column("dish_step_id", sa.Integer, sa.ForeignKey("dish_steps.id", ondelete="SET NULL"), nullable=True),
        sa.Column("step_no", sa.Integer, nullable=False),
        sa.Column("timer_seconds_snapshot", sa.Integer, nullable=False, server_default="0"),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("elapsed_seconds", sa.Integer, nullable=True),
        sa.Column("reminder_fired", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.UniqueConstraint("session_id", "step_no", name="uq_cook_session_steps_session_step_no"),
    )

    # One record per session; the unique key backs idempotent completion
    op.create_table(
        "cook_records",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("session_id", sa.Integer, sa.ForeignKey("cook_sessions.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.Integer, sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("dish_id", sa.Integer, sa.ForeignKey("dishes.id"), nullable=False),
        sa.Column("result", sa.String(20), nullable=False),
        sa.Column("rating", sa.Integer, nullable=True),
        sa.Column("note", sa.Text, nullable=True),
        sa.Column("cooked_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("session_id", name="uq_cook_records_session_id"),
        sa.CheckConstraint("rating IS NULL OR (rating >= 1 AND rating <= 5)", name="ck_cook_records_rating"),
    )
    op.create_index("ix_cook_records_user_cooked", "cook_records", ["user_id", "cooked_at"])

    op.create_table(
        "dish_daily_stats",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("dish_id", sa.Integer, sa.ForeignKey("dishes.id", ondelete="CASCADE"), nullable=False),
        sa.Column("stat_date", sa.Date, nullable=False),
        sa.Column("success_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("failed_count", sa.Integer, nullable=False, server_default="0"),
        sa.UniqueConstraint("dish_id", "stat_date", name="uq_dish_daily_stats_dish_date"),
    )


def downgrade() -> None:
    op.drop_table("dish_daily_stats")
    op.drop_index("ix_cook_records_user_cooked", table_name="cook_records")
    op.drop_table("cook_records")
    op.drop_table("cook_session_steps")
    op.drop_index("ix_cook_sessions_user_started", table_name="cook_sessions")
    op.drop_index("ix_cook_sessions_dish_status", table_name="cook_sessions")
    op.drop_table("cook_sessions")
    op.drop_table("dish_steps")
    op.drop_table("dishes")
    op.drop_table("users")
