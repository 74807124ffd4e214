"""SQLAlchemy ORM models for the Chef Ascend API.

Tables:
- users: cooks whose history can be listed (identity lives elsewhere)
- dishes / dish_steps: recipe catalog, read-only from the cook core
- cook_sessions: one cooking attempt, authoritative session state
- cook_session_steps: per-session snapshot of every dish step and its timer
- cook_records: terminal outcome of a session, at most one per session
- dish_daily_stats: per-dish, per-UTC-day outcome counts
"""

from __future__ import annotations

from datetime import datetime, date
from typing import Optional

from sqlalchemy import (
    String,
    DateTime,
    Date,
    Text,
    Integer,
    Boolean,
    ForeignKey,
    Index,
    UniqueConstraint,
    CheckConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func, false

from .db import Base


# Session status
IN_PROGRESS = "IN_PROGRESS"
COMPLETED = "COMPLETED"
ABANDONED = "ABANDONED"

# Record result
SUCCESS = "SUCCESS"
FAILED = "FAILED"


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    nickname: Mapped[str] = mapped_column(String(80), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class Dish(Base):
    """Catalog dish. Managed by the admin tooling."""
    __tablename__ = "dishes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    steps: Mapped[list["DishStep"]] = relationship(
        "DishStep", back_populates="dish", cascade="all, delete-orphan",
        order_by="DishStep.step_no"
    )


class DishStep(Base):
    """Recipe step definition; copied into a session when cooking starts."""
    __tablename__ = "dish_steps"
    __table_args__ = (
        UniqueConstraint("dish_id", "step_no", name="uq_dish_steps_dish_step_no"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    dish_id: Mapped[int] = mapped_column(
        ForeignKey("dishes.id", ondelete="CASCADE"), nullable=False
    )
    step_no: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    timer_seconds: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    dish: Mapped["Dish"] = relationship("Dish", back_populates="steps")


class CookSession(Base):
    """Cooking session. Source of truth for status and the current step."""
    __tablename__ = "cook_sessions"
    __table_args__ = (
        Index("ix_cook_sessions_dish_status", "dish_id", "status"),
        Index("ix_cook_sessions_user_started", "user_id", "started_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    dish_id: Mapped[int] = mapped_column(ForeignKey("dishes.id"), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=IN_PROGRESS)
    current_step_no: Mapped[int] = mapped_column(Integer, nullable=False)
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    finished_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    total_elapsed_seconds: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default="0"
    )

    steps: Mapped[list["CookSessionStep"]] = relationship(
        "CookSessionStep", back_populates="session", cascade="all, delete-orphan",
        order_by="CookSessionStep.step_no"
    )


class CookSessionStep(Base):
    """Snapshot of one dish step, scoped to a session."""
    __tablename__ = "cook_session_steps"
    __table_args__ = (
        UniqueConstraint("session_id", "step_no", name="uq_cook_session_steps_session_step_no"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    session_id: Mapped[int] = mapped_column(
        ForeignKey("cook_sessions.id", ondelete="CASCADE"), nullable=False
    )
    dish_step_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("dish_steps.id", ondelete="SET NULL"), nullable=True
    )
    step_no: Mapped[int] = mapped_column(Integer, nullable=False)
    timer_seconds_snapshot: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    finished_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    elapsed_seconds: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    reminder_fired: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )

    session: Mapped["CookSession"] = relationship("CookSession", back_populates="steps")


class CookRecord(Base):
    """Terminal outcome of a cook session. Never updated once written."""
    __tablename__ = "cook_records"
    __table_args__ = (
        UniqueConstraint("session_id", name="uq_cook_records_session_id"),
        CheckConstraint("rating IS NULL OR (rating >= 1 AND rating <= 5)", name="ck_cook_records_rating"),
        Index("ix_cook_records_user_cooked", "user_id", "cooked_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    session_id: Mapped[int] = mapped_column(
        ForeignKey("cook_sessions.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    dish_id: Mapped[int] = mapped_column(ForeignKey("dishes.id"), nullable=False)
    result: Mapped[str] = mapped_column(String(20), nullable=False)
    rating: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    cooked_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    dish: Mapped["Dish"] = relationship()


class DishDailyStat(Base):
    """Outcome counts per dish and UTC day, kept in step with cook_records."""
    __tablename__ = "dish_daily_stats"
    __table_args__ = (
        UniqueConstraint("dish_id", "stat_date", name="uq_dish_daily_stats_dish_date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    dish_id: Mapped[int] = mapped_column(
        ForeignKey("dishes.id", ondelete="CASCADE"), nullable=False
    )
    stat_date: Mapped[date] = mapped_column(Date, nullable=False)
    success_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    failed_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
