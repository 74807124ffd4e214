"""Relational access for cook sessions and their step snapshots."""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import select, update, func, and_
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import utcnow, elapsed_seconds
from ..models import Dish, DishStep, CookSession, CookSessionStep, User, IN_PROGRESS
from ..services.errors import EntityNotFoundError, SessionConflictError

logger = logging.getLogger("chefascend.cook_sessions")


@dataclass(frozen=True)
class CreatedSession:
    session_id: int
    dish_id: int
    status: str
    current_step_no: int
    started_at: datetime
    first_step_timer_seconds: int


@dataclass(frozen=True)
class SessionRuntime:
    """Session row joined with its current step snapshot."""
    session_id: int
    dish_id: int
    status: str
    current_step_no: int
    current_step_timer_seconds: int


@dataclass(frozen=True)
class StepTimer:
    step_no: int
    timer_seconds: int


@dataclass(frozen=True)
class StepCompletion:
    current_step_no: int
    remaining_seconds: int
    is_last_step: bool


def total_elapsed_subquery(session_id: int):
    """Sum of finished step durations for one session, as a scalar subquery."""
    return (
        select(func.coalesce(func.sum(CookSessionStep.elapsed_seconds), 0))
        .where(
            CookSessionStep.session_id == session_id,
            CookSessionStep.elapsed_seconds.is_not(None),
        )
        .scalar_subquery()
    )


async def user_exists(db: AsyncSession, user_id: int) -> bool:
    found = await db.scalar(select(User.id).where(User.id == user_id).limit(1))
    return found is not None


class CookSessionRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_session(self, dish_id: int, user_id: Optional[int] = None) -> CreatedSession:
        """Create a session at the dish's first step and snapshot every step.

        Raises EntityNotFoundError for a missing or inactive dish or an
        unknown user, and SessionConflictError for a dish without steps.
        """
        try:
            dish = await self._find_active_dish(dish_id)
            if dish is None:
                raise EntityNotFoundError("Dish not found")
            if user_id is not None and not await user_exists(self.db, user_id):
                raise EntityNotFoundError("User not found")

            dish_steps = await self._list_dish_steps(dish_id)
            if not dish_steps:
                raise SessionConflictError("Dish has no steps")

            first = dish_steps[0]
            session = CookSession(
                user_id=user_id,
                dish_id=dish_id,
                status=IN_PROGRESS,
                current_step_no=first.step_no,
                started_at=utcnow(),
                total_elapsed_seconds=0,
            )
            self.db.add(session)
            await self.db.flush()

            self.db.add_all([
                CookSessionStep(
                    session_id=session.id,
                    dish_step_id=step.id,
                    step_no=step.step_no,
                    timer_seconds_snapshot=step.timer_seconds,
                )
                for step in dish_steps
            ])
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(f"Created cook session {session.id} for dish {dish_id} with {len(dish_steps)} steps")
        return CreatedSession(
            session_id=session.id,
            dish_id=session.dish_id,
            status=session.status,
            current_step_no=session.current_step_no,
            started_at=session.started_at,
            first_step_timer_seconds=first.timer_seconds or 0,
        )

    async def find_runtime(self, session_id: int) -> Optional[SessionRuntime]:
        stmt = (
            select(
                CookSession.id,
                CookSession.dish_id,
                CookSession.status,
                CookSession.current_step_no,
                CookSessionStep.timer_seconds_snapshot,
            )
            .outerjoin(
                CookSessionStep,
                and_(
                    CookSessionStep.session_id == CookSession.id,
                    CookSessionStep.step_no == CookSession.current_step_no,
                ),
            )
            .where(CookSession.id == session_id)
            .limit(1)
        )
        row = (await self.db.execute(stmt)).first()
        if row is None:
            return None

        return SessionRuntime(
            session_id=row.id,
            dish_id=row.dish_id,
            status=row.status,
            current_step_no=row.current_step_no,
            current_step_timer_seconds=row.timer_seconds_snapshot or 0,
        )

    async def get_step_timer(self, session_id: int, step_no: int) -> Optional[StepTimer]:
        row = (await self.db.execute(
            select(CookSessionStep.step_no, CookSessionStep.timer_seconds_snapshot)
            .where(
                CookSessionStep.session_id == session_id,
                CookSessionStep.step_no == step_no,
            )
            .limit(1)
        )).first()
        if row is None:
            return None
        return StepTimer(step_no=row.step_no, timer_seconds=row.timer_seconds_snapshot)

    async def get_next_step_timer(self, session_id: int, step_no: int) -> Optional[StepTimer]:
        row = (await self.db.execute(
            select(CookSessionStep.step_no, CookSessionStep.timer_seconds_snapshot)
            .where(
                CookSessionStep.session_id == session_id,
                CookSessionStep.step_no > step_no,
            )
            .order_by(CookSessionStep.step_no.asc())
            .limit(1)
        )).first()
        if row is None:
            return None
        return StepTimer(step_no=row.step_no, timer_seconds=row.timer_seconds_snapshot)

    async def mark_step_started(self, session_id: int, step_no: int) -> bool:
        """Stamp an unfinished step as started now, restarting any earlier run.

        Returns False when the step is missing or already finished; a finished
        step keeps its recorded time.
        """
        try:
            result = await self.db.execute(
                update(CookSessionStep)
                .where(
                    CookSessionStep.session_id == session_id,
                    CookSessionStep.step_no == step_no,
                    CookSessionStep.finished_at.is_(None),
                )
                .values(
                    started_at=utcnow(),
                    reminder_fired=False,
                )
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise
        return (result.rowcount or 0) > 0

    async def complete_step(self, session_id: int, step_no: int) -> Optional[StepCompletion]:
        """Finish a step and move the session to the next one, in one transaction.

        Returns None when the step is missing or already finished. On the last
        step the session stays where it is and the reported remaining time is 0.
        """
        try:
            marked = await self._mark_step_completed(session_id, step_no)
            if not marked:
                await self.db.rollback()
                return None

            next_step = await self.get_next_step_timer(session_id, step_no)
            next_step_no = next_step.step_no if next_step else step_no

            await self.db.execute(
                update(CookSession)
                .where(CookSession.id == session_id)
                .values(
                    current_step_no=next_step_no,
                    total_elapsed_seconds=total_elapsed_subquery(session_id),
                )
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        return StepCompletion(
            current_step_no=next_step_no,
            remaining_seconds=next_step.timer_seconds if next_step else 0,
            is_last_step=next_step is None,
        )

    async def _mark_step_completed(self, session_id: int, step_no: int) -> bool:
        step = (await self.db.execute(
            select(CookSessionStep)
            .where(
                CookSessionStep.session_id == session_id,
                CookSessionStep.step_no == step_no,
            )
            .with_for_update()
        )).scalar_one_or_none()
        if step is None or step.finished_at is not None:
            return False

        now = utcnow()
        step.finished_at = now
        step.elapsed_seconds = elapsed_seconds(step.started_at, now)
        await self.db.flush()
        return True

    async def _find_active_dish(self, dish_id: int) -> Optional[Dish]:
        return await self.db.scalar(
            select(Dish).where(Dish.id == dish_id, Dish.is_active.is_(True))
        )

    async def _list_dish_steps(self, dish_id: int) -> list[DishStep]:
        result = await self.db.scalars(
            select(DishStep)
            .where(DishStep.dish_id == dish_id)
            .order_by(DishStep.step_no.asc())
        )
        return list(result)
