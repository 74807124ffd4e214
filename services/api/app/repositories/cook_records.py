"""Relational access for cook records: idempotent completion and history."""

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

from sqlalchemy import select, update, func
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import utcnow
from ..models import (
    CookSession,
    CookRecord,
    Dish,
    DishDailyStat,
    SUCCESS,
    COMPLETED,
    ABANDONED,
)
from ..services.errors import EntityNotFoundError
from .cook_sessions import total_elapsed_subquery, user_exists

logger = logging.getLogger("chefascend.cook_records")


@dataclass(frozen=True)
class CompletionOutcome:
    session_id: int
    record_id: int
    dish_id: int
    result: str
    is_new_record: bool


@dataclass(frozen=True)
class UserRecordRow:
    record_id: int
    dish_id: int
    dish_name: str
    result: str
    rating: Optional[int]
    cooked_at: datetime


def session_status_for_result(result: str) -> str:
    # FAILED shares the ABANDONED terminal status with walked-away sessions.
    return COMPLETED if result == SUCCESS else ABANDONED


class CookRecordRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def complete_session(
        self,
        session_id: int,
        result: str,
        user_id: Optional[int] = None,
        rating: Optional[int] = None,
        note: Optional[str] = None,
    ) -> Optional[CompletionOutcome]:
        """Commit the session's outcome exactly once.

        The session row is locked first so that concurrent attempts for the
        same session queue up behind each other; whoever runs second finds the
        record and gets it back unchanged. Returns None if the session is gone;
        raises EntityNotFoundError when a new record names an unknown user.
        """
        try:
            session = await self._lock_session(session_id)
            if session is None:
                await self.db.rollback()
                return None

            existing = await self._find_record(session_id)
            if existing is not None:
                await self.db.commit()
                return self._outcome(existing, is_new_record=False)

            if user_id is not None and not await user_exists(self.db, user_id):
                raise EntityNotFoundError("User not found")

            now = utcnow()
            await self.db.execute(
                update(CookSession)
                .where(CookSession.id == session_id)
                .values(
                    status=session_status_for_result(result),
                    finished_at=func.coalesce(CookSession.finished_at, now),
                    total_elapsed_seconds=total_elapsed_subquery(session_id),
                )
                .execution_options(synchronize_session=False)
            )

            record = CookRecord(
                session_id=session_id,
                user_id=user_id if user_id is not None else session.user_id,
                dish_id=session.dish_id,
                result=result,
                rating=rating,
                note=note,
                cooked_at=now,
            )
            self.db.add(record)
            await self.db.flush()

            await self._bump_daily_stat(session.dish_id, now.date(), result)
            await self.db.commit()
        except IntegrityError:
            # Only reachable where the row lock is not honoured.
            await self.db.rollback()
            existing = await self._find_record(session_id)
            if existing is None:
                raise
            await self.db.commit()
            logger.info(f"Session {session_id} was completed concurrently; returning record {existing.id}")
            return self._outcome(existing, is_new_record=False)
        except Exception:
            await self.db.rollback()
            raise

        logger.info(f"Committed cook record {record.id} for session {session_id} ({result})")
        return self._outcome(record, is_new_record=True)

    async def get_today_cook_count(self, dish_id: int, today: Optional[date] = None) -> int:
        today = today or utcnow().date()
        row = (await self.db.execute(
            select(DishDailyStat.success_count, DishDailyStat.failed_count)
            .where(DishDailyStat.dish_id == dish_id, DishDailyStat.stat_date == today)
            .limit(1)
        )).first()
        if row is None:
            return 0
        return (row.success_count or 0) + (row.failed_count or 0)

    async def user_exists(self, user_id: int) -> bool:
        return await user_exists(self.db, user_id)

    async def count_user_records(self, user_id: int) -> int:
        total = await self.db.scalar(
            select(func.count(CookRecord.id)).where(CookRecord.user_id == user_id)
        )
        return total or 0

    async def list_user_records(self, user_id: int, page: int, page_size: int) -> list[UserRecordRow]:
        offset = (page - 1) * page_size
        rows = (await self.db.execute(
            select(
                CookRecord.id,
                CookRecord.dish_id,
                Dish.name,
                CookRecord.result,
                CookRecord.rating,
                CookRecord.cooked_at,
            )
            .join(Dish, Dish.id == CookRecord.dish_id)
            .where(CookRecord.user_id == user_id)
            .order_by(CookRecord.cooked_at.desc(), CookRecord.id.desc())
            .limit(page_size)
            .offset(offset)
        )).all()
        return [
            UserRecordRow(
                record_id=row.id,
                dish_id=row.dish_id,
                dish_name=row.name,
                result=row.result,
                rating=row.rating,
                cooked_at=row.cooked_at,
            )
            for row in rows
        ]

    async def _lock_session(self, session_id: int) -> Optional[CookSession]:
        return (await self.db.execute(
            select(CookSession)
            .where(CookSession.id == session_id)
            .with_for_update()
        )).scalar_one_or_none()

    async def _find_record(self, session_id: int) -> Optional[CookRecord]:
        return await self.db.scalar(
            select(CookRecord).where(CookRecord.session_id == session_id).limit(1)
        )

    async def _bump_daily_stat(self, dish_id: int, stat_date: date, result: str) -> None:
        """Upsert today's counts; concurrent first completions of a dish race on the insert."""
        column = "success_count" if result == SUCCESS else "failed_count"
        dialect = self.db.get_bind().dialect.name
        insert = postgresql.insert if dialect == "postgresql" else sqlite.insert

        stmt = insert(DishDailyStat).values(
            dish_id=dish_id,
            stat_date=stat_date,
            success_count=1 if result == SUCCESS else 0,
            failed_count=0 if result == SUCCESS else 1,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[DishDailyStat.dish_id, DishDailyStat.stat_date],
            set_={column: getattr(DishDailyStat, column) + 1},
        )
        await self.db.execute(stmt)

    @staticmethod
    def _outcome(record: CookRecord, *, is_new_record: bool) -> CompletionOutcome:
        return CompletionOutcome(
            session_id=record.session_id,
            record_id=record.id,
            dish_id=record.dish_id,
            result=record.result,
            is_new_record=is_new_record,
        )
