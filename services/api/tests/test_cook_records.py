import asyncio
import pytest
from datetime import timedelta

from sqlalchemy import select, func

from app.core.clock import utcnow
from app.infra.redis_cache import session_state_key, today_count_key
from app.models import CookRecord, CookSession, CookSessionStep, DishDailyStat
from app.repositories.cook_records import CookRecordRepository
from app.repositories.cook_sessions import CookSessionRepository
from app.services.cook_records import CookRecordService
from app.services.cook_sessions import CookSessionService
from app.services.errors import EntityNotFoundError


async def start_session(session_factory, redis, dish_id, user_id=None):
    async with session_factory() as db:
        service = CookSessionService(CookSessionRepository(db), redis)
        started = await service.start_session(dish_id, user_id)
    return started.session_id


async def complete(session_factory, redis, session_id, result="SUCCESS", **kwargs):
    async with session_factory() as db:
        service = CookRecordService(CookRecordRepository(db), redis)
        return await service.complete_session(session_id, result, **kwargs)


def record_count(db_session, session_id):
    return db_session.scalar(
        select(func.count(CookRecord.id)).where(CookRecord.session_id == session_id)
    )


@pytest.mark.asyncio
async def test_complete_session_creates_record(session_factory, fake_redis, dish, user, db_session):
    session_id = await start_session(session_factory, fake_redis, dish.id, user.id)

    resp = await complete(session_factory, fake_redis, session_id, rating=5, note="Tasty")
    assert resp.session_id == session_id
    assert resp.result == "SUCCESS"
    assert resp.today_cook_count == 1

    session = db_session.get(CookSession, session_id)
    assert session.status == "COMPLETED"
    assert session.finished_at is not None

    record = db_session.get(CookRecord, resp.record_id)
    assert record.user_id == user.id
    assert record.dish_id == dish.id
    assert record.rating == 5
    assert record.note == "Tasty"

    assert await fake_redis.exists(session_state_key(session_id)) == 0
    key = today_count_key(dish.id)
    assert await fake_redis.get(key) == "1"
    assert 0 < await fake_redis.ttl(key) <= 3 * 24 * 60 * 60


@pytest.mark.asyncio
async def test_failed_result_abandons_session(session_factory, fake_redis, dish, db_session):
    session_id = await start_session(session_factory, fake_redis, dish.id)

    resp = await complete(session_factory, fake_redis, session_id, result="FAILED")
    assert resp.result == "FAILED"

    assert db_session.get(CookSession, session_id).status == "ABANDONED"
    stat = db_session.scalar(select(DishDailyStat).where(DishDailyStat.dish_id == dish.id))
    assert stat.failed_count == 1
    assert stat.success_count == 0


@pytest.mark.asyncio
async def test_completion_totals_step_elapsed(session_factory, fake_redis, dish, db_session):
    session_id = await start_session(session_factory, fake_redis, dish.id)
    steps = db_session.scalars(
        select(CookSessionStep).where(CookSessionStep.session_id == session_id)
    ).all()
    for step, seconds in zip(steps, (40, 25)):
        step.elapsed_seconds = seconds
    db_session.commit()

    await complete(session_factory, fake_redis, session_id)

    db_session.expire_all()
    assert db_session.get(CookSession, session_id).total_elapsed_seconds == 65


@pytest.mark.asyncio
async def test_complete_unknown_session(session_factory, fake_redis):
    with pytest.raises(EntityNotFoundError):
        await complete(session_factory, fake_redis, 4242)


@pytest.mark.asyncio
async def test_complete_with_unknown_user(session_factory, fake_redis, dish, db_session):
    session_id = await start_session(session_factory, fake_redis, dish.id)

    with pytest.raises(EntityNotFoundError):
        await complete(session_factory, fake_redis, session_id, user_id=9999)

    assert record_count(db_session, session_id) == 0
    assert db_session.get(CookSession, session_id).status == "IN_PROGRESS"
    assert await fake_redis.exists(today_count_key(dish.id)) == 0

    resp = await complete(session_factory, fake_redis, session_id)
    assert resp.today_cook_count == 1

    # A retry naming a bogus user still gets the committed record back
    again = await complete(session_factory, fake_redis, session_id, user_id=9999)
    assert again.record_id == resp.record_id


@pytest.mark.asyncio
async def test_sequential_recompletion_is_idempotent(session_factory, fake_redis, dish, db_session):
    session_id = await start_session(session_factory, fake_redis, dish.id)

    first = await complete(session_factory, fake_redis, session_id, rating=4)
    second = await complete(session_factory, fake_redis, session_id, result="FAILED", rating=1)

    assert second.record_id == first.record_id
    assert second.result == "SUCCESS"
    assert second.today_cook_count == first.today_cook_count == 1
    assert record_count(db_session, session_id) == 1
    assert await fake_redis.get(today_count_key(dish.id)) == "1"
    assert db_session.get(CookSession, session_id).status == "COMPLETED"


@pytest.mark.asyncio
async def test_concurrent_duplicate_completion(session_factory, fake_redis, dish, db_session):
    session_id = await start_session(session_factory, fake_redis, dish.id)

    results = await asyncio.gather(*(
        complete(session_factory, fake_redis, session_id) for _ in range(4)
    ))

    assert len({r.record_id for r in results}) == 1
    assert record_count(db_session, session_id) == 1
    assert await fake_redis.get(today_count_key(dish.id)) == "1"


@pytest.mark.asyncio
async def test_concurrent_first_completions_do_not_lose_updates(session_factory, fake_redis, dish, db_session):
    session_ids = [await start_session(session_factory, fake_redis, dish.id) for _ in range(5)]

    results = await asyncio.gather(*(
        complete(session_factory, fake_redis, sid) for sid in session_ids
    ))

    assert sorted(r.today_cook_count for r in results) == [1, 2, 3, 4, 5]
    assert await fake_redis.get(today_count_key(dish.id)) == "5"
    stat = db_session.scalar(select(DishDailyStat).where(DishDailyStat.dish_id == dish.id))
    assert stat.success_count == 5

    again = await complete(session_factory, fake_redis, session_ids[0])
    assert again.today_cook_count == 5
    assert await fake_redis.get(today_count_key(dish.id)) == "5"


@pytest.mark.asyncio
async def test_recompletion_reads_database_when_counter_missing(session_factory, fake_redis, dish):
    session_id = await start_session(session_factory, fake_redis, dish.id)
    await complete(session_factory, fake_redis, session_id)
    await fake_redis.delete(today_count_key(dish.id))

    again = await complete(session_factory, fake_redis, session_id)
    assert again.today_cook_count == 1
    assert await fake_redis.exists(today_count_key(dish.id)) == 0


@pytest.mark.asyncio
async def test_counter_keeps_existing_ttl(session_factory, fake_redis, dish):
    key = today_count_key(dish.id)
    await fake_redis.set(key, "7", ex=100)

    session_id = await start_session(session_factory, fake_redis, dish.id)
    resp = await complete(session_factory, fake_redis, session_id)

    assert resp.today_cook_count == 8
    assert await fake_redis.ttl(key) <= 100


@pytest.mark.asyncio
async def test_list_user_records_paginates_newest_first(session_factory, fake_redis, make_dish, user, db_session):
    dishes = [make_dish(name=f"Dish {i}") for i in range(3)]
    record_ids = []
    for d in dishes:
        sid = await start_session(session_factory, fake_redis, d.id, user.id)
        record_ids.append((await complete(session_factory, fake_redis, sid, rating=3)).record_id)

    # Spread the cook times so ordering is unambiguous
    base = utcnow() - timedelta(hours=1)
    for offset, record_id in enumerate(record_ids):
        db_session.get(CookRecord, record_id).cooked_at = base + timedelta(minutes=offset)
    db_session.commit()

    async with session_factory() as db:
        service = CookRecordService(CookRecordRepository(db), fake_redis)
        page_one = await service.list_user_records(user.id, page=1, page_size=2)
        page_two = await service.list_user_records(user.id, page=2, page_size=2)

    assert page_one.total == 3
    assert [i.record_id for i in page_one.items] == [record_ids[2], record_ids[1]]
    assert page_one.items[0].dish_name == "Dish 2"
    assert [i.record_id for i in page_two.items] == [record_ids[0]]
    assert page_two.page == 2
    assert page_two.page_size == 2


@pytest.mark.asyncio
async def test_list_records_unknown_user(record_service):
    with pytest.raises(EntityNotFoundError):
        await record_service.list_user_records(999, page=1, page_size=20)


@pytest.mark.asyncio
async def test_list_records_empty_history(record_service, user):
    resp = await record_service.list_user_records(user.id, page=1, page_size=20)
    assert resp.total == 0
    assert resp.items == []
