"""Cook record API router.

Endpoints:
- POST /cook-sessions/{id}/complete - Record the outcome of a session (idempotent)
- GET /users/{user_id}/cook-records - Paginated cooking history
"""

from fastapi import APIRouter, Depends, HTTPException, Path, Query

from ..deps import get_cook_record_service
from ..schemas import CookCompleteRequest, CookCompleteResponse, UserCookRecordListResponse
from ..services.cook_records import CookRecordService
from ..services.errors import EntityNotFoundError

router = APIRouter(tags=["cook-records"])


@router.post("/cook-sessions/{session_id}/complete", response_model=CookCompleteResponse)
async def complete_session(
    payload: CookCompleteRequest,
    session_id: int = Path(..., gt=0),
    service: CookRecordService = Depends(get_cook_record_service),
):
    """Finish a session with SUCCESS or FAILED.

    Safe to repeat: a session that already has a record returns that record
    and does not count towards today's total again.
    """
    try:
        return await service.complete_session(
            session_id,
            payload.result,
            user_id=payload.user_id,
            rating=payload.rating,
            note=payload.note,
        )
    except EntityNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/users/{user_id}/cook-records", response_model=UserCookRecordListResponse)
async def list_user_cook_records(
    user_id: int = Path(..., gt=0),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    service: CookRecordService = Depends(get_cook_record_service),
):
    try:
        return await service.list_user_records(user_id, page, page_size)
    except EntityNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
