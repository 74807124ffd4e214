"""Cook session API router.

Endpoints:
- POST /cook-sessions - Start a session for a dish
- GET /cook-sessions/{id} - Session status and timer snapshot
- POST /cook-sessions/{id}/steps/{n}/start|complete - Step progression
- POST /cook-sessions/{id}/timer/pause|resume|reset - Timer control
"""

from fastapi import APIRouter, Depends, HTTPException, Path

from ..deps import get_cook_session_service
from ..schemas import SessionStartRequest, SessionStartResponse, SessionStateResponse, StepActionResponse
from ..services.cook_sessions import CookSessionService
from ..services.errors import EntityNotFoundError, SessionConflictError

router = APIRouter(prefix="/cook-sessions", tags=["cook-sessions"])


def _to_http(e: Exception) -> HTTPException:
    if isinstance(e, EntityNotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    return HTTPException(status_code=409, detail=str(e))


@router.post("", response_model=SessionStartResponse, status_code=201)
async def start_session(
    body: SessionStartRequest,
    service: CookSessionService = Depends(get_cook_session_service),
):
    """Start cooking a dish. The timer starts paused at the first step."""
    try:
        return await service.start_session(body.dish_id, body.user_id)
    except (EntityNotFoundError, SessionConflictError) as e:
        raise _to_http(e)


@router.get("/{session_id}", response_model=SessionStateResponse)
async def get_session_state(
    session_id: int = Path(..., gt=0),
    service: CookSessionService = Depends(get_cook_session_service),
):
    try:
        return await service.get_state(session_id)
    except EntityNotFoundError as e:
        raise _to_http(e)


@router.post("/{session_id}/steps/{step_no}/start", response_model=StepActionResponse)
async def start_step(
    session_id: int = Path(..., gt=0),
    step_no: int = Path(..., gt=0),
    service: CookSessionService = Depends(get_cook_session_service),
):
    try:
        return await service.start_step(session_id, step_no)
    except (EntityNotFoundError, SessionConflictError) as e:
        raise _to_http(e)


@router.post("/{session_id}/steps/{step_no}/complete", response_model=StepActionResponse)
async def complete_step(
    session_id: int = Path(..., gt=0),
    step_no: int = Path(..., gt=0),
    service: CookSessionService = Depends(get_cook_session_service),
):
    """Finish the current step. On the last step the session stays put with 0 seconds left."""
    try:
        return await service.complete_step(session_id, step_no)
    except (EntityNotFoundError, SessionConflictError) as e:
        raise _to_http(e)


@router.post("/{session_id}/timer/pause", response_model=SessionStateResponse)
async def pause_timer(
    session_id: int = Path(..., gt=0),
    service: CookSessionService = Depends(get_cook_session_service),
):
    try:
        return await service.pause_timer(session_id)
    except (EntityNotFoundError, SessionConflictError) as e:
        raise _to_http(e)


@router.post("/{session_id}/timer/resume", response_model=SessionStateResponse)
async def resume_timer(
    session_id: int = Path(..., gt=0),
    service: CookSessionService = Depends(get_cook_session_service),
):
    try:
        return await service.resume_timer(session_id)
    except (EntityNotFoundError, SessionConflictError) as e:
        raise _to_http(e)


@router.post("/{session_id}/timer/reset", response_model=SessionStateResponse)
async def reset_timer(
    session_id: int = Path(..., gt=0),
    service: CookSessionService = Depends(get_cook_session_service),
):
    """Restart the current step's countdown from its snapshot, running."""
    try:
        return await service.reset_timer(session_id)
    except (EntityNotFoundError, SessionConflictError) as e:
        raise _to_http(e)
