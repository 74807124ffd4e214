"""Pydantic schemas for the Chef Ascend API.

Request/response models for:
- Cook sessions (start, state, step actions, timer)
- Cook records (completion, user history)
"""

from datetime import datetime
from typing import Optional, Literal

from pydantic import BaseModel, Field


SessionStatus = Literal["IN_PROGRESS", "COMPLETED", "ABANDONED"]
CookResult = Literal["SUCCESS", "FAILED"]


# --- Cook Session ---

class SessionStartRequest(BaseModel):
    dish_id: int = Field(..., gt=0)
    user_id: Optional[int] = Field(None, gt=0)


class SessionStartResponse(BaseModel):
    session_id: int
    dish_id: int
    status: SessionStatus
    current_step_no: int
    started_at: datetime


class TimerState(BaseModel):
    remaining_seconds: int
    is_paused: bool


class SessionStateResponse(BaseModel):
    session_id: int
    status: SessionStatus
    current_step_no: int
    timer: TimerState


class StepActionResponse(BaseModel):
    session_id: int
    current_step_no: int
    status: SessionStatus


# --- Cook Record ---

class CookCompleteRequest(BaseModel):
    user_id: Optional[int] = Field(None, gt=0)
    result: CookResult
    rating: Optional[int] = Field(None, ge=1, le=5)
    note: Optional[str] = Field(None, min_length=1, max_length=1000)


class CookCompleteResponse(BaseModel):
    session_id: int
    record_id: int
    result: CookResult
    today_cook_count: int


class UserCookRecordItem(BaseModel):
    record_id: int
    dish_id: int
    dish_name: str
    result: CookResult
    rating: Optional[int] = None
    cooked_at: datetime


class UserCookRecordListResponse(BaseModel):
    page: int
    page_size: int
    total: int
    items: list[UserCookRecordItem] = []
