"""Study-a-thon schemas."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from campus.users.schemas import UserSummary


class CreateStudyathonRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=120)
    description: str | None = Field(None, max_length=4000)
    location: str | None = Field(None, max_length=120)
    starts_at: datetime
    ends_at: datetime | None = None


class StudyathonResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    description: str | None = None
    location: str | None = None
    starts_at: datetime
    ends_at: datetime | None = None
    created_by: int
    conversation_id: int
    created_at: datetime


class JoinResponse(BaseModel):
    status: str = "joined"
    conversation_id: int
    participant_count: int


class LiveStudyathonItem(StudyathonResponse):
    participant_count: int
    creator: UserSummary


class LiveStudyathonsResponse(BaseModel):
    studyathons: list[LiveStudyathonItem]
