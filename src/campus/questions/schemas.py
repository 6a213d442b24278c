"""Q&A board schemas."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from campus.users.schemas import UserSummary


class PostQuestionRequest(BaseModel):
    title: str = Field(..., min_length=5, max_length=140)
    body: str = Field(..., min_length=10, max_length=4000)
    tags: list[str] = Field(default_factory=list)


class QuestionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    body: str
    tags: list[str] = Field(default_factory=list)
    created_by: int
    created_at: datetime

    @field_validator("tags", mode="before")
    @classmethod
    def none_as_empty(cls, v: list[str] | None) -> list[str]:
        return v or []


class QuestionListItem(QuestionResponse):
    answer_count: int
    creator: UserSummary


class QuestionListResponse(BaseModel):
    questions: list[QuestionListItem]


class PostAnswerRequest(BaseModel):
    body: str = Field(..., min_length=2, max_length=4000)


class AnswerResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    question_id: int
    body: str
    created_by: int
    created_at: datetime


class AnswerListItem(AnswerResponse):
    creator: UserSummary


class AnswerListResponse(BaseModel):
    question_id: int
    answers: list[AnswerListItem]
