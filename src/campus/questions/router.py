"""Q&A board endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from campus.auth.dependencies import get_current_user_id
from campus.database import get_session
from campus.questions.schemas import (
    AnswerListItem,
    AnswerListResponse,
    AnswerResponse,
    PostAnswerRequest,
    PostQuestionRequest,
    QuestionListItem,
    QuestionListResponse,
    QuestionResponse,
)
from campus.questions.service import answer_question, list_answers, list_questions, post_question
from campus.users.schemas import UserSummary

router = APIRouter(prefix="/api/v1/questions", tags=["Questions"])


@router.post("", response_model=QuestionResponse, status_code=201)
async def post_question_endpoint(
    body: PostQuestionRequest,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
) -> QuestionResponse:
    question = await post_question(db, user_id, body.title, body.body, body.tags)
    await db.commit()
    return QuestionResponse.model_validate(question)


@router.get("", response_model=QuestionListResponse)
async def list_questions_endpoint(
    limit: int = Query(20, ge=1, le=50),
    _user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
) -> QuestionListResponse:
    """Newest questions first with answer counts."""
    summaries = await list_questions(db, limit=limit)
    return QuestionListResponse(
        questions=[
            QuestionListItem(
                **QuestionResponse.model_validate(s.question).model_dump(),
                answer_count=s.answer_count,
                creator=UserSummary.model_validate(s.creator),
            )
            for s in summaries
        ]
    )


@router.post("/{question_id}/answers", response_model=AnswerResponse, status_code=201)
async def answer_question_endpoint(
    question_id: int,
    body: PostAnswerRequest,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
) -> AnswerResponse:
    answer = await answer_question(db, user_id, question_id, body.body)
    await db.commit()
    return AnswerResponse.model_validate(answer)


@router.get("/{question_id}/answers", response_model=AnswerListResponse)
async def list_answers_endpoint(
    question_id: int,
    _user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
) -> AnswerListResponse:
    """Answers oldest first."""
    rows = await list_answers(db, question_id)
    return AnswerListResponse(
        question_id=question_id,
        answers=[
            AnswerListItem(
                **AnswerResponse.model_validate(answer).model_dump(),
                creator=UserSummary.model_validate(user),
            )
            for answer, user in rows
        ],
    )
