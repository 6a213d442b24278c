"""Study-a-thon endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from campus.auth.dependencies import get_current_user_id
from campus.database import get_session
from campus.errors import NotFound
from campus.studyathons.calendar import render_ics
from campus.studyathons.schemas import (
    CreateStudyathonRequest,
    JoinResponse,
    LiveStudyathonItem,
    LiveStudyathonsResponse,
    StudyathonResponse,
)
from campus.studyathons.service import (
    count_participants,
    create_studyathon,
    get_studyathon,
    join_studyathon,
    list_live,
)
from campus.users.schemas import UserSummary

router = APIRouter(prefix="/api/v1/studyathons", tags=["Studyathons"])


@router.post("", response_model=StudyathonResponse, status_code=201)
async def create_studyathon_endpoint(
    body: CreateStudyathonRequest,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
) -> StudyathonResponse:
    """Schedule a study-a-thon. Its group chat is created with it."""
    studyathon = await create_studyathon(
        db,
        user_id,
        title=body.title,
        starts_at=body.starts_at,
        ends_at=body.ends_at,
        description=body.description,
        location=body.location,
    )
    await db.commit()
    return StudyathonResponse.model_validate(studyathon)


@router.get("/live", response_model=LiveStudyathonsResponse)
async def live_studyathons(
    limit: int = Query(20, ge=1, le=50),
    _user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
) -> LiveStudyathonsResponse:
    """Upcoming and running study-a-thons, soonest first."""
    items = await list_live(db, limit=limit)
    return LiveStudyathonsResponse(
        studyathons=[
            LiveStudyathonItem(
                **StudyathonResponse.model_validate(item.studyathon).model_dump(),
                participant_count=item.participant_count,
                creator=UserSummary.model_validate(item.creator),
            )
            for item in items
        ]
    )


@router.post("/{studyathon_id}/join", response_model=JoinResponse)
async def join_studyathon_endpoint(
    studyathon_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
) -> JoinResponse:
    """Join the roster and the event chat. Joining twice is a no-op."""
    conversation_id = await join_studyathon(db, user_id, studyathon_id)
    participant_count = await count_participants(db, studyathon_id)
    await db.commit()
    return JoinResponse(conversation_id=conversation_id, participant_count=participant_count)


@router.get("/{studyathon_id}/calendar.ics")
async def studyathon_calendar(
    studyathon_id: int,
    db: AsyncSession = Depends(get_session),
) -> Response:
    """Download the event as an iCalendar file. No authentication required."""
    studyathon = await get_studyathon(db, studyathon_id)
    if studyathon is None:
        raise NotFound("Studyathon not found")

    ics = render_ics(
        studyathon.id,
        studyathon.title,
        studyathon.starts_at,
        ends_at=studyathon.ends_at,
        description=studyathon.description,
        location=studyathon.location,
    )
    return Response(
        content=ics,
        media_type="text/calendar; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="studyathon-{studyathon.id}.ics"'},
    )
