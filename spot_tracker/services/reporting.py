"""Read-only views for the admin and worker screens."""

from datetime import datetime

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..clock import as_utc
from ..config import IntakePolicy
from ..errors import NotFoundError
from ..geo import maps_link
from ..models import Assignment, AssignmentStatus, ProofKind, Spot, Submission, User
from ..schemas import (
    AssignmentRead,
    ProofFileRead,
    SpotDetail,
    SpotRead,
    SubmissionDetail,
    SubmissionSummary,
)
from .spots import next_available_at


def _spot_read(spot: Spot, policy: IntakePolicy, submissions_count: int = 0) -> SpotRead:
    claimer = spot.last_claimer
    return SpotRead(
        id=spot.id,
        latitude=spot.latitude,
        longitude=spot.longitude,
        address_text=spot.address_text,
        district=spot.district,
        last_claimed_at=as_utc(spot.last_claimed_at),
        last_claimed_by=spot.last_claimed_by,
        last_claimed_by_name=claimer.name if claimer else None,
        last_claimed_by_email=claimer.email if claimer else None,
        submissions_count=submissions_count,
        next_available_at=next_available_at(spot, policy.cooldown_months),
        maps_link=maps_link(spot.latitude, spot.longitude),
    )


def _submission_fields(submission: Submission, policy: IntakePolicy) -> dict:
    kinds = [proof.kind for proof in submission.proofs]
    spot = submission.spot
    return {
        "id": submission.id,
        "submitted_at": as_utc(submission.submitted_at),
        "proof_type": submission.proof_type,
        "submitted_latitude": submission.submitted_latitude,
        "submitted_longitude": submission.submitted_longitude,
        "note": submission.note,
        "user_id": submission.user_id,
        "user_name": submission.user.name if submission.user else None,
        "user_email": submission.user.email if submission.user else None,
        "spot_id": submission.spot_id,
        "assignment_id": submission.assignment_id,
        "address_text": spot.address_text,
        "district": spot.district,
        "image_count": kinds.count(ProofKind.IMAGE),
        "video_count": kinds.count(ProofKind.VIDEO),
        "next_available_at": next_available_at(spot, policy.cooldown_months),
    }


def _assignment_read(assignment: Assignment) -> AssignmentRead:
    spot = assignment.spot
    return AssignmentRead(
        id=assignment.id,
        spot_id=assignment.spot_id,
        user_id=assignment.user_id,
        user_name=assignment.user.name if assignment.user else None,
        assigned_by=assignment.assigned_by,
        status=assignment.status,
        assigned_at=as_utc(assignment.assigned_at),
        completed_at=as_utc(assignment.completed_at),
        cancelled_at=as_utc(assignment.cancelled_at),
        latitude=spot.latitude,
        longitude=spot.longitude,
        address_text=spot.address_text,
        district=spot.district,
        maps_link=maps_link(spot.latitude, spot.longitude),
    )


_SUBMISSION_LOADS = (
    selectinload(Submission.proofs),
    selectinload(Submission.user),
    selectinload(Submission.spot),
)


async def list_spots(session: AsyncSession, policy: IntakePolicy) -> list[SpotRead]:
    """All spots, most recently claimed first; never-claimed spots last."""
    counts = (
        select(Submission.spot_id, func.count(Submission.id).label("n"))
        .group_by(Submission.spot_id)
        .subquery()
    )
    result = await session.execute(
        select(Spot, func.coalesce(counts.c.n, 0))
        .outerjoin(counts, counts.c.spot_id == Spot.id)
        .options(selectinload(Spot.last_claimer))
        .order_by(Spot.last_claimed_at.desc().nullslast(), Spot.id.desc())
    )
    return [_spot_read(spot, policy, int(n)) for spot, n in result.all()]


async def get_spot(session: AsyncSession, policy: IntakePolicy, spot_id: int) -> SpotDetail:
    result = await session.execute(
        select(Spot).where(Spot.id == spot_id).options(selectinload(Spot.last_claimer))
    )
    spot: Spot | None = result.scalar_one_or_none()
    if spot is None:
        raise NotFoundError("Spot not found", spot_id=spot_id)

    result = await session.execute(
        select(Submission)
        .where(Submission.spot_id == spot_id)
        .options(*_SUBMISSION_LOADS)
        .order_by(Submission.submitted_at.desc(), Submission.id.desc())
    )
    submissions = [
        SubmissionSummary(**_submission_fields(s, policy)) for s in result.scalars().all()
    ]
    return SpotDetail(
        spot=_spot_read(spot, policy, len(submissions)),
        submissions=submissions,
    )


async def list_assignments(
    session: AsyncSession,
    status: AssignmentStatus | None = None,
    user_id: int | None = None,
    spot_id: int | None = None,
) -> list[AssignmentRead]:
    query = select(Assignment).options(
        selectinload(Assignment.spot), selectinload(Assignment.user)
    )
    if status is not None:
        query = query.where(Assignment.status == status)
    if user_id is not None:
        query = query.where(Assignment.user_id == user_id)
    if spot_id is not None:
        query = query.where(Assignment.spot_id == spot_id)

    query = query.order_by(Assignment.assigned_at.desc(), Assignment.id.desc())
    result = await session.execute(query)
    return [_assignment_read(a) for a in result.scalars().all()]


async def list_submissions(
    session: AsyncSession,
    policy: IntakePolicy,
    user_query: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    user_id: int | None = None,
) -> list[SubmissionSummary]:
    query = select(Submission).join(User, User.id == Submission.user_id).options(*_SUBMISSION_LOADS)

    if user_query:
        pattern = f"%{user_query.strip()}%"
        query = query.where(or_(User.name.ilike(pattern), User.email.ilike(pattern)))
    if start is not None:
        query = query.where(Submission.submitted_at >= as_utc(start))
    if end is not None:
        query = query.where(Submission.submitted_at <= as_utc(end))
    if user_id is not None:
        query = query.where(Submission.user_id == user_id)

    query = query.order_by(Submission.submitted_at.desc(), Submission.id.desc())
    result = await session.execute(query)
    return [SubmissionSummary(**_submission_fields(s, policy)) for s in result.scalars().all()]


async def get_submission(
    session: AsyncSession, policy: IntakePolicy, submission_id: int
) -> SubmissionDetail:
    result = await session.execute(
        select(Submission).where(Submission.id == submission_id).options(*_SUBMISSION_LOADS)
    )
    submission: Submission | None = result.scalar_one_or_none()
    if submission is None:
        raise NotFoundError("Submission not found", submission_id=submission_id)

    spot = submission.spot
    return SubmissionDetail(
        **_submission_fields(submission, policy),
        spot_latitude=spot.latitude,
        spot_longitude=spot.longitude,
        last_claimed_at=as_utc(spot.last_claimed_at),
        last_claimed_by=spot.last_claimed_by,
        proofs=[ProofFileRead.model_validate(p) for p in submission.proofs],
        maps_link=maps_link(submission.submitted_latitude, submission.submitted_longitude),
    )


async def my_submissions(
    session: AsyncSession, policy: IntakePolicy, user_id: int
) -> list[SubmissionSummary]:
    return await list_submissions(session, policy, user_id=user_id)


async def my_assignments(session: AsyncSession, user_id: int) -> list[AssignmentRead]:
    return await list_assignments(session, status=AssignmentStatus.ASSIGNED, user_id=user_id)
