from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ..clock import as_utc
from ..config import IntakePolicy
from ..database import get_session
from ..geo import Coordinate, maps_link
from ..models import Assignment, AssignmentStatus, Spot, UserRole
from ..schemas import (
    AssignmentCreate,
    AssignmentRead,
    AvailabilityRead,
    CoordinateIn,
    SpotCreate,
    SpotDetail,
    SpotRead,
    SubmissionDetail,
    SubmissionSummary,
    UserCreate,
    UserRead,
    UserStatusUpdate,
)
from ..services import reporting, users
from ..services.intake import IntakeEngine
from ..services.spots import next_available_at
from .deps import Caller, get_intake, get_intake_policy, require_role

router = APIRouter(prefix="/admin", tags=["admin"])

require_admin = require_role(UserRole.ADMIN)


def _created_assignment(assignment: Assignment) -> AssignmentRead:
    return AssignmentRead(
        id=assignment.id,
        spot_id=assignment.spot_id,
        user_id=assignment.user_id,
        assigned_by=assignment.assigned_by,
        status=assignment.status,
        assigned_at=as_utc(assignment.assigned_at),
        completed_at=as_utc(assignment.completed_at),
        cancelled_at=as_utc(assignment.cancelled_at),
    )


# Users


@router.post("/users", response_model=UserRead, status_code=201)
async def create_user(
    payload: UserCreate,
    _: Caller = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
) -> UserRead:
    user = await users.create_user(session, payload.name, payload.email, payload.role)
    await session.commit()
    return UserRead.model_validate(user)


@router.get("/users", response_model=list[UserRead])
async def list_users(
    _: Caller = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
) -> list[UserRead]:
    return [UserRead.model_validate(u) for u in await users.list_users(session)]


@router.patch("/users/{user_id}/status", response_model=UserRead)
async def update_user_status(
    user_id: int,
    payload: UserStatusUpdate,
    _: Caller = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
) -> UserRead:
    user = await users.set_user_status(session, user_id, payload.is_active)
    await session.commit()
    return UserRead.model_validate(user)


# Spots


@router.get("/spots", response_model=list[SpotRead])
async def list_spots(
    _: Caller = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
    policy: IntakePolicy = Depends(get_intake_policy),
) -> list[SpotRead]:
    return await reporting.list_spots(session, policy)


@router.get("/spots/{spot_id}", response_model=SpotDetail)
async def get_spot(
    spot_id: int,
    _: Caller = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
    policy: IntakePolicy = Depends(get_intake_policy),
) -> SpotDetail:
    return await reporting.get_spot(session, policy, spot_id)


@router.post("/spots", response_model=SpotRead, status_code=201)
async def create_spot(
    payload: SpotCreate,
    _: Caller = Depends(require_admin),
    intake: IntakeEngine = Depends(get_intake),
) -> SpotRead:
    """Create a spot for an upcoming assignment; rejects duplicates within the match radius."""
    spot: Spot = await intake.create_spot(
        Coordinate.parse(payload.latitude, payload.longitude), payload.address_text
    )
    return SpotRead(
        id=spot.id,
        latitude=spot.latitude,
        longitude=spot.longitude,
        address_text=spot.address_text,
        district=spot.district,
        next_available_at=next_available_at(spot, intake.policy.cooldown_months),
        maps_link=maps_link(spot.latitude, spot.longitude),
    )


@router.post("/spots/check", response_model=AvailabilityRead)
async def check_spot_availability(
    payload: CoordinateIn,
    _: Caller = Depends(require_admin),
    intake: IntakeEngine = Depends(get_intake),
) -> AvailabilityRead:
    availability = await intake.check_availability(
        Coordinate.parse(payload.latitude, payload.longitude)
    )
    return AvailabilityRead(
        available=availability.available,
        existing_spot_id=availability.existing_spot_id,
        next_available_at=availability.next_available_at,
        active_assignment_id=availability.active_assignment_id,
    )


# Assignments


@router.post("/assignments", response_model=AssignmentRead, status_code=201)
async def create_assignment(
    payload: AssignmentCreate,
    caller: Caller = Depends(require_admin),
    intake: IntakeEngine = Depends(get_intake),
) -> AssignmentRead:
    assignment = await intake.create_assignment(payload.spot_id, payload.user_id, caller.user_id)
    return _created_assignment(assignment)


@router.get("/assignments", response_model=list[AssignmentRead])
async def list_assignments(
    status: AssignmentStatus | None = Query(None, description="Filter by status"),
    user_id: int | None = Query(None),
    spot_id: int | None = Query(None),
    _: Caller = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
) -> list[AssignmentRead]:
    return await reporting.list_assignments(session, status=status, user_id=user_id, spot_id=spot_id)


@router.post("/assignments/{assignment_id}/cancel", response_model=AssignmentRead)
async def cancel_assignment(
    assignment_id: int,
    _: Caller = Depends(require_admin),
    intake: IntakeEngine = Depends(get_intake),
) -> AssignmentRead:
    return _created_assignment(await intake.cancel_assignment(assignment_id))


# Submissions


@router.get("/submissions", response_model=list[SubmissionSummary])
async def list_submissions(
    user: str | None = Query(None, description="Substring of the worker's name or email"),
    start: datetime | None = Query(None),
    end: datetime | None = Query(None),
    _: Caller = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
    policy: IntakePolicy = Depends(get_intake_policy),
) -> list[SubmissionSummary]:
    return await reporting.list_submissions(session, policy, user_query=user, start=start, end=end)


@router.get("/submissions/{submission_id}", response_model=SubmissionDetail)
async def get_submission(
    submission_id: int,
    _: Caller = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
    policy: IntakePolicy = Depends(get_intake_policy),
) -> SubmissionDetail:
    return await reporting.get_submission(session, policy, submission_id)
