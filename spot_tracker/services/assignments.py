import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..clock import Clock, utcnow
from ..config import IntakePolicy
from ..errors import ConflictError, NotFoundError
from ..models import Assignment, AssignmentStatus, User
from .spots import SpotRegistry

logger = logging.getLogger(__name__)


class AssignmentLedger:
    """
    Admin-issued work orders binding one user to one spot.

    assigned -> completed (matching submission) or assigned -> cancelled
    (admin). Both end states are terminal.
    """

    def __init__(
        self,
        session: AsyncSession,
        policy: IntakePolicy,
        clock: Clock = utcnow,
    ) -> None:
        self.session = session
        self.policy = policy
        self.clock = clock
        self.spots = SpotRegistry(session, policy, clock)

    async def active_for_spot(self, spot_id: int) -> Assignment | None:
        result = await self.session.execute(
            select(Assignment).where(
                Assignment.spot_id == spot_id,
                Assignment.status == AssignmentStatus.ASSIGNED,
            )
        )
        return result.scalars().first()

    async def create(self, spot_id: int, user_id: int, assigned_by: int) -> Assignment:
        # Lock the spot row so two admins cannot both pass the active check.
        spot = await self.spots.get(spot_id, for_update=True)

        user = await self.session.get(User, user_id)
        if user is None:
            raise NotFoundError("User not found", user_id=user_id)
        if not user.is_active:
            raise ConflictError("User is inactive", user_id=user_id)
        if user.role.value != self.policy.assignable_role:
            raise ConflictError(
                f"Only users with role '{self.policy.assignable_role}' can be assigned",
                user_id=user_id,
            )

        active = await self.active_for_spot(spot.id)
        if active is not None:
            raise ConflictError(
                "This spot already has an active assignment",
                spot_id=spot.id,
                active_assignment_id=active.id,
            )

        assignment = Assignment(
            spot_id=spot.id,
            user_id=user_id,
            assigned_by=assigned_by,
            status=AssignmentStatus.ASSIGNED,
            assigned_at=self.clock(),
        )
        self.session.add(assignment)
        try:
            await self.session.flush()
        except IntegrityError as exc:
            # Lost a race against another admin on the partial unique index.
            raise ConflictError(
                "This spot already has an active assignment", spot_id=spot.id
            ) from exc

        logger.info(
            "Assignment %s created: spot %s -> user %s (by %s)",
            assignment.id,
            spot.id,
            user_id,
            assigned_by,
        )
        return assignment

    async def get(self, assignment_id: int, *, for_update: bool = False) -> Assignment:
        stmt = select(Assignment).where(Assignment.id == assignment_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await self.session.execute(stmt)
        assignment: Assignment | None = result.scalar_one_or_none()
        if assignment is None:
            raise NotFoundError("Assignment not found", assignment_id=assignment_id)
        return assignment

    async def get_for_user(
        self, assignment_id: int, user_id: int, *, for_update: bool = False
    ) -> Assignment:
        """Look up an assignment as seen by its assignee; others get NotFoundError."""
        assignment = await self.get(assignment_id, for_update=for_update)
        if assignment.user_id != user_id:
            raise NotFoundError("Assignment not found", assignment_id=assignment_id)
        return assignment

    async def get_active_for_user(self, user_id: int) -> list[Assignment]:
        result = await self.session.execute(
            select(Assignment)
            .where(
                Assignment.user_id == user_id,
                Assignment.status == AssignmentStatus.ASSIGNED,
            )
            .order_by(Assignment.assigned_at.desc(), Assignment.id.desc())
        )
        return list(result.scalars().all())

    async def complete(self, assignment_id: int, user_id: int) -> bool:
        """
        Close an assignment after its submission was recorded.

        Returns False when it was already completed (repeat calls are no-ops).
        """
        assignment = await self.get_for_user(assignment_id, user_id, for_update=True)
        if assignment.status == AssignmentStatus.COMPLETED:
            return False
        if assignment.status != AssignmentStatus.ASSIGNED:
            raise ConflictError(
                "This assignment is not active",
                assignment_id=assignment.id,
                status=assignment.status.value,
            )

        assignment.status = AssignmentStatus.COMPLETED
        assignment.completed_at = self.clock()
        await self.session.flush()
        logger.info("Assignment %s completed by user %s", assignment.id, user_id)
        return True

    async def cancel(self, assignment_id: int) -> Assignment:
        assignment = await self.get(assignment_id, for_update=True)
        if assignment.status != AssignmentStatus.ASSIGNED:
            raise ConflictError(
                "This assignment is not active",
                assignment_id=assignment.id,
                status=assignment.status.value,
            )

        assignment.status = AssignmentStatus.CANCELLED
        assignment.cancelled_at = self.clock()
        await self.session.flush()
        logger.info("Assignment %s cancelled", assignment.id)
        return assignment
