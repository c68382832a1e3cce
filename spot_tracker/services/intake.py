"""
Submission intake.

Every submission is resolved to exactly one spot and recorded in a single
transaction together with the spot's claim-state and, in assignment mode,
the completion of the assignment. Any failure rolls all of it back.

Two modes:

* assignment mode (an ``assignment_id`` is given): the spot is fixed by the
  assignment and the caller must be within ``max_assign_distance_m`` of it.
* free-roam mode: the nearest spot within ``match_radius_m`` is claimed if it
  is out of cooldown, otherwise a new spot is created at the coordinate.
"""

import asyncio
import logging
import math
from collections.abc import AsyncIterator, Sequence
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..clock import Clock, isoformat, utcnow
from ..config import IntakePolicy
from ..errors import ConflictError, StorageError, TrackerError
from ..geo import Coordinate, distance_meters, extract_district, maps_link
from ..models import Assignment, AssignmentStatus, ProofFile, Spot, Submission
from .assignments import AssignmentLedger
from .proofs import ClassifiedProofs, ProofUpload, classify_proofs
from .spots import SpotRegistry, cooldown_state, spot_location

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SubmissionReceipt:
    submission_id: int
    spot_id: int
    assignment_id: int | None


@dataclass(frozen=True)
class Availability:
    available: bool
    existing_spot_id: int | None = None
    next_available_at: datetime | None = None
    active_assignment_id: int | None = None


class SpotLocks:
    """
    Per-process locks over a coarse lat/lng grid.

    Free-roam submissions hold the 3x3 block of cells around their point, so
    two points closer than one cell always share at least one lock. Locks are
    taken in sorted order to avoid deadlocks. Other processes are not covered.
    """

    def __init__(self, bucket_degrees: float = 0.01) -> None:
        self.bucket_degrees = bucket_degrees
        # TODO: evict idle cell locks; the map grows with every visited cell.
        self._locks: dict[tuple[int, int], asyncio.Lock] = {}

    def cell(self, point: Coordinate) -> tuple[int, int]:
        return (
            math.floor(point.latitude / self.bucket_degrees),
            math.floor(point.longitude / self.bucket_degrees),
        )

    def neighbourhood(self, point: Coordinate) -> list[tuple[int, int]]:
        lat_cell, lng_cell = self.cell(point)
        return sorted(
            (lat_cell + dlat, lng_cell + dlng) for dlat in (-1, 0, 1) for dlng in (-1, 0, 1)
        )

    @asynccontextmanager
    async def hold(self, point: Coordinate) -> AsyncIterator[None]:
        async with AsyncExitStack() as stack:
            for key in self.neighbourhood(point):
                lock = self._locks.setdefault(key, asyncio.Lock())
                await stack.enter_async_context(lock)
            yield


def _assigned_spot_info(spot: Spot) -> dict:
    return {
        "spot_id": spot.id,
        "latitude": spot.latitude,
        "longitude": spot.longitude,
        "address_text": spot.address_text,
        "maps_link": maps_link(spot.latitude, spot.longitude),
    }


class IntakeEngine:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        policy: IntakePolicy | None = None,
        clock: Clock = utcnow,
        locks: SpotLocks | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.policy = policy or IntakePolicy()
        self.clock = clock
        self.locks = locks or SpotLocks(self.policy.lock_bucket_degrees)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        """Commit on success, roll back on any exception."""
        async with self.session_factory() as session:
            try:
                async with session.begin():
                    yield session
            except TrackerError:
                raise
            except SQLAlchemyError as exc:
                logger.exception("Transaction rolled back after a storage failure")
                raise StorageError("Storage failure, nothing was saved. Please retry.") from exc

    # ------------------------------------------------------------------
    # Submissions
    # ------------------------------------------------------------------

    async def submit_proof(
        self,
        user_id: int,
        coordinate: Coordinate,
        files: Sequence[ProofUpload],
        note: str | None = None,
        address_text: str | None = None,
        assignment_id: int | None = None,
    ) -> SubmissionReceipt:
        # Re-parse so NaN/inf and out-of-range values never reach the distance maths.
        point = Coordinate.parse(coordinate.latitude, coordinate.longitude)
        proofs = classify_proofs(files, self.policy)
        address = (address_text or "").strip() or None
        note = (note or "").strip() or None

        if assignment_id is not None:
            async with self.transaction() as session:
                return await self._submit_for_assignment(
                    session, user_id, point, proofs, note, address, assignment_id
                )

        async with self.locks.hold(point):
            async with self.transaction() as session:
                return await self._submit_free_roam(session, user_id, point, proofs, note, address)

    async def _submit_for_assignment(
        self,
        session: AsyncSession,
        user_id: int,
        point: Coordinate,
        proofs: ClassifiedProofs,
        note: str | None,
        address: str | None,
        assignment_id: int,
    ) -> SubmissionReceipt:
        now = self.clock()
        ledger = AssignmentLedger(session, self.policy, self.clock)
        registry = ledger.spots

        assignment = await ledger.get_for_user(assignment_id, user_id, for_update=True)
        if assignment.status != AssignmentStatus.ASSIGNED:
            raise ConflictError(
                "This assignment is not active",
                assignment_id=assignment.id,
                status=assignment.status.value,
            )

        spot = await registry.get(assignment.spot_id, for_update=True)

        if self.policy.enforce_cooldown_on_assignments:
            state = cooldown_state(spot, self.policy.cooldown_months, now)
            if state.in_cooldown:
                logger.info("Assignment %s rejected: spot %s in cooldown", assignment.id, spot.id)
                raise ConflictError(
                    "This assigned spot is still in cooldown",
                    spot_id=spot.id,
                    available_at=isoformat(state.available_at),
                )

        distance = distance_meters(point, spot_location(spot))
        if not math.isfinite(distance):
            raise ConflictError("Unable to verify distance. Please try again.")
        if distance > self.policy.max_assign_distance_m:
            logger.info(
                "Assignment %s rejected: %.1fm from spot %s (limit %.1fm)",
                assignment.id,
                distance,
                spot.id,
                self.policy.max_assign_distance_m,
            )
            raise ConflictError(
                "You are not at the assigned location. "
                "Please go to the assigned spot and try again.",
                allowed_distance_m=self.policy.max_assign_distance_m,
                distance_m=round(distance),
                assigned_spot=_assigned_spot_info(spot),
            )

        await registry.record_claim(
            spot, user_id, address, extract_district(address), claimed_at=now
        )
        submission = await self._insert_submission(
            session, user_id, spot, assignment, point, proofs, note, now
        )
        await ledger.complete(assignment.id, user_id)

        logger.info(
            "Submission %s recorded for assignment %s (spot %s, %.1fm)",
            submission.id,
            assignment.id,
            spot.id,
            distance,
        )
        return SubmissionReceipt(
            submission_id=submission.id, spot_id=spot.id, assignment_id=assignment.id
        )

    async def _submit_free_roam(
        self,
        session: AsyncSession,
        user_id: int,
        point: Coordinate,
        proofs: ClassifiedProofs,
        note: str | None,
        address: str | None,
    ) -> SubmissionReceipt:
        now = self.clock()
        registry = SpotRegistry(session, self.policy, self.clock)

        match = await registry.find_nearest(point, self.policy.match_radius_m)
        if match is not None:
            # Re-read under a row lock so the cooldown check sees committed claims.
            spot = await registry.get(match.spot.id, for_update=True)
            state = cooldown_state(spot, self.policy.cooldown_months, now)
            if state.in_cooldown:
                logger.info(
                    "Free-roam submission rejected: spot %s in cooldown until %s",
                    spot.id,
                    state.available_at,
                )
                raise ConflictError(
                    "This location was already updated recently.",
                    spot_id=spot.id,
                    available_at=isoformat(state.available_at),
                )
        else:
            spot = await registry.create(point, address)

        await registry.record_claim(
            spot, user_id, address, extract_district(address), claimed_at=now
        )
        submission = await self._insert_submission(
            session, user_id, spot, None, point, proofs, note, now
        )

        logger.info("Submission %s recorded for spot %s", submission.id, spot.id)
        return SubmissionReceipt(submission_id=submission.id, spot_id=spot.id, assignment_id=None)

    async def _insert_submission(
        self,
        session: AsyncSession,
        user_id: int,
        spot: Spot,
        assignment: Assignment | None,
        point: Coordinate,
        proofs: ClassifiedProofs,
        note: str | None,
        submitted_at: datetime,
    ) -> Submission:
        submission = Submission(
            user_id=user_id,
            spot_id=spot.id,
            assignment_id=assignment.id if assignment is not None else None,
            submitted_at=submitted_at,
            submitted_latitude=point.latitude,
            submitted_longitude=point.longitude,
            note=note,
            proof_type=proofs.summary,
        )
        session.add(submission)
        await session.flush()

        session.add_all(
            ProofFile(
                submission_id=submission.id,
                url=proof.url,
                kind=proof.kind,
                mime=proof.mime,
                size_bytes=proof.size_bytes,
            )
            for proof in proofs.files
        )
        await session.flush()
        return submission

    # ------------------------------------------------------------------
    # Admin-side operations
    # ------------------------------------------------------------------

    async def check_availability(self, coordinate: Coordinate) -> Availability:
        point = Coordinate.parse(coordinate.latitude, coordinate.longitude)
        async with self.transaction() as session:
            registry = SpotRegistry(session, self.policy, self.clock)
            match = await registry.find_nearest(point, self.policy.match_radius_m)
            if match is None:
                return Availability(available=True)

            state = cooldown_state(match.spot, self.policy.cooldown_months, self.clock())
            ledger = AssignmentLedger(session, self.policy, self.clock)
            active = await ledger.active_for_spot(match.spot.id)
            return Availability(
                available=not state.in_cooldown,
                existing_spot_id=match.spot.id,
                next_available_at=state.available_at,
                active_assignment_id=active.id if active is not None else None,
            )

    async def create_spot(self, coordinate: Coordinate, address_text: str | None = None) -> Spot:
        point = Coordinate.parse(coordinate.latitude, coordinate.longitude)
        address = (address_text or "").strip() or None
        async with self.locks.hold(point):
            async with self.transaction() as session:
                registry = SpotRegistry(session, self.policy, self.clock)
                match = await registry.find_nearest(point, self.policy.match_radius_m)
                if match is not None:
                    raise ConflictError(
                        "A spot already exists at this location",
                        existing_spot_id=match.spot.id,
                        distance_m=round(match.distance_m),
                    )
                return await registry.create(point, address)

    async def create_assignment(self, spot_id: int, user_id: int, admin_id: int) -> Assignment:
        async with self.transaction() as session:
            ledger = AssignmentLedger(session, self.policy, self.clock)
            return await ledger.create(spot_id, user_id, admin_id)

    async def cancel_assignment(self, assignment_id: int) -> Assignment:
        async with self.transaction() as session:
            ledger = AssignmentLedger(session, self.policy, self.clock)
            return await ledger.cancel(assignment_id)
