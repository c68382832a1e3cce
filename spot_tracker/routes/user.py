from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import IntakePolicy
from ..database import get_session
from ..errors import TrackerError, ValidationError
from ..geo import Coordinate
from ..models import UserRole
from ..schemas import AssignmentRead, SubmissionReceiptRead, SubmissionSummary
from ..services import reporting
from ..services.intake import IntakeEngine
from ..services.proofs import classify_proofs
from ..storage import ProofStorage, describe
from .deps import Caller, get_intake, get_intake_policy, get_proof_storage, require_role

router = APIRouter(prefix="/user", tags=["user"])

require_worker = require_role(UserRole.USER)


def _parse_assignment_id(raw: str | None) -> int | None:
    if raw is None or not raw.strip():
        return None
    try:
        return int(raw)
    except ValueError as exc:
        raise ValidationError("Invalid assignment id", assignment_id=raw) from exc


@router.post("/submissions", response_model=SubmissionReceiptRead, status_code=201)
async def submit_proof(
    latitude: str = Form(...),
    longitude: str = Form(...),
    note: str | None = Form(None),
    address: str | None = Form(None),
    assignment_id: str | None = Form(None),
    proof: list[UploadFile] | None = File(None),
    caller: Caller = Depends(require_worker),
    intake: IntakeEngine = Depends(get_intake),
    storage: ProofStorage = Depends(get_proof_storage),
) -> SubmissionReceiptRead:
    """
    Record a proof submission.

    Files are classified before any of them is stored; stored files are
    removed again if the submission is rejected.
    """
    uploads = proof or []
    coordinate = Coordinate.parse(latitude, longitude)
    target_assignment = _parse_assignment_id(assignment_id)
    classify_proofs([describe(upload) for upload in uploads], intake.policy)

    stored = await storage.save_all(uploads)
    try:
        receipt = await intake.submit_proof(
            caller.user_id,
            coordinate,
            stored,
            note=note,
            address_text=address,
            assignment_id=target_assignment,
        )
    except TrackerError:
        storage.discard(stored)
        raise

    return SubmissionReceiptRead(
        message=(
            "Assignment submission successful"
            if receipt.assignment_id is not None
            else "Submission successful"
        ),
        submission_id=receipt.submission_id,
        spot_id=receipt.spot_id,
        assignment_id=receipt.assignment_id,
    )


@router.get("/submissions", response_model=list[SubmissionSummary])
async def my_submissions(
    caller: Caller = Depends(require_worker),
    session: AsyncSession = Depends(get_session),
    policy: IntakePolicy = Depends(get_intake_policy),
) -> list[SubmissionSummary]:
    return await reporting.my_submissions(session, policy, caller.user_id)


@router.get("/assignments", response_model=list[AssignmentRead])
async def my_assignments(
    caller: Caller = Depends(require_worker),
    session: AsyncSession = Depends(get_session),
) -> list[AssignmentRead]:
    """Active assignments for the calling worker."""
    return await reporting.my_assignments(session, caller.user_id)
