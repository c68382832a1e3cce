from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from .models import AssignmentStatus, ProofKind, ProofSummary, UserRole


class UserCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    email: EmailStr
    role: UserRole = UserRole.USER


class UserRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: str
    role: UserRole
    is_active: bool
    created_at: datetime


class UserStatusUpdate(BaseModel):
    is_active: bool


class CoordinateIn(BaseModel):
    # Range checks happen in the core so failures share its error shape.
    latitude: float
    longitude: float


class SpotCreate(CoordinateIn):
    address_text: str | None = None


class SpotRead(BaseModel):
    id: int
    latitude: float
    longitude: float
    address_text: str | None = None
    district: str | None = None
    last_claimed_at: datetime | None = None
    last_claimed_by: int | None = None
    last_claimed_by_name: str | None = None
    last_claimed_by_email: str | None = None
    submissions_count: int = 0
    next_available_at: datetime | None = None
    maps_link: str


class AvailabilityRead(BaseModel):
    available: bool
    existing_spot_id: int | None = None
    next_available_at: datetime | None = None
    active_assignment_id: int | None = None


class AssignmentCreate(BaseModel):
    spot_id: int
    user_id: int


class AssignmentRead(BaseModel):
    id: int
    spot_id: int
    user_id: int
    user_name: str | None = None
    assigned_by: int
    status: AssignmentStatus
    assigned_at: datetime
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None
    latitude: float | None = None
    longitude: float | None = None
    address_text: str | None = None
    district: str | None = None
    maps_link: str | None = None


class ProofFileRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    url: str
    kind: ProofKind
    mime: str
    size_bytes: int


class SubmissionSummary(BaseModel):
    id: int
    submitted_at: datetime
    proof_type: ProofSummary
    submitted_latitude: float
    submitted_longitude: float
    note: str | None = None
    user_id: int
    user_name: str | None = None
    user_email: str | None = None
    spot_id: int
    assignment_id: int | None = None
    address_text: str | None = None
    district: str | None = None
    image_count: int = 0
    video_count: int = 0
    next_available_at: datetime | None = None


class SubmissionDetail(SubmissionSummary):
    spot_latitude: float
    spot_longitude: float
    last_claimed_at: datetime | None = None
    last_claimed_by: int | None = None
    proofs: list[ProofFileRead]
    maps_link: str


class SpotDetail(BaseModel):
    spot: SpotRead
    submissions: list[SubmissionSummary]


class SubmissionReceiptRead(BaseModel):
    message: str
    submission_id: int
    spot_id: int
    assignment_id: int | None = None
