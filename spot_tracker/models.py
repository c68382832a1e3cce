import enum
from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .clock import utcnow
from .database import Base


def _enum_column(enum_cls: type[enum.Enum], name: str) -> Enum:
    # Persist the lowercase values ("assigned"), not the member names.
    return Enum(
        enum_cls,
        name=name,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )


class UserRole(str, enum.Enum):
    ADMIN = "admin"
    USER = "user"


class AssignmentStatus(str, enum.Enum):
    ASSIGNED = "assigned"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ProofKind(str, enum.Enum):
    IMAGE = "image"
    VIDEO = "video"


class ProofSummary(str, enum.Enum):
    IMAGE = "image"
    VIDEO = "video"
    MIXED = "mixed"


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    role: Mapped[UserRole] = mapped_column(
        _enum_column(UserRole, "user_role"), nullable=False, default=UserRole.USER
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )


class Spot(Base):
    __tablename__ = "spots"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    # Canonical coordinate of the cluster; fixed at creation.
    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)
    address_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    district: Mapped[str | None] = mapped_column(String(120), nullable=True)
    last_claimed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    last_claimed_by: Mapped[int | None] = mapped_column(
        ForeignKey("users.id"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    last_claimer: Mapped[User | None] = relationship("User")
    assignments: Mapped[list["Assignment"]] = relationship(
        "Assignment", back_populates="spot"
    )
    submissions: Mapped[list["Submission"]] = relationship(
        "Submission", back_populates="spot"
    )


class Assignment(Base):
    __tablename__ = "assignments"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    spot_id: Mapped[int] = mapped_column(ForeignKey("spots.id"), nullable=False, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    assigned_by: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    status: Mapped[AssignmentStatus] = mapped_column(
        _enum_column(AssignmentStatus, "assignment_status"),
        nullable=False,
        default=AssignmentStatus.ASSIGNED,
    )
    assigned_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    spot: Mapped[Spot] = relationship("Spot", back_populates="assignments")
    user: Mapped[User] = relationship("User", foreign_keys=[user_id])
    assigner: Mapped[User] = relationship("User", foreign_keys=[assigned_by])

    __table_args__ = (
        # At most one open work order per spot.
        Index(
            "uq_assignments_active_spot",
            "spot_id",
            unique=True,
            postgresql_where=text("status = 'assigned'"),
            sqlite_where=text("status = 'assigned'"),
        ),
    )


class Submission(Base):
    __tablename__ = "submissions"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    spot_id: Mapped[int] = mapped_column(ForeignKey("spots.id"), nullable=False, index=True)
    assignment_id: Mapped[int | None] = mapped_column(
        ForeignKey("assignments.id"), nullable=True
    )
    submitted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    submitted_latitude: Mapped[float] = mapped_column(Float, nullable=False)
    submitted_longitude: Mapped[float] = mapped_column(Float, nullable=False)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    proof_type: Mapped[ProofSummary] = mapped_column(
        _enum_column(ProofSummary, "proof_summary"), nullable=False
    )

    user: Mapped[User] = relationship("User")
    spot: Mapped[Spot] = relationship("Spot", back_populates="submissions")
    assignment: Mapped[Assignment | None] = relationship("Assignment")
    proofs: Mapped[list["ProofFile"]] = relationship(
        "ProofFile", back_populates="submission", order_by="ProofFile.id"
    )


class ProofFile(Base):
    __tablename__ = "proof_files"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    submission_id: Mapped[int] = mapped_column(
        ForeignKey("submissions.id"), nullable=False, index=True
    )
    url: Mapped[str] = mapped_column(Text, nullable=False)
    kind: Mapped[ProofKind] = mapped_column(_enum_column(ProofKind, "proof_kind"), nullable=False)
    mime: Mapped[str] = mapped_column(String(100), nullable=False)
    size_bytes: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"), nullable=False
    )

    submission: Mapped[Submission] = relationship("Submission", back_populates="proofs")
