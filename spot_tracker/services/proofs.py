"""Classification of already-stored proof files by MIME type and size."""

from collections.abc import Sequence
from dataclasses import dataclass

from ..config import IntakePolicy
from ..errors import ValidationError
from ..models import ProofKind, ProofSummary


@dataclass(frozen=True)
class ProofUpload:
    """A proof file as handed over by the uploader. The core never sees its bytes."""

    url: str
    mime: str
    size_bytes: int
    filename: str | None = None


@dataclass(frozen=True)
class ClassifiedProof:
    url: str
    kind: ProofKind
    mime: str
    size_bytes: int


@dataclass(frozen=True)
class ClassifiedProofs:
    files: list[ClassifiedProof]
    summary: ProofSummary


def _label(upload: ProofUpload) -> str:
    return upload.filename or upload.url


def classify_proof(upload: ProofUpload, policy: IntakePolicy) -> ClassifiedProof:
    mime = (upload.mime or "").strip().lower()

    if mime in policy.image_mimes:
        kind, cap = ProofKind.IMAGE, policy.max_image_bytes
    elif mime in policy.video_mimes:
        kind, cap = ProofKind.VIDEO, policy.max_video_bytes
    else:
        raise ValidationError(
            f"Invalid file type for {_label(upload)}",
            mime=mime or None,
        )

    if upload.size_bytes < 0:
        raise ValidationError(f"Invalid size for {_label(upload)}")
    if upload.size_bytes > cap:
        raise ValidationError(
            f"{kind.value.capitalize()} {_label(upload)} is too large (>{cap // (1024 * 1024)}MB)",
            max_bytes=cap,
            size_bytes=upload.size_bytes,
        )

    return ClassifiedProof(url=upload.url, kind=kind, mime=mime, size_bytes=upload.size_bytes)


def summarize(kinds: set[ProofKind]) -> ProofSummary:
    if kinds == {ProofKind.IMAGE}:
        return ProofSummary.IMAGE
    if kinds == {ProofKind.VIDEO}:
        return ProofSummary.VIDEO
    return ProofSummary.MIXED


def classify_proofs(uploads: Sequence[ProofUpload], policy: IntakePolicy) -> ClassifiedProofs:
    """
    Classify every file or fail the whole batch.

    Runs before any write so that one bad file leaves no trace of the others.
    """
    if not uploads:
        raise ValidationError("At least one proof file is required")
    if len(uploads) > policy.max_files_per_submission:
        raise ValidationError(
            f"Too many proof files (max {policy.max_files_per_submission})",
            max_files=policy.max_files_per_submission,
        )

    files = [classify_proof(upload, policy) for upload in uploads]
    return ClassifiedProofs(files=files, summary=summarize({f.kind for f in files}))
