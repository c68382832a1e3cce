from typing import Any


class TrackerError(Exception):
    """
    Base class for failures surfaced to callers.

    `context` carries structured fields (distances, timestamps, spot info)
    that are merged into the response body next to `message`.
    """

    status_code = 500

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def to_payload(self) -> dict[str, Any]:
        return {"message": self.message, **self.context}


class ValidationError(TrackerError):
    """Malformed or missing input. Nothing was written."""

    status_code = 400


class NotFoundError(TrackerError):
    status_code = 404


class ConflictError(TrackerError):
    """A business rule rejected the request (cooldown, distance, state)."""

    status_code = 409


class StorageError(TrackerError):
    """The persistence layer failed; the transaction was rolled back."""

    status_code = 503
