import json
import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from seqsubmit.database.exceptions import RecordDecodeError


class UploadStatus(str, Enum):
    """Lifecycle states of a row in the upload table."""

    QUEUED = "QUEUED"
    UPLOADING = "UPLOADING"
    VALIDATING = "VALIDATING"
    PUBLISHED = "PUBLISHED"
    FAILED = "FAILED"


@dataclass(frozen=True)
class UploadRecord:
    """Represents a row from the upload table, as carried by NOTIFY payloads.

    Field names match the column names produced by ``row_to_json``.
    """

    upload_id: uuid.UUID
    user_id: uuid.UUID
    submission_id: uuid.UUID
    status: UploadStatus
    created_at: datetime
    study_id: str
    submitter_sample_id: str | None = None
    analysis_id: str | None = None
    object_id: str | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "upload_id": str(self.upload_id),
            "user_id": str(self.user_id),
            "submission_id": str(self.submission_id),
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "study_id": self.study_id,
            "submitter_sample_id": self.submitter_sample_id,
            "analysis_id": self.analysis_id,
            "object_id": self.object_id,
            "error": self.error,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "UploadRecord":
        """Build a record from a decoded JSON object.

        Raises:
            RecordDecodeError: if a required field is missing or malformed.
        """
        try:
            return cls(
                upload_id=_parse_uuid(data["upload_id"]),
                user_id=_parse_uuid(data["user_id"]),
                submission_id=_parse_uuid(data["submission_id"]),
                status=UploadStatus(data["status"]),
                created_at=datetime.fromisoformat(data["created_at"]),
                study_id=_parse_str(data["study_id"]),
                submitter_sample_id=data.get("submitter_sample_id"),
                analysis_id=data.get("analysis_id"),
                object_id=data.get("object_id"),
                error=data.get("error"),
            )
        except KeyError as exc:
            raise RecordDecodeError(f"Upload record is missing field {exc}") from exc
        except (TypeError, ValueError) as exc:
            raise RecordDecodeError(f"Upload record is malformed: {exc}") from exc

    @classmethod
    def from_json(cls, payload: str) -> "UploadRecord":
        """Decode a NOTIFY payload.

        Raises:
            RecordDecodeError: if the payload is not a JSON object describing
                an upload row.
        """
        try:
            data = json.loads(payload)
        except json.JSONDecodeError as exc:
            raise RecordDecodeError(f"Upload payload is not valid JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise RecordDecodeError(
                f"Upload payload must be a JSON object, got {type(data).__name__}"
            )
        return cls.from_dict(data)


def _parse_uuid(value: Any) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    if not isinstance(value, str):
        raise TypeError(f"expected UUID string, got {type(value).__name__}")
    return uuid.UUID(value)


def _parse_str(value: Any) -> str:
    if not isinstance(value, str):
        raise TypeError(f"expected string, got {type(value).__name__}")
    return value
