import json
import uuid
from datetime import datetime, timezone

import pytest

from seqsubmit.database.exceptions import RecordDecodeError
from seqsubmit.database.models import UploadRecord, UploadStatus

USER_ID = uuid.UUID("11111111-1111-1111-1111-111111111111")
SUBMISSION_ID = uuid.UUID("22222222-2222-2222-2222-222222222222")
UPLOAD_ID = uuid.UUID("33333333-3333-3333-3333-333333333333")


def _row(**overrides: object) -> dict[str, object]:
    """A payload shaped like row_to_json(NEW) from the upload table."""
    row: dict[str, object] = {
        "upload_id": str(UPLOAD_ID),
        "study_id": "COVID-PR",
        "submitter_sample_id": "sample-1",
        "submission_id": str(SUBMISSION_ID),
        "user_id": str(USER_ID),
        "created_at": "2026-10-17T09:30:00.123456+00:00",
        "status": "QUEUED",
        "analysis_id": None,
        "object_id": None,
        "error": None,
    }
    row.update(overrides)
    return row


class TestFromJson:
    def test_decodes_row_payload(self) -> None:
        record = UploadRecord.from_json(json.dumps(_row()))

        assert record.upload_id == UPLOAD_ID
        assert record.user_id == USER_ID
        assert record.submission_id == SUBMISSION_ID
        assert record.status is UploadStatus.QUEUED
        assert record.study_id == "COVID-PR"
        assert record.created_at == datetime(
            2026, 10, 17, 9, 30, 0, 123456, tzinfo=timezone.utc
        )

    def test_optional_columns_may_be_absent(self) -> None:
        row = _row()
        for key in ("submitter_sample_id", "analysis_id", "object_id", "error"):
            del row[key]

        record = UploadRecord.from_json(json.dumps(row))

        assert record.analysis_id is None
        assert record.error is None

    def test_ignores_unknown_columns(self) -> None:
        record = UploadRecord.from_json(json.dumps(_row(original_file_pair=["a", "b"])))

        assert record.upload_id == UPLOAD_ID


class TestFromJsonErrors:
    def test_invalid_json(self) -> None:
        with pytest.raises(RecordDecodeError, match="not valid JSON"):
            UploadRecord.from_json("{not json")

    def test_non_object_payload(self) -> None:
        with pytest.raises(RecordDecodeError, match="JSON object"):
            UploadRecord.from_json("[1, 2]")

    def test_missing_required_field(self) -> None:
        row = _row()
        del row["user_id"]

        with pytest.raises(RecordDecodeError, match="user_id"):
            UploadRecord.from_json(json.dumps(row))

    def test_bad_uuid(self) -> None:
        with pytest.raises(RecordDecodeError):
            UploadRecord.from_json(json.dumps(_row(submission_id="not-a-uuid")))

    def test_non_string_uuid(self) -> None:
        with pytest.raises(RecordDecodeError):
            UploadRecord.from_json(json.dumps(_row(user_id=42)))

    def test_null_study_id(self) -> None:
        with pytest.raises(RecordDecodeError):
            UploadRecord.from_json(json.dumps(_row(study_id=None)))

    def test_unknown_status(self) -> None:
        with pytest.raises(RecordDecodeError):
            UploadRecord.from_json(json.dumps(_row(status="EXPLODED")))

    def test_bad_timestamp(self) -> None:
        with pytest.raises(RecordDecodeError):
            UploadRecord.from_json(json.dumps(_row(created_at="yesterday")))


class TestRoundTrip:
    def test_encode_then_decode_preserves_all_fields(self) -> None:
        original = UploadRecord(
            upload_id=UPLOAD_ID,
            user_id=USER_ID,
            submission_id=SUBMISSION_ID,
            status=UploadStatus.FAILED,
            created_at=datetime(2026, 10, 17, 9, 30, tzinfo=timezone.utc),
            study_id="COVID-PR",
            submitter_sample_id="sample-1",
            analysis_id="A1",
            object_id="O1",
            error="[publish] PUT returned 500",
        )

        assert UploadRecord.from_json(original.to_json()) == original

    def test_to_dict_uses_column_names(self) -> None:
        record = UploadRecord.from_json(json.dumps(_row(status="PUBLISHED")))

        data = record.to_dict()

        assert data["status"] == "PUBLISHED"
        assert data["user_id"] == str(USER_ID)
        assert set(data) == set(_row())
