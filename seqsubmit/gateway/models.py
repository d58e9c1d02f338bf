from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class AnalysisSubmission:
    """A study id plus the analysis payload to register with the metadata service."""

    study_id: str
    payload_json: str


@dataclass(frozen=True)
class SubmitResponse:
    analysis_id: str
    status: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SubmitResponse":
        return cls(analysis_id=str(data["analysisId"]), status=str(data.get("status", "")))


@dataclass(frozen=True)
class AnalysisFile:
    """File descriptor registered on an analysis by the metadata service."""

    object_id: str
    file_name: str
    file_size: int
    file_md5sum: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AnalysisFile":
        return cls(
            object_id=str(data["objectId"]),
            file_name=str(data["fileName"]),
            file_size=int(data["fileSize"]),
            file_md5sum=str(data["fileMd5sum"]),
        )


@dataclass(frozen=True)
class UploadPart:
    part_number: int
    url: str
    part_size: int | None = None
    offset: int | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "UploadPart":
        return cls(
            part_number=int(data["partNumber"]),
            url=str(data["url"]),
            part_size=data.get("partSize"),
            offset=data.get("offset"),
        )


@dataclass(frozen=True)
class UploadSpec:
    """Upload (or download) descriptor issued by the storage service."""

    object_id: str
    upload_id: str
    parts: tuple[UploadPart, ...]
    object_md5: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "UploadSpec":
        return cls(
            object_id=str(data["objectId"]),
            upload_id=str(data.get("uploadId") or ""),
            parts=tuple(UploadPart.from_dict(part) for part in data["parts"]),
            object_md5=data.get("objectMd5"),
        )
