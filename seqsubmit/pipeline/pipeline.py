from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum

from seqsubmit.gateway.exceptions import SubmissionError
from seqsubmit.gateway.models import AnalysisFile, UploadSpec


class PipelineStage(str, Enum):
    SUBMITTED = "SUBMITTED"
    FILE_REGISTERED = "FILE_REGISTERED"
    UPLOAD_INITIALIZED = "UPLOAD_INITIALIZED"
    PART_UPLOADED = "PART_UPLOADED"
    FINALIZED = "FINALIZED"
    PUBLISHED = "PUBLISHED"
    FAILED = "FAILED"


@dataclass(slots=True)
class PipelineContext:
    """Identifiers accumulated as one analysis moves through the stages."""

    study_id: str
    analysis_id: str
    file_content: str | bytes
    md5: str
    stage: PipelineStage = PipelineStage.SUBMITTED
    analysis_file: AnalysisFile | None = None
    upload_spec: UploadSpec | None = None
    etag: str = ""
    publish_status: int | None = None


@dataclass(frozen=True)
class PipelineResult:
    context: PipelineContext
    error: SubmissionError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def stage(self) -> PipelineStage:
        return PipelineStage.FAILED if self.error is not None else self.context.stage

    @property
    def failed_stage(self) -> str | None:
        return self.error.stage if self.error is not None else None


class PipelineStep(ABC):
    name: str

    @abstractmethod
    async def run(self, context: PipelineContext) -> PipelineContext:
        raise NotImplementedError
