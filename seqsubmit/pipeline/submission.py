import asyncio
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

from seqsubmit.config.settings import Settings
from seqsubmit.gateway.exceptions import SubmissionError, TransportError
from seqsubmit.gateway.gateway import RemoteServiceGateway
from seqsubmit.gateway.models import AnalysisSubmission
from seqsubmit.logging.logger import Log
from seqsubmit.pipeline.pipeline import PipelineContext, PipelineResult, PipelineStep
from seqsubmit.pipeline.steps import (
    FetchAnalysisFileStep,
    FinalizePartStep,
    FinalizeUploadStep,
    InitUploadStep,
    PublishAnalysisStep,
    UploadPartStep,
)


@dataclass
class _AnalysisLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


class SubmissionPipeline:
    """Drives one analysis file through upload, finalization and publication.

    Pipeline: fetch file -> init upload -> upload part -> finalize part ->
    finalize upload -> publish. Steps run strictly in order and the first
    failure stops the run; nothing already created remotely is rolled back.
    Runs for the same analysis id are serialized, others run concurrently.
    """

    def __init__(
        self,
        gateway: RemoteServiceGateway,
        steps: Sequence[PipelineStep],
        stage_timeout_seconds: float | None = None,
    ) -> None:
        self._gateway = gateway
        self._steps = tuple(steps)
        self._stage_timeout_seconds = stage_timeout_seconds
        self._locks: dict[str, _AnalysisLock] = {}

    @property
    def steps(self) -> tuple[PipelineStep, ...]:
        return self._steps

    async def run_submission_pipeline(
        self,
        study_id: str,
        analysis_id: str,
        file_content: str | bytes,
        md5: str,
    ) -> PipelineResult:
        context = PipelineContext(
            study_id=study_id,
            analysis_id=analysis_id,
            file_content=file_content,
            md5=md5,
        )
        Log.info(f"Starting upload pipeline for analysis {analysis_id} in study {study_id}")
        async with self._serialized(analysis_id):
            for step in self._steps:
                try:
                    context = await self._run_step(step, context)
                except SubmissionError as exc:
                    Log.error(
                        f"Analysis {analysis_id} failed at stage '{exc.stage}' "
                        f"after reaching {context.stage.value}: {exc.message}"
                    )
                    return PipelineResult(context=context, error=exc)
        return PipelineResult(context=context)

    async def submit_and_run(
        self,
        submission: AnalysisSubmission,
        file_content: str | bytes,
        md5: str,
    ) -> PipelineResult:
        """Register the payload with the metadata service, then run the pipeline."""
        try:
            response = await self._gateway.submit_payload(
                submission.study_id, submission.payload_json
            )
        except SubmissionError as exc:
            Log.error(f"Payload submission to study {submission.study_id} failed: {exc.message}")
            context = PipelineContext(
                study_id=submission.study_id,
                analysis_id="",
                file_content=file_content,
                md5=md5,
            )
            return PipelineResult(context=context, error=exc)
        Log.info(
            f"Payload accepted for study {submission.study_id} "
            f"as analysis {response.analysis_id}"
        )
        return await self.run_submission_pipeline(
            submission.study_id, response.analysis_id, file_content, md5
        )

    async def download_object(self, object_id: str) -> bytes:
        """Fetch a stored object through its presigned download link.

        Raises:
            SubmissionError: tagged 'download-link' or 'download'.
        """
        presigned_url = await self._gateway.fetch_download_link(object_id)
        content = await self._gateway.download_part(presigned_url)
        Log.info(f"Downloaded {len(content)} bytes for object {object_id}")
        return content

    async def _run_step(self, step: PipelineStep, context: PipelineContext) -> PipelineContext:
        if self._stage_timeout_seconds is None:
            return await step.run(context)
        try:
            return await asyncio.wait_for(step.run(context), self._stage_timeout_seconds)
        except asyncio.TimeoutError as exc:
            raise TransportError(
                step.name, f"timed out after {self._stage_timeout_seconds}s"
            ) from exc

    @asynccontextmanager
    async def _serialized(self, analysis_id: str) -> AsyncIterator[None]:
        entry = self._locks.get(analysis_id)
        if entry is None:
            entry = self._locks[analysis_id] = _AnalysisLock()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                del self._locks[analysis_id]


def build_pipeline(settings: Settings, gateway: RemoteServiceGateway) -> SubmissionPipeline:
    """Build a SubmissionPipeline with the fixed upload step order."""
    steps: list[PipelineStep] = [
        FetchAnalysisFileStep(
            gateway,
            poll_attempts=settings.file_poll_attempts,
            poll_interval_seconds=settings.file_poll_interval_seconds,
        ),
        InitUploadStep(gateway),
        UploadPartStep(gateway),
        FinalizePartStep(gateway),
        FinalizeUploadStep(gateway),
        PublishAnalysisStep(gateway),
    ]
    return SubmissionPipeline(
        gateway,
        steps,
        stage_timeout_seconds=settings.stage_timeout_seconds,
    )
