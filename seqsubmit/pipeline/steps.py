import asyncio

from seqsubmit.gateway.exceptions import PreconditionError
from seqsubmit.gateway.gateway import RemoteServiceGateway
from seqsubmit.gateway.models import AnalysisFile, UploadSpec
from seqsubmit.logging.logger import Log
from seqsubmit.pipeline.pipeline import PipelineContext, PipelineStage, PipelineStep


def _require_file(context: PipelineContext, stage: str) -> AnalysisFile:
    if context.analysis_file is None:
        raise PreconditionError(stage, "analysis file must be registered first")
    return context.analysis_file


def _require_spec(context: PipelineContext, stage: str) -> UploadSpec:
    if context.upload_spec is None:
        raise PreconditionError(stage, "upload must be initialized first")
    return context.upload_spec


class FetchAnalysisFileStep(PipelineStep):
    """Look up the file the metadata service registered for the analysis.

    An empty file list is not a remote error, so it may be polled for
    ``poll_attempts`` times; after that the pipeline cannot go on.
    """

    name = "fetch-file"

    def __init__(
        self,
        gateway: RemoteServiceGateway,
        poll_attempts: int = 1,
        poll_interval_seconds: float = 1.0,
    ) -> None:
        self._gateway = gateway
        self._poll_attempts = max(1, poll_attempts)
        self._poll_interval_seconds = poll_interval_seconds

    async def run(self, context: PipelineContext) -> PipelineContext:
        for attempt in range(1, self._poll_attempts + 1):
            analysis_file = await self._gateway.fetch_analysis_file(
                context.study_id, context.analysis_id
            )
            if analysis_file is not None:
                context.analysis_file = analysis_file
                context.stage = PipelineStage.FILE_REGISTERED
                Log.info(
                    f"Analysis {context.analysis_id}: file {analysis_file.file_name} "
                    f"registered as object {analysis_file.object_id}"
                )
                return context
            if attempt < self._poll_attempts:
                Log.debug(
                    f"Analysis {context.analysis_id} has no file yet "
                    f"(attempt {attempt}/{self._poll_attempts})"
                )
                await asyncio.sleep(self._poll_interval_seconds)
        raise PreconditionError(
            self.name, f"No file registered for analysis {context.analysis_id}"
        )


class InitUploadStep(PipelineStep):
    name = "init-upload"

    def __init__(self, gateway: RemoteServiceGateway) -> None:
        self._gateway = gateway

    async def run(self, context: PipelineContext) -> PipelineContext:
        analysis_file = _require_file(context, self.name)
        context.upload_spec = await self._gateway.init_upload(analysis_file, context.md5)
        context.stage = PipelineStage.UPLOAD_INITIALIZED
        Log.info(
            f"Analysis {context.analysis_id}: upload {context.upload_spec.upload_id} "
            f"initialized for object {context.upload_spec.object_id}"
        )
        return context


class UploadPartStep(PipelineStep):
    name = "upload-part"

    def __init__(self, gateway: RemoteServiceGateway) -> None:
        self._gateway = gateway

    async def run(self, context: PipelineContext) -> PipelineContext:
        upload_spec = _require_spec(context, self.name)
        context.etag = await self._gateway.upload_part(
            upload_spec, context.file_content, context.md5
        )
        context.stage = PipelineStage.PART_UPLOADED
        Log.info(f"Analysis {context.analysis_id}: part uploaded, etag {context.etag}")
        return context


class FinalizePartStep(PipelineStep):
    name = "finalize-part"

    def __init__(self, gateway: RemoteServiceGateway) -> None:
        self._gateway = gateway

    async def run(self, context: PipelineContext) -> PipelineContext:
        upload_spec = _require_spec(context, self.name)
        await self._gateway.finalize_part(upload_spec, context.md5, context.etag)
        return context


class FinalizeUploadStep(PipelineStep):
    name = "finalize-upload"

    def __init__(self, gateway: RemoteServiceGateway) -> None:
        self._gateway = gateway

    async def run(self, context: PipelineContext) -> PipelineContext:
        upload_spec = _require_spec(context, self.name)
        await self._gateway.finalize_upload(upload_spec)
        context.stage = PipelineStage.FINALIZED
        Log.info(f"Analysis {context.analysis_id}: upload {upload_spec.upload_id} finalized")
        return context


class PublishAnalysisStep(PipelineStep):
    name = "publish"

    def __init__(self, gateway: RemoteServiceGateway) -> None:
        self._gateway = gateway

    async def run(self, context: PipelineContext) -> PipelineContext:
        context.publish_status = await self._gateway.publish_analysis(
            context.study_id, context.analysis_id
        )
        context.stage = PipelineStage.PUBLISHED
        Log.info(f"Analysis {context.analysis_id} published in study {context.study_id}")
        return context
