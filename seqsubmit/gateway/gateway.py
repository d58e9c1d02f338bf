from collections.abc import Callable
from types import TracebackType
from typing import Any, TypeVar
from urllib.parse import quote, unquote

import httpx

from seqsubmit.config.settings import Settings
from seqsubmit.gateway.exceptions import (
    DecodeError,
    PreconditionError,
    RemoteRejection,
    TransportError,
)
from seqsubmit.gateway.models import AnalysisFile, SubmitResponse, UploadSpec
from seqsubmit.logging.logger import Log

T = TypeVar("T")


def decode_url(url: str) -> str:
    """Percent-decode a presigned URL as handed out by the storage service."""
    return unquote(url)


def strip_etag(etag: str) -> str:
    return etag.replace('"', "")


def _segment(value: str) -> str:
    return quote(str(value), safe="")


def _analysis_files(body: Any) -> list[AnalysisFile]:
    if not isinstance(body, list):
        raise TypeError(f"expected a list of files, got {type(body).__name__}")
    return [AnalysisFile.from_dict(item) for item in body]


class RemoteServiceGateway:
    """Typed HTTP calls against the metadata (song) and storage (score) services.

    Every call is a single round trip. Failures of any kind are raised as a
    SubmissionError subclass tagged with the stage name; nothing is retried.
    Calls to presigned storage URLs go out without the bearer token.
    """

    def __init__(
        self,
        *,
        song_root_url: str,
        score_root_url: str,
        api_token: str,
        client: httpx.AsyncClient | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        self._song_root_url = song_root_url.rstrip("/")
        self._score_root_url = score_root_url.rstrip("/")
        self._api_token = api_token
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)

    @classmethod
    def from_settings(
        cls, settings: Settings, client: httpx.AsyncClient | None = None
    ) -> "RemoteServiceGateway":
        Log.info(
            f"Remote services: song={settings.song_root_url} score={settings.score_root_url}"
        )
        return cls(
            song_root_url=settings.song_root_url,
            score_root_url=settings.score_root_url,
            api_token=settings.system_api_token,
            client=client,
            timeout_seconds=settings.http_timeout_seconds,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "RemoteServiceGateway":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    # metadata service

    async def submit_payload(self, study_id: str, payload_json: str) -> SubmitResponse:
        stage = "submit"
        response = await self._send(
            stage,
            "POST",
            f"{self._song_root_url}/submit/{_segment(study_id)}",
            content=payload_json.encode("utf-8"),
            headers={"Content-Type": "application/json"},
        )
        return self._decode(stage, response, SubmitResponse.from_dict)

    async def fetch_analysis_file(
        self, study_id: str, analysis_id: str
    ) -> AnalysisFile | None:
        """Return the first file registered on an analysis, or None if none is yet."""
        stage = "fetch-file"
        response = await self._send(
            stage,
            "GET",
            f"{self._song_root_url}/studies/{_segment(study_id)}"
            f"/analysis/{_segment(analysis_id)}/files",
        )
        files = self._decode(stage, response, _analysis_files)
        if not files:
            return None
        if len(files) > 1:
            Log.warning(
                f"Analysis {analysis_id} has {len(files)} files, only "
                f"{files[0].file_name} will be uploaded"
            )
        return files[0]

    async def publish_analysis(self, study_id: str, analysis_id: str) -> int:
        response = await self._send(
            "publish",
            "PUT",
            f"{self._song_root_url}/studies/{_segment(study_id)}"
            f"/analysis/publish/{_segment(analysis_id)}",
            params={"ignoreUndefinedMd5": "false"},
        )
        return response.status_code

    # storage service

    async def init_upload(self, analysis_file: AnalysisFile, md5: str) -> UploadSpec:
        stage = "init-upload"
        response = await self._send(
            stage,
            "POST",
            f"{self._score_root_url}/upload/{_segment(analysis_file.object_id)}/uploads",
            params={
                "fileSize": str(analysis_file.file_size),
                "md5": md5,
                "overwrite": "true",
            },
        )
        return self._decode(stage, response, UploadSpec.from_dict)

    async def upload_part(
        self, upload_spec: UploadSpec, content: str | bytes, md5: str
    ) -> str:
        """PUT the file to the single presigned part URL and return the unquoted ETag.

        ``md5`` is not sent here; it is verified by the storage service when
        the part is finalized.
        """
        stage = "upload-part"
        if len(upload_spec.parts) != 1:
            raise PreconditionError(
                stage,
                f"Expected exactly one upload part for object {upload_spec.object_id}, "
                f"got {len(upload_spec.parts)}",
            )
        body = content.encode("utf-8") if isinstance(content, str) else content
        response = await self._send(
            stage,
            "PUT",
            decode_url(upload_spec.parts[0].url),
            authenticated=False,
            content=body,
            headers={"Content-Type": "text/plain", "Content-Length": str(len(body))},
        )
        etag = response.headers.get("ETag")
        if not etag:
            raise DecodeError(stage, f"Storage response for {upload_spec.object_id} has no ETag")
        return strip_etag(etag)

    async def finalize_part(self, upload_spec: UploadSpec, md5: str, etag: str) -> int:
        response = await self._send(
            "finalize-part",
            "POST",
            f"{self._score_root_url}/upload/{_segment(upload_spec.object_id)}/parts",
            params={
                "uploadId": upload_spec.upload_id,
                "etag": etag,
                "md5": md5,
                "partNumber": "1",
            },
        )
        return response.status_code

    async def finalize_upload(self, upload_spec: UploadSpec) -> int:
        response = await self._send(
            "finalize-upload",
            "POST",
            f"{self._score_root_url}/upload/{_segment(upload_spec.object_id)}",
            params={"uploadId": upload_spec.upload_id},
        )
        return response.status_code

    async def fetch_download_link(self, object_id: str) -> str:
        stage = "download-link"
        response = await self._send(
            stage,
            "GET",
            f"{self._score_root_url}/download/{_segment(object_id)}",
            params={"offset": "0", "length": "-1", "external": "true"},
        )
        # length=-1 asks for the whole object as one part
        spec = self._decode(stage, response, UploadSpec.from_dict)
        if not spec.parts:
            raise PreconditionError(stage, f"Download descriptor for {object_id} has no parts")
        return spec.parts[0].url

    async def download_part(self, presigned_url: str) -> bytes:
        response = await self._send(
            "download", "GET", decode_url(presigned_url), authenticated=False
        )
        return response.content

    async def _send(
        self,
        stage: str,
        method: str,
        url: str,
        *,
        authenticated: bool = True,
        headers: dict[str, str] | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        request_headers = dict(headers or {})
        if authenticated:
            request_headers["Authorization"] = f"Bearer {self._api_token}"
        Log.debug(f"[{stage}] {method} {url}")
        try:
            response = await self._client.request(
                method, url, headers=request_headers, **kwargs
            )
        except httpx.InvalidURL as exc:
            raise DecodeError(stage, f"Invalid URL {url!r}: {exc}") from exc
        except httpx.TransportError as exc:
            raise TransportError(stage, f"{method} {url} failed: {exc}") from exc
        if not response.is_success:
            raise RemoteRejection(
                stage,
                f"{method} {url} returned {response.status_code}",
                status_code=response.status_code,
            )
        return response

    @staticmethod
    def _decode(stage: str, response: httpx.Response, build: Callable[[Any], T]) -> T:
        try:
            return build(response.json())
        except (KeyError, TypeError, ValueError) as exc:
            raise DecodeError(stage, f"Unexpected response body: {exc}") from exc
