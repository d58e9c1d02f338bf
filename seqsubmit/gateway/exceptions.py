class SubmissionError(Exception):
    """Base exception for a failed call to the metadata or storage service.

    Every error is tagged with the pipeline stage that produced it so callers
    can tell how far a submission got.
    """

    def __init__(self, stage: str, message: str) -> None:
        super().__init__(f"[{stage}] {message}")
        self.stage = stage
        self.message = message


class TransportError(SubmissionError):
    """Raised when the remote service could not be reached or timed out."""


class RemoteRejection(SubmissionError):
    """Raised when the remote service answers with a non-2xx status."""

    def __init__(self, stage: str, message: str, status_code: int) -> None:
        super().__init__(stage, message)
        self.status_code = status_code


class DecodeError(SubmissionError):
    """Raised when a response body or header does not have the expected shape."""


class PreconditionError(SubmissionError):
    """Raised when remote state does not allow the next stage to run."""
