class DatabaseError(Exception):
    """Base exception for upload-table related errors."""


class RecordDecodeError(DatabaseError):
    """Raised when a notification payload cannot be decoded into an UploadRecord.

    This usually means the upload table and this service disagree on the
    schema, so it is surfaced rather than dropped.
    """
