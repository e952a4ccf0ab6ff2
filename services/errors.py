class FileServiceError(Exception):
    """Base class for errors rendered as ``{success: false, code, message}``."""

    status_code = 500
    code = "ServerError"
    message = "Internal server error"

    def __init__(self, message=None, code=None, details=None, stage=None):
        self.message = message or self.message
        self.code = code or self.code
        self.details = details
        self.stage = stage
        super().__init__(self.message)

    def to_dict(self):
        body = {"success": False, "code": self.code, "message": self.message}
        if self.stage:
            body["stage"] = self.stage
        if self.details is not None:
            body["errors"] = self.details
        return body


class ValidationError(FileServiceError):
    status_code = 400
    code = "ValidationError"
    message = "Validation failed"


class UploadRejected(ValidationError):
    """A single file failed pre-transfer validation.

    ``code`` is one of ``SizeExceeded``, ``UnsupportedType`` or
    ``UnsupportedExtension``.
    """


class AuthenticationError(FileServiceError):
    status_code = 401
    code = "AuthenticationError"
    message = "Invalid or missing credentials"


class NotFoundOrForbidden(FileServiceError):
    # Same shape whether the record is missing or just not visible to the actor
    status_code = 404
    code = "NotFoundOrForbidden"
    message = "File not found or access denied"


class NotFound(FileServiceError):
    status_code = 404
    code = "NotFound"
    message = "Not found"


class BinaryObjectNotFound(NotFound):
    message = "Stored file content not found"


class UnsupportedPreview(ValidationError):
    code = "UnsupportedPreview"
    message = "File type does not support preview"


class StoreError(FileServiceError):
    code = "StoreError"
    message = "File storage is unavailable"


class ConsistencyError(FileServiceError):
    code = "ConsistencyError"
    message = "File storage is in an inconsistent state"


class UpstreamError(Exception):
    """AI provider failure. Never rendered as an HTTP error, callers downgrade it."""


class UpstreamTimeout(UpstreamError):
    pass
