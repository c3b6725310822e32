"""
Error taxonomy for the AutoPR API.

Every error carries the HTTP status it maps to and a short machine-readable
type. Job-level failures are recorded on the job instead of being raised.
"""


class ImplementationError(Exception):
    """Base class for errors surfaced by the API"""
    status_code = 500
    error_type = "internal_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.message, "type": self.error_type}


class ValidationError(ImplementationError):
    """Missing or malformed required input. No job is ever created."""
    status_code = 400
    error_type = "validation_error"


class NotFoundError(ImplementationError):
    """Unknown job, batch, or repository"""
    status_code = 404
    error_type = "not_found"


class UpstreamError(ImplementationError):
    """A GitHub, LLM, CLI, git, or Vercel call failed"""
    status_code = 502
    error_type = "upstream_error"

    def __init__(self, message: str, service: str = "upstream", upstream_status: int | None = None):
        super().__init__(message)
        self.service = service
        self.upstream_status = upstream_status

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload["service"] = self.service
        if self.upstream_status is not None:
            payload["upstreamStatus"] = self.upstream_status
        return payload


class JobTimeoutError(UpstreamError):
    """The code-generation CLI exceeded its time bound"""
    status_code = 504
    error_type = "timeout"

    def __init__(self, message: str, timeout: float | None = None):
        super().__init__(message, service="gemini-cli")
        self.timeout = timeout
