"""
exceptions.py

시험 세션 도메인 예외 모음.
라우트 계층에서 HTTPException으로 변환된다.
"""


class ProctoredTestError(Exception):
    """Base exception for proctored Q&A test sessions."""


class InvalidAssessmentError(ProctoredTestError):
    """Raised when a test cannot be started (no questions or no time limit)."""


class SessionStateError(ProctoredTestError):
    """Raised when an operation is not allowed in the current session status."""


class FullscreenRequestError(ProctoredTestError):
    """Raised by a fullscreen controller when the platform rejects the request."""


class FullscreenRequiredError(ProctoredTestError):
    """Raised when fullscreen could not be confirmed before the test started."""


class BackendError(ProctoredTestError):
    """Base class for failures talking to the learning backend."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class AuthenticationError(BackendError):
    """Raised when the access token is rejected and cannot be refreshed."""


class CatalogError(BackendError):
    """Raised when the list of available tests cannot be loaded."""


class SubmissionError(BackendError):
    """Raised when the backend does not accept a submission."""
