"""Error types raised by the quiz services.

Each error carries the HTTP status the API layer answers with, so the request
boundary can turn any of them into a ``{"success": false, "message": ...}``
body without knowing which service raised it.
"""


class QuizAIError(Exception):
    http_status = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(QuizAIError, ValueError):
    http_status = 400


class TextTooShortError(ValidationError):
    pass


class QuizValidationError(ValidationError):
    """The model's output could not be turned into a valid quiz."""


class AccessDeniedError(QuizAIError, PermissionError):
    http_status = 403


class NotFoundError(QuizAIError, LookupError):
    http_status = 404


class ConflictError(QuizAIError, ValueError):
    http_status = 409


class AlreadyTakenError(ConflictError):
    def __init__(self, message: str, quiz_title: str | None = None):
        super().__init__(message)
        self.quiz_title = quiz_title


class InvalidStatusTransition(ConflictError):
    pass


class UpstreamModelError(QuizAIError, RuntimeError):
    http_status = 502


class QuotaExceededError(UpstreamModelError):
    http_status = 429


class ContentBlockedError(UpstreamModelError):
    http_status = 422


class PersistenceError(QuizAIError, RuntimeError):
    http_status = 500
