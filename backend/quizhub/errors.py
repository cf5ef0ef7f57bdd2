# Typed service errors mapped to HTTP status classes by the app.
from fastapi import status


class QuizHubError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class NotFoundError(QuizHubError):
    status_code = status.HTTP_404_NOT_FOUND


# Raised for identifiers that are malformed or point outside the expected scope.
class InvalidReferenceError(QuizHubError):
    status_code = status.HTTP_400_BAD_REQUEST


class InvalidInputError(QuizHubError):
    status_code = status.HTTP_400_BAD_REQUEST


# Raised when an operation is not allowed in the quiz's current state.
class InvalidStateError(QuizHubError):
    status_code = status.HTTP_409_CONFLICT


class ConflictError(QuizHubError):
    status_code = status.HTTP_409_CONFLICT


class InsufficientContentError(QuizHubError):
    status_code = status.HTTP_400_BAD_REQUEST


class UnauthorizedError(QuizHubError):
    status_code = status.HTTP_401_UNAUTHORIZED


class ForbiddenError(QuizHubError):
    status_code = status.HTTP_403_FORBIDDEN


# Raised when a store or provider call fails; wraps the upstream message.
class UpstreamError(QuizHubError):
    status_code = status.HTTP_502_BAD_GATEWAY
