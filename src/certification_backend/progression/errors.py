import typing

from certification_backend.utils.apig_utils import ErrorCode, create_error_response


class CertificationError(Exception):
    """Base class for failures of the progress/assessment core. Each maps onto one API error code."""

    error_code: typing.ClassVar[ErrorCode] = ErrorCode.INTERNAL_ERROR

    def __init__(self, message: str, details: typing.Any = None) -> None:
        self.message = message
        self.details = details
        super().__init__(message)


class UnauthorizedError(CertificationError):
    error_code = ErrorCode.AUTHENTICATION_FAILED


class ForbiddenError(CertificationError):
    error_code = ErrorCode.AUTHORIZATION_FAILED


class NotEnrolledError(ForbiddenError):
    """No enrollment with a completed payment exists for the user and module."""


class NotFoundError(CertificationError):
    error_code = ErrorCode.RESOURCE_NOT_FOUND


class InvalidRequestError(CertificationError):
    error_code = ErrorCode.VALIDATION_ERROR


class ConflictError(CertificationError):
    error_code = ErrorCode.CONFLICT


class InternalError(CertificationError):
    error_code = ErrorCode.INTERNAL_ERROR


def create_certification_error_response(
    error: CertificationError, event: typing.Optional[dict[str, typing.Any]] = None
) -> dict[str, typing.Any]:
    return create_error_response(error.error_code, error.message, details=error.details, event=event)
