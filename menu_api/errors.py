"""
Error taxonomy shared by every service.

Each failure carries an ErrorKind tag. Caller-correctable kinds (bad input,
missing entities, auth problems) are surfaced to clients verbatim; INTERNAL
failures get a generic message while the cause is logged for operators.
"""

import uuid
from enum import Enum


class ErrorKind(str, Enum):
    BAD_REQUEST = "BAD_REQUEST"
    UNAUTHENTICATED = "UNAUTHENTICATED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    INTERNAL = "INTERNAL_SERVER_ERROR"

    @property
    def status_code(self) -> int:
        return _STATUS_CODES[self]

    @property
    def caller_correctable(self) -> bool:
        return self is not ErrorKind.INTERNAL


_STATUS_CODES = {
    ErrorKind.BAD_REQUEST: 400,
    ErrorKind.UNAUTHENTICATED: 401,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.INTERNAL: 500,
}


class ServiceError(Exception):
    kind: ErrorKind = ErrorKind.INTERNAL
    default_message = "Internal server error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    @property
    def status_code(self) -> int:
        return self.kind.status_code


class BadRequestError(ServiceError):
    kind = ErrorKind.BAD_REQUEST
    default_message = "Bad request"


class AuthenticationError(ServiceError):
    kind = ErrorKind.UNAUTHENTICATED
    default_message = "Not authenticated"


class ForbiddenError(ServiceError):
    kind = ErrorKind.FORBIDDEN
    default_message = "Insufficient permissions"


class NotFoundError(ServiceError):
    kind = ErrorKind.NOT_FOUND
    default_message = "Resource not found"


class InternalServerError(ServiceError):
    kind = ErrorKind.INTERNAL


def parse_uuid(value: str | uuid.UUID, label: str) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        raise BadRequestError(f"Invalid {label} id: {value}")
