# appointments/exceptions.py
"""
Errors raised by the scheduling engine.

Every rule violation is raised as a SchedulingError subclass tagged with an
ErrorKind. The kinds are terminal: retrying the same request against the
same state fails the same way, so callers surface them to the user rather
than retrying. StoreUnavailable is the one exception, raised only after the
bounded transient retry has already been spent.
"""

from enum import Enum


class ErrorKind(str, Enum):
    NOT_FOUND = 'not_found'
    INVALID_REQUEST = 'invalid_request'
    CONFLICT = 'conflict'
    FORBIDDEN = 'forbidden'
    UNAVAILABLE = 'unavailable'


class SchedulingError(Exception):
    kind = None

    def __init__(self, message):
        super().__init__(message)
        self.message = message

    def __str__(self):
        return self.message


class NotFound(SchedulingError):
    """Doctor, patient, appointment or slot does not exist or is inactive."""
    kind = ErrorKind.NOT_FOUND


class InvalidRequest(SchedulingError):
    """Well-formed input that breaks a domain rule."""
    kind = ErrorKind.INVALID_REQUEST


class Conflict(SchedulingError):
    """The requested interval is taken, or a concurrent writer got there first."""
    kind = ErrorKind.CONFLICT


class Forbidden(SchedulingError):
    """The caller lacks the relationship the action needs."""
    kind = ErrorKind.FORBIDDEN


class StoreUnavailable(SchedulingError):
    kind = ErrorKind.UNAVAILABLE
