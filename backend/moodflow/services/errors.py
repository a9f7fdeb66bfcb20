# engine error taxonomy
# each error carries the http status and a stable code; main.py maps them to responses

from fastapi import status


class EngineError(Exception):
    """base class for access-control and collaboration errors"""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "engine_error"

    def __init__(self, detail: str = ""):
        self.detail = detail or self.__class__.__name__
        super().__init__(self.detail)


class NotFound(EngineError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class RoleMismatch(EngineError):
    """the acting role cannot perform this operation"""
    status_code = status.HTTP_403_FORBIDDEN
    code = "role_mismatch"


class AccessDenied(EngineError):
    """the viewer has no consent edge to the target patient"""
    status_code = status.HTTP_403_FORBIDDEN
    code = "access_denied"


class AlreadyExists(EngineError):
    status_code = status.HTTP_409_CONFLICT
    code = "already_exists"


class AlreadyConnected(AlreadyExists):
    code = "already_connected"


class SpecialtyIsolationViolation(EngineError):
    """cross-specialty read or write attempt; always audited"""
    status_code = status.HTTP_403_FORBIDDEN
    code = "specialty_isolation_violation"


class Conflict(EngineError):
    """concurrent mutation detected by a uniqueness constraint"""
    status_code = status.HTTP_409_CONFLICT
    code = "conflict"


class InvalidTransition(EngineError):
    status_code = status.HTTP_409_CONFLICT
    code = "invalid_transition"
