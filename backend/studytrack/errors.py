"""Error taxonomy for the data access layer.

Services raise these exceptions unmodified; the HTTP layer maps each
one to a status code and a stable `error` code in the JSON body.
"""


class StudyTrackError(Exception):
    """Base class for every failure surfaced by a service call."""
    status_code = 400
    code = "error"

    def __init__(self, detail: str = ""):
        super().__init__(detail or self.code)
        self.detail = detail or self.code


class Unauthenticated(StudyTrackError):
    """No caller identity was supplied (or the token could not be verified)."""
    status_code = 401
    code = "unauthenticated"


class UserNotFound(StudyTrackError):
    """The caller is authenticated but has no provisioned user record."""
    status_code = 404
    code = "user_not_found"


class NotFound(StudyTrackError):
    """The targeted record does not exist."""
    status_code = 404
    code = "not_found"


class Unauthorized(StudyTrackError):
    """The targeted record exists but belongs to another user."""
    status_code = 403
    code = "unauthorized"


class ValidationError(StudyTrackError):
    """A required field is missing or a value is outside its declared set."""
    status_code = 422
    code = "validation_error"

    def __init__(self, detail: str = "", errors=None):
        super().__init__(detail)
        self.errors = errors or []
