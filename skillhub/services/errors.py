"""Typed failures raised by the session negotiation services.

Routers translate these into ``HTTPException`` using ``status_code``; callers
and tests rely on telling "not found", "not authorized" and "wrong state"
apart, so each gets its own class.
"""


class SessionFlowError(Exception):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidRequestError(SessionFlowError):
    """Malformed input: unknown action, missing reason, self-session, ..."""
    status_code = 400


class NotParticipantError(SessionFlowError):
    status_code = 403


class ActionNotAllowedError(SessionFlowError):
    """The actor is a participant but not the one allowed to take this step."""
    status_code = 403


class RecordNotFoundError(SessionFlowError):
    status_code = 404


class InvalidStateError(SessionFlowError):
    status_code = 400


class DuplicateRequestError(SessionFlowError):
    status_code = 400


class ConcurrentUpdateError(SessionFlowError):
    """A conditional update matched no rows because another request got there first."""
    status_code = 409
