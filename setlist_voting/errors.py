"""
Error kinds shared by the ledger, the HTTP API and the client voting core.

The kind strings double as the wire reasons returned by the API, so the
HTTP ledger client can turn a JSON error back into the same exception.
"""

UNAUTHENTICATED = "unauthenticated"
ALREADY_VOTED = "already_voted"
SHOW_QUOTA_EXCEEDED = "show_limit_reached"
DAILY_QUOTA_EXCEEDED = "daily_limit_reached"
RATE_LIMITED = "rate_limited"
NOT_FOUND = "not_found"
DUPLICATE_SONG = "duplicate_song"
INVALID_REQUEST = "invalid_request"
SUBMISSION_FAILED = "submission_failed"
CONNECTION_LOST = "connection_lost"


class VotingError(Exception):
    """Base class for every failure the voting core reports"""

    kind = SUBMISSION_FAILED
    status_code = 500
    default_message = "Failed to vote. Please try again."

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self):
        return {"success": False, "error": self.kind, "message": self.message}


class UnauthenticatedError(VotingError):
    kind = UNAUTHENTICATED
    status_code = 401
    default_message = "Please log in to vote"


class AlreadyVotedError(VotingError):
    kind = ALREADY_VOTED
    status_code = 409
    default_message = "You have already voted for this song"


class ShowQuotaExceededError(VotingError):
    kind = SHOW_QUOTA_EXCEEDED
    status_code = 403
    default_message = "Vote limit for this show reached (10 votes)"


class DailyQuotaExceededError(VotingError):
    kind = DAILY_QUOTA_EXCEEDED
    status_code = 403
    default_message = "Daily vote limit reached (50 votes)"


class RateLimitedError(VotingError):
    kind = RATE_LIMITED
    status_code = 429
    default_message = "Rate limit exceeded. Try again in a minute."


class NotFoundError(VotingError):
    kind = NOT_FOUND
    status_code = 404
    default_message = "Not found"


class SetlistNotFoundError(NotFoundError):
    default_message = "Setlist not found"


class SetlistSongNotFoundError(NotFoundError):
    default_message = "Song not found in setlist"


class DuplicateSongError(VotingError):
    kind = DUPLICATE_SONG
    status_code = 409
    default_message = "Song is already in this setlist"


class InvalidRequestError(VotingError):
    kind = INVALID_REQUEST
    status_code = 400
    default_message = "Missing required fields"


class SubmissionFailedError(VotingError):
    kind = SUBMISSION_FAILED
    status_code = 500


class ConnectionLostError(VotingError):
    kind = CONNECTION_LOST
    status_code = 503
    default_message = "Lost connection to live updates"


ERRORS_BY_KIND = {
    cls.kind: cls
    for cls in (
        UnauthenticatedError,
        AlreadyVotedError,
        ShowQuotaExceededError,
        DailyQuotaExceededError,
        RateLimitedError,
        NotFoundError,
        DuplicateSongError,
        InvalidRequestError,
        SubmissionFailedError,
        ConnectionLostError,
    )
}


def error_from_kind(kind, message=None):
    """Rebuild the exception for a wire error kind (unknown kinds are generic failures)"""
    error_class = ERRORS_BY_KIND.get(kind, SubmissionFailedError)
    return error_class(message)
