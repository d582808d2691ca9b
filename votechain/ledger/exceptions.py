from rest_framework import status


class LedgerError(Exception):
    """Base exception for every ledger failure"""

    code = "ledger_error"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Ledger operation failed"

    def __init__(self, message=None):
        super().__init__(message or self.default_message)


class Unauthorized(LedgerError):
    """Raised when a non-administrator calls an admin-only operation"""

    code = "unauthorized"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Only owner can perform this action"


class AlreadyRegistered(LedgerError):
    """Raised when an address is registered twice"""

    code = "already_registered"
    status_code = status.HTTP_409_CONFLICT
    default_message = "Voter already registered"


class NotRegisteredVoter(LedgerError):
    """Raised when an unregistered address tries to vote"""

    code = "not_registered_voter"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Not registered voter"


class VotingEnded(LedgerError):
    """Raised when a vote arrives outside the open window"""

    code = "voting_ended"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Voting has ended"


class AlreadyVoted(LedgerError):
    """Raised when a voter tries to vote twice"""

    code = "already_voted"
    status_code = status.HTTP_409_CONFLICT
    default_message = "Already voted"


class InvalidCandidate(LedgerError):
    """Raised when a candidate id does not exist"""

    code = "invalid_candidate"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Invalid candidate"


class VotingStillActive(LedgerError):
    """Raised when the winner is requested while voting is open"""

    code = "voting_still_active"
    status_code = status.HTTP_409_CONFLICT
    default_message = "Voting is still active"


class InvalidDuration(LedgerError):
    """Raised when a voting window is opened with a negative duration"""

    code = "invalid_duration"
    default_message = "Duration must be a non-negative number of seconds"
