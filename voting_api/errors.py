"""Error taxonomy for the voting service.

Every failure a caller can observe is a ``VoteError`` subclass carrying a
machine-readable ``reason``. The HTTP layer maps each class to a status code;
nothing here knows about HTTP.
"""


class VoteError(Exception):
    """Base class for domain errors."""

    reason = "internal_error"
    default_message = "Unexpected error"

    def __init__(self, message: str = None, **details):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        self.details = details


class Unauthenticated(VoteError):
    """No verified identity accompanies the request."""
    reason = "unauthenticated"
    default_message = "Unauthorized"


class Ineligible(VoteError):
    """Identity failed the domain or allow-list check at sign-in."""
    reason = "ineligible"
    default_message = "This account is not eligible to vote"


class AlreadyVoted(VoteError):
    """The voter has already cast their vote. Safe to treat as a no-op."""
    reason = "already_voted"
    default_message = "You have already voted"


class VoterNotFound(VoteError):
    reason = "voter_not_found"
    default_message = "User not found"


class CandidateNotFound(VoteError):
    reason = "candidate_not_found"
    default_message = "Candidate not found"


class ValidationFailed(VoteError):
    """A required field is missing or malformed."""
    reason = "validation_error"
    default_message = "Invalid request"


class AdminAccessDenied(VoteError):
    reason = "forbidden"
    default_message = "Administrative access denied"


class ElectionInProgress(VoteError):
    """Refusal to reset the election while votes are recorded."""
    reason = "election_in_progress"
    default_message = "Votes have already been cast; pass force to reset"


class StorageUnavailable(VoteError):
    """Backing store unreachable or erroring."""
    reason = "storage_unavailable"
    default_message = "Storage unavailable"
