"""Vote transaction: validate one ballot and commit it through the store."""
import logging
from typing import Optional

from .errors import AlreadyVoted, Unauthenticated, ValidationFailed, VoteError
from .records import VoteReceipt, normalize_email, utc_now
from .store import VoteStore

logger = logging.getLogger(__name__)


async def cast_vote(store: VoteStore, voter_identity: str, candidate_id: Optional[int]) -> VoteReceipt:
    """
    Cast the single vote of ``voter_identity`` for ``candidate_id``.

    Checks run in a fixed order: missing or non-positive candidate id,
    unknown voter, voter who already voted, unknown candidate. The store
    applies the voter flag, the tally increment and the vote event
    atomically, so retrying after a timeout can only ever end in
    ``AlreadyVoted``.

    Args:
        store: Backing store
        voter_identity: Verified email of the authenticated voter
        candidate_id: Chosen candidate

    Returns:
        VoteReceipt with the commit time (never the chosen candidate)

    Raises:
        ValidationFailed, Unauthenticated, VoterNotFound, AlreadyVoted,
        CandidateNotFound, StorageUnavailable
    """
    identity = normalize_email(voter_identity)
    if not identity:
        raise Unauthenticated()
    if candidate_id is None:
        raise ValidationFailed("Candidate ID is required")
    if candidate_id < 1:
        raise ValidationFailed("Candidate ID must be a positive integer", candidate_id=candidate_id)

    try:
        receipt = await store.record_vote(identity, candidate_id, cast_at=utc_now())
    except AlreadyVoted:
        logger.info(f"Repeat vote rejected: voter={identity}")
        raise
    except VoteError as e:
        logger.warning(f"Vote rejected: voter={identity}, reason={e.reason}")
        raise

    logger.info(f"Vote committed: voter={identity}")
    return receipt
