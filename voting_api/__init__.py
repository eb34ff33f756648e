"""
Student council voting service.

This package contains:
- Storage backends (PostgreSQL and in-memory) behind one store interface
- The vote transaction and the result aggregator
- The eligibility gate and Google sign-in with session tokens
- The FastAPI application in ``voting_api.main``
"""

from .ballot import cast_vote
from .eligibility import EligibilityGate, load_allow_list
from .errors import (
    VoteError,
    Unauthenticated,
    Ineligible,
    AlreadyVoted,
    VoterNotFound,
    CandidateNotFound,
    ValidationFailed,
    AdminAccessDenied,
    ElectionInProgress,
    StorageUnavailable,
)
from .records import Candidate, CandidateSeed, Group, Voter, VoteEvent, VoteReceipt
from .results import ResultAggregator
from .seed import seed_election
from .store import MemoryStore, VoteStore

__all__ = [
    'cast_vote',
    'EligibilityGate',
    'load_allow_list',
    'VoteError',
    'Unauthenticated',
    'Ineligible',
    'AlreadyVoted',
    'VoterNotFound',
    'CandidateNotFound',
    'ValidationFailed',
    'AdminAccessDenied',
    'ElectionInProgress',
    'StorageUnavailable',
    'Candidate',
    'CandidateSeed',
    'Group',
    'Voter',
    'VoteEvent',
    'VoteReceipt',
    'ResultAggregator',
    'seed_election',
    'MemoryStore',
    'VoteStore',
]

__version__ = '1.0.0'
