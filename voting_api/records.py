"""
Internal records shared by the stores, the vote transaction and the result
aggregator.

This module contains:
- Voter, Group, Candidate, VoteEvent: persisted entities
- VoteReceipt: what a committed vote hands back to the caller
- ElectionSnapshot: one self-consistent read of the whole election
- Small helpers for identities and timestamps
"""

from dataclasses import dataclass, asdict, field
from datetime import datetime, timezone
from typing import Optional, Dict, Any, List

# Candidate ids are stored as PostgreSQL integers
MAX_CANDIDATE_ID = 2**31 - 1


@dataclass
class Voter:
    """
    An eligible identity permitted to cast one vote.

    Attributes:
        email: Verified, lower-cased email (primary identity)
        name: Display name from the identity provider
        image: Optional avatar URL
        has_voted: Flips false -> true once, never back
        created_at: When the voter first signed in
    """
    email: str
    name: str
    image: Optional[str] = None
    has_voted: bool = False
    created_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Group:
    """A named category partitioning candidates (an office being contested)."""
    name: str
    description: str = ""
    is_active: bool = True
    created_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Group':
        return cls(**data)


@dataclass
class Candidate:
    """
    A nominee belonging to exactly one group.

    Attributes:
        id: Store-assigned integer identifier
        name: Display name
        position: Position label shown on the ballot
        group: Name of the owning group
        description: Optional manifesto line
        vote_count: Committed votes, only ever incremented by one
        created_at: Seeding timestamp
    """
    id: int
    name: str
    position: str
    group: str
    description: Optional[str] = None
    vote_count: int = 0
    created_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class CandidateSeed:
    """Candidate definition prior to storage (no id, no votes)."""
    name: str
    position: str
    group: str
    description: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CandidateSeed':
        return cls(**data)


@dataclass(frozen=True)
class VoteEvent:
    """Append-only record of one committed vote."""
    voter_email: str
    candidate_id: int
    cast_at: datetime


@dataclass(frozen=True)
class VoteReceipt:
    """Confirmation of a committed vote. Deliberately omits the candidate."""
    voter_email: str
    cast_at: datetime


@dataclass
class ElectionSnapshot:
    """
    Everything the result aggregator needs, read in one consistent pass.

    Attributes:
        groups: Active groups in creation order
        candidates: All candidates in id order
        total_voters: Voters with has_voted set
        recent_votes: Vote events per candidate id since ``window_start``
        last_vote_at: Timestamp of the newest vote event, if any
        window_start: Lower bound used for ``recent_votes``
        taken_at: When the snapshot was read
    """
    groups: List[Group]
    candidates: List[Candidate]
    total_voters: int = 0
    recent_votes: Dict[int, int] = field(default_factory=dict)
    last_vote_at: Optional[datetime] = None
    window_start: Optional[datetime] = None
    taken_at: datetime = field(default_factory=lambda: utc_now())

    @property
    def total_votes(self) -> int:
        return sum(candidate.vote_count for candidate in self.candidates)


def normalize_email(email: str) -> str:
    """Canonical form of an email identity: trimmed and lower-cased."""
    return (email or "").strip().lower()


def utc_now() -> datetime:
    """Current timezone-aware UTC time."""
    return datetime.now(timezone.utc)
