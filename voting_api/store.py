"""Storage interface for voters, candidates and vote events.

Two backends implement ``VoteStore``: ``PostgresStore`` in ``database.py`` and
``MemoryStore`` below, which serves local runs and the test suite.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

from .errors import AlreadyVoted, CandidateNotFound, ElectionInProgress, VoterNotFound
from .records import (
    Candidate,
    CandidateSeed,
    ElectionSnapshot,
    Group,
    VoteEvent,
    VoteReceipt,
    Voter,
    normalize_email,
    utc_now,
)

logger = logging.getLogger(__name__)


class VoteStore(ABC):
    """Shared mutable state of the election.

    ``record_vote`` is the only operation allowed to flip ``has_voted`` or
    increment a tally, and it must do both (plus append the vote event)
    atomically, with the ``has_voted`` check-and-set linearizable per voter.
    """

    async def initialize(self):
        """Open connections and prepare the schema."""

    async def close(self):
        """Release connections."""

    @abstractmethod
    async def check_health(self) -> bool:
        ...

    @abstractmethod
    async def upsert_voter(self, email: str, name: str, image: Optional[str] = None) -> Voter:
        """Create the voter on first sign-in, refresh profile fields afterwards.

        Never touches ``has_voted``.
        """

    @abstractmethod
    async def get_voter(self, email: str) -> Optional[Voter]:
        ...

    @abstractmethod
    async def list_ballot(self) -> Tuple[List[Group], List[Candidate]]:
        """Active groups and all candidates."""

    @abstractmethod
    async def load_snapshot(self, since: datetime) -> ElectionSnapshot:
        """Read groups, tallies and recent activity in one consistent pass."""

    @abstractmethod
    async def record_vote(self, email: str, candidate_id: int, cast_at: datetime) -> VoteReceipt:
        """Atomically commit one vote.

        Raises:
            VoterNotFound: no voter with this email
            AlreadyVoted: the voter's flag is already set
            CandidateNotFound: no candidate with this id
        """

    @abstractmethod
    async def reset_election(self, groups: Sequence[Group], candidates: Sequence[CandidateSeed],
                             force: bool = False) -> None:
        """Replace all groups and candidates.

        Raises ElectionInProgress when votes exist and ``force`` is false.
        With ``force`` the vote log is cleared and every voter may vote again.
        """


class MemoryStore(VoteStore):
    """In-process store guarded by a single asyncio lock."""

    def __init__(self):
        self._lock = asyncio.Lock()
        self._voters: Dict[str, Voter] = {}
        self._groups: List[Group] = []
        self._candidates: Dict[int, Candidate] = {}
        self._events: List[VoteEvent] = []
        self._next_candidate_id = 1

    async def check_health(self) -> bool:
        return True

    async def upsert_voter(self, email: str, name: str, image: Optional[str] = None) -> Voter:
        email = normalize_email(email)
        async with self._lock:
            voter = self._voters.get(email)
            if voter is None:
                voter = Voter(email=email, name=name or "", image=image, created_at=utc_now())
                self._voters[email] = voter
                logger.info(f"Voter registered: {email}")
            else:
                voter.name = name or voter.name
                voter.image = image or voter.image
            return Voter(**voter.to_dict())

    async def get_voter(self, email: str) -> Optional[Voter]:
        async with self._lock:
            voter = self._voters.get(normalize_email(email))
            return Voter(**voter.to_dict()) if voter else None

    async def list_ballot(self) -> Tuple[List[Group], List[Candidate]]:
        async with self._lock:
            groups = [Group(**g.to_dict()) for g in self._groups if g.is_active]
            candidates = [Candidate(**c.to_dict()) for c in self._candidates.values()]
            return groups, candidates

    async def load_snapshot(self, since: datetime) -> ElectionSnapshot:
        async with self._lock:
            recent: Dict[int, int] = {}
            for event in self._events:
                if event.cast_at >= since:
                    recent[event.candidate_id] = recent.get(event.candidate_id, 0) + 1
            return ElectionSnapshot(
                groups=[Group(**g.to_dict()) for g in self._groups if g.is_active],
                candidates=[Candidate(**c.to_dict()) for c in self._candidates.values()],
                total_voters=sum(1 for v in self._voters.values() if v.has_voted),
                recent_votes=recent,
                last_vote_at=max((e.cast_at for e in self._events), default=None),
                window_start=since,
            )

    async def record_vote(self, email: str, candidate_id: int, cast_at: datetime) -> VoteReceipt:
        email = normalize_email(email)
        async with self._lock:
            voter = self._voters.get(email)
            if voter is None:
                raise VoterNotFound(email=email)
            if voter.has_voted:
                raise AlreadyVoted()
            candidate = self._candidates.get(candidate_id)
            if candidate is None:
                raise CandidateNotFound(candidate_id=candidate_id)

            voter.has_voted = True
            candidate.vote_count += 1
            self._events.append(VoteEvent(voter_email=email, candidate_id=candidate_id, cast_at=cast_at))
            return VoteReceipt(voter_email=email, cast_at=cast_at)

    async def reset_election(self, groups: Sequence[Group], candidates: Sequence[CandidateSeed],
                             force: bool = False) -> None:
        async with self._lock:
            if self._events and not force:
                raise ElectionInProgress(votes=len(self._events))

            self._groups = [Group(name=g.name, description=g.description, is_active=g.is_active,
                                  created_at=utc_now()) for g in groups]
            self._candidates = {}
            self._next_candidate_id = 1
            for seed in candidates:
                candidate = Candidate(
                    id=self._next_candidate_id,
                    name=seed.name,
                    position=seed.position,
                    group=seed.group,
                    description=seed.description,
                    created_at=utc_now(),
                )
                self._candidates[candidate.id] = candidate
                self._next_candidate_id += 1

            if self._events:
                self._events = []
                for voter in self._voters.values():
                    voter.has_voted = False
                logger.warning("Election reset with force: vote log cleared")

    def events(self) -> List[VoteEvent]:
        """Copy of the vote log, oldest first."""
        return list(self._events)
