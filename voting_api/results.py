"""
Read-only projections over the election state.

Candidates are ranked by vote count descending, then by id ascending, so every
view is deterministic. A group has a winner only when its leader has at least
one vote and no other candidate matches that count; a tied lead is reported
through ``is_tie`` instead of being broken arbitrarily.
"""
import logging
from datetime import timedelta
from typing import List, Optional, Sequence, Tuple

from .models import (
    BallotCandidate,
    BallotGroup,
    CandidateResult,
    CandidatesResponse,
    GroupResult,
    LiveCandidateResult,
    LiveGroupResult,
    LiveResponse,
    LiveStats,
    ResultsResponse,
)
from .records import Candidate, ElectionSnapshot, Group, utc_now
from .store import VoteStore

logger = logging.getLogger(__name__)


def vote_percentage(count: int, total: int) -> float:
    """Share of ``total`` as a percentage with two decimals; 0 for an empty group."""
    if total <= 0:
        return 0.0
    return round(count / total * 100, 2)


def rank_candidates(candidates: Sequence[Candidate]) -> List[Candidate]:
    return sorted(candidates, key=lambda c: (-c.vote_count, c.id))


def pick_winner(ranked: Sequence[Candidate]) -> Tuple[Optional[Candidate], bool]:
    """Return (winner, is_tie) for an already ranked group."""
    if not ranked or ranked[0].vote_count == 0:
        return None, False
    if len(ranked) > 1 and ranked[1].vote_count == ranked[0].vote_count:
        return None, True
    return ranked[0], False


def partition_by_group(groups: Sequence[Group], candidates: Sequence[Candidate]) -> List[Tuple[Group, List[Candidate]]]:
    """Pair each group with its ranked candidates, preserving group order."""
    members = {group.name: [] for group in groups}
    for candidate in candidates:
        if candidate.group in members:
            members[candidate.group].append(candidate)
    return [(group, rank_candidates(members[group.name])) for group in groups]


def build_ballot(groups: Sequence[Group], candidates: Sequence[Candidate]) -> CandidatesResponse:
    """Ballot view: candidates listed in id order under each active group."""
    ordered = sorted(candidates, key=lambda c: c.id)
    ballot = []
    for group in groups:
        ballot.append(BallotGroup(
            group=group.name,
            description=group.description,
            candidates=[
                BallotCandidate(
                    id=c.id,
                    name=c.name,
                    position=c.position,
                    description=c.description,
                    vote_count=c.vote_count,
                )
                for c in ordered
                if c.group == group.name
            ],
        ))
    return CandidatesResponse(groups=ballot)


def _candidate_result(candidate: Candidate, group_total: int) -> CandidateResult:
    return CandidateResult(
        id=candidate.id,
        name=candidate.name,
        position=candidate.position,
        description=candidate.description,
        vote_count=candidate.vote_count,
        vote_percentage=vote_percentage(candidate.vote_count, group_total),
    )


def build_results(snapshot: ElectionSnapshot) -> ResultsResponse:
    """Aggregate results for every active group."""
    results = []
    for group, ranked in partition_by_group(snapshot.groups, snapshot.candidates):
        group_total = sum(c.vote_count for c in ranked)
        rows = [_candidate_result(c, group_total) for c in ranked]
        winner, is_tie = pick_winner(ranked)
        results.append(GroupResult(
            group=group.name,
            description=group.description,
            candidates=rows,
            total_votes=group_total,
            winner=rows[0] if winner is not None else None,
            is_tie=is_tie,
        ))

    return ResultsResponse(
        results=results,
        total_votes=snapshot.total_votes,
        timestamp=snapshot.taken_at,
    )


def build_live_results(snapshot: ElectionSnapshot, window_seconds: int) -> LiveResponse:
    """Results plus activity derived from the vote event log."""
    groups = []
    for group, ranked in partition_by_group(snapshot.groups, snapshot.candidates):
        group_total = sum(c.vote_count for c in ranked)
        rows = [
            LiveCandidateResult(
                **_candidate_result(c, group_total).model_dump(),
                recent_votes=snapshot.recent_votes.get(c.id, 0),
            )
            for c in ranked
        ]
        winner, is_tie = pick_winner(ranked)
        groups.append(LiveGroupResult(
            group=group.name,
            description=group.description,
            candidates=rows,
            total_votes=group_total,
            winner=rows[0] if winner is not None else None,
            is_tie=is_tie,
        ))

    recent_total = sum(snapshot.recent_votes.values())
    window_minutes = window_seconds / 60 if window_seconds > 0 else 0
    voting_rate = round(recent_total / window_minutes, 1) if window_minutes else 0.0

    stats = LiveStats(
        total_votes=snapshot.total_votes,
        total_voters=snapshot.total_voters,
        active_categories=len(snapshot.groups),
        last_vote_time=snapshot.last_vote_at,
        voting_rate=voting_rate,
    )
    return LiveResponse(groups=groups, stats=stats, timestamp=snapshot.taken_at)


class ResultAggregator:
    """Loads snapshots from a store and projects them into API views."""

    def __init__(self, store: VoteStore, recent_window_seconds: int = 300):
        self.store = store
        self.recent_window_seconds = recent_window_seconds

    async def get_ballot(self) -> CandidatesResponse:
        groups, candidates = await self.store.list_ballot()
        return build_ballot(groups, candidates)

    async def get_results(self) -> ResultsResponse:
        snapshot = await self.store.load_snapshot(since=utc_now())
        return build_results(snapshot)

    async def get_live_results(self) -> LiveResponse:
        since = utc_now() - timedelta(seconds=self.recent_window_seconds)
        snapshot = await self.store.load_snapshot(since=since)
        return build_live_results(snapshot, self.recent_window_seconds)
