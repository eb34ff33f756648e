"""Default ballot and the administrative reset-and-repopulate operation."""
import logging
from typing import Dict, Sequence

from .errors import ValidationFailed
from .records import CandidateSeed, Group
from .store import VoteStore

logger = logging.getLogger(__name__)


DEFAULT_GROUPS = [
    Group(name="Student President", description="Vote for the Student Council President"),
    Group(name="Vice President", description="Vote for the Student Council Vice President"),
    Group(name="Secretary", description="Vote for the Student Council Secretary"),
    Group(name="Sports Captain", description="Vote for the Sports Captain"),
]

DEFAULT_CANDIDATES = [
    CandidateSeed("Rahul Sharma", "Student President Candidate", "Student President",
                  "Experienced leader with a vision for student welfare"),
    CandidateSeed("Priya Patel", "Student President Candidate", "Student President",
                  "Advocate for academic excellence and campus improvement"),
    CandidateSeed("Arjun Singh", "Student President Candidate", "Student President",
                  "Tech enthusiast focused on digital campus transformation"),
    CandidateSeed("Sneha Gupta", "Vice President Candidate", "Vice President",
                  "Committed to bridging student-administration gap"),
    CandidateSeed("Vikram Joshi", "Vice President Candidate", "Vice President",
                  "Focused on mental health and student support services"),
    CandidateSeed("Anita Verma", "Secretary Candidate", "Secretary",
                  "Organized leader with excellent communication skills"),
    CandidateSeed("Rohit Kumar", "Secretary Candidate", "Secretary",
                  "Detail-oriented with strong administrative background"),
    CandidateSeed("Kavya Reddy", "Secretary Candidate", "Secretary",
                  "Passionate about transparency and student rights"),
    CandidateSeed("Amit Thakur", "Sports Captain Candidate", "Sports Captain",
                  "National level athlete with leadership experience"),
    CandidateSeed("Pooja Nair", "Sports Captain Candidate", "Sports Captain",
                  "Multi-sport player focused on inclusive sports culture"),
]


def validate_ballot(groups: Sequence[Group], candidates: Sequence[CandidateSeed]) -> None:
    """Reject duplicate group names and candidates pointing at unknown groups."""
    names = [g.name for g in groups]
    duplicates = sorted({n for n in names if names.count(n) > 1})
    if duplicates:
        raise ValidationFailed("Group names must be unique", duplicates=duplicates)

    known = set(names)
    orphans = sorted({c.group for c in candidates if c.group not in known})
    if orphans:
        raise ValidationFailed("Candidates reference unknown groups", groups=orphans)


async def seed_election(store: VoteStore, groups: Sequence[Group] = None,
                        candidates: Sequence[CandidateSeed] = None, force: bool = False) -> Dict[str, int]:
    """
    Replace every group and candidate with the given ballot.

    Destructive: refuses while votes exist unless ``force`` is set, in which
    case the vote log is cleared as well.

    Returns:
        Counts of groups and candidates written
    """
    groups = list(DEFAULT_GROUPS if groups is None else groups)
    candidates = list(DEFAULT_CANDIDATES if candidates is None else candidates)
    validate_ballot(groups, candidates)

    await store.reset_election(groups, candidates, force=force)
    logger.info(f"Database seeded: {len(groups)} groups, {len(candidates)} candidates")
    return {"groups": len(groups), "candidates": len(candidates)}
