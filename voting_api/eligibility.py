"""Eligibility gate: institutional domain plus a static allow-list.

The allow-list is a JSON document of the form ``{"emails": [...]}`` read once
at process start. Any failure to read it leaves the gate with an empty list,
so every address is refused until an administrator fixes the file and reloads.
"""
import json
import logging
from pathlib import Path
from typing import FrozenSet, Iterable, Union

from .records import normalize_email

logger = logging.getLogger(__name__)


def load_allow_list(path: Union[str, Path]) -> FrozenSet[str]:
    """Read the allow-list file. Returns an empty set on any error."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        emails = data["emails"]
        if not isinstance(emails, list):
            raise TypeError("'emails' must be a list")
        allowed = frozenset(normalize_email(e) for e in emails if isinstance(e, str) and e.strip())
        logger.info(f"Loaded {len(allowed)} accepted emails from {path}")
        return allowed
    except (OSError, ValueError, KeyError, TypeError) as e:
        logger.error(f"Error reading accepted emails from {path}: {e}")
        return frozenset()


class EligibilityGate:
    """Pure predicate over a process-wide, read-only allow-list."""

    def __init__(self, domain: str, emails: Iterable[str] = ()):
        self.suffix = "@" + domain.strip().lstrip("@").lower()
        self._allowed: FrozenSet[str] = frozenset(normalize_email(e) for e in emails)

    @classmethod
    def from_file(cls, domain: str, path: Union[str, Path]) -> "EligibilityGate":
        gate = cls(domain)
        gate._allowed = load_allow_list(path)
        return gate

    @property
    def size(self) -> int:
        return len(self._allowed)

    def is_eligible(self, email: str) -> bool:
        """True when the address carries the institutional suffix and is allow-listed."""
        email = normalize_email(email)
        if not email.endswith(self.suffix):
            return False
        return email in self._allowed

    def reload(self, path: Union[str, Path]) -> int:
        """Swap in a freshly loaded allow-list. Returns the new size."""
        self._allowed = load_allow_list(path)
        return len(self._allowed)
