"""Integration tests for the PostgreSQL store.

These tests exercise the transactional vote, snapshot reads and election
resets against a real PostgreSQL server, including concurrent submissions
from the same voter.

All tests require a reachable PostgreSQL server and are skipped otherwise.
"""

__version__ = "1.0.0"
