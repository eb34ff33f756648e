"""PostgreSQL storage backend."""
import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import List, Optional, Sequence, Tuple

import asyncpg

from .config import Settings, settings as default_settings
from .errors import (
    AlreadyVoted,
    CandidateNotFound,
    ElectionInProgress,
    StorageUnavailable,
    VoteError,
    VoterNotFound,
)
from .records import (
    MAX_CANDIDATE_ID,
    Candidate,
    CandidateSeed,
    ElectionSnapshot,
    Group,
    VoteReceipt,
    Voter,
    normalize_email,
)
from .store import VoteStore

logger = logging.getLogger(__name__)

STORAGE_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError)

SCHEMA = """
    CREATE TABLE IF NOT EXISTS voting_groups (
        id SERIAL PRIMARY KEY,
        name TEXT NOT NULL UNIQUE,
        description TEXT NOT NULL DEFAULT '',
        is_active BOOLEAN NOT NULL DEFAULT TRUE,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    );

    CREATE TABLE IF NOT EXISTS candidates (
        id SERIAL PRIMARY KEY,
        name TEXT NOT NULL,
        position TEXT NOT NULL,
        description TEXT,
        group_name TEXT NOT NULL REFERENCES voting_groups (name) ON UPDATE CASCADE,
        vote_count INTEGER NOT NULL DEFAULT 0 CHECK (vote_count >= 0),
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    );

    CREATE TABLE IF NOT EXISTS voters (
        email TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        image TEXT,
        has_voted BOOLEAN NOT NULL DEFAULT FALSE,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    );

    CREATE TABLE IF NOT EXISTS vote_events (
        id BIGSERIAL PRIMARY KEY,
        voter_email TEXT NOT NULL UNIQUE REFERENCES voters (email),
        candidate_id INTEGER NOT NULL REFERENCES candidates (id),
        cast_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    );

    CREATE INDEX IF NOT EXISTS idx_vote_events_cast_at ON vote_events (cast_at);
    CREATE INDEX IF NOT EXISTS idx_candidates_group_name ON candidates (group_name);
"""


def _voter_from_row(row) -> Voter:
    return Voter(
        email=row["email"],
        name=row["name"],
        image=row["image"],
        has_voted=row["has_voted"],
        created_at=row["created_at"],
    )


def _candidate_from_row(row) -> Candidate:
    return Candidate(
        id=row["id"],
        name=row["name"],
        position=row["position"],
        group=row["group_name"],
        description=row["description"],
        vote_count=row["vote_count"],
        created_at=row["created_at"],
    )


def _group_from_row(row) -> Group:
    return Group(
        name=row["name"],
        description=row["description"],
        is_active=row["is_active"],
        created_at=row["created_at"],
    )


class PostgresStore(VoteStore):
    """Async PostgreSQL store backed by an asyncpg pool."""

    def __init__(self, config: Settings = None):
        self.config = config or default_settings
        self.pool: Optional[asyncpg.Pool] = None

    async def initialize(self):
        """Initialize the connection pool and create tables."""
        try:
            self.pool = await asyncpg.create_pool(
                self.config.postgres_dsn,
                min_size=self.config.POSTGRES_POOL_MIN_SIZE,
                max_size=self.config.POSTGRES_POOL_MAX_SIZE,
                command_timeout=self.config.POSTGRES_COMMAND_TIMEOUT,
            )
            logger.info("PostgreSQL connection pool initialized successfully")

            async with self.pool.acquire() as conn:
                await conn.execute(SCHEMA)
                logger.info("PostgreSQL schema verified")

        except STORAGE_ERRORS as e:
            logger.error(f"Failed to initialize PostgreSQL connection pool: {e}")
            raise StorageUnavailable(f"Could not connect to PostgreSQL: {e}") from e

    async def close(self):
        """Close database connection pool."""
        try:
            if self.pool:
                await self.pool.close()
                logger.info("PostgreSQL connection pool closed successfully")
        except STORAGE_ERRORS as e:
            logger.error(f"Error closing PostgreSQL connection pool: {e}")

    @asynccontextmanager
    async def _connection(self, operation: str):
        """Acquire a pooled connection, converting driver errors to StorageUnavailable."""
        if self.pool is None:
            raise StorageUnavailable("Database pool is not initialized")
        try:
            async with self.pool.acquire() as conn:
                yield conn
        except VoteError:
            raise
        except STORAGE_ERRORS as e:
            logger.error(f"Database error during {operation}: {e}")
            raise StorageUnavailable() from e

    async def check_health(self) -> bool:
        """Check database connection health."""
        try:
            async with self._connection("health check") as conn:
                await conn.fetchval("SELECT 1")
                return True
        except StorageUnavailable:
            return False

    async def upsert_voter(self, email: str, name: str, image: Optional[str] = None) -> Voter:
        query = """
            INSERT INTO voters (email, name, image)
            VALUES ($1, $2, $3)
            ON CONFLICT (email) DO UPDATE SET
                name = COALESCE(NULLIF(EXCLUDED.name, ''), voters.name),
                image = COALESCE(EXCLUDED.image, voters.image)
            RETURNING email, name, image, has_voted, created_at
        """
        async with self._connection("upsert voter") as conn:
            row = await conn.fetchrow(query, normalize_email(email), name or "", image)
            return _voter_from_row(row)

    async def get_voter(self, email: str) -> Optional[Voter]:
        query = "SELECT email, name, image, has_voted, created_at FROM voters WHERE email = $1"
        async with self._connection("get voter") as conn:
            row = await conn.fetchrow(query, normalize_email(email))
            return _voter_from_row(row) if row else None

    async def list_ballot(self) -> Tuple[List[Group], List[Candidate]]:
        async with self._connection("list ballot") as conn:
            async with conn.transaction(isolation="repeatable_read", readonly=True):
                group_rows = await conn.fetch(
                    """
                    SELECT name, description, is_active, created_at
                    FROM voting_groups
                    WHERE is_active
                    ORDER BY id
                    """
                )
                candidate_rows = await conn.fetch(
                    """
                    SELECT id, name, position, description, group_name, vote_count, created_at
                    FROM candidates
                    ORDER BY id
                    """
                )
        return [_group_from_row(r) for r in group_rows], [_candidate_from_row(r) for r in candidate_rows]

    async def load_snapshot(self, since: datetime) -> ElectionSnapshot:
        async with self._connection("load snapshot") as conn:
            # One repeatable-read transaction so the tallies, voter count and
            # activity all describe the same instant.
            async with conn.transaction(isolation="repeatable_read", readonly=True):
                group_rows = await conn.fetch(
                    """
                    SELECT name, description, is_active, created_at
                    FROM voting_groups
                    WHERE is_active
                    ORDER BY id
                    """
                )
                candidate_rows = await conn.fetch(
                    """
                    SELECT id, name, position, description, group_name, vote_count, created_at
                    FROM candidates
                    ORDER BY id
                    """
                )
                total_voters = await conn.fetchval("SELECT COUNT(*) FROM voters WHERE has_voted")
                recent_rows = await conn.fetch(
                    """
                    SELECT candidate_id, COUNT(*) AS votes
                    FROM vote_events
                    WHERE cast_at >= $1
                    GROUP BY candidate_id
                    """,
                    since,
                )
                last_vote_at = await conn.fetchval("SELECT MAX(cast_at) FROM vote_events")

        return ElectionSnapshot(
            groups=[_group_from_row(r) for r in group_rows],
            candidates=[_candidate_from_row(r) for r in candidate_rows],
            total_voters=total_voters,
            recent_votes={r["candidate_id"]: r["votes"] for r in recent_rows},
            last_vote_at=last_vote_at,
            window_start=since,
        )

    async def record_vote(self, email: str, candidate_id: int, cast_at: datetime) -> VoteReceipt:
        email = normalize_email(email)
        async with self._connection("record vote") as conn:
            try:
                async with conn.transaction():
                    has_voted = await conn.fetchval(
                        "SELECT has_voted FROM voters WHERE email = $1", email
                    )
                    if has_voted is None:
                        raise VoterNotFound(email=email)

                    # The conditional update is the linearization point: of two
                    # concurrent transactions only one sees has_voted = FALSE.
                    claimed = await conn.fetchval(
                        """
                        UPDATE voters SET has_voted = TRUE
                        WHERE email = $1 AND has_voted = FALSE
                        RETURNING email
                        """,
                        email,
                    )
                    if claimed is None:
                        raise AlreadyVoted()

                    # Ids outside the integer column cannot exist
                    incremented = None
                    if 1 <= candidate_id <= MAX_CANDIDATE_ID:
                        incremented = await conn.fetchval(
                            """
                            UPDATE candidates SET vote_count = vote_count + 1
                            WHERE id = $1
                            RETURNING id
                            """,
                            candidate_id,
                        )
                    if incremented is None:
                        raise CandidateNotFound(candidate_id=candidate_id)

                    await conn.execute(
                        """
                        INSERT INTO vote_events (voter_email, candidate_id, cast_at)
                        VALUES ($1, $2, $3)
                        """,
                        email, candidate_id, cast_at,
                    )
            except asyncpg.UniqueViolationError:
                raise AlreadyVoted()

        return VoteReceipt(voter_email=email, cast_at=cast_at)

    async def reset_election(self, groups: Sequence[Group], candidates: Sequence[CandidateSeed],
                             force: bool = False) -> None:
        async with self._connection("reset election") as conn:
            async with conn.transaction():
                # Groups first, matching the snapshot reads; then the tables a
                # vote touches, in the order record_vote touches them.
                await conn.execute(
                    "LOCK TABLE voting_groups, voters, candidates, vote_events IN ACCESS EXCLUSIVE MODE"
                )
                votes = await conn.fetchval("SELECT COUNT(*) FROM vote_events")
                if votes and not force:
                    raise ElectionInProgress(votes=votes)

                await conn.execute(
                    "TRUNCATE vote_events, candidates, voting_groups RESTART IDENTITY"
                )
                if votes:
                    await conn.execute("UPDATE voters SET has_voted = FALSE WHERE has_voted")
                    logger.warning(f"Election reset with force: {votes} vote events cleared")

                await conn.executemany(
                    "INSERT INTO voting_groups (name, description, is_active) VALUES ($1, $2, $3)",
                    [(g.name, g.description, g.is_active) for g in groups],
                )
                await conn.executemany(
                    """
                    INSERT INTO candidates (name, position, description, group_name)
                    VALUES ($1, $2, $3, $4)
                    """,
                    [(c.name, c.position, c.description, c.group) for c in candidates],
                )
