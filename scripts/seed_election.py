#!/usr/bin/env python3
"""
Seed the election ballot in PostgreSQL.

Replaces every voting group and candidate with the default ballot, or with the
ballot read from a JSON file of the form
``{"groups": [{"name", "description"}], "candidates": [{"name", "position", "group", "description"}]}``.

Usage:
    python scripts/seed_election.py [--ballot FILE] [--force]

Environment Variables:
    POSTGRES_HOST, POSTGRES_PORT, POSTGRES_DB, POSTGRES_USER, POSTGRES_PASSWORD
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

from voting_api.config import settings
from voting_api.database import PostgresStore
from voting_api.errors import VoteError
from voting_api.records import CandidateSeed, Group
from voting_api.seed import seed_election


def read_ballot(path: Path):
    """Load groups and candidates from a ballot file."""
    with open(path, 'r', encoding='utf-8') as f:
        data = json.load(f)
    groups = [Group.from_dict(g) for g in data['groups']]
    candidates = [CandidateSeed.from_dict(c) for c in data['candidates']]
    return groups, candidates


async def run(ballot: Path = None, force: bool = False) -> dict:
    groups, candidates = read_ballot(ballot) if ballot else (None, None)

    store = PostgresStore(settings)
    await store.initialize()
    try:
        return await seed_election(store, groups, candidates, force=force)
    finally:
        await store.close()


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description='Replace the election ballot in PostgreSQL'
    )
    parser.add_argument(
        '--ballot',
        type=Path,
        default=None,
        help='JSON ballot file (default: built-in student council ballot)'
    )
    parser.add_argument(
        '--force',
        action='store_true',
        help='Reset even if votes were already cast (clears the vote log)'
    )

    args = parser.parse_args()

    print("=" * 60)
    print(f"SEEDING ELECTION ON {settings.POSTGRES_HOST}:{settings.POSTGRES_PORT}/{settings.POSTGRES_DB}")
    print("=" * 60)

    try:
        counts = asyncio.run(run(args.ballot, args.force))
    except (OSError, ValueError, KeyError, TypeError) as e:
        print(f"\n✗ Could not read ballot file: {e}", file=sys.stderr)
        sys.exit(1)
    except VoteError as e:
        print(f"\n✗ {e.message}", file=sys.stderr)
        sys.exit(1)

    print(f"\n✅ Seeded {counts['groups']} groups and {counts['candidates']} candidates")


if __name__ == '__main__':
    main()
