#!/usr/bin/env python3
"""Find, and optionally abandon, test attempts left in progress.

RUN:  python scripts/fix_abandoned_attempts.py          # dry run, lists only
      python scripts/fix_abandoned_attempts.py --auto   # marks them abandoned

An attempt is stale when it has been in progress longer than its test's
duration (or DEFAULT_TEST_DURATION_MINUTES) plus
ATTEMPT_ABANDON_GRACE_MINUTES.  Abandoned attempts still count toward the
test's attempt limit.

Needs DATABASE_URL; against the in-memory store there is nothing to fix.
"""

from __future__ import annotations

import argparse
import asyncio
import datetime
import sys

from lms.core.config import SETTINGS
from lms.core.logging import setup_logging
from lms.db.engine import async_session_factory
from lms.services.learning import learning_scope


def _fmt(epoch: int) -> str:
    return datetime.datetime.fromtimestamp(epoch, datetime.UTC).isoformat()


async def main(auto: bool) -> int:
    async with learning_scope() as services:
        if auto:
            attempts = await services.attempts.abandon_stale()
        else:
            attempts = await services.attempts.find_stale()

    verb = "Abandoned" if auto else "Would abandon"
    print(f"{verb} {len(attempts)} attempt(s)")
    for a in attempts:
        print(
            f"  {a.id}  test={a.test_id}  user={a.user_id}  "
            f"#{a.attempt_number}  started={_fmt(a.started_at)}"
        )
    if attempts and not auto:
        print("\nRe-run with --auto to apply.")
    return len(attempts)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument(
        "--auto", action="store_true", help="abandon the attempts instead of listing them"
    )
    args = parser.parse_args()

    setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)
    if async_session_factory is None:
        print("DATABASE_URL is not set", file=sys.stderr)
        sys.exit(1)
    asyncio.run(main(args.auto))
