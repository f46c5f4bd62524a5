#!/usr/bin/env python3
"""Re-queue rendering for issued certificates that have no artifact.

RUN:  python scripts/repair_certificate_artifacts.py [--limit N]

A certificate row is committed before its render is queued, so a lost
task or a renderer outage leaves ``artifact_url`` NULL.  This finds those
rows and queues them again; the worker does the rendering.

Needs DATABASE_URL and REDIS_URL (the worker must see the queued tasks).
"""

from __future__ import annotations

import argparse
import asyncio
import sys

from lms.core.config import SETTINGS
from lms.core.logging import setup_logging
from lms.db.engine import async_session_factory
from lms.db.redis import redis_pool
from lms.services.learning import learning_scope


async def main(limit: int) -> int:
    async with learning_scope() as services:
        requeued = await services.certificates.repair_missing_artifacts(limit)
    print(f"Re-queued {requeued} certificate render(s)")
    return requeued


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--limit", type=int, default=100)
    args = parser.parse_args()

    setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)
    if async_session_factory is None or redis_pool is None:
        print("DATABASE_URL and REDIS_URL must both be set", file=sys.stderr)
        sys.exit(1)
    asyncio.run(main(args.limit))
