"""Prometheus scrape endpoint (text exposition format).

Queue depth gauges are refreshed on each scrape so they reflect the
backlog at that moment.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from lms.core.metrics import QUEUE_DEPTH
from lms.services.task_queue import QUEUES, task_queue

logger = logging.getLogger(__name__)

router = APIRouter(tags=["observability"])


@router.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    for queue in QUEUES:
        try:
            QUEUE_DEPTH.labels(queue_name=queue).set(await task_queue.queue_length(queue))
        except Exception:
            logger.warning("Could not read depth of queue %s", queue, exc_info=True)
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
