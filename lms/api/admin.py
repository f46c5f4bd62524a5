"""Operator endpoints (admin role)."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from lms.api.dependencies import Services, require_any_role
from lms.models.principal import Principal

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/admin", tags=["admin"])

_require_admin = require_any_role({"admin"})


class RepairOut(BaseModel):
    requeued: int


class AbandonOut(BaseModel):
    dry_run: bool
    attempt_ids: list[str]


@router.post("/certifications/repair-artifacts", response_model=RepairOut)
async def repair_certificate_artifacts(
    principal: Annotated[Principal, Depends(_require_admin)],
    services: Services,
    limit: Annotated[int, Query(ge=1, le=1000)] = 100,
) -> RepairOut:
    requeued = await services.certificates.repair_missing_artifacts(limit)
    logger.info("Artifact repair by user=%s requeued=%d", principal.user_id, requeued)
    return RepairOut(requeued=requeued)


@router.post("/attempts/abandon-stale", response_model=AbandonOut)
async def abandon_stale_attempts(
    principal: Annotated[Principal, Depends(_require_admin)],
    services: Services,
    dry_run: bool = False,
) -> AbandonOut:
    if dry_run:
        attempts = await services.attempts.find_stale()
    else:
        attempts = await services.attempts.abandon_stale()
    logger.info(
        "Stale attempt sweep by user=%s dry_run=%s count=%d",
        principal.user_id,
        dry_run,
        len(attempts),
    )
    return AbandonOut(dry_run=dry_run, attempt_ids=[str(a.id) for a in attempts])
