from __future__ import annotations

from fastapi import APIRouter
from pydantic import BaseModel

from lms.api.dependencies import CurrentUser, Services
from lms.models.certification import Certification

router = APIRouter(prefix="/v1/certifications", tags=["certifications"])


class CertificationOut(BaseModel):
    id: str
    certification_name: str
    issuer: str
    issued_at: int
    verification_code: str
    status: str
    course_id: str | None = None
    class_id: str | None = None
    artifact_url: str | None = None

    @staticmethod
    def of(c: Certification) -> CertificationOut:
        return CertificationOut(
            id=str(c.id),
            certification_name=c.certification_name,
            issuer=c.issuer,
            issued_at=c.issued_at,
            verification_code=c.verification_code,
            status=c.status,
            course_id=str(c.course_id) if c.course_id else None,
            class_id=str(c.class_id) if c.class_id else None,
            artifact_url=c.artifact_url,
        )


class VerificationOut(BaseModel):
    valid: bool
    certification_name: str
    issuer: str
    issued_at: int
    verification_code: str


@router.get("/mine", response_model=list[CertificationOut])
async def my_certifications(
    principal: CurrentUser, services: Services
) -> list[CertificationOut]:
    certifications = await services.certificates.list_for_user(principal.user_id)
    return [CertificationOut.of(c) for c in certifications]


@router.get("/verify/{code}", response_model=VerificationOut)
async def verify_certification(code: str, services: Services) -> VerificationOut:
    """Public lookup by verification code; no token required."""
    c = await services.certificates.verify(code)
    return VerificationOut(
        valid=c.status == "issued",
        certification_name=c.certification_name,
        issuer=c.issuer,
        issued_at=c.issued_at,
        verification_code=c.verification_code,
    )
