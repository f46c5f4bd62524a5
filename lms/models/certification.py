from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID, uuid4


@dataclass(frozen=True, slots=True)
class Certification:
    """Issued credential.  Authoritative once inserted; the artifact is best-effort."""

    id: UUID
    user_id: UUID
    certification_name: str
    issuer: str
    issued_at: int
    verification_code: str
    course_id: UUID | None = None
    class_id: UUID | None = None
    status: str = "issued"  # issued|expired|revoked
    artifact_url: str | None = None

    @property
    def scope(self) -> str:
        return "course" if self.course_id is not None else "class"

    @staticmethod
    def new(
        *,
        user_id: UUID,
        certification_name: str,
        issuer: str,
        issued_at: int,
        verification_code: str,
        course_id: UUID | None = None,
        class_id: UUID | None = None,
    ) -> Certification:
        if (course_id is None) == (class_id is None):
            raise ValueError("a certification targets exactly one course or class")
        return Certification(
            id=uuid4(),
            user_id=user_id,
            certification_name=certification_name,
            issuer=issuer,
            issued_at=issued_at,
            verification_code=verification_code,
            course_id=course_id,
            class_id=class_id,
        )
