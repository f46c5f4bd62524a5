"""PostgreSQL implementation of CertificationRepo."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from lms.core.errors import DuplicateCertificateError, VerificationCodeTakenError
from lms.db.integrity import violates
from lms.db.tables import CertificationRow
from lms.models.certification import Certification


class PgCertificationRepo:
    """Satisfies the CertificationRepo Protocol using PostgreSQL."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, certificate_id: UUID) -> Certification | None:
        row = await self._session.get(
            CertificationRow, certificate_id, populate_existing=True
        )
        return _row_to_certification(row) if row is not None else None

    async def get_for(
        self,
        user_id: UUID,
        *,
        course_id: UUID | None = None,
        class_id: UUID | None = None,
    ) -> Certification | None:
        stmt = select(CertificationRow).where(CertificationRow.user_id == user_id)
        if course_id is not None:
            stmt = stmt.where(CertificationRow.course_id == course_id)
        elif class_id is not None:
            stmt = stmt.where(CertificationRow.class_id == class_id)
        else:
            return None
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_certification(row) if row is not None else None

    async def get_by_code(self, code: str) -> Certification | None:
        stmt = select(CertificationRow).where(CertificationRow.verification_code == code)
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_certification(row) if row is not None else None

    async def code_exists(self, code: str) -> bool:
        stmt = select(CertificationRow.id).where(
            CertificationRow.verification_code == code
        )
        return (await self._session.execute(stmt)).first() is not None

    async def add(self, certification: Certification) -> None:
        row = CertificationRow(
            id=certification.id,
            user_id=certification.user_id,
            course_id=certification.course_id,
            class_id=certification.class_id,
            certification_name=certification.certification_name,
            issuer=certification.issuer,
            issued_at=certification.issued_at,
            verification_code=certification.verification_code,
            status=certification.status,
            artifact_url=certification.artifact_url,
        )
        try:
            async with self._session.begin_nested():
                self._session.add(row)
        except IntegrityError as exc:
            if violates(exc, "uq_certifications_verification_code"):
                raise VerificationCodeTakenError(
                    certification.verification_code
                ) from None
            if violates(exc, "uq_certifications_user_course"):
                raise DuplicateCertificateError(
                    certification.user_id, "course", certification.course_id
                ) from None
            if violates(exc, "uq_certifications_user_class"):
                raise DuplicateCertificateError(
                    certification.user_id, "class", certification.class_id
                ) from None
            raise

    async def list_for_user(self, user_id: UUID) -> list[Certification]:
        stmt = (
            select(CertificationRow)
            .where(CertificationRow.user_id == user_id)
            .order_by(CertificationRow.issued_at.desc())
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_certification(r) for r in rows]

    async def list_missing_artifacts(self, limit: int = 100) -> list[Certification]:
        stmt = (
            select(CertificationRow)
            .where(
                CertificationRow.status == "issued",
                CertificationRow.artifact_url.is_(None),
            )
            .order_by(CertificationRow.issued_at)
            .limit(limit)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_certification(r) for r in rows]

    async def set_artifact_url(self, certificate_id: UUID, url: str) -> bool:
        stmt = (
            update(CertificationRow)
            .where(CertificationRow.id == certificate_id)
            .values(artifact_url=url)
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1


def _row_to_certification(row: CertificationRow) -> Certification:
    return Certification(
        id=row.id,
        user_id=row.user_id,
        certification_name=row.certification_name,
        issuer=row.issuer,
        issued_at=row.issued_at,
        verification_code=row.verification_code,
        course_id=row.course_id,
        class_id=row.class_id,
        status=row.status,
        artifact_url=row.artifact_url,
    )
