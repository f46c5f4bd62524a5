from __future__ import annotations

from dataclasses import replace
from typing import Protocol
from uuid import UUID

from lms.core.errors import DuplicateCertificateError, VerificationCodeTakenError
from lms.models.certification import Certification


class CertificationRepo(Protocol):
    async def get(self, certificate_id: UUID) -> Certification | None: ...
    async def get_for(
        self,
        user_id: UUID,
        *,
        course_id: UUID | None = None,
        class_id: UUID | None = None,
    ) -> Certification | None: ...
    async def get_by_code(self, code: str) -> Certification | None: ...
    async def code_exists(self, code: str) -> bool: ...
    async def add(self, certification: Certification) -> None: ...
    async def list_for_user(self, user_id: UUID) -> list[Certification]: ...
    async def list_missing_artifacts(self, limit: int = 100) -> list[Certification]: ...
    async def set_artifact_url(self, certificate_id: UUID, url: str) -> bool: ...


class InMemoryCertificationRepo:
    """Enforces one certificate per (user, course) / (user, class) and unique codes."""

    def __init__(self) -> None:
        self._by_id: dict[UUID, Certification] = {}

    def clear(self) -> None:
        self._by_id.clear()

    async def get(self, certificate_id: UUID) -> Certification | None:
        return self._by_id.get(certificate_id)

    async def get_for(
        self,
        user_id: UUID,
        *,
        course_id: UUID | None = None,
        class_id: UUID | None = None,
    ) -> Certification | None:
        for c in self._by_id.values():
            if c.user_id != user_id:
                continue
            if course_id is not None and c.course_id == course_id:
                return c
            if class_id is not None and c.class_id == class_id:
                return c
        return None

    async def get_by_code(self, code: str) -> Certification | None:
        for c in self._by_id.values():
            if c.verification_code == code:
                return c
        return None

    async def code_exists(self, code: str) -> bool:
        return any(c.verification_code == code for c in self._by_id.values())

    async def add(self, certification: Certification) -> None:
        for c in self._by_id.values():
            if c.verification_code == certification.verification_code:
                raise VerificationCodeTakenError(certification.verification_code)
            if c.user_id != certification.user_id:
                continue
            if certification.course_id is not None and c.course_id == certification.course_id:
                raise DuplicateCertificateError(
                    c.user_id, "course", certification.course_id
                )
            if certification.class_id is not None and c.class_id == certification.class_id:
                raise DuplicateCertificateError(
                    c.user_id, "class", certification.class_id
                )
        self._by_id[certification.id] = certification

    async def list_for_user(self, user_id: UUID) -> list[Certification]:
        certs = [c for c in self._by_id.values() if c.user_id == user_id]
        return sorted(certs, key=lambda c: c.issued_at, reverse=True)

    async def list_missing_artifacts(self, limit: int = 100) -> list[Certification]:
        missing = [
            c
            for c in self._by_id.values()
            if c.status == "issued" and c.artifact_url is None
        ]
        return sorted(missing, key=lambda c: c.issued_at)[:limit]

    async def set_artifact_url(self, certificate_id: UUID, url: str) -> bool:
        c = self._by_id.get(certificate_id)
        if c is None:
            return False
        self._by_id[certificate_id] = replace(c, artifact_url=url)
        return True
