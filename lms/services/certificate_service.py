"""Certificate eligibility and issuance.

``check_and_award`` is idempotent.  Preconditions are checked in order and
any failure returns None without raising:

  1. an enrollment exists for (user, course) or (user, class)
  2. the course/class offers a certificate
  3. no certificate exists yet for the pair
  4. the enrollment is at 100% and completed

The certification row is inserted first; the uniqueness constraints on
(user_id, course_id) and (user_id, class_id) settle concurrent awards, the
loser getting None.  Only after the insert are the side effects queued
(artifact rendering, in-app and email notifications), each in its own
error boundary.  A certificate whose render never lands keeps
``artifact_url = NULL`` and is picked up by ``repair_missing_artifacts``.
"""

from __future__ import annotations

import logging
import secrets
import string
from collections.abc import Callable
from uuid import UUID

from lms.core.config import SETTINGS
from lms.core.errors import (
    DuplicateCertificateError,
    NotFoundError,
    VerificationCodeTakenError,
)
from lms.core.metrics import CERTIFICATES_ISSUED, SIDE_EFFECT_FAILURES
from lms.models.certification import Certification
from lms.repos.registry import LearningRepos
from lms.services.certificate_renderer import CertificateRenderer, RenderRequest
from lms.services.clock import Clock, utc_now
from lms.services.notifier import Notifier
from lms.services.task_queue import CERTIFICATE_RENDER_QUEUE, TaskQueue

logger = logging.getLogger(__name__)

CODE_PREFIX = "CERT"
CODE_ALPHABET = string.ascii_uppercase + string.digits
CODE_LENGTH = 6
MAX_CODE_DRAWS = 32


def generate_verification_code() -> str:
    return CODE_PREFIX + "".join(
        secrets.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH)
    )


class CertificateEngine:
    def __init__(
        self,
        repos: LearningRepos,
        queue: TaskQueue,
        notifier: Notifier,
        *,
        clock: Clock = utc_now,
        issuer: str = SETTINGS.certificate_issuer,
        public_base_url: str = SETTINGS.public_base_url,
        code_factory: Callable[[], str] = generate_verification_code,
    ) -> None:
        self._repos = repos
        self._queue = queue
        self._notifier = notifier
        self._clock = clock
        self._issuer = issuer
        self._public_base_url = public_base_url
        self._code_factory = code_factory

    async def check_and_award(
        self,
        user_id: UUID,
        *,
        course_id: UUID | None = None,
        class_id: UUID | None = None,
    ) -> Certification | None:
        if (course_id is None) == (class_id is None):
            raise ValueError("pass exactly one of course_id or class_id")
        scope = "course" if course_id is not None else "class"
        scope_id = course_id if course_id is not None else class_id
        log_extra = {"user_id": str(user_id), f"{scope}_id": str(scope_id)}

        enrollment = await self._repos.progress.get_enrollment(
            user_id, course_id=course_id, class_id=class_id
        )
        if enrollment is None:
            logger.debug("No enrollment, no certificate", extra=log_extra)
            return None

        if course_id is not None:
            target = await self._repos.catalog.get_course(course_id)
            kind = "Completion"
        else:
            target = await self._repos.catalog.get_class(class_id)  # type: ignore[arg-type]
            kind = "Attendance"
        if target is None or not target.offers_certificate:
            logger.debug("Certificate not offered", extra=log_extra)
            return None

        existing = await self._repos.certifications.get_for(
            user_id, course_id=course_id, class_id=class_id
        )
        if existing is not None:
            return None

        if enrollment.progress != 100 or enrollment.status != "completed":
            logger.debug(
                "Enrollment not complete (progress=%d status=%s)",
                enrollment.progress,
                enrollment.status,
                extra=log_extra,
            )
            return None

        certification = await self._insert(
            user_id,
            name=f"{target.title} - Certificate of {kind}",
            course_id=course_id,
            class_id=class_id,
        )
        if certification is None:
            logger.info("Certificate already awarded concurrently", extra=log_extra)
            return None

        CERTIFICATES_ISSUED.labels(scope=scope).inc()
        logger.info(
            "Certificate issued code=%s",
            certification.verification_code,
            extra={**log_extra, "certificate_id": str(certification.id)},
        )

        await self._request_render(certification)
        payload = {
            "certificate_id": str(certification.id),
            "certification_name": certification.certification_name,
            "verification_code": certification.verification_code,
            "verification_url": self._verification_url(certification),
        }
        await self._notifier.send(user_id, "certificate_issued", payload)
        await self._notifier.send(
            user_id, "certificate_issued", payload, channel="email"
        )
        return certification

    async def _insert(
        self,
        user_id: UUID,
        *,
        name: str,
        course_id: UUID | None,
        class_id: UUID | None,
    ) -> Certification | None:
        for _ in range(MAX_CODE_DRAWS):
            code = self._code_factory()
            if await self._repos.certifications.code_exists(code):
                continue
            certification = Certification.new(
                user_id=user_id,
                certification_name=name,
                issuer=self._issuer,
                issued_at=self._clock(),
                verification_code=code,
                course_id=course_id,
                class_id=class_id,
            )
            try:
                await self._repos.certifications.add(certification)
            except VerificationCodeTakenError:
                continue
            except DuplicateCertificateError:
                return None
            return certification
        raise RuntimeError(
            f"could not draw an unused verification code in {MAX_CODE_DRAWS} tries"
        )

    # --- artifacts ---

    async def render_artifact(
        self, certificate_id: UUID, renderer: CertificateRenderer
    ) -> str | None:
        """Render and store the artifact.  Renderer errors propagate to the caller."""
        certification = await self._repos.certifications.get(certificate_id)
        if certification is None:
            logger.warning(
                "Render requested for unknown certificate",
                extra={"certificate_id": str(certificate_id)},
            )
            return None
        if certification.artifact_url is not None:
            return certification.artifact_url

        url = await renderer.render(
            RenderRequest(
                certificate_id=str(certification.id),
                user_id=str(certification.user_id),
                certification_name=certification.certification_name,
                issuer=certification.issuer,
                issued_at=certification.issued_at,
                verification_code=certification.verification_code,
                verification_url=self._verification_url(certification),
            )
        )
        await self._repos.certifications.set_artifact_url(certification.id, url)
        logger.info(
            "Certificate artifact stored",
            extra={"certificate_id": str(certification.id)},
        )
        return url

    async def repair_missing_artifacts(self, limit: int = 100) -> int:
        """Re-queue rendering for issued certificates that have no artifact."""
        missing = await self._repos.certifications.list_missing_artifacts(limit)
        queued = 0
        for certification in missing:
            if await self._request_render(certification):
                queued += 1
        if missing:
            logger.info(
                "Re-queued %d of %d certificates missing artifacts",
                queued,
                len(missing),
            )
        return queued

    async def _request_render(self, certification: Certification) -> bool:
        try:
            await self._queue.enqueue(
                CERTIFICATE_RENDER_QUEUE, {"certificate_id": str(certification.id)}
            )
        except Exception:
            SIDE_EFFECT_FAILURES.labels(effect="certificate_render").inc()
            logger.exception(
                "Failed to queue certificate render",
                extra={"certificate_id": str(certification.id)},
            )
            return False
        return True

    # --- lookups ---

    async def verify(self, code: str) -> Certification:
        certification = await self._repos.certifications.get_by_code(
            code.strip().upper()
        )
        if certification is None:
            raise NotFoundError("certificate", code)
        return certification

    async def list_for_user(self, user_id: UUID) -> list[Certification]:
        return await self._repos.certifications.list_for_user(user_id)

    def _verification_url(self, certification: Certification) -> str:
        return (
            f"{self._public_base_url}/v1/certifications/verify/"
            f"{certification.verification_code}"
        )
