"""Certificate artifact rendering.

Rendering is delegated to an external service.  The worker calls
``render`` for a freshly issued certificate and stores the returned URL
on the certification row.  With no CERTIFICATE_RENDERER_URL configured
an in-memory renderer returns a deterministic URL under PUBLIC_BASE_URL.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Protocol, runtime_checkable

import httpx

from lms.core.config import SETTINGS

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RenderRequest:
    certificate_id: str
    user_id: str
    certification_name: str
    issuer: str
    issued_at: int
    verification_code: str
    verification_url: str


@runtime_checkable
class CertificateRenderer(Protocol):
    async def render(self, request: RenderRequest) -> str: ...


class InMemoryCertificateRenderer:
    def __init__(self, base_url: str) -> None:
        self._base_url = base_url
        self.rendered: list[RenderRequest] = []

    async def render(self, request: RenderRequest) -> str:
        self.rendered.append(request)
        return f"{self._base_url}/certificates/{request.verification_code}.png"


class HttpCertificateRenderer:
    """POSTs the render request as JSON and expects ``{"url": ...}`` back."""

    def __init__(self, endpoint: str, *, timeout: float = 10.0) -> None:
        self._endpoint = endpoint
        self._timeout = timeout

    async def render(self, request: RenderRequest) -> str:
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            resp = await client.post(self._endpoint, json=asdict(request))
            resp.raise_for_status()
            url = resp.json().get("url")
        if not url:
            raise ValueError("renderer response did not include a url")
        logger.debug("Rendered certificate %s -> %s", request.certificate_id, url)
        return url


if SETTINGS.certificate_renderer_url:
    certificate_renderer: CertificateRenderer = HttpCertificateRenderer(
        SETTINGS.certificate_renderer_url
    )
else:
    certificate_renderer = InMemoryCertificateRenderer(SETTINGS.public_base_url)
