"""Bearer token validation (ES256).

Tokens are minted by the identity provider; this service only checks
them and turns the claims into a Principal.  ``create_access_token``
signs with the in-process key the validator trusts, for dev tooling and
tests only.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta

import jwt
from cryptography.hazmat.primitives.asymmetric import ec

from lms.models.principal import Principal

ALGORITHM = "ES256"
ISSUER = "lms-service"
AUDIENCE = "lms-service"
REQUIRED_CLAIMS = ("sub", "exp", "iat", "jti")
DEV_TOKEN_TTL = timedelta(minutes=15)

_private_key = ec.generate_private_key(ec.SECP256R1())
_public_key = _private_key.public_key()


class InvalidSubjectError(jwt.InvalidTokenError):
    """Signature checks out but ``sub`` is not a learner UUID."""


def create_access_token(*, sub: str, roles: list[str] | None = None) -> str:
    issued = datetime.now(UTC)
    return jwt.encode(
        {
            "sub": sub,
            "iss": ISSUER,
            "aud": AUDIENCE,
            "iat": issued,
            "exp": issued + DEV_TOKEN_TTL,
            "jti": uuid.uuid4().hex,
            "roles": roles or ["user"],
        },
        _private_key,
        algorithm=ALGORITHM,
    )


def authenticate(token: str) -> Principal:
    """Validate ``token`` and return its Principal.

    Raises jwt.ExpiredSignatureError, InvalidSubjectError, or another
    jwt.InvalidTokenError.
    """
    claims = jwt.decode(
        token,
        _public_key,
        algorithms=[ALGORITHM],
        issuer=ISSUER,
        audience=AUDIENCE,
        options={"require": list(REQUIRED_CLAIMS)},
    )
    try:
        return Principal.from_claims(claims)
    except ValueError as e:
        raise InvalidSubjectError(str(e)) from e
