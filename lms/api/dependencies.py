from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from typing import Annotated

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from lms.models.principal import Principal
from lms.services import token_service
from lms.services.learning import LearningServices, learning_scope

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def require_user(
    credentials: Annotated[
        HTTPAuthorizationCredentials | None, Depends(bearer_scheme)
    ],
) -> Principal:
    """Validate the bearer token and return the caller's Principal."""
    if credentials is None:
        raise _unauthorized("Not authenticated")
    try:
        principal = token_service.authenticate(credentials.credentials)
    except jwt.ExpiredSignatureError:
        logger.warning("Expired token rejected")
        raise _unauthorized("Token expired") from None
    except token_service.InvalidSubjectError as e:
        logger.warning("Token subject rejected: %s", e)
        raise _unauthorized("Invalid token subject") from None
    except jwt.InvalidTokenError as e:
        logger.warning("Invalid token rejected: %s", e)
        raise _unauthorized("Invalid token") from None
    logger.debug(
        "Token validated for user=%s roles=%s", principal.user_id, principal.roles
    )
    return principal


def require_any_role(roles: frozenset[str] | set[str]):
    """Dependency factory: demand at least one of the given roles.

    Usage: Depends(require_any_role(STAFF_ROLES))
    """

    def _guard(
        principal: Annotated[Principal, Depends(require_user)],
    ) -> Principal:
        if not principal.has_any_role(roles):
            logger.warning(
                "Access denied: user=%s has none of roles=%s",
                principal.user_id,
                roles,
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return principal

    return _guard


async def get_learning_services() -> AsyncIterator[LearningServices]:
    """Services bound to this request's unit of work.

    With DATABASE_URL the session is committed when the handler returns
    and rolled back when it raises.
    """
    async with learning_scope() as services:
        yield services


Services = Annotated[LearningServices, Depends(get_learning_services)]
CurrentUser = Annotated[Principal, Depends(require_user)]
