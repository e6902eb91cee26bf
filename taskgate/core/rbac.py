"""Credential boundary: turns a bearer token into a validated ``Principal``."""

from __future__ import annotations

from fastapi import HTTPException, Security, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .errors import AuthenticationError, UnknownRoleError
from .logging import logger
from .principal import Principal
from .security import principal_from_token

unauthorized_error = HTTPException(
    status_code=status.HTTP_401_UNAUTHORIZED,
    detail={"code": "error_unauthorized"},
    headers={"WWW-Authenticate": "Bearer"},
)

auth_scheme = HTTPBearer(auto_error=False)


async def get_principal(
    credentials: HTTPAuthorizationCredentials | None = Security(auth_scheme),
) -> Principal:
    if credentials is None:
        raise unauthorized_error
    try:
        return principal_from_token(credentials.credentials)
    except UnknownRoleError as exc:
        # a signed token with a role we do not know is a defect upstream
        logger.error("auth.unknown_role", role=repr(exc.value))
        raise unauthorized_error from None
    except AuthenticationError as exc:
        logger.info("auth.credential_rejected", reason=exc.message)
        raise unauthorized_error from None
