"""
JWT 令牌校验 - TokenVerifier 的默认实现
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

import jwt

from application.ports.token_verifier import Claims
from core.exceptions import UnauthorizedException, TokenExpiredException
from core.logging_config import get_logger


logger = get_logger(__name__)


class JWTTokenVerifier:
    """Verify HS256 (by default) access tokens signed with a shared secret.

    - Expired token: raise TokenExpiredException
    - Invalid signature, wrong type or missing subject: raise UnauthorizedException
    """

    def __init__(self, secret_key: str, algorithm: str = "HS256") -> None:
        if not secret_key:
            raise ValueError("secret_key is required")
        self._secret_key = secret_key
        self._algorithm = algorithm

    async def verify(self, token: str) -> Claims:
        if not token:
            raise UnauthorizedException("Missing credentials", reason="missing")
        try:
            payload = jwt.decode(
                token,
                self._secret_key,
                algorithms=[self._algorithm],
            )
        except jwt.ExpiredSignatureError:
            raise TokenExpiredException()
        except jwt.InvalidTokenError as exc:
            logger.debug("jwt_invalid", error=str(exc))
            raise UnauthorizedException("Invalid credentials", reason="invalid")

        if payload.get("type", "access") != "access":
            raise UnauthorizedException("Invalid credentials", reason="wrong_type")

        subject = payload.get("sub")
        if not subject:
            raise UnauthorizedException("Invalid credentials", reason="no_subject")

        roles = payload.get("roles") or []
        if isinstance(roles, str):
            roles = [roles]
        return Claims(subject=str(subject), roles=list(roles), raw=payload)

    def issue(
        self,
        subject: str,
        *,
        roles: Optional[Iterable[str]] = None,
        expires_in: timedelta = timedelta(minutes=30),
    ) -> str:
        """Sign an access token; used by the client script and tests."""
        to_encode = {
            "sub": subject,
            "roles": list(roles or []),
            "type": "access",
            "exp": datetime.now(timezone.utc) + expires_in,
        }
        return jwt.encode(to_encode, self._secret_key, algorithm=self._algorithm)
