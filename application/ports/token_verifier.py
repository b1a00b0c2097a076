"""Application-owned authentication port.

The transport layer asks a TokenVerifier to turn an opaque bearer token
into claims before any grade operation runs.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable


@dataclass
class Claims:
    subject: str
    roles: list[str] = field(default_factory=list)
    raw: dict[str, Any] = field(default_factory=dict)

    def has_role(self, role: str) -> bool:
        return role in self.roles


@runtime_checkable
class TokenVerifier(Protocol):
    async def verify(self, token: str) -> Claims:
        """Return the token's claims.

        Raises UnauthorizedException for a missing/invalid token and
        TokenExpiredException for an expired one.
        """
        ...
