# backend/docbin/services/tokens.py
"""Signed, self-contained bearer tokens scoped to a single document.

A token is an HS256 JWT whose ``sub`` claim is the document key and whose
``permissions`` claim is an integer bitmask. Validation is pure computation:
no session table, no database round trip.
"""
import enum
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, List, Optional

import jwt

ALGORITHM = "HS256"


class Permission(enum.IntFlag):
    NONE = 0
    WRITE = 1
    DELETE = 2
    SHARE = 4
    WEBHOOK = 8
    ALL = WRITE | DELETE | SHARE | WEBHOOK

    @classmethod
    def parse(cls, names: Iterable[str]) -> "Permission":
        """Combine permission names (``["write", "share"]``) into one mask"""
        mask = cls.NONE
        for name in names:
            try:
                mask |= PERMISSION_NAMES[name.strip().lower()]
            except KeyError:
                raise ValueError(f"unknown permission: {name}") from None
        return mask

    def names(self) -> List[str]:
        return [name for name, flag in PERMISSION_NAMES.items() if flag & self]

    def covers(self, required: "Permission") -> bool:
        return (self & required) == required


PERMISSION_NAMES = {
    "write": Permission.WRITE,
    "delete": Permission.DELETE,
    "share": Permission.SHARE,
    "webhook": Permission.WEBHOOK,
}


class TokenError(Exception):
    pass


class InvalidTokenError(TokenError):
    """Malformed token, bad signature or unexpected claims"""


class TokenExpiredError(TokenError):
    pass


class WrongDocumentError(TokenError):
    def __init__(self, expected: str, actual: str):
        self.expected = expected
        self.actual = actual
        super().__init__("token was issued for another document")


class InsufficientPermissionError(TokenError):
    def __init__(self, required: Permission):
        self.required = required
        super().__init__(f"permission denied: {', '.join(required.names())}")


class PermissionDeniedError(TokenError):
    """Requested permissions exceed those of the token they are derived from"""


@dataclass(frozen=True)
class TokenClaims:
    document_key: str
    permissions: Permission
    issued_at: datetime
    expires_at: Optional[datetime] = None


class TokenService:
    def __init__(self, secret: str, issuer: str = "docbin"):
        if not secret:
            raise ValueError("token secret must not be empty")
        self._secret = secret
        self.issuer = issuer

    def issue(
            self,
            document_key: str,
            permissions: Permission,
            ttl: Optional[int] = None,
            expires_at: Optional[datetime] = None
    ) -> str:
        """Sign a token for ``document_key``; the earliest of ``ttl`` and ``expires_at`` wins"""
        now = int(time.time())
        payload = {
            "iss": self.issuer,
            "sub": document_key,
            "iat": now,
            "permissions": int(permissions),
        }

        deadlines = []
        if ttl is not None:
            deadlines.append(now + int(ttl))
        if expires_at is not None:
            deadlines.append(int(expires_at.timestamp()))
        if deadlines:
            payload["exp"] = min(deadlines)

        return jwt.encode(payload, self._secret, algorithm=ALGORITHM)

    def decode(self, token: str) -> TokenClaims:
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[ALGORITHM],
                issuer=self.issuer,
                options={"require": ["sub", "iat", "iss"]},
            )
        except jwt.ExpiredSignatureError as e:
            raise TokenExpiredError("token expired") from e
        except jwt.InvalidTokenError as e:
            raise InvalidTokenError(f"invalid token: {e}") from e

        mask = payload.get("permissions")
        if isinstance(mask, bool) or not isinstance(mask, int) or mask & ~int(Permission.ALL) or mask < 0:
            raise InvalidTokenError("invalid token: malformed permissions claim")

        exp = payload.get("exp")
        return TokenClaims(
            document_key=payload["sub"],
            permissions=Permission(mask),
            issued_at=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
            expires_at=datetime.fromtimestamp(exp, tz=timezone.utc) if exp is not None else None,
        )

    def validate(self, token: str, document_key: str, required: Permission = Permission.NONE) -> TokenClaims:
        claims = self.decode(token)
        if claims.document_key != document_key:
            raise WrongDocumentError(expected=document_key, actual=claims.document_key)
        if not claims.permissions.covers(required):
            raise InsufficientPermissionError(required)
        return claims

    def derive(self, parent_token: str, requested: Permission) -> str:
        """Issue a token for the same document with a subset of the parent's permissions.

        The derived token never outlives its parent.
        """
        if not requested:
            raise PermissionDeniedError("no permissions requested")
        claims = self.decode(parent_token)
        if not claims.permissions.covers(requested):
            excess = Permission(requested & ~claims.permissions)
            raise PermissionDeniedError(f"permission denied: {', '.join(excess.names())}")
        return self.issue(claims.document_key, requested, expires_at=claims.expires_at)
