"""
security helpers:
- Argon2 password hashing via argon2-cffi (configurable work factor)
- Access/refresh JWT issuing and verification via PyJWT, each kind
  signed with its own secret
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Mapping

import jwt
from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError

from utils.exceptions import ExpiredToken, InvalidToken

logger = logging.getLogger(__name__)

ACCESS = "access"
REFRESH = "refresh"


def build_password_hasher(work_factor: int = 12, memory_cost: int = 65536) -> PasswordHasher:
    """Argon2id hasher; work_factor is the argon2 time cost (iterations)."""
    return PasswordHasher(time_cost=work_factor, memory_cost=memory_cost)


def hash_password(hasher: PasswordHasher, password: str) -> str:
    """Hash a plaintext password using Argon2
    """
    return hasher.hash(password)


def verify_password(hasher: PasswordHasher, password: str, password_hash: str) -> bool:
    """Verify a plaintext password against a stored hash (constant time).
    """
    try:
        return hasher.verify(password_hash, password)
    except VerificationError:
        return False
    except InvalidHashError:
        logger.error("Stored password hash is not a valid argon2 hash")
        return False


def generate_jti() -> str:
    """Generate a unique JTI (JWT ID).
    """
    return str(uuid.uuid4())


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class AccessTokenClaims:
    """Identity carried by both token kinds; never stored server-side."""

    user_id: str
    email: str
    role: str

    def to_payload(self) -> Dict[str, Any]:
        return {"userId": self.user_id, "email": self.email, "role": self.role}

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "AccessTokenClaims":
        try:
            return cls(
                user_id=str(payload["userId"]),
                email=payload["email"],
                role=payload["role"],
            )
        except KeyError as exc:
            raise InvalidToken(f"missing claim {exc}")

    @classmethod
    def for_user(cls, user) -> "AccessTokenClaims":
        role = getattr(user.role, "value", user.role)
        return cls(user_id=str(user.id), email=user.email, role=role)


@dataclass(frozen=True)
class IssuedToken:
    token: str
    jti: str
    # naive UTC, equal to the token's exp claim
    expires_at: datetime


class TokenIssuer:
    """Mints and verifies access and refresh tokens."""

    def __init__(
        self,
        access_secret: str,
        refresh_secret: str,
        access_lifetime: timedelta = timedelta(minutes=15),
        refresh_lifetime: timedelta = timedelta(days=7),
        algorithm: str = "HS256",
        issuer: str = "taskboard-api",
        clock: Callable[[], datetime] = _utc_now,
    ):
        if access_secret == refresh_secret:
            raise ValueError("access and refresh tokens need distinct secrets")
        self._secrets = {ACCESS: access_secret, REFRESH: refresh_secret}
        self._lifetimes = {ACCESS: access_lifetime, REFRESH: refresh_lifetime}
        self.algorithm = algorithm
        self.issuer = issuer
        self._clock = clock

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "TokenIssuer":
        return cls(
            access_secret=config["JWT_ACCESS_SECRET"],
            refresh_secret=config["JWT_REFRESH_SECRET"],
            access_lifetime=config["ACCESS_TOKEN_EXPIRES"],
            refresh_lifetime=config["REFRESH_TOKEN_EXPIRES"],
            algorithm=config.get("JWT_ALGORITHM", "HS256"),
            issuer=config.get("JWT_ISSUER", "taskboard-api"),
        )

    def issue_access_token(self, claims: AccessTokenClaims) -> IssuedToken:
        return self._issue(claims, ACCESS)

    def issue_refresh_token(self, claims: AccessTokenClaims) -> IssuedToken:
        return self._issue(claims, REFRESH)

    def decode_access_token(self, token: str) -> AccessTokenClaims:
        return AccessTokenClaims.from_payload(self._decode(token, ACCESS))

    def decode_refresh_token(self, token: str) -> AccessTokenClaims:
        return AccessTokenClaims.from_payload(self._decode(token, REFRESH))

    def _issue(self, claims: AccessTokenClaims, kind: str) -> IssuedToken:
        issued_at = int(self._clock().timestamp())
        expires = issued_at + int(self._lifetimes[kind].total_seconds())
        jti = generate_jti()
        payload = {
            **claims.to_payload(),
            "iss": self.issuer,
            "iat": issued_at,
            "exp": expires,
            "jti": jti,
            "type": kind,
        }
        token = jwt.encode(payload, self._secrets[kind], algorithm=self.algorithm)
        expires_at = datetime.fromtimestamp(expires, timezone.utc).replace(tzinfo=None)
        return IssuedToken(token=token, jti=jti, expires_at=expires_at)

    def _decode(self, token: str, kind: str) -> Dict[str, Any]:
        """
        Decode and validate a JWT of the given kind.
        Raises ExpiredToken on expiry and InvalidToken on anything else.
        """
        try:
            decoded = jwt.decode(
                token,
                self._secrets[kind],
                algorithms=[self.algorithm],
                issuer=self.issuer,
                options={"require": ["exp", "iat", "jti"]},
            )
        except jwt.ExpiredSignatureError:
            raise ExpiredToken(f"{kind} token expired")
        except jwt.InvalidTokenError as exc:
            raise InvalidToken(f"invalid {kind} token: {exc}")

        if decoded.get("type") != kind:
            raise InvalidToken(f"wrong token type, expected {kind}")
        return decoded
