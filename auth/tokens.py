"""
auth/tokens.py -- Signed, time-bounded bearer tokens (python-jose, HMAC family).

Security design decisions:
  Configuration is an immutable TokenConfig injected at construction. The
      codec never reads settings or globals, so two codecs with different
      secrets can coexist (tests rely on this) and nothing mutates the secret
      after startup.

  Claims: sub (account id), iss (configured issuer), iat, exp, and a random
      jti. The jti makes every issued token unique, so a renewal inside the same
      second still yields a different token string.

  Verification rejects, in order: malformed structure, a header algorithm
      outside the HMAC family (algorithm-confusion defence -- "none" and RS*/ES*
      never reach signature checking), a bad signature, a missing or expired
      exp, a wrong issuer, a missing subject. Every rejection raises the same
      TokenInvalidError. The specific cause is logged, never returned.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from jose import ExpiredSignatureError, JWTError, jwt
from jose.exceptions import JWTClaimsError

from auth.errors import TokenInvalidError
from core.config import HMAC_ALGORITHMS, Settings

logger = logging.getLogger("backoffice.auth.tokens")

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class TokenConfig:
    secret: str
    issuer: str
    lifetime: timedelta
    algorithm: str = "HS256"

    def __post_init__(self) -> None:
        if not self.secret:
            raise ValueError("TokenConfig requires a non-empty secret")
        if self.algorithm not in HMAC_ALGORITHMS:
            raise ValueError(f"unsupported token algorithm {self.algorithm!r}")
        if self.lifetime <= timedelta(0):
            raise ValueError("token lifetime must be positive")

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenConfig":
        return cls(
            secret=settings.secret_key,
            issuer=settings.jwt_issuer,
            lifetime=timedelta(seconds=settings.token_expire_seconds),
            algorithm=settings.jwt_algorithm,
        )


class TokenCodec:
    """Issues and verifies bearer tokens for a single secret and issuer.

    Usage:
        codec = TokenCodec(TokenConfig(secret=..., issuer="backoffice", lifetime=timedelta(hours=12)))
        token = codec.issue(user.id)
        user_id = codec.verify(token)   # raises TokenInvalidError
    """

    def __init__(self, config: TokenConfig, clock: Clock | None = None) -> None:
        self._config = config
        self._clock = clock or _utcnow

    @property
    def lifetime_seconds(self) -> int:
        return int(self._config.lifetime.total_seconds())

    def issue(self, subject_id: str) -> str:
        """Sign a token for ``subject_id`` valid for the configured lifetime."""
        if not subject_id:
            raise ValueError("subject_id is required")
        now = self._clock().astimezone(timezone.utc)
        claims = {
            "sub": subject_id,
            "iss": self._config.issuer,
            "iat": int(now.timestamp()),
            "exp": int((now + self._config.lifetime).timestamp()),
            "jti": uuid.uuid4().hex,
        }
        return jwt.encode(claims, self._config.secret, algorithm=self._config.algorithm)

    def verify(self, token: str) -> str:
        """Return the subject id of a valid token. Raises TokenInvalidError otherwise."""
        if not token:
            raise TokenInvalidError()
        try:
            header = jwt.get_unverified_header(token)
        except JWTError:
            logger.info("Token rejected: malformed header")
            raise TokenInvalidError() from None

        alg = header.get("alg")
        if alg not in HMAC_ALGORITHMS:
            logger.warning("Token rejected: unexpected signing algorithm %r", alg)
            raise TokenInvalidError()

        try:
            claims = jwt.decode(
                token,
                self._config.secret,
                algorithms=sorted(HMAC_ALGORITHMS),
                issuer=self._config.issuer,
                options={"require_exp": True, "require_iat": True, "require_sub": True, "require_iss": True},
            )
        except ExpiredSignatureError:
            logger.debug("Token rejected: expired")
            raise TokenInvalidError() from None
        except JWTClaimsError as exc:
            logger.info("Token rejected: bad claims (%s)", exc)
            raise TokenInvalidError() from None
        except JWTError as exc:
            logger.info("Token rejected: %s", exc)
            raise TokenInvalidError() from None

        subject = claims.get("sub")
        if not isinstance(subject, str) or not subject:
            logger.info("Token rejected: empty subject")
            raise TokenInvalidError()
        return subject
