import enum
import math
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional
from jose import jwt, JWTError, ExpiredSignatureError
from phonegate.auth.constants import logger
from phonegate.common.clock import Clock, SystemClock
from phonegate.common.custom_exceptions import TokenBadSignature, TokenExpired, TokenMalformed, TokenUnsupportedKind

REQUIRED_CLAIMS = ("sub", "phone", "role", "kind", "iat", "exp")


class TokenKind(str, enum.Enum):
    ACCESS = "access"
    REFRESH = "refresh"


@dataclass(frozen=True)
class TokenClaims:
    subject: str
    phone: str
    role: str
    kind: TokenKind
    issued_at: datetime
    expires_at: datetime
    token_id: Optional[str] = None


@dataclass
class TokenPair:
    access_token: str
    refresh_token: str


class TokenCodec:
    """
    Signs and verifies bearer tokens with one symmetric key.

    Verification failures are split so callers can branch on them:
    TokenMalformed, TokenBadSignature, TokenExpired, TokenUnsupportedKind.
    Revocation is not handled here; the session row decides liveness.
    """

    def __init__(self, secret: str, algorithm: str = "HS256", clock: Optional[Clock] = None):
        self.secret = secret
        self.algorithm = algorithm
        self.clock = clock or SystemClock()

    def issue(self, subject, phone: str, role: str, kind: TokenKind, ttl: timedelta | int) -> str:
        if isinstance(ttl, int):
            ttl = timedelta(seconds=ttl)
        kind = TokenKind(kind)
        now = self.clock.now()
        expiry = now + ttl
        # exp is whole seconds; a live ttl rounds up so the token never lapses early
        exp = math.ceil(expiry.timestamp()) if ttl > timedelta(0) else math.floor(expiry.timestamp())

        payload = {
            "sub": str(subject),
            "phone": phone,
            "role": str(getattr(role, "value", role)),
            "kind": kind.value,
            "iat": int(now.timestamp()),
            "exp": exp,
            "jti": secrets.token_hex(16),
        }
        return jwt.encode(claims=payload, key=self.secret, algorithm=self.algorithm)

    def issue_pair(self, subject, phone: str, role: str, access_ttl: timedelta, refresh_ttl: timedelta) -> TokenPair:
        return TokenPair(
            access_token=self.issue(subject, phone, role, TokenKind.ACCESS, access_ttl),
            refresh_token=self.issue(subject, phone, role, TokenKind.REFRESH, refresh_ttl),
        )

    def verify(self, token: str, expected_kind: Optional[TokenKind] = None) -> TokenClaims:
        if not isinstance(token, str) or token.count(".") != 2:
            raise TokenMalformed()

        # structure first, so a garbled token is never reported as a bad signature
        try:
            jwt.get_unverified_header(token)
            unverified = jwt.get_unverified_claims(token)
        except JWTError:
            raise TokenMalformed()

        if any(claim not in unverified for claim in REQUIRED_CLAIMS):
            raise TokenMalformed("Token is missing required claims")

        try:
            payload = jwt.decode(
                token,
                key=self.secret,
                algorithms=[self.algorithm],
                options={"verify_exp": False, "verify_aud": False},
            )
        except ExpiredSignatureError:
            raise TokenExpired()
        except JWTError as e:
            logger.warning("token.verify.bad_signature", extra={"reason": str(e)})
            raise TokenBadSignature()

        try:
            issued_at = datetime.fromtimestamp(int(payload["iat"]), tz=timezone.utc)
            expires_at = datetime.fromtimestamp(int(payload["exp"]), tz=timezone.utc)
        except (TypeError, ValueError, OverflowError):
            raise TokenMalformed("Token timestamps are invalid")

        if self.clock.now() >= expires_at:
            raise TokenExpired()

        try:
            kind = TokenKind(payload["kind"])
        except ValueError:
            raise TokenUnsupportedKind()
        if expected_kind is not None and kind != TokenKind(expected_kind):
            raise TokenUnsupportedKind(f"Expected a {TokenKind(expected_kind).value} token")

        return TokenClaims(
            subject=str(payload["sub"]),
            phone=payload["phone"],
            role=payload["role"],
            kind=kind,
            issued_at=issued_at,
            expires_at=expires_at,
            token_id=payload.get("jti"),
        )
