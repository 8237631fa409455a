from datetime import datetime, timedelta, timezone
from uuid import uuid4
import pytest
from jose import jwt
from phonegate.auth.tokens import TokenCodec, TokenKind
from phonegate.common.clock import FrozenClock
from phonegate.common.custom_exceptions import TokenBadSignature, TokenExpired, TokenMalformed, TokenUnsupportedKind
from phonegate.schema.full_schema import Role
from tests.helpers import JWT_SECRET

PHONE = "+14155552671"


def _raw_token(clock, **overrides):
    now = int(clock.now().timestamp())
    payload = {"sub": "u-1", "phone": PHONE, "role": "user", "kind": "access", "iat": now, "exp": now + 600}
    payload.update(overrides)
    payload = {k: v for k, v in payload.items() if v is not None}
    return jwt.encode(payload, JWT_SECRET, algorithm="HS256")


def test_issue_then_verify_returns_claims(codec, clock):
    subject = uuid4()
    token = codec.issue(subject, PHONE, Role.USER, TokenKind.ACCESS, timedelta(minutes=10))

    claims = codec.verify(token)

    assert claims.subject == str(subject)
    assert claims.phone == PHONE
    assert claims.role == "user"
    assert claims.kind is TokenKind.ACCESS
    assert claims.issued_at == clock.now()
    assert claims.expires_at == clock.now() + timedelta(minutes=10)
    assert claims.token_id


def test_same_second_tokens_differ(codec):
    a = codec.issue("u-1", PHONE, "user", TokenKind.REFRESH, 60)
    b = codec.issue("u-1", PHONE, "user", TokenKind.REFRESH, 60)
    assert a != b


@pytest.mark.parametrize("ttl", [0, -30])
def test_non_positive_ttl_is_expired(codec, ttl):
    token = codec.issue("u-1", PHONE, "user", TokenKind.ACCESS, ttl)
    with pytest.raises(TokenExpired):
        codec.verify(token)


def test_token_expires_with_the_clock(codec, clock):
    token = codec.issue("u-1", PHONE, "user", TokenKind.ACCESS, timedelta(seconds=60))
    clock.advance(seconds=59)
    assert codec.verify(token).subject == "u-1"
    clock.advance(seconds=1)
    with pytest.raises(TokenExpired):
        codec.verify(token)


@pytest.mark.parametrize("token", ["", "not-a-token", "a.b", "a.b.c", None, 12345])
def test_garbage_is_malformed(codec, token):
    with pytest.raises(TokenMalformed):
        codec.verify(token)


def test_missing_claim_is_malformed(codec, clock):
    with pytest.raises(TokenMalformed):
        codec.verify(_raw_token(clock, phone=None))


def test_foreign_key_is_bad_signature(clock):
    other = TokenCodec("some-other-secret", clock=clock)
    token = other.issue("u-1", PHONE, "user", TokenKind.ACCESS, 600)
    with pytest.raises(TokenBadSignature):
        TokenCodec(JWT_SECRET, clock=clock).verify(token)


def test_tampered_payload_is_bad_signature(codec, clock):
    token = codec.issue("u-1", PHONE, "user", TokenKind.ACCESS, 600)
    header, _, signature = token.split(".")
    forged_payload = _raw_token(clock, role="admin").split(".")[1]
    with pytest.raises(TokenBadSignature):
        codec.verify(f"{header}.{forged_payload}.{signature}")


def test_unknown_kind_is_unsupported(codec, clock):
    with pytest.raises(TokenUnsupportedKind):
        codec.verify(_raw_token(clock, kind="device"))


def test_kind_mismatch_is_unsupported(codec):
    token = codec.issue("u-1", PHONE, "user", TokenKind.REFRESH, 600)
    assert codec.verify(token, expected_kind=TokenKind.REFRESH).kind is TokenKind.REFRESH
    with pytest.raises(TokenUnsupportedKind):
        codec.verify(token, expected_kind=TokenKind.ACCESS)


def test_fractional_issue_time_does_not_expire_early():
    clock = FrozenClock(datetime(2025, 1, 1, 12, 0, 0, 900000, tzinfo=timezone.utc))
    codec = TokenCodec(JWT_SECRET, clock=clock)
    token = codec.issue("u-1", PHONE, "user", TokenKind.ACCESS, timedelta(seconds=1))

    clock.advance(milliseconds=500)
    assert codec.verify(token).subject == "u-1"

    clock.advance(milliseconds=600)
    with pytest.raises(TokenExpired):
        codec.verify(token)


def test_sub_second_ttl_is_live_until_it_lapses():
    clock = FrozenClock(datetime(2025, 1, 1, 12, 0, 0, 250000, tzinfo=timezone.utc))
    codec = TokenCodec(JWT_SECRET, clock=clock)
    token = codec.issue("u-1", PHONE, "user", TokenKind.ACCESS, timedelta(milliseconds=300))

    assert codec.verify(token).kind is TokenKind.ACCESS


def test_non_positive_ttl_is_expired_at_fractional_time():
    clock = FrozenClock(datetime(2025, 1, 1, 12, 0, 0, 900000, tzinfo=timezone.utc))
    codec = TokenCodec(JWT_SECRET, clock=clock)
    with pytest.raises(TokenExpired):
        codec.verify(codec.issue("u-1", PHONE, "user", TokenKind.ACCESS, 0))
