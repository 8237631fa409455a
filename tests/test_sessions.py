import asyncio
from datetime import timedelta
import pytest
from sqlalchemy import delete, select, text
from phonegate.auth.session_service import SessionManager
from phonegate.auth.utils import hash_token
from phonegate.common.custom_exceptions import InvalidRefreshToken, InvalidToken, RefreshTokenExpired, TokenExpired, UserNotFound
from phonegate.config.settings import SessionConfig
from phonegate.schema.full_schema import UserSession, Users
from phonegate.user.repository import create_user


async def _user(session, phone="+14155552671"):
    user = await create_user(session, phone)
    await session.commit()
    return user


async def _login(manager, session, user, ip="203.0.113.7", ua="pytest"):
    pair = manager.mint_token_pair(user)
    row = await manager.create_session(session, user, pair.access_token, pair.refresh_token, ip, ua)
    return row, pair


async def _rows(session_maker, user_id):
    async with session_maker() as s:
        res = await s.execute(select(UserSession).where(UserSession.user_id == user_id).order_by(UserSession.id))
        return list(res.scalars().all())


async def test_create_session_stores_digests(session_manager, db_session, session_maker, clock):
    user = await _user(db_session)
    row, pair = await _login(session_manager, db_session, user)

    [stored] = await _rows(session_maker, user.id)
    assert stored.public_id == row.public_id
    assert stored.access_token_hash == hash_token(pair.access_token)
    assert stored.refresh_token_hash == hash_token(pair.refresh_token)
    assert pair.access_token not in (stored.access_token_hash, stored.refresh_token_hash)
    assert stored.expires_at == clock.now() + timedelta(minutes=60)
    assert stored.refresh_expires_at == clock.now() + timedelta(days=7)
    assert stored.active is True
    assert stored.client_ip == "203.0.113.7"
    assert stored.user_agent == "pytest"


async def test_validate_returns_user_and_touches_session(session_manager, db_session, session_maker, clock):
    user = await _user(db_session)
    _, pair = await _login(session_manager, db_session, user)

    clock.advance(minutes=10)
    found = await session_manager.validate(db_session, pair.access_token)

    assert found.id == user.id
    [stored] = await _rows(session_maker, user.id)
    assert stored.last_used_at == clock.now()


async def test_validate_unknown_token(session_manager, db_session):
    with pytest.raises(InvalidToken):
        await session_manager.validate(db_session, "nope")


async def test_expired_access_is_told_apart_from_invalid(session_manager, db_session, clock):
    user = await _user(db_session)
    _, pair = await _login(session_manager, db_session, user)

    clock.advance(minutes=60, seconds=1)
    with pytest.raises(TokenExpired):
        await session_manager.validate(db_session, pair.access_token)

    await session_manager.logout_all(db_session, user.id)
    with pytest.raises(InvalidToken):
        await session_manager.validate(db_session, pair.access_token)


async def test_session_cap_evicts_oldest(session_config, codec, clock, db_session, session_maker):
    manager = SessionManager(session_config.model_copy(update={"max_sessions_per_user": 2}), codec, clock)
    user = await _user(db_session)

    s1, p1 = await _login(manager, db_session, user)
    clock.advance(seconds=1)
    s2, p2 = await _login(manager, db_session, user)
    clock.advance(seconds=1)
    s3, p3 = await _login(manager, db_session, user)

    rows = {r.public_id: r.active for r in await _rows(session_maker, user.id)}
    assert rows == {s1.public_id: False, s2.public_id: True, s3.public_id: True}

    with pytest.raises(InvalidToken):
        await manager.validate(db_session, p1.access_token)
    assert (await manager.validate(db_session, p2.access_token)).id == user.id


async def test_lowered_cap_evicts_one_per_login(session_config, codec, clock, db_session, session_maker):
    roomy = SessionManager(session_config, codec, clock)
    user = await _user(db_session)
    for _ in range(3):
        await _login(roomy, db_session, user)
        clock.advance(seconds=1)

    tight = SessionManager(SessionConfig(max_sessions_per_user=2), codec, clock)
    await _login(tight, db_session, user)

    rows = await _rows(session_maker, user.id)
    assert [r.active for r in rows] == [False, True, True, True]


async def test_refresh_rotates_in_place(session_manager, db_session, session_maker, clock):
    user = await _user(db_session)
    row, old = await _login(session_manager, db_session, user)

    clock.advance(minutes=90)
    outcome = await session_manager.refresh(db_session, old.refresh_token)

    assert outcome.user.id == user.id
    assert outcome.user_session.public_id == row.public_id
    assert outcome.tokens.access_token != old.access_token
    assert outcome.tokens.refresh_token != old.refresh_token

    [stored] = await _rows(session_maker, user.id)
    assert stored.expires_at == clock.now() + timedelta(minutes=60)
    assert stored.refresh_expires_at == clock.now() + timedelta(days=7)
    assert stored.last_used_at == clock.now()

    with pytest.raises(InvalidToken):
        await session_manager.validate(db_session, old.access_token)
    with pytest.raises(InvalidRefreshToken):
        await session_manager.refresh(db_session, old.refresh_token)
    assert (await session_manager.validate(db_session, outcome.tokens.access_token)).id == user.id


async def test_refresh_rejects_expired_or_revoked(session_manager, db_session, clock):
    user = await _user(db_session)
    _, lapsed = await _login(session_manager, db_session, user)
    _, revoked = await _login(session_manager, db_session, user)

    await session_manager.logout(db_session, revoked.access_token)
    with pytest.raises(RefreshTokenExpired):
        await session_manager.refresh(db_session, revoked.refresh_token)

    clock.advance(days=7, seconds=1)
    with pytest.raises(RefreshTokenExpired):
        await session_manager.refresh(db_session, lapsed.refresh_token)

    with pytest.raises(InvalidRefreshToken):
        await session_manager.refresh(db_session, "never-issued")


async def test_logout_is_not_idempotent(session_manager, db_session):
    user = await _user(db_session)
    _, pair = await _login(session_manager, db_session, user)

    await session_manager.logout(db_session, pair.access_token)
    with pytest.raises(InvalidToken):
        await session_manager.logout(db_session, pair.access_token)


async def test_logout_all_counts_active_sessions(session_manager, db_session):
    user = await _user(db_session)
    other = await _user(db_session, "+14155550000")
    pairs = [(await _login(session_manager, db_session, user))[1] for _ in range(3)]
    _, other_pair = await _login(session_manager, db_session, other)
    await session_manager.logout(db_session, pairs[0].access_token)

    assert await session_manager.logout_all(db_session, user.id) == 2
    assert await session_manager.logout_all(db_session, user.id) == 0
    for pair in pairs:
        with pytest.raises(InvalidToken):
            await session_manager.validate(db_session, pair.access_token)
    assert (await session_manager.validate(db_session, other_pair.access_token)).id == other.id


async def test_list_sessions_newest_first(session_manager, db_session, clock):
    user = await _user(db_session)
    s1, _ = await _login(session_manager, db_session, user)
    clock.advance(seconds=5)
    s2, p2 = await _login(session_manager, db_session, user)
    clock.advance(seconds=5)
    s3, _ = await _login(session_manager, db_session, user)
    await session_manager.logout(db_session, p2.access_token)

    listed = await session_manager.list_sessions(db_session, user.id)
    assert [s.public_id for s in listed] == [s3.public_id, s1.public_id]


async def test_cleanup_removes_only_refresh_expired(session_manager, db_session, session_maker, clock):
    user = await _user(db_session)
    old, _ = await _login(session_manager, db_session, user)
    clock.advance(days=3)
    fresh, _ = await _login(session_manager, db_session, user)

    # access tokens of both have lapsed, only the first can no longer refresh
    clock.advance(days=4, seconds=1)
    assert await session_manager.cleanup_expired(db_session) == 1
    assert [r.public_id for r in await _rows(session_maker, user.id)] == [fresh.public_id]


async def test_validate_with_vanished_user(session_manager, db_session, session_maker):
    user = await _user(db_session)
    _, pair = await _login(session_manager, db_session, user)

    async with session_maker() as s:
        await s.execute(text("PRAGMA foreign_keys=OFF"))
        await s.execute(delete(Users).where(Users.id == user.id))
        await s.commit()

    async with session_maker() as s:
        with pytest.raises(UserNotFound):
            await session_manager.validate(s, pair.access_token)


async def test_concurrent_refresh_has_one_winner(session_manager, db_session, session_maker):
    user = await _user(db_session)
    _, pair = await _login(session_manager, db_session, user)

    async def attempt():
        async with session_maker() as s:
            return await session_manager.refresh(s, pair.refresh_token)

    results = await asyncio.gather(attempt(), attempt(), return_exceptions=True)

    winners = [r for r in results if not isinstance(r, Exception)]
    assert len(winners) == 1
    assert sum(isinstance(r, InvalidRefreshToken) for r in results) == 1
    assert (await session_manager.validate(db_session, winners[0].tokens.access_token)).id == user.id
