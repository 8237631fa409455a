from datetime import datetime
from typing import List, Optional
from sqlalchemy import delete, func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from phonegate.schema.full_schema import OtpChallenge, OtpSendLock, UserSession


# ---------------------------------------------------------------- otp challenges

async def lock_send_keys(session, keys: List[str], at: datetime) -> None:
    """
    Upsert one lock row per key and keep it locked until the transaction ends, so
    concurrent sends for the same phone or IP count and insert one at a time.
    Must be the first write of the transaction; keys are locked in sorted order.
    """
    insert = pg_insert if session.get_bind().dialect.name == "postgresql" else sqlite_insert
    stmt = insert(OtpSendLock).values([{"lock_key": key, "touched_at": at} for key in sorted(set(keys))])
    stmt = stmt.on_conflict_do_update(index_elements=["lock_key"], set_={"touched_at": stmt.excluded.touched_at})
    await session.execute(stmt)


async def delete_send_locks_before(session, cutoff: datetime) -> int:
    res = await session.execute(delete(OtpSendLock).where(OtpSendLock.touched_at < cutoff))
    return res.rowcount or 0


async def count_challenges_for_phone_since(session, phone: str, since: datetime) -> int:
    stmt = select(func.count(OtpChallenge.id)).where(OtpChallenge.phone == phone, OtpChallenge.created_at >= since)
    return (await session.execute(stmt)).scalar_one()


async def count_challenges_for_ip_since(session, request_ip: str, since: datetime) -> int:
    stmt = select(func.count(OtpChallenge.id)).where(OtpChallenge.request_ip == request_ip, OtpChallenge.created_at >= since)
    return (await session.execute(stmt)).scalar_one()


async def save_challenge(session, challenge: OtpChallenge) -> OtpChallenge:
    session.add(challenge)
    await session.flush()
    return challenge


async def latest_challenge_for_phone(session, phone: str, *, unconsumed_only: bool = False) -> Optional[OtpChallenge]:
    stmt = select(OtpChallenge).where(OtpChallenge.phone == phone)
    if unconsumed_only:
        stmt = stmt.where(OtpChallenge.consumed_at.is_(None))
    stmt = stmt.order_by(OtpChallenge.created_at.desc(), OtpChallenge.id.desc()).limit(1)
    res = await session.execute(stmt)
    return res.scalar_one_or_none()


async def increment_attempt_count(session, challenge_id: int, max_attempts: int) -> Optional[int]:
    """
    Charge one attempt in a single statement. Returns the new count, or None when the
    challenge was consumed or ran out of attempts under a concurrent request.
    """
    stmt = (
        update(OtpChallenge)
        .where(
            OtpChallenge.id == challenge_id,
            OtpChallenge.consumed_at.is_(None),
            OtpChallenge.attempt_count < max_attempts,
        )
        .values(attempt_count=OtpChallenge.attempt_count + 1)
        .returning(OtpChallenge.attempt_count)
    )
    res = await session.execute(stmt)
    return res.scalar_one_or_none()


async def mark_challenge_consumed(session, challenge_id: int, at: datetime) -> bool:
    stmt = (
        update(OtpChallenge)
        .where(OtpChallenge.id == challenge_id, OtpChallenge.consumed_at.is_(None))
        .values(consumed_at=at)
        .returning(OtpChallenge.id)
    )
    res = await session.execute(stmt)
    return res.scalar_one_or_none() is not None


async def delete_challenges_expired_before(session, cutoff: datetime) -> int:
    res = await session.execute(delete(OtpChallenge).where(OtpChallenge.expires_at < cutoff))
    return res.rowcount or 0


# ---------------------------------------------------------------- user sessions

async def active_sessions_for_user(session, user_id: int, *, take_lock: bool = False) -> List[UserSession]:
    """Oldest first."""
    stmt = (
        select(UserSession)
        .where(UserSession.user_id == user_id, UserSession.active.is_(True))
        .order_by(UserSession.created_at.asc(), UserSession.id.asc())
    )
    if take_lock:
        stmt = stmt.with_for_update()
    res = await session.execute(stmt)
    return list(res.scalars().all())


async def list_active_sessions_newest_first(session, user_id: int) -> List[UserSession]:
    stmt = (
        select(UserSession)
        .where(UserSession.user_id == user_id, UserSession.active.is_(True))
        .order_by(UserSession.created_at.desc(), UserSession.id.desc())
    )
    res = await session.execute(stmt)
    return list(res.scalars().all())


async def save_user_session(session, user_session: UserSession) -> UserSession:
    session.add(user_session)
    await session.flush()
    return user_session


async def active_session_by_access_hash(session, access_hash: str) -> Optional[UserSession]:
    stmt = select(UserSession).where(UserSession.access_token_hash == access_hash, UserSession.active.is_(True))
    res = await session.execute(stmt)
    return res.scalar_one_or_none()


async def session_by_refresh_hash(session, refresh_hash: str) -> Optional[UserSession]:
    stmt = select(UserSession).where(UserSession.refresh_token_hash == refresh_hash)
    res = await session.execute(stmt)
    return res.scalar_one_or_none()


async def deactivate_session(session, session_id: int) -> bool:
    stmt = (
        update(UserSession)
        .where(UserSession.id == session_id, UserSession.active.is_(True))
        .values(active=False)
        .returning(UserSession.id)
    )
    res = await session.execute(stmt)
    return res.scalar_one_or_none() is not None


async def deactivate_all_sessions_for_user(session, user_id: int) -> int:
    stmt = (
        update(UserSession)
        .where(UserSession.user_id == user_id, UserSession.active.is_(True))
        .values(active=False)
    )
    res = await session.execute(stmt)
    return res.rowcount or 0


async def touch_session_if_active(session, session_id: int, at: datetime) -> bool:
    stmt = (
        update(UserSession)
        .where(UserSession.id == session_id, UserSession.active.is_(True))
        .values(last_used_at=at)
        .returning(UserSession.id)
    )
    res = await session.execute(stmt)
    return res.scalar_one_or_none() is not None


async def rotate_session_tokens(session, session_id: int, old_refresh_hash: str, *,
                                access_hash: str, refresh_hash: str,
                                expires_at: datetime, refresh_expires_at: datetime, at: datetime) -> bool:
    """
    Compare-and-set on the refresh digest: only one caller holding the old value wins,
    every other one sees zero rows.
    """
    stmt = (
        update(UserSession)
        .where(
            UserSession.id == session_id,
            UserSession.refresh_token_hash == old_refresh_hash,
            UserSession.active.is_(True),
        )
        .values(
            access_token_hash=access_hash,
            refresh_token_hash=refresh_hash,
            expires_at=expires_at,
            refresh_expires_at=refresh_expires_at,
            last_used_at=at,
        )
        .returning(UserSession.id)
    )
    res = await session.execute(stmt)
    return res.scalar_one_or_none() is not None


async def delete_sessions_refresh_expired_before(session, cutoff: datetime) -> int:
    res = await session.execute(delete(UserSession).where(UserSession.refresh_expires_at < cutoff))
    return res.rowcount or 0
