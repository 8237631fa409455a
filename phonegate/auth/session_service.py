from dataclasses import dataclass
from datetime import timedelta
from typing import List, Optional
from phonegate.auth.constants import logger
from phonegate.auth.repository import (active_session_by_access_hash, active_sessions_for_user,
                                       deactivate_all_sessions_for_user, deactivate_session,
                                       delete_sessions_refresh_expired_before, list_active_sessions_newest_first,
                                       rotate_session_tokens, save_user_session, session_by_refresh_hash,
                                       touch_session_if_active)
from phonegate.auth.tokens import TokenCodec, TokenPair
from phonegate.auth.utils import hash_token
from phonegate.common.clock import Clock, SystemClock
from phonegate.common.custom_exceptions import (InvalidRefreshToken, InvalidToken, RefreshTokenExpired,
                                                TokenExpired, UserNotFound)
from phonegate.config.settings import SessionConfig
from phonegate.schema.full_schema import UserSession, Users
from phonegate.user.repository import find_user_by_id


@dataclass
class RefreshOutcome:
    user_session: UserSession
    user: Users
    tokens: TokenPair


class SessionManager:
    """
    Owns the per-device session rows: issue, validate, rotate, revoke.

    Tokens are matched by digest of their exact value, so rotating a row makes the
    previous pair unusable at once. Liveness is decided here, never by the token
    signature alone.
    """

    def __init__(self, config: SessionConfig, codec: TokenCodec, clock: Optional[Clock] = None):
        self.config = config
        self.codec = codec
        self.clock = clock or SystemClock()

    def _digest(self, token: str) -> str:
        return hash_token(token, self.config.token_hash_algo)

    def mint_token_pair(self, user: Users) -> TokenPair:
        return self.codec.issue_pair(user.public_id, user.phone, user.role,
                                     timedelta(seconds=self.config.access_ttl_seconds),
                                     timedelta(seconds=self.config.refresh_ttl_seconds))

    async def create_session(self, session, user: Users, access_token: str, refresh_token: str,
                             client_ip: Optional[str] = None, user_agent: Optional[str] = None) -> UserSession:
        now = self.clock.now()

        active = await active_sessions_for_user(session, user.id, take_lock=True)
        if len(active) >= self.config.max_sessions_per_user:
            # one eviction per creation, oldest-created first
            oldest = active[0]
            await deactivate_session(session, oldest.id)
            logger.info("auth.session.evicted", extra={"user_public_id": str(user.public_id),
                                                       "session_public_id": str(oldest.public_id)})

        user_session = UserSession(
            user_id=user.id,
            access_token_hash=self._digest(access_token),
            refresh_token_hash=self._digest(refresh_token),
            expires_at=now + timedelta(seconds=self.config.access_ttl_seconds),
            refresh_expires_at=now + timedelta(seconds=self.config.refresh_ttl_seconds),
            created_at=now,
            client_ip=client_ip,
            user_agent=(user_agent or "")[:512] or None,
            active=True,
        )
        await save_user_session(session, user_session)
        await session.commit()

        logger.info("auth.session.created", extra={"user_public_id": str(user.public_id),
                                                   "session_public_id": str(user_session.public_id)})
        return user_session

    async def validate(self, session, access_token: str) -> Users:
        now = self.clock.now()

        user_session = await active_session_by_access_hash(session, self._digest(access_token or ""))
        if user_session is None:
            raise InvalidToken()

        if user_session.is_expired(now):
            logger.info("auth.validate.expired", extra={"session_public_id": str(user_session.public_id)})
            raise TokenExpired()

        user = await find_user_by_id(session, user_session.user_id)
        if user is None:
            logger.error("auth.validate.user_missing", extra={"session_public_id": str(user_session.public_id)})
            raise UserNotFound()

        # a concurrent logout/eviction wins: no active row left means no access
        if not await touch_session_if_active(session, user_session.id, now):
            await session.commit()
            raise InvalidToken()
        await session.commit()
        return user

    async def refresh(self, session, refresh_token: str) -> RefreshOutcome:
        now = self.clock.now()
        old_digest = self._digest(refresh_token or "")

        user_session = await session_by_refresh_hash(session, old_digest)
        if user_session is None:
            logger.warning("auth.refresh.validate_failed", extra={"reason": "invalid_refresh_token"})
            raise InvalidRefreshToken()

        if not user_session.active or user_session.is_refresh_expired(now):
            logger.warning("auth.refresh.validate_failed", extra={"reason": "inactive_or_expired",
                                                                  "session_public_id": str(user_session.public_id)})
            raise RefreshTokenExpired()

        user = await find_user_by_id(session, user_session.user_id)
        if user is None:
            raise UserNotFound()

        tokens = self.mint_token_pair(user)
        rotated = await rotate_session_tokens(
            session, user_session.id, old_digest,
            access_hash=self._digest(tokens.access_token),
            refresh_hash=self._digest(tokens.refresh_token),
            expires_at=now + timedelta(seconds=self.config.access_ttl_seconds),
            refresh_expires_at=now + timedelta(seconds=self.config.refresh_ttl_seconds),
            at=now,
        )
        await session.commit()
        if not rotated:
            # another request rotated (or revoked) this session first
            logger.warning("auth.refresh.lost_race", extra={"session_public_id": str(user_session.public_id)})
            raise InvalidRefreshToken()

        await session.refresh(user_session)
        logger.info("auth.refresh.rotated", extra={"user_public_id": str(user.public_id),
                                                   "session_public_id": str(user_session.public_id)})
        return RefreshOutcome(user_session=user_session, user=user, tokens=tokens)

    async def logout(self, session, access_token: str) -> UserSession:
        user_session = await active_session_by_access_hash(session, self._digest(access_token or ""))
        if user_session is None:
            raise InvalidToken()

        deactivated = await deactivate_session(session, user_session.id)
        await session.commit()
        if not deactivated:
            raise InvalidToken()

        logger.info("auth.logout.session_revoked", extra={"session_public_id": str(user_session.public_id)})
        return user_session

    async def logout_all(self, session, user_id: int) -> int:
        count = await deactivate_all_sessions_for_user(session, user_id)
        await session.commit()
        logger.info("auth.logout_all", extra={"user_id": user_id, "deactivated": count})
        return count

    async def list_sessions(self, session, user_id: int) -> List[UserSession]:
        return await list_active_sessions_newest_first(session, user_id)

    async def cleanup_expired(self, session) -> int:
        deleted = await delete_sessions_refresh_expired_before(session, self.clock.now())
        await session.commit()
        logger.info("auth.session.cleanup", extra={"deleted": deleted})
        return deleted
