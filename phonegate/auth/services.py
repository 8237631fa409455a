from dataclasses import dataclass
from datetime import timedelta
from typing import List, Optional
from uuid import UUID
from phonegate.auth.constants import logger
from phonegate.auth.otp_service import OtpChallengeEngine
from phonegate.auth.session_service import SessionManager
from phonegate.auth.tokens import TokenCodec
from phonegate.common.clock import Clock, SystemClock
from phonegate.common.custom_exceptions import InvalidOtp
from phonegate.common.phone import mask_phone, normalize_to_e164
from phonegate.schema.full_schema import UserSession, Users
from phonegate.user.repository import find_or_create_user, stamp_last_login


@dataclass
class AuthResult:
    user: Users
    access_token: str
    refresh_token: str
    session_id: UUID
    expires_in: int


class AuthService:
    """Composes the OTP engine, the session manager and the codec into the login flows."""

    def __init__(self, otp_engine: OtpChallengeEngine, session_manager: SessionManager,
                 codec: TokenCodec, clock: Optional[Clock] = None):
        self.otp_engine = otp_engine
        self.session_manager = session_manager
        self.codec = codec
        self.clock = clock or SystemClock()

    @property
    def access_ttl_seconds(self) -> int:
        return self.session_manager.config.access_ttl_seconds

    async def initiate(self, session, phone: str, client_ip: str) -> str:
        normalized = normalize_to_e164(phone)
        logger.info("auth.initiate", extra={"phone": mask_phone(normalized)})
        await self.otp_engine.send(session, normalized, client_ip)
        return normalized

    async def verify_and_login(self, session, phone: str, code: str, client_ip: str,
                               user_agent: Optional[str] = None) -> AuthResult:
        normalized = normalize_to_e164(phone)
        masked = mask_phone(normalized)
        logger.info("auth.verify.attempt", extra={"phone": masked})

        if not await self.otp_engine.verify(session, normalized, code, client_ip):
            raise InvalidOtp()

        now = self.clock.now()
        user = await find_or_create_user(session, normalized, at=now)
        await stamp_last_login(session, user, now)
        await session.commit()

        cfg = self.session_manager.config
        tokens = self.codec.issue_pair(user.public_id, user.phone, user.role,
                                       timedelta(seconds=cfg.access_ttl_seconds),
                                       timedelta(seconds=cfg.refresh_ttl_seconds))
        user_session = await self.session_manager.create_session(
            session, user, tokens.access_token, tokens.refresh_token, client_ip, user_agent
        )

        logger.info("auth.login.success", extra={"phone": masked, "user_public_id": str(user.public_id)})
        return AuthResult(
            user=user,
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            session_id=user_session.public_id,
            expires_in=self.access_ttl_seconds,
        )

    async def refresh_token(self, session, refresh_token: str, client_ip: Optional[str] = None) -> AuthResult:
        logger.info("auth.refresh.attempt", extra={"client_ip": client_ip})
        outcome = await self.session_manager.refresh(session, refresh_token)
        return AuthResult(
            user=outcome.user,
            access_token=outcome.tokens.access_token,
            refresh_token=outcome.tokens.refresh_token,
            session_id=outcome.user_session.public_id,
            expires_in=self.access_ttl_seconds,
        )

    async def validate(self, session, access_token: str) -> Users:
        return await self.session_manager.validate(session, access_token)

    async def logout(self, session, access_token: str) -> None:
        await self.session_manager.logout(session, access_token)

    async def logout_all(self, session, user_id: int) -> int:
        return await self.session_manager.logout_all(session, user_id)

    async def list_sessions(self, session, user_id: int) -> List[UserSession]:
        return await self.session_manager.list_sessions(session, user_id)
