from typing import Optional
from fastapi import Header, Request
from phonegate.auth.constants import REFRESH_HEADER_NAME
from phonegate.auth.otp_service import OtpChallengeEngine
from phonegate.auth.services import AuthService
from phonegate.auth.session_service import SessionManager
from phonegate.auth.tokens import TokenCodec
from phonegate.common.clock import Clock, SystemClock
from phonegate.common.utils import client_ip_from_request
from phonegate.config.settings import OtpConfig, SessionConfig, Settings
from phonegate.sms.base import SmsProvider


def build_auth_service(settings: Settings, sms: SmsProvider, clock: Optional[Clock] = None) -> AuthService:
    clock = clock or SystemClock()
    codec = TokenCodec(settings.JWT_SECRET, settings.JWT_ALGO, clock)
    otp_engine = OtpChallengeEngine(OtpConfig.from_settings(settings), sms, clock)
    session_manager = SessionManager(SessionConfig.from_settings(settings), codec, clock)
    return AuthService(otp_engine, session_manager, codec, clock)


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def client_ip(request: Request) -> str:
    return client_ip_from_request(request)


def user_agent(ua: Optional[str] = Header(None, alias="User-Agent")) -> Optional[str]:
    return ua[:512] if ua else None


def refresh_token_header(refresh_header: Optional[str] = Header(None, alias=REFRESH_HEADER_NAME)) -> Optional[str]:
    return refresh_header
