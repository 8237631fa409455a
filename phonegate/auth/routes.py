from typing import Optional
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import  AsyncSession
from phonegate.auth.dependencies import client_ip, get_auth_service, refresh_token_header, user_agent
from phonegate.auth.models import AuthOut, RefreshIn, SendOtpIn, SessionOut, SessionsOut, UserOut, VerifyOtpIn
from phonegate.auth.services import AuthResult, AuthService
from phonegate.common.constants import request_id_ctx
from phonegate.common.custom_exceptions import InvalidRefreshToken
from phonegate.common.phone import mask_phone
from phonegate.common.utils import success_response
from phonegate.db.dependencies import get_session
from phonegate.schema.full_schema import Users
from phonegate.user.dependencies import bearer_token, current_user
from phonegate.auth.constants import logger
from metrics.custom_instrumentator import record_auth_outcome

auth_router = APIRouter()


def _auth_payload(result: AuthResult) -> dict:
    out = AuthOut(
        user=UserOut.model_validate(result.user),
        access_token=result.access_token,
        refresh_token=result.refresh_token,
        expires_in=result.expires_in,
        session_id=result.session_id,
    )
    return out.model_dump(mode="json")


@auth_router.post("/send-otp")
async def send_otp(payload: SendOtpIn, ip: str = Depends(client_ip),
                   service: AuthService = Depends(get_auth_service),
                   session: AsyncSession = Depends(get_session)):

    logger.info("send_otp.attempt", extra={"client_ip": ip})

    phone = await service.initiate(session, payload.phone, ip)

    logger.info("send_otp.success", extra={"phone": mask_phone(phone)})
    record_auth_outcome("send-otp", "ok")
    return success_response({"message": "Verification code sent successfully", "phone": mask_phone(phone)},
                            200, request_id=request_id_ctx.get())


@auth_router.post("/verify-otp")
async def verify_otp(payload: VerifyOtpIn, ip: str = Depends(client_ip), ua: Optional[str] = Depends(user_agent),
                     service: AuthService = Depends(get_auth_service),
                     session: AsyncSession = Depends(get_session)):

    result = await service.verify_and_login(session, payload.phone, payload.otp, ip, ua)

    logger.info("verify_otp.success", extra={"user_public_id": str(result.user.public_id)})
    record_auth_outcome("verify-otp", "ok")
    return success_response(_auth_payload(result), 200, request_id=request_id_ctx.get())


@auth_router.post("/refresh")
async def refresh_auth(payload: Optional[RefreshIn] = None,
                       header_token: Optional[str] = Depends(refresh_token_header),
                       ip: str = Depends(client_ip),
                       service: AuthService = Depends(get_auth_service),
                       session: AsyncSession = Depends(get_session)):

    refresh_token = (payload.refresh_token if payload else None) or header_token
    if not refresh_token:
        logger.warning("refresh.failed", extra={"reason": "missing_refresh_token"})
        raise InvalidRefreshToken("Missing refresh token")

    result = await service.refresh_token(session, refresh_token, ip)

    logger.info("refresh.success", extra={"user_public_id": str(result.user.public_id)})
    record_auth_outcome("refresh", "ok")
    return success_response(_auth_payload(result), 200, request_id=request_id_ctx.get())


@auth_router.post("/logout")
async def logout(token: str = Depends(bearer_token),
                 service: AuthService = Depends(get_auth_service),
                 session: AsyncSession = Depends(get_session)):

    await service.logout(session, token)

    logger.info("logout.success")
    record_auth_outcome("logout", "ok")
    return success_response({"message": "Logged out successfully"}, 200, request_id=request_id_ctx.get())


@auth_router.post("/logout-all")
async def logout_all(user: Users = Depends(current_user),
                     service: AuthService = Depends(get_auth_service),
                     session: AsyncSession = Depends(get_session)):

    count = await service.logout_all(session, user.id)

    logger.info("logout_all.success", extra={"user_public_id": str(user.public_id), "deactivated": count})
    record_auth_outcome("logout-all", "ok")
    return success_response({"message": "Logged out from all devices successfully", "deactivated": count},
                            200, request_id=request_id_ctx.get())


@auth_router.get("/me")
async def me(user: Users = Depends(current_user)):
    return success_response(UserOut.model_validate(user).model_dump(mode="json"), 200, request_id=request_id_ctx.get())


@auth_router.get("/sessions")
async def sessions(user: Users = Depends(current_user),
                   service: AuthService = Depends(get_auth_service),
                   session: AsyncSession = Depends(get_session)):

    rows = await service.list_sessions(session, user.id)
    out = SessionsOut(sessions=[SessionOut.model_validate(r) for r in rows])
    return success_response(out.model_dump(mode="json"), status.HTTP_200_OK, request_id=request_id_ctx.get())
