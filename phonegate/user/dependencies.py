from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from phonegate.common.custom_exceptions import MissingAuthHeader
from phonegate.db.dependencies import get_session
from phonegate.schema.full_schema import Users


class BearerToken(HTTPBearer):
    """Pulls the raw bearer token; liveness is checked against the session store, not here."""

    def __init__(self, auto_error=False):
        super().__init__(auto_error=auto_error)

    async def __call__(self, request: Request) -> str:
        auth_creds: HTTPAuthorizationCredentials | None = await super().__call__(request)
        if not auth_creds or not auth_creds.credentials:
            raise MissingAuthHeader()
        return auth_creds.credentials


bearer_token = BearerToken()


async def current_user(request: Request, token: str = Depends(bearer_token),
                       session: AsyncSession = Depends(get_session)) -> Users:
    user = await request.app.state.auth_service.validate(session, token)
    request.state.user_public_id = str(user.public_id)
    return user
