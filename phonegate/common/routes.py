from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import  AsyncSession
from phonegate.common.constants import request_id_ctx
from phonegate.common.utils import success_response
from phonegate.db.dependencies import get_session

home_router = APIRouter()


@home_router.get("/health")
async def health_check(session: AsyncSession = Depends(get_session)):
    # store faults propagate to the fallback handler as STORAGE_UNAVAILABLE
    await session.execute(select(1))
    return success_response({"status": "healthy"}, 200, request_id=request_id_ctx.get())
