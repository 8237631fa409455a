from typing import AsyncGenerator
from fastapi import Request
from sqlalchemy.ext.asyncio import  AsyncSession


async def get_session(request: Request) -> AsyncGenerator[AsyncSession,None]:
    # the factory lives on app.state so tests can point the app at their own engine
    async with request.app.state.session_maker() as session:
        yield session
