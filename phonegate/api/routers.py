from fastapi import APIRouter
from phonegate.api.__init__ import version_prefix
from phonegate.auth.routes import auth_router
from phonegate.common.routes import home_router


public_routers = APIRouter(prefix=version_prefix)

public_routers.include_router(auth_router, prefix="/auth",tags=["auth"])
public_routers.include_router(home_router,tags=["home"])
