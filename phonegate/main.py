
from contextlib import asynccontextmanager
from typing import Optional
from fastapi import FastAPI
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from phonegate.api.routers import public_routers
from phonegate.auth.dependencies import build_auth_service
from phonegate.background_workers.sweeper import ExpirySweeper
from phonegate.common.clock import Clock
from phonegate.common.custom_exceptions import register_all_exceptions
from phonegate.common.logging_setup import setup_logging, stop_logging
from phonegate.db.schema import create_all_tables
from phonegate.middlewares.request_id_middleware import RequestIdMiddleware
from phonegate.api.__init__ import cur_version
from phonegate.config.settings import Settings, config_settings
from phonegate.sms import build_sms_provider
from phonegate.sms.base import SmsProvider
from phonegate.__init__ import logger
from metrics.custom_instrumentator import instrumentator


def _lifespan_for(settings: Settings, session_maker: Optional[async_sessionmaker],
                  sms: Optional[SmsProvider], clock: Optional[Clock]):

    @asynccontextmanager
    async def app_lifespan(app: FastAPI):
        setup_logging()

        engine = None
        maker = session_maker
        if maker is None:
            # imported lazily so an injected factory never opens the configured database
            from phonegate.db.connection import async_engine, async_session
            engine, maker = async_engine, async_session
            if settings.ENV == "dev" and engine.url.get_backend_name() == "sqlite":
                await create_all_tables(engine)

        sms_provider = sms or build_sms_provider(settings)
        app.state.session_maker = maker
        app.state.sms = sms_provider
        app.state.auth_service = build_auth_service(settings, sms_provider, clock)

        sweeper = None
        if settings.ENABLE_SWEEPER:
            sweeper = ExpirySweeper(maker, app.state.auth_service, interval=settings.SWEEP_INTERVAL_SECONDS)
            sweeper.start()
        app.state.sweeper = sweeper

        logger.info("app.started", extra={"sms_provider": getattr(sms_provider, "provider_name", None)})
        try:
            yield
        finally:
            # at this point new requests accept has been stopped already before calling shutdown
            if sweeper is not None:
                await sweeper.shutdown()
            aclose = getattr(sms_provider, "aclose", None)
            if aclose is not None and sms is None:
                await aclose()
            # safe to dispose DB engine after workers exit
            if engine is not None:
                await engine.dispose()
            stop_logging()

    return app_lifespan


def create_app(settings: Optional[Settings] = None, *, session_maker: Optional[async_sessionmaker[AsyncSession]] = None,
               sms: Optional[SmsProvider] = None, clock: Optional[Clock] = None):
    settings = settings or config_settings
    app=FastAPI(
        title="Phonegate",
        version=cur_version,
        lifespan=_lifespan_for(settings, session_maker, sms, clock))

    app.include_router(public_routers)

    app.add_middleware(RequestIdMiddleware)
    register_all_exceptions(app)
    if settings.ENABLE_METRICS:
        instrumentator.instrument(app).expose(app, endpoint="/metrics")

    return app

app=create_app()
