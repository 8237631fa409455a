import os

os.environ.setdefault("JWT_SECRET", "test-jwt-secret")
os.environ.setdefault("OTP_HASH_SECRET", "test-otp-secret")
os.environ["ENV"] = "test"
os.environ["ENABLE_SWEEPER"] = "false"

import pytest
from asgi_lifespan import LifespanManager
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool
from phonegate.auth.otp_service import OtpChallengeEngine
from phonegate.auth.services import AuthService
from phonegate.auth.session_service import SessionManager
from phonegate.auth.tokens import TokenCodec
from phonegate.common.clock import FrozenClock
from phonegate.config.settings import OtpConfig, SessionConfig, Settings
from phonegate.db.schema import create_all_tables
from phonegate.main import create_app
from phonegate.sms.memory import InMemorySmsProvider

from tests.helpers import JWT_SECRET, OTP_SECRET


@pytest.fixture
async def engine(tmp_path):
    # file backed so concurrent sessions get their own connections
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'phonegate.db'}", poolclass=NullPool)

    @event.listens_for(eng.sync_engine, "connect")
    def _sqlite_pragmas(dbapi_conn, _):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON;")
        cursor.close()

    await create_all_tables(eng)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def sms():
    return InMemorySmsProvider()


@pytest.fixture
def otp_config():
    return OtpConfig(hash_secret=OTP_SECRET)


@pytest.fixture
def session_config():
    return SessionConfig()


@pytest.fixture
def codec(clock):
    return TokenCodec(JWT_SECRET, "HS256", clock)


@pytest.fixture
def otp_engine(otp_config, sms, clock):
    return OtpChallengeEngine(otp_config, sms, clock)


@pytest.fixture
def session_manager(session_config, codec, clock):
    return SessionManager(session_config, codec, clock)


@pytest.fixture
def auth_service(otp_engine, session_manager, codec, clock):
    return AuthService(otp_engine, session_manager, codec, clock)


@pytest.fixture
def test_settings():
    return Settings(JWT_SECRET=JWT_SECRET, OTP_HASH_SECRET=OTP_SECRET, ENV="test",
                    ENABLE_SWEEPER=False, ENABLE_METRICS=False)


@pytest.fixture
def app(test_settings, session_maker, sms, clock):
    return create_app(test_settings, session_maker=session_maker, sms=sms, clock=clock)


@pytest.fixture
async def ac_client(app):
    async with LifespanManager(app):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            yield ac
