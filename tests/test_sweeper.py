import asyncio
from phonegate.background_workers.sweeper import ExpirySweeper
from phonegate.user.repository import create_user

PHONE = "+14155552671"


async def test_sweep_once_prunes_both_tables(auth_service, db_session, session_maker, clock):
    await auth_service.otp_engine.send(db_session, PHONE, "203.0.113.7")
    user = await create_user(db_session, PHONE)
    await db_session.commit()
    pair = auth_service.session_manager.mint_token_pair(user)
    await auth_service.session_manager.create_session(db_session, user, pair.access_token, pair.refresh_token)

    sweeper = ExpirySweeper(session_maker, auth_service, interval=60)
    assert await sweeper.sweep_once() == {"otp_challenges": 0, "user_sessions": 0}

    clock.advance(days=8)
    assert await sweeper.sweep_once() == {"otp_challenges": 1, "user_sessions": 1}


async def test_start_and_shutdown(auth_service, session_maker):
    sweeper = ExpirySweeper(session_maker, auth_service, interval=3600)
    sweeper.start()
    # first pass runs right away, then the loop waits on the interval
    await asyncio.sleep(0.2)
    await asyncio.wait_for(sweeper.shutdown(), timeout=5)
    assert sweeper._task is None


async def test_failed_pass_keeps_loop_alive(auth_service):
    calls = []

    def broken_factory():
        calls.append(1)
        raise ConnectionError("db down")

    sweeper = ExpirySweeper(broken_factory, auth_service, interval=0.01)
    sweeper.start()
    await asyncio.sleep(0.2)
    await sweeper.shutdown()
    assert len(calls) > 1
