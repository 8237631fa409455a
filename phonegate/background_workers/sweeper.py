import asyncio
from typing import Any, Callable, Optional
from phonegate.__init__ import logger
from phonegate.auth.services import AuthService

DEFAULT_SWEEP_SECONDS = 300.0


class ExpirySweeper:
    """
    Periodically deletes OTP challenges past their retention window and sessions
    whose refresh token has expired. Runs as a single task on the app's event loop.
    """

    def __init__(self, session_factory: Callable[[], Any], auth_service: AuthService,
                 *, interval: float = DEFAULT_SWEEP_SECONDS):
        self.session_factory = session_factory
        self.auth_service = auth_service
        self.interval = interval
        self._stop = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    def start(self):
        """Start the sweep loop as a Task on the current event loop."""
        if self._task is None:
            self._stop.clear()
            self._task = asyncio.create_task(self.run(), name="expiry-sweeper")
            logger.info("sweeper.started", extra={"interval": self.interval})

    async def sweep_once(self) -> dict:
        async with self.session_factory() as session:
            otps = await self.auth_service.otp_engine.cleanup_expired(session)
        async with self.session_factory() as session:
            sessions = await self.auth_service.session_manager.cleanup_expired(session)
        return {"otp_challenges": otps, "user_sessions": sessions}

    async def run(self):
        while not self._stop.is_set():
            try:
                result = await self.sweep_once()
                logger.info("sweeper.pass", extra=result)
            except Exception:
                logger.exception("sweeper.pass_failed")

            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass
        logger.info("sweeper.stopped")

    async def shutdown(self, *, wait_timeout: float = 10.0):
        if self._task is None:
            return
        self._stop.set()
        try:
            await asyncio.wait_for(self._task, timeout=wait_timeout)
        except asyncio.TimeoutError:
            logger.warning("sweeper.did_not_finish; cancelling")
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
