from datetime import timedelta
from typing import Optional
from phonegate.auth.constants import OTP_MESSAGE_TEMPLATE, logger
from phonegate.auth.repository import (count_challenges_for_ip_since, count_challenges_for_phone_since,
                                       delete_challenges_expired_before, delete_send_locks_before,
                                       increment_attempt_count, latest_challenge_for_phone, lock_send_keys,
                                       mark_challenge_consumed, save_challenge)
from phonegate.auth.utils import generate_otp_code, hash_otp_code, otp_code_matches
from phonegate.common.clock import Clock, SystemClock
from phonegate.common.custom_exceptions import (OtpAttemptsExceeded, OtpExpired, OtpNotFound,
                                                RateLimitExceeded, SmsSendFailed)
from phonegate.common.phone import mask_phone
from phonegate.config.settings import OtpConfig
from phonegate.schema.full_schema import OtpChallenge
from phonegate.sms.base import SmsProvider


class OtpChallengeEngine:
    """
    Issues, rate-limits and verifies OTP challenges per phone number.

    Holds no state of its own beyond configuration; every challenge lives in the
    store and every mutation is a single conditional statement so concurrent
    requests for the same phone cannot double-spend a code or lose an attempt.
    Sends for one phone or client IP are serialized on a lock row so the rate
    limits hold under double submits.
    Phones passed in are expected to be normalized already.
    """

    def __init__(self, config: OtpConfig, sms: SmsProvider, clock: Optional[Clock] = None):
        self.config = config
        self.sms = sms
        self.clock = clock or SystemClock()

    async def send(self, session, phone: str, client_ip: str) -> OtpChallenge:
        now = self.clock.now()
        masked = mask_phone(phone)

        # limits are checked and the row inserted under the phone and IP locks
        await lock_send_keys(session, self._lock_keys(phone, client_ip), now)
        try:
            await self._check_rate_limit(session, phone, client_ip)
        except RateLimitExceeded:
            await session.commit()
            raise

        code = generate_otp_code(self.config.length)
        challenge = OtpChallenge(
            phone=phone,
            code_hash=hash_otp_code(code, phone, self.config.hash_secret),
            request_ip=client_ip,
            created_at=now,
            expires_at=now + timedelta(minutes=self.config.expiry_minutes),
            attempt_count=0,
        )
        await save_challenge(session, challenge)
        # committed before delivery: a failed send still counts toward the limits
        await session.commit()

        message = OTP_MESSAGE_TEMPLATE.format(code=code, minutes=self.config.expiry_minutes)
        try:
            sent = await self.sms.send_sms(phone, message)
        except Exception:
            logger.exception("otp.sms_failed", extra={"phone": masked, "provider": self.sms.provider_name})
            raise SmsSendFailed()

        if not sent:
            logger.error("otp.sms_failed", extra={"phone": masked, "provider": self.sms.provider_name})
            raise SmsSendFailed()

        logger.info("otp.sent", extra={"phone": masked, "challenge_id": str(challenge.public_id)})
        return challenge

    async def verify(self, session, phone: str, code: str, client_ip: Optional[str] = None) -> bool:
        masked = mask_phone(phone)
        now = self.clock.now()

        challenge = await latest_challenge_for_phone(session, phone)
        if challenge is None or challenge.is_consumed:
            # a consumed code never re-succeeds; the caller has to request a new one
            logger.warning("otp.verify.not_found", extra={"phone": masked, "client_ip": client_ip})
            raise OtpNotFound()

        if challenge.is_expired(now):
            logger.warning("otp.verify.expired", extra={"phone": masked})
            raise OtpExpired()

        if challenge.attempt_count >= self.config.max_attempts:
            logger.warning("otp.verify.attempts_exceeded", extra={"phone": masked})
            raise OtpAttemptsExceeded()

        # charge the attempt before comparing; it is committed whatever the outcome
        new_count = await increment_attempt_count(session, challenge.id, self.config.max_attempts)
        await session.commit()
        if new_count is None:
            await session.refresh(challenge)
            if challenge.is_consumed:
                logger.warning("otp.verify.lost_race_consumed", extra={"phone": masked})
                raise OtpNotFound()
            logger.warning("otp.verify.attempts_exceeded", extra={"phone": masked})
            raise OtpAttemptsExceeded()

        if not otp_code_matches(code or "", phone, self.config.hash_secret, challenge.code_hash):
            logger.warning("otp.verify.mismatch", extra={"phone": masked, "attempt": new_count})
            return False

        consumed = await mark_challenge_consumed(session, challenge.id, now)
        await session.commit()
        if not consumed:
            logger.warning("otp.verify.lost_race_consumed", extra={"phone": masked})
            raise OtpNotFound()

        logger.info("otp.verify.success", extra={"phone": masked, "attempt": new_count})
        return True

    async def has_valid_otp(self, session, phone: str) -> bool:
        challenge = await latest_challenge_for_phone(session, phone, unconsumed_only=True)
        return (
            challenge is not None
            and not challenge.is_expired(self.clock.now())
            and challenge.attempt_count < self.config.max_attempts
        )

    async def cleanup_expired(self, session) -> int:
        # rows stay past expiry for the retention window so the hourly limit still counts them
        cutoff = self.clock.now() - timedelta(minutes=self.config.retention_minutes)
        deleted = await delete_challenges_expired_before(session, cutoff)
        locks = await delete_send_locks_before(session, cutoff)
        await session.commit()
        logger.info("otp.cleanup", extra={"deleted": deleted, "locks": locks})
        return deleted

    @staticmethod
    def _lock_keys(phone: str, client_ip: Optional[str]) -> list:
        keys = [f"phone:{phone}"]
        if client_ip:
            keys.append(f"ip:{client_ip}")
        return keys

    async def _check_rate_limit(self, session, phone: str, client_ip: str) -> None:
        now = self.clock.now()
        masked = mask_phone(phone)

        hourly = await count_challenges_for_phone_since(session, phone, now - timedelta(hours=1))
        if hourly >= self.config.max_per_hour:
            logger.warning("otp.rate_limit.phone_hourly", extra={"phone": masked, "count": hourly})
            raise RateLimitExceeded("Too many verification requests. Please try again later.")

        recent = await count_challenges_for_phone_since(session, phone, now - timedelta(minutes=self.config.rate_limit_minutes))
        if recent > 0:
            logger.warning("otp.rate_limit.phone_cooldown", extra={"phone": masked})
            raise RateLimitExceeded("Please wait before requesting another verification code.")

        from_ip = await count_challenges_for_ip_since(session, client_ip, now - timedelta(minutes=1))
        if from_ip >= self.config.ip_max_per_minute:
            logger.warning("otp.rate_limit.ip", extra={"client_ip": client_ip, "count": from_ip})
            raise RateLimitExceeded("Too many requests from this IP. Please try again later.")
