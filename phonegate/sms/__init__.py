from phonegate.sms.base import SmsProvider
from phonegate.sms.memory import InMemorySmsProvider
from phonegate.sms.twilio import TwilioSmsProvider


def build_sms_provider(settings) -> SmsProvider:
    """Pick the transport once at wiring time."""
    provider = (settings.SMS_PROVIDER or "memory").lower()
    if provider == "memory":
        return InMemorySmsProvider()
    if provider == "twilio":
        missing = [name for name in ("TWILIO_ACCOUNT_SID", "TWILIO_AUTH_TOKEN", "TWILIO_FROM_NUMBER")
                   if not getattr(settings, name)]
        if missing:
            raise RuntimeError(f"SMS_PROVIDER=twilio requires {', '.join(missing)}")
        return TwilioSmsProvider(
            account_sid=settings.TWILIO_ACCOUNT_SID,
            auth_token=settings.TWILIO_AUTH_TOKEN,
            from_number=settings.TWILIO_FROM_NUMBER,
            api_base=settings.TWILIO_API_BASE,
            timeout=settings.SMS_TIMEOUT_SECONDS,
        )
    raise RuntimeError(f"Unknown SMS_PROVIDER {settings.SMS_PROVIDER!r}")
