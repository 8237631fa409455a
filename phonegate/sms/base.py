from typing import Protocol, runtime_checkable


@runtime_checkable
class SmsProvider(Protocol):
    """
    Delivery capability for OTP codes.

    send_sms takes an E.164 number and the message body and returns True when the
    provider accepted it for delivery. Provider-specific errors are not surfaced.
    """

    provider_name: str

    async def send_sms(self, phone_number: str, message: str) -> bool: ...
