import re
from phonegate.sms.memory import InMemorySmsProvider

JWT_SECRET = "test-jwt-secret"
OTP_SECRET = "test-otp-secret"
url_prefix = "/api/v1"

_CODE_RE = re.compile(r"code is: (\d+)")


def code_from_sms(sms: InMemorySmsProvider, phone: str) -> str:
    message = sms.last_message(phone)
    assert message is not None, f"no sms sent to {phone}"
    return _CODE_RE.search(message).group(1)


def wrong_code(code: str) -> str:
    return str((int(code) + 1) % 10 ** len(code)).zfill(len(code))
