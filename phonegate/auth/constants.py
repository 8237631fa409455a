from phonegate.common.logging_setup import get_logger

logger = get_logger("phonegate.auth")

REFRESH_HEADER_NAME = "X-Refresh-Token"

DEFAULT_USER_NAME = "User"

OTP_MESSAGE_TEMPLATE = "Your verification code is: {code}. Valid for {minutes} minutes."
