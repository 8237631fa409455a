from phonegate.common.logging_setup import get_logger

logger = get_logger("phonegate.app")
