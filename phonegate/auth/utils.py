import hashlib
import hmac
import secrets
from phonegate.config.settings import config_settings

TOKEN_HASH_ALGO = config_settings.TOKEN_HASH_ALGO


def generate_otp_code(length: int = 6) -> str:
    """Uniform over [10^(n-1), 10^n - 1], so the code never has a leading zero."""
    if length < 1:
        raise ValueError("otp length must be positive")
    low = 10 ** (length - 1)
    high = 10 ** length - 1
    return str(low + secrets.randbelow(high - low + 1))


def hash_otp_code(code: str, phone: str, secret: str) -> str:
    # keyed with the server secret and salted with the phone the code was sent to
    message = f"{phone}:{code}".encode()
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


def otp_code_matches(code: str, phone: str, secret: str, code_hash: str) -> bool:
    return hmac.compare_digest(hash_otp_code(code, phone, secret), code_hash)


def hash_token(plain: str, algo: str = TOKEN_HASH_ALGO) -> str:
    hash_func = getattr(hashlib, algo)
    return hash_func(plain.encode()).hexdigest()
