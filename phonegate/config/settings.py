from typing import Optional
from pydantic import BaseModel, ConfigDict
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENV: str = "dev"                # "dev" / "staging" / "prod"
    SERVICE_NAME: str = "phonegate"
    DATABASE_URL: str = "sqlite+aiosqlite:///./phonegate.db"
    JWT_SECRET: str
    JWT_ALGO: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    REFRESH_TOKEN_EXPIRE: int = 7   # days
    TOKEN_HASH_ALGO: str = "sha256"

    OTP_LENGTH: int = 6
    OTP_EXPIRY_MINUTES: int = 5
    OTP_MAX_ATTEMPTS: int = 3
    OTP_RATE_LIMIT_MINUTES: int = 1
    OTP_MAX_PER_HOUR: int = 5
    OTP_IP_MAX_PER_MINUTE: int = 3
    OTP_RETENTION_MINUTES: int = 60
    OTP_HASH_SECRET: str

    MAX_SESSIONS_PER_USER: int = 5

    SMS_PROVIDER: str = "memory"    # "memory" / "twilio"
    TWILIO_ACCOUNT_SID: Optional[str] = None
    TWILIO_AUTH_TOKEN: Optional[str] = None
    TWILIO_FROM_NUMBER: Optional[str] = None
    TWILIO_API_BASE: str = "https://api.twilio.com/2010-04-01"
    SMS_TIMEOUT_SECONDS: float = 10.0

    ENABLE_SWEEPER: bool = True
    SWEEP_INTERVAL_SECONDS: int = 300
    ENABLE_METRICS: bool = False


class OtpConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    length: int = 6
    expiry_minutes: int = 5
    max_attempts: int = 3
    rate_limit_minutes: int = 1
    max_per_hour: int = 5
    ip_max_per_minute: int = 3
    retention_minutes: int = 60
    hash_secret: str

    @classmethod
    def from_settings(cls, settings: Settings) -> "OtpConfig":
        return cls(
            length=settings.OTP_LENGTH,
            expiry_minutes=settings.OTP_EXPIRY_MINUTES,
            max_attempts=settings.OTP_MAX_ATTEMPTS,
            rate_limit_minutes=settings.OTP_RATE_LIMIT_MINUTES,
            max_per_hour=settings.OTP_MAX_PER_HOUR,
            ip_max_per_minute=settings.OTP_IP_MAX_PER_MINUTE,
            retention_minutes=settings.OTP_RETENTION_MINUTES,
            hash_secret=settings.OTP_HASH_SECRET,
        )


class SessionConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    access_token_minutes: int = 60
    refresh_token_days: int = 7
    max_sessions_per_user: int = 5
    token_hash_algo: str = "sha256"

    @property
    def access_ttl_seconds(self) -> int:
        return self.access_token_minutes * 60

    @property
    def refresh_ttl_seconds(self) -> int:
        return self.refresh_token_days * 24 * 3600

    @classmethod
    def from_settings(cls, settings: Settings) -> "SessionConfig":
        return cls(
            access_token_minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES,
            refresh_token_days=settings.REFRESH_TOKEN_EXPIRE,
            max_sessions_per_user=settings.MAX_SESSIONS_PER_USER,
            token_hash_algo=settings.TOKEN_HASH_ALGO,
        )


config_settings = Settings()
