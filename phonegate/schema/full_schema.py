import enum
from datetime import datetime
from typing import List, Optional
from uuid import UUID
from sqlalchemy import Boolean, Enum, ForeignKey, Index, Integer, Uuid, text
from uuid6 import uuid7
from sqlmodel import Column, SQLModel, Field, Relationship, String
from phonegate.schema.utils import UTCDateTime, now


class Role(str, enum.Enum):
    USER = "user"
    ADMIN = "admin"


class Users(SQLModel, table=True):
    __tablename__ = "users"

    id: Optional[int] = Field(default=None, primary_key=True)  #* optional just means for the created object before saving in db .
    public_id: UUID = Field(
        default_factory=uuid7,
        sa_column=Column(Uuid(as_uuid=True), unique=True, index=True, nullable=False)
    )
    phone: str = Field(sa_column=Column(String(16), nullable=False, unique=True, index=True))  # E.164
    name: str = Field(default="User", sa_column=Column(String(100), nullable=False, default="User"))
    role: Role = Field(default=Role.USER, sa_column=Column(Enum(Role, name="user_role", native_enum=False, length=20, values_callable=lambda e: [m.value for m in e]), nullable=False, default=Role.USER))
    last_login_at: Optional[datetime] = Field(default=None, sa_column=Column(UTCDateTime(), nullable=True))
    created_at: datetime = Field(default_factory=now,
        sa_column=Column(UTCDateTime(), nullable=False,default=now))
    updated_at: datetime = Field(default_factory=now,
        sa_column=Column(UTCDateTime(), nullable=False,default=now, onupdate=now))

    sessions: List["UserSession"] = Relationship(back_populates="user")


class OtpChallenge(SQLModel, table=True):
    __tablename__ = "otp_challenges"

    id: Optional[int] = Field(default=None, primary_key=True)
    public_id: UUID = Field(
        default_factory=uuid7,
        sa_column=Column(Uuid(as_uuid=True), unique=True, nullable=False)
    )
    phone: str = Field(sa_column=Column(String(16), nullable=False))  # store E.164 normalized
    code_hash: str = Field(sa_column=Column(String(128), nullable=False))  # keyed digest, never plaintext
    request_ip: Optional[str] = Field(default=None, sa_column=Column(String(64), nullable=True))

    created_at: datetime = Field(default_factory=now, sa_column=Column(UTCDateTime(), nullable=False, default=now))
    expires_at: datetime = Field(sa_column=Column(UTCDateTime(), nullable=False))
    consumed_at: Optional[datetime] = Field(default=None, sa_column=Column(UTCDateTime(), nullable=True))
    attempt_count: int = Field(default=0, sa_column=Column(Integer, nullable=False, default=0, server_default=text("0")))

    __table_args__ = (
        Index("ix_otp_challenges_phone_created_at", "phone", "created_at"),
        Index("ix_otp_challenges_request_ip_created_at", "request_ip", "created_at"),
        Index("ix_otp_challenges_expires_at", "expires_at"),
    )

    def is_expired(self, at: datetime) -> bool:
        return at > self.expires_at

    @property
    def is_consumed(self) -> bool:
        return self.consumed_at is not None


class OtpSendLock(SQLModel, table=True):
    """One row per phone or client IP; send holds it locked while it counts and inserts."""
    __tablename__ = "otp_send_locks"

    lock_key: str = Field(sa_column=Column(String(80), primary_key=True))  # "phone:+1..." or "ip:203.0.113.7"
    touched_at: datetime = Field(sa_column=Column(UTCDateTime(), nullable=False, index=True))


class UserSession(SQLModel, table=True):
    __tablename__ = "user_sessions"

    id: Optional[int] = Field(default=None, primary_key=True)
    public_id: UUID = Field(
        default_factory=uuid7,
        sa_column=Column(Uuid(as_uuid=True), unique=True, index=True, nullable=False)
    )
    user_id: int = Field(sa_column=Column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False))

    # hashed tokens (e.g., sha256 hex = 64 chars) - unique so lookup is by exact value
    access_token_hash: str = Field(sa_column=Column(String(128), nullable=False, unique=True, index=True))
    refresh_token_hash: str = Field(sa_column=Column(String(128), nullable=False, unique=True, index=True))

    expires_at: datetime = Field(sa_column=Column(UTCDateTime(), nullable=False))
    refresh_expires_at: datetime = Field(sa_column=Column(UTCDateTime(), nullable=False))
    created_at: datetime = Field(default_factory=now, sa_column=Column(UTCDateTime(), nullable=False, default=now))
    last_used_at: Optional[datetime] = Field(default=None, sa_column=Column(UTCDateTime(), nullable=True))

    client_ip: Optional[str] = Field(default=None, sa_column=Column(String(64), nullable=True))
    user_agent: Optional[str] = Field(default=None, sa_column=Column(String(512), nullable=True))

    active: bool = Field(default=True, sa_column=Column(Boolean, nullable=False, default=True, server_default=text("true")))

    user: "Users" = Relationship(back_populates="sessions")

    __table_args__ = (
        Index("ix_user_sessions_user_id_active", "user_id", "active"),
        Index("ix_user_sessions_refresh_expires_at", "refresh_expires_at"),
    )

    def is_expired(self, at: datetime) -> bool:
        return at > self.expires_at

    def is_refresh_expired(self, at: datetime) -> bool:
        return at > self.refresh_expires_at
