from datetime import datetime
from typing import List, Optional
from uuid import UUID
from pydantic import BaseModel, ConfigDict, Field
from phonegate.schema.full_schema import Role


class SendOtpIn(BaseModel):
    phone: str = Field(..., examples=["+14155552671"])


class VerifyOtpIn(BaseModel):
    phone: str = Field(..., examples=["+14155552671"])
    otp: str = Field(..., min_length=1, max_length=12, examples=["123456"])


class RefreshIn(BaseModel):
    refresh_token: Optional[str] = None


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(validation_alias="public_id")
    phone: str
    name: str
    role: Role
    last_login_at: Optional[datetime] = None
    created_at: datetime


class AuthOut(BaseModel):
    user: UserOut
    access_token: str
    refresh_token: str
    token_type: str = "Bearer"
    expires_in: int
    session_id: UUID


class SessionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(validation_alias="public_id")
    client_ip: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: datetime
    last_used_at: Optional[datetime] = None
    expires_at: datetime
    refresh_expires_at: datetime


class SessionsOut(BaseModel):
    sessions: List[SessionOut]
