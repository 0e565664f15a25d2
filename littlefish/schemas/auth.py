from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from littlefish.schemas.my_base_model import CustomBaseModel


def _not_blank(value: str) -> str:
    value = value.strip() if isinstance(value, str) else value
    if not value:
        raise ValueError("must not be empty")
    return value


class LoginRequest(BaseModel):
    """Request model for credential login - input validation"""

    username: str = Field(..., description="Username")
    password: str = Field(..., description="Password")

    @field_validator("username", "password")
    @classmethod
    def not_blank(cls, value: str) -> str:
        return _not_blank(value)


class RegisterRequest(BaseModel):
    """Request model for account registration - input validation"""

    username: str = Field(..., description="Username")
    password: str = Field(..., description="Password")
    name: str = Field(..., description="Display name")
    email: str = Field(..., description="Email address")
    avatar: Optional[str] = Field(None, description="Avatar image url")

    @field_validator("username", "password", "name", "email")
    @classmethod
    def not_blank(cls, value: str) -> str:
        return _not_blank(value)


class UserResponse(CustomBaseModel):
    """User as exposed to clients, never includes the password hash"""

    id: int
    username: str
    name: str
    email: str
    avatar: Optional[str] = None
    wallet_address: Optional[str] = None
    created_at: Optional[datetime] = None


class ChallengeRequest(BaseModel):
    """Request model for challenge issuance"""

    address: Optional[str] = Field(None, description="Wallet address that will sign the challenge")


class ChallengeResponse(CustomBaseModel):
    """Response model for challenge issuance - output"""

    message: str
    issued_at: int
    expires_at: int


class WalletAuthRequest(BaseModel):
    """Request model for wallet linking - input validation"""

    address: str = Field(..., description="Wallet address")
    message: str = Field(..., description="Challenge message that was signed")
    signature: str = Field(..., description="CIP-8 COSE_Sign1 hex or raw ED25519 signature")
    key: Optional[str] = Field(None, description="CIP-30 COSE_Key hex or raw public key")

    @field_validator("address", "message", "signature")
    @classmethod
    def not_blank(cls, value: str) -> str:
        return _not_blank(value)


class WalletAuthResponse(CustomBaseModel):
    """Response model for wallet linking - output"""

    message: str
    user: UserResponse


class WalletSessionResponse(CustomBaseModel):
    connected: bool = False
    wallet_address: Optional[str] = None
    network: Optional[str] = None
    connected_at: Optional[datetime] = None
