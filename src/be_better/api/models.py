"""
Pydantic models for API requests and responses.

Field names follow the wire format used by the browser client, so the
modify request accepts ``xpDelta``/``coinsDelta`` (Python code may also use
``xp_delta``/``coins_delta``).
"""

from pydantic import BaseModel, ConfigDict, Field

# ============================================================================
# REQUEST MODELS (Client → Server)
# ============================================================================


class RegisterRequest(BaseModel):
    """
    Registration request.

    Attributes:
        username: Desired username (must be unique)
        password: Plain text password (stored as a bcrypt hash)
        email: Optional contact email
    """

    username: str
    password: str
    email: str | None = None


class LoginRequest(BaseModel):
    """Login request with username and password."""

    username: str
    password: str


class ModifyRequest(BaseModel):
    """
    Incremental change to the caller's totals.

    Both deltas are signed and default to 0.
    """

    model_config = ConfigDict(populate_by_name=True)

    xp_delta: int = Field(default=0, alias="xpDelta")
    coins_delta: int = Field(default=0, alias="coinsDelta")


# ============================================================================
# RESPONSE MODELS (Server → Client)
# ============================================================================


class UserRecord(BaseModel):
    """Public view of an account and its remote ledger."""

    id: str
    username: str
    email: str | None = None
    xp: int
    coins: int
    level: int
    created_at: str | None = None


class RegisterResponse(BaseModel):
    ok: bool = True
    id: str


class LoginResponse(BaseModel):
    ok: bool = True
    token: str


class OkResponse(BaseModel):
    ok: bool = True


class UserResponse(BaseModel):
    user: UserRecord


class ModifyResponse(BaseModel):
    ok: bool = True
    user: UserRecord
