"""
API request and response models for Sociosim REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal representation. Route handlers map between the two.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from auth.models import SessionInfo

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

MIN_PASSWORD_LENGTH = 8

EMAIL_PATTERN = r"^[^\s@]+@[^\s@]+\.[^\s@]+$"


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(pattern=EMAIL_PATTERN, max_length=255)
    password: str = Field(min_length=1, max_length=255)


class SetSessionRequest(BaseModel):
    """Request body for POST /api/v1/auth/session (recovery-link tokens)."""

    access_token: str = Field(min_length=1)
    refresh_token: str = Field(min_length=1)


class CodeExchangeRequest(BaseModel):
    """Request body for POST /api/v1/auth/callback.

    code_verifier is required for PKCE codes: the server keeps no verifier
    between requests.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    code: str = Field(min_length=1, max_length=512)
    code_verifier: Optional[str] = Field(default=None, max_length=256)


class PasswordResetRequest(BaseModel):
    """Request body for POST /api/v1/auth/reset-password.

    The route itself answers blank and malformed addresses with a 400 and
    a French message, not a 422.
    """

    email: Optional[str] = None


class UserUpdateRequest(BaseModel):
    """Request body for PATCH /api/v1/auth/user.

    password and confirmation travel together; data is merged into the
    provider's user_metadata (firstName, lastName, ...).
    """

    password: Optional[str] = Field(default=None, min_length=MIN_PASSWORD_LENGTH, max_length=255)
    confirmation: Optional[str] = Field(default=None, max_length=255)
    data: Optional[dict[str, Any]] = None

    @model_validator(mode="after")
    def check_fields(self) -> "UserUpdateRequest":
        if self.password is None and self.data is None:
            raise ValueError("Nothing to update: provide password or data.")
        if self.password is not None and self.password != self.confirmation:
            raise ValueError("La confirmation ne correspond pas au mot de passe saisi.")
        return self

    def to_attributes(self) -> dict[str, Any]:
        """Return the provider's UserAttributes dict."""
        attributes: dict[str, Any] = {}
        if self.password is not None:
            attributes["password"] = self.password
        if self.data is not None:
            attributes["data"] = self.data
        return attributes


class CauldronValidateRequest(BaseModel):
    """Request body for POST /api/v1/cauldron/validate."""

    content: Optional[str] = None


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class SessionResponse(BaseModel):
    """Session summary returned by login, hydration and code exchange."""

    model_config = ConfigDict(frozen=True)

    authenticated: bool = True
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    expires_at: Optional[int] = None
    user_id: Optional[str] = None
    email: Optional[str] = None
    display_name: Optional[str] = None

    @classmethod
    def from_info(cls, info: SessionInfo) -> "SessionResponse":
        """Build a SessionResponse from an auth SessionInfo.

        display_name follows the header's rule: "firstName lastName" from
        metadata, else the local part of the email, else "Utilisateur".
        """
        return cls(
            access_token=info.access_token,
            refresh_token=info.refresh_token,
            expires_at=info.expires_at,
            user_id=info.user_id,
            email=info.email,
            display_name=_display_name(info),
        )

    @classmethod
    def anonymous(cls) -> "SessionResponse":
        return cls(authenticated=False)


class UserResponse(BaseModel):
    """Response for PATCH /api/v1/auth/user."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    email: Optional[str] = None
    user_metadata: dict[str, Any] = Field(default_factory=dict)


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
    components: dict[str, str] = Field(default_factory=dict)


def _display_name(info: SessionInfo) -> str:
    metadata = info.user_metadata or {}
    first = str(metadata.get("firstName") or "")
    last = str(metadata.get("lastName") or "")
    if first or last:
        return f"{first} {last}".strip()
    if info.email:
        return info.email.split("@")[0]
    return "Utilisateur"
