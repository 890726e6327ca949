"""Pydantic schemas for the data-privacy endpoints."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, SecretStr

from opsdesk.services.access_gate import AuthState, StepUpCredentials


class StepUpRequest(BaseModel):
    """Step-up credentials.

    Shape is checked by the access gate, not here, so that malformed
    submissions produce the same re-prompt response as the UI flow.
    """

    verification_code: str = Field("", max_length=64, description="One-time verification code")
    secondary_credential: SecretStr = Field(SecretStr(""), description="Secondary-channel credential")
    default_credential: SecretStr = Field(SecretStr(""), description="Default credential")

    model_config = ConfigDict(extra="forbid")

    def to_credentials(self) -> StepUpCredentials:
        return StepUpCredentials(
            verification_code=self.verification_code,
            secondary_credential=self.secondary_credential.get_secret_value(),
            default_credential=self.default_credential.get_secret_value(),
        )


class AuthStateResponse(BaseModel):
    identity: str
    state: AuthState
    pending_field: str | None = None
    confirming: bool = False


class FieldVisibilityResponse(BaseModel):
    identity: str
    field: str
    protected: bool = Field(..., description="Global policy flag for the field")
    visible: bool = Field(..., description="Unlocked and not re-hidden for this identity")
    state: AuthState


class PolicyResponse(BaseModel):
    fields: dict[str, bool] = Field(..., description="Field -> protected")
