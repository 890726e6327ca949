"""Data-privacy API router.

Handles the global field-protection policy and the step-up flow that
unlocks protected fields of one record owner:

- GET/PUT /privacy/policy: read or toggle which fields are protected
- POST /privacy/{identity}/reveal/{field}: ask to show a field
- POST /privacy/{identity}/step-up: submit step-up credentials
- DELETE /privacy/{identity}/step-up: dismiss the prompt
- GET /privacy/{identity}/fields/{field}: current visibility
- POST /privacy/{identity}/fields/{field}/toggle: re-hide or show again

Credentials are never logged or echoed back.
"""

from __future__ import annotations

from fastapi import APIRouter

from opsdesk.api.dependencies import GateDep
from opsdesk.api.schemas.privacy import (
    AuthStateResponse,
    FieldVisibilityResponse,
    PolicyResponse,
    StepUpRequest,
)
from opsdesk.services.access_gate import AccessGate
from opsdesk.services.masking import ProtectedField

router = APIRouter(
    prefix="/privacy",
    tags=["privacy"],
)


def _state_response(gate: AccessGate, identity: str) -> AuthStateResponse:
    session = gate.session(identity)
    return AuthStateResponse(
        identity=identity,
        state=session.state,
        pending_field=session.pending_field.value if session.pending_field else None,
        confirming=session.confirming,
    )


def _visibility_response(
    gate: AccessGate, identity: str, field: ProtectedField
) -> FieldVisibilityResponse:
    return FieldVisibilityResponse(
        identity=identity,
        field=field.value,
        protected=gate.policy.is_protected(field),
        visible=gate.is_field_visible(identity, field),
        state=gate.state(identity),
    )


# ---------------------------------------------------------------------------
# Global policy
# ---------------------------------------------------------------------------


@router.get("/policy", response_model=PolicyResponse)
async def get_policy(gate: GateDep) -> PolicyResponse:
    return PolicyResponse(fields=gate.policy.snapshot())


@router.put("/policy/{field}", response_model=PolicyResponse)
async def toggle_policy(field: ProtectedField, gate: GateDep) -> PolicyResponse:
    """Flip global protection for one field.

    Credentials stay protected whatever is requested.
    """
    gate.policy.toggle(field)
    return PolicyResponse(fields=gate.policy.snapshot())


# ---------------------------------------------------------------------------
# Step-up flow
# ---------------------------------------------------------------------------


@router.post("/{identity}/reveal/{field}", response_model=AuthStateResponse)
async def request_reveal(identity: str, field: ProtectedField, gate: GateDep) -> AuthStateResponse:
    """Ask to show a protected field of ``identity``.

    Answers ``pending_verification`` until step-up has succeeded; once
    authenticated the field is toggled directly.
    """
    gate.request_reveal(identity, field)
    return _state_response(gate, identity)


@router.post("/{identity}/step-up", response_model=AuthStateResponse)
async def submit_step_up(identity: str, body: StepUpRequest, gate: GateDep) -> AuthStateResponse:
    """Submit step-up credentials.

    Malformed credentials answer 400 and the session stays pending.
    """
    gate.submit(identity, body.to_credentials())
    return _state_response(gate, identity)


@router.delete("/{identity}/step-up", response_model=AuthStateResponse)
async def cancel_step_up(identity: str, gate: GateDep) -> AuthStateResponse:
    gate.cancel(identity)
    return _state_response(gate, identity)


@router.get("/{identity}/fields/{field}", response_model=FieldVisibilityResponse)
async def get_field_visibility(
    identity: str, field: ProtectedField, gate: GateDep
) -> FieldVisibilityResponse:
    return _visibility_response(gate, identity, field)


@router.post("/{identity}/fields/{field}/toggle", response_model=FieldVisibilityResponse)
async def toggle_field_visibility(
    identity: str, field: ProtectedField, gate: GateDep
) -> FieldVisibilityResponse:
    """Re-hide a revealed field, or show it again, without a new prompt."""
    gate.toggle_visibility(identity, field)
    return _visibility_response(gate, identity, field)
