"""Tests for the step-up access gate.

Tests cover:
- Forward-only state machine per identity
- Credential shape validation
- Delayed reveal after acceptance
- Global protection policy and always-protected credentials
- Rendering masked vs clear values
"""

import asyncio

import pytest

from opsdesk.core.errors import StepUpRejectedError
from opsdesk.services.access_gate import (
    AccessGate,
    AuthState,
    ProtectionPolicy,
    StepUpCredentials,
    owner_identity,
)
from opsdesk.services.masking import PASSWORD_TOKEN, ProtectedField
from tests.factories import create_order, create_user

VALID = StepUpCredentials("1234", "mail-password", "default-password")


class TestStateMachine:
    def test_new_identity_is_locked(self, gate):
        assert gate.state("usr-1") == AuthState.LOCKED
        assert not gate.is_field_visible("usr-1", ProtectedField.EMAIL)

    def test_reveal_request_moves_to_pending(self, gate):
        assert gate.request_reveal("usr-1", ProtectedField.EMAIL) == AuthState.PENDING_VERIFICATION
        assert gate.session("usr-1").pending_field == ProtectedField.EMAIL

    def test_valid_submit_authenticates(self, gate):
        gate.request_reveal("usr-1", ProtectedField.EMAIL)
        assert gate.submit("usr-1", VALID) == AuthState.AUTHENTICATED
        assert gate.is_authenticated("usr-1")
        assert gate.is_field_visible("usr-1", ProtectedField.EMAIL)
        assert gate.session("usr-1").authenticated_at is not None

    def test_one_unlock_reveals_every_field(self, gate):
        gate.request_reveal("usr-1", ProtectedField.EMAIL)
        gate.submit("usr-1", VALID)
        for field in ProtectedField:
            assert gate.is_field_visible("usr-1", field)

    def test_sessions_are_per_identity(self, gate):
        gate.request_reveal("usr-1", ProtectedField.EMAIL)
        gate.submit("usr-1", VALID)
        assert gate.state("usr-2") == AuthState.LOCKED
        assert not gate.is_field_visible("usr-2", ProtectedField.EMAIL)

    def test_cancel_never_goes_back_to_locked(self, gate):
        gate.request_reveal("usr-1", ProtectedField.PHONE)
        gate.cancel("usr-1")
        assert gate.state("usr-1") == AuthState.PENDING_VERIFICATION
        assert gate.session("usr-1").pending_field is None

    def test_authenticated_is_terminal(self, gate):
        gate.request_reveal("usr-1", ProtectedField.EMAIL)
        gate.submit("usr-1", VALID)
        gate.cancel("usr-1")
        assert gate.submit("usr-1", None) == AuthState.AUTHENTICATED
        assert gate.state("usr-1") == AuthState.AUTHENTICATED


class TestValidation:
    @pytest.mark.parametrize(
        "credentials",
        [
            None,
            StepUpCredentials("123", "mail-password", "default-password"),
            StepUpCredentials("12345", "mail-password", "default-password"),
            StepUpCredentials("1234", "", "default-password"),
            StepUpCredentials("1234", "mail-password", ""),
        ],
    )
    def test_malformed_credentials_rejected(self, gate, credentials):
        gate.request_reveal("usr-1", ProtectedField.EMAIL)
        with pytest.raises(StepUpRejectedError, match="Please fill in all fields"):
            gate.submit("usr-1", credentials)
        assert gate.state("usr-1") == AuthState.PENDING_VERIFICATION

    def test_rejected_submit_from_locked_moves_to_pending(self, gate):
        with pytest.raises(StepUpRejectedError):
            gate.submit("usr-1", StepUpCredentials("", "", ""))
        assert gate.state("usr-1") == AuthState.PENDING_VERIFICATION

    def test_configured_code_length(self):
        gate = AccessGate(confirmation_delay=0, code_length=6)
        with pytest.raises(StepUpRejectedError):
            gate.submit("usr-1", VALID)
        assert gate.submit("usr-1", StepUpCredentials("123456", "a", "b")) == AuthState.AUTHENTICATED

    def test_credentials_repr_is_redacted(self):
        assert "mail-password" not in repr(VALID)
        assert "1234" not in repr(VALID)


class TestDelayedReveal:
    @pytest.mark.asyncio
    async def test_reveal_waits_for_confirmation_delay(self):
        gate = AccessGate(confirmation_delay=0.05)
        gate.request_reveal("usr-1", ProtectedField.EMAIL)
        gate.submit("usr-1", VALID)

        assert gate.state("usr-1") == AuthState.AUTHENTICATED
        assert gate.session("usr-1").confirming
        assert not gate.is_field_visible("usr-1", ProtectedField.EMAIL)

        await asyncio.sleep(0.1)
        assert not gate.session("usr-1").confirming
        assert gate.is_field_visible("usr-1", ProtectedField.EMAIL)

    def test_default_delay_without_event_loop(self):
        now = [100.0]
        gate = AccessGate(clock=lambda: now[0])
        gate.request_reveal("usr-1", ProtectedField.EMAIL)

        assert gate.submit("usr-1", VALID) == AuthState.AUTHENTICATED
        assert gate.session("usr-1").confirming
        assert not gate.is_field_visible("usr-1", ProtectedField.EMAIL)

        now[0] = 101.9
        assert not gate.is_field_visible("usr-1", ProtectedField.EMAIL)

        now[0] = 102.0
        assert gate.is_field_visible("usr-1", ProtectedField.EMAIL)
        assert gate.is_field_visible("usr-1", ProtectedField.PHONE)
        session = gate.session("usr-1")
        assert not session.confirming
        assert session.pending_field is None

    def test_close_without_event_loop(self):
        now = [0.0]
        gate = AccessGate(clock=lambda: now[0])
        gate.request_reveal("usr-1", ProtectedField.PHONE)
        gate.submit("usr-1", VALID)
        gate.close()
        now[0] = 60.0
        assert gate.session("usr-1").confirming
        assert not gate.is_field_visible("usr-1", ProtectedField.PHONE)

    @pytest.mark.asyncio
    async def test_close_cancels_pending_reveal(self):
        gate = AccessGate(confirmation_delay=0.05)
        gate.request_reveal("usr-1", ProtectedField.EMAIL)
        gate.submit("usr-1", VALID)
        gate.close()
        await asyncio.sleep(0.1)
        assert gate.session("usr-1").confirming


class TestVisibilityToggle:
    def test_toggle_requires_authentication(self, gate):
        assert gate.toggle_visibility("usr-1", ProtectedField.EMAIL) is False
        assert gate.state("usr-1") == AuthState.LOCKED

    def test_rehide_and_show_again(self, gate):
        gate.request_reveal("usr-1", ProtectedField.EMAIL)
        gate.submit("usr-1", VALID)
        assert gate.toggle_visibility("usr-1", ProtectedField.EMAIL) is False
        assert not gate.is_field_visible("usr-1", ProtectedField.EMAIL)
        assert gate.is_field_visible("usr-1", ProtectedField.PHONE)
        assert gate.toggle_visibility("usr-1", ProtectedField.EMAIL) is True

    def test_reveal_request_when_authenticated_toggles(self, gate):
        gate.request_reveal("usr-1", ProtectedField.EMAIL)
        gate.submit("usr-1", VALID)
        assert gate.request_reveal("usr-1", ProtectedField.PHONE) == AuthState.AUTHENTICATED
        assert not gate.is_field_visible("usr-1", ProtectedField.PHONE)


class TestProtectionPolicy:
    def test_defaults(self):
        policy = ProtectionPolicy()
        assert policy.snapshot() == {
            "email": True,
            "phone": True,
            "address": True,
            "date_of_birth": True,
            "password": True,
        }

    def test_toggle(self):
        policy = ProtectionPolicy()
        assert policy.toggle(ProtectedField.EMAIL) is False
        assert not policy.is_protected(ProtectedField.EMAIL)
        assert policy.toggle(ProtectedField.EMAIL) is True

    def test_password_always_protected(self):
        policy = ProtectionPolicy(set())
        assert policy.is_protected(ProtectedField.PASSWORD)
        assert policy.toggle(ProtectedField.PASSWORD) is True
        assert policy.is_protected(ProtectedField.PASSWORD)
        assert not policy.is_protected(ProtectedField.EMAIL)


class TestRendering:
    def test_masked_when_locked(self, gate):
        assert gate.render("usr-1", ProtectedField.EMAIL, "rajesh.sharma@gmail.com") == "r••••a@gmail.com"

    def test_clear_when_unprotected(self):
        gate = AccessGate(ProtectionPolicy({ProtectedField.PHONE}), confirmation_delay=0)
        assert gate.render("usr-1", ProtectedField.EMAIL, "rajesh.sharma@gmail.com") == "rajesh.sharma@gmail.com"
        assert gate.render("usr-1", ProtectedField.PHONE, "9876543210") == "98••••10"

    def test_clear_when_authenticated(self, gate):
        gate.request_reveal("usr-1", ProtectedField.EMAIL)
        gate.submit("usr-1", VALID)
        assert gate.render("usr-1", ProtectedField.EMAIL, "rajesh.sharma@gmail.com") == "rajesh.sharma@gmail.com"

    def test_phone_object_uses_number(self, gate):
        value = {"number": "9876543210", "verified": True}
        assert gate.render("usr-1", ProtectedField.PHONE, value) == "98••••10"

    def test_render_record(self, gate):
        user = create_user("usr-1")
        rendered = gate.render_record(owner_identity(user), user.to_dict())
        assert rendered["email"] == "r••••a@gmail.com"
        assert rendered["phone"] == "98••••10"
        assert rendered["address"]["street"] == "2•••••ad"
        assert rendered["date_of_birth"] == "••/08/1990"
        assert rendered["password"] == PASSWORD_TOKEN
        assert rendered["name"] == "Rajesh Sharma"
        assert user.get("email") == "rajesh.sharma@gmail.com"


class TestOwnerIdentity:
    def test_user_is_its_own_owner(self):
        assert owner_identity(create_user("usr-9")) == "usr-9"

    def test_order_owner_is_its_user(self):
        assert owner_identity(create_order("ord-1", user_id="usr-9")) == "usr-9"
        assert owner_identity(create_order("ord-2", customer_id="cus-4")) == "cus-4"

    def test_fallback_to_record_id(self):
        assert owner_identity(create_order("ord-3")) == "ord-3"
