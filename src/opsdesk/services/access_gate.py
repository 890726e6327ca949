"""Step-up authentication gate for protected personal fields.

Covers the reveal flow for email, phone, address, date of birth and
credentials of a record owner:

    LOCKED --(reveal requested)--> PENDING_VERIFICATION
           --(valid step-up credentials)--> AUTHENTICATED

Sessions only move forward. Once an identity is authenticated, every
protected field of that identity is visible without a further prompt; a
field can still be re-hidden (and shown again) by toggling it.

All state lives in an ``AccessGate`` instance owned by the caller; there is
no module-level registry.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from opsdesk.core.errors import StepUpRejectedError
from opsdesk.services.masking import ProtectedField, mask_value
from opsdesk.services.records import Domain, Record

logger = logging.getLogger(__name__)

DEFAULT_CONFIRMATION_DELAY = 2.0
DEFAULT_CODE_LENGTH = 4

DEFAULT_PROTECTED_FIELDS = frozenset(
    {
        ProtectedField.EMAIL,
        ProtectedField.PHONE,
        ProtectedField.ADDRESS,
        ProtectedField.DATE_OF_BIRTH,
    }
)

# Credentials are gated regardless of the global policy.
ALWAYS_PROTECTED = frozenset({ProtectedField.PASSWORD})


def owner_identity(record: Record) -> str:
    """Identity whose step-up session gates a record's protected fields."""
    if record.domain == Domain.USER:
        return record.id
    owner = record.get("user_id") or record.get("customer_id")
    return str(owner) if owner else record.id


class AuthState(str, Enum):
    """Step-up authentication state of one identity."""

    LOCKED = "locked"
    PENDING_VERIFICATION = "pending_verification"
    AUTHENTICATED = "authenticated"


@dataclass(frozen=True, slots=True)
class StepUpCredentials:
    """Credentials submitted to pass step-up authentication.

    Attributes:
        verification_code: One-time code sent to the operator.
        secondary_credential: Credential of the secondary channel (email password).
        default_credential: The operator's default credential.
    """

    verification_code: str
    secondary_credential: str
    default_credential: str

    def __repr__(self) -> str:
        return "StepUpCredentials(<redacted>)"


@dataclass
class AuthSession:
    """Per-identity step-up state.

    Attributes:
        identity: Record-owner identity the session gates.
        state: Current authentication state.
        pending_field: Field whose reveal started the flow, if any.
        reveal_at: Clock reading at which the confirmation delay ends;
            None once the reveal has completed.
        hidden_fields: Fields explicitly re-hidden after authentication.
        authenticated_at: When step-up succeeded.
    """

    identity: str
    state: AuthState = AuthState.LOCKED
    pending_field: ProtectedField | None = None
    reveal_at: float | None = None
    hidden_fields: set[ProtectedField] = field(default_factory=set)
    authenticated_at: datetime | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.state == AuthState.AUTHENTICATED

    @property
    def confirming(self) -> bool:
        """True between acceptance and the delayed reveal."""
        return self.reveal_at is not None


class ProtectionPolicy:
    """Global, per-field protection flags (not per record)."""

    def __init__(self, protected: set[ProtectedField] | frozenset[ProtectedField] | None = None):
        initial = DEFAULT_PROTECTED_FIELDS if protected is None else protected
        self._flags: dict[ProtectedField, bool] = {f: f in initial for f in ProtectedField}
        for always in ALWAYS_PROTECTED:
            self._flags[always] = True

    def is_protected(self, field_name: ProtectedField) -> bool:
        return self._flags[field_name]

    def toggle(self, field_name: ProtectedField) -> bool:
        """Flip protection for a field and return the new flag.

        Always-protected fields are left untouched.
        """
        if field_name in ALWAYS_PROTECTED:
            logger.debug("Ignoring protection toggle for always-protected field: %s", field_name)
            return True
        self._flags[field_name] = not self._flags[field_name]
        logger.info(
            "Protection policy changed: field=%s, protected=%s",
            field_name.value,
            self._flags[field_name],
        )
        return self._flags[field_name]

    def snapshot(self) -> dict[str, bool]:
        return {f.value: flag for f, flag in self._flags.items()}


class AccessGate:
    """Registry of step-up sessions keyed by identity.

    Example:
        gate = AccessGate()
        gate.request_reveal("user-1", ProtectedField.EMAIL)   # -> PENDING_VERIFICATION
        gate.submit("user-1", StepUpCredentials("1234", "mail-pw", "default-pw"))
        # after the confirmation delay:
        gate.render("user-1", ProtectedField.EMAIL, "jane@example.com")
    """

    def __init__(
        self,
        policy: ProtectionPolicy | None = None,
        *,
        confirmation_delay: float = DEFAULT_CONFIRMATION_DELAY,
        code_length: int = DEFAULT_CODE_LENGTH,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.policy = policy or ProtectionPolicy()
        self._confirmation_delay = confirmation_delay
        self._code_length = code_length
        self._sessions: dict[str, AuthSession] = {}
        self._clock = clock

    def session(self, identity: str) -> AuthSession:
        """Return the session for ``identity``, created LOCKED on first use.

        A confirmation delay that has run out is completed here, so the
        reveal needs no running event loop.
        """
        if identity not in self._sessions:
            self._sessions[identity] = AuthSession(identity=identity)
        session = self._sessions[identity]
        if session.reveal_at is not None and self._clock() >= session.reveal_at:
            self._complete_reveal(session)
        return session

    def state(self, identity: str) -> AuthState:
        return self.session(identity).state

    def is_authenticated(self, identity: str) -> bool:
        return self.session(identity).is_authenticated

    def request_reveal(self, identity: str, field_name: ProtectedField) -> AuthState:
        """Ask to show a protected field.

        Unauthenticated identities are moved to PENDING_VERIFICATION and must
        pass ``submit()``. Authenticated identities toggle the field directly.
        """
        session = self.session(identity)
        if session.is_authenticated:
            self.toggle_visibility(identity, field_name)
            return session.state

        session.state = AuthState.PENDING_VERIFICATION
        session.pending_field = field_name
        logger.info(
            "Step-up required: identity=%s, field=%s",
            identity,
            field_name.value,
        )
        return session.state

    def validate(self, credentials: StepUpCredentials | None) -> None:
        """Check the shape of step-up credentials.

        Raises:
            StepUpRejectedError: Unless the code has exactly the configured
                length and both credentials are non-empty.
        """
        if (
            credentials is None
            or len(credentials.verification_code or "") != self._code_length
            or not credentials.secondary_credential
            or not credentials.default_credential
        ):
            msg = "Please fill in all fields"
            raise StepUpRejectedError(msg)

    def submit(self, identity: str, credentials: StepUpCredentials | None) -> AuthState:
        """Submit step-up credentials for ``identity``.

        On acceptance the identity is authenticated for every field at once;
        the field that triggered the flow is revealed after the confirmation
        delay. On rejection the session stays pending so the caller can
        re-prompt.

        Raises:
            StepUpRejectedError: If the credentials are malformed.
        """
        session = self.session(identity)
        if session.is_authenticated:
            return session.state

        try:
            self.validate(credentials)
        except StepUpRejectedError:
            if session.state == AuthState.LOCKED:
                session.state = AuthState.PENDING_VERIFICATION
            logger.warning("Step-up rejected: identity=%s", identity)
            raise

        session.state = AuthState.AUTHENTICATED
        session.authenticated_at = datetime.now(UTC)
        logger.info(
            "Step-up accepted: identity=%s, pending_field=%s",
            identity,
            session.pending_field.value if session.pending_field else None,
        )

        if self._confirmation_delay <= 0:
            self._complete_reveal(session)
        else:
            session.reveal_at = self._clock() + self._confirmation_delay
        return session.state

    def cancel(self, identity: str) -> None:
        """Abandon a pending prompt; the session never goes back to LOCKED."""
        session = self.session(identity)
        session.pending_field = None
        logger.debug("Step-up prompt cancelled: identity=%s", identity)

    def toggle_visibility(self, identity: str, field_name: ProtectedField) -> bool:
        """Flip an authenticated field between shown and re-hidden.

        Returns:
            The new visibility; always False for unauthenticated identities.
        """
        session = self.session(identity)
        if not session.is_authenticated:
            return False
        if field_name in session.hidden_fields:
            session.hidden_fields.discard(field_name)
        else:
            session.hidden_fields.add(field_name)
        return self.is_field_visible(identity, field_name)

    def is_field_visible(self, identity: str, field_name: ProtectedField) -> bool:
        """Whether the identity has unlocked this field and not re-hidden it."""
        session = self.session(identity)
        if not session.is_authenticated or session.confirming:
            return False
        return field_name not in session.hidden_fields

    def render(self, identity: str, field_name: ProtectedField, value: Any) -> Any:
        """Return ``value`` as it may be displayed for ``identity``."""
        if not self.policy.is_protected(field_name) or self.is_field_visible(identity, field_name):
            return value
        if field_name == ProtectedField.PHONE and isinstance(value, dict):
            return mask_value(field_name, value.get("number"))
        return mask_value(field_name, value)

    def render_record(self, identity: str, attributes: dict[str, Any]) -> dict[str, Any]:
        """Apply ``render`` to every protected attribute of a record."""
        rendered = dict(attributes)
        for protected in ProtectedField:
            if protected.value in rendered:
                rendered[protected.value] = self.render(
                    identity, protected, rendered[protected.value]
                )
        return rendered

    def close(self) -> None:
        """Cancel pending reveals; fields still confirming stay hidden."""
        for session in self._sessions.values():
            if session.reveal_at is not None:
                session.reveal_at = float("inf")

    def _complete_reveal(self, session: AuthSession) -> None:
        session.reveal_at = None
        if session.pending_field is not None:
            session.hidden_fields.discard(session.pending_field)
            logger.debug(
                "Revealed field after confirmation: identity=%s, field=%s",
                session.identity,
                session.pending_field.value,
            )
        session.pending_field = None
