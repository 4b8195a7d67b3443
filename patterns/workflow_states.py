"""Enum-based state machine for inbound webhook messages.

Every inbound EventSub message starts in VERIFYING and moves exactly once
to a terminal state. The transition table is the single source of truth for
which outcomes are reachable; the processor records each move so logs and
tests can see how a message was handled.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


# ---------------------------------------------------------------------------
# State definitions
# ---------------------------------------------------------------------------

class WebhookState(str, Enum):
    """Webhook message handling states."""

    VERIFYING = "verifying"
    CHALLENGE = "challenge"
    REVOKED = "revoked"
    NOTIFYING = "notifying"
    REJECTED = "rejected"


# ---------------------------------------------------------------------------
# Transition rules
# ---------------------------------------------------------------------------

# Allowed transitions: {current_state: [allowed_next_states]}
_WEBHOOK_TRANSITIONS: dict[WebhookState, list[WebhookState]] = {
    WebhookState.VERIFYING: [
        WebhookState.CHALLENGE,
        WebhookState.REVOKED,
        WebhookState.NOTIFYING,
        WebhookState.REJECTED,
    ],
    WebhookState.CHALLENGE: [],   # terminal
    WebhookState.REVOKED: [],     # terminal
    WebhookState.NOTIFYING: [],   # terminal
    WebhookState.REJECTED: [],    # terminal
}


class InvalidTransition(ValueError):
    pass


# ---------------------------------------------------------------------------
# State machine
# ---------------------------------------------------------------------------

@dataclass
class WebhookTransition:
    """Record of a single state transition."""

    from_state: str
    to_state: str
    timestamp: datetime
    reason: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class WebhookMessageTrace:
    """State tracking for one inbound webhook message.

    Usage::

        trace = WebhookMessageTrace(message_id="e76c6bd4-...", tenant_id="T1")
        trace.transition(WebhookState.NOTIFYING, reason="channel.cheer")
    """

    message_id: str
    tenant_id: str
    current_state: WebhookState = WebhookState.VERIFYING
    history: list[WebhookTransition] = field(default_factory=list)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def can_transition(self, to_state: WebhookState) -> bool:
        """Check if a transition is allowed from the current state."""
        return to_state in _WEBHOOK_TRANSITIONS.get(self.current_state, [])

    def transition(
        self,
        to_state: WebhookState,
        reason: str = "",
        metadata: dict[str, Any] | None = None,
    ) -> WebhookTransition:
        """Execute a state transition.

        Raises InvalidTransition if the transition is not allowed.
        """
        if not self.can_transition(to_state):
            allowed_names = [s.value for s in _WEBHOOK_TRANSITIONS.get(self.current_state, [])]
            raise InvalidTransition(
                f"Cannot transition from {self.current_state.value} to {to_state.value}. "
                f"Allowed: {allowed_names}"
            )

        record = WebhookTransition(
            from_state=self.current_state.value,
            to_state=to_state.value,
            timestamp=datetime.now(timezone.utc),
            reason=reason,
            metadata=metadata or {},
        )
        self.history.append(record)
        self.current_state = to_state
        return record

    @property
    def is_terminal(self) -> bool:
        """Check if the message has reached a terminal state."""
        return len(_WEBHOOK_TRANSITIONS.get(self.current_state, [])) == 0
