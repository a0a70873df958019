"""Consultation phase state machine.

Idle -> Estimating -> AwaitingConsent -> Independent -> Synthesis
-> CrossExam -> Verdict -> Complete, with Aborted reachable from every
non-terminal phase and Synthesis -> Complete for early termination.
"""

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from consult.events import STATE_CHANGE, EventBus
from consult.models import StateTransition

logger = logging.getLogger(__name__)


class ConsultState(str, Enum):
    IDLE = "Idle"
    ESTIMATING = "Estimating"
    AWAITING_CONSENT = "AwaitingConsent"
    INDEPENDENT = "Independent"
    SYNTHESIS = "Synthesis"
    CROSS_EXAM = "CrossExam"
    VERDICT = "Verdict"
    COMPLETE = "Complete"
    ABORTED = "Aborted"


S = ConsultState

VALID_TRANSITIONS: dict[ConsultState, frozenset[ConsultState]] = {
    S.IDLE: frozenset({S.ESTIMATING, S.ABORTED}),
    S.ESTIMATING: frozenset({S.AWAITING_CONSENT, S.ABORTED}),
    S.AWAITING_CONSENT: frozenset({S.INDEPENDENT, S.ABORTED}),
    S.INDEPENDENT: frozenset({S.SYNTHESIS, S.ABORTED}),
    S.SYNTHESIS: frozenset({S.CROSS_EXAM, S.COMPLETE, S.ABORTED}),
    S.CROSS_EXAM: frozenset({S.VERDICT, S.ABORTED}),
    S.VERDICT: frozenset({S.COMPLETE, S.ABORTED}),
    S.COMPLETE: frozenset(),
    S.ABORTED: frozenset(),
}

TERMINAL_STATES = frozenset({S.COMPLETE, S.ABORTED})

ROUND_FOR_STATE: dict[ConsultState, int] = {
    S.INDEPENDENT: 1,
    S.SYNTHESIS: 2,
    S.CROSS_EXAM: 3,
    S.VERDICT: 4,
}

_DESCRIPTIONS: dict[ConsultState, str] = {
    S.IDLE: "Idle",
    S.ESTIMATING: "Estimating cost",
    S.AWAITING_CONSENT: "Awaiting user consent",
    S.INDEPENDENT: "Round 1: Independent analysis",
    S.SYNTHESIS: "Round 2: Synthesis",
    S.CROSS_EXAM: "Round 3: Cross-examination",
    S.VERDICT: "Round 4: Verdict",
    S.COMPLETE: "Complete",
    S.ABORTED: "Aborted",
}


class InvalidTransitionError(RuntimeError):
    """Raised on a transition outside the fixed edge set."""


class ConsultStateMachine:
    def __init__(self, consultation_id: str, event_bus: EventBus | None = None) -> None:
        self.consultation_id = consultation_id
        self._bus = event_bus
        self._state = S.IDLE
        self._history: list[StateTransition] = []

    @property
    def state(self) -> ConsultState:
        return self._state

    @property
    def history(self) -> tuple[StateTransition, ...]:
        return tuple(self._history)

    def transition(self, to: ConsultState, reason: str | None = None) -> StateTransition:
        """Move to ``to`` or raise InvalidTransitionError. Publishes a state change."""
        current = self._state
        if current in TERMINAL_STATES:
            raise InvalidTransitionError(f"Cannot transition from terminal state {current.value}")
        allowed = VALID_TRANSITIONS[current]
        if to not in allowed:
            valid = ", ".join(sorted(s.value for s in allowed))
            raise InvalidTransitionError(
                f"Invalid state transition: {current.value} -> {to.value}. "
                f"Valid transitions from {current.value}: {valid}"
            )

        record = StateTransition(
            from_state=current.value,
            to_state=to.value,
            timestamp=datetime.now(timezone.utc).isoformat(),
            reason=reason,
        )
        self._history.append(record)
        self._state = to
        logger.debug("%s: %s -> %s%s", self.consultation_id, current.value, to.value, f" ({reason})" if reason else "")

        if self._bus is not None:
            self._bus.publish(STATE_CHANGE, {
                "consultation_id": self.consultation_id,
                "from_state": current.value,
                "to_state": to.value,
                "round": self.current_round(),
                "reason": reason,
            })
        return record

    def can_transition(self, to: ConsultState) -> bool:
        return to in VALID_TRANSITIONS[self._state]

    def allowed_transitions(self) -> frozenset[ConsultState]:
        return VALID_TRANSITIONS[self._state]

    def current_round(self) -> int:
        return ROUND_FOR_STATE.get(self._state, 0)

    def is_in_round(self) -> bool:
        return self._state in ROUND_FOR_STATE

    def is_terminal(self) -> bool:
        return self._state in TERMINAL_STATES

    def describe(self) -> str:
        return _DESCRIPTIONS[self._state]

    def reset(self) -> None:
        self._state = S.IDLE
        self._history.clear()

    def to_dict(self) -> dict[str, Any]:
        return {
            "consultation_id": self.consultation_id,
            "current_state": self._state.value,
            "current_round": self.current_round(),
            "is_terminal": self.is_terminal(),
            "transitions": [
                {"from": t.from_state, "to": t.to_state, "timestamp": t.timestamp, "reason": t.reason}
                for t in self._history
            ],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], event_bus: EventBus | None = None) -> "ConsultStateMachine":
        """Rebuild a machine from ``to_dict`` output.

        Raises ValueError on unknown states or a history that does not
        follow the edge set and end in the recorded state.
        """
        try:
            consultation_id = str(data["consultation_id"])
            current = ConsultState(data["current_state"])
            raw_transitions = list(data.get("transitions", []))
        except (KeyError, TypeError, ValueError) as exc:
            raise ValueError(f"Malformed state snapshot: {exc}") from exc

        history: list[StateTransition] = []
        expected = S.IDLE
        for raw in raw_transitions:
            try:
                frm, to = ConsultState(raw["from"]), ConsultState(raw["to"])
            except (KeyError, TypeError, ValueError) as exc:
                raise ValueError(f"Malformed transition record: {raw!r}") from exc
            if frm != expected or to not in VALID_TRANSITIONS[frm]:
                raise ValueError(f"Snapshot contains invalid transition {frm.value} -> {to.value}")
            history.append(StateTransition(frm.value, to.value, str(raw.get("timestamp", "")), raw.get("reason")))
            expected = to
        if expected != current:
            raise ValueError(f"Snapshot history ends in {expected.value}, not {current.value}")

        machine = cls(consultation_id, event_bus)
        machine._state = current
        machine._history = history
        return machine
