"""In-process publish/subscribe channel for consultation progress."""

import logging
from collections import defaultdict
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

Handler = Callable[[str, dict[str, Any]], None]

WILDCARD = "*"

CONSULTATION_STARTED = "consultation:started"
COST_ESTIMATED = "consultation:cost_estimated"
USER_CONSENT = "consultation:user_consent"
STATE_CHANGE = "consultation:state_change"
AGENT_THINKING = "agent:thinking"
AGENT_COMPLETED = "agent:completed"
AGENT_FAILED = "agent:failed"
ROUND_ARTIFACT = "consultation:round_artifact"
ROUND_COMPLETED = "round:completed"
CONSULTATION_COMPLETED = "consultation:completed"


class EventBus:
    """Synchronous event bus, constructed and passed in explicitly.

    Handlers run in registration order. A failing handler is logged and
    never affects the publisher or the other handlers.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[Handler]] = defaultdict(list)

    def subscribe(self, event: str, handler: Handler) -> Callable[[], None]:
        """Register ``handler`` for ``event`` ("*" for all). Returns an unsubscribe callable."""
        self._handlers[event].append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers[event]:
                self._handlers[event].remove(handler)

        return unsubscribe

    def publish(self, event: str, payload: dict[str, Any] | None = None) -> None:
        payload = payload or {}
        for handler in [*self._handlers.get(event, []), *self._handlers.get(WILDCARD, [])]:
            try:
                handler(event, payload)
            except Exception:
                logger.exception("Event handler failed for %s", event)
