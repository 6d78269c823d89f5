"""
Async State Machine

Finite state machine with transition history and async callbacks, used to
drive the evaluation run lifecycle.

Usage:
    from enum import Enum, auto

    class RunState(Enum):
        IDLE = auto()
        LOADING = auto()
        FAILED = auto()

    sm = StateMachine(
        initial_state=RunState.IDLE,
        allowed_transitions={RunState.IDLE: [RunState.LOADING]},
        strict=True,
    )
    await sm.transition_to(RunState.LOADING, reason="run started")
    await sm.transition_to(RunState.FAILED)  # raises InvalidTransitionError
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Awaitable, Callable, Dict, Generic, List, Optional, TypeVar

from utils.exceptions import InvalidTransitionError

logger = logging.getLogger(__name__)

S = TypeVar("S", bound=Enum)


@dataclass
class StateTransition(Generic[S]):
    """Records a single state transition."""
    from_state: S
    to_state: S
    timestamp: datetime
    reason: str


class StateMachine(Generic[S]):
    """
    Generic async state machine with transition history.

    Features:
    - Enum-based states (any Enum subclass)
    - Duplicate transitions are no-ops
    - Optional allowed_transitions map; in strict mode a disallowed
      transition raises InvalidTransitionError instead of being skipped
    - Async callback on every transition
    - Rolling history (configurable max size)
    """

    def __init__(
        self,
        initial_state: S,
        allowed_transitions: Optional[Dict[S, List[S]]] = None,
        max_history: int = 100,
        strict: bool = False,
    ):
        """
        Args:
            initial_state: The starting state.
            allowed_transitions: Optional dict mapping each state to its valid
                                 target states. If None, all transitions allowed.
            max_history: Max number of transitions to keep in history.
            strict: Raise on disallowed transitions instead of skipping them.
        """
        self._state: S = initial_state
        self._allowed = allowed_transitions
        self._max_history = max_history
        self._strict = strict
        self._history: List[StateTransition[S]] = []
        self._callback: Optional[Callable[[S, S, str], Awaitable[None]]] = None

    @property
    def state(self) -> S:
        """Current state."""
        return self._state

    @property
    def history(self) -> List[StateTransition[S]]:
        """Transition history (read-only copy)."""
        return list(self._history)

    def on_transition(self, callback: Callable[[S, S, str], Awaitable[None]]) -> None:
        """Register an async callback: (old_state, new_state, reason) -> None."""
        self._callback = callback

    def can_transition(self, new_state: S) -> bool:
        """Whether new_state is reachable from the current state."""
        if self._allowed is None:
            return True
        return new_state in self._allowed.get(self._state, [])

    async def transition_to(self, new_state: S, reason: str = "") -> bool:
        """
        Transition to a new state.

        Args:
            new_state: Target state.
            reason: Human-readable reason (for debugging/logging).

        Returns:
            True if the transition occurred, False if skipped (duplicate or invalid).

        Raises:
            InvalidTransitionError: In strict mode, for a disallowed transition.
        """
        if new_state == self._state:
            return False

        if not self.can_transition(new_state):
            allowed = self._allowed.get(self._state, []) if self._allowed else []
            message = (
                f"Invalid transition: {self._state.name} -> {new_state.name} "
                f"(allowed: {[s.name for s in allowed]})"
            )
            if self._strict:
                raise InvalidTransitionError(message)
            logger.warning(message)
            return False

        old_state = self._state
        self._state = new_state

        self._history.append(
            StateTransition(
                from_state=old_state,
                to_state=new_state,
                timestamp=datetime.now(),
                reason=reason,
            )
        )
        if len(self._history) > self._max_history:
            self._history = self._history[-self._max_history:]

        logger.debug(f"State: {old_state.name} -> {new_state.name} ({reason})")

        if self._callback:
            await self._callback(old_state, new_state, reason)

        return True

    def get_status(self) -> dict:
        """Get current state and recent transitions as a dict."""
        return {
            "state": self._state.name,
            "last_transitions": [
                {
                    "from": t.from_state.name,
                    "to": t.to_state.name,
                    "timestamp": t.timestamp.isoformat(),
                    "reason": t.reason,
                }
                for t in self._history[-5:]
            ],
        }
