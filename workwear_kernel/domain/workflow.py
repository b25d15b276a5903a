"""
State-machine tables for the order and PR lifecycles.

The approval engine declares ``ORDER_WORKFLOW`` and ``PR_WORKFLOW`` with
these types and looks transitions up by ``(from_state, action)``.  A
``Workflow`` checks itself on construction: the initial state and both
ends of every transition must be declared states, and nothing may leave
a terminal state.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Guard:
    """Named precondition on a transition.

    The table only names it; ``workwear_engines.approval`` checks it.
    """
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """One allowed move: ``action`` takes ``from_state`` to ``to_state``.

    ``allowed_roles`` lists the actor roles that may fire it; empty means
    any role.
    """
    from_state: str
    to_state: str
    action: str
    guard: Guard | None = None
    allowed_roles: tuple[str, ...] = ()


@dataclass(frozen=True)
class Workflow:
    """Named set of states and the moves between them."""
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.initial_state not in self.states:
            raise ValueError(
                f"Workflow {self.name}: initial state {self.initial_state!r} not in states"
            )
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(
                    f"Workflow {self.name}: transition {t.from_state!r} -> "
                    f"{t.to_state!r} references an unknown state"
                )
            if t.from_state in self.terminal_states:
                raise ValueError(
                    f"Workflow {self.name}: terminal state {t.from_state!r} "
                    "cannot have outgoing transitions"
                )

    def transitions_from(self, state: str) -> tuple[Transition, ...]:
        return tuple(t for t in self.transitions if t.from_state == state)

    def find(self, from_state: str, action: str) -> tuple[Transition, ...]:
        """All transitions for ``action`` out of ``from_state``."""
        return tuple(
            t for t in self.transitions
            if t.from_state == from_state and t.action == action
        )
