"""
Canonical workflow types (``commerce_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for workflow state machines.  The order workflow and the
quotation sub-workflow are both declared with these types, so Guard,
Transition and Workflow are defined once.  Transitions may restrict which
actor roles are allowed to fire them.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``services/``, or outer layers.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* ``terminal_states`` have no outgoing transitions.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Guard:
    """A condition that must be satisfied before a transition fires.

    Contract: frozen, descriptive only.
    Non-goals: does not evaluate the condition -- the policy engine does.
    """
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid state transition in a workflow.

    ``roles`` lists the actor roles allowed to fire the transition; an empty
    tuple means any role.
    """
    from_state: str
    to_state: str
    action: str
    roles: tuple[str, ...] = ()
    guard: Guard | None = None

    def permits(self, role: str) -> bool:
        return not self.roles or role in self.roles


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for a document lifecycle.

    Contract: frozen; ``transitions`` reference only states in ``states``.
    """
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.initial_state not in self.states:
            raise ValueError(
                f"Workflow {self.name}: initial_state '{self.initial_state}' "
                "is not a declared state"
            )
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(
                    f"Workflow {self.name}: transition {t.from_state}->{t.to_state} "
                    "references an undeclared state"
                )
            if t.from_state in self.terminal_states:
                raise ValueError(
                    f"Workflow {self.name}: terminal state '{t.from_state}' "
                    "cannot have outgoing transitions"
                )

    def find_transition(self, from_state: str, to_state: str) -> Transition | None:
        """Return the transition for an edge, or None if the edge does not exist."""
        for t in self.transitions:
            if t.from_state == from_state and t.to_state == to_state:
                return t
        return None

    def transitions_from(self, from_state: str) -> tuple[Transition, ...]:
        return tuple(t for t in self.transitions if t.from_state == from_state)
