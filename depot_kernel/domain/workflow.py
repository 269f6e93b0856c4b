"""
Workflow state machines (``depot_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for workflow state machines, and the two lifecycles the
kernel enforces: material requests and delivery notes.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``services/``, ``selectors/``, or outer layers.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* Terminal states have no outgoing transitions.
"""

from __future__ import annotations

from dataclasses import dataclass

from depot_kernel.domain.dtos import DeliveryStatus, RequestStatus


@dataclass(frozen=True)
class Guard:
    """A condition that must be satisfied before a transition fires.

    Contract: frozen, descriptive only.
    Non-goals: does not evaluate the condition -- the owning service does.
    """
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid state transition in a workflow."""
    from_state: str
    to_state: str
    action: str
    guard: Guard | None = None


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for a document lifecycle.

    Contract: frozen; ``transitions`` reference only states in ``states``.
    Guarantees: ``initial_state`` is a member of ``states``.
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
                f"{self.name}: initial state '{self.initial_state}' is not a state"
            )
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(
                    f"{self.name}: transition {t.from_state}->{t.to_state} "
                    f"references an unknown state"
                )
            if t.from_state in self.terminal_states:
                raise ValueError(
                    f"{self.name}: terminal state '{t.from_state}' has an "
                    f"outgoing transition"
                )

    def find_transition(self, from_state: str, to_state: str) -> Transition | None:
        """Return the transition from ``from_state`` to ``to_state``, if legal."""
        for t in self.transitions:
            if t.from_state == from_state and t.to_state == to_state:
                return t
        return None

    def can_transition(self, from_state: str, to_state: str) -> bool:
        return self.find_transition(from_state, to_state) is not None

    def is_terminal(self, state: str) -> bool:
        return state in self.terminal_states

    def allowed_targets(self, from_state: str) -> tuple[str, ...]:
        return tuple(t.to_state for t in self.transitions if t.from_state == from_state)


# =============================================================================
# Request lifecycle
# =============================================================================

_RS = RequestStatus

REQUEST_WORKFLOW = Workflow(
    name="material_request",
    description="Material request from submission to delivery",
    initial_state=_RS.PENDING.value,
    states=tuple(s.value for s in RequestStatus),
    transitions=(
        Transition(_RS.PENDING.value, _RS.APPROVED.value, action="approve"),
        Transition(_RS.PENDING.value, _RS.REJECTED.value, action="reject"),
        Transition(
            _RS.APPROVED.value,
            _RS.IN_PREPARATION.value,
            action="process",
            guard=Guard(
                "delivery_note_issued",
                "A delivery note for the granted lines exists in the same transaction",
            ),
        ),
        Transition(
            _RS.IN_PREPARATION.value,
            _RS.DELIVERED.value,
            action="deliver",
            guard=Guard(
                "delivery_note_delivered",
                "The request's delivery note reached 'delivered'",
            ),
        ),
    ),
    terminal_states=(_RS.REJECTED.value, _RS.DELIVERED.value),
)


# =============================================================================
# Delivery note lifecycle
# =============================================================================

_DS = DeliveryStatus

DELIVERY_NOTE_WORKFLOW = Workflow(
    name="delivery_note",
    description="Delivery note from preparation to hand-over",
    initial_state=_DS.IN_PREPARATION.value,
    states=tuple(s.value for s in DeliveryStatus),
    transitions=(
        Transition(_DS.IN_PREPARATION.value, _DS.READY.value, action="mark_ready"),
        Transition(
            _DS.READY.value,
            _DS.DELIVERED.value,
            action="deliver",
            guard=Guard("recipient_confirmed", "Recipient confirmed receipt"),
        ),
        Transition(_DS.IN_PREPARATION.value, _DS.CANCELLED.value, action="cancel"),
        Transition(_DS.READY.value, _DS.CANCELLED.value, action="cancel"),
    ),
    terminal_states=(_DS.DELIVERED.value, _DS.CANCELLED.value),
)
