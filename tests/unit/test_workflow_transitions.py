"""Request and delivery note state machines."""

import pytest

from depot_kernel.domain.dtos import DeliveryStatus, RequestStatus
from depot_kernel.domain.workflow import (
    DELIVERY_NOTE_WORKFLOW,
    REQUEST_WORKFLOW,
    Transition,
    Workflow,
)

RS = RequestStatus
DS = DeliveryStatus


class TestRequestWorkflow:

    @pytest.mark.parametrize(
        "from_state,to_state",
        [
            (RS.PENDING, RS.APPROVED),
            (RS.PENDING, RS.REJECTED),
            (RS.APPROVED, RS.IN_PREPARATION),
            (RS.IN_PREPARATION, RS.DELIVERED),
        ],
    )
    def test_legal_transitions(self, from_state, to_state):
        assert REQUEST_WORKFLOW.can_transition(from_state.value, to_state.value)

    @pytest.mark.parametrize(
        "from_state,to_state",
        [
            (RS.PENDING, RS.IN_PREPARATION),
            (RS.PENDING, RS.DELIVERED),
            (RS.APPROVED, RS.REJECTED),
            (RS.REJECTED, RS.APPROVED),
            (RS.DELIVERED, RS.PENDING),
            (RS.IN_PREPARATION, RS.APPROVED),
        ],
    )
    def test_illegal_transitions(self, from_state, to_state):
        assert not REQUEST_WORKFLOW.can_transition(from_state.value, to_state.value)

    def test_initial_and_terminal_states(self):
        assert REQUEST_WORKFLOW.initial_state == RS.PENDING.value
        assert REQUEST_WORKFLOW.is_terminal(RS.REJECTED.value)
        assert REQUEST_WORKFLOW.is_terminal(RS.DELIVERED.value)
        assert not REQUEST_WORKFLOW.is_terminal(RS.APPROVED.value)

    def test_processing_guard_is_described(self):
        transition = REQUEST_WORKFLOW.find_transition(
            RS.APPROVED.value, RS.IN_PREPARATION.value
        )
        assert transition.guard is not None
        assert transition.action == "process"


class TestDeliveryNoteWorkflow:

    def test_happy_path(self):
        assert DELIVERY_NOTE_WORKFLOW.allowed_targets(DS.IN_PREPARATION.value) == (
            DS.READY.value,
            DS.CANCELLED.value,
        )
        assert DELIVERY_NOTE_WORKFLOW.can_transition(DS.READY.value, DS.DELIVERED.value)

    def test_cannot_skip_ready(self):
        assert not DELIVERY_NOTE_WORKFLOW.can_transition(
            DS.IN_PREPARATION.value, DS.DELIVERED.value
        )

    @pytest.mark.parametrize("terminal", [DS.DELIVERED, DS.CANCELLED])
    def test_terminal_states_have_no_exits(self, terminal):
        assert DELIVERY_NOTE_WORKFLOW.allowed_targets(terminal.value) == ()


class TestWorkflowDefinition:

    def test_unknown_initial_state_rejected(self):
        with pytest.raises(ValueError):
            Workflow(
                name="w",
                description="",
                initial_state="nowhere",
                states=("a",),
                transitions=(),
            )

    def test_transition_out_of_terminal_state_rejected(self):
        with pytest.raises(ValueError):
            Workflow(
                name="w",
                description="",
                initial_state="a",
                states=("a", "b"),
                transitions=(Transition("b", "a", action="reopen"),),
                terminal_states=("b",),
            )
