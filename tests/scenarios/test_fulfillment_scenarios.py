"""
End-to-end fulfillment through FulfillmentCoordinator.

Each coordinator call is its own committed transaction, so every assertion
here reads committed state.
"""

from datetime import timezone
from uuid import uuid4

import pytest

from depot_kernel.domain.dtos import (
    Decision,
    DeliveryFilter,
    DeliveryLineSpec,
    DeliveryStatus,
    DeliveryType,
    GrantedLine,
    MovementFilter,
    RequestLineSpec,
    RequestStatus,
)
from depot_kernel.exceptions import (
    InsufficientStockError,
    InvalidStateError,
    ValidationError,
)


def _utc(value):
    """SQLite hands back naive timestamps; they were written as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class TestRequestToDeliveryNote:

    def test_approved_request_becomes_delivery_note(self, coordinator, make_material, depot_id):
        material = make_material(100)
        requester = uuid4()
        request = coordinator.create_request(
            requester, [RequestLineSpec(material.id, 50)], depot_id=depot_id
        )
        coordinator.validate_request(
            request.id,
            uuid4(),
            Decision.APPROVE,
            granted_lines=[GrantedLine(request.lines[0].id, 50)],
        )

        note = coordinator.process_approved_request(request.id, uuid4())

        assert note.delivery_type is DeliveryType.FROM_REQUEST
        assert note.request_id == request.id
        assert note.recipient_id == requester
        assert [(l.material_id, l.quantity) for l in note.lines] == [(material.id, 50)]
        assert coordinator.get_material(material.id).stock_on_hand == 50
        assert coordinator.get_request(request.id).status is RequestStatus.IN_PREPARATION

        outs = coordinator.list_movements(
            MovementFilter(material_id=material.id, movement_type="out")
        )
        assert len(outs) == 1
        assert (outs[0].stock_before, outs[0].stock_after) == (100, 50)
        assert outs[0].delivery_note_id == note.id
        assert outs[0].request_id == request.id

    def test_only_granted_lines_are_delivered(self, coordinator, make_material, approved_request):
        a, b = make_material(10), make_material(10)
        request = approved_request({a.id: 4, b.id: 6}, grants={a.id: 2})

        note = coordinator.process_approved_request(request.id, uuid4())

        assert [(l.material_id, l.quantity) for l in note.lines] == [(a.id, 2)]
        assert coordinator.get_material(b.id).stock_on_hand == 10

    def test_nothing_granted_cannot_be_processed(self, coordinator, make_material, approved_request):
        material = make_material(10)
        request = approved_request({material.id: 4}, grants={material.id: 0})
        with pytest.raises(ValidationError):
            coordinator.process_approved_request(request.id, uuid4())
        assert coordinator.get_request(request.id).status is RequestStatus.APPROVED

    def test_pending_request_cannot_be_processed(self, coordinator, make_material, depot_id):
        material = make_material(10)
        request = coordinator.create_request(
            uuid4(), [RequestLineSpec(material.id, 1)], depot_id=depot_id
        )
        with pytest.raises(InvalidStateError):
            coordinator.process_approved_request(request.id, uuid4())

    def test_request_processed_at_most_once(self, coordinator, make_material, approved_request):
        material = make_material(10)
        request = approved_request({material.id: 3})
        coordinator.process_approved_request(request.id, uuid4())

        with pytest.raises(InvalidStateError):
            coordinator.process_approved_request(request.id, uuid4())

        assert coordinator.get_material(material.id).stock_on_hand == 7
        assert coordinator.delivery_stats().total == 1

    def test_depot_override_and_missing_depot(self, coordinator, make_material):
        material = make_material(10)
        request = coordinator.create_request(uuid4(), [RequestLineSpec(material.id, 1)])
        coordinator.validate_request(request.id, uuid4(), Decision.APPROVE)

        with pytest.raises(ValidationError):
            coordinator.process_approved_request(request.id, uuid4())

        other_depot = uuid4()
        note = coordinator.process_approved_request(request.id, uuid4(), depot_id=other_depot)
        assert note.depot_id == other_depot

    def test_delivering_the_note_delivers_the_request(
        self, coordinator, make_material, approved_request, clock
    ):
        material = make_material(10)
        request = approved_request({material.id: 3})
        note = coordinator.process_approved_request(request.id, uuid4())

        coordinator.update_delivery_status(note.id, DeliveryStatus.READY, uuid4())
        delivered = coordinator.update_delivery_status(
            note.id, DeliveryStatus.DELIVERED, uuid4(), signature="R. Keeper"
        )

        assert delivered.status is DeliveryStatus.DELIVERED
        assert delivered.delivered_at is not None
        assert coordinator.get_request(request.id).status is RequestStatus.DELIVERED


class TestDirectDistribution:

    def test_insufficient_stock_creates_nothing(self, coordinator, make_material, depot_id):
        material = make_material(10)
        with pytest.raises(InsufficientStockError) as exc_info:
            coordinator.create_direct_distribution(
                issuer_id=uuid4(),
                depot_id=depot_id,
                lines=[DeliveryLineSpec(material.id, 15)],
                recipient_id=uuid4(),
            )
        assert (exc_info.value.available, exc_info.value.requested) == (10, 15)
        assert coordinator.get_material(material.id).stock_on_hand == 10
        assert coordinator.list_delivery_notes() == []

    def test_failing_line_rolls_back_earlier_lines(self, coordinator, make_material, depot_id):
        plenty, scarce = make_material(50), make_material(2)
        movements_before = coordinator.movement_stats().total_movements

        with pytest.raises(InsufficientStockError):
            coordinator.create_direct_distribution(
                issuer_id=uuid4(),
                depot_id=depot_id,
                lines=[DeliveryLineSpec(plenty.id, 10), DeliveryLineSpec(scarce.id, 3)],
                custom_destination="Site 4",
            )

        assert coordinator.get_material(plenty.id).stock_on_hand == 50
        assert coordinator.get_material(scarce.id).stock_on_hand == 2
        assert coordinator.movement_stats().total_movements == movements_before
        assert coordinator.delivery_stats().total == 0
        assert coordinator.verify_ledger() == []

    def test_direct_note_listed_by_type(self, coordinator, make_material, depot_id):
        material = make_material(5)
        note = coordinator.create_direct_distribution(
            issuer_id=uuid4(),
            depot_id=depot_id,
            lines=[DeliveryLineSpec(material.id, 5)],
            custom_destination="Annex",
        )
        listed = coordinator.list_delivery_notes(DeliveryFilter(delivery_type=DeliveryType.DIRECT))
        assert [n.id for n in listed] == [note.id]
        assert coordinator.get_delivery_note(note.id).custom_destination == "Annex"

    def test_line_ids_given_as_strings(self, coordinator, make_material, depot_id):
        material = make_material(6)
        note = coordinator.create_direct_distribution(
            issuer_id=uuid4(),
            depot_id=depot_id,
            lines=[DeliveryLineSpec(str(material.id), 2)],
            recipient_id=uuid4(),
        )
        assert note.lines[0].material_id == material.id
        assert coordinator.get_material(material.id).stock_on_hand == 4
        assert coordinator.verify_ledger() == []

    def test_mixed_id_forms_for_one_material_rejected(
        self, coordinator, make_material, depot_id
    ):
        material = make_material(6)
        with pytest.raises(ValidationError):
            coordinator.create_direct_distribution(
                issuer_id=uuid4(),
                depot_id=depot_id,
                lines=[DeliveryLineSpec(material.id, 3), DeliveryLineSpec(str(material.id), 3)],
                recipient_id=uuid4(),
            )
        assert coordinator.get_material(material.id).stock_on_hand == 6
        assert coordinator.list_delivery_notes() == []


class TestValidation:

    def test_second_validation_keeps_first_decision(self, coordinator, make_material, clock):
        material = make_material(10)
        request = coordinator.create_request(uuid4(), [RequestLineSpec(material.id, 2)])
        first_validator = uuid4()
        first = coordinator.validate_request(request.id, first_validator, Decision.APPROVE)

        clock.advance(600)
        with pytest.raises(InvalidStateError):
            coordinator.validate_request(request.id, uuid4(), Decision.APPROVE)

        current = coordinator.get_request(request.id)
        assert current.validator_id == first_validator
        assert _utc(current.validated_at) == _utc(first.validated_at)
        assert current.status is RequestStatus.APPROVED


class TestStockOperations:

    def test_receive_then_adjust(self, coordinator, make_material, actor_id):
        material = make_material()
        receipt = coordinator.add_stock(
            material.id, 20, actor_id, reason="supplier receipt", supplier="ACME"
        )
        adjustment = coordinator.adjust_stock(material.id, 15, actor_id)

        assert (receipt.movement_type, receipt.quantity) == ("in", 20)
        assert (receipt.stock_before, receipt.stock_after) == (0, 20)
        assert (adjustment.movement_type, adjustment.quantity) == ("adjustment", -5)
        assert (adjustment.stock_before, adjustment.stock_after) == (20, 15)
        assert coordinator.get_material(material.id).stock_on_hand == 15
        assert len(coordinator.material_history(material.id)) == 2

    def test_remove_stock_without_note(self, coordinator, make_material, actor_id):
        material = make_material(8)
        entry = coordinator.remove_stock(material.id, 3, actor_id, reason="breakage")
        assert entry.delivery_note_id is None
        assert entry.stock_after == 5

    def test_remove_too_much(self, coordinator, make_material, actor_id):
        material = make_material(2)
        with pytest.raises(InsufficientStockError):
            coordinator.remove_stock(material.id, 3, actor_id)
        assert coordinator.get_material(material.id).stock_on_hand == 2

    def test_history_uses_configured_page_size(
        self, session_factory, clock, notifier, make_material, actor_id
    ):
        from depot_kernel.config import KernelSettings
        from depot_services.fulfillment_coordinator import FulfillmentCoordinator

        small = FulfillmentCoordinator(
            session_factory, clock=clock, settings=KernelSettings(history_page_size=2), notifier=notifier
        )
        material = make_material(10)
        for _ in range(3):
            small.remove_stock(material.id, 1, actor_id)

        assert len(small.material_history(material.id)) == 2
        assert len(small.material_history(material.id, limit=10)) == 4

    def test_low_stock_listing(self, coordinator, make_material, actor_id):
        low = make_material(3, minimum=5)
        make_material(30, minimum=5)
        assert [m.id for m in coordinator.low_stock()] == [low.id]

    def test_ledger_verifies_after_mixed_activity(
        self, coordinator, make_material, approved_request, actor_id
    ):
        a, b = make_material(40), make_material(5)
        request = approved_request({a.id: 10, b.id: 5})
        coordinator.process_approved_request(request.id, uuid4())
        coordinator.adjust_stock(a.id, 25, actor_id)
        coordinator.add_stock(b.id, 7, actor_id)

        assert coordinator.verify_ledger() == []
