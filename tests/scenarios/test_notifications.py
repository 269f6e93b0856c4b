"""Post-commit event dispatch from the coordinator."""

from uuid import uuid4

import pytest

from depot_kernel.domain.dtos import Decision, DeliveryLineSpec, RequestLineSpec
from depot_kernel.exceptions import InsufficientStockError


def test_request_lifecycle_events_in_order(coordinator, make_material, notifier, depot_id):
    material = make_material(10)
    notifier.sent.clear()

    request = coordinator.create_request(
        uuid4(), [RequestLineSpec(material.id, 4)], depot_id=depot_id
    )
    coordinator.validate_request(request.id, uuid4(), Decision.APPROVE)
    coordinator.process_approved_request(request.id, uuid4())

    assert [kind for kind, _ in notifier.sent] == [
        "request_created",
        "request_validated",
        "delivery_note_created",
    ]
    assert notifier.of_type("request_validated")[0]["decision"] == "approve"


def test_below_minimum_event_after_distribution(coordinator, make_material, notifier, actor_id):
    material = make_material(10, minimum=4)
    notifier.sent.clear()

    coordinator.remove_stock(material.id, 6, actor_id)

    (payload,) = notifier.of_type("stock_below_minimum")
    assert payload["code"] == material.code
    assert payload["stock_on_hand"] == 4


def test_rolled_back_operation_sends_nothing(coordinator, make_material, notifier, depot_id):
    plenty, scarce = make_material(10, minimum=9), make_material(1)
    notifier.sent.clear()

    with pytest.raises(InsufficientStockError):
        coordinator.create_direct_distribution(
            issuer_id=uuid4(),
            depot_id=depot_id,
            lines=[DeliveryLineSpec(plenty.id, 5), DeliveryLineSpec(scarce.id, 2)],
            recipient_id=uuid4(),
        )

    assert notifier.sent == []


def test_failing_notifier_does_not_undo_commit(
    coordinator, make_material, notifier, actor_id, captured_logs
):
    material = make_material(10, minimum=8)
    notifier.fail = True

    entry = coordinator.remove_stock(material.id, 5, actor_id)

    assert entry.stock_after == 5
    assert coordinator.get_material(material.id).stock_on_hand == 5
    failures = [r for r in captured_logs() if r["message"] == "notification_dispatch_failed"]
    assert failures and failures[0]["event_type"] == "stock_below_minimum"
