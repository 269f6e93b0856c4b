"""
Hypothesis-based fuzzing of the stock invariants.

Properties checked:
- compute_balance_change never yields a negative balance and always keeps
  stock_after == stock_before + delta
- any sequence of receipts, distributions and adjustments applied through
  the coordinator leaves stock >= 0, a ledger that chains entry to entry,
  and a latest entry equal to stock_on_hand
"""

from uuid import uuid4

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from depot_kernel.domain.movement import (
    Adjustment,
    Distribution,
    Receipt,
    compute_balance_change,
)
from depot_kernel.exceptions import InsufficientStockError, ValidationError

movement_kinds = st.one_of(
    st.builds(Receipt, st.integers(min_value=1, max_value=500)),
    st.builds(Distribution, st.integers(min_value=1, max_value=500)),
    st.builds(Adjustment, st.integers(min_value=0, max_value=500)),
)


class TestBalanceChangeProperties:

    @given(kind=movement_kinds, stock=st.integers(min_value=0, max_value=1000))
    @settings(max_examples=300)
    def test_change_is_consistent_or_refused(self, kind, stock):
        try:
            change = compute_balance_change(kind, stock, material_id="m", material_code="M")
        except InsufficientStockError as exc:
            assert isinstance(kind, Distribution)
            assert exc.requested > exc.available == stock
            return
        except ValidationError:
            assert isinstance(kind, Adjustment) and kind.new_balance == stock
            return

        assert change.stock_before == stock
        assert change.stock_after == stock + change.delta
        assert change.stock_after >= 0
        assert change.delta != 0

    @given(quantity=st.integers(max_value=0))
    def test_non_positive_quantities_always_refused(self, quantity):
        with pytest.raises(ValidationError):
            compute_balance_change(
                Distribution(quantity), 100, material_id="m", material_code="M"
            )


class TestLedgerProperties:

    @given(operations=st.lists(movement_kinds, min_size=1, max_size=12))
    @settings(
        max_examples=25,
        deadline=None,
        suppress_health_check=[HealthCheck.too_slow, HealthCheck.function_scoped_fixture],
    )
    def test_random_operations_keep_ledger_consistent(self, operations, coordinator, actor_id):
        material = coordinator.register_material(
            code=f"FZ-{uuid4().hex[:10]}", name="Fuzz", unit="u", actor_id=actor_id
        )

        for kind in operations:
            try:
                if isinstance(kind, Receipt):
                    coordinator.add_stock(material.id, kind.quantity, actor_id)
                elif isinstance(kind, Distribution):
                    coordinator.remove_stock(material.id, kind.quantity, actor_id)
                else:
                    coordinator.adjust_stock(material.id, kind.new_balance, actor_id)
            except (InsufficientStockError, ValidationError):
                pass

        stock = coordinator.get_material(material.id).stock_on_hand
        assert stock >= 0

        history = list(reversed(coordinator.material_history(material.id, limit=100)))
        previous_after = 0
        for entry in history:
            assert entry.stock_before == previous_after
            assert entry.stock_after == entry.stock_before + entry.quantity
            assert entry.stock_after >= 0
            previous_after = entry.stock_after
        assert previous_after == stock
        assert coordinator.verify_ledger() == []
