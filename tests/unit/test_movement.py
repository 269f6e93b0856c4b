"""Balance-change calculation for receipts, distributions and adjustments."""

import pytest

from depot_kernel.domain.movement import (
    Adjustment,
    Distribution,
    MovementType,
    Receipt,
    compute_balance_change,
    validate_movement,
)
from depot_kernel.exceptions import InsufficientStockError, ValidationError


def _change(kind, stock_before):
    return compute_balance_change(
        kind, stock_before, material_id="m-1", material_code="GLV-01", unit="pair"
    )


class TestReceipt:

    def test_receipt_adds_quantity(self):
        change = _change(Receipt(30), 10)
        assert change.movement_type is MovementType.IN
        assert change.delta == 30
        assert (change.stock_before, change.stock_after) == (10, 40)

    @pytest.mark.parametrize("quantity", [0, -5])
    def test_non_positive_receipt_rejected(self, quantity):
        with pytest.raises(ValidationError) as exc_info:
            _change(Receipt(quantity), 10)
        assert exc_info.value.field == "quantity"

    def test_bool_is_not_a_quantity(self):
        with pytest.raises(ValidationError):
            validate_movement(Receipt(True))


class TestDistribution:

    def test_distribution_subtracts_quantity(self):
        change = _change(Distribution(4), 10)
        assert change.movement_type is MovementType.OUT
        assert change.delta == -4
        assert change.stock_after == 6

    def test_distribution_of_entire_balance_reaches_zero(self):
        assert _change(Distribution(10), 10).stock_after == 0

    def test_distribution_above_balance_names_material_and_quantities(self):
        with pytest.raises(InsufficientStockError) as exc_info:
            _change(Distribution(11), 10)
        err = exc_info.value
        assert err.material_code == "GLV-01"
        assert err.available == 10
        assert err.requested == 11
        assert "GLV-01" in str(err)
        assert "available 10 pair" in str(err)

    def test_distribution_from_empty_stock(self):
        with pytest.raises(InsufficientStockError):
            _change(Distribution(1), 0)


class TestAdjustment:

    def test_adjustment_down_is_negative_delta(self):
        change = _change(Adjustment(7), 10)
        assert change.movement_type is MovementType.ADJUSTMENT
        assert change.delta == -3
        assert change.stock_after == 7

    def test_adjustment_up_is_positive_delta(self):
        assert _change(Adjustment(25), 10).delta == 15

    def test_adjustment_to_zero_allowed(self):
        assert _change(Adjustment(0), 10).stock_after == 0

    def test_adjustment_to_current_balance_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            _change(Adjustment(10), 10)
        assert exc_info.value.field == "new_balance"

    def test_negative_target_rejected(self):
        with pytest.raises(ValidationError):
            _change(Adjustment(-1), 10)


def test_unknown_kind_rejected():
    with pytest.raises(ValidationError):
        validate_movement("receipt")
