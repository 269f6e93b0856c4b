"""Error taxonomy: machine-readable codes and structured fields."""

from depot_kernel.exceptions import (
    ConflictError,
    DepotKernelError,
    InsufficientStockError,
    InvalidStateError,
    InvalidTransitionError,
    MaterialNotFoundError,
    MaterialReferencedError,
    NotFoundError,
    StorageError,
    ValidationError,
)


def test_every_error_is_a_kernel_error():
    for cls in (
        ValidationError,
        NotFoundError,
        InvalidStateError,
        InsufficientStockError,
        ConflictError,
        StorageError,
    ):
        assert issubclass(cls, DepotKernelError)


def test_insufficient_stock_to_dict():
    err = InsufficientStockError("m-1", "GLV-01", available=3, requested=5, unit="pair")
    payload = err.to_dict()
    assert payload["code"] == "INSUFFICIENT_STOCK"
    assert payload["material_code"] == "GLV-01"
    assert payload["available"] == 3
    assert payload["requested"] == 5


def test_transition_error_is_state_error():
    err = InvalidTransitionError("Request", "r-1", "pending", "delivered")
    assert isinstance(err, InvalidStateError)
    assert err.from_state == "pending"
    assert err.to_state == "delivered"
    assert "delivered" in str(err)


def test_referenced_material_is_state_error():
    err = MaterialReferencedError("m-1", movement_count=4)
    assert isinstance(err, InvalidStateError)
    assert err.movement_count == 4


def test_not_found_carries_entity():
    err = MaterialNotFoundError("m-9")
    assert isinstance(err, NotFoundError)
    assert err.entity_type == "Material"
    assert err.to_dict()["code"] == "MATERIAL_NOT_FOUND"


def test_storage_error_hides_engine_text():
    err = StorageError("add_stock")
    assert str(err) == "Storage failure during add_stock"
