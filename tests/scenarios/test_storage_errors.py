"""Storage failures surface as kernel errors, chained to their cause."""

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from depot_kernel.db.engine import translate_storage_error
from depot_kernel.exceptions import ConflictError, StorageError
from depot_kernel.models.material import Material


class _Orig(Exception):
    def __init__(self, message, pgcode=None):
        super().__init__(message)
        self.pgcode = pgcode


@pytest.mark.parametrize(
    "exc",
    [
        StaleDataError("version mismatch"),
        OperationalError("UPDATE", {}, _Orig("could not serialize access", "40001")),
        OperationalError("UPDATE", {}, _Orig("deadlock detected", "40P01")),
        OperationalError("BEGIN", {}, _Orig("database is locked")),
        IntegrityError("INSERT", {}, _Orig("duplicate key value")),
    ],
)
def test_conflicts_translate_to_conflict_error(exc):
    assert isinstance(translate_storage_error(exc, "op"), ConflictError)


def test_other_failures_translate_to_storage_error():
    err = translate_storage_error(
        OperationalError("SELECT", {}, _Orig("server closed the connection")), "list_materials"
    )
    assert isinstance(err, StorageError)
    assert "server closed" not in str(err)
    assert err.operation == "list_materials"


def test_stale_material_write_is_a_conflict(make_material, session_factory):
    material = make_material(5)

    with session_factory() as reader:
        stale_row = reader.get(Material, material.id)
        reader.expunge(stale_row)

    with session_factory() as other:
        other.get(Material, material.id).description = "relabelled"
        other.commit()

    with session_factory() as writer:
        writer.add(stale_row)
        stale_row.description = "old copy"
        with pytest.raises(StaleDataError) as exc_info:
            writer.flush()
        writer.rollback()

    assert isinstance(translate_storage_error(exc_info.value, "update"), ConflictError)


def test_unit_of_work_translates_and_chains(coordinator, make_material, actor_id):
    make_material(code="DUP-1")
    with pytest.raises(ConflictError) as exc_info:
        with coordinator.unit_of_work("insert_duplicate") as uow:
            uow.session.add(
                Material(code="DUP-1", name="dup", unit="u", created_by_id=actor_id)
            )
            uow.session.flush()
    assert isinstance(exc_info.value.__cause__, IntegrityError)
