import pytest

from inventory.lifecycle import (
    apply_status,
    end_use,
    ensure_available,
    restore_from_disposal,
    start_use,
    validate_status,
)
from utilities.database import InventoryItem
from utilities.errors import ConflictError, InventoryError


def _item(status="funcionando", **fields):
    return InventoryItem(serial="SN", status=status, is_fixed=fields.pop("is_fixed", False), **fields)


def test_validate_status_normalizes_case():
    assert validate_status(" Defeito ") == "defeito"
    with pytest.raises(InventoryError):
        validate_status("")


def test_unchanged_status_reports_nothing():
    assert apply_status(_item("backup"), "backup") is None


def test_disposal_remembers_previous_status():
    item = _item("defeito")
    assert apply_status(item, "descarte") == "defeito"
    assert item.previous_status == "defeito"
    assert restore_from_disposal(item) == "defeito"
    assert item.status == "defeito"
    assert item.previous_status is None


@pytest.mark.parametrize("previous", [None, "emprestado", "emuso", "descarte"])
def test_restore_falls_back_to_working(previous):
    item = _item("descarte", previous_status=previous)
    assert restore_from_disposal(item) == "funcionando"


def test_leaving_disposal_by_status_edit_clears_previous():
    item = _item("descarte", previous_status="backup")
    apply_status(item, "manutencao")
    assert item.previous_status is None


def test_in_use_only_returns_to_working():
    item = _item("emuso")
    with pytest.raises(ConflictError) as excinfo:
        apply_status(item, "backup")
    assert excinfo.value.code == "item_in_use"
    assert apply_status(item, "funcionando") == "emuso"


def test_availability():
    ensure_available(_item("backup"))
    with pytest.raises(ConflictError) as excinfo:
        ensure_available(_item("manutencao"))
    assert excinfo.value.code == "item_unavailable"


def test_use_cycle():
    item = _item()
    start_use(item)
    assert item.status == "emuso"
    end_use(item)
    assert item.status == "funcionando"
    with pytest.raises(ConflictError):
        end_use(item)
