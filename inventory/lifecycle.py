"""
Status lifecycle of inventory items.

Loans and local use lock an item: `emprestado` only ends through a loan
return, `emuso` only goes back to `funcionando`. Disposal (`descarte`)
remembers the status the item had so it can be restored.
"""

from typing import Optional

from utilities.database import InventoryItem, ITEM_STATUS_LABELS
from utilities.errors import ConflictError, InventoryError

ITEM_STATUSES = list(ITEM_STATUS_LABELS)
AVAILABLE_STATUSES = ("funcionando", "backup")
# Statuses an item may be created with
CREATION_STATUSES = ("funcionando", "defeito", "manutencao", "backup")


def validate_status(status: Optional[str]) -> str:
    status = (status or "").strip().lower()
    if status not in ITEM_STATUSES:
        raise InventoryError(f"Invalid status: {status or '(empty)'}", code="invalid_status")
    return status


def check_status_change(item: InventoryItem, new_status: str):
    """Raise when `item` may not move to `new_status` through a plain status edit."""
    new_status = validate_status(new_status)
    if new_status == item.status:
        return
    if new_status == "emprestado":
        raise ConflictError("Items are loaned through the loans screen", code="use_loan_flow")
    if item.status == "emprestado":
        raise ConflictError("Item is on loan; register the return first", code="item_on_loan")
    if item.status == "emuso" and new_status != "funcionando":
        raise ConflictError("An item in use can only go back to Funcionando", code="item_in_use")


def apply_status(item: InventoryItem, new_status: str) -> Optional[str]:
    """
    Move `item` to `new_status` after checking the rules.

    Returns:
        The previous status, or None when nothing changed
    """
    check_status_change(item, new_status)
    new_status = validate_status(new_status)
    if new_status == item.status:
        return None

    old_status = item.status
    if new_status == "descarte":
        item.previous_status = old_status
    elif old_status == "descarte":
        item.previous_status = None
    item.status = new_status
    return old_status


def restore_from_disposal(item: InventoryItem) -> str:
    if item.status != "descarte":
        raise ConflictError("Only items in disposal can be restored", code="not_in_disposal")
    target = item.previous_status
    # Locked statuses are not restored: the loan or use ended while disposed
    if target not in ITEM_STATUSES or target in ("descarte", "emprestado", "emuso"):
        target = "funcionando"
    item.status = target
    item.previous_status = None
    return target


def ensure_available(item: InventoryItem, action: str = "loaned"):
    """Only working or backup items that are not fixed may be loaned or put in use."""
    if item.is_fixed:
        raise ConflictError(
            f"Item {item.serial} is fixed in place and cannot be {action}",
            code="item_fixed",
            payload={"item_id": item.id},
        )
    if item.status not in AVAILABLE_STATUSES:
        label = ITEM_STATUS_LABELS.get(item.status, item.status)
        raise ConflictError(
            f"Item {item.serial} is {label} and cannot be {action}",
            code="item_unavailable",
            payload={"item_id": item.id},
        )


def start_use(item: InventoryItem):
    ensure_available(item, "put in use")
    item.status = "emuso"


def end_use(item: InventoryItem):
    if item.status != "emuso":
        raise ConflictError("Item is not in use", code="not_in_use")
    item.status = "funcionando"
