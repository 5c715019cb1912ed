# inventory/views.py
from flask import Blueprint, current_app, request
from flask_login import login_required, current_user
from typing import Optional

from inventory.lifecycle import (
    CREATION_STATUSES,
    apply_status,
    end_use,
    restore_from_disposal,
    start_use,
    validate_status,
)
from utilities.campus_helpers import (
    campus_query,
    get_scoped_or_404,
    parse_campus_filter,
    resolve_target_campus,
)
from utilities.database import (
    db,
    Campus,
    Category,
    Sector,
    InventoryItem,
    User,
    ITEM_STATUS_LABELS,
    log_audit,
)
from utilities.errors import ConflictError, InventoryError, NotFoundError
from utilities.http import get_payload, ok, parse_bool, parse_id_list, parse_optional_int
from utilities.text import clean
from middleware.campus_middleware import campus_required

inventory_bp = Blueprint("inventory", __name__)

SEARCH_LIMIT = 20
EDITABLE_TEXT_FIELDS = ("sala", "brand", "serial", "patrimony", "obs")


# --- Helpers ---
def _get_item_or_404(item_id: int) -> InventoryItem:
    return get_scoped_or_404(InventoryItem, item_id, code="item_not_found")


def _campus_row(model, raw_id, campus: Campus, field: str):
    """Category or sector chosen for an item; it must belong to the item's campus."""
    row_id = parse_optional_int(raw_id, field=field)
    if row_id is None:
        return None
    row = db.session.get(model, row_id)
    if row is None:
        raise NotFoundError(f"{model.__name__} {row_id} not found")
    if row.campus_id != campus.id:
        raise InventoryError(
            f"{model.__name__} {row.name} belongs to another campus",
            code="campus_mismatch",
        )
    return row


def _apply_responsible(item: InventoryItem, data: dict):
    if "responsible_id" in data:
        responsible_id = parse_optional_int(data.get("responsible_id"), field="responsible_id")
        if responsible_id is not None:
            user = db.session.get(User, responsible_id)
            if user is None:
                raise NotFoundError(f"User {responsible_id} not found")
            item.responsible_id = user.id
            item.responsible_name = None
        else:
            item.responsible_id = None
    if "responsible" in data or "responsible_name" in data:
        name = clean(data.get("responsible_name", data.get("responsible")))
        item.responsible_name = name
        if name:
            item.responsible_id = None


def _search_filter(query, q: str):
    like = f"%{q}%"
    return query.filter(
        db.or_(
            InventoryItem.serial.ilike(like),
            InventoryItem.patrimony.ilike(like),
            InventoryItem.brand.ilike(like),
            InventoryItem.sala.ilike(like),
            InventoryItem.obs.ilike(like),
            InventoryItem.responsible_name.ilike(like),
        )
    )


def _status_details(item: InventoryItem, old_status: str) -> str:
    return (
        f"Status of {item.serial}: {ITEM_STATUS_LABELS.get(old_status, old_status)} -> "
        f"{ITEM_STATUS_LABELS.get(item.status, item.status)}"
    )


# --- Listing ---
@inventory_bp.get("/items")
@login_required
@campus_required
def list_items():
    query = campus_query(InventoryItem, parse_campus_filter(request.args.get("campus_id")))
    query = query.filter(InventoryItem.status != "descarte")

    q = (request.args.get("q") or "").strip()
    if q:
        query = _search_filter(query, q)

    status = (request.args.get("status") or "").strip()
    if status:
        status = validate_status(status)
        if status == "descarte":
            raise InventoryError("Disposed items are listed at /inventory/disposal", code="invalid_status")
        query = query.filter(InventoryItem.status == status)

    category_id = parse_optional_int(request.args.get("category_id"), field="category_id")
    if category_id is not None:
        query = query.filter(InventoryItem.category_id == category_id)

    sector_id = parse_optional_int(request.args.get("sector_id"), field="sector_id")
    if sector_id is not None:
        query = query.filter(InventoryItem.sector_id == sector_id)

    fixed = request.args.get("fixed")
    if fixed not in (None, ""):
        query = query.filter(InventoryItem.is_fixed.is_(parse_bool(fixed, field="fixed")))

    items = query.order_by(InventoryItem.id.desc()).all()
    return ok(items=[item.to_dict() for item in items], count=len(items))


@inventory_bp.get("/disposal")
@login_required
@campus_required
def list_disposal():
    query = campus_query(InventoryItem, parse_campus_filter(request.args.get("campus_id")))
    items = (
        query.filter(InventoryItem.status == "descarte")
        .order_by(InventoryItem.updated_at.desc())
        .all()
    )
    return ok(items=[item.to_dict() for item in items], count=len(items))


@inventory_bp.get("/search")
@login_required
@campus_required
def search_items():
    """Global search across the caller's scope, disposal included."""
    q = (request.args.get("q") or "").strip()
    if not q:
        return ok(items=[])
    items = (
        _search_filter(campus_query(InventoryItem), q)
        .order_by(InventoryItem.id.desc())
        .limit(SEARCH_LIMIT)
        .all()
    )
    return ok(items=[item.to_dict() for item in items])


# --- Single item ---
@inventory_bp.get("/items/<int:item_id>")
@login_required
@campus_required
def get_item(item_id: int):
    item = _get_item_or_404(item_id)
    data = item.to_dict()
    data["loans"] = [loan.to_dict() for loan in sorted(item.loans, key=lambda l: l.loan_date, reverse=True)]
    return ok(item=data)


@inventory_bp.post("/items")
@login_required
@campus_required
def create_item():
    data = get_payload()
    campus = resolve_target_campus(data.get("campus_id"))
    if campus is None:
        raise InventoryError("campus_id is required", code="invalid_field")

    serial = clean(data.get("serial"))
    if not serial:
        raise InventoryError("Serial number is required", code="invalid_field")

    status = validate_status(data.get("status") or "funcionando")
    if status not in CREATION_STATUSES:
        raise InventoryError(
            f"Items cannot be created with status {ITEM_STATUS_LABELS[status]}",
            code="invalid_status",
        )

    category = _campus_row(Category, data.get("category_id"), campus, "category_id")
    sector = _campus_row(Sector, data.get("sector_id"), campus, "sector_id")

    item = InventoryItem(
        campus_id=campus.id,
        category_id=category.id if category else None,
        sector_id=sector.id if sector else None,
        sala=clean(data.get("sala")),
        brand=clean(data.get("brand")),
        serial=serial,
        patrimony=clean(data.get("patrimony")),
        status=status,
        obs=clean(data.get("obs")),
        is_fixed=parse_bool(data.get("is_fixed", False), field="is_fixed"),
    )
    _apply_responsible(item, data)
    db.session.add(item)
    db.session.flush()

    log_audit("create", user=current_user, item=item, details=f"Created item {serial}")
    db.session.commit()
    current_app.logger.info("Item %s created in campus %s by %s", item.id, campus.name, current_user.username)
    return ok(201, item=item.to_dict())


@inventory_bp.route("/items/<int:item_id>", methods=["PATCH", "PUT"])
@login_required
@campus_required
def update_item(item_id: int):
    item = _get_item_or_404(item_id)
    data = get_payload()
    changes = []

    if "campus_id" in data and current_user.is_admin:
        campus = resolve_target_campus(data.get("campus_id"))
        if campus is not None and campus.id != item.campus_id:
            # The open loan or use stays with the current campus
            if item.is_busy:
                raise ConflictError("Loaned or in-use items cannot change campus", code="item_busy")
            changes.append(f"campus: {item.campus.name} -> {campus.name}")
            item.campus_id = campus.id
            item.campus = campus
            # Catalogue rows of the old campus no longer apply
            if "category_id" not in data:
                item.category_id = None
            if "sector_id" not in data:
                item.sector_id = None
    campus = item.campus

    for field in EDITABLE_TEXT_FIELDS:
        if field in data:
            value = clean(data.get(field))
            if field == "serial" and not value:
                raise InventoryError("Serial number is required", code="invalid_field")
            if value != getattr(item, field):
                changes.append(f"{field}: {getattr(item, field)} -> {value}")
                setattr(item, field, value)

    if "category_id" in data:
        category = _campus_row(Category, data.get("category_id"), campus, "category_id")
        item.category_id = category.id if category else None
    if "sector_id" in data:
        sector = _campus_row(Sector, data.get("sector_id"), campus, "sector_id")
        item.sector_id = sector.id if sector else None
    if "is_fixed" in data:
        is_fixed = parse_bool(data.get("is_fixed"), field="is_fixed")
        if is_fixed and not item.is_fixed and item.is_busy:
            raise ConflictError("Loaned or in-use items cannot be fixed in place", code="item_busy")
        item.is_fixed = is_fixed
    _apply_responsible(item, data)

    if "status" in data:
        if item.is_busy and validate_status(data["status"]) != item.status:
            raise ConflictError(
                "Status of a loaned or in-use item changes only through its loan or use",
                code="item_busy",
            )
        old_status = apply_status(item, data["status"])
        if old_status is not None:
            changes.append(_status_details(item, old_status))

    log_audit(
        "update",
        user=current_user,
        item=item,
        details=f"Updated item {item.serial}" + (": " + "; ".join(changes) if changes else ""),
    )
    db.session.commit()
    return ok(item=item.to_dict())


@inventory_bp.post("/items/<int:item_id>/status")
@login_required
@campus_required
def change_status(item_id: int):
    item = _get_item_or_404(item_id)
    old_status = apply_status(item, get_payload().get("status"))
    if old_status is None:
        return ok(item=item.to_dict(), changed=False)

    log_audit("update", user=current_user, item=item, details=_status_details(item, old_status))
    db.session.commit()
    return ok(item=item.to_dict(), changed=True)


@inventory_bp.post("/items/<int:item_id>/restore")
@login_required
@campus_required
def restore_item(item_id: int):
    item = _get_item_or_404(item_id)
    status = restore_from_disposal(item)
    log_audit(
        "update",
        user=current_user,
        item=item,
        details=f"Restored {item.serial} from disposal to {ITEM_STATUS_LABELS[status]}",
    )
    db.session.commit()
    return ok(item=item.to_dict())


@inventory_bp.delete("/items/<int:item_id>")
@login_required
@campus_required
def delete_item(item_id: int):
    item = _get_item_or_404(item_id)
    if item.is_busy:
        raise ConflictError("Loaned or in-use items cannot be deleted", code="item_busy")

    if item.status != "descarte":
        old_status = apply_status(item, "descarte")
        log_audit("delete", user=current_user, item=item, details=_status_details(item, old_status))
        db.session.commit()
        return ok(item=item.to_dict(), permanent=False)

    # Snapshot before the row disappears; loans keep their own copy
    log_audit("delete", user=current_user, item=item, details=f"Permanently deleted item {item.serial}")
    db.session.delete(item)
    db.session.commit()
    current_app.logger.info("Item %s permanently deleted by %s", item_id, current_user.username)
    return ok(deleted=item_id, permanent=True)


@inventory_bp.post("/items/<int:item_id>/fixed")
@login_required
@campus_required
def set_fixed(item_id: int):
    item = _get_item_or_404(item_id)
    is_fixed = parse_bool(get_payload().get("is_fixed"), field="is_fixed")
    if is_fixed and item.is_busy:
        raise ConflictError("Loaned or in-use items cannot be fixed in place", code="item_busy")
    if is_fixed != item.is_fixed:
        item.is_fixed = is_fixed
        log_audit(
            "update",
            user=current_user,
            item=item,
            details=f"{item.serial} marked as {'fixed' if is_fixed else 'movable'}",
        )
        db.session.commit()
    return ok(item=item.to_dict())


@inventory_bp.post("/items/<int:item_id>/use")
@login_required
@campus_required
def use_item(item_id: int):
    item = _get_item_or_404(item_id)
    data = get_payload()
    start_use(item)
    if data.get("responsible_id") not in (None, "") or clean(data.get("responsible_name")):
        _apply_responsible(item, data)
    log_audit("loan", user=current_user, item=item, details=f"{item.serial} put in local use")
    db.session.commit()
    return ok(item=item.to_dict())


@inventory_bp.post("/items/<int:item_id>/release")
@login_required
@campus_required
def release_item(item_id: int):
    item = _get_item_or_404(item_id)
    end_use(item)
    log_audit("return", user=current_user, item=item, details=f"{item.serial} back from local use")
    db.session.commit()
    return ok(item=item.to_dict())


# --- Bulk Operations ---
@inventory_bp.post("/bulk/status")
@login_required
@campus_required
def bulk_update_status():
    """Change the status of many items, applying the same rules to each one."""
    data = get_payload()
    item_ids = parse_id_list(data.get("item_ids"))
    if not item_ids:
        raise InventoryError("No items selected", code="invalid_field")
    new_status = validate_status(data.get("status"))

    updated = []
    errors = {}
    for item_id in item_ids:
        try:
            item = _get_item_or_404(item_id)
            old_status = apply_status(item, new_status)
        except InventoryError as exc:
            errors[str(item_id)] = {"error": exc.message, "code": exc.code}
            continue
        if old_status is not None:
            log_audit("update", user=current_user, item=item, details=_status_details(item, old_status))
            updated.append(item_id)

    db.session.commit()
    message = f"Updated {len(updated)} item(s)"
    if errors:
        message += f". {len(errors)} item(s) skipped"
    return ok(message=message, updated=updated, errors=errors)
