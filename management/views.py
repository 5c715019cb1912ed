# management/views.py
from flask import Blueprint, current_app, request
from flask_login import login_required, current_user
from typing import Optional, Type

from utilities.campus_helpers import (
    campus_query,
    commit_or_conflict,
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
    Loan,
    SupportRequest,
    User,
    log_audit,
)
from utilities.errors import ConflictError, DuplicateNameError, InventoryError, NotFoundError
from utilities.http import get_payload, ok
from utilities.text import clean, normalize_text
from middleware.campus_middleware import admin_required, campus_required

management_bp = Blueprint("management", __name__)

MAX_NAME_LENGTH = 120

# --- Helpers ---
def _require_name(raw) -> str:
    name = clean(raw)
    if not name:
        raise InventoryError("Name is required.", code="invalid_field")
    if len(name) > MAX_NAME_LENGTH:
        raise InventoryError(f"Name must have at most {MAX_NAME_LENGTH} characters.", code="invalid_field")
    return name


def _campus_name_taken(name: str, exclude_id: Optional[int] = None) -> Optional[Campus]:
    wanted = normalize_text(name)
    for campus in Campus.query.all():
        if campus.id != exclude_id and normalize_text(campus.name) == wanted:
            return campus
    return None


def _get_campus_or_404(campus_id: int) -> Campus:
    campus = db.session.get(Campus, campus_id)
    if campus is None:
        raise NotFoundError(f"Campus {campus_id} not found", code="campus_not_found")
    return campus


def _ensure_unique_in_campus(model: Type[db.Model], name: str, campus_id: int, exclude_id: Optional[int] = None):
    """Names repeat freely across campuses but never inside one campus, accents and case ignored."""
    wanted = normalize_text(name)
    for row in model.query.filter(model.campus_id == campus_id):
        if row.id != exclude_id and normalize_text(row.name) == wanted:
            label = "category" if model is Category else "sector"
            raise DuplicateNameError(f"A {label} named '{row.name}' already exists in this campus.")


# --- Campuses ---
@management_bp.get("/campuses")
@login_required
def list_campuses():
    campuses = Campus.query.order_by(Campus.name.asc()).all()
    return ok(campuses=[c.to_dict() for c in campuses])


@management_bp.post("/campuses")
@login_required
@admin_required
def create_campus():
    name = _require_name(get_payload().get("name"))
    existing = _campus_name_taken(name)
    if existing is not None:
        raise DuplicateNameError(f"Campus '{existing.name}' already exists.")

    campus = Campus(name=name)
    db.session.add(campus)
    db.session.flush()
    log_audit("create", user=current_user, campus=campus, details=f"Created campus {name}")
    commit_or_conflict(f"Campus '{name}' already exists.")
    current_app.logger.info("Campus %s created by %s", name, current_user.username)
    return ok(201, campus=campus.to_dict())


@management_bp.route("/campuses/<int:campus_id>", methods=["PATCH", "PUT"])
@login_required
@admin_required
def rename_campus(campus_id: int):
    campus = _get_campus_or_404(campus_id)
    if campus.is_admin_campus:
        raise ConflictError("The Administrador campus cannot be renamed.")

    name = _require_name(get_payload().get("name"))
    existing = _campus_name_taken(name, exclude_id=campus.id)
    if existing is not None:
        raise DuplicateNameError(f"Campus '{existing.name}' already exists.")

    old_name = campus.name
    campus.name = name
    log_audit("update", user=current_user, campus=campus, details=f"Renamed campus {old_name} to {name}")
    commit_or_conflict(f"Campus '{name}' already exists.")
    return ok(campus=campus.to_dict())


@management_bp.delete("/campuses/<int:campus_id>")
@login_required
@admin_required
def delete_campus(campus_id: int):
    campus = _get_campus_or_404(campus_id)
    if campus.is_admin_campus:
        raise ConflictError("The Administrador campus cannot be deleted.")

    item_count = InventoryItem.query.filter_by(campus_id=campus.id).count()
    if item_count:
        raise ConflictError(
            f"Campus {campus.name} still has {item_count} inventory item(s). Move or delete them first.",
            code="campus_has_items",
            payload={"count": item_count},
        )

    request_count = SupportRequest.query.filter_by(campus_id=campus.id).count()
    if request_count:
        raise ConflictError(
            f"Campus {campus.name} still has {request_count} support request(s).",
            code="campus_has_requests",
            payload={"count": request_count},
        )

    # Returned loans count too: their history references the campus
    loan_count = Loan.query.filter_by(campus_id=campus.id).count()
    if loan_count:
        raise ConflictError(
            f"Campus {campus.name} still has {loan_count} loan record(s).",
            code="campus_has_loans",
            payload={"count": loan_count},
        )

    user_count = User.query.filter_by(campus_id=campus.id).count()
    if user_count:
        raise ConflictError(
            f"Campus {campus.name} still has {user_count} technician(s). Reassign or remove them first.",
            code="campus_has_users",
            payload={"count": user_count},
        )

    name = campus.name
    # Categories and sectors go with the campus (delete-orphan cascade)
    db.session.delete(campus)
    log_audit("delete", user=current_user, details=f"Deleted campus {name}")
    db.session.commit()
    current_app.logger.info("Campus %s deleted by %s", name, current_user.username)
    return ok(deleted=campus_id)


# --- Categories and sectors share the same rules ---
def _list_named(model: Type[db.Model], key: str):
    campus_filter = parse_campus_filter(request.args.get("campus_id"))
    rows = campus_query(model, campus_filter).order_by(model.name.asc()).all()
    return ok(**{key: [row.to_dict() for row in rows]})


def _create_named(model: Type[db.Model], key: str, label: str):
    data = get_payload()
    name = _require_name(data.get("name"))
    campus = resolve_target_campus(data.get("campus_id"), default_to_admin=True)
    _ensure_unique_in_campus(model, name, campus.id)

    row = model(name=name, campus_id=campus.id)
    db.session.add(row)
    db.session.flush()
    log_audit("create", user=current_user, campus=campus, details=f"Created {label} {name}")
    commit_or_conflict(f"A {label} named '{name}' already exists in this campus.")
    return ok(201, **{key: row.to_dict()})


def _rename_named(model: Type[db.Model], key: str, label: str, row_id: int):
    row = get_scoped_or_404(model, row_id)
    name = _require_name(get_payload().get("name"))
    _ensure_unique_in_campus(model, name, row.campus_id, exclude_id=row.id)

    old_name = row.name
    row.name = name
    log_audit("update", user=current_user, campus=row.campus_id, details=f"Renamed {label} {old_name} to {name}")
    commit_or_conflict(f"A {label} named '{name}' already exists in this campus.")
    return ok(**{key: row.to_dict()})


def _delete_named(model: Type[db.Model], label: str, row_id: int, item_column):
    row = get_scoped_or_404(model, row_id)
    in_use = InventoryItem.query.filter(item_column == row.id).count()
    if in_use:
        raise ConflictError(
            f"The {label} {row.name} is used by {in_use} inventory item(s).",
            code=f"{label}_in_use",
            payload={"count": in_use},
        )
    name, campus_id = row.name, row.campus_id
    db.session.delete(row)
    log_audit("delete", user=current_user, campus=campus_id, details=f"Deleted {label} {name}")
    db.session.commit()
    return ok(deleted=row_id)


@management_bp.get("/categories")
@login_required
@campus_required
def list_categories():
    return _list_named(Category, "categories")


@management_bp.post("/categories")
@login_required
@campus_required
def create_category():
    return _create_named(Category, "category", "category")


@management_bp.route("/categories/<int:category_id>", methods=["PATCH", "PUT"])
@login_required
@campus_required
def rename_category(category_id: int):
    return _rename_named(Category, "category", "category", category_id)


@management_bp.delete("/categories/<int:category_id>")
@login_required
@campus_required
def delete_category(category_id: int):
    return _delete_named(Category, "category", category_id, InventoryItem.category_id)


@management_bp.get("/sectors")
@login_required
@campus_required
def list_sectors():
    return _list_named(Sector, "sectors")


@management_bp.post("/sectors")
@login_required
@campus_required
def create_sector():
    return _create_named(Sector, "sector", "sector")


@management_bp.route("/sectors/<int:sector_id>", methods=["PATCH", "PUT"])
@login_required
@campus_required
def rename_sector(sector_id: int):
    return _rename_named(Sector, "sector", "sector", sector_id)


@management_bp.delete("/sectors/<int:sector_id>")
@login_required
@campus_required
def delete_sector(sector_id: int):
    return _delete_named(Sector, "sector", sector_id, InventoryItem.sector_id)
