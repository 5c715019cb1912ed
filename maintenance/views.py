# maintenance/views.py
from flask import Blueprint, current_app
from flask_login import login_required, current_user

from maintenance import repair
from maintenance.sync import check_item_ids, scope_state
from utilities.database import utc_now
from utilities.errors import InventoryError
from utilities.http import get_payload, ok, parse_id_list
from middleware.campus_middleware import admin_required, campus_required

maintenance_bp = Blueprint("maintenance", __name__)

SYNC_ACTIONS = ("sync-check", "clear-localstorage")


# --- Cache reconciliation ---
@maintenance_bp.post("/admin/sync-storage")
@login_required
@campus_required
def sync_storage():
    data = get_payload()
    action = (data.get("action") or "").strip()
    if action not in SYNC_ACTIONS:
        raise InventoryError(f"Unknown action: {action or '(empty)'}", code="unknown_action")

    state = scope_state()
    if action == "clear-localstorage":
        return ok(action="CLEAR_LOCALSTORAGE", purge="ALL", state=state, timestamp=utc_now().isoformat())

    raw_ids = data.get("item_ids")
    if raw_ids is None and data.get("item_id") is not None:
        raw_ids = [data["item_id"]]
    ids = parse_id_list(raw_ids)
    result = check_item_ids(ids)
    if result["purge"]:
        current_app.logger.info(
            "Client of %s holds %d stale item id(s)", current_user.username, len(result["purge"])
        )
    return ok(action="SYNC_CHECK", state=state, **result)


@maintenance_bp.get("/sync/state")
@login_required
@campus_required
def sync_state():
    return ok(**scope_state())


# --- Diagnostics ---
@maintenance_bp.get("/debug/campus-data")
@login_required
@admin_required
def campus_data():
    return ok(**repair.campus_report())


@maintenance_bp.get("/debug/database-rules")
@login_required
@admin_required
def database_rules():
    return ok(**repair.database_rules())


# --- Repairs ---
@maintenance_bp.post("/debug/fix-constraints")
@login_required
@admin_required
def fix_constraints():
    report = repair.ensure_unique_constraints()
    current_app.logger.warning("Unique constraints checked by %s: ok=%s", current_user.username, report["ok"])
    return ok(**report)


@maintenance_bp.post("/admin/repair-campuses")
@login_required
@admin_required
def repair_campuses():
    report = repair.run_repairs()
    current_app.logger.warning("Campus repair run by %s: %s", current_user.username, report)
    return ok(report=report)
