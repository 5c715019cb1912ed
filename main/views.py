from flask import Blueprint, request
from flask_login import login_required
from datetime import timedelta
from sqlalchemy import func

from utilities.campus_helpers import campus_query, parse_campus_filter
from utilities.database import (
    Category,
    InventoryItem,
    Loan,
    SupportRequest,
    AuditLogEntry,
    ITEM_STATUS_LABELS,
    AUDIT_ACTIONS,
    utc_now,
)
from utilities.errors import InventoryError
from utilities.http import ok, parse_optional_int
from middleware.campus_middleware import campus_required

main_bp = Blueprint("main", __name__)

AUDIT_LOG_DEFAULT_LIMIT = 200
AUDIT_LOG_MAX_LIMIT = 1000


@main_bp.get("/health")
def health():
    return {"ok": True}, 200


@main_bp.route("/", methods=["GET"])
@login_required
@campus_required
def home():
    campus_filter = parse_campus_filter(request.args.get("campus_id"))
    today = utc_now()
    next_week = today + timedelta(days=7)

    # Item stats
    status_rows = (
        campus_query(InventoryItem, campus_filter)
        .with_entities(InventoryItem.status, func.count(InventoryItem.id))
        .group_by(InventoryItem.status)
        .all()
    )
    counts = {status: 0 for status in ITEM_STATUS_LABELS}
    counts.update({status: count for status, count in status_rows})
    # Disposed items are out of the active inventory
    active_total = sum(count for status, count in counts.items() if status != "descarte")
    by_status = [
        {
            "status": status,
            "label": label,
            "count": counts[status],
            "percentage": round(counts[status] * 100.0 / active_total, 1) if active_total and status != "descarte" else 0.0,
        }
        for status, label in ITEM_STATUS_LABELS.items()
    ]

    category_rows = (
        campus_query(InventoryItem, campus_filter)
        .filter(InventoryItem.status != "descarte")
        .outerjoin(Category, InventoryItem.category_id == Category.id)
        .with_entities(Category.name, func.count(InventoryItem.id))
        .group_by(Category.name)
        .all()
    )
    by_category = sorted(
        ({"category": name or "Sem categoria", "count": count} for name, count in category_rows),
        key=lambda row: (-row["count"], row["category"]),
    )

    fixed_total = (
        campus_query(InventoryItem, campus_filter)
        .filter(InventoryItem.is_fixed.is_(True), InventoryItem.status != "descarte")
        .count()
    )

    # Loan stats
    open_loans = campus_query(Loan, campus_filter).filter(Loan.status == "loaned")
    overdue_loans = open_loans.filter(Loan.expected_return_date < today)
    upcoming_returns = (
        open_loans.filter(Loan.expected_return_date >= today, Loan.expected_return_date <= next_week)
        .order_by(Loan.expected_return_date.asc())
        .all()
    )

    # Support stats
    open_requests = (
        campus_query(SupportRequest, campus_filter)
        .filter(SupportRequest.status.in_(["aberto", "em-andamento"]))
        .count()
    )

    return ok(
        total_items=active_total,
        disposed_items=counts["descarte"],
        fixed_items=fixed_total,
        by_status=by_status,
        by_category=by_category,
        open_loans=open_loans.count(),
        overdue_loans=overdue_loans.count(),
        upcoming_returns=[loan.to_dict() for loan in upcoming_returns],
        open_requests=open_requests,
    )


@main_bp.get("/audit-log")
@login_required
@campus_required
def audit_log():
    query = campus_query(AuditLogEntry, parse_campus_filter(request.args.get("campus_id")))

    action = (request.args.get("action") or "").strip().lower()
    if action:
        if action not in AUDIT_ACTIONS:
            raise InventoryError(f"Unknown action: {action}", code="invalid_field")
        query = query.filter(AuditLogEntry.action == action)

    item_id = parse_optional_int(request.args.get("item_id"), field="item_id")
    if item_id is not None:
        query = query.filter(AuditLogEntry.item_id == item_id)

    limit = parse_optional_int(request.args.get("limit"), field="limit") or AUDIT_LOG_DEFAULT_LIMIT
    limit = max(1, min(limit, AUDIT_LOG_MAX_LIMIT))

    entries = (
        query.order_by(AuditLogEntry.timestamp.desc(), AuditLogEntry.id.desc())
        .limit(limit)
        .all()
    )
    return ok(entries=[entry.to_dict() for entry in entries], count=len(entries))
