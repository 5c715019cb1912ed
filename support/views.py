# support/views.py
import re

from flask import Blueprint, current_app, request
from flask_login import login_required, current_user

from utilities.campus_helpers import campus_query, get_scoped_or_404, parse_campus_filter
from utilities.database import db, Campus, SupportRequest, REQUEST_STATUS_LABELS, log_audit
from utilities.errors import InventoryError, NotFoundError
from utilities.extensions import limiter
from utilities.http import get_payload, ok
from utilities.text import clean
from middleware.campus_middleware import campus_required

support_bp = Blueprint("support", __name__)

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
MAX_DETAILS_LENGTH = 2000


def _support_rate_limit() -> str:
    return current_app.config.get("SUPPORT_RATE_LIMIT", "30 per hour")


def _validate_request_fields(data: dict) -> dict:
    errors = {}
    email = clean(data.get("requester_email"))
    if not email:
        errors["requester_email"] = "Email is required."
    elif not EMAIL_RE.match(email) or len(email) > 255:
        errors["requester_email"] = "Enter a valid email address."

    if not clean(data.get("setor")):
        errors["setor"] = "Sector is required."

    details = clean(data.get("details"))
    if not details:
        errors["details"] = "Describe the problem."
    elif len(details) > MAX_DETAILS_LENGTH:
        errors["details"] = f"Details must have at most {MAX_DETAILS_LENGTH} characters."

    if data.get("campus_id") in (None, ""):
        errors["campus_id"] = "Select a campus."
    return errors


@support_bp.post("")
@limiter.limit(_support_rate_limit)
def submit_request():
    """Open a support request. No account needed."""
    data = get_payload()
    errors = _validate_request_fields(data)
    if errors:
        raise InventoryError("Invalid request data.", code="invalid_field", payload={"errors": errors})

    try:
        campus = db.session.get(Campus, int(data["campus_id"]))
    except (TypeError, ValueError):
        campus = None
    if campus is None or campus.is_admin_campus:
        raise NotFoundError(f"Campus {data['campus_id']} not found", code="campus_not_found")

    support_request = SupportRequest(
        requester_email=clean(data["requester_email"]),
        campus_id=campus.id,
        setor=clean(data["setor"]),
        sala=clean(data.get("sala")),
        details=clean(data["details"]),
        status="aberto",
    )
    db.session.add(support_request)
    db.session.commit()
    current_app.logger.info("Support request %s opened for campus %s", support_request.id, campus.name)
    return ok(201, request=support_request.to_dict())


@support_bp.get("")
@login_required
@campus_required
def list_requests():
    query = campus_query(SupportRequest, parse_campus_filter(request.args.get("campus_id")))
    status = (request.args.get("status") or "").strip().lower()
    if status:
        if status not in REQUEST_STATUS_LABELS:
            raise InventoryError(f"Invalid request status: {status}", code="invalid_status")
        query = query.filter(SupportRequest.status == status)

    rows = query.order_by(SupportRequest.created_at.desc()).all()
    return ok(requests=[row.to_dict() for row in rows], count=len(rows))


@support_bp.post("/<int:request_id>/status")
@login_required
@campus_required
def update_request_status(request_id: int):
    support_request = get_scoped_or_404(SupportRequest, request_id, code="request_not_found")
    status = (clean(get_payload().get("status")) or "").lower()
    if status not in REQUEST_STATUS_LABELS:
        raise InventoryError(f"Invalid request status: {status or '(empty)'}", code="invalid_status")

    if status != support_request.status:
        old_status = support_request.status
        support_request.status = status
        log_audit(
            "update",
            user=current_user,
            campus=support_request.campus_id,
            details=(
                f"Request #{support_request.id}: {REQUEST_STATUS_LABELS[old_status]} -> "
                f"{REQUEST_STATUS_LABELS[status]}"
            ),
        )
        db.session.commit()
    return ok(request=support_request.to_dict())
