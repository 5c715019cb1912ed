# loans/views.py
from flask import Blueprint, current_app, request
from flask_login import login_required, current_user

from inventory.lifecycle import ensure_available
from utilities.campus_helpers import campus_query, get_scoped_or_404, parse_campus_filter
from utilities.database import db, InventoryItem, Loan, LOAN_STATUSES, log_audit, utc_now
from utilities.errors import ConflictError, InventoryError
from utilities.http import get_payload, ok, parse_datetime, parse_id_list
from utilities.text import clean
from middleware.campus_middleware import campus_required

loans_bp = Blueprint("loans", __name__)

MIN_BORROWER_QUERY = 2


@loans_bp.get("")
@login_required
@campus_required
def list_loans():
    query = campus_query(Loan, parse_campus_filter(request.args.get("campus_id")))

    status = (request.args.get("status") or "").strip().lower()
    if status:
        if status not in LOAN_STATUSES:
            raise InventoryError(f"Invalid loan status: {status}", code="invalid_status")
        query = query.filter(Loan.status == status)

    q = (request.args.get("q") or "").strip()
    if q:
        like = f"%{q}%"
        query = query.filter(
            db.or_(
                Loan.borrower_name.ilike(like),
                Loan.borrower_contact.ilike(like),
                Loan.item_serial.ilike(like),
            )
        )

    loans = query.order_by(Loan.loan_date.desc()).all()
    return ok(loans=[loan.to_dict() for loan in loans], count=len(loans))


@loans_bp.get("/overdue")
@login_required
@campus_required
def list_overdue():
    loans = (
        campus_query(Loan, parse_campus_filter(request.args.get("campus_id")))
        .filter(Loan.status == "loaned", Loan.expected_return_date < utc_now())
        .order_by(Loan.expected_return_date.asc())
        .all()
    )
    return ok(loans=[loan.to_dict() for loan in loans], count=len(loans))


@loans_bp.get("/by-borrower")
@login_required
@campus_required
def loans_by_borrower():
    """Open loans of a person, matched on part of the name."""
    name = (request.args.get("name") or "").strip()
    if len(name) < MIN_BORROWER_QUERY:
        return ok(loans=[])

    loans = (
        campus_query(Loan)
        .filter(Loan.status == "loaned", Loan.borrower_name.ilike(f"%{name}%"))
        .order_by(Loan.expected_return_date.asc())
        .all()
    )
    return ok(loans=[loan.to_dict() for loan in loans])


@loans_bp.post("")
@login_required
@campus_required
def create_loans():
    """
    Lend one or more items to a borrower.

    All items are checked before anything changes: one unavailable item
    rejects the whole request.
    """
    data = get_payload()
    item_ids = parse_id_list(data.get("item_ids"))
    if not item_ids:
        raise InventoryError("Select at least one item", code="invalid_field")

    borrower_name = clean(data.get("borrower_name"))
    if not borrower_name:
        raise InventoryError("Borrower name is required", code="invalid_field")
    expected = parse_datetime(data.get("expected_return_date"), field="expected_return_date")
    now = utc_now()
    if expected < now.replace(hour=0, minute=0, second=0, microsecond=0):
        raise InventoryError("Expected return date cannot be in the past", code="invalid_field")

    items = [get_scoped_or_404(InventoryItem, item_id, code="item_not_found") for item_id in item_ids]
    for item in items:
        ensure_available(item)

    loans = []
    for item in items:
        loan = Loan(
            item_id=item.id,
            item_serial=item.serial,
            item_category=item.category.name if item.category else None,
            borrower_name=borrower_name,
            borrower_contact=clean(data.get("borrower_contact")),
            notes=clean(data.get("notes")),
            loan_date=now,
            expected_return_date=expected,
            status="loaned",
            campus_id=item.campus_id,
            loaner_id=current_user.id,
            loaner_name=current_user.name,
        )
        item.status = "emprestado"
        db.session.add(loan)
        log_audit(
            "loan",
            user=current_user,
            item=item,
            details=f"Loaned {item.serial} to {borrower_name} until {expected.date().isoformat()}",
        )
        loans.append(loan)

    db.session.commit()
    current_app.logger.info(
        "%s loaned %d item(s) to %s", current_user.username, len(loans), borrower_name
    )
    return ok(201, loans=[loan.to_dict() for loan in loans])


@loans_bp.post("/<int:loan_id>/return")
@login_required
@campus_required
def return_loan(loan_id: int):
    loan = get_scoped_or_404(Loan, loan_id, code="loan_not_found")
    if loan.status != "loaned":
        raise ConflictError("This loan was already returned", code="loan_returned")

    loan.status = "returned"
    loan.actual_return_date = utc_now()
    item = loan.item
    if item is not None and item.status == "emprestado":
        item.status = "funcionando"

    log_audit(
        "return",
        user=current_user,
        campus=loan.campus_id,
        item=item,
        details=f"Returned {loan.item_serial} from {loan.borrower_name}",
    )
    db.session.commit()
    return ok(loan=loan.to_dict(), item=item.to_dict() if item else None)
