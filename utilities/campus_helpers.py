"""
Helper functions for campus-scoped database queries.

Admins (and the super user) see every campus. Technicians only ever see rows
of their own campus; rows of other campuses behave as if they did not exist.
"""

from typing import Optional, Type

from flask_login import current_user
from sqlalchemy.exc import IntegrityError

from utilities.database import db, Campus, ensure_admin_campus
from utilities.errors import ConflictError, DuplicateNameError, NotFoundError, is_unique_violation


def current_campus_id() -> Optional[int]:
    """
    Campus the current user is confined to.

    Returns:
        The technician's campus id, or None for users who see all campuses
    """
    if not current_user.is_authenticated or current_user.is_admin:
        return None
    return current_user.campus_id


def campus_query(model_class: Type[db.Model], requested_campus_id: Optional[int] = None):
    """
    Create a query limited to the campuses visible to the current user.

    Args:
        model_class: Model with a `campus_id` column
        requested_campus_id: Optional narrowing requested by an admin

    Example:
        items = campus_query(InventoryItem).filter_by(status="backup").all()
    """
    query = model_class.query
    confined = current_campus_id()
    if confined is not None:
        return query.filter(model_class.campus_id == confined)
    if requested_campus_id is not None:
        query = query.filter(model_class.campus_id == requested_campus_id)
    return query


def get_scoped_or_404(model_class: Type[db.Model], obj_id, *, code: Optional[str] = None):
    """Fetch a row by id inside the current scope or raise NotFoundError."""
    label = model_class.__name__
    try:
        obj_id = int(obj_id)
    except (TypeError, ValueError):
        raise NotFoundError(f"{label} {obj_id} not found", code=code)

    obj = db.session.get(model_class, obj_id)
    confined = current_campus_id()
    if obj is None or (confined is not None and getattr(obj, "campus_id", None) != confined):
        raise NotFoundError(f"{label} {obj_id} not found", code=code)
    return obj


def resolve_target_campus(requested_campus_id=None, *, default_to_admin: bool = False) -> Optional[Campus]:
    """
    Campus a write should land in.

    Technicians always write into their own campus whatever they submit.
    Admins write into the requested campus; with `default_to_admin` a missing
    request falls back to the Administrador campus.
    """
    confined = current_campus_id()
    if confined is not None:
        return db.session.get(Campus, confined)

    if requested_campus_id in (None, ""):
        return ensure_admin_campus(commit=False) if default_to_admin else None

    try:
        campus = db.session.get(Campus, int(requested_campus_id))
    except (TypeError, ValueError):
        campus = None
    if campus is None:
        raise NotFoundError(f"Campus {requested_campus_id} not found", code="campus_not_found")
    return campus


def parse_campus_filter(raw) -> Optional[int]:
    if raw in (None, ""):
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise NotFoundError(f"Campus {raw} not found", code="campus_not_found")


def commit_or_conflict(message: str = "The change conflicts with existing data"):
    """Commit the session, translating integrity failures into 409 errors."""
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        if is_unique_violation(exc):
            raise DuplicateNameError(message) from exc
        raise ConflictError(message) from exc
