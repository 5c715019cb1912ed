"""
Campus middleware.
Resolves the campus context of the logged-in user for each request and
provides the role decorators used by the blueprints.
"""

from functools import wraps

from flask import g
from flask_login import current_user

from utilities.database import db, Campus
from utilities.errors import PermissionDenied


class CampusMiddleware:
    """
    Sets the campus context before each request.

    Request flow:
    1. Anonymous requests get no campus context
    2. Admins get `g.campus = None` (all campuses)
    3. Technicians get their own campus
    """

    def __init__(self, app=None):
        self.app = app
        if app:
            self.init_app(app)

    def init_app(self, app):
        """Initialize middleware with Flask app."""
        self.app = app
        app.before_request(self.load_campus)

    def load_campus(self):
        g.campus = None
        g.all_campuses = False

        if not current_user.is_authenticated:
            return

        if current_user.is_admin:
            g.all_campuses = True
            return

        if current_user.campus_id is not None:
            g.campus = db.session.get(Campus, current_user.campus_id)


def campus_required(f):
    """
    Require a usable campus context.
    Admins always pass; a technician without a campus is refused.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not g.get("all_campuses") and g.get("campus") is None:
            raise PermissionDenied("Your account is not linked to a campus", code="no_campus")
        return f(*args, **kwargs)
    return decorated_function


def admin_required(f):
    """Require an admin or the super user."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not current_user.is_authenticated or not current_user.is_admin:
            raise PermissionDenied("This action requires administrator privileges")
        return f(*args, **kwargs)
    return decorated_function


def super_required(f):
    """Require the super user."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not current_user.is_authenticated or not current_user.is_super:
            raise PermissionDenied("This action requires the super user")
        return f(*args, **kwargs)
    return decorated_function


# Global middleware instance
campus_middleware = CampusMiddleware()
