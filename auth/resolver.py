"""
Username-to-campus resolution for the login form.

The login form sends a username and, optionally, the campus picked from a
list. Technicians historically logged in by typing their campus name, and the
reserved accounts (`admin`, `full`) always belong on the Administrador campus.
"""

from dataclasses import dataclass
from typing import Iterable, List, Optional

from utilities.database import User, Campus, ensure_admin_campus
from utilities.text import normalize_text

DEFAULT_RESERVED_USERNAMES = ("admin", "full")


class LoginResolutionError(Exception):
    def __init__(self, message: str, *, code: str = "user_not_found"):
        super().__init__(message)
        self.message = message
        self.code = code


@dataclass
class ResolvedLogin:
    user: User
    campus: Optional[Campus]
    matched_by: str  # reserved | username | campus_name


def _user_campus_matches(user: User, selected_campus: Optional[str]) -> bool:
    if not selected_campus:
        return True
    campus_name = user.campus.name if user.campus else ""
    return normalize_text(campus_name) == normalize_text(selected_campus)


def _technicians_for_campus_name(value: str) -> List[User]:
    wanted = normalize_text(value)
    if not wanted:
        return []
    technicians = User.query.filter(
        User.role == "tecnico",
        User.is_active.is_(True),
        User.campus_id.isnot(None),
    ).all()
    return [u for u in technicians if u.campus and normalize_text(u.campus.name) == wanted]


def resolve_login(
    username: str,
    selected_campus: Optional[str] = None,
    *,
    reserved_usernames: Iterable[str] = DEFAULT_RESERVED_USERNAMES,
) -> ResolvedLogin:
    """
    Find the account a login attempt refers to and the campus it lands on.

    Raises:
        LoginResolutionError: no account, ambiguous campus name, or a
            technician logging into a campus that is not theirs
    """
    username = (username or "").strip()
    if not username:
        raise LoginResolutionError("Username is required", code="missing_username")

    reserved = {name.lower() for name in reserved_usernames}
    if username.lower() in reserved:
        user = User.query.filter(User.username.ilike(username)).first()
        if user is None:
            raise LoginResolutionError("User not found")
        # The selected campus is ignored for reserved accounts
        return ResolvedLogin(user=user, campus=ensure_admin_campus(commit=False), matched_by="reserved")

    user = User.query.filter_by(username=username).first()
    if user is not None:
        if user.is_admin:
            return ResolvedLogin(user=user, campus=ensure_admin_campus(commit=False), matched_by="username")
        if not _user_campus_matches(user, selected_campus):
            raise LoginResolutionError("User does not belong to the selected campus", code="campus_mismatch")
        return ResolvedLogin(user=user, campus=user.campus, matched_by="username")

    matches = _technicians_for_campus_name(username)
    if len(matches) > 1:
        raise LoginResolutionError("More than one technician matches this campus", code="ambiguous_campus")
    if matches:
        technician = matches[0]
        if not _user_campus_matches(technician, selected_campus):
            raise LoginResolutionError("User does not belong to the selected campus", code="campus_mismatch")
        return ResolvedLogin(user=technician, campus=technician.campus, matched_by="campus_name")

    raise LoginResolutionError("User not found")
