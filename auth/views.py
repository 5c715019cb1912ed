# auth/views.py
from flask import Blueprint, current_app, jsonify, request
from flask_login import login_user, logout_user, login_required, current_user
from flask_wtf.csrf import generate_csrf
from typing import Dict, Optional

from auth.resolver import resolve_login, LoginResolutionError
from utilities.campus_helpers import commit_or_conflict, parse_campus_filter
from utilities.database import db, Campus, User, USER_ROLES, log_audit
from utilities.errors import NotFoundError, PermissionDenied, ConflictError
from utilities.extensions import limiter
from utilities.http import get_payload, ok, parse_bool
from utilities.text import clean
from middleware.campus_middleware import admin_required

auth_bp = Blueprint("auth", __name__)

MIN_PASSWORD_LENGTH = 4


def _login_rate_limit() -> str:
    return current_app.config.get("LOGIN_RATE_LIMIT", "10 per minute")


def _super_username() -> str:
    return current_app.config.get("SUPER_USERNAME", "full")


def _validate_user_fields(
    *,
    username: Optional[str],
    name: Optional[str],
    password: Optional[str],
    role: Optional[str],
    campus: Optional[Campus],
    require_password: bool = False,
    user_id: Optional[int] = None,
) -> Dict[str, str]:
    errors: Dict[str, str] = {}

    if not username:
        errors["username"] = "Username is required."
    if not name:
        errors["name"] = "Name is required."

    if require_password and not password:
        errors["password"] = "Password is required."
    elif password and len(password) < MIN_PASSWORD_LENGTH:
        errors["password"] = f"Password must have at least {MIN_PASSWORD_LENGTH} characters."

    if role not in USER_ROLES:
        errors["role"] = "Select a valid role."
    elif role == "tecnico" and campus is None:
        errors["campus_id"] = "Technicians must belong to a campus."
    elif role == "tecnico" and campus is not None and campus.is_admin_campus:
        errors["campus_id"] = "Technicians cannot belong to the Administrador campus."

    if username:
        existing = User.query.filter(
            db.func.lower(User.username) == username.lower(),
            User.id != (user_id or 0),
        ).first()
        if existing:
            errors["username"] = "Username already exists."

    return errors


def _campus_from_payload(raw) -> Optional[Campus]:
    campus_id = parse_campus_filter(raw)
    if campus_id is None:
        return None
    campus = db.session.get(Campus, campus_id)
    if campus is None:
        raise NotFoundError(f"Campus {campus_id} not found", code="campus_not_found")
    return campus


def _guard_privileged_target(role: Optional[str]):
    """Only the super user creates, edits or removes administrators."""
    if role in ("admin", "super") and not current_user.is_super:
        raise PermissionDenied("Only the super user can manage administrators")


@auth_bp.get("/csrf-token")
def csrf_token():
    """Token for the X-CSRFToken header of later POST/PATCH/DELETE calls."""
    return ok(csrf_token=generate_csrf())


@auth_bp.route("/login", methods=["POST"])
@limiter.limit(_login_rate_limit)
def login():
    data = get_payload()
    username = clean(data.get("username") or data.get("login"))
    password = data.get("password") or data.get("senha") or ""
    selected_campus = clean(data.get("campus"))

    if not username or not password:
        return jsonify({"success": False, "error": "Username and password are required."}), 400

    try:
        resolved = resolve_login(
            username,
            selected_campus,
            reserved_usernames=current_app.config.get("RESERVED_USERNAMES", ["admin", "full"]),
        )
    except LoginResolutionError as exc:
        db.session.rollback()
        current_app.logger.info("Login rejected for %r: %s", username, exc.code)
        return jsonify({"success": False, "error": exc.message, "code": exc.code}), 401

    user = resolved.user
    if not user.check_password(password):
        db.session.rollback()
        current_app.logger.info("Wrong password for user %s", user.username)
        return jsonify({"success": False, "error": "Incorrect password.", "code": "bad_password"}), 401

    if not user.is_active:
        db.session.rollback()
        return jsonify({"success": False, "error": "This account is disabled.", "code": "inactive"}), 403

    if user.role not in USER_ROLES:
        db.session.rollback()
        return jsonify({"success": False, "error": "Insufficient permission to access the system."}), 403

    if user.password_needs_upgrade():
        # Legacy bcrypt/plaintext row: store a fresh hash now that we know the password
        user.set_password(password)
        current_app.logger.info("Upgraded password hash for user %s", user.username)

    remember = bool(data.get("remember", False))
    login_user(user, remember=remember)
    db.session.commit()
    current_app.logger.info("User %s signed in (%s)", user.username, resolved.matched_by)

    return ok(
        user=user.to_dict(),
        campus=resolved.campus.to_dict() if resolved.campus else None,
        matched_by=resolved.matched_by,
    )


@auth_bp.route("/logout", methods=["POST"])
@login_required
def logout():
    username = current_user.username
    logout_user()
    current_app.logger.info("User %s signed out", username)
    return ok()


@auth_bp.get("/me")
@login_required
def me():
    return ok(user=current_user.to_dict())


@auth_bp.get("/users")
@login_required
@admin_required
def list_users():
    query = User.query
    campus_id = parse_campus_filter(request.args.get("campus_id"))
    if campus_id is not None:
        query = query.filter(User.campus_id == campus_id)
    role = clean(request.args.get("role"))
    if role:
        query = query.filter(User.role == role)
    users = query.order_by(User.name.asc()).all()
    return ok(users=[u.to_dict() for u in users])


@auth_bp.post("/users")
@login_required
@admin_required
def create_user():
    data = get_payload()
    username = clean(data.get("username"))
    name = clean(data.get("name"))
    password = data.get("password") or ""
    role = (clean(data.get("role")) or "tecnico").lower()
    _guard_privileged_target(role)

    campus = None if role in ("admin", "super") else _campus_from_payload(data.get("campus_id"))
    errors = _validate_user_fields(
        username=username, name=name, password=password, role=role, campus=campus, require_password=True
    )
    if errors:
        return jsonify({"success": False, "error": "Invalid user data.", "errors": errors}), 400

    new_user = User(username=username, name=name, role=role, campus_id=campus.id if campus else None)
    new_user.set_password(password)
    db.session.add(new_user)
    db.session.flush()
    log_audit(
        "create",
        user=current_user,
        campus=campus,
        details=f"Created user {username} ({role})",
    )
    commit_or_conflict("Username already exists.")
    current_app.logger.info("User %s created by %s", username, current_user.username)
    return ok(201, user=new_user.to_dict())


@auth_bp.route("/users/<int:user_id>", methods=["PATCH", "PUT"])
@login_required
@admin_required
def update_user(user_id: int):
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError(f"User {user_id} not found")
    _guard_privileged_target(user.role)

    data = get_payload()
    username = clean(data["username"]) if "username" in data else user.username
    name = clean(data["name"]) if "name" in data else user.name
    role = (clean(data["role"]) or "").lower() if "role" in data else user.role
    _guard_privileged_target(role)
    password = data.get("password") or None

    if role in ("admin", "super"):
        campus = None
    elif "campus_id" in data:
        campus = _campus_from_payload(data.get("campus_id"))
    else:
        campus = user.campus

    if user.username.lower() == _super_username() and role != "super":
        raise ConflictError("The super user role cannot be changed")

    errors = _validate_user_fields(
        username=username, name=name, password=password, role=role, campus=campus, user_id=user.id
    )
    if errors:
        return jsonify({"success": False, "error": "Invalid user data.", "errors": errors}), 400

    before = {"username": user.username, "name": user.name, "role": user.role, "campus_id": user.campus_id}
    user.username = username
    user.name = name
    user.role = role
    user.campus_id = campus.id if campus else None
    if "is_active" in data:
        if user.id == current_user.id and not parse_bool(data["is_active"], field="is_active"):
            raise ConflictError("You cannot disable your own account")
        user.is_active = parse_bool(data["is_active"], field="is_active")
    if password:
        user.set_password(password)

    changes = []
    for key, old_value in before.items():
        new_value = getattr(user, key)
        if old_value != new_value:
            changes.append(f"{key}: {old_value} -> {new_value}")
    if password:
        changes.append("password updated")
    if changes:
        log_audit(
            "update",
            user=current_user,
            campus=campus,
            details=f"Updated user {user.username}: " + "; ".join(changes),
        )
    commit_or_conflict("Username already exists.")
    return ok(user=user.to_dict())


@auth_bp.route("/users/<int:user_id>", methods=["DELETE"])
@login_required
@admin_required
def delete_user(user_id: int):
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError(f"User {user_id} not found")

    if user.id == current_user.id:
        raise ConflictError("You cannot remove your own account")
    if user.username.lower() == _super_username():
        raise PermissionDenied("The super user cannot be removed")
    if user.username.lower() == "admin" and not current_user.is_super:
        raise PermissionDenied("Only the super user can remove the default administrator")
    _guard_privileged_target(user.role)

    info = {"username": user.username, "role": user.role, "campus_id": user.campus_id}
    db.session.delete(user)
    log_audit(
        "delete",
        user=current_user,
        campus=info["campus_id"],
        details=f"Removed user {info['username']} ({info['role']})",
    )
    db.session.commit()
    return ok(deleted=user_id)


@auth_bp.post("/users/<int:user_id>/password")
@login_required
@admin_required
def reset_password(user_id: int):
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError(f"User {user_id} not found")
    _guard_privileged_target(user.role)

    password = get_payload().get("password") or ""
    if len(password) < MIN_PASSWORD_LENGTH:
        return jsonify({
            "success": False,
            "error": f"Password must have at least {MIN_PASSWORD_LENGTH} characters.",
        }), 400

    user.set_password(password)
    log_audit("update", user=current_user, campus=user.campus_id, details=f"Reset password of {user.username}")
    db.session.commit()
    return ok()


@auth_bp.post("/password")
@login_required
def change_own_password():
    data = get_payload()
    current_password = data.get("current_password") or ""
    new_password = data.get("new_password") or ""

    if not current_user.check_password(current_password):
        return jsonify({"success": False, "error": "Current password is incorrect.", "code": "bad_password"}), 400
    if len(new_password) < MIN_PASSWORD_LENGTH:
        return jsonify({
            "success": False,
            "error": f"Password must have at least {MIN_PASSWORD_LENGTH} characters.",
        }), 400

    current_user.set_password(new_password)
    log_audit(
        "update",
        user=current_user,
        campus=current_user.campus_id,
        details=f"{current_user.username} changed their password",
    )
    db.session.commit()
    return ok()
