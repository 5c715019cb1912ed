# utilities/database.py
from flask_sqlalchemy import SQLAlchemy
from flask_login import UserMixin
from sqlalchemy import event
from sqlalchemy.engine import Engine
from datetime import datetime, UTC
from sqlite3 import Connection as SQLite3Connection
from typing import Any, Dict, Optional, Union

from utilities.passwords import hash_password, verify_password, needs_rehash

db = SQLAlchemy()


# Enable foreign keys for SQLite so ON DELETE rules apply
@event.listens_for(Engine, "connect")
def set_sqlite_pragma(dbapi_connection, connection_record):
    if isinstance(dbapi_connection, SQLite3Connection):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

ADMIN_CAMPUS_NAME = "Administrador"

ITEM_STATUS_LABELS = {
    "funcionando": "Funcionando",
    "defeito": "Defeito",
    "manutencao": "Em Manutenção",
    "backup": "Backup",
    "descarte": "Descarte",
    "emprestado": "Emprestado",
    "emuso": "Em Uso",
}
REQUEST_STATUS_LABELS = {
    "aberto": "Aberto",
    "em-andamento": "Em Andamento",
    "concluido": "Concluído",
    "cancelado": "Cancelado",
}
USER_ROLES = ["admin", "tecnico", "super"]
AUDIT_ACTIONS = ["create", "update", "delete", "loan", "return"]
LOAN_STATUSES = ["loaned", "returned"]


def utc_now() -> datetime:
    """Return a naive UTC datetime without relying on deprecated utcnow()."""
    return datetime.now(UTC).replace(tzinfo=None)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class Campus(db.Model):
    __tablename__ = "campuses"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), unique=True, nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)

    categories = db.relationship("Category", back_populates="campus", cascade="all, delete-orphan")
    sectors = db.relationship("Sector", back_populates="campus", cascade="all, delete-orphan")

    @property
    def is_admin_campus(self) -> bool:
        return self.name == ADMIN_CAMPUS_NAME

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "created_at": _iso(self.created_at),
        }


class Category(db.Model):
    __tablename__ = "categories"
    __table_args__ = (
        db.UniqueConstraint("name", "campus_id", name="uq_categories_name_campus"),
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    campus_id = db.Column(db.Integer, db.ForeignKey("campuses.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)

    campus = db.relationship("Campus", back_populates="categories")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "campus_id": self.campus_id,
            "campus": self.campus.name if self.campus else None,
        }


class Sector(db.Model):
    __tablename__ = "sectors"
    __table_args__ = (
        db.UniqueConstraint("name", "campus_id", name="uq_sectors_name_campus"),
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    campus_id = db.Column(db.Integer, db.ForeignKey("campuses.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)

    campus = db.relationship("Campus", back_populates="sectors")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "campus_id": self.campus_id,
            "campus": self.campus.name if self.campus else None,
        }


class User(db.Model, UserMixin):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(20), nullable=False, default="tecnico")  # admin|tecnico|super
    campus_id = db.Column(db.Integer, db.ForeignKey("campuses.id"), nullable=True, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    campus = db.relationship("Campus")

    @property
    def is_admin(self) -> bool:
        return self.role in ("admin", "super")

    @property
    def is_super(self) -> bool:
        return self.role == "super"

    def set_password(self, raw_password: str):
        self.password_hash = hash_password(raw_password)

    def check_password(self, raw_password: str) -> bool:
        return verify_password(raw_password, self.password_hash)

    def password_needs_upgrade(self) -> bool:
        return needs_rehash(self.password_hash)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "username": self.username,
            "name": self.name,
            "role": self.role,
            "campus_id": self.campus_id,
            "campus": self.campus.name if self.campus else None,
            "is_active": self.is_active,
        }


class InventoryItem(db.Model):
    __tablename__ = "inventory_items"

    id = db.Column(db.Integer, primary_key=True)
    campus_id = db.Column(db.Integer, db.ForeignKey("campuses.id"), nullable=False, index=True)
    sector_id = db.Column(db.Integer, db.ForeignKey("sectors.id"), nullable=True, index=True)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True, index=True)
    sala = db.Column(db.String(120), nullable=True)
    brand = db.Column(db.String(120), nullable=True)
    serial = db.Column(db.String(120), nullable=False, index=True)
    patrimony = db.Column(db.String(120), nullable=True, index=True)
    status = db.Column(db.String(20), nullable=False, default="funcionando", index=True)
    previous_status = db.Column(db.String(20), nullable=True)  # status before descarte
    responsible_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    responsible_name = db.Column(db.String(255), nullable=True)
    obs = db.Column(db.Text, nullable=True)
    is_fixed = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    campus = db.relationship("Campus")
    sector = db.relationship("Sector")
    category = db.relationship("Category")
    responsible = db.relationship("User")

    @property
    def responsible_display(self) -> Optional[str]:
        if self.responsible is not None:
            return self.responsible.name
        return self.responsible_name

    @property
    def is_busy(self) -> bool:
        return self.status in ("emprestado", "emuso")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "campus_id": self.campus_id,
            "campus": self.campus.name if self.campus else None,
            "sector_id": self.sector_id,
            "setor": self.sector.name if self.sector else None,
            "sala": self.sala,
            "category_id": self.category_id,
            "category": self.category.name if self.category else None,
            "brand": self.brand,
            "serial": self.serial,
            "patrimony": self.patrimony,
            "status": self.status,
            "status_label": ITEM_STATUS_LABELS.get(self.status, self.status),
            "previous_status": self.previous_status,
            "responsible_id": self.responsible_id,
            "responsible": self.responsible_display,
            "obs": self.obs,
            "is_fixed": self.is_fixed,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class Loan(db.Model):
    """A loan of one inventory item to a borrower outside the system"""
    __tablename__ = "loans"

    id = db.Column(db.Integer, primary_key=True)
    item_id = db.Column(db.Integer, db.ForeignKey("inventory_items.id", ondelete="SET NULL"), nullable=True, index=True)
    item = db.relationship("InventoryItem", backref="loans")

    # Snapshot so history survives a hard delete of the item
    item_serial = db.Column(db.String(120), nullable=False)
    item_category = db.Column(db.String(120), nullable=True)

    borrower_name = db.Column(db.String(255), nullable=False)
    borrower_contact = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    loan_date = db.Column(db.DateTime, nullable=False, default=utc_now)
    expected_return_date = db.Column(db.DateTime, nullable=False)
    actual_return_date = db.Column(db.DateTime, nullable=True)  # NULL while loaned
    status = db.Column(db.String(20), nullable=False, default="loaned", index=True)

    campus_id = db.Column(db.Integer, db.ForeignKey("campuses.id"), nullable=False, index=True)
    campus = db.relationship("Campus")
    loaner_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    loaner_name = db.Column(db.String(255), nullable=True)

    def is_overdue(self, now: Optional[datetime] = None) -> bool:
        now = now or utc_now()
        return self.status == "loaned" and self.expected_return_date < now

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "item_id": self.item_id,
            "item_serial": self.item_serial,
            "item_category": self.item_category,
            "borrower_name": self.borrower_name,
            "borrower_contact": self.borrower_contact,
            "notes": self.notes,
            "loan_date": _iso(self.loan_date),
            "expected_return_date": _iso(self.expected_return_date),
            "actual_return_date": _iso(self.actual_return_date),
            "status": self.status,
            "overdue": self.is_overdue(),
            "campus_id": self.campus_id,
            "campus": self.campus.name if self.campus else None,
            "loaner_id": self.loaner_id,
            "loaner": self.loaner_name,
        }


class SupportRequest(db.Model):
    __tablename__ = "requests"

    id = db.Column(db.Integer, primary_key=True)
    requester_email = db.Column(db.String(255), nullable=False)
    campus_id = db.Column(db.Integer, db.ForeignKey("campuses.id"), nullable=False, index=True)
    setor = db.Column(db.String(120), nullable=False)
    sala = db.Column(db.String(120), nullable=True)
    details = db.Column(db.Text, nullable=False)
    status = db.Column(db.String(20), nullable=False, default="aberto", index=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    campus = db.relationship("Campus")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "requester_email": self.requester_email,
            "campus_id": self.campus_id,
            "campus": self.campus.name if self.campus else None,
            "setor": self.setor,
            "sala": self.sala,
            "details": self.details,
            "status": self.status,
            "status_label": REQUEST_STATUS_LABELS.get(self.status, self.status),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class AuditLogEntry(db.Model):
    __tablename__ = "audit_log"

    id = db.Column(db.Integer, primary_key=True)
    timestamp = db.Column(db.DateTime, nullable=False, default=utc_now, index=True)
    action = db.Column(db.String(20), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    user_name = db.Column(db.String(255), nullable=True)
    campus_id = db.Column(db.Integer, db.ForeignKey("campuses.id", ondelete="SET NULL"), nullable=True, index=True)
    campus_name = db.Column(db.String(120), nullable=True)
    # No FK: the entry outlives the item it describes
    item_id = db.Column(db.Integer, nullable=True, index=True)
    item_snapshot = db.Column(db.JSON, nullable=True)
    details = db.Column(db.String(500), nullable=True)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": _iso(self.timestamp),
            "action": self.action,
            "user_id": self.user_id,
            "user": self.user_name,
            "campus_id": self.campus_id,
            "campus": self.campus_name,
            "item_id": self.item_id,
            "item": self.item_snapshot,
            "details": self.details,
        }


@event.listens_for(AuditLogEntry, "before_update")
def _audit_entries_are_immutable(mapper, connection, target):
    raise RuntimeError("Audit log entries are append-only")


@event.listens_for(AuditLogEntry, "before_delete")
def _audit_entries_are_permanent(mapper, connection, target):
    raise RuntimeError("Audit log entries are append-only")


def log_audit(
    action: str,
    *,
    user: Optional[User] = None,
    campus: Optional[Union[Campus, int]] = None,
    item: Optional[InventoryItem] = None,
    details: Optional[str] = None,
    commit: bool = False,
) -> AuditLogEntry:
    """Append an audit trail entry with name snapshots of its references."""
    if action not in AUDIT_ACTIONS:
        raise ValueError(f"Unknown audit action: {action}")

    if isinstance(campus, int):
        campus = db.session.get(Campus, campus)
    if campus is None and item is not None:
        campus = item.campus or db.session.get(Campus, item.campus_id)

    entry = AuditLogEntry(
        action=action,
        user_id=getattr(user, "id", None),
        user_name=getattr(user, "name", None),
        campus_id=getattr(campus, "id", None),
        campus_name=getattr(campus, "name", None),
        item_id=getattr(item, "id", None),
        item_snapshot=item.to_dict() if item is not None else None,
        details=(details or "")[:500] or None,
    )
    db.session.add(entry)

    if commit:
        try:
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

    return entry


def get_admin_campus() -> Optional[Campus]:
    return Campus.query.filter_by(name=ADMIN_CAMPUS_NAME).first()


def ensure_admin_campus(commit: bool = True) -> Campus:
    """Create the sentinel Administrador campus when it is missing."""
    campus = get_admin_campus()
    if campus is None:
        campus = Campus(name=ADMIN_CAMPUS_NAME)
        db.session.add(campus)
        if commit:
            db.session.commit()
        else:
            db.session.flush()
    return campus
