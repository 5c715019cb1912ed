from .database import (
    db,
    Campus,
    Category,
    Sector,
    User,
    InventoryItem,
    Loan,
    SupportRequest,
    AuditLogEntry,
    log_audit,
    utc_now,
    ensure_admin_campus,
)
from .logger import setup_logger

__all__ = [
    "db",
    "Campus",
    "Category",
    "Sector",
    "User",
    "InventoryItem",
    "Loan",
    "SupportRequest",
    "AuditLogEntry",
    "log_audit",
    "utc_now",
    "ensure_admin_campus",
    "setup_logger",
]
