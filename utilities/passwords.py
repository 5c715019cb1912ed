"""
Password hashing helpers.

New passwords are always hashed with Werkzeug. Rows written by older code
paths may still hold a bcrypt hash or plaintext; those are verified here and
flagged for re-hashing so the next successful login upgrades them.
"""

import hmac

import bcrypt
from werkzeug.security import generate_password_hash, check_password_hash

BCRYPT_PREFIXES = ("$2a$", "$2b$", "$2y$")
WERKZEUG_PREFIXES = ("pbkdf2:", "scrypt:")


def hash_password(raw_password: str) -> str:
    return generate_password_hash(raw_password)


def is_bcrypt_hash(stored: str) -> bool:
    return stored.startswith(BCRYPT_PREFIXES)


def is_werkzeug_hash(stored: str) -> bool:
    return stored.startswith(WERKZEUG_PREFIXES)


def verify_password(raw_password: str, stored: str) -> bool:
    if not raw_password or not stored:
        return False
    if is_werkzeug_hash(stored):
        return check_password_hash(stored, raw_password)
    if is_bcrypt_hash(stored):
        try:
            return bcrypt.checkpw(raw_password.encode("utf-8"), stored.encode("utf-8"))
        except ValueError:
            return False
    # Legacy plaintext
    return hmac.compare_digest(raw_password.encode("utf-8"), stored.encode("utf-8"))


def needs_rehash(stored: str) -> bool:
    return not is_werkzeug_hash(stored or "")
