#!/usr/bin/env python3
"""Create the Administrador campus and the reserved admin accounts."""

import argparse
import getpass

from app import create_app
from utilities.database import db, User, ensure_admin_campus

DEFAULT_ACCOUNTS = (
    # username, display name, role
    ("admin", "Administrador", "admin"),
    ("full", "Super Usuário", "super"),
)


def create_admin_accounts(password: str):
    """Create the reserved accounts that are missing. Existing ones are left untouched."""
    app = create_app()

    with app.app_context():
        campus = ensure_admin_campus()
        print(f"[OK] Campus {campus.name} (id {campus.id})")

        created = []
        for username, name, role in DEFAULT_ACCOUNTS:
            existing = User.query.filter(User.username.ilike(username)).first()
            if existing:
                print(f"[OK] Account already exists: {existing.username} ({existing.role})")
                continue

            user = User(username=username, name=name, role=role)
            user.set_password(password)
            db.session.add(user)
            created.append(user)

        db.session.commit()

        for user in created:
            print("[OK] Account created successfully!")
            print(f"  Username: {user.username}")
            print(f"  Role: {user.role}")
            print(f"  User ID: {user.id}")

        return created


def main():
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--password", help="Password for new accounts (prompted when omitted)")
    args = parser.parse_args()

    password = args.password or getpass.getpass("Password for the new accounts: ")
    if len(password) < 4:
        parser.error("Password must have at least 4 characters")
    create_admin_accounts(password)


if __name__ == "__main__":
    main()
