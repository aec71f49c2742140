#!/usr/bin/env python3
"""
Admin Account Seed Script
Creates (or promotes) an admin account for the NaiyakSetu dashboard.

Usage:
    python -m scripts.seed_admin <email> <name> <password>

Example:
    python -m scripts.seed_admin officer@naiyaksetu.gov.in "Ward Officer" securepassword123
"""
import sys
from uuid import uuid4

from sqlalchemy.orm import Session

from naiyaksetu.database import SessionLocal, init_db
from naiyaksetu.errors import ValidationError
from naiyaksetu.models.db_models import AccountDB, Role
from naiyaksetu.services.identity import hash_password
from naiyaksetu.validation import require_text, validate_password


def create_admin_account(db: Session, email: str, name: str, password: str) -> AccountDB:
    """
    Create an admin account, or promote the existing account with this email.

    The password of an existing account is left unchanged.
    """
    email = require_text(email, "Email").lower()
    name = require_text(name, "Name")
    validate_password(password)
    if "@" not in email:
        raise ValidationError("Invalid email format")

    existing = db.query(AccountDB).filter(AccountDB.email == email).first()
    if existing:
        if existing.role != Role.ADMIN:
            existing.role = Role.ADMIN
            existing.is_active = True
            db.commit()
            print(f"Upgraded existing account '{email}' to admin role.")
        else:
            print(f"Account '{email}' is already an admin.")
        return existing

    admin = AccountDB(
        id=str(uuid4()),
        email=email,
        name=name,
        password_hash=hash_password(password),
        role=Role.ADMIN,
        is_verified=True,
        is_active=True,
    )
    db.add(admin)
    db.commit()

    print("Admin account created successfully!")
    print(f"  Email: {email}")
    print(f"  Name: {name}")
    print("  Role: admin")
    return admin


def main():
    if len(sys.argv) != 4:
        print(__doc__)
        sys.exit(1)

    email, name, password = sys.argv[1], sys.argv[2], sys.argv[3]

    # Ensure tables exist
    init_db()

    db = SessionLocal()
    try:
        create_admin_account(db, email, name, password)
    except ValidationError as e:
        print(f"Error: {e.message}")
        sys.exit(1)
    finally:
        db.close()


if __name__ == "__main__":
    main()
