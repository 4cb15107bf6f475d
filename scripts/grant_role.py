#!/usr/bin/env python3
"""
Grant or revoke a role for an existing account.

Usage:
  - Ensure DATABASE_URL points to the database used by the running app
  - python scripts/grant_role.py admin@example.com            # grant admin
  - python scripts/grant_role.py admin@example.com --revoke   # revoke admin
  - python scripts/grant_role.py someone@example.com --role user

Runs outside the access policy; this is how the first admin is created.
"""
import argparse
import sys

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError

from bookshelf.database import Base, SessionLocal, engine
from bookshelf.models import AppRole, Identity, UserRole


def main(argv=None):
    p = argparse.ArgumentParser()
    p.add_argument("email")
    p.add_argument("--role", default=AppRole.admin.value, choices=[r.value for r in AppRole])
    p.add_argument("--revoke", action="store_true")
    args = p.parse_args(argv)

    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        user = db.scalar(select(Identity).where(Identity.email == args.email))
        if user is None:
            print(f"No account for {args.email}")
            return 1
        role = AppRole(args.role)
        if args.revoke:
            db.execute(delete(UserRole).where(UserRole.user_id == user.id, UserRole.role == role))
            db.commit()
            print(f"Revoked {role.value} from {args.email}")
            return 0
        db.add(UserRole(user_id=user.id, role=role))
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            print(f"{args.email} already has {role.value}")
            return 0
        print(f"Granted {role.value} to {args.email}")
        return 0
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
