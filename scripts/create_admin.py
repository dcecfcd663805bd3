#!/usr/bin/env python3
"""
Create (or promote) an administrator account.

Usage:
    python scripts/create_admin.py admin@example.com password [First] [Last]
"""

import sys

# Add parent directory to path for imports
sys.path.insert(0, ".")

from vesitrail import create_app, db
from vesitrail.models import User, UserRole


def create_admin(email: str, password: str, first_name: str = None, last_name: str = None) -> int:
    app = create_app()

    with app.app_context():
        email = email.strip().lower()
        user = User.query.filter_by(email=email).first()
        if user is None:
            user = User(email=email, first_name=first_name, last_name=last_name)
            db.session.add(user)
            print(f"Creating admin {email}")
        else:
            print(f"Promoting existing user {email} to admin")

        user.role = UserRole.ADMIN
        user.is_active = True
        user.set_password(password)
        db.session.commit()

    return 0


if __name__ == "__main__":
    if len(sys.argv) < 3:
        print("Usage: python scripts/create_admin.py email password [first_name] [last_name]")
        sys.exit(1)

    sys.exit(create_admin(*sys.argv[1:5]))
