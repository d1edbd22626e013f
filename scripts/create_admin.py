"""
scripts/create_admin.py

Promote an existing user to admin. The user must have signed in at least
once so that their account exists locally:

    python -m scripts.create_admin someone@example.com

Without an argument you will be prompted for the email.
"""

import sys
import os

# Make sure app is importable
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.core.database import SessionLocal, init_db
from app.core.exceptions import NotFoundError
from app.models import user, verification, payment, apartment, booking, notification  # noqa: F401
from app.services.user_service import promote_to_admin


def create_admin(email: str = None):
    print("\n── Promote Admin User ────────────────────")

    email = (email or input("Email: ")).strip()
    if not email:
        print("❌ Email is required.")
        sys.exit(1)

    init_db()
    db = SessionLocal()
    try:
        admin = promote_to_admin(db, email)
        print(f"\n✅ {admin.email} is now an admin.")
        print(f"   ID:   {admin.id}")
        print(f"   Name: {admin.full_name or '-'}\n")
    except NotFoundError:
        print(f"❌ No user with email '{email}'. Sign in once, then run this again.")
        sys.exit(1)
    finally:
        db.close()


if __name__ == "__main__":
    create_admin(sys.argv[1] if len(sys.argv) > 1 else None)
