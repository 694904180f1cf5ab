#!/usr/bin/env python3
"""
Adds an e-mail to the admin allow-list (`admins/{email}` in Firestore).

The address becomes an admin the first time it signs in. Profiles that
already exist keep the role they were created with.
"""

import sys

from dotenv import load_dotenv
from google.cloud.firestore_v1 import SERVER_TIMESTAMP, FieldFilter

load_dotenv()

from salesdesk.config import get_db, settings  # noqa: E402


def add_admin_email(user_email: str) -> bool:
    """Creates the allow-list entry for `user_email`."""
    try:
        db = get_db()
        print("✅ Firebase Admin SDK initialized")
    except Exception as e:
        print(f"❌ Firebase initialization failed: {e}")
        return False

    try:
        ref = db.collection(settings.admins_collection).document(user_email)
        if ref.get().exists:
            print(f"ℹ️  Already allow-listed: {user_email}")
            return True
        ref.set({"addedBy": "cli", "addedAt": SERVER_TIMESTAMP})
        print(f"✅ Allow-listed: {user_email}")

        existing = list(
            db.collection(settings.users_collection).where(filter=FieldFilter("email", "==", user_email)).limit(1).stream()
        )
        if existing:
            role = (existing[0].to_dict() or {}).get("role")
            print(f"⚠️  A profile already exists for this e-mail with role={role!r}; it is not changed.")
        return True
    except Exception as e:
        print(f"❌ Error updating allow-list: {e}")
        return False


if __name__ == "__main__":
    if len(sys.argv) != 2:
        print("Usage: python set_admin_allowlist.py <user_email>")
        print("Example: python set_admin_allowlist.py admin@example.com")
        sys.exit(1)

    user_email = sys.argv[1]
    print(f"Allow-listing admin e-mail: {user_email}")

    if add_admin_email(user_email):
        print("🎉 Done. The user becomes an admin on first sign-in.")
    else:
        print("💥 Failed to update the allow-list")
        sys.exit(1)
