# Seed data: Users (one per role)

import uuid
from datetime import datetime, timezone

from ..auth import hash_password

# ---------------------------------------------------------------------------
# Raw user definitions
# ---------------------------------------------------------------------------
USERS = [
    {"name": "Rajesh Kumar Swain", "email": "citizen1@example.com",
     "password": "citizen123", "role": "citizen", "department": None},

    {"name": "Priya Pattnaik", "email": "staff1@example.com",
     "password": "staff123", "role": "staff", "department": "Water Supply"},

    {"name": "System Admin", "email": "admin@example.com",
     "password": "admin123", "role": "admin", "department": None},
]


def import_users(db, department_ids: dict) -> dict:
    """Insert seed users that are not present yet. Returns {email: _id}."""
    print("\n  Importing seed users...")
    user_ids: dict = {}
    for u in USERS:
        existing = db.users.find_one({"email": u["email"]})
        if existing:
            print(f"    SKIP  {u['email']:28s} (already exists)")
            user_ids[u["email"]] = existing["_id"]
            continue
        uid = str(uuid.uuid4())
        db.users.insert_one({
            "_id": uid,
            "name": u["name"],
            "email": u["email"],
            "hashed_password": hash_password(u["password"]),
            "role": u["role"],
            "department": department_ids.get(u["department"]),
            "created_at": datetime.now(timezone.utc),
        })
        user_ids[u["email"]] = uid
        print(f"    OK    {u['email']:28s} ({u['role']})")
    return user_ids
