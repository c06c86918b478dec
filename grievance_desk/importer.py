# Grievance Desk: seed data importer
#
# Usage:  python -m grievance_desk.importer
#
# Idempotent: records that already exist are skipped, nothing is dropped.

from pymongo import MongoClient

from .config import MONGODB_DB, MONGODB_URL
from .database import init_indexes
from .seed.departments import DEPARTMENTS, import_departments
from .seed.users import USERS, import_users


def seed(db) -> dict:
    init_indexes(db)
    department_ids = import_departments(db)
    user_ids = import_users(db, department_ids)
    return {"departments": department_ids, "users": user_ids}


def main():
    print("=" * 64)
    print("  Grievance Desk: Data Importer")
    print("=" * 64)
    print(f"\n  Connecting to: {MONGODB_URL}")
    print(f"  Database: {MONGODB_DB}")
    client = MongoClient(MONGODB_URL)
    try:
        seed(client[MONGODB_DB])
    finally:
        client.close()

    print("\n" + "=" * 64)
    print("  IMPORT COMPLETE")
    print("=" * 64)
    print(f"  Departments: {len(DEPARTMENTS)}")
    print(f"  Users:       {len(USERS)}")
    print()
    print("  Test credentials:")
    for u in USERS:
        print(f"    {u['role'].capitalize():8s}: {u['email']} / {u['password']}")
    print("=" * 64)


if __name__ == "__main__":
    main()
