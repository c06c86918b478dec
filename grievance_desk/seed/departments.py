# Seed data: Departments

import uuid
from datetime import datetime, timezone

DEPARTMENTS = [
    {"name": "Water Supply", "description": "Drinking water connections, leaks and quality complaints",
     "contact_email": "water@example.gov", "contact_phone": "9988776601"},
    {"name": "Sanitation", "description": "Garbage collection, drainage and public toilets",
     "contact_email": "sanitation@example.gov", "contact_phone": "9988776602"},
    {"name": "Roads and Infrastructure", "description": "Potholes, street lights and footpaths",
     "contact_email": "roads@example.gov", "contact_phone": "9988776603"},
]


def import_departments(db) -> dict:
    """Insert seed departments that are not present yet. Returns {name: _id}."""
    print("\n  Importing seed departments...")
    department_ids: dict = {}
    for d in DEPARTMENTS:
        existing = db.departments.find_one({"name": d["name"]})
        if existing:
            print(f"    SKIP  {d['name']:28s} (already exists)")
            department_ids[d["name"]] = existing["_id"]
            continue
        now = datetime.now(timezone.utc)
        did = str(uuid.uuid4())
        db.departments.insert_one({"_id": did, **d, "head_of_department": None,
                                   "created_at": now, "updated_at": now})
        department_ids[d["name"]] = did
        print(f"    OK    {d['name']}")
    return department_ids
