# Department registry: CRUD, the deletion guard and per-department statistics

import logging
import re
import uuid
from typing import Dict, List, Optional

from pymongo import ASCENDING, ReturnDocument

from .database import lookup
from .errors import Conflict, NotFound, ValidationFailed
from .ledger import now_utc
from .models import (DepartmentCreate, DepartmentResponse, DepartmentStats, DepartmentUpdate,
                     GrievanceStatus, UserSummary)

logger = logging.getLogger(__name__)


def to_response(d: dict, heads: Optional[Dict[str, dict]] = None) -> DepartmentResponse:
    head = (heads or {}).get(d.get("head_of_department"))
    summary = UserSummary(id=head["_id"], name=head["name"], email=head.get("email")) if head else None
    return DepartmentResponse(**d, id=d["_id"], head=summary)

def expand(db, departments: List[dict]) -> List[DepartmentResponse]:
    """Responses with the head of department's name and email resolved."""
    heads = lookup(db.users, (d.get("head_of_department") for d in departments), ("name", "email"))
    return [to_response(d, heads) for d in departments]

def _check_head(db, head_id: Optional[str]) -> None:
    if head_id and db.users.find_one({"_id": head_id}, {"_id": 1}) is None:
        raise NotFound("Head of department not found")


def create_department(db, data: DepartmentCreate) -> dict:
    _check_head(db, data.head_of_department)
    now = now_utc()
    doc = {
        "_id": str(uuid.uuid4()), "name": data.name, "description": data.description,
        "head_of_department": data.head_of_department,
        "contact_email": data.contact_email, "contact_phone": data.contact_phone,
        "created_at": now, "updated_at": now,
    }
    db.departments.insert_one(doc)
    logger.info("Department %s created (%s)", doc["name"], doc["_id"])
    return doc

def list_departments(db, search: Optional[str] = None) -> List[dict]:
    query = {}
    if search:
        query["name"] = {"$regex": re.escape(search.strip()), "$options": "i"}
    return list(db.departments.find(query).sort("name", ASCENDING))

def get_department(db, department_id: str) -> dict:
    d = db.departments.find_one({"_id": department_id})
    if not d:
        raise NotFound("Department not found")
    return d

def update_department(db, department_id: str, data: DepartmentUpdate) -> dict:
    set_fields = data.model_dump(exclude_unset=True, by_alias=False)
    if not set_fields:
        raise ValidationFailed.single("body", "No fields to update")
    _check_head(db, set_fields.get("head_of_department"))
    set_fields["updated_at"] = now_utc()
    updated = db.departments.find_one_and_update(
        {"_id": department_id}, {"$set": set_fields}, return_document=ReturnDocument.AFTER)
    if updated is None:
        raise NotFound("Department not found")
    return updated

def delete_department(db, department_id: str) -> None:
    """Remove a department unless any grievance still references it."""
    get_department(db, department_id)
    referencing = db.grievances.count_documents({"department": department_id})
    if referencing > 0:
        raise Conflict("Cannot delete department with active grievances")
    db.departments.delete_one({"_id": department_id})
    logger.info("Department %s deleted", department_id)


def department_stats(db, department_id: str) -> DepartmentStats:
    get_department(db, department_id)
    groups = db.grievances.aggregate([
        {"$match": {"department": department_id}},
        {"$group": {"_id": "$status", "count": {"$sum": 1}}}])
    distribution = {g["_id"]: g["count"] for g in groups}
    total = sum(distribution.values())
    resolved = distribution.get(GrievanceStatus.RESOLVED.value, 0)
    return DepartmentStats(
        total_grievances=total, resolved_grievances=resolved,
        resolution_rate=resolved / total * 100 if total else 0,
        status_distribution=distribution)
