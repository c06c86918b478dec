# Grievance ledger: ticket allocation, status transitions, comment log, assignment
#
# All functions are blocking pymongo calls; the HTTP layer runs them on the executor.
# Every write is a single-document update so the timeline and the status never
# disagree: the last timeline entry's status is always the grievance's status.

import logging
import math
import re
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from pymongo import DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from .config import (ASSIGNMENT_ATTEMPTS, REGISTERED_COMMENT, TICKET_ALLOCATION_ATTEMPTS,
                     TICKET_PREFIX, TICKET_SEQ_WIDTH)
from .database import lookup
from .errors import Conflict, NotFound, ValidationFailed
from .models import GrievanceCreate, GrievanceResponse, GrievanceStatus, Priority

logger = logging.getLogger(__name__)

MAX_REMARK_LENGTH = 500
TICKET_ID_RE = re.compile(rf"^{TICKET_PREFIX}-\d{{4}}-\d{{{TICKET_SEQ_WIDTH},}}$")


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Ticket-ID allocation
# ---------------------------------------------------------------------------
def allocate_ticket_id(db, year: Optional[int] = None) -> str:
    """Mint the next ticket id for *year* from an atomically incremented counter."""
    year = year or now_utc().year
    counter = db.counters.find_one_and_update(
        {"_id": f"grievance-{year}"}, {"$inc": {"seq": 1}},
        upsert=True, return_document=ReturnDocument.AFTER)
    return f"{TICKET_PREFIX}-{year}-{counter['seq']:0{TICKET_SEQ_WIDTH}d}"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _remark(value: str, field: str) -> str:
    value = (value or "").strip()
    if not value:
        raise ValidationFailed.single(field, f"{field.capitalize()} is required")
    if len(value) > MAX_REMARK_LENGTH:
        raise ValidationFailed.single(field, f"{field.capitalize()} cannot exceed {MAX_REMARK_LENGTH} characters")
    return value

def _status(value) -> GrievanceStatus:
    try:
        return GrievanceStatus(value)
    except ValueError:
        raise ValidationFailed.single("status", "Invalid status")

def timeline_entry(status: GrievanceStatus, actor_id: Optional[str], comment: str,
                   at: Optional[datetime] = None) -> Dict[str, Any]:
    return {"status": GrievanceStatus(status).value, "updated_by": actor_id,
            "updated_at": at or now_utc(), "comment": comment}

def _name(docs: Dict[str, dict], ref: Optional[str]) -> Optional[str]:
    doc = docs.get(ref) if ref else None
    return doc["name"] if doc else None

def to_response(g: dict, departments: Optional[Dict[str, dict]] = None,
                users: Optional[Dict[str, dict]] = None, detail: bool = False) -> GrievanceResponse:
    departments, users = departments or {}, users or {}
    fields = dict(g, id=g["_id"], department_name=_name(departments, g["department"]),
                  assigned_to_name=_name(users, g.get("assigned_to")))
    if detail:
        fields["comments"] = [dict(c, posted_by_name=_name(users, c.get("posted_by")))
                              for c in g.get("comments", [])]
        fields["timeline"] = [dict(t, updated_by_name=_name(users, t.get("updated_by")))
                              for t in g.get("timeline", [])]
    return GrievanceResponse(**fields)

def expand(db, grievances: List[dict], detail: bool = False) -> List[GrievanceResponse]:
    """Build responses with department and user names resolved.

    Listings resolve the department and assignee; *detail* also resolves
    comment authors and timeline actors.
    """
    user_ids = {g.get("assigned_to") for g in grievances}
    if detail:
        for g in grievances:
            user_ids.update(c.get("posted_by") for c in g.get("comments", []))
            user_ids.update(t.get("updated_by") for t in g.get("timeline", []))
    departments = lookup(db.departments, (g["department"] for g in grievances))
    users = lookup(db.users, user_ids)
    return [to_response(g, departments, users, detail) for g in grievances]

def expand_one(db, grievance: dict) -> GrievanceResponse:
    return expand(db, [grievance], detail=True)[0]


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------
def create_grievance(db, data: GrievanceCreate, actor_id: Optional[str]) -> dict:
    if db.departments.find_one({"_id": data.department}, {"_id": 1}) is None:
        raise NotFound("Department not found")
    now = now_utc()
    doc = {
        "_id": str(uuid.uuid4()),
        "complainant": {"name": data.name, "phone": data.phone,
                        "email": data.email, "address": data.address},
        "department": data.department,
        "subject": data.subject, "description": data.description, "location": data.location,
        "status": GrievanceStatus.PENDING.value,
        "priority": (data.priority or Priority.MEDIUM).value,
        "attachments": list(data.attachments),
        "assigned_to": None,
        "comments": [],
        # The registration entry is written with the document itself
        "timeline": [timeline_entry(GrievanceStatus.PENDING, actor_id, REGISTERED_COMMENT, now)],
        "filed_by": actor_id,
        "created_at": now, "updated_at": now,
    }
    for _ in range(TICKET_ALLOCATION_ATTEMPTS):
        doc["ticket_id"] = allocate_ticket_id(db, now.year)
        try:
            db.grievances.insert_one(doc)
        except DuplicateKeyError:
            # ticket_id is the only unique key besides the random _id
            logger.warning("Ticket id %s already in use, allocating another", doc["ticket_id"])
            continue
        logger.info("Grievance %s registered (department %s)", doc["ticket_id"], data.department)
        return doc
    raise Conflict("Could not allocate a unique ticket id, please retry")


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
def get_grievance(db, grievance_id: str) -> dict:
    g = db.grievances.find_one({"_id": grievance_id})
    if not g:
        raise NotFound("Grievance not found")
    return g

def find_by_ticket(db, ticket_id: str) -> dict:
    if not TICKET_ID_RE.match(ticket_id or ""):
        raise ValidationFailed.single("ticketId", "Invalid ticket id format")
    g = db.grievances.find_one({"ticket_id": ticket_id})
    if not g:
        raise NotFound("Grievance not found")
    return g

def build_filter(status: Optional[str] = None, department: Optional[str] = None,
                 priority: Optional[str] = None, search: Optional[str] = None,
                 filed_by: Optional[str] = None) -> Dict[str, Any]:
    fq: Dict[str, Any] = {}
    if status: fq["status"] = GrievanceStatus(status).value
    if department: fq["department"] = department
    if priority: fq["priority"] = Priority(priority).value
    if filed_by: fq["filed_by"] = filed_by
    if search:
        pattern = re.escape(search.strip())
        fq["$or"] = [
            {"ticket_id": {"$regex": pattern, "$options": "i"}},
            {"complainant.phone": {"$regex": pattern, "$options": "i"}},
        ]
    return fq

def list_grievances(db, page: int = 1, limit: int = 10, **filters) -> Tuple[List[dict], int, int]:
    """Return (items, total, total_pages) for one page, newest first."""
    fq = build_filter(**filters)
    total = db.grievances.count_documents(fq)
    items = list(db.grievances.find(fq).sort("created_at", DESCENDING)
                 .skip((page - 1) * limit).limit(limit))
    return items, total, math.ceil(total / limit) if limit else 0


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------
def transition(db, grievance_id: str, new_status, actor_id: Optional[str], comment: str) -> dict:
    """Set the status and append exactly one matching timeline entry.

    Any status may follow any other status, including itself.
    """
    new_status = _status(new_status)
    comment = _remark(comment, "comment")
    now = now_utc()
    updated = db.grievances.find_one_and_update(
        {"_id": grievance_id},
        {"$set": {"status": new_status.value, "updated_at": now},
         "$push": {"timeline": timeline_entry(new_status, actor_id, comment, now)}},
        return_document=ReturnDocument.AFTER)
    if updated is None:
        raise NotFound("Grievance not found")
    logger.info("Grievance %s moved to %s by %s", updated["ticket_id"], new_status.value, actor_id)
    return updated

def add_comment(db, grievance_id: str, actor_id: Optional[str], text: str) -> dict:
    text = _remark(text, "text")
    now = now_utc()
    updated = db.grievances.find_one_and_update(
        {"_id": grievance_id},
        {"$push": {"comments": {"text": text, "posted_by": actor_id, "posted_at": now}},
         "$set": {"updated_at": now}},
        return_document=ReturnDocument.AFTER)
    if updated is None:
        raise NotFound("Grievance not found")
    return updated

def assign(db, grievance_id: str, actor_id: Optional[str], assignee_id: str,
           assignee_name: str) -> dict:
    """Bind the grievance to *assignee_id*, logging it under the unchanged status."""
    current = get_grievance(db, grievance_id)
    if db.users.find_one({"_id": assignee_id}, {"_id": 1}) is None:
        raise NotFound("Assignee not found")
    comment = f"Assigned to {assignee_name}"
    for _ in range(ASSIGNMENT_ATTEMPTS):
        now = now_utc()
        # Compare-and-set on status keeps the new entry equal to the stored status
        updated = db.grievances.find_one_and_update(
            {"_id": grievance_id, "status": current["status"]},
            {"$set": {"assigned_to": assignee_id, "updated_at": now},
             "$push": {"timeline": timeline_entry(current["status"], actor_id, comment, now)}},
            return_document=ReturnDocument.AFTER)
        if updated is not None:
            logger.info("Grievance %s assigned to %s by %s", updated["ticket_id"], assignee_id, actor_id)
            return updated
        logger.info("Status of grievance %s changed during assignment, retrying", grievance_id)
        current = get_grievance(db, grievance_id)
    raise Conflict("Grievance is being updated concurrently, please retry")
