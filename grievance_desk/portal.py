# Grievance Desk: citizen grievance tracking backend
# FastAPI + MongoDB

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import uvicorn
from fastapi import Depends, FastAPI, Query, status
from fastapi.middleware.cors import CORSMiddleware
from pymongo.errors import DuplicateKeyError
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from . import ledger, registry
from .auth import (create_access_token, expand_users, get_current_user, hash_password,
                   oauth2_scheme, require_capability, revoke_token, user_to_response,
                   verify_password)
from .config import CORS_ORIGINS
from .database import executor, get_db, shutdown_db, startup_db
from .errors import (AuthenticationFailed, Conflict, NotFound, PermissionDenied,
                     ValidationFailed, register_error_handlers)
from .models import (CommentCreate, DepartmentCreate, DepartmentResponse, DepartmentStats,
                     DepartmentUpdate, GrievanceAssignment, GrievanceCreate, GrievancePage,
                     GrievanceResponse, GrievanceStatus, GrievanceTrackResponse, PasswordChange,
                     Priority, ProfileUpdate, StatusUpdate, TokenResponse, UserCreate, UserLogin,
                     UserResponse, UserRole, check_uuid)
from .policy import Capability, allows, can_view

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# App & Globals
# ---------------------------------------------------------------------------
@asynccontextmanager
async def lifespan(app: FastAPI):
    await startup_db()
    yield
    shutdown_db()

app = FastAPI(title="Grievance Desk", lifespan=lifespan)
limiter = Limiter(key_func=get_remote_address)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
register_error_handlers(app)

# ---------------------------------------------------------------------------
# Security Headers Middleware
# ---------------------------------------------------------------------------
class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Permissions-Policy"] = "geolocation=(), camera=(), microphone=()"
        return response

app.add_middleware(SecurityHeadersMiddleware)
if CORS_ORIGINS:
    app.add_middleware(CORSMiddleware, allow_origins=CORS_ORIGINS, allow_credentials=True,
                       allow_methods=["*"], allow_headers=["*"])

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def validate_id(value: str, param_name: str = "id") -> str:
    try:
        return check_uuid(value)
    except ValueError:
        raise ValidationFailed.single(param_name, f"Invalid {param_name} format")

def _new_user_doc(data: UserCreate) -> Dict[str, Any]:
    return {
        "_id": str(uuid.uuid4()), "name": data.name, "email": data.email.lower(),
        "hashed_password": hash_password(data.password), "role": data.role.value,
        "department": data.department, "created_at": datetime.now(timezone.utc),
    }

def _insert_user(db, doc: dict) -> None:
    if doc["department"] and db.departments.find_one({"_id": doc["department"]}, {"_id": 1}) is None:
        raise NotFound("Department not found")
    try:
        db.users.insert_one(doc)
    except DuplicateKeyError:
        raise Conflict("User already exists")

async def _visible_grievance(db, grievance_id: str, user: dict) -> dict:
    loop = asyncio.get_event_loop()
    g = await loop.run_in_executor(executor, ledger.get_grievance, db, grievance_id)
    if not can_view(user, g):
        raise PermissionDenied("Access denied")
    return g

async def _detail(db, g: dict) -> GrievanceResponse:
    loop = asyncio.get_event_loop()
    return await loop.run_in_executor(executor, ledger.expand_one, db, g)

# ---------------------------------------------------------------------------
# AUTH ENDPOINTS
# ---------------------------------------------------------------------------
@app.post("/auth/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("3/minute")
async def register(request: Request, user_data: UserCreate, db=Depends(get_db)):
    # Public registration is citizen-only; staff/admins are created by an administrator
    if user_data.role != UserRole.CITIZEN:
        raise PermissionDenied("Public registration is for citizens only")
    loop = asyncio.get_event_loop()
    user_doc = await loop.run_in_executor(executor, _new_user_doc, user_data)
    await loop.run_in_executor(executor, _insert_user, db, user_doc)
    return TokenResponse(access_token=create_access_token(user_doc), user=user_to_response(user_doc))

@app.post("/auth/login", response_model=TokenResponse)
@limiter.limit("5/minute")
async def login(request: Request, form: UserLogin, db=Depends(get_db)):
    loop = asyncio.get_event_loop()
    user = await loop.run_in_executor(executor, db.users.find_one, {"email": form.email.lower()})
    if not user or not await loop.run_in_executor(
            executor, verify_password, form.password, user["hashed_password"]):
        raise AuthenticationFailed("Invalid credentials")
    return TokenResponse(access_token=create_access_token(user), user=user_to_response(user))

@app.get("/auth/me", response_model=UserResponse)
async def get_me(user=Depends(get_current_user), db=Depends(get_db)):
    loop = asyncio.get_event_loop()
    return (await loop.run_in_executor(executor, expand_users, db, [user]))[0]

@app.put("/auth/me", response_model=UserResponse)
async def update_me(update: ProfileUpdate, user=Depends(get_current_user), db=Depends(get_db)):
    set_fields = update.model_dump(exclude_unset=True, exclude_none=True)
    if not set_fields:
        raise ValidationFailed.single("body", "No fields to update")
    if "email" in set_fields:
        set_fields["email"] = set_fields["email"].lower()
    def apply():
        if "email" in set_fields and db.users.find_one(
                {"email": set_fields["email"], "_id": {"$ne": user["_id"]}}):
            raise Conflict("Email already in use")
        try:
            db.users.update_one({"_id": user["_id"]}, {"$set": set_fields})
        except DuplicateKeyError:
            raise Conflict("Email already in use")
        return db.users.find_one({"_id": user["_id"]})
    loop = asyncio.get_event_loop()
    updated = await loop.run_in_executor(executor, apply)
    return (await loop.run_in_executor(executor, expand_users, db, [updated]))[0]

@app.put("/auth/password")
async def change_password(change: PasswordChange, user=Depends(get_current_user), db=Depends(get_db)):
    loop = asyncio.get_event_loop()
    if not await loop.run_in_executor(
            executor, verify_password, change.current_password, user["hashed_password"]):
        raise AuthenticationFailed("Current password is incorrect")
    hashed = await loop.run_in_executor(executor, hash_password, change.new_password)
    await loop.run_in_executor(executor, lambda: db.users.update_one(
        {"_id": user["_id"]}, {"$set": {"hashed_password": hashed}}))
    return {"detail": "Password changed successfully"}

@app.post("/auth/logout")
async def logout(token: Optional[str] = Depends(oauth2_scheme)):
    if token:
        revoke_token(token)
    return {"detail": "Logged out successfully"}

# ---------------------------------------------------------------------------
# ADMIN USER MANAGEMENT ENDPOINTS
# ---------------------------------------------------------------------------
@app.get("/admin/users", response_model=List[UserResponse])
async def admin_list_users(role: Optional[UserRole] = None,
                           user=Depends(require_capability(Capability.USER_LIST)),
                           db=Depends(get_db)):
    query = {"role": role.value} if role else {}
    loop = asyncio.get_event_loop()
    users = await loop.run_in_executor(executor, lambda: list(db.users.find(query).sort("created_at", -1)))
    return await loop.run_in_executor(executor, expand_users, db, users)

@app.post("/admin/users", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def admin_create_user(user_data: UserCreate,
                            user=Depends(require_capability(Capability.USER_MANAGE)),
                            db=Depends(get_db)):
    loop = asyncio.get_event_loop()
    user_doc = await loop.run_in_executor(executor, _new_user_doc, user_data)
    await loop.run_in_executor(executor, _insert_user, db, user_doc)
    logger.info("Admin %s created user %s (%s)", user["email"], user_doc["email"], user_doc["role"])
    return (await loop.run_in_executor(executor, expand_users, db, [user_doc]))[0]

@app.delete("/admin/users/{user_id}")
async def admin_delete_user(user_id: str,
                            user=Depends(require_capability(Capability.USER_MANAGE)),
                            db=Depends(get_db)):
    user_id = validate_id(user_id, "userId")
    if str(user["_id"]) == user_id:
        raise ValidationFailed.single("userId", "Cannot delete your own account")
    loop = asyncio.get_event_loop()
    target = await loop.run_in_executor(executor, db.users.find_one, {"_id": user_id})
    if not target:
        raise NotFound("User not found")
    # Grievances keep their references to the removed user
    await loop.run_in_executor(executor, db.users.delete_one, {"_id": user_id})
    logger.info("Admin %s deleted user %s", user["email"], target["email"])
    return {"detail": f"User '{target['email']}' deleted"}

# ---------------------------------------------------------------------------
# GRIEVANCE ENDPOINTS
# ---------------------------------------------------------------------------
@app.post("/grievances", response_model=GrievanceResponse, status_code=status.HTTP_201_CREATED)
async def create_grievance(data: GrievanceCreate,
                           user=Depends(require_capability(Capability.GRIEVANCE_CREATE)),
                           db=Depends(get_db)):
    loop = asyncio.get_event_loop()
    doc = await loop.run_in_executor(executor, ledger.create_grievance, db, data, str(user["_id"]))
    return await _detail(db, doc)

@app.get("/grievances", response_model=GrievancePage)
async def get_grievances(
    page: int = Query(1, ge=1), limit: int = Query(10, ge=1, le=100),
    status: Optional[GrievanceStatus] = None, department: Optional[str] = None,
    priority: Optional[Priority] = None, search: Optional[str] = Query(None, max_length=100),
    user=Depends(get_current_user), db=Depends(get_db)):
    if department:
        department = validate_id(department, "department")
    filters = {"status": status.value if status else None, "department": department,
               "priority": priority.value if priority else None, "search": search}
    if not allows(user, Capability.GRIEVANCE_READ_ALL):
        if not allows(user, Capability.GRIEVANCE_READ_OWN):
            raise PermissionDenied("Insufficient permissions")
        filters["filed_by"] = str(user["_id"])
    loop = asyncio.get_event_loop()
    items, total, total_pages = await loop.run_in_executor(
        executor, lambda: ledger.list_grievances(db, page, limit, **filters))
    items = await loop.run_in_executor(executor, ledger.expand, db, items)
    return GrievancePage(items=items, page=page, limit=limit, total=total, total_pages=total_pages)

@app.get("/grievances/track/{ticket_id}", response_model=GrievanceTrackResponse)
@limiter.limit("10/minute")
async def track_grievance(request: Request, ticket_id: str, db=Depends(get_db)):
    loop = asyncio.get_event_loop()
    g = await loop.run_in_executor(executor, ledger.find_by_ticket, db, ticket_id)
    return GrievanceTrackResponse(**g)

@app.get("/grievances/{grievance_id}", response_model=GrievanceResponse)
async def get_grievance(grievance_id: str, user=Depends(get_current_user), db=Depends(get_db)):
    grievance_id = validate_id(grievance_id, "grievanceId")
    return await _detail(db, await _visible_grievance(db, grievance_id, user))

@app.put("/grievances/{grievance_id}/status", response_model=GrievanceResponse)
async def update_status(grievance_id: str, update: StatusUpdate,
                        user=Depends(require_capability(Capability.GRIEVANCE_TRANSITION)),
                        db=Depends(get_db)):
    grievance_id = validate_id(grievance_id, "grievanceId")
    loop = asyncio.get_event_loop()
    g = await loop.run_in_executor(
        executor, ledger.transition, db, grievance_id, update.status, str(user["_id"]), update.comment)
    return await _detail(db, g)

@app.post("/grievances/{grievance_id}/comments", response_model=GrievanceResponse)
async def add_comment(grievance_id: str, comment: CommentCreate,
                      user=Depends(require_capability(Capability.GRIEVANCE_COMMENT)),
                      db=Depends(get_db)):
    grievance_id = validate_id(grievance_id, "grievanceId")
    await _visible_grievance(db, grievance_id, user)
    loop = asyncio.get_event_loop()
    g = await loop.run_in_executor(
        executor, ledger.add_comment, db, grievance_id, str(user["_id"]), comment.text)
    return await _detail(db, g)

@app.put("/grievances/{grievance_id}/assign", response_model=GrievanceResponse)
async def assign_grievance(grievance_id: str, assignment: GrievanceAssignment,
                           user=Depends(require_capability(Capability.GRIEVANCE_ASSIGN)),
                           db=Depends(get_db)):
    grievance_id = validate_id(grievance_id, "grievanceId")
    loop = asyncio.get_event_loop()
    g = await loop.run_in_executor(
        executor, ledger.assign, db, grievance_id, str(user["_id"]),
        assignment.user_id, assignment.user_name)
    return await _detail(db, g)

# ---------------------------------------------------------------------------
# DEPARTMENT ENDPOINTS
# ---------------------------------------------------------------------------
@app.post("/departments", response_model=DepartmentResponse, status_code=status.HTTP_201_CREATED)
async def create_department(data: DepartmentCreate,
                            user=Depends(require_capability(Capability.DEPARTMENT_MANAGE)),
                            db=Depends(get_db)):
    loop = asyncio.get_event_loop()
    d = await loop.run_in_executor(executor, registry.create_department, db, data)
    return (await loop.run_in_executor(executor, registry.expand, db, [d]))[0]

@app.get("/departments", response_model=List[DepartmentResponse])
async def list_departments(search: Optional[str] = Query(None, max_length=100),
                           user=Depends(require_capability(Capability.DEPARTMENT_READ)),
                           db=Depends(get_db)):
    loop = asyncio.get_event_loop()
    departments = await loop.run_in_executor(executor, registry.list_departments, db, search)
    return await loop.run_in_executor(executor, registry.expand, db, departments)

@app.get("/departments/{department_id}", response_model=DepartmentResponse)
async def get_department(department_id: str,
                         user=Depends(require_capability(Capability.DEPARTMENT_READ)),
                         db=Depends(get_db)):
    department_id = validate_id(department_id, "departmentId")
    loop = asyncio.get_event_loop()
    d = await loop.run_in_executor(executor, registry.get_department, db, department_id)
    return (await loop.run_in_executor(executor, registry.expand, db, [d]))[0]

@app.put("/departments/{department_id}", response_model=DepartmentResponse)
async def update_department(department_id: str, update: DepartmentUpdate,
                            user=Depends(require_capability(Capability.DEPARTMENT_MANAGE)),
                            db=Depends(get_db)):
    department_id = validate_id(department_id, "departmentId")
    loop = asyncio.get_event_loop()
    d = await loop.run_in_executor(executor, registry.update_department, db, department_id, update)
    return (await loop.run_in_executor(executor, registry.expand, db, [d]))[0]

@app.delete("/departments/{department_id}")
async def delete_department(department_id: str,
                            user=Depends(require_capability(Capability.DEPARTMENT_MANAGE)),
                            db=Depends(get_db)):
    department_id = validate_id(department_id, "departmentId")
    loop = asyncio.get_event_loop()
    await loop.run_in_executor(executor, registry.delete_department, db, department_id)
    logger.info("Admin %s deleted department %s", user["email"], department_id)
    return {"detail": "Department deleted successfully"}

@app.get("/departments/{department_id}/stats", response_model=DepartmentStats)
async def department_stats(department_id: str,
                           user=Depends(require_capability(Capability.DEPARTMENT_STATS)),
                           db=Depends(get_db)):
    department_id = validate_id(department_id, "departmentId")
    loop = asyncio.get_event_loop()
    return await loop.run_in_executor(executor, registry.department_stats, db, department_id)

# ---------------------------------------------------------------------------
# HEALTH
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    return {"status": "healthy", "system": "Grievance Desk",
            "timestamp": datetime.now(timezone.utc)}

def main():
    uvicorn.run(app, host="0.0.0.0", port=8000)

if __name__ == "__main__":
    main()
