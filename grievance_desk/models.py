# Enums and Pydantic models for the Grievance Desk API
#
# Python attributes are snake_case; the wire format is camelCase via aliases.

import uuid
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

PHONE_PATTERN = r"^[0-9]{10}$"
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
MAX_PASSWORD_BYTES = 72


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class UserRole(str, Enum):
    CITIZEN = "citizen"
    STAFF = "staff"
    ADMIN = "admin"

class GrievanceStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    RESOLVED = "resolved"
    REJECTED = "rejected"

class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


def check_uuid(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    try:
        uuid.UUID(value)
    except (ValueError, AttributeError, TypeError):
        raise ValueError("Invalid identifier format")
    return value

def check_password_bytes(value: str) -> str:
    # bcrypt only looks at the first 72 bytes
    if len(value.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValueError(f"Password cannot exceed {MAX_PASSWORD_BYTES} bytes")
    return value


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True,
                              str_strip_whitespace=True)


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------
class UserCreate(WireModel):
    name: str = Field(..., min_length=3, max_length=100)
    email: str = Field(..., max_length=320, pattern=EMAIL_PATTERN)
    password: str = Field(..., min_length=6, max_length=72)
    role: UserRole = UserRole.CITIZEN
    department: Optional[str] = None

    @field_validator("department")
    @classmethod
    def validate_department(cls, v):
        return check_uuid(v)

    @field_validator("password")
    @classmethod
    def validate_password(cls, v):
        return check_password_bytes(v)

class UserLogin(WireModel):
    email: str = Field(..., max_length=320)
    password: str = Field(..., max_length=72)

class ProfileUpdate(WireModel):
    name: Optional[str] = Field(None, min_length=3, max_length=100)
    email: Optional[str] = Field(None, max_length=320, pattern=EMAIL_PATTERN)

class PasswordChange(WireModel):
    current_password: str = Field(..., max_length=72)
    new_password: str = Field(..., min_length=6, max_length=72)

    @field_validator("new_password")
    @classmethod
    def validate_new_password(cls, v):
        return check_password_bytes(v)

class UserSummary(WireModel):
    id: str
    name: str
    email: Optional[str] = None

class UserResponse(WireModel):
    id: str
    name: str
    email: str
    role: UserRole
    department: Optional[str] = None
    department_name: Optional[str] = None
    created_at: datetime

class TokenResponse(WireModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse


# ---------------------------------------------------------------------------
# Grievances
# ---------------------------------------------------------------------------
class GrievanceCreate(WireModel):
    name: str = Field(..., min_length=3, max_length=100)
    phone: str = Field(..., pattern=PHONE_PATTERN)
    email: Optional[str] = Field(None, max_length=320, pattern=EMAIL_PATTERN)
    address: str = Field(..., min_length=1, max_length=200)
    department: str
    subject: str = Field(..., min_length=5, max_length=200)
    description: str = Field(..., min_length=20, max_length=1000)
    location: str = Field(..., min_length=1, max_length=200)
    priority: Priority = Priority.MEDIUM
    attachments: List[str] = Field(default_factory=list, max_length=10)

    @field_validator("department")
    @classmethod
    def validate_department(cls, v):
        return check_uuid(v)

    @field_validator("attachments")
    @classmethod
    def validate_attachments(cls, v):
        for path in v:
            if not path or len(path) > 500:
                raise ValueError("Attachment paths must be 1-500 characters")
        return v

class StatusUpdate(WireModel):
    status: GrievanceStatus
    comment: str = Field(..., min_length=1, max_length=500)

class CommentCreate(WireModel):
    text: str = Field(..., min_length=1, max_length=500)

class GrievanceAssignment(WireModel):
    user_id: str
    user_name: str = Field(..., min_length=1, max_length=100)

    @field_validator("user_id")
    @classmethod
    def validate_user_id(cls, v):
        return check_uuid(v)

class Complainant(WireModel):
    name: str
    phone: str
    email: Optional[str] = None
    address: str

class CommentEntry(WireModel):
    text: str
    posted_by: Optional[str] = None
    posted_by_name: Optional[str] = None
    posted_at: datetime

class TimelineEntry(WireModel):
    status: GrievanceStatus
    updated_by: Optional[str] = None
    updated_by_name: Optional[str] = None
    updated_at: datetime
    comment: str

class GrievanceResponse(WireModel):
    id: str
    ticket_id: str
    complainant: Complainant
    department: str
    department_name: Optional[str] = None
    subject: str
    description: str
    location: str
    status: GrievanceStatus
    priority: Priority
    attachments: List[str] = Field(default_factory=list)
    assigned_to: Optional[str] = None
    assigned_to_name: Optional[str] = None
    comments: List[CommentEntry] = Field(default_factory=list)
    timeline: List[TimelineEntry] = Field(default_factory=list)
    filed_by: Optional[str] = None
    created_at: datetime
    updated_at: datetime

class GrievanceTrackResponse(WireModel):
    ticket_id: str
    subject: str
    status: GrievanceStatus
    priority: Priority
    created_at: datetime
    updated_at: datetime

class GrievancePage(WireModel):
    items: List[GrievanceResponse]
    page: int
    limit: int
    total: int
    total_pages: int


# ---------------------------------------------------------------------------
# Departments
# ---------------------------------------------------------------------------
class DepartmentCreate(WireModel):
    name: str = Field(..., min_length=3, max_length=100)
    description: str = Field(..., min_length=1, max_length=500)
    head_of_department: Optional[str] = None
    contact_email: str = Field(..., max_length=320, pattern=EMAIL_PATTERN)
    contact_phone: str = Field(..., pattern=PHONE_PATTERN)

    @field_validator("head_of_department")
    @classmethod
    def validate_head(cls, v):
        return check_uuid(v)

class DepartmentUpdate(WireModel):
    name: Optional[str] = Field(None, min_length=3, max_length=100)
    description: Optional[str] = Field(None, min_length=1, max_length=500)
    head_of_department: Optional[str] = None
    contact_email: Optional[str] = Field(None, max_length=320, pattern=EMAIL_PATTERN)
    contact_phone: Optional[str] = Field(None, pattern=PHONE_PATTERN)

    @field_validator("head_of_department")
    @classmethod
    def validate_head(cls, v):
        return check_uuid(v)

    # Only the head may be cleared; the other fields are required on the record
    @field_validator("name", "description", "contact_email", "contact_phone")
    @classmethod
    def reject_null(cls, v):
        if v is None:
            raise ValueError("Field cannot be null")
        return v

class DepartmentResponse(WireModel):
    id: str
    name: str
    description: str
    head_of_department: Optional[str] = None
    head: Optional[UserSummary] = None
    contact_email: str
    contact_phone: str
    created_at: datetime
    updated_at: datetime

class DepartmentStats(WireModel):
    total_grievances: int
    resolved_grievances: int
    resolution_rate: float
    status_distribution: Dict[str, int] = Field(default_factory=dict)
