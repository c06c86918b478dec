"""
Shared pytest fixtures for the Grievance Desk test suite.

Provides an in-memory mongomock database, an httpx AsyncClient bound to the
ASGI app, and pre-authenticated headers for each role.
"""

import os
import uuid
from datetime import datetime, timezone

os.environ.setdefault("JWT_SECRET", "test-secret-" + "x" * 40)

import httpx
import mongomock
import pytest
import pytest_asyncio

from grievance_desk.auth import create_access_token, hash_password
from grievance_desk.database import get_db, init_indexes
from grievance_desk.portal import app, limiter

PASSWORDS = {"citizen": "citizen123", "staff": "staff123", "admin": "admin123"}


@pytest.fixture(scope="session")
def password_hashes():
    """bcrypt is slow on purpose; hash each seed password once per run."""
    return {role: hash_password(pw) for role, pw in PASSWORDS.items()}


@pytest.fixture
def db():
    database = mongomock.MongoClient()["grievance_desk_test"]
    init_indexes(database)
    return database


def make_user(db, role: str, hashed_password: str, email: str = None, name: str = None) -> dict:
    doc = {
        "_id": str(uuid.uuid4()),
        "name": name or f"Test {role.capitalize()}",
        "email": email or f"{role}_{uuid.uuid4().hex[:8]}@example.com",
        "hashed_password": hashed_password,
        "role": role,
        "department": None,
        "created_at": datetime.now(timezone.utc),
    }
    db.users.insert_one(doc)
    return doc


def make_department(db, name: str = "Water Supply") -> dict:
    now = datetime.now(timezone.utc)
    doc = {
        "_id": str(uuid.uuid4()), "name": name, "description": f"{name} complaints",
        "head_of_department": None, "contact_email": "dept@example.gov",
        "contact_phone": "9988776601", "created_at": now, "updated_at": now,
    }
    db.departments.insert_one(doc)
    return doc


@pytest.fixture
def users(db, password_hashes):
    return {role: make_user(db, role, password_hashes[role], email=f"{role}1@example.com")
            for role in PASSWORDS}


@pytest.fixture
def department(db):
    return make_department(db)


@pytest_asyncio.fixture
async def client(db):
    """In-process httpx AsyncClient with the database dependency overridden."""
    # Disable rate limiting so repeated logins aren't throttled
    limiter.enabled = False
    app.dependency_overrides[get_db] = lambda: db
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c
    app.dependency_overrides.clear()


def auth_headers(user: dict) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user)}"}


@pytest.fixture
def citizen_headers(users):
    return auth_headers(users["citizen"])


@pytest.fixture
def staff_headers(users):
    return auth_headers(users["staff"])


@pytest.fixture
def admin_headers(users):
    return auth_headers(users["admin"])
