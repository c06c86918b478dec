# Password hashing, JWT issuance and the request-auth dependencies

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext

from .config import JWT_ALGORITHM, JWT_EXPIRE_HOURS, JWT_SECRET
from .database import executor, get_db, lookup
from .errors import AuthenticationFailed, PermissionDenied
from .models import MAX_PASSWORD_BYTES, UserResponse
from .policy import Capability, allows

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)

# token -> exp claim; entries past their exp are dropped once the list grows
_token_blacklist: Dict[str, float] = {}
DENYLIST_PRUNE_THRESHOLD = 10000


def hash_password(password: str) -> str:
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValueError(f"Password cannot exceed {MAX_PASSWORD_BYTES} bytes")
    return pwd_context.hash(password)

def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)

def create_access_token(user: dict) -> str:
    to_encode = {"sub": str(user["_id"]), "role": user["role"]}
    to_encode["exp"] = datetime.now(timezone.utc) + timedelta(hours=JWT_EXPIRE_HOURS)
    return jwt.encode(to_encode, JWT_SECRET, algorithm=JWT_ALGORITHM)

def revoke_token(token: str) -> None:
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except JWTError:
        # Invalid or expired tokens are rejected by get_current_user anyway
        return
    if len(_token_blacklist) >= DENYLIST_PRUNE_THRESHOLD:
        now = datetime.now(timezone.utc).timestamp()
        for t, exp in list(_token_blacklist.items()):
            if exp <= now:
                del _token_blacklist[t]
    _token_blacklist[token] = float(payload["exp"])

def user_to_response(user: dict, department_name: Optional[str] = None) -> UserResponse:
    return UserResponse(
        id=str(user["_id"]), name=user["name"], email=user["email"], role=user["role"],
        department=user.get("department"), department_name=department_name,
        created_at=user["created_at"])

def expand_users(db, users: List[dict]) -> List[UserResponse]:
    departments = lookup(db.departments, (u.get("department") for u in users))
    return [user_to_response(u, (departments.get(u.get("department")) or {}).get("name"))
            for u in users]


async def get_current_user(token: Optional[str] = Depends(oauth2_scheme), db=Depends(get_db)):
    if token is None:
        raise AuthenticationFailed("Not authenticated")
    if token in _token_blacklist:
        raise AuthenticationFailed("Token has been revoked")
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
        user_id: str = payload.get("sub")
        if user_id is None:
            raise AuthenticationFailed("Invalid token")
    except JWTError:
        raise AuthenticationFailed("Invalid token")
    loop = asyncio.get_event_loop()
    user = await loop.run_in_executor(executor, db.users.find_one, {"_id": user_id})
    if user is None:
        raise AuthenticationFailed("User not found")
    return user


def require_capability(capability: Capability):
    async def capability_checker(user=Depends(get_current_user)):
        if not allows(user, capability):
            raise PermissionDenied("Insufficient permissions")
        return user
    return capability_checker
