"""
Accounts, password hashing and JWT sessions.

Shoppers sign up with an email or a phone number. Admin routes require a
token whose user has ``is_admin`` set.
"""
import re
from datetime import timedelta
from typing import Optional

import jwt
from bson import ObjectId
from fastapi import Cookie, Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from passlib.context import CryptContext
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

import config
from database import create_document, get_db, page_window, total_pages, utcnow
from errors import DuplicateUser, Unauthenticated, Unauthorized, UserNotFound, ValidationError
from schemas import User

SESSION_COOKIE = "session"
EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

security = HTTPBearer(auto_error=False)
password_ctx = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return password_ctx.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    if not hashed:
        return False
    return password_ctx.verify(password, hashed)


def create_token(user: dict) -> str:
    now = utcnow()
    payload = {
        "sub": str(user["_id"]),
        "email": user.get("email") or user.get("phone"),
        "is_admin": user.get("is_admin", False),
        "exp": now + timedelta(minutes=config.JWT_EXPIRES_MIN),
        "iat": now,
    }
    return jwt.encode(payload, config.JWT_SECRET, algorithm="HS256")


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, config.JWT_SECRET, algorithms=["HS256"])
    except jwt.ExpiredSignatureError:
        raise Unauthenticated("Token expired")
    except jwt.InvalidTokenError:
        raise Unauthenticated("Invalid token")


def public_user(user: dict) -> dict:
    return {
        "id": str(user["_id"]),
        "name": user.get("name"),
        "email": user.get("email"),
        "phone": user.get("phone"),
        "isAdmin": user.get("is_admin", False),
    }


def signup(db: Database, name: Optional[str], identifier: Optional[str], password: Optional[str]) -> dict:
    if not name or not identifier or not password:
        raise ValidationError("Missing fields")

    identifier = identifier.strip()
    is_email = bool(EMAIL_RE.match(identifier))
    lookup = {"email": identifier.lower()} if is_email else {"phone": identifier}
    if db["user"].find_one(lookup):
        raise DuplicateUser()

    user = User(
        name=name.strip(),
        email=identifier.lower() if is_email else None,
        phone=None if is_email else identifier,
        hashed_password=hash_password(password),
    )
    # Sparse unique indexes: leave the unused contact field out entirely
    doc = user.model_dump(exclude_none=True)
    try:
        user_id = create_document(db, "user", doc)
    except DuplicateKeyError:
        raise DuplicateUser()
    return db["user"].find_one({"_id": ObjectId(user_id)})


def login(db: Database, identifier: Optional[str], password: Optional[str]) -> dict:
    if not identifier or not password:
        raise ValidationError("Email/phone and password are required")
    identifier = identifier.strip()
    user = db["user"].find_one({"$or": [{"email": identifier.lower()}, {"phone": identifier}]})
    if not user:
        raise UserNotFound("No account found with this email or phone")
    if not verify_password(password, user.get("hashed_password", "")):
        raise Unauthenticated("Invalid credentials")
    return user


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    session: Optional[str] = Cookie(default=None),
    db: Database = Depends(get_db),
) -> dict:
    token = credentials.credentials if credentials else session
    if not token:
        raise Unauthenticated("Not authenticated")
    payload = decode_token(token)
    uid = payload.get("sub")
    if not uid or not ObjectId.is_valid(uid):
        raise Unauthenticated("Invalid token")
    user = db["user"].find_one({"_id": ObjectId(uid)})
    if not user or not user.get("is_active", True):
        raise Unauthenticated("User not found")
    return user


async def require_admin(user: dict = Depends(get_current_user)) -> dict:
    if not user.get("is_admin"):
        raise Unauthorized("Admin only")
    return user


def list_users(db: Database, search: str = "", page: int = 1, limit: int = 10) -> dict:
    search = (search or "").strip()
    filt = {}
    if search:
        pattern = {"$regex": re.escape(search), "$options": "i"}
        filt = {"$or": [{"name": pattern}, {"email": pattern}, {"phone": pattern}]}

    page, limit, skip = page_window(page, limit)
    total = db["user"].count_documents(filt)
    users = db["user"].find(filt).sort("created_at", -1).skip(skip).limit(limit)

    data = []
    for u in users:
        uid = str(u["_id"])
        out = public_user(u)
        out["createdAt"] = u.get("created_at")
        out["updatedAt"] = u.get("updated_at")
        out["_count"] = {
            "orders": db["order"].count_documents({"user_id": uid}),
            "cartItems": db["cart"].count_documents({"user_id": uid}),
        }
        data.append(out)

    return {
        "data": data,
        "totalUsers": total,
        "totalPages": total_pages(total, limit),
        "currentPage": page,
        "limit": limit,
    }
