import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Dict

from bson import ObjectId
from fastapi import HTTPException, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError
from passlib.context import CryptContext
from pymongo.errors import DuplicateKeyError

from config import settings
from database import db, create_document, to_object_id, serialize, now_utc
from schemas import User

log = logging.getLogger("animalmart.auth")

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
auth_scheme = HTTPBearer(auto_error=False)

# Simple in-memory rate limiting for login (per-IP)
rate_store: Dict[str, List[float]] = {}


def check_rate_limit(ip: str):
    now = datetime.now().timestamp()
    window = settings.LOGIN_RATE_LIMIT_WINDOW_SEC
    bucket = [t for t in rate_store.get(ip, []) if now - t <= window]
    if len(bucket) >= settings.LOGIN_RATE_LIMIT_MAX_ATTEMPTS:
        log.warning("Login rate limit hit for %s", ip)
        raise HTTPException(status_code=429, detail="Too many login attempts. Please try again later.")
    bucket.append(now)
    rate_store[ip] = bucket


def create_access_token(data: dict, expires_minutes: Optional[int] = None):
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + timedelta(minutes=expires_minutes or settings.TOKEN_EXPIRE_MIN)
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.JWT_ALG)


def decode_access_token(token: str) -> dict:
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALG])
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid or expired token")


def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def public_user(doc: dict) -> dict:
    user = serialize(doc)
    user.pop("password_hash", None)
    return user


def issue_token(user: dict) -> str:
    return create_access_token({
        "sub": str(user["_id"]),
        "role": user.get("role", "customer"),
        "email": user.get("email"),
        "name": user.get("name"),
    })


def get_user_by_email(email: str) -> Optional[dict]:
    return db["user"].find_one({"email": email.lower()})


def create_user(name: str, email: str, password: str, role: str = "customer") -> dict:
    email = email.lower()
    if get_user_by_email(email):
        raise HTTPException(status_code=409, detail="Email already registered")
    user = User(name=name, email=email, password_hash=hash_password(password), role=role)
    try:
        user_id = create_document("user", user)
    except DuplicateKeyError:
        raise HTTPException(status_code=409, detail="Email already registered")
    log.info("Registered %s user %s", role, email)
    return db["user"].find_one({"_id": to_object_id(user_id)})


def authenticate(email: str, password: str) -> dict:
    doc = get_user_by_email(email)
    if not doc or not verify_password(password, doc.get("password_hash", "")):
        raise HTTPException(status_code=401, detail="Invalid email or password")
    if not doc.get("is_active", True):
        raise HTTPException(status_code=403, detail="Account is deactivated")
    return doc


def update_user(user_id: str, name: Optional[str] = None, password: Optional[str] = None) -> dict:
    updates = {"updated_at": now_utc()}
    if name is not None:
        updates["name"] = name
    if password is not None:
        updates["password_hash"] = hash_password(password)
    db["user"].update_one({"_id": to_object_id(user_id)}, {"$set": updates})
    return db["user"].find_one({"_id": to_object_id(user_id)})


def _user_from_credentials(credentials: HTTPAuthorizationCredentials) -> dict:
    payload = decode_access_token(credentials.credentials)
    user_id = payload.get("sub")
    if user_id is None or not ObjectId.is_valid(user_id):
        raise HTTPException(status_code=401, detail="Invalid token")
    user = db["user"].find_one({"_id": to_object_id(user_id)})
    if not user or not user.get("is_active", True):
        raise HTTPException(status_code=401, detail="User no longer exists or is inactive")
    return public_user(user)


async def get_current_user(credentials: Optional[HTTPAuthorizationCredentials] = Depends(auth_scheme)) -> dict:
    if credentials is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return _user_from_credentials(credentials)


async def get_optional_user(credentials: Optional[HTTPAuthorizationCredentials] = Depends(auth_scheme)) -> Optional[dict]:
    if credentials is None:
        return None
    return _user_from_credentials(credentials)


async def require_admin(user: dict = Depends(get_current_user)):
    if user.get("role") != "admin":
        raise HTTPException(status_code=403, detail="Admin only")
    return user


def ensure_self_or_admin(user: dict, user_id: str):
    if user.get("role") != "admin" and user["_id"] != user_id:
        raise HTTPException(status_code=403, detail="Not allowed to access another user's data")
