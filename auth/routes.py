from datetime import datetime, timedelta, timezone
from typing import Literal
import logging

from fastapi import APIRouter, HTTPException, Depends, Form, status
from pydantic import BaseModel, EmailStr, Field
from pymongo.errors import DuplicateKeyError

from auth.utils import (
    get_password_hash,
    verify_password,
    create_access_token,
    get_current_user,
)
from utils.database import MongoDatabase, get_database
from utils.pymango_wrappers import async_find_one, async_insert_one, async_update_one, convert_objectids


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Auth"])

MAX_LOGIN_ATTEMPTS = 5
LOCK_DURATION = timedelta(hours=2)


class RegisterRequest(BaseModel):
    username: str = Field(..., min_length=3, max_length=30, pattern=r"^[A-Za-z0-9_]+$")
    email: EmailStr
    password: str = Field(..., min_length=6)
    role: Literal["Interviewer", "Interviewee"]


def public_user(user: dict) -> dict:
    user = convert_objectids({k: v for k, v in user.items() if k not in ("password", "loginAttempts", "lockUntil")})
    user["id"] = user.pop("_id")
    return user


def _as_utc(value):
    # mongo hands datetimes back naive
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(request: RegisterRequest, database: MongoDatabase = Depends(get_database)):
    email = request.email.lower()

    existing = await async_find_one(database.users, {"$or": [{"email": email}, {"username": request.username}]})
    if existing:
        detail = "An account with this email already exists" if existing["email"] == email \
            else "This username is already taken"
        raise HTTPException(status_code=400, detail=detail)

    user_doc = {
        "username": request.username,
        "email": email,
        "password": get_password_hash(request.password),
        "role": request.role,
        "isActive": True,
        "loginAttempts": 0,
        "createdAt": datetime.now(timezone.utc),
    }
    if request.role == "Interviewee":
        user_doc["intervieweeInfo"] = {"documents": []}

    try:
        result = await async_insert_one(database.users, user_doc)
    except DuplicateKeyError:
        raise HTTPException(status_code=400, detail="User already exists")
    user_doc["_id"] = result.inserted_id
    logger.info(f"Registered {request.role} {request.username}")

    return {
        "success": True,
        "message": "User registered successfully",
        "user": public_user(user_doc),
        "access_token": create_access_token(user_doc),
        "token_type": "bearer",
    }


@router.post("/login")
async def login(
    email: str = Form(...),
    password: str = Form(...),
    database: MongoDatabase = Depends(get_database),
):
    user = await async_find_one(database.users, {"email": email.lower()})
    if not user:
        raise HTTPException(status_code=401, detail="Invalid email or password")

    now = datetime.now(timezone.utc)
    lock_until = user.get("lockUntil")
    if lock_until and _as_utc(lock_until) > now:
        raise HTTPException(
            status_code=423,
            detail="Account is temporarily locked due to too many failed login attempts. Please try again later.",
        )

    if not user.get("isActive", True):
        raise HTTPException(status_code=401, detail="Account is deactivated. Please contact support.")

    if not verify_password(password, user["password"]):
        # an expired lock starts a fresh count
        attempts = 1 if lock_until else user.get("loginAttempts", 0) + 1
        update = {"$set": {"loginAttempts": attempts}, "$unset": {"lockUntil": ""}}
        if attempts >= MAX_LOGIN_ATTEMPTS:
            update = {"$set": {"loginAttempts": attempts, "lockUntil": now + LOCK_DURATION}}
            logger.warning(f"Locking account {user['_id']} after {attempts} failed logins")
        await async_update_one(database.users, {"_id": user["_id"]}, update)
        raise HTTPException(status_code=401, detail="Invalid email or password")

    await async_update_one(
        database.users,
        {"_id": user["_id"]},
        {"$set": {"loginAttempts": 0, "lastLogin": now}, "$unset": {"lockUntil": ""}},
    )

    return {"access_token": create_access_token(user), "token_type": "bearer", "user": public_user(user)}


@router.get("/me")
def read_users_me(current_user=Depends(get_current_user)):
    return {"success": True, "user": public_user(current_user)}
