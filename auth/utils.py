from datetime import datetime, timedelta, timezone

from jose import jwt, JWTError
from passlib.context import CryptContext
from fastapi import Depends, HTTPException
from fastapi.security import OAuth2PasswordBearer
from bson import ObjectId

from config import SECRET_KEY, ALGORITHM, JWT_EXPIRES_MINUTES
from services.errors import AuthenticationError
from utils.database import MongoDatabase, get_database
from utils.pymango_wrappers import async_find_one


pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(user: dict, expires_minutes: int = JWT_EXPIRES_MINUTES) -> str:
    # include user_id, email, and role in payload
    to_encode = {
        "user_id": str(user["_id"]),
        "email": user.get("email"),
        "role": user.get("role"),
        "exp": datetime.now(timezone.utc) + timedelta(minutes=expires_minutes),
    }
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


async def get_current_user(
    token: str = Depends(oauth2_scheme),
    database: MongoDatabase = Depends(get_database),
):
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        raise AuthenticationError("Invalid token")

    user_id = payload.get("user_id")
    if not user_id or not ObjectId.is_valid(user_id):
        raise AuthenticationError("Invalid token payload")

    user = await async_find_one(database.users, {"_id": ObjectId(user_id)}, {"password": 0})
    if not user:
        raise AuthenticationError("User not found")
    if not user.get("isActive", True):
        raise AuthenticationError("Account is deactivated")
    return user


def require_role(role: str):
    """Dependency that only lets users with ``role`` through."""

    async def checker(current_user=Depends(get_current_user)):
        if current_user.get("role") != role:
            raise HTTPException(status_code=403, detail=f"Access denied. Only {role} users can perform this action.")
        return current_user

    return checker
