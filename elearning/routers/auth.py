import secrets
from datetime import datetime, timedelta, timezone
import jwt
from fastapi import Depends, Header
from passlib.context import CryptContext
from sqlalchemy.future import select
from elearning.config import settings
from elearning.database import get_db
from elearning.errors import Unauthorized, Forbidden
from elearning.models import User, Role

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

JWT_ALGORITHM = "HS256"

def hash_password(password: str):
    return pwd_context.hash(password)

def verify_password(plain_password: str, hashed_password: str):
    return pwd_context.verify(plain_password, hashed_password)

def generate_otp() -> int:
    """Six digit numeric one-time code."""
    return 100000 + secrets.randbelow(900000)

def create_token(payload: dict, secret: str, expires_in: timedelta) -> str:
    claims = dict(payload)
    claims["exp"] = datetime.now(timezone.utc) + expires_in
    return jwt.encode(claims, secret, algorithm=JWT_ALGORITHM)

def decode_token(token: str, secret: str) -> dict:
    """Raises jwt.InvalidTokenError (incl. ExpiredSignatureError) on a bad token."""
    return jwt.decode(token, secret, algorithms=[JWT_ALGORITHM])

def create_session_token(user: User) -> str:
    return create_token({"_id": user.id}, settings.JWT_SECRET, timedelta(days=settings.SESSION_TOKEN_DAYS))

async def is_auth(token: str | None = Header(None), db = Depends(get_db)) -> User:
    """Dependency: resolves the `token` header to the requesting User."""
    if not token:
        raise Unauthorized("Please Login", status_code=403)

    try:
        decoded = decode_token(token, settings.JWT_SECRET)
    except jwt.InvalidTokenError:
        raise Unauthorized("Login First")

    result = await db.execute(select(User).where(User.id == decoded.get("_id")))
    user = result.scalars().first()
    if not user:
        raise Unauthorized("Login First")
    return user

async def is_admin(user: User = Depends(is_auth)) -> User:
    if not user.has_role(Role.ADMIN):
        raise Forbidden("You are not admin")
    return user

async def is_superadmin(user: User = Depends(is_auth)) -> User:
    if not user.has_role(Role.SUPERADMIN):
        raise Forbidden("This endpoint is assign to superadmin")
    return user
