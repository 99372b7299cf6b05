import logging
from datetime import datetime, timedelta, timezone
import jwt
from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy.future import select
from elearning.config import settings
from elearning.database import get_db, insert_if_absent
from elearning.errors import BadRequest, Conflict, NotFound, Internal
from elearning.limiter import limiter
from elearning.models import User, Lecture, Role
from elearning.routers.auth import (
    hash_password, verify_password, generate_otp, create_token, decode_token,
    create_session_token, is_auth,
)
from elearning.services import progress as progress_service
from elearning.services.mailer import send_otp_mail, send_reset_mail

logger = logging.getLogger(__name__)

router = APIRouter()

MAIL_FAILED = "Failed to send email, please try again"

class UserRegister(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=1)

class UserVerify(BaseModel):
    otp: int
    activationToken: str

class UserLogin(BaseModel):
    email: EmailStr
    password: str

class ForgotPassword(BaseModel):
    email: EmailStr

class ResetPassword(BaseModel):
    password: str = Field(..., min_length=1)

async def find_user_by_email(db, email: str) -> User | None:
    result = await db.execute(select(User).where(User.email == email))
    return result.scalars().first()

@router.post("/user/register")
@limiter.limit("5/minute")
async def register(request: Request, data: UserRegister, db = Depends(get_db)):
    if await find_user_by_email(db, data.email):
        raise Conflict("User Already exists")

    # Nothing is stored until the OTP comes back; the pending user rides in the token.
    otp = generate_otp()
    pending_user = {"name": data.name, "email": data.email, "password": hash_password(data.password)}
    activation_token = create_token(
        {"user": pending_user, "otp": otp},
        settings.ACTIVATION_SECRET,
        timedelta(minutes=settings.ACTIVATION_TOKEN_MINUTES),
    )

    if not await send_otp_mail(data.email, data.name, otp):
        raise Internal(MAIL_FAILED)
    logger.info(f"Registration pending for {data.email}")

    return {"message": "Otp send to your mail", "activationToken": activation_token}

@router.post("/user/verify")
@limiter.limit("10/minute")
async def verify_user(request: Request, data: UserVerify, db = Depends(get_db)):
    try:
        decoded = decode_token(data.activationToken, settings.ACTIVATION_SECRET)
    except jwt.InvalidTokenError:
        raise BadRequest("Otp Expired")

    if decoded.get("otp") != data.otp:
        raise BadRequest("Wrong Otp")

    pending_user = decoded["user"]
    created = await insert_if_absent(
        db,
        User,
        {
            "name": pending_user["name"],
            "email": pending_user["email"],
            "hashed_password": pending_user["password"],
            "role": Role.USER.value,
            "is_verified": True,
        },
        ["email"],
    )
    if not created:
        raise Conflict("User Already exists")
    await db.commit()

    logger.info(f"User registered: {pending_user['email']}")
    return {"message": "User Registered"}

@router.post("/user/login")
@limiter.limit("10/minute")
async def login(request: Request, data: UserLogin, db = Depends(get_db)):
    user = await find_user_by_email(db, data.email)
    if not user:
        raise BadRequest("No User with this email")

    if not verify_password(data.password, user.hashed_password):
        raise BadRequest("wrong Password")

    return {
        "message": f"Welcome back {user.name}",
        "token": create_session_token(user),
        "user": user.to_dict(),
    }

@router.get("/user/me")
async def my_profile(user: User = Depends(is_auth)):
    return {"user": user.to_dict()}

@router.post("/user/forgot")
@limiter.limit("5/minute")
async def forgot_password(request: Request, data: ForgotPassword, db = Depends(get_db)):
    user = await find_user_by_email(db, data.email)
    if not user:
        raise NotFound("No User with this email")

    expires_in = timedelta(minutes=settings.RESET_TOKEN_MINUTES)
    token = create_token({"email": user.email}, settings.FORGOT_SECRET, expires_in)

    user.reset_password_expire = datetime.now(timezone.utc) + expires_in
    db.add(user)
    await db.commit()

    if not await send_reset_mail(user.email, token):
        raise Internal(MAIL_FAILED)
    return {"message": "Reset Password Link is send to you mail"}

@router.post("/user/reset")
async def reset_password(token: str, data: ResetPassword, db = Depends(get_db)):
    try:
        decoded = decode_token(token, settings.FORGOT_SECRET)
    except jwt.InvalidTokenError:
        raise BadRequest("Token Expired")

    user = await find_user_by_email(db, decoded.get("email"))
    if not user:
        raise NotFound("No user with this email")

    if user.reset_password_expire is None:
        raise BadRequest("Token Expired")
    # SQLite hands back naive datetimes
    if user.reset_password_expire.replace(tzinfo=timezone.utc) < datetime.now(timezone.utc):
        raise BadRequest("Token Expired")

    user.hashed_password = hash_password(data.password)
    user.reset_password_expire = None
    db.add(user)
    await db.commit()

    logger.info(f"Password reset for {user.email}")
    return {"message": "Password Reset"}

@router.post("/user/progress")
async def add_progress(course: int, lectureId: int, user: User = Depends(is_auth), db = Depends(get_db)):
    result = await db.execute(select(Lecture).where(Lecture.id == lectureId, Lecture.course_id == course))
    if not result.scalars().first():
        raise NotFound("Lecture not found")

    outcome = await progress_service.record_completion(db, user.id, course, lectureId)

    if outcome == progress_service.CREATED:
        return JSONResponse(status_code=status.HTTP_201_CREATED, content={"message": "New Progress added"})
    if outcome == progress_service.APPENDED:
        return {"message": "new Progress added"}
    return {"message": "Progress recorded"}

@router.get("/user/progress")
async def get_your_progress(course: int, user: User = Depends(is_auth), db = Depends(get_db)):
    progress = await progress_service.get_progress(db, user.id, course)
    if not progress:
        raise NotFound("No progress found")

    all_lectures = await progress_service.count_lectures(db, course)
    completed_lectures = len(progress.completed_lectures)

    return {
        "courseProgressPercentage": progress_service.progress_percentage(completed_lectures, all_lectures),
        "completedLectures": completed_lectures,
        "allLectures": all_lectures,
        "progress": [progress.to_dict()],
    }
