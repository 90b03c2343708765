import logging
import os
import re
import secrets
from datetime import timedelta
from typing import Literal, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from pydantic import BaseModel, EmailStr
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

import mailer
from database import RESET_TOKENS, USERS, create_document, get_db
from schemas import ResetToken, User
from security import create_token, hash_password, verify_password
from side_effects import dispatch
from utils import as_utc, now
from visits import track_visit

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

APP_ENV = os.getenv("APP_ENV", "production")
ALLOWED_EMAIL_DOMAIN = os.getenv("ALLOWED_EMAIL_DOMAIN", "geetauniversity.edu.in")
OTP_TTL_MIN = 5
MIN_PASSWORD_LENGTH = 6


def email_allowed(email: str) -> bool:
    return re.fullmatch(r"[^\s@]+@" + re.escape(ALLOWED_EMAIL_DOMAIN), email or "") is not None


def generate_otp() -> str:
    return str(100000 + secrets.randbelow(900000))


def auth_user_response(user: dict) -> dict:
    return {
        "id": str(user["_id"]),
        "name": user.get("name"),
        "email": user.get("email"),
        "role": user.get("role"),
        "course": user.get("course"),
        "roll_number": user.get("roll_number"),
        "department": user.get("department"),
        "profile_image": user.get("profile_image"),
    }


# ----------------------
# Auth Models
# ----------------------
class SignupRequest(BaseModel):
    name: str
    email: str
    password: str
    confirm_password: str
    role: Optional[str] = None
    course: Optional[str] = None
    roll_number: Optional[str] = None


class LoginRequest(BaseModel):
    email: str
    password: str
    role: Optional[Literal["student", "teacher"]] = None


class ForgotRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    email: EmailStr
    otp: str
    new_password: str


# ----------------------
# Auth endpoints
# ----------------------
@router.post("/signup", status_code=201)
def signup(payload: SignupRequest, background_tasks: BackgroundTasks, db: Database = Depends(get_db)):
    if not payload.name.strip() or not payload.email.strip() or not payload.password:
        raise HTTPException(status_code=400, detail="Please fill all required fields")
    if payload.role != "student":
        raise HTTPException(
            status_code=403,
            detail="Teacher registration is not available. Teachers must be added by the administrator.",
        )
    course = (payload.course or "").strip()
    roll_number = (payload.roll_number or "").strip()
    if not course or not roll_number:
        raise HTTPException(status_code=400, detail="Please fill all required fields (Course and Roll Number)")
    if payload.password != payload.confirm_password:
        raise HTTPException(status_code=400, detail="Passwords do not match")
    if len(payload.password) < MIN_PASSWORD_LENGTH:
        raise HTTPException(status_code=400, detail=f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")

    email = payload.email.strip().lower()
    if not email_allowed(email):
        raise HTTPException(status_code=400, detail=f"Email must be from {ALLOWED_EMAIL_DOMAIN} domain")
    if db[USERS].find_one({"email": email}):
        raise HTTPException(status_code=400, detail="Email already registered")
    if db[USERS].find_one({"roll_number": roll_number}):
        raise HTTPException(status_code=400, detail="Roll number already registered")

    user = User(
        name=payload.name.strip(),
        email=email,
        password_hash=hash_password(payload.password),
        role="student",
        course=course,
        roll_number=roll_number,
    )
    try:
        user_doc = create_document(USERS, user)
    except DuplicateKeyError as e:
        field = "Roll number" if "roll_number" in str(e) else "Email"
        raise HTTPException(status_code=400, detail=f"{field} already exists")

    logger.info("Registered student %s", email)
    dispatch(background_tasks, mailer.send_welcome_email, email, user_doc["name"])
    return {"token": create_token(user_doc), "user": auth_user_response(user_doc)}


@router.post("/login")
def login(payload: LoginRequest, background_tasks: BackgroundTasks, db: Database = Depends(get_db)):
    if not payload.email or not payload.password:
        raise HTTPException(status_code=400, detail="Please provide email and password")
    user = db[USERS].find_one({"email": payload.email.strip().lower()})
    if not user:
        raise HTTPException(status_code=401, detail="Invalid email or password")
    if payload.role and user.get("role") != payload.role:
        raise HTTPException(
            status_code=401,
            detail=f"Invalid credentials for {payload.role}. Please select the correct role.",
        )
    if not verify_password(payload.password, user.get("password_hash", "")):
        raise HTTPException(status_code=401, detail="Invalid email or password")

    dispatch(background_tasks, track_visit, db, user["_id"])
    logger.info("Login successful for %s", user["email"])
    return {"token": create_token(user), "user": auth_user_response(user)}


@router.post("/forgot")
def forgot_password(payload: ForgotRequest, background_tasks: BackgroundTasks, db: Database = Depends(get_db)):
    email = payload.email.lower()
    if not db[USERS].find_one({"email": email}):
        raise HTTPException(status_code=404, detail="User not found")

    otp = generate_otp()
    db[RESET_TOKENS].delete_many({"email": email})
    create_document(
        RESET_TOKENS,
        ResetToken(email=email, otp=otp, expires_at=now() + timedelta(minutes=OTP_TTL_MIN)),
    )
    dispatch(background_tasks, mailer.send_otp_email, email, otp, OTP_TTL_MIN)
    return {"message": "OTP sent to email", "otp": otp if APP_ENV == "development" else None}


@router.post("/reset-password")
def reset_password(payload: ResetPasswordRequest, db: Database = Depends(get_db)):
    email = payload.email.lower()
    token = db[RESET_TOKENS].find_one({"email": email, "otp": payload.otp})
    if not token:
        raise HTTPException(status_code=400, detail="Invalid or expired OTP")
    if now() > as_utc(token["expires_at"]):
        db[RESET_TOKENS].delete_one({"_id": token["_id"]})
        raise HTTPException(status_code=400, detail="OTP has expired")
    if len(payload.new_password) < MIN_PASSWORD_LENGTH:
        raise HTTPException(status_code=400, detail=f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")

    user = db[USERS].find_one({"email": email})
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    db[USERS].update_one(
        {"_id": user["_id"]},
        {"$set": {"password_hash": hash_password(payload.new_password), "updated_at": now()}},
    )
    db[RESET_TOKENS].delete_one({"_id": token["_id"]})
    logger.info("Password reset for %s", email)
    return {"message": "Password reset successfully"}


def seed_teacher(db: Database) -> None:
    """Provision the teacher account configured through TEACHER_* env vars."""
    email = os.getenv("TEACHER_EMAIL")
    password = os.getenv("TEACHER_PASSWORD")
    if not email or not password:
        return
    email = email.lower()
    if db[USERS].find_one({"email": email}):
        return
    teacher = User(
        name=os.getenv("TEACHER_NAME", "Faculty"),
        email=email,
        password_hash=hash_password(password),
        role="teacher",
        department=os.getenv("TEACHER_DEPARTMENT", "General"),
    )
    doc = teacher.model_dump(exclude={"roll_number", "course"})
    doc["created_at"] = doc["updated_at"] = now()
    db[USERS].insert_one(doc)
    logger.info("Seeded teacher account %s", email)
