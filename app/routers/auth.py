"""
Auth router — Login, current profile, password change and reset.

Rules:
- Admins log in with their email, teachers with their employee ID (or email),
  students with their login ID (or email)
- Accounts are created by the admin only; unknown ids are rejected
- Password reset uses a 6-digit code mailed to the account email
"""

import logging
import secrets
from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status

from app.core.config import settings
from app.core.database import get_supabase
from app.core.email import send_reset_code_email
from app.core.grading import parse_timestamp
from app.core.security import (
    ROLE_TABLES, build_user, create_access_token, find_account,
    get_current_user, get_password_hash, verify_password,
)
from app.schemas.auth import ForgotPassword, PasswordChange, PasswordReset, UserLogin
from app.utils.response import success_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Authentication"])

LOGIN_ERRORS = {
    "admin": "Admin not found. Please check your email address.",
    "teacher": "Invalid credentials. Please check your Employee ID.",
    "student": "Invalid credentials",
}


@router.post("/login")
async def login(body: UserLogin):
    """Verify credentials and issue a bearer token."""
    row = find_account(body.user_type, body.login_id.strip())
    if not row:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=LOGIN_ERRORS[body.user_type],
        )

    if not verify_password(body.password, row.get("password_hash")):
        logger.info("Failed %s login for %s", body.user_type, body.login_id)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials. Please check your password.",
        )

    user = build_user(body.user_type, row)
    token = create_access_token(user)
    logger.info("%s %s logged in", body.user_type, user["user_id"])

    return success_response(
        data={"token": token, "user": user},
        message=f"Welcome back, {user['name'] or body.user_type.title()}!",
    )


@router.get("/me")
async def get_me(user: dict = Depends(get_current_user)):
    """Return current authenticated user profile."""
    if user.get("department_id"):
        db = get_supabase()
        dept = db.table("departments").select("name").eq("id", user["department_id"]).limit(1).execute()
        if dept.data:
            user["department_name"] = dept.data[0]["name"]
    return success_response(data=user)


@router.post("/change-password")
async def change_password(
    body: PasswordChange,
    user: dict = Depends(get_current_user),
):
    db = get_supabase()
    table = ROLE_TABLES[user["role"]]
    row = db.table(table).select("id, password_hash").eq("id", user["user_id"]).limit(1).execute()
    if not row.data:
        raise HTTPException(status_code=404, detail="Account not found")

    if not verify_password(body.current_password, row.data[0].get("password_hash")):
        raise HTTPException(status_code=401, detail="Current password is incorrect")

    db.table(table).update({
        "password_hash": get_password_hash(body.new_password),
        "updated_at": datetime.now(timezone.utc).isoformat(),
    }).eq("id", user["user_id"]).execute()

    return success_response(message="Password updated successfully")


@router.post("/forgot-password")
async def forgot_password(body: ForgotPassword, background_tasks: BackgroundTasks):
    """
    Issue a reset code for the account with this email.
    Always answers the same way so emails cannot be probed.
    """
    db = get_supabase()
    email = body.email.strip().lower()
    account = (
        db.table(ROLE_TABLES[body.user_type])
        .select("id, name, email")
        .eq("email", email)
        .limit(1)
        .execute()
    )

    if account.data:
        code = f"{secrets.randbelow(1_000_000):06d}"
        expires = datetime.now(timezone.utc) + timedelta(minutes=settings.RESET_TOKEN_TTL_MINUTES)
        db.table("password_reset_tokens").insert({
            "email": email,
            "token": code,
            "expires_at": expires.isoformat(),
            "used": False,
        }).execute()
        background_tasks.add_task(send_reset_code_email, email, account.data[0].get("name") or "", code)
        logger.info("Password reset code issued for %s %s", body.user_type, account.data[0]["id"])

    return success_response(message="If the account exists, a reset code has been sent to its email.")


@router.post("/reset-password")
async def reset_password(body: PasswordReset):
    db = get_supabase()
    email = body.email.strip().lower()

    tokens = (
        db.table("password_reset_tokens")
        .select("*")
        .eq("email", email)
        .eq("token", body.token.strip())
        .eq("used", False)
        .order("created_at", desc=True)
        .limit(1)
        .execute()
    )
    if not tokens.data:
        raise HTTPException(status_code=400, detail="Invalid reset code")

    token_row = tokens.data[0]
    expires_at = parse_timestamp(token_row["expires_at"])
    if expires_at and datetime.now(timezone.utc) > expires_at:
        raise HTTPException(status_code=400, detail="Reset code has expired")

    table = ROLE_TABLES[body.user_type]
    updated = db.table(table).update({
        "password_hash": get_password_hash(body.new_password),
        "updated_at": datetime.now(timezone.utc).isoformat(),
    }).eq("email", email).execute()
    if not updated.data:
        raise HTTPException(status_code=404, detail="Account not found")

    db.table("password_reset_tokens").update({"used": True}).eq("id", token_row["id"]).execute()
    return success_response(message="Password reset successfully. You can now log in.")
