"""
Security module — password hashing, session tokens, current-user resolution, role guard.

Auth Flow:
1. Client posts user_type + login id + password to /api/auth/login
2. Backend looks the account up in admin_users / teachers / students
3. Password checked against the stored hash (bcrypt, or the legacy
   hash_password() database function for accounts created before bcrypt)
4. Backend issues a bearer token
5. Every request resolves the token back to a user dict that scopes queries

Token modes:
- jwt:  signed HS256 token carrying sub (row id) and role
- mock: "mock-{role}-{identifier}" for local development and tests
"""

import logging
import secrets
import string
from datetime import datetime, timedelta, timezone

import bcrypt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from app.core.config import settings
from app.core.database import get_supabase

logger = logging.getLogger(__name__)

security_scheme = HTTPBearer()

ROLE_TABLES = {
    "admin": "admin_users",
    "teacher": "teachers",
    "student": "students",
}

# Column(s) a login id is matched against, tried in order
LOGIN_COLUMNS = {
    "admin": ["email"],
    "teacher": ["employee_id", "email"],
    "student": ["login_id", "email"],
}


# ---------------------------------------------------------------------------
# Passwords
# ---------------------------------------------------------------------------
def get_password_hash(password: str) -> str:
    salt = bcrypt.gensalt()
    hashed = bcrypt.hashpw(password.encode("utf-8"), salt)
    return hashed.decode("utf-8")


def _is_bcrypt_hash(value: str) -> bool:
    return value.startswith(("$2a$", "$2b$", "$2y$"))


def verify_password(plain_password: str, hashed_password: str | None) -> bool:
    if not hashed_password:
        return False
    if _is_bcrypt_hash(hashed_password):
        try:
            return bcrypt.checkpw(
                plain_password.encode("utf-8"),
                hashed_password.encode("utf-8"),
            )
        except ValueError:
            return False

    # Legacy accounts hashed by the database
    result = get_supabase().rpc("hash_password", {"password": plain_password}).execute()
    return result.data == hashed_password


def generate_password(length: int = 10) -> str:
    alphabet = string.ascii_letters + string.digits
    return "".join(secrets.choice(alphabet) for _ in range(length))


# ---------------------------------------------------------------------------
# Account lookup
# ---------------------------------------------------------------------------
def find_account(role: str, login_id: str) -> dict | None:
    """Find the account row for a role by any of its login columns."""
    if role not in ROLE_TABLES:
        return None
    db = get_supabase()
    for column in LOGIN_COLUMNS[role]:
        result = (
            db.table(ROLE_TABLES[role])
            .select("*")
            .eq(column, login_id.lower() if column == "email" else login_id)
            .limit(1)
            .execute()
        )
        if result.data:
            return result.data[0]
    return None


def build_user(role: str, row: dict) -> dict:
    """Shape an account row into the user dict handed to routers."""
    user = {
        "user_id": row["id"],
        "role": role,
        "name": row.get("name") or "",
        "email": row.get("email", ""),
        "department_id": row.get("department_id"),
    }
    if role == "teacher":
        user["employee_id"] = row.get("employee_id")
    elif role == "student":
        user["login_id"] = row.get("login_id")
        user["semester"] = row.get("semester")
        user["section"] = row.get("section")
    return user


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------
def create_access_token(user: dict) -> str:
    if settings.AUTH_MODE == "mock":
        identifier = {
            "admin": user.get("email"),
            "teacher": user.get("employee_id"),
            "student": user.get("login_id"),
        }[user["role"]]
        return f"mock-{user['role']}-{identifier}"

    expires = datetime.now(timezone.utc) + timedelta(minutes=settings.TOKEN_TTL_MINUTES)
    claims = {"sub": user["user_id"], "role": user["role"], "exp": expires}
    return jwt.encode(claims, settings.SECRET_KEY, algorithm=settings.TOKEN_ALGORITHM)


def _invalid_token() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid or expired session. Please log in again.",
    )


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security_scheme),
) -> dict:
    """Validate the Bearer token and return the user dict."""
    token = credentials.credentials

    if settings.AUTH_MODE == "mock":
        return _mock_auth(token)
    return _jwt_auth(token)


def _mock_auth(token: str) -> dict:
    if not token.startswith("mock-"):
        raise _invalid_token()
    parts = token.split("-", 2)
    if len(parts) != 3 or parts[1] not in ROLE_TABLES:
        raise _invalid_token()
    role, identifier = parts[1], parts[2]

    row = find_account(role, identifier)
    if not row:
        raise _invalid_token()
    return build_user(role, row)


def _jwt_auth(token: str) -> dict:
    try:
        claims = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.TOKEN_ALGORITHM])
    except JWTError:
        raise _invalid_token()

    role = claims.get("role")
    user_id = claims.get("sub")
    if role not in ROLE_TABLES or not user_id:
        raise _invalid_token()

    result = (
        get_supabase()
        .table(ROLE_TABLES[role])
        .select("*")
        .eq("id", user_id)
        .limit(1)
        .execute()
    )
    if not result.data:
        logger.warning("Token for %s %s refers to a deleted account", role, user_id)
        raise _invalid_token()
    return build_user(role, result.data[0])


# ---------------------------------------------------------------------------
# Role guard dependency
# ---------------------------------------------------------------------------
def require_role(allowed_roles: list[str]):
    """
    Usage:
        @router.get("/teacher-only")
        async def endpoint(user=Depends(require_role(["teacher"]))):
    """

    async def role_checker(
        user: dict = Depends(get_current_user),
    ) -> dict:
        if user["role"] not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Role '{user['role']}' not authorized. Required: {allowed_roles}",
            )
        return user

    return role_checker
