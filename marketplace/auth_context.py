"""
marketplace/auth_context.py

Shared authentication context primitives for FastAPI dependency injection.

Contains:
- AuthContext: Immutable caller identity (role, subscription, agency)
- require_auth_context: FastAPI dependency for authenticated routes
- optional_auth_context: Same, but guests (no token) get None
- verify_token / create_access_token: JWT helpers

Tokens are issued by the auth service; this module only verifies them and
loads the user record, which stays the source of truth for role and plan.
"""

from __future__ import annotations

import sqlite3
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Depends, HTTPException
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel, ConfigDict

from marketplace import config
from marketplace.db import StoreError, db_session

# Security schemes for HTTPBearer
security = HTTPBearer()
optional_security = HTTPBearer(auto_error=False)


# ---------------------------------------------------------
# JWT Token Helpers
# ---------------------------------------------------------
def create_access_token(user_id: int, minutes: Optional[int] = None) -> str:
    """Sign an access token for user_id (used by operators and tests)."""
    expires = datetime.now(timezone.utc) + timedelta(minutes=minutes or config.ACCESS_TOKEN_MINUTES)
    return jwt.encode({"sub": str(user_id), "exp": expires}, config.SECRET_KEY, algorithm=config.ALGORITHM)


def verify_token(token: str) -> dict:
    """
    Verify JWT access token and return decoded payload.

    Raises:
        HTTPException(401): If token is expired or invalid
    """
    try:
        return jwt.decode(token, config.SECRET_KEY, algorithms=[config.ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")


# ---------------------------------------------------------
# AuthContext
# ---------------------------------------------------------
class AuthContext(BaseModel):
    """
    Immutable caller context derived from the JWT and the users table.
    Never trust agent_id/agency_id from request bodies or query params.

    Fields:
        user_id: User ID from JWT token
        email: User email
        role: admin / agent / agency_admin / client
        subscription_type: Plan name (resolved against the tier table, basic fallback)
        agency_id: Agency the user belongs to, if any
    """
    model_config = ConfigDict(frozen=True)

    user_id: int
    email: str
    role: str
    subscription_type: Optional[str] = None
    agency_id: Optional[int] = None


def load_auth_context(conn: sqlite3.Connection, token: str) -> AuthContext:
    """Verify token and build AuthContext from the user record."""
    payload = verify_token(token)
    user_id = payload.get("sub")

    if not user_id:
        print("[AUTH] Missing user_id in token payload")
        raise HTTPException(status_code=401, detail="Invalid token payload")

    try:
        cur = conn.cursor()
        cur.execute(
            """
            SELECT user_id, email, role, subscription_type, agency_id, is_active
            FROM users WHERE user_id = ?
            """,
            (user_id,),
        )
        user_row = cur.fetchone()
    except sqlite3.Error as e:
        print(f"[AUTH] User lookup failed: {e}")
        raise StoreError("User lookup failed") from e

    if not user_row:
        print(f"[AUTH] User not found: user_id={user_id}")
        raise HTTPException(status_code=401, detail="User not found")

    if not user_row["is_active"]:
        print(f"[AUTH] Inactive user attempted access: user_id={user_id}")
        raise HTTPException(status_code=403, detail="Account inactive")

    ctx = AuthContext(
        user_id=user_row["user_id"],
        email=user_row["email"],
        role=user_row["role"] or "client",
        subscription_type=user_row["subscription_type"],
        agency_id=user_row["agency_id"],
    )

    if config.IS_DEV:
        print(f"[AUTH] Authenticated: user_id={ctx.user_id}, role={ctx.role}, "
              f"subscription={ctx.subscription_type}, agency_id={ctx.agency_id}")

    return ctx


def require_auth_context(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    conn: sqlite3.Connection = Depends(db_session),
) -> AuthContext:
    """
    Auth context dependency for protected routes.

    Raises:
        HTTPException(401): Missing/invalid/expired token or unknown user
        HTTPException(403): Inactive user
    """
    return load_auth_context(conn, credentials.credentials)


def optional_auth_context(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(optional_security),
    conn: sqlite3.Connection = Depends(db_session),
) -> Optional[AuthContext]:
    """Auth context for public routes: None for guests, 401 for a bad token."""
    if credentials is None:
        return None
    return load_auth_context(conn, credentials.credentials)
