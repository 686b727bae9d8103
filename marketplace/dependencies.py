"""
marketplace/dependencies.py

Reusable FastAPI dependencies for role checks and quota enforcement.
"""

from __future__ import annotations

import sqlite3
from typing import Callable

from fastapi import Depends, HTTPException, Request

from marketplace import config
from marketplace.auth_context import AuthContext, require_auth_context
from marketplace.db import StoreError, db_session
from marketplace.listing_query import ListingQueryEngine
from marketplace.quota import QuotaAction, QuotaDenied, QuotaEnforcer


def get_quota_enforcer(request: Request) -> QuotaEnforcer:
    """QuotaEnforcer built at startup from the tier table (app.state)."""
    return request.app.state.quota_enforcer


def get_query_engine(request: Request) -> ListingQueryEngine:
    return request.app.state.query_engine


def require_role(*roles: str) -> Callable:
    """
    FastAPI dependency factory restricting a route to the given roles.

    Raises:
        HTTPException(403): If the caller's role is not listed
    """
    def _check_role(ctx: AuthContext = Depends(require_auth_context)) -> AuthContext:
        if ctx.role not in roles:
            if config.IS_DEV:
                print(f"[AUTHZ] Role denied: role={ctx.role}, allowed={roles}")
            raise HTTPException(status_code=403, detail="Insufficient permissions for this action")
        return ctx

    return _check_role


def require_quota(action: QuotaAction) -> Callable:
    """
    FastAPI dependency factory enforcing subscription quotas before a write.

    The count runs on the request's db_session connection, which the route
    reuses for its write (FastAPI caches the dependency per request).

    Usage in routes:
        @router.post("", dependencies=[Depends(require_quota(QuotaAction.ADD_LISTING))])
        def create_listing(conn = Depends(db_session), ...):
            ...

    Raises:
        QuotaDenied: Rendered as HTTP 403 {"error": message} by the app
        StoreError: Rendered as HTTP 500 by the app
    """
    def _check_quota(
        ctx: AuthContext = Depends(require_auth_context),
        conn: sqlite3.Connection = Depends(db_session),
        enforcer: QuotaEnforcer = Depends(get_quota_enforcer),
    ) -> AuthContext:
        if config.QUOTA_STRICT_LOCKING and not conn.in_transaction:
            # Hold the write lock from the count until the route commits
            try:
                conn.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as e:
                print(f"[QUOTA] Could not take write lock: {e}")
                raise StoreError("Could not lock store for quota check") from e

        decision = enforcer.check_quota(conn, ctx, action)

        if not decision.allowed:
            print(f"[QUOTA] Denied: action={action.value}, user_id={ctx.user_id}, "
                  f"subscription={ctx.subscription_type}, reason={decision.reason}, limit={decision.limit}")
            raise QuotaDenied(decision)

        if config.IS_DEV:
            print(f"[QUOTA] Allowed: action={action.value}, user_id={ctx.user_id}, "
                  f"subscription={ctx.subscription_type}")
        return ctx

    return _check_quota
