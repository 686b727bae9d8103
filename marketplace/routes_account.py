"""
marketplace/routes_account.py

Plan and usage for the signed-in user.
"""

import sqlite3

from fastapi import APIRouter, Depends

from marketplace.auth_context import AuthContext, require_auth_context
from marketplace.db import db_session
from marketplace.dependencies import get_quota_enforcer
from marketplace.quota import QuotaEnforcer
from marketplace.schemas_listings import PlanUsageResponse

router = APIRouter(
    prefix="/account",
    tags=["account"],
)


@router.get("/plan", response_model=PlanUsageResponse)
def get_plan_usage(
    ctx: AuthContext = Depends(require_auth_context),
    conn: sqlite3.Connection = Depends(db_session),
    enforcer: QuotaEnforcer = Depends(get_quota_enforcer),
) -> PlanUsageResponse:
    """
    Resolved tier, its limits and live usage.
    Unknown or missing subscription types report the basic tier.
    """
    tier = enforcer.tier_for(ctx)
    return PlanUsageResponse(
        plan=tier.name,
        limits={
            "max_listings": tier.max_listings,
            "max_featured": tier.max_featured,
            "featured_days": tier.featured_days,
        },
        usage={
            "active_listings": enforcer.count_active_listings(conn, ctx.user_id),
            "active_featured": enforcer.count_active_featured(conn, ctx.user_id),
        },
    )
