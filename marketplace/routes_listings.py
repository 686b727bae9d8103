"""
marketplace/routes_listings.py

Listing endpoints: public browse/search, single listing, and the mutating
actions (create, update, delete, feature).

Security guarantees:
- Browse is public; guests and non-admins only see public statuses
- Create is gated by the addListing quota, feature by the featureListing quota
- agent_id/agency_id come from the auth context, never from the client
- Listings the caller cannot manage answer 404 (no info leak)
"""

from __future__ import annotations

import sqlite3
from datetime import timedelta
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Request, Response

from marketplace import config
from marketplace.auth_context import AuthContext, optional_auth_context
from marketplace.db import StoreError, db_session, now_timestamp, to_timestamp, utcnow
from marketplace.dependencies import get_query_engine, get_quota_enforcer, require_quota, require_role
from marketplace.listing_query import ListingQueryEngine, QueryResult, parse_query_request
from marketplace.models import LISTING_MANAGER_ROLES, PUBLIC_STATUSES, UserRole
from marketplace.quota import QuotaAction, QuotaEnforcer
from marketplace.schemas_listings import (
    FeatureListingRequest,
    ListingCreateRequest,
    ListingPageResponse,
    ListingResponse,
    ListingUpdateRequest,
)


router = APIRouter(
    prefix="/listings",
    tags=["listings"],
)


# ---------------------------------------------------------
# Helpers (shared with dashboards and favourites)
# ---------------------------------------------------------
def listing_from_row(row: Any) -> ListingResponse:
    data = dict(row)
    data["is_featured"] = bool(data.get("is_featured"))
    return ListingResponse(**data)


def page_response(result: QueryResult) -> ListingPageResponse:
    return ListingPageResponse(
        listings=[listing_from_row(item) for item in result.items],
        total=result.total,
        total_pages=result.total_pages,
        current_page=result.page,
    )


def fetch_listing(conn: sqlite3.Connection, property_id: int) -> Optional[sqlite3.Row]:
    try:
        cur = conn.cursor()
        cur.execute("SELECT * FROM listings WHERE property_id = ?", (property_id,))
        return cur.fetchone()
    except sqlite3.Error as e:
        print(f"[LISTINGS] DB error on fetch: {e}")
        raise StoreError("Listing lookup failed") from e


def can_manage(ctx: AuthContext, row: sqlite3.Row) -> bool:
    """Owner agent, admin of the listing's agency, or platform admin."""
    if ctx.role == UserRole.admin.value:
        return True
    if ctx.role == UserRole.agent.value:
        return row["agent_id"] == ctx.user_id
    if ctx.role == UserRole.agency_admin.value:
        return ctx.agency_id is not None and row["agency_id"] == ctx.agency_id
    return False


def fetch_managed_listing(conn: sqlite3.Connection, property_id: int, ctx: AuthContext) -> sqlite3.Row:
    row = fetch_listing(conn, property_id)
    if row is None or not can_manage(ctx, row):
        # 404 whether the listing doesn't exist or belongs to someone else
        raise HTTPException(status_code=404, detail="Listing not found")
    return row


def _column_values(fields: Dict[str, Any]) -> Dict[str, Any]:
    return {key: getattr(value, "value", value) for key, value in fields.items()}


# ---------------------------------------------------------
# Public reads
# ---------------------------------------------------------
@router.get("", response_model=ListingPageResponse)
def browse_listings(
    request: Request,
    ctx: Optional[AuthContext] = Depends(optional_auth_context),
    conn: sqlite3.Connection = Depends(db_session),
    engine: ListingQueryEngine = Depends(get_query_engine),
) -> ListingPageResponse:
    """
    Search and browse listings.

    Query params: search|location, propertyType, subtype, bedrooms, bathrooms,
    purchase_category, min_price, max_price, status, agent_id, agency_id,
    featured, q, sort, direction, page, limit (default 20).
    """
    query = parse_query_request(request.query_params, default_limit=config.SEARCH_PAGE_LIMIT)
    if ctx is None or ctx.role != UserRole.admin.value:
        query = query.scoped(visible_statuses=PUBLIC_STATUSES)

    result = engine.query(conn, query)
    return page_response(result)


@router.get("/categories", response_model=List[str])
def list_purchase_categories(conn: sqlite3.Connection = Depends(db_session)) -> List[str]:
    """Distinct purchase categories in use, prefixed with "All"."""
    try:
        cur = conn.cursor()
        cur.execute(
            """
            SELECT DISTINCT purchase_category FROM listings
            WHERE purchase_category IS NOT NULL AND purchase_category != ''
            ORDER BY purchase_category
            """
        )
        categories = [row["purchase_category"] for row in cur.fetchall()]
    except sqlite3.Error as e:
        print(f"[LISTINGS] DB error on categories: {e}")
        raise StoreError("Category lookup failed") from e
    return ["All"] + categories


@router.get("/{property_id}", response_model=ListingResponse)
def get_listing(
    property_id: int = Path(..., ge=1, description="Listing ID"),
    ctx: Optional[AuthContext] = Depends(optional_auth_context),
    conn: sqlite3.Connection = Depends(db_session),
) -> ListingResponse:
    row = fetch_listing(conn, property_id)
    if row is None:
        raise HTTPException(status_code=404, detail="Listing not found")

    # Pending/rejected listings are only visible to people who manage them
    if str(row["status"]).lower() not in PUBLIC_STATUSES and (ctx is None or not can_manage(ctx, row)):
        raise HTTPException(status_code=404, detail="Listing not found")

    return listing_from_row(row)


# ---------------------------------------------------------
# Writes
# ---------------------------------------------------------
@router.post(
    "",
    response_model=ListingResponse,
    status_code=201,
    dependencies=[Depends(require_quota(QuotaAction.ADD_LISTING))],
)
def create_listing(
    body: ListingCreateRequest,
    ctx: AuthContext = Depends(require_role(*LISTING_MANAGER_ROLES)),
    conn: sqlite3.Connection = Depends(db_session),
) -> ListingResponse:
    """
    Create a listing owned by the caller.

    Raises:
        HTTPException(403): Caller is not an agent/agency admin/admin
        QuotaDenied (403): Active listing limit reached for the caller's plan
    """
    now = now_timestamp()
    values = _column_values(body.model_dump())
    values.update(
        agent_id=ctx.user_id,
        agency_id=ctx.agency_id,
        is_featured=0,
        date_listed=now,
        updated_at=now,
    )

    columns = ", ".join(values)
    placeholders = ", ".join("?" for _ in values)
    try:
        cur = conn.cursor()
        cur.execute(f"INSERT INTO listings ({columns}) VALUES ({placeholders})", tuple(values.values()))
        property_id = cur.lastrowid
        conn.commit()
    except sqlite3.Error as e:
        print(f"[LISTINGS] DB error on create: {e}")
        raise StoreError("Listing insert failed") from e

    if config.IS_DEV:
        print(f"[LISTINGS] Created property_id={property_id}, agent_id={ctx.user_id}, agency_id={ctx.agency_id}")

    return listing_from_row(fetch_listing(conn, property_id))


@router.put("/{property_id}", response_model=ListingResponse)
def update_listing(
    body: ListingUpdateRequest,
    property_id: int = Path(..., ge=1, description="Listing ID"),
    ctx: AuthContext = Depends(require_role(*LISTING_MANAGER_ROLES)),
    conn: sqlite3.Connection = Depends(db_session),
) -> ListingResponse:
    fields = _column_values(body.model_dump(exclude_unset=True))
    if not fields:
        raise HTTPException(status_code=400, detail="No valid fields provided for update")
    if fields.get("status") == "featured":
        raise HTTPException(status_code=400, detail="Use the feature endpoint to feature a listing")

    fetch_managed_listing(conn, property_id, ctx)

    fields["updated_at"] = now_timestamp()
    assignments = ", ".join(f"{column} = ?" for column in fields)
    try:
        cur = conn.cursor()
        cur.execute(
            f"UPDATE listings SET {assignments} WHERE property_id = ?",
            tuple(fields.values()) + (property_id,),
        )
        conn.commit()
    except sqlite3.Error as e:
        print(f"[LISTINGS] DB error on update: {e}")
        raise StoreError("Listing update failed") from e

    if config.IS_DEV:
        print(f"[LISTINGS] Updated property_id={property_id}, fields={sorted(fields)}")

    return listing_from_row(fetch_listing(conn, property_id))


@router.delete("/{property_id}", status_code=204)
def delete_listing(
    property_id: int = Path(..., ge=1, description="Listing ID"),
    ctx: AuthContext = Depends(require_role(*LISTING_MANAGER_ROLES)),
    conn: sqlite3.Connection = Depends(db_session),
) -> Response:
    fetch_managed_listing(conn, property_id, ctx)
    try:
        cur = conn.cursor()
        # favourites rows go with it (ON DELETE CASCADE)
        cur.execute("DELETE FROM listings WHERE property_id = ?", (property_id,))
        conn.commit()
    except sqlite3.Error as e:
        print(f"[LISTINGS] DB error on delete: {e}")
        raise StoreError("Listing delete failed") from e

    if config.IS_DEV:
        print(f"[LISTINGS] Deleted property_id={property_id} by user_id={ctx.user_id}")
    return Response(status_code=204)


@router.post(
    "/{property_id}/feature",
    response_model=ListingResponse,
    dependencies=[Depends(require_quota(QuotaAction.FEATURE_LISTING))],
)
def feature_listing(
    property_id: int = Path(..., ge=1, description="Listing ID"),
    body: Optional[FeatureListingRequest] = None,
    ctx: AuthContext = Depends(require_role(*LISTING_MANAGER_ROLES)),
    conn: sqlite3.Connection = Depends(db_session),
    enforcer: QuotaEnforcer = Depends(get_quota_enforcer),
) -> ListingResponse:
    """
    Feature one of the caller's own listings for the plan's featured period.

    Raises:
        QuotaDenied (403): Plan forbids featuring, or featured slots are full
        HTTPException(404): Listing missing or not owned by the caller
        HTTPException(409): Listing is already actively featured
    """
    row = fetch_listing(conn, property_id)
    if row is None or row["agent_id"] != ctx.user_id:
        raise HTTPException(status_code=404, detail="Listing not found")

    now = utcnow()
    if row["is_featured"] and row["featured_expires_at"] and row["featured_expires_at"] > to_timestamp(now):
        raise HTTPException(status_code=409, detail="Listing is already featured")

    tier = enforcer.tier_for(ctx)
    days = tier.featured_days
    if body is not None and body.days:
        days = min(body.days, tier.featured_days) if tier.featured_days else body.days
    if days < 1:
        raise HTTPException(status_code=400, detail="Your plan has no featured period configured")

    expires_at = to_timestamp(now + timedelta(days=days))
    try:
        cur = conn.cursor()
        cur.execute(
            "UPDATE listings SET is_featured = 1, featured_expires_at = ?, updated_at = ? WHERE property_id = ?",
            (expires_at, to_timestamp(now), property_id),
        )
        conn.commit()
    except sqlite3.Error as e:
        print(f"[LISTINGS] DB error on feature: {e}")
        raise StoreError("Listing feature failed") from e

    if config.IS_DEV:
        print(f"[LISTINGS] Featured property_id={property_id} until {expires_at} ({tier.name} plan, {days} days)")

    return listing_from_row(fetch_listing(conn, property_id))
