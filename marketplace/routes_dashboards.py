"""
marketplace/routes_dashboards.py

Role-scoped listing views for agents, agencies and admins.

Scoping is forced from AuthContext after the query string is parsed, so a
client-supplied agent_id/agency_id can narrow nothing beyond its own scope.
"""

import sqlite3

from fastapi import APIRouter, Depends, HTTPException, Request

from marketplace import config
from marketplace.auth_context import AuthContext
from marketplace.db import db_session
from marketplace.dependencies import get_query_engine, require_role
from marketplace.listing_query import ListingQueryEngine, parse_query_request
from marketplace.models import UserRole
from marketplace.routes_listings import page_response
from marketplace.schemas_listings import ListingPageResponse

router = APIRouter(tags=["dashboards"])


@router.get("/agent/listings", response_model=ListingPageResponse)
def agent_listings(
    request: Request,
    ctx: AuthContext = Depends(require_role(UserRole.agent.value, UserRole.agency_admin.value, UserRole.admin.value)),
    conn: sqlite3.Connection = Depends(db_session),
    engine: ListingQueryEngine = Depends(get_query_engine),
) -> ListingPageResponse:
    """The caller's own listings, every status."""
    query = parse_query_request(request.query_params, default_limit=config.DASHBOARD_PAGE_LIMIT)
    query = query.scoped(agent_id=ctx.user_id, agency_id=None)
    return page_response(engine.query(conn, query))


@router.get("/agency/listings", response_model=ListingPageResponse)
def agency_listings(
    request: Request,
    ctx: AuthContext = Depends(require_role(UserRole.agency_admin.value, UserRole.admin.value)),
    conn: sqlite3.Connection = Depends(db_session),
    engine: ListingQueryEngine = Depends(get_query_engine),
) -> ListingPageResponse:
    """
    Listings of every agent in the caller's agency, drafts included.
    Plain agents use /agent/listings.

    Raises:
        HTTPException(403): Caller is not an agency admin or does not belong to an agency
    """
    if ctx.agency_id is None:
        raise HTTPException(status_code=403, detail="You are not a member of an agency")

    query = parse_query_request(request.query_params, default_limit=config.DASHBOARD_PAGE_LIMIT)
    # agent_id may narrow within the agency; agency_id is always ours
    query = query.scoped(agency_id=ctx.agency_id)
    return page_response(engine.query(conn, query))


@router.get("/admin/listings", response_model=ListingPageResponse)
def admin_listings(
    request: Request,
    ctx: AuthContext = Depends(require_role(UserRole.admin.value)),
    conn: sqlite3.Connection = Depends(db_session),
    engine: ListingQueryEngine = Depends(get_query_engine),
) -> ListingPageResponse:
    query = parse_query_request(request.query_params, default_limit=config.DASHBOARD_PAGE_LIMIT)
    return page_response(engine.query(conn, query))
