"""
marketplace/routes_favourites.py

Favourites (saved listings) for any signed-in user.
All rows are keyed by the caller's user_id from AuthContext.
"""

import sqlite3

from fastapi import APIRouter, Depends, HTTPException, Path, Request, Response

from marketplace import config
from marketplace.auth_context import AuthContext, require_auth_context
from marketplace.db import StoreError, db_session, now_timestamp
from marketplace.dependencies import get_query_engine
from marketplace.listing_query import ListingQueryEngine, parse_query_request
from marketplace.routes_listings import fetch_listing, listing_from_row
from marketplace.schemas_listings import (
    FavouriteCreateRequest,
    FavouriteStatusResponse,
    FavouritesPageResponse,
    ListingResponse,
)

router = APIRouter(
    prefix="/favourites",
    tags=["favourites"],
)


@router.post("", response_model=ListingResponse, status_code=201)
def add_favourite(
    body: FavouriteCreateRequest,
    ctx: AuthContext = Depends(require_auth_context),
    conn: sqlite3.Connection = Depends(db_session),
) -> ListingResponse:
    """
    Save a listing to the caller's favourites.

    Raises:
        HTTPException(404): Listing does not exist
        HTTPException(409): Already in favourites
    """
    row = fetch_listing(conn, body.property_id)
    if row is None:
        raise HTTPException(status_code=404, detail="Listing not found")

    try:
        cur = conn.cursor()
        cur.execute(
            "INSERT INTO favourites (user_id, property_id, created_at) VALUES (?, ?, ?)",
            (ctx.user_id, body.property_id, now_timestamp()),
        )
        conn.commit()
    except sqlite3.IntegrityError:
        conn.rollback()
        raise HTTPException(status_code=409, detail="Listing already in favourites")
    except sqlite3.Error as e:
        print(f"[FAVOURITES] DB error on add: {e}")
        raise StoreError("Favourite insert failed") from e

    if config.IS_DEV:
        print(f"[FAVOURITES] Added property_id={body.property_id} for user_id={ctx.user_id}")
    return listing_from_row(row)


@router.delete("/{property_id}", status_code=204)
def remove_favourite(
    property_id: int = Path(..., ge=1),
    ctx: AuthContext = Depends(require_auth_context),
    conn: sqlite3.Connection = Depends(db_session),
) -> Response:
    try:
        cur = conn.cursor()
        cur.execute(
            "DELETE FROM favourites WHERE user_id = ? AND property_id = ?",
            (ctx.user_id, property_id),
        )
        removed = cur.rowcount
        conn.commit()
    except sqlite3.Error as e:
        print(f"[FAVOURITES] DB error on remove: {e}")
        raise StoreError("Favourite delete failed") from e

    if not removed:
        raise HTTPException(status_code=404, detail="Favourite not found")
    return Response(status_code=204)


@router.get("", response_model=FavouritesPageResponse)
def list_favourites(
    request: Request,
    ctx: AuthContext = Depends(require_auth_context),
    conn: sqlite3.Connection = Depends(db_session),
    engine: ListingQueryEngine = Depends(get_query_engine),
) -> FavouritesPageResponse:
    """The caller's favourites, filtered/sorted/paginated like a search (default limit 12)."""
    query = parse_query_request(request.query_params, default_limit=config.FAVOURITES_PAGE_LIMIT)
    result = engine.query(conn, query.scoped(favourites_of=ctx.user_id))
    return FavouritesPageResponse(
        favourites=[listing_from_row(item) for item in result.items],
        total=result.total,
        total_pages=result.total_pages,
        current_page=result.page,
    )


@router.get("/status/{property_id}", response_model=FavouriteStatusResponse)
def favourite_status(
    property_id: int = Path(..., ge=1),
    ctx: AuthContext = Depends(require_auth_context),
    conn: sqlite3.Connection = Depends(db_session),
) -> FavouriteStatusResponse:
    try:
        cur = conn.cursor()
        cur.execute(
            "SELECT 1 FROM favourites WHERE user_id = ? AND property_id = ?",
            (ctx.user_id, property_id),
        )
        found = cur.fetchone() is not None
    except sqlite3.Error as e:
        print(f"[FAVOURITES] DB error on status: {e}")
        raise StoreError("Favourite lookup failed") from e
    return FavouriteStatusResponse(is_favourited=found)
