# ---------------------------------------------------------
# marketplace/main.py
# Listings Marketplace Backend
#
# Run: uvicorn marketplace.main:app --reload (from repo root)
#
# - FastAPI + SQLite
# - /listings            : browse/search, create (quota), update, delete
# - /listings/{id}/feature : feature a listing (quota)
# - /agent|agency|admin/listings : role-scoped dashboards
# - /favourites          : saved listings
# - /account/plan        : plan limits and live usage
# ---------------------------------------------------------

from __future__ import annotations

from typing import Dict

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from marketplace import config
from marketplace.db import StoreError, init_db
from marketplace.listing_query import ListingQueryEngine
from marketplace.quota import QuotaDenied, QuotaEnforcer
from marketplace.routes_account import router as account_router
from marketplace.routes_dashboards import router as dashboards_router
from marketplace.routes_favourites import router as favourites_router
from marketplace.routes_listings import router as listings_router
from marketplace.tiers import load_tiers


# ---------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------
app = FastAPI(title="Listings Marketplace Backend", version="0.1")

# CORS configuration from config module
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS if config.IS_PROD else ["*"],  # Restrict origins in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Tier table is read once; a bad TIERS_FILE raises ConfigError and stops boot
app.state.quota_enforcer = QuotaEnforcer(load_tiers(config.TIERS_FILE))
app.state.query_engine = ListingQueryEngine()

init_db()


# ---------------------------------------------------------
# Error handlers
# ---------------------------------------------------------
@app.exception_handler(QuotaDenied)
def quota_denied_handler(request: Request, exc: QuotaDenied) -> JSONResponse:
    return JSONResponse(status_code=403, content={"error": exc.decision.message})


@app.exception_handler(StoreError)
def store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
    print(f"[ERROR] Store failure on {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


# ---------------------------------------------------------
# Routes
# ---------------------------------------------------------
@app.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}


app.include_router(listings_router)
app.include_router(dashboards_router)
app.include_router(favourites_router)
app.include_router(account_router)
