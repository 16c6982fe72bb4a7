# paymentbot/main.py
from __future__ import annotations
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, HTTPException
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from paymentbot.core.deps import close_link_generators
from paymentbot.core.logger import setup_logging
from paymentbot.core.security import claims_from_authorization, mint_dev_token
from paymentbot.core.settings import settings
from paymentbot.api import (
    payment_links,
    stripe_webhooks,
    health,
)

setup_logging()


@asynccontextmanager
async def lifespan(_: FastAPI):
    yield
    close_link_generators()


app = FastAPI(title=settings.APP_NAME, version="1.0.0", lifespan=lifespan)

# --- CORS ---
allow_origins = ["*"] if settings.CORS_ORIGINS == "*" else [o.strip() for o in settings.CORS_ORIGINS.split(",")]
allow_methods = ["*"] if settings.CORS_ALLOW_METHODS == "*" else [m.strip() for m in settings.CORS_ALLOW_METHODS.split(",")]
allow_headers = ["*"] if settings.CORS_ALLOW_HEADERS == "*" else [h.strip() for h in settings.CORS_ALLOW_HEADERS.split(",")]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_origins,
    allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
    allow_methods=allow_methods,
    allow_headers=allow_headers,
)

# --- Routers ---
app.include_router(payment_links.router)
app.include_router(stripe_webhooks.router)
app.include_router(health.router)

# Paths that bypass auth (health, docs, and Stripe webhook, which is signed instead)
AUTH_EXEMPT_PREFIXES = (
    "/health",
    "/docs",
    "/redoc",
    "/openapi.json",
    "/docs/oauth2-redirect",
    "/stripe/webhook",
    "/auth/dev-token",
    "/favicon.ico",
)


@app.middleware("http")
async def authenticate_request(request: Request, call_next):
    # CORS preflight
    if request.method == "OPTIONS":
        return await call_next(request)

    path = request.url.path
    if any(path.startswith(p) for p in AUTH_EXEMPT_PREFIXES):
        return await call_next(request)

    try:
        request.state.auth = {"claims": claims_from_authorization(request.headers.get("Authorization"))}
    except HTTPException as e:
        return JSONResponse({"error": e.detail}, status_code=e.status_code)

    return await call_next(request)

# --- Dev-only token minting ---
if settings.DEV_MODE:
    from fastapi import APIRouter, Query
    dev_auth = APIRouter(prefix="/auth", tags=["Auth (dev)"])

    @dev_auth.get("/dev-token")
    def get_dev_token(sub: str = Query(default=None), ttl: int = Query(default=3600)):
        """
        Mint a short-lived JWT for local testing.
        """
        token = mint_dev_token(sub=sub, ttl_seconds=ttl)
        return {"token": token, "expiresIn": ttl}

    app.include_router(dev_auth)
