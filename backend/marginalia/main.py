import logging
import os
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from dotenv import load_dotenv

from marginalia.auth import get_auth_settings
from marginalia.db import get_settings, verify_connection, close_client
from marginalia.routers import (
    admin_router,
    cards_router,
    decks_router,
    digest_router,
    review_router,
    virtual_cards_router,
)
from marginalia.services import PeriodicTask, get_digest_service, get_digest_settings

load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    settings = get_settings()
    auth_settings = get_auth_settings()
    digest_settings = get_digest_settings()

    if auth_settings.enabled:
        if auth_settings.is_configured():
            print("✓ Entra ID authentication enabled")
            print(f"  Tenant: {auth_settings.tenant_id}")
            print(f"  API Audience: {auth_settings.api_audience}")
        else:
            print("⚠ Authentication enabled but not configured (missing AZURE_TENANT_ID or AZURE_API_SCOPE)")
    else:
        print("⚠ Authentication DISABLED - using X-User-Id header fallback (dev mode)")

    ticker = None
    if settings.is_configured():
        if verify_connection():
            print("✓ Connected to Cosmos DB")
        else:
            print("✗ Failed to connect to Cosmos DB - check configuration")

        if digest_settings.enabled:
            ticker = PeriodicTask(
                "digest",
                get_digest_service().run_tick,
                crontab=digest_settings.cron,
            )
            ticker.start()
            print(f"✓ Digest ticker started ({digest_settings.cron})")
        else:
            print("⚠ Digest emails disabled (DIGEST_ENABLED=false)")
    else:
        print("⚠ Cosmos DB not configured (COSMOS_ENDPOINT not set)")

    yield

    # Shutdown
    if ticker is not None:
        await ticker.stop()
        print("✓ Digest ticker stopped")
    close_client()
    print("✓ Cosmos DB connection closed")


app = FastAPI(
    title="Marginalia API",
    description="Spaced-repetition review and highlight digests",
    version="1.0.0",
    lifespan=lifespan,
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed requests (including ratings outside 1..4) are 400s."""
    errors = exc.errors()
    message = "; ".join(
        f"{'.'.join(str(part) for part in error.get('loc', ()))}: {error.get('msg', 'invalid')}"
        for error in errors
    )
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": {"kind": "validation_error", "message": message}},
    )


# CORS configuration
cors_origins = os.getenv(
    "CORS_ORIGINS", "http://localhost:3000,http://localhost:5173"
).split(",")
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(decks_router)
app.include_router(cards_router)
app.include_router(virtual_cards_router)
app.include_router(review_router)
app.include_router(digest_router)
app.include_router(admin_router)


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "name": "Marginalia API",
        "version": "1.0.0",
        "endpoints": {
            "health": "/healthz",
            "decks": "/decks",
            "study": "/decks/{deck_id}/study",
            "review": "/review",
            "digest": "/digest/preferences",
        },
    }


@app.get("/healthz")
async def healthz():
    """Health check endpoint."""
    return {"status": "healthy"}
