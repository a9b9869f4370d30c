"""
Main FastAPI application.
API behind the Spoqen dashboard: accounts, assistant settings, billing,
call history and real-time call notifications.

Endpoints:
- /auth/* - Sign-up / sign-in / password flows
- /user/* - Profile + email-exists check
- /questions/* - Qualification questions
- /settings/* - AI receptionist settings
- /subscription/* - Billing management (self-serve)
- /assistant/* - Voice assistant + knowledge base
- /calls/* - Call history and dashboard metrics
- /realtime/* - SSE call notifications
- /geocode/* - Address search
- /faq/* - FAQ feedback
- /admin/* - Reconciliation jobs (admin token)
- /webhooks/stripe, /webhooks/vapi - Inbound webhooks
"""

import logging

import sentry_sdk
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..config import APP_ENV, CORS_ORIGINS, LOG_LEVEL, SENTRY_DSN
from ..lib.errors import AppError
from ..lib.logger import configure_logging

configure_logging(LOG_LEVEL)
logger = logging.getLogger(__name__)

VERSION = "1.0.0"

if SENTRY_DSN:
    sentry_sdk.init(
        dsn=SENTRY_DSN,
        environment=APP_ENV,
        release=f"spoqen-api@{VERSION}",
        send_default_pii=False,
        traces_sample_rate=0.05,
    )

# Create app
app = FastAPI(
    title="Spoqen API",
    description="AI receptionist dashboard for real estate agents",
    version=VERSION,
    docs_url="/docs" if APP_ENV == "development" else None,
    redoc_url=None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["*"],
)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


@app.get("/health")
async def health_check():
    """Health check endpoint for monitoring."""
    return {"status": "healthy", "version": VERSION}


# Import and include routers
from .routes import (  # noqa: E402
    admin,
    assistant,
    auth,
    calls,
    faq,
    geocode,
    questions,
    realtime,
    settings,
    subscriptions,
    users,
    webhooks,
)

app.include_router(auth.router, prefix="/auth", tags=["auth"])
app.include_router(users.router, prefix="/user", tags=["user"])
app.include_router(questions.router, prefix="/questions", tags=["questions"])
app.include_router(settings.router, prefix="/settings", tags=["settings"])
app.include_router(subscriptions.router, prefix="/subscription", tags=["subscription"])
app.include_router(assistant.router, prefix="/assistant", tags=["assistant"])
app.include_router(calls.router, prefix="/calls", tags=["calls"])
app.include_router(realtime.router, prefix="/realtime", tags=["realtime"])
app.include_router(geocode.router, prefix="/geocode", tags=["geocode"])
app.include_router(faq.router, prefix="/faq", tags=["faq"])
app.include_router(admin.router, prefix="/admin", tags=["admin"])
app.include_router(webhooks.router, prefix="/webhooks", tags=["webhooks"])
