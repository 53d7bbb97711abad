"""
Ballotbox FastAPI Application - Main entry point.

Ballotbox is an electronic-voting administration platform:

- Polls: ballots, schedules, disclosure settings, auditors and editors
- Participants: registered users and token-authenticated invitees
- Voting: token or credential access, re-voting, in-person delegation
- Results: weighted tallies redacted per viewer and poll settings
- Accounts: admin-managed users, sub-admins, user groups and mail templates
"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ballotbox.core.config import settings
from ballotbox.core.exceptions import BallotboxError, ValidationFailed
from ballotbox.db.base import init_db
from ballotbox.schemas.common import HealthResponse

from ballotbox.api.v1 import auth, mail_templates, polls, public, user_groups, users

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown."""
    await init_db()
    yield


app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/api/docs" if settings.DEBUG else None,
    redoc_url="/api/redoc" if settings.DEBUG else None,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# HEALTH CHECK
# ============================================================================

@app.get("/api/health", response_model=HealthResponse, tags=["health"])
async def health_check():
    """Health check endpoint."""
    return HealthResponse(code=200, message="API is healthy.")


# ============================================================================
# V1 API ENDPOINTS
# ============================================================================

app.include_router(
    auth.router,
    prefix=f"{settings.API_V1_PREFIX}/auth",
    tags=["auth"]
)

app.include_router(
    users.router,
    prefix=f"{settings.API_V1_PREFIX}/users",
    tags=["users"]
)

app.include_router(
    user_groups.router,
    prefix=f"{settings.API_V1_PREFIX}/user-groups",
    tags=["users"]
)

app.include_router(
    mail_templates.router,
    prefix=f"{settings.API_V1_PREFIX}/mail-templates",
    tags=["mail-templates"]
)

app.include_router(
    polls.router,
    prefix=f"{settings.API_V1_PREFIX}/polls",
    tags=["polls"]
)

# Participant-facing voting endpoints
app.include_router(
    public.router,
    prefix=f"{settings.API_V1_PREFIX}/public/polls",
    tags=["voting"]
)


# ============================================================================
# ERROR HANDLERS
# ============================================================================

@app.exception_handler(BallotboxError)
async def ballotbox_exception_handler(request: Request, exc: BallotboxError):
    """Map domain errors to their HTTP status."""
    content = {"detail": exc.message}
    if isinstance(exc, ValidationFailed) and exc.details:
        content["details"] = exc.details
    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler."""
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    if settings.DEBUG:
        return JSONResponse(
            status_code=500,
            content={"detail": str(exc)}
        )
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"}
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "ballotbox.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG
    )
