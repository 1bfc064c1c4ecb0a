# File: app/main.py

import logging
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi import _rate_limit_exceeded_handler

from app.core.config import cors_origins_list, settings
from app.core.errors import IssueError
from app.core.logging import setup_logging
from app.core.ratelimit import limiter
from app.routers import issues, issues_stats, portals

setup_logging(settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Civic Issue Tracker API")
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

def _issue_error_handler(request: Request, exc: IssueError):
    if exc.status_code >= 500:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, "code": exc.code})

app.add_exception_handler(IssueError, _issue_error_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins_list(),
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.get("/health")
def health():
    return {"ok": True}

app.include_router(issues_stats.router)
app.include_router(portals.router)
app.include_router(issues.router)
