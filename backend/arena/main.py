from __future__ import annotations
import uuid
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from arena.config import settings
from arena.errors import ArenaError, RateLimited
from arena.logging_setup import configure_logging
from arena.routes.system import router as system_router
from arena.routes.challenges import router as challenges_router
from arena.routes.contests import router as contests_router
import structlog

configure_logging()
log = structlog.get_logger()

@asynccontextmanager
async def lifespan(app: FastAPI):
    log.info("startup", env=settings.environment, version=settings.app_version, git_sha=settings.git_sha)
    yield
    log.info("shutdown")

app = FastAPI(
    title=f"{settings.app_display_name} API",
    version=settings.app_version,
    lifespan=lifespan,
    description=f"{settings.app_display_name} API for practice challenges and timed contests"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.environment == "dev" else settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(system_router)
app.include_router(challenges_router)
app.include_router(contests_router)

@app.exception_handler(ArenaError)
async def arena_error_handler(request: Request, exc: ArenaError):
    headers = {}
    if isinstance(exc, RateLimited):
        headers["Retry-After"] = str(exc.retry_after_seconds)
    if exc.status_code >= 500:
        log.error("arena_error", kind=exc.kind, detail=exc.message, path=request.url.path)
    else:
        log.info("request_rejected", kind=exc.kind, status=exc.status_code, path=request.url.path)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)

@app.middleware("http")
async def add_request_id(request: Request, call_next):
    rid = request.headers.get("x-request-id") or str(uuid.uuid4())
    request.state.request_id = rid
    structlog.contextvars.bind_contextvars(request_id=rid)
    response: Response = await call_next(request)
    response.headers["X-Request-ID"] = rid
    structlog.contextvars.clear_contextvars()
    return response
