"""MediaShelf — FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from mediashelf.config import settings
from mediashelf.errors import AppError
from mediashelf.api import auth, catalog, feed, follows, health, library, lists, reviews, users

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    # Startup: create tables, probe catalog providers
    from mediashelf.api.deps import get_adapters
    from mediashelf.database import engine, init_db
    from mediashelf.services.integration_probe import probe_all

    await init_db()
    app.state.integrations = await probe_all(settings, get_adapters())
    yield
    await engine.dispose()


app = FastAPI(
    title=settings.app_name,
    version="0.1.0",
    description="Social catalog for books and movies",
    lifespan=lifespan,
    docs_url="/api/docs" if settings.debug else None,
    redoc_url="/api/redoc" if settings.debug else None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:5173",     # Vite dev server
        settings.app_url,
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Error handling ───────────────────────────────────────────────

@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    body = {"status": exc.status, "message": exc.message}
    if settings.debug:
        body["error"] = type(exc).__name__
    return JSONResponse(status_code=exc.status_code, content=body)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    messages = [f"{'.'.join(str(p) for p in e['loc'][1:])}: {e['msg']}" for e in exc.errors()]
    return JSONResponse(status_code=400, content={"status": "fail", "message": "; ".join(messages)})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"status": "error", "message": "Something went very wrong!"})


# ── Mount routers ────────────────────────────────────────────────
app.include_router(health.router,           prefix="/api/v1", tags=["system"])
app.include_router(auth.router,             prefix="/api/v1", tags=["auth"])
app.include_router(catalog.books_router,    prefix="/api/v1", tags=["books"])
app.include_router(catalog.movies_router,   prefix="/api/v1", tags=["movies"])
app.include_router(reviews.router,          prefix="/api/v1", tags=["reviews"])
app.include_router(lists.router,            prefix="/api/v1", tags=["lists"])
app.include_router(library.router,          prefix="/api/v1", tags=["library"])
app.include_router(feed.router,             prefix="/api/v1", tags=["feed"])
app.include_router(users.router,            prefix="/api/v1", tags=["users"])
app.include_router(follows.router,          prefix="/api/v1", tags=["follows"])
