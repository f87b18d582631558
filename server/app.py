import logging

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from wrapped.config import settings
from wrapped.playback_reporting import PlaybackQueryError

from .auth import router as auth_router
from .routes import InvalidDateError, api, router

logger = logging.getLogger(__name__)

app = FastAPI(title="Jellyfin Wrapped", description="Year in review for Jellyfin users")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routes
app.include_router(auth_router)
app.include_router(api)
app.include_router(router)


@app.exception_handler(StarletteHTTPException)
async def http_error(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})


@app.exception_handler(InvalidDateError)
async def invalid_date(request: Request, exc: InvalidDateError):
    return JSONResponse(status_code=400, content={"error": str(exc)})


@app.exception_handler(PlaybackQueryError)
@app.exception_handler(httpx.HTTPError)
async def upstream_error(request: Request, exc: Exception):
    logger.error(f"Upstream failure on {request.url.path}: {exc}")
    return JSONResponse(status_code=502, content={"error": "Failed to fetch data from Jellyfin"})
