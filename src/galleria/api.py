"""FastAPI application entry point."""

import logging

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy.exc import SQLAlchemyError

from galleria.database import SessionLocal, check_database
from galleria.exceptions import GalleryError, gallery_error_handler
from galleria.ratelimit import limiter
from galleria.settings import settings

# Import all routers
from galleria.routers import images, search

logging.basicConfig(
    level=getattr(logging, str(settings.log_level).upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(
    title=settings.app_name,
    description="Permission-aware image gallery search and retrieval",
    version="0.1.0",
)
logger = logging.getLogger(__name__)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_exception_handler(GalleryError, gallery_error_handler)


@app.on_event("startup")
async def log_search_config():
    logger.info("Embedding/search config: %s", settings.embedding_config_audit())


@app.on_event("startup")
async def warm_jwks_cache():
    """Pre-fetch JWKS on startup so the first real request isn't blocked."""
    if not settings.supabase_url:
        return
    try:
        from galleria.auth.jwt import get_jwks
        await get_jwks()
    except Exception:
        # Requests fetch on demand if this fails.
        logger.warning("JWKS prefetch failed", exc_info=True)

# Add CORS middleware
_allowed_origins = [settings.app_url]
if settings.is_development:
    # Allow any localhost port during local development
    _allowed_origins += [
        "http://localhost:5173",  # Vite default
        "http://127.0.0.1:5173",
        "http://127.0.0.1:3000",
    ]
app.add_middleware(
    CORSMiddleware,
    allow_origins=_allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register all routers
app.include_router(images.router)
app.include_router(search.router)


# Health check endpoint
@app.get("/health")
async def health_check():
    """Health check endpoint with DB connectivity verification."""
    db = SessionLocal()
    try:
        check_database(db)
        return {"status": "healthy"}
    except SQLAlchemyError as exc:
        raise HTTPException(status_code=503, detail=f"Database unavailable: {exc}")
    finally:
        db.close()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "galleria.api:app",
        host=settings.api_host,
        port=settings.api_port,
        workers=settings.api_workers,
        reload=settings.debug
    )
