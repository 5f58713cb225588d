import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from peer_ranking import __version__
from peer_ranking.core.config import settings
from peer_ranking.core.database import SessionLocal
from peer_ranking.core.errors import RankingError, is_read_only_error
from peer_ranking.api.api_v1.api import api_router
from peer_ranking.initialization import ApplicationInitializer

# Initialize logger for uvicorn
uvicorn_logger = logging.getLogger("uvicorn")

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown events."""

    initializer = ApplicationInitializer()

    try:
        uvicorn_logger.info("🚀 Starting Peer Ranking API initialization...")

        with SessionLocal() as db:
            uvicorn_logger.info("📊 Initializing database...")
            db_status = initializer.initialize_database(db)

            if db_status["schema_ready"]:
                uvicorn_logger.info("✅ Ranking tables ready")
            else:
                uvicorn_logger.warning("⚠️ Database initialization incomplete")
                if "error" in db_status:
                    uvicorn_logger.error(f"❌ Error: {db_status['error']}")

            app.state.initialization_summary = initializer.get_initialization_summary(db)

        uvicorn_logger.info(f"⏱️ Dedup window: {settings.DEDUP_WINDOW_SECONDS}s")
        uvicorn_logger.info("🎉 Peer Ranking API initialization completed! 🚀")

        yield

    except Exception as e:
        uvicorn_logger.exception(f"🔥 Startup error: {e}")
        raise

# FastAPI app setup
app = FastAPI(
    title="Peer Ranking API",
    description="Group ranking proposals, peer consensus voting, comment rankings and teacher rankings",
    version=__version__,
    lifespan=lifespan
)

# CORS Middleware Setup
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---------- Error envelope ----------
def _error(status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": {"code": code, "message": message}})

@app.exception_handler(RankingError)
async def ranking_error_handler(request: Request, exc: RankingError):
    return _error(exc.status_code, exc.code, exc.message)

@app.exception_handler(SQLAlchemyError)
async def storage_error_handler(request: Request, exc: SQLAlchemyError):
    if is_read_only_error(exc):
        uvicorn_logger.warning(f"🔒 Write refused in read-only mode: {request.method} {request.url.path}")
        return _error(503, "READ_ONLY_MODE", "Datastore is in read-only maintenance mode")
    uvicorn_logger.exception(f"❌ Storage failure on {request.method} {request.url.path}")
    if isinstance(exc, OperationalError):
        return _error(503, "STORAGE_UNAVAILABLE", "Storage is temporarily unavailable, please retry")
    return _error(500, "INTERNAL_ERROR", "Unexpected storage failure")

# API Router Setup
app.include_router(api_router, prefix="/api/v1")

@app.get("/")
def read_root():
    """Root endpoint with API information."""
    return {
        "message": "Peer Ranking API is running!",
        "version": __version__,
        "features": [
            "Group ranking proposals",
            "Peer consensus voting",
            "Comment rankings",
            "Teacher comprehensive rankings",
            "Idempotent action ledger",
        ],
        "docs": "/docs",
        "health": "/health"
    }

@app.get("/health")
def health_check():
    """Health check with the initialization summary."""
    try:
        with SessionLocal() as db:
            summary = ApplicationInitializer().get_initialization_summary(db)
        return {
            "status": "healthy" if "error" not in summary else "degraded",
            "version": __version__,
            "components": summary,
        }
    except Exception as e:
        return {
            "status": "error",
            "error": str(e),
            "version": __version__
        }

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
