"""Main FastAPI application for Speed Math."""
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from fastapi import FastAPI, Request, Depends
from fastapi.responses import HTMLResponse, JSONResponse
from fastapi.templating import Jinja2Templates
from sqlalchemy import text
from sqlalchemy.orm import Session
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from app.routers import dashboard, quiz
from app.db.init_db import init_db
from app.db.database import get_db
from app.logging_config import setup_logging
from app.config import settings
from app.constants import DEFAULT_RATE_LIMIT
from app.services.quiz_engine import GAME_CONFIG
from app.services.session_registry import registry

# Set up logging on module import
log_level = settings.LOG_LEVEL if settings.LOG_LEVEL else None
setup_logging(log_level)
logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).parent / "templates"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize the database on startup and abandon live sessions on exit."""
    logger.info("Application startup initiated")
    try:
        init_db()
        logger.info("Database initialization completed successfully")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}", exc_info=True)
        raise

    try:
        yield
    finally:
        registry.shutdown()
        logger.info("Application shutdown complete")


app = FastAPI(
    title="Speed Math API",
    description="""
    Single-user speed arithmetic practice.

    ## Game Modes

    - **Addition** / **Subtraction**: two-digit operands, 25 questions
    - **Multiplication**: tables up to 20 × 20, 50 questions
    - **Squares** (1-30) and **Cubes** (1-15)

    ## Quiz Flow

    1. **Start Session**: POST `/api/session/start`
    2. **Answer**: POST `/api/session/{session_id}/answer` until `is_final`
    3. The final answer records the attempt; clients running their own quiz
       POST the finished attempt to `/api/quiz` instead

    ## Dashboard

    Personal bests per game, overall accuracy, 7-day usage with a daily
    streak, repeated mistakes and an AI coach assessment.
    """,
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_tags=[
        {
            "name": "quiz",
            "description": "Quiz sessions, attempt recording and history"
        },
        {
            "name": "dashboard",
            "description": "Statistics, usage tracking, assessment and study tables"
        },
        {
            "name": "health",
            "description": "Service health and readiness checks"
        }
    ]
)

limiter = Limiter(key_func=get_remote_address, default_limits=[DEFAULT_RATE_LIMIT])
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)

logger.info(f"Rate limiting enabled: default {DEFAULT_RATE_LIMIT} per IP")

templates = Jinja2Templates(directory=str(TEMPLATES_DIR))

app.include_router(quiz.router)
app.include_router(dashboard.router)


@app.get("/", response_class=HTMLResponse)
async def home(request: Request):
    """Serve the main application page."""
    logger.debug("Serving home page")
    return templates.TemplateResponse(
        request,
        "index.html",
        {"games": [(mode.value, config) for mode, config in GAME_CONFIG.items()]}
    )


@app.get("/health", tags=["health"])
async def health_check(db: Session = Depends(get_db)):
    """Health check with database verification.

    Returns:
        200 OK: Service is healthy and database is accessible
        503 Service Unavailable: Database connection failed
    """
    timestamp = datetime.utcnow().isoformat() + "Z"

    try:
        db.execute(text("SELECT 1"))
        logger.debug("Health check passed")

        return {
            "status": "healthy",
            "database": "connected",
            "live_sessions": len(registry),
            "timestamp": timestamp,
            "environment": settings.ENVIRONMENT
        }
    except Exception as e:
        logger.error(f"Health check failed: {e}", exc_info=True)

        return JSONResponse(
            status_code=503,
            content={
                "status": "unhealthy",
                "database": "disconnected",
                "error": str(e),
                "timestamp": timestamp
            }
        )


@app.get("/readiness", tags=["health"])
async def readiness_check(db: Session = Depends(get_db)):
    """Readiness check for container orchestration."""
    try:
        db.execute(text("SELECT 1"))
        return {"status": "ready", "timestamp": datetime.utcnow().isoformat() + "Z"}
    except Exception as e:
        logger.error(f"Readiness check failed: {e}")
        return JSONResponse(
            status_code=503,
            content={"status": "not ready", "error": str(e)}
        )
