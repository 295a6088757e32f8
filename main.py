"""Application entry point for the Diet Tracker API.

Defines the FastAPI app, middleware and exception handlers and includes the
routers from the `api` package. The `lifespan` handler initializes the DB on
startup.
"""

from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from api.auth import router as auth_router
from api.meals import router as meals_router
from api.profile import router as profile_router
from core.config import settings
from core.error_handlers import register_exception_handlers
from core.exceptions import DatabaseError
from core.logger import get_logger
from database import init_db, models
from database.deps import get_db_read

logger = get_logger("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize the database schema before serving requests."""
    init_db()
    yield


app = FastAPI(title="Diet Tracker API", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log incoming requests and their responses."""
    logger.info("%s %s", request.method, request.url.path)
    try:
        response = await call_next(request)
    except Exception:
        logger.exception("Request error: %s %s", request.method, request.url.path)
        raise
    logger.info("%s %s -> %s", request.method, request.url.path, response.status_code)
    return response


@app.get("/health")
def health(db: Session = Depends(get_db_read)):
    """Return basic health status and database connectivity.

    Raises:
        DatabaseError: If database connection fails.
    """
    try:
        db.execute(select(models.Meal.id).limit(1)).first()
    except SQLAlchemyError as e:
        logger.exception("Health check failed")
        raise DatabaseError("Database health check failed", operation=str(e))
    return {"status": "healthy", "database": "connected"}


app.include_router(auth_router)
app.include_router(profile_router)
app.include_router(meals_router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
