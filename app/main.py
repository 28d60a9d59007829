import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.core.config import get_cors_origins
from app.core.logging_config import configure_logging
from app.database.db import Base, SessionLocal, engine
from app.models import attendance, reservations, users, workshops  # noqa: F401
from app.routes import admin, checkin, notifications
from app.routes import reservations as reservation_routes
from app.routes import users as user_routes
from app.routes import workshops as workshop_routes
from app.services.errors import CheckinError
from app.services.workshops import seed_defaults

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    # Create all tables (in production, use migrations such as Alembic)
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        seed_defaults(db)
    finally:
        db.close()
    logger.info("Workshop check-in API started")
    yield


app = FastAPI(title="Workshop Check-in", lifespan=lifespan)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(CheckinError)
async def checkin_error_handler(request: Request, exc: CheckinError) -> JSONResponse:
    logger.info(f"{request.method} {request.url.path} rejected: {exc.kind} ({exc.message})")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "kind": exc.kind},
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"{request.method} {request.url.path} failed: {exc!r}", exc_info=exc)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


@app.get("/health")
def health():
    return {"ok": True}


# Include the routers
app.include_router(user_routes.router)
app.include_router(workshop_routes.router)
app.include_router(reservation_routes.router)
app.include_router(checkin.router)
app.include_router(notifications.router)
app.include_router(admin.router)
