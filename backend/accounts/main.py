import logging
import time
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from accounts.core.config import settings
from accounts.core import database
from accounts.core.errors import register_exception_handlers
from accounts.core.logging import setup_logging
from accounts.core.scheduler import start_scheduler, stop_scheduler
from accounts.api.routes import auth, users

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage app lifecycle events.

    Startup: Connect to MongoDB (ping + indexes), start background scheduler
    Shutdown: Stop background scheduler, close MongoDB connections
    """
    # Startup
    database.connect()
    if settings.ENABLE_SCHEDULER:
        start_scheduler()
    yield
    # Shutdown
    stop_scheduler()
    database.close()


app = FastAPI(
    title="Accounts API",
    description="User accounts: registration, sessions, password reset and user administration",
    version="1.0.0",
    lifespan=lifespan
)

# CORS middleware - allows frontend to make requests to backend
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins(),  # List of allowed frontend URLs
    allow_credentials=True,  # Allow cookies/auth headers
    allow_methods=["*"],
    allow_headers=["*"],
)

# Every failure goes through one translator that decides the wire format
register_exception_handlers(app)

if not settings.is_production:
    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Development request log: method, path, status, duration"""
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(f"{request.method} {request.url.path} {response.status_code} {elapsed_ms:.1f} ms")
        return response

# Register API route modules
# auth is registered first so its literal paths (/users/signout, ...) win over /users/{document_id}
app.include_router(auth.router, prefix=settings.API_PREFIX)
app.include_router(users.router, prefix=settings.API_PREFIX)


@app.get("/")
async def root():
    """Root endpoint - API information"""
    return {"message": "Accounts API", "version": "1.0.0"}


@app.get("/health")
async def health():
    """Health check endpoint - used by monitoring/deployment tools"""
    return {"status": "healthy"}
