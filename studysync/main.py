import logging
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded

from studysync.config import settings
from studysync.core.errors import PartialFailure, StudySyncError
from studysync.database.supabase_client import SupabaseClient
from studysync.modules.auth import routes as auth_routes
from studysync.modules.profiles import routes as profiles_routes
from studysync.modules.groups import routes as groups_routes
from studysync.modules.messages import routes as messages_routes
from studysync.modules.resources import routes as resources_routes
from studysync.modules.sessions import routes as sessions_routes

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%SZ",
)
logger = logging.getLogger(__name__)

limiter = Limiter(key_func=get_remote_address, default_limits=[settings.rate_limit])
app = FastAPI(
    title=settings.app_name,
    debug=settings.debug,
    redirect_slashes=False,
)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(StudySyncError)
async def studysync_exception_handler(request: Request, exc: StudySyncError):
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", exc.code, request.method, request.url.path, exc.message)
    content = {"detail": exc.message, "code": exc.code}
    if isinstance(exc, PartialFailure):
        content["completed"] = exc.completed
        content["failed"] = exc.failed
    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled exception: %s", exc)
    if settings.is_production:
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})
    return JSONResponse(status_code=500, content={"detail": str(exc)})


class SecurityHeadersMiddleware:
    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        async def send_with_headers(message):
            if message["type"] == "http.response.start":
                message.setdefault("headers", [])
                message["headers"].extend([
                    (b"X-Content-Type-Options", b"nosniff"),
                    (b"X-Frame-Options", b"DENY"),
                    (b"X-XSS-Protection", b"1; mode=block"),
                ])
            await send(message)

        await self.app(scope, receive, send_with_headers)


app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins_list(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include module routes
app.include_router(auth_routes.router, prefix="/api/v1")
app.include_router(profiles_routes.router, prefix="/api/v1")
app.include_router(groups_routes.router, prefix="/api/v1")
app.include_router(messages_routes.router, prefix="/api/v1")
app.include_router(resources_routes.router, prefix="/api/v1")
app.include_router(sessions_routes.router, prefix="/api/v1")

# Live views
app.include_router(messages_routes.live_router, prefix="/api/v1")
app.include_router(resources_routes.live_router, prefix="/api/v1")
app.include_router(sessions_routes.live_router, prefix="/api/v1")


def _log_auth_event(event: str, session):
    logger.info("Auth state change: %s (user=%s)", event, session["user_id"] if session else None)


@app.on_event("startup")
async def startup_event():
    logger.info("Application startup")
    if settings.supabase_url:
        backend = await SupabaseClient.get_backend()
        app.state.auth_listener = backend.on_auth_state_change(_log_auth_event)


@app.on_event("shutdown")
async def shutdown_event():
    listener = getattr(app.state, "auth_listener", None)
    if listener is not None:
        listener.unsubscribe()
    SupabaseClient.reset_client()
    logger.info("Application shutdown")


@app.get("/")
async def root():
    return {"message": "Welcome to studysync", "status": "healthy"}


@app.get("/health")
@limiter.exempt
async def health():
    return {"status": "healthy"}


@app.get("/ready")
@limiter.exempt
async def ready():
    """Readiness probe: reports whether the Supabase project is configured."""
    return {"status": "ready" if settings.supabase_url else "unconfigured"}
