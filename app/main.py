from fastapi import FastAPI
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from slowapi.errors import RateLimitExceeded
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from timing_asgi import TimingMiddleware, TimingClient  # type: ignore
from timing_asgi.integrations import StarletteScopeToName  # type: ignore

from app.core import config
from app.core.database.engine import AsyncSessionLocal, init_db
from app.core.errors import InvalidArgument, register_exception_handlers
from app.core.rate_limit import limiter
from app.features.auth.routes import router as auth_router
from app.features.users.routes import router as user_router
from app.features.groups.routes import router as group_router
from app.features.roles.routes import router as role_router
from app.features.modules.routes import router as module_router
from app.features.permissions.routes import router as permission_router
from app.features.permissions.seed import seed_defaults
from app.features.permissions.store import EntityStore
from app.utils import get_logger


log = get_logger(__name__)
log.info("Initializing server")
app = FastAPI(
    title="Access Control Backend",
    description="Role-based access control: users, groups, roles, modules and permissions",
    version="0.1.0",
    docs_url="/docs" if config.ENABLE_DOCS else None,
    redoc_url="/redoc" if config.ENABLE_DOCS else None,
    openapi_url="/openapi.json" if config.ENABLE_DOCS else None
)
app.state.limiter = limiter


class PrintTimings(TimingClient):
    def timing(self, metric_name, timing, tags):
        log.debug(dict(route=metric_name.removeprefix("main.app.features."), timing=timing, tags=tags))


app.add_middleware(TimingMiddleware, client=PrintTimings(), metric_namer=StarletteScopeToName("main", app))

if config.ENABLE_DOCS:
    log.warning("Docs enabled")
if config.ALLOW_ORIGIN:
    log.warning("Setting allow origin to %s", config.ALLOW_ORIGIN)
    origins = [config.ALLOW_ORIGIN]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

register_exception_handlers(app)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(_request: Request, exc: RequestValidationError):
    errors = dict()
    for error in exc.errors():
        if "loc" not in error or "msg" not in error:
            continue
        key = error["loc"][-1]
        if key == "__root__":
            key = "root"
        errors[key] = error["msg"]
    log.info("Request validation error %s", errors)
    error = InvalidArgument("Request validation failed", errors)
    return JSONResponse(status_code=error.status_code, content=jsonable_encoder(error.to_dict()))


@app.exception_handler(RateLimitExceeded)
def rate_limit_exceeded_handler(_request: Request, _exc: RateLimitExceeded) -> Response:
    return JSONResponse({"error": "rate_limited", "message": "You are going too fast"}, status_code=429)


@app.on_event("startup")
async def startup():
    """Initialize database (and default data) on application startup."""
    log.info("Initializing database...")
    await init_db()
    if config.SEED_DEFAULTS:
        async with AsyncSessionLocal() as session:
            await seed_defaults(EntityStore(session))
    log.info("Database initialized successfully")


@app.get("/")
async def root():
    """Root endpoint - API health check."""
    return {
        "message": "Access Control Backend API",
        "version": "0.1.0",
        "status": "online",
        "docs": "/docs" if config.ENABLE_DOCS else None,
        "authentication": {
            "info": "Protected endpoints require Bearer token in Authorization header",
            "protected_endpoints": [
                "/auth/me/permissions", "/auth/simulate-action",
                "/users/*", "/groups/*", "/roles/*", "/modules/*", "/permissions/*",
            ],
            "public_endpoints": ["/auth/register", "/auth/login"]
        },
    }


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}


app.include_router(auth_router, prefix="/auth", tags=["auth"])
app.include_router(user_router, prefix="/users", tags=["users"])
app.include_router(group_router, prefix="/groups", tags=["groups"])
app.include_router(role_router, prefix="/roles", tags=["roles"])
app.include_router(module_router, prefix="/modules", tags=["modules"])
app.include_router(permission_router, prefix="/permissions", tags=["permissions"])
