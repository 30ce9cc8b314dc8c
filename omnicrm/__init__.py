"""
OmniCRM Application Factory
===========================

Pusat perakitan aplikasi FastAPI menggunakan Application Factory Pattern.
"""

import logging
import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse

from .config import settings as default_settings, configure_logging
from .services import ClientPool
from .services.exceptions import (
    CRMException, ValidationError, NotFoundError, BusinessRuleError, ConflictError,
    PolicyDenied, UnauthorizedError, ForbiddenError, RateLimitedError, QueueFullError,
    ExternalServiceError, WaitTimeoutError
)
from .responses import APIResponse
from .routes import (
    sync_router, event_router, stock_router, warehouse_router, tracking_router, webhook_router
)

logger = logging.getLogger(__name__)

# most specific first; the handler picks the first match
ERROR_STATUS = (
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ConflictError, status.HTTP_409_CONFLICT),
    (BusinessRuleError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (PolicyDenied, status.HTTP_403_FORBIDDEN),
    (UnauthorizedError, status.HTTP_401_UNAUTHORIZED),
    (ForbiddenError, status.HTTP_403_FORBIDDEN),
    (RateLimitedError, status.HTTP_429_TOO_MANY_REQUESTS),
    (QueueFullError, status.HTTP_429_TOO_MANY_REQUESTS),
    (WaitTimeoutError, status.HTTP_504_GATEWAY_TIMEOUT),
    (ExternalServiceError, status.HTTP_502_BAD_GATEWAY),
)

def status_for(exc: CRMException) -> int:
    for exc_class, status_code in ERROR_STATUS:
        if isinstance(exc, exc_class):
            return status_code
    return status.HTTP_400_BAD_REQUEST

def setup_middleware(app: FastAPI, settings):
    """Setup semua middleware aplikasi."""
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH"],
        allow_headers=["*"],
    )
    app.add_middleware(
        TrustedHostMiddleware,
        allowed_hosts=settings.ALLOWED_HOSTS
    )

    @app.middleware("http")
    async def add_request_id_and_process_time(request: Request, call_next):
        request_id = str(uuid.uuid4())
        start_time = time.time()

        request.state.request_id = request_id
        response = await call_next(request)

        process_time = time.time() - start_time
        response.headers["X-Process-Time"] = str(process_time)
        response.headers["X-Request-ID"] = request_id
        return response

def setup_exception_handlers(app: FastAPI):
    """Setup semua custom exception handlers."""
    @app.exception_handler(CRMException)
    async def crm_exception_handler(request: Request, exc: CRMException):
        status_code = status_for(exc)
        request_id = getattr(request.state, 'request_id', None)
        if status_code >= 500:
            logger.warning(f"[{request_id}] {exc.error_code}: {exc.message}")
        content = APIResponse.error(message=exc.message, error_code=exc.error_code,
                                    details=exc.details or None)
        content['request_id'] = request_id
        return JSONResponse(status_code=status_code, content=content)

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        request_id = getattr(request.state, 'request_id', None)
        logger.exception(f"[{request_id}] Unhandled error on {request.method} {request.url.path}")
        content = APIResponse.error(message="An unexpected error occurred", error_code='INTERNAL_ERROR')
        content['request_id'] = request_id
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=content)

def setup_routes(app: FastAPI):
    """Daftarkan (include) semua router ke aplikasi."""
    # Endpoint sistem
    @app.get("/health", tags=["System"])
    async def health_check():
        return {"status": "healthy", "timestamp": time.time()}

    @app.get("/", tags=["System"])
    async def root():
        return {"message": "OmniCRM Sync API", "version": "1.0.0", "docs": "/docs"}

    workspace = "/api/workspaces/{workspace_id}"
    app.include_router(sync_router, prefix=f"{workspace}/sync", tags=["Sync"])
    app.include_router(event_router, prefix=f"{workspace}/events", tags=["Event Queue"])
    app.include_router(stock_router, prefix=f"{workspace}/stock", tags=["Stock"])
    app.include_router(warehouse_router, prefix=f"{workspace}/warehouses", tags=["Warehouses"])
    app.include_router(tracking_router, prefix=f"{workspace}/tracking", tags=["Tracking"])
    app.include_router(webhook_router, prefix="/api/webhooks", tags=["Webhooks"])

def create_app(settings=None, client_pool: ClientPool = None) -> FastAPI:
    """
    Application Factory: Membuat dan mengkonfigurasi instance FastAPI.
    """
    settings = settings or default_settings
    configure_logging(settings.LOG_LEVEL)
    pool = client_pool or ClientPool(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("OmniCRM API starting up")
        yield
        await app.state.client_pool.aclose()
        logger.info("OmniCRM API shut down")

    app = FastAPI(
        title="OmniCRM Sync API",
        description="Multi-tenant CRM synchronization core",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc"
    )
    app.state.settings = settings
    app.state.client_pool = pool

    setup_middleware(app, settings)
    setup_exception_handlers(app)
    setup_routes(app)

    logger.info("FastAPI app created and configured")
    return app
