"""FastAPI server for Odoo user provisioning.

Main entry point for the API server.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.routes import health, odoo_users
from core.observability.logging import get_logger
from core.provisioning.errors import (
    AuthenticationFailed,
    ConflictDetected,
    NotFound,
    ProvisioningError,
    RemoteOperationFailed,
    StorageError,
)
from core.provisioning.provisioner import UserProvisioner

logger = get_logger(__name__)


ERROR_STATUS = [
    (NotFound, 404),
    (AuthenticationFailed, 502),
    (RemoteOperationFailed, 502),
    (ConflictDetected, 409),
    (StorageError, 500),
]


def status_for(error: ProvisioningError) -> int:
    """HTTP status for a provisioning error."""
    for error_type, status in ERROR_STATUS:
        if isinstance(error, error_type):
            return status
    return 500


async def provisioning_error_handler(request: Request, exc: ProvisioningError) -> JSONResponse:
    status = status_for(exc)
    if status >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {type(exc).__name__}: {exc.message}")
    return JSONResponse(
        status_code=status,
        content={"error": type(exc).__name__, "message": exc.message, "details": exc.details},
    )


def create_app(provisioner: Optional[UserProvisioner] = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        provisioner: Pre-built provisioner; built from the environment at
            startup when omitted
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan handler."""
        owned = provisioner is None
        if owned:
            from core.settings import create_provisioner
            app.state.provisioner = create_provisioner()
        else:
            app.state.provisioner = provisioner
        logger.info("Odoo provisioning API starting up")

        yield

        if owned:
            await app.state.provisioner.transport.close()
        logger.info("Odoo provisioning API shutting down")

    app = FastAPI(
        title="Odoo Provisioning API",
        description="Provision and deactivate Odoo users for local accounts",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(ProvisioningError, provisioning_error_handler)

    app.include_router(health.router, tags=["Health"])
    app.include_router(odoo_users.router, prefix="/odoo/users", tags=["Odoo Users"])

    return app


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("api.server:create_app", factory=True, host="0.0.0.0", port=8000, reload=True)
