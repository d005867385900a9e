from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api import agg_status, env_check, estimate_fee, lz_status, lz_status_onchain, transfers
from .api.deps import shutdown_tracker
from .config import settings
from .core.errors import ConfigurationError, ValidationError
from .logging_config import setup_logging
from .middleware.logging_middleware import RequestLoggingMiddleware


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    yield
    await shutdown_tracker()


# Create FastAPI app
app = FastAPI(
    title="lzbridge API",
    description="OFT cross-chain send and transfer status service",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ConfigurationError)
@app.exception_handler(ValidationError)
async def bad_request_handler(request: Request, exc: Exception) -> JSONResponse:
    return JSONResponse({"error": str(exc)}, status_code=400)


# Include routers
app.include_router(estimate_fee.router, prefix="/api", tags=["Send"])
app.include_router(agg_status.router, prefix="/api", tags=["Status"])
app.include_router(lz_status_onchain.router, prefix="/api", tags=["Status"])
app.include_router(lz_status.router, prefix="/api", tags=["Status"])
app.include_router(transfers.router, prefix="/api", tags=["Status"])
app.include_router(env_check.router, prefix="/api", tags=["Diagnostics"])


@app.get("/")
async def root():
    """Root endpoint with basic info"""
    return {
        "name": "lzbridge API",
        "version": "0.1.0",
        "description": "OFT cross-chain send and transfer status service",
        "docs": "/docs",
        "envCheck": "/api/env-check",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "lzbridge.main:app",
        host=settings.host,
        port=settings.port,
        reload=True,
        log_level=settings.log_level.lower()
    )
