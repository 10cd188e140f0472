from fastapi import FastAPI, Request, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging
import structlog
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from .config import settings
from .error_handling import (
    CryptoAgentError, ValidationError, ProviderError, AlertNotFoundError, error_collector
)
from .routes import router
from .price_alerts import price_alert_monitor
from . import __version__

logging.basicConfig(format="%(message)s", level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    wrapper_class=structlog.stdlib.BoundLogger,
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()

def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()

# Application lifespan manager
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start and stop the price alert monitor with the application"""
    startup_start_time = time.time()
    logger.info("Starting Crypto Agent service")

    await price_alert_monitor.start()

    logger.info("Crypto Agent service ready",
                environment=settings.ENV,
                alert_check_interval=price_alert_monitor.check_interval,
                startup_time_seconds=round(time.time() - startup_start_time, 2))

    yield

    logger.info("Shutting down Crypto Agent service")
    try:
        await price_alert_monitor.stop()
        logger.info("Crypto Agent service shutdown complete")
    except Exception as e:
        logger.error("Error during shutdown", error=str(e))

# Create FastAPI app
app = FastAPI(
    title="Crypto Agent Toolset",
    description="Portfolio valuation, risk analytics, sentiment scoring and price alerts for a crypto AI agent",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Add request logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = time.time()

    logger.info("Request received",
                method=request.method,
                url=str(request.url),
                client_ip=request.client.host if request.client else "unknown")

    response = await call_next(request)
    process_time = time.time() - start_time

    logger.info("Request completed",
                method=request.method,
                url=str(request.url),
                status_code=response.status_code,
                process_time=round(process_time, 3))

    response.headers["X-Process-Time"] = str(process_time)
    return response

def _error_response(request: Request, exc: Exception, status_code: int) -> JSONResponse:
    logger.warning("Request failed",
                   method=request.method,
                   url=str(request.url),
                   status_code=status_code,
                   error=str(exc),
                   error_type=type(exc).__name__)
    return JSONResponse(
        status_code=status_code,
        content={
            "error": str(exc),
            "error_type": type(exc).__name__,
            "timestamp": _timestamp()
        }
    )

@app.exception_handler(ValidationError)
async def validation_exception_handler(request: Request, exc: ValidationError):
    return _error_response(request, exc, 400)

@app.exception_handler(AlertNotFoundError)
async def not_found_exception_handler(request: Request, exc: AlertNotFoundError):
    return _error_response(request, exc, 404)

@app.exception_handler(ProviderError)
async def provider_exception_handler(request: Request, exc: ProviderError):
    error_collector.record_error(exc, {"method": request.method, "url": str(request.url)})
    return _error_response(request, exc, 502)

@app.exception_handler(CryptoAgentError)
async def agent_exception_handler(request: Request, exc: CryptoAgentError):
    return _error_response(request, exc, 500)

# HTTP exception handler
@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    logger.warning("HTTP exception",
                   method=request.method,
                   url=str(request.url),
                   status_code=exc.status_code,
                   detail=exc.detail)

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.detail,
            "status_code": exc.status_code,
            "timestamp": _timestamp()
        }
    )

# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler for unhandled errors"""
    logger.error("Unhandled exception",
                 method=request.method,
                 url=str(request.url),
                 error=str(exc),
                 error_type=type(exc).__name__)
    error_collector.record_error(exc, {"method": request.method, "url": str(request.url)})

    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "error_type": type(exc).__name__,
            "timestamp": _timestamp()
        }
    )

app.include_router(router)

# Root endpoint
@app.get("/")
async def root():
    """Root endpoint with service information"""
    return {
        "service": "Crypto Agent Toolset",
        "version": __version__,
        "status": "operational",
        "timestamp": _timestamp(),
        "endpoints": {
            "health": "/api/health",
            "portfolio": "/api/portfolio?wallet={address}&chain={chain}",
            "risk": "/api/portfolio/risk?wallet={address}&chain={chain}",
            "alerts": "/api/alerts",
            "alert_status": "/api/alerts/status",
            "notifications": "/api/alerts/notifications",
            "sentiment": "/api/sentiment/{token_symbol}",
            "docs": "/docs"
        }
    }
