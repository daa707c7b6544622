"""
Storefront dynamic data server - FastAPI application

Exposes the batch availability endpoint that listing, product and cart
pages poll for prices, stock and delivery dates, plus health and metrics.
"""

from contextlib import asynccontextmanager
from typing import Optional
import os
import time as _time
import traceback

from fastapi import Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy import text
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request as StarletteRequest
from starlette.responses import Response as StarletteResponse
import uvicorn

from storefront.availability import batch_to_response, parse_product_ids
from storefront.cache import cache_status
from storefront.config import get_config
from storefront.database import get_engine, get_session_factory, init_db
from storefront.dynamic_data import DynamicDataService
from storefront.errors import DataSourceError, InvalidBatchError
from storefront.logger import get_logger, set_level
from storefront.metrics import metrics_collector, record_request_metrics
from storefront.schemas import AvailabilityRequest, ErrorResponse

logger = get_logger("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Apply configured log level and make sure local tables exist."""
    config = get_config()
    set_level(config.log_level)
    # In production the tables belong to the ERP import; this only helps local/dev databases
    try:
        init_db()
    except Exception as _e:
        logger.warning(
            "Could not run create_all: %s. Tables should already exist (remote DB).", _e,
        )
    yield


app = FastAPI(
    title="Storefront Dynamic Data Server",
    description="Batch prices, stock and delivery dates for storefront product listings",
    version="1.0.0",
    lifespan=lifespan,
)


# ---------------------------------------------------------------------------
# Latency logging middleware
# Logs every non-OPTIONS request with method, path, status, and duration_ms,
# and feeds the /metrics collector.
# ---------------------------------------------------------------------------

class LatencyLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: StarletteRequest, call_next) -> StarletteResponse:
        if request.method == "OPTIONS":
            return await call_next(request)
        t0 = _time.perf_counter()
        response = await call_next(request)
        duration_ms = round((_time.perf_counter() - t0) * 1000, 1)
        path = request.url.path
        record_request_metrics(path, duration_ms, is_error=response.status_code >= 500)
        logger.info(
            "[LATENCY] %s %s -> %d  %.1fms",
            request.method, path, response.status_code, duration_ms,
        )
        return response


app.add_middleware(LatencyLoggingMiddleware)


#
# Service wiring
#

_service: Optional[DynamicDataService] = None


def get_dynamic_data_service() -> DynamicDataService:
    """Dependency providing the process-wide dynamic data service."""
    global _service
    if _service is None:
        _service = DynamicDataService.from_config(get_session_factory())
    return _service


#
# Error responses
#

def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ErrorResponse(message=message).model_dump())


@app.exception_handler(InvalidBatchError)
async def invalid_batch_handler(request: Request, exc: InvalidBatchError):
    logger.info("invalid batch: path=%s size=%s message=%s", request.url.path, exc.size, exc.message)
    return _error(400, exc.message)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    fields = sorted({".".join(str(p) for p in err.get("loc", ())[1:]) for err in exc.errors()} - {""})
    message = "Invalid request parameters"
    if fields:
        message += ": " + ", ".join(fields)
    return _error(400, message)


@app.exception_handler(DataSourceError)
async def data_source_handler(request: Request, exc: DataSourceError):
    logger.error(
        "availability check failed: path=%s source=%s error=%s",
        request.url.path, exc.source, exc.message, exc_info=exc,
    )
    return _error(500, "Availability check failed")


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Log unhandled exceptions and return 500 in the standard error envelope."""
    logger.error("Unhandled exception: %s\n%s", exc, traceback.format_exc())
    is_dev = os.getenv("ENV", "development").lower() in ("development", "dev", "")
    return _error(500, str(exc) if is_dev else "Internal server error")


#
# Health Check Endpoints
#

@app.get("/")
def root():
    return {
        "service": "Storefront Dynamic Data Server",
        "version": "1.0.0",
        "status": "operational"
    }


@app.get("/health")
def health_check(service: DynamicDataService = Depends(get_dynamic_data_service)):
    """
    Detailed health check including database and cache connectivity.
    """
    health_status = {
        "service": "healthy",
        "database": "unknown",
        "cache": "unknown"
    }

    try:
        with get_engine().connect() as conn:
            conn.execute(text("SELECT 1"))
        health_status["database"] = "healthy"
    except Exception as e:
        health_status["database"] = f"unhealthy: {str(e)}"
        health_status["service"] = "degraded"

    cache = cache_status(service.cache)
    health_status["cache"] = cache["status"]
    health_status["cache_backend"] = cache["backend"]
    if cache["status"] != "healthy":
        health_status["service"] = "degraded"

    return health_status


@app.get("/metrics")
def get_metrics():
    """
    Observability metrics: latency percentiles per endpoint, aggregation
    cache hit rate, batch sizes, request counts and error rates.
    """
    return metrics_collector.get_summary()


#
# Availability Endpoints
#

@app.get("/api/availability")
async def availability_query(
    product_ids: str = Query(..., min_length=1, max_length=10000),
    city_id: int = Query(..., ge=1, le=10000),
    buyer_id: Optional[int] = Query(None, ge=1),
    service: DynamicDataService = Depends(get_dynamic_data_service),
):
    """
    Prices, stock and delivery dates for a comma-separated list of products.

    Response is keyed by product id string. Ids that are not positive
    integers are ignored; an empty list after filtering returns {}.
    """
    batch = await service.get_batch(parse_product_ids(product_ids), city_id, buyer_id)
    return batch_to_response(batch)


@app.post("/api/availability")
async def availability_check(
    request: AvailabilityRequest,
    service: DynamicDataService = Depends(get_dynamic_data_service),
):
    """Same as GET /api/availability with the parameters in a JSON body."""
    batch = await service.get_batch(parse_product_ids(request.product_ids), request.city_id, request.buyer_id)
    return batch_to_response(batch)


#
# Development Server
#

if __name__ == "__main__":
    uvicorn.run(
        "storefront.main:app",
        host="0.0.0.0",
        port=8001,
        reload=True
    )
