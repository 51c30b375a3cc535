# app/main.py
import time
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.core.logging_config import logger, setup_logging
from app.core.settings import settings, use_json_logs
from app.verticals.wholesale.api import customer_pricing, customers, pricing, settings_admin
from app.verticals.wholesale.errors import InvalidInput, NotFound, PricingError

# ----------------------------------------------------
# App init
# ----------------------------------------------------
app = FastAPI(title=settings.app_name, version="0.1.0")

setup_logging(settings.log_level, json_logs=use_json_logs(settings))
logger.info("startup", service="wholesale-pricing-api", env=settings.app_env)


# ----------------------------------------------------
# Health
# ----------------------------------------------------
@app.get("/health", include_in_schema=True)
def health() -> dict:
    return {"status": "ok"}


# ----------------------------------------------------
# Logging middleware
# ----------------------------------------------------
@app.middleware("http")
async def logging_middleware(request: Request, call_next):
    start = time.time()

    request_id = request.headers.get("X-Request-ID") or uuid4().hex
    shop = request.headers.get("X-Shop-Domain", "unknown")
    client_ip = request.client.host if request.client else "unknown"

    bound_logger = logger.bind(
        request_id=request_id,
        shop=shop,
        ip=client_ip,
        endpoint=str(request.url.path),
        method=request.method,
    )

    bound_logger.info("request_started")
    response = await call_next(request)
    latency_ms = round((time.time() - start) * 1000, 2)

    response.headers["X-Request-ID"] = request_id
    bound_logger.bind(status_code=response.status_code, latency_ms=latency_ms).info(
        "request_finished"
    )
    return response


# ----------------------------------------------------
# Middleware
# ----------------------------------------------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ----------------------------------------------------
# Errors
# ----------------------------------------------------
def _error_response(exc: PricingError, status_code: int) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": exc.as_dict()})


@app.exception_handler(InvalidInput)
def invalid_input_handler(request: Request, exc: InvalidInput):
    logger.bind(code=exc.code, endpoint=str(request.url.path)).warning("invalid_input")
    return _error_response(exc, 422)


@app.exception_handler(NotFound)
def not_found_handler(request: Request, exc: NotFound):
    logger.bind(code=exc.code, endpoint=str(request.url.path)).info("not_found")
    return _error_response(exc, 404)


# ----------------------------------------------------
# Routers
# ----------------------------------------------------
app.include_router(pricing.router)
app.include_router(settings_admin.router)
app.include_router(customer_pricing.router)
app.include_router(customers.router)
