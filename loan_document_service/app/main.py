# FastAPI Application Entry Point
import asyncio
import logging
from typing import Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

# Configuration and Observability
from loan_document_service.app.config import settings
from loan_document_service.app.observability import setup_opentelemetry, logger

# Initialize OpenTelemetry
setup_opentelemetry(service_name=settings.SERVICE_NAME_API)

# Import instrumentors after OTel SDK is initialized
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.pymongo import PymongoInstrumentor
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor

from loan_document_service.infrastructure.database.connection import connect_to_mongo, close_mongo_connection
from loan_document_service.infrastructure.kafka.producer import startup_kafka_producer, shutdown_kafka_producer
from loan_document_service.app.api.v1.errors import error_body
from loan_document_service.app.dependencies.services import ServiceContainer, build_service_container
from loan_document_service.app.service.commands.handlers import handle_expiry_sweep

# API Routers
from loan_document_service.app.api.v1.endpoints import health as health_router
from loan_document_service.app.api.v1.endpoints import consent_batches as consent_batches_router
from loan_document_service.app.api.v1.endpoints import documents as documents_router

# --- FastAPI Application Instance ---
app = FastAPI(
    title="Loan Document Service",
    description="Collects consent for a batch of loans with a single OTP and generates the requested loan documents.",
    version="1.0.0"
)


async def run_expiry_sweeps(services: ServiceContainer, interval_seconds: float):
    """Periodic housekeeping; one failed sweep does not stop the next."""
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await handle_expiry_sweep(services)
        except Exception as e:
            logger.error(f"Expiry sweep failed: {e}", exc_info=True)


# --- Event Handlers for connections, background work & OTel Instrumentation ---
@app.on_event("startup")
async def startup_event():
    logger.info("FastAPI application startup...")
    app.state.expiry_sweep_task = None
    try:
        app.state.http_client = httpx.AsyncClient(timeout=settings.DEFAULT_HTTP_TIMEOUT)
        HTTPXClientInstrumentor().instrument()
        logger.info(f"HTTPX AsyncClient initialized with timeout {settings.DEFAULT_HTTP_TIMEOUT} and instrumented.")

        db = None
        if settings.PERSISTENCE_BACKEND.lower() == "mongo":
            db = await connect_to_mongo()
            PymongoInstrumentor().instrument()
            logger.info("MongoDB connection established and PyMongo instrumented.")

        kafka_producer = None
        if settings.KAFKA_BOOTSTRAP_SERVERS:
            kafka_producer = await startup_kafka_producer()
            logger.info("Kafka Producer polling started.")
        else:
            logger.info("KAFKA_BOOTSTRAP_SERVERS not set. Notifications will only be logged.")

        services = build_service_container(settings, http_client=app.state.http_client, db=db, kafka_producer=kafka_producer)
        if db is not None:
            await services.batch_repository.ensure_indexes()
            await services.document_repository.ensure_indexes()
        app.state.services = services

        if settings.EXPIRY_SWEEP_INTERVAL_SECONDS > 0:
            app.state.expiry_sweep_task = asyncio.create_task(
                run_expiry_sweeps(services, settings.EXPIRY_SWEEP_INTERVAL_SECONDS)
            )
            logger.info(f"Expiry sweep scheduled every {settings.EXPIRY_SWEEP_INTERVAL_SECONDS}s.")
    except Exception as e:
        logger.error(f"Failed during startup: {e}", exc_info=True)
        raise

@app.on_event("shutdown")
async def shutdown_event():
    logger.info("FastAPI application shutdown...")

    sweep_task: Optional[asyncio.Task] = getattr(app.state, "expiry_sweep_task", None)
    if sweep_task:
        sweep_task.cancel()
        try:
            await sweep_task
        except asyncio.CancelledError:
            pass
        logger.info("Expiry sweep stopped.")

    services: Optional[ServiceContainer] = getattr(app.state, "services", None)
    if services:
        await services.generation_queue.shutdown()

    if getattr(app.state, "http_client", None):
        await app.state.http_client.aclose()
        logger.info("HTTPX AsyncClient closed.")

    await shutdown_kafka_producer()

    close_mongo_connection()


# --- Error envelope ---
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    problems = "; ".join(
        f"{'.'.join(str(part) for part in err.get('loc', ()))}: {err.get('msg')}" for err in exc.errors()
    )
    logger.info(f"Request validation failed on {request.url.path}: {problems}")
    return JSONResponse(status_code=400, content=error_body("VALIDATION_ERROR", problems))

@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    if isinstance(exc.detail, dict):
        content = exc.detail
    else:
        error_code = "INTERNAL_ERROR" if exc.status_code >= 500 else "HTTP_ERROR"
        content = error_body(error_code, str(exc.detail))
    return JSONResponse(status_code=exc.status_code, content=content)


FastAPIInstrumentor.instrument_app(app)
logger.info("FastAPI instrumentation complete.")

# Include API Routers
app.include_router(health_router.router)
app.include_router(consent_batches_router.router, prefix="/api/v1/consent/batch", tags=["Consent Batches"])
app.include_router(documents_router.router, prefix="/api/v1/documents", tags=["Documents"])

logger.info("API routers included. Application setup complete.")

# To run: uvicorn loan_document_service.app.main:app --reload --port 8000
