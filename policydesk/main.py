# policydesk/main.py
import time
import uuid
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from policydesk import config
from policydesk.api.routes import router
from policydesk.observability.logger import get_logger, setup_logging
from policydesk.services import Services, build_services

# Initialize logging FIRST
setup_logging(log_level=config.LOG_LEVEL, log_file=config.LOG_FILE or None)
logger = get_logger(__name__)

VERSION = "1.0.0"


def create_app(services: Optional[Services] = None) -> FastAPI:

    app = FastAPI(
        title="PolicyDesk API",
        description="Policy document ingestion, analysis and question answering",
        version=VERSION,
    )

    app.state.services = services or build_services()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log every request with a request id and record latency metrics."""

        request_id = str(uuid.uuid4())
        request.state.request_id = request_id

        metrics = request.app.state.services.metrics

        logger.info(
            "request_started",
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "client_ip": request.client.host if request.client else None,
            },
        )

        start_time = time.time()

        try:

            response = await call_next(request)

        except Exception as e:

            latency = time.time() - start_time

            metrics.record_failure()

            logger.error(
                "request_failed",
                extra={
                    "request_id": request_id,
                    "method": request.method,
                    "path": request.url.path,
                    "latency_seconds": round(latency, 3),
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
            )

            raise

        latency = time.time() - start_time

        if response.status_code >= 500:
            metrics.record_failure()
        else:
            metrics.record_success(latency)

        response.headers["X-Request-Id"] = request_id

        logger.info(
            "request_completed",
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "latency_seconds": round(latency, 3),
            },
        )

        return response

    app.include_router(router)

    @app.on_event("startup")
    async def startup_event():

        logger.info("application_startup", extra={"version": VERSION})

        if config.INFERENCE_BACKEND == "remote" and not config.INFERENCE_API_KEY:

            logger.warning(
                "missing_api_key",
                extra={
                    "warning_detail":
                    "INFERENCE_API_KEY not set. Inference calls will fail with auth_error."
                },
            )

    @app.on_event("shutdown")
    async def shutdown_event():

        tasks = app.state.services.tasks

        if tasks.in_flight:
            logger.warning(
                "application_shutdown_with_pending_documents",
                extra={"in_flight": tasks.in_flight},
            )
            await tasks.cancel_all()

        logger.info("application_shutdown")

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):

        request_id = getattr(request.state, "request_id", "unknown")

        logger.error(
            "unhandled_exception",
            extra={
                "request_id": request_id,
                "path": request.url.path,
                "error": str(exc),
                "error_type": type(exc).__name__,
            },
            exc_info=True,
        )

        request.app.state.services.posthog.track_error(
            distinct_id=request_id,
            error_type=type(exc).__name__,
            endpoint=request.url.path,
        )

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "An internal error occurred. Please try again.",
                "request_id": request_id,
            },
        )

    @app.get("/")
    async def root():

        return {
            "message": "PolicyDesk API",
            "version": VERSION,
            "docs": "/docs",
            "health": "/health",
            "metrics": "/metrics",
        }

    return app


app = create_app()


if __name__ == "__main__":

    import uvicorn

    uvicorn.run("policydesk.main:app", host="0.0.0.0", port=8000)
