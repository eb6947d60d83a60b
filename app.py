import os
import time
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Optional

from fastapi import FastAPI, Request, HTTPException
from fastapi.responses import JSONResponse
from loguru import logger
from dotenv import load_dotenv
from pydantic import BaseModel

from graph.orchestrator import ReportOrchestrator
from tools.apollo import ApolloEnricher
from tools.errors import InvalidInput, JobNotFound, StoreUnavailable
from tools.job_store import RedisJobStore
from tools.llm import ReportGenerator

VERSION = "1.0.0"

# Load environment variables
load_dotenv()

# Configure logging
LOG_DIR = os.getenv("LOG_DIR", "logs")
logger.add(os.path.join(LOG_DIR, "app.log"), rotation="1 day", retention="7 days", level="INFO")


class ReportRequest(BaseModel):
    email: str


def create_app(store=None, enricher=None, generator=None) -> FastAPI:
    """Build the API; collaborators default to the env-configured production clients."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        job_store = store or RedisJobStore.from_url()
        try:
            await job_store.ping()
            logger.info("Job store connection established successfully")
        except StoreUnavailable as e:
            logger.error(f"Job store not reachable at startup: {e}")

        app.state.store = job_store
        app.state.orchestrator = ReportOrchestrator(
            job_store,
            enricher or ApolloEnricher(),
            generator or ReportGenerator(),
        )
        yield

        logger.info(f"Shutting down, waiting for {app.state.orchestrator.active_jobs} report(s)")
        await app.state.orchestrator.drain()
        if store is None:
            await job_store.close()

    app = FastAPI(
        title="Lead Report Generator",
        description="Asynchronous lead enrichment and AI report generation",
        version=VERSION,
        lifespan=lifespan,
    )

    @app.post("/reports", status_code=202)
    async def create_report(payload: ReportRequest, request: Request):
        """Start generating a report for an email; returns the report id immediately."""
        report_id = await request.app.state.orchestrator.submit(payload.email)
        return {"id": report_id, "status": "processing"}

    @app.get("/reports/{report_id}")
    async def get_report_status(report_id: str, request: Request):
        """Report status; `data` holds the full report only once it is completed."""
        status = await request.app.state.orchestrator.query_status(report_id)
        return status.to_response()

    @app.get("/reports")
    async def list_reports(request: Request):
        """Report history, newest first."""
        jobs = await request.app.state.orchestrator.list_all()
        return [job.model_dump(mode="json", by_alias=True) for job in jobs]

    @app.get("/health")
    async def health(request: Request):
        """Health check endpoint."""
        try:
            store_ok = await request.app.state.store.ping()
        except StoreUnavailable:
            store_ok = False
        return {
            "status": "healthy" if store_ok else "degraded",
            "timestamp": time.time(),
            "version": VERSION,
            "services": {
                "store": "connected" if store_ok else "disconnected",
                "active_reports": request.app.state.orchestrator.active_jobs,
            },
        }

    @app.post("/admin/reconcile")
    async def reconcile_stale_reports(request: Request, max_age_minutes: Optional[int] = 30):
        """Fail reports stuck in a non-terminal state for longer than `max_age_minutes`."""
        if max_age_minutes is None or max_age_minutes < 1:
            raise HTTPException(status_code=400, detail="max_age_minutes must be at least 1")
        failed = await request.app.state.orchestrator.reconcile_stale(timedelta(minutes=max_age_minutes))
        return {"reconciled": len(failed), "report_ids": failed}

    # Error handlers
    @app.exception_handler(InvalidInput)
    async def invalid_input_handler(request: Request, exc: InvalidInput):
        return JSONResponse(status_code=422, content={"status": "error", "message": str(exc)})

    @app.exception_handler(JobNotFound)
    async def not_found_handler(request: Request, exc: JobNotFound):
        return JSONResponse(status_code=404, content={"status": "error", "message": "Report not found"})

    @app.exception_handler(StoreUnavailable)
    async def store_unavailable_handler(request: Request, exc: StoreUnavailable):
        logger.error(f"Job store unavailable: {exc}")
        return JSONResponse(status_code=503, content={"status": "error", "message": "Report storage unavailable"})

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception: {exc}")
        return JSONResponse(
            status_code=500,
            content={"status": "error", "message": "Internal server error"}
        )

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn

    # Create logs directory if it doesn't exist
    os.makedirs(LOG_DIR, exist_ok=True)

    logger.info("Starting Lead Report Generator")

    uvicorn.run(
        "app:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info"
    )
