"""FastAPI application for the coilsim server."""

import asyncio
import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import PlainTextResponse

import coilsim
from coilsim.config import CoilsimConfig
from coilsim.db import SQLiteDatabase
from coilsim.dispatch import Dispatcher
from coilsim.errors import InvalidStateError, NotFoundError, StoreError
from coilsim.executor import JobExecutor
from coilsim.models.api import (
    BatchRunCreate,
    BatchRunDetail,
    BatchRunListResponse,
    CorrelationResponse,
    HealthResponse,
    MessageResponse,
    SimulationCreate,
    SimulationListResponse,
    SimulationComparison,
    SimulationRetry,
    StatusResponse,
)
from coilsim.models.simulation import (
    BatchRun,
    JobStatus,
    SimulationJob,
    SimulationResult,
)
from coilsim.service import BatchRunSpec, SimulationService

logger = logging.getLogger(__name__)

EXPORT_MEDIA_TYPES = {
    "json": "application/json",
    "csv": "text/csv",
}

# Seconds the lifespan waits for dispatched simulations at shutdown
SHUTDOWN_DRAIN_TIMEOUT = 30.0


def get_service(request: Request) -> SimulationService:
    """Get the service bound to this application."""
    return request.app.state.service


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Lifecycle manager for the FastAPI app."""
    yield

    # Shutdown: give in-flight simulations a bounded time to finish
    service: SimulationService = app.state.service
    drained = await asyncio.to_thread(service.dispatcher.drain, SHUTDOWN_DRAIN_TIMEOUT)
    if not drained:
        logger.warning(
            "Shutting down with %d simulations still running",
            service.dispatcher.pending_count,
        )
    service.dispatcher.shutdown(wait=drained)
    service.db.close()


def create_app(
    db_path: Optional[Path] = None,
    config: Optional[CoilsimConfig] = None,
) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        db_path: SQLite database path (falls back to COILSIM_DB_PATH)
        config: Execution settings (time unit, worker count)

    Returns:
        Configured FastAPI application
    """
    if db_path is None:
        env_path = os.environ.get("COILSIM_DB_PATH")
        if not env_path:
            raise ValueError("No database configuration provided")
        db_path = Path(env_path)

    config = config or CoilsimConfig()

    db = SQLiteDatabase(db_path)
    db.init_schema()

    executor = JobExecutor(db, time_unit=config.time_unit_seconds)
    service = SimulationService(
        db,
        Dispatcher(max_workers=config.max_workers),
        executor=executor,
    )

    app = FastAPI(
        title="coilsim server",
        description="Synthetic stellarator simulation orchestration",
        version=coilsim.__version__,
        lifespan=lifespan,
    )
    app.state.service = service
    app.state.config = config

    # --- Simulation Endpoints ---

    @app.post("/api/v1/simulations", response_model=SimulationJob, status_code=201)
    def create_simulation(
        request: SimulationCreate,
        service: SimulationService = Depends(get_service),
    ) -> SimulationJob:
        """Submit a simulation; it runs in the background."""
        try:
            return service.submit_simulation(
                request.to_parameters(),
                experiment_id=request.experiment_id,
            )
        except StoreError as e:
            logger.exception("Could not create simulation")
            raise HTTPException(status_code=500, detail=str(e)) from e

    @app.get("/api/v1/simulations", response_model=SimulationListResponse)
    def list_simulations(
        status: Optional[JobStatus] = Query(None, description="Filter by status"),
        search: Optional[str] = Query(None, description="Match part of the simulation ID"),
        batch_run_id: Optional[str] = Query(None),
        experiment_id: Optional[str] = Query(None),
        limit: int = Query(100, ge=1, le=500),
        service: SimulationService = Depends(get_service),
    ) -> SimulationListResponse:
        """List simulations, newest first."""
        simulations = service.list_simulations(
            status=status,
            search=search,
            batch_run_id=batch_run_id,
            experiment_id=experiment_id,
            limit=limit,
        )
        return SimulationListResponse(simulations=simulations, count=len(simulations))

    @app.get("/api/v1/simulations/{job_id}", response_model=SimulationJob)
    def get_simulation(
        job_id: str,
        service: SimulationService = Depends(get_service),
    ) -> SimulationJob:
        """Get simulation details."""
        try:
            return service.get_simulation(job_id)
        except NotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e)) from e

    @app.delete("/api/v1/simulations/{job_id}", response_model=MessageResponse)
    def delete_simulation(
        job_id: str,
        service: SimulationService = Depends(get_service),
    ) -> MessageResponse:
        """Delete a simulation and its results."""
        try:
            service.delete_simulation(job_id)
        except NotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e)) from e
        return MessageResponse(message=f"Simulation {job_id} deleted")

    @app.post("/api/v1/simulations/{job_id}/retry", response_model=SimulationJob)
    def retry_simulation(
        job_id: str,
        request: Optional[SimulationRetry] = None,
        service: SimulationService = Depends(get_service),
    ) -> SimulationJob:
        """Resubmit a failed simulation."""
        failure_rate = request.failure_rate if request else None
        try:
            return service.retry_simulation(job_id, failure_rate=failure_rate)
        except NotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e)) from e
        except InvalidStateError as e:
            raise HTTPException(status_code=409, detail=str(e)) from e

    @app.get("/api/v1/simulations/{job_id}/results", response_model=SimulationResult)
    def get_results(
        job_id: str,
        service: SimulationService = Depends(get_service),
    ) -> SimulationResult:
        """Get the results of a completed simulation."""
        try:
            return service.get_results(job_id)
        except NotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e)) from e

    @app.get("/api/v1/simulations/{job_id}/export")
    def export_results(
        job_id: str,
        format: str = Query("json", pattern="^(json|csv)$"),  # noqa: A002
        service: SimulationService = Depends(get_service),
    ) -> PlainTextResponse:
        """Export results as JSON or as a t,value CSV."""
        try:
            body = service.export_results(job_id, format)
        except NotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e)) from e

        return PlainTextResponse(
            body,
            media_type=EXPORT_MEDIA_TYPES[format],
            headers={
                "Content-Disposition": f'attachment; filename="simulation-{job_id}.{format}"'
            },
        )

    # --- Batch Endpoints ---

    @app.post("/api/v1/batches", response_model=BatchRun, status_code=201)
    def create_batch(
        request: BatchRunCreate,
        service: SimulationService = Depends(get_service),
    ) -> BatchRun:
        """Create a parameter sweep; its simulations run in the background."""
        spec = BatchRunSpec(**request.model_dump())
        try:
            return service.create_batch_run(spec)
        except StoreError as e:
            logger.exception("Could not create batch run")
            raise HTTPException(status_code=500, detail=str(e)) from e

    @app.get("/api/v1/batches", response_model=BatchRunListResponse)
    def list_batches(
        limit: int = Query(100, ge=1, le=500),
        service: SimulationService = Depends(get_service),
    ) -> BatchRunListResponse:
        """List batch runs, newest first."""
        batches = service.list_batch_runs(limit=limit)
        return BatchRunListResponse(batches=batches, count=len(batches))

    @app.get("/api/v1/batches/{batch_id}", response_model=BatchRunDetail)
    def get_batch(
        batch_id: str,
        service: SimulationService = Depends(get_service),
    ) -> BatchRunDetail:
        """Get a batch run with its child simulations."""
        try:
            batch, simulations = service.get_batch_run(batch_id)
        except NotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e)) from e
        return BatchRunDetail(batch=batch, simulations=simulations)

    @app.delete("/api/v1/batches/{batch_id}", response_model=MessageResponse)
    def delete_batch(
        batch_id: str,
        service: SimulationService = Depends(get_service),
    ) -> MessageResponse:
        """Delete a batch run. Its simulations are kept."""
        try:
            service.delete_batch_run(batch_id)
        except NotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e)) from e
        return MessageResponse(message=f"Batch run {batch_id} deleted")

    # --- Analysis Endpoints ---

    @app.get("/api/v1/analysis/correlations", response_model=CorrelationResponse)
    def get_correlations(
        service: SimulationService = Depends(get_service),
    ) -> CorrelationResponse:
        """Correlate input parameters with outcomes across completed runs."""
        correlations, sample_size = service.correlations()
        return CorrelationResponse(correlations=correlations, sample_size=sample_size)

    @app.get("/api/v1/analysis/compare", response_model=SimulationComparison)
    def compare_simulations(
        first: str = Query(..., description="Baseline simulation ID"),
        second: str = Query(..., description="Simulation measured against the baseline"),
        service: SimulationService = Depends(get_service),
    ) -> SimulationComparison:
        """Compare the metrics of two completed simulations."""
        try:
            first_job, second_job, metrics = service.compare_simulations(first, second)
        except NotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e)) from e
        return SimulationComparison(first=first_job, second=second_job, metrics=metrics)

    # --- Status Endpoints ---

    @app.get("/api/v1/status", response_model=StatusResponse)
    def get_status(service: SimulationService = Depends(get_service)) -> StatusResponse:
        """Get job counts by status."""
        counts = service.status_counts()
        return StatusResponse(
            pending=counts[JobStatus.PENDING],
            running=counts[JobStatus.RUNNING],
            completed=counts[JobStatus.COMPLETED],
            failed=counts[JobStatus.FAILED],
            batches=len(service.list_batch_runs(limit=500)),
        )

    @app.get("/health", response_model=HealthResponse)
    def health_check() -> HealthResponse:
        """Health check endpoint."""
        return HealthResponse(status="healthy")

    return app
