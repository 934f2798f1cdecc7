# Copyright (c) Syntropy Systems
"""HTTP client for scripts talking to a coilsim server."""
from __future__ import annotations

import time
from typing import TYPE_CHECKING, TypeVar

import httpx
from pydantic import BaseModel, ValidationError
from typing_extensions import Self

from coilsim.models.api import (
    BatchRunDetail,
    BatchRunListResponse,
    CorrelationResponse,
    ErrorResponse,
    MessageResponse,
    SimulationComparison,
    SimulationListResponse,
    StatusResponse,
)
from coilsim.models.simulation import (
    BatchRun,
    BatchStatus,
    SimulationJob,
    SimulationResult,
)

if TYPE_CHECKING:
    from collections.abc import Mapping
    from types import TracebackType

    from coilsim.models.simulation import JobStatus, SimulationParameters

ResponseModel = TypeVar("ResponseModel", bound=BaseModel)


class CoilsimClientError(Exception):
    """Error from coilsim server communication."""


class CoilsimClient:
    """HTTP client for the coilsim server API."""

    server_url: str
    timeout: float

    def __init__(
        self,
        server_url: str,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            server_url: Base URL of the coilsim server (e.g., "http://localhost:8080")
            timeout: Request timeout in seconds
            transport: Optional httpx transport (used to talk to an in-process app)

        """
        self.server_url = server_url.rstrip("/")
        self.timeout = timeout
        self._client = httpx.Client(timeout=timeout, transport=transport)

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def __enter__(self) -> Self:
        """Enter the client context and return self."""
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Exit the client context and close the HTTP client."""
        self.close()

    def _send(
        self,
        method: str,
        path: str,
        json: Mapping[str, object] | None = None,
        params: Mapping[str, object] | None = None,
    ) -> httpx.Response:
        url = f"{self.server_url}{path}"
        try:
            response = self._client.request(method=method, url=url, json=json, params=params)
            _ = response.raise_for_status()
        except httpx.HTTPStatusError as e:
            # Try to get error detail from response
            try:
                detail = ErrorResponse.model_validate(e.response.json()).detail
            except (ValidationError, ValueError):
                detail = str(e)
            msg = f"Server error: {detail}"
            raise CoilsimClientError(msg) from e
        except httpx.RequestError as e:
            msg = f"Connection error: {e}"
            raise CoilsimClientError(msg) from e
        return response

    def _request(
        self,
        method: str,
        path: str,
        response_model: type[ResponseModel],
        json: Mapping[str, object] | None = None,
        params: Mapping[str, object] | None = None,
    ) -> ResponseModel:
        """Make an HTTP request and validate the JSON body."""
        response = self._send(method, path, json=json, params=params)
        return response_model.model_validate(response.json())

    # --- Simulations ---

    def submit_simulation(
        self,
        parameters: SimulationParameters,
        experiment_id: str | None = None,
    ) -> SimulationJob:
        """Submit a simulation; returns the PENDING job."""
        body: dict[str, object] = parameters.model_dump(mode="json")
        body["experiment_id"] = experiment_id
        return self._request("POST", "/api/v1/simulations", SimulationJob, json=body)

    def get_simulation(self, job_id: str) -> SimulationJob:
        return self._request("GET", f"/api/v1/simulations/{job_id}", SimulationJob)

    def list_simulations(
        self,
        status: JobStatus | None = None,
        search: str | None = None,
        limit: int = 100,
    ) -> list[SimulationJob]:
        params: dict[str, object] = {"limit": limit}
        if status is not None:
            params["status"] = status.value
        if search:
            params["search"] = search
        response = self._request(
            "GET", "/api/v1/simulations", SimulationListResponse, params=params
        )
        return response.simulations

    def retry_simulation(self, job_id: str, failure_rate: float | None = None) -> SimulationJob:
        return self._request(
            "POST",
            f"/api/v1/simulations/{job_id}/retry",
            SimulationJob,
            json={"failure_rate": failure_rate},
        )

    def delete_simulation(self, job_id: str) -> MessageResponse:
        return self._request("DELETE", f"/api/v1/simulations/{job_id}", MessageResponse)

    def get_results(self, job_id: str) -> SimulationResult:
        return self._request(
            "GET", f"/api/v1/simulations/{job_id}/results", SimulationResult
        )

    def export_results(self, job_id: str, fmt: str = "json") -> str:
        """Exported results as text."""
        response = self._send(
            "GET",
            f"/api/v1/simulations/{job_id}/export",
            params={"format": fmt},
        )
        return response.text

    def wait_for_simulation(
        self,
        job_id: str,
        poll_interval: float = 1.0,
        timeout: float | None = None,
    ) -> SimulationJob:
        """Poll until the simulation reaches COMPLETED or FAILED."""
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            job = self.get_simulation(job_id)
            if job.status.is_terminal:
                return job
            if deadline is not None and time.monotonic() > deadline:
                msg = f"Timed out waiting for simulation {job_id}"
                raise CoilsimClientError(msg)
            time.sleep(poll_interval)

    # --- Batches ---

    def create_batch_run(self, spec: Mapping[str, object]) -> BatchRun:
        """Create a parameter sweep; returns the PENDING batch run."""
        return self._request("POST", "/api/v1/batches", BatchRun, json=spec)

    def get_batch_run(self, batch_id: str) -> BatchRunDetail:
        return self._request("GET", f"/api/v1/batches/{batch_id}", BatchRunDetail)

    def list_batch_runs(self, limit: int = 100) -> list[BatchRun]:
        response = self._request(
            "GET", "/api/v1/batches", BatchRunListResponse, params={"limit": limit}
        )
        return response.batches

    def wait_for_batch(
        self,
        batch_id: str,
        poll_interval: float = 1.0,
        timeout: float | None = None,
    ) -> BatchRunDetail:
        """Poll until the batch run is COMPLETED."""
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            detail = self.get_batch_run(batch_id)
            if detail.batch.status == BatchStatus.COMPLETED:
                return detail
            if deadline is not None and time.monotonic() > deadline:
                msg = f"Timed out waiting for batch run {batch_id}"
                raise CoilsimClientError(msg)
            time.sleep(poll_interval)

    # --- Analysis & status ---

    def get_correlations(self) -> CorrelationResponse:
        return self._request("GET", "/api/v1/analysis/correlations", CorrelationResponse)

    def compare_simulations(self, first_id: str, second_id: str) -> SimulationComparison:
        """Metric deltas of second_id measured against first_id."""
        return self._request(
            "GET",
            "/api/v1/analysis/compare",
            SimulationComparison,
            params={"first": first_id, "second": second_id},
        )

    def get_status(self) -> StatusResponse:
        return self._request("GET", "/api/v1/status", StatusResponse)

    def health_check(self) -> bool:
        """Check if the server is reachable and healthy."""
        try:
            response = self._send("GET", "/health")
        except CoilsimClientError:
            return False
        return response.json().get("status") == "healthy"
