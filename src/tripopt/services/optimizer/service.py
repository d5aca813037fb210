"""Process-wide wiring of the optimizer and job store."""

from __future__ import annotations

import logging
from functools import lru_cache

from ...config import settings
from ...persistence.jobs import JobStore, build_job_store
from .cache import DistanceCache
from .distance import DistanceMatrixBuilder, DistanceProvider, HaversineProvider, RemoteRoutingProvider
from .orchestrator import OptimizationOrchestrator
from .osrm_client import OSRMClient

logger = logging.getLogger(__name__)


def build_distance_provider() -> DistanceProvider:
    """OSRM when a base URL is configured, great-circle estimates otherwise."""
    fallback = HaversineProvider(default_speed_kmh=settings.default_ground_speed_kmh)
    if settings.osrm_base_url:
        logger.info(f"Using OSRM distance provider at {settings.osrm_base_url}")
        return RemoteRoutingProvider(OSRMClient(), estimator=fallback)
    logger.info("OSRM not configured; using haversine distance estimates")
    return fallback


@lru_cache()
def get_job_store() -> JobStore:
    return build_job_store()


@lru_cache()
def get_orchestrator() -> OptimizationOrchestrator:
    builder = DistanceMatrixBuilder(
        provider=build_distance_provider(),
        cache=DistanceCache(),
        fallback=HaversineProvider(default_speed_kmh=settings.default_ground_speed_kmh),
    )
    return OptimizationOrchestrator(matrix_builder=builder, job_store=get_job_store())
