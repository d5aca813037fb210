"""Distance matrix construction with provider fallback and caching."""

from __future__ import annotations

import logging
from typing import Iterable, Optional, Protocol, Sequence

import httpx

from ...models.domain import Place
from ..geospatial import haversine_meters
from .cache import DistanceCache
from .errors import ProviderError, ValidationError
from .models import DistanceMatrix, OptimizationWarning, WarningKind
from .osrm_client import OSRMClient

logger = logging.getLogger(__name__)

PROFILE_SPEEDS_KMH = {
    "walking": 5.0,
    "cycling": 15.0,
    "driving": 60.0,
}

MOTORISED_MODES = {"transit", "bus", "train", "driving", "high_speed_train", "flight"}
PEDAL_MODES = {"cycling", "escooter"}


def select_profile(modes: Iterable[str]) -> str:
    """Routing profile used for the matrix, given canonical transport modes."""

    allowed = set(modes)
    if allowed & MOTORISED_MODES:
        return "driving"
    if allowed & PEDAL_MODES:
        return "cycling"
    return "walking"


def travel_seconds(distance_meters: float, speed_kmh: float) -> float:
    if speed_kmh <= 0:
        return 0.0
    return distance_meters / (speed_kmh * 1000.0 / 3600.0)


class DistanceProvider(Protocol):
    def matrix(self, coordinates: Sequence[tuple[float, float]], profile: str) -> DistanceMatrix: ...


class HaversineProvider:
    """Great-circle distances with durations from a fixed speed per profile."""

    source = "haversine"

    def __init__(self, default_speed_kmh: float = 60.0) -> None:
        self.default_speed_kmh = default_speed_kmh

    def speed_for(self, profile: str) -> float:
        return PROFILE_SPEEDS_KMH.get(profile, self.default_speed_kmh)

    def matrix(self, coordinates: Sequence[tuple[float, float]], profile: str) -> DistanceMatrix:
        size = len(coordinates)
        speed = self.speed_for(profile)
        distances = [[0.0] * size for _ in range(size)]
        durations = [[0.0] * size for _ in range(size)]
        for i in range(size):
            for j in range(i + 1, size):
                meters = haversine_meters(coordinates[i], coordinates[j])
                seconds = travel_seconds(meters, speed)
                distances[i][j] = distances[j][i] = meters
                durations[i][j] = durations[j][i] = seconds
        return DistanceMatrix(distances=distances, durations=durations, profile=profile, source=self.source)


class RemoteRoutingProvider:
    """Road-network matrix from OSRM, patched with haversine for unroutable pairs."""

    source = "osrm"

    def __init__(self, client: OSRMClient, estimator: Optional[HaversineProvider] = None) -> None:
        self.client = client
        self.estimator = estimator or HaversineProvider()

    def matrix(self, coordinates: Sequence[tuple[float, float]], profile: str) -> DistanceMatrix:
        try:
            table = self.client.table(coordinates, profile=profile)
        except (ConnectionError, ValueError, httpx.HTTPError) as exc:
            raise ProviderError(f"OSRM table request failed: {exc}") from exc

        raw_distances = table.get("distances")
        raw_durations = table.get("durations")
        size = len(coordinates)
        if not raw_distances or not raw_durations or len(raw_distances) != size or len(raw_durations) != size:
            raise ProviderError("OSRM returned a matrix of unexpected shape.")

        speed = self.estimator.speed_for(profile)
        distances = [[0.0] * size for _ in range(size)]
        durations = [[0.0] * size for _ in range(size)]
        degraded = 0
        for i in range(size):
            for j in range(size):
                if i == j:
                    continue
                distance = raw_distances[i][j]
                duration = raw_durations[i][j]
                if distance is None or duration is None:
                    degraded += 1
                    distance = haversine_meters(coordinates[i], coordinates[j])
                    duration = travel_seconds(distance, speed)
                distances[i][j] = float(distance)
                durations[i][j] = float(duration)

        if degraded:
            logger.warning(f"OSRM returned {degraded} unroutable pairs; using haversine estimates for them")
        return DistanceMatrix(
            distances=distances,
            durations=durations,
            profile=profile,
            source=self.source,
            degraded_pairs=degraded,
        )


class DistanceMatrixBuilder:
    def __init__(
        self,
        provider: DistanceProvider,
        cache: Optional[DistanceCache] = None,
        fallback: Optional[DistanceProvider] = None,
    ) -> None:
        self.provider = provider
        self.cache = cache
        self.fallback = fallback or HaversineProvider()

    def build(
        self, places: Sequence[Place], profile: str
    ) -> tuple[DistanceMatrix, list[OptimizationWarning]]:
        """Full matrix for ``places`` in the given order.

        Returns the matrix and any provider degradation warnings raised while
        building it.
        """
        if len(places) < 2:
            raise ValidationError("At least 2 places are required to build a distance matrix.")

        coordinates = [place.coordinates for place in places]
        warnings: list[OptimizationWarning] = []

        cached = self._from_cache(coordinates, profile)
        if cached is not None:
            logger.debug(f"Distance matrix for {len(places)} places served from cache")
            return cached, warnings

        try:
            matrix = self.provider.matrix(coordinates, profile)
        except ProviderError as exc:
            logger.warning(f"Distance provider failed, falling back to haversine estimates: {exc}")
            warnings.append(
                OptimizationWarning(
                    kind=WarningKind.PROVIDER_DEGRADATION,
                    message=f"Routing provider unavailable; distances are straight-line estimates ({exc})",
                )
            )
            matrix = self.fallback.matrix(coordinates, profile)
        else:
            if matrix.degraded_pairs:
                warnings.append(
                    OptimizationWarning(
                        kind=WarningKind.PROVIDER_DEGRADATION,
                        message=(
                            f"{matrix.degraded_pairs} place pairs could not be routed; "
                            "straight-line estimates were used"
                        ),
                    )
                )
            self._store(coordinates, matrix)

        for i in range(len(matrix)):
            matrix.distances[i][i] = 0.0
            matrix.durations[i][i] = 0.0
        return matrix, warnings

    def _from_cache(self, coordinates: Sequence[tuple[float, float]], profile: str) -> Optional[DistanceMatrix]:
        if self.cache is None:
            return None
        size = len(coordinates)
        distances = [[0.0] * size for _ in range(size)]
        durations = [[0.0] * size for _ in range(size)]
        for i in range(size):
            for j in range(size):
                if i == j:
                    continue
                entry = self.cache.get(profile, coordinates[i], coordinates[j])
                if entry is None:
                    return None
                distances[i][j], durations[i][j] = entry
        return DistanceMatrix(distances=distances, durations=durations, profile=profile, source="cache")

    def _store(self, coordinates: Sequence[tuple[float, float]], matrix: DistanceMatrix) -> None:
        if self.cache is None:
            return
        for i, origin in enumerate(coordinates):
            for j, destination in enumerate(coordinates):
                if i != j:
                    self.cache.put(matrix.profile, origin, destination, matrix.distances[i][j], matrix.durations[i][j])
