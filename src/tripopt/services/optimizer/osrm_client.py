"""HTTP client for the OSRM table service."""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Sequence

import httpx

from ...config import settings

logger = logging.getLogger(__name__)

# Above this share of failed chunk requests the whole table is treated as unavailable.
CRITICAL_FAILURE_RATE = 0.5


class OSRMClient:
    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        backoff_seconds: float | None = None,
        max_coordinates_per_request: int | None = None,
        max_parallel_requests: int | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or settings.osrm_base_url or "").rstrip("/")
        if not self.base_url:
            raise ValueError("OSRM base URL is not configured.")
        self.timeout = timeout if timeout is not None else settings.osrm_timeout_seconds
        self.max_retries = max_retries if max_retries is not None else settings.osrm_max_retries
        self.backoff_seconds = backoff_seconds if backoff_seconds is not None else settings.osrm_backoff_seconds
        self.max_coordinates_per_request = (
            max_coordinates_per_request or settings.osrm_max_coordinates_per_request
        )
        self.max_parallel_requests = max_parallel_requests or settings.osrm_max_parallel_requests
        self.transport = transport

    def _get_client(self) -> httpx.Client:
        """Create a client per request; httpx clients are not shared across worker threads."""
        return httpx.Client(
            timeout=httpx.Timeout(self.timeout, connect=min(self.timeout, 10.0)),
            transport=self.transport,
        )

    def _get_with_retries(self, url: str, params: dict) -> dict:
        client = self._get_client()
        try:
            attempt = 0
            while True:
                try:
                    response = client.get(url, params=params)
                    response.raise_for_status()
                    data = response.json()
                    if data.get("code", "Ok") != "Ok":
                        raise ValueError(f"OSRM returned code {data.get('code')}: {data.get('message', '')}")
                    return data
                except httpx.HTTPStatusError as exc:
                    if exc.response.status_code == 414:
                        raise ValueError(
                            f"OSRM request URL too large. Reduce max_coordinates_per_request "
                            f"(current: {self.max_coordinates_per_request})"
                        ) from exc
                    attempt += 1
                    if attempt > self.max_retries:
                        raise
                    time.sleep(self.backoff_seconds * attempt)
                except (httpx.TimeoutException, httpx.NetworkError) as exc:
                    attempt += 1
                    if attempt > self.max_retries:
                        raise ConnectionError(
                            f"Failed to reach OSRM service at {self.base_url}: {exc}"
                        ) from exc
                    wait_time = self.backoff_seconds * (2 ** (attempt - 1))
                    logger.debug(
                        f"OSRM network error, retrying in {wait_time:.1f}s (attempt {attempt}/{self.max_retries}): {exc}"
                    )
                    time.sleep(wait_time)
        finally:
            client.close()

    def _table_single_request(
        self,
        coordinates: Sequence[tuple[float, float]],
        profile: str,
        sources: Sequence[int] | None = None,
        destinations: Sequence[int] | None = None,
    ) -> dict:
        if len(coordinates) < 1:
            raise ValueError("At least one coordinate is required for OSRM table.")

        coordinate_str = ";".join(f"{lon},{lat}" for lat, lon in coordinates)
        params = {"annotations": "duration,distance"}
        if sources is not None:
            params["sources"] = ";".join(str(i) for i in sources)
        if destinations is not None:
            params["destinations"] = ";".join(str(i) for i in destinations)

        url = f"{self.base_url}/table/v1/{profile}/{coordinate_str}"
        data = self._get_with_retries(url, params)
        if "durations" not in data or "distances" not in data:
            raise ValueError("OSRM response missing durations/distances.")
        return data

    def _chunk_request(
        self,
        chunks: list[list[tuple[float, float]]],
        profile: str,
        src_chunk: int,
        dst_chunk: int,
    ) -> dict | None:
        coordinates = chunks[src_chunk] + chunks[dst_chunk]
        src_indices = list(range(len(chunks[src_chunk])))
        dst_indices = list(range(len(chunks[src_chunk]), len(coordinates)))
        try:
            return self._table_single_request(coordinates, profile, src_indices, dst_indices)
        except (ConnectionError, ValueError, httpx.HTTPError) as exc:
            logger.warning(f"OSRM chunk {src_chunk}->{dst_chunk} failed: {exc}")
            return None

    def table(self, coordinates: Sequence[tuple[float, float]], profile: str = "driving") -> dict:
        """Distance/duration matrix for (lat, lon) coordinates.

        Large coordinate lists are split into chunks that are requested in
        parallel, bounded by ``max_parallel_requests``. Cells belonging to a
        failed chunk are returned as ``None``; a ``ConnectionError`` is raised
        when most of the chunks fail.
        """
        if len(coordinates) < 2:
            raise ValueError("At least two coordinates are required for OSRM table.")

        if len(coordinates) <= self.max_coordinates_per_request:
            return self._table_single_request(coordinates, profile)

        started = time.perf_counter()
        chunk_size = self.max_coordinates_per_request
        chunks = [list(coordinates[i : i + chunk_size]) for i in range(0, len(coordinates), chunk_size)]
        offsets = [i * chunk_size for i in range(len(chunks))]

        n = len(coordinates)
        durations: list[list[float | None]] = [[None] * n for _ in range(n)]
        distances: list[list[float | None]] = [[None] * n for _ in range(n)]

        total_requests = len(chunks) * len(chunks)
        failed = 0
        logger.info(
            f"Chunking OSRM table request: {n} coordinates, {total_requests} requests "
            f"(max {self.max_parallel_requests} concurrent)"
        )

        with ThreadPoolExecutor(max_workers=self.max_parallel_requests) as executor:
            futures = {
                executor.submit(self._chunk_request, chunks, profile, src, dst): (src, dst)
                for src in range(len(chunks))
                for dst in range(len(chunks))
            }
            for future in as_completed(futures):
                src, dst = futures[future]
                result = future.result()
                if result is None:
                    failed += 1
                    continue
                for local_src, row in enumerate(result["durations"]):
                    for local_dst, value in enumerate(row):
                        durations[offsets[src] + local_src][offsets[dst] + local_dst] = value
                for local_src, row in enumerate(result["distances"]):
                    for local_dst, value in enumerate(row):
                        distances[offsets[src] + local_src][offsets[dst] + local_dst] = value

        elapsed = time.perf_counter() - started
        if failed / total_requests > CRITICAL_FAILURE_RATE:
            raise ConnectionError(
                f"{failed}/{total_requests} OSRM chunk requests failed; service appears unavailable."
            )
        if failed:
            logger.warning(f"Partial OSRM failure: {failed}/{total_requests} chunk requests failed in {elapsed:.2f}s")
        else:
            logger.info(f"Completed {total_requests} OSRM chunk requests in {elapsed:.2f}s")

        return {"durations": durations, "distances": distances}


def check_health(base_url: str | None = None, transport: httpx.BaseTransport | None = None) -> bool:
    """Check OSRM availability with a minimal two-point table request."""
    base = base_url or settings.osrm_base_url
    if not base:
        return False
    try:
        client = OSRMClient(base_url=base, max_retries=0, timeout=5.0, transport=transport)
        data = client.table([(52.517037, 13.388860), (52.496891, 13.385983)])
        return isinstance(data.get("durations"), list)
    except (ConnectionError, ValueError, httpx.HTTPError):
        return False
