"""Route optimization endpoints."""

from __future__ import annotations

import logging
import time

from fastapi import APIRouter, Depends, status

from ...schemas.optimization import (
    AlgorithmComparisonModel,
    CompareAlgorithmsRequest,
    InsertAttractionRequest,
    InsertionResultModel,
    OptimizationResultModel,
    OptimizeRouteRequest,
)
from ...services.optimizer.orchestrator import ALGORITHMS, DEFAULT_ALGORITHM, OptimizationOrchestrator
from ...services.optimizer.service import get_orchestrator
from ...services.outputs.result_formatter import result_to_json

logger = logging.getLogger(__name__)

router = APIRouter(tags=["optimization"])


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000.0, 2)


@router.post("/optimize-route", status_code=status.HTTP_200_OK)
def optimize_route(
    payload: OptimizeRouteRequest,
    orchestrator: OptimizationOrchestrator = Depends(get_orchestrator),
) -> dict:
    started = time.perf_counter()
    result = orchestrator.optimize(payload.to_domain())
    data = OptimizationResultModel.model_validate(result_to_json(result))
    return {
        "success": True,
        "data": data.model_dump(by_alias=True),
        "processingTime": _elapsed_ms(started),
    }


@router.post("/insert-attraction", status_code=status.HTTP_200_OK)
def insert_attraction(
    payload: InsertAttractionRequest,
    orchestrator: OptimizationOrchestrator = Depends(get_orchestrator),
) -> dict:
    """Insert one new place into an existing route at its cheapest position."""
    started = time.perf_counter()
    outcome = orchestrator.insert_place(
        [place.to_domain() for place in payload.route],
        payload.new_place.to_domain(),
        payload.travel_types,
    )
    data = InsertionResultModel(
        optimized_order=outcome.optimized_order,
        position=outcome.position,
        marginal_cost_meters=outcome.marginal_cost_meters,
        total_distance_meters=outcome.total_distance_meters,
        warnings=[
            {"kind": warning.kind.value, "message": warning.message, "place_id": warning.place_id}
            for warning in outcome.warnings
        ],
    )
    return {"success": True, "data": data.model_dump(by_alias=True), "processingTime": _elapsed_ms(started)}


@router.post("/compare-algorithms", status_code=status.HTTP_200_OK)
def compare_algorithms(
    payload: CompareAlgorithmsRequest,
    orchestrator: OptimizationOrchestrator = Depends(get_orchestrator),
) -> dict:
    started = time.perf_counter()
    results = orchestrator.compare_algorithms(payload.to_domain(), payload.algorithms)
    comparison = [
        AlgorithmComparisonModel(
            algorithm=result.algorithm,
            algorithm_used=result.algorithm_used,
            total_distance_meters=result.total_distance_meters,
            estimated_duration_minutes=result.estimated_duration_minutes,
            total_cost=result.total_cost,
            processing_time_ms=result.processing_time_ms,
            terminated_early=result.terminated_early,
            optimized_order=result.optimized_order,
        ).model_dump(by_alias=True)
        for result in results
    ]
    best = min(comparison, key=lambda row: row["totalDistanceMeters"])
    logger.info(f"Compared {len(comparison)} algorithms; shortest route from {best['algorithm']}")
    return {
        "success": True,
        "comparison": comparison,
        "best": best["algorithm"],
        "processingTime": _elapsed_ms(started),
    }


@router.get("/algorithms", status_code=status.HTTP_200_OK)
def list_algorithms() -> dict:
    return {
        "success": True,
        "default": DEFAULT_ALGORITHM,
        "algorithms": [{"name": name, "description": description} for name, description in ALGORITHMS.items()],
    }
