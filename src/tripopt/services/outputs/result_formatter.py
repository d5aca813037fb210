"""Serializers for optimization results."""

from __future__ import annotations

import csv
import io
from dataclasses import asdict

from ..optimizer.models import OptimizationResult


def result_to_json(result: OptimizationResult) -> dict:
    return {
        "job_id": result.job_id,
        "user_id": result.user_id,
        "algorithm": result.algorithm,
        "algorithm_used": result.algorithm_used,
        "optimized_order": list(result.optimized_order),
        "total_distance_meters": result.total_distance_meters,
        "estimated_duration_minutes": result.estimated_duration_minutes,
        "total_cost": result.total_cost,
        "terminated_early": result.terminated_early,
        "segments": [asdict(segment) for segment in result.segments],
        "trip_days": [
            {**asdict(day), "total_time_minutes": day.total_time_minutes} for day in result.trip_days
        ],
        "timeline": [asdict(entry) for entry in result.timeline],
        "removed": [asdict(entry) for entry in result.removed],
        "adjustments": list(result.adjustments),
        "warnings": [
            {"kind": warning.kind.value, "message": warning.message, "place_id": warning.place_id}
            for warning in result.warnings
        ],
        "suggestions": list(result.suggestions),
        "states": list(result.states),
        "created_at": result.created_at,
        "processing_time_ms": result.processing_time_ms,
    }


def segments_to_csv(job: dict) -> str:
    """CSV of the legs of a stored job document."""
    buffer = io.StringIO()
    fieldnames = [
        "job_id",
        "sequence",
        "from_id",
        "to_id",
        "mode",
        "distance_meters",
        "travel_time_seconds",
        "cost",
    ]
    writer = csv.DictWriter(buffer, fieldnames=fieldnames)
    writer.writeheader()
    for sequence, segment in enumerate(job.get("segments", []), start=1):
        writer.writerow(
            {
                "job_id": job.get("job_id"),
                "sequence": sequence,
                "from_id": segment["from_id"],
                "to_id": segment["to_id"],
                "mode": segment["mode"],
                "distance_meters": round(segment["distance_meters"], 1),
                "travel_time_seconds": round(segment["travel_time_seconds"], 1),
                "cost": segment["cost"],
            }
        )
    return buffer.getvalue()
