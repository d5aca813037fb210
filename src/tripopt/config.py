"""Application configuration and settings management."""

from pathlib import Path
from typing import Any, Literal, Optional

import json
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .models.domain import parse_clock


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables or defaults."""

    model_config = SettingsConfigDict(
        env_prefix="TRIPOPT_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    app_name: str = "Trip Route Optimizer API"
    api_prefix: str = "/api"
    log_level: str = Field(default="INFO", description="Root log level for the service.")
    data_root: Path = Field(default=Path("data"), description="Root directory for persisted job files.")

    osrm_base_url: Optional[str] = Field(
        default=None,
        description="Base URL for the OSRM routing service. Haversine estimates are used when unset.",
    )
    osrm_max_retries: int = Field(default=2, ge=0)
    osrm_backoff_seconds: float = Field(default=0.5, ge=0.0)
    osrm_timeout_seconds: float = Field(default=20.0, gt=0.0)
    osrm_max_parallel_requests: int = Field(
        default=4,
        ge=1,
        description="Concurrency cap for chunked OSRM table requests.",
    )
    osrm_max_coordinates_per_request: int = Field(default=80, ge=2)

    default_ground_speed_kmh: float = Field(default=60.0, gt=0.0)
    default_start_time: str = Field(default="09:00")
    default_open_time: str = Field(default="09:00")
    default_close_time: str = Field(default="18:00")
    day_start_time: str = Field(default="09:00")
    day_end_time: str = Field(default="20:00")
    max_daily_total_hours: float = Field(default=14.0, gt=0.0)
    max_daily_travel_hours: float = Field(default=10.0, gt=0.0)
    multi_day_first_leg_hours: float = Field(
        default=12.0,
        gt=0.0,
        description="Time budgets are not applied when the first leg alone is longer than this.",
    )
    scheduler_allow_next_day: bool = Field(
        default=False,
        description="Move places that no longer fit today to the next day's opening time.",
    )
    long_leg_threshold_km: float = Field(default=500.0, gt=0.0)

    default_priority_weighting: float = Field(default=0.3, ge=0.0, le=1.0)
    two_opt_max_passes: int = Field(default=1000, ge=1)
    annealing_initial_temperature: float = Field(default=1.0, gt=0.0)
    annealing_cooling_rate: float = Field(default=0.995, gt=0.0, lt=1.0)
    annealing_min_temperature_ratio: float = Field(default=1e-4, gt=0.0)
    annealing_max_iterations: int = Field(default=10000, ge=1)
    genetic_population_size: int = Field(default=50, ge=4)
    genetic_generations: int = Field(default=200, ge=1)
    genetic_mutation_rate: float = Field(default=0.2, ge=0.0, le=1.0)
    auto_solver_max_places: int = Field(
        default=10,
        ge=2,
        description="The auto algorithm uses OR-Tools up to this many places.",
    )
    auto_annealing_max_places: int = Field(
        default=20,
        ge=2,
        description="The auto algorithm uses simulated annealing up to this many places, 2-opt beyond.",
    )
    optimization_time_limit_seconds: float = Field(default=10.0, gt=0.0)

    solver_first_solution_strategy: str = Field(default="PATH_CHEAPEST_ARC")
    solver_local_search_metaheuristic: str = Field(default="GUIDED_LOCAL_SEARCH")
    solver_time_limit_seconds: int = Field(default=2, ge=1)

    distance_cache_ttl_seconds: float = Field(default=3600.0, gt=0.0)
    distance_cache_max_entries: int = Field(default=50000, ge=1)

    job_store_backend: Literal["file", "supabase"] = Field(default="file")
    job_store_max_workers: int = Field(default=2, ge=1)
    supabase_url: Optional[str] = Field(
        default=None,
        description="Supabase project URL (e.g., https://xxx.supabase.co).",
    )
    supabase_key: Optional[str] = Field(
        default=None,
        description="Supabase service role key for backend operations.",
    )
    supabase_jobs_table: str = Field(default="optimization_jobs")

    frontend_allowed_origins: tuple[str, ...] = Field(
        default=(
            "http://localhost:5173",
            "http://127.0.0.1:5173",
            "http://localhost:3000",
        ),
        description="Permitted web origins for browser clients (CORS).",
    )

    @field_validator("data_root", mode="before")
    @classmethod
    def _expand_path(cls, value: Any) -> Path:
        path_value = value if isinstance(value, Path) else Path(str(value))
        return path_value.expanduser().resolve()

    @field_validator("frontend_allowed_origins", mode="before")
    @classmethod
    def _parse_str_tuple_from_env(cls, value: Any) -> tuple[str, ...]:
        """Parse string tuple from environment variable (comma-separated or JSON array)."""
        if isinstance(value, tuple):
            return value
        if isinstance(value, list):
            return tuple(str(item) for item in value)
        if isinstance(value, str):
            try:
                parsed = json.loads(value)
                if isinstance(parsed, list):
                    return tuple(str(item) for item in parsed)
            except (json.JSONDecodeError, TypeError):
                pass
            if "," in value:
                return tuple(item.strip() for item in value.split(",") if item.strip())
            if value.strip():
                return (value.strip(),)
        return tuple()

    @field_validator(
        "default_start_time",
        "default_open_time",
        "default_close_time",
        "day_start_time",
        "day_end_time",
    )
    @classmethod
    def _validate_clock(cls, value: str) -> str:
        return parse_clock(value).strftime("%H:%M")


settings = Settings()
