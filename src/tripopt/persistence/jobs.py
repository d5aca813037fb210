"""Job store implementations for optimization results."""

from __future__ import annotations

import logging
import re
from typing import Any, Optional, Protocol

from ..config import settings
from ..db.supabase import get_supabase_client
from ..services.outputs.result_formatter import segments_to_csv
from .filesystem import FileStorage

logger = logging.getLogger(__name__)

_JOB_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


class JobStore(Protocol):
    def save(self, result: dict[str, Any]) -> None: ...

    def find_by_id(self, job_id: str) -> Optional[dict[str, Any]]: ...

    def find_by_user_id(self, user_id: str, limit: int = 20) -> list[dict[str, Any]]: ...

    def delete_by_id(self, job_id: str, user_id: Optional[str] = None) -> bool: ...


class FileJobStore:
    """One JSON document per job under ``<data_root>/jobs``, with a CSV export of its legs."""

    def __init__(self, storage: FileStorage | None = None) -> None:
        self.storage = storage or FileStorage()

    def save(self, result: dict[str, Any]) -> None:
        job_id = result["job_id"]
        if not _JOB_ID_PATTERN.match(job_id):
            raise ValueError(f"Invalid job id: {job_id}")
        self.storage.write_json(self.storage.job_path(job_id), result)
        self.storage.write_csv(self.storage.job_path(job_id, ".csv"), segments_to_csv(result))

    def find_by_id(self, job_id: str) -> Optional[dict[str, Any]]:
        if not _JOB_ID_PATTERN.match(job_id):
            return None
        path = self.storage.job_path(job_id)
        if not path.exists():
            return None
        return self.storage.read_json(path)

    def find_by_user_id(self, user_id: str, limit: int = 20) -> list[dict[str, Any]]:
        jobs = []
        for path in self.storage.jobs_root.glob("*.json"):
            job = self.storage.read_json(path)
            if job.get("user_id") == user_id:
                jobs.append(job)
        jobs.sort(key=lambda job: job.get("created_at", ""), reverse=True)
        return jobs[:limit]

    def delete_by_id(self, job_id: str, user_id: Optional[str] = None) -> bool:
        job = self.find_by_id(job_id)
        if job is None:
            return False
        if user_id is not None and job.get("user_id") != user_id:
            return False
        for suffix in (".json", ".csv"):
            self.storage.job_path(job_id, suffix).unlink(missing_ok=True)
        return True


class SupabaseJobStore:
    """Jobs stored as rows of the ``optimization_jobs`` table with the result in a JSON column."""

    def __init__(self, client=None, table: str | None = None) -> None:
        self.client = client or get_supabase_client()
        if self.client is None:
            raise RuntimeError("Supabase is not configured; set TRIPOPT_SUPABASE_URL and TRIPOPT_SUPABASE_KEY.")
        self.table = table or settings.supabase_jobs_table

    def save(self, result: dict[str, Any]) -> None:
        row = {
            "job_id": result["job_id"],
            "user_id": result.get("user_id"),
            "algorithm": result.get("algorithm"),
            "created_at": result.get("created_at"),
            "result": result,
        }
        self.client.table(self.table).upsert(row).execute()

    def find_by_id(self, job_id: str) -> Optional[dict[str, Any]]:
        response = self.client.table(self.table).select("result").eq("job_id", job_id).limit(1).execute()
        rows = response.data or []
        return rows[0]["result"] if rows else None

    def find_by_user_id(self, user_id: str, limit: int = 20) -> list[dict[str, Any]]:
        response = (
            self.client.table(self.table)
            .select("result")
            .eq("user_id", user_id)
            .order("created_at", desc=True)
            .limit(limit)
            .execute()
        )
        return [row["result"] for row in (response.data or [])]

    def delete_by_id(self, job_id: str, user_id: Optional[str] = None) -> bool:
        query = self.client.table(self.table).delete().eq("job_id", job_id)
        if user_id is not None:
            query = query.eq("user_id", user_id)
        response = query.execute()
        return bool(response.data)


def build_job_store() -> JobStore:
    """Job store selected by ``settings.job_store_backend``.

    Falls back to the filesystem when Supabase is selected but not configured.
    """
    if settings.job_store_backend == "supabase":
        client = get_supabase_client()
        if client is not None:
            return SupabaseJobStore(client=client)
        logger.warning("Supabase job store requested but not configured; using file storage")
    return FileJobStore()
