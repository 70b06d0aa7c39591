"""Repository for the AR application tables the processors work on.

Markers, user contents, profiles and sessions are owned by the main
application; processors select working sets from them and write results
back. Rows are returned as plain dicts.
"""

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

import structlog

from arbatch.repositories.utils import build_set_clause, ensure_json
from arbatch.utils.serialization import dump_json

logger = structlog.get_logger(__name__)

MARKER_UPDATABLE_COLUMNS = ("optimized_url", "quality_score", "mind_file_url", "metadata")
CONTENT_UPDATABLE_COLUMNS = (
    "title",
    "description",
    "content_type",
    "category",
    "tags",
    "is_public",
    "metadata",
)

# export_type -> (table, has is_public column)
EXPORT_SOURCES = {
    "ar_markers": ("ar_markers", True),
    "ar_contents": ("user_ar_contents", True),
    "users": ("profiles", False),
}


def _row_to_dict(row) -> dict[str, Any]:
    data = dict(row)
    if "metadata" in data:
        data["metadata"] = ensure_json(data["metadata"]) or {}
    return data


class AssetRepository:
    """Data access for AR markers, contents and usage statistics."""

    def __init__(self, pool):
        self._pool = pool

    # =========================================================================
    # Markers
    # =========================================================================

    async def list_markers(
        self,
        marker_ids: Optional[list[str]] = None,
        user_id: Optional[str] = None,
        category: Optional[str] = None,
        missing_mind_file: bool = False,
    ) -> list[dict[str, Any]]:
        """Select markers by explicit ids, owner, category or missing tracking file.

        The first filter given wins; with none, every marker is returned.
        """
        where = ""
        params: list[Any] = []
        if marker_ids:
            where = "WHERE id = ANY($1::uuid[])"
            params.append([UUID(str(m)) for m in marker_ids])
        elif user_id:
            where = "WHERE user_id = $1"
            params.append(UUID(str(user_id)))
        elif category:
            where = "WHERE category = $1"
            params.append(category)
        elif missing_mind_file:
            where = "WHERE mind_file_url IS NULL"

        query = f"SELECT * FROM ar_markers {where} ORDER BY created_at ASC"
        async with self._pool.acquire() as conn:
            rows = await conn.fetch(query, *params)
        return [_row_to_dict(row) for row in rows]

    async def update_marker(self, marker_id: Any, **fields: Any) -> None:
        set_clause, params = build_set_clause(
            fields, MARKER_UPDATABLE_COLUMNS, ("metadata",), start_idx=2
        )
        query = f"""
            UPDATE ar_markers SET
                {set_clause},
                updated_at = now()
            WHERE id = $1
        """
        async with self._pool.acquire() as conn:
            result = await conn.execute(query, UUID(str(marker_id)), *params)
        if result == "UPDATE 0":
            raise LookupError(f"Marker {marker_id} no longer exists")

    # =========================================================================
    # Contents
    # =========================================================================

    async def list_contents(
        self,
        content_ids: Optional[list[str]] = None,
        user_id: Optional[str] = None,
        content_type: Optional[str] = None,
    ) -> list[dict[str, Any]]:
        where = ""
        params: list[Any] = []
        if content_ids:
            where = "WHERE id = ANY($1::uuid[])"
            params.append([UUID(str(c)) for c in content_ids])
        elif user_id:
            where = "WHERE user_id = $1"
            params.append(UUID(str(user_id)))
        elif content_type:
            where = "WHERE content_type = $1"
            params.append(content_type)

        query = f"SELECT * FROM user_ar_contents {where} ORDER BY created_at ASC"
        async with self._pool.acquire() as conn:
            rows = await conn.fetch(query, *params)
        return [_row_to_dict(row) for row in rows]

    async def update_content(self, content_id: Any, fields: dict[str, Any]) -> None:
        set_clause, params = build_set_clause(
            fields, CONTENT_UPDATABLE_COLUMNS, ("metadata",), start_idx=2
        )
        query = f"""
            UPDATE user_ar_contents SET
                {set_clause},
                updated_at = now()
            WHERE id = $1
        """
        async with self._pool.acquire() as conn:
            result = await conn.execute(query, UUID(str(content_id)), *params)
        if result == "UPDATE 0":
            raise LookupError(f"Content {content_id} no longer exists")

    # =========================================================================
    # Export
    # =========================================================================

    async def export_rows(
        self,
        export_type: str,
        include_private: bool = False,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> list[dict[str, Any]]:
        """Rows for a data export, oldest first.

        Raises:
            ValueError: If export_type is unknown
        """
        if export_type == "statistics":
            async with self._pool.acquire() as conn:
                rows = await conn.fetch("SELECT * FROM batch_job_statistics ORDER BY type")
            return [dict(row) for row in rows]

        if export_type not in EXPORT_SOURCES:
            raise ValueError(f"Unknown export type: {export_type}")
        table, has_visibility = EXPORT_SOURCES[export_type]

        conditions = []
        params: list[Any] = []
        if has_visibility and not include_private:
            conditions.append("is_public = true")
        if date_from:
            params.append(date_from)
            conditions.append(f"created_at >= ${len(params)}")
        if date_to:
            params.append(date_to)
            conditions.append(f"created_at <= ${len(params)}")

        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        query = f"SELECT * FROM {table} {where} ORDER BY created_at ASC"
        async with self._pool.acquire() as conn:
            rows = await conn.fetch(query, *params)
        return [_row_to_dict(row) for row in rows]

    # =========================================================================
    # Statistics
    # =========================================================================

    async def user_stats(self, since: datetime) -> dict[str, Any]:
        query = """
            SELECT role, COUNT(*) AS count FROM profiles
            WHERE created_at >= $1
            GROUP BY role
        """
        async with self._pool.acquire() as conn:
            rows = await conn.fetch(query, since)
        by_role = {row["role"]: row["count"] for row in rows}
        return {"new_users": sum(by_role.values()), "by_role": by_role}

    async def content_stats(self, since: datetime) -> dict[str, Any]:
        query = """
            SELECT content_type, COUNT(*) AS count FROM user_ar_contents
            WHERE created_at >= $1
            GROUP BY content_type
        """
        async with self._pool.acquire() as conn:
            rows = await conn.fetch(query, since)
        by_type = {row["content_type"]: row["count"] for row in rows}
        return {"new_contents": sum(by_type.values()), "by_type": by_type}

    async def marker_stats(self, since: datetime) -> dict[str, Any]:
        query = """
            SELECT COUNT(*) AS new_markers,
                   COALESCE(AVG(COALESCE(quality_score, 0)), 0) AS avg_quality_score,
                   COALESCE(SUM(view_count), 0) AS total_views
            FROM ar_markers
            WHERE created_at >= $1
        """
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(query, since)
        return {
            "new_markers": row["new_markers"],
            "avg_quality_score": float(row["avg_quality_score"]),
            "total_views": int(row["total_views"]),
        }

    async def session_stats(self, since: datetime) -> dict[str, Any]:
        query = """
            SELECT COUNT(*) AS total_sessions,
                   COALESCE(AVG(CASE WHEN detection_success THEN 1.0 ELSE 0.0 END), 0)
                       AS success_rate,
                   COALESCE(AVG(COALESCE(avg_detection_time, 0)), 0) AS avg_detection_time
            FROM ar_sessions
            WHERE started_at >= $1
        """
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(query, since)
        return {
            "total_sessions": row["total_sessions"],
            "success_rate": float(row["success_rate"]),
            "avg_detection_time": float(row["avg_detection_time"]),
        }

    async def batch_job_stats(self, since: datetime) -> dict[str, Any]:
        query = """
            SELECT status, type, COUNT(*) AS count FROM batch_jobs
            WHERE created_at >= $1
            GROUP BY status, type
        """
        async with self._pool.acquire() as conn:
            rows = await conn.fetch(query, since)
        by_status: dict[str, int] = {}
        by_type: dict[str, int] = {}
        for row in rows:
            by_status[row["status"]] = by_status.get(row["status"], 0) + row["count"]
            by_type[row["type"]] = by_type.get(row["type"], 0) + row["count"]
        return {
            "total_jobs": sum(by_status.values()),
            "by_status": by_status,
            "by_type": by_type,
        }

    async def insert_system_metric(
        self, metric_type: str, metric_value: float, metadata: dict[str, Any]
    ) -> None:
        query = """
            INSERT INTO system_metrics (metric_type, metric_value, metadata)
            VALUES ($1, $2, $3::jsonb)
        """
        async with self._pool.acquire() as conn:
            await conn.execute(query, metric_type, metric_value, dump_json(metadata))
        logger.info("system_metric_recorded", metric_type=metric_type)
