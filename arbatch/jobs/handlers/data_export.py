"""DataExport processor - dumps a table to a JSON or CSV file.

Every exported row counts as one item. Rows are normalised to JSON-safe
values; the file is written once at the end, so a storage failure fails
the whole job.
"""

import csv
import io
import json
from typing import Any

import structlog

from arbatch.jobs.handlers.common import choose, require_collaborator
from arbatch.jobs.items import ItemTracker
from arbatch.jobs.models import BatchJob, JobResult
from arbatch.jobs.registry import default_registry
from arbatch.jobs.types import BatchJobType
from arbatch.utils.serialization import json_serializable
from arbatch.utils.time import parse_iso_timestamp, utc_now

logger = structlog.get_logger(__name__)

EXPORT_TYPES = ("ar_markers", "ar_contents", "users", "statistics")
FORMATS = ("json", "csv")


def to_csv(rows: list[dict[str, Any]]) -> str:
    """Render rows as CSV using the first row's keys as the header."""
    if not rows:
        return ""
    buffer = io.StringIO()
    writer = csv.DictWriter(
        buffer, fieldnames=list(rows[0]), extrasaction="ignore", lineterminator="\n"
    )
    writer.writeheader()
    for row in rows:
        writer.writerow(
            {
                key: json.dumps(value) if isinstance(value, (dict, list)) else value
                for key, value in row.items()
            }
        )
    return buffer.getvalue()


@default_registry.processor(BatchJobType.DATA_EXPORT)
async def process_data_export(job: BatchJob, ctx: dict[str, Any]) -> JobResult:
    """Handle a DATA_EXPORT job.

    Job Config:
        export_type: ar_markers | ar_contents | users | statistics
        include_private: bool - include non-public markers/contents
        date_from, date_to: ISO timestamps on created_at
        format: json | csv

    Returns:
        JobResult whose summary has export_type, format, records_exported,
        file_name, download_url and errors
    """
    assets = require_collaborator(ctx, "assets")
    storage = require_collaborator(ctx, "storage")
    config = job.config

    export_type = choose(config, "export_type", EXPORT_TYPES, default="ar_markers")
    fmt = choose(config, "format", FORMATS, default="json")

    rows = await assets.export_rows(
        export_type,
        include_private=bool(config.get("include_private", False)),
        date_from=parse_iso_timestamp(config.get("date_from")),
        date_to=parse_iso_timestamp(config.get("date_to")),
    )

    tracker = ItemTracker(job, ctx, item_type=export_type)
    await tracker.set_total(len(rows))

    exported: list[dict[str, Any]] = []
    for index, row in enumerate(rows):

        async def normalise(row=row) -> None:
            exported.append(json_serializable(row))

        await tracker.run_item(row.get("id", row.get("type", index)), normalise)

    content = json.dumps(exported, indent=2) if fmt == "json" else to_csv(exported)
    file_name = f"export-{export_type}-{utc_now().date().isoformat()}.{fmt}"
    key = f"batch-exports/{job.id}/{file_name}"
    await storage.upload(key, content)

    logger.info(
        "data_export_written",
        job_id=str(job.id),
        export_type=export_type,
        records=len(exported),
        file_name=file_name,
    )
    return tracker.result(
        {
            "export_type": export_type,
            "format": fmt,
            "records_exported": len(exported),
            "file_name": file_name,
            "download_url": storage.public_url(key),
        }
    )
