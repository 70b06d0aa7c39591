"""ContentUpdate processor - bulk field changes on user AR contents."""

from typing import Any

import structlog

from arbatch.jobs.errors import JobConfigurationError
from arbatch.jobs.handlers.common import choose, id_list, require_collaborator
from arbatch.jobs.items import ItemTracker
from arbatch.jobs.models import BatchJob, JobResult
from arbatch.jobs.registry import default_registry
from arbatch.jobs.types import BatchJobType
from arbatch.repositories.assets import CONTENT_UPDATABLE_COLUMNS
from arbatch.utils.time import utc_now

logger = structlog.get_logger(__name__)

OPERATIONS = ("publish", "unpublish", "archive")


def parse_field_updates(config: dict[str, Any]) -> dict[str, Any]:
    """Validate ``update_fields`` entries into a column -> value mapping.

    Raises:
        JobConfigurationError: On malformed entries or unknown columns
    """
    raw = config.get("update_fields") or []
    if not isinstance(raw, list):
        raise JobConfigurationError("Config 'update_fields' must be a list")

    updates: dict[str, Any] = {}
    for entry in raw:
        if not isinstance(entry, dict) or not entry.get("name") or "value" not in entry:
            raise JobConfigurationError(
                "Each update_fields entry needs a 'name' and a 'value'"
            )
        name = entry["name"]
        if name not in CONTENT_UPDATABLE_COLUMNS:
            raise JobConfigurationError(f"Field '{name}' cannot be bulk updated")
        updates[name] = entry["value"]
    return updates


def build_content_update(
    content: dict[str, Any], field_updates: dict[str, Any], operation: str | None
) -> dict[str, Any]:
    """Combine field updates and the bulk operation for one content row."""
    data = dict(field_updates)
    if operation == "publish":
        data["is_public"] = True
    elif operation == "unpublish":
        data["is_public"] = False
    elif operation == "archive":
        data["metadata"] = {
            **(content.get("metadata") or {}),
            "archived": True,
            "archived_at": utc_now().isoformat(),
        }
    return data


@default_registry.processor(BatchJobType.CONTENT_UPDATE)
async def process_content_update(job: BatchJob, ctx: dict[str, Any]) -> JobResult:
    """Handle a CONTENT_UPDATE job.

    Job Config:
        content_ids | user_id | content_type: working set filter (first wins)
        update_fields: list of {name, value}
        operation: publish | unpublish | archive

    At least one of update_fields and operation must be given.
    """
    assets = require_collaborator(ctx, "assets")
    config = job.config

    field_updates = parse_field_updates(config)
    operation = (
        choose(config, "operation", OPERATIONS) if config.get("operation") else None
    )
    if not field_updates and operation is None:
        raise JobConfigurationError(
            "content_update requires update_fields or an operation"
        )

    contents = await assets.list_contents(
        content_ids=id_list(config, "content_ids"),
        user_id=config.get("user_id"),
        content_type=config.get("content_type"),
    )

    tracker = ItemTracker(job, ctx, item_type="ar_content")
    await tracker.set_total(len(contents))

    for content in contents:

        async def update(content=content) -> dict[str, Any]:
            data = build_content_update(content, field_updates, operation)
            await assets.update_content(content["id"], data)
            return {"updated_fields": sorted(data)}

        await tracker.run_item(content["id"], update)

    return tracker.result(
        {
            "contents_updated": tracker.processed,
            "update_config": config,
        }
    )
