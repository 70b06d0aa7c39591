"""MindARGeneration processor - compiles AR tracking files for markers."""

from typing import Any

import structlog

from arbatch.jobs.handlers.common import choose, id_list, require_collaborator
from arbatch.jobs.items import ItemTracker
from arbatch.jobs.models import BatchJob, JobResult
from arbatch.jobs.registry import default_registry
from arbatch.jobs.types import BatchJobType
from arbatch.utils.time import utc_now

logger = structlog.get_logger(__name__)

ALGORITHMS = ("fast", "harris", "orb", "hybrid")
QUALITY_MODES = ("auto", "low", "medium", "high")
PERFORMANCE_MODES = ("speed", "balanced", "quality")


@default_registry.processor(BatchJobType.MINDAR_GENERATION)
async def process_mindar_generation(job: BatchJob, ctx: dict[str, Any]) -> JobResult:
    """Handle a MINDAR_GENERATION job.

    Working set: marker_ids if given, every marker when regenerate_all is
    set, otherwise only markers that have no tracking file yet.
    """
    assets = require_collaborator(ctx, "assets")
    media = require_collaborator(ctx, "media")
    config = job.config

    algorithm = choose(config, "algorithm", ALGORITHMS, default="hybrid")
    quality = choose(config, "quality", QUALITY_MODES, default="auto")
    performance_mode = choose(
        config, "performance_mode", PERFORMANCE_MODES, default="balanced"
    )

    marker_ids = id_list(config, "marker_ids")
    markers = await assets.list_markers(
        marker_ids=marker_ids,
        missing_mind_file=not marker_ids and not config.get("regenerate_all"),
    )

    tracker = ItemTracker(job, ctx, item_type="ar_marker")
    await tracker.set_total(len(markers))

    for marker in markers:

        async def compile_marker(marker=marker) -> dict[str, Any]:
            result = await media.compile_tracking(
                str(marker["id"]),
                marker["image_url"],
                quality=quality,
                algorithm=algorithm,
                performance_mode=performance_mode,
            )
            await assets.update_marker(
                marker["id"],
                mind_file_url=result["mind_file_url"],
                metadata={
                    **(marker.get("metadata") or {}),
                    "mind_generated_at": utc_now().isoformat(),
                    "mind_generation_config": config,
                },
            )
            return {
                "mind_file_size": result.get("mind_file_size"),
                "algorithm": algorithm,
            }

        await tracker.run_item(marker["id"], compile_marker)

    return tracker.result(
        {
            "mind_files_generated": tracker.processed,
            "generation_config": config,
        }
    )
