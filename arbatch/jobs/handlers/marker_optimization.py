"""MarkerOptimization processor - recompresses AR marker images.

This processor:
1. Resolves markers from marker_ids, user_id, category, or all markers
2. Sends each marker to the media service for recompression and scoring
3. Writes optimized_url, quality_score and optimization metadata back
"""

from typing import Any

import structlog

from arbatch.jobs.handlers.common import choose, id_list, require_collaborator
from arbatch.jobs.items import ItemTracker
from arbatch.jobs.models import BatchJob, JobResult
from arbatch.jobs.registry import default_registry
from arbatch.jobs.types import BatchJobType
from arbatch.utils.time import utc_now

logger = structlog.get_logger(__name__)

QUALITY_LEVELS = {"low": 70, "medium": 85, "high": 95}
MAX_DIMENSION = 1024
ENHANCED_CONTRAST = 1.1


def build_optimization_options(config: dict[str, Any]) -> dict[str, Any]:
    """Translate job config into media service options."""
    quality = choose(config, "quality", QUALITY_LEVELS, default="medium")
    resize = config.get("resize", True) is not False
    enhance = config.get("enhance", True) is not False
    return {
        "quality": QUALITY_LEVELS[quality],
        "max_width": MAX_DIMENSION if resize else None,
        "max_height": MAX_DIMENSION if resize else None,
        "sharpen": enhance,
        "contrast": ENHANCED_CONTRAST if enhance else 1.0,
    }


@default_registry.processor(BatchJobType.MARKER_OPTIMIZATION)
async def process_marker_optimization(job: BatchJob, ctx: dict[str, Any]) -> JobResult:
    """Handle a MARKER_OPTIMIZATION job.

    Job Config:
        marker_ids: list[str] - Explicit markers (takes precedence)
        user_id: str - All markers of one owner
        category: str - All markers in a category
        quality: str - low | medium | high (default medium)
        resize: bool - Fit into 1024x1024 (default true)
        enhance: bool - Sharpen and boost contrast (default true)

    Returns:
        JobResult whose summary has markers_optimized, optimization_config
        and errors
    """
    assets = require_collaborator(ctx, "assets")
    media = require_collaborator(ctx, "media")
    config = job.config
    options = build_optimization_options(config)

    markers = await assets.list_markers(
        marker_ids=id_list(config, "marker_ids"),
        user_id=config.get("user_id"),
        category=config.get("category"),
    )

    tracker = ItemTracker(job, ctx, item_type="ar_marker")
    await tracker.set_total(len(markers))

    for marker in markers:

        async def optimize(marker=marker) -> dict[str, Any]:
            result = await media.optimize_marker(
                str(marker["id"]), marker["image_url"], options
            )
            await assets.update_marker(
                marker["id"],
                optimized_url=result["optimized_url"],
                quality_score=result.get("quality_score"),
                metadata={
                    **(marker.get("metadata") or {}),
                    "optimized_at": utc_now().isoformat(),
                    "optimization_config": config,
                },
            )
            return {"quality_score": result.get("quality_score")}

        await tracker.run_item(marker["id"], optimize)

    return tracker.result(
        {
            "markers_optimized": tracker.processed,
            "optimization_config": config,
        }
    )
