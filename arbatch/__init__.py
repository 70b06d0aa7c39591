"""AR Batch Scheduler - background job pipeline for AR content.

Queues long-running work (marker optimization, tracking file generation,
bulk content updates, exports, statistics) and runs it under a
concurrency bound with per-item progress tracking.
"""

__version__ = "0.1.0"
