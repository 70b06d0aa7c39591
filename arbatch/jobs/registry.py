"""Processor registry.

Processors are keyed by the plain job type string, so a job whose stored
type has no BatchJobType member still resolves to "no processor" rather
than failing before it reaches the executor.
"""

import inspect
from typing import Any, Callable, Coroutine

from arbatch.jobs.models import BatchJob, JobResult
from arbatch.jobs.types import JobTypeName, job_type_value

# Processor signature: async def processor(job: BatchJob, ctx: dict) -> JobResult
JobProcessor = Callable[[BatchJob, dict[str, Any]], Coroutine[Any, Any, JobResult]]


class ProcessorRegistry:
    """Registry mapping job types to their processors."""

    def __init__(self):
        self._processors: dict[str, JobProcessor] = {}

    def register(self, job_type: JobTypeName, processor: JobProcessor) -> None:
        """Register a processor for a job type.

        Raises:
            TypeError: processor is not an async function taking (job, ctx)
        """
        if not inspect.iscoroutinefunction(processor):
            raise TypeError(
                f"Processor for {job_type_value(job_type)} must be an async function"
            )
        try:
            inspect.signature(processor).bind(None, None)
        except TypeError:
            raise TypeError(
                f"Processor for {job_type_value(job_type)} must accept (job, ctx)"
            ) from None
        self._processors[job_type_value(job_type)] = processor

    def get_processor(self, job_type: JobTypeName) -> JobProcessor:
        """Get the processor for a job type. Raises KeyError if not found."""
        key = job_type_value(job_type)
        if key not in self._processors:
            raise KeyError(f"No processor registered for job type: {key}")
        return self._processors[key]

    def processor(self, job_type: JobTypeName) -> Callable[[JobProcessor], JobProcessor]:
        """Decorator to register a processor."""

        def decorator(fn: JobProcessor) -> JobProcessor:
            self.register(job_type, fn)
            return fn

        return decorator

    def registered_types(self) -> list[str]:
        return list(self._processors)

    def __contains__(self, job_type: object) -> bool:
        if not isinstance(job_type, str):
            return False
        return job_type_value(job_type) in self._processors


default_registry = ProcessorRegistry()
