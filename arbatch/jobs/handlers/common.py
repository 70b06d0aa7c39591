"""Config and context helpers shared by the processors."""

from typing import Any, Iterable, Optional

from arbatch.jobs.errors import JobConfigurationError


def require_collaborator(ctx: dict[str, Any], key: str) -> Any:
    """Fetch a collaborator from the execution context.

    Raises:
        JobConfigurationError: If the scheduler was built without it
    """
    value = ctx.get(key)
    if value is None:
        raise JobConfigurationError(f"Processor requires '{key}' in its context")
    return value


def choose(
    config: dict[str, Any],
    key: str,
    allowed: Iterable[str],
    default: Optional[str] = None,
) -> str:
    """Read an enumerated config value, applying the default when absent.

    Raises:
        JobConfigurationError: If the value is not one of ``allowed``
    """
    allowed = list(allowed)
    value = config.get(key)
    if value is None:
        if default is None:
            raise JobConfigurationError(f"Missing required config '{key}'")
        return default
    if value not in allowed:
        raise JobConfigurationError(
            f"Invalid {key} '{value}'; expected one of: {', '.join(allowed)}"
        )
    return value


def id_list(config: dict[str, Any], key: str) -> Optional[list[str]]:
    """Read an optional list of identifiers."""
    value = config.get(key)
    if value is None:
        return None
    if not isinstance(value, list):
        raise JobConfigurationError(f"Config '{key}' must be a list")
    return [str(v) for v in value]
