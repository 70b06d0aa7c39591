"""JSON helpers for API responses and JSONB columns."""

import json
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


def json_serializable(obj: Any) -> Any:
    """Convert objects to JSON-serializable format.

    Handles common types that json.dumps() can't serialize:
    - datetime/date → ISO format string
    - UUID → string
    - Enum → its value
    - Decimal → float
    - bytes → decoded string
    - dict/list → recursive conversion
    - Objects with to_dict() → dict
    """
    if obj is None:
        return None
    if isinstance(obj, Enum):
        return json_serializable(obj.value)
    if isinstance(obj, (str, int, float, bool)):
        return obj
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, UUID):
        return str(obj)
    if isinstance(obj, Decimal):
        return float(obj)
    if isinstance(obj, bytes):
        return obj.decode("utf-8", errors="replace")
    if isinstance(obj, dict):
        return {str(k): json_serializable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple, set)):
        return [json_serializable(item) for item in obj]
    if hasattr(obj, "to_dict"):
        return json_serializable(obj.to_dict())
    if hasattr(obj, "__dict__"):
        return json_serializable(obj.__dict__)
    return str(obj)


def dump_json(value: Any) -> str:
    """Serialize a value for a JSONB parameter."""
    return json.dumps(json_serializable(value))
