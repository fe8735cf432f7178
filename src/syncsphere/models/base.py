import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from ulid import ULID


def new_id(prefix: str) -> str:
    return f"{prefix}_{ULID()}"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_dt(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def parse_dt(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    parsed = datetime.fromisoformat(str(value))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def load_json(value: Any, default: Any = None) -> Any:
    """Decode a JSON column; rows from the cache arrive already decoded."""
    if value is None or value == "":
        return {} if default is None else default
    if isinstance(value, (dict, list)):
        return value
    return json.loads(value)


def dump_json(value: Any) -> str:
    return json.dumps(value if value is not None else {}, default=str)


def row_to_dict(row: Any) -> Dict[str, Any]:
    return dict(row) if not isinstance(row, dict) else row
