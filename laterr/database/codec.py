"""JSON-in-text column encoding.

SQLite has no array type, so list-valued columns are stored as JSON text.
``JSON_COLUMNS`` is the only place that knows which columns those are; the
query translator calls ``encode_value`` on the way in and ``decode_row`` on
the way out, and nothing else touches the on-disk representation.
"""

import json
import logging
from typing import Any, Callable, Dict, Optional

from ..errors import MALFORMED

logger = logging.getLogger(__name__)


def _empty_list() -> list:
    return []


def _none() -> None:
    return None


# column name -> factory for the value used when the stored text is NULL or corrupt
JSON_COLUMNS: Dict[str, Callable[[], Any]] = {
    "tags": _empty_list,      # ordered sequence of strings
    "embedding": _none,       # vector of floats
}


def is_json_column(column: str) -> bool:
    return column in JSON_COLUMNS


def encode_value(column: str, value: Any) -> Any:
    """Convert a Python value to what the engine stores for ``column``."""
    if isinstance(value, bool):
        return int(value)
    if column not in JSON_COLUMNS or value is None or isinstance(value, str):
        return value
    return json.dumps(list(value) if isinstance(value, tuple) else value)


def encode_row(row: Dict[str, Any]) -> Dict[str, Any]:
    return {column: encode_value(column, value) for column, value in row.items()}


def decode_value(column: str, raw: Any, row_id: Optional[str] = None) -> Any:
    """Parse a stored value; JSON columns fall back to their default on bad data."""
    if column not in JSON_COLUMNS:
        return raw
    default = JSON_COLUMNS[column]
    if raw is None or raw == "":
        return default()
    try:
        value = json.loads(raw)
    except (TypeError, json.JSONDecodeError):
        logger.warning(
            f"Malformed JSON in column {column!r} of row {row_id!r}; using default",
            extra={"kind": MALFORMED},
        )
        return default()
    if not isinstance(value, list):
        logger.warning(
            f"Non-array JSON in column {column!r} of row {row_id!r}; using default",
            extra={"kind": MALFORMED},
        )
        return default()
    return value


def decode_row(row: Dict[str, Any]) -> Dict[str, Any]:
    row_id = row.get("id")
    return {column: decode_value(column, raw, row_id) for column, raw in row.items()}


def contains_fragment(column: str, element: Any) -> str:
    """Text an element contributes to the stored value, for substring matching."""
    if column in JSON_COLUMNS:
        return json.dumps(element)
    return str(element)
