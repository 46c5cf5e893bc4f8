"""
Product attribute maps.

Attributes are a flat key/value map stored as JSON. Imports merge into the
stored map instead of replacing it, so curated keys survive partial
re-imports.
"""

import json
from typing import Any, Optional


def parse_attributes(value: Any) -> dict[str, Any]:
    """
    Parse an attributes cell into a dict.

    Accepts a dict, a JSON object string, or anything else (→ empty dict).
    """
    if not value:
        return {}
    if isinstance(value, dict):
        return dict(value)
    try:
        parsed = json.loads(str(value))
    except (TypeError, ValueError):
        return {}
    return parsed if isinstance(parsed, dict) else {}


def merge_attributes(
    existing: Optional[dict[str, Any]],
    incoming: Optional[dict[str, Any]]
) -> dict[str, Any]:
    """
    Union-keep-existing merge.

    Keys only in `existing` are preserved, keys only in `incoming` are
    added, and keys present in both take the incoming value.

    Args:
        existing: Stored attribute map (may be None)
        incoming: Attribute map from the import row (may be None)

    Returns:
        New merged dict (inputs are not mutated)
    """
    merged = dict(existing or {})
    merged.update(incoming or {})
    return merged
