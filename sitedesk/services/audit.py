"""
Change diffing for reconciliation logs.
"""
from typing import Any, Dict, Optional


IGNORED_FIELDS = frozenset({"updated_at"})


def compute_diff(before: Optional[Dict[str, Any]], after: Optional[Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
    """
    Compute a diff between two row snapshots.

    Args:
        before: Cached row before the change (None for inserts)
        after: Row after the change (None for deletes)

    Returns:
        Dict with before/after values for changed fields
    """
    before = before or {}
    after = after or {}
    diff = {}
    for key in set(before.keys()) | set(after.keys()):
        if key in IGNORED_FIELDS:
            continue
        before_val = before.get(key)
        after_val = after.get(key)
        if before_val != after_val:
            diff[key] = {"before": before_val, "after": after_val}
    return diff


def changed_fields(before: Optional[Dict[str, Any]], after: Optional[Dict[str, Any]]) -> list:
    return sorted(compute_diff(before, after).keys())
