"""
Change detection between the last persisted snapshot and the current form.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional


def has_changed(
    previous: Optional[Mapping[str, Any]], current: Optional[Mapping[str, Any]]
) -> bool:
    """Deep structural comparison; a missing snapshot equals an empty one."""
    return dict(previous or {}) != dict(current or {})
