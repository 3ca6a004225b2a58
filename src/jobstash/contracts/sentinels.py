"""Sentinel values for field lookups.

Distinguishes "field not present" from "field present with value None"
when walking canonical records by dotted path.
"""

from typing import Final


class MissingSentinel:
    """Sentinel class to distinguish missing fields from None values.

    This is a singleton - use the MISSING instance, not the class directly.
    Comparison should always use `is` identity, never equality.
    """

    __slots__ = ()

    def __repr__(self) -> str:
        return "<MISSING>"


MISSING: Final[MissingSentinel] = MissingSentinel()
"""Singleton sentinel indicating a field was not found.

Use identity comparison: `if value is MISSING:`
"""
