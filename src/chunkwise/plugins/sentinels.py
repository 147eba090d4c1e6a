"""Shared sentinel values for collaborators.

DROP lets a transform filter a record out without it being an error:

    from chunkwise.plugins.sentinels import DROP

    def apply(self, record):
        if record["amount"] == 0:
            return DROP
        return record

A dropped record counts towards filter_count, is never written to the
sink, and produces no SkipRecord. Returning None is NOT a drop: None is a
legitimate record value.
"""

from typing import Final


class DropSentinel:
    """Sentinel class marking an intentionally filtered record.

    This is a singleton - use the DROP instance, not the class directly.
    Comparison should always use `is` identity, never equality.
    """

    __slots__ = ()

    def __repr__(self) -> str:
        return "<DROP>"


DROP: Final[DropSentinel] = DropSentinel()
"""Singleton sentinel indicating the record was filtered out.

Use identity comparison: `if value is DROP:`
"""
