"""Error taxonomy for the aggregation pipeline.

Only InvalidInputError propagates to callers. Source failures are absorbed
at the fetcher boundary and aggregation gaps fall back to zero defaults.
"""

from __future__ import annotations

from typing import Literal

ErrorClass = Literal["invalid_input", "partial_source_failure", "aggregation_inconsistency"]

GENERIC_LOAD_ERROR = "Could not load calendar data."


class InvalidInputError(ValueError):
    """Malformed date/timezone input or unknown client. Fails fast."""

    error_class: ErrorClass = "invalid_input"

    def __init__(
        self,
        *,
        code: str,
        message: str,
        field: str | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.field = field
