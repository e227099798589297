"""
EngineSettings schema.

The frozen runtime settings of the recurrence engine.  YAML files are parsed
into this type by the loader; nothing else in the repository reads
configuration files or environment variables.
"""

from __future__ import annotations

from dataclasses import dataclass, fields

from recurrence_kernel.domain.occurrences import (
    DEFAULT_HORIZON_MONTHS,
    DEFAULT_PREVIEW_LIMIT,
    MAX_PREVIEW_LIMIT,
)
from recurrence_kernel.services.forecast_service import DEFAULT_FORECAST_MONTHS


@dataclass(frozen=True)
class EngineSettings:
    """Runtime settings for the recurrence engine."""

    database_url: str = "sqlite:///:memory:"
    default_horizon_months: int = DEFAULT_HORIZON_MONTHS
    preview_default_limit: int = DEFAULT_PREVIEW_LIMIT
    preview_max_limit: int = MAX_PREVIEW_LIMIT
    forecast_default_months: int = DEFAULT_FORECAST_MONTHS
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        for name in (
            "default_horizon_months",
            "preview_default_limit",
            "preview_max_limit",
            "forecast_default_months",
        ):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                raise ValueError(f"{name} must be a positive integer, got {value!r}")
        if self.preview_default_limit > self.preview_max_limit:
            raise ValueError(
                "preview_default_limit must not exceed preview_max_limit "
                f"({self.preview_default_limit} > {self.preview_max_limit})"
            )
        if not self.database_url:
            raise ValueError("database_url must not be empty")

    @classmethod
    def field_names(cls) -> frozenset[str]:
        return frozenset(f.name for f in fields(cls))
