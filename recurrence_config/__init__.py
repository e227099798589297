"""
recurrence_config -- single public entrypoint for engine settings.

Responsibility:
    Provides the ONLY way to obtain settings at runtime through
    ``get_active_settings()``.  No other component reads configuration
    files or environment variables directly.

Architecture position:
    Configuration.  Sits above ``recurrence_kernel`` and below
    ``recurrence_services``.  The kernel MUST NEVER import from
    ``recurrence_config``; services pass the individual values into
    kernel constructors.

Failure modes:
    - ``FileNotFoundError`` -- the requested settings file does not exist.
    - ``ValueError`` -- unknown keys or out-of-range values.
    - ``yaml.YAMLError`` -- malformed YAML.
"""

from __future__ import annotations

import logging
from pathlib import Path

from recurrence_config.loader import DATABASE_URL_ENV, load_settings
from recurrence_config.schema import EngineSettings

_logger = logging.getLogger("recurrence_kernel.config")

DEFAULT_SETTINGS_PATH = Path(__file__).parent / "defaults.yaml"


def get_active_settings(config_path: Path | str | None = None) -> EngineSettings:
    """The ONLY public settings entrypoint.

    Args:
        config_path: YAML file to load.  Defaults to the packaged
            ``defaults.yaml``.

    Returns:
        Frozen EngineSettings.
    """
    path = Path(config_path) if config_path is not None else DEFAULT_SETTINGS_PATH
    settings = load_settings(path)

    _logger.info(
        "settings_loaded",
        extra={
            "config_path": str(path),
            "default_horizon_months": settings.default_horizon_months,
            "preview_max_limit": settings.preview_max_limit,
            "log_level": settings.log_level,
        },
    )
    return settings


__all__ = [
    "DATABASE_URL_ENV",
    "DEFAULT_SETTINGS_PATH",
    "EngineSettings",
    "get_active_settings",
]
