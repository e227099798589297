"""
Settings loader (``recurrence_config.loader``).

Responsibility
--------------
Loads a YAML settings file and parses it into a frozen ``EngineSettings``.
Callers go through ``recurrence_config.get_active_settings()``.

Invariants enforced
-------------------
* Unknown keys are rejected with ``ValueError``; there are no silently
  ignored settings.
* ``RECURRENCE_DATABASE_URL`` in the environment overrides the file's
  ``database_url``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Wrong top-level shape or unknown keys  -> ``ValueError``.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Mapping

import yaml

from recurrence_config.schema import EngineSettings

DATABASE_URL_ENV = "RECURRENCE_DATABASE_URL"


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: settings must be a mapping, got {type(data).__name__}")
    return data


def parse_settings(
    data: Mapping[str, Any],
    environ: Mapping[str, str] | None = None,
) -> EngineSettings:
    """Build EngineSettings from a parsed mapping plus environment overrides."""
    unknown = set(data) - EngineSettings.field_names()
    if unknown:
        raise ValueError(f"Unknown settings keys: {sorted(unknown)}")

    values = dict(data)
    env = os.environ if environ is None else environ
    if env.get(DATABASE_URL_ENV):
        values["database_url"] = env[DATABASE_URL_ENV]
    return EngineSettings(**values)


def load_settings(
    path: Path,
    environ: Mapping[str, str] | None = None,
) -> EngineSettings:
    return parse_settings(load_yaml_file(path), environ)
