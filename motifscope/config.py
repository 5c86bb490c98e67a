"""Pipeline configuration and optional YAML config file loading."""

from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass, fields, replace
from typing import Any

import yaml

from motifscope.pattern_detector import PatternDetector
from motifscope.pattern_grouper import PatternGrouper

logger = logging.getLogger(__name__)

# Accepted value types per field; ints are also valid where a float is expected.
_FIELD_TYPES: dict[str, tuple[type, ...]] = {
    "min_pattern_length": (int,),
    "max_pattern_length": (int,),
    "group_threshold": (float, int),
    "display_length": (int,),
    "reject_flagged": (bool,),
}


@dataclass(frozen=True)
class PipelineConfig:
    """
    Tunables for one pipeline run.

    Attributes:
        min_pattern_length: Shortest pattern window.
        max_pattern_length: Longest pattern window.
        group_threshold:    Edit-distance fraction under which keys are grouped.
        display_length:     Maximum symbols shown for a group's winning key.
        reject_flagged:     Refuse scores containing script-like markers.
    """

    min_pattern_length: int = PatternDetector.DEFAULT_MIN_LENGTH
    max_pattern_length: int = PatternDetector.DEFAULT_MAX_LENGTH
    group_threshold: float = PatternGrouper.DEFAULT_THRESHOLD
    display_length: int = PatternGrouper.DEFAULT_DISPLAY_LENGTH
    reject_flagged: bool = True

    def __post_init__(self) -> None:
        for f in fields(self):
            value = getattr(self, f.name)
            expected = _FIELD_TYPES[f.name]
            is_stray_bool = isinstance(value, bool) and bool not in expected
            if is_stray_bool or not isinstance(value, expected):
                raise ValueError(f"{f.name} must be {expected[0].__name__}, got {value!r}.")

    @classmethod
    def from_mapping(cls, values: dict[str, Any]) -> "PipelineConfig":
        """
        Build a config from a plain mapping (e.g. parsed YAML).

        Raises:
            ValueError: If the mapping contains unknown keys or mistyped values.
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(values) - known)
        if unknown:
            raise ValueError(f"Unknown config key(s): {', '.join(unknown)}.")
        return cls(**values)

    def with_overrides(self, **overrides: Any) -> "PipelineConfig":
        """Return a copy with every non-None override applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def load_config(path: str | None) -> PipelineConfig:
    """
    Load a PipelineConfig from a YAML file.

    A missing path or file falls back to the defaults.

    Raises:
        ValueError: If the file is not a mapping, or has unknown keys or mistyped values.
    """
    if path is None:
        return PipelineConfig()
    if not os.path.exists(path):
        logger.warning("Config file %s not found. Using defaults.", path)
        return PipelineConfig()

    with open(path, "r", encoding="utf-8") as fh:
        try:
            values = yaml.safe_load(fh) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"Config file {path} is not valid YAML: {exc}") from exc
    if not isinstance(values, dict):
        raise ValueError(f"Config file {path} must contain a mapping.")
    return PipelineConfig.from_mapping(values)
