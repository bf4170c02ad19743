"""Pipeline configuration.

Tuning constants live in :class:`PipelineConfig`. A config can be loaded
from a YAML file whose top-level keys match the dataclass fields::

    curve_quality: 4.0
    smooth_limit_degrees: 30
    tess_url: https://tess.example.com/api
    primitive_aliases:
      nurbsCurve: curve
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import yaml

# Legacy primitive names accepted by the flatten step.
DEFAULT_PRIMITIVE_ALIASES: Dict[str, str] = {
    "nurbsCurve": "curve",
    "nurbsSurface": "surface",
    "polyCurve": "polycurve",
    "polySurface": "polysurface",
    "box": "block",
}


@dataclass(frozen=True)
class PipelineConfig:
    """Tessellation, shading and transport settings for one builder."""

    curve_quality: float = 2.5
    surface_quality: float = 2.5
    # hull dihedral angle below which a surface counts as flat
    flat_limit_degrees: float = 1.0
    # neighbouring faces within this angle are shaded smooth
    smooth_limit_degrees: float = 45.0
    tolerance: float = 1e-6
    circle_resolution: int = 32
    arc_sections_per_turn: int = 42
    allow_merge: bool = True
    # remote solid tessellation, 0-4, bigger is finer
    tessellate_quality: float = 2.0
    tess_url: Optional[str] = None
    token: Optional[str] = None
    timeout: float = 60.0
    primitive_aliases: Mapping[str, str] = field(
        default_factory=lambda: dict(DEFAULT_PRIMITIVE_ALIASES))

    @property
    def flat_limit(self) -> float:
        """Flatness threshold as a fraction of pi."""
        return self.flat_limit_degrees / 180.0

    @property
    def smooth_limit(self) -> float:
        """Cosine of the smoothing angle."""
        return math.cos(math.radians(self.smooth_limit_degrees))

    def with_overrides(self, **overrides: Any) -> "PipelineConfig":
        return replace(self, **overrides)


def config_from_dict(data: Mapping[str, Any]) -> PipelineConfig:
    known = {f.name for f in fields(PipelineConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"unknown configuration keys: {', '.join(unknown)}")
    values = dict(data)
    if "primitive_aliases" in values:
        aliases = dict(DEFAULT_PRIMITIVE_ALIASES)
        aliases.update(values["primitive_aliases"] or {})
        values["primitive_aliases"] = aliases
    return PipelineConfig(**values)


def load_config(path: Union[str, Path]) -> PipelineConfig:
    """Read a :class:`PipelineConfig` from a YAML file."""

    with open(path, "r", encoding="utf-8") as stream:
        data = yaml.safe_load(stream) or {}
    if not isinstance(data, dict):
        raise ValueError(f"configuration file {path} must contain a mapping")
    return config_from_dict(data)


DEFAULT_CONFIG = PipelineConfig()


__all__ = [
    "DEFAULT_CONFIG",
    "DEFAULT_PRIMITIVE_ALIASES",
    "PipelineConfig",
    "config_from_dict",
    "load_config",
]
