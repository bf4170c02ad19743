"""Entity list preparation and bucketing.

Input may nest entities in arbitrary lists. :func:`flatten_entities`
produces one ordered list, :func:`apply_aliases` rewrites legacy primitive
names through an explicit alias table, and :func:`bucket_entities` sorts
geometry into the point, line, surface and remote buckets the geometry
builder consumes, expanding container entities on the way.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from tessgraph.collaborators import SCENE_PRIMITIVES
from tessgraph.materials import MaterialKind, material_kind_for

# inherited by the members of polycurve/polysurface containers
_INHERITED_KEYS = ("materialProperties", "attributes", "color", "origin", "axis", "reference")


@dataclass
class Buckets:
    points: List[Mapping[str, Any]] = field(default_factory=list)
    lines: List[Mapping[str, Any]] = field(default_factory=list)
    surfaces: List[Mapping[str, Any]] = field(default_factory=list)
    remote: List[Mapping[str, Any]] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.points) + len(self.lines) + len(self.surfaces) + len(self.remote)


def flatten_entities(data: Any, result: Optional[List[Any]] = None) -> List[Any]:
    """Flatten nested lists into one ordered list; ``None`` entries vanish."""

    if result is None:
        result = []
    if data is None:
        return result
    if isinstance(data, (list, tuple)):
        for item in data:
            flatten_entities(item, result)
    else:
        result.append(data)
    return result


def apply_aliases(entity: Any, aliases: Mapping[str, str]) -> Any:
    """Copy of ``entity`` with its primitive renamed through ``aliases``."""

    if not isinstance(entity, Mapping):
        return entity
    primitive = entity.get("primitive")
    if isinstance(primitive, str) and primitive in aliases:
        entity = dict(entity)
        entity["primitive"] = aliases[primitive]
    return entity


def is_remote_brep(entity: Mapping[str, Any]) -> bool:
    """Solids without face data must be tessellated by the remote service."""

    return entity.get("primitive") == "brep" and (
        entity.get("faces") is None or entity.get("vertices") is None)


def _inherit(parent: Mapping[str, Any], child: Mapping[str, Any],
             aliases: Mapping[str, str]) -> Dict[str, Any]:
    out = dict(apply_aliases(child, aliases))
    for key in _INHERITED_KEYS:
        if key not in out and key in parent:
            out[key] = parent[key]
    return out


def bucket_entities(data: Any, aliases: Mapping[str, str],
                    buckets: Optional[Buckets] = None) -> Buckets:
    """Sort geometry entities into buckets, expanding containers.

    ``polycurve`` contributes its ``curves``, ``polysurface`` its
    ``surfaces`` and ``geometry`` its ``entities``. Other scene elements
    are skipped.
    """

    if buckets is None:
        buckets = Buckets()
    for entity in flatten_entities(data):
        entity = apply_aliases(entity, aliases)
        if not isinstance(entity, Mapping):
            continue
        primitive = entity.get("primitive")
        if primitive == "polycurve":
            members = [_inherit(entity, c, aliases) for c in entity.get("curves") or []]
            bucket_entities(members, aliases, buckets)
        elif primitive == "polysurface":
            members = [_inherit(entity, s, aliases) for s in entity.get("surfaces") or []]
            bucket_entities(members, aliases, buckets)
        elif primitive == "geometry":
            bucket_entities(entity.get("entities"), aliases, buckets)
        elif primitive in SCENE_PRIMITIVES or not isinstance(primitive, str):
            continue
        elif is_remote_brep(entity):
            buckets.remote.append(entity)
        else:
            kind = material_kind_for(primitive)
            if kind is MaterialKind.POINT:
                buckets.points.append(entity)
            elif kind is MaterialKind.LINE:
                buckets.lines.append(entity)
            else:
                buckets.surfaces.append(entity)
    return buckets


__all__ = [
    "Buckets",
    "apply_aliases",
    "bucket_entities",
    "flatten_entities",
    "is_remote_brep",
]
