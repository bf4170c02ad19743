"""Pluggable functions the pipeline calls out to.

The pipeline never hard-codes analytic shape construction, material
resolution, entity validation or unit conversion; it calls the functions
held by a :class:`Collaborators` instance, which defaults to the
implementations shipped with this package.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from tessgraph.analytic import ANALYTIC_BUILDERS, build_analytic_primitive
from tessgraph.materials import MaterialHandle, MaterialKind, resolve_material
from tessgraph.mesh import Mesh

SCENE_PRIMITIVES = ("layer", "group", "instance", "geometry", "material", "texture", "camera")

REQUIRED_PROPERTIES: Dict[str, Tuple[str, ...]] = {
    "point": ("point",),
    "line": ("start", "end"),
    "polyline": ("points",),
    "arc": ("start", "middle", "end"),
    "curve": ("degree", "knots", "controlPoints"),
    "surface": ("uDegree", "vDegree", "uKnots", "vKnots", "controlPoints"),
    "polycurve": ("curves",),
    "polysurface": ("surfaces",),
    "mesh": ("vertices", "faces"),
    "brep": (),
    "stl": ("data",),
    "sphere": ("radius",),
    "block": ("dimensions",),
    "plane": (),
    "circle": ("radius",),
    "rectangle": ("dimensions",),
    "ellipse": ("majorRadius", "minorRadius"),
    "layer": ("id", "elements"),
    "group": ("id", "children"),
    "instance": ("id", "entity"),
    "geometry": ("id", "entities"),
    "material": ("id",),
    "texture": ("id", "image"),
    "camera": ("id",),
}


@dataclass
class ValidationResult:
    valid: bool
    messages: List[str] = field(default_factory=list)

    @property
    def message(self) -> str:
        return ", ".join(self.messages)


def validate_entity(entity: Any) -> ValidationResult:
    """Structural check of one entity dictionary."""

    if not isinstance(entity, Mapping):
        return ValidationResult(False, ["Entity must be an object."])
    primitive = entity.get("primitive")
    if not isinstance(primitive, str):
        return ValidationResult(False, ["Entity is missing a primitive."])
    required = REQUIRED_PROPERTIES.get(primitive)
    if required is None:
        return ValidationResult(False, ["Unknown primitive type."])
    missing = [name for name in required if entity.get(name) is None]
    if missing:
        return ValidationResult(False, [f"missing required property: {name}" for name in missing])
    return ValidationResult(True)


def identity_units(entity: Mapping[str, Any]) -> Mapping[str, Any]:
    return entity


def default_material(descriptor: Optional[Mapping[str, Any]],
                     kind: MaterialKind = MaterialKind.SURFACE) -> MaterialHandle:
    return resolve_material(descriptor, kind)


@dataclass
class Collaborators:
    build_analytic_primitive: Callable[[str, Mapping[str, Any]], Mesh] = build_analytic_primitive
    resolve_material: Callable[..., MaterialHandle] = default_material
    validate_entity: Callable[[Any], ValidationResult] = validate_entity
    convert_units: Callable[[Mapping[str, Any]], Mapping[str, Any]] = identity_units
    analytic_kinds: Tuple[str, ...] = tuple(ANALYTIC_BUILDERS)


DEFAULT_COLLABORATORS = Collaborators()


__all__ = [
    "Collaborators",
    "DEFAULT_COLLABORATORS",
    "REQUIRED_PROPERTIES",
    "SCENE_PRIMITIVES",
    "ValidationResult",
    "identity_units",
    "validate_entity",
]
