"""Material descriptors and their merge signatures.

Entities describe appearance with a small set of properties (``color``,
``glossiness``, ``transparency`` and so on). :func:`resolve_material`
turns such a descriptor into a :class:`MaterialHandle` carrying renderer
parameters. Colors live in per-vertex buffers, so they are left out of the
handle's :attr:`~MaterialHandle.signature`; everything else that affects
drawing is in it.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

LOG = logging.getLogger(__name__)

Color = Tuple[float, float, float]


class MaterialKind(Enum):
    SURFACE = "surface"
    LINE = "line"
    POINT = "point"


DEFAULT_MATERIAL_PROPERTIES: Dict[MaterialKind, Dict[str, Any]] = {
    MaterialKind.SURFACE: {
        "color": (1.0, 1.0, 1.0),
        "reflectivity": 0.0,
        "glossiness": 0.0,
        "transparency": None,
        "emissionColor": None,
        "wireframe": False,
    },
    MaterialKind.POINT: {
        "color": (0.5, 0.5, 0.8),
        "pointSize": 0.001,
        "sizeAttenuation": True,
    },
    MaterialKind.LINE: {
        "color": (0.5, 0.5, 0.8),
        "linewidth": 1.0,
    },
}

# entity property -> renderer property, and whether it is the complement
SURFACE_PROPERTY_MAP = {
    "glossiness": ("roughness", True),
    "transparency": ("opacity", True),
    "reflectivity": ("metalness", False),
    "emissionColor": ("emissive", False),
}
LEGACY_POINT_PROPERTIES = {"size": "pointSize"}

_NAMED_COLORS: Dict[str, Color] = {
    "white": (1.0, 1.0, 1.0),
    "black": (0.0, 0.0, 0.0),
    "red": (1.0, 0.0, 0.0),
    "green": (0.0, 0.5019607843137255, 0.0),
    "lime": (0.0, 1.0, 0.0),
    "blue": (0.0, 0.0, 1.0),
    "yellow": (1.0, 1.0, 0.0),
    "cyan": (0.0, 1.0, 1.0),
    "magenta": (1.0, 0.0, 1.0),
    "gray": (0.5019607843137255, 0.5019607843137255, 0.5019607843137255),
    "grey": (0.5019607843137255, 0.5019607843137255, 0.5019607843137255),
    "orange": (1.0, 0.6470588235294118, 0.0),
}


def parse_color(value: Any, default: Color = (1.0, 1.0, 1.0)) -> Color:
    """Convert ``[r, g, b]``, ``"#rrggbb"``, ``"#rgb"`` or a CSS name to RGB."""

    if value is None:
        return default
    if isinstance(value, Mapping) and {"r", "g", "b"} <= set(value):
        return (float(value["r"]), float(value["g"]), float(value["b"]))
    if isinstance(value, (list, tuple)) and len(value) == 3:
        return (float(value[0]), float(value[1]), float(value[2]))
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _NAMED_COLORS:
            return _NAMED_COLORS[text]
        if text.startswith("#"):
            digits = text[1:]
            if len(digits) == 3:
                digits = "".join(ch * 2 for ch in digits)
            if len(digits) == 6:
                return tuple(int(digits[i:i + 2], 16) / 255.0 for i in (0, 2, 4))
    LOG.warning("unrecognised color %r, using %r", value, default)
    return default


def material_signature(kind: MaterialKind, properties: Mapping[str, Any]) -> str:
    """Order-independent key of the non-color properties of a material."""

    ordered = []
    for name in sorted(properties):
        if name == "color":
            continue
        value = properties[name]
        if value is None:
            continue
        if isinstance(value, tuple):
            value = list(value)
        ordered.append(name + json.dumps(value, sort_keys=True))
    return json.dumps(kind.value) + json.dumps(ordered)


@dataclass
class MaterialHandle:
    """Resolved material: renderer parameters plus texture placement."""

    kind: MaterialKind
    properties: Dict[str, Any] = field(default_factory=dict)
    color: Color = (1.0, 1.0, 1.0)
    texture: Optional[str] = None
    uv_offset: Tuple[float, float] = (0.0, 0.0)
    uv_repeat: Tuple[float, float] = (1.0, 1.0)
    name: str = ""

    @property
    def opacity(self) -> float:
        return float(self.properties.get("opacity", 1.0))

    @property
    def transparent(self) -> bool:
        return self.opacity < 1.0

    @property
    def signature(self) -> str:
        props = dict(self.properties)
        if self.texture is not None:
            props["map"] = [self.texture, list(self.uv_offset), list(self.uv_repeat)]
        return material_signature(self.kind, props)

    def with_color(self, color: Color) -> "MaterialHandle":
        return replace(self, color=tuple(color), properties=dict(self.properties))

    def with_texture(self, image: str, offset: Sequence[float] = (0.0, 0.0),
                     repeat: Sequence[float] = (1.0, 1.0)) -> "MaterialHandle":
        return replace(self, texture=image, uv_offset=tuple(offset),
                       uv_repeat=tuple(repeat), properties=dict(self.properties))


def _surface_properties(descriptor: Mapping[str, Any]) -> Dict[str, Any]:
    defaults = DEFAULT_MATERIAL_PROPERTIES[MaterialKind.SURFACE]
    props: Dict[str, Any] = {"wireframe": bool(descriptor.get("wireframe", defaults["wireframe"]))}
    for source, (dest, complement) in SURFACE_PROPERTY_MAP.items():
        value = descriptor.get(source)
        if value is None:
            value = defaults[source]
        if value is None:
            continue
        if dest == "emissive":
            props[dest] = parse_color(value)
        else:
            props[dest] = 1.0 - float(value) if complement else float(value)
    # renderer-native names win over the entity ones
    for native in ("opacity", "roughness", "metalness"):
        if descriptor.get(native) is not None:
            props[native] = float(descriptor[native])
    props.setdefault("opacity", 1.0)
    return props


def _known_properties(kind: MaterialKind, descriptor: Mapping[str, Any]) -> Dict[str, Any]:
    props: Dict[str, Any] = {}
    for name, default in DEFAULT_MATERIAL_PROPERTIES[kind].items():
        if name == "color":
            continue
        value = descriptor.get(name)
        if value is None and kind is MaterialKind.POINT:
            legacy = [k for k, v in LEGACY_POINT_PROPERTIES.items() if v == name]
            value = next((descriptor[k] for k in legacy if descriptor.get(k) is not None), None)
        props[name] = default if value is None else value
    return props


def resolve_material(descriptor: Optional[Mapping[str, Any]],
                     kind: MaterialKind = MaterialKind.SURFACE) -> MaterialHandle:
    """Build a :class:`MaterialHandle` from entity material properties."""

    descriptor = descriptor or {}
    if kind is MaterialKind.SURFACE:
        props = _surface_properties(descriptor)
    else:
        props = _known_properties(kind, descriptor)
    default_color = DEFAULT_MATERIAL_PROPERTIES[kind]["color"]
    return MaterialHandle(kind=kind, properties=props,
                          color=parse_color(descriptor.get("color"), default_color))


def find_material_properties(entity: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Material properties declared on an entity, directly or in attributes."""

    if not entity:
        return {}
    if entity.get("materialProperties"):
        return dict(entity["materialProperties"])
    attributes = entity.get("attributes") or {}
    if attributes.get("materialProperties"):
        return dict(attributes["materialProperties"])
    return {}


def entity_attribute(entity: Optional[Mapping[str, Any]], name: str, default: Any = None) -> Any:
    """Look up ``name`` on the entity, then in its material properties."""

    if not entity:
        return default
    if entity.get(name) is not None:
        return entity[name]
    props = entity.get("materialProperties") or {}
    if props.get(name) is not None:
        return props[name]
    attributes = entity.get("attributes") or {}
    props = attributes.get("materialProperties") or {}
    if props.get(name) is not None:
        return props[name]
    return default


def material_kind_for(primitive: str) -> MaterialKind:
    if primitive == "point":
        return MaterialKind.POINT
    if primitive in ("line", "polyline", "arc", "curve", "circle", "rectangle", "ellipse"):
        return MaterialKind.LINE
    return MaterialKind.SURFACE


__all__ = [
    "Color",
    "DEFAULT_MATERIAL_PROPERTIES",
    "MaterialHandle",
    "MaterialKind",
    "entity_attribute",
    "find_material_properties",
    "material_kind_for",
    "material_signature",
    "parse_color",
    "resolve_material",
]
