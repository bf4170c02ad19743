"""Typed views of NURBS entity JSON.

Entities arrive as plain dictionaries; :func:`curve_from_json` and
:func:`surface_from_json` check the knot-count invariants before any
evaluation happens and raise :class:`~tessgraph.errors.InvalidNurbsDefinition`
when they do not hold.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Sequence

import numpy as np

from tessgraph.errors import InvalidNurbsDefinition
from tessgraph.nurbs import homogeneous


@dataclass
class Curve:
    """NURBS curve: degree, knot vector and weighted control points."""

    degree: int
    knots: List[float]
    control_points: List[List[float]]
    weights: Optional[List[float]] = None
    name: str = "curve"

    def homogeneous_points(self) -> np.ndarray:
        return homogeneous(self.control_points, self.weights)

    def validate(self) -> None:
        if self.degree < 1:
            raise InvalidNurbsDefinition(
                f"NURBS curve degree must be at least 1, got {self.degree}", entity=self.name)
        if len(self.knots) != len(self.control_points) + self.degree + 1:
            raise InvalidNurbsDefinition(
                "Number of knots in a NURBS curve should equal degree + N + 1, "
                "where N is the number of control points", entity=self.name)
        if any(b < a for a, b in zip(self.knots, self.knots[1:])):
            raise InvalidNurbsDefinition("NURBS curve knots must be non-decreasing", entity=self.name)
        if self.weights is not None and len(self.weights) != len(self.control_points):
            raise InvalidNurbsDefinition(
                "NURBS curve needs one weight per control point", entity=self.name)


@dataclass
class Surface:
    """NURBS surface.

    ``control_points[i][j]``: row ``i`` runs along v, column ``j`` along u.
    ``weights`` is the flat JSON list indexed ``weights[j * rows + i]``.
    """

    u_degree: int
    v_degree: int
    u_knots: List[float]
    v_knots: List[float]
    control_points: List[List[List[float]]]
    weights: Optional[List[float]] = None
    name: str = "surface"

    @property
    def rows(self) -> int:
        return len(self.control_points)

    @property
    def columns(self) -> int:
        return len(self.control_points[0]) if self.control_points else 0

    def weight(self, i: int, j: int) -> float:
        if self.weights is None:
            return 1.0
        return float(self.weights[j * self.rows + i])

    def homogeneous_grid(self) -> np.ndarray:
        """Rows x columns x 4 array of weighted control points."""

        grid = np.zeros((self.rows, self.columns, 4))
        for i, row in enumerate(self.control_points):
            weights = [self.weight(i, j) for j in range(len(row))]
            grid[i] = homogeneous(row, weights)
        return grid

    def positions(self) -> np.ndarray:
        """Rows x columns x 3 array of unweighted control points."""

        grid = self.homogeneous_grid()
        return grid[:, :, :3] / grid[:, :, 3:4]

    def validate(self) -> None:
        if not self.control_points or not self.control_points[0]:
            raise InvalidNurbsDefinition("NURBS surface has no control points", entity=self.name)
        if any(len(row) != self.columns for row in self.control_points):
            raise InvalidNurbsDefinition(
                "NURBS surface control points must form a rectangular grid", entity=self.name)
        if self.u_degree < 1 or self.v_degree < 1:
            raise InvalidNurbsDefinition("NURBS surface degrees must be at least 1", entity=self.name)
        if len(self.u_knots) != self.columns + self.u_degree + 1:
            raise InvalidNurbsDefinition(
                "Number of uKnots in a NURBS surface should equal uDegree + N + 1, "
                "where N is the number of control points along U direction", entity=self.name)
        if len(self.v_knots) != self.rows + self.v_degree + 1:
            raise InvalidNurbsDefinition(
                "Number of vKnots in a NURBS surface should equal vDegree + N + 1, "
                "where N is the number of control points along V direction", entity=self.name)
        if self.weights is not None and len(self.weights) < self.rows * self.columns:
            raise InvalidNurbsDefinition(
                "NURBS surface needs one weight per control point", entity=self.name)


def _float_list(values: Sequence[Any]) -> List[float]:
    return [float(v) for v in values]


def _point_list(values: Sequence[Sequence[Any]]) -> List[List[float]]:
    return [_float_list(p) for p in values]


def curve_from_json(data: Mapping[str, Any]) -> Curve:
    """Parse and validate a ``curve`` entity."""

    name = str(data.get("primitive") or "curve")
    if not data.get("knots") or not data.get("controlPoints"):
        raise InvalidNurbsDefinition("Curve is missing knots or control points.", entity=name)
    weights = data.get("weights")
    curve = Curve(
        degree=int(data.get("degree", 1)),
        knots=_float_list(data["knots"]),
        control_points=_point_list(data["controlPoints"]),
        weights=_float_list(weights) if weights else None,
        name=name,
    )
    curve.validate()
    return curve


def surface_from_json(data: Mapping[str, Any]) -> Surface:
    """Parse and validate a ``surface`` entity."""

    name = str(data.get("primitive") or "surface")
    if not data.get("controlPoints"):
        raise InvalidNurbsDefinition("Data must exist and have controlPoints", entity=name)
    if data.get("uKnots") is None or data.get("vKnots") is None:
        raise InvalidNurbsDefinition("Surface is missing uKnots or vKnots.", entity=name)
    weights = data.get("weights")
    surface = Surface(
        u_degree=int(data.get("uDegree", 1)),
        v_degree=int(data.get("vDegree", 1)),
        u_knots=_float_list(data["uKnots"]),
        v_knots=_float_list(data["vKnots"]),
        control_points=[_point_list(row) for row in data["controlPoints"]],
        weights=_float_list(weights) if weights else None,
        name=name,
    )
    surface.validate()
    return surface


__all__ = [
    "Curve",
    "Surface",
    "curve_from_json",
    "surface_from_json",
]
