"""NURBS curve and surface evaluation.

Control points are carried in homogeneous form ``(x*w, y*w, z*w, w)``;
evaluation sums the weighted basis over the active span and projects back
to 3-space by dividing by ``w``. Spans are found with the clamped search of
Piegl & Tiller (A2.1), so parameters outside the valid knot range
extrapolate the first or last span instead of collapsing to zero.

Public functions take normalized parameters in ``[0, 1]``. The
:class:`NurbsCurve` and :class:`NurbsSurface` wrappers map them to the
renderable knot domain, pulling the domain inward by ``degree`` for closed
shapes.
"""

from __future__ import annotations

from typing import List, Sequence, Tuple

import numpy as np

Vec3 = Tuple[float, float, float]

CLOSED_TOLERANCE = 1e-6


def homogeneous(points: Sequence[Sequence[float]], weights: Sequence[float] | None = None) -> np.ndarray:
    """Return an N x 4 array of weighted homogeneous control points."""

    out = np.zeros((len(points), 4))
    for i, p in enumerate(points):
        w = 1.0 if weights is None else float(weights[i])
        z = float(p[2]) if len(p) > 2 else 0.0
        out[i] = (float(p[0]) * w, float(p[1]) * w, z * w, w)
    return out


def find_span(degree: int, u: float, knots: Sequence[float]) -> int:
    """Index of the knot span containing ``u``, clamped to ``[degree, n]``."""

    n = len(knots) - degree - 2
    if u >= knots[n + 1]:
        return n
    if u <= knots[degree]:
        return degree

    low = degree
    high = n + 1
    mid = (low + high) // 2
    while u < knots[mid] or u >= knots[mid + 1]:
        if u < knots[mid]:
            high = mid
        else:
            low = mid
        mid = (low + high) // 2
    return mid


def basis_functions(span: int, u: float, degree: int, knots: Sequence[float]) -> List[float]:
    """Non-zero basis functions ``N[span-degree .. span]`` at ``u`` (A2.2)."""

    basis = [0.0] * (degree + 1)
    left = [0.0] * (degree + 1)
    right = [0.0] * (degree + 1)
    basis[0] = 1.0
    for j in range(1, degree + 1):
        left[j] = u - knots[span + 1 - j]
        right[j] = knots[span + j] - u
        saved = 0.0
        for r in range(j):
            rv = right[r + 1]
            lv = left[j - r]
            denom = rv + lv
            temp = basis[r] / denom if denom != 0.0 else 0.0
            basis[r] = saved + rv * temp
            saved = lv * temp
        basis[j] = saved
    return basis


def basis_function_derivatives(span: int, u: float, degree: int, n: int,
                               knots: Sequence[float]) -> List[List[float]]:
    """Basis functions and their derivatives up to order ``n`` (A2.3)."""

    nd = min(n, degree)
    ders = [[0.0] * (degree + 1) for _ in range(nd + 1)]
    ndu = [[0.0] * (degree + 1) for _ in range(degree + 1)]
    left = [0.0] * (degree + 1)
    right = [0.0] * (degree + 1)
    ndu[0][0] = 1.0

    for j in range(1, degree + 1):
        left[j] = u - knots[span + 1 - j]
        right[j] = knots[span + j] - u
        saved = 0.0
        for r in range(j):
            rv = right[r + 1]
            lv = left[j - r]
            ndu[j][r] = rv + lv
            temp = ndu[r][j - 1] / ndu[j][r] if ndu[j][r] != 0.0 else 0.0
            ndu[r][j] = saved + rv * temp
            saved = lv * temp
        ndu[j][j] = saved

    for j in range(degree + 1):
        ders[0][j] = ndu[j][degree]

    for r in range(degree + 1):
        s1, s2 = 0, 1
        a = [[0.0] * (degree + 1) for _ in range(2)]
        a[0][0] = 1.0
        for k in range(1, nd + 1):
            d = 0.0
            rk = r - k
            pk = degree - k
            if r >= k:
                denom = ndu[pk + 1][rk]
                a[s2][0] = a[s1][0] / denom if denom != 0.0 else 0.0
                d = a[s2][0] * ndu[rk][pk]
            j1 = 1 if rk >= -1 else -rk
            j2 = k - 1 if r - 1 <= pk else degree - r
            for j in range(j1, j2 + 1):
                denom = ndu[pk + 1][rk + j]
                a[s2][j] = (a[s1][j] - a[s1][j - 1]) / denom if denom != 0.0 else 0.0
                d += a[s2][j] * ndu[rk + j][pk]
            if r <= pk:
                denom = ndu[pk + 1][r]
                a[s2][k] = -a[s1][k - 1] / denom if denom != 0.0 else 0.0
                d += a[s2][k] * ndu[r][pk]
            ders[k][r] = d
            s1, s2 = s2, s1

    r = degree
    for k in range(1, nd + 1):
        for j in range(degree + 1):
            ders[k][j] *= r
        r *= degree - k
    return ders


def _curve_hpoint(degree: int, knots: Sequence[float], cps: np.ndarray, u: float) -> np.ndarray:
    span = find_span(degree, u, knots)
    basis = basis_functions(span, u, degree, knots)
    hpoint = np.zeros(4)
    for j in range(degree + 1):
        hpoint += basis[j] * cps[span - degree + j]
    return hpoint


def _project(hpoint: np.ndarray) -> Vec3:
    w = hpoint[3]
    if w != 1.0:
        if w == 0.0:
            raise ZeroDivisionError("NURBS point has zero weight")
        return (float(hpoint[0] / w), float(hpoint[1] / w), float(hpoint[2] / w))
    return (float(hpoint[0]), float(hpoint[1]), float(hpoint[2]))


def evaluate_curve_point(degree: int, knots: Sequence[float], control_points, u: float) -> Vec3:
    """Point on a NURBS curve at knot parameter ``u``.

    ``control_points`` is an N x 4 homogeneous array (see :func:`homogeneous`).
    """

    return _project(_curve_hpoint(degree, knots, np.asarray(control_points, dtype=float), u))


def evaluate_curve_tangent(degree: int, knots: Sequence[float], control_points, u: float) -> Vec3:
    """Unit tangent of a NURBS curve at knot parameter ``u``."""

    cps = np.asarray(control_points, dtype=float)
    span = find_span(degree, u, knots)
    ders = basis_function_derivatives(span, u, degree, 1, knots)
    a = np.zeros(4)
    da = np.zeros(4)
    for j in range(degree + 1):
        cp = cps[span - degree + j]
        a += ders[0][j] * cp
        if len(ders) > 1:
            da += ders[1][j] * cp
    w = a[3]
    if w == 0.0:
        raise ZeroDivisionError("NURBS point has zero weight")
    point = a[:3] / w
    # quotient rule: C' = (A' - w' C) / w
    tangent = (da[:3] - da[3] * point) / w
    length = float(np.linalg.norm(tangent))
    if length == 0.0:
        return (0.0, 0.0, 0.0)
    return tuple(float(c) for c in tangent / length)


def evaluate_surface_point(degree_u: int, degree_v: int, knots_u: Sequence[float],
                           knots_v: Sequence[float], grid, u: float, v: float) -> Vec3:
    """Point on a NURBS surface at knot parameters ``(u, v)``.

    ``grid`` is indexed ``grid[i][j]`` with ``i`` along the first (``u``)
    direction and ``j`` along the second, each entry homogeneous.
    """

    cps = np.asarray(grid, dtype=float)
    uspan = find_span(degree_u, u, knots_u)
    vspan = find_span(degree_v, v, knots_v)
    nu = basis_functions(uspan, u, degree_u, knots_u)
    nv = basis_functions(vspan, v, degree_v, knots_v)
    hpoint = np.zeros(4)
    for l in range(degree_v + 1):
        temp = np.zeros(4)
        for k in range(degree_u + 1):
            temp += nu[k] * cps[uspan - degree_u + k][vspan - degree_v + l]
        hpoint += nv[l] * temp
    return _project(hpoint)


def _map_parameter(knots: Sequence[float], i_min: int, i_max: int, t: float) -> float:
    return knots[i_min] + t * (knots[i_max] - knots[i_min])


def _distance(a: Vec3, b: Vec3) -> float:
    return float(np.linalg.norm(np.subtract(a, b)))


class NurbsCurve:
    """NURBS curve with a normalized ``[0, 1]`` parameter."""

    def __init__(self, degree: int, knots: Sequence[float], control_points) -> None:
        self.degree = int(degree)
        self.knots = [float(k) for k in knots]
        self.control_points = np.asarray(control_points, dtype=float)
        self.i_min = 0
        self.i_max = len(self.knots) - 1
        if self.is_closed():
            self.i_min = self.degree
            self.i_max = len(self.knots) - 1 - self.degree

    def is_closed(self) -> bool:
        start = self.point_at(self.knots[self.degree])
        end = self.point_at(self.knots[len(self.knots) - 1 - self.degree])
        return _distance(start, end) < CLOSED_TOLERANCE

    def point_at(self, u: float) -> Vec3:
        """Point at the raw knot parameter ``u``."""
        return evaluate_curve_point(self.degree, self.knots, self.control_points, u)

    def get_point(self, t: float) -> Vec3:
        return self.point_at(_map_parameter(self.knots, self.i_min, self.i_max, t))

    def get_points(self, divisions: int) -> List[Vec3]:
        return [self.get_point(d / divisions) for d in range(divisions + 1)]

    def get_tangent(self, t: float) -> Vec3:
        u = _map_parameter(self.knots, 0, len(self.knots) - 1, t)
        return evaluate_curve_tangent(self.degree, self.knots, self.control_points, u)


class NurbsSurface:
    """NURBS surface with normalized ``[0, 1]`` parameters in both directions.

    ``degree1``/``knots1`` describe the first grid index, ``degree2``/``knots2``
    the second.
    """

    def __init__(self, degree1: int, degree2: int, knots1: Sequence[float],
                 knots2: Sequence[float], control_points) -> None:
        self.degree1 = int(degree1)
        self.degree2 = int(degree2)
        self.knots1 = [float(k) for k in knots1]
        self.knots2 = [float(k) for k in knots2]
        self.control_points = np.asarray(control_points, dtype=float)

        self.i_min1, self.i_max1 = 0, len(self.knots1) - 1
        self.i_min2, self.i_max2 = 0, len(self.knots2) - 1
        closed1 = self.is_closed(0)
        closed2 = self.is_closed(1)
        if closed1:
            self.i_min1 = self.degree1
            self.i_max1 = len(self.knots1) - 1 - self.degree1
        if closed2:
            self.i_min2 = self.degree2
            self.i_max2 = len(self.knots2) - 1 - self.degree2

    def point_at(self, u: float, v: float) -> Vec3:
        return evaluate_surface_point(self.degree1, self.degree2, self.knots1,
                                      self.knots2, self.control_points, u, v)

    def is_closed(self, direction: int) -> bool:
        """Whether the surface closes on itself along ``direction`` (0 or 1).

        The boundary iso-curves are compared at the start, middle and end
        of the other direction's valid domain.
        """

        if direction == 0:
            knots, degree = self.knots1, self.degree1
            other, other_degree = self.knots2, self.degree2
        else:
            knots, degree = self.knots2, self.degree2
            other, other_degree = self.knots1, self.degree1
        start = knots[degree]
        end = knots[len(knots) - 1 - degree]
        o_start = other[other_degree]
        o_end = other[len(other) - 1 - other_degree]
        for s in (o_start, 0.5 * (o_start + o_end), o_end):
            if direction == 0:
                a, b = self.point_at(start, s), self.point_at(end, s)
            else:
                a, b = self.point_at(s, start), self.point_at(s, end)
            if _distance(a, b) >= CLOSED_TOLERANCE:
                return False
        return True

    def get_point(self, t1: float, t2: float) -> Vec3:
        u = _map_parameter(self.knots1, self.i_min1, self.i_max1, t1)
        v = _map_parameter(self.knots2, self.i_min2, self.i_max2, t2)
        return self.point_at(u, v)


__all__ = [
    "NurbsCurve",
    "NurbsSurface",
    "basis_function_derivatives",
    "basis_functions",
    "evaluate_curve_point",
    "evaluate_curve_tangent",
    "evaluate_surface_point",
    "find_span",
    "homogeneous",
]
