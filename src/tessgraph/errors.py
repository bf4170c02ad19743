"""Error kinds and the per-conversion status map.

Recoverable geometry problems are raised as :class:`GeometryError`
subclasses, caught at the smallest scope (one entity or one merge group)
and recorded in a :class:`StatusMap`. Anything else is an unexpected
fault and propagates to the caller.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, Iterable, List, Optional


class ErrorKind(Enum):
    """Closed set of error kinds produced by the pipeline."""

    INVALID_NURBS_DEFINITION = "invalid-nurbs-definition"
    DEGENERATE_GEOMETRY = "degenerate-geometry"
    MISMATCHED_ATTRIBUTES = "mismatched-attributes"
    UNKNOWN_PRIMITIVE_TYPE = "unknown-primitive-type"
    REMOTE_TESSELLATION_FAILURE = "remote-tessellation-failure"
    UNEXPECTED_FAULT = "unexpected-fault"


class GeometryError(Exception):
    """Base class for recoverable geometry errors."""

    kind = ErrorKind.DEGENERATE_GEOMETRY
    default_message = "Invalid or degenerate geometry specified."

    def __init__(self, message: Optional[str] = None, *, entity: Optional[str] = None):
        self.message = message or self.default_message
        self.entity = entity
        super().__init__(self.message)


class InvalidNurbsDefinition(GeometryError):
    kind = ErrorKind.INVALID_NURBS_DEFINITION
    default_message = "Invalid NURBS definition."


class DegenerateGeometry(GeometryError):
    kind = ErrorKind.DEGENERATE_GEOMETRY


class MismatchedAttributes(GeometryError):
    kind = ErrorKind.MISMATCHED_ATTRIBUTES
    default_message = "Mismatched geometry attributes."


class UnknownPrimitiveType(GeometryError):
    kind = ErrorKind.UNKNOWN_PRIMITIVE_TYPE
    default_message = "Unknown primitive type."


class RemoteTessellationFailure(GeometryError):
    kind = ErrorKind.REMOTE_TESSELLATION_FAILURE
    default_message = "Server error: The brep tessellation service is unavailable."


def classify(exc: BaseException) -> ErrorKind:
    """Return the :class:`ErrorKind` of ``exc``."""

    if isinstance(exc, GeometryError):
        return exc.kind
    return ErrorKind.UNEXPECTED_FAULT


def is_recoverable(exc: BaseException) -> bool:
    return classify(exc) is not ErrorKind.UNEXPECTED_FAULT


class StatusMap:
    """Map from entity key (primitive name, id or ``"brep"``) to messages.

    A key with an empty message list is a known, valid key.
    """

    NO_ERROR = ""

    def __init__(self) -> None:
        self.errors: Dict[str, List[str]] = {}

    def clear(self) -> None:
        self.errors = {}

    def append_error(self, key: str, message: Optional[str]) -> None:
        """Record ``message`` under ``key``; duplicates are dropped."""

        messages = self.errors.setdefault(key, [])
        if message and message not in messages:
            messages.append(message)

    def append_valid(self, key: str) -> None:
        self.append_error(key, self.NO_ERROR)

    def valid_key(self, key: str) -> bool:
        return not self.errors.get(key)

    def invalid_key(self, key: str) -> bool:
        return not self.valid_key(key)

    def invalid_keys(self) -> List[str]:
        return [key for key in self.errors if self.invalid_key(key)]

    def merge(self, other: "StatusMap") -> None:
        for key, messages in other.errors.items():
            if not messages:
                self.append_valid(key)
            for message in messages:
                self.append_error(key, message)

    def keys(self) -> Iterable[str]:
        return self.errors.keys()

    def __getitem__(self, key: str) -> List[str]:
        return self.errors[key]

    def __contains__(self, key: object) -> bool:
        return key in self.errors

    def invalid_key_summary(self) -> str:
        """Human readable summary: ``"key (m1, m2), other (m3)"``."""

        parts = []
        for key in self.invalid_keys():
            parts.append(f"{key} ({', '.join(self.errors[key])})")
        return ", ".join(parts)

    def __repr__(self) -> str:
        return f"StatusMap({self.errors!r})"


__all__ = [
    "ErrorKind",
    "GeometryError",
    "InvalidNurbsDefinition",
    "DegenerateGeometry",
    "MismatchedAttributes",
    "UnknownPrimitiveType",
    "RemoteTessellationFailure",
    "classify",
    "is_recoverable",
    "StatusMap",
]
