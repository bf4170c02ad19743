from tessgraph.errors import (
    DegenerateGeometry,
    ErrorKind,
    InvalidNurbsDefinition,
    RemoteTessellationFailure,
    StatusMap,
    UnknownPrimitiveType,
    classify,
    is_recoverable,
)


def test_summary_joins_invalid_keys():
    status = StatusMap()
    status.append_error("curve", "bad knots")
    status.append_error("curve", "bad knots")
    status.append_error("curve", "too short")
    status.append_valid("line")
    status.append_error("brep", "Server error: boom")

    assert status.invalid_key_summary() == "curve (bad knots, too short), brep (Server error: boom)"
    assert status.invalid_keys() == ["curve", "brep"]
    assert status.valid_key("line")
    assert status.invalid_key("curve")
    assert "line" in status


def test_valid_then_error_is_invalid():
    status = StatusMap()
    status.append_valid("surface")
    status.append_error("surface", "broken")
    assert status.invalid_key("surface")
    assert status["surface"] == ["broken"]


def test_merge_and_clear():
    first = StatusMap()
    first.append_error("curve", "a")
    second = StatusMap()
    second.append_error("curve", "a")
    second.append_error("curve", "b")
    second.append_valid("point")

    first.merge(second)
    assert first["curve"] == ["a", "b"]
    assert first.valid_key("point")
    assert "point" in first

    first.clear()
    assert list(first.keys()) == []
    assert first.invalid_key_summary() == ""


def test_classify():
    assert classify(InvalidNurbsDefinition()) is ErrorKind.INVALID_NURBS_DEFINITION
    assert classify(DegenerateGeometry("flat")) is ErrorKind.DEGENERATE_GEOMETRY
    assert classify(RemoteTessellationFailure()) is ErrorKind.REMOTE_TESSELLATION_FAILURE
    assert classify(ValueError("nope")) is ErrorKind.UNEXPECTED_FAULT
    assert is_recoverable(UnknownPrimitiveType())
    assert not is_recoverable(KeyError("x"))


def test_default_messages():
    assert UnknownPrimitiveType(entity="blob").message == "Unknown primitive type."
    err = InvalidNurbsDefinition("bad", entity="curve")
    assert err.entity == "curve"
    assert str(err) == "bad"
