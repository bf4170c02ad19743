import asyncio
import base64
import json

import requests

from tessgraph.config import PipelineConfig
from tessgraph.errors import StatusMap
from tessgraph.gateway import (
    ABORTED_MESSAGE,
    NO_TOKEN_MESSAGE,
    NO_URL_MESSAGE,
    TIMEOUT_MESSAGE,
    UNAVAILABLE_MESSAGE,
    RequestAborted,
    TessellationGateway,
    TransportResponse,
    build_request,
    decode_result,
    find_error_label,
    interpret_server_error,
)

CONFIG = PipelineConfig(tess_url="https://tess.example.com/api", token="secret")

SOLID = {"primitive": "brep", "id": "s1", "content": "..."}
TRIANGLE = {"vertices": [[0, 0, 0], [1, 0, 0], [0, 1, 0]], "faces": [[0, 1, 2]]}
ASCII_STL = ("solid t\nfacet normal 0 0 1\nouter loop\nvertex 0 0 0\nvertex 1 0 0\n"
             "vertex 0 1 0\nendloop\nendfacet\nendsolid t\n")


class FakeTransport:
    def __init__(self, status=200, body=None, exc=None):
        self.status = status
        self.body = body
        self.exc = exc
        self.calls = []

    async def __call__(self, url, payload, token, timeout):
        self.calls.append((url, payload, token))
        if self.exc is not None:
            raise self.exc
        text = self.body if isinstance(self.body, str) else json.dumps(self.body)
        return TransportResponse(self.status, text)


def _run(transport, entities, config=CONFIG):
    status = StatusMap()
    gateway = TessellationGateway(config, transport)
    results = asyncio.run(gateway.tessellate(entities, status))
    return results, status


def test_request_shape():
    request = build_request([SOLID, {"primitive": "brep", "id": "s2"}], 2.0)
    payload = request.to_payload()
    assert list(payload) == ["Scene"]
    assert payload["Scene"][0] == {"id": "result0", "entity": SOLID}
    assert payload["Scene"][1] == {"id": "result0", "op": "tessellate", "quality": 2.0}
    assert [entry["id"] for entry in payload["Scene"]] == ["result0", "result0", "result1", "result1"]
    assert request.labels["result1"]["id"] == "s2"


def test_success_with_mesh_json():
    transport = FakeTransport(body={"Output": {"Results": {"value": {"result0": TRIANGLE}}}})
    results, status = _run(transport, [SOLID])
    assert len(transport.calls) == 1
    url, payload, token = transport.calls[0]
    assert url == CONFIG.tess_url
    assert token == "secret"
    assert len(payload["Scene"]) == 2
    assert results["result0"][0].face_count == 1
    assert status.valid_key("brep")
    assert "brep" in status


def test_success_with_base64_stl():
    content = base64.b64encode(ASCII_STL.encode("ascii")).decode("ascii")
    body = {"Output": {"Results": {"value": {"result0": {"content": content, "format": "stl"}}}}}
    results, status = _run(FakeTransport(body=body), [SOLID])
    assert results["result0"][0].face_count == 1
    assert status.invalid_keys() == []


def test_timeout_status():
    results, status = _run(FakeTransport(status=504, body="gateway timeout"), [SOLID])
    assert results == {}
    assert status["brep"] == [TIMEOUT_MESSAGE]


def test_server_unavailable(caplog):
    results, status = _run(FakeTransport(status=500, body="oops"), [SOLID])
    assert results == {}
    assert status["brep"] == [UNAVAILABLE_MESSAGE]
    assert "status 500" in caplog.text


def test_duplicate_request_aborted():
    _, status = _run(FakeTransport(exc=RequestAborted()), [SOLID])
    assert status["brep"] == [ABORTED_MESSAGE]


def test_connection_error():
    _, status = _run(FakeTransport(exc=requests.ConnectionError("refused")), [SOLID])
    assert status["brep"] == ["Server error: refused"]


def test_malformed_response():
    _, status = _run(FakeTransport(body="<html>"), [SOLID])
    assert status["brep"] == ["Server error: Malformed tessellation response."]


def test_missing_url_and_token():
    transport = FakeTransport(body={})
    _, status = _run(transport, [SOLID], PipelineConfig(token="secret"))
    assert status["brep"] == [NO_URL_MESSAGE]
    _, status = _run(transport, [SOLID], PipelineConfig(tess_url="https://x"))
    assert status["brep"] == [NO_TOKEN_MESSAGE]
    assert transport.calls == []


def test_errors_are_attributed_by_label():
    body = {
        "Errors": {"op/2": {"Message": "PK_ERROR_wrong_transf\nwhile evaluating /result1/entity"}},
        "Output": {"Results": {"value": {"result0": TRIANGLE}}},
    }
    results, status = _run(FakeTransport(body=body), [SOLID, {"primitive": "solid", "id": "s2"}])
    assert list(results) == ["result0"]
    assert status.valid_key("brep")
    assert len(status["solid"]) == 1
    assert status["solid"][0].startswith("Server error: Unable to model objects")


def test_error_keyed_by_label():
    body = {"Errors": {"result0": {"Message": "Translator loader error"}}, "Output": {}}
    _, status = _run(FakeTransport(body=body), [SOLID])
    assert status["brep"] == [
        "Server error: The brep translator could not be initialized. Perhaps the license has expired."]


def test_undecodable_result():
    body = {"Output": {"Results": {"value": {"result0": {"content": "!!!", "format": "stl"}}}}}
    results, status = _run(FakeTransport(body=body), [SOLID])
    assert results == {}
    assert status["brep"] == ["Server error: Tessellation result is not valid base64."]


def test_result_attributes_are_kept():
    attributes = {"tag": "bolt", "materialProperties": {"color": "red"}}
    (mesh,) = decode_result(dict(TRIANGLE, attributes=attributes))
    assert mesh.user_data["attributes"] == attributes
    (plain,) = decode_result(TRIANGLE)
    assert "attributes" not in plain.user_data


def test_message_helpers():
    assert interpret_server_error("bad thing\nstack trace") == "Server error: bad thing"
    assert find_error_label("failed at /result12/faces") == "result12"
    assert find_error_label("no label here") is None


def test_nothing_pending_sends_nothing():
    transport = FakeTransport(body={})
    results, status = _run(transport, [])
    assert results == {}
    assert transport.calls == []
    assert list(status.keys()) == []
