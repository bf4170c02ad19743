"""Batched remote tessellation of solids.

Solids that arrive without face data are sent to an external service in a
single request per conversion. Every solid gets a generated label
(``result0``, ``result1``, ...); the label table maps server results and
error messages back to the originating entity.

Request::

    {"Scene": [{"id": "result0", "entity": {...}},
               {"id": "result0", "op": "tessellate", "quality": 2.0}, ...]}

Response::

    {"Errors": {"<key>": {"Message": "..."}},
     "Output": {"Results": {"value": {"result0": {...}}}}}
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import logging
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Literal, Mapping, Optional, Sequence, Union

import requests
from pydantic import BaseModel, Field, ValidationError

from tessgraph.config import DEFAULT_CONFIG, PipelineConfig
from tessgraph.errors import GeometryError, RemoteTessellationFailure, StatusMap
from tessgraph.mesh import Mesh
from tessgraph.primitives import polygon_mesh
from tessgraph.stl import stl_to_mesh

LOG = logging.getLogger(__name__)

BREP_KEY = "brep"
TIMEOUT_MESSAGE = "Server error: Your request exceeded the maximum time limit for execution."
UNAVAILABLE_MESSAGE = "Server error: The brep tessellation service is unavailable."
ABORTED_MESSAGE = "Duplicate request was aborted."
NO_URL_MESSAGE = "Tessellation url was not set"
NO_TOKEN_MESSAGE = "Auth token was not set"

_LABEL_PATTERN = re.compile(r"/(result\d+)")

_EXPLANATIONS = {
    "PK_ERROR_wrong_transf": (
        "Unable to model objects that are outside of a bounding box that is 1000 units "
        "wide centered at the origin. Please scale down your models or change units."),
    "Translator loader error": (
        "The brep translator could not be initialized. Perhaps the license has expired."),
}


class EntityQuery(BaseModel):
    """Scene entry declaring one solid under a label."""
    id: str
    entity: Dict[str, Any]


class TessellateOperation(BaseModel):
    """Scene entry asking for the labelled solid to be tessellated."""
    id: str
    op: Literal["tessellate"] = "tessellate"
    quality: float


class TessellationRequest(BaseModel):
    scene: List[Union[EntityQuery, TessellateOperation]] = Field(alias="Scene")
    # label -> originating entity, never sent
    labels: Dict[str, Dict[str, Any]] = Field(default_factory=dict, exclude=True)

    model_config = {"populate_by_name": True}

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)

    def primitive_for(self, label: Optional[str]) -> str:
        entity = self.labels.get(label or "")
        if entity is None:
            return BREP_KEY
        return str(entity.get("primitive") or BREP_KEY)


class ServerError(BaseModel):
    message: str = Field("", alias="Message")


class ResultSet(BaseModel):
    value: Dict[str, Any] = Field(default_factory=dict)


class Output(BaseModel):
    results: Optional[ResultSet] = Field(None, alias="Results")


class TessellationResponse(BaseModel):
    errors: Optional[Dict[str, ServerError]] = Field(None, alias="Errors")
    output: Output = Field(default_factory=Output, alias="Output")


@dataclass
class TransportResponse:
    status: int
    text: str


class RequestAborted(Exception):
    """Raised by a transport when a newer duplicate request replaced this one."""


Transport = Callable[[str, Mapping[str, Any], str, float], Awaitable[TransportResponse]]


async def requests_transport(url: str, payload: Mapping[str, Any], token: str,
                             timeout: float) -> TransportResponse:
    """POST ``payload`` as JSON with ``requests`` on a worker thread."""

    def post() -> TransportResponse:
        response = requests.post(
            url,
            json=payload,
            headers={"Authorization": f"Bearer {token}", "Content-Type": "application/json"},
            timeout=timeout,
        )
        return TransportResponse(response.status_code, response.text)

    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, post)


def result_label(index: int) -> str:
    return f"result{index}"


def build_request(entities: Sequence[Mapping[str, Any]], quality: float) -> TessellationRequest:
    """Two scene entries per solid plus the label table."""

    scene: List[Union[EntityQuery, TessellateOperation]] = []
    labels: Dict[str, Dict[str, Any]] = {}
    for i, entity in enumerate(entities):
        if not entity or not entity.get("primitive"):
            continue
        label = result_label(i)
        scene.append(EntityQuery(id=label, entity=dict(entity)))
        scene.append(TessellateOperation(id=label, quality=quality))
        labels[label] = dict(entity)
    return TessellationRequest(scene=scene, labels=labels)


def interpret_server_error(text: str) -> str:
    """First line of a server message, with known errors explained."""

    message = text.split("\n", 1)[0]
    message = _EXPLANATIONS.get(message, message)
    return f"Server error: {message}"


def find_error_label(text: str) -> Optional[str]:
    match = _LABEL_PATTERN.search(text)
    return match.group(1) if match else None


def interpret_status_code(status: int, text: str) -> str:
    if status == 504:
        return TIMEOUT_MESSAGE
    LOG.warning("tessellation server error, status %s: %s", status, text)
    return UNAVAILABLE_MESSAGE


def decode_result(result: Any, name: str = BREP_KEY) -> List[Mesh]:
    """Meshes from one labelled result.

    Accepted shapes: STL text, ``{"content": <base64>, "format": "stl"}``
    and ``{"vertices": [...], "faces": [...]}``. Mapping results may carry
    ``attributes``, which are kept in each mesh's ``user_data``.
    """

    if isinstance(result, str):
        return [stl_to_mesh(result, name=name)]
    if not isinstance(result, Mapping):
        raise RemoteTessellationFailure("Server error: Unrecognised tessellation result.", entity=name)
    meshes = _decode_mapping(result, name)
    if isinstance(result.get("attributes"), Mapping):
        for mesh in meshes:
            mesh.user_data["attributes"] = dict(result["attributes"])
    return meshes


def _decode_mapping(result: Mapping[str, Any], name: str) -> List[Mesh]:
    if result.get("vertices") is not None and result.get("faces") is not None:
        return [polygon_mesh(result, DEFAULT_CONFIG)]
    content = result.get("content")
    if content is None:
        raise RemoteTessellationFailure("Server error: Tessellation result has no content.", entity=name)
    fmt = str(result.get("format") or "stl").lower()
    if fmt != "stl":
        raise RemoteTessellationFailure(f"Server error: Unsupported result format {fmt}.", entity=name)
    try:
        data = base64.b64decode(content, validate=True)
    except (binascii.Error, ValueError):
        raise RemoteTessellationFailure(
            "Server error: Tessellation result is not valid base64.", entity=name) from None
    return [stl_to_mesh(data, name=name)]


class TessellationGateway:
    """Sends pending solids to the tessellation service in one request."""

    def __init__(self, config: PipelineConfig = DEFAULT_CONFIG,
                 transport: Optional[Transport] = None) -> None:
        self.config = config
        self.transport = transport or requests_transport
        self.requests_sent = 0

    def can_tessellate(self, status: StatusMap) -> bool:
        if not self.config.tess_url:
            status.append_error(BREP_KEY, NO_URL_MESSAGE)
            return False
        if not self.config.token:
            status.append_error(BREP_KEY, NO_TOKEN_MESSAGE)
            return False
        return True

    async def _send(self, request: TessellationRequest) -> TessellationResponse:
        self.requests_sent += 1
        try:
            response = await self.transport(self.config.tess_url, request.to_payload(),
                                            self.config.token, self.config.timeout)
        except RequestAborted:
            raise RemoteTessellationFailure(ABORTED_MESSAGE) from None
        except requests.RequestException as exc:
            raise RemoteTessellationFailure(f"Server error: {exc}") from exc
        if response.status != 200:
            raise RemoteTessellationFailure(interpret_status_code(response.status, response.text))
        try:
            return TessellationResponse.model_validate_json(response.text)
        except ValidationError as exc:
            LOG.warning("could not parse tessellation response: %s", exc)
            raise RemoteTessellationFailure("Server error: Malformed tessellation response.") from exc

    def _record_errors(self, request: TessellationRequest, response: TessellationResponse,
                       status: StatusMap) -> None:
        for key, error in (response.errors or {}).items():
            label = key if key in request.labels else find_error_label(error.message)
            status.append_error(request.primitive_for(label), interpret_server_error(error.message))

    def _decode_results(self, request: TessellationRequest, response: TessellationResponse,
                        status: StatusMap) -> Dict[str, List[Mesh]]:
        meshes: Dict[str, List[Mesh]] = {}
        if response.output.results is None:
            return meshes
        for label, result in response.output.results.value.items():
            primitive = request.primitive_for(label)
            try:
                meshes[label] = decode_result(result, primitive)
            except GeometryError as exc:
                status.append_error(primitive, exc.message)
                continue
            status.append_valid(primitive)
        return meshes

    async def tessellate(self, entities: Sequence[Mapping[str, Any]],
                         status: StatusMap) -> Dict[str, List[Mesh]]:
        """Tessellate ``entities``; results are keyed by :func:`result_label`.

        Failures of the whole batch are recorded under ``"brep"`` and yield
        an empty result; per-solid errors are recorded under the solid's
        primitive.
        """

        if not entities or not self.can_tessellate(status):
            return {}
        request = build_request(entities, self.config.tessellate_quality)
        LOG.debug("requesting tessellation of %d solids", len(request.labels))
        try:
            response = await self._send(request)
        except RemoteTessellationFailure as exc:
            status.append_error(BREP_KEY, exc.message)
            return {}
        self._record_errors(request, response, status)
        return self._decode_results(request, response, status)


__all__ = [
    "BREP_KEY",
    "RequestAborted",
    "TessellationGateway",
    "TessellationRequest",
    "TessellationResponse",
    "TransportResponse",
    "build_request",
    "decode_result",
    "find_error_label",
    "interpret_server_error",
    "interpret_status_code",
    "requests_transport",
    "result_label",
]
