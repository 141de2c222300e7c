"""
PLY reader for multi-texture scanner exports.

Targets the layout written by Artec scanning software:

    element vertex N              property float x / y / z
    element face F                property list uchar int vertex_indices
    element multi_texture_vertex W
                                  property uchar tx / float u / float v
    element multi_texture_face F  property uchar tx / uint tn
                                  property list uchar int texture_vertex_indices

Requests are registered up front and filled by a single ``read`` call, so
callers only pull the properties they need regardless of how many other
elements the file defines.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO, List, Optional, Sequence, Union

import numpy as np
from plyfile import PlyData, PlyElement, PlyParseError

from scan_types import RawGeometry, SourceUnavailableError

logger = logging.getLogger(__name__)

FACE_INDEX_PROPERTIES = ("vertex_indices", "vertex_index")


@dataclass
class PropertyRequest:
    """A registered property group; ``data`` is set by ``PlySource.read``."""
    element: str
    names: List[str]
    is_list: bool = False
    flatten: bool = False
    required: bool = True
    data: Optional[object] = field(default=None, repr=False)
    found: bool = False


class PlySource:
    """Collect property requests, then parse a PLY stream once."""

    def __init__(self):
        self._requests: List[PropertyRequest] = []
        self.element_counts: dict = {}
        self.comments: List[str] = []

    def request_properties(
        self,
        element: str,
        names: Sequence[str],
        required: bool = True,
    ) -> PropertyRequest:
        """Request scalar properties; the result is an (n, len(names)) array."""
        req = PropertyRequest(element=element, names=list(names), required=required)
        self._requests.append(req)
        return req

    def request_list_property(
        self,
        element: str,
        name: Union[str, Sequence[str]],
        flatten: bool = False,
        required: bool = True,
    ) -> PropertyRequest:
        """Request a list property.

        ``name`` may be a tuple of alternative spellings; the first one present
        wins. With ``flatten`` the per-row lists are concatenated into one
        int64 array, otherwise a list of per-row arrays is returned.
        """
        names = [name] if isinstance(name, str) else list(name)
        req = PropertyRequest(
            element=element,
            names=names,
            is_list=True,
            flatten=flatten,
            required=required,
        )
        self._requests.append(req)
        return req

    def read(self, stream: BinaryIO) -> None:
        try:
            ply = PlyData.read(stream)
        except (PlyParseError, ValueError, EOFError) as exc:
            raise SourceUnavailableError(f"Unable to parse PLY data: {exc}") from exc

        elements = {el.name: el for el in ply.elements}
        self.element_counts = {name: int(el.count) for name, el in elements.items()}
        self.comments = list(ply.comments)

        for req in self._requests:
            el = elements.get(req.element)
            if el is None:
                self._missing(req, f"element '{req.element}' not found")
                continue

            fields = el.data.dtype.names or ()
            if req.is_list:
                prop = next((n for n in req.names if n in fields), None)
                if prop is None:
                    self._missing(
                        req, f"list property {req.names} not found on '{req.element}'"
                    )
                    continue
                rows = [np.asarray(r, dtype=np.int64) for r in el.data[prop]]
                if req.flatten:
                    req.data = (
                        np.concatenate(rows) if rows else np.zeros(0, dtype=np.int64)
                    )
                else:
                    req.data = rows
            else:
                absent = [n for n in req.names if n not in fields]
                if absent:
                    self._missing(
                        req, f"properties {absent} not found on '{req.element}'"
                    )
                    continue
                req.data = np.column_stack(
                    [np.asarray(el.data[n], dtype=np.float64) for n in req.names]
                ).reshape(-1, len(req.names))
            req.found = True

    def _missing(self, req: PropertyRequest, message: str) -> None:
        if req.required:
            raise SourceUnavailableError(message)
        logger.warning("Optional PLY data missing: %s", message)
        if req.is_list:
            req.data = np.zeros(0, dtype=np.int64) if req.flatten else []
        else:
            req.data = np.zeros((0, len(req.names)), dtype=np.float64)


def load_raw_geometry(path: Union[str, Path]) -> RawGeometry:
    """Read positions, faces and wedge data from a scanner PLY file.

    Raises:
        SourceUnavailableError: if the file is missing, unreadable, or lacks
            vertex/face data.
    """
    path = Path(path)
    if not path.is_file():
        raise SourceUnavailableError(f"PLY file not found: {path}")

    source = PlySource()
    vertices = source.request_properties("vertex", ["x", "y", "z"])
    faces = source.request_list_property("face", FACE_INDEX_PROPERTIES)
    wedge_tx = source.request_properties("multi_texture_vertex", ["tx"], required=False)
    wedge_uv = source.request_properties(
        "multi_texture_vertex", ["u", "v"], required=False
    )
    wedge_faces = source.request_list_property(
        "multi_texture_face", "texture_vertex_indices", flatten=True, required=False
    )

    try:
        with path.open("rb") as stream:
            source.read(stream)
    except OSError as exc:
        raise SourceUnavailableError(f"Unable to read {path}: {exc}") from exc

    logger.debug("Read %s: %s", path.name, source.element_counts)

    tx = wedge_tx.data[:, 0].astype(np.int64) if wedge_tx.found else None
    return RawGeometry(
        positions=vertices.data,
        faces=faces.data,
        wedge_uvs=wedge_uv.data,
        wedge_indices=wedge_faces.data,
        wedge_texture_ids=tx,
    )


def write_scan_ply(
    path: Union[str, Path],
    positions: np.ndarray,
    faces: Sequence[Sequence[int]],
    wedge_uvs: np.ndarray,
    wedge_faces: Sequence[Sequence[int]],
    wedge_texture_ids: Optional[np.ndarray] = None,
    text: bool = False,
) -> Path:
    """Write a scan in the multi-texture layout ``load_raw_geometry`` reads.

    ``wedge_faces`` holds one wedge index list per face record.
    """
    path = Path(path)
    positions = np.asarray(positions, dtype=np.float32).reshape(-1, 3)
    wedge_uvs = np.asarray(wedge_uvs, dtype=np.float32).reshape(-1, 2)
    if wedge_texture_ids is None:
        wedge_texture_ids = np.zeros(len(wedge_uvs), dtype=np.uint8)

    vertex = np.empty(len(positions), dtype=[("x", "f4"), ("y", "f4"), ("z", "f4")])
    vertex["x"], vertex["y"], vertex["z"] = positions.T

    face = np.empty(len(faces), dtype=[("vertex_indices", "O")])
    face["vertex_indices"] = _object_rows(faces)

    wedge = np.empty(len(wedge_uvs), dtype=[("tx", "u1"), ("u", "f4"), ("v", "f4")])
    wedge["tx"] = wedge_texture_ids
    wedge["u"], wedge["v"] = wedge_uvs.T

    wedge_face = np.empty(
        len(wedge_faces),
        dtype=[("tx", "u1"), ("tn", "u4"), ("texture_vertex_indices", "O")],
    )
    wedge_face["tx"] = 0
    wedge_face["tn"] = 0
    wedge_face["texture_vertex_indices"] = _object_rows(wedge_faces)

    elements = [
        PlyElement.describe(vertex, "vertex"),
        PlyElement.describe(
            face, "face",
            len_types={"vertex_indices": "u1"},
            val_types={"vertex_indices": "i4"},
        ),
        PlyElement.describe(wedge, "multi_texture_vertex"),
        PlyElement.describe(
            wedge_face, "multi_texture_face",
            len_types={"texture_vertex_indices": "u1"},
            val_types={"texture_vertex_indices": "i4"},
        ),
    ]
    path.parent.mkdir(parents=True, exist_ok=True)
    PlyData(elements, text=text, byte_order="<").write(str(path))
    return path


def _object_rows(rows: Sequence[Sequence[int]]) -> np.ndarray:
    out = np.empty(len(rows), dtype=object)
    for i, row in enumerate(rows):
        out[i] = np.asarray(row, dtype=np.int32)
    return out
