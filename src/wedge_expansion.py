"""
Wedge expansion: geometry-index faces + per-corner UV wedges -> unshared mesh.

Scanner exports store texture coordinates per face corner ("wedges") rather
than per vertex, because one vertex can sit on a texture seam. Expansion
gives every triangle corner its own vertex/uv pair and converts from the
source conventions (right-handed, top-left UV origin) to the render target
(left-handed, bottom-left UV origin).
"""

from __future__ import annotations

import logging
from typing import Tuple

import numpy as np

from scan_types import ExpandedMesh, ExpansionStats, RawGeometry

logger = logging.getLogger(__name__)

# Source corners are emitted as 0, 2, 1 so normals stay outward after the
# X mirror.
CORNER_ORDER = np.array([0, 2, 1])


def convert_positions(positions: np.ndarray) -> np.ndarray:
    """Mirror X to go from right-handed to left-handed coordinates."""
    out = np.asarray(positions, dtype=np.float64).reshape(-1, 3).copy()
    out[:, 0] = -out[:, 0]
    return out


def convert_uvs(uvs: np.ndarray) -> np.ndarray:
    """Flip V to move the UV origin from top-left to bottom-left."""
    out = np.asarray(uvs, dtype=np.float64).reshape(-1, 2).copy()
    out[:, 1] = 1.0 - out[:, 1]
    return out


def expand_wedges(
    raw: RawGeometry,
    advance_wedges_on_polygons: bool = True,
) -> Tuple[ExpandedMesh, ExpansionStats]:
    """Expand triangular faces into an unshared corner-vertex mesh.

    Faces whose arity is not 3 are skipped. A face with an out-of-range
    geometry or wedge index is skipped on its own; a wedge list too short
    for the next triangle stops processing of all remaining faces.

    Non-triangle faces still own wedge records in the source. With
    ``advance_wedges_on_polygons`` the wedge offset moves past them;
    without it the offset stays put, which shifts the wedges of every
    later triangle (legacy behavior).

    Never raises on malformed data; outcomes are counted in the stats.
    """
    positions = convert_positions(raw.positions)
    uvs = convert_uvs(raw.wedge_uvs)
    wedge_indices = np.asarray(raw.wedge_indices, dtype=np.int64).reshape(-1)

    stats = ExpansionStats(faces_total=raw.face_count, texture_count=raw.texture_count)
    if raw.face_count == 0:
        return ExpandedMesh.empty(), stats

    arity = np.fromiter((len(f) for f in raw.faces), dtype=np.int64, count=raw.face_count)
    is_tri = arity == 3
    if advance_wedges_on_polygons:
        wedge_step = arity
    else:
        wedge_step = np.where(is_tri, 3, 0)
    face_offsets = np.concatenate([[0], np.cumsum(wedge_step)[:-1]])

    tri_faces = np.flatnonzero(is_tri)
    tri_offsets = face_offsets[tri_faces]

    # First triangle whose three wedges run past the list ends the pass.
    short = np.flatnonzero(tri_offsets + 2 >= len(wedge_indices))
    if len(short):
        stop = int(short[0])
        stats.truncated = True
        stats.faces_not_processed = int(raw.face_count - tri_faces[stop])
        logger.warning(
            "Wedge index list shorter than expected (%d entries); "
            "stopping after %d of %d faces",
            len(wedge_indices), int(tri_faces[stop]), raw.face_count,
        )
        tri_faces = tri_faces[:stop]
        tri_offsets = tri_offsets[:stop]

    processed = raw.face_count - stats.faces_not_processed
    stats.skipped_non_triangle = int(np.count_nonzero(~is_tri[:processed]))

    if len(tri_faces) == 0:
        return ExpandedMesh.empty(), stats

    geo = np.array([raw.faces[i] for i in tri_faces], dtype=np.int64).reshape(-1, 3)
    wedges = wedge_indices[tri_offsets[:, None] + np.arange(3)]

    wedge_ok = np.all((wedges >= 0) & (wedges < len(uvs)), axis=1)
    geo_ok = np.all((geo >= 0) & (geo < len(positions)), axis=1)
    stats.skipped_wedge_index = int(np.count_nonzero(~wedge_ok))
    stats.skipped_geometry_index = int(np.count_nonzero(wedge_ok & ~geo_ok))
    keep = wedge_ok & geo_ok

    corners = geo[keep][:, CORNER_ORDER].reshape(-1)
    corner_wedges = wedges[keep][:, CORNER_ORDER].reshape(-1)
    n_tris = int(np.count_nonzero(keep))
    stats.triangles_emitted = n_tris

    skipped = stats.skipped_wedge_index + stats.skipped_geometry_index
    if skipped:
        logger.warning("Skipped %d faces with out-of-range indices", skipped)
    if stats.skipped_non_triangle:
        logger.info("Skipped %d non-triangular faces", stats.skipped_non_triangle)

    mesh = ExpandedMesh(
        positions=positions[corners],
        uvs=uvs[corner_wedges],
        triangles=np.arange(3 * n_tris, dtype=np.int64).reshape(-1, 3),
    )
    return mesh, stats
