"""Final sanitization before a mesh is handed to the renderer."""

from __future__ import annotations

import logging
from typing import Optional, Tuple

import numpy as np

from scan_types import EmptyResultError, FinalMesh, ValidationStats

logger = logging.getLogger(__name__)

REMOVED = -1

# Only the first few removed vertex indices are reported and logged.
MAX_REPORTED_VERTICES = 10


def validate_mesh(
    positions: np.ndarray,
    uvs: Optional[np.ndarray],
    triangles: np.ndarray,
) -> Tuple[FinalMesh, ValidationStats]:
    """Drop non-finite vertices and broken triangles, then compact.

    UVs shorter than the position list are padded with (0, 0). Triangles are
    dropped when an index is out of range, when a corner was removed, or
    when the remapped corners are not pairwise distinct.

    Raises:
        EmptyResultError: if there are no input vertices, or nothing valid
            remains after cleanup.
    """
    positions = np.asarray(positions, dtype=np.float64).reshape(-1, 3)
    triangles = np.asarray(triangles, dtype=np.int64).reshape(-1, 3)
    n_verts = len(positions)

    stats = ValidationStats(vertices_in=n_verts, triangles_in=len(triangles))
    if n_verts == 0:
        logger.error("No vertices available to build mesh")
        raise EmptyResultError("No vertices available to build mesh", stats)

    uvs = _pad_uvs(uvs, n_verts, stats)

    keep = np.all(np.isfinite(positions), axis=1)
    removed = np.flatnonzero(~keep)
    stats.invalid_vertices = int(len(removed))
    stats.removed_vertex_indices = [int(i) for i in removed[:MAX_REPORTED_VERTICES]]
    if len(removed):
        logger.warning("Removing %d invalid vertices", len(removed))
        for i in removed[:MAX_REPORTED_VERTICES]:
            logger.debug("Invalid vertex %d: %s", i, positions[i])

    index_map = np.full(n_verts, REMOVED, dtype=np.int64)
    index_map[keep] = np.arange(int(np.count_nonzero(keep)))

    in_range = np.all((triangles >= 0) & (triangles < n_verts), axis=1)
    stats.dropped_out_of_range = int(np.count_nonzero(~in_range))

    mapped = index_map[np.where(in_range[:, None], triangles, 0)]
    has_removed = in_range & np.any(mapped == REMOVED, axis=1)
    stats.dropped_removed_vertex = int(np.count_nonzero(has_removed))

    distinct = (
        (mapped[:, 0] != mapped[:, 1])
        & (mapped[:, 1] != mapped[:, 2])
        & (mapped[:, 0] != mapped[:, 2])
    )
    candidate = in_range & ~has_removed
    stats.dropped_degenerate = int(np.count_nonzero(candidate & ~distinct))

    mesh = FinalMesh(
        positions=positions[keep],
        uvs=uvs[keep],
        triangles=mapped[candidate & distinct],
    )
    stats.vertices_out = mesh.vertex_count
    stats.triangles_out = mesh.triangle_count

    if mesh.vertex_count == 0 or mesh.triangle_count == 0:
        logger.warning("Cleanup removed all valid geometry (vertices or triangles)")
        raise EmptyResultError(
            f"No valid geometry after cleanup: {mesh.vertex_count} vertices, "
            f"{mesh.triangle_count} triangles",
            stats,
        )

    return mesh, stats


def _pad_uvs(uvs: Optional[np.ndarray], n_verts: int, stats: ValidationStats) -> np.ndarray:
    if uvs is None:
        uvs = np.zeros((0, 2), dtype=np.float64)
    uvs = np.asarray(uvs, dtype=np.float64).reshape(-1, 2)
    missing = n_verts - len(uvs)
    if missing > 0:
        stats.uvs_padded = missing
        uvs = np.vstack([uvs, np.zeros((missing, 2), dtype=np.float64)])
    return uvs[:n_verts]
