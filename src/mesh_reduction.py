"""
Triangle-count reduction for expanded scan meshes.

Two strategies are provided:
1. Uniform sampling keeps every Nth triangle until the target is reached.
2. Voxel clustering merges vertices that share a grid cell into one
   averaged vertex (position and UV) and drops triangles that collapse.

Both are deterministic: the same mesh and target always give the same
output, in the same order.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Tuple

import logging
import numpy as np

from scan_types import ExpandedMesh

logger = logging.getLogger(__name__)

# Cell coordinate given to vertices with a non-finite position.
INVALID_CELL = -1


class ReductionMode(Enum):
    """Available reduction strategies."""
    NONE = "none"
    UNIFORM = "uniform"
    VOXEL = "voxel"


@dataclass(frozen=True)
class ReductionPlan:
    """A strategy tag plus its target triangle count."""

    mode: ReductionMode = ReductionMode.NONE
    target_triangles: int = 0

    @classmethod
    def none(cls) -> "ReductionPlan":
        return cls(ReductionMode.NONE, 0)

    @classmethod
    def uniform(cls, target_triangles: int) -> "ReductionPlan":
        return cls(ReductionMode.UNIFORM, int(target_triangles))

    @classmethod
    def voxel(cls, target_triangles: int) -> "ReductionPlan":
        return cls(ReductionMode.VOXEL, int(target_triangles))


@dataclass
class VoxelGrid:
    """Grid placed over the mesh bounding box."""

    origin: np.ndarray       # (3,) bbox minimum
    cell_size: np.ndarray    # (3,) per-axis cell edge
    cell_counts: np.ndarray  # (3,) cells per axis, each >= 1

    def cell_keys(self, positions: np.ndarray) -> np.ndarray:
        """Integer (ix, iy, iz) cell coordinate for every position.

        Rows with a non-finite coordinate get ``INVALID_CELL`` on every axis.
        """
        finite = np.all(np.isfinite(positions), axis=1)
        safe = np.where(finite[:, None], positions, self.origin)
        rel = (safe - self.origin) / self.cell_size
        keys = np.clip(np.floor(rel).astype(np.int64), 0, self.cell_counts - 1)
        keys[~finite] = INVALID_CELL
        return keys


@dataclass
class VoxelGroups:
    """Per-cell accumulators, ordered by first member vertex."""

    keys: np.ndarray           # (g, 3) cell coordinates
    position_sums: np.ndarray  # (g, 3)
    uv_sums: np.ndarray        # (g, 2)
    counts: np.ndarray         # (g,)
    vertex_group: np.ndarray   # (n,) group index of each source vertex

    @property
    def positions(self) -> np.ndarray:
        return self.position_sums / self.counts[:, None]

    @property
    def uvs(self) -> np.ndarray:
        return self.uv_sums / self.counts[:, None]


def simplify(mesh: ExpandedMesh, plan: ReductionPlan) -> Tuple[ExpandedMesh, dict]:
    """Reduce *mesh* according to *plan*.

    Returns:
        (reduced_mesh, stats_dict)
    """
    before = mesh.triangle_count
    stats = {
        "mode": plan.mode.value,
        "target_triangles": int(plan.target_triangles),
        "before_triangles": before,
        "after_triangles": before,
        "passthrough": True,
    }

    if plan.mode is ReductionMode.NONE:
        return mesh.copy(), stats

    if plan.mode is ReductionMode.UNIFORM:
        reduced = uniform_sample_triangles(mesh, plan.target_triangles)
    elif plan.mode is ReductionMode.VOXEL:
        reduced, voxel_stats = voxel_cluster_simplify(mesh, plan.target_triangles)
        stats.update(voxel_stats)
    else:
        raise ValueError(f"Unknown reduction mode: {plan.mode}")

    stats["after_triangles"] = reduced.triangle_count
    stats["passthrough"] = plan.target_triangles >= before or plan.target_triangles <= 0
    logger.info(
        "Reduced %d -> %d triangles (%s)",
        before, reduced.triangle_count, plan.mode.value,
    )
    return reduced, stats


def uniform_sample_triangles(mesh: ExpandedMesh, target_triangles: int) -> ExpandedMesh:
    """Keep every ``step``-th triangle, stopping once the target is met.

    Kept triangles get fresh unshared vertices copied from their corners,
    preserving UVs and winding.
    """
    total = mesh.triangle_count
    if target_triangles <= 0 or target_triangles >= total:
        return mesh.copy()

    step = max(1, total // target_triangles)
    kept = np.arange(0, total, step)[:target_triangles]
    corners = mesh.triangles[kept].reshape(-1)

    return ExpandedMesh(
        positions=mesh.positions[corners],
        uvs=mesh.uvs[corners],
        triangles=np.arange(len(corners), dtype=np.int64).reshape(-1, 3),
    )


def voxel_cluster_simplify(
    mesh: ExpandedMesh,
    target_triangles: int,
) -> Tuple[ExpandedMesh, dict]:
    """Merge vertices per grid cell and rebuild non-degenerate triangles.

    The grid is sized so the number of populated cells roughly matches the
    vertex count implied by ``target_triangles``. A mesh whose vertices all
    coincide collapses into a single cell and comes back with no triangles.
    """
    total = mesh.triangle_count
    stats: Dict[str, object] = {
        "grid_cells": [1, 1, 1],
        "groups": mesh.vertex_count,
        "degenerate_dropped": 0,
        "invalid_vertices": 0,
        "uniform_fallback": False,
    }
    if target_triangles <= 0 or target_triangles >= total:
        return mesh.copy(), stats

    grid = build_voxel_grid(mesh, target_triangles)
    groups = accumulate_voxel_groups(mesh, grid)
    stats["grid_cells"] = [int(c) for c in grid.cell_counts]
    stats["groups"] = int(len(groups.counts))
    stats["invalid_vertices"] = int(np.count_nonzero(groups.keys[:, 0] == INVALID_CELL))

    remapped = groups.vertex_group[mesh.triangles]
    nondegenerate = (
        (remapped[:, 0] != remapped[:, 1])
        & (remapped[:, 1] != remapped[:, 2])
        & (remapped[:, 0] != remapped[:, 2])
    )
    # Scan stops at the target, so only triangles before the cutoff count.
    kept_idx = np.flatnonzero(nondegenerate)[:target_triangles]
    scanned = int(kept_idx[-1]) + 1 if len(kept_idx) == target_triangles else total
    stats["degenerate_dropped"] = int(np.count_nonzero(~nondegenerate[:scanned]))

    reduced = ExpandedMesh(
        positions=groups.positions,
        uvs=groups.uvs,
        triangles=remapped[kept_idx],
    )

    if reduced.triangle_count > target_triangles:
        stats["uniform_fallback"] = True
        reduced = uniform_sample_triangles(reduced, target_triangles)

    if reduced.triangle_count == 0:
        logger.warning(
            "Voxel clustering collapsed all %d triangles (grid %s)",
            total, stats["grid_cells"],
        )
    return reduced, stats


def build_voxel_grid(mesh: ExpandedMesh, target_triangles: int) -> VoxelGrid:
    """Pick a near-cubic grid over the bounding box of *mesh*.

    Only finite positions define the bounding box.
    """
    positions = mesh.positions
    finite = positions[np.all(np.isfinite(positions), axis=1)]
    if len(finite) == 0:
        lo = np.zeros(3)
        size = np.zeros(3)
    else:
        lo = finite.min(axis=0)
        size = finite.max(axis=0) - lo

    n_verts = mesh.vertex_count
    target_verts = int(round(n_verts / float(mesh.triangle_count) * target_triangles))
    target_verts = int(np.clip(target_verts, 1, n_verts))

    base = max(1, int(round(float(np.cbrt(target_verts)))))
    max_dim = float(size.max())
    scale = size / (max_dim if max_dim > 0.0 else 1.0)
    counts = np.maximum(1, np.round(base * scale)).astype(np.int64)

    cell_size = np.where(size > 0.0, size / counts, 1.0)
    return VoxelGrid(origin=lo, cell_size=cell_size, cell_counts=counts)


def accumulate_voxel_groups(mesh: ExpandedMesh, grid: VoxelGrid) -> VoxelGroups:
    """Sum positions/UVs per populated cell in first-encountered order.

    Each non-finite vertex is kept in a group of its own, so it passes
    through unchanged and validation drops it with its triangles.
    """
    keys = grid.cell_keys(mesh.positions)
    invalid = np.flatnonzero(keys[:, 0] == INVALID_CELL)
    keys[invalid, 2] = INVALID_CELL - invalid
    unique_keys, first_seen, inverse = np.unique(
        keys, axis=0, return_index=True, return_inverse=True
    )
    inverse = np.asarray(inverse).reshape(-1)

    # np.unique sorts keys; reorder groups by first member vertex.
    order = np.argsort(first_seen, kind="stable")
    rank = np.empty_like(order)
    rank[order] = np.arange(len(order))
    vertex_group = rank[inverse]

    n_groups = len(unique_keys)
    position_sums = np.zeros((n_groups, 3), dtype=np.float64)
    uv_sums = np.zeros((n_groups, 2), dtype=np.float64)
    counts = np.zeros(n_groups, dtype=np.int64)
    np.add.at(position_sums, vertex_group, mesh.positions)
    np.add.at(uv_sums, vertex_group, mesh.uvs)
    np.add.at(counts, vertex_group, 1)

    return VoxelGroups(
        keys=unique_keys[order],
        position_sums=position_sums,
        uv_sums=uv_sums,
        counts=counts,
        vertex_group=vertex_group,
    )
