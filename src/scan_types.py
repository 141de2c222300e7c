"""
Core data types for turning multi-texture scan geometry into render meshes.

RawGeometry is what the PLY reader hands over, ExpandedMesh is the unshared
per-corner buffer built from it, and FinalMesh is the validated result a
host can upload as-is.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Sequence, Tuple

import numpy as np
import trimesh

# Largest vertex count addressable with 16-bit indices.
MAX_UINT16_VERTICES = 65535


class FailureReason(Enum):
    """Why a mesh could not be produced."""
    SOURCE_UNAVAILABLE = "source_unavailable"
    EMPTY_RESULT = "empty_result"
    ASSEMBLY_FAILED = "assembly_failed"


class MeshAssemblyError(Exception):
    """Base exception for fatal mesh assembly failures."""
    reason: FailureReason = FailureReason.ASSEMBLY_FAILED

    def __init__(self, message: str, stats: Optional[object] = None):
        super().__init__(message)
        self.stats = stats


class SourceUnavailableError(MeshAssemblyError):
    """Input file could not be opened or parsed."""
    reason = FailureReason.SOURCE_UNAVAILABLE


class EmptyResultError(MeshAssemblyError):
    """Nothing usable remained after cleanup."""
    reason = FailureReason.EMPTY_RESULT


@dataclass
class RawGeometry:
    """Scan data as read from the source, before any conversion.

    Face lists keep their source arity; only triangles are expanded later.
    """
    positions: np.ndarray                 # (n, 3) source-handed positions
    faces: Sequence[Sequence[int]]        # per-face geometry index lists
    wedge_uvs: np.ndarray                 # (w, 2) top-left origin UVs
    wedge_indices: np.ndarray             # flat face -> wedge index list
    wedge_texture_ids: Optional[np.ndarray] = None  # (w,) per-wedge `tx`

    @property
    def face_count(self) -> int:
        return len(self.faces)

    @property
    def texture_count(self) -> int:
        if self.wedge_texture_ids is None or len(self.wedge_texture_ids) == 0:
            return 0
        return int(len(np.unique(self.wedge_texture_ids)))


@dataclass
class ExpandedMesh:
    """Unshared corner-vertex mesh.

    Every triangle owns its three vertex/uv pairs at creation time; reduction
    strategies may later produce shared vertices (voxel clustering does).
    """
    positions: np.ndarray   # (n, 3) float64
    uvs: np.ndarray         # (n, 2) float64
    triangles: np.ndarray   # (m, 3) int64

    def __post_init__(self):
        self.positions = np.asarray(self.positions, dtype=np.float64).reshape(-1, 3)
        self.uvs = np.asarray(self.uvs, dtype=np.float64).reshape(-1, 2)
        self.triangles = np.asarray(self.triangles, dtype=np.int64).reshape(-1, 3)

    @classmethod
    def empty(cls) -> "ExpandedMesh":
        return cls(
            positions=np.zeros((0, 3)),
            uvs=np.zeros((0, 2)),
            triangles=np.zeros((0, 3), dtype=np.int64),
        )

    @property
    def vertex_count(self) -> int:
        return int(len(self.positions))

    @property
    def triangle_count(self) -> int:
        return int(len(self.triangles))

    @property
    def triangle_indices(self) -> np.ndarray:
        """Flat index list, three entries per triangle."""
        return self.triangles.reshape(-1)

    def copy(self) -> "ExpandedMesh":
        return ExpandedMesh(
            positions=self.positions.copy(),
            uvs=self.uvs.copy(),
            triangles=self.triangles.copy(),
        )

    def equals(self, other: "ExpandedMesh") -> bool:
        """Value equality (same vertices, same triangles, same order)."""
        return (
            np.array_equal(self.positions, other.positions)
            and np.array_equal(self.uvs, other.uvs)
            and np.array_equal(self.triangles, other.triangles)
        )


@dataclass
class FinalMesh(ExpandedMesh):
    """Validated mesh: finite coordinates, no degenerate triangles, non-empty."""

    @property
    def index_format(self) -> str:
        return "uint32" if self.vertex_count > MAX_UINT16_VERTICES else "uint16"

    @property
    def bounds(self) -> Tuple[np.ndarray, np.ndarray]:
        return self.positions.min(axis=0), self.positions.max(axis=0)

    @property
    def vertex_normals(self) -> np.ndarray:
        """Per-vertex normals recomputed from the triangle geometry."""
        return np.asarray(self.to_trimesh().vertex_normals)

    def to_trimesh(self) -> trimesh.Trimesh:
        """Build a trimesh without merging the per-corner vertices."""
        return trimesh.Trimesh(
            vertices=self.positions,
            faces=self.triangles,
            visual=trimesh.visual.TextureVisuals(uv=self.uvs),
            process=False,
        )


@dataclass
class ExpansionStats:
    """Per-face outcomes counted during wedge expansion."""
    faces_total: int = 0
    triangles_emitted: int = 0
    skipped_non_triangle: int = 0
    skipped_geometry_index: int = 0
    skipped_wedge_index: int = 0
    faces_not_processed: int = 0   # faces after a wedge-list truncation
    truncated: bool = False
    texture_count: int = 0


@dataclass
class ValidationStats:
    """Vertex and triangle outcomes counted during validation."""
    vertices_in: int = 0
    triangles_in: int = 0
    invalid_vertices: int = 0
    uvs_padded: int = 0
    dropped_out_of_range: int = 0
    dropped_removed_vertex: int = 0
    dropped_degenerate: int = 0
    vertices_out: int = 0
    triangles_out: int = 0
    removed_vertex_indices: list = field(default_factory=list)  # first few only
