"""
Shared test fixtures for scan-to-mesh tests.
"""
import sys
from pathlib import Path

import numpy as np
import pytest
import trimesh

# Add src/ to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from ply_source import write_scan_ply
from scan_types import RawGeometry


# Unit square in the z=0 plane, split into two triangles.
SQUARE_POSITIONS = np.array(
    [[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [1.0, 1.0, 0.0], [0.0, 1.0, 0.0]]
)
SQUARE_FACES = [[0, 1, 2], [0, 2, 3]]
# One wedge per geometric vertex, UV equal to the vertex XY.
SQUARE_UVS = np.array([[0.0, 0.0], [1.0, 0.0], [1.0, 1.0], [0.0, 1.0]])


def raw_from_trimesh(mesh: trimesh.Trimesh) -> RawGeometry:
    """RawGeometry with one wedge per face corner, UV from vertex XY."""
    corners = mesh.faces.reshape(-1)
    return RawGeometry(
        positions=np.asarray(mesh.vertices, dtype=np.float64),
        faces=[list(f) for f in mesh.faces],
        wedge_uvs=np.asarray(mesh.vertices[corners][:, :2], dtype=np.float64),
        wedge_indices=np.arange(len(corners)),
    )


@pytest.fixture
def square_raw():
    """Two-triangle square with identity wedges."""
    return RawGeometry(
        positions=SQUARE_POSITIONS.copy(),
        faces=[list(f) for f in SQUARE_FACES],
        wedge_uvs=SQUARE_UVS.copy(),
        wedge_indices=np.array(SQUARE_FACES).reshape(-1),
    )


@pytest.fixture
def sphere_raw():
    """Icosphere (1280 faces) with per-corner wedges."""
    return raw_from_trimesh(trimesh.creation.icosphere(subdivisions=3, radius=50.0))


@pytest.fixture
def square_ply(tmp_path: Path) -> str:
    path = write_scan_ply(
        tmp_path / "square.ply", SQUARE_POSITIONS, SQUARE_FACES, SQUARE_UVS, SQUARE_FACES
    )
    return str(path)


@pytest.fixture
def collapsed_ply(tmp_path: Path) -> str:
    """Square scan whose four positions all coincide."""
    positions = np.tile([[2.0, 3.0, 4.0]], (4, 1))
    path = write_scan_ply(
        tmp_path / "collapsed.ply", positions, SQUARE_FACES, SQUARE_UVS, SQUARE_FACES
    )
    return str(path)


@pytest.fixture
def sphere_ply(tmp_path: Path, sphere_raw: RawGeometry) -> str:
    wedge_faces = np.asarray(sphere_raw.wedge_indices).reshape(-1, 3)
    path = write_scan_ply(
        tmp_path / "sphere.ply",
        sphere_raw.positions,
        sphere_raw.faces,
        sphere_raw.wedge_uvs,
        wedge_faces,
    )
    return str(path)
