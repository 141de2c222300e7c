#!/usr/bin/env python3
"""Generate synthetic multi-texture scan PLYs of increasing size.

Each scan stores UVs per face corner, like scanner exports do, so vertices
on texture seams carry different UVs on different faces. Run once to
populate benchmarks/scans/.
"""

import sys
from pathlib import Path

import numpy as np
import trimesh

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from ply_source import write_scan_ply

OUT = Path(__file__).parent / "scans"
OUT.mkdir(exist_ok=True)


def spherical_wedges(mesh: trimesh.Trimesh):
    """One wedge per face corner, UVs from a longitude/latitude projection."""
    corners = mesh.vertices[mesh.faces.reshape(-1)]
    unit = corners / np.linalg.norm(corners, axis=1, keepdims=True)
    u = 0.5 + np.arctan2(unit[:, 2], unit[:, 0]) / (2.0 * np.pi)
    v = 0.5 - np.arcsin(np.clip(unit[:, 1], -1.0, 1.0)) / np.pi
    uvs = np.column_stack([u, v])
    wedge_faces = np.arange(len(uvs)).reshape(-1, 3)
    return uvs, wedge_faces


def save(mesh: trimesh.Trimesh, name: str) -> None:
    uvs, wedge_faces = spherical_wedges(mesh)
    path = write_scan_ply(OUT / f"{name}.ply", mesh.vertices, mesh.faces, uvs, wedge_faces)
    print(f"  {name}: {len(mesh.vertices)} verts, {len(mesh.faces)} faces, "
          f"{len(uvs)} wedges → {path.name}")


def make_sphere(subdivisions: int) -> trimesh.Trimesh:
    return trimesh.creation.icosphere(subdivisions=subdivisions, radius=100.0)


def make_noisy_sphere(subdivisions: int) -> trimesh.Trimesh:
    """Sphere with radial scanner-like noise."""
    mesh = make_sphere(subdivisions)
    rng = np.random.default_rng(42)
    scale = 1.0 + rng.normal(0.0, 0.01, size=len(mesh.vertices))
    mesh.vertices = mesh.vertices * scale[:, None]
    return mesh


def main():
    print("Generating scans:")
    save(make_sphere(2), "sphere_320")
    save(make_sphere(4), "sphere_5k")
    save(make_noisy_sphere(5), "noisy_sphere_20k")
    save(make_noisy_sphere(6), "noisy_sphere_80k")


if __name__ == "__main__":
    main()
