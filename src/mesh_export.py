"""Write validated render meshes to common interchange formats."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Union

from scan_types import FinalMesh

logger = logging.getLogger(__name__)

SUPPORTED_FORMATS = ("obj", "glb", "ply")


def export_final_mesh(mesh: FinalMesh, path: Union[str, Path]) -> Path:
    """Export *mesh* with its UVs; format is taken from the file extension.

    Per-corner vertices are written as-is (no merging), so UV seams survive.
    """
    path = Path(path)
    file_type = path.suffix.lower().lstrip(".")
    if file_type not in SUPPORTED_FORMATS:
        raise ValueError(
            f"Unsupported export format '{file_type}', expected one of {SUPPORTED_FORMATS}"
        )

    path.parent.mkdir(parents=True, exist_ok=True)
    mesh.to_trimesh().export(str(path), file_type=file_type)
    logger.info(
        "Exported %d vertices / %d triangles to %s",
        mesh.vertex_count, mesh.triangle_count, path,
    )
    return path
