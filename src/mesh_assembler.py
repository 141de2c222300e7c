"""Scan PLY -> render mesh: parse, expand, reduce, validate."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union

import numpy as np

from mesh_reduction import ReductionMode, ReductionPlan, simplify
from mesh_validation import validate_mesh
from ply_source import load_raw_geometry
from scan_types import FailureReason, FinalMesh, MeshAssemblyError
from wedge_expansion import expand_wedges

logger = logging.getLogger(__name__)


@dataclass
class AssemblyConfig:
    """How a scan is turned into a render mesh."""

    reduce: bool = True
    strategy: ReductionMode = ReductionMode.VOXEL
    reduction_factor: float = 0.5         # fraction of triangles to keep
    target_triangle_count: int = 0        # > 0 overrides reduction_factor
    # Step the wedge offset past non-triangle faces (see wedge_expansion).
    advance_wedges_on_polygons: bool = True

    def __post_init__(self):
        if isinstance(self.strategy, str):
            self.strategy = ReductionMode(self.strategy)
        if not (0.0 < self.reduction_factor <= 1.0):
            raise ValueError(
                f"reduction_factor must be in (0, 1], got {self.reduction_factor}"
            )
        if self.target_triangle_count < 0:
            raise ValueError(
                f"target_triangle_count must be >= 0, got {self.target_triangle_count}"
            )


@dataclass
class AssemblyResult:
    """Either a validated mesh or a tagged failure, never both."""

    status: str                                # "ok" | "failed"
    mesh: Optional[FinalMesh] = None
    failure: Optional[FailureReason] = None
    message: str = ""
    diagnostics: Dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status == "ok"


def resolve_target_triangles(total_triangles: int, config: AssemblyConfig) -> int:
    """Clamp the configured target to [1, total_triangles]."""
    if total_triangles <= 0:
        return 0
    if config.target_triangle_count > 0:
        desired = config.target_triangle_count
    else:
        desired = int(round(total_triangles * config.reduction_factor))
    return int(np.clip(desired, 1, total_triangles))


def plan_reduction(total_triangles: int, config: AssemblyConfig) -> ReductionPlan:
    if not config.reduce or config.strategy is ReductionMode.NONE:
        return ReductionPlan.none()
    target = resolve_target_triangles(total_triangles, config)
    if target >= total_triangles:
        return ReductionPlan.none()
    return ReductionPlan(config.strategy, target)


def assemble_mesh(
    source_path: Union[str, Path],
    config: Optional[AssemblyConfig] = None,
) -> AssemblyResult:
    """Build a validated render mesh from a multi-texture scan PLY.

    Fatal problems (unreadable source, nothing left after cleanup) come back
    as a failed result; no partial mesh is returned in that case.
    """
    if config is None:
        config = AssemblyConfig()

    diagnostics: Dict[str, Any] = {"config": _config_dict(config)}
    try:
        raw = load_raw_geometry(source_path)
        diagnostics["source"] = {
            "vertices": int(len(raw.positions)),
            "faces": raw.face_count,
            "wedges": int(len(raw.wedge_uvs)),
            "textures": raw.texture_count,
        }

        expanded, expansion_stats = expand_wedges(
            raw, advance_wedges_on_polygons=config.advance_wedges_on_polygons
        )
        diagnostics["expansion"] = asdict(expansion_stats)
        if config.reduce:
            logger.info("Triangles before reduction: %d", expanded.triangle_count)

        plan = plan_reduction(expanded.triangle_count, config)
        reduced, reduction_stats = simplify(expanded, plan)
        diagnostics["reduction"] = reduction_stats

        mesh, validation_stats = validate_mesh(reduced.positions, reduced.uvs, reduced.triangles)
        diagnostics["validation"] = asdict(validation_stats)
    except MeshAssemblyError as exc:
        if exc.stats is not None:
            diagnostics["validation"] = asdict(exc.stats)
        logger.error("Mesh creation aborted for %s: %s", source_path, exc)
        return AssemblyResult(
            status="failed",
            failure=exc.reason,
            message=str(exc),
            diagnostics=diagnostics,
        )

    if config.reduce:
        logger.info("Triangles after reduction: %d", mesh.triangle_count)
    return AssemblyResult(status="ok", mesh=mesh, diagnostics=diagnostics)


def _config_dict(config: AssemblyConfig) -> Dict[str, Any]:
    out = asdict(config)
    out["strategy"] = config.strategy.value
    return out


class MeshContext:
    """Holds a scan source, its configuration and the last good mesh.

    ``regenerate`` replaces the mesh wholesale on success and leaves it
    untouched on failure.
    """

    def __init__(self, source_path: Union[str, Path], config: Optional[AssemblyConfig] = None):
        self.source_path = Path(source_path)
        self.config = config if config is not None else AssemblyConfig()
        self.mesh: Optional[FinalMesh] = None
        self.last_result: Optional[AssemblyResult] = None

    def regenerate(self) -> AssemblyResult:
        result = assemble_mesh(self.source_path, self.config)
        self.last_result = result
        if result.ok:
            self.mesh = result.mesh
        return result
