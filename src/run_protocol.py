"""Run folders for scan conversions: input copy, mesh artifact, metrics."""

from __future__ import annotations

import json
import os
import re
import shutil
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from mesh_assembler import AssemblyResult
from mesh_export import export_final_mesh


@dataclass
class RunPaths:
    run_id: str
    run_dir: Path
    input_dir: Path
    artifacts_dir: Path
    manifest_path: Path
    metrics_path: Path
    summary_path: Path
    mesh_path: Optional[Path] = None


def slugify(value: str) -> str:
    value = re.sub(r"[^a-z0-9]+", "-", value.strip().lower())
    return value.strip("-") or "scan"


def prepare_run_dir(runs_root: str, name: str) -> RunPaths:
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
    run_id = f"{stamp}_{slugify(name)}"
    run_dir = Path(runs_root) / run_id

    input_dir = run_dir / "input"
    artifacts_dir = run_dir / "artifacts"
    input_dir.mkdir(parents=True, exist_ok=True)
    artifacts_dir.mkdir(parents=True, exist_ok=True)

    return RunPaths(
        run_id=run_id,
        run_dir=run_dir,
        input_dir=input_dir,
        artifacts_dir=artifacts_dir,
        manifest_path=run_dir / "manifest.json",
        metrics_path=run_dir / "metrics.json",
        summary_path=run_dir / "summary.md",
    )


def write_json(path: Path, payload: Dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2, default=str)


def write_text(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        f.write(content)


def write_assembly_run(
    source_path: str,
    result: AssemblyResult,
    runs_root: str,
    name: str,
    mesh_format: str = "obj",
    elapsed_s: float = 0.0,
) -> RunPaths:
    """Persist one conversion: copied source, mesh (on success), metrics,
    summary and manifest. A failed result still gets metrics and summary.
    """
    paths = prepare_run_dir(runs_root, name)
    src = Path(source_path)
    copied = None
    if src.is_file():
        copied = paths.input_dir / src.name
        shutil.copy2(src, copied)

    if result.ok:
        paths.mesh_path = export_final_mesh(
            result.mesh, paths.artifacts_dir / f"mesh.{mesh_format}"
        )

    counts = {}
    if result.mesh is not None:
        counts = {
            "vertices": result.mesh.vertex_count,
            "triangles": result.mesh.triangle_count,
            "index_format": result.mesh.index_format,
        }
    write_json(
        paths.metrics_path,
        {
            "run_id": paths.run_id,
            "status": result.status,
            "failure": result.failure.value if result.failure else None,
            "message": result.message,
            "elapsed_s": round(elapsed_s, 3),
            "counts": counts,
            "diagnostics": result.diagnostics,
        },
    )
    write_text(paths.summary_path, _build_summary(paths.run_id, result, elapsed_s))
    write_json(
        paths.manifest_path,
        {
            "run_id": paths.run_id,
            "name": name,
            "input_scan": str(copied) if copied else str(src),
            "status": result.status,
            "created_utc": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
            "config": result.diagnostics.get("config", {}),
            "artifacts": {
                "mesh": str(paths.mesh_path) if paths.mesh_path else None,
                "metrics": str(paths.metrics_path),
                "summary": str(paths.summary_path),
            },
        },
    )
    update_latest_pointer(runs_root, paths.run_dir)
    return paths


def update_latest_pointer(runs_root: str, run_dir: Path) -> None:
    runs_path = Path(runs_root)
    latest = runs_path / "latest"

    if latest.is_symlink() or latest.is_file():
        latest.unlink()
    elif latest.exists():
        shutil.rmtree(latest)

    try:
        latest.symlink_to(os.path.relpath(run_dir, runs_path))
    except OSError:
        # No symlink support; leave the run id in a marker file instead.
        latest.mkdir(parents=True, exist_ok=True)
        write_text(latest / "latest_run.txt", run_dir.name)


def _build_summary(run_id: str, result: AssemblyResult, elapsed_s: float) -> str:
    diag = result.diagnostics
    expansion = diag.get("expansion", {})
    reduction = diag.get("reduction", {})
    validation = diag.get("validation", {})

    lines = [
        f"# Run {run_id}",
        "",
        f"- Status: **{result.status.upper()}**",
        f"- Duration: {elapsed_s:.2f}s",
    ]
    if not result.ok:
        lines.append(f"- Failure: {result.failure.value}: {result.message}")
    if expansion:
        lines += [
            f"- Faces read: {expansion.get('faces_total', 0)}",
            f"- Triangles expanded: {expansion.get('triangles_emitted', 0)}",
            f"- Faces skipped (non-triangle / bad geometry / bad wedge): "
            f"{expansion.get('skipped_non_triangle', 0)} / "
            f"{expansion.get('skipped_geometry_index', 0)} / "
            f"{expansion.get('skipped_wedge_index', 0)}",
        ]
        if expansion.get("truncated"):
            lines.append(
                f"- Wedge data truncated: {expansion.get('faces_not_processed', 0)} "
                "faces not processed"
            )
    if reduction:
        lines.append(
            f"- Reduction ({reduction.get('mode')}): "
            f"{reduction.get('before_triangles')} -> {reduction.get('after_triangles')}"
        )
    if validation:
        lines.append(
            f"- Invalid vertices removed: {validation.get('invalid_vertices', 0)}"
        )
    if result.mesh is not None:
        lines.append(
            f"- Final mesh: {result.mesh.vertex_count} vertices, "
            f"{result.mesh.triangle_count} triangles ({result.mesh.index_format})"
        )
    return "\n".join(lines) + "\n"
