#!/usr/bin/env python3
"""
Convert a multi-texture scanner PLY into a render mesh with per-corner UVs.

Usage:
    python scripts/generate_mesh.py --ply "Classic side table.ply"
    python scripts/generate_mesh.py --ply scan.ply --strategy uniform --factor 0.25
    python scripts/generate_mesh.py --ply scan.ply --target 50000 --format glb
    python scripts/generate_mesh.py --ply scan.ply --no-reduce

Exit codes:
    0: mesh written
    1: invalid arguments
    2: fatal failure (source unreadable or nothing valid left)
"""
import sys
import argparse
import logging
import time
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from mesh_assembler import AssemblyConfig, assemble_mesh
from mesh_export import SUPPORTED_FORMATS
from mesh_reduction import ReductionMode
from run_protocol import write_assembly_run


def main():
    parser = argparse.ArgumentParser(
        description="Convert a multi-texture scan PLY into a render mesh"
    )
    parser.add_argument("--ply", required=True, type=str, help="Scanner PLY file")
    parser.add_argument(
        "--strategy", type=str, default=ReductionMode.VOXEL.value,
        choices=[m.value for m in ReductionMode],
        help="Triangle reduction strategy (default: voxel)",
    )
    parser.add_argument(
        "--factor", type=float, default=0.5,
        help="Fraction of triangles to keep, 0-1 (default: 0.5)",
    )
    parser.add_argument(
        "--target", type=int, default=0,
        help="Exact target triangle count; overrides --factor when > 0",
    )
    parser.add_argument(
        "--no-reduce", action="store_true",
        help="Skip triangle reduction entirely",
    )
    parser.add_argument(
        "--legacy-wedge-offset", action="store_true",
        help="Do not advance the wedge offset past non-triangle faces",
    )
    parser.add_argument(
        "--format", type=str, default="obj", choices=list(SUPPORTED_FORMATS),
        help="Output mesh format (default: obj)",
    )
    parser.add_argument(
        "--runs-dir", type=str, default="runs",
        help="Root folder for run outputs (default: runs/)",
    )
    parser.add_argument(
        "--name", type=str, default=None,
        help="Run name (default: PLY file stem)",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="DEBUG logging",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        config = AssemblyConfig(
            reduce=not args.no_reduce,
            strategy=ReductionMode(args.strategy),
            reduction_factor=args.factor,
            target_triangle_count=args.target,
            advance_wedges_on_polygons=not args.legacy_wedge_offset,
        )
    except ValueError as e:
        print(f"Error: {e}")
        return 1

    started = time.perf_counter()
    result = assemble_mesh(args.ply, config)
    elapsed = time.perf_counter() - started

    name = args.name or Path(args.ply).stem
    paths = write_assembly_run(
        args.ply, result, args.runs_dir, name,
        mesh_format=args.format, elapsed_s=elapsed,
    )

    print(f"Run ID: {paths.run_id}")
    print(f"Status: {result.status}")
    if not result.ok:
        print(f"Failure: {result.failure.value}: {result.message}")
        return 2

    print(f"Vertices: {result.mesh.vertex_count}")
    print(f"Triangles: {result.mesh.triangle_count}")
    print(f"Mesh: {paths.mesh_path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
