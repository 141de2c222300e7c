"""Tests for the multi-texture PLY reader."""

from pathlib import Path

import numpy as np
import pytest
from plyfile import PlyData, PlyElement

from conftest import SQUARE_FACES, SQUARE_POSITIONS, SQUARE_UVS
from ply_source import PlySource, load_raw_geometry, write_scan_ply
from scan_types import FailureReason, SourceUnavailableError


class TestLoadRawGeometry:

    def test_reads_positions_faces_and_wedges(self, square_ply):
        raw = load_raw_geometry(square_ply)

        np.testing.assert_array_equal(raw.positions, SQUARE_POSITIONS)
        assert [list(f) for f in raw.faces] == SQUARE_FACES
        np.testing.assert_array_equal(raw.wedge_uvs, SQUARE_UVS)
        np.testing.assert_array_equal(raw.wedge_indices, [0, 1, 2, 0, 2, 3])
        assert raw.texture_count == 1

    def test_reads_ascii_ply(self, tmp_path: Path):
        path = write_scan_ply(
            tmp_path / "ascii.ply",
            SQUARE_POSITIONS, SQUARE_FACES, SQUARE_UVS, SQUARE_FACES,
            text=True,
        )
        raw = load_raw_geometry(path)
        assert raw.face_count == 2
        assert len(raw.wedge_indices) == 6

    def test_variable_arity_faces_are_kept(self, tmp_path: Path):
        path = write_scan_ply(
            tmp_path / "quad.ply",
            SQUARE_POSITIONS,
            [[0, 1, 2, 3], [0, 1, 2]],
            SQUARE_UVS,
            [[0, 1, 2, 3], [0, 1, 2]],
        )
        raw = load_raw_geometry(path)
        assert [len(f) for f in raw.faces] == [4, 3]
        assert len(raw.wedge_indices) == 7

    def test_texture_ids_counted(self, tmp_path: Path):
        path = write_scan_ply(
            tmp_path / "multi.ply",
            SQUARE_POSITIONS, SQUARE_FACES, SQUARE_UVS, SQUARE_FACES,
            wedge_texture_ids=np.array([0, 0, 1, 1], dtype=np.uint8),
        )
        assert load_raw_geometry(path).texture_count == 2

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(SourceUnavailableError) as exc_info:
            load_raw_geometry(tmp_path / "missing.ply")
        assert exc_info.value.reason is FailureReason.SOURCE_UNAVAILABLE

    def test_garbage_file(self, tmp_path: Path):
        path = tmp_path / "garbage.ply"
        path.write_bytes(b"not a ply file at all\n\x00\x01\x02")
        with pytest.raises(SourceUnavailableError):
            load_raw_geometry(path)

    def test_missing_face_element(self, tmp_path: Path):
        vertex = np.zeros(3, dtype=[("x", "f4"), ("y", "f4"), ("z", "f4")])
        path = tmp_path / "points.ply"
        PlyData([PlyElement.describe(vertex, "vertex")]).write(str(path))

        with pytest.raises(SourceUnavailableError):
            load_raw_geometry(path)

    def test_missing_wedge_elements_load_empty(self, tmp_path: Path):
        vertex = np.zeros(3, dtype=[("x", "f4"), ("y", "f4"), ("z", "f4")])
        face = np.empty(1, dtype=[("vertex_indices", "O")])
        face["vertex_indices"][0] = np.array([0, 1, 2], dtype=np.int32)
        path = tmp_path / "plain.ply"
        PlyData([
            PlyElement.describe(vertex, "vertex"),
            PlyElement.describe(
                face, "face",
                len_types={"vertex_indices": "u1"},
                val_types={"vertex_indices": "i4"},
            ),
        ]).write(str(path))

        raw = load_raw_geometry(path)
        assert raw.face_count == 1
        assert len(raw.wedge_indices) == 0
        assert raw.wedge_uvs.shape == (0, 2)
        assert raw.wedge_texture_ids is None


class TestPlySource:

    def test_single_read_fills_all_requests(self, square_ply):
        source = PlySource()
        xyz = source.request_properties("vertex", ["x", "y", "z"])
        uv = source.request_properties("multi_texture_vertex", ["u", "v"])
        faces = source.request_list_property("face", "vertex_indices")
        wedges = source.request_list_property(
            "multi_texture_face", "texture_vertex_indices", flatten=True
        )

        with open(square_ply, "rb") as stream:
            source.read(stream)

        assert xyz.data.shape == (4, 3)
        assert uv.data.shape == (4, 2)
        assert len(faces.data) == 2
        assert wedges.data.shape == (6,)
        assert source.element_counts["multi_texture_face"] == 2

    def test_missing_required_property_raises(self, square_ply):
        source = PlySource()
        source.request_properties("vertex", ["x", "y", "w"])
        with open(square_ply, "rb") as stream:
            with pytest.raises(SourceUnavailableError):
                source.read(stream)

    def test_missing_optional_property_is_empty(self, square_ply):
        source = PlySource()
        normals = source.request_properties("vertex", ["nx", "ny", "nz"], required=False)
        with open(square_ply, "rb") as stream:
            source.read(stream)
        assert normals.found is False
        assert normals.data.shape == (0, 3)
