"""Tests for map export (JSON, GeoJSON, OBJ, DXF)."""
import json

import ezdxf
import pytest

from asbuilt.config import ExportConfig
from asbuilt.map_exporter import (
    LAYER_ANNOTATIONS, LAYER_DOORS, LAYER_WALLS, LAYER_WINDOWS,
    DxfPlanWriter, MapExporter, to_geojson, to_obj,
)


class TestMapExporter:
    """Tests for MapExporter."""

    def test_writes_every_format(self, sketch_result, tmp_path):
        paths = MapExporter().export(sketch_result, tmp_path, "building_b1")

        assert [p.suffix for p in paths] == [".json", ".geojson", ".obj", ".dxf"]
        assert paths[0] == tmp_path / "json" / "building_b1.json"
        assert all(p.exists() for p in paths)

    def test_flat_output(self, sketch_result, tmp_path):
        exporter = MapExporter(ExportConfig(formats=["json"], create_subdirs=False))
        paths = exporter.export(sketch_result, tmp_path, "plan")
        assert paths == [tmp_path / "plan.json"]

    def test_json_content(self, sketch_result, tmp_path):
        exporter = MapExporter(ExportConfig(formats=["json"]))
        path = exporter.export(sketch_result, tmp_path, "plan")[0]

        data = json.loads(path.read_text())
        assert data["metadata"]["room_count"] == 2
        assert len(data["model"]["vertices"]) == 14

    def test_overwrite_off_skips_existing(self, sketch_result, tmp_path):
        exporter = MapExporter(ExportConfig(formats=["json", "obj"], overwrite=False))
        first = exporter.export(sketch_result, tmp_path, "plan")

        second = exporter.export(sketch_result, tmp_path, "plan")

        assert len(first) == 2
        assert second == []

    def test_overwrite_on_rewrites(self, sketch_result, tmp_path):
        exporter = MapExporter(ExportConfig(formats=["obj"], overwrite=True))
        exporter.export(sketch_result, tmp_path, "plan")
        assert len(exporter.export(sketch_result, tmp_path, "plan")) == 1

    def test_unknown_format(self, sketch_result, tmp_path):
        exporter = MapExporter(ExportConfig(formats=["json", "ifc"]))
        with pytest.raises(ValueError, match="ifc"):
            exporter.export(sketch_result, tmp_path, "plan")
        assert not (tmp_path / "json").exists()


class TestGeoJson:

    def test_features(self, sketch_result):
        collection = to_geojson(sketch_result)

        assert collection["type"] == "FeatureCollection"
        kinds = [f["properties"]["type"] for f in collection["features"]]
        assert kinds == ["room", "room", "door", "window"]
        assert collection["properties"]["units"] == "m"

    def test_polygon_ring_is_closed(self, sketch_result):
        room = to_geojson(sketch_result)["features"][0]
        ring = room["geometry"]["coordinates"][0]

        assert room["geometry"]["type"] == "Polygon"
        assert len(ring) == 5
        assert ring[0] == ring[-1]

    def test_opening_properties(self, sketch_result):
        window = to_geojson(sketch_result)["features"][3]

        assert window["geometry"]["type"] == "LineString"
        assert window["geometry"]["coordinates"] == [[2.0, 4.0], [3.2, 4.0]]
        assert window["properties"]["sill_height"] == 0.9
        assert window["properties"]["room_id"] == "room_1"


class TestObj:

    def test_obj_text(self, sketch_result):
        text = to_obj(sketch_result.model)
        lines = text.splitlines()

        assert lines[1] == "o model_b1"
        assert sum(1 for line in lines if line.startswith("v ")) == 14
        assert sum(1 for line in lines if line.startswith("vn ")) == 13
        faces = [line for line in lines if line.startswith("f ")]
        assert len(faces) == 13
        assert faces[0] == "f 1//1 2//1 3//1"
        assert faces[-1].count("//13") == 4


class TestDxf:
    """Tests for DXF plan output."""

    def test_layers_and_entities(self, sketch_result, tmp_path):
        path = MapExporter(ExportConfig(formats=["dxf"])).export(sketch_result, tmp_path, "plan")[0]

        doc = ezdxf.readfile(str(path))
        msp = doc.modelspace()

        for layer in (LAYER_WALLS, LAYER_DOORS, LAYER_WINDOWS, LAYER_ANNOTATIONS):
            assert doc.layers.has_entry(layer)

        assert len(msp.query(f'LWPOLYLINE[layer=="{LAYER_WALLS}"]')) == 2
        assert len(msp.query(f'LINE[layer=="{LAYER_DOORS}"]')) == 1
        assert len(msp.query(f'LINE[layer=="{LAYER_WINDOWS}"]')) == 1
        # Two room labels and one text per wall dimension
        assert len(msp.query(f'TEXT[layer=="{LAYER_ANNOTATIONS}"]')) == 2 + 7

    def test_closed_wall_polylines(self, sketch_result, tmp_path):
        path = tmp_path / "plan.dxf"
        writer = DxfPlanWriter()
        writer.add_sketch(sketch_result.sketch)
        writer.save(path)

        polylines = list(ezdxf.readfile(str(path)).modelspace().query("LWPOLYLINE"))
        assert all(p.closed for p in polylines)
        assert [len(p) for p in polylines] == [4, 3]

    def test_without_dimensions(self, sketch_result, tmp_path):
        exporter = MapExporter(ExportConfig(formats=["dxf"], include_dimensions=False))
        path = exporter.export(sketch_result, tmp_path, "plan")[0]

        msp = ezdxf.readfile(str(path)).modelspace()
        assert len(msp.query("TEXT")) == 2
        assert len(msp.query(f'LINE[layer=="{LAYER_ANNOTATIONS}"]')) == 0

    def test_dimension_skips_zero_length(self):
        writer = DxfPlanWriter()
        writer.add_dimension((1.0, 1.0), (1.0, 1.0))
        assert len(writer._msp) == 0
