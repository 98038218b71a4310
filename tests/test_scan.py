import json

import pytest

from fieldcam.constants.analysis import DEFAULT_CELL_SIZE
from fieldcam.data.scan import collect_scan_rows, parse_scan_record
from fieldcam.xai.core.errors import EncodingError

from conftest import scan_row


def test_parse_stored_row_unwraps_scan_data():
    rec = parse_scan_record(scan_row(width=100, height=60, cell=10, scan_id="abc"))
    assert rec.scan_id == "abc"
    assert (rec.width, rec.height, rec.cell_size) == (100.0, 60.0, 10.0)
    assert rec.trails == (((5.0, 5.0), (25.0, 5.0)),)
    assert rec.grid_data is None


def test_grid_size_alias_and_default_cell_size():
    dims = {"width": 10, "height": 10}
    assert parse_scan_record({"screenDimensions": dims, "settings": {"gridSize": 40}}).cell_size == 40
    assert parse_scan_record({"screenDimensions": dims}).cell_size == DEFAULT_CELL_SIZE


def test_missing_trails_means_no_points():
    rec = parse_scan_record({"screenDimensions": {"width": 10, "height": 10}})
    assert rec.trails == ()


@pytest.mark.parametrize("payload", [
    {"trails": []},
    {"screenDimensions": {"width": 100}},
    {"screenDimensions": {"width": 0, "height": 10}},
    {"screenDimensions": {"width": "wide", "height": 10}},
    {"screenDimensions": {"width": 10, "height": 10}, "settings": {"cellSize": 0}},
    {"screenDimensions": {"width": 10, "height": 10}, "trails": [[{"x": 1}]]},
    {"screenDimensions": {"width": 10, "height": 10}, "trails": [[{"x": True, "y": 1}]]},
    {"screenDimensions": {"width": 10, "height": 10}, "trails": {"x": 1, "y": 1}},
])
def test_malformed_records_raise_encoding_error(payload):
    with pytest.raises(EncodingError) as exc:
        parse_scan_record(payload)
    assert exc.value.reason == "encoding"


def test_non_object_record_is_rejected():
    with pytest.raises(EncodingError):
        parse_scan_record(["not", "a", "record"])


def test_collect_rows_from_directory_is_sorted_and_limited(tmp_path):
    (tmp_path / "b.json").write_text(json.dumps(scan_row(scan_id="b-id")))
    (tmp_path / "a.json").write_text(json.dumps([scan_row(scan_id=None), scan_row(scan_id="a2")]))
    rows = collect_scan_rows(tmp_path)
    assert [sid for sid, _ in rows] == ["a", "a2", "b-id"]
    assert len(collect_scan_rows(tmp_path, limit=2)) == 2


def test_collect_rows_missing_source(tmp_path):
    with pytest.raises(FileNotFoundError):
        collect_scan_rows(tmp_path / "nope")


def test_collect_rows_invalid_json(tmp_path):
    (tmp_path / "bad.json").write_text("{not json")
    with pytest.raises(EncodingError):
        collect_scan_rows(tmp_path)
