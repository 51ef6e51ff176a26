# tests/test_osm_import.py
import json

import pytest

from osm_import import load_overpass_json, make_ways_table, separate_raw_data


def test_load_overpass_export(tmp_path, grid_elements):
    path = tmp_path / 'export.json'
    path.write_text(json.dumps({'version': 0.6, 'generator': 'Overpass API', 'elements': grid_elements}))

    elements = load_overpass_json(path)
    assert len(elements) == len(grid_elements)


def test_load_bare_list(tmp_path, grid_elements):
    path = tmp_path / 'export.json'
    path.write_text(json.dumps(grid_elements))
    assert load_overpass_json(path) == grid_elements


def test_load_without_elements_raises(tmp_path):
    path = tmp_path / 'export.json'
    path.write_text(json.dumps({'version': 0.6}))
    with pytest.raises(ValueError):
        load_overpass_json(path)


def test_load_invalid_json_raises(tmp_path):
    path = tmp_path / 'export.json'
    path.write_text('{"elements": [')
    with pytest.raises(ValueError):
        load_overpass_json(path)


def test_separate_raw_data(grid_elements):
    nodes, ways = separate_raw_data(grid_elements)

    assert len(nodes) == 8
    assert list(nodes.columns) == ['id', 'lon', 'lat']
    assert list(ways.columns) == ['UID', 'id', 'nodes', 'tags']
    assert list(ways['UID']) == [1, 2, 3, 4, 5]
    assert list(ways['id']) == [10, 11, 12, 13, 14]
    assert ways.loc[1, 'nodes'] == [2, 3]
    assert ways.loc[1, 'tags']['voltage'] == '220000;380000'


def test_structural_mismatch_is_dropped(caplog):
    elements = [
        {'type': 'node', 'id': 1, 'lat': 48.0, 'lon': 16.0},
        {'type': 'node', 'id': 1, 'lat': 48.0, 'lon': 16.0},
        {'type': 'node', 'id': 2, 'lon': 16.1},
        {'type': 'way', 'id': 10, 'nodes': [1], 'tags': {}},
        {'type': 'way', 'id': 11, 'nodes': [1, 2]},
        {'type': 'way', 'id': 12, 'nodes': [1, 3], 'tags': {'voltage': 110000}},
        {'type': 'relation', 'id': 99, 'members': []},
    ]

    nodes, ways = separate_raw_data(elements)

    assert list(nodes['id']) == [1]
    assert list(ways['id']) == [12]
    assert list(ways['UID']) == [1]
    assert ways.loc[0, 'tags'] == {'voltage': '110000'}
    assert '2 way element(s) have missing fields' in caplog.text
    assert '1 node element(s) have missing fields' in caplog.text


def test_make_ways_table():
    ways = make_ways_table([{'id': 5, 'nodes': ['1', '2'], 'tags': {'voltage': '110000'}},
                            {'id': 6, 'nodes': [2, 3], 'tags': None}])
    assert list(ways['UID']) == [1, 2]
    assert ways.loc[0, 'nodes'] == [1, 2]
    assert ways.loc[1, 'tags'] == {}
