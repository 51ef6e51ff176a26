# tests/test_way_enricher.py
import numpy as np
import pandas as pd
import pytest

from map2grid import (add_coordinates, clone_multi_voltage_ways, count_voltage_levels, mark_voltage_levels,
                      select_ways)


# ---- coordinates ----
def test_add_coordinates(make_nodes, make_ways):
    nodes = make_nodes({1: (16.0, 48.0), 2: (16.0, 48.01), 3: (16.01, 48.01), 4: (16.02, 48.01)})
    ways = make_ways((10, [1, 2], {}), (11, [2, 3, 4], {}))

    data, conv = add_coordinates(ways, nodes)

    assert list(data['ID_node1']) == [1, 2]
    assert list(data['ID_node2']) == [2, 4]
    assert list(data['lon2']) == [16.0, 16.02]
    assert conv.mean_lat == pytest.approx((48.0 + 48.01 + 48.01 + 48.01) / 4)

    # the first way runs exactly north
    assert data.loc[0, 'x1'] == data.loc[0, 'x2']
    assert data.loc[0, 'length'] == pytest.approx(0.01 * conv.km_per_lat_deg)
    # intermediate nodes do not count for the straight length
    assert data.loc[1, 'length'] == pytest.approx(0.02 * conv.km_per_lon_deg)


def test_add_coordinates_does_not_mutate_input(make_nodes, make_ways):
    nodes = make_nodes({1: (16.0, 48.0), 2: (16.0, 48.01)})
    ways = make_ways((10, [1, 2], {}))
    columns = list(ways.columns)

    add_coordinates(ways, nodes)
    assert list(ways.columns) == columns


def test_unknown_node_drops_way(make_nodes, make_ways, caplog):
    nodes = make_nodes({1: (16.0, 48.0), 2: (16.0, 48.01)})
    ways = make_ways((10, [1, 2], {}), (11, [2, 99], {}))

    data, _ = add_coordinates(ways, nodes)

    assert list(data['UID']) == [1]
    assert 'UID 2 references a node' in caplog.text


def test_no_placeable_way_gives_empty_table(make_nodes, make_ways, caplog):
    nodes = make_nodes({1: (16.0, 48.0), 2: (18.0, 50.0)})
    ways = make_ways((10, [1, 99], {}))

    data, conv = add_coordinates(ways, nodes)

    assert data.empty
    assert {'x1', 'y2', 'length'} <= set(data.columns)
    # the node table still defines the local plane
    assert conv.mean_lon == pytest.approx(17.0)
    assert 'The grid will be empty' in caplog.text


# ---- voltage levels ----
def test_single_voltage_is_resolved(make_ways):
    data = count_voltage_levels(make_ways((10, [1, 2], {'voltage': '380000'})))

    assert len(data) == 1
    assert data.loc[0, 'voltage'] == 380000.0
    assert data.loc[0, 'voltage_status'] == 'resolved'
    assert data.loc[0, 'vlevels'] == 1
    assert data.loc[0, 'exclusion_reason'] is None


def test_multiple_voltages_are_cloned_with_same_uid(make_ways):
    ways = make_ways((10, [1, 2], {'voltage': '380000'}),
                     (11, [2, 3], {'voltage': '220000;380000'}),
                     (12, [3, 4], {'voltage': '110000;220000;380000'}))

    data = count_voltage_levels(ways)

    assert list(data['UID']) == [1, 2, 2, 3, 3, 3]
    assert list(data['voltage']) == [380000.0, 220000.0, 380000.0, 110000.0, 220000.0, 380000.0]
    assert list(data['vlevels']) == [1, 2, 2, 3, 3, 3]
    assert (data['voltage_status'] == 'resolved').all()
    # endpoint order survives the cloning
    assert list(data['nodes']) == [[1, 2], [2, 3], [2, 3], [3, 4], [3, 4], [3, 4]]
    assert 'voltage_values' not in data


def test_marking_keeps_one_row_per_way(make_ways):
    ways = make_ways((11, [2, 3], {'voltage': '220000;380000'}))

    marked = mark_voltage_levels(ways)
    assert len(marked) == 1
    assert marked.loc[0, 'voltage_status'] == 'pending_clone'
    assert np.isnan(marked.loc[0, 'voltage'])
    assert marked.loc[0, 'vlevels'] == 2

    cloned = clone_multi_voltage_ways(marked)
    assert list(cloned['voltage']) == [220000.0, 380000.0]
    # the input is left untouched
    assert marked.loc[0, 'voltage_status'] == 'pending_clone'


@pytest.mark.parametrize('tags, reason', [
    ({}, 'no voltage tag'),
    ({'voltage': '110000;abc'}, 'Unexpected value for tag "voltage"'),
    ({'voltage': 'medium'}, 'Unexpected value for tag "voltage"'),
    ({'voltage': '10000;20000;110000;220000'}, '4 voltage levels'),
])
def test_excluded_ways_are_not_cloned(make_ways, caplog, tags, reason):
    data = count_voltage_levels(make_ways((10, [1, 2], tags)))

    assert len(data) == 1
    assert data.loc[0, 'voltage_status'] == 'excluded'
    assert reason in data.loc[0, 'exclusion_reason']
    assert np.isnan(data.loc[0, 'voltage'])
    assert pd.isna(data.loc[0, 'vlevels'])
    assert 'ATTENTION! Way element UID 1 is excluded' in caplog.text


def test_voltage_levels_are_counted(make_ways, caplog):
    caplog.set_level('INFO')
    count_voltage_levels(make_ways((10, [1, 2], {'voltage': '380000'}),
                                   (11, [2, 3], {'voltage': '220000;380000'})))
    assert 'voltage level 380 kV: 2' in caplog.text
    assert 'voltage level 220 kV: 1' in caplog.text


# ---- selection ----
def test_select_ways(make_ways):
    data = count_voltage_levels(make_ways((10, [1, 2], {'voltage': '380000'}),
                                          (11, [2, 3], {'voltage': '220000;380000'}),
                                          (12, [3, 4], {'voltage': '110000'}),
                                          (13, [4, 5], {})))

    selected = select_ways(data, [380000])
    assert list(selected['UID']) == [1, 2]
    assert (selected['voltage'] == 380000.0).all()

    everything = select_ways(data)
    assert list(everything['UID']) == [1, 2, 2, 3]
    assert list(everything.index) == [0, 1, 2, 3]
