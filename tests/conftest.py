# tests/conftest.py
import pandas as pd
import pytest

from osm_import import make_ways_table


@pytest.fixture
def make_nodes():
    """Node table from {node_id: (lon, lat)}."""
    def _make(coordinates):
        return pd.DataFrame([{'id': node_id, 'lon': lon, 'lat': lat}
                             for node_id, (lon, lat) in coordinates.items()],
                            columns=['id', 'lon', 'lat'])
    return _make


@pytest.fixture
def make_ways():
    """Way table from (way_id, [node ids], {tags}) tuples, UIDs 1..n."""
    def _make(*ways):
        return make_ways_table({'id': way_id, 'nodes': nodes, 'tags': tags}
                               for way_id, nodes, tags in ways)
    return _make


@pytest.fixture
def make_segments():
    """Ways with only projected endpoints, from ((x1, y1), (x2, y2)) tuples."""
    def _make(*segments):
        return pd.DataFrame([{'UID': i + 1, 'x1': p1[0], 'y1': p1[1], 'x2': p2[0], 'y2': p2[1]}
                             for i, (p1, p2) in enumerate(segments)])
    return _make


# ---- small grid around Vienna ----
GRID_NODES = {
    1: (16.00, 48.00),
    2: (16.10, 48.00),
    3: (16.20, 48.00),
    4: (16.10, 48.10),
    5: (16.30, 48.20),
    6: (16.30, 48.2001),
    7: (16.50, 48.50),
    8: (16.60, 48.50),
}

GRID_WAYS = [
    (10, [1, 2], {'power': 'line', 'voltage': '380000', 'cables': '9', 'name': 'Line West'}),
    (11, [2, 3], {'power': 'line', 'voltage': '220000;380000', 'cables': '3'}),
    (12, [2, 4], {'power': 'line', 'voltage': '380000'}),
    (13, [5, 6], {'power': 'line', 'voltage': '380000', 'line': 'busbar'}),
    (14, [7, 8], {'power': 'line'}),
]


@pytest.fixture
def grid_elements():
    """The small grid as overpass elements."""
    elements = [{'type': 'node', 'id': node_id, 'lat': lat, 'lon': lon}
                for node_id, (lon, lat) in GRID_NODES.items()]
    elements += [{'type': 'way', 'id': way_id, 'nodes': nodes, 'tags': tags}
                 for way_id, nodes, tags in GRID_WAYS]
    return elements


@pytest.fixture
def grid_tables(make_nodes, make_ways):
    return make_nodes(GRID_NODES), make_ways(*GRID_WAYS)
