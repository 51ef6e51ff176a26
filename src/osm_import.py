import json
import logging
import time
from pathlib import Path

import pandas as pd


logger = logging.getLogger(__name__)

NODE_FIELDS = ('id', 'lat', 'lon')
WAY_FIELDS = ('id', 'nodes', 'tags')


def load_overpass_json(path):
    """
    Load a "raw OSM data" export of overpass-turbo.

    Parameters:
        path (str or Path): Path of the exported *.json file.

    Returns:
        list: All elements of the export, header data stripped.
    """
    start_time = time.time()
    path = Path(path)
    logger.info(f'Start importing data from {path}...')

    with open(path, 'r', encoding='utf-8') as f:
        data_raw = json.load(f)

    if isinstance(data_raw, dict):
        if 'elements' not in data_raw:
            raise ValueError(f'{path} has no "elements" list, is it an overpass export?')
        elements = data_raw['elements']
    else:
        elements = data_raw

    if not isinstance(elements, list):
        raise ValueError(f'Elements of {path} are not a list')

    logger.info(f'   ... {len(elements)} elements imported')
    logger.info(f'   ... finished! ({time.time() - start_time:.3f} seconds)')
    return elements


def _is_structurally_valid(element, fields):
    if not all(field in element for field in fields):
        return False
    if 'nodes' in fields:
        return isinstance(element['nodes'], list) and len(element['nodes']) >= 2
    if 'lat' in fields:
        return element['lat'] is not None and element['lon'] is not None
    return True


def separate_raw_data(elements):
    """
    Separate all 'node' and 'way' elements into two tables and add an unique
    identifier (UID) to every way. Elements which lack a required field are
    dropped, they need a manual review of the input file.

    Parameters:
        elements (list): Raw overpass elements.

    Returns:
        pd.DataFrame: Nodes with columns id, lon, lat.
        pd.DataFrame: Ways with columns UID, id, nodes, tags.
    """
    start_time = time.time()
    logger.info('Start separating raw data into way- and node-elements...')

    nodes = []
    ways = []
    dropped_nodes = 0
    dropped_ways = 0

    for element in elements:
        if not isinstance(element, dict):
            continue

        if element.get('type') == 'node':
            if not _is_structurally_valid(element, NODE_FIELDS):
                dropped_nodes += 1
                continue
            nodes.append({'id': int(element['id']),
                          'lon': float(element['lon']),
                          'lat': float(element['lat'])})

        elif element.get('type') == 'way':
            if not _is_structurally_valid(element, WAY_FIELDS):
                dropped_ways += 1
                continue
            tags = element['tags'] if isinstance(element['tags'], dict) else {}
            ways.append({'id': int(element['id']),
                         'nodes': [int(n) for n in element['nodes']],
                         'tags': {str(k): str(v) for k, v in tags.items()}})

    if dropped_ways:
        logger.warning(f'   ATTENTION! {dropped_ways} way element(s) have missing fields. '
                       'They wont be imported!')
    if dropped_nodes:
        logger.warning(f'   ATTENTION! {dropped_nodes} node element(s) have missing fields. '
                       'They wont be imported!')

    data_nodes_all = pd.DataFrame(nodes, columns=['id', 'lon', 'lat'])
    data_nodes_all = data_nodes_all.drop_duplicates(subset='id').reset_index(drop=True)

    data_ways_all = pd.DataFrame(ways, columns=['id', 'nodes', 'tags'])
    data_ways_all.insert(0, 'UID', range(1, len(data_ways_all) + 1))

    logger.info(f'   ... {len(data_nodes_all)} nodes and {len(data_ways_all)} ways')
    logger.info(f'   ... finished! ({time.time() - start_time:.3f} seconds)')

    return data_nodes_all, data_ways_all


def make_ways_table(ways):
    """
    Build a way table from plain records {id, nodes, tags}, e.g. coming from
    another parser. UIDs are assigned in record order.
    """
    data_ways_all = pd.DataFrame(list(ways), columns=['id', 'nodes', 'tags'])
    data_ways_all['nodes'] = data_ways_all['nodes'].apply(lambda ns: [int(n) for n in ns])
    data_ways_all['tags'] = data_ways_all['tags'].apply(lambda t: dict(t) if isinstance(t, dict) else {})
    data_ways_all.insert(0, 'UID', range(1, len(data_ways_all) + 1))
    return data_ways_all
