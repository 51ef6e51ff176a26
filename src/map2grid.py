import logging
import string
import time
from dataclasses import dataclass, field

import numpy as np
import pandas as pd
from tqdm import tqdm

from grid_config import GridConfig
from group_nodes import (add_final_coordinates, calc_distances_between_endpoints,
                         calc_neighbouring_endnodes, calc_stacked_endnodes, group_neighbouring_endnodes,
                         group_nodes, group_stacked_endnodes)
from projection import DegreesToKm
from tag_utils import TagParseError, format_voltage_kv, get_tag, parse_number_list, try_parse_number


logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371

# A line with this many cables carries that many three-phase systems
CABLES_TO_SYSTEMS = {6: 2, 9: 3, 12: 4}

LINES_COLUMNS = ['LineID', 'Country', 'FromNode', 'ToNode', 'VoltageKV', 'R', 'XL', 'XC',
                 'Itherm', 'LengthKM', 'Capacity', 'Note', 'PhiPsMax']
NODES_COLUMNS = ['NodeID', 'Country', 'VoltageKV', 'Latitude', 'Longitude']
LENGTHS_COLUMNS = ['UID', 'id', 'num_nodes', 'length_all_segments', 'length_beeline', 'length_org',
                   'length_diff_in_percent', 'length_diff_absolut_in_km',
                   'length_diff_between_org_and_beeline_percent', 'deviates']


###############################################################
###############################################################
#################   MODULE 2： DATA ANALYSIS   ################
###############################################################
###############################################################

def add_coordinates(data_ways_all, data_nodes_all):
    """
    Add the coordinates of both endnodes to every way, project them into a
    local x/y plane and calculate the straight length of each way.

    Ways referencing an unknown node are dropped. If no way is left, the
    result is an empty table and the conversion is taken from the node table.

    Parameters:
        data_ways_all (DataFrame): Ways with columns UID, id, nodes, tags.
        data_nodes_all (DataFrame): Nodes with columns id, lon, lat.

    Returns:
        DataFrame: Copy of the ways with ID_node1/2, lon/lat/x/y 1/2 and length.
        DegreesToKm: Conversion shared by every later projection.
    """
    start_time = time.time()
    logger.info('Start adding coordinates to each way...')

    data = data_ways_all.copy()
    data['ID_node1'] = pd.Series([nodes[0] for nodes in data['nodes']], index=data.index, dtype='int64')
    data['ID_node2'] = pd.Series([nodes[-1] for nodes in data['nodes']], index=data.index, dtype='int64')

    coordinates = data_nodes_all.drop_duplicates(subset='id').set_index('id')[['lon', 'lat']]

    # Ways whose endnodes are not part of the node table cannot be placed
    b_missing = ~data['ID_node1'].isin(coordinates.index) | ~data['ID_node2'].isin(coordinates.index)
    for uid in data.loc[b_missing, 'UID']:
        logger.warning(f'   ATTENTION! Way element UID {uid} references a node which is not '
                       'in the dataset. This way wont be imported!')
    data = data[~b_missing].reset_index(drop=True)

    for endnode in (1, 2):
        data[f'lon{endnode}'] = data[f'ID_node{endnode}'].map(coordinates['lon']).astype(float)
        data[f'lat{endnode}'] = data[f'ID_node{endnode}'].map(coordinates['lat']).astype(float)

    if data.empty:
        # Nothing to place, the projection only has to exist for the later steps
        logger.warning('   ATTENTION! No way element with known endnodes in the dataset. '
                       'The grid will be empty!')
        reference = coordinates if len(coordinates) else pd.DataFrame({'lon': [0.0], 'lat': [0.0]})
        degrees_to_km_conversion = DegreesToKm.from_coordinates(reference['lon'], reference['lat'])
    else:
        degrees_to_km_conversion = DegreesToKm.from_coordinates(
            pd.concat([data['lon1'], data['lon2']]),
            pd.concat([data['lat1'], data['lat2']]))

    for endnode in (1, 2):
        x, y = degrees_to_km_conversion.to_xy(data[f'lon{endnode}'], data[f'lat{endnode}'])
        data[f'x{endnode}'] = x
        data[f'y{endnode}'] = y

    data['length'] = np.hypot(data['x2'] - data['x1'], data['y2'] - data['y1'])

    logger.info(f'   ... {len(data)} ways with coordinates')
    logger.info(f'   ... finished! ({time.time() - start_time:.3f} seconds)')
    return data, degrees_to_km_conversion


def mark_voltage_levels(data):
    """
    Parse the voltage tag of every way without changing the number of rows.

    A single value gets assigned directly. Two or three values mark the way as
    "pending_clone" and store how many levels it carries. A missing tag, an
    unreadable value or more than three levels exclude the way.

    Returns:
        DataFrame: Copy of data with voltage, vlevels, voltage_status,
            exclusion_reason and the parsed voltage_values.
    """
    data = data.copy()

    voltage_values = []
    voltage_status = []
    exclusion_reason = []

    for uid, tags in zip(data['UID'], data['tags']):
        raw_voltage = get_tag(tags, 'voltage')
        values = []
        reason = None

        if raw_voltage is None:
            reason = 'no voltage tag'
        else:
            try:
                values = parse_number_list(raw_voltage, 'voltage')
            except TagParseError as e:
                reason = str(e)
            else:
                if len(values) > 3:
                    reason = f'{len(values)} voltage levels, at most 3 are supported'

        if reason is not None:
            logger.warning(f'   ATTENTION! Way element UID {uid} is excluded: {reason}')
            voltage_values.append([])
            voltage_status.append('excluded')
        elif len(values) == 1:
            voltage_values.append(values)
            voltage_status.append('resolved')
        else:
            voltage_values.append(values)
            voltage_status.append('pending_clone')
        exclusion_reason.append(reason)

    data['voltage_values'] = pd.Series(voltage_values, index=data.index, dtype=object)
    data['voltage_status'] = voltage_status
    data['exclusion_reason'] = exclusion_reason
    data['voltage'] = pd.Series([values[0] if status == 'resolved' else np.nan
                                 for values, status in zip(voltage_values, voltage_status)],
                                index=data.index, dtype=float)
    data['vlevels'] = pd.array([len(values) if values else pd.NA for values in voltage_values],
                               dtype='Int64')
    return data


def clone_multi_voltage_ways(data):
    """
    Clone every "pending_clone" way once per voltage level. The clones keep
    the UID of their original way and get one resolved voltage each.
    """
    b_pending = (data['voltage_status'] == 'pending_clone').to_numpy()

    # Phase 1: number of rows every way expands into
    num_copies = np.where(b_pending, data['vlevels'].fillna(1).to_numpy(dtype=int), 1)

    # Phase 2: build the new table at once
    expanded_data = data.loc[data.index.repeat(num_copies)].copy()
    position = expanded_data.groupby(level=0).cumcount().to_numpy()
    b_clone = np.repeat(b_pending, num_copies)

    cloned_voltage = [values[j] if clone else np.nan
                      for values, j, clone in zip(expanded_data['voltage_values'], position, b_clone)]
    expanded_data['voltage'] = np.where(b_clone, cloned_voltage, expanded_data['voltage'].to_numpy(dtype=float))
    expanded_data.loc[b_clone, 'voltage_status'] = 'resolved'

    return expanded_data.reset_index(drop=True)


def count_voltage_levels(data):
    """
    Counts and processes voltage levels in the dataset, expanding rows with
    multiple voltage levels.

    Parameters:
    data : DataFrame
        Ways with a 'tags' column.

    Returns:
    expanded_data : DataFrame
        Ways with one voltage per row. Ways which carried 2 or 3 levels are
        cloned (same UID), 'vlevels' holds the original number of levels.
        Excluded ways stay in the table with voltage_status "excluded".
    """
    start_time = time.time()
    logger.info('Start counting voltage levels...')

    marked_data = mark_voltage_levels(data)
    expanded_data = clone_multi_voltage_ways(marked_data).drop(columns='voltage_values')

    b_resolved = expanded_data['voltage_status'] == 'resolved'
    voltage_levels_count = expanded_data.loc[b_resolved, 'voltage'].value_counts().sort_index(ascending=False)

    logger.info('   ... voltage levels count:')
    for v_level, count in voltage_levels_count.items():
        logger.info(f'   ... voltage level {format_voltage_kv(v_level)}: {count}')

    num_cloned = int((marked_data['voltage_status'] == 'pending_clone').sum())
    num_excluded = int((expanded_data['voltage_status'] == 'excluded').sum())
    logger.info(f'   ... {num_cloned} ways with multiple voltage levels were cloned')
    logger.info(f'   ... {num_excluded} ways were excluded')
    logger.info(f'   ... finished! ({time.time() - start_time:.3f} seconds)')

    return expanded_data


def select_ways(data, voltage_levels_selected=None):
    """
    Keep all ways with a resolved voltage which is one of the selected
    voltage levels. If no levels are given, every resolved way is kept.
    """
    start_time = time.time()
    logger.info('Start selecting ways by voltage level...')

    b_selected = data['voltage_status'] == 'resolved'
    if voltage_levels_selected is not None:
        b_selected &= data['voltage'].isin([float(v) for v in voltage_levels_selected])
        logger.info(f'   ... selected voltage levels: '
                    f'{", ".join(format_voltage_kv(v) for v in voltage_levels_selected)}')

    data_selected = data[b_selected].reset_index(drop=True)

    logger.info(f'   ... {len(data_selected)} of {len(data)} ways selected')
    logger.info(f'   ... finished! ({time.time() - start_time:.3f} seconds)')
    return data_selected


def delete_busbars(data, busbar_max_length=1):
    """
    Delete busbars and bays from the dataset based on their length.

    Parameters:
        data (DataFrame): Input dataset of selected ways.
        busbar_max_length (float): The maximum length a busbar can have, in km.

    Returns:
        DataFrame: Updated dataset without busbars.
        DataFrame: All busbars extracted from the original dataset.
    """
    logger.info('Start deleting ways with type "busbar" or "bay"...')
    start_time = time.time()

    line_type = [(get_tag(tags, 'line') or '').lower() for tags in data['tags']]
    b_busbar_type = pd.Series([t in ('busbar', 'bay') for t in line_type], index=data.index, dtype=bool)
    b_short = data['length'] < busbar_max_length

    for _, row in data[b_busbar_type & ~b_short].iterrows():
        logger.warning(f'   ATTENTION! Way element UID {row["UID"]} has type "busbar" or "bay", '
                       f'but is too long. Length: {row["length"]:.2f} km of max. '
                       f'{busbar_max_length:.1f} km. This way wont be added to the '
                       '"busbar" exception list.')

    data = data.copy()
    data['busbar'] = (b_busbar_type & b_short).to_numpy()

    data_busbars = data[data['busbar']].reset_index(drop=True)
    data = data[~data['busbar']].reset_index(drop=True)

    logger.info(f'   ... there are {int(b_busbar_type.sum())} busbars/bays in total')
    logger.info(f'   ... {len(data_busbars)} busbars have been deleted')
    logger.info(f'   ... finished! ({time.time() - start_time:.3f} seconds)')

    return data, data_busbars


def count_possible_dc(data):
    """
    Identify potential DC lines in the dataset. A way is flagged if its
    frequency is 0, its name contains "DC" or it has exactly one cable.

    Parameters:
        data (DataFrame): Input dataset of selected ways.

    Returns:
        DataFrame: Updated dataset with 'dc_candidate' flag.
        DataFrame: One row per DC candidate and reason.
    """
    logger.info('Start detecting lines which could be DC lines...')
    start_time = time.time()

    dc_candidates = []
    b_dc_candidate = []

    for _, row in data.iterrows():
        tags = row['tags']
        reasons = []

        if try_parse_number(get_tag(tags, 'frequency')) == 0:
            reasons.append('frequency is 0')

        name = get_tag(tags, 'name')
        if name is not None and 'dc' in name.lower():
            reasons.append('name contains "DC"')

        if try_parse_number(get_tag(tags, 'cables')) == 1:
            reasons.append('cables is 1')

        for reason in reasons:
            dc_candidates.append({'UID': row['UID'],
                                  'id': row['id'],
                                  'reason': reason,
                                  'voltage': row['voltage']})
        b_dc_candidate.append(bool(reasons))

    data = data.copy()
    data['dc_candidate'] = pd.Series(b_dc_candidate, index=data.index, dtype=bool)
    dc_candidates = pd.DataFrame(dc_candidates, columns=['UID', 'id', 'reason', 'voltage'])

    num_candidates = int(data['dc_candidate'].sum())
    if num_candidates == 0:
        logger.info('   ... no potentially DC lines found.')
    else:
        logger.info(f'   ... {num_candidates} ways could potentially be a DC line.')
        logger.info('   ... Please refer to dc_candidates for further checks.')

    logger.info(f'   ... finished! ({time.time() - start_time:.3f} seconds)')
    return data, dc_candidates


def count_cables(data):
    """
    Read the number of cables of every way. Lines with 6, 9 or 12 cables
    carry 2, 3 or 4 systems and get cloned later on.

    Returns:
        DataFrame: Updated dataset with 'cables' and 'systems'.
        DataFrame: Cables and systems per way.
    """
    logger.info('Start counting cables per way...')
    start_time = time.time()

    cables = []
    num_ambiguous = 0

    for uid, tags in zip(data['UID'], data['tags']):
        raw_cables = get_tag(tags, 'cables')
        num_cables = try_parse_number(raw_cables)

        # e.g. "3;6", the way is kept but not cloned
        if raw_cables is not None and num_cables is None:
            num_ambiguous += 1
            logger.warning(f'   ATTENTION! Way element UID {uid} has an unknown number of cables: '
                           f'"{raw_cables}". This way wont be cloned!')

        cables.append(np.nan if num_cables is None else num_cables)

    data = data.copy()
    data['cables'] = pd.Series(cables, index=data.index, dtype=float)
    data['systems'] = data['cables'].map(
        {float(num_cables): systems for num_cables, systems in CABLES_TO_SYSTEMS.items()}).astype('Int64')

    cables_per_way = data[['UID', 'id', 'voltage', 'cables', 'systems']].copy()

    systems_count = data['systems'].value_counts().sort_index()
    for num_systems, count in systems_count.items():
        logger.info(f'   ... {count} ways with {num_systems} systems')
    logger.info(f'   ... {int(data["cables"].isna().sum())} ways without a number of cables '
                f'({num_ambiguous} unreadable)')
    logger.info(f'   ... finished! ({time.time() - start_time:.3f} seconds)')

    return data, cables_per_way


###############################################################
###############################################################
####################### MODULE 4: Export ######################
###############################################################
###############################################################

def delete_singular_ways(data):
    """
    Deletes all lines (ways) that have the same start and end points after grouping,
    i.e., lines that have been reduced to a single point.

    Parameters:
    - data (DataFrame): Ways with final coordinates.

    Returns:
    - data (DataFrame): A new dataset after removing singular lines.
    - data_singular_ways (DataFrame): The removed singular lines.
    """
    start_time = time.time()
    logger.info('Start deleting ways which have the same endpoints after grouping...')

    b_singular = ((data['lon1_final'] == data['lon2_final'])
                  & (data['lat1_final'] == data['lat2_final']))

    data_singular_ways = data[b_singular].reset_index(drop=True)
    data = data[~b_singular].reset_index(drop=True)

    logger.info(f'   ... {len(data_singular_ways)} ways were deleted!')
    logger.info(f'   ... finished! ({time.time() - start_time:.3f} seconds)')

    return data, data_singular_ways


def _equirectangular_km(lons, lats):
    # Credits/Source: https://www.movable-type.co.uk/scripts/latlong.html
    lons_rad = np.radians(np.asarray(lons, dtype=float))
    lats_rad = np.radians(np.asarray(lats, dtype=float))

    x = np.diff(lons_rad) * np.cos((lats_rad[:-1] + lats_rad[1:]) / 2)
    y = np.diff(lats_rad)
    return np.sqrt(x ** 2 + y ** 2) * EARTH_RADIUS_KM


def calc_real_lengths(data, data_ways_all, data_nodes_all, config=None):
    """
    Calculate the real length of every way by summing up all segments of its
    original course, instead of only taking the beeline between the endnodes.

    Parameters:
        data (DataFrame): Selected (possibly cloned) ways.
        data_ways_all (DataFrame): All ways as imported, with their node lists.
        data_nodes_all (DataFrame): All nodes as imported.
        config (GridConfig): compute_real_length gates this step; the two
            beeline thresholds decide which ways count as deviating.

    Returns:
        DataFrame: Copy of data with 'length_real', shared by all clones of a UID.
        DataFrame: One row per UID comparing real, beeline and straight length.
    """
    config = config or GridConfig()
    data = data.copy()

    if not config.compute_real_length:
        logger.info('Real line lengths are not calculated, the beeline length is used.')
        data['length_real'] = np.nan
        return data, pd.DataFrame(columns=LENGTHS_COLUMNS)

    start_time = time.time()
    logger.info('Start calculating the real length of each line...')

    coordinates = data_nodes_all.drop_duplicates(subset='id').set_index('id')[['lon', 'lat']]
    ways_by_uid = data_ways_all.drop_duplicates(subset='UID').set_index('UID')
    length_org = data.drop_duplicates(subset='UID').set_index('UID')['length']

    lengths = []
    for uid in tqdm(data['UID'].unique(), desc='Real line lengths'):
        node_ids = ways_by_uid.at[uid, 'nodes']
        nodes = coordinates.reindex(node_ids)

        if np.isnan(nodes.to_numpy(dtype=float)).any():
            logger.warning(f'   ATTENTION! Way element UID {uid} has nodes without coordinates. '
                           'Its beeline length is used instead.')
            continue

        lons = nodes['lon'].to_numpy()
        lats = nodes['lat'].to_numpy()
        length_all_segments = float(_equirectangular_km(lons, lats).sum())
        length_beeline = float(_equirectangular_km(lons[[0, -1]], lats[[0, -1]])[0])

        lengths.append({
            'UID': uid,
            'id': ways_by_uid.at[uid, 'id'],
            'num_nodes': len(node_ids),
            'length_all_segments': length_all_segments,
            'length_beeline': length_beeline,
            'length_org': float(length_org[uid]),
        })

    lengths = pd.DataFrame(lengths, columns=LENGTHS_COLUMNS[:6])

    beeline = lengths['length_beeline'].where(lengths['length_beeline'] > 0)
    lengths['length_diff_in_percent'] = lengths['length_all_segments'] / beeline * 100 - 100
    lengths['length_diff_absolut_in_km'] = lengths['length_all_segments'] - lengths['length_beeline']
    lengths['length_diff_between_org_and_beeline_percent'] = lengths['length_org'] / beeline * 100 - 100
    lengths['deviates'] = ((lengths['length_diff_in_percent'] > config.beeline_diff_threshold_percent)
                           & (lengths['length_diff_absolut_in_km'] > config.beeline_diff_threshold_km))

    # Broadcast the real length to all clones of the same UID
    data['length_real'] = data['UID'].map(lengths.set_index('UID')['length_all_segments']).astype(float)

    logger.info(f'   ... {int(lengths["deviates"].sum())} ways deviate from their beeline by more than '
                f'{config.beeline_diff_threshold_percent:g} % and '
                f'{config.beeline_diff_threshold_km:g} km')
    logger.info(f'   ... finished! ({time.time() - start_time:.3f} seconds)')

    return data, lengths


def get_tags(data):
    """
    Collect all tags of the ways, one row per UID.
    """
    start_time = time.time()
    logger.info('Start extracting all tags...')

    unique_ways = data.drop_duplicates(subset='UID')
    data_tags = pd.DataFrame([tags if isinstance(tags, dict) else {} for tags in unique_ways['tags']],
                             index=pd.RangeIndex(len(unique_ways)))
    data_tags.insert(0, 'UID', unique_ways['UID'].to_numpy())

    logger.info(f'   ... {len(data_tags.columns) - 1} different tags of {len(data_tags)} ways')
    logger.info(f'   ... finished! ({time.time() - start_time:.3f} seconds)')
    return data_tags


def add_lineID_clone_ways(data, country_code='AT'):
    """
    Creates a unique 'LineID' for each way element in the dataset.
    If a way needs to be cloned (has more than one system), it will be duplicated,
    tripled, or quadrupled, every copy gets a letter suffix.

    Parameters:
    - data (DataFrame): Input dataset containing way elements.
    - country_code (str): Two-letter country code.

    Returns:
    - DataFrame: New dataset with cloned ways and 'LineID' column.
    """
    start_time = time.time()
    logger.info('Start adding "LineID" and cloning ways...')

    data = data.reset_index(drop=True)
    base_lineID = np.array([f'{country_code}{i + 1:04d}' for i in range(len(data))], dtype=object)

    if 'systems' in data:
        num_clones = data['systems'].fillna(1).to_numpy(dtype=int).clip(min=1)
    else:
        num_clones = np.ones(len(data), dtype=int)

    # Phase 1 decides how many rows every way gets, phase 2 builds them
    data_new = data.loc[data.index.repeat(num_clones)].copy()
    position = data_new.groupby(level=0).cumcount().to_numpy()
    b_cloned = np.repeat(num_clones > 1, num_clones)

    data_new['LineID'] = [f'{base}{string.ascii_lowercase[j]}' if cloned else base
                          for base, j, cloned in zip(np.repeat(base_lineID, num_clones), position, b_cloned)]

    data_new = data_new.reset_index(drop=True)

    logger.info(f'   ... {int((num_clones == 2).sum())} ways doubled, '
                f'{int((num_clones == 3).sum())} tripled, '
                f'{int((num_clones == 4).sum())} quadrupled.')
    logger.info(f'   ... finished! ({time.time() - start_time:.3f} seconds)')

    return data_new


def add_node_ids(data, country_code='AT'):
    """
    Give every final endnode an ID. Endnodes with the same final coordinate
    and the same voltage level share one ID, the same coordinate at another
    voltage level is another node.

    Returns:
    - data (DataFrame): Copy of data with 'node1_nuid' and 'node2_nuid'.
    - nodes (DataFrame): Node table NodeID, Country, VoltageKV, Latitude, Longitude.
    """
    start_time = time.time()
    logger.info('Start adding node IDs...')

    endnodes = pd.concat([
        data[['lon1_final', 'lat1_final', 'voltage']].rename(
            columns={'lon1_final': 'lon', 'lat1_final': 'lat'}),
        data[['lon2_final', 'lat2_final', 'voltage']].rename(
            columns={'lon2_final': 'lon', 'lat2_final': 'lat'}),
    ], ignore_index=True)
    unique_nodes = endnodes.drop_duplicates().reset_index(drop=True)
    unique_nodes['NodeID'] = [f'{country_code}{i + 1:05d}' for i in range(len(unique_nodes))]

    nuid_of = dict(zip(zip(unique_nodes['lon'], unique_nodes['lat'], unique_nodes['voltage']),
                       unique_nodes['NodeID']))

    data = data.copy()
    for endnode in (1, 2):
        keys = zip(data[f'lon{endnode}_final'], data[f'lat{endnode}_final'], data['voltage'])
        data[f'node{endnode}_nuid'] = [nuid_of[key] for key in keys]

    nodes = pd.DataFrame({
        'NodeID': unique_nodes['NodeID'],
        'Country': country_code,
        'VoltageKV': unique_nodes['voltage'] / 1000,
        'Latitude': unique_nodes['lat'],
        'Longitude': unique_nodes['lon'],
    }, columns=NODES_COLUMNS)

    logger.info(f'   ... {len(nodes)} nodes at {len(unique_nodes[["lon", "lat"]].drop_duplicates())} locations')
    logger.info(f'   ... finished! ({time.time() - start_time:.3f} seconds)')
    return data, nodes


def _line_note(row):
    note = f'UID:{int(row["UID"])}'
    if pd.notna(row['vlevels']) and row['vlevels'] > 1:
        note += ', multiple vlevels'
    if pd.notna(row['systems']):
        note += f', {int(row["cables"])} cables - {int(row["systems"])} systems'
    if row['dc_candidate']:
        note += ', potentially DC'
    return note


def build_lines_table(data, country_code='AT', length_slack_multiplier=1.2):
    """
    Build the exported line table. All electrical parameters are placeholders
    which get filled by the grid modelling tools later on.
    """
    length = data['length_real'].fillna(data['length']) if 'length_real' in data else data['length']

    lines = pd.DataFrame({
        'LineID': data['LineID'],
        'Country': country_code,
        'FromNode': data['node1_nuid'],
        'ToNode': data['node2_nuid'],
        'VoltageKV': data['voltage'] / 1000,
        'R': 0,
        'XL': 0,
        'XC': 0,
        'Itherm': 0,
        'LengthKM': (length * length_slack_multiplier).round(2),
        'Capacity': 0,
        'Note': [_line_note(row) for _, row in data.iterrows()],
        'PhiPsMax': 0,
    }, columns=LINES_COLUMNS)
    return lines.reset_index(drop=True)


###############################################################
###############################################################
####################### MODULE 5: Pipeline ####################
###############################################################
###############################################################

@dataclass
class GridResult:
    lines: pd.DataFrame
    nodes: pd.DataFrame
    tags: pd.DataFrame
    ways: pd.DataFrame
    conversion: DegreesToKm
    excluded_ways: pd.DataFrame = field(default_factory=pd.DataFrame)
    busbars: pd.DataFrame = field(default_factory=pd.DataFrame)
    dc_candidates: pd.DataFrame = field(default_factory=pd.DataFrame)
    cables_per_way: pd.DataFrame = field(default_factory=pd.DataFrame)
    singular_ways: pd.DataFrame = field(default_factory=pd.DataFrame)
    lengths: pd.DataFrame = field(default_factory=pd.DataFrame)


def build_grid(data_nodes_all, data_ways_all, config=None):
    """
    Run all steps from the imported OSM tables to the line and node tables.

    Parameters:
        data_nodes_all (DataFrame): Nodes with columns id, lon, lat.
        data_ways_all (DataFrame): Ways with columns UID, id, nodes, tags.
        config (GridConfig): Settings, defaults if None.

    Returns:
        GridResult
    """
    config = config or GridConfig()
    start_time = time.time()

    ### MODULE 2: DATA ANALYSIS
    data, degrees_to_km_conversion = add_coordinates(data_ways_all, data_nodes_all)
    data = count_voltage_levels(data)
    data_excluded = data[data['voltage_status'] == 'excluded'].reset_index(drop=True)
    data = select_ways(data, config.voltage_levels_selected)

    data, data_busbars = delete_busbars(data, config.busbar_max_length)
    data, dc_candidates = count_possible_dc(data)
    data, cables_per_way = count_cables(data)

    ### MODULE 3: GROUP NODES
    distances = calc_distances_between_endpoints(data, config.use_spatial_index)

    data, nodes_stacked_pairs = calc_stacked_endnodes(data, distances)
    nodes_stacked_grouped = group_nodes(nodes_stacked_pairs)
    data = group_stacked_endnodes(data, nodes_stacked_grouped)

    data, nodes_neighbouring_pairs = calc_neighbouring_endnodes(data, distances, config.neighbourhood_threshold)
    nodes_neighbouring_grouped = group_nodes(nodes_neighbouring_pairs)
    data = group_neighbouring_endnodes(data, nodes_neighbouring_grouped, degrees_to_km_conversion)

    data = add_final_coordinates(data)

    ### MODULE 4: EXPORT
    data, data_singular_ways = delete_singular_ways(data)
    data, lengths = calc_real_lengths(data, data_ways_all, data_nodes_all, config)

    data_tags = get_tags(data)
    data = add_lineID_clone_ways(data, config.country_code)
    data, nodes = add_node_ids(data, config.country_code)
    lines = build_lines_table(data, config.country_code, config.length_slack_multiplier)

    logger.info(f'Grid with {len(lines)} lines and {len(nodes)} nodes built '
                f'in {time.time() - start_time:.3f} seconds')

    return GridResult(lines=lines, nodes=nodes, tags=data_tags, ways=data,
                      conversion=degrees_to_km_conversion, excluded_ways=data_excluded,
                      busbars=data_busbars, dc_candidates=dc_candidates,
                      cables_per_way=cables_per_way, singular_ways=data_singular_ways,
                      lengths=lengths)
