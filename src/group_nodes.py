import logging
import time

import numpy as np
import pandas as pd
from scipy.spatial import cKDTree
from scipy.spatial.distance import cdist


logger = logging.getLogger(__name__)

# Distance between endpoints of the same way (incl. an endpoint to itself).
# The true value would be 0, but 0 is reserved for stacked endnodes.
SENTINEL = -1.0

COORDINATE_COLUMNS = ('lon', 'lat', 'x', 'y')


###############################################################
###############################################################
############### MODULE 3.1: ENDPOINT DISTANCES ################
###############################################################
###############################################################

def endpoint_xy(data):
    """
    Return the x/y coordinates of all endpoints as a (2n, 2) array.
    Row 2*i is endnode 1 of way i, row 2*i + 1 is its endnode 2.
    """
    n = len(data)
    all_points = np.empty((2 * n, 2))
    all_points[0::2, 0] = data['x1'].to_numpy(dtype=float)
    all_points[0::2, 1] = data['y1'].to_numpy(dtype=float)
    all_points[1::2, 0] = data['x2'].to_numpy(dtype=float)
    all_points[1::2, 1] = data['y2'].to_numpy(dtype=float)
    return all_points


class EndpointDistances:
    """
    Matrix "M" with the distances in km between all endpoints.

    Only the upper triangle holds distances, the lower triangle is NaN since
    distance A to B equals distance B to A. Both endnodes of the same way are
    set to SENTINEL against each other and against themselves.
    """

    def __init__(self, matrix):
        self.matrix = matrix
        self.matrix.flags.writeable = False

    @property
    def num_endpoints(self):
        return self.matrix.shape[0]

    def distance(self, a, b):
        if a > b:
            a, b = b, a
        return float(self.matrix[a, b])

    def find_pairs(self, lower, upper, include_zero=False):
        """
        All pairs (a, b), a < b, with lower < distance < upper, plus the pairs
        with distance 0 if include_zero is set. Row-major order.
        """
        with np.errstate(invalid='ignore'):
            b_pairs = (self.matrix > lower) & (self.matrix < upper)
            if include_zero:
                b_pairs |= self.matrix == 0
        rows, columns = np.where(b_pairs)
        return np.column_stack((rows, columns))

    def stacked_pairs(self):
        return self.find_pairs(0, 0, include_zero=True)

    def neighbouring_pairs(self, neighbourhood_threshold):
        return self.find_pairs(0, neighbourhood_threshold)


class EndpointPairIndex:
    """
    k-d tree over all endpoints. Answers the same pair queries as
    EndpointDistances without building the (2n, 2n) matrix.
    """

    def __init__(self, points):
        self.points = np.asarray(points, dtype=float)
        self.tree = cKDTree(self.points) if len(self.points) else None

    @property
    def num_endpoints(self):
        return len(self.points)

    def distance(self, a, b):
        if a // 2 == b // 2:
            return SENTINEL
        return float(np.sqrt(((self.points[a] - self.points[b]) ** 2).sum()))

    def _pairs_within(self, radius):
        if self.tree is None:
            return np.empty((0, 2), dtype=int), np.empty(0)

        pairs = self.tree.query_pairs(radius, output_type='ndarray')
        if len(pairs) == 0:
            return np.empty((0, 2), dtype=int), np.empty(0)

        pairs = np.sort(pairs, axis=1)
        # endnodes of the same way are never compared with each other
        pairs = pairs[pairs[:, 0] // 2 != pairs[:, 1] // 2]
        order = np.lexsort((pairs[:, 1], pairs[:, 0]))
        pairs = pairs[order]

        deltas = self.points[pairs[:, 0]] - self.points[pairs[:, 1]]
        distances = np.sqrt((deltas ** 2).sum(axis=1))
        return pairs, distances

    def find_pairs(self, lower, upper, include_zero=False):
        pairs, distances = self._pairs_within(max(upper, 0.0))
        b_pairs = (distances > lower) & (distances < upper)
        if include_zero:
            b_pairs |= distances == 0
        return pairs[b_pairs]

    def stacked_pairs(self):
        return self.find_pairs(0, 0, include_zero=True)

    def neighbouring_pairs(self, neighbourhood_threshold):
        return self.find_pairs(0, neighbourhood_threshold)


def calc_distances_between_endpoints(data, use_spatial_index=False):
    """
    Calculate the distances between all endpoints of the selected ways.

    Parameters:
        data (DataFrame): Selected ways with x1/y1/x2/y2 columns, projected
            with one shared DegreesToKm conversion.
        use_spatial_index (bool): Return a k-d tree instead of the matrix.

    Returns:
        EndpointDistances or EndpointPairIndex
    """
    start_time = time.time()
    logger.info('Start calculating distances between all endpoints...')

    all_points = endpoint_xy(data)

    if use_spatial_index:
        distances = EndpointPairIndex(all_points)
        logger.info(f'   ... built k-d tree over {len(all_points)} endpoints')
    else:
        n = len(data)
        M = np.full((2 * n, 2 * n), np.nan)

        if n > 0:
            # Fill the upper triangle, the lower one is implied by symmetry
            upper = np.triu_indices(2 * n, k=1)
            M[upper] = cdist(all_points, all_points)[upper]

            # Endnodes of the same way, and every endnode to itself
            starts = np.arange(n) * 2
            ends = starts + 1
            M[starts, starts] = SENTINEL
            M[ends, ends] = SENTINEL
            M[starts, ends] = SENTINEL
            M[ends, starts] = SENTINEL

        distances = EndpointDistances(M)
        logger.info(f'   ... {2 * n} x {2 * n} distance matrix')

    logger.info(f'   ... finished! ({time.time() - start_time:.3f} seconds)')
    return distances


###############################################################
###############################################################
################ MODULE 3.2: FIND AND GROUP ###################
###############################################################
###############################################################

def _flag_endnodes(data, pairs, column1, column2):
    data = data.copy()
    members = np.unique(np.asarray(pairs).ravel())
    data[column1] = np.isin(np.arange(len(data)) * 2, members)
    data[column2] = np.isin(np.arange(len(data)) * 2 + 1, members)
    return data, members


def calc_stacked_endnodes(data, distances):
    """
    Search every distance combination between all endpoints which have the
    value "0", indicating that two endpoints have the same coordinates and
    are stacked on top of each other.

    Parameters:
        data (DataFrame): Selected ways.
        distances (EndpointDistances or EndpointPairIndex)

    Returns:
        DataFrame: Copy of data with flags node1_stacked and node2_stacked.
        np.ndarray: Raw list of all pairs of stacked endnodes.
    """
    start_time = time.time()
    logger.info('Start finding all stacked endnodes...')

    nodes_stacked_pairs = distances.stacked_pairs()
    data, members = _flag_endnodes(data, nodes_stacked_pairs, 'node1_stacked', 'node2_stacked')

    if len(members) == 0:
        logger.info('   ... no endnode is stacked!')
    else:
        logger.info(f'   ... {len(members)} endnodes are stacked!')

    logger.info(f'   ... finished! ({time.time() - start_time:.3f} seconds)')
    return data, nodes_stacked_pairs


def calc_neighbouring_endnodes(data, distances, neighbourhood_threshold):
    """
    Search every distance combination between all endpoints which is bigger
    than "0" (stacked endnodes are handled separately) and lower than the
    neighbourhood threshold, which means both endpoints are in the vicinity
    of each other.

    Returns:
        DataFrame: Copy of data with flags node1_neighbour and node2_neighbour.
        np.ndarray: Raw list of all pairs of neighbouring endnodes.
    """
    start_time = time.time()
    logger.info('Start finding all neighbouring endnodes...')

    nodes_neighbouring_pairs = distances.neighbouring_pairs(neighbourhood_threshold)
    data, members = _flag_endnodes(data, nodes_neighbouring_pairs,
                                   'node1_neighbour', 'node2_neighbour')

    if len(members) == 0:
        logger.info('   ... no endnode is in a neighbourhood!')
    else:
        logger.info(f'   ... {len(members)} endnodes are in same neighbourhood!')

    logger.info(f'   ... finished! ({time.time() - start_time:.3f} seconds)')
    return data, nodes_neighbouring_pairs


class DisjointSet:
    """
    Union-find over endpoint indices, union by size with path compression.
    """

    def __init__(self):
        self.parent = {}
        self.size = {}

    def add(self, item):
        if item not in self.parent:
            self.parent[item] = item
            self.size[item] = 1

    def find(self, item):
        self.add(item)
        root = item
        while self.parent[root] != root:
            root = self.parent[root]
        # compress the path
        while self.parent[item] != root:
            self.parent[item], item = root, self.parent[item]
        return root

    def union(self, a, b):
        """Merge the sets of a and b. Returns False if they already were one set."""
        root_a = self.find(a)
        root_b = self.find(b)
        if root_a == root_b:
            return False
        if self.size[root_a] < self.size[root_b]:
            root_a, root_b = root_b, root_a
        self.parent[root_b] = root_a
        self.size[root_a] += self.size[root_b]
        return True

    def groups(self):
        members = {}
        for item in self.parent:
            members.setdefault(self.find(item), []).append(item)
        return sorted(sorted(group) for group in members.values())


def group_nodes(pairs_input):
    """
    Groups nodes based on pairs of connections. Nodes that are directly or
    indirectly connected will be grouped together: if A is paired with B,
    C with D and B with D, there will be one group {A, B, C, D}.

    Parameters:
    pairs_input : list of pairs
        Each element is a pair of endpoint indices.

    Returns:
    list_groups : list of lists
        One sorted list per group, the groups ordered by their lowest member.
    """
    start_time = time.time()
    logger.info('Start grouping all pairs...')

    disjoint_set = DisjointSet()
    for partner1, partner2 in pairs_input:
        disjoint_set.union(int(partner1), int(partner2))

    list_groups = disjoint_set.groups()

    num_groups = len(list_groups)
    total_nodes = sum(len(group) for group in list_groups)
    avg_nodes_per_group = total_nodes / num_groups if num_groups > 0 else 0
    logger.info(f'   ... {total_nodes} nodes will be grouped together in {num_groups} groups, '
                f'with an average of {avg_nodes_per_group:.2f} nodes per group.')
    logger.info(f'   ... finished! ({time.time() - start_time:.3f} seconds)')

    return list_groups


###############################################################
###############################################################
############### MODULE 3.3: GROUPED COORDINATES ###############
###############################################################
###############################################################

def _interleave(data, column):
    values = np.empty(2 * len(data))
    values[0::2] = data[f'{column}1'].to_numpy(dtype=float)
    values[1::2] = data[f'{column}2'].to_numpy(dtype=float)
    return values


def _grouped_arrays(data):
    grouped = {}
    for column in COORDINATE_COLUMNS:
        if f'{column}1_grouped' in data:
            # row-major ravel of [col1, col2] gives the 2*i / 2*i + 1 order
            grouped[column] = data[[f'{column}1_grouped', f'{column}2_grouped']] \
                .to_numpy(dtype=float, copy=True).ravel()
        else:
            grouped[column] = np.full(2 * len(data), np.nan)
    return grouped


def _store_grouped(data, grouped):
    data = data.copy()
    for column, values in grouped.items():
        data[f'{column}1_grouped'] = values[0::2]
        data[f'{column}2_grouped'] = values[1::2]
    return data


def group_stacked_endnodes(data, nodes_stacked_grouped):
    """
    Copy the lon/lat/x/y coordinates of the first member of every stacked
    group to all other members, so all of them share exactly the same
    coordinate.

    Parameters:
        data (DataFrame): Selected ways.
        nodes_stacked_grouped (list of lists): Output of group_nodes().

    Returns:
        DataFrame: Copy of data with the *_grouped coordinate columns.
    """
    start_time = time.time()
    logger.info('Start adding coordinates of stacked groups...')

    raw = {column: _interleave(data, column) for column in COORDINATE_COLUMNS}
    grouped = _grouped_arrays(data)

    for group in nodes_stacked_grouped:
        first_member = group[0]
        for column in COORDINATE_COLUMNS:
            grouped[column][group] = raw[column][first_member]

    logger.info(f'   ... finished! ({time.time() - start_time:.3f} seconds)')
    return _store_grouped(data, grouped)


def group_neighbouring_endnodes(data, nodes_neighbouring_grouped, degrees_to_km_conversion):
    """
    Calculate the mean lon/lat of all members of every neighbouring group and
    copy it to every member. The x/y values are derived again from the mean
    lon/lat with the shared conversion, so the group gets a new point which
    differs from all of its members.

    Returns:
        DataFrame: Copy of data, *_grouped columns overwritten for members.
    """
    start_time = time.time()
    logger.info('Start grouping neighbouring endnodes...')

    raw_lon = _interleave(data, 'lon')
    raw_lat = _interleave(data, 'lat')
    grouped = _grouped_arrays(data)

    for group in nodes_neighbouring_grouped:
        mean_lon = raw_lon[group].mean()
        mean_lat = raw_lat[group].mean()
        mean_x, mean_y = degrees_to_km_conversion.to_xy(mean_lon, mean_lat)

        grouped['lon'][group] = mean_lon
        grouped['lat'][group] = mean_lat
        grouped['x'][group] = mean_x
        grouped['y'][group] = mean_y

    logger.info(f'   ... finished! ({time.time() - start_time:.3f} seconds)')
    return _store_grouped(data, grouped)


def add_final_coordinates(data):
    """
    Select the final coordinates: if an endnode got grouped (because it was
    stacked and/or in a neighbourhood), the grouped coordinate is the final
    one. If not, the original coordinate is taken.

    Returns:
        DataFrame: Copy of data with lon/lat/x/y 1/2 _final columns.
    """
    start_time = time.time()
    logger.info('Start adding final coordinates...')

    data = data.copy()
    for endnode in (1, 2):
        if f'lon{endnode}_grouped' in data:
            b_grouped = data[f'lon{endnode}_grouped'].notna()
        else:
            b_grouped = pd.Series(False, index=data.index)

        for column in COORDINATE_COLUMNS:
            raw = data[f'{column}{endnode}']
            if b_grouped.any():
                final = raw.where(~b_grouped, data[f'{column}{endnode}_grouped'])
            else:
                final = raw
            data[f'{column}{endnode}_final'] = final.astype(float)

    logger.info(f'   ... finished! ({time.time() - start_time:.3f} seconds)')
    return data
