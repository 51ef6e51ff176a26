import logging
import os
import time

import geopandas as gpd
import numpy as np
import pandas as pd
from shapely.geometry import LineString


logger = logging.getLogger(__name__)

CRS = 'EPSG:4326'


def lines_to_geodataframe(lines, ways):
    """
    Attach a straight LineString between the final endnodes to every line.
    'ways' has to be the table the lines were built from (same order).
    """
    geometry = [LineString([(lon1, lat1), (lon2, lat2)]) for lon1, lat1, lon2, lat2 in zip(
        ways['lon1_final'], ways['lat1_final'], ways['lon2_final'], ways['lat2_final'])]
    return gpd.GeoDataFrame(lines.copy(), geometry=geometry, crs=CRS)


def nodes_to_geodataframe(nodes):
    return gpd.GeoDataFrame(nodes.copy(), geometry=gpd.points_from_xy(nodes['Longitude'], nodes['Latitude']),
                            crs=CRS)


def _plain_dtypes(df):
    # Nullable extension dtypes are not understood by every writer
    df = df.copy()
    for col in df.select_dtypes(include=["Float32", "Float64", "Int64"]).columns:
        df[col] = df[col].astype(np.float64)
    return df


def export_data(result, output_dir, country_code=None):
    """
    Exports the line and node tables to Excel and GeoPackage formats.

    Parameters:
    - result (GridResult): Output of build_grid().
    - output_dir: Directory for saving exported files, created if missing.
    - country_code: Country code used for the file names, taken from the
      line table if None.

    Returns:
    - dict: Paths of all written files.
    """
    start_time = time.time()
    logger.info('Start exporting data to Excel and GeoPackage files... (may take a few seconds)')

    os.makedirs(output_dir, exist_ok=True)

    if country_code is None:
        country_code = result.lines['Country'].iloc[0] if len(result.lines) else 'XX'

    paths = {
        'lines_excel': os.path.join(output_dir, f'tbl_Lines_{country_code}.xlsx'),
        'nodes_excel': os.path.join(output_dir, f'tbl_Nodes_{country_code}.xlsx'),
    }

    lines = _plain_dtypes(result.lines)
    nodes = _plain_dtypes(result.nodes)
    tags = _plain_dtypes(result.tags)

    with pd.ExcelWriter(paths['lines_excel'], engine='openpyxl') as writer:
        lines.to_excel(writer, sheet_name='Lines', index=False)
        tags.to_excel(writer, sheet_name='Tags', index=False)
    logger.info(f'   INFO: Exported lines to {paths["lines_excel"]}')

    nodes.to_excel(paths['nodes_excel'], sheet_name='Nodes', index=False, engine='openpyxl')
    logger.info(f'   INFO: Exported nodes to {paths["nodes_excel"]}')

    if lines.empty:
        logger.warning('   ATTENTION! There are no lines, no GeoPackage files are written.')
    else:
        paths['lines_gpkg'] = os.path.join(output_dir, 'table_lines.gpkg')
        paths['nodes_gpkg'] = os.path.join(output_dir, 'table_nodes.gpkg')

        lines_to_geodataframe(lines, result.ways).to_file(paths['lines_gpkg'], layer='lines', driver='GPKG')
        nodes_to_geodataframe(nodes).to_file(paths['nodes_gpkg'], layer='nodes', driver='GPKG')
        logger.info(f'   INFO: Exported GeoPackages to {output_dir}')

    logger.info(f'   ... finished! ({time.time() - start_time:.3f} seconds)')
    return paths
