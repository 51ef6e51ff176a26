import argparse
import logging
import os
import sys

from pydantic import ValidationError

from grid_config import GridConfig, setup_logging
from grid_export import export_data
from map2grid import build_grid
from osm_import import load_overpass_json, separate_raw_data


logger = logging.getLogger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description='Build line and node tables of a transmission grid from OSM power data',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  map2grid export.json
  map2grid export.json --config config.yaml --output-dir results
  map2grid export.json --country-code DE --voltage-levels 220000 380000

Input:
  "raw OSM data" export of overpass-turbo, e.g. of the query
  [out:json]; area["ISO3166-1"="AT"]->.a; way["power"="line"](area.a); (._;>;); out;

Configuration:
  Command line options override config file settings.
        """
    )

    parser.add_argument('input_file', help='Path to the overpass *.json export')
    parser.add_argument('--config', default=None,
                        help='Path to YAML configuration file (default: built-in settings)')
    parser.add_argument('--output-dir', default='output',
                        help='Directory for the exported files (default: output)')

    # Override options for key parameters
    parser.add_argument('--country-code',
                        help='Two letter country code prefixing all IDs (overrides config)')
    parser.add_argument('--neighbourhood-threshold', type=float,
                        help='Radius in km for grouping endnodes (overrides config)')
    parser.add_argument('--busbar-max-length', type=float,
                        help='Max. length in km of a busbar/bay (overrides config)')
    parser.add_argument('--length-slack-multiplier', type=float,
                        help='Multiplier of the exported line length (overrides config)')
    parser.add_argument('--voltage-levels', type=int, nargs='+', metavar='VOLTS',
                        help='Voltage levels in V to process, e.g. 220000 380000 (overrides config)')
    parser.add_argument('--no-real-length', action='store_true',
                        help='Use the beeline instead of the real line course')
    parser.add_argument('--spatial-index', action='store_true',
                        help='Search endnode pairs with a k-d tree instead of a distance matrix')
    parser.add_argument('--log-level', choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                        help='Logging level (overrides config)')

    return parser.parse_args(argv)


def load_config(args):
    config = GridConfig.from_yaml(args.config) if args.config else GridConfig()

    overrides = {}
    if args.country_code is not None:
        overrides['country_code'] = args.country_code
    if args.neighbourhood_threshold is not None:
        overrides['neighbourhood_threshold'] = args.neighbourhood_threshold
    if args.busbar_max_length is not None:
        overrides['busbar_max_length'] = args.busbar_max_length
    if args.length_slack_multiplier is not None:
        overrides['length_slack_multiplier'] = args.length_slack_multiplier
    if args.voltage_levels is not None:
        overrides['voltage_levels_selected'] = args.voltage_levels
    if args.no_real_length:
        overrides['compute_real_length'] = False
    if args.spatial_index:
        overrides['use_spatial_index'] = True
    if args.log_level is not None:
        overrides['log_level'] = args.log_level

    if overrides:
        config = GridConfig.model_validate({**config.model_dump(), **overrides})
    return config


def main(argv=None):
    args = parse_args(argv)

    try:
        config = load_config(args)
        setup_logging(config.log_level)
        logger.info(f'Configuration: country_code={config.country_code}, '
                    f'neighbourhood_threshold={config.neighbourhood_threshold} km, '
                    f'busbar_max_length={config.busbar_max_length} km, '
                    f'length_slack_multiplier={config.length_slack_multiplier}')

        elements = load_overpass_json(args.input_file)
        data_nodes_all, data_ways_all = separate_raw_data(elements)
        result = build_grid(data_nodes_all, data_ways_all, config)
        paths = export_data(result, args.output_dir, config.country_code)

    except ValidationError as e:
        setup_logging()
        logger.error(f'Invalid configuration: {e}')
        return 1
    except (ValueError, OSError) as e:
        setup_logging()
        logger.error(f'Cannot process {args.input_file}: {e}')
        return 1

    print('\n' + '=' * 60)
    print('MAP2GRID SUMMARY')
    print('=' * 60)
    print(f'Input file: {args.input_file}')
    print(f'Lines: {len(result.lines):,}')
    print(f'Nodes: {len(result.nodes):,}')
    print(f'Busbars removed: {len(result.busbars):,}')
    print(f'Ways excluded by voltage: {len(result.excluded_ways):,}')
    print(f'Singular ways removed: {len(result.singular_ways):,}')
    print('\nOutput files:')
    for path in paths.values():
        print(f'  {os.path.abspath(path)}')
    print('=' * 60)
    return 0


if __name__ == '__main__':
    sys.exit(main())
