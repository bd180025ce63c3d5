"""
Command line entry point for compose-apps-exporter
"""
import argparse
import logging
import sys

from compose_apps_exporter import __version__
from compose_apps_exporter.aggregator import render_exposition
from compose_apps_exporter.config import ENV_PREFIX, SYSTEM_CONFIG_PATH, load_config, user_config_path
from compose_apps_exporter.errors import ConfigError, ScrapeFatalError

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def build_parser() -> argparse.ArgumentParser:
    epilog = (
        "From lowest to highest priority, configuration is loaded from:\n"
        "    - Default values\n"
        f"    - User configuration file ({user_config_path()})\n"
        f"    - System configuration file ({SYSTEM_CONFIG_PATH})\n"
        f"    - Environment variables (prefixed with '{ENV_PREFIX}')\n"
        "    - Command line arguments\n"
    )
    parser = argparse.ArgumentParser(
        prog='compose-apps-exporter',
        description='Prometheus metrics exporter for docker compose apps.',
        epilog=epilog,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    # Defaults stay None so only flags given by the user override other layers
    parser.add_argument('-c', '--compose-configs-glob', action='append', metavar='GLOB',
                        help='Glob pattern for docker-compose.yml files or directories containing them '
                             '(repeatable, default: /etc/compose-apps/*)')
    parser.add_argument('-p', '--port', type=int, help='Port to listen on (default: 9179)')
    parser.add_argument('-a', '--address', help='Address to listen on (default: 127.0.0.1)')
    parser.add_argument('--runtime-binary', help='Docker CLI executable (default: docker)')
    parser.add_argument('--query-timeout', type=float, help='Seconds allowed per project query (default: 10)')
    parser.add_argument('--scrape-timeout', type=float, help='Seconds allowed per scrape (default: 30)')
    parser.add_argument('--max-workers', type=int, help='Concurrent project queries (default: 4)')
    parser.add_argument('--log-level', help='Logging level (default: INFO)')
    parser.add_argument('--once', action='store_true',
                        help='Run a single scrape, print the metrics and exit')
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    return parser


def cli_overrides(args: argparse.Namespace) -> dict:
    return {
        'compose_configs_glob': args.compose_configs_glob,
        'port': args.port,
        'address': args.address,
        'runtime_binary': args.runtime_binary,
        'query_timeout': args.query_timeout,
        'scrape_timeout': args.scrape_timeout,
        'max_workers': args.max_workers,
        'log_level': args.log_level,
    }


def run_once(config) -> int:
    """Scrape once and write the exposition text to stdout."""
    from compose_apps_exporter.scrape import run_scrape

    try:
        result = run_scrape(config)
    except ScrapeFatalError as e:
        logger.error(f"Scrape failed: {e}")
        return 1

    sys.stdout.write(render_exposition(result.samples).decode('utf-8'))
    return 0


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = load_config(cli_overrides(args))
    except ConfigError as e:
        print(f"Error loading config: \n{e}", file=sys.stderr)
        return 1

    logging.basicConfig(
        level=getattr(logging, config.log_level),
        format=LOG_FORMAT,
        # stdout carries the metrics in --once mode
        handlers=[logging.StreamHandler(sys.stderr if args.once else sys.stdout)],
    )

    if args.once:
        return run_once(config)

    from compose_apps_exporter.server import serve

    try:
        serve(config)
    except OSError as e:
        logger.error(f"Server error: {e}")
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
