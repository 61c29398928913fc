"""
Check-in Service - Main Entry Point

Starts the kiosk/admin HTTP API for staff enrollment and check-in.
"""

import argparse
import dataclasses
import os
import sys
from pathlib import Path

from .app import create_app
from .config import load_config
from .logging_config import get_logger, setup_logging
from .services import build_services

logger = get_logger(__name__)


def _load_local_env() -> None:
    """Load environment variables from checkin_service/.env if present."""
    env_path = Path(__file__).resolve().parent / '.env'
    if not env_path.exists():
        return

    for raw_line in env_path.read_text().splitlines():
        line = raw_line.strip()
        if not line or line.startswith('#') or '=' not in line:
            continue
        key, value = line.split('=', 1)
        os.environ.setdefault(key.strip(), value.strip())


def parse_args() -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description='Check-in Service - Staff Enrollment and Face Check-in'
    )

    parser.add_argument(
        '--port',
        type=int,
        help='HTTP port (or set HTTP_PORT)'
    )

    parser.add_argument(
        '--store-url',
        type=str,
        help='Record store URL (or set STORE_URL, empty = in-memory)'
    )

    parser.add_argument(
        '--debug',
        action='store_true',
        help='Enable debug logging'
    )

    return parser.parse_args()


def main() -> None:
    """Main entry point."""
    _load_local_env()
    args = parse_args()

    try:
        config = load_config()
    except ValueError as e:
        print(f'Invalid configuration: {e}', file=sys.stderr)
        sys.exit(2)

    overrides = {}
    if args.port is not None:
        overrides['http_port'] = args.port
    if args.store_url is not None:
        overrides['store_url'] = args.store_url
    if args.debug:
        overrides['debug_mode'] = True
    if overrides:
        config = dataclasses.replace(config, **overrides)

    setup_logging(config.kiosk_id, config.debug_mode)

    logger.info('=' * 60)
    logger.info('Check-in Service')
    logger.info('=' * 60)
    logger.info(f'Kiosk: {config.kiosk_id}')
    logger.info(f"Store: {config.store_url or 'in-memory'}")
    logger.info(f"Capture angles: {', '.join(config.capture_angles)}")
    logger.info(f'Confidence threshold: {config.confidence_threshold}')
    logger.info('=' * 60)

    try:
        services = build_services(config)
        app = create_app(services)
        app.run(
            host='0.0.0.0',
            port=config.http_port,
            threaded=True,
            debug=False,
            use_reloader=False
        )
    except KeyboardInterrupt:
        logger.info('Received keyboard interrupt, shutting down...')
        sys.exit(0)
    except Exception as e:
        logger.error(f'Fatal error: {e}', exc_info=True)
        sys.exit(1)


if __name__ == '__main__':
    main()
