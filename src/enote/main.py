#!/usr/bin/env python
"""Main entry point for the ENote command server."""
import argparse
import logging
import os
import sys

from enote.config import config
from enote.models.db_models import init_db
from enote.observability import configure_logging
from enote.server.command_server import ENoteCommandServer


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="ENote command server")
    parser.add_argument(
        "--database-url",
        help="SQLAlchemy database URL (defaults to the SQLite file under the base dir)",
        type=str,
        default=os.environ.get("ENOTE_DATABASE_URL")
    )
    parser.add_argument(
        "--log-level",
        help="Logging level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=config.log_level
    )
    parser.add_argument(
        "--debug",
        help="Expose storage and internal error details to the caller",
        action="store_true",
        default=config.debug
    )
    return parser.parse_args(argv)


def update_config(args):
    """Update the global config with command line arguments."""
    if args.database_url:
        config.database_url = args.database_url
    config.log_level = args.log_level
    config.debug = args.debug


def main(argv=None):
    """Run the ENote command server."""
    args = parse_args(argv)
    update_config(args)

    # Configure logging (console + persistent file logging with rotation)
    log_level = getattr(logging, config.log_level.upper(), logging.INFO)
    try:
        log_dir = configure_logging(log_dir=config.log_dir, level=log_level, console=True)
    except OSError as e:
        # Fall back to basic console logging if the log directory is unusable
        logging.basicConfig(level=log_level)
        logging.getLogger(__name__).warning(f"Failed to configure file logging: {e}")
        log_dir = None

    logger = logging.getLogger(__name__)
    if log_dir:
        logger.info(f"Persistent logging enabled: {log_dir}")

    # Single engine shared by all repositories
    try:
        logger.info(f"Using database: {config.get_db_url()}")
        engine = init_db(config)
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        sys.exit(1)

    try:
        logger.info("Starting ENote command server")
        server = ENoteCommandServer(engine=engine, debug=config.debug)
        server.run()
    except Exception as e:
        logger.error(f"Error running server: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
