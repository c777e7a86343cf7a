#!/usr/bin/env python
"""Main entry point for the tagnote MCP server."""
import argparse
import logging
import os
import sys
from pathlib import Path

from tagnote.config import config
from tagnote.observability import configure_logging
from tagnote.server.mcp_server import TagnoteMcpServer
from tagnote.services.importer import import_if_present
from tagnote.services.note_service import NoteService
from tagnote.storage.note_repository import NoteRepository


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="tagnote MCP Server")
    parser.add_argument(
        "--store",
        help="Store directory",
        type=str,
        default=os.environ.get("TAGNOTE_STORE_DIR")
    )
    parser.add_argument(
        "--log-level",
        help="Logging level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=os.environ.get("TAGNOTE_LOG_LEVEL", "INFO")
    )
    return parser.parse_args(argv)


def update_config(args):
    """Update the global config with command line arguments."""
    if args.store:
        config.store_dir = Path(args.store)


def main(argv=None):
    """Run the tagnote MCP server."""
    args = parse_args(argv)
    update_config(args)

    log_level = getattr(logging, args.log_level.upper(), logging.INFO)
    log_dir = configure_logging(log_dir=config.log_dir, level=log_level, console=True)

    logger = logging.getLogger(__name__)
    if log_dir:
        logger.info(f"Persistent logging enabled: {log_dir}")

    try:
        repository = NoteRepository(config.get_store_path())
        imported = import_if_present(repository)
        if imported:
            logger.info(f"Imported {imported} note(s) from legacy database")
    except Exception as e:
        logger.error(f"Failed to open note store: {e}")
        sys.exit(1)

    try:
        logger.info(f"Starting tagnote MCP server on {repository.root}")
        server = TagnoteMcpServer(NoteService(repository))
        server.run()
    except Exception as e:
        logger.error(f"Error running server: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
