"""Shared argparse plumbing for the devtrail command-line tools."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any

from ..config import DevtrailConfig
from ..logging_config import configure_logging

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1


def add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config",
        type=Path,
        help="Config file (default: ~/.claude/devtrail-config.json)",
    )
    parser.add_argument(
        "--log-level",
        help="Log level (default: config value or DEVTRAIL_LOG_LEVEL)",
    )


def load_config(args: argparse.Namespace) -> DevtrailConfig:
    """Load configuration and configure logging from parsed arguments."""
    config = DevtrailConfig.load(args.config)
    if args.log_level:
        config.logging.level = args.log_level.upper()
    configure_logging(config.logging.level, config.logging.log_dir)
    return config


def print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, default=str))


def run(handler: Callable[[argparse.Namespace], int], args: argparse.Namespace) -> int:
    """
    Run a command handler, mapping unexpected exceptions to exit code 1.

    Argument errors never reach here; argparse exits with 2 on its own.
    """
    try:
        return handler(args)
    except KeyboardInterrupt:
        return EXIT_FAILURE
    except Exception as e:
        logger.exception(f"Command failed: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FAILURE


__all__ = ["EXIT_OK", "EXIT_FAILURE", "add_common_arguments", "load_config", "print_json", "run"]
