from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import ValidationError

from kudash import __version__
from kudash.lib.config_parser import generate_sample_config, load_config

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False, quiet: bool = False) -> None:
    """Configure logging.

    Warnings and errors only by default, so log records do not interleave
    with the prompt.

    Args:
        verbose: Enable debug logging
        quiet: Suppress everything below errors
    """
    if quiet:
        level = logging.ERROR
    elif verbose:
        level = logging.DEBUG
    else:
        level = logging.WARNING

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%H:%M:%S'
    )


def build_parser() -> argparse.ArgumentParser:
    """Build the command-line argument parser."""
    parser = argparse.ArgumentParser(
        prog="kudash",
        description="Interactive shell with pipes, redirection and background jobs",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    getting_started = parser.add_argument_group(
        'Getting Started',
        'Configuration and one-shot execution'
    )
    getting_started.add_argument(
        '--config', '-c',
        type=Path,
        default=None,
        help='Path to configuration file (default: $KUDASH_CONFIG or ~/.config/kudash/config.yaml)'
    )
    getting_started.add_argument(
        '--generate-config',
        type=Path,
        metavar='PATH',
        help='Generate a sample configuration file and exit'
    )
    getting_started.add_argument(
        '--command', '-e',
        metavar='LINE',
        help='Execute one command line and exit with its status (e.g., "ls -l | wc -l")'
    )

    general = parser.add_argument_group('General Options')
    general.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose (debug) logging'
    )
    general.add_argument(
        '--quiet', '-q',
        action='store_true',
        help='Only log errors'
    )
    general.add_argument(
        '--version',
        action='version',
        version=f"%(prog)s {__version__}"
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point.

    Args:
        argv: Command-line arguments (default: sys.argv[1:])

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    args = build_parser().parse_args(argv)
    setup_logging(verbose=args.verbose, quiet=args.quiet)

    if args.generate_config:
        generate_sample_config(args.generate_config)
        print(f"Sample configuration written to {args.generate_config}")
        return 0

    try:
        config = load_config(args.config)
    except FileNotFoundError as e:
        logger.error(str(e))
        return 1
    except (yaml.YAMLError, ValidationError) as e:
        logger.error(f"Invalid configuration: {e}")
        return 1

    from kudash.shell import ExecutionContext, ExitSignal, run_command, run_repl

    context = ExecutionContext(config)

    if args.command is not None:
        signal = run_command(args.command, context)
        return 1 if signal == ExitSignal.COMMAND_ERROR else 0

    logger.info("Starting interactive shell...")
    run_repl(context)
    return 0


if __name__ == "__main__":
    sys.exit(main())
