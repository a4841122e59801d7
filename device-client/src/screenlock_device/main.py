"""Entry point for the Screen Lock device client."""

import argparse
import logging
import sys
from pathlib import Path

from .config import Config, load_config
from .errors import InvalidCredential, ParentAccessRequired
from .loop import format_status, read_status, run_guard_loop
from .pins import PinManager
from .session import SessionAuthority
from .store import FileStore

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool, log_file: Path | None = None) -> None:
    """Configure logging for the application."""
    level = logging.DEBUG if verbose else logging.INFO
    handlers: list[logging.Handler] = [logging.StreamHandler()]

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=handlers,
    )


def get_config(args: argparse.Namespace) -> Config:
    """Load the configuration file, or defaults if it does not exist."""
    config_path: Path = args.config
    if not config_path.exists():
        logger.info("No configuration file at %s, using defaults", config_path)
        return Config()
    config = load_config(config_path)
    logger.info("Loaded configuration from %s", config_path)
    return config


def open_pins(args: argparse.Namespace) -> PinManager:
    config = get_config(args)
    session = SessionAuthority(
        FileStore(config.state_dir),
        session_timeout=config.session_timeout_minutes * 60,
        emergency_timeout=config.emergency_timeout_minutes * 60,
    )
    return PinManager(session)


def cmd_run(args: argparse.Namespace) -> None:
    """Run the guard interactively."""
    setup_logging(args.verbose, args.log_file)
    config = get_config(args)

    if args.start is not None and args.start <= 0:
        logger.error("--start must be a positive number of minutes")
        sys.exit(2)

    logger.info("State directory: %s", config.state_dir)
    run_guard_loop(
        config=config,
        enable_tray=not args.no_tray,
        enable_console=not args.no_console,
        start_minutes=args.start,
        pin=args.pin,
    )


def cmd_status(args: argparse.Namespace) -> None:
    """Print the current mode, lock and timer state."""
    setup_logging(args.verbose)
    config = get_config(args)
    print(format_status(read_status(config, FileStore(config.state_dir))))


def cmd_set_pin(args: argparse.Namespace) -> None:
    """Set a custom parent PIN."""
    setup_logging(args.verbose)
    pins = open_pins(args)
    confirm = args.confirm if args.confirm is not None else args.new
    try:
        pins.change_pin(args.new, confirm, current_pin=args.current)
    except InvalidCredential:
        logger.error("Current PIN is incorrect")
        sys.exit(1)
    except ParentAccessRequired:
        logger.error("Pass --current with a parent PIN")
        sys.exit(1)
    except ValueError as e:
        logger.error("%s", e)
        sys.exit(1)
    print("Custom PIN set")


def cmd_reset_pin(args: argparse.Namespace) -> None:
    """Reset the parent PIN to the defaults."""
    setup_logging(args.verbose)
    pins = open_pins(args)
    try:
        pins.reset_to_default(args.current)
    except InvalidCredential:
        logger.error("Current PIN is incorrect")
        sys.exit(1)
    print("Using default PINs")


def _add_common_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config", "-c",
        type=Path,
        default=Path("config.json"),
        help="Path to configuration file",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging",
    )


def _add_run_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        help="Also write logs to this file",
    )
    parser.add_argument(
        "--no-tray",
        action="store_true",
        help="Disable system tray icon",
    )
    parser.add_argument(
        "--no-console",
        action="store_true",
        help="Do not read commands from stdin",
    )
    parser.add_argument(
        "--start",
        type=int,
        metavar="MINUTES",
        help="Start a timer on launch (requires parent mode or --pin)",
    )
    parser.add_argument(
        "--pin",
        help="Parent PIN used to authorize --start",
    )


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Screen Lock: parental screen time timer",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  screenlock                          Run interactively with tray icon
  screenlock --start 60 --pin 1234    Run and start a 60 minute timer
  screenlock status                   Show mode, lock and timer state
  screenlock set-pin --new 4821 --current 1234
  screenlock reset-pin --current 4821
""",
    )

    subparsers = parser.add_subparsers(dest="command")

    run_parser = subparsers.add_parser("run", help="Run interactively")
    _add_common_args(run_parser)
    _add_run_args(run_parser)
    run_parser.set_defaults(func=cmd_run)

    status_parser = subparsers.add_parser("status", help="Show current state")
    _add_common_args(status_parser)
    status_parser.set_defaults(func=cmd_status)

    set_pin_parser = subparsers.add_parser("set-pin", help="Set a custom parent PIN")
    _add_common_args(set_pin_parser)
    set_pin_parser.add_argument("--new", required=True, help="New PIN (4+ characters)")
    set_pin_parser.add_argument("--confirm", help="Repeat the new PIN")
    set_pin_parser.add_argument("--current", help="Current parent PIN")
    set_pin_parser.set_defaults(func=cmd_set_pin)

    reset_pin_parser = subparsers.add_parser("reset-pin", help="Go back to the default PINs")
    _add_common_args(reset_pin_parser)
    reset_pin_parser.add_argument("--current", help="Current custom PIN")
    reset_pin_parser.set_defaults(func=cmd_reset_pin)

    # Add common args to main parser for default behavior
    _add_common_args(parser)
    _add_run_args(parser)

    args = parser.parse_args()

    # Default to run if no subcommand
    if args.command is None:
        cmd_run(args)
    else:
        args.func(args)


if __name__ == "__main__":
    main()
