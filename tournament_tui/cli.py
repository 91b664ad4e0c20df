"""
Command-line entry point: ``tournament-tui``.
"""

import argparse
import logging
import sys
from dataclasses import replace

from rich.console import Console

from tournament_tui import __version__
from tournament_tui.config import ConfigError, load_config
from tournament_tui.dashboard import run_dashboard
from tournament_tui.exceptions import FatalInitError
from tournament_tui.logging_setup import DEFAULT_LOG_FILE, setup_logging

logger = logging.getLogger(__name__)
console = Console()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tournament-tui",
        description="Terminal dashboard for the tournament data, training and submission pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Keys:
  q quit   s start pipeline   d download   t train   u upload
  p pause  r refresh          h help       c clear   i system info

Environment Variables:
  TOURNAMENT_DATA_DIR     Override data_dir
  TOURNAMENT_MODEL_DIR    Override model_dir
  TOURNAMENT_AUTO_SUBMIT  Override auto_submit
  TUI_DEBUG               Log key presses and poll failures to the event feed
        """,
    )
    parser.add_argument(
        "--version", "-V", action="version", version=f"tournament-tui {__version__}"
    )
    parser.add_argument(
        "--config", "-c", metavar="PATH", help="YAML config file (default: config.yaml)"
    )
    parser.add_argument(
        "--auto-start", action="store_true", help="Start the full pipeline shortly after launch"
    )
    parser.add_argument(
        "--log-file", metavar="PATH", default=DEFAULT_LOG_FILE, help="Log file path"
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Log at DEBUG level")
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        setup_logging(args.log_file, args.verbose)
        config = load_config(args.config)
    except ConfigError as e:
        console.print(f"[red]✗ Configuration error: {e}[/red]")
        return 1
    except OSError as e:
        console.print(f"[red]✗ Cannot open log file: {e}[/red]")
        return 1

    if args.auto_start:
        config = replace(config, tui=replace(config.tui, auto_start_pipeline=True))

    # Real collaborators are injected through run_dashboard; the CLI always
    # drives the simulated ones.
    logger.info("Running with simulated collaborators")

    try:
        return run_dashboard(config)
    except KeyboardInterrupt:
        console.print("\n[yellow]Dashboard interrupted[/yellow]")
        return 130
    except FatalInitError as e:
        console.print(f"[red]✗ {e}[/red]")
        return 1
    except Exception as e:
        console.print(f"[red]✗ Unexpected error: {e}[/red]")
        if args.verbose:
            console.print_exception()
        return 1


if __name__ == "__main__":
    sys.exit(main())
