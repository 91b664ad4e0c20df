"""
Logging configuration for the dashboard process.

The full-screen display owns stdout, so records go to a file instead of
the console while the dashboard runs.
"""

import logging
from pathlib import Path

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DEFAULT_LOG_FILE = "tournament_tui.log"


def setup_logging(
    log_file: str | Path | None = DEFAULT_LOG_FILE, verbose: bool = False
) -> logging.Handler:
    """
    Route package logging to ``log_file``.

    Args:
        log_file: Destination file; ``None`` discards records
        verbose: Log at DEBUG instead of INFO

    Returns:
        The installed handler
    """
    level = logging.DEBUG if verbose else logging.INFO

    if log_file is None:
        handler: logging.Handler = logging.NullHandler()
    else:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(path, encoding="utf-8")
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.setLevel(level)

    root = logging.getLogger()
    for existing in list(root.handlers):
        if isinstance(existing, logging.StreamHandler) and not isinstance(
            existing, logging.FileHandler
        ):
            root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)

    # Third-party chatter
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    return handler
