"""
Raw keyboard input and command parsing.

Keys are read without echo and without waiting for Enter. Each tick the
dashboard asks for at most one key, so a stuck key can never starve the
renderer.
"""

import logging
import queue
import sys
import threading
from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import contextmanager
from enum import Enum

from tournament_tui.events import EventLog
from tournament_tui.exceptions import TerminalUnavailable

# Cross-platform keyboard input
if sys.platform == "win32":
    import msvcrt
else:
    import select
    import termios
    import tty

logger = logging.getLogger(__name__)

HIDE_CURSOR = "\033[?25l"
SHOW_CURSOR = "\033[?25h"


class TerminalDriver(ABC):
    """Platform terminal control used by the dashboard"""

    is_interactive = True

    def __init__(self, stdin=None, stdout=None):
        self.stdin = stdin if stdin is not None else sys.stdin
        self.stdout = stdout if stdout is not None else sys.stdout
        self.raw = False

    @abstractmethod
    def enable_raw_mode(self) -> None:
        """Switch to unbuffered, no-echo input. Raises TerminalUnavailable."""

    @abstractmethod
    def disable_raw_mode(self) -> None:
        """Restore the terminal to the mode it had before enable_raw_mode."""

    @abstractmethod
    def read_key_nonblocking(self) -> str | None:
        """Return one pending key or None without blocking."""

    def hide_cursor(self) -> None:
        self._write(HIDE_CURSOR)

    def show_cursor(self) -> None:
        self._write(SHOW_CURSOR)

    def _write(self, sequence: str) -> None:
        try:
            self.stdout.write(sequence)
            self.stdout.flush()
        except (OSError, ValueError) as e:
            logger.debug(f"Cursor control failed: {e}")


class PosixTerminal(TerminalDriver):
    """termios/cbreak based driver for Linux and macOS"""

    def __init__(self, stdin=None, stdout=None):
        super().__init__(stdin, stdout)
        self._saved_settings = None

    def enable_raw_mode(self) -> None:
        try:
            fd = self.stdin.fileno()
            self._saved_settings = termios.tcgetattr(fd)
            tty.setcbreak(fd)
        except (termios.error, OSError, ValueError, AttributeError) as e:
            self._saved_settings = None
            raise TerminalUnavailable(f"Cannot enable raw keyboard mode: {e}") from e
        self.raw = True

    def disable_raw_mode(self) -> None:
        if self._saved_settings is None:
            return
        try:
            termios.tcsetattr(self.stdin.fileno(), termios.TCSADRAIN, self._saved_settings)
        except (termios.error, OSError, ValueError) as e:
            logger.warning(f"Failed to restore terminal settings: {e}")
        finally:
            self._saved_settings = None
            self.raw = False

    def read_key_nonblocking(self) -> str | None:
        try:
            if select.select([self.stdin], [], [], 0)[0]:
                key = self.stdin.read(1)
                return key or None
        except (OSError, ValueError) as e:
            logger.debug(f"Keyboard check error: {e}")
        return None


class WindowsTerminal(TerminalDriver):
    """msvcrt based driver; the console is already unbuffered"""

    def enable_raw_mode(self) -> None:
        self.raw = True

    def disable_raw_mode(self) -> None:
        self.raw = False

    def read_key_nonblocking(self) -> str | None:
        try:
            if msvcrt.kbhit():
                return msvcrt.getwch()
        except OSError as e:
            logger.debug(f"Keyboard check error: {e}")
        return None


class NullTerminal(TerminalDriver):
    """Driver for non-interactive sessions; never yields keys"""

    is_interactive = False

    def enable_raw_mode(self) -> None:
        self.raw = False

    def disable_raw_mode(self) -> None:
        self.raw = False

    def read_key_nonblocking(self) -> str | None:
        return None

    def hide_cursor(self) -> None:
        pass

    def show_cursor(self) -> None:
        pass


def create_terminal_driver(stdin=None, stdout=None) -> TerminalDriver:
    """Pick the driver for the current platform and TTY status."""
    stdin = stdin if stdin is not None else sys.stdin
    try:
        interactive = stdin.isatty()
    except (AttributeError, ValueError):
        interactive = False

    if not interactive:
        logger.info("stdin is not a terminal, keyboard input disabled")
        return NullTerminal(stdin, stdout)
    if sys.platform == "win32":
        return WindowsTerminal(stdin, stdout)
    return PosixTerminal(stdin, stdout)


@contextmanager
def raw_terminal(driver: TerminalDriver, events: EventLog | None = None) -> Iterator[TerminalDriver]:
    """
    Hold the terminal in raw mode with the cursor hidden.

    Yields the driver actually in use: when raw mode cannot be enabled the
    session continues with a NullTerminal. Both the cursor and the terminal
    mode are restored on every exit path.
    """
    try:
        driver.enable_raw_mode()
    except TerminalUnavailable as e:
        logger.warning(str(e))
        if events is not None:
            events.warning("Keyboard input unavailable; running without commands")
        driver = NullTerminal(driver.stdin, driver.stdout)

    driver.hide_cursor()
    try:
        yield driver
    finally:
        try:
            driver.disable_raw_mode()
        finally:
            driver.show_cursor()


class Command(Enum):
    """User commands bound to single keys"""

    QUIT = "quit"
    START_PIPELINE = "start_pipeline"
    DOWNLOAD = "download"
    TRAIN = "train"
    UPLOAD = "upload"
    PAUSE = "pause"
    REFRESH = "refresh"
    HELP = "help"
    CLEAR_EVENTS = "clear_events"
    SYSTEM_INFO = "system_info"


KEY_BINDINGS: dict[str, Command] = {
    "q": Command.QUIT,
    "s": Command.START_PIPELINE,
    "d": Command.DOWNLOAD,
    "t": Command.TRAIN,
    "u": Command.UPLOAD,
    "p": Command.PAUSE,
    "r": Command.REFRESH,
    "h": Command.HELP,
    "c": Command.CLEAR_EVENTS,
    "i": Command.SYSTEM_INFO,
}

HELP_TEXT = {
    Command.QUIT: "Quit",
    Command.START_PIPELINE: "Start full pipeline",
    Command.DOWNLOAD: "Download datasets",
    Command.TRAIN: "Train models",
    Command.UPLOAD: "Upload predictions",
    Command.PAUSE: "Pause/resume",
    Command.REFRESH: "Refresh screen",
    Command.HELP: "Show help",
    Command.CLEAR_EVENTS: "Clear events",
    Command.SYSTEM_INFO: "System info",
}


class InputDispatcher:
    """
    Turns raw keys into Commands, one per tick.

    The dashboard polls the driver directly from its tick loop. The reader
    thread (``start_reader``) is for embedders whose loop blocks between
    ticks; keys then queue up and ``poll`` drains one per call.
    """

    def __init__(self, driver: TerminalDriver, events: EventLog | None = None, debug: bool = False):
        self.driver = driver
        self.events = events
        self.debug = debug
        self._keys: queue.Queue[str] = queue.Queue()
        self._reader: threading.Thread | None = None
        self._reader_stop = threading.Event()

    def try_read_key(self) -> str | None:
        """Return one pending key, from the reader queue when it is running."""
        if self._reader is not None:
            try:
                return self._keys.get_nowait()
            except queue.Empty:
                return None
        return self.driver.read_key_nonblocking()

    def parse(self, key: str | None) -> Command | None:
        if not key:
            return None
        if self.debug and self.events is not None:
            self.events.info(f"[debug] key {key!r}")
        if not key.isprintable() or key.isspace():
            return None

        command = KEY_BINDINGS.get(key.lower())
        if command is None:
            logger.info(f"Unrecognized key: {key!r}")
        return command

    def poll(self) -> Command | None:
        return self.parse(self.try_read_key())

    # Background reader

    def start_reader(self, interval: float = 0.01) -> None:
        """Read keys on a daemon thread into a queue."""
        if self._reader is not None:
            return
        self._reader_stop.clear()

        def read_loop():
            while not self._reader_stop.is_set():
                key = self.driver.read_key_nonblocking()
                if key:
                    self._keys.put(key)
                else:
                    self._reader_stop.wait(interval)

        self._reader = threading.Thread(target=read_loop, name="key-reader", daemon=True)
        self._reader.start()

    def stop_reader(self, timeout: float = 1.0) -> None:
        if self._reader is None:
            return
        self._reader_stop.set()
        self._reader.join(timeout)
        self._reader = None

    @property
    def reader_running(self) -> bool:
        return self._reader is not None
