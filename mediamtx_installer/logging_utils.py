from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

from colorama import Fore, Style, just_fix_windows_console

FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_LEVEL_COLORS = {
    logging.DEBUG: Fore.CYAN,
    logging.INFO: Fore.BLUE,
    logging.WARNING: Fore.YELLOW,
    logging.ERROR: Fore.RED,
    logging.CRITICAL: Fore.RED,
}


class ConsoleFormatter(logging.Formatter):
    """`[LEVEL] message`, coloured when writing to a terminal."""

    def __init__(self, color: bool = True) -> None:
        super().__init__("%(message)s")
        self.color = color

    def format(self, record: logging.LogRecord) -> str:
        msg = super().format(record)
        label = f"[{record.levelname}]"
        if self.color:
            label = f"{_LEVEL_COLORS.get(record.levelno, '')}{label}{Style.RESET_ALL}"
        return f"{label} {msg}"


def _open_file_handler(path: str) -> logging.FileHandler:
    Path(os.path.dirname(path) or ".").mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path)
    os.chmod(path, 0o600)
    return handler


def configure_logging(
    log_path: str,
    level: int = logging.INFO,
    also_console: bool = True,
    console_stream=None,
) -> str:
    """Configure the root logger for one installer run.

    Notes:
    - The log may hold host details, so the file is created mode 0600.
    - If the requested path is not writable, a file of the same name in the
      working directory is used instead and the fallback is logged.
    - Calling this again replaces the handlers installed by the previous call.

    Returns the actual file path being used.
    """

    root = logging.getLogger()
    root.setLevel(level)

    for h in getattr(root, "_mediamtx_handlers", []):
        root.removeHandler(h)
        h.close()

    handlers: list[logging.Handler] = []
    fallback_reason: Optional[str] = None
    try:
        file_handler = _open_file_handler(log_path)
        chosen_path = log_path
    except OSError as e:
        fallback_reason = str(e)
        chosen_path = str(Path.cwd() / Path(log_path).name)
        file_handler = _open_file_handler(chosen_path)

    file_handler.setFormatter(logging.Formatter(fmt=FILE_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S%z"))
    handlers.append(file_handler)

    if also_console:
        console = logging.StreamHandler(console_stream)
        isatty = getattr(console.stream, "isatty", None)
        color = bool(isatty and isatty())
        if color:
            just_fix_windows_console()
        console.setFormatter(ConsoleFormatter(color=color))
        handlers.append(console)

    for h in handlers:
        root.addHandler(h)
    setattr(root, "_mediamtx_handlers", handlers)

    log = logging.getLogger(__name__)
    if fallback_reason:
        log.warning("Cannot write log to %s (%s); using %s", log_path, fallback_reason, chosen_path)
    log.info("Logging initialized (requested=%s, actual=%s)", log_path, chosen_path)
    return chosen_path
