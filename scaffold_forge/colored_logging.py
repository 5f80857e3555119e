"""
Console logging for Scaffold Forge.

Generator and migrator output is a stream of short status lines
("create  app/models/post.py", "applied 20240101000000 create_posts").
The formatter colours each line by its status word so a scrolling run can be
scanned at a glance; warnings and errors always keep their level colour.
"""

import logging
import sys
from typing import Optional


class ColoredFormatter(logging.Formatter):
    """
    Formatter that colours status lines and log levels with ANSI codes.

    Records logged through :func:`log_status` carry a ``status`` attribute
    which selects the colour directly; other records fall back to their
    leading marker character, then to their level.
    """

    LEVEL_COLORS = {
        'DEBUG': '\033[2m',       # Dim
        'WARNING': '\033[33m',    # Yellow
        'ERROR': '\033[31m',      # Red
        'CRITICAL': '\033[1;31m', # Bold red
    }

    STATUS_COLORS = {
        'create': '\033[92m',     # Bright green
        'update': '\033[93m',     # Bright yellow
        'identical': '\033[94m',  # Bright blue
        'remove': '\033[91m',     # Bright red
        'applied': '\033[92m',
        'reverted': '\033[95m',   # Bright magenta
        'pending': '\033[93m',
        'pretend': '\033[96m',    # Bright cyan
    }

    MARKER_COLORS = {
        '✓': '\033[1;92m',
        '→': '\033[94m',
        '•': '\033[96m',
    }

    RESET = '\033[0m'
    BOLD = '\033[1m'

    def __init__(self, fmt: Optional[str] = None, use_colors: bool = True, stream=None):
        """
        Args:
            fmt: Log format string. INFO records are always shown without a level prefix.
            use_colors: Whether to use colors (disabled anyway when the stream is not a TTY)
            stream: Stream the handler writes to, used for the TTY check
        """
        super().__init__(fmt or "%(message)s")
        self.prefixed = logging.Formatter("%(levelname)s: %(message)s")

        stream = stream or sys.stderr
        self.use_colors = use_colors and hasattr(stream, 'isatty') and stream.isatty()

    def format(self, record: logging.LogRecord) -> str:
        if record.levelno == logging.INFO:
            text = super().format(record)
        else:
            text = self.prefixed.format(record)

        color = self.color_for(record) if self.use_colors else None
        return f"{color}{text}{self.RESET}" if color else text

    def color_for(self, record: logging.LogRecord) -> Optional[str]:
        if record.levelname in self.LEVEL_COLORS:
            return self.LEVEL_COLORS[record.levelname]

        status = getattr(record, 'status', None)
        if status in self.STATUS_COLORS:
            return self.STATUS_COLORS[status]

        message = record.getMessage().lstrip()
        if message.startswith('='):
            return self.BOLD
        return self.MARKER_COLORS.get(message[:1])


def setup_colored_logging(level: int = logging.INFO, use_colors: bool = True) -> None:
    """
    Route all log output through one colored stderr handler.

    Args:
        level: Logging level (default: INFO)
        use_colors: Whether to use colors (default: True)
    """
    root_logger = logging.getLogger()

    # Replace handlers left over from an earlier call
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(ColoredFormatter(use_colors=use_colors, stream=sys.stderr))
    handler.setLevel(level)

    root_logger.addHandler(handler)
    root_logger.setLevel(level)


def log_status(logger: logging.Logger, status: str, detail: str) -> None:
    """Log ``detail`` under a right-aligned status word, e.g. ``   create  app/models/post.py``."""
    logger.info(f"{status:>9}  {detail}", extra={'status': status})


def log_success(logger: logging.Logger, message: str) -> None:
    logger.info(f"✓ {message}")


def log_progress(logger: logging.Logger, message: str) -> None:
    logger.info(f"→ {message}")


def log_highlight(logger: logging.Logger, message: str) -> None:
    logger.info(f"• {message}")


def log_section(logger: logging.Logger, section_name: str) -> None:
    rule = "=" * 40
    logger.info(rule)
    logger.info(f"  {section_name.upper()}")
    logger.info(rule)
