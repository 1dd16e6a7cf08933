"""
Structured Logging for the Quiz Backend

Colour-coded console logging with:
- Per-level colours and icons
- Section banners for multi-step requests (quiz commands, recommendations)
- Key/value payloads rendered under the message
- Request/response lines with timing
"""

import logging
import sys
from datetime import datetime
from typing import Any, Dict, Optional


class Colors:
    """ANSI colour codes for terminal output."""
    RESET = '\033[0m'
    BOLD = '\033[1m'

    DEBUG = '\033[36m'      # Cyan
    INFO = '\033[32m'       # Green
    WARNING = '\033[33m'    # Yellow
    ERROR = '\033[31m'      # Red
    CRITICAL = '\033[35m'   # Magenta

    SECTION = '\033[94m'    # Bright Blue
    KEY = '\033[93m'        # Bright Yellow
    TIMESTAMP = '\033[90m'  # Dark Gray


LEVEL_COLORS = {
    'DEBUG': Colors.DEBUG,
    'INFO': Colors.INFO,
    'WARNING': Colors.WARNING,
    'ERROR': Colors.ERROR,
    'CRITICAL': Colors.CRITICAL,
}


class ColoredFormatter(logging.Formatter):
    """Formatter with colours and per-area icons."""

    LEVEL_ICONS = {
        'DEBUG': '🔍',
        'INFO': 'ℹ️',
        'WARNING': '⚠️',
        'ERROR': '❌',
        'CRITICAL': '🚨',
    }

    # Keyed by the last component of the logger name
    AREA_ICONS = {
        'quiz': '🧠',
        'adaptive_engine': '🧠',
        'question_provider': '❓',
        'recommendations': '📚',
        'chat_stream': '💬',
        'solver': '💬',
        'auth': '🔐',
    }

    def __init__(self, use_colors: bool = True):
        super().__init__()
        self.use_colors = use_colors and sys.stdout.isatty()

    def format(self, record: logging.LogRecord) -> str:
        icon = self.AREA_ICONS.get(record.name.split('.')[-1], self.LEVEL_ICONS.get(record.levelname, '•'))
        timestamp = datetime.fromtimestamp(record.created).strftime('%H:%M:%S.%f')[:-3]

        if self.use_colors:
            color = LEVEL_COLORS.get(record.levelname, Colors.RESET)
            line = (
                f"{Colors.TIMESTAMP}[{timestamp}]{Colors.RESET} {icon} "
                f"{color}{record.levelname:8s}{Colors.RESET} "
                f"{Colors.BOLD}{record.name}{Colors.RESET} | {record.getMessage()}"
            )
        else:
            line = f"[{timestamp}] {icon} {record.levelname:8s} {record.name} | {record.getMessage()}"

        if record.exc_info:
            line += f"\n{self.formatException(record.exc_info)}"
        return line


class StructuredLogger:
    """Logger facade with section banners and key/value payloads."""

    def __init__(self, name: str, logger: Optional[logging.Logger] = None):
        self.name = name
        self.logger = logger or logging.getLogger(name)

    @staticmethod
    def _format_data(data: Dict[str, Any]) -> str:
        return "\n".join(f"    {key}: {value}" for key, value in data.items())

    def _emit(self, level: int, message: str, data: Optional[Dict[str, Any]] = None, **kwargs):
        if data:
            message = f"{message}\n{self._format_data(data)}"
        self.logger.log(level, message, **kwargs)

    def section(self, title: str, data: Optional[Dict[str, Any]] = None):
        """Log a banner marking the start of a multi-step operation."""
        separator = "=" * 60
        self._emit(logging.INFO, f"{separator}\n📋 {title.upper()}\n{separator}", data)

    def debug(self, message: str, data: Optional[Dict[str, Any]] = None):
        self._emit(logging.DEBUG, message, data)

    def info(self, message: str, data: Optional[Dict[str, Any]] = None):
        self._emit(logging.INFO, message, data)

    def warning(self, message: str, data: Optional[Dict[str, Any]] = None):
        self._emit(logging.WARNING, message, data)

    def success(self, message: str, data: Optional[Dict[str, Any]] = None):
        self._emit(logging.INFO, f"✅ {message}", data)

    def error(self, message: str, error: Optional[Exception] = None, data: Optional[Dict[str, Any]] = None):
        """Log an error with the exception type and traceback attached."""
        if error:
            message = f"{message} Error: {type(error).__name__}: {error}"
        self._emit(logging.ERROR, message, data, exc_info=error)

    def request(self, method: str, path: str, user_id: Optional[str] = None,
                data: Optional[Dict[str, Any]] = None):
        payload = {"user_id": user_id[:20] + "..." if user_id and len(user_id) > 20 else user_id}
        if data:
            payload.update(data)
        self._emit(logging.INFO, f"📥 REQUEST: {method} {path}", payload)

    def response(self, status: int, path: str, duration: Optional[float] = None,
                 data: Optional[Dict[str, Any]] = None):
        payload = {"duration_ms": f"{duration * 1000:.2f}" if duration is not None else None}
        if data:
            payload.update(data)
        self._emit(logging.INFO, f"📤 RESPONSE: {status} {path}", payload)


def setup_logging(level: int = logging.INFO, use_colors: bool = True):
    """Install the coloured console handler on the root logger."""
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(ColoredFormatter(use_colors=use_colors))

    root_logger.setLevel(level)
    root_logger.addHandler(console_handler)

    # Suppress noisy loggers
    for noisy in ('asyncio', 'httpx', 'httpcore', 'openai'):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    return root_logger


def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger instance."""
    return StructuredLogger(name, logging.getLogger(name))
