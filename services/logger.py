import logging
import os
import sys
from datetime import datetime

# level name → (tag, ANSI colour)
LEVEL_TAGS = {
    'DEBUG':    ('DBG', '\033[36m'),
    'INFO':     ('INF', '\033[32m'),
    'WARNING':  ('WRN', '\033[33m'),
    'ERROR':    ('ERR', '\033[31m'),
    'CRITICAL': ('CRT', '\033[91m\033[1m'),
}
RESET = '\033[0m'

IS_TTY = sys.stdout.isatty()

# Console threshold; the optional file log always records DEBUG.
CONSOLE_LEVEL = os.environ.get("RELAY_LOG_LEVEL", "INFO").upper()

# Secrets redacted from every record; filled from the config at start-up.
_sensitive: set[str] = set()


def register_sensitive(values) -> None:
    """Replace the set of strings that must never reach a log sink."""
    _sensitive.clear()
    # Short values would mask ordinary words.
    _sensitive.update(v for v in values if len(v) >= 8)


class MaskingFilter(logging.Filter):

    def filter(self, record: logging.LogRecord) -> bool:
        if not _sensitive:
            return True
        text = record.getMessage()
        for secret in _sensitive:
            text = text.replace(secret, "***")
        record.msg, record.args = text, ()
        return True


class CustomFormatter(logging.Formatter):
    """``[time] [INF] | path:line | message``, coloured on a terminal."""

    def format(self, record):
        timestamp = datetime.now().strftime('[%Y-%m-%d %H:%M:%S]')
        tag, colour = LEVEL_TAGS.get(record.levelname, (record.levelname[:3], ''))
        level = f'[{tag}]'
        if IS_TTY and colour:
            level = colour + level + RESET

        try:
            where = os.path.relpath(record.pathname)
        except ValueError:
            # Different drive on Windows.
            where = record.pathname

        return f"{timestamp} {level} | {where}:{record.lineno} | {record.getMessage()}"


logger = logging.getLogger('app')
logger.setLevel(logging.DEBUG)
logger.addFilter(MaskingFilter())
logger.propagate = False

for _old in list(logger.handlers):
    _old.close()
    logger.removeHandler(_old)

_console = logging.StreamHandler(sys.stdout)
_console.setFormatter(CustomFormatter())
_console.setLevel(getattr(logging, CONSOLE_LEVEL, logging.INFO))
logger.addHandler(_console)

_file_handler: logging.FileHandler | None = None


def enable_file_log(log_dir: str) -> str:
    """Start mirroring every record to a timestamped file in *log_dir*."""
    global _file_handler
    if _file_handler is None:
        os.makedirs(log_dir, exist_ok=True)
        # 20250915-150316061.log
        name = datetime.now().strftime("%Y%m%d-%H%M%S%f")[:-3] + ".log"
        _file_handler = logging.FileHandler(os.path.join(log_dir, name), encoding='utf-8')
        _file_handler.setFormatter(logging.Formatter(
            '[%(asctime)s] [%(levelname)s] | %(filename)s:%(lineno)d | %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S',
        ))
        _file_handler.setLevel(logging.DEBUG)
        logger.addHandler(_file_handler)
    return _file_handler.baseFilename


def get_logger(name=None):
    """All modules share the ``app`` logger; *name* is accepted for symmetry."""
    return logger
