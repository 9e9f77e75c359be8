import io
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from datetime import datetime

LOG_FORMAT = '[%(asctime)s] %(levelname)s %(name)s: %(message)s'
LOG_DATEFMT = '%Y-%m-%d %H:%M:%S.%f'


class DotMsFormatter(logging.Formatter):
    """Formatter whose ``%f`` expands to milliseconds.

    Flush and poll cadences are sub-second, so the default second
    resolution hides the ordering of feed and pull log lines.
    """

    def formatTime(self, record, datefmt=None):
        ct = datetime.fromtimestamp(record.created)
        if datefmt:
            s = ct.strftime(datefmt.replace('%f', '{ms}'))
            s = s.replace('{ms}', f'{int(record.msecs):03d}')
        else:
            s = ct.strftime("%Y-%m-%d %H:%M:%S")
            s += f".{int(record.msecs):03d}"
        return s


def setup_logger(
    name: str,
    log_path: str | Path,
    level: int = logging.INFO,
    console: bool = True,
) -> logging.Logger:
    """Return a logger writing to the console and a rotating file.

    Calling it twice for the same name does not stack handlers.
    """
    log_path = Path(log_path)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger(name)
    logger.setLevel(level)
    if logger.handlers:
        return logger

    formatter = DotMsFormatter(LOG_FORMAT, datefmt=LOG_DATEFMT)

    if console:
        # Force UTF-8 so symbol names never raise UnicodeEncodeError on
        # consoles that default to cp1252.
        if hasattr(sys.stdout, "buffer"):
            utf8_stream = io.TextIOWrapper(sys.stdout.buffer, encoding="utf-8", errors="replace")
        else:
            utf8_stream = sys.stdout
        ch = logging.StreamHandler(utf8_stream)
        ch.setFormatter(formatter)
        logger.addHandler(ch)

    fh = RotatingFileHandler(log_path, maxBytes=5_000_000, backupCount=5, encoding="utf-8")
    fh.setFormatter(formatter)
    logger.addHandler(fh)

    return logger
