from __future__ import annotations

import logging
import sys
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

_FORMAT = "%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s"
_DATEFMT = "%Y-%m-%d %H:%M:%S"


class _ThirdPartyNoiseFilter(logging.Filter):
  """Keep taskpulse logs; let other libraries through only at WARNING or above."""

  def filter(self, record: logging.LogRecord) -> bool:
    if record.name.startswith("taskpulse"):
      return True
    return record.levelno >= logging.WARNING


def setup_logging(*, level: str | int = "INFO", log_dir: str | Path | None = None) -> None:
  """
  Configure root logging once at startup.

  - stderr handler, filtered for third-party noise
  - optional daily-rotated file under `log_dir` with everything, audit lines included
  """
  root = logging.getLogger()
  root.setLevel(logging.DEBUG)
  for h in list(root.handlers):
    root.removeHandler(h)

  fmt = logging.Formatter(fmt=_FORMAT, datefmt=_DATEFMT)

  ch = logging.StreamHandler(sys.stderr)
  ch.setLevel(level if isinstance(level, int) else logging.getLevelName(str(level).upper()))
  ch.setFormatter(fmt)
  ch.addFilter(_ThirdPartyNoiseFilter())
  root.addHandler(ch)

  if log_dir:
    path = Path(log_dir)
    path.mkdir(parents=True, exist_ok=True)
    fh = TimedRotatingFileHandler(str(path / "taskpulse.log"), when="midnight", backupCount=14, encoding="utf-8", utc=True)
    fh.setLevel(logging.DEBUG)
    fh.setFormatter(fmt)
    root.addHandler(fh)

  logging.captureWarnings(True)
