import logging
import os
from datetime import datetime
from pathlib import Path
from zoneinfo import ZoneInfo

_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"


def setup_logging(
    level: str = "INFO",
    component: str = "recorder",
    subdir: str = "default",
    base_dir: str | Path = "logs",
) -> Path:
    """
    Configure logging:
      - Console (stdout)
      - Daily log file in logs/<component>/<subdir>/YYYY-MM-DD.log (LOG_TZ date)

    Returns:
      Path to the "current" daily log file.
    """
    log_dir = Path(base_dir) / component / subdir
    log_dir.mkdir(parents=True, exist_ok=True)
    tz = ZoneInfo(os.getenv("LOG_TZ", "Europe/London"))
    log_path = log_dir / f"{datetime.now(tz).strftime('%Y-%m-%d')}.log"

    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    for h in list(root.handlers):
        root.removeHandler(h)

    fmt = logging.Formatter(_FORMAT)
    fh = logging.FileHandler(log_path, encoding="utf-8")
    fh.setFormatter(fmt)
    sh = logging.StreamHandler()
    sh.setFormatter(fmt)
    root.addHandler(fh)
    root.addHandler(sh)

    # frame-level chatter from the websocket client drowns the recorder lines
    logging.getLogger("websockets").setLevel(logging.WARNING)
    return log_path
