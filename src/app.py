from __future__ import annotations

import logging
import os
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

from gwy.bootstrap import create_app

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def _configure_logging() -> None:
    level = getattr(logging, os.getenv("JOURNAL_LOG_LEVEL", "INFO").upper(), logging.INFO)
    log_path = Path("runtime") / "logs" / "journal.log"
    log_path.parent.mkdir(parents=True, exist_ok=True)

    formatter = logging.Formatter(LOG_FORMAT)
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    if not any(type(handler) is logging.StreamHandler for handler in root_logger.handlers):
        stream_handler = logging.StreamHandler()
        stream_handler.setFormatter(formatter)
        root_logger.addHandler(stream_handler)

    resolved = str(log_path.resolve())
    if not any(getattr(handler, "baseFilename", "") == resolved for handler in root_logger.handlers):
        file_handler = TimedRotatingFileHandler(
            filename=log_path,
            when="midnight",
            backupCount=30,
            encoding="utf-8",
        )
        file_handler.suffix = "%Y-%m-%d"
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    # keep per-request access lines out of the journal log
    logging.getLogger("uvicorn.access").setLevel(max(level, logging.WARNING))


_configure_logging()

app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app:app",
        host=os.getenv("JOURNAL_HOST", "127.0.0.1"),
        port=int(os.getenv("JOURNAL_PORT", "8000")),
        reload=False,
    )
