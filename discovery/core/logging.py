# discovery/core/logging.py
import json
import logging
import sys
import colorlog

LOG_FORMAT = "%(log_color)s%(asctime)s %(levelname)-8s [%(name)s]%(reset)s %(message)s"

# Third-party loggers that only get through at WARNING, whatever the app level
QUIET_LOGGERS = ("pymongo", "motor", "httpx")


def configure_logging(level=logging.INFO, color: bool | None = None):
    """
    One colorized stdout handler on the root logger. Colors are dropped when
    stdout is not a terminal (containers, log shippers) unless forced.
    """
    if color is None:
        color = sys.stdout.isatty()

    handler = colorlog.StreamHandler(sys.stdout)
    handler.setFormatter(
        colorlog.ColoredFormatter(
            LOG_FORMAT,
            datefmt="%Y-%m-%dT%H:%M:%S",
            no_color=not color,
            log_colors={
                "DEBUG": "cyan",
                "INFO": "green",
                "WARNING": "yellow",
                "ERROR": "red",
                "CRITICAL": "bold_red",
            },
        )
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    for name in ("uvicorn.error", "uvicorn.access"):
        logging.getLogger(name).setLevel(level)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def json_preview(obj, limit: int = 1000) -> str:
    """Minify and truncate JSON for debug logs (pipelines, payloads)."""
    try:
        s = json.dumps(obj, separators=(",", ":"), ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return "<unserializable>"
    return s if len(s) <= limit else s[:limit] + "...[truncated]"
