import sys
from pathlib import Path
from contextvars import ContextVar
from typing import Optional
from loguru import logger
from fastapi import Request
from tablestore.config import settings

# Store current request in contextvars for async context
_current_request: ContextVar[Optional[Request]] = ContextVar("current_request", default=None)

# Ensure log directory exists
LOG_DIR = Path(settings.LOG_DIR)
LOG_DIR.mkdir(exist_ok=True)

class LogConfig:
    """Global logging configuration using Loguru."""
    @classmethod
    def setup_logging(cls, level: str = "INFO"):
        logger.remove()

        logger.add(
            sys.stdout,
            enqueue=True,
            backtrace=True,
            diagnose=True,
            format=(
                "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
                "<level>{level: <8}</level> | "
                "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
                "<magenta>Trace:{extra[trace_id]}</magenta> - <level>{message}</level>"
            ),
            level=level,
        )

        logger.add(
            LOG_DIR / "app_{time:YYYY-MM-DD}.log",
            rotation="00:00",
            retention="30 days",
            compression="zip",
            enqueue=True,
            format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} | Trace:{extra[trace_id]} - {message}",
            level="DEBUG",
        )

        logger.add(
            LOG_DIR / "error_{time:YYYY-MM-DD}.log",
            level="ERROR",
            rotation="100 MB",
            enqueue=True,
        )

        logger.configure(extra={"trace_id": "system"})

    @classmethod
    def setup_cli_logging(cls, script_name: str, verbose: bool = False):
        """Configure logging for command line scripts; file output goes to a per-script log."""
        logger.remove()

        logger.add(
            sys.stderr,
            backtrace=True,
            diagnose=True,
            format=(
                "<green>{time:HH:mm:ss.SSS}</green> | "
                "<level>{level: <8}</level> | "
                f"<magenta>{script_name}</magenta> | "
                "<level>{message}</level>"
            ),
            level="DEBUG" if verbose else "INFO",
        )

        logger.add(
            LOG_DIR / f"{script_name}_{{time:YYYY-MM-DD}}.log",
            rotation="00:00",
            retention="30 days",
            format=f"{{time:YYYY-MM-DD HH:mm:ss.SSS}} | {{level: <8}} | {{name}}:{{function}}:{{line}} | {script_name} | {{message}}",
            level="DEBUG",
        )

        logger.configure(extra={"trace_id": script_name})

def get_logger(name: str = None, request: Optional[Request] = None):
    """Get logger instance; optionally pass request for trace_id, else from context."""
    current_request = request or _current_request.get()

    if current_request is not None:
        trace_id = getattr(current_request.state, "trace_id", "unknown")
    else:
        trace_id = "unknown"

    if name:
        return logger.bind(name=name, trace_id=trace_id)
    else:
        return logger.bind(trace_id=trace_id)
