"""
Centralized logging configuration for the blackout analysis pipeline.

Console output is human-readable; file output is JSON Lines so a run can
be audited step by step afterwards. Modules obtain their logger through
get_pipeline_logger() and never call logging.basicConfig() themselves.

Usage:
    from blackout.logging_config import get_pipeline_logger
    log = get_pipeline_logger(__name__)
"""

import json
import logging
import os
import time
import uuid
from logging.handlers import RotatingFileHandler


# Short identifier stamped on every record of one pipeline invocation.
_run_id = None

# Structured fields copied from ``extra=`` into the JSON record.
_STRUCTURED_FIELDS = (
    "step_name",
    "status",
    "input_summary",
    "output_summary",
    "timing_seconds",
    "feature_count",
    "warnings",
)


def get_run_id():
    """Return the current run_id, generating one on first use."""
    global _run_id
    if _run_id is None:
        _run_id = uuid.uuid4().hex[:8]
    return _run_id


def set_run_id(run_id=None):
    """Set (or regenerate) the run_id and return it."""
    global _run_id
    _run_id = run_id or uuid.uuid4().hex[:8]
    return _run_id


class RunIdFilter(logging.Filter):
    """Attach the current run_id to each record."""

    def filter(self, record):
        record.run_id = get_run_id()
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record):
        entry = {
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S.")
            + f"{int(record.msecs):03d}",
            "level": record.levelname,
            "logger": record.name,
            "function": record.funcName,
            "line": record.lineno,
            "run_id": getattr(record, "run_id", None),
            "message": record.getMessage(),
        }
        for key in _STRUCTURED_FIELDS:
            if hasattr(record, key):
                entry[key] = getattr(record, key)
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class ConsoleFormatter(logging.Formatter):

    def __init__(self):
        super().__init__(
            fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )


_configured = False
_run_dir_handler = None


def setup_logging(run_dir=None, console_level=None, file_level=logging.DEBUG,
                  log_dir=None):
    """Configure the root logger once per process.

    Parameters
    ----------
    run_dir : str, optional
        If given, also write ``{run_dir}/pipeline.jsonl`` for this run.
    console_level : int, optional
        Console level. Defaults to the LOG_LEVEL environment variable, or INFO.
    file_level : int
        Level for both file handlers.
    log_dir : str, optional
        Directory for the rotating ``pipeline.log``. Defaults to ./logs.
    """
    global _configured, _run_dir_handler

    if console_level is None:
        env_level = os.environ.get("LOG_LEVEL", "INFO").upper()
        console_level = getattr(logging, env_level, logging.INFO)

    root = logging.getLogger()

    if not _configured:
        root.setLevel(logging.DEBUG)
        root.addFilter(RunIdFilter())

        console = logging.StreamHandler()
        console.setLevel(console_level)
        console.setFormatter(ConsoleFormatter())
        console.addFilter(RunIdFilter())
        root.addHandler(console)

        log_dir = log_dir or os.path.join(os.getcwd(), "logs")
        os.makedirs(log_dir, exist_ok=True)
        rotating = RotatingFileHandler(
            os.path.join(log_dir, "pipeline.log"),
            maxBytes=10 * 1024 * 1024,
            backupCount=3,
        )
        rotating.setLevel(file_level)
        rotating.setFormatter(JsonFormatter())
        rotating.addFilter(RunIdFilter())
        root.addHandler(rotating)

        _configured = True

    if run_dir and _run_dir_handler is None:
        os.makedirs(run_dir, exist_ok=True)
        fh = logging.FileHandler(os.path.join(run_dir, "pipeline.jsonl"))
        fh.setLevel(file_level)
        fh.setFormatter(JsonFormatter())
        fh.addFilter(RunIdFilter())
        root.addHandler(fh)
        _run_dir_handler = fh


def reset_logging():
    """Drop all root handlers and filters (test isolation)."""
    global _configured, _run_dir_handler, _run_id

    root = logging.getLogger()
    for handler in root.handlers[:]:
        handler.close()
        root.removeHandler(handler)
    for f in root.filters[:]:
        root.removeFilter(f)

    _configured = False
    _run_dir_handler = None
    _run_id = None


def get_pipeline_logger(name, run_dir=None):
    """Return ``logging.getLogger(name)``, configuring logging on first use."""
    if not _configured:
        setup_logging(run_dir=run_dir)
    return logging.getLogger(name)


def log_step_summary(
    logger,
    step_name,
    status="success",
    input_summary=None,
    output_summary=None,
    timing_seconds=None,
    warnings_list=None,
):
    """Log one structured line describing a finished step.

    ``status`` is one of "success", "empty" or "error". Empty steps are
    logged at WARNING so they stand out from successes without looking
    like failures.
    """
    parts = [f"[{step_name}] {status}"]
    if timing_seconds is not None:
        parts.append(f"({timing_seconds:.2f}s)")
    if output_summary:
        parts.append(f"output={output_summary}")

    extra = {"step_name": step_name, "status": status}
    if input_summary:
        extra["input_summary"] = input_summary
    if output_summary:
        extra["output_summary"] = output_summary
    if timing_seconds is not None:
        extra["timing_seconds"] = timing_seconds
    if warnings_list:
        extra["warnings"] = warnings_list

    if status == "error":
        logger.error(" ".join(parts), extra=extra)
    elif status == "empty":
        logger.warning(" ".join(parts), extra=extra)
    else:
        logger.info(" ".join(parts), extra=extra)


class StepTimer:
    """Context manager recording wall-clock time in ``elapsed``."""

    def __enter__(self):
        self.start = time.perf_counter()
        self.elapsed = 0.0
        return self

    def __exit__(self, *args):
        self.elapsed = time.perf_counter() - self.start
