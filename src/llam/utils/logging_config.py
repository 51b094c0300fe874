"""Logging configuration for llam.

Provides configurable logging with:
- File-based logging with rotation
- Console output for real-time debugging
- Performance timing for git calls and per-addon work

Environment Variables:
    LLAM_LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default: INFO)
    LLAM_LOG_FILE: Path to log file (default: ~/.llam/llam.log)
    LLAM_LOG_MAX_SIZE: Max log file size in MB (default: 10)
    LLAM_LOG_BACKUPS: Number of backup files to keep (default: 5)

Usage:
    from llam.utils.logging_config import setup_logging, timed

    setup_logging()  # Call once at startup

    @timed("git.fetch")
    def fetch(self, repo_dir):
        ...

    # Or use the context manager for sections:
    with timed_section("update", addon="love2d"):
        ...
"""
import functools
import logging
import os
import time
from contextlib import contextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Callable, Optional

# Performance logger - separate from main logger for easy filtering
perf_logger = logging.getLogger("llam.perf")
main_logger = logging.getLogger("llam")


def get_log_level() -> int:
    """Get log level from environment."""
    level_str = os.environ.get("LLAM_LOG_LEVEL", "INFO").upper()
    return getattr(logging, level_str, logging.INFO)


def get_log_file() -> Path:
    """Get log file path from environment."""
    default_path = Path.home() / ".llam" / "llam.log"
    path_str = os.environ.get("LLAM_LOG_FILE", str(default_path))
    return Path(path_str)


def setup_logging(level: Optional[int] = None) -> None:
    """Configure logging for the application.

    Sets up:
    - Console handler (INFO+ by default, respects LLAM_LOG_LEVEL)
    - File handler with rotation (DEBUG level - captures everything)
    - Performance logger writing to its own file

    Args:
        level: Console level override (e.g. from a --verbose flag)
    """
    log_level = level if level is not None else get_log_level()
    log_file = get_log_file()
    max_size_mb = int(os.environ.get("LLAM_LOG_MAX_SIZE", "10"))
    backup_count = int(os.environ.get("LLAM_LOG_BACKUPS", "5"))

    log_file.parent.mkdir(parents=True, exist_ok=True)

    main_format = logging.Formatter(
        "%(asctime)s.%(msecs)03d | %(name)-22s | %(levelname)-7s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )
    perf_format = logging.Formatter(
        "%(asctime)s.%(msecs)03d | PERF | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(main_format)

    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=max_size_mb * 1024 * 1024,
        backupCount=backup_count,
        encoding="utf-8"
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(main_format)

    perf_log_file = log_file.parent / "llam-perf.log"
    perf_handler = RotatingFileHandler(
        perf_log_file,
        maxBytes=max_size_mb * 1024 * 1024,
        backupCount=backup_count,
        encoding="utf-8"
    )
    perf_handler.setLevel(logging.DEBUG)
    perf_handler.setFormatter(perf_format)

    # Repeated calls (tests, embedding) must not stack handlers
    for handler in list(main_logger.handlers):
        main_logger.removeHandler(handler)
        handler.close()
    for handler in list(perf_logger.handlers):
        perf_logger.removeHandler(handler)
        handler.close()

    main_logger.setLevel(logging.DEBUG)  # Capture all, handlers filter
    main_logger.addHandler(console_handler)
    main_logger.addHandler(file_handler)

    # perf records go to their own file only
    perf_logger.setLevel(logging.DEBUG)
    perf_logger.propagate = False
    perf_logger.addHandler(perf_handler)

    main_logger.debug(f"Logging initialized: level={logging.getLevelName(log_level)}, file={log_file}")


def _target_name(args: tuple, index: int) -> str:
    """Best-effort label for a timed call: the repo directory name."""
    if len(args) > index and isinstance(args[index], (str, Path)):
        return Path(args[index]).name
    return "N/A"


def timed(operation: str, target_arg: int = 1) -> Callable:
    """Decorator to log execution time of a function.

    The positional argument at ``target_arg`` (default: the first one
    after ``self``) labels the call when it is a path.

    Usage:
        @timed("git.clone")
        def clone(self, into_dir, url, target_name):
            ...
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            target = _target_name(args, target_arg)
            start = time.perf_counter()
            try:
                result = func(*args, **kwargs)
                elapsed = (time.perf_counter() - start) * 1000
                perf_logger.info(
                    f"{operation:20s} | {target:20s} | {elapsed:8.2f}ms | OK"
                )
                return result
            except Exception as e:
                elapsed = (time.perf_counter() - start) * 1000
                perf_logger.warning(
                    f"{operation:20s} | {target:20s} | {elapsed:8.2f}ms | FAIL: {e}"
                )
                raise

        return wrapper

    return decorator


@contextmanager
def timed_section(operation: str, addon: Optional[str] = None, **extra):
    """Context manager for timing code sections.

    Args:
        operation: Name of the operation
        addon: Addon name
        **extra: Additional context to log
    """
    start = time.perf_counter()
    extra_str = " | ".join(f"{k}={v}" for k, v in extra.items()) if extra else ""

    try:
        yield
        elapsed = (time.perf_counter() - start) * 1000
        msg = f"{operation:20s} | {addon or 'N/A':20s} | {elapsed:8.2f}ms | OK"
        if extra_str:
            msg += f" | {extra_str}"
        perf_logger.info(msg)
    except Exception as e:
        elapsed = (time.perf_counter() - start) * 1000
        msg = f"{operation:20s} | {addon or 'N/A':20s} | {elapsed:8.2f}ms | FAIL: {e}"
        if extra_str:
            msg += f" | {extra_str}"
        perf_logger.warning(msg)
        raise
