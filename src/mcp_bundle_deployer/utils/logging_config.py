"""Logging configuration for the Bundlecraft deployer.

Provides configurable logging with:
- File-based logging with rotation
- Console output for following a deployment live
- Timing helpers for control-plane calls and bundle changes

Environment Variables:
    BUNDLECRAFT_LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default: INFO)
    BUNDLECRAFT_LOG_FILE: Path to log file (default: ~/.bundlecraft/bundlecraft.log)
    BUNDLECRAFT_LOG_MAX_SIZE: Max log file size in MB (default: 10)
    BUNDLECRAFT_LOG_BACKUPS: Number of backup files to keep (default: 5)

Usage:
    from mcp_bundle_deployer.utils.logging_config import setup_logging, timed

    setup_logging()  # Call once at startup

    @timed("deploy_service")
    async def deploy_service(self, ...):
        ...

    async with timed_section("change:deploy-1", environment="prod"):
        ...
"""
import asyncio
import functools
import logging
import os
import time
from contextlib import asynccontextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Callable, Any

# Timing logger, kept apart from the main logger for easy filtering
perf_logger = logging.getLogger("bundlecraft.perf")
main_logger = logging.getLogger("bundlecraft")

_configured = False


def get_log_level() -> int:
    """Get log level from environment."""
    level_str = os.environ.get("BUNDLECRAFT_LOG_LEVEL", "INFO").upper()
    return getattr(logging, level_str, logging.INFO)


def get_log_file() -> Path:
    """Get log file path from environment."""
    default_path = Path.home() / ".bundlecraft" / "bundlecraft.log"
    path_str = os.environ.get("BUNDLECRAFT_LOG_FILE", str(default_path))
    return Path(path_str)


def setup_logging(log_file: Optional[Path] = None) -> None:
    """Configure logging for the application.

    Sets up:
    - Console handler (INFO+ by default, respects BUNDLECRAFT_LOG_LEVEL)
    - File handler with rotation (DEBUG level - captures everything)
    - Timing logger writing to its own file

    Calling it more than once is a no-op.
    """
    global _configured
    if _configured:
        return

    log_level = get_log_level()
    log_file = log_file or get_log_file()
    max_size_mb = int(os.environ.get("BUNDLECRAFT_LOG_MAX_SIZE", "10"))
    backup_count = int(os.environ.get("BUNDLECRAFT_LOG_BACKUPS", "5"))

    log_file.parent.mkdir(parents=True, exist_ok=True)

    main_format = logging.Formatter(
        "%(asctime)s.%(msecs)03d | %(name)-30s | %(levelname)-7s | %(message)s",
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

    perf_log_file = log_file.parent / "bundlecraft-perf.log"
    perf_handler = RotatingFileHandler(
        perf_log_file,
        maxBytes=max_size_mb * 1024 * 1024,
        backupCount=backup_count,
        encoding="utf-8"
    )
    perf_handler.setLevel(logging.DEBUG)
    perf_handler.setFormatter(perf_format)

    main_logger.setLevel(logging.DEBUG)  # Capture all, handlers filter
    main_logger.addHandler(console_handler)
    main_logger.addHandler(file_handler)

    # Package modules log under their import name
    package_logger = logging.getLogger("mcp_bundle_deployer")
    package_logger.setLevel(logging.DEBUG)
    package_logger.addHandler(console_handler)
    package_logger.addHandler(file_handler)

    perf_logger.setLevel(logging.DEBUG)
    perf_logger.addHandler(perf_handler)
    perf_logger.propagate = False

    _configured = True
    main_logger.info(f"Logging initialized: level={logging.getLevelName(log_level)}, file={log_file}")
    perf_logger.info(f"Timing log: {perf_log_file}")


def _format_timing(operation: str, environment: Optional[str], elapsed: float, status: str) -> str:
    return f"{operation:24s} | {environment or 'N/A':15s} | {elapsed:8.2f}ms | {status}"


def timed(operation: str, environment: Optional[str] = None):
    """Decorator to log execution time of sync/async functions.

    Args:
        operation: Name of the operation (e.g., "login", "deploy_service")
        environment: Optional environment name (inferred from self.environment otherwise)
    """
    def decorator(func: Callable) -> Callable:
        def _environment(args: tuple) -> Optional[str]:
            if environment is not None:
                return environment
            if args and hasattr(args[0], "environment"):
                return args[0].environment
            return None

        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs) -> Any:
            env = _environment(args)
            start = time.perf_counter()
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                elapsed = (time.perf_counter() - start) * 1000
                perf_logger.warning(_format_timing(operation, env, elapsed, f"FAIL: {e}"))
                raise
            elapsed = (time.perf_counter() - start) * 1000
            perf_logger.info(_format_timing(operation, env, elapsed, "OK"))
            return result

        @functools.wraps(func)
        def sync_wrapper(*args, **kwargs) -> Any:
            env = _environment(args)
            start = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                elapsed = (time.perf_counter() - start) * 1000
                perf_logger.warning(_format_timing(operation, env, elapsed, f"FAIL: {e}"))
                raise
            elapsed = (time.perf_counter() - start) * 1000
            perf_logger.info(_format_timing(operation, env, elapsed, "OK"))
            return result

        if asyncio.iscoroutinefunction(func):
            return async_wrapper
        return sync_wrapper

    return decorator


@asynccontextmanager
async def timed_section(operation: str, environment: Optional[str] = None, **extra):
    """Async context manager for timing code sections.

    Usage:
        async with timed_section("change:deploy-1", environment="prod", kind="addService"):
            await handler(ctx, change)
    """
    start = time.perf_counter()
    extra_str = " | ".join(f"{k}={v}" for k, v in extra.items()) if extra else ""

    try:
        yield
    except Exception as e:
        elapsed = (time.perf_counter() - start) * 1000
        msg = _format_timing(operation, environment, elapsed, f"FAIL: {e}")
        if extra_str:
            msg += f" | {extra_str}"
        perf_logger.warning(msg)
        raise

    elapsed = (time.perf_counter() - start) * 1000
    msg = _format_timing(operation, environment, elapsed, "OK")
    if extra_str:
        msg += f" | {extra_str}"
    perf_logger.info(msg)
