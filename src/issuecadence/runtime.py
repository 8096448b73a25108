"""Runtime helpers for IssueCadence CLI orchestration."""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Any, Protocol

from issuecadence.config import CadenceConfig, load_config
from issuecadence.logging import configure_logging, get_logger

# Commands that operate without a configuration file
_CONFIGLESS = {"sweep", "schedules"}


class _HandlerCallable(Protocol):
    def __call__(self) -> Any: ...


def prepare_config(
    args: Any, *, loader: Callable[[str], CadenceConfig] = load_config
) -> CadenceConfig | None:
    """Load the config for the given argparse namespace and apply CLI overrides."""
    if getattr(args, "cmd", None) in _CONFIGLESS:
        return None
    if not hasattr(args, "config"):
        raise AttributeError("Command namespace is missing 'config' attribute")
    cfg = loader(args.config)
    if getattr(args, "max_workers", None):
        cfg.concurrency_max_workers = max(1, int(args.max_workers))
    if getattr(args, "summary_json", None):
        cfg.summary_json = args.summary_json
    return cfg


def setup_logging(cfg: CadenceConfig | None, args: Any) -> None:
    level = cfg.logging_level if cfg else "INFO"
    if getattr(args, "verbose", False):
        level = "DEBUG"
    if getattr(args, "quiet", False):
        level = "WARNING"
    json_logging = bool(cfg.logging_json_enabled) if cfg else False
    if getattr(args, "json_logs", False):
        json_logging = True
    configure_logging(json_logging=json_logging, level=level)


def execute_command(handler: _HandlerCallable, args: Any, command: str) -> int:
    """Execute a command handler, logging its duration and exit code."""
    logger = get_logger()
    start = time.monotonic()
    exit_code = 1
    try:
        result = handler()
        exit_code = int(result) if result is not None else 0
    except SystemExit as exc:  # pragma: no cover - allow propagation
        exit_code = int(exc.code or 0)
        raise
    except Exception as exc:
        exit_code = 1
        logger.log_error(f"command {command} failed", error=str(exc))
        raise
    finally:
        duration_ms = max(0.0, time.monotonic() - start) * 1000
        logger.debug(
            f"command {command} finished", command=command, exit_code=exit_code,
            duration_ms=round(duration_ms, 2),
        )
    return exit_code


__all__ = ["prepare_config", "setup_logging", "execute_command"]
