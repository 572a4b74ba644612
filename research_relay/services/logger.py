"""Loguru setup plus structured log lines for generation calls, phases and sources."""

import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from loguru import logger

from research_relay.config import settings

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}"
NOISY_LOGGERS = ("httpx", "httpcore", "hpack", "openai._base_client", "asyncio")

_configured = False


def configure_logging(log_dir: str | None = None, level: str | None = None) -> None:
    """Install console and daily-rotated file sinks once per process."""
    global _configured
    if _configured:
        return

    directory = Path(log_dir or settings.log_dir)
    directory.mkdir(parents=True, exist_ok=True)

    logger.remove()
    logger.add(
        sys.stderr,
        format=CONSOLE_FORMAT,
        level=(level or settings.app_log_level).upper(),
        colorize=True,
    )
    logger.add(
        directory / "research_relay_{time:YYYY-MM-DD}.log",
        format=FILE_FORMAT,
        level="DEBUG",
        rotation="00:00",
        retention="7 days",
        compression="zip",
    )

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(settings.noisy_log_level.upper())

    _configured = True


def _emit(tag: str, failed: bool, **fields: Any) -> None:
    record = {"timestamp": datetime.now(timezone.utc).isoformat(), **fields}
    if failed:
        logger.error(f"{tag}_FAILED: {record}")
    else:
        logger.info(f"{tag}: {record}")


def log_llm_call(
    model: str,
    caller: str,
    duration_ms: int = 0,
    input_tokens: int = 0,
    output_tokens: int = 0,
    status: str = "success",
    error: Optional[str] = None,
) -> None:
    _emit(
        "LLM_CALL",
        bool(error),
        model=model,
        caller=caller,
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        total_tokens=input_tokens + output_tokens,
        duration_ms=duration_ms,
        status=status,
        error=error,
    )


def log_phase(run_id: str, phase: str, previous: Optional[str] = None, **data: Any) -> None:
    """One line per pipeline state transition."""
    _emit("RESEARCH_PHASE", phase == "error", run_id=run_id, phase=phase, previous=previous, **data)


def log_ingest(root: str, files: int, chunks: int) -> None:
    _emit("INGEST", False, root=root, files=files, chunks=chunks)
