# interview_eval/utils/logger.py

import sys
from pathlib import Path

from loguru import logger

# Batch and simulation runs bind their id with ``logger.contextualize(run=...)``.
NO_RUN = "-"


def _is_batch_record(record) -> bool:
    return str(record["extra"].get("run", NO_RUN)).startswith("batch")


def setup_logging(log_level: str = "INFO", base_dir: Path = Path(".")):
    """
    Central loguru setup for the pipeline.

    Console output is colored and tags records emitted inside a batch or
    simulation with the run id. The daily ``pipeline_*.log`` keeps everything
    at DEBUG, ``batches.log`` keeps only batch records so a single run can be
    followed across concurrent files, and ``errors.log`` keeps full tracebacks.

    Called once by the command line entry point; library modules only use
    ``from loguru import logger``.
    """
    logger.remove()
    logger.configure(extra={"run": NO_RUN})

    log_dir = Path(base_dir) / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)

    def console_format(record):
        emoji = {"INFO": "ℹ️", "SUCCESS": "✅", "WARNING": "⚠️", "ERROR": "❌"}.get(record["level"].name, "📝")
        run = "<magenta>[{extra[run]}]</magenta> " if record["extra"].get("run", NO_RUN) != NO_RUN else ""
        return (
            "<green>{time:HH:mm:ss}</green> | " + emoji + " <level>{level: <8}</level> | " + run
            + "<cyan>{module}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>\n{exception}"
        )

    logger.add(sys.stderr, format=console_format, level=log_level.upper(), colorize=True)

    logger.add(
        log_dir / "pipeline_{time:YYYY-MM-DD}.log",
        format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {extra[run]} | {name}:{function}:{line} - {message}",
        level="DEBUG",
        rotation="1 day",
        retention="30 days",
        compression="zip",
        encoding="utf-8",
    )

    logger.add(
        log_dir / "batches.log",
        format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {extra[run]} | {level: <8} | {message}",
        level="INFO",
        filter=_is_batch_record,
        rotation="10 MB",
        retention=10,
        encoding="utf-8",
    )

    logger.add(
        log_dir / "errors.log",
        format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {extra[run]} | {name}:{function}:{line} - {message}",
        level="ERROR",
        rotation="1 week",
        backtrace=True,
        diagnose=True,
        encoding="utf-8",
    )

    logger.success("Logging configured.")
