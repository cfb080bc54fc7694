"""
================================================================================
LOGGER - Unified Logging Configuration
================================================================================

Centralized logging infrastructure for all application contexts.

Logging Contexts:
    - 'cli' - Command-line interface operations
    - 'test' - Unit and integration tests
    - 'imported' - Library/module imports (minimal logging)

Log Destinations:
    1. File Logs - outputs/logs/{timestamp}.{context}.log
    2. Console Output - stdout
    3. Rotating Backups - 5MB max per file, 5 backup files

Log Format:
    {timestamp} {level} [{context}]: {message}
    Example: 2026-10-19 10:30:45 INFO [cli]: [ENCRYPTION] Key derived

Secrets policy:
    Passwords, derived keys and decrypted plaintext are never logged.
    Modules log record ids, counts and tags only.

Usage:
    from zkledger.utils.logger import set_run_context, logger

    set_run_context('cli')
    logger.info('[DB] Opened ledger')

Last Modified: October 2026
================================================================================
"""

import sys
import logging
from datetime import datetime
from logging.handlers import RotatingFileHandler

logger = logging.getLogger("zkledger")
logger.setLevel(logging.INFO)

# Global run context state
_RUN_CONTEXT = 'imported'

LOG_FORMAT = "%(asctime)s %(levelname)s [%(run_context)s]: %(message)s"


class RunContextFilter(logging.Filter):
    """
    Logging filter that adds run context to all log records
    Allows distinguishing between different execution contexts
    """

    def filter(self, record):
        record.run_context = _RUN_CONTEXT
        return True


def set_run_context(context: str, log_to_file: bool = True, stream=None):
    """
    Set the execution context for logging

    Args:
        context: String identifier ('cli', 'test', 'imported')
        log_to_file: Attach a rotating file handler under LOG_DIR
        stream: Console stream (default: stdout)
    """
    global _RUN_CONTEXT
    _RUN_CONTEXT = context

    # Clear existing handlers
    for h in list(logger.handlers):
        logger.removeHandler(h)
        h.close()

    if log_to_file:
        try:
            from zkledger.utils.constants import LOG_DIR

            LOG_DIR.mkdir(parents=True, exist_ok=True)
            timestamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
            log_file = LOG_DIR / f"{timestamp}.{context}.log"

            file_handler = RotatingFileHandler(
                str(log_file),
                maxBytes=5_000_000,  # 5MB
                backupCount=5,
                encoding='utf-8'
            )
            file_handler.setLevel(logging.INFO)
            file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
            file_handler.addFilter(RunContextFilter())
            logger.addHandler(file_handler)
        except OSError as e:
            # Read-only or missing log directory: keep console logging only
            sys.stderr.write(f"Log file unavailable: {e}\n")

    console_handler = logging.StreamHandler(stream if stream is not None else sys.stdout)
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    console_handler.addFilter(RunContextFilter())
    logger.addHandler(console_handler)


def setup_logging(context: str = 'imported', level=logging.INFO, log_to_file: bool = True, stream=None):
    """
    Initialize logging for the application

    Args:
        context: Execution context identifier
        level: Level name or number ('DEBUG', logging.WARNING, ...); None means INFO
        log_to_file: Attach the rotating file handler
        stream: Console stream (default: stdout)
    """
    set_run_context(context, log_to_file=log_to_file, stream=stream)
    logger.setLevel(logging.INFO if level is None else level)
    return logger


def get_run_context() -> str:
    return _RUN_CONTEXT
