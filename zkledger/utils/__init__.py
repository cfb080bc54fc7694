"""
================================================================================
UTILS MODULE - Shared Utilities and Helpers
================================================================================

Shared infrastructure used across all application components.

Exported Functions:
    Logging:
        - setup_logging() - Initialize logging infrastructure
        - set_run_context(context) - Set execution context
        - logger - Main application logger

    Configuration:
        - load_config() - Load configuration from config.json
        - update_config() - Persist a single setting

    Constants:
        - File paths, key derivation policy, anomaly thresholds

Usage:
    from zkledger.utils import logger, load_config
    from zkledger.utils.constants import KDF_ITERATIONS

Last Modified: October 2026
================================================================================
"""

from .logger import setup_logging, set_run_context, logger
from .config import load_config, update_config

__all__ = [
    'setup_logging',
    'set_run_context',
    'logger',
    'load_config',
    'update_config',
]
